"""Fixed-window counter for backup-key submissions."""
from attendance import db
from attendance.models.base import BaseModel


class ProofAttemptCounter(BaseModel):
    """Backup-key attempts per (student, session) in the current window."""

    __tablename__ = 'proof_attempt_counters'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'session_id', name='uq_attempt_student_session'),
    )

    student_id = db.Column(db.String(64), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False)
    window_started_at = db.Column(db.DateTime, nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)
