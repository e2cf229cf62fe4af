"""Attendance ledger rows and rejected-attempt audit rows."""
from sqlalchemy import event
from attendance import db
from attendance.models.base import BaseModel
from attendance.utils.errors import ImmutableRecordError

SUCCESS = 'SUCCESS'


class AttendanceRecord(BaseModel):
    """Verified attendance. At most one per (student, session); immutable."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'session_id', name='uq_attendance_student_session'),
    )

    student_id = db.Column(db.String(64), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=SUCCESS)
    distance_m = db.Column(db.Float, nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)
    suspicion_score = db.Column(db.Float, nullable=False, default=0.0)

    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.session_id}>'


class AttendanceRejection(BaseModel):
    """Audit trail of hard-rejected attempts, kept outside the ledger."""

    __tablename__ = 'attendance_rejections'

    student_id = db.Column(db.String(64), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=True)
    distance_m = db.Column(db.Float, nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f'<AttendanceRejection {self.student_id}-{self.session_id} {self.status}>'


@event.listens_for(AttendanceRecord, 'before_update')
def _block_ledger_updates(mapper, connection, target):
    raise ImmutableRecordError(f"Attendance record {target.id} is immutable")


@event.listens_for(AttendanceRecord, 'before_delete')
def _block_ledger_deletes(mapper, connection, target):
    raise ImmutableRecordError(f"Attendance record {target.id} is immutable")
