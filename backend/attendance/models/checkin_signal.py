"""Per-attempt device and location telemetry."""
from attendance import db
from attendance.models.base import BaseModel


class CheckinSignal(BaseModel):
    """Device, network and position data observed on one check-in attempt.

    Feeds the anti-spoofing windows and doubles as student location history.
    """

    __tablename__ = 'checkin_signals'
    __table_args__ = (
        db.Index('ix_checkin_signals_fingerprint', 'device_fingerprint', 'created_at'),
        db.Index('ix_checkin_signals_student', 'student_id', 'created_at'),
    )

    student_id = db.Column(db.String(64), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False)
    unit_id = db.Column(db.String(64), nullable=False)
    outcome = db.Column(db.String(32), nullable=False)

    device_fingerprint = db.Column(db.String(255), nullable=True)
    platform = db.Column(db.String(50), nullable=True)
    source_ip = db.Column(db.String(64), nullable=True)
    client_timestamp = db.Column(db.DateTime, nullable=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy_m = db.Column(db.Float, nullable=True)
    is_mock = db.Column(db.Boolean, default=False, nullable=False)
