"""Models package with all models."""
from .base import BaseModel
from .session import ClassSession
from .enrollment import Enrollment, EnrollmentProjection, EnrollmentStatus
from .attendance import AttendanceRecord, AttendanceRejection
from .checkin_signal import CheckinSignal
from .attempt_counter import ProofAttemptCounter

__all__ = [
    'BaseModel', 'ClassSession',
    'Enrollment', 'EnrollmentProjection', 'EnrollmentStatus',
    'AttendanceRecord', 'AttendanceRejection',
    'CheckinSignal', 'ProofAttemptCounter'
]
