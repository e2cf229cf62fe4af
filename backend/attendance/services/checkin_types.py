"""Value types flowing through the check-in decision pipeline."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ProofType(Enum):
    """How the student proves they observed the live session."""
    TOKEN = "TOKEN"
    BACKUP_KEY = "BACKUP_KEY"


class OutcomeStatus(Enum):
    """Terminal outcome of one check-in attempt."""
    SUCCESS = "SUCCESS"
    SESSION_NOT_STARTED = "SESSION_NOT_STARTED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_PROOF = "INVALID_PROOF"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_ENROLLED = "NOT_ENROLLED"
    AMBIGUOUS_ENROLLMENT = "AMBIGUOUS_ENROLLMENT"
    ALREADY_MARKED = "ALREADY_MARKED"
    OUTSIDE_RADIUS = "OUTSIDE_RADIUS"
    INVALID_LOCATION = "INVALID_LOCATION"
    MOCK_LOCATION_DETECTED = "MOCK_LOCATION_DETECTED"

    @property
    def is_rejection(self) -> bool:
        return self not in (OutcomeStatus.SUCCESS, OutcomeStatus.ALREADY_MARKED)


@dataclass(frozen=True)
class AcademicPeriod:
    """Academic year and semester a session or enrollment belongs to."""
    year: str
    semester: str


@dataclass(frozen=True)
class Proof:
    type: ProofType
    value: str


@dataclass(frozen=True)
class LocationFix:
    """Device-reported position. timed_out marks a failed client acquisition."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy_m: Optional[float] = None
    is_mock: bool = False
    timed_out: bool = False


@dataclass(frozen=True)
class DeviceInfo:
    fingerprint: Optional[str] = None
    platform: Optional[str] = None
    client_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CheckinAttempt:
    """Ephemeral check-in input. Never persisted as-is."""
    student_id: str
    session_id: int
    proof: Proof
    location: Optional[LocationFix] = None
    device: DeviceInfo = field(default_factory=DeviceInfo)
    source_ip: Optional[str] = None


@dataclass
class AttendanceOutcome:
    """Structured result returned for every attempt."""
    status: OutcomeStatus
    message: str
    distance_m: Optional[float] = None
    attendance_record_id: Optional[int] = None
    verification_notes: Optional[str] = None
    suspicion_score: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'status': self.status.value,
            'message': self.message,
            'distance_m': round(self.distance_m, 2) if self.distance_m is not None else None,
            'attendance_record_id': self.attendance_record_id,
            'verification_notes': self.verification_notes,
            'suspicion_score': round(self.suspicion_score, 4)
        }
