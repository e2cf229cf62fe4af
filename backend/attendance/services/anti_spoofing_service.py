"""Advisory fraud signals attached to check-in outcomes.

Nothing here rejects an attempt. Shared devices and drifting phone clocks are
common on campus, so these signals only raise a suspicion score and leave
notes for the lecturer to review. Hard blocking is left to the mock-location
and radius checks of the geofence.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_

from attendance import db
from attendance.models.checkin_signal import CheckinSignal
from attendance.services.checkin_types import CheckinAttempt, OutcomeStatus

logger = logging.getLogger(__name__)

# Rule weights for the suspicion score
SIGNAL_WEIGHTS = {
    'device_shared': 0.40,
    'multiple_source_ips': 0.25,
    'clock_drift': 0.20,
    'missing_device_fingerprint': 0.10,
    'missing_client_timestamp': 0.05,
    'mock_location_flag': 0.50,
}


@dataclass
class SpoofingAssessment:
    """Suspicion score in [0, 1] plus human-readable notes."""
    score: float = 0.0
    signals: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def add(self, signal: str, note: str) -> None:
        self.signals.append(signal)
        self.notes.append(note)
        self.score = min(1.0, self.score + SIGNAL_WEIGHTS[signal])

    @property
    def notes_text(self) -> Optional[str]:
        return "; ".join(self.notes) if self.notes else None


class AntiSpoofingEvaluator:
    """Computes device-reuse, source-IP and clock-drift signals."""

    def __init__(
        self,
        device_window_seconds: int = 1800,
        ip_window_seconds: int = 300,
        max_source_ips: int = 2,
        max_clock_drift_seconds: int = 120
    ):
        self.device_window = timedelta(seconds=device_window_seconds)
        self.ip_window = timedelta(seconds=ip_window_seconds)
        self.max_source_ips = max_source_ips
        self.max_clock_drift = timedelta(seconds=max_clock_drift_seconds)

    @classmethod
    def from_config(cls, config) -> 'AntiSpoofingEvaluator':
        return cls(
            device_window_seconds=config.get('ANTI_SPOOFING_DEVICE_WINDOW_SECONDS', 1800),
            ip_window_seconds=config.get('ANTI_SPOOFING_IP_WINDOW_SECONDS', 300),
            max_source_ips=config.get('ANTI_SPOOFING_MAX_SOURCE_IPS', 2),
            max_clock_drift_seconds=config.get('ANTI_SPOOFING_MAX_CLOCK_DRIFT_SECONDS', 120)
        )

    def assess(self, attempt: CheckinAttempt, session, now: datetime) -> SpoofingAssessment:
        """Evaluate the attempt against recent signals. Read-only."""
        assessment = SpoofingAssessment()

        fingerprint = attempt.device.fingerprint
        if fingerprint:
            others = self.count_students_on_device(fingerprint, attempt.student_id, session, now)
            if others:
                assessment.add(
                    'device_shared',
                    f"Device used by {others} other student(s) for this unit in the last "
                    f"{int(self.device_window.total_seconds() // 60)} minutes"
                )
        else:
            assessment.add('missing_device_fingerprint', "No device fingerprint reported")

        if attempt.source_ip:
            ips = self.count_source_ips(attempt.student_id, attempt.source_ip, now)
            if ips > self.max_source_ips:
                assessment.add(
                    'multiple_source_ips',
                    f"{ips} distinct source IPs in the last "
                    f"{int(self.ip_window.total_seconds() // 60)} minutes"
                )

        client_timestamp = attempt.device.client_timestamp
        if client_timestamp is None:
            assessment.add('missing_client_timestamp', "Device did not report its clock")
        else:
            drift = abs(client_timestamp - now)
            if drift > self.max_clock_drift:
                assessment.add(
                    'clock_drift',
                    f"Device clock differs from server by {int(drift.total_seconds())} s"
                )

        if attempt.location is not None and attempt.location.is_mock:
            assessment.add('mock_location_flag', "Device reported a mock location provider")

        if assessment.signals:
            logger.info(
                "Suspicion %.2f for student %s on session %s: %s",
                assessment.score, attempt.student_id, session.id, ", ".join(assessment.signals)
            )
        return assessment

    def count_students_on_device(self, fingerprint: str, student_id: str, session, now: datetime) -> int:
        """Distinct other students seen on this device for the same session or unit."""
        return db.session.query(func.count(func.distinct(CheckinSignal.student_id))).filter(
            CheckinSignal.device_fingerprint == fingerprint,
            CheckinSignal.student_id != student_id,
            CheckinSignal.created_at >= now - self.device_window,
            or_(CheckinSignal.session_id == session.id, CheckinSignal.unit_id == session.unit_id)
        ).scalar() or 0

    def count_source_ips(self, student_id: str, source_ip: str, now: datetime) -> int:
        """Distinct source IPs for the student in the short window, this attempt included."""
        seen = {
            ip for (ip,) in db.session.query(CheckinSignal.source_ip).filter(
                CheckinSignal.student_id == student_id,
                CheckinSignal.source_ip.isnot(None),
                CheckinSignal.created_at >= now - self.ip_window
            ).distinct()
        }
        seen.add(source_ip)
        return len(seen)

    @staticmethod
    def record_signal(
        attempt: CheckinAttempt,
        session,
        outcome: OutcomeStatus,
        now: datetime
    ) -> CheckinSignal:
        """Add the attempt's telemetry to the current transaction."""
        location = attempt.location
        signal = CheckinSignal(
            student_id=attempt.student_id,
            session_id=session.id,
            unit_id=session.unit_id,
            outcome=outcome.value,
            device_fingerprint=attempt.device.fingerprint,
            platform=attempt.device.platform,
            source_ip=attempt.source_ip,
            client_timestamp=attempt.device.client_timestamp,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            accuracy_m=location.accuracy_m if location else None,
            is_mock=bool(location and location.is_mock),
            created_at=now,
            updated_at=now
        )
        db.session.add(signal)
        return signal
