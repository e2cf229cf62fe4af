"""Attendance decision pipeline.

One check-in attempt runs through an ordered, short-circuiting chain:

1. session lifecycle must be ACTIVE (trusted clock, never the cached flag)
2. proof of session (token, or rate-limited backup key)
3. enrollment in the session's unit and period, from the primary table
4. duplicate check against the ledger
5. geofence, when the session requires location
6. anti-spoofing signals, advisory, attached to every outcome
7. conditional ledger insert

Steps 1-2 run on their own. Steps 3-7 share one transaction; the ledger's
unique constraint settles concurrent attempts for the same student and session.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import DBAPIError, OperationalError

from attendance import db
from attendance.services.anti_spoofing_service import AntiSpoofingEvaluator, SpoofingAssessment
from attendance.services.checkin_types import AttendanceOutcome, CheckinAttempt, OutcomeStatus
from attendance.services.enrollment_service import EnrollmentIndex, MembershipStatus
from attendance.services.geofence_service import GeofenceValidator
from attendance.services.ledger_service import AttendanceLedger
from attendance.services.lifecycle_service import SessionLifecycleEvaluator, SessionState
from attendance.services.proof_service import ProofVerifier
from attendance.services.session_service import SessionService
from attendance.utils.errors import GeofenceConfigurationError, TransientStoreError
from attendance.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class AttendanceDecisionPipeline:
    """Turns a CheckinAttempt into an authoritative, idempotent outcome."""

    def __init__(
        self,
        sessions: SessionService = None,
        proofs: ProofVerifier = None,
        enrollments: EnrollmentIndex = None,
        geofence: GeofenceValidator = None,
        anti_spoofing: AntiSpoofingEvaluator = None,
        ledger: AttendanceLedger = None,
        clock: Callable[[], datetime] = utcnow,
        persist_rejections: bool = True,
        write_attempts: int = 3,
        backoff_seconds: float = 0.05
    ):
        self.sessions = sessions or SessionService()
        self.proofs = proofs or ProofVerifier()
        self.enrollments = enrollments or EnrollmentIndex()
        self.geofence = geofence or GeofenceValidator()
        self.anti_spoofing = anti_spoofing or AntiSpoofingEvaluator()
        self.ledger = ledger or AttendanceLedger()
        self.clock = clock
        self.persist_rejections = persist_rejections
        self.write_attempts = max(1, int(write_attempts))
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = utcnow) -> 'AttendanceDecisionPipeline':
        return cls(
            sessions=SessionService.from_config(config),
            proofs=ProofVerifier.from_config(config),
            enrollments=EnrollmentIndex.from_config(config),
            geofence=GeofenceValidator.from_config(config),
            anti_spoofing=AntiSpoofingEvaluator.from_config(config),
            clock=clock,
            persist_rejections=config.get('PERSIST_REJECTED_ATTEMPTS', True),
            write_attempts=config.get('LEDGER_WRITE_ATTEMPTS', 3),
            backoff_seconds=config.get('STORE_RETRY_BACKOFF_SECONDS', 0.05)
        )

    def process(self, attempt: CheckinAttempt, now: Optional[datetime] = None) -> AttendanceOutcome:
        """Decide one attempt.

        Raises SessionNotFoundError for an unknown session (input error) and
        TransientStoreError when the store fails in a way the caller must retry.
        Every business rule outcome comes back as an AttendanceOutcome.
        """
        now = now or self.clock()
        session = self.sessions.get_session(attempt.session_id)
        assessment = self.anti_spoofing.assess(attempt, session, now)

        # 1. Lifecycle, re-derived live
        state = SessionLifecycleEvaluator.evaluate(session, now)
        if bool(session.is_active) != (state is SessionState.ACTIVE):
            logger.debug("Cached is_active for session %s is stale", session.id)
        if state is SessionState.PENDING:
            return self._reject_early(attempt, session, now, assessment,
                                      OutcomeStatus.SESSION_NOT_STARTED, "Session has not started yet")
        if state is SessionState.EXPIRED:
            return self._reject_early(attempt, session, now, assessment,
                                      OutcomeStatus.SESSION_EXPIRED, "Session has ended")

        # 2. Proof of session
        proof = self.proofs.verify(session, attempt.student_id, attempt.proof, now)
        if not proof.accepted:
            return self._reject_early(attempt, session, now, assessment, proof.status, proof.message)

        # 3-7. One transaction
        return self._decide_with_retries(attempt, session, now, assessment)

    # =================== TRANSACTIONAL PART ===================

    def _decide_with_retries(self, attempt, session, now, assessment) -> AttendanceOutcome:
        for write_attempt in range(1, self.write_attempts + 1):
            try:
                outcome = self._decide(attempt, session, now, assessment)
            except OperationalError as exc:
                # Raised before commit, so nothing was applied
                db.session.rollback()
                if write_attempt == self.write_attempts:
                    logger.error("Check-in transaction failed for student=%s session=%s: %s",
                                 attempt.student_id, session.id, exc)
                    raise TransientStoreError("Attendance store is busy, please retry") from exc
                logger.warning("Retrying check-in transaction (%d/%d): %s",
                               write_attempt, self.write_attempts, exc)
                if self.backoff_seconds:
                    time.sleep(self.backoff_seconds * write_attempt)
                continue
            except TransientStoreError:
                db.session.rollback()
                raise

            try:
                db.session.commit()
            except DBAPIError as exc:
                # Commit outcome unknown; a retry will observe ALREADY_MARKED if it landed
                db.session.rollback()
                logger.error("Commit failed for student=%s session=%s: %s",
                             attempt.student_id, session.id, exc)
                raise TransientStoreError(
                    "Attendance may not have been recorded, please retry"
                ) from exc

            self._log_outcome(attempt, session, outcome)
            return outcome

    def _decide(self, attempt, session, now, assessment: SpoofingAssessment) -> AttendanceOutcome:
        # 3. Enrollment, primary source only
        membership = self.enrollments.is_enrolled(attempt.student_id, session.unit_id, session.period)
        if membership is MembershipStatus.NOT_ENROLLED:
            return self._reject(attempt, session, now, assessment, OutcomeStatus.NOT_ENROLLED,
                                "You are not enrolled in this unit for the current semester")
        if membership is MembershipStatus.AMBIGUOUS:
            logger.error("Data integrity: ambiguous enrollment blocked check-in for student=%s session=%s",
                         attempt.student_id, session.id)
            return self._reject(attempt, session, now, assessment, OutcomeStatus.AMBIGUOUS_ENROLLMENT,
                                "Your enrollment record needs attention, contact the registry")

        # 4. Duplicate
        existing = self.ledger.find_success(attempt.student_id, session.id)
        if existing is not None:
            return self._already_marked(attempt, session, now, assessment, existing)

        # 5. Geofence
        distance = None
        if session.location_required:
            try:
                result = self.geofence.verify(session, attempt.location)
            except GeofenceConfigurationError as exc:
                logger.error("Session %s geofence is misconfigured: %s", session.id, exc)
                return self._reject(attempt, session, now, assessment, OutcomeStatus.INVALID_LOCATION,
                                    "Location check is unavailable for this session")
            if not result.passed:
                return self._reject(attempt, session, now, assessment, result.status,
                                    result.message, distance_m=result.distance_m)
            distance = result.distance_m

        # 6-7. Anti-spoofing notes go onto the record; insert only if absent
        record, created = self.ledger.append_success(
            attempt.student_id, session.id, now,
            distance_m=distance,
            verification_notes=assessment.notes_text,
            suspicion_score=assessment.score
        )
        if not created:
            logger.info("Concurrent check-in lost the race for student=%s session=%s",
                        attempt.student_id, session.id)
            return self._already_marked(attempt, session, now, assessment, record)

        self.anti_spoofing.record_signal(attempt, session, OutcomeStatus.SUCCESS, now)
        return AttendanceOutcome(
            status=OutcomeStatus.SUCCESS,
            message="Attendance recorded",
            distance_m=distance,
            attendance_record_id=record.id,
            verification_notes=assessment.notes_text,
            suspicion_score=assessment.score
        )

    def _already_marked(self, attempt, session, now, assessment, record) -> AttendanceOutcome:
        self.anti_spoofing.record_signal(attempt, session, OutcomeStatus.ALREADY_MARKED, now)
        return AttendanceOutcome(
            status=OutcomeStatus.ALREADY_MARKED,
            message="Attendance was already recorded for this session",
            distance_m=record.distance_m,
            attendance_record_id=record.id,
            verification_notes=assessment.notes_text,
            suspicion_score=assessment.score
        )

    def _reject(self, attempt, session, now, assessment, status, message, distance_m=None) -> AttendanceOutcome:
        """Stage a hard rejection inside the current transaction."""
        self.anti_spoofing.record_signal(attempt, session, status, now)
        if self.persist_rejections:
            self.ledger.record_rejection(
                attempt.student_id, session.id, status, message, now,
                distance_m=distance_m, verification_notes=assessment.notes_text
            )
        return AttendanceOutcome(
            status=status,
            message=message,
            distance_m=distance_m,
            verification_notes=assessment.notes_text,
            suspicion_score=assessment.score
        )

    # =================== PRE-TRANSACTION REJECTIONS ===================

    def _reject_early(self, attempt, session, now, assessment, status, message) -> AttendanceOutcome:
        """Rejections from steps 1-2, written in their own short transaction."""
        outcome = self._reject(attempt, session, now, assessment, status, message)
        try:
            db.session.commit()
        except DBAPIError as exc:
            # Audit data only; the decision itself stands
            db.session.rollback()
            logger.warning("Could not store rejected attempt for student=%s session=%s: %s",
                           attempt.student_id, session.id, exc)
        self._log_outcome(attempt, session, outcome)
        return outcome

    @staticmethod
    def _log_outcome(attempt, session, outcome: AttendanceOutcome) -> None:
        logger.info("Check-in student=%s session=%s -> %s",
                    attempt.student_id, session.id, outcome.status.value)
