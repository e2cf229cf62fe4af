"""Enrollment authority and projection reconciliation."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

from sqlalchemy import and_, exists
from sqlalchemy.exc import OperationalError

from attendance import db
from attendance.models.enrollment import Enrollment, EnrollmentProjection, EnrollmentStatus
from attendance.services.checkin_types import AcademicPeriod
from attendance.utils.errors import ValidationError
from attendance.utils.helpers import retry_call, utcnow

logger = logging.getLogger(__name__)


class MembershipStatus(Enum):
    """Answer to "may this student be marked for this unit and period?"."""
    ACTIVE = "Active"
    NOT_ENROLLED = "NotEnrolled"
    AMBIGUOUS = "Ambiguous"


def _same_tuple():
    return and_(
        Enrollment.student_id == EnrollmentProjection.student_id,
        Enrollment.unit_id == EnrollmentProjection.unit_id,
        Enrollment.academic_year == EnrollmentProjection.academic_year,
        Enrollment.semester == EnrollmentProjection.semester
    )


@dataclass
class ReconciliationReport:
    inserted: int = 0
    retired: int = 0
    orphaned: int = 0


class EnrollmentIndex:
    """Primary enrollment table plus an eventually consistent projection.

    Go/no-go decisions always read the primary table. The projection only
    serves listings and is brought up to date by reconcile(), which runs
    synchronously after every primary mutation made through this class.
    """

    def __init__(self, read_attempts: int = 3, backoff_seconds: float = 0.05):
        self.read_attempts = read_attempts
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_config(cls, config) -> 'EnrollmentIndex':
        return cls(
            read_attempts=config.get('STORE_READ_ATTEMPTS', 3),
            backoff_seconds=config.get('STORE_RETRY_BACKOFF_SECONDS', 0.05)
        )

    # =================== DECISION ===================

    def is_enrolled(self, student_id: str, unit_id: str, period: AcademicPeriod) -> MembershipStatus:
        """Resolve membership from the primary table only."""
        def query():
            return Enrollment.query.filter_by(
                student_id=student_id,
                unit_id=unit_id,
                academic_year=period.year,
                semester=period.semester,
                status=EnrollmentStatus.ACTIVE
            ).limit(2).count()

        active = retry_call(query, self.read_attempts, (OperationalError,),
                            self.backoff_seconds, on_retry=db.session.rollback)

        if active == 0:
            return MembershipStatus.NOT_ENROLLED
        if active > 1:
            logger.error(
                "Data integrity: %d active enrollments for student=%s unit=%s period=%s/%s",
                active, student_id, unit_id, period.year, period.semester
            )
            return MembershipStatus.AMBIGUOUS
        return MembershipStatus.ACTIVE

    # =================== PRIMARY MUTATIONS ===================

    def register(
        self,
        student_id: str,
        unit_id: str,
        period: AcademicPeriod,
        status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    ) -> Enrollment:
        """Insert a primary enrollment row and reconcile. Caller commits."""
        if not student_id or not unit_id or not period.year or not period.semester:
            raise ValidationError("student_id, unit_id, year and semester are required")

        enrollment = Enrollment(
            student_id=student_id,
            unit_id=unit_id,
            academic_year=period.year,
            semester=period.semester,
            status=status,
            registered_at=utcnow()
        )
        db.session.add(enrollment)
        db.session.flush()
        self.reconcile()
        return enrollment

    def set_status(self, enrollment_id: int, status: EnrollmentStatus) -> Enrollment:
        """Change a primary row's status and reconcile. Caller commits."""
        enrollment = db.session.get(Enrollment, enrollment_id)
        if enrollment is None:
            raise ValidationError(f"Enrollment {enrollment_id} not found")

        enrollment.status = status
        db.session.flush()
        self.reconcile()
        return enrollment

    # =================== PROJECTION ===================

    def reconcile(self) -> ReconciliationReport:
        """Idempotently align the projection with the primary table.

        Inserts active primary tuples missing from the projection and retires
        projection rows whose primary tuple exists but is no longer active.
        Rows with no primary counterpart at all are reported, not deleted.
        """
        report = ReconciliationReport()

        missing = db.session.query(Enrollment).filter(
            Enrollment.status == EnrollmentStatus.ACTIVE,
            ~exists().where(_same_tuple())
        ).all()

        seen = set()
        for enrollment in missing:
            key = (enrollment.student_id, enrollment.unit_id,
                   enrollment.academic_year, enrollment.semester)
            if key in seen:
                continue
            seen.add(key)
            db.session.add(EnrollmentProjection(
                student_id=enrollment.student_id,
                unit_id=enrollment.unit_id,
                academic_year=enrollment.academic_year,
                semester=enrollment.semester,
                registered_at=enrollment.registered_at
            ))
            report.inserted += 1

        still_active = exists().where(and_(
            _same_tuple(), Enrollment.status == EnrollmentStatus.ACTIVE
        ))
        has_primary = exists().where(_same_tuple())

        retired = db.session.query(EnrollmentProjection).filter(has_primary, ~still_active).all()
        for row in retired:
            db.session.delete(row)
        report.retired = len(retired)

        orphans = db.session.query(EnrollmentProjection).filter(~has_primary).all()
        for row in orphans:
            logger.warning(
                "Projection row without primary enrollment: student=%s unit=%s period=%s/%s",
                row.student_id, row.unit_id, row.academic_year, row.semester
            )
        report.orphaned = len(orphans)

        db.session.flush()
        return report

    def list_unit_students(self, unit_id: str, period: AcademicPeriod) -> List[str]:
        """Student ids registered for a unit, read from the projection."""
        rows = EnrollmentProjection.query.filter_by(
            unit_id=unit_id,
            academic_year=period.year,
            semester=period.semester
        ).order_by(EnrollmentProjection.student_id).all()
        return [row.student_id for row in rows]
