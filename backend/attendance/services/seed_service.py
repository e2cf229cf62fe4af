"""Database seeding service for demo data."""
from datetime import timedelta
from typing import Dict

from attendance import db
from attendance.models.enrollment import EnrollmentStatus
from attendance.services.checkin_types import AcademicPeriod
from attendance.services.enrollment_service import EnrollmentIndex
from attendance.services.session_service import SessionService
from attendance.utils.helpers import utcnow


class SeedService:
    """Service to seed database with demo data."""

    DEMO_UNIT = 'CSC-201'
    DEMO_LECTURER = 'LEC-001'
    DEMO_PERIOD = AcademicPeriod(year='2025/2026', semester='1')
    DEMO_CENTRE = (-1.2921, 36.8219)

    @staticmethod
    def seed_all() -> Dict:
        """Seed one live session and its enrollments."""
        session = SeedService.seed_session()
        enrollments = SeedService.seed_enrollments()
        return {'session_id': session.id, 'enrollments': enrollments}

    @staticmethod
    def seed_session():
        now = utcnow()
        return SessionService().create_session(
            unit_id=SeedService.DEMO_UNIT,
            lecturer_id=SeedService.DEMO_LECTURER,
            start_time=now - timedelta(minutes=5),
            end_time=now + timedelta(hours=1),
            academic_year=SeedService.DEMO_PERIOD.year,
            semester=SeedService.DEMO_PERIOD.semester,
            latitude=SeedService.DEMO_CENTRE[0],
            longitude=SeedService.DEMO_CENTRE[1],
            radius_m=50,
            location_required=True,
            now=now
        )

    @staticmethod
    def seed_enrollments(count: int = 10) -> int:
        index = EnrollmentIndex()
        for number in range(1, count + 1):
            # Every fifth student is still pending approval
            status = EnrollmentStatus.PENDING if number % 5 == 0 else EnrollmentStatus.ACTIVE
            index.register(f'STU{number:04d}', SeedService.DEMO_UNIT, SeedService.DEMO_PERIOD, status)
        db.session.commit()
        return count
