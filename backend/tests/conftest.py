"""Shared fixtures for the check-in test suite."""
from datetime import datetime

import pytest

from attendance import create_app, db
from attendance.models.enrollment import EnrollmentStatus
from attendance.services.checkin_types import (
    AcademicPeriod, CheckinAttempt, DeviceInfo, LocationFix, Proof, ProofType,
)
from attendance.services.enrollment_service import EnrollmentIndex
from attendance.services.pipeline_service import AttendanceDecisionPipeline
from attendance.services.session_service import SessionService

WINDOW_START = datetime(2025, 3, 10, 10, 0)
WINDOW_END = datetime(2025, 3, 10, 11, 0)
SCENARIO_NOW = datetime(2025, 3, 10, 10, 15)
PERIOD = AcademicPeriod(year='2024/2025', semester='2')
UNIT = 'CSC-301'
STUDENT = 'STU0001'


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def build_session(**overrides):
    """Create a 10:00-11:00 session; the token is issued at 10:15."""
    options = dict(
        unit_id=UNIT,
        lecturer_id='LEC-001',
        start_time=WINDOW_START,
        end_time=WINDOW_END,
        academic_year=PERIOD.year,
        semester=PERIOD.semester,
        latitude=0.0,
        longitude=0.0,
        radius_m=50,
        location_required=True,
        now=SCENARIO_NOW
    )
    options.update(overrides)
    return SessionService().create_session(**options)


def enroll_student(student_id=STUDENT, unit_id=UNIT, period=PERIOD, status=EnrollmentStatus.ACTIVE):
    enrollment = EnrollmentIndex().register(student_id, unit_id, period, status)
    db.session.commit()
    return enrollment


def build_attempt(
    session,
    student_id=STUDENT,
    lat=0.0,
    lon=0.0003,
    accuracy=10.0,
    is_mock=False,
    proof=None,
    location=True,
    timed_out=False,
    fingerprint='device-1',
    client_timestamp=SCENARIO_NOW,
    source_ip='10.0.0.1'
):
    location_fix = None
    if location:
        location_fix = LocationFix(
            latitude=lat, longitude=lon, accuracy_m=accuracy,
            is_mock=is_mock, timed_out=timed_out
        )
    return CheckinAttempt(
        student_id=student_id,
        session_id=session.id,
        proof=proof or Proof(ProofType.TOKEN, session.token),
        location=location_fix,
        device=DeviceInfo(fingerprint=fingerprint, platform='android',
                          client_timestamp=client_timestamp),
        source_ip=source_ip
    )


@pytest.fixture
def geofenced_session(app):
    """Window 10:00-11:00, 50 m geofence centred on (0, 0)."""
    return build_session()


@pytest.fixture
def enrolled(app):
    return enroll_student()


@pytest.fixture
def pipeline(app):
    return AttendanceDecisionPipeline.from_config(app.config)

