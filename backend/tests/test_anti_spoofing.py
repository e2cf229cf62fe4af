"""Anti-spoofing signal tests."""
from datetime import timedelta

from attendance import db
from attendance.services.anti_spoofing_service import AntiSpoofingEvaluator, SpoofingAssessment
from attendance.services.checkin_types import OutcomeStatus
from conftest import SCENARIO_NOW, build_attempt


def _remember(attempt, session, now=SCENARIO_NOW):
    AntiSpoofingEvaluator.record_signal(attempt, session, OutcomeStatus.SUCCESS, now)
    db.session.commit()


def test_clean_attempt_scores_zero(geofenced_session):
    assessment = AntiSpoofingEvaluator().assess(build_attempt(geofenced_session), geofenced_session,
                                                SCENARIO_NOW)
    assert assessment.score == 0
    assert assessment.notes_text is None


def test_shared_device(geofenced_session):
    evaluator = AntiSpoofingEvaluator()
    _remember(build_attempt(geofenced_session, student_id='STU0002'), geofenced_session)
    _remember(build_attempt(geofenced_session, student_id='STU0003'), geofenced_session)

    assessment = evaluator.assess(build_attempt(geofenced_session), geofenced_session,
                                  SCENARIO_NOW + timedelta(minutes=1))

    assert 'device_shared' in assessment.signals
    assert '2 other student(s)' in assessment.notes_text


def test_shared_device_outside_window_ignored(geofenced_session):
    _remember(build_attempt(geofenced_session, student_id='STU0002'), geofenced_session,
              now=SCENARIO_NOW - timedelta(hours=2))

    assessment = AntiSpoofingEvaluator().assess(build_attempt(geofenced_session), geofenced_session,
                                                SCENARIO_NOW)
    assert 'device_shared' not in assessment.signals


def test_multiple_source_ips(geofenced_session):
    _remember(build_attempt(geofenced_session, source_ip='10.0.0.2'), geofenced_session)
    _remember(build_attempt(geofenced_session, source_ip='10.0.0.3'), geofenced_session)

    assessment = AntiSpoofingEvaluator(max_source_ips=2).assess(
        build_attempt(geofenced_session, source_ip='10.0.0.4'), geofenced_session, SCENARIO_NOW
    )
    assert 'multiple_source_ips' in assessment.signals


def test_clock_drift_and_missing_fields(geofenced_session):
    drifted = build_attempt(geofenced_session, client_timestamp=SCENARIO_NOW + timedelta(minutes=5))
    bare = build_attempt(geofenced_session, fingerprint=None, client_timestamp=None)
    evaluator = AntiSpoofingEvaluator()

    assert evaluator.assess(drifted, geofenced_session, SCENARIO_NOW).signals == ['clock_drift']
    assert evaluator.assess(bare, geofenced_session, SCENARIO_NOW).signals == [
        'missing_device_fingerprint', 'missing_client_timestamp'
    ]


def test_score_is_capped():
    assessment = SpoofingAssessment()
    for signal in ('device_shared', 'multiple_source_ips', 'clock_drift', 'mock_location_flag'):
        assessment.add(signal, signal)
    assert assessment.score == 1.0
    assert len(assessment.notes) == 4
