"""CLI command tests."""
from attendance.models import ClassSession, EnrollmentProjection


def test_seed_demo_and_reconcile(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['seed-demo'])
    assert 'with 10 enrollments' in result.output
    assert ClassSession.query.count() == 1
    assert EnrollmentProjection.query.count() == 8

    result = runner.invoke(args=['reconcile-enrollments'])
    assert 'Inserted 0, retired 0, orphaned 0' in result.output


def test_refresh_session_flags(app):
    runner = app.test_cli_runner()
    runner.invoke(args=['seed-demo'])

    result = runner.invoke(args=['refresh-session-flags'])
    assert 'Updated 0 sessions.' in result.output
