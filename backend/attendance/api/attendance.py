"""Attendance API endpoints."""
from flask import Blueprint, current_app, request

from attendance import limiter
from attendance.services.ledger_service import AttendanceLedger
from attendance.services.pipeline_service import AttendanceDecisionPipeline
from attendance.services.session_service import SessionService
from attendance.utils.helpers import success_response
from attendance.utils.validators import Validator

attendance_bp = Blueprint('attendance', __name__)


def _checkin_limit():
    return current_app.config.get('CHECKIN_RATE_LIMIT', '30 per minute')


@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')


@attendance_bp.route('/checkin', methods=['POST'])
@limiter.limit(_checkin_limit)
def check_in():
    """Run one check-in attempt through the decision pipeline.

    Every business outcome, accepted or rejected, is returned with HTTP 200.
    """
    attempt = Validator.parse_checkin_attempt(
        request.get_json(silent=True),
        source_ip=request.remote_addr
    )

    pipeline = AttendanceDecisionPipeline.from_config(current_app.config)
    outcome = pipeline.process(attempt)

    return success_response(data=outcome.to_dict(), message=outcome.message)


@attendance_bp.route('/sessions/<int:session_id>/records', methods=['GET'])
def session_records(session_id):
    """List verified attendance for a session."""
    SessionService.from_config(current_app.config).get_session(session_id)

    records = [record.to_dict() for record in AttendanceLedger.records_for_session(session_id)]
    data = {'session_id': session_id, 'records': records, 'total_present': len(records)}

    if request.args.get('include_rejections', '').lower() in ('1', 'true', 'yes'):
        data['rejections'] = [
            rejection.to_dict() for rejection in AttendanceLedger.rejections_for_session(session_id)
        ]

    return success_response(data=data)
