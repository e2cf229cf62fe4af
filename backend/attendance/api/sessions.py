"""Session management endpoints for lecturers."""
from flask import Blueprint, current_app, request

from attendance.services.session_service import SessionService
from attendance.utils.errors import ValidationError
from attendance.utils.helpers import success_response
from attendance.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)


def _service() -> SessionService:
    return SessionService.from_config(current_app.config)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _geofence_fields(data: dict) -> dict:
    fields = {}
    for key in ('latitude', 'longitude', 'radius_m'):
        if key in data:
            fields[key] = Validator.parse_float(data[key], key)
    if 'location_required' in data:
        fields['location_required'] = Validator.parse_flag(data['location_required'], 'location_required')
    return fields


@sessions_bp.route('', methods=['POST'])
def create_session():
    """Create a session; the response carries its token and backup key."""
    data = _json_body()
    result = Validator.validate_required_fields(
        data, ['unit_id', 'lecturer_id', 'start_time', 'end_time', 'academic_year', 'semester']
    )
    if not result['is_valid']:
        raise ValidationError("; ".join(result['errors']))

    extra = data.get('extra')
    if extra is not None and not isinstance(extra, dict):
        raise ValidationError("extra must be an object")

    session = _service().create_session(
        unit_id=str(data['unit_id']),
        lecturer_id=str(data['lecturer_id']),
        start_time=Validator.parse_datetime(data['start_time'], 'start_time'),
        end_time=Validator.parse_datetime(data['end_time'], 'end_time'),
        academic_year=str(data['academic_year']),
        semester=str(data['semester']),
        extra=extra,
        **_geofence_fields(data)
    )
    return success_response(
        data=session.to_dict(include_secrets=True),
        message="Session created",
        status_code=201
    )


@sessions_bp.route('/<int:session_id>', methods=['PATCH'])
def update_session(session_id):
    """Edit a session's window, geofence or location requirement."""
    data = _json_body()
    changes = _geofence_fields(data)
    for key in ('start_time', 'end_time'):
        if key in data:
            changes[key] = Validator.parse_datetime(data[key], key)
    if 'extra' in data:
        if data['extra'] is not None and not isinstance(data['extra'], dict):
            raise ValidationError("extra must be an object")
        changes['extra'] = data['extra']

    session = _service().update_session(session_id, **changes)
    return success_response(data=session.to_dict(), message="Session updated")


@sessions_bp.route('/<int:session_id>/token', methods=['POST'])
def rotate_token(session_id):
    """Issue a fresh session token with its QR image."""
    return success_response(data=_service().rotate_token(session_id), message="Token issued")


@sessions_bp.route('/active', methods=['GET'])
def active_sessions():
    """List sessions whose cached flag says they are running."""
    sessions = [session.to_dict() for session in SessionService.list_active_sessions()]
    return success_response(data={'sessions': sessions, 'count': len(sessions)})
