"""HTTP API tests."""
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from attendance import db
from attendance.utils.helpers import utcnow
from conftest import PERIOD, UNIT, enroll_student


def _create_session(client, **overrides):
    now = utcnow()
    payload = {
        'unit_id': UNIT,
        'lecturer_id': 'LEC-001',
        'start_time': (now - timedelta(minutes=5)).isoformat() + 'Z',
        'end_time': (now + timedelta(hours=1)).isoformat() + 'Z',
        'academic_year': PERIOD.year,
        'semester': PERIOD.semester,
        'latitude': 0.0,
        'longitude': 0.0,
        'radius_m': 50,
        'location_required': True,
    }
    payload.update(overrides)
    return client.post('/api/sessions', json=payload)


def _checkin_payload(session, **overrides):
    payload = {
        'student_id': 'STU0001',
        'session_id': session['id'],
        'proof': {'type': 'token', 'value': session['token']},
        'location': {'lat': 0.0, 'lon': 0.0003, 'accuracy_m': 8},
        'device': {'fingerprint': 'device-1', 'platform': 'android',
                   'client_timestamp': utcnow().isoformat() + 'Z'},
    }
    payload.update(overrides)
    return payload


def test_health(client):
    assert client.get('/health').get_json()['status'] == 'healthy'
    assert client.get('/api/attendance/health').status_code == 200


def test_create_session(client):
    response = _create_session(client)

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['is_active'] is True
    assert data['token'] and data['backup_key']


def test_create_session_rejects_bad_radius(client):
    response = _create_session(client, radius_m=500)
    assert response.status_code == 400
    assert response.get_json()['error'] is True


def test_create_session_requires_fields(client):
    response = client.post('/api/sessions', json={'unit_id': UNIT})
    assert response.status_code == 400
    assert 'lecturer_id is required' in response.get_json()['message']


def test_checkin_flow(client):
    session = _create_session(client).get_json()['data']
    enroll_student()

    response = client.post('/api/attendance/checkin', json=_checkin_payload(session))
    assert response.status_code == 200
    body = response.get_json()
    assert body['data']['status'] == 'SUCCESS'
    assert body['data']['distance_m'] == 33.36

    again = client.post('/api/attendance/checkin', json=_checkin_payload(session)).get_json()
    assert again['data']['status'] == 'ALREADY_MARKED'
    assert again['data']['attendance_record_id'] == body['data']['attendance_record_id']

    records = client.get(f"/api/attendance/sessions/{session['id']}/records").get_json()['data']
    assert records['total_present'] == 1
    assert records['records'][0]['student_id'] == 'STU0001'


def test_rejection_is_still_200(client):
    session = _create_session(client).get_json()['data']

    response = client.post('/api/attendance/checkin', json=_checkin_payload(session))
    assert response.status_code == 200
    assert response.get_json()['data']['status'] == 'NOT_ENROLLED'

    records = client.get(
        f"/api/attendance/sessions/{session['id']}/records?include_rejections=true"
    ).get_json()['data']
    assert records['total_present'] == 0
    assert [r['status'] for r in records['rejections']] == ['NOT_ENROLLED']


def test_checkin_malformed(client):
    session = _create_session(client).get_json()['data']

    assert client.post('/api/attendance/checkin', data='nope').status_code == 400
    bad_proof = _checkin_payload(session, proof={'type': 'PIN', 'value': '1'})
    assert client.post('/api/attendance/checkin', json=bad_proof).status_code == 400
    bad_location = _checkin_payload(session, location={'lat': 'north'})
    assert client.post('/api/attendance/checkin', json=bad_location).status_code == 400


def test_checkin_unknown_session(client):
    payload = {'student_id': 'STU0001', 'session_id': 999, 'proof': {'type': 'TOKEN', 'value': 'x'}}

    response = client.post('/api/attendance/checkin', json=payload)
    assert response.status_code == 404
    assert client.get('/api/attendance/sessions/999/records').status_code == 404


def test_update_and_list_active(client):
    session = _create_session(client).get_json()['data']

    listed = client.get('/api/sessions/active').get_json()['data']
    assert listed['count'] == 1
    assert 'token' not in listed['sessions'][0]

    future = (utcnow() + timedelta(days=1)).isoformat()
    response = client.patch(f"/api/sessions/{session['id']}", json={
        'start_time': future,
        'end_time': (utcnow() + timedelta(days=1, hours=1)).isoformat(),
    })
    assert response.status_code == 200
    assert response.get_json()['data']['is_active'] is False
    assert client.get('/api/sessions/active').get_json()['data']['count'] == 0

    bad = client.patch(f"/api/sessions/{session['id']}", json={'radius_m': 0})
    assert bad.status_code == 400


def test_rotate_token(client):
    session = _create_session(client).get_json()['data']

    response = client.post(f"/api/sessions/{session['id']}/token")

    data = response.get_json()['data']
    assert response.status_code == 200
    assert data['token'] != session['token']
    assert data['qr_image'].startswith('data:image/png;base64,')


def test_checkin_rejects_non_finite_and_out_of_range_coordinates(client):
    session = _create_session(client).get_json()['data']
    enroll_student()

    for location in ({'lat': float('inf'), 'lon': 0.0, 'accuracy_m': 5},
                     {'lat': 0.0, 'lon': 0.0, 'accuracy_m': float('nan')},
                     {'lat': 91.0, 'lon': 0.0, 'accuracy_m': 5},
                     {'lat': 0.0, 'lon': -190.0, 'accuracy_m': 5}):
        response = client.post('/api/attendance/checkin',
                               json=_checkin_payload(session, location=location))
        assert response.status_code == 400
        assert response.get_json()['error'] is True


def test_checkin_location_flags_must_be_booleans(client):
    session = _create_session(client).get_json()['data']
    enroll_student()

    for flag in ('is_mock', 'timed_out'):
        location = {'lat': 0.0, 'lon': 0.0003, 'accuracy_m': 5, flag: 'false'}
        response = client.post('/api/attendance/checkin',
                               json=_checkin_payload(session, location=location))
        assert response.status_code == 400
        assert f'location.{flag} must be a boolean' in response.get_json()['message']

    location = {'lat': 0.0, 'lon': 0.0003, 'accuracy_m': 5, 'is_mock': False, 'timed_out': False}
    response = client.post('/api/attendance/checkin', json=_checkin_payload(session, location=location))
    assert response.get_json()['data']['status'] == 'SUCCESS'


def test_checkin_store_outage_is_503(client, monkeypatch):
    session = _create_session(client).get_json()['data']

    def unavailable(*args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('database is locked'))

    monkeypatch.setattr(db.session, 'get', unavailable)
    response = client.post('/api/attendance/checkin', json=_checkin_payload(session))

    assert response.status_code == 503
    body = response.get_json()
    assert body['error'] is True
    assert body['status_code'] == 503
    assert 'retry' in body['message']
