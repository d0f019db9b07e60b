"""Test student check-in endpoints."""
import json

import pytest

NEAR = {'latitude': 14.5996, 'longitude': 120.9842, 'accuracy': 10}
FAR = {'latitude': 14.6005, 'longitude': 120.9842, 'accuracy': 10}


@pytest.fixture
def event(make_event, clock):
    return make_event()


@pytest.fixture
def qr_data(controller, event):
    return controller.issuer.encode(controller.open_token(event.id))


def checkin(client, headers, qr_data, location=NEAR, **extra):
    body = {
        'qr_data': qr_data,
        'studentName': 'Juan Dela Cruz',
        'yearLevel': '2',
        'block': '1',
        'course': 'BSIT',
        'gender': 'Male'
    }
    if location is not None:
        body['location'] = location
    body.update(extra)
    return client.post('/api/attendance/checkin', headers=headers, json=body)


def test_health_check(client):
    """Test attendance health endpoint."""
    response = client.get('/api/attendance/health')
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['message'] == 'Attendance service is running'


def test_checkin_requires_student(client, qr_data, admin_headers):
    response = checkin(client, admin_headers, qr_data)
    assert response.status_code == 403


def test_checkin_requires_fields(client, student_headers):
    response = client.post('/api/attendance/checkin', headers=student_headers, json={})

    assert response.status_code == 400
    assert json.loads(response.data)['message'] == 'Missing required field: qr_data'


def test_checkin_success(client, qr_data, student_headers, clock):
    """A student inside the geofence is recorded once."""
    clock.advance(minutes=15)
    response = checkin(client, student_headers, qr_data)

    assert response.status_code == 201
    data = json.loads(response.data)['data']
    assert data['studentID'] == '2021-00123'
    assert data['studentName'] == 'Juan Dela Cruz'
    assert data['timestamp'] == '2025-06-01T08:15:00.000Z'
    assert data['location']['isWithinRadius'] is True
    assert data['location']['distanceMeters'] == pytest.approx(11.1, abs=0.1)


def test_duplicate_checkin(client, qr_data, student_headers):
    checkin(client, student_headers, qr_data)
    response = checkin(client, student_headers, qr_data)

    assert response.status_code == 409
    assert json.loads(response.data)['kind'] == 'DuplicateAttendance'


def test_checkin_outside_radius(client, qr_data, student_headers):
    response = checkin(client, student_headers, qr_data, location=FAR)

    assert response.status_code == 403
    data = json.loads(response.data)
    assert data['kind'] == 'OutsideGeofence'
    assert '111m' in data['message']


def test_checkin_without_location(client, qr_data, student_headers):
    response = checkin(client, student_headers, qr_data, location=None)
    assert response.status_code == 422


def test_checkin_location_error(client, qr_data, student_headers):
    response = checkin(client, student_headers, qr_data, location=None,
                       location_error='Location permission denied')

    assert response.status_code == 422
    data = json.loads(response.data)
    assert data['kind'] == 'LocationUnavailable'
    assert data['message'] == 'Location permission denied'


def test_checkin_invalid_location(client, qr_data, student_headers):
    response = checkin(client, student_headers, qr_data,
                       location={'latitude': 95, 'longitude': 120.9842})

    assert response.status_code == 400
    assert json.loads(response.data)['kind'] == 'InvalidCoordinates'


def test_checkin_after_expiration(client, controller, event, student_headers, clock):
    controller.set_manual_expiration(event.id, '2025-06-01T09:00:00Z')
    qr_data = controller.issuer.encode(controller.open_token(event.id))
    clock.advance(minutes=61)

    response = checkin(client, student_headers, qr_data)

    assert response.status_code == 410
    assert json.loads(response.data)['kind'] == 'SessionExpired'


def test_checkin_after_stop(client, controller, event, qr_data, student_headers):
    controller.stop_attendance(event.id)
    response = checkin(client, student_headers, qr_data)
    assert response.status_code == 410


def test_checkin_tampered_code(client, qr_data, student_headers):
    payload = json.loads(qr_data)
    payload['eventLocation']['radius'] = 10000
    response = checkin(client, student_headers, json.dumps(payload), location=FAR)

    assert response.status_code == 400
    assert json.loads(response.data)['kind'] == 'InvalidToken'


def test_checkin_event_without_geofence(client, controller, make_event, student_headers, clock):
    event = make_event('Open Forum', geofence=None)
    qr_data = controller.issuer.encode(controller.open_token(event.id))

    response = checkin(client, student_headers, qr_data, location=None)

    assert response.status_code == 201
    assert 'location' not in json.loads(response.data)['data']


def test_verify_location(client, event, student_headers):
    response = client.post('/api/attendance/verify-location', headers=student_headers,
                           json={'event_id': event.id, 'location': FAR})

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['message'] == 'You are outside the event radius'
    assert data['data']['verification_required'] is True
    assert data['data']['is_within_radius'] is False
    assert data['data']['distance_meters'] == pytest.approx(111.2, abs=0.5)


def test_verify_location_without_geofence(client, make_event, student_headers, clock):
    event = make_event(geofence=None)
    response = client.post('/api/attendance/verify-location', headers=student_headers,
                           json={'event_id': event.id, 'location': NEAR})

    assert response.status_code == 200
    assert json.loads(response.data)['data'] == {'verification_required': False}


def test_verify_location_validation(client, event, student_headers):
    response = client.post('/api/attendance/verify-location', headers=student_headers,
                           json={'event_id': event.id})
    assert response.status_code == 400

    response = client.post('/api/attendance/verify-location', headers=student_headers,
                           json={'event_id': 'abc', 'location': NEAR})
    assert response.status_code == 400


def test_location_error_ignored_without_geofence(client, controller, make_event, student_headers, clock):
    """A device without a fix can still check in where no location is required."""
    event = make_event('Open Forum', geofence=None)
    qr_data = controller.issuer.encode(controller.open_token(event.id))

    response = checkin(client, student_headers, qr_data, location=None,
                       location_error='Location permission denied')

    assert response.status_code == 201


def test_checkin_after_reopen_needs_current_code(client, controller, event, qr_data, student_headers, clock):
    """A code shown before a stop does not work once the session is reopened."""
    controller.stop_attendance(event.id)
    controller.set_manual_expiration(event.id, '2025-06-01T12:00:00Z')

    response = checkin(client, student_headers, qr_data)

    assert response.status_code == 400
    assert json.loads(response.data)['kind'] == 'InvalidToken'


@pytest.mark.parametrize('path', ['/api/attendance/checkin', '/api/attendance/verify-location'])
def test_body_must_be_an_object(client, student_headers, path):
    response = client.post(path, headers=student_headers, json=['qr_data'])

    assert response.status_code == 400
    assert json.loads(response.data)['message'] == 'Request body must be a JSON object'
