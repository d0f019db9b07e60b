"""Test attendance token issuance, signing and caching."""
import json
from datetime import timedelta

import pytest

from campus_attendance.exceptions import InvalidExpiration, InvalidToken
from campus_attendance.services.event_store import EventSnapshot
from campus_attendance.services.geofence_service import Geofence
from campus_attendance.services.token_service import TokenCache, TokenService
from conftest import T0, FixedClock

GEOFENCE = Geofence(14.5995, 120.9842, 100)


def snapshot(qr_expiration=None, geofence=GEOFENCE, is_active=True, title='Campus Orientation',
             version=1):
    return EventSnapshot(
        id=7, title=title, location='Gymnasium', date='2025-06-01',
        geofence=geofence, qr_expiration=qr_expiration,
        is_active=is_active, version=version
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def issuer(clock):
    return TokenService('unit-test-secret', clock=clock)


def test_default_expiration_law(issuer):
    token = issuer.issue_token(snapshot())

    assert token.generated_at == T0
    assert token.expires_at == T0 + timedelta(hours=24)
    assert token.uses_manual_expiration is False
    assert token.event_id == '7'
    assert token.geofence == GEOFENCE


def test_manual_expiration_used(issuer):
    token = issuer.issue_token(snapshot(), '2025-06-01T10:30:00.000Z')

    assert token.expires_at == T0 + timedelta(hours=2, minutes=30)
    assert token.uses_manual_expiration is True


def test_stored_expiration_reused(issuer):
    stored = T0 + timedelta(hours=3)
    token = issuer.issue_token(snapshot(qr_expiration=stored))

    assert token.expires_at == stored
    assert token.uses_manual_expiration is True


@pytest.mark.parametrize('value', [
    'not a date',
    '',
    '2025-06-01T07:59:59Z',   # past
    '2025-06-01T08:00:00Z',   # exactly now
    12345,
])
def test_invalid_manual_expiration_rejected(issuer, value):
    with pytest.raises(InvalidExpiration):
        issuer.issue_token(snapshot(), value)


def test_invalid_manual_expiration_does_not_fall_back_to_stored(issuer):
    with pytest.raises(InvalidExpiration):
        issuer.issue_token(snapshot(qr_expiration=T0 + timedelta(hours=3)), 'yesterday')


def test_event_without_geofence(issuer):
    token = issuer.issue_token(snapshot(geofence=None))

    assert token.geofence is None
    assert 'eventLocation' not in token.to_payload()


def test_reissue_at_later_instant(issuer, clock):
    first = issuer.issue_token(snapshot())
    clock.advance(minutes=5)
    second = issuer.issue_token(snapshot())

    assert second.generated_at - first.generated_at == timedelta(minutes=5)
    assert second.expires_at - first.expires_at == timedelta(minutes=5)
    assert second.geofence == first.geofence


def test_token_is_immutable(issuer):
    token = issuer.issue_token(snapshot())
    with pytest.raises(AttributeError):
        token.expires_at = T0


def test_encoded_payload_contract(issuer):
    token = issuer.issue_token(snapshot())
    payload = json.loads(issuer.encode(token))

    assert payload['type'] == 'attendance'
    assert payload['eventId'] == '7'
    assert payload['eventVersion'] == 1
    assert payload['eventTitle'] == 'Campus Orientation'
    assert payload['generatedAt'] == '2025-06-01T08:00:00.000Z'
    assert payload['expiresAt'] == '2025-06-02T08:00:00.000Z'
    assert payload['usesManualExpiration'] is False
    assert payload['eventLocation'] == {'latitude': 14.5995, 'longitude': 120.9842, 'radius': 100.0}
    assert len(payload['signature']) == 32


def test_decode_restores_token(issuer):
    token = issuer.issue_token(snapshot(), '2025-06-01T12:00:00Z')
    assert issuer.decode(issuer.encode(token)) == token


def test_tampered_payload_rejected(issuer):
    payload = json.loads(issuer.encode(issuer.issue_token(snapshot())))
    payload['expiresAt'] = '2030-01-01T00:00:00.000Z'

    with pytest.raises(InvalidToken):
        issuer.decode(json.dumps(payload))


def test_payload_signed_with_other_secret_rejected(issuer, clock):
    foreign = TokenService('another-secret', clock=clock)
    qr_data = foreign.encode(foreign.issue_token(snapshot()))

    with pytest.raises(InvalidToken):
        issuer.decode(qr_data)


@pytest.mark.parametrize('qr_data', [
    'not json',
    '[]',
    json.dumps({'type': 'student', 'eventId': '7'}),
    json.dumps({'type': 'attendance', 'eventId': '7'}),
])
def test_malformed_payload_rejected(issuer, qr_data):
    with pytest.raises(InvalidToken):
        issuer.decode(qr_data)


def test_event_version_must_be_an_integer(issuer):
    payload = issuer.issue_token(snapshot()).to_payload()
    payload['eventVersion'] = '1'
    payload['signature'] = issuer.sign(payload)

    with pytest.raises(InvalidToken):
        issuer.decode(json.dumps(payload))


def test_render_qr_returns_png_data_uri(issuer):
    image = TokenService.render_qr(issuer.encode(issuer.issue_token(snapshot())))
    assert image.startswith('data:image/png;base64,')


def test_render_ascii_is_text(issuer):
    text = TokenService.render_ascii(issuer.encode(issuer.issue_token(snapshot())))
    assert text.strip()


def test_secret_required():
    with pytest.raises(ValueError):
        TokenService('')


class TestTokenCache:

    def test_same_inputs_reuse_token(self, issuer, clock):
        cache = TokenCache(issuer)
        first = cache.get_or_issue(snapshot())
        clock.advance(milliseconds=400)
        second = cache.get_or_issue(snapshot())

        assert second is first

    def test_changed_geofence_reissues(self, issuer, clock):
        cache = TokenCache(issuer)
        first = cache.get_or_issue(snapshot())
        clock.advance(seconds=1)
        second = cache.get_or_issue(snapshot(geofence=Geofence(14.5995, 120.9842, 150)))

        assert second is not first
        assert second.geofence.radius_meters == 150

    def test_changed_expiration_reissues(self, issuer):
        cache = TokenCache(issuer)
        first = cache.get_or_issue(snapshot())
        second = cache.get_or_issue(snapshot(qr_expiration=T0 + timedelta(hours=1)))

        assert second.uses_manual_expiration is True
        assert second.expires_at != first.expires_at

    def test_lapsed_default_token_is_reissued(self, issuer, clock):
        cache = TokenCache(issuer)
        first = cache.get_or_issue(snapshot())
        clock.advance(hours=25)
        second = cache.get_or_issue(snapshot())

        assert second is not first
        assert second.expires_at == clock.now + timedelta(hours=24)

    def test_lapsed_manual_token_is_kept(self, issuer, clock):
        cache = TokenCache(issuer)
        event = snapshot(qr_expiration=T0 + timedelta(hours=1))
        first = cache.get_or_issue(event)
        clock.advance(hours=2)

        assert cache.get_or_issue(event) is first

    def test_new_event_version_reissues(self, issuer):
        cache = TokenCache(issuer)
        first = cache.get_or_issue(snapshot())
        second = cache.get_or_issue(snapshot(version=2))

        assert second is not first
        assert second.event_version == 2
