# backend/campus_attendance/services/token_service.py
"""Attendance token issuance, encoding and QR rendering."""
import base64
import hashlib
import hmac
import io
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, Optional, Tuple, Union

import qrcode

from campus_attendance.exceptions import InvalidCoordinates, InvalidExpiration, InvalidToken
from campus_attendance.services.geofence_service import Geofence
from campus_attendance.utils.helpers import parse_iso_datetime, to_iso, utc_now

logger = logging.getLogger(__name__)

TOKEN_TYPE = 'attendance'
DEFAULT_TOKEN_LIFETIME = timedelta(hours=24)
SIGNATURE_LENGTH = 32

REQUIRED_FIELDS = (
    'type', 'eventId', 'eventVersion', 'eventTitle', 'generatedAt',
    'expiresAt', 'usesManualExpiration', 'signature'
)


@dataclass(frozen=True)
class AttendanceToken:
    """Immutable payload rendered into the attendance QR code."""
    event_id: str
    event_title: str
    generated_at: datetime
    expires_at: datetime
    uses_manual_expiration: bool
    geofence: Optional[Geofence] = None
    event_version: int = 1

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def remaining(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape, without signature."""
        payload = {
            'type': TOKEN_TYPE,
            'eventId': self.event_id,
            'eventVersion': self.event_version,
            'eventTitle': self.event_title,
            'generatedAt': to_iso(self.generated_at),
            'expiresAt': to_iso(self.expires_at),
            'usesManualExpiration': self.uses_manual_expiration
        }
        if self.geofence is not None:
            payload['eventLocation'] = self.geofence.to_dict()
        return payload


class TokenService:
    """Service for attendance token operations."""

    def __init__(
        self,
        secret_key: str,
        clock: Callable[[], datetime] = utc_now,
        default_lifetime: timedelta = DEFAULT_TOKEN_LIFETIME
    ):
        if not secret_key:
            raise ValueError("A secret key is required to sign attendance tokens")
        self._secret = secret_key.encode()
        self.clock = clock
        self.default_lifetime = default_lifetime

    def issue_token(self, event, manual_expiration: Union[str, datetime, None] = None) -> AttendanceToken:
        """
        Build a token for ``event``.

        Expiration policy, in order: a valid future ``manual_expiration``;
        the event's stored ``qr_expiration``; ``generated_at`` plus the default
        lifetime. A bad ``manual_expiration`` raises InvalidExpiration rather
        than falling back.
        """
        generated_at = self.clock()

        if manual_expiration is not None:
            expires_at = self.validate_expiration(manual_expiration, generated_at)
            uses_manual = True
        elif event.qr_expiration is not None:
            expires_at = event.qr_expiration
            uses_manual = True
        else:
            expires_at = generated_at + self.default_lifetime
            uses_manual = False

        return AttendanceToken(
            event_id=str(event.id),
            event_title=event.title,
            generated_at=generated_at,
            expires_at=expires_at,
            uses_manual_expiration=uses_manual,
            geofence=event.geofence,
            event_version=event.version
        )

    @staticmethod
    def validate_expiration(value: Union[str, datetime, None], now: datetime) -> datetime:
        """Parse ``value`` and require it to be strictly after ``now``."""
        if value is None or value == '':
            raise InvalidExpiration("Expiration date is required")
        try:
            expires_at = parse_iso_datetime(value)
        except ValueError:
            raise InvalidExpiration("Please enter a valid date and time")

        if expires_at <= now:
            raise InvalidExpiration("Expiration date must be in the future")
        return expires_at

    def sign(self, payload: Dict[str, Any]) -> str:
        unsigned = {k: v for k, v in payload.items() if k != 'signature'}
        canonical = json.dumps(unsigned, sort_keys=True, separators=(',', ':'))
        digest = hmac.new(self._secret, canonical.encode(), hashlib.sha256).hexdigest()
        return digest[:SIGNATURE_LENGTH]

    def encode(self, token: AttendanceToken) -> str:
        """Serialize ``token`` to the signed JSON string placed in the QR code."""
        payload = token.to_payload()
        payload['signature'] = self.sign(payload)
        return json.dumps(payload, separators=(',', ':'))

    def decode(self, qr_data: str) -> AttendanceToken:
        """Parse and verify a scanned payload. Raises InvalidToken."""
        try:
            payload = json.loads(qr_data)
        except (TypeError, ValueError):
            raise InvalidToken("Invalid QR code format")

        if not isinstance(payload, dict) or payload.get('type') != TOKEN_TYPE:
            raise InvalidToken("Not an attendance QR code")

        for field in REQUIRED_FIELDS:
            if field not in payload:
                raise InvalidToken(f"Missing field: {field}")

        signature = payload['signature']
        if not isinstance(signature, str) or not hmac.compare_digest(signature, self.sign(payload)):
            logger.warning("Rejected attendance token with bad signature for event %s",
                           payload.get('eventId'))
            raise InvalidToken("QR code signature mismatch")

        try:
            generated_at = parse_iso_datetime(payload['generatedAt'])
            expires_at = parse_iso_datetime(payload['expiresAt'])
        except ValueError:
            raise InvalidToken("Invalid timestamps in QR code")

        event_version = payload['eventVersion']
        if isinstance(event_version, bool) or not isinstance(event_version, int):
            raise InvalidToken("Invalid event version in QR code")

        geofence = None
        if payload.get('eventLocation') is not None:
            try:
                geofence = Geofence.from_dict(payload['eventLocation'])
            except (InvalidCoordinates, AttributeError):
                raise InvalidToken("Invalid event location in QR code")

        return AttendanceToken(
            event_id=str(payload['eventId']),
            event_title=str(payload['eventTitle']),
            generated_at=generated_at,
            expires_at=expires_at,
            uses_manual_expiration=bool(payload['usesManualExpiration']),
            geofence=geofence,
            event_version=event_version
        )

    @staticmethod
    def render_qr(qr_string: str) -> str:
        """Render ``qr_string`` as a PNG data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(qr_string)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"

    @staticmethod
    def render_ascii(qr_string: str) -> str:
        """Render ``qr_string`` as text for terminals."""
        qr = qrcode.QRCode(border=1)
        qr.add_data(qr_string)
        qr.make(fit=True)

        out = io.StringIO()
        qr.print_ascii(out=out)
        return out.getvalue()


class TokenCache:
    """
    Memoizes the displayed token per event.

    A token is reused until the inputs that shape it change: event id and
    version, title, stored expiration, geofence and the manual-override flag. A
    cached default-policy token that has itself lapsed is re-issued.
    """

    def __init__(self, issuer: TokenService):
        self.issuer = issuer
        self._tokens: Dict[str, Tuple[Hashable, AttendanceToken]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(event) -> Hashable:
        return (
            str(event.id),
            event.version,
            event.title,
            event.qr_expiration,
            event.geofence,
            event.qr_expiration is not None
        )

    def get_or_issue(self, event) -> AttendanceToken:
        key = self.key_for(event)
        with self._lock:
            cached = self._tokens.get(str(event.id))

            if cached is not None and cached[0] == key:
                token = cached[1]
                if token.uses_manual_expiration or not token.is_expired(self.issuer.clock()):
                    return token

            token = self.issuer.issue_token(event)
            self._tokens[str(event.id)] = (key, token)
            return token

    def put(self, event, token: AttendanceToken) -> None:
        """Store ``token`` as current for the (already persisted) ``event`` state."""
        with self._lock:
            self._tokens[str(event.id)] = (self.key_for(event), token)
