"""Verification of Telegram Web App login data.

The client SDK hands the page an ``initData`` query string: arbitrary
``key=value`` fields, a JSON-encoded ``user`` field and a ``hash``. The
hash is an HMAC-SHA256 over the remaining fields, keyed with a secret
derived from the bot token, so only data issued for our bot verifies.
Nothing from the payload is trusted until the hash matches.
"""
import hashlib
import hmac
import json
import re
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode

from .errors import AuthError, AuthErrorKind

SECRET_KEY_SALT = b'WebAppData'

# A '%' that does not start a two-digit hex escape
_BAD_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


@dataclass(frozen=True)
class VerifiedIdentity:
    external_id: int
    display_name: str
    secondary_name: Optional[str] = None
    handle: Optional[str] = None
    avatar_url: Optional[str] = None

    def to_dict(self):
        return {
            'id': self.external_id,
            'first_name': self.display_name,
            'last_name': self.secondary_name,
            'username': self.handle,
            'photo_url': self.avatar_url,
        }


def _secret_key(bot_token: str) -> bytes:
    return hmac.new(SECRET_KEY_SALT, bot_token.encode('utf-8'), hashlib.sha256).digest()


def data_check_string(pairs) -> str:
    """Canonical string the provider signs: ``key=value`` lines sorted by key.

    ``pairs`` must already exclude ``hash``. When a key repeats, the first
    occurrence wins.
    """
    fields = {}
    for key, value in pairs:
        fields.setdefault(key, value)
    return '\n'.join(f'{key}={fields[key]}' for key in sorted(fields))


def sign_init_data(bot_token: str, user: dict, **fields) -> str:
    """Produce a signed ``initData`` string for ``user``.

    Used by the ``sign-assertion`` CLI command and the tests to stand in for
    the identity provider.
    """
    values = {key: str(value) for key, value in fields.items()}
    values['user'] = json.dumps(user, separators=(',', ':'))
    check = data_check_string(values.items())
    values['hash'] = hmac.new(_secret_key(bot_token), check.encode('utf-8'), hashlib.sha256).hexdigest()
    return urlencode(values)


def _parse_pairs(assertion):
    if not isinstance(assertion, str) or not assertion.strip():
        raise AuthError(AuthErrorKind.MALFORMED_INPUT)
    if _BAD_ESCAPE.search(assertion):
        raise AuthError(AuthErrorKind.MALFORMED_INPUT)
    try:
        return parse_qsl(assertion, keep_blank_values=True, strict_parsing=True, errors='strict')
    except (ValueError, UnicodeDecodeError):
        raise AuthError(AuthErrorKind.MALFORMED_INPUT)


def _optional_str(user, key):
    value = user.get(key)
    if value is None or isinstance(value, str):
        return value
    raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)


def _identity_from_user_field(raw) -> VerifiedIdentity:
    if raw is None:
        raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)
    try:
        user = json.loads(raw)
    except ValueError:
        raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)
    if not isinstance(user, dict):
        raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)
    external_id = user.get('id')
    first_name = user.get('first_name')
    if isinstance(external_id, bool) or not isinstance(external_id, int):
        raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)
    if not isinstance(first_name, str):
        raise AuthError(AuthErrorKind.MALFORMED_USER_PAYLOAD)
    return VerifiedIdentity(
        external_id=external_id,
        display_name=first_name,
        secondary_name=_optional_str(user, 'last_name'),
        handle=_optional_str(user, 'username'),
        avatar_url=_optional_str(user, 'photo_url'),
    )


class IdentityVerifier:
    """Checks signed login data against the configured bot token.

    ``max_age_sec`` > 0 additionally rejects data whose ``auth_date`` is
    older than that many seconds.
    """

    def __init__(self, bot_token: str, max_age_sec: int = 0, clock=time.time):
        self._secret = _secret_key(bot_token or '')
        self.max_age_sec = max_age_sec
        self._clock = clock

    def verify(self, assertion: str) -> VerifiedIdentity:
        pairs = _parse_pairs(assertion)

        provided = None
        unsigned = []
        for key, value in pairs:
            if key == 'hash':
                if provided is None:
                    provided = value
                continue
            unsigned.append((key, value))
        if provided is None:
            raise AuthError(AuthErrorKind.MISSING_SIGNATURE)

        check = data_check_string(unsigned)
        expected = hmac.new(self._secret, check.encode('utf-8'), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected.encode('ascii'), provided.lower().encode('utf-8')):
            raise AuthError(AuthErrorKind.SIGNATURE_MISMATCH)

        fields = {}
        for key, value in unsigned:
            fields.setdefault(key, value)
        if self.max_age_sec > 0:
            self._check_fresh(fields.get('auth_date'))
        return _identity_from_user_field(fields.get('user'))

    def _check_fresh(self, auth_date):
        try:
            issued = int(auth_date)
        except (TypeError, ValueError):
            raise AuthError(AuthErrorKind.EXPIRED)
        if self._clock() - issued > self.max_age_sec:
            raise AuthError(AuthErrorKind.EXPIRED)
