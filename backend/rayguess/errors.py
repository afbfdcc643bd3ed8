"""Error types raised by the game core.

Every error here is recoverable by the requester: the coordinator turns it
into an ``error_message`` reply for the requesting session and nothing is
broadcast.
"""
from enum import Enum


class AuthErrorKind(Enum):
    MALFORMED_INPUT = 'malformed_input'
    MISSING_SIGNATURE = 'missing_signature'
    SIGNATURE_MISMATCH = 'signature_mismatch'
    MALFORMED_USER_PAYLOAD = 'malformed_user_payload'
    EXPIRED = 'expired'
    NOT_AUTHENTICATED = 'not_authenticated'
    TEST_MODE_DISABLED = 'test_mode_disabled'


class RoundErrorKind(Enum):
    NOT_AUTHORIZED = 'not_authorized'
    ROUND_ALREADY_OPEN = 'round_already_open'
    NO_ACTIVE_ROUND = 'no_active_round'
    DUPLICATE_GUESS = 'duplicate_guess'


class ValidationErrorKind(Enum):
    INVALID_COORDINATE = 'invalid_coordinate'
    INVALID_PAYLOAD = 'invalid_payload'


_DEFAULT_MESSAGES = {
    AuthErrorKind.MALFORMED_INPUT: 'Login data could not be read',
    AuthErrorKind.MISSING_SIGNATURE: 'Login data is not signed',
    AuthErrorKind.SIGNATURE_MISMATCH: 'Login data could not be verified',
    AuthErrorKind.MALFORMED_USER_PAYLOAD: 'Login data has no usable user record',
    AuthErrorKind.EXPIRED: 'Login data has expired, please reopen the app',
    AuthErrorKind.NOT_AUTHENTICATED: 'You need to log in first',
    AuthErrorKind.TEST_MODE_DISABLED: 'Test login is disabled on this server',
    RoundErrorKind.NOT_AUTHORIZED: 'You are not allowed to do that',
    RoundErrorKind.ROUND_ALREADY_OPEN: 'A round is already open',
    RoundErrorKind.NO_ACTIVE_ROUND: 'There is no open round',
    RoundErrorKind.DUPLICATE_GUESS: 'You have already guessed this round',
    ValidationErrorKind.INVALID_COORDINATE: 'That is not a valid location',
    ValidationErrorKind.INVALID_PAYLOAD: 'Request payload is invalid',
}


class GameError(Exception):
    """Base class for requester-facing errors.

    ``kind`` identifies the failure; ``message`` is safe to show to the
    client and never includes signature material.
    """

    def __init__(self, kind, message=None):
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES.get(kind, kind.value)
        super().__init__(self.message)

    def to_dict(self):
        return {'kind': self.kind.value, 'message': self.message}


class AuthError(GameError):
    pass


class RoundError(GameError):
    pass


class ValidationError(GameError):
    pass
