"""Command handling for the game.

Every inbound command runs under one lock, so each command is an atomic
step against the shared state (session directory + round store). A
command produces an ``Outcome``: the reply for the requester, the
per-recipient deliveries for everybody else, and side effects the host
runs after the lock is released.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import AuthError, AuthErrorKind, GameError, ValidationError, ValidationErrorKind
from .geo import parse_coordinate
from .identity import IdentityVerifier, VerifiedIdentity
from .notifications import LoggingNotifier, Notifier
from .rounds import RoundStore
from .sessions import Participant, SessionDirectory
from .visibility import guess_signal, project, public_history

logger = logging.getLogger(__name__)

TEST_PARTICIPANT = VerifiedIdentity(
    external_id=123456789,
    display_name='Test',
    secondary_name='User',
    handle='testuser',
)


@dataclass
class Delivery:
    session: str
    event: str
    payload: dict


@dataclass
class Outcome:
    reply_event: Optional[str] = None
    reply: Optional[dict] = None
    deliveries: List[Delivery] = field(default_factory=list)
    side_effects: List[tuple] = field(default_factory=list)

    @classmethod
    def error(cls, exc: GameError):
        return cls(reply_event='error_message', reply=exc.to_dict())


class GameCoordinator:
    # Inbound command names; each is also the handler method name
    COMMANDS = (
        'authenticate',
        'logout',
        'test_login_operator',
        'test_login_participant',
        'create_round',
        'submit_guess',
        'end_round',
        'request_game_state',
        'request_history',
    )

    def __init__(
        self,
        verifier: IdentityVerifier,
        operator_id: int,
        production_mode: bool = True,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.verifier = verifier
        self.operator_id = operator_id
        self.production_mode = production_mode
        self.notifier = notifier or LoggingNotifier()
        self.sessions = SessionDirectory()
        self.rounds = RoundStore()
        self.signature_mismatches = 0
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def lock(self):
        """Held by hosts while fanning out an outcome, so sends follow commit order."""
        return self._lock

    def handle(self, session: str, command: str, data=None) -> Outcome:
        if command not in self.COMMANDS:
            return Outcome.error(ValidationError(ValidationErrorKind.INVALID_PAYLOAD, f'Unknown command {command!r}'))
        handler = getattr(self, command)
        with self._lock:
            try:
                return handler(session, data)
            except GameError as exc:
                logger.info(f"[rejected] sid={session} command={command} kind={exc.kind.value}")
                return Outcome.error(exc)

    def disconnect(self, session: str) -> None:
        with self._lock:
            self.sessions.unbind(session)

    # ---- authentication ----

    def _bind(self, session, identity):
        participant = self.sessions.bind(session, identity, identity.external_id == self.operator_id)
        return Outcome(reply_event='authentication_result', reply={'ok': True, 'participant': participant.to_dict()})

    def _auth_failure(self, exc: AuthError):
        return Outcome(reply_event='authentication_result', reply={'ok': False, 'error': exc.to_dict()})

    def authenticate(self, session, data):
        raw = data.get('init_data') if isinstance(data, dict) else data
        try:
            identity = self.verifier.verify(raw)
        except AuthError as exc:
            if exc.kind is AuthErrorKind.SIGNATURE_MISMATCH:
                self.signature_mismatches += 1
                logger.warning(f"[auth-mismatch] sid={session} total={self.signature_mismatches}")
            return self._auth_failure(exc)
        return self._bind(session, identity)

    def _require_test_mode(self, session):
        if self.production_mode:
            logger.warning(f"[test-auth-refused] sid={session}")
            raise AuthError(AuthErrorKind.TEST_MODE_DISABLED)

    def test_login_operator(self, session, data):
        try:
            self._require_test_mode(session)
            if not self.operator_id:
                # no operator configured; id 0 must never become the operator
                logger.warning(f"[test-auth-refused] sid={session} operator id unset")
                raise AuthError(AuthErrorKind.TEST_MODE_DISABLED)
        except AuthError as exc:
            return self._auth_failure(exc)
        return self._bind(session, VerifiedIdentity(external_id=self.operator_id, display_name='Operator'))

    def test_login_participant(self, session, data):
        try:
            self._require_test_mode(session)
        except AuthError as exc:
            return self._auth_failure(exc)
        identity = TEST_PARTICIPANT
        data = data if isinstance(data, dict) else {}
        user_id = data.get('id')
        first_name = data.get('first_name')
        if first_name is not None and not isinstance(first_name, str):
            raise ValidationError(ValidationErrorKind.INVALID_PAYLOAD, 'Test user name must be a string')
        if user_id is not None:
            if isinstance(user_id, bool) or not isinstance(user_id, int):
                raise ValidationError(ValidationErrorKind.INVALID_PAYLOAD, 'Test user id must be an integer')
            identity = VerifiedIdentity(external_id=user_id, display_name=first_name or f'Tester {user_id}')
        elif first_name:
            identity = VerifiedIdentity(external_id=TEST_PARTICIPANT.external_id, display_name=first_name)
        return self._bind(session, identity)

    def logout(self, session, data):
        self.sessions.unbind(session)
        return Outcome(reply_event='logged_out', reply={})

    def _participant(self, session) -> Participant:
        participant = self.sessions.resolve(session)
        if participant is None:
            raise AuthError(AuthErrorKind.NOT_AUTHENTICATED)
        return participant

    def _others(self, session):
        return [(sid, viewer) for sid, viewer in self.sessions.bound_sessions() if sid != session]

    # ---- rounds ----

    def create_round(self, session, data):
        participant = self._participant(session)
        secret = parse_coordinate(data)
        round_ = self.rounds.open_round(participant, secret, self._clock())
        outcome = Outcome(reply_event='round_created', reply=project(round_, participant).to_dict())
        for sid, viewer in self._others(session):
            outcome.deliveries.append(Delivery(sid, 'round_created', project(round_, viewer).to_dict()))
        outcome.side_effects.append((self.notifier.round_opened, round_))
        return outcome

    def submit_guess(self, session, data):
        participant = self._participant(session)
        location = parse_coordinate(data)
        guess = self.rounds.submit_guess(participant, location, self._clock())
        round_ = self.rounds.current_round()
        signal = guess_signal(round_, guess)
        outcome = Outcome(reply_event='guess_submitted', reply=dict(signal, location=location.to_dict()))
        for sid, viewer in self._others(session):
            if viewer.is_operator:
                payload = dict(signal, guess=guess.to_dict())
            else:
                payload = dict(signal)
            outcome.deliveries.append(Delivery(sid, 'guess_submitted', payload))
        return outcome

    def end_round(self, session, data):
        participant = self._participant(session)
        round_ = self.rounds.close_round(participant, self._clock())
        outcome = Outcome(reply_event='round_closed', reply=project(round_, participant).to_dict())
        for sid, viewer in self._others(session):
            outcome.deliveries.append(Delivery(sid, 'round_closed', project(round_, viewer).to_dict()))
        outcome.side_effects.append((self.notifier.round_closed, round_))
        return outcome

    # ---- queries ----

    def request_game_state(self, session, data):
        participant = self._participant(session)
        current = self.rounds.current_round()
        own = current.guess_of(participant.external_id) if current else None
        return Outcome(reply_event='game_state_update', reply={
            'participant': participant.to_dict(),
            'current_round': project(current, participant).to_dict() if current else None,
            'history': public_history(self.rounds.history()),
            'my_guess': own.location.to_dict() if own else None,
        })

    def request_history(self, session, data):
        self._participant(session)
        return Outcome(reply_event='history', reply={'rounds': public_history(self.rounds.history())})

    # ---- host helpers ----

    def public_history(self):
        with self._lock:
            return public_history(self.rounds.history())

    def status(self):
        with self._lock:
            return {'round_open': self.rounds.current_round() is not None, 'sessions': len(self.sessions)}

    def snapshot(self):
        with self._lock:
            return self.rounds.snapshot()
