"""Session handle -> participant bookkeeping."""
import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .identity import VerifiedIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Participant:
    identity: VerifiedIdentity
    is_operator: bool

    @property
    def external_id(self) -> int:
        return self.identity.external_id

    @property
    def name(self) -> str:
        return self.identity.display_name

    def to_dict(self):
        payload = self.identity.to_dict()
        payload['is_operator'] = self.is_operator
        return payload


class SessionDirectory:
    """Registry of known participants plus the live session bindings.

    Participants are keyed by external id and never removed. ``is_operator``
    is fixed the first time an id is seen; later binds only refresh the
    display fields.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._participants: Dict[int, Participant] = {}
        self._bindings: Dict[str, int] = {}

    def bind(self, session_handle: str, identity: VerifiedIdentity, is_operator: bool) -> Participant:
        with self._lock:
            existing = self._participants.get(identity.external_id)
            if existing is None:
                participant = Participant(identity=identity, is_operator=is_operator)
            else:
                participant = replace(existing, identity=identity)
            self._participants[identity.external_id] = participant
            self._bindings[session_handle] = identity.external_id
        logger.info(f"[session-bind] sid={session_handle} user={identity.external_id} operator={participant.is_operator}")
        return participant

    def resolve(self, session_handle: str) -> Optional[Participant]:
        with self._lock:
            external_id = self._bindings.get(session_handle)
            if external_id is None:
                return None
            return self._participants.get(external_id)

    def unbind(self, session_handle: str) -> None:
        with self._lock:
            removed = self._bindings.pop(session_handle, None)
        if removed is not None:
            logger.info(f"[session-unbind] sid={session_handle} user={removed}")

    def bound_sessions(self) -> List[Tuple[str, Participant]]:
        """Snapshot of every live binding, in bind order."""
        with self._lock:
            return [(sid, self._participants[uid]) for sid, uid in self._bindings.items()]

    def participant(self, external_id: int) -> Optional[Participant]:
        with self._lock:
            return self._participants.get(external_id)

    def __len__(self):
        with self._lock:
            return len(self._bindings)
