"""Round lifecycle: open -> guesses -> closed.

At most one round is open at a time. The open round lives in its own slot
rather than at the head of the history list, so a second open round cannot
be represented at all; closing moves it to the front of ``_closed``.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import RoundError, RoundErrorKind
from .geo import Coordinate, distance_km
from .sessions import Participant

logger = logging.getLogger(__name__)


@dataclass
class Guess:
    submitter_id: int
    submitter_name: str
    location: Coordinate
    submitted_at: float
    distance_km: Optional[float] = None

    def to_dict(self):
        return {
            'submitter_id': self.submitter_id,
            'submitter_name': self.submitter_name,
            'location': self.location.to_dict(),
            'submitted_at': self.submitted_at,
            'distance_km': self.distance_km,
        }


@dataclass
class Round:
    round_id: int
    secret_location: Coordinate
    opens_at: float
    closes_at: Optional[float] = None
    guesses: Dict[int, Guess] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.closes_at is None

    def guess_of(self, external_id: int) -> Optional[Guess]:
        return self.guesses.get(external_id)

    def to_dict(self):
        return {
            'round_id': self.round_id,
            'secret_location': self.secret_location.to_dict(),
            'opens_at': self.opens_at,
            'closes_at': self.closes_at,
            'is_open': self.is_open,
            'guesses': [g.to_dict() for g in self.guesses.values()],
        }


def rank_guesses(guesses) -> List[Guess]:
    """Closest first; earlier submission wins a distance tie.

    Unscored guesses sort last, in submission order.
    """
    ordered = list(guesses)
    return sorted(
        ordered,
        key=lambda g: (g.distance_km is None, g.distance_km or 0.0, g.submitted_at),
    )


class RoundStore:
    """Authoritative round history.

    Not thread-safe on its own; the coordinator serialises every call.
    """

    def __init__(self):
        self._active: Optional[Round] = None
        self._closed: List[Round] = []
        self._next_id = 1

    def open_round(self, initiator: Participant, secret: Coordinate, opened_at: float) -> Round:
        if not initiator.is_operator:
            raise RoundError(RoundErrorKind.NOT_AUTHORIZED, 'Only the operator can start a round')
        if self._active is not None:
            raise RoundError(RoundErrorKind.ROUND_ALREADY_OPEN)
        self._active = Round(round_id=self._next_id, secret_location=secret, opens_at=opened_at)
        self._next_id += 1
        logger.info(f"[round-open] round={self._active.round_id} operator={initiator.external_id}")
        return self._active

    def submit_guess(self, participant: Participant, location: Coordinate, submitted_at: float) -> Guess:
        if participant.is_operator:
            raise RoundError(RoundErrorKind.NOT_AUTHORIZED, 'The operator cannot guess')
        current = self._active
        if current is None:
            raise RoundError(RoundErrorKind.NO_ACTIVE_ROUND)
        if participant.external_id in current.guesses:
            raise RoundError(RoundErrorKind.DUPLICATE_GUESS)
        guess = Guess(
            submitter_id=participant.external_id,
            submitter_name=participant.name,
            location=location,
            submitted_at=submitted_at,
        )
        current.guesses[participant.external_id] = guess
        logger.info(f"[guess] round={current.round_id} user={participant.external_id} count={len(current.guesses)}")
        return guess

    def close_round(self, initiator: Participant, closed_at: float) -> Round:
        if not initiator.is_operator:
            raise RoundError(RoundErrorKind.NOT_AUTHORIZED, 'Only the operator can end a round')
        current = self._active
        if current is None:
            raise RoundError(RoundErrorKind.NO_ACTIVE_ROUND)
        for guess in current.guesses.values():
            guess.distance_km = distance_km(guess.location, current.secret_location)
        current.closes_at = closed_at
        self._closed.insert(0, current)
        self._active = None
        logger.info(f"[round-close] round={current.round_id} guesses={len(current.guesses)}")
        return current

    def current_round(self) -> Optional[Round]:
        return self._active

    def history(self, exclude_current: bool = True) -> List[Round]:
        """Rounds newest first; the open round leads when ``exclude_current`` is off."""
        rounds = list(self._closed)
        if not exclude_current and self._active is not None:
            rounds.insert(0, self._active)
        return rounds

    def snapshot(self):
        return {
            'current': self._active.to_dict() if self._active else None,
            'history': [r.to_dict() for r in self._closed],
        }
