"""Per-viewer views of a round.

While a round is open only the operator sees the secret location and the
guessed coordinates. Everyone else gets the list of who has guessed, plus
their own guess if they made one. Once closed, the round is public.

Projections are built per viewer on every send; never reuse one viewer's
projection for another.
"""
from dataclasses import dataclass
from typing import List, Optional

from .geo import Coordinate
from .rounds import Guess, Round, rank_guesses
from .sessions import Participant

FULL = 'full'
PARTIAL_SELF = 'partial_self'
HIDDEN = 'hidden'


def _guessers(round_: Round):
    return [{'id': g.submitter_id, 'name': g.submitter_name} for g in round_.guesses.values()]


@dataclass(frozen=True)
class FullRound:
    """Everything, including the secret. Guesses are ranked once scored."""
    round_id: int
    is_open: bool
    opens_at: float
    closes_at: Optional[float]
    secret_location: Coordinate
    guesses: List[Guess]
    kind: str = FULL

    def to_dict(self):
        guesses = []
        for position, guess in enumerate(self.guesses, start=1):
            entry = guess.to_dict()
            if not self.is_open:
                entry['rank'] = position
            guesses.append(entry)
        return {
            'kind': self.kind,
            'round_id': self.round_id,
            'is_open': self.is_open,
            'opens_at': self.opens_at,
            'closes_at': self.closes_at,
            'secret_location': self.secret_location.to_dict(),
            'guesses': guesses,
        }


@dataclass(frozen=True)
class PartialSelfRound:
    """Open round seen by a participant who has already guessed."""
    round_id: int
    opens_at: float
    own_guess: Guess
    guessers: list
    kind: str = PARTIAL_SELF

    def to_dict(self):
        return {
            'kind': self.kind,
            'round_id': self.round_id,
            'is_open': True,
            'opens_at': self.opens_at,
            'own_guess': {
                'location': self.own_guess.location.to_dict(),
                'submitted_at': self.own_guess.submitted_at,
            },
            'guess_count': len(self.guessers),
            'guessers': list(self.guessers),
        }


@dataclass(frozen=True)
class HiddenRound:
    """Open round seen by a participant who has not guessed yet."""
    round_id: int
    opens_at: float
    guessers: list
    kind: str = HIDDEN

    def to_dict(self):
        return {
            'kind': self.kind,
            'round_id': self.round_id,
            'is_open': True,
            'opens_at': self.opens_at,
            'guess_count': len(self.guessers),
            'guessers': list(self.guessers),
        }


def project(round_: Round, viewer: Participant):
    if viewer.is_operator or not round_.is_open:
        guesses = list(round_.guesses.values())
        if not round_.is_open:
            guesses = rank_guesses(guesses)
        return FullRound(
            round_id=round_.round_id,
            is_open=round_.is_open,
            opens_at=round_.opens_at,
            closes_at=round_.closes_at,
            secret_location=round_.secret_location,
            guesses=guesses,
        )
    own = round_.guess_of(viewer.external_id)
    if own is not None:
        return PartialSelfRound(
            round_id=round_.round_id,
            opens_at=round_.opens_at,
            own_guess=own,
            guessers=_guessers(round_),
        )
    return HiddenRound(round_id=round_.round_id, opens_at=round_.opens_at, guessers=_guessers(round_))


def public_history(rounds) -> list:
    """Closed rounds are identical for every viewer."""
    return [
        FullRound(
            round_id=r.round_id,
            is_open=False,
            opens_at=r.opens_at,
            closes_at=r.closes_at,
            secret_location=r.secret_location,
            guesses=rank_guesses(r.guesses.values()),
        ).to_dict()
        for r in rounds
        if not r.is_open
    ]


def guess_signal(round_: Round, guess: Guess) -> dict:
    """Coordinate-free notice that someone guessed."""
    return {
        'round_id': round_.round_id,
        'submitter_id': guess.submitter_id,
        'submitter_name': guess.submitter_name,
        'guess_count': len(round_.guesses),
    }
