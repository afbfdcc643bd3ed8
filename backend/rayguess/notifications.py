"""Outbound notification hooks (chat bot announcements and the like).

The game only decides *when* to notify. Delivery happens after the state
change has committed, off the request path, and a failing notifier never
undoes a round transition.
"""
import logging

logger = logging.getLogger(__name__)


class Notifier:
    """Interface for round announcements. Subclasses override what they need."""

    def round_opened(self, round_):
        pass

    def round_closed(self, round_):
        pass


class LoggingNotifier(Notifier):
    def round_opened(self, round_):
        logger.info(f"[notify] round {round_.round_id} is open, get guessing")

    def round_closed(self, round_):
        logger.info(f"[notify] round {round_.round_id} closed with {len(round_.guesses)} guesses")


def deliver(callback, *args) -> None:
    """Run one queued notification, logging rather than raising on failure."""
    try:
        callback(*args)
    except Exception:
        logger.exception(f"[notify-failed] {getattr(callback, '__name__', callback)}")
