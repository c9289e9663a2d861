"""Duplicate suppression for the recognition event history."""
from collections import deque
from typing import Deque, List, Optional

from faceguard.core.config import settings
from faceguard.core.logging import get_logger
from faceguard.domain.value_objects.recognition import RecognitionLog

logger = get_logger(__name__)


class EventDebouncer:
    """Filters recognition events and keeps a bounded newest-first history.

    An event is suppressed when it carries the same label as the most recently
    admitted event and arrives less than ``window_ms`` after it.
    """

    def __init__(self, window_ms: Optional[int] = None, history_limit: Optional[int] = None) -> None:
        self.window_ms = int(window_ms if window_ms is not None else settings.DEBOUNCE_WINDOW_MS)
        self.history_limit = int(history_limit if history_limit is not None else settings.LOG_HISTORY_LIMIT)
        self._history: Deque[RecognitionLog] = deque(maxlen=self.history_limit)

    @property
    def history(self) -> List[RecognitionLog]:
        """Admitted events, newest first."""
        return list(self._history)

    @property
    def last(self) -> Optional[RecognitionLog]:
        return self._history[0] if self._history else None

    def admit(self, event: RecognitionLog) -> bool:
        """Offer an event to the history.

        Returns:
            True if the event was recorded, False if it was suppressed
        """
        last = self.last
        if (
            last is not None
            and last.person_name == event.person_name
            and (event.timestamp - last.timestamp) < self.window_ms
        ):
            return False
        # deque(maxlen) drops the oldest entry from the right end
        self._history.appendleft(event)
        logger.debug(
            "Recorded recognition event",
            person=event.person_name,
            confidence=event.confidence,
            unknown=event.is_unknown,
        )
        return True

    def clear(self) -> None:
        self._history.clear()
