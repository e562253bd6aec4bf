"""
Cooperative cancellation for library runs.

The token is polled at loop boundaries; nothing is ever interrupted
mid-task. It is backed by threading.Event so signal handlers and other
threads can request cancellation safely.
"""

import signal
import threading
from typing import Iterable, Optional

from ..core.logging import get_logger

logger = get_logger("library.cancellation")


class CancellationToken:
    """Shared flag checked by the pipeline's producer and consumer loops."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info("Cancellation requested", reason=reason)

    def is_cancelled(self) -> bool:
        return self._event.is_set()


def cancel_on_signals(token: CancellationToken,
                      signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM)) -> None:
    """
    Route termination signals to a cancellation token so an interrupted run
    still flushes its in-flight batch. Must be called from the main thread.
    """
    def handler(signum, frame):
        token.cancel(reason=signal.Signals(signum).name)

    for signum in signals:
        signal.signal(signum, handler)
