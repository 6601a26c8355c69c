"""Cancellation token for stopping an in-flight turn.

The turn runner consumes chunks on the event loop; a UI key binding (or any
other caller on the same loop) requests cancellation through the token and
the runner stops at its next suspension point.
"""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class CancelToken:
    """Cancellation token for the turn runner.

    Supports:
    - Simple cancellation via cancel()
    - Polling via is_cancelled property
    - Callback registration for cancellation notifications

    Example:
        token = CancelToken()
        runner = TurnRunner(controller, cancel_token=token)

        # From a key binding while the turn streams
        token.cancel()
    """

    def __init__(self):
        """Initialize a new cancel token."""
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Request cancellation.

        Idempotent: callbacks run once, on the first call only.
        """
        if self._cancelled:
            return
        self._cancelled = True
        callbacks = list(self._callbacks)
        self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in cancel callback")

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback to be invoked when cancelled.

        If already cancelled, the callback is invoked immediately.

        Args:
            callback: Function to call when cancellation is requested.
        """
        if self._cancelled:
            try:
                callback()
            except Exception:
                logger.exception("Error in cancel callback")
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback added with on_cancel()."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def reset(self) -> None:
        """Reset the token for the next turn."""
        self._cancelled = False
        self._callbacks.clear()
