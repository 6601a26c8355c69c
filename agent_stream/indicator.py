"""Debounced thinking indicator with an elapsed-time readout.

show() arms a short debounce; if no real content closes the gap the
indicator is mounted at the bottom of the turn container and an interval
timer starts updating "(esc to interrupt · m:ss)". Both timers live on the
asyncio event loop as TimerHandles stored in the TurnState, so hide() can
cancel them no matter who scheduled them.
"""

import asyncio
import logging
import random
from typing import Callable, Optional, Sequence

from .renderer import IndicatorHost
from .state import TurnState

logger = logging.getLogger(__name__)

THINKING_INDICATOR_DELAY = 0.4
TIMER_INTERVAL = 1.0

FLAVOR_TEXTS = (
    "Thinking...",
    "Ruminating...",
    "Pondering...",
    "Contemplating...",
    "Processing...",
    "Analyzing...",
    "Considering...",
    "Reflecting...",
    "Mulling it over...",
    "Working on it...",
    "Let me think...",
    "Hmm...",
    "One moment...",
    "On it...",
)

COMPLETION_FLAVOR_WORDS = (
    "Baked",
    "Brewed",
    "Cooked",
    "Crafted",
    "Simmered",
    "Churned",
)
DEFAULT_COMPLETION_FLAVOR_WORD = "Baked"


def format_elapsed(seconds: float) -> str:
    """m:ss"""
    total = max(0, int(seconds))
    return f"{total // 60}:{total % 60:02d}"


def format_hint(seconds: float) -> str:
    return f"(esc to interrupt · {format_elapsed(seconds)})"


def format_duration(seconds: int) -> str:
    """Footer form: "42s" or "1m 5s"."""
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"


def pick_completion_flavor_word(words: Sequence[str] = COMPLETION_FLAVOR_WORDS, rng: Optional[random.Random] = None) -> str:
    if not words:
        return DEFAULT_COMPLETION_FLAVOR_WORD
    chooser = rng or random
    return chooser.choice(list(words))


class IndicatorTimer:
    """Owns the thinking indicator lifecycle for one controller.

    Args:
        state: Turn state holding the timer handles and indicator handle.
        host: Where the indicator is mounted.
        loop: Event loop for scheduling; defaults to the running loop.
        delay: Debounce before the indicator appears, in seconds.
        interval: Readout refresh period, in seconds.
        flavor_texts: Labels picked at random for each indicator.
        update_queue_indicator: Called whenever the indicator is mounted or
            moved, so a queued-message hint can follow it.
        rng: Random source for flavor texts.
    """

    def __init__(
        self,
        state: TurnState,
        host: IndicatorHost,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        delay: float = THINKING_INDICATOR_DELAY,
        interval: float = TIMER_INTERVAL,
        flavor_texts: Sequence[str] = FLAVOR_TEXTS,
        update_queue_indicator: Optional[Callable[[], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._state = state
        self._host = host
        self._loop = loop
        self._delay = delay
        self._interval = interval
        self._flavor_texts = tuple(flavor_texts) or FLAVOR_TEXTS
        self._update_queue_indicator = update_queue_indicator
        self._rng = rng or random.Random()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def elapsed(self) -> Optional[float]:
        start = self._state.response_start_time
        if start is None:
            return None
        return self.now() - start

    # ==================== Show / hide ====================

    def show(self) -> None:
        """Schedule the indicator, or move an existing one to the bottom."""
        state = self._state
        if state.current_content_el is None or state.current_thinking_state is not None:
            return

        if state.thinking_el is not None:
            try:
                self._host.move_indicator_to_bottom(state.current_content_el, state.thinking_el)
            except Exception as e:
                logger.warning(f"Failed to move thinking indicator: {e}")
            self._notify_queue_indicator()
            return

        if state.thinking_debounce is not None:
            state.thinking_debounce.cancel()
        state.thinking_debounce = self.loop.call_later(self._delay, self._on_debounce_elapsed)

    def hide(self) -> None:
        """Cancel both timers and unmount the indicator."""
        state = self._state
        if state.thinking_debounce is not None:
            state.thinking_debounce.cancel()
            state.thinking_debounce = None
        if state.flavor_timer_interval is not None:
            state.flavor_timer_interval.cancel()
            state.flavor_timer_interval = None
        if state.thinking_el is not None:
            try:
                self._host.remove_indicator(state.thinking_el)
            except Exception as e:
                logger.warning(f"Failed to remove thinking indicator: {e}")
            state.thinking_el = None

    @property
    def is_visible(self) -> bool:
        return self._state.thinking_el is not None

    # ==================== Timers ====================

    def _on_debounce_elapsed(self) -> None:
        state = self._state
        state.thinking_debounce = None
        if state.current_content_el is None or state.current_thinking_state is not None:
            return
        if state.thinking_el is not None:
            return

        text = self._rng.choice(self._flavor_texts)
        elapsed = self.elapsed()
        try:
            state.thinking_el = self._host.show_indicator(
                state.current_content_el, text, format_hint(elapsed or 0.0)
            )
        except Exception as e:
            logger.warning(f"Failed to show thinking indicator: {e}")
            return

        if state.flavor_timer_interval is not None:
            state.flavor_timer_interval.cancel()
        state.flavor_timer_interval = self.loop.call_later(self._interval, self._on_tick)
        self._notify_queue_indicator()

    def _on_tick(self) -> None:
        state = self._state
        handle = state.thinking_el
        elapsed = self.elapsed()
        if handle is None or elapsed is None:
            state.flavor_timer_interval = None
            return
        try:
            attached = self._host.is_indicator_attached(handle)
        except Exception as e:
            logger.warning(f"Failed to query thinking indicator: {e}")
            attached = False
        if not attached:
            state.flavor_timer_interval = None
            return
        try:
            self._host.update_indicator_hint(handle, format_hint(elapsed))
        except Exception as e:
            logger.warning(f"Failed to update thinking indicator: {e}")
        state.flavor_timer_interval = self.loop.call_later(self._interval, self._on_tick)

    def _notify_queue_indicator(self) -> None:
        if self._update_queue_indicator is None:
            return
        try:
            self._update_queue_indicator()
        except Exception:
            logger.exception("update_queue_indicator callback failed")
