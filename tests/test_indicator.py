"""Tests for the debounced thinking indicator."""

import random
from unittest.mock import MagicMock

import pytest

from agent_stream.indicator import (
    IndicatorTimer,
    format_duration,
    format_elapsed,
    format_hint,
    pick_completion_flavor_word,
)
from agent_stream.state import ThinkingState, TurnState

from conftest import FakeLoop, make_renderer


class TestFormatting:

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0:00"),
        (5.9, "0:05"),
        (65, "1:05"),
        (-3, "0:00"),
    ])
    def test_format_elapsed(self, seconds, expected):
        assert format_elapsed(seconds) == expected

    def test_format_hint(self):
        assert format_hint(12) == "(esc to interrupt · 0:12)"

    def test_format_duration(self):
        assert format_duration(42) == "42s"
        assert format_duration(65) == "1m 5s"

    def test_completion_word(self):
        assert pick_completion_flavor_word(["Brewed"]) == "Brewed"
        assert pick_completion_flavor_word([]) == "Baked"


class TestIndicatorTimer:

    def setup_method(self):
        self.loop = FakeLoop()
        self.host = make_renderer()
        self.queue = MagicMock()
        self.state = TurnState()
        self.state.current_content_el = MagicMock(name="container")
        self.state.response_start_time = self.loop.time()
        self.timer = IndicatorTimer(
            self.state,
            self.host,
            loop=self.loop,
            delay=0.4,
            interval=1.0,
            update_queue_indicator=self.queue,
            rng=random.Random(0),
        )

    def test_debounce_then_mount(self):
        self.timer.show()

        self.loop.advance(0.3)
        self.host.show_indicator.assert_not_called()

        self.loop.advance(0.2)
        self.host.show_indicator.assert_called_once()
        container, text, hint = self.host.show_indicator.call_args[0]
        assert container is self.state.current_content_el
        assert text.endswith("...")
        assert hint == "(esc to interrupt · 0:00)"
        assert self.timer.is_visible
        assert self.state.flavor_timer_interval is not None
        self.queue.assert_called_once()

    def test_repeated_show_restarts_debounce(self):
        self.timer.show()
        self.loop.advance(0.3)
        self.timer.show()
        self.loop.advance(0.3)
        self.host.show_indicator.assert_not_called()
        self.loop.advance(0.2)
        self.host.show_indicator.assert_called_once()

    def test_noop_without_container(self):
        self.state.current_content_el = None
        self.timer.show()
        assert self.state.thinking_debounce is None
        assert self.loop.scheduled == []

    def test_noop_while_thinking(self):
        self.state.current_thinking_state = ThinkingState(handle=MagicMock())
        self.timer.show()
        assert self.loop.scheduled == []

    def test_thinking_starting_during_debounce_suppresses_mount(self):
        self.timer.show()
        self.state.current_thinking_state = ThinkingState(handle=MagicMock())
        self.loop.advance(1.0)
        self.host.show_indicator.assert_not_called()

    def test_show_again_moves_existing_indicator(self):
        self.timer.show()
        self.loop.advance(0.5)
        handle = self.state.thinking_el

        self.timer.show()

        self.host.move_indicator_to_bottom.assert_called_once_with(self.state.current_content_el, handle)
        assert self.queue.call_count == 2
        assert self.state.thinking_debounce is None

    def test_tick_updates_hint(self):
        self.timer.show()
        self.loop.advance(0.4)
        self.loop.advance(1.0)
        self.loop.advance(1.0)

        hints = [c[0][1] for c in self.host.update_indicator_hint.call_args_list]
        assert hints == ["(esc to interrupt · 0:01)", "(esc to interrupt · 0:02)"]

    def test_tick_clears_interval_when_detached(self):
        self.timer.show()
        self.loop.advance(0.4)
        self.host.is_indicator_attached.return_value = False

        self.loop.advance(1.0)

        assert self.state.flavor_timer_interval is None
        self.host.update_indicator_hint.assert_not_called()
        assert self.loop.pending() == []

    def test_tick_stops_when_attachment_query_fails(self):
        self.timer.show()
        self.loop.advance(0.4)
        self.host.is_indicator_attached.side_effect = RuntimeError("widget gone")

        self.loop.advance(1.0)

        assert self.state.flavor_timer_interval is None
        self.host.update_indicator_hint.assert_not_called()
        assert self.loop.pending() == []

    def test_tick_clears_interval_without_start_time(self):
        self.timer.show()
        self.loop.advance(0.4)
        self.state.response_start_time = None

        self.loop.advance(1.0)

        assert self.state.flavor_timer_interval is None
        assert self.loop.pending() == []

    def test_mount_cancels_stale_interval(self):
        stale = self.loop.call_later(5.0, MagicMock())
        self.state.flavor_timer_interval = stale

        self.timer.show()
        self.loop.advance(0.4)

        assert stale.cancelled()
        assert self.state.flavor_timer_interval is not stale

    def test_hide_clears_everything(self):
        self.timer.show()
        self.loop.advance(0.4)
        handle = self.state.thinking_el

        self.timer.hide()

        assert self.state.thinking_el is None
        assert self.state.thinking_debounce is None
        assert self.state.flavor_timer_interval is None
        self.host.remove_indicator.assert_called_once_with(handle)
        assert self.loop.pending() == []

    def test_hide_during_debounce(self):
        self.timer.show()
        self.timer.hide()
        self.loop.advance(1.0)
        self.host.show_indicator.assert_not_called()
        self.host.remove_indicator.assert_not_called()

    def test_hide_when_never_shown(self):
        self.timer.hide()
        assert not self.timer.is_visible

    def test_host_failure_leaves_indicator_hidden(self):
        self.host.show_indicator.side_effect = RuntimeError("unmounted")
        self.timer.show()
        self.loop.advance(0.4)
        assert not self.timer.is_visible
        assert self.state.flavor_timer_interval is None
