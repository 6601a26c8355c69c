"""Tests for CancelToken."""

from unittest.mock import MagicMock

from agent_stream.cancel import CancelToken


class TestCancelToken:

    def test_initial_state(self):
        token = CancelToken()
        assert not token.is_cancelled

    def test_cancel(self):
        token = CancelToken()
        token.cancel()
        assert token.is_cancelled

    def test_callbacks_run_once(self):
        token = CancelToken()
        callback = MagicMock()
        token.on_cancel(callback)

        token.cancel()
        token.cancel()

        callback.assert_called_once()

    def test_callback_after_cancel_runs_immediately(self):
        token = CancelToken()
        token.cancel()
        callback = MagicMock()
        token.on_cancel(callback)
        callback.assert_called_once()

    def test_failing_callback_does_not_stop_others(self):
        token = CancelToken()
        second = MagicMock()
        token.on_cancel(MagicMock(side_effect=RuntimeError("boom")))
        token.on_cancel(second)

        token.cancel()

        second.assert_called_once()

    def test_remove_callback(self):
        token = CancelToken()
        callback = MagicMock()
        token.on_cancel(callback)
        token.remove_callback(callback)
        token.remove_callback(callback)

        token.cancel()

        callback.assert_not_called()

    def test_reset(self):
        token = CancelToken()
        callback = MagicMock()
        token.on_cancel(callback)
        token.reset()
        token.cancel()
        token.reset()

        assert not token.is_cancelled
        callback.assert_not_called()
