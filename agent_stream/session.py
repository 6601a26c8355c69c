"""Turn runner: drives the stream controller from an async chunk source.

One TurnRunner owns the consumption loop for a conversation. run() pulls
chunks one at a time, hands each to the controller, and always finalizes the
message, whether the source finished, raised, or the turn was cancelled.
"""

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional, Union

from .cancel import CancelToken
from .chunks import Chunk, ChunkType
from .controller import ERROR_MARKER, INTERRUPTED_MARKER, StreamController
from .indicator import pick_completion_flavor_word
from .models import ChatMessage
from .trace import trace

logger = logging.getLogger(__name__)

ChunkSource = AsyncIterable[Union[Chunk, Dict[str, Any]]]


class TurnRunner:
    """Consumes one turn's chunk stream at a time.

    Example:
        runner = TurnRunner(controller)
        msg = ChatMessage()
        await runner.run(agent.query(prompt), msg)

        # From a key binding on the same loop
        runner.cancel()
    """

    def __init__(
        self,
        controller: StreamController,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.controller = controller
        self.cancel_token = cancel_token or CancelToken()
        self._next_task: Optional["asyncio.Future[Any]"] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Stop consuming the current turn; the chunk in progress completes."""
        self.cancel_token.cancel()

    def _abort_pending_read(self) -> None:
        if self._next_task is not None and not self._next_task.done():
            self._next_task.cancel()

    async def run(self, chunks: ChunkSource, msg: ChatMessage) -> ChatMessage:
        """Stream a turn into ``msg``.

        Never raises for source failures: a raising source is surfaced as an
        inline error marker and the message is still finalized.

        Returns:
            The finalized message.
        """
        controller = self.controller
        state = controller.state

        self.cancel_token.reset()
        controller.reset_streaming_state()
        controller.subagents.reset_spawned_count()

        state.current_content_el = controller.renderer.create_turn_container(msg)
        state.response_start_time = controller.indicator.now()
        state.is_streaming = True
        if msg not in state.messages:
            state.messages.append(msg)
        controller.show_thinking_indicator()

        self._running = True
        self.cancel_token.on_cancel(self._abort_pending_read)
        iterator: AsyncIterator[Any] = chunks.__aiter__()
        try:
            while not self.cancel_token.is_cancelled:
                self._next_task = asyncio.ensure_future(iterator.__anext__())
                try:
                    chunk = await self._next_task
                except StopAsyncIteration:
                    break
                except asyncio.CancelledError:
                    if self.cancel_token.is_cancelled:
                        break
                    raise
                finally:
                    self._next_task = None

                await controller.handle_stream_chunk(chunk, msg)
                if state.turn_complete or getattr(chunk, "type", None) == ChunkType.DONE:
                    break
        except Exception as e:
            logger.warning(f"Chunk source failed: {e}")
            trace("TurnRunner", f"source raised: {e}", include_traceback=True)
            await controller.append_marker(msg, ERROR_MARKER.format(content=str(e)))
        finally:
            self.cancel_token.remove_callback(self._abort_pending_read)
            await self._finalize(msg, iterator)

        return msg

    async def _finalize(self, msg: ChatMessage, iterator: AsyncIterator[Any]) -> None:
        controller = self.controller
        state = controller.state

        if self.cancel_token.is_cancelled:
            msg.interrupted = True
            await controller.append_marker(msg, INTERRUPTED_MARKER)

        controller.finalize_turn(msg)

        if state.response_start_time is not None:
            elapsed = controller.indicator.now() - state.response_start_time
            msg.duration_seconds = max(0, int(elapsed))
            msg.duration_flavor_word = pick_completion_flavor_word()

        state.current_content_el = None
        state.is_streaming = False
        self._running = False

        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                logger.debug(f"Error closing chunk source: {e}")
