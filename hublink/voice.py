"""Voice command control on top of an external speech capability."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Set

from . import constants
from .commands import CommandTranslator
from .core import VoiceCapture
from .history import ChannelHistories
from .pipeline import SendPipeline

LOGGER = logging.getLogger(__name__)


class VoiceCaptureError(RuntimeError):
    """Raised when the speech capability rejects a start or stop request."""


class VoiceController:
    """Turns recognised speech into pending hub commands.

    Results are only accepted while recording. The top candidate is
    translated against the live session histories, submitted to the send
    pipeline, and capture is stopped.
    """

    def __init__(
        self,
        capture: VoiceCapture,
        translator: CommandTranslator,
        pipeline: SendPipeline,
        histories: ChannelHistories,
        *,
        locale: str = constants.DEFAULT_VOICE_LOCALE,
    ) -> None:
        self._capture = capture
        self._translator = translator
        self._pipeline = pipeline
        self._histories = histories
        self._locale = locale
        self._recording = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_error: Optional[VoiceCaptureError] = None
        self._last_utterance: Optional[str] = None
        self._result_tasks: Set[asyncio.Task[Optional[str]]] = set()

        capture.set_results_handler(self.handle_results)

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def last_error(self) -> Optional[VoiceCaptureError]:
        return self._last_error

    @property
    def pending_results(self) -> int:
        """Number of posted result batches not yet handled."""
        return len(self._result_tasks)

    @property
    def last_utterance(self) -> Optional[str]:
        return self._last_utterance

    async def start(self) -> bool:
        """Start capture. Returns False when the capability refuses."""

        if self._recording:
            return True

        self._loop = asyncio.get_running_loop()
        try:
            await self._capture.start(self._locale)
        except Exception as exc:
            self._fail(VoiceCaptureError(f"Voice capture failed to start: {exc}"))
            return False

        self._recording = True
        self._last_error = None
        LOGGER.info("Voice capture started (locale=%s)", self._locale)
        return True

    async def stop(self) -> bool:
        """Stop capture. Recording is reset even when the capability refuses."""

        try:
            await self._capture.stop()
        except Exception as exc:
            self._fail(VoiceCaptureError(f"Voice capture failed to stop: {exc}"))
            return False

        if self._recording:
            LOGGER.info("Voice capture stopped")
        self._recording = False
        return True

    async def handle_results(self, candidates: Sequence[str]) -> Optional[str]:
        """Handle a ranked candidate list from the capability.

        Returns:
            The command submitted to the pipeline, or None if the results
            were discarded.
        """
        if not self._recording:
            LOGGER.debug("Discarding speech results received while not recording")
            return None
        if not candidates:
            return None

        utterance = candidates[0]
        self._last_utterance = utterance
        command = self._translator.translate(utterance, self._histories)
        LOGGER.info("Recognised %r -> %r", utterance, command)

        self._pipeline.submit(command)
        await self.stop()
        return command

    def post_results(self, candidates: Sequence[str]) -> None:
        """Deliver results from a foreign thread onto the controller's loop."""

        loop = self._loop
        if loop is None or loop.is_closed():
            LOGGER.debug("Dropping speech results; voice capture never started")
            return

        ranked = list(candidates)
        loop.call_soon_threadsafe(self._spawn_results_task, ranked)

    async def aclose(self) -> None:
        self._capture.set_results_handler(None)
        tasks = list(self._result_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._recording:
            await self.stop()
        try:
            await self._capture.destroy()
        except Exception:
            LOGGER.warning("Failed to release voice capture", exc_info=True)

    def _spawn_results_task(self, candidates: Sequence[str]) -> None:
        task = asyncio.create_task(self.handle_results(candidates))
        self._result_tasks.add(task)
        task.add_done_callback(self._on_results_task_done)

    def _on_results_task_done(self, task: "asyncio.Task[Optional[str]]") -> None:
        self._result_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Handling speech results failed", exc_info=exc)

    def _fail(self, error: VoiceCaptureError) -> None:
        LOGGER.error("%s", error)
        self._last_error = error
        self._recording = False
