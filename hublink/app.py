"""Application facade for the hublink client."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from .codec import AllReading, InboundMessage, LengthReading
from .commands import CommandPhrases, CommandTranslator
from .config import HubLinkConfig, load_config
from .core import VoiceCapture
from .history import ChannelHistories
from .logging import configure_logging
from .pipeline import SendPipeline
from .session import (
    ConnectionState,
    HubConnectionError,
    HubSession,
    LatestReadings,
    SessionStateError,
)
from .status import StatusReporter, StatusServer
from .voice import VoiceController

LOGGER = logging.getLogger(__name__)

CONNECT_DIRECTIVE = "/connect"
QUIT_DIRECTIVE = "/quit"


class HubLinkApp:
    """Coordinates the hub session, the send pipeline and voice control.

    This is the surface a presentation layer talks to: it forwards connect
    requests, typed commands and voice start/stop, and reads the session
    state, latest readings and channel histories back for display.
    """

    def __init__(
        self,
        config: Optional[HubLinkConfig] = None,
        *,
        voice_capture: Optional[VoiceCapture] = None,
        session: Optional[HubSession] = None,
    ) -> None:
        self._config = config or load_config()
        self._session = session or HubSession.from_config(self._config.hub)
        self._translator = CommandTranslator(CommandPhrases.from_config(self._config.voice))
        self._pipeline = SendPipeline(self._session)
        self._voice: Optional[VoiceController] = None
        if voice_capture is not None:
            self._voice = VoiceController(
                voice_capture,
                self._translator,
                self._pipeline,
                self._session.histories,
                locale=self._config.voice.locale,
            )
        self._status = StatusReporter()
        self._status_server: Optional[StatusServer] = None

        self._status.update("hub", False, self._session.state.value)
        self._session.add_state_listener(self._on_state_change)
        self._session.add_reading_listener(self._on_reading)

    @property
    def config(self) -> HubLinkConfig:
        return self._config

    @property
    def session(self) -> HubSession:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def latest(self) -> LatestReadings:
        return self._session.latest

    @property
    def histories(self) -> ChannelHistories:
        return self._session.histories

    @property
    def pending_command(self) -> Optional[str]:
        return self._pipeline.pending

    @property
    def voice(self) -> Optional[VoiceController]:
        return self._voice

    @property
    def status(self) -> StatusReporter:
        return self._status

    @property
    def status_server(self) -> Optional[StatusServer]:
        return self._status_server

    async def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> bool:
        """Connect to the hub; failures are logged and reported as False."""

        try:
            await self._session.connect(host, port)
        except HubConnectionError as exc:
            LOGGER.error("Hub connection failed: %s", exc)
            return False
        except (SessionStateError, ValueError) as exc:
            LOGGER.warning("Connect request ignored: %s", exc)
            return False
        return True

    def submit_text(self, command: str) -> bool:
        """Queue a raw command line; it is sent now or on the next connect."""
        return self._pipeline.submit(command)

    def submit_utterance(self, utterance: str) -> str:
        """Translate a recognised utterance and queue the resulting command."""

        command = self._translator.translate(utterance, self._session.histories)
        self._pipeline.submit(command)
        return command

    async def voice_start(self) -> bool:
        if self._voice is None:
            LOGGER.warning("Voice start requested but no voice capture is configured")
            return False
        started = await self._voice.start()
        self._report_voice()
        return started

    async def voice_stop(self) -> bool:
        if self._voice is None:
            return False
        stopped = await self._voice.stop()
        self._report_voice()
        return stopped

    def snapshot(self) -> Dict[str, Any]:
        payload = self._session.snapshot()
        payload["pendingCommand"] = self._pipeline.pending
        payload["recording"] = self._voice.recording if self._voice is not None else False
        return payload

    async def start_status_server(self) -> None:
        if self._status_server is not None:
            return
        status_config = self._config.status
        server = StatusServer(
            self._status, self.snapshot, status_config.host, status_config.port
        )
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start status endpoint: %s", exc)
            await server.stop()
            return
        self._status_server = server

    async def aclose(self) -> None:
        if self._voice is not None:
            await self._voice.aclose()
        await self._session.teardown()
        if self._status_server is not None:
            await self._status_server.stop()
            self._status_server = None

    async def run(
        self,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        utterances: bool = False,
        input_stream: Optional[asyncio.StreamReader] = None,
    ) -> int:
        """Connect and relay input lines to the hub until end of input.

        Each line is sent as a raw command, or translated first when
        ``utterances`` is set. ``/connect`` retries the connection and
        ``/quit`` stops the loop.
        """

        LOGGER.info("hublink starting with config: %s", self._config.path)
        if self._config.status.enabled:
            await self.start_status_server()

        try:
            if not await self.connect(host, port):
                return 1
            if input_stream is None:
                input_stream = await _open_stdin()
            await self._relay_input(input_stream, utterances=utterances)
        finally:
            await self.aclose()
        return 0

    @classmethod
    def start(
        cls,
        config: Optional[HubLinkConfig] = None,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        utterances: bool = False,
    ) -> int:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            return asyncio.run(instance.run(host=host, port=port, utterances=utterances))
        except KeyboardInterrupt:
            LOGGER.info("hublink received shutdown signal")
            return 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _relay_input(
        self, stream: asyncio.StreamReader, *, utterances: bool
    ) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")

            if line == QUIT_DIRECTIVE:
                break
            if line == CONNECT_DIRECTIVE:
                await self.connect()
                continue

            if utterances:
                self.submit_utterance(line)
            else:
                self.submit_text(line)

    def _report_voice(self) -> None:
        voice = self._voice
        if voice is None:
            return
        error = voice.last_error
        if error is not None:
            self._status.update("voice", False, str(error))
        else:
            detail = "recording" if voice.recording else "idle"
            self._status.update("voice", True, detail)

    def _on_state_change(
        self, previous: ConnectionState, current: ConnectionState
    ) -> None:
        LOGGER.info("Hub state %s -> %s", previous.value, current.value)
        self._status.update(
            "hub", current == ConnectionState.CONNECTED, current.value
        )

    def _on_reading(self, message: InboundMessage) -> None:
        if isinstance(message, AllReading):
            LOGGER.info(
                "Heart rate %s, temperature %s, humidity %s",
                message.heart_rate,
                message.temperature,
                message.humidity,
            )
        elif isinstance(message, LengthReading):
            LOGGER.info("Distance %s", message.distance)


async def _open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader
