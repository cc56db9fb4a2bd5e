"""Connection session with the sensor hub.

The session owns the TCP stream, the per-channel histories and the latest
readings. All mutation happens on the event loop that runs the session, in
the order the transport delivers data.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from . import constants
from .codec import (
    AllReading,
    InboundMessage,
    LengthReading,
    LineAssembler,
    decode,
    decode_record,
)
from .config import HubConfig
from .history import ChannelHistories, Sample

LOGGER = logging.getLogger(__name__)
WIRE_LOGGER = logging.getLogger(constants.WIRE_LOGGER_NAME)


class ConnectionState(str, Enum):
    """Current state of the hub connection."""

    DISCONNECTED = "disconnected"
    """No stream open; the initial state and the state after a clean close."""

    CONNECTING = "connecting"
    """Stream connection in progress."""

    CONNECTED = "connected"
    """Stream open and writable."""

    FAILED = "failed"
    """The last connect attempt or the open stream failed."""


class HubConnectionError(ConnectionError):
    """Raised when the hub cannot be reached."""


class SessionStateError(RuntimeError):
    """Raised when an operation is not valid for the current session state."""


StateListener = Callable[[ConnectionState, ConnectionState], Any]
ReadingListener = Callable[[InboundMessage], Any]


def _json_number(value: Optional[Sample]) -> Optional[Sample]:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@dataclass(slots=True)
class LatestReadings:
    heart_rate: Optional[Sample] = None
    temperature: Optional[Sample] = None
    humidity: Optional[Sample] = None
    distance: Optional[str] = None

    def as_dict(self) -> Dict[str, Union[Sample, str, None]]:
        return {
            "heartRate": _json_number(self.heart_rate),
            "temperature": _json_number(self.temperature),
            "humidity": _json_number(self.humidity),
            "distance": self.distance,
        }

    def clear(self) -> None:
        self.heart_rate = None
        self.temperature = None
        self.humidity = None
        self.distance = None


class HubSession:
    """Owns one stream connection to a sensor hub and the state fed by it."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = constants.DEFAULT_HUB_PORT,
        *,
        connect_timeout: float = constants.DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_chunk_size: int = constants.DEFAULT_READ_CHUNK_SIZE,
        line_buffering: bool = True,
    ) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._read_chunk_size = read_chunk_size
        self._line_buffering = line_buffering

        self._state = ConnectionState.DISCONNECTED
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._assembler = LineAssembler()
        # Bumped by teardown so that an in-flight connect can tell it was abandoned.
        self._generation = 0

        self.histories = ChannelHistories()
        self.latest = LatestReadings()

        self._state_listeners: List[StateListener] = []
        self._reading_listeners: List[ReadingListener] = []

    @classmethod
    def from_config(cls, config: HubConfig) -> "HubSession":
        return cls(
            config.host,
            config.port,
            connect_timeout=config.connect_timeout_seconds,
            read_chunk_size=config.read_chunk_size,
            line_buffering=config.line_buffering,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def host(self) -> Optional[str]:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def add_state_listener(self, listener: StateListener) -> None:
        """Register ``listener(previous, current)`` for state transitions."""
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        with contextlib.suppress(ValueError):
            self._state_listeners.remove(listener)

    def add_reading_listener(self, listener: ReadingListener) -> None:
        """Register ``listener(message)`` for every applied inbound message."""
        self._reading_listeners.append(listener)

    def remove_reading_listener(self, listener: ReadingListener) -> None:
        with contextlib.suppress(ValueError):
            self._reading_listeners.remove(listener)

    async def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Open the stream connection to the hub.

        Raises:
            SessionStateError: If the session is connecting or connected.
            ValueError: If no host is known.
            HubConnectionError: If the connection cannot be established. The
                session is left in ``FAILED`` and may be retried.
        """
        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.FAILED):
            raise SessionStateError(f"Cannot connect while {self._state.value}")

        host = host or self._host
        if not host:
            raise ValueError("Hub host is required")
        self._host = host
        if port is not None:
            self._port = port

        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)
        LOGGER.info("Connecting to hub at %s:%s", self._host, self._port)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            if generation == self._generation:
                self._set_state(ConnectionState.DISCONNECTED)
            raise
        except (OSError, asyncio.TimeoutError) as exc:
            if generation != self._generation:
                raise HubConnectionError("Session torn down while connecting") from exc
            self._writer = None
            self._set_state(ConnectionState.FAILED)
            LOGGER.warning(
                "Connection to hub at %s:%s failed: %s", self._host, self._port, exc
            )
            raise HubConnectionError(
                f"Unable to connect to {self._host}:{self._port}: {exc}"
            ) from exc

        if generation != self._generation:
            LOGGER.info("Session torn down while connecting; releasing socket")
            await _close_writer(writer)
            raise HubConnectionError("Session torn down while connecting")

        self._writer = writer
        self._assembler.clear()
        self._reader_task = asyncio.create_task(self._read_loop(reader, writer))
        LOGGER.info("Connected to hub at %s:%s", self._host, self._port)
        self._set_state(ConnectionState.CONNECTED)

    def send(self, payload: bytes) -> None:
        """Write an already framed payload to the hub."""

        if self._state != ConnectionState.CONNECTED or self._writer is None:
            raise SessionStateError(f"Cannot send while {self._state.value}")
        WIRE_LOGGER.debug("send %r", payload)
        self._writer.write(payload)

    async def teardown(self) -> None:
        """Release the socket and drop all session state. Safe to call repeatedly."""

        self._generation += 1

        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        writer, self._writer = self._writer, None
        if writer is not None:
            await _close_writer(writer)

        self._assembler.clear()
        self.histories.reset()
        self.latest.clear()

        if self._state != ConnectionState.DISCONNECTED:
            LOGGER.info("Hub session torn down")
            self._set_state(ConnectionState.DISCONNECTED)

    async def __aenter__(self) -> "HubSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------
    def handle_data(self, data: Union[bytes, str]) -> None:
        """Decode inbound data and apply every recognised message in order."""

        WIRE_LOGGER.debug("recv %r", data)
        if not self._line_buffering:
            message = decode(data)
            if message is not None:
                self._apply(message)
            return

        for line in self._assembler.feed(data):
            message = decode_record(line)
            if message is not None:
                self._apply(message)

    def handle_error(self, exc: BaseException) -> None:
        """Transport failure: keep histories and readings, mark the session failed."""

        LOGGER.warning("Hub connection error: %s", exc)
        self._writer = None
        self._assembler.clear()
        self._set_state(ConnectionState.FAILED)

    def handle_close(self) -> None:
        """Remote close: temperature and humidity revert to no-data."""

        trailing = self._assembler.flush()
        if trailing:
            message = decode_record(trailing)
            if message is not None:
                self._apply(message)

        LOGGER.info("Hub connection closed")
        self._writer = None
        # Heart rate and distance intentionally keep their last values.
        self.latest.temperature = None
        self.latest.humidity = None
        self._set_state(ConnectionState.DISCONNECTED)

    def snapshot(self) -> Dict[str, Any]:
        histories = {
            name: [_json_number(value) for value in values]
            for name, values in self.histories.as_dict().items()
        }
        return {
            "state": self._state.value,
            "host": self._host,
            "port": self._port,
            "latest": self.latest.as_dict(),
            "histories": histories,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _read_loop(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            while True:
                data = await reader.read(self._read_chunk_size)
                if not data:
                    break
                self.handle_data(data)
        except asyncio.CancelledError:
            raise
        except OSError as exc:
            self._reader_task = None
            self.handle_error(exc)
            await _close_writer(writer)
            return

        self._reader_task = None
        self.handle_close()
        await _close_writer(writer)

    def _apply(self, message: InboundMessage) -> None:
        if isinstance(message, AllReading):
            self.histories.push_all(
                message.heart_rate, message.temperature, message.humidity
            )
            self.latest.heart_rate = message.heart_rate
            self.latest.temperature = message.temperature
            self.latest.humidity = message.humidity
        elif isinstance(message, LengthReading):
            self.latest.distance = message.distance

        for listener in list(self._reading_listeners):
            try:
                listener(message)
            except Exception:
                LOGGER.exception("Reading listener failed")

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous == state:
            return
        self._state = state
        LOGGER.debug("Hub session state %s -> %s", previous.value, state.value)

        for listener in list(self._state_listeners):
            try:
                listener(previous, state)
            except Exception:
                LOGGER.exception("State listener failed")


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
