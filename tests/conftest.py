import asyncio
import contextlib
from typing import Callable, Optional, Sequence

import pytest
import pytest_asyncio


class FakeHub:
    """Sensor hub stand-in listening on a loopback port."""

    def __init__(self) -> None:
        self.received = bytearray()
        self.connection_count = 0
        self.disconnect_count = 0
        self.port: Optional[int] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connection_count += 1
        self._writers.append(writer)
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                self.received.extend(data)
        except ConnectionError:
            pass
        finally:
            self.disconnect_count += 1

    async def push(self, data: bytes) -> None:
        for writer in list(self._writers):
            writer.write(data)
            await writer.drain()

    async def close_clients(self) -> None:
        writers, self._writers = self._writers, []
        for writer in writers:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

    async def stop(self) -> None:
        await self.close_clients()
        if self._server is not None:
            self._server.close()
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._server.wait_closed(), timeout=1.0)


class FakeVoiceCapture:
    """Minimal speech capability used by voice controller tests."""

    def __init__(self, *, fail_start: bool = False, fail_stop: bool = False) -> None:
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.started_locales: list[str] = []
        self.stop_calls = 0
        self.destroy_calls = 0
        self.handler = None

    async def start(self, locale: str) -> None:
        if self.fail_start:
            raise RuntimeError("microphone unavailable")
        self.started_locales.append(locale)

    async def stop(self) -> None:
        self.stop_calls += 1
        if self.fail_stop:
            raise RuntimeError("recogniser busy")

    async def destroy(self) -> None:
        self.destroy_calls += 1

    def set_results_handler(self, handler) -> None:
        self.handler = handler

    async def emit(self, candidates: Sequence[str]):
        assert self.handler is not None
        return await self.handler(candidates)


@pytest_asyncio.fixture
async def hub():
    server = FakeHub()
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


@pytest.fixture
def voice_capture() -> FakeVoiceCapture:
    return FakeVoiceCapture()


@pytest.fixture
def wait_until():
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    return _wait


@pytest.fixture
def voice_capture_factory():
    return FakeVoiceCapture
