"""Tests for the hub connection session."""

import asyncio
import json
import math

import pytest

from hublink.codec import AllReading, LengthReading
from hublink.config import HubConfig
from hublink.session import (
    ConnectionState,
    HubConnectionError,
    HubSession,
    SessionStateError,
)


class _BrokenReader:
    """Stream reader that yields one chunk and then fails."""

    def __init__(self, chunk: bytes) -> None:
        self._chunks = [chunk]

    async def read(self, n: int) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        raise ConnectionResetError("connection reset by peer")


class _RecordingWriter:
    def __init__(self) -> None:
        self.written: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


def test_connection_state_enum_values():
    assert ConnectionState.DISCONNECTED.value == "disconnected"
    assert ConnectionState.CONNECTING.value == "connecting"
    assert ConnectionState.CONNECTED.value == "connected"
    assert ConnectionState.FAILED.value == "failed"


def test_initial_state():
    session = HubSession("127.0.0.1")

    assert session.state == ConnectionState.DISCONNECTED
    assert session.is_connected is False
    assert session.port == 10004
    assert session.latest.heart_rate is None
    assert session.histories.heart_rate.values() == [0] * 7


def test_from_config():
    session = HubSession.from_config(
        HubConfig(host="10.0.0.5", port=9000, line_buffering=False)
    )

    assert session.host == "10.0.0.5"
    assert session.port == 9000


@pytest.mark.asyncio
async def test_connect_and_receive_all_reading(hub, wait_until):
    session = HubSession("127.0.0.1", hub.port)
    transitions = []
    session.add_state_listener(lambda prev, cur: transitions.append((prev, cur)))

    await session.connect()
    try:
        assert session.state == ConnectionState.CONNECTED
        assert transitions == [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        ]

        await hub.push(b"ALL,72,23.5,55.2\n")
        await wait_until(lambda: session.latest.heart_rate == 72)

        assert session.latest.temperature == 23.5
        assert session.latest.humidity == 55.2
        assert session.histories.heart_rate.values() == [0, 0, 0, 0, 0, 0, 72]
        assert session.histories.temperature.values()[-1] == 23.5
        assert session.histories.humidity.values()[-1] == 55.2
    finally:
        await session.teardown()


@pytest.mark.asyncio
async def test_records_split_across_chunks_are_reassembled(hub, wait_until):
    session = HubSession("127.0.0.1", hub.port)
    messages = []
    session.add_reading_listener(messages.append)

    async with session:
        await session.connect()
        await wait_until(lambda: hub.connection_count == 1)

        await hub.push(b"ALL,7")
        await asyncio.sleep(0.05)
        await hub.push(b"0,20.0,40.0\nLENGTH,1")
        await asyncio.sleep(0.05)
        await hub.push(b"34\r\n")

        await wait_until(lambda: len(messages) == 2)

    assert messages == [AllReading(70, 20.0, 40.0), LengthReading("134")]


@pytest.mark.asyncio
async def test_remote_close_clears_temperature_and_humidity_only(hub, wait_until):
    session = HubSession("127.0.0.1", hub.port)
    await session.connect()
    await wait_until(lambda: hub.connection_count == 1)

    await hub.push(b"ALL,72,23.5,55.2\nLENGTH,134\n")
    await wait_until(lambda: session.latest.distance == "134")

    await hub.close_clients()
    await wait_until(lambda: session.state == ConnectionState.DISCONNECTED)

    # Only temperature and humidity revert on close; heart rate and distance stay.
    assert session.latest.temperature is None
    assert session.latest.humidity is None
    assert session.latest.heart_rate == 72
    assert session.latest.distance == "134"
    assert session.histories.heart_rate.values()[-1] == 72

    await session.teardown()


@pytest.mark.asyncio
async def test_close_applies_trailing_fragment(hub, wait_until):
    session = HubSession("127.0.0.1", hub.port)
    await session.connect()
    await wait_until(lambda: hub.connection_count == 1)

    await hub.push(b"LENGTH,88")
    await hub.close_clients()
    await wait_until(lambda: session.state == ConnectionState.DISCONNECTED)

    assert session.latest.distance == "88"
    await session.teardown()


@pytest.mark.asyncio
async def test_connect_failure_transitions_to_failed(unused_tcp_port):
    session = HubSession("127.0.0.1", unused_tcp_port, connect_timeout=1.0)

    with pytest.raises(HubConnectionError):
        await session.connect()

    assert session.state == ConnectionState.FAILED
    await session.teardown()


@pytest.mark.asyncio
async def test_retry_from_failed_keeps_histories(hub, unused_tcp_port):
    session = HubSession("127.0.0.1", unused_tcp_port, connect_timeout=1.0)
    session.handle_data(b"ALL,65,21.0,50.0\n")

    with pytest.raises(HubConnectionError):
        await session.connect()

    await session.connect(port=hub.port)
    try:
        assert session.state == ConnectionState.CONNECTED
        assert session.histories.heart_rate.values()[-1] == 65
    finally:
        await session.teardown()


@pytest.mark.asyncio
async def test_connect_while_connected_is_rejected(hub):
    session = HubSession("127.0.0.1", hub.port)
    await session.connect()
    try:
        with pytest.raises(SessionStateError):
            await session.connect()
    finally:
        await session.teardown()


@pytest.mark.asyncio
async def test_connect_requires_host():
    session = HubSession()

    with pytest.raises(ValueError):
        await session.connect()
    assert session.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_transport_error_marks_session_failed(monkeypatch, wait_until):
    writer = _RecordingWriter()

    async def fake_open_connection(host, port):
        return _BrokenReader(b"ALL,80,22.0,45.0\n"), writer

    monkeypatch.setattr(asyncio, "open_connection", fake_open_connection)

    session = HubSession("hub.local")
    await session.connect()
    await wait_until(lambda: session.state == ConnectionState.FAILED)

    assert writer.closed is True
    assert session.latest.heart_rate == 80
    assert session.latest.temperature == 22.0
    assert session.histories.humidity.values()[-1] == 45.0
    with pytest.raises(SessionStateError):
        session.send(b"LENGTH\n")

    await session.teardown()


def test_handle_error_keeps_last_known_values():
    session = HubSession("127.0.0.1")
    session.handle_data(b"ALL,72,23.5,55.2\n")

    session.handle_error(ConnectionResetError("reset"))

    assert session.state == ConnectionState.FAILED
    assert session.latest.temperature == 23.5
    assert session.histories.temperature.values()[-1] == 23.5


def test_unknown_records_do_not_change_state():
    session = HubSession("127.0.0.1")
    before = session.snapshot()

    session.handle_data(b"UNKNOWN,1,2\n")

    assert session.snapshot() == before


def test_unbuffered_mode_decodes_each_chunk_as_a_record():
    session = HubSession("127.0.0.1", line_buffering=False)

    session.handle_data(b"ALL,72,23.5,55.2")

    assert session.latest.heart_rate == 72
    assert session.histories.humidity.values()[-1] == 55.2


def test_history_holds_last_seven_readings():
    session = HubSession("127.0.0.1")

    for beat in range(60, 70):
        session.handle_data(f"ALL,{beat},20.0,40.0\n".encode())

    assert session.histories.heart_rate.values() == [63, 64, 65, 66, 67, 68, 69]
    assert len(session.histories.temperature) == 7


def test_length_reading_does_not_touch_histories():
    session = HubSession("127.0.0.1")

    session.handle_data(b"LENGTH,134\n")

    assert session.latest.distance == "134"
    assert session.histories.as_dict() == {
        "heartRate": [0] * 7,
        "temperature": [0] * 7,
        "humidity": [0] * 7,
    }


def test_failing_listener_does_not_break_session():
    session = HubSession("127.0.0.1")

    def _boom(message):
        raise RuntimeError("listener failure")

    session.add_reading_listener(_boom)
    session.handle_data(b"LENGTH,10\n")

    assert session.latest.distance == "10"


def test_snapshot_renders_nan_as_null():
    session = HubSession("127.0.0.1")
    session.handle_data(b"ALL,abc,23.5,55.2\n")

    snapshot = session.snapshot()

    assert math.isnan(session.latest.heart_rate)
    assert snapshot["latest"]["heartRate"] is None
    assert snapshot["histories"]["heartRate"][-1] is None
    assert snapshot["state"] == "disconnected"


def test_snapshot_renders_infinite_readings_as_null():
    session = HubSession("127.0.0.1")
    session.handle_data(b"ALL,72,1e999,-1e999\n")

    snapshot = session.snapshot()

    assert session.latest.temperature == math.inf
    assert snapshot["latest"]["temperature"] is None
    assert snapshot["latest"]["humidity"] is None
    assert snapshot["histories"]["temperature"][-1] is None
    assert json.loads(json.dumps(snapshot, allow_nan=False)) == snapshot


@pytest.mark.asyncio
async def test_teardown_is_idempotent(hub, wait_until):
    session = HubSession("127.0.0.1", hub.port)
    await session.connect()
    session.handle_data(b"ALL,72,23.5,55.2\n")

    await session.teardown()
    snapshot = session.snapshot()
    await session.teardown()

    assert session.state == ConnectionState.DISCONNECTED
    assert session.snapshot() == snapshot
    assert session.latest.heart_rate is None
    assert session.histories.heart_rate.values() == [0] * 7
    await wait_until(lambda: hub.disconnect_count == 1)


@pytest.mark.asyncio
async def test_teardown_during_connect_releases_socket(hub, monkeypatch, wait_until):
    gate = asyncio.Event()
    real_open_connection = asyncio.open_connection

    async def slow_open_connection(host, port):
        await gate.wait()
        return await real_open_connection(host, port)

    monkeypatch.setattr(asyncio, "open_connection", slow_open_connection)

    session = HubSession("127.0.0.1", hub.port)
    attempt = asyncio.create_task(session.connect())
    await asyncio.sleep(0)
    assert session.state == ConnectionState.CONNECTING

    await session.teardown()
    assert session.state == ConnectionState.DISCONNECTED

    gate.set()
    with pytest.raises(HubConnectionError):
        await attempt

    assert session.state == ConnectionState.DISCONNECTED
    await wait_until(lambda: hub.disconnect_count == 1)
