"""Line protocol spoken by the sensor hub.

Inbound records are comma separated and newline terminated::

    ALL,<heart rate>,<temperature>,<humidity>
    LENGTH,<distance>

Outbound commands are a single line of text followed by ``\\n`` with no
further framing.
"""

from __future__ import annotations

import logging
import math
import re
import sys
from dataclasses import dataclass
from typing import List, Optional, Union

LOGGER = logging.getLogger(__name__)

RECORD_SEPARATOR = "\n"
FIELD_SEPARATOR = ","

TAG_ALL = "ALL"
TAG_LENGTH = "LENGTH"

DEFAULT_MAX_FRAGMENT_BYTES = 64 * 1024

_LINE_BREAKS = re.compile(r"[\r\n]")
_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")


class ProtocolError(ValueError):
    """Raised when an outbound payload cannot be framed."""


@dataclass(frozen=True, slots=True)
class AllReading:
    heart_rate: Union[int, float]
    temperature: float
    humidity: float


@dataclass(frozen=True, slots=True)
class LengthReading:
    distance: str


InboundMessage = Union[AllReading, LengthReading]


def parse_int(value: str) -> Union[int, float]:
    """Parse the leading integer of ``value``, or return NaN."""

    match = _INT_PREFIX.match(value)
    if match is None:
        return math.nan
    number = int(match.group(1))
    if abs(number) > sys.float_info.max:
        return math.copysign(math.inf, number)
    return number


def parse_float(value: str) -> float:
    """Parse the leading decimal number of ``value``, or return NaN."""

    match = _FLOAT_PREFIX.match(value)
    if match is None:
        return math.nan
    return float(match.group(1))


def _to_text(chunk: Union[bytes, bytearray, str]) -> str:
    if isinstance(chunk, (bytes, bytearray)):
        return bytes(chunk).decode("utf-8", errors="replace")
    return chunk


def decode_record(line: str) -> Optional[InboundMessage]:
    """Decode one framed record. Unknown or malformed records yield ``None``."""

    fields = _LINE_BREAKS.sub("", line).split(FIELD_SEPARATOR)
    tag = fields[0]

    if tag == TAG_ALL:
        if len(fields) != 4:
            LOGGER.debug("Ignoring %s record with %d fields", tag, len(fields))
            return None
        return AllReading(
            heart_rate=parse_int(fields[1]),
            temperature=parse_float(fields[2]),
            humidity=parse_float(fields[3]),
        )

    if tag == TAG_LENGTH:
        if len(fields) != 2:
            LOGGER.debug("Ignoring %s record with %d fields", tag, len(fields))
            return None
        return LengthReading(distance=fields[1])

    if tag:
        LOGGER.debug("Ignoring record with unknown tag %r", tag)
    return None


def decode(chunk: Union[bytes, bytearray, str]) -> Optional[InboundMessage]:
    """Decode a chunk that holds exactly one record.

    Every line break in the chunk is removed before splitting, so the chunk is
    treated as a single record regardless of where its terminators sit.
    """

    return decode_record(_to_text(chunk))


def encode_command(command: str) -> bytes:
    """Frame an outbound command as a single newline terminated line."""

    if RECORD_SEPARATOR in command:
        raise ProtocolError("Command must not contain a line terminator")
    return (command + RECORD_SEPARATOR).encode("utf-8")


class LineAssembler:
    """Reassembles newline terminated records from arbitrary stream chunks."""

    def __init__(self, max_fragment_bytes: int = DEFAULT_MAX_FRAGMENT_BYTES) -> None:
        self._max_fragment_bytes = max_fragment_bytes
        self._buffer = bytearray()

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: Union[bytes, bytearray, str]) -> List[str]:
        """Append ``chunk`` and return every record it completed."""

        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer.extend(chunk)

        *complete, remainder = bytes(self._buffer).split(b"\n")
        self._buffer = bytearray(remainder)

        if len(self._buffer) > self._max_fragment_bytes:
            LOGGER.warning(
                "Dropping %d byte fragment without a line terminator",
                len(self._buffer),
            )
            self._buffer.clear()

        lines: List[str] = []
        for raw in complete:
            line = _LINE_BREAKS.sub("", raw.decode("utf-8", errors="replace"))
            if line:
                lines.append(line)
        return lines

    def flush(self) -> Optional[str]:
        """Return and forget the trailing fragment, if any."""

        if not self._buffer:
            return None
        line = _LINE_BREAKS.sub("", self._buffer.decode("utf-8", errors="replace"))
        self._buffer.clear()
        return line or None

    def clear(self) -> None:
        self._buffer.clear()
