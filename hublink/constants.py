"""Constants used across the hublink package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "hublink"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_HUB_PORT = 10004
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_READ_CHUNK_SIZE = 4096

HISTORY_SIZE = 7

DEFAULT_VOICE_LOCALE = "ko-KR"
DEFAULT_HEART_RATE_PHRASES = ("심박수",)
DEFAULT_TEMPERATURE_HUMIDITY_PHRASES = ("온습도",)
DEFAULT_DISTANCE_PHRASES = ("거리측정",)

WIRE_LOGGER_NAME = f"{APP_NAME}.wire"
