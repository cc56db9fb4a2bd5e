"""Configuration loader for hublink."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from . import constants


@dataclass(slots=True)
class HubConfig:
    host: Optional[str] = None
    port: int = constants.DEFAULT_HUB_PORT
    connect_timeout_seconds: float = constants.DEFAULT_CONNECT_TIMEOUT_SECONDS
    read_chunk_size: int = constants.DEFAULT_READ_CHUNK_SIZE
    line_buffering: bool = True  # False decodes each received chunk as one record


@dataclass(slots=True)
class VoiceConfig:
    locale: str = constants.DEFAULT_VOICE_LOCALE
    heart_rate_phrases: List[str] = field(
        default_factory=lambda: list(constants.DEFAULT_HEART_RATE_PHRASES)
    )
    temperature_humidity_phrases: List[str] = field(
        default_factory=lambda: list(constants.DEFAULT_TEMPERATURE_HUMIDITY_PHRASES)
    )
    distance_phrases: List[str] = field(
        default_factory=lambda: list(constants.DEFAULT_DISTANCE_PHRASES)
    )


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class StatusConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class HubLinkConfig:
    hub: HubConfig
    voice: VoiceConfig
    logging: LoggingConfig
    status: StatusConfig
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def split_host_port(value: str, default_port: int) -> Tuple[str, int]:
    """Split an optional ``:port`` suffix off a hub address."""

    host = value.strip()
    if ":" in host:
        host_part, port_part = host.rsplit(":", 1)
        try:
            return host_part, int(port_part)
        except ValueError:
            pass
    return host, default_port


def load_config(path: Optional[Path] = None) -> HubLinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "hub": {
                "host": "",
                "port": str(constants.DEFAULT_HUB_PORT),
                "connect_timeout_seconds": str(constants.DEFAULT_CONNECT_TIMEOUT_SECONDS),
                "read_chunk_size": str(constants.DEFAULT_READ_CHUNK_SIZE),
                "line_buffering": "true",
            },
            "voice": {
                "locale": constants.DEFAULT_VOICE_LOCALE,
                "heart_rate_phrases": ",".join(constants.DEFAULT_HEART_RATE_PHRASES),
                "temperature_humidity_phrases": ",".join(
                    constants.DEFAULT_TEMPERATURE_HUMIDITY_PHRASES
                ),
                "distance_phrases": ",".join(constants.DEFAULT_DISTANCE_PHRASES),
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
            "status": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path, encoding="utf-8")

    host_value, port_value = split_host_port(
        parser.get("hub", "host"),
        parser.getint("hub", "port", fallback=constants.DEFAULT_HUB_PORT),
    )
    parser.set("hub", "host", host_value)
    parser.set("hub", "port", str(port_value))

    hub = HubConfig(
        host=host_value or None,
        port=port_value,
        connect_timeout_seconds=max(
            0.1,
            parser.getfloat(
                "hub",
                "connect_timeout_seconds",
                fallback=constants.DEFAULT_CONNECT_TIMEOUT_SECONDS,
            ),
        ),
        read_chunk_size=max(
            1,
            parser.getint(
                "hub", "read_chunk_size", fallback=constants.DEFAULT_READ_CHUNK_SIZE
            ),
        ),
        line_buffering=parser.getboolean("hub", "line_buffering", fallback=True),
    )

    voice = VoiceConfig(
        locale=parser.get("voice", "locale", fallback=constants.DEFAULT_VOICE_LOCALE),
        heart_rate_phrases=_parse_list(
            parser.get("voice", "heart_rate_phrases", fallback=""),
            default=constants.DEFAULT_HEART_RATE_PHRASES,
        ),
        temperature_humidity_phrases=_parse_list(
            parser.get("voice", "temperature_humidity_phrases", fallback=""),
            default=constants.DEFAULT_TEMPERATURE_HUMIDITY_PHRASES,
        ),
        distance_phrases=_parse_list(
            parser.get("voice", "distance_phrases", fallback=""),
            default=constants.DEFAULT_DISTANCE_PHRASES,
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    status = StatusConfig(
        enabled=parser.getboolean("status", "enabled", fallback=False),
        host=parser.get("status", "host", fallback="127.0.0.1"),
        port=parser.getint("status", "port", fallback=0),
    )

    return HubLinkConfig(
        hub=hub,
        voice=voice,
        logging=logging_config,
        status=status,
        raw=parser,
        path=config_path,
    )


def save_config(config: HubLinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
