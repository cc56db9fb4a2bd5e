"""Translation of recognised utterances into hub commands."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from . import constants
from .config import VoiceConfig
from .history import ChannelHistories, ChannelHistory

LOGGER = logging.getLogger(__name__)

LENGTH_COMMAND = "LENGTH"

_WHITESPACE = re.compile(r"\s+")
_TWO_PLACES = Decimal("0.01")


class CommandIntent(str, Enum):
    HEART_RATE = "heart_rate"
    TEMPERATURE_HUMIDITY = "temperature_humidity"
    DISTANCE = "distance"


def normalize_utterance(text: str) -> str:
    """Remove every whitespace character from ``text``."""
    return _WHITESPACE.sub("", text)


def format_average(history: ChannelHistory) -> str:
    """Render the window average with two decimals, exact ties rounding away from zero."""
    value = history.average()
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if abs(value) >= 1e21:
        return repr(value)
    # Adding 0.0 turns -0.0 into 0.0.
    rounded = Decimal(value + 0.0).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    return f"{rounded:f}"


def _phrase_set(phrases: Iterable[str]) -> FrozenSet[str]:
    return frozenset(
        normalized for normalized in (normalize_utterance(p) for p in phrases) if normalized
    )


@dataclass(frozen=True, slots=True)
class CommandPhrases:
    heart_rate: FrozenSet[str] = field(
        default_factory=lambda: _phrase_set(constants.DEFAULT_HEART_RATE_PHRASES)
    )
    temperature_humidity: FrozenSet[str] = field(
        default_factory=lambda: _phrase_set(constants.DEFAULT_TEMPERATURE_HUMIDITY_PHRASES)
    )
    distance: FrozenSet[str] = field(
        default_factory=lambda: _phrase_set(constants.DEFAULT_DISTANCE_PHRASES)
    )

    @classmethod
    def from_config(cls, config: VoiceConfig) -> "CommandPhrases":
        return cls(
            heart_rate=_phrase_set(config.heart_rate_phrases),
            temperature_humidity=_phrase_set(config.temperature_humidity_phrases),
            distance=_phrase_set(config.distance_phrases),
        )


class CommandTranslator:
    """Maps an utterance to the command line sent to the hub.

    Matching is exact after whitespace removal. Averages are taken over the
    full history window, zero padding included. Anything unrecognised maps to
    the empty string, which the send pipeline treats as nothing to send.
    """

    def __init__(self, phrases: Optional[CommandPhrases] = None) -> None:
        self._phrases = phrases or CommandPhrases()

    @property
    def phrases(self) -> CommandPhrases:
        return self._phrases

    def match(self, utterance: str) -> Optional[CommandIntent]:
        normalized = normalize_utterance(utterance)
        if normalized in self._phrases.heart_rate:
            return CommandIntent.HEART_RATE
        if normalized in self._phrases.temperature_humidity:
            return CommandIntent.TEMPERATURE_HUMIDITY
        if normalized in self._phrases.distance:
            return CommandIntent.DISTANCE
        return None

    def translate(self, utterance: str, histories: ChannelHistories) -> str:
        intent = self.match(utterance)

        if intent is CommandIntent.HEART_RATE:
            command = f"HEART : {format_average(histories.heart_rate)}"
        elif intent is CommandIntent.TEMPERATURE_HUMIDITY:
            command = (
                f"{format_average(histories.temperature)}C, "
                f"{format_average(histories.humidity)}%"
            )
        elif intent is CommandIntent.DISTANCE:
            command = LENGTH_COMMAND
        else:
            command = ""

        LOGGER.debug("Utterance %r translated to %r", utterance, command)
        return command
