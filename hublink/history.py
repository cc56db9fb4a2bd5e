"""Bounded rolling history for the sensor hub channels."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterator, List, Union

from . import constants

Sample = Union[int, float]


class ChannelHistory:
    """Fixed-capacity window of the most recent samples of one channel.

    The window is created full of zero samples, so its length always equals
    the capacity. Pushing a sample evicts the oldest one.
    """

    def __init__(self, size: int = constants.HISTORY_SIZE) -> None:
        if size < 1:
            raise ValueError("History size must be positive")
        self._size = size
        self._samples: Deque[Sample] = deque([0] * size, maxlen=size)

    @property
    def size(self) -> int:
        return self._size

    @property
    def latest(self) -> Sample:
        return self._samples[-1]

    def push(self, value: Sample) -> None:
        self._samples.append(value)

    def values(self) -> List[Sample]:
        """Return the samples oldest first."""
        return list(self._samples)

    def average(self) -> float:
        # Zero padding counts towards the mean until it is evicted.
        return sum(self._samples) / self._size

    def reset(self) -> None:
        self._samples.clear()
        self._samples.extend([0] * self._size)

    def __iter__(self) -> Iterator[Sample]:
        return iter(list(self._samples))

    def __len__(self) -> int:
        return len(self._samples)

    def __repr__(self) -> str:
        return f"ChannelHistory({self.values()!r})"


@dataclass(slots=True)
class ChannelHistories:
    heart_rate: ChannelHistory = field(default_factory=ChannelHistory)
    temperature: ChannelHistory = field(default_factory=ChannelHistory)
    humidity: ChannelHistory = field(default_factory=ChannelHistory)

    def push_all(self, heart_rate: Sample, temperature: Sample, humidity: Sample) -> None:
        self.heart_rate.push(heart_rate)
        self.temperature.push(temperature)
        self.humidity.push(humidity)

    def reset(self) -> None:
        self.heart_rate.reset()
        self.temperature.reset()
        self.humidity.reset()

    def as_dict(self) -> dict[str, List[Sample]]:
        return {
            "heartRate": self.heart_rate.values(),
            "temperature": self.temperature.values(),
            "humidity": self.humidity.values(),
        }
