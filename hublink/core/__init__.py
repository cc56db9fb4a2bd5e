"""Core primitives for hublink."""

from .protocols import ResultsHandler, VoiceCapture

__all__ = [
    "ResultsHandler",
    "VoiceCapture",
]
