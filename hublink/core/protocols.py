"""Protocol definitions for external capabilities and callbacks."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, Sequence


ResultsHandler = Callable[[Sequence[str]], Awaitable[None] | None]


class VoiceCapture(Protocol):
    """Minimal contract for a speech recognition capability."""

    async def start(self, locale: str) -> None:
        """Begin capturing speech in the given locale."""
        ...

    async def stop(self) -> None:
        """Stop capturing. Any recognition still in flight is abandoned."""
        ...

    async def destroy(self) -> None:
        """Release the capability's resources."""
        ...

    def set_results_handler(self, handler: Optional[ResultsHandler]) -> None:
        """Route recognition results to ``handler``.

        The handler receives the candidate utterances ranked best first.
        Passing ``None`` unregisters it.
        """
        ...
