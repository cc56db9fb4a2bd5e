"""Pending command slot and its delivery to the hub."""

from __future__ import annotations

import logging
from typing import Optional

from .codec import ProtocolError, encode_command
from .session import ConnectionState, HubSession

LOGGER = logging.getLogger(__name__)


class SendPipeline:
    """Sends the pending command once the session is connected.

    There is a single pending slot; submitting overwrites it. Delivery is
    evaluated when a command is submitted and whenever the session enters
    ``CONNECTED``. Nothing polls, so a command submitted while disconnected
    waits for the next connection.
    """

    def __init__(self, session: HubSession) -> None:
        self._session = session
        self._pending: Optional[str] = None
        self._sent_count = 0
        session.add_state_listener(self._on_state_change)

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    @property
    def sent_count(self) -> int:
        return self._sent_count

    def submit(self, command: str) -> bool:
        """Replace the pending command and try to deliver it.

        Returns:
            True if the command was written to the hub.
        """
        self._pending = command or None
        return self.evaluate()

    def clear(self) -> None:
        self._pending = None

    def evaluate(self) -> bool:
        command = self._pending
        if not command:
            return False

        if self._session.state != ConnectionState.CONNECTED:
            LOGGER.debug("Hub not connected; keeping %r pending", command)
            return False

        try:
            payload = encode_command(command)
        except ProtocolError as exc:
            LOGGER.warning("Dropping command %r: %s", command, exc)
            self._pending = None
            return False

        # At most once: the slot is cleared whether or not the write succeeds.
        self._pending = None
        try:
            self._session.send(payload)
        except (OSError, RuntimeError) as exc:
            LOGGER.warning("Failed to send %r to hub: %s", command, exc)
            return False

        self._sent_count += 1
        LOGGER.info("Sent to hub: %s", command)
        return True

    def detach(self) -> None:
        self._session.remove_state_listener(self._on_state_change)

    def _on_state_change(
        self, previous: ConnectionState, current: ConnectionState
    ) -> None:
        if current == ConnectionState.CONNECTED:
            self.evaluate()
