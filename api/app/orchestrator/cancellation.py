"""Cancellation controller - a generation counter guarding one in-flight analysis."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("wellwell.orchestrator.cancel")


class ControllerState(str, Enum):
    idle = "idle"
    armed = "armed"
    resolved = "resolved"
    cancelled = "cancelled"


@dataclass
class CancellationToken:
    generation: int
    cancelled: bool = False


class CancellationController:
    """Owns the current token of one orchestrator instance.

    Tokens are never shared: ``arm`` replaces the previous token, so a
    superseded call sees a generation mismatch at its next checkpoint.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._token: CancellationToken | None = None
        self.state = ControllerState.idle

    @property
    def is_armed(self) -> bool:
        return self.state == ControllerState.armed

    def arm(self) -> CancellationToken | None:
        """Arm a fresh token.  Returns None when a call is already in flight."""
        if self.is_armed:
            return None
        self._generation += 1
        self._token = CancellationToken(generation=self._generation)
        self.state = ControllerState.armed
        return self._token

    def is_current(self, token: CancellationToken) -> bool:
        """Checkpoint: True only for the live, uncancelled token."""
        return (
            not token.cancelled
            and self._token is token
            and self.state == ControllerState.armed
        )

    def cancel(self) -> bool:
        if not self.is_armed or self._token is None:
            return False
        self._token.cancelled = True
        self.state = ControllerState.cancelled
        logger.info("[CANCEL] generation=%d cancelled", self._token.generation)
        return True

    def resolve(self, token: CancellationToken) -> bool:
        """Move Armed -> Resolved for the live token; stale tokens are ignored."""
        if not self.is_current(token):
            return False
        self.state = ControllerState.resolved
        return True
