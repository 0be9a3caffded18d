"""Target kinds and scheduler states."""

from enum import Enum


class TargetKind(Enum):
    """Kind of contract a target points at."""

    VAULT = "vault"
    BRIDGE = "bridge"


class CycleState(Enum):
    """Collection scheduler state."""

    IDLE = "idle"
    COLLECTING = "collecting"

    def is_busy(self) -> bool:
        """
        Check whether a collection cycle is in flight.

        Returns:
            bool: True while collecting
        """
        return self is CycleState.COLLECTING
