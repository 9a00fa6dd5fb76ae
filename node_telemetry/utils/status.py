"""Lifecycle states of acquisition units."""

from enum import Enum


class CollectorState(Enum):
    """Lifecycle of a pull-model collector."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


class ReceiverState(Enum):
    """Lifecycle of a push-model receiver."""

    CONSTRUCTED = "constructed"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        """True while the background task may still emit records."""
        return self in (ReceiverState.RUNNING, ReceiverState.STOPPING)
