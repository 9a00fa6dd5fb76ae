"""Exception hierarchy for the acquisition layer."""

from typing import Optional


class AcquisitionError(Exception):
    """Base class for all acquisition errors."""


class ConfigurationError(AcquisitionError):
    """Fatal error while constructing or initializing a unit."""


class CollectorStateError(AcquisitionError):
    """Operation not valid in the collector's current lifecycle state."""


class ReceiverStateError(AcquisitionError):
    """Operation not valid in the receiver's current lifecycle state."""


class CommandError(AcquisitionError):
    """
    External command could not be started or exited non-zero.

    Attributes:
        result: CommandResult describing the failed invocation
    """

    def __init__(self, message: str, result: Optional[object] = None):
        super().__init__(message)
        self.result = result
