"""Base collector abstract class for all pull-model collectors."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Type
import asyncio
import logging
import os
import shutil
from functools import wraps

from pydantic import BaseModel

from ..config.loader import ConfigLoader, RawConfig
from ..utils.errors import CollectorStateError, ConfigurationError
from ..utils.metrics import FieldValue, MetricRecord
from ..utils.status import CollectorState


class MetricCollector(ABC):
    """
    Abstract base class for all collectors.

    A collector is driven by an external scheduler: ``init`` once, ``read``
    once per tick, ``close`` at shutdown. Calls to ``read`` of one instance
    are never concurrent; calls on different instances may be.
    """

    name: str = "MetricCollector"
    group: str = ""
    config_model: Type[BaseModel] = BaseModel
    # May run alongside other collectors
    parallel: bool = True

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize base collector.

        Args:
            logger: Logger instance
        """
        logger = logger or logging.getLogger(__name__)
        self.logger = logger.getChild(self.__class__.__name__)
        self.state = CollectorState.UNINITIALIZED
        self.config: Optional[BaseModel] = None
        self.meta: Dict[str, str] = {"source": self.name, "group": self.group}

    @property
    def ready(self) -> bool:
        return self.state is CollectorState.READY

    async def init(self, config: RawConfig = None) -> None:
        """
        Parse configuration and prepare the collector.

        Calling init on a ready collector is a no-op.

        Args:
            config: JSON document, mapping or None for defaults

        Raises:
            ConfigurationError: If configuration, privileges or binaries are missing
        """
        if self.ready:
            return

        parsed = ConfigLoader.parse_unit_config(config, self.config_model, self.name)
        self.config = parsed
        await self.setup(parsed)
        self.state = CollectorState.READY
        self.logger.debug(f"{self.name} initialized")

    @abstractmethod
    async def setup(self, config: Any) -> None:
        """
        Collector-specific initialization.

        Raises:
            ConfigurationError: On any fatal initialization problem
        """
        pass

    async def read(self, interval: float, output: "asyncio.Queue[MetricRecord]") -> None:
        """
        Acquire one tick of metrics and put them on the output queue.

        Args:
            interval: Scheduling interval in seconds
            output: Bounded output queue

        Raises:
            CollectorStateError: If the collector is not initialized
        """
        if not self.ready:
            raise CollectorStateError(
                f"{self.name}.read(): collector is {self.state.value}, not ready"
            )
        await self.collect(interval, output)

    @abstractmethod
    async def collect(self, interval: float, output: "asyncio.Queue[MetricRecord]") -> None:
        """
        Collect metrics for the current tick.

        Note:
            Implementations should use @safe_read so a failing tick is
            logged and skipped instead of propagating to the scheduler.
        """
        pass

    def close(self) -> None:
        """Mark the collector closed; ``init`` may be called again."""
        self.state = CollectorState.CLOSED
        self.logger.debug(f"{self.name} closed")

    async def emit(
        self,
        output: "asyncio.Queue[MetricRecord]",
        name: str,
        tags: Mapping[str, str],
        fields: Mapping[str, FieldValue]
    ) -> None:
        """Build a record and put it on the queue, waiting while it is full."""
        record = MetricRecord(name=name, tags=tags, meta=self.meta, fields=fields)
        await output.put(record)

    def require_root(self, reason: str) -> None:
        """
        Raises:
            ConfigurationError: If not running with effective uid 0
        """
        if os.geteuid() != 0:
            raise ConfigurationError(f"{self.name}.init(): {reason} can only be queried by user root")

    def require_binary(self, path: str) -> str:
        """
        Resolve an executable on the search path.

        Returns:
            str: Resolved path

        Raises:
            ConfigurationError: If the binary is not found
        """
        resolved = shutil.which(path)
        if resolved is None:
            raise ConfigurationError(f"{self.name}.init(): failed to find binary '{path}'")
        return resolved


def safe_read(func):
    """
    Decorator to handle collector exceptions gracefully.

    A failure inside one tick is logged with its traceback and the tick's
    remaining emission is skipped; the collector stays ready.

    Args:
        func: Collector coroutine to wrap

    Returns:
        Wrapped coroutine
    """
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(f"Collection failed: {e}", exc_info=True)
            return None
    return wrapper
