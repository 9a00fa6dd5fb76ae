"""Base receiver abstract class for self-scheduled (push-model) acquisition."""

from abc import ABC, abstractmethod
from typing import Callable, Mapping, Optional
import asyncio
import logging
import math
import time

from ..utils.errors import ReceiverStateError
from ..utils.metrics import FieldValue, MetricRecord
from ..utils.status import ReceiverState

# Ticks handled later than this are reported as drift
DRIFT_THRESHOLD = 5.0

MISSED_TICK_POLICIES = ("coalesce", "replay")


class MetricReceiver(ABC):
    """
    Abstract base class for all receivers.

    A receiver owns one background task started by ``start``. The task runs
    an acquisition pass right away and then once per tick of a fixed grid
    (``start + k * interval``) until ``close`` is called. ``close`` waits for
    the task to finish: a pass in flight completes, no new pass begins.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        logger: Optional[logging.Logger] = None,
        missed_tick_policy: str = "coalesce"
    ):
        """
        Initialize base receiver.

        Args:
            name: Receiver name used as metric source
            interval: Seconds between acquisition passes
            logger: Logger instance
            missed_tick_policy: "coalesce" runs one catch-up pass for any
                number of missed ticks, "replay" runs one pass per missed tick
        """
        if missed_tick_policy not in MISSED_TICK_POLICIES:
            raise ValueError(f"Unknown missed tick policy: {missed_tick_policy}")

        logger = logger or logging.getLogger(__name__)
        self.name = name
        self.interval = interval
        self.missed_tick_policy = missed_tick_policy
        self.logger = logger.getChild(self.__class__.__name__)
        self.meta = {"source": self.name}
        self.state = ReceiverState.CONSTRUCTED
        self.sink: Optional["asyncio.Queue[MetricRecord]"] = None
        self.drift_threshold = DRIFT_THRESHOLD
        self.passes = 0

        self._clock: Callable[[], float] = time.monotonic
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    def set_sink(self, sink: "asyncio.Queue[MetricRecord]") -> None:
        self.sink = sink

    @abstractmethod
    async def read_metrics(self) -> None:
        """Perform one full acquisition pass and emit its records."""
        pass

    def start(self) -> None:
        """
        Launch the background task.

        Raises:
            ReceiverStateError: If already started, no sink is set, or no
                event loop is running
        """
        if self.state is not ReceiverState.CONSTRUCTED:
            raise ReceiverStateError(f"{self.name}: cannot start a receiver that is {self.state.value}")
        if self.sink is None:
            raise ReceiverStateError(f"{self.name}: no sink set")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise ReceiverStateError(f"{self.name}: start() requires a running event loop") from e

        self.logger.debug(f"{self.name} START")
        self._stop = asyncio.Event()
        self._task = loop.create_task(self._run(), name=f"receiver:{self.name}")
        self.state = ReceiverState.RUNNING
        self.logger.debug(f"{self.name} STARTED")

    async def close(self) -> None:
        """Signal stop and wait until the background task has exited."""
        if self.state is ReceiverState.CONSTRUCTED:
            self.state = ReceiverState.STOPPED
            return
        if self.state is ReceiverState.STOPPED:
            return

        self.logger.debug(f"{self.name} CLOSE")
        self.state = ReceiverState.STOPPING
        self._stop.set()
        try:
            await self._task
        finally:
            self.state = ReceiverState.STOPPED
        self.logger.debug(f"{self.name} DONE")

    async def emit(
        self,
        name: str,
        tags: Mapping[str, str],
        meta: Mapping[str, str],
        fields: Mapping[str, FieldValue]
    ) -> None:
        """Build a record and put it on the sink, waiting while it is full."""
        record = MetricRecord(name=name, tags=tags, meta=meta, fields=fields)
        await self.sink.put(record)

    async def _run(self) -> None:
        scheduled = self._clock() + self.interval

        while not self._stop.is_set():
            await self._run_pass()

            if await self._wait_for_tick(scheduled - self._clock()):
                return
            scheduled = self._handle_tick(scheduled, self._clock())

    async def _run_pass(self) -> None:
        self.passes += 1
        try:
            await self.read_metrics()
        except Exception as e:
            self.logger.error(f"{self.name}: acquisition pass failed: {e}", exc_info=True)

    async def _wait_for_tick(self, delay: float) -> bool:
        """
        Sleep until the next tick or until stop is signaled.

        Returns:
            bool: True if stop was signaled
        """
        if delay > 0:
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return self._stop.is_set()

    def _handle_tick(self, scheduled: float, now: float) -> float:
        """
        Account for a tick that is processed at ``now``.

        Args:
            scheduled: Time the tick was due
            now: Current clock value

        Returns:
            float: Time the following tick is due
        """
        drift = now - scheduled
        if drift > self.drift_threshold:
            self.logger.warning(f"{self.name}: missed ticker event for more than {drift:.3f}s")

        next_tick = scheduled + self.interval
        if self.missed_tick_policy == "coalesce" and next_tick <= now:
            missed = math.floor((now - next_tick) / self.interval) + 1
            self.logger.debug(f"{self.name}: coalescing {missed} missed tick(s)")
            next_tick += missed * self.interval
        return next_tick
