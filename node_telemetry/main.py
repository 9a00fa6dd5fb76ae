"""Main application entry point for the node telemetry acquisition layer."""

import argparse
import asyncio
import logging
import signal
import sys
import time
from datetime import datetime
from typing import Dict, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .collectors.base import MetricCollector
from .collectors.beegfs_collector import BeegfsMetaCollector, BeegfsStorageCollector
from .collectors.topprocs_collector import TopProcsCollector
from .config.loader import ConfigLoader
from .config.models import AcquisitionConfig
from .config.settings import Settings
from .receivers.base import MetricReceiver
from .receivers.ipmi_receiver import IPMIReceiver
from .utils.errors import ConfigurationError
from .utils.logger import setup_logger
from .utils.metrics import MetricRecord


COLLECTOR_TYPES = {
    "beegfs_storage": BeegfsStorageCollector,
    "beegfs_meta": BeegfsMetaCollector,
    "topprocs": TopProcsCollector,
}

RECEIVER_TYPES = {
    "ipmi": IPMIReceiver,
}

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class AcquisitionApp:
    """
    Acquisition application.

    Initializes collectors and schedules their reads, starts receivers and
    drains the shared output queue into the log until shutdown.
    """

    def __init__(
        self,
        config: AcquisitionConfig,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize acquisition application.

        Args:
            config: Validated root configuration
            logger: Logger instance
        """
        self.config = config
        self.logger = logger or setup_logger("node_telemetry", config.log_level)
        self.queue: Optional["asyncio.Queue[MetricRecord]"] = None
        self.collectors: Dict[str, MetricCollector] = {}
        self.receivers: Dict[str, MetricReceiver] = {}
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.records_emitted = 0
        self._shutdown: Optional[asyncio.Event] = None
        self._serial_lock: Optional[asyncio.Lock] = None
        self._reads: Set[asyncio.Task] = set()

    @classmethod
    def from_file(cls, config_path: str, log_level: Optional[str] = None) -> "AcquisitionApp":
        """
        Load configuration and build the application.

        Raises:
            SystemExit: If configuration is invalid
        """
        logger = setup_logger("node_telemetry", log_level or "INFO")
        try:
            logger.info(f"Loading configuration from {config_path}")
            config = ConfigLoader.load_from_file(config_path)
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {config_path}")
            sys.exit(1)
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}", exc_info=True)
            sys.exit(1)

        if log_level is None:
            logger.setLevel(config.log_level.upper())
        return cls(config, logger)

    def build_units(self) -> None:
        """
        Instantiate all configured collectors and receivers.

        Raises:
            ConfigurationError: For unknown unit types or invalid receiver configs
        """
        for name in self.config.collectors:
            collector_class = COLLECTOR_TYPES.get(name)
            if collector_class is None:
                raise ConfigurationError(f"Unknown collector '{name}'")
            self.collectors[name] = collector_class(self.logger)

        for name, receiver_config in self.config.receivers.items():
            receiver_type = receiver_config.get("type", "ipmi")
            receiver_class = RECEIVER_TYPES.get(receiver_type)
            if receiver_class is None:
                raise ConfigurationError(f"Receiver '{name}' has unknown type '{receiver_type}'")
            self.receivers[name] = receiver_class(name, receiver_config, self.logger)

    async def init_collectors(self) -> None:
        """Initialize every collector; any failure aborts startup."""
        for name, collector in self.collectors.items():
            await collector.init(self.config.collectors[name])
            self.logger.info(f"Collector {name} initialized")

    async def drain(self) -> None:
        """Forward records from the output queue to the log."""
        while True:
            record = await self.queue.get()
            try:
                self.records_emitted += 1
                self.logger.info("metric", extra={"metric": record.to_dict()})
            finally:
                self.queue.task_done()

    def prepare(self) -> None:
        """Create the loop-bound queue and synchronization primitives."""
        self.queue = asyncio.Queue(maxsize=self.config.queue_size)
        self._shutdown = asyncio.Event()
        self._serial_lock = asyncio.Lock()

    async def read_collector(self, name: str) -> None:
        """
        Run one read of a collector.

        Collectors that are not ``parallel`` take turns with each other;
        parallel ones run whenever they are due. Reads in flight are tracked
        so shutdown can wait for them.
        """
        collector = self.collectors[name]
        task = asyncio.current_task()
        self._reads.add(task)
        try:
            if collector.parallel:
                await collector.read(self.config.interval, self.queue)
            else:
                async with self._serial_lock:
                    await collector.read(self.config.interval, self.queue)
        finally:
            self._reads.discard(task)

    async def run_once(self) -> None:
        """Run one read of every collector and one pass of every receiver."""
        parallel = [name for name, collector in self.collectors.items() if collector.parallel]
        serial = [name for name, collector in self.collectors.items() if not collector.parallel]

        async def read_serial():
            for name in serial:
                await self.read_collector(name)

        await asyncio.gather(read_serial(), *(self.read_collector(name) for name in parallel))
        for receiver in self.receivers.values():
            receiver.set_sink(self.queue)
        await asyncio.gather(*(receiver.read_metrics() for receiver in self.receivers.values()))

    def start_scheduler(self) -> None:
        """Schedule collector reads; a collector never overlaps with itself."""
        interval = self.config.interval
        self.scheduler = AsyncIOScheduler()

        for name, collector in self.collectors.items():
            self.scheduler.add_job(
                self.read_collector,
                trigger=IntervalTrigger(seconds=interval),
                args=[name],
                id=name,
                name=collector.name,
                max_instances=1,  # Prevent overlapping reads of one collector
                coalesce=True,
                next_run_time=datetime.now(),
            )

        self.scheduler.start()
        self.logger.info(f"Scheduler started with interval {interval}s for {len(self.collectors)} collector(s)")

    def start_receivers(self) -> None:
        for name, receiver in self.receivers.items():
            receiver.set_sink(self.queue)
            receiver.start()
            self.logger.info(f"Receiver {name} started")

    def request_shutdown(self, signum: Optional[int] = None) -> None:
        if signum is not None:
            self.logger.info(f"Received {signal.Signals(signum).name}, initiating graceful shutdown...")
        if self._shutdown is not None:
            self._shutdown.set()

    async def shutdown(self) -> None:
        """Stop scheduling, wait for receivers to exit and close collectors."""
        if self.scheduler and self.scheduler.running:
            # No new reads start; reads in flight finish before collectors close
            self.scheduler.pause()
            if self._reads:
                self.logger.info(f"Waiting for {len(self._reads)} collector read(s) in flight")
                await asyncio.gather(*self._reads, return_exceptions=True)
            self.scheduler.shutdown(wait=False)

        await asyncio.gather(*(receiver.close() for receiver in self.receivers.values()))
        for collector in self.collectors.values():
            collector.close()

        # Flush what is still queued
        await self.queue.join()
        self.logger.info(f"Shutdown complete, {self.records_emitted} record(s) emitted")

    async def run(self, once: bool = False) -> None:
        """
        Run the acquisition layer until SIGINT/SIGTERM (or one round with ``once``).

        Raises:
            ConfigurationError: If any unit fails to initialize
        """
        start_time = time.time()
        self.prepare()

        self.build_units()
        await self.init_collectors()

        loop = asyncio.get_running_loop()
        drain_task = asyncio.create_task(self.drain())
        try:
            if once:
                await self.run_once()
            else:
                for signum in SHUTDOWN_SIGNALS:
                    loop.add_signal_handler(signum, self.request_shutdown, signum)

                self.start_scheduler()
                self.start_receivers()
                await self._shutdown.wait()

            await self.shutdown()
        finally:
            if not once:
                for signum in SHUTDOWN_SIGNALS:
                    loop.remove_signal_handler(signum)
            drain_task.cancel()

        self.logger.info(f"Ran for {time.time() - start_time:.1f}s")


def main():
    """
    CLI entry point.

    Parses command-line arguments and starts the acquisition layer.
    """
    parser = argparse.ArgumentParser(
        description='Cluster node telemetry acquisition',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run collectors and receivers until interrupted
  python -m node_telemetry.main --config config/config.yaml

  # One acquisition round, print records, exit
  python -m node_telemetry.main --once --log-level DEBUG
        """
    )

    parser.add_argument(
        '--config',
        default=Settings.config_path(),
        help='Path to configuration file (default: config/config.yaml or NODE_TELEMETRY_CONFIG)'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run every collector and receiver once and exit'
    )

    parser.add_argument(
        '--log-level',
        default=Settings.log_level(),
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from config or NODE_TELEMETRY_LOG_LEVEL env var)'
    )

    args = parser.parse_args()

    app = AcquisitionApp.from_file(args.config, args.log_level)
    try:
        asyncio.run(app.run(once=args.once))
    except ConfigurationError as e:
        app.logger.error(f"Startup failed: {e}")
        sys.exit(1)
    except Exception as e:
        app.logger.error(f"Acquisition failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
