"""Top processes by CPU usage collector."""

import asyncio
import logging
from typing import List, Optional

from ..config.models import TopProcsCollectorConfig
from ..utils.errors import ConfigurationError
from ..utils.metrics import MetricRecord
from .base import MetricCollector, safe_read
from .process_runner import ProcessRunner


class TopProcsCollector(MetricCollector):
    """Reports the command names of the processes using the most CPU."""

    name = "TopProcsCollector"
    group = "TopProcs"
    config_model = TopProcsCollectorConfig

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.tags = {"type": "node"}

    def build_command(self) -> List[str]:
        return [self.config.binary_path, "-Ao", "comm", "--sort=-pcpu"]

    async def setup(self, config: TopProcsCollectorConfig) -> None:
        result = await ProcessRunner.run(self.build_command(), stdin=None, logger=self.logger)
        if not result.ok:
            raise ConfigurationError(f"{self.name}.init(): {result.describe()}")

    @safe_read
    async def collect(self, interval: float, output: "asyncio.Queue[MetricRecord]") -> None:
        result = await ProcessRunner.run(self.build_command(), stdin=None, logger=self.logger)
        if not result.ok:
            self.logger.error(f"{self.name}.read(): {result.describe()}: {result.stderr.strip()}")
            return

        # First line is the COMMAND header
        lines = result.stdout.splitlines()[1:]
        for i, line in enumerate(lines[:self.config.num_procs], start=1):
            await self.emit(output, f"topproc{i}", self.tags, {"value": line.strip()})
