"""BeeGFS on-demand client statistics collectors via beegfs-ctl."""

import asyncio
import logging
from pathlib import Path
from typing import Collection, List, Optional

from ..config.models import BeegfsCollectorConfig
from ..utils.exclusion import ExclusionSet
from ..utils.metrics import MetricRecord
from .base import MetricCollector, safe_read
from .output_parser import MatchTable, OutputParser
from .process_runner import ProcessRunner

MOUNTS_FILE = "/proc/mounts"
BEEGFS_FS_MARKER = "beegfs_ondemand"

STORAGE_STATS = (
    "sum", "ack", "sChDrct", "getFSize",
    "sAttr", "statfs", "trunc", "close",
    "fsync", "ops-rd", "MiB-rd/s", "ops-wr",
    "MiB-wr/s", "gendbg", "hrtbeat", "remNode",
    "storInf", "unlnk",
)

META_STATS = (
    "sum", "ack", "close", "entInf",
    "fndOwn", "mkdir", "create", "rddir",
    "refrEn", "mdsInf", "rmdir", "rmLnk",
    "mvDirIns", "mvFiIns", "open", "ren",
    "sChDrct", "sAttr", "sDirPat", "stat",
    "statfs", "trunc", "symlnk", "unlnk",
    "lookLI", "statLI", "revalLI", "openLI",
    "createLI", "hardlnk", "flckAp", "flckEn",
    "flckRg", "dirparent", "listXA", "getXA",
    "rmXA", "setXA", "mirror",
)


def discover_mounts(
    mounts_file: str = MOUNTS_FILE,
    marker: str = BEEGFS_FS_MARKER,
    exclude: Collection[str] = ()
) -> List[str]:
    """
    List mount points of BeeGFS on-demand file systems.

    Args:
        mounts_file: Mount table in /proc/mounts format
        marker: Substring identifying the file system in the device column
        exclude: Mount points to skip

    Returns:
        List[str]: Matching mount points in table order
    """
    mountpoints = []
    for line in Path(mounts_file).read_text().splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        if marker in fields[0] and fields[1] not in exclude:
            mountpoints.append(fields[1])
    return mountpoints


class BeegfsCollector(MetricCollector):
    """
    Collector for BeeGFS client statistics of one node type.

    Subclasses pick the node type queried with ``--nodetype`` and the list of
    operation counters reported by beegfs-ctl for it.
    """

    config_model = BeegfsCollectorConfig
    node_type: str = ""
    metric_prefix: str = ""
    stats: tuple = ()

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.mounts_file = MOUNTS_FILE
        self.table: Optional[MatchTable] = None
        self.parser: Optional[OutputParser] = None
        self.skip_fs: frozenset = frozenset()
        self.tags = {"type": "node", "filesystem": ""}

    async def setup(self, config: BeegfsCollectorConfig) -> None:
        self.table = MatchTable(
            self.stats,
            exclude=ExclusionSet(config.exclude_metrics),
            prefix=self.metric_prefix,
        )
        self.parser = OutputParser(self.table, logger=self.logger)
        self.skip_fs = frozenset(config.exclude_filesystem)

        # BeeGFS file system statistics can only be queried by user root
        self.require_root("BeeGFS file system statistics")
        self.require_binary(config.beegfs_path)

    def build_command(self, mountpoint: str) -> List[str]:
        return [
            self.config.beegfs_path,
            "--clientstats",
            f"--nodetype={self.node_type}",
            f"--mount={mountpoint}",
            "--allstats",
        ]

    @safe_read
    async def collect(self, interval: float, output: "asyncio.Queue[MetricRecord]") -> None:
        """
        Collect client statistics for every mounted BeeGFS on-demand file system.

        Mounts are discovered on every tick. A failing beegfs-ctl call skips
        that mount only.
        """
        mountpoints = discover_mounts(self.mounts_file, exclude=self.skip_fs)
        if not mountpoints:
            return

        for mountpoint in mountpoints:
            tags = dict(self.tags, filesystem=mountpoint)

            result = await ProcessRunner.run(self.build_command(mountpoint), logger=self.logger)
            if not result.ok:
                self.logger.error(f"{self.name}.read(): {result.describe()}")
                self.logger.error(f"{self.name}.read(): command stderr: \"{result.stderr.strip()}\"")
                self.logger.error(f"{self.name}.read(): command stdout: \"{result.stdout.strip()}\"")
                continue

            for snapshot in self.parser.parse(result.stdout):
                for key, data in snapshot.items():
                    await self.emit(output, key, tags, {"value": float(data)})


class BeegfsStorageCollector(BeegfsCollector):
    """Client statistics of the storage servers (``--nodetype=storage``)."""

    name = "BeegfsStorageCollector"
    group = "BeegfsStorage"
    node_type = "storage"
    metric_prefix = "beegfs_cstorage_"
    stats = STORAGE_STATS


class BeegfsMetaCollector(BeegfsCollector):
    """Client statistics of the metadata servers (``--nodetype=meta``)."""

    name = "BeegfsMetaCollector"
    group = "BeegfsMeta"
    node_type = "meta"
    metric_prefix = "beegfs_cmeta_"
    stats = META_STATS
