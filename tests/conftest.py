"""Shared pytest configuration and fixtures."""

import asyncio
import logging
from typing import List

import pytest

from node_telemetry.collectors.process_runner import CommandResult
from node_telemetry.utils.metrics import MetricRecord


@pytest.fixture
def logger():
    """Create logger for tests (propagates so caplog sees it)."""
    return logging.getLogger("tests")


@pytest.fixture
def beegfs_output():
    """Output of `beegfs-ctl --clientstats --nodetype=storage --allstats`."""
    return """====== 10 s ======
Sum:          13 [sum]          10 [ack]           2 [close]           1 [MiB-wr/s]
10.0.0.1      7 [sum]           5 [ack]            1 [close]           1 [MiB-wr/s]
10.0.0.2      6 [sum]           5 [ack]            1 [close]
"""


@pytest.fixture
def mounts_file(tmp_path):
    """A /proc/mounts look-alike with two BeeGFS on-demand mounts."""
    path = tmp_path / "mounts"
    path.write_text(
        "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
        "/dev/sda1 / ext4 rw,relatime 0 0\n"
        "beegfs_ondemand /mnt/beeond beegfs rw,relatime,cfgFile=/etc/beegfs/beeond.conf 0 0\n"
        "\n"
        "beegfs_ondemand /mnt/beeond2 beegfs rw,relatime,cfgFile=/etc/beegfs/beeond2.conf 0 0\n"
        "beegfs_nodev /mnt/beegfs beegfs rw,relatime 0 0\n"
    )
    return str(path)


@pytest.fixture
def ipmi_config():
    """Minimal valid IPMI receiver configuration."""
    return {
        "interval": "30s",
        "endpoint": "ipmi-sensors://ipmi-%h",
        "username": "admin",
        "password": "s3cret",
        "client_config": [
            {"host_list": ["n1", "n2"]},
        ],
    }


def ok_result(stdout: str = "", command: str = "cmd") -> CommandResult:
    return CommandResult(command=command, returncode=0, stdout=stdout)


def failed_result(stderr: str = "boom", returncode: int = 1, command: str = "cmd") -> CommandResult:
    return CommandResult(command=command, returncode=returncode, stderr=stderr)


def drain(queue: "asyncio.Queue[MetricRecord]") -> List[MetricRecord]:
    """Take every record currently in the queue."""
    records = []
    while not queue.empty():
        records.append(queue.get_nowait())
    return records
