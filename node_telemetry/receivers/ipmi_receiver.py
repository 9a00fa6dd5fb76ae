"""IPMI sensor receiver using FreeIPMI's ipmi-sensors."""

import logging
from dataclasses import dataclass
from typing import List, NoReturn, Optional, Tuple

from pydantic import SecretStr

from ..collectors.process_runner import ProcessRunner
from ..config.loader import ConfigLoader, RawConfig
from ..config.models import IPMIClientConfigModel, IPMIReceiverConfigModel
from ..utils.errors import CommandError, ConfigurationError
from ..utils.exclusion import ExclusionSet
from .base import MetricReceiver
from .host_mapper import HostMapper

IPMI_SENSORS_CMD = "ipmi-sensors"
SUPPORTED_PROTOCOLS = (IPMI_SENSORS_CMD,)
DRIVER_TYPES = ("LAN", "LAN_2_0")

# Comma separated sensor line: ID,Name,Type,Reading,Units,Event
IDX_ID, IDX_NAME, IDX_TYPE, IDX_READING, IDX_UNITS, IDX_EVENT = range(6)
NUM_SENSOR_FIELDS = 6
NOT_AVAILABLE = "N/A"

UTILIZATION_SENSORS = frozenset({
    "cpu_utilization",
    "io_utilization",
    "mem_utilization",
    "sys_utilization",
})


@dataclass(frozen=True)
class SensorRule:
    """Maps a sensor type/unit combination onto a metric name and unit."""

    sensor_type: Optional[str]  # None matches any type
    unit: str
    metric: Optional[str] = None  # None keeps the sensor type
    canonical_unit: Optional[str] = None  # None keeps the unit
    names: Optional[frozenset] = None  # Restrict to these sensor names

    def matches(self, sensor_type: str, unit: str, name: str) -> bool:
        if self.sensor_type is not None and self.sensor_type != sensor_type:
            return False
        if self.unit != unit:
            return False
        return self.names is None or name in self.names


SENSOR_RULES: Tuple[SensorRule, ...] = (
    SensorRule(None, "Watts", metric="power"),
    SensorRule("voltage", "Volts"),
    SensorRule("temperature", "degrees C", canonical_unit="degC"),
    SensorRule("temperature", "degrees F", canonical_unit="degF"),
    SensorRule("fan", "RPM", metric="fan_speed"),
    SensorRule("other units based sensor", "unspecified", metric="utilization",
               canonical_unit="percent", names=UTILIZATION_SENSORS),
    SensorRule("other units based sensor", "%", metric="utilization",
               canonical_unit="percent", names=UTILIZATION_SENSORS),
)


def map_sensor(sensor_type: str, unit: str, name: str) -> Optional[Tuple[str, str]]:
    """
    Map a sensor onto its canonical metric name and unit.

    Args:
        sensor_type: Lower-cased sensor type, e.g. "temperature"
        unit: Unit as printed by ipmi-sensors, e.g. "degrees C"
        name: Normalized sensor name, e.g. "cpu_utilization"

    Returns:
        (metric, unit) or None if no rule covers the combination
    """
    for rule in SENSOR_RULES:
        if rule.matches(sensor_type, unit, name):
            return rule.metric or sensor_type, rule.canonical_unit or unit
    return None


@dataclass
class IPMIClientConfig:
    """Resolved connection settings for one group of IPMI hosts."""

    protocol: str
    driver_type: str
    fanout: int
    hosts: HostMapper
    username: str
    password: SecretStr
    excluded: ExclusionSet

    @property
    def num_hosts(self) -> int:
        return len(self.hosts)

    def build_command(self) -> List[str]:
        return [
            IPMI_SENSORS_CMD,
            "--always-prefix",
            "--sdr-cache-recreate",
            # Attempt to interpret OEM data, such as event data or sensor readings
            "--interpret-oem-data",
            "--ignore-not-available-sensors",
            "--ignore-unrecognized-events",
            "--comma-separated-output",
            "--no-header-output",
            # Non-abbreviated units ('degrees C' instead of 'C')
            "--non-abbreviated-units",
            "--fanout", str(self.fanout),
            "--driver-type", self.driver_type,
            "--host", self.hosts.host_argument(),
            "--user", self.username,
            "--password", self.password.get_secret_value(),
        ]


class IPMIReceiver(MetricReceiver):
    """Receiver for out-of-band IPMI sensor readings of cluster nodes."""

    def __init__(
        self,
        name: str,
        config: RawConfig = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Validate configuration and build the per-client settings.

        Args:
            name: Receiver instance name
            config: JSON document or mapping of the receiver configuration
            logger: Logger instance

        Raises:
            ConfigurationError: If any client lacks endpoint, username or
                password, has an invalid driver type or endpoint, or if no
                host is configured at all
        """
        receiver_name = f"IPMIReceiver({name})"
        parsed = ConfigLoader.parse_unit_config(config, IPMIReceiverConfigModel, receiver_name)
        super().__init__(
            receiver_name,
            parsed.interval,
            logger=logger,
            missed_tick_policy=parsed.missed_tick_policy,
        )
        self.config = parsed
        self.client_configs: List[IPMIClientConfig] = []

        total_num_hosts = 0
        for i, client in enumerate(parsed.client_config):
            client_config = self._build_client_config(i, client)
            total_num_hosts += client_config.num_hosts
            self.client_configs.append(client_config)

        if total_num_hosts == 0:
            self._fail("at least one IPMI host config is required")

        self.logger.info(f"{self.name}: monitoring {total_num_hosts} IPMI hosts")

    def _fail(self, message: str) -> NoReturn:
        self.logger.error(f"{self.name}: {message}")
        raise ConfigurationError(f"{self.name}: {message}")

    def _build_client_config(self, i: int, client: IPMIClientConfigModel) -> IPMIClientConfig:
        defaults = self.config

        endpoint = client.endpoint if client.endpoint is not None else defaults.endpoint
        if endpoint is None:
            self._fail(f"client config number {i} requires endpoint")

        fanout = client.fanout or defaults.fanout

        driver_type = client.driver_type or defaults.driver_type
        if driver_type not in DRIVER_TYPES:
            self._fail(f"client config number {i} has invalid driver type {driver_type}")

        parts = endpoint.split("://")
        if len(parts) != 2:
            self._fail(f"client config number {i} has invalid endpoint {endpoint}")
        protocol, host_pattern = parts
        if protocol not in SUPPORTED_PROTOCOLS:
            self._fail(f"client config number {i} has unsupported protocol {protocol}")

        username = client.username if client.username is not None else defaults.username
        if username is None:
            self._fail(f"client config number {i} requires username")

        password = client.password if client.password is not None else defaults.password
        if password is None:
            self._fail(f"client config number {i} requires password")

        return IPMIClientConfig(
            protocol=protocol,
            driver_type=driver_type,
            fanout=fanout,
            hosts=HostMapper(host_pattern, client.host_list, logger=self.logger),
            username=username,
            password=password,
            excluded=ExclusionSet(defaults.exclude_metrics, client.exclude_metrics),
        )

    async def read_metrics(self) -> None:
        """Read sensors of all configured IPMI hosts, one client after the other."""
        for client_config in self.client_configs:
            await self._read_client(client_config)

    async def _read_client(self, client_config: IPMIClientConfig) -> None:
        password = client_config.password.get_secret_value()
        lines = ProcessRunner.stream(
            client_config.build_command(),
            secrets=[password],
            logger=self.logger,
        )
        try:
            async for line in lines:
                await self._handle_line(client_config, line)

        except CommandError as e:
            self.logger.error(f"{self.name}.read_metrics(): {e}")
            if e.result is not None and e.result.stderr:
                self.logger.error(
                    f"{self.name}.read_metrics(): command stderr: \"{e.result.stderr.strip()}\""
                )
        finally:
            # Kills ipmi-sensors if the pass ends early
            await lines.aclose()

    def parse_line(self, client_config: IPMIClientConfig, line: str) -> Optional[tuple]:
        """
        Parse one ipmi-sensors output line.

        Returns:
            (metric, tags, meta, value) or None if the line is skipped
        """
        prefix = line.split(": ")
        if len(prefix) != 2:
            return None
        host = client_config.hosts.resolve(prefix[0])
        if host is None:
            return None

        sensor = prefix[1].split(",")
        if len(sensor) != NUM_SENSOR_FIELDS:
            return None
        if sensor[IDX_READING] == NOT_AVAILABLE:
            return None

        name = sensor[IDX_NAME].replace(" ", "_").lower()
        mapped = map_sensor(sensor[IDX_TYPE].lower(), sensor[IDX_UNITS], name)
        if mapped is None:
            return None
        metric, unit = mapped

        if metric in client_config.excluded:
            return None

        try:
            value = float(sensor[IDX_READING])
        except ValueError:
            return None

        tags = {"hostname": host, "type": "node", "name": name}
        meta = dict(self.meta, group="IPMI", unit=unit)
        return metric, tags, meta, value

    async def _handle_line(self, client_config: IPMIClientConfig, line: str) -> None:
        parsed = self.parse_line(client_config, line)
        if parsed is None:
            return
        metric, tags, meta, value = parsed
        await self.emit(metric, tags, meta, {"value": value})
