"""Pydantic configuration models for collectors, receivers and the runner."""

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from typing import Any, Dict, List, Literal, Optional, Union
import re


DEFAULT_BEEGFS_CMD = "/usr/bin/beegfs-ctl"
MAX_NUM_PROCS = 10
DEFAULT_NUM_PROCS = 2

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and duration strings made of
    number/unit pairs such as "30s", "1m30s", "500ms" or "1.5h".

    Args:
        value: Duration string or number of seconds

    Returns:
        float: Duration in seconds

    Raises:
        ValueError: If the string is not a valid duration
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("Empty duration string")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return 0.0

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"Invalid duration string: {value!r}")
    return sign * seconds


class BeegfsCollectorConfig(BaseModel):
    """Configuration for BeeGFS client statistics collectors."""
    beegfs_path: str = Field(
        default=DEFAULT_BEEGFS_CMD,
        validation_alias=AliasChoices("beegfs_path", "binary_path"),
    )
    exclude_metrics: List[str] = Field(default_factory=list)
    exclude_filesystem: List[str] = Field(default_factory=list)


class TopProcsCollectorConfig(BaseModel):
    """Configuration for the top processes collector."""
    num_procs: int = Field(
        default=DEFAULT_NUM_PROCS,
        validation_alias=AliasChoices("num_procs", "num_items"),
    )
    binary_path: str = "ps"

    @field_validator('num_procs')
    @classmethod
    def validate_num_procs(cls, v: int) -> int:
        """Keep the number of reported processes in range."""
        if v <= 0 or v > MAX_NUM_PROCS:
            raise ValueError(f"num_procs option must be in range 1-{MAX_NUM_PROCS}")
        return v


class IPMIClientConfigModel(BaseModel):
    """Per-client IPMI options; unset fields inherit the receiver defaults."""
    endpoint: Optional[str] = None
    fanout: Optional[int] = None
    driver_type: Optional[str] = None
    host_list: List[str] = Field(default_factory=list)
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    exclude_metrics: List[str] = Field(default_factory=list)


class IPMIReceiverConfigModel(BaseModel):
    """Configuration document of an IPMI receiver."""
    type: str = "ipmi"
    fanout: int = 64
    driver_type: str = "LAN_2_0"
    interval: float = 30.0
    missed_tick_policy: Literal["coalesce", "replay"] = "coalesce"

    # Default client username, password and endpoint
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    endpoint: Optional[str] = None

    exclude_metrics: List[str] = Field(default_factory=list)
    client_config: List[IPMIClientConfigModel] = Field(default_factory=list)

    @field_validator('interval', mode='before')
    @classmethod
    def validate_interval(cls, v: Any) -> float:
        """Convert duration strings to seconds."""
        seconds = parse_duration(v)
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {v!r}")
        return seconds


class AcquisitionConfig(BaseModel):
    """Root configuration model of the acquisition runner."""
    interval: float = 10.0
    queue_size: int = Field(default=1024, ge=1)
    log_level: str = "INFO"
    collectors: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    receivers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator('interval', mode='before')
    @classmethod
    def validate_interval(cls, v: Any) -> float:
        """Convert duration strings to seconds."""
        seconds = parse_duration(v)
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {v!r}")
        return seconds

    @field_validator('collectors', 'receivers', mode='before')
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        """An empty YAML section loads as None."""
        return v or {}
