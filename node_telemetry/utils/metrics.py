"""Metric record emitted by collectors and receivers."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union
import time

FieldValue = Union[float, int, str]


@dataclass(frozen=True)
class MetricRecord:
    """
    Immutable sample handed to the output queue.

    ``name``, ``tags`` and ``timestamp`` identify the sample; ``meta`` carries
    provenance (source, group, unit) and ``fields`` always holds ``value``.
    """

    name: str
    tags: Mapping[str, str]
    meta: Mapping[str, str]
    fields: Mapping[str, FieldValue]
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        """Validate and freeze the mappings."""
        if not self.name:
            raise ValueError("Metric name must not be empty")
        if not self.fields:
            raise ValueError(f"Metric {self.name} has no fields")
        if "value" not in self.fields:
            raise ValueError(f"Metric {self.name} has no 'value' field")

        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @property
    def value(self) -> FieldValue:
        return self.fields["value"]

    def to_dict(self) -> Dict[str, Any]:
        """Render as a plain JSON-serialisable dict."""
        return {
            "name": self.name,
            "tags": dict(self.tags),
            "meta": dict(self.meta),
            "fields": dict(self.fields),
            "timestamp": self.timestamp,
        }
