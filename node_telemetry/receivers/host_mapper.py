"""Mapping between out-of-band query identifiers and node host names."""

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

HOST_PLACEHOLDER = "%h"


class HostMapper:
    """
    Render a host pattern for every host of a host list.

    ``HostMapper("ipmi-%h", ["n1", "n2"])`` maps ``ipmi-n1 -> n1`` and
    ``ipmi-n2 -> n2``. Every rendered identifier appears exactly once; a
    pattern without the ``%h`` placeholder collapses all hosts onto one
    identifier, the last host winning.
    """

    def __init__(
        self,
        pattern: str,
        hosts: Iterable[str],
        logger: Optional[logging.Logger] = None
    ):
        self.pattern = pattern
        self._mapping: Dict[str, str] = {}
        for host in hosts:
            self._mapping[self.render(pattern, host)] = host

        if HOST_PLACEHOLDER not in pattern and len(self._mapping) == 1:
            (logger or logging.getLogger(__name__)).debug(
                f"Host pattern '{pattern}' has no {HOST_PLACEHOLDER} placeholder, "
                f"all hosts share one identifier"
            )

    @staticmethod
    def render(pattern: str, host: str) -> str:
        return pattern.replace(HOST_PLACEHOLDER, host)

    def resolve(self, identifier: str) -> Optional[str]:
        """Return the host for a query identifier, or None if unknown."""
        return self._mapping.get(identifier)

    @property
    def identifiers(self) -> List[str]:
        return list(self._mapping)

    @property
    def mapping(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self._mapping))

    def host_argument(self) -> str:
        """Comma separated identifiers for a ``--host`` option."""
        return ",".join(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._mapping

    def __repr__(self) -> str:
        return f"HostMapper({self.pattern!r}, {len(self)} host(s))"
