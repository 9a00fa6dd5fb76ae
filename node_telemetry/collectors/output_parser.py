"""Line-oriented extraction of labeled counters from command output."""

import logging
import re
from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..utils.exclusion import ExclusionSet

# Totals row of `beegfs-ctl --clientstats`, e.g. "Sum:  13 [sum]  4 [ack] ..."
SUM_LINE = re.compile(r'^Sum:\s+\d+\s+\[[a-zA-Z]+\]+')
STATS_LINE = re.compile(r'^(.*?)\s+?(\d.*?)$')
SINGLE_SPACE = re.compile(r'\s+')
BRACKETS = re.compile(r'[\[\]]')

ZERO = "0"


class MatchTable:
    """
    Canonical metric key -> last observed value (as text).

    Every non-excluded key is seeded with zero up front together with the
    synthetic ``other`` accumulator. Lookups never create keys: values for
    unknown labels are added into ``other``.
    """

    def __init__(
        self,
        keys: Iterable[str],
        exclude: Optional[ExclusionSet] = None,
        prefix: str = "",
        other_key: str = "other"
    ):
        self.prefix = prefix
        self.other_key = prefix + other_key
        exclude = exclude or ExclusionSet()

        self._values: "OrderedDict[str, str]" = OrderedDict()
        for key in keys:
            canonical = prefix + key
            if key in exclude or canonical in exclude:
                continue
            self._values[canonical] = ZERO
        self._values[self.other_key] = ZERO

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> List[str]:
        return list(self._values)

    def canonical(self, label: str) -> str:
        return self.prefix + label

    def is_known(self, label: str) -> bool:
        """True if the label maps onto a seeded key other than ``other``."""
        key = self.prefix + label
        return key in self._values and key != self.other_key

    def update(self, label: str, value: str) -> str:
        """
        Record one (value, label) pair.

        Known labels are overwritten (last write wins); unknown labels are
        added into the ``other`` accumulator.

        Returns:
            str: Canonical key that was changed

        Raises:
            ValueError: If the value or the current accumulator is not numeric
        """
        if self.is_known(label):
            float(value)
            key = self.prefix + label
            self._values[key] = value
            return key

        current = float(self._values[self.other_key])
        total = current + float(value)
        self._values[self.other_key] = f"{total:f}"
        return self.other_key

    def snapshot(self) -> "OrderedDict[str, str]":
        return OrderedDict(self._values)

    def values(self) -> Dict[str, float]:
        """Numeric view of the table."""
        return {key: float(value) for key, value in self._values.items()}


class OutputParser:
    """
    Extract the totals rows of heterogeneous command output into a MatchTable.

    Only lines matching ``selector`` are considered. The payload of a row is
    turned into alternating ``[value, label, value, label, ...]`` tokens. The
    first pair is the row total: it updates its key if known and is otherwise
    ignored, since adding it into ``other`` would count the row twice.
    """

    def __init__(
        self,
        table: MatchTable,
        selector: Union[str, "re.Pattern"] = SUM_LINE,
        logger: Optional[logging.Logger] = None
    ):
        self.table = table
        self.selector = re.compile(selector) if isinstance(selector, str) else selector
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def tokenize(line: str) -> List[str]:
        """Split the numeric payload of a row into value/label tokens."""
        match = STATS_LINE.match(line)
        if not match:
            return []
        payload = BRACKETS.sub(" ", match.group(2))
        payload = SINGLE_SPACE.sub(" ", payload).strip()
        return payload.split(" ") if payload else []

    @staticmethod
    def pairs(tokens: List[str]) -> Iterator[Tuple[str, str]]:
        for i in range(0, len(tokens) - 1, 2):
            yield tokens[i], tokens[i + 1]

    def parse_line(self, line: str) -> bool:
        """
        Apply one output line to the table.

        Returns:
            bool: True if the line was a selected totals row
        """
        if not self.selector.match(line):
            return False

        tokens = self.tokenize(line)
        if len(tokens) % 2:
            self.logger.error(f"Ignoring dangling token '{tokens[-1]}' in line: {line!r}")

        for index, (value, label) in enumerate(self.pairs(tokens)):
            if index == 0 and not self.table.is_known(label):
                continue
            try:
                self.table.update(label, value)
            except ValueError as e:
                self.logger.error(
                    f"Metric ({self.table.canonical(label)}): failed to convert "
                    f"'{value}' to float: {e}"
                )
                continue

        return True

    def parse(self, output: str) -> Iterator["OrderedDict[str, str]"]:
        """
        Parse complete command output.

        Yields:
            Full snapshot of the table after every totals row
        """
        for line in output.splitlines():
            if self.parse_line(line):
                yield self.table.snapshot()
