"""Configuration-derived set of excluded metric names."""

from typing import Iterable, Iterator, Optional


class ExclusionSet:
    """
    Immutable union of excluded metric names.

    Built from any number of name lists (e.g. the global and the per-client
    ``exclude_metrics`` options). Membership is a set lookup.
    """

    __slots__ = ("_names",)

    def __init__(self, *name_lists: Optional[Iterable[str]]):
        names = set()
        for name_list in name_lists:
            if name_list:
                names.update(name_list)
        self._names = frozenset(names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __bool__(self) -> bool:
        return bool(self._names)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExclusionSet):
            return self._names == other._names
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._names)

    def __repr__(self) -> str:
        return f"ExclusionSet({sorted(self._names)!r})"

    def union(self, *name_lists: Optional[Iterable[str]]) -> "ExclusionSet":
        """Return a new set with the given names added."""
        return ExclusionSet(self._names, *name_lists)

    def names(self) -> frozenset:
        return self._names
