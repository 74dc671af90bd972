"""
Stack aggregation.

Collapses repeated observations of the same normalized call stack into one
StackOccurrence carrying a frequency and, for heap-boundary stacks, the
cumulative size delta.
"""

from typing import Iterable

from type_defs import StackOccurrence


def sort_occurrences(occurrences: Iterable[StackOccurrence]) -> list[StackOccurrence]:
    """Most frequent first; equal counts ordered by stack text."""
    return sorted(occurrences, key=lambda occ: (-occ["count"], occ["stack"]))


class StackAggregator:
    """Mapping stack -> StackOccurrence with summed counters."""

    def __init__(self):
        self._occurrences: dict[str, StackOccurrence] = {}

    def add(self, stack: str, weight: int = 1, size: int = 0) -> StackOccurrence:
        """Record `weight` more sightings of `stack`, adding `size` to its total."""
        occ = self._occurrences.get(stack)
        if occ is None:
            occ = {"stack": stack, "count": 0, "size": 0}
            self._occurrences[stack] = occ
        occ["count"] += weight
        occ["size"] += size
        return occ

    def total(self) -> int:
        """Sum of all counts."""
        return sum(occ["count"] for occ in self._occurrences.values())

    def occurrences(self) -> list[StackOccurrence]:
        """Presentation list, sorted by frequency."""
        return sort_occurrences(self._occurrences.values())
