"""
alloc_ledger.py

Replays malloc/calloc/realloc/free events in file order to reconstruct which
addresses are live, then classifies what is left: leak suspects, frees of
untracked memory, double frees, and the stacks seen freeing memory correctly.
"""

from typing import Iterable, Optional

from dtleak_logger import log_warning
from stack_aggregator import StackAggregator, sort_occurrences
from trace_parser import FormatError, read_trace_entries
from type_defs import (
    TraceEntry, MemallocResult, ALLOCATOR_EVENTS,
    MALLOC, CALLOC, REALLOC, FREE, NEW_ARRAY, DELETE_ARRAY,
)


class ConsistencyError(Exception):
    """Raised when the trace contradicts the ledger state (corrupt capture)."""

    def __init__(self, message: str, entry: Optional[TraceEntry] = None):
        super().__init__(message)
        self.message = message
        self.entry = entry

    def __str__(self) -> str:
        if self.entry is None:
            return self.message
        return f"{self.message}\nEntry: {describe_entry(self.entry)}"


def describe_entry(entry: TraceEntry) -> str:
    """One readable line (plus stack) identifying a trace entry."""
    text = f"line {entry['line_no']}: {entry['header']}"
    if entry["stack"]:
        text += "\n" + entry["stack"]
    return text


# =============================================================================
# ARRAY OPERATOR PAIRING
# =============================================================================

class ArrayPairTracker:
    """Per-thread NONE <-> EXPECTING_PAIR state for new[]/delete[] markers.

    A marker announces the allocator call that must follow it on the same
    thread: malloc/calloc for new[], free for delete[], at the same address.
    """

    def __init__(self):
        self._pending: dict[str, TraceEntry] = {}

    def open(self, marker: TraceEntry) -> None:
        previous = self._pending.get(marker["thread_id"])
        if previous is not None:
            raise ConsistencyError(
                f"{marker['kind']} marker while thread {marker['thread_id']} still "
                f"expects the call paired with: {describe_entry(previous)}",
                marker)
        self._pending[marker["thread_id"]] = marker

    def check(self, entry: TraceEntry, live: dict[str, TraceEntry]) -> None:
        """Validate `entry` against a pending marker on its thread, if any."""
        marker = self._pending.pop(entry["thread_id"], None)
        if marker is None:
            return

        if marker["kind"] == NEW_ARRAY:
            expected = (MALLOC, CALLOC)
        else:
            expected = (FREE,)

        if entry["kind"] not in expected or entry["address"] != marker["address"]:
            raise ConsistencyError(
                f"{marker['kind']} on {marker['address']} is not followed by its "
                f"paired {'/'.join(expected)} call",
                entry)

        if marker["kind"] == DELETE_ARRAY and entry["address"] in live:
            allocated = live[entry["address"]]
            if allocated["size"] != marker["size"]:
                raise ConsistencyError(
                    f"delete[] size {marker['size']} does not match allocation size "
                    f"{allocated['size']} from: {describe_entry(allocated)}",
                    entry)

    def pending(self) -> list[TraceEntry]:
        return list(self._pending.values())


# =============================================================================
# LEDGER
# =============================================================================

class AllocationLedger:
    """Single-pass replay of allocator events."""

    def __init__(self):
        self.live: dict[str, TraceEntry] = {}
        self.freed_not_reused: dict[str, TraceEntry] = {}
        self.call_counts: dict[str, int] = {kind: 0 for kind in ALLOCATOR_EVENTS}

        # Insertion-ordered sets of stacks
        self.successful_free_stacks: dict[str, None] = {}
        self.successfully_deallocated_stacks: dict[str, None] = {}

        self.wrong_frees = StackAggregator()
        self.double_frees = StackAggregator()

        # (free stack, allocation stack) -> times seen
        self.releases: dict[tuple[str, str], int] = {}

        self.pairs = ArrayPairTracker()

    def process(self, entry: TraceEntry) -> None:
        kind = entry["kind"]
        if kind not in self.call_counts:
            raise FormatError(f"cannot handle entry type '{kind}'", entry["line_no"], entry["header"])
        self.call_counts[kind] += 1

        if kind in (NEW_ARRAY, DELETE_ARRAY):
            self.pairs.open(entry)
            return

        self.pairs.check(entry, self.live)

        if kind in (MALLOC, CALLOC):
            self._allocate(entry)
        elif kind == REALLOC:
            self._reallocate(entry)
        else:
            self._free(entry)

    def _allocate(self, entry: TraceEntry) -> None:
        address = entry["address"]
        if address in self.live:
            raise ConsistencyError(
                f"found allocation on memory address {address} that was already "
                f"allocated by: {describe_entry(self.live[address])}",
                entry)
        self.live[address] = entry
        # Reuse of the address ends the double-free watch
        self.freed_not_reused.pop(address, None)

    def _reallocate(self, entry: TraceEntry) -> None:
        address = entry["address"]
        previous = entry["previous_address"]

        if address == previous:
            self.live[address] = entry
        else:
            if address in self.live:
                raise ConsistencyError(
                    f"found allocation on memory address {address} that was already "
                    f"allocated by: {describe_entry(self.live[address])}",
                    entry)
            moved = self.live.pop(previous, None)
            if moved is not None:
                self._record_release(entry, moved)
            self.live[address] = entry

        self.freed_not_reused.pop(address, None)

    def _free(self, entry: TraceEntry) -> None:
        address = entry["address"]
        freed = self.live.pop(address, None)

        if freed is not None:
            self._record_release(entry, freed)
            if address in self.freed_not_reused:
                raise ConsistencyError(
                    f"free on memory address {address} matched a live allocation but "
                    f"the address is also recorded as freed and not reused",
                    entry)
            self.freed_not_reused[address] = entry
            return

        # Not tracked: allocated before the capture started, or a bug
        self.wrong_frees.add(entry["stack"])
        if address in self.freed_not_reused:
            self.double_frees.add(entry["stack"])
        else:
            self.freed_not_reused[address] = entry

    def _record_release(self, free_entry: TraceEntry, freed: TraceEntry) -> None:
        self.successful_free_stacks.setdefault(free_entry["stack"], None)
        self.successfully_deallocated_stacks.setdefault(freed["stack"], None)
        pair = (free_entry["stack"], freed["stack"])
        self.releases[pair] = self.releases.get(pair, 0) + 1

    def finish(self) -> MemallocResult:
        """Snapshot the classification sets at end of stream."""
        leaks = StackAggregator()
        for entry in self.live.values():
            leaks.add(entry["stack"])
        leak_suspects = leaks.occurrences()

        wrong_frees = self.wrong_frees.occurrences()

        return {
            "call_counts": dict(self.call_counts),
            "total_leaks": len(self.live),
            "total_wrong_frees": self.wrong_frees.total(),
            "total_double_frees": self.double_frees.total(),
            "leak_suspects": leak_suspects,
            "leak_strong_suspects": sort_occurrences(
                occ for occ in leak_suspects
                if occ["stack"] not in self.successfully_deallocated_stacks),
            "wrong_frees": wrong_frees,
            "wrong_free_strong_suspects": sort_occurrences(
                occ for occ in wrong_frees
                if occ["stack"] not in self.successful_free_stacks),
            "double_frees": self.double_frees.occurrences(),
            "successful_free_stacks": list(self.successful_free_stacks),
            "successfully_deallocated_stacks": list(self.successfully_deallocated_stacks),
        }


def replay_trace(lines: Iterable[str]) -> AllocationLedger:
    """
    Run every allocator entry of a trace through a fresh ledger.

    Raises:
        FormatError: If the trace cannot be decoded.
        ConsistencyError: If the trace contradicts itself.
    """
    ledger = AllocationLedger()
    for entry in read_trace_entries(lines, ALLOCATOR_EVENTS):
        ledger.process(entry)
    for marker in ledger.pairs.pending():
        log_warning(f"trace ends before the call paired with: {describe_entry(marker)}")
    return ledger


def analyze_memalloc(lines: Iterable[str]) -> MemallocResult:
    """
    Classify the allocator events of one trace.

    Args:
        lines: Lines of an allocator trace (an open file works).

    Returns:
        The per-file classification.
    """
    return replay_trace(lines).finish()
