"""
brk_ledger.py

Follows the process break through brk/sbrk calls and sorts every call into
growth, shrink, neutral or failed, keeping per-stack frequencies and the
cumulative size each stack moved the break by.
"""

from typing import Iterable, Optional

from stack_aggregator import StackAggregator
from trace_parser import read_trace_entries, parse_address
from type_defs import TraceEntry, BrkResult, HEAP_BOUNDARY_EVENTS, BRK

INCREASE = "increase"
DECREASE = "decrease"
NEUTRAL = "neutral"
FAILED = "failed"


def classify_delta(delta: int) -> str:
    if delta > 0:
        return INCREASE
    if delta < 0:
        return DECREASE
    return NEUTRAL


class BrkLedger:
    """State machine over the current break address."""

    def __init__(self):
        self.current_break: Optional[int] = None
        self.counts = {INCREASE: 0, DECREASE: 0, NEUTRAL: 0, FAILED: 0}
        self.moving_stacks = StackAggregator()
        self.failed_stacks = StackAggregator()

    def process(self, entry: TraceEntry) -> Optional[str]:
        """
        Apply one brk/sbrk entry.

        Returns:
            The bucket the call fell into, or None for the first brk call,
            which only seeds the current break.
        """
        if not entry["success"]:
            self.counts[FAILED] += 1
            self.failed_stacks.add(entry["stack"], size=entry["size"] or 0)
            return FAILED

        if entry["kind"] == BRK:
            new_break = parse_address(entry["address"])
            if self.current_break is None:
                self.current_break = new_break
                return None
            delta = new_break - self.current_break
        else:
            delta = entry["size"]
            new_break = parse_address(entry["address"]) + delta

        self.current_break = new_break

        bucket = classify_delta(delta)
        self.counts[bucket] += 1
        if bucket != NEUTRAL:
            self.moving_stacks.add(entry["stack"], size=delta)
        return bucket

    def finish(self) -> BrkResult:
        return {
            "increases": self.counts[INCREASE],
            "decreases": self.counts[DECREASE],
            "neutral": self.counts[NEUTRAL],
            "failed": self.counts[FAILED],
            "unique_stacks": self.moving_stacks.occurrences(),
            "failed_stacks": self.failed_stacks.occurrences(),
        }


def analyze_brk(lines: Iterable[str]) -> BrkResult:
    """
    Classify the brk/sbrk calls of one trace.

    Args:
        lines: Lines of a heap-boundary trace.

    Raises:
        FormatError: If the trace cannot be decoded.
    """
    ledger = BrkLedger()
    for entry in read_trace_entries(lines, HEAP_BOUNDARY_EVENTS):
        ledger.process(entry)
    return ledger.finish()
