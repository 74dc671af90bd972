"""
Type definitions for dtleak

Central repository for the event kinds and TypedDict structures shared by the
parser, the ledgers, the combiner and the report builder.
"""

from typing import TypedDict, Optional


# =============================================================================
# EVENT KINDS
# =============================================================================

MALLOC = "malloc"
CALLOC = "calloc"
REALLOC = "realloc"
FREE = "free"
BRK = "brk"
SBRK = "sbrk"
NEW_ARRAY = "new[]"
DELETE_ARRAY = "delete[]"

ALLOCATOR_EVENTS = (MALLOC, CALLOC, REALLOC, FREE, NEW_ARRAY, DELETE_ARRAY)
HEAP_BOUNDARY_EVENTS = (BRK, SBRK)

# Minimum number of ';'-separated header fields per event kind
MIN_HEADER_FIELDS = {
    MALLOC: 6,
    CALLOC: 6,
    REALLOC: 7,
    FREE: 5,
    BRK: 6,
    SBRK: 6,
    NEW_ARRAY: 6,
    DELETE_ARRAY: 6,
}


class TraceEntry(TypedDict):
    """One decoded allocator or heap-boundary event."""
    seq: int
    timestamp: str
    thread_id: str
    kind: str
    address: str
    size: Optional[int]
    previous_address: Optional[str]
    success: Optional[bool]
    stack: str
    line_no: int
    header: str


class StackOccurrence(TypedDict):
    """A normalized call stack and how often (and by how much) it was seen."""
    stack: str
    count: int
    size: int


# =============================================================================
# PER-FILE RESULTS
# =============================================================================

class MemallocResult(TypedDict):
    """Classification output of one allocator trace."""
    call_counts: dict[str, int]
    total_leaks: int
    total_wrong_frees: int
    total_double_frees: int
    leak_suspects: list[StackOccurrence]
    leak_strong_suspects: list[StackOccurrence]
    wrong_frees: list[StackOccurrence]
    wrong_free_strong_suspects: list[StackOccurrence]
    double_frees: list[StackOccurrence]
    successful_free_stacks: list[str]
    successfully_deallocated_stacks: list[str]


class BrkResult(TypedDict):
    """Classification output of one heap-boundary trace."""
    increases: int
    decreases: int
    neutral: int
    failed: int
    unique_stacks: list[StackOccurrence]
    failed_stacks: list[StackOccurrence]


class ProcessedResult(TypedDict):
    """Correlation output of one pre-processed trace."""
    allocation_stacks: list[StackOccurrence]
    deallocation_stacks: list[StackOccurrence]
    unfreed_allocation_stacks: list[StackOccurrence]
    unknown_deallocation_stacks: list[StackOccurrence]
    total_allocations: int
    total_deallocations: int


# Free stack -> allocation stacks it was seen releasing, with counts
StackRelationships = dict[str, list[StackOccurrence]]


# =============================================================================
# CROSS-FILE RESULTS
# =============================================================================

class CombinedRow(TypedDict):
    """One stack of a combined report with its per-file occurrence vector."""
    stack: str
    counts: list[int]
    freed_elsewhere: Optional[bool]


class CombinedMemalloc(TypedDict):
    """Cross-file view of several allocator results."""
    files: list[str]
    double_frees: list[CombinedRow]
    wrong_frees: list[CombinedRow]
    wrong_free_strong_suspects: list[CombinedRow]
    leak_suspects: list[CombinedRow]
    leak_strong_suspects: list[CombinedRow]
    pending_per_file: list[int]


class CombinedProcessed(TypedDict):
    """Cross-file view of several pre-processed results."""
    files: list[str]
    allocation_stacks: list[CombinedRow]
    unfreed_allocation_stacks: list[CombinedRow]
    deallocation_stacks: list[CombinedRow]
    unknown_deallocation_stacks: list[CombinedRow]
    balance_per_file: list[int]


# =============================================================================
# CONFIGURATION
# =============================================================================

class DtleakConfig(TypedDict):
    """Runtime settings resolved from the environment and .env file."""
    report_suffix: str
    workers: int
    log_level: str
    color: bool
