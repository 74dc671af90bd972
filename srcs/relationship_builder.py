"""
Cross-file stack relationships.

Replays a corpus of complete allocator traces and learns, for every stack
that freed memory, which allocation stacks that memory came from. The
pre-processed correlator uses this map to tell which outstanding
allocations a deallocation stack accounts for.
"""

from pathlib import Path
from typing import Iterable

from alloc_ledger import replay_trace
from dtleak_logger import log_info
from file_runner import analyze_files, open_trace
from stack_aggregator import StackAggregator
from type_defs import StackRelationships

Releases = dict[tuple[str, str], int]


def collect_releases(path: Path) -> Releases:
    """Replay one trace and return its (free stack, allocation stack) counts."""
    with open_trace(path) as f:
        ledger = replay_trace(f)
    return ledger.releases


def merge_releases(per_file: Iterable[Releases]) -> StackRelationships:
    """
    Fold per-file release counts into one relationship map.

    Must run on a single thread; files are folded in the order given.
    """
    related: dict[str, StackAggregator] = {}
    for releases in per_file:
        for (free_stack, alloc_stack), count in releases.items():
            related.setdefault(free_stack, StackAggregator()).add(alloc_stack, count)

    return {free_stack: stacks.occurrences() for free_stack, stacks in related.items()}


def build_relationships(paths: list[Path], workers: int = 1) -> StackRelationships:
    """
    Learn free-stack -> allocation-stack edges from full allocator traces.

    Args:
        paths: Allocator trace files; processed in file-name order.
        workers: Worker threads for the per-file replays.

    Returns:
        Mapping from each free stack to the allocation stacks it released.
    """
    log_info("Collecting memory allocator stack relationships")
    ordered = sorted(paths, key=lambda path: path.name)
    per_file = analyze_files(ordered, collect_releases, workers)

    relationships = merge_releases(per_file.values())

    related_count = sum(len(stacks) for stacks in relationships.values())
    log_info(f"Found in total {len(relationships)} unique free stacks, that freed "
             f"memory allocated from {related_count} stacks")
    return relationships
