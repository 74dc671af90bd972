"""
Pre-processed file correlation.

Long-running captures are often reduced by the tracer itself to two
aggregated sections (allocation stacks with counts, deallocation stacks with
counts), losing addresses. Without addresses the allocations cannot be
matched one by one, so the relationships learned from full traces decide
which allocation stacks each deallocation stack is known to release.
"""

from typing import Iterable

from stack_aggregator import StackAggregator
from trace_parser import read_processed_sections
from type_defs import ProcessedResult, StackRelationships


def correlate(allocations: StackAggregator, deallocations: StackAggregator,
              relationships: StackRelationships) -> ProcessedResult:
    """
    Match deallocation stacks against allocation stacks.

    Args:
        allocations: Unique allocation stacks of the file.
        deallocations: Unique deallocation stacks of the file.
        relationships: Learned free-stack -> allocation-stack map.

    Returns:
        The file's allocation stacks, those no known free accounts for
        (leak suspects), and the deallocation stacks absent from the map.
    """
    allocation_stacks = allocations.occurrences()
    deallocation_stacks = deallocations.occurrences()

    outstanding = {occ["stack"]: occ for occ in allocation_stacks}
    unknown = []

    for dealloc in deallocation_stacks:
        related = relationships.get(dealloc["stack"])
        if related is None:
            unknown.append(dealloc)
            continue
        for alloc in related:
            outstanding.pop(alloc["stack"], None)

    return {
        "allocation_stacks": allocation_stacks,
        "deallocation_stacks": deallocation_stacks,
        "unfreed_allocation_stacks": list(outstanding.values()),
        "unknown_deallocation_stacks": unknown,
        "total_allocations": allocations.total(),
        "total_deallocations": deallocations.total(),
    }


def analyze_processed(lines: Iterable[str], relationships: StackRelationships) -> ProcessedResult:
    """
    Parse a pre-processed file and correlate it.

    Raises:
        FormatError: If the file layout is not recognised.
    """
    alloc_groups, dealloc_groups = read_processed_sections(lines)

    allocations = StackAggregator()
    for stack, count in alloc_groups:
        allocations.add(stack, count)

    deallocations = StackAggregator()
    for stack, count in dealloc_groups:
        deallocations.add(stack, count)

    return correlate(allocations, deallocations, relationships)
