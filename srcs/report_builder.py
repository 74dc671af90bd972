"""
Report Builder for dtleak

Turns analysis results into the plain-text report files. Every section is
built as a string by its own `_build_*_section` function; the public
`build_*_report` functions assemble them. Report text carries no dates, so
the same trace always gives the same bytes.
"""

from pathlib import Path

from result_combiner import format_counts
from stack_tree import merge_stacks
from type_defs import (
    MemallocResult, BrkResult, ProcessedResult, CombinedMemalloc,
    CombinedProcessed, CombinedRow, StackOccurrence,
    MALLOC, CALLOC, REALLOC, FREE, NEW_ARRAY, DELETE_ARRAY,
)


# =============================================================================
# REPORT SINK
# =============================================================================

class ReportSink:
    """
    UTF-8 report file written section by section.

    Every write is flushed so a partially built report is still readable
    if a later section fails.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._file = None

    def __enter__(self) -> "ReportSink":
        self._file = open(self.path, "w", encoding="utf-8")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._file.close()
        self._file = None

    def write(self, text: str) -> None:
        self._file.write(text)
        self._file.flush()


def write_report(path: Path, text: str) -> None:
    with ReportSink(path) as sink:
        sink.write(text)


# =============================================================================
# ALLOCATOR REPORT
# =============================================================================

def _build_call_statistics_section(call_counts: dict[str, int]) -> str:
    output = "Call statistics\n"
    for kind in (MALLOC, CALLOC, REALLOC, FREE):
        output += f"Found {call_counts.get(kind, 0)} {kind} calls\n"

    # Array markers only appear in C++ traces
    for kind in (NEW_ARRAY, DELETE_ARRAY):
        if call_counts.get(kind):
            output += f"Found {call_counts[kind]} {kind} calls\n"

    return output


def _build_double_free_section(result: MemallocResult) -> str:
    output = "\nDouble free issues\n"
    output += f"Found {result['total_double_frees']} double free stacks in total\n"

    if result["total_double_frees"] > 0:
        output += f"Found {len(result['double_frees'])} unique double free stacks\n"
        for occ in result["double_frees"]:
            output += f"Found double free stack {occ['count']} times. Stack:\n{occ['stack']}\n\n"

    return output


def _build_wrong_free_section(result: MemallocResult) -> str:
    output = "\nFree non-allocated memory issues (may also be potential memory leaks)\n"
    output += (f"Found {result['total_wrong_frees']} stacks that freed memory that "
               f"was not allocated during the period of the trace\n")
    output += (f"Found {len(result['wrong_frees'])} unique stacks that freed memory "
               f"that was not allocated during the period of the trace\n")
    output += (f"Found {len(result['successful_free_stacks'])} unique stacks that "
               f"correctly freed memory\n")
    output += (f"Found {len(result['wrong_free_strong_suspects'])} unique stacks that "
               f"have never been found to correctly free memory\n")

    output += "Suspected wrong free stacks\n\n"
    for occ in result["wrong_frees"]:
        output += f"Suspected wrong free stack found {occ['count']} times\n{occ['stack']}\n\n\n"

    output += "Strongly suspected wrong free stacks\n\n"
    for occ in result["wrong_free_strong_suspects"]:
        output += f"Strongly suspected wrong free stack found {occ['count']} times\n{occ['stack']}\n\n\n"

    return output


def _build_tree_section(title: str, occurrences: list[StackOccurrence], with_size: bool = False) -> str:
    return f"{title}\n\n{merge_stacks(occurrences, with_size)}\n"


def _build_leak_section(result: MemallocResult) -> str:
    output = "\nMemory leak issues\n"
    output += f"Found {result['total_leaks']} potential memory leaks in total\n"
    output += (f"Found {len(result['leak_suspects'])} unique potential memory leak "
               f"stacks (suspects)\n")
    output += (f"Found {len(result['successfully_deallocated_stacks'])} unique stacks "
               f"that allocated memory that was correctly freed\n")
    output += (f"Found {len(result['leak_strong_suspects'])} unique stacks that were "
               f"never correctly deleted/freed (strong suspects)\n\n")

    stack_total = 0
    for occ in result["leak_suspects"]:
        output += f"Suspect leak stack found {occ['count']} times\n{occ['stack']}\n\n\n"
        stack_total += occ["count"]

    for occ in result["leak_strong_suspects"]:
        output += f"Strongly suspect leak stack found {occ['count']} times\n{occ['stack']}\n\n\n"

    if stack_total != result["total_leaks"]:
        output += (f"(Warn) Found mismatch in counting total memory allocations that were "
                   f"not deleted. From pre-processing: {result['total_leaks']} from each "
                   f"individual stack count:{stack_total}\n\n")

    # A single stack has nothing to merge with
    if len(result["leak_suspects"]) > 1:
        output += _build_tree_section(
            "Presenting memory leak suspects in a combined call stack",
            result["leak_suspects"])
    if len(result["leak_strong_suspects"]) > 1:
        output += _build_tree_section(
            "Presenting strong memory leak suspects in a combined call stack",
            result["leak_strong_suspects"])

    return output


def build_memalloc_report(result: MemallocResult) -> str:
    """
    Build the per-file report of an allocator trace.

    Raises:
        FormatError: If the suspect stacks cannot be merged into a tree.
    """
    return (_build_call_statistics_section(result["call_counts"])
            + _build_double_free_section(result)
            + _build_wrong_free_section(result)
            + _build_leak_section(result))


# =============================================================================
# HEAP-BOUNDARY REPORT
# =============================================================================

def build_brk_report(result: BrkResult) -> str:
    """Build the per-file report of a brk/sbrk trace."""
    output = "\nCall statistics\n\n"
    output += f"Found {result['increases']} brk calls that increased the process virtual memory\n"
    output += f"Found {result['decreases']} brk calls that decreased the process virtual memory\n"
    output += f"Found {result['neutral']} brk calls that were neutral in terms of memory\n"
    output += f"Found {result['failed']} brk calls that failed\n"
    output += f"Found in total {len(result['unique_stacks'])} unique brk stacks\n"

    if result["failed"] > 0:
        output += "\n*** Failed brk calls (unsuccessful memory increase requests) ***\n\n"
        for occ in result["failed_stacks"]:
            output += (f"Failed brk stack found {occ['count']} times, total size:{occ['size']}\n"
                       f"{occ['stack']}\n\n\n")

    output += "\n*** Unique brk call stacks ***\n\n"
    for occ in result["unique_stacks"]:
        output += (f"Unique brk stack found {occ['count']} times, total size:{occ['size']}\n"
                   f"{occ['stack']}\n\n\n")

    output += _build_tree_section(
        "Presenting brk stacks in a combined call stack", result["unique_stacks"], with_size=True)
    return output


# =============================================================================
# PRE-PROCESSED REPORT
# =============================================================================

def build_processed_report(result: ProcessedResult) -> str:
    """Build the per-file report of a correlated pre-processed file."""
    unfreed = sum(occ["count"] for occ in result["unfreed_allocation_stacks"])
    unknown = sum(occ["count"] for occ in result["unknown_deallocation_stacks"])

    output = f"Found {result['total_allocations']} memory allocation calls\n"
    output += f"Found {len(result['allocation_stacks'])} unique memory allocation stacks\n"
    output += f"Found {result['total_deallocations']} memory de-allocation calls\n"
    output += f"Found {len(result['deallocation_stacks'])} unique memory de-allocation stacks\n"
    output += (f"Found {unfreed} (unfreed) memory allocation calls from "
               f"{len(result['unfreed_allocation_stacks'])} unique allocation stacks "
               f"(suspect memory leaks)\n")
    output += (f"Found {unknown} unknown free calls from "
               f"{len(result['unknown_deallocation_stacks'])} unique free stacks\n")
    output += ("number of memory allocation calls - number of free calls = "
               f"{result['total_allocations'] - result['total_deallocations']}\n\n")

    for occ in result["unfreed_allocation_stacks"]:
        output += f"Suspect allocation stack found {occ['count']} times\n{occ['stack']}\n\n\n"
    for occ in result["unknown_deallocation_stacks"]:
        output += f"Unknown deallocation stack found {occ['count']} times\n{occ['stack']}\n\n\n"

    return output


# =============================================================================
# COMBINED REPORTS
# =============================================================================

def _build_legend_section(title: str, files: list[str]) -> str:
    output = f"{title}\n"
    for i, name in enumerate(files):
        output += f"{name} {{{i}}}\n"
    return output + "\n\n"


def _build_rows_section(header: str, rows: list[CombinedRow], label: str) -> str:
    output = f"\n\n*** {header} ***\n\n\n"
    for row in rows:
        output += f"{label} found {format_counts(row['counts'])} times\n{row['stack']}\n\n\n"
    return output


def _build_strong_rows_section(header: str, rows: list[CombinedRow], label: str,
                               never_seen_note: str) -> str:
    output = f"\n\n*** {header} ***\n\n\n"
    for row in rows:
        counts = format_counts(row["counts"])
        if row["freed_elsewhere"]:
            output += f"Strongly suspected {label} found {counts} times\n"
        else:
            output += f"Very strongly suspected {label} found {counts} times ({never_seen_note})\n\n"
        output += f"{row['stack']}\n\n\n"
    return output


def _build_per_file_totals(title: str, totals: list[int]) -> str:
    return f"\n\n{title} :{format_counts(totals, ' ')}\n"


def build_combined_memalloc_report(combined: CombinedMemalloc) -> str:
    """Build the cross-file report of a directory of allocator traces."""
    output = _build_legend_section("Combined memory allocator analysis for files:", combined["files"])

    output += "\n\n*** Double free cases ***\n\n\n"
    for row in combined["double_frees"]:
        output += f"Found double free stack {format_counts(row['counts'])} times. Stack:\n{row['stack']}\n\n"

    output += _build_rows_section(
        "Suspected wrong free cases (stacks that freed memory that was not allocated "
        "during the tracing)",
        combined["wrong_frees"], "Suspected wrong free stack")

    output += _build_strong_rows_section(
        "Strongly suspected wrong free cases (the suspected call stacks freed memory that "
        "was not allocated during the tracing and have not been found to correctly free "
        "memory during the tracing)",
        combined["wrong_free_strong_suspects"], "wrong free stack",
        "it has never been found to correctly free memory for all trace files")

    output += _build_rows_section(
        "Suspected leaks (stacks that allocated memory that was not freed during the tracing)",
        combined["leak_suspects"], "Suspected leak stack")

    output += _build_strong_rows_section(
        "Strongly suspected leaks (stacks that allocated memory that was not freed during "
        "the tracing and have not been found to allocate memory that was freed during the "
        "tracing)",
        combined["leak_strong_suspects"], "leak stack",
        "it has never allocated memory that has been deallocated for all trace files")

    output += _build_per_file_totals(
        "Total memory allocations that were not deleted per file", combined["pending_per_file"])
    return output


def build_combined_processed_report(combined: CombinedProcessed, print_stacks: bool = False) -> str:
    """
    Build the cross-file report of correlated pre-processed files.

    Args:
        combined: Output of combine_processed().
        print_stacks: Also list every allocation and deallocation stack.
    """
    output = _build_legend_section(
        "Combined (short and long term) memory allocator analysis for files:", combined["files"])

    if print_stacks:
        output += _build_rows_section(
            "Allocation Stacks", combined["allocation_stacks"], "Allocation stack")

    output += _build_rows_section(
        "Suspect memory leak stacks (such memory allocations have never been found to be "
        "freed in the short term traces)",
        combined["unfreed_allocation_stacks"], "Suspect allocation stack")

    if print_stacks:
        output += _build_rows_section(
            "Deallocation Stacks", combined["deallocation_stacks"], "Deallocation stack")

    output += _build_rows_section(
        "Unknown free stacks (may potentially free memory from the suspect memory leaks "
        "reported here)",
        combined["unknown_deallocation_stacks"], "Unknown deallocation stack")

    output += _build_per_file_totals(
        "Memory allocations - memory deallocations per file", combined["balance_per_file"])
    return output
