"""
result_combiner.py

Lines up the per-file results of a directory run: every stack of a category
becomes one row carrying its occurrence count in each file (0 where the file
never saw it), so a stack that leaks in every capture stands out from one that
shows up once.
"""

from pathlib import Path

from type_defs import (
    StackOccurrence, CombinedRow, MemallocResult, ProcessedResult,
    CombinedMemalloc, CombinedProcessed,
)


def _by_name(results: dict) -> list:
    return sorted(results.items(), key=lambda item: Path(item[0]).name)


def combine_rows(per_file: list[list[StackOccurrence]]) -> list[CombinedRow]:
    """
    Build occurrence vectors for one category across files.

    Files are walked left to right. A stack is emitted once, at the first
    file that has it; later files contribute their count to the same row
    and are not re-emitted.

    Args:
        per_file: Each file's unique stacks for the category, in file order.

    Returns:
        One row per distinct stack.
    """
    file_count = len(per_file)
    lookups = [{occ["stack"]: occ for occ in occurrences} for occurrences in per_file]
    consumed: list[set[str]] = [set() for _ in per_file]
    rows: list[CombinedRow] = []

    for i, occurrences in enumerate(per_file):
        for occ in occurrences:
            stack = occ["stack"]
            if stack in consumed[i]:
                continue

            counts = [0] * file_count
            counts[i] = occ["count"]
            for j in range(i + 1, file_count):
                other = lookups[j].get(stack)
                if other is not None and stack not in consumed[j]:
                    counts[j] = other["count"]
                    consumed[j].add(stack)

            rows.append({"stack": stack, "counts": counts, "freed_elsewhere": None})

    return rows


def mark_seen(rows: list[CombinedRow], seen: set[str]) -> list[CombinedRow]:
    """Flag each row whose stack appears in `seen` (collected over all files)."""
    for row in rows:
        row["freed_elsewhere"] = row["stack"] in seen
    return rows


def combine_memalloc(results: dict[Path, MemallocResult]) -> CombinedMemalloc:
    """
    Combine allocator results of several traces.

    Strong-suspect tiers are checked against every file: a strongly suspected
    leak that some file saw deallocated correctly (or a wrong free stack that
    some file saw free correctly) keeps `freed_elsewhere=True`; the others are
    the very strong suspects.
    """
    ordered = _by_name(results)
    files = [Path(path).name for path, _ in ordered]
    per_file = [result for _, result in ordered]

    deallocated_anywhere: set[str] = set()
    freed_anywhere: set[str] = set()
    for result in per_file:
        deallocated_anywhere.update(result["successfully_deallocated_stacks"])
        freed_anywhere.update(result["successful_free_stacks"])

    return {
        "files": files,
        "double_frees": combine_rows([r["double_frees"] for r in per_file]),
        "wrong_frees": combine_rows([r["wrong_frees"] for r in per_file]),
        "wrong_free_strong_suspects": mark_seen(
            combine_rows([r["wrong_free_strong_suspects"] for r in per_file]),
            freed_anywhere),
        "leak_suspects": combine_rows([r["leak_suspects"] for r in per_file]),
        "leak_strong_suspects": mark_seen(
            combine_rows([r["leak_strong_suspects"] for r in per_file]),
            deallocated_anywhere),
        "pending_per_file": [sum(occ["count"] for occ in r["leak_suspects"])
                             for r in per_file],
    }


def combine_processed(results: dict[Path, ProcessedResult]) -> CombinedProcessed:
    """Combine the correlation results of several pre-processed files."""
    ordered = _by_name(results)
    per_file = [result for _, result in ordered]

    return {
        "files": [Path(path).name for path, _ in ordered],
        "allocation_stacks": combine_rows([r["allocation_stacks"] for r in per_file]),
        "unfreed_allocation_stacks": combine_rows(
            [r["unfreed_allocation_stacks"] for r in per_file]),
        "deallocation_stacks": combine_rows([r["deallocation_stacks"] for r in per_file]),
        "unknown_deallocation_stacks": combine_rows(
            [r["unknown_deallocation_stacks"] for r in per_file]),
        "balance_per_file": [r["total_allocations"] - r["total_deallocations"]
                             for r in per_file],
    }


def format_counts(counts: list[int], separator: str = ", ") -> str:
    """Render an occurrence vector as `{0}=3, {1}=0`."""
    return separator.join(f"{{{i}}}={count}" for i, count in enumerate(counts))

