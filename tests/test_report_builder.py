from conftest import lines
from alloc_ledger import analyze_memalloc
from brk_ledger import analyze_brk
from report_builder import (
    build_brk_report, build_combined_memalloc_report, build_combined_processed_report,
    build_memalloc_report, build_processed_report, write_report,
)

TRACE = """
    <__1;1;1;malloc;0x10;8
    libc.so.1`malloc+0x4
    app`load
    app`main__>
    <__2;2;1;malloc;0x20;8
    libc.so.1`malloc+0x4
    app`parse
    app`main__>
    <__3;3;1;free;0x99
    libc.so.1`free+0x4
    app`cleanup
    app`main__>
"""


def test_memalloc_report_sections():
    report = build_memalloc_report(analyze_memalloc(lines(TRACE)))

    assert report.startswith("Call statistics\nFound 2 malloc calls\nFound 0 calloc calls\n")
    assert "\nDouble free issues\nFound 0 double free stacks in total\n" in report
    assert "Suspected wrong free stack found 1 times\nlibc.so.1`free\napp`cleanup\napp`main\n" in report
    assert "Found 2 potential memory leaks in total\n" in report
    assert "Suspect leak stack found 1 times\nlibc.so.1`malloc\napp`load\napp`main\n" in report
    assert "mismatch" not in report
    assert "new[]" not in report


def test_memalloc_report_merges_suspects():
    report = build_memalloc_report(analyze_memalloc(lines(TRACE)))

    tree = report.split("Presenting memory leak suspects in a combined call stack\n\n")[1]
    assert tree.startswith(
        "app`main\n"
        "\tapp`load\n"
        "\t\tlibc.so.1`malloc\t***** Found  1  times *****\n"
        "\tapp`parse\n"
        "\t\tlibc.so.1`malloc\t***** Found  1  times *****\n"
    )


def test_single_leak_stack_is_not_merged():
    report = build_memalloc_report(analyze_memalloc(["<__1;1;1;malloc;0x10;8__>"]))

    assert "combined call stack" not in report


def test_memalloc_report_is_byte_stable():
    result = analyze_memalloc(lines(TRACE))

    assert build_memalloc_report(result) == build_memalloc_report(analyze_memalloc(lines(TRACE)))


def test_brk_report():
    result = analyze_brk(lines("""
        <__1;1;1;sbrk;0x1000;100
        app`grow__>
        <__2;2;1;sbrk;0x1064;-40
        app`grow__>
        <__3;3;1;brk;0x5000;-1
        app`fail__>
    """))

    report = build_brk_report(result)

    assert "Found 1 brk calls that increased the process virtual memory\n" in report
    assert "Found 1 brk calls that failed\n" in report
    assert "Failed brk stack found 1 times, total size:0\napp`fail\n" in report
    assert "Unique brk stack found 2 times, total size:60\napp`grow\n" in report
    assert report.endswith(
        "Presenting brk stacks in a combined call stack\n\n"
        "app`grow\t***** Found 2 times, overall size increase: 60 bytes *****\n\n")


def test_processed_report():
    report = build_processed_report({
        "allocation_stacks": [{"stack": "a", "count": 5, "size": 0}],
        "deallocation_stacks": [{"stack": "f", "count": 2, "size": 0}],
        "unfreed_allocation_stacks": [{"stack": "a", "count": 5, "size": 0}],
        "unknown_deallocation_stacks": [{"stack": "f", "count": 2, "size": 0}],
        "total_allocations": 5,
        "total_deallocations": 2,
    })

    assert "Found 5 (unfreed) memory allocation calls from 1 unique allocation stacks" in report
    assert "Found 2 unknown free calls from 1 unique free stacks\n" in report
    assert "number of memory allocation calls - number of free calls = 3\n" in report


def test_combined_memalloc_report():
    report = build_combined_memalloc_report({
        "files": ["a.trace", "b.trace"],
        "double_frees": [],
        "wrong_frees": [{"stack": "w", "counts": [1, 0], "freed_elsewhere": None}],
        "wrong_free_strong_suspects": [{"stack": "w", "counts": [1, 0], "freed_elsewhere": False}],
        "leak_suspects": [{"stack": "l", "counts": [2, 3], "freed_elsewhere": None}],
        "leak_strong_suspects": [{"stack": "l", "counts": [2, 3], "freed_elsewhere": True}],
        "pending_per_file": [2, 3],
    })

    assert report.startswith("Combined memory allocator analysis for files:\na.trace {0}\nb.trace {1}\n")
    assert "Suspected wrong free stack found {0}=1, {1}=0 times\nw\n" in report
    assert ("Very strongly suspected wrong free stack found {0}=1, {1}=0 times "
            "(it has never been found to correctly free memory for all trace files)") in report
    assert "Strongly suspected leak stack found {0}=2, {1}=3 times\nl\n" in report
    assert report.endswith("Total memory allocations that were not deleted per file :{0}=2 {1}=3\n")


def test_combined_processed_report_optional_stacks():
    combined = {
        "files": ["p1"],
        "allocation_stacks": [{"stack": "a", "counts": [4], "freed_elsewhere": None}],
        "unfreed_allocation_stacks": [],
        "deallocation_stacks": [{"stack": "f", "counts": [1], "freed_elsewhere": None}],
        "unknown_deallocation_stacks": [],
        "balance_per_file": [3],
    }

    short = build_combined_processed_report(combined)
    full = build_combined_processed_report(combined, print_stacks=True)

    assert "Allocation stack found" not in short
    assert "Allocation stack found {0}=4 times\na\n" in full
    assert "Deallocation stack found {0}=1 times\nf\n" in full
    assert short.endswith("Memory allocations - memory deallocations per file :{0}=3\n")


def test_write_report(tmp_path):
    path = tmp_path / "out.report"

    write_report(path, "Call statistics\n")

    assert path.read_text(encoding="utf-8") == "Call statistics\n"
