from brk_ledger import BrkLedger, DECREASE, INCREASE, NEUTRAL, analyze_brk, classify_delta
from conftest import lines
from trace_parser import read_trace_entries
from type_defs import HEAP_BOUNDARY_EVENTS


def test_classify_delta():
    assert classify_delta(100) == INCREASE
    assert classify_delta(-1) == DECREASE
    assert classify_delta(0) == NEUTRAL


def test_sbrk_deltas_on_one_stack():
    trace = lines("""
        <__1;1;1;sbrk;0x1000;100
        libc.so.1`sbrk+0x4
        app`grow_heap__>
        <__2;2;1;sbrk;0x1064;-40
        libc.so.1`sbrk+0x4
        app`grow_heap__>
        <__3;3;1;sbrk;0x103c;0
        libc.so.1`sbrk+0x4
        app`grow_heap__>
    """)

    result = analyze_brk(trace)

    assert (result["increases"], result["decreases"], result["neutral"]) == (1, 1, 1)
    assert result["failed"] == 0
    assert result["unique_stacks"] == [
        {"stack": "libc.so.1`sbrk\napp`grow_heap", "count": 2, "size": 60},
    ]


def test_first_brk_only_seeds_the_break():
    trace = lines("""
        <__1;1;1;brk;0x8000;0
        app`init__>
        <__2;2;1;brk;0x9000;0
        app`grow__>
        <__3;3;1;brk;0x8800;0
        app`shrink__>
    """)

    ledger = BrkLedger()
    buckets = [ledger.process(entry) for entry in read_trace_entries(trace, HEAP_BOUNDARY_EVENTS)]

    assert buckets == [None, INCREASE, DECREASE]
    assert ledger.current_break == 0x8800


def test_failed_calls():
    trace = lines("""
        <__1;1;1;brk;0x8000;0__>
        <__2;2;1;brk;0x20000;-1
        app`huge__>
        <__3;3;1;sbrk;-0x1;4096
        app`huge__>
    """)

    result = analyze_brk(trace)

    assert result["failed"] == 2
    assert result["failed_stacks"] == [{"stack": "app`huge", "count": 2, "size": 4096}]
    assert result["unique_stacks"] == []


def test_brk_increase_sizes_accumulate():
    trace = lines("""
        <__1;1;1;brk;0x8000;0__>
        <__2;2;1;brk;0x8100;0
        app`grow__>
        <__3;3;1;brk;0x8300;0
        app`grow__>
    """)

    result = analyze_brk(trace)

    assert result["increases"] == 2
    assert result["unique_stacks"] == [{"stack": "app`grow", "count": 2, "size": 0x300}]
