#!/usr/bin/env python3
"""
dtleak - dtrace leak analyzer
Command-line tool for analysing memory allocator and brk/sbrk traces.

Usage:
    dtleak memalloc <trace> <report>
    dtleak brk <trace> <report>
    dtleak combine <trace-dir> <report>
    dtleak correlate <processed-dir> <trace-dir> <report> [--print-stacks]
"""

import argparse
import sys
from functools import partial
from pathlib import Path
from typing import Optional

from alloc_ledger import analyze_memalloc, ConsistencyError
from brk_ledger import analyze_brk
from dtleak_config import load_config
from dtleak_logger import parse_log_level, set_log_level, log_info, LogLevel
from file_runner import analyze_files, list_trace_files, open_trace
from processed_correlator import analyze_processed
from relationship_builder import build_relationships
from report_builder import (
    build_memalloc_report, build_brk_report, build_processed_report,
    build_combined_memalloc_report, build_combined_processed_report, write_report,
)
from result_combiner import combine_memalloc, combine_processed
from terminal_ui import start_spinner, stop_spinner, display_summary, display_files, set_color
from trace_parser import FormatError
from type_defs import MemallocResult, ProcessedResult, StackRelationships

# Return codes
SUCCESS = 0
ERROR = 1

LOG_LEVEL_CHOICES = [level.name.lower() for level in LogLevel]


def print_error(message: str) -> None:
    """Print a formatted error message."""
    print(f"\nError: {message}\n", file=sys.stderr)


def _report_path(trace: Path, suffix: str) -> Path:
    return trace.with_name(trace.name + suffix)


def _run_step(message: str, step):
    """Run `step()` under a spinner."""
    t = start_spinner(message)
    try:
        result = step()
    except BaseException:
        stop_spinner(t, message, ok=False)
        raise
    stop_spinner(t, message)
    return result


# =============================================================================
# SINGLE FILE MODES
# =============================================================================

def _analyze_memalloc_file(trace: Path) -> MemallocResult:
    with open_trace(trace) as f:
        return analyze_memalloc(f)


def _memalloc_summary(name: str, result: MemallocResult) -> None:
    display_summary(name, [
        ("Double frees", result["total_double_frees"]),
        ("Wrong frees", result["total_wrong_frees"]),
        ("Strong leak suspect stacks", len(result["leak_strong_suspects"])),
    ], total=("Pending allocations", result["total_leaks"]))


def _cmd_memalloc(args: argparse.Namespace, suffix: str, workers: int) -> int:
    trace, report = Path(args.trace), Path(args.report)
    log_info(f"Started memory allocator analysis for file {trace}")

    result = _run_step(f"Analysing {trace.name}", lambda: _analyze_memalloc_file(trace))
    _run_step(f"Writing {report.name}", lambda: write_report(report, build_memalloc_report(result)))

    log_info(f"Finished memory allocator analysis for file {trace}")
    _memalloc_summary(trace.name, result)
    return SUCCESS


def _cmd_brk(args: argparse.Namespace, suffix: str, workers: int) -> int:
    trace, report = Path(args.trace), Path(args.report)
    log_info(f"Started process memory increase analysis for file {trace}")

    def analyze():
        with open_trace(trace) as f:
            return analyze_brk(f)

    result = _run_step(f"Analysing {trace.name}", analyze)
    _run_step(f"Writing {report.name}", lambda: write_report(report, build_brk_report(result)))

    log_info(f"Finished process memory increase analysis for file {trace}")
    display_summary(trace.name, [
        ("Increases", result["increases"]),
        ("Decreases", result["decreases"]),
        ("Neutral", result["neutral"]),
        ("Failed", result["failed"]),
    ], total=("Net size change", sum(occ["size"] for occ in result["unique_stacks"])))
    return SUCCESS


# =============================================================================
# DIRECTORY MODES
# =============================================================================

def _memalloc_and_report(suffix: str, trace: Path) -> MemallocResult:
    result = _analyze_memalloc_file(trace)
    write_report(_report_path(trace, suffix), build_memalloc_report(result))
    return result


def _processed_and_report(relationships: StackRelationships, suffix: str, path: Path) -> ProcessedResult:
    with open_trace(path) as f:
        result = analyze_processed(f, relationships)
    write_report(_report_path(path, suffix), build_processed_report(result))
    return result


def _list_inputs(directory: str, suffix: str) -> Optional[list[Path]]:
    files = list_trace_files(Path(directory), suffix)
    if not files:
        print_error(f"no trace files found in '{directory}'")
        return None
    return files


def _cmd_combine(args: argparse.Namespace, suffix: str, workers: int) -> int:
    files = _list_inputs(args.trace_dir, suffix)
    if files is None:
        return ERROR

    results = _run_step(
        f"Analysing {len(files)} trace files",
        lambda: analyze_files(files, partial(_memalloc_and_report, suffix), workers))
    if not results:
        print_error("none of the trace files could be analysed")
        return ERROR

    combined = combine_memalloc(results)
    report = Path(args.report)
    _run_step(f"Writing {report.name}",
              lambda: write_report(report, build_combined_memalloc_report(combined)))

    display_summary(f"{len(results)} / {len(files)} trace files analysed", [
        ("Suspected leak stacks", len(combined["leak_suspects"])),
        ("Suspected wrong free stacks", len(combined["wrong_frees"])),
        ("Double free stacks", len(combined["double_frees"])),
    ], total=("Pending allocations", sum(combined["pending_per_file"])))
    display_files(combined["files"])
    return SUCCESS


def _cmd_correlate(args: argparse.Namespace, suffix: str, workers: int) -> int:
    processed_files = _list_inputs(args.processed_dir, suffix)
    if processed_files is None:
        return ERROR
    trace_files = _list_inputs(args.trace_dir, suffix)
    if trace_files is None:
        return ERROR

    relationships = _run_step(
        f"Learning stack relationships from {len(trace_files)} trace files",
        lambda: build_relationships(trace_files, workers))

    analyze = partial(_processed_and_report, relationships, suffix)
    results = _run_step(
        f"Correlating {len(processed_files)} pre-processed files",
        lambda: analyze_files(processed_files, analyze, workers))
    if not results:
        print_error("none of the pre-processed files could be analysed")
        return ERROR

    combined = combine_processed(results)
    report = Path(args.report)
    _run_step(f"Writing {report.name}",
              lambda: write_report(report, build_combined_processed_report(combined, args.print_stacks)))

    display_summary(f"{len(results)} / {len(processed_files)} pre-processed files analysed", [
        ("Known free stacks", len(relationships)),
        ("Suspect allocation stacks", len(combined["unfreed_allocation_stacks"])),
        ("Unknown free stacks", len(combined["unknown_deallocation_stacks"])),
    ], total=("Allocations - deallocations", sum(combined["balance_per_file"])))
    display_files(combined["files"])
    return SUCCESS


# =============================================================================
# ENTRY POINT
# =============================================================================

def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dtleak",
        description="Find memory leaks, wrong frees and heap growth in dtrace captures.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of files analysed in parallel in directory modes (default: DTLEAK_WORKERS or 1)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVEL_CHOICES,
        default=None,
        help="Verbosity of the messages printed on stderr (default: DTLEAK_LOG_LEVEL or warning)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    memalloc = commands.add_parser("memalloc", help="Analyse one memory allocator trace")
    memalloc.add_argument("trace", help="Path to the malloc/calloc/realloc/free trace")
    memalloc.add_argument("report", help="Path of the report to write")
    memalloc.set_defaults(handler=_cmd_memalloc)

    brk = commands.add_parser("brk", help="Analyse one brk/sbrk trace")
    brk.add_argument("trace", help="Path to the brk/sbrk trace")
    brk.add_argument("report", help="Path of the report to write")
    brk.set_defaults(handler=_cmd_brk)

    combine = commands.add_parser("combine", help="Analyse a directory of allocator traces")
    combine.add_argument("trace_dir", help="Directory of allocator traces")
    combine.add_argument("report", help="Path of the combined report to write")
    combine.set_defaults(handler=_cmd_combine)

    correlate = commands.add_parser(
        "correlate", help="Correlate pre-processed files against full allocator traces")
    correlate.add_argument("processed_dir", help="Directory of pre-processed files")
    correlate.add_argument("trace_dir", help="Directory of full allocator traces")
    correlate.add_argument("report", help="Path of the combined report to write")
    correlate.add_argument(
        "--print-stacks",
        action="store_true",
        help="Also list every allocation and deallocation stack in the combined report",
    )
    correlate.set_defaults(handler=_cmd_correlate)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point of dtleak.

    Returns:
        0 on success, 1 on error
    """
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        print_error(f"invalid configuration: {e}")
        return ERROR

    if args.workers is not None and args.workers < 1:
        print_error("--workers must be >= 1")
        return ERROR

    set_log_level(parse_log_level(args.log_level or config["log_level"]))
    set_color(config["color"])
    workers = args.workers or config["workers"]

    try:
        return args.handler(args, config["report_suffix"], workers)

    except FormatError as e:
        print_error(f"malformed input:\n{e}")
        return ERROR

    except ConsistencyError as e:
        print_error(f"inconsistent trace:\n{e}")
        return ERROR

    except OSError as e:
        print_error(str(e))
        return ERROR

    except KeyboardInterrupt:
        print("\n\nAnalysis interrupted by the user.\n")
        return ERROR


if __name__ == "__main__":
    sys.exit(main())
