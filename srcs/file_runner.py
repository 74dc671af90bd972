"""
Per-file execution for the directory modes.

Each trace owns its parser and ledger, so files can be handed to a worker
pool. A file that hits a fatal error is logged and left out; the others
still reach the combined report.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, TypeVar

from alloc_ledger import ConsistencyError
from dtleak_logger import log_debug, log_error, log_info
from trace_parser import FormatError

T = TypeVar("T")

# Errors that abort one file only
FILE_ERRORS = (FormatError, ConsistencyError, OSError)


def open_trace(path: Path):
    """Open a trace for line-by-line reading."""
    return open(path, "r", encoding="utf-8", errors="replace")


def list_trace_files(directory: Path, report_suffix: str) -> list[Path]:
    """
    List the trace files of a directory, sorted by file name.

    Previously generated reports (names ending with `report_suffix`) and
    sub-directories are skipped.

    Raises:
        NotADirectoryError: If `directory` is not a directory.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"'{directory}' is not a directory")
    files = [path for path in directory.iterdir()
             if path.is_file() and not path.name.endswith(report_suffix)]
    return sorted(files, key=lambda path: path.name)


def _run_one(analyze: Callable[[Path], T], path: Path) -> T:
    log_info(f"Started analysis of {path}")
    result = analyze(path)
    log_info(f"Finished analysis of {path}")
    return result


def analyze_files(paths: list[Path], analyze: Callable[[Path], T], workers: int = 1) -> dict[Path, T]:
    """
    Run `analyze` on every path, possibly in parallel.

    Args:
        paths: Files to analyse.
        analyze: Per-file analysis; must not share mutable state between calls.
        workers: Worker threads (1 runs everything in the calling thread).

    Returns:
        Results of the files that succeeded, in file-name order.
    """
    results: dict[Path, T] = {}
    log_debug(f"Analysing {len(paths)} file(s) with {workers} worker(s)")

    if workers <= 1 or len(paths) <= 1:
        for path in paths:
            try:
                results[path] = _run_one(analyze, path)
            except FILE_ERRORS as e:
                log_error(f"Analysis of {path} failed: {e}")
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(paths))) as ex:
            futures = {ex.submit(_run_one, analyze, path): path for path in paths}
            for fut in as_completed(futures):
                path = futures[fut]
                try:
                    results[path] = fut.result()
                except FILE_ERRORS as e:
                    log_error(f"Analysis of {path} failed: {e}")

    return {path: results[path]
            for path in sorted(results, key=lambda path: path.name)}
