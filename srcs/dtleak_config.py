"""
Configuration for dtleak

Settings come from the environment, optionally seeded from a `.env` file in
the working directory. Command-line options override them.
"""

import os

from dotenv import load_dotenv

from dtleak_logger import parse_log_level
from type_defs import DtleakConfig

DEFAULT_REPORT_SUFFIX = ".report"
DEFAULT_WORKERS = 1
DEFAULT_LOG_LEVEL = "warning"


def _read_workers(raw: str) -> int:
    try:
        workers = int(raw)
    except ValueError:
        raise ValueError(f"DTLEAK_WORKERS must be an integer, got '{raw}'")
    if workers < 1:
        raise ValueError(f"DTLEAK_WORKERS must be at least 1, got {workers}")
    return workers


def load_config() -> DtleakConfig:
    """
    Resolve the runtime configuration.

    Returns:
        The settings, with defaults for unset variables.

    Raises:
        ValueError: If a variable holds an invalid value.
    """
    load_dotenv()

    report_suffix = os.getenv("DTLEAK_REPORT_SUFFIX", DEFAULT_REPORT_SUFFIX)
    if not report_suffix:
        raise ValueError("DTLEAK_REPORT_SUFFIX must not be empty")

    workers = _read_workers(os.getenv("DTLEAK_WORKERS", str(DEFAULT_WORKERS)))

    log_level = os.getenv("DTLEAK_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    try:
        parse_log_level(log_level)
    except ValueError as e:
        raise ValueError(f"DTLEAK_LOG_LEVEL: {e}")

    return {
        "report_suffix": report_suffix,
        "workers": workers,
        "log_level": log_level.strip().lower(),
        "color": not os.getenv("DTLEAK_NO_COLOR"),
    }
