import io
from pathlib import Path
from textwrap import dedent

import pytest
from rich.console import Console

import dtleak_logger
import terminal_ui
from dtleak_logger import LogLevel


@pytest.fixture(autouse=True)
def log_output():
    """Capture logger output; every test starts at the default level."""
    buffer = io.StringIO()
    previous = dtleak_logger.set_console(Console(file=buffer, width=200, color_system=None))
    dtleak_logger.set_log_level(LogLevel.WARNING)
    terminal_ui.set_color(False)
    yield buffer
    dtleak_logger.set_console(previous)
    dtleak_logger.set_log_level(LogLevel.WARNING)
    terminal_ui.set_color(True)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DTLEAK_REPORT_SUFFIX", "DTLEAK_WORKERS", "DTLEAK_LOG_LEVEL", "DTLEAK_NO_COLOR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_file(tmp_path: Path):
    def _write(rel: str, content: str) -> Path:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(content).lstrip("\n"), encoding="utf-8")
        return path

    return _write


def lines(text: str) -> list[str]:
    """Split an indented trace literal into lines."""
    return dedent(text).lstrip("\n").splitlines()
