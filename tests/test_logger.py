import pytest

from dtleak_logger import (
    LogLevel, log_debug, log_error, log_info, log_warning, parse_log_level, set_log_level,
)


def test_messages_below_level_are_dropped(log_output):
    log_info("hidden")
    log_warning("shown")
    log_error("also shown")

    output = log_output.getvalue()
    assert "hidden" not in output
    assert "[WARNING] shown" in output
    assert "[ERROR] also shown" in output


def test_debug_level_shows_everything(log_output):
    set_log_level(LogLevel.DEBUG)

    log_debug("details")

    assert "[DEBUG] details" in log_output.getvalue()


def test_silent_drops_everything(log_output):
    set_log_level(LogLevel.SILENT)

    log_error("nothing")

    assert log_output.getvalue() == ""


def test_messages_are_not_markup(log_output):
    log_warning("[bold]stack[/bold]")

    assert "[bold]stack[/bold]" in log_output.getvalue()


def test_parse_log_level():
    assert parse_log_level(" Info ") == LogLevel.INFO
    with pytest.raises(ValueError, match="unknown log level"):
        parse_log_level("loud")
