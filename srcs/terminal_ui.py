#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
terminal_ui.py

Progress spinners and the coloured summary printed on stdout after each
analysis. Nothing here touches the report files.
"""

import sys
import threading
import time
from typing import Optional

from ansi_colors import RESET, GREEN, RED, DARK_GREEN, LIGHT_YELLOW, DARK_YELLOW, LIGHT_PINK, GRAY


_color_enabled = True

# Global flag for spinner control
_spinner_active = False


def set_color(enabled: bool) -> None:
    global _color_enabled
    _color_enabled = enabled


def _paint(color: str, text: str) -> str:
    if not _color_enabled:
        return text
    return f"{color}{text}{RESET}"


def _animated() -> bool:
    return sys.stdout.isatty()


def _spinner_animation(message):
    """Thread function that displays the animated spinner."""
    spinner = ['◐', '◓', '◑', '◒']
    colors = [LIGHT_PINK, DARK_GREEN]
    i = 0
    while _spinner_active:
        symbol = _paint(colors[i % len(colors)], spinner[i % len(spinner)])
        sys.stdout.write(f"\r{symbol} {message}")
        sys.stdout.flush()
        time.sleep(0.1)
        i += 1


def start_spinner(message: str) -> Optional[threading.Thread]:
    """
    Start an animated spinner with a message.

    Args:
        message: The message to display next to the spinner

    Returns:
        The spinner thread, or None when stdout is not a terminal
    """
    global _spinner_active
    if not _animated():
        return None
    _spinner_active = True
    thread = threading.Thread(target=_spinner_animation, args=(message,))
    thread.daemon = True
    thread.start()
    return thread


def stop_spinner(thread: Optional[threading.Thread], message: str, ok: bool = True) -> None:
    """
    Stop the spinner and display a checkmark (or a cross on failure).

    Args:
        thread: The spinner thread to stop (None if it never animated)
        message: The message to display
        ok: False when the step failed
    """
    global _spinner_active
    _spinner_active = False
    if thread is not None:
        thread.join()
        sys.stdout.write("\r")
    mark = _paint(GREEN, "✓") if ok else _paint(RED, "✗")
    sys.stdout.write(f"{mark} {message}\n")
    sys.stdout.flush()


def display_summary(title: str, rows: list[tuple[str, int]], total: Optional[tuple[str, int]] = None) -> None:
    """
    Display a boxed summary of one analysis.

    Args:
        title: First line of the box (e.g. the trace file name)
        rows: (label, value) pairs, values right-aligned
        total: Optional closing (label, value) line, highlighted
    """
    print()
    print(_paint(GREEN, f"• {title} :"))
    print()

    values = [str(value) for _, value in rows]
    if total is not None:
        values.append(str(total[1]))
    labels = [label for label, _ in rows]
    if total is not None:
        labels.append(total[0])

    label_len = max((len(label) for label in labels), default=0)
    value_len = max((len(value) for value in values), default=0)

    lines = [f"   {label:<{label_len}} : {value:>{value_len}}" for label, value in zip(labels, values)]
    if total is not None:
        lines[-1] = " ‣" + lines[-1][2:]

    separator = "-" * max((len(line) for line in lines), default=0)

    for i, line in enumerate(lines):
        print(_paint(LIGHT_YELLOW, separator))
        color = DARK_YELLOW if total is not None and i == len(lines) - 1 else LIGHT_YELLOW
        print(_paint(color, line))
    print(_paint(LIGHT_YELLOW, separator))
    print()


def display_files(files: list[str]) -> None:
    """List the files that made it into a combined report, with their index."""
    for i, name in enumerate(files):
        print(_paint(GRAY, f"   {{{i}}} {name}"))
    print()
