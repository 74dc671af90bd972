"""
Trace parser module.

Turns the text produced by the dtrace allocator and brk/sbrk scripts into a
lazy sequence of trace entries, and reads the aggregated "pre-processed"
allocation/deallocation files.

Entry grammar:
    <__seq;timestamp;threadId;event;field...
    libc.so.1`malloc+0x64
    app`make_buffer+0x1c
    app`main+0x40__>

The start and end markers may sit on the same line for entries without a
call stack.
"""

import re
from typing import Iterable, Iterator, Optional

from dtleak_logger import log_warning
from type_defs import (
    TraceEntry, ALLOCATOR_EVENTS, MIN_HEADER_FIELDS,
    MALLOC, CALLOC, REALLOC, FREE, BRK, SBRK, NEW_ARRAY, DELETE_ARRAY,
)

ENTRY_START = "<__"
ENTRY_END = "__>"

SECTION_MARKER = "=="
NO_STACK_FRAME = "<no call stack>"

# Return address suffix(es) of the innermost frame: "malloc+0x64" -> "malloc"
_RETURN_OFFSET_RE = re.compile(r"(?:\+(?:0[xX][0-9a-fA-F]+|\d+))+$")


class FormatError(Exception):
    """Raised when a trace or pre-processed file cannot be decoded."""

    def __init__(self, message: str, line_no: Optional[int] = None, line: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.line = line

    def __str__(self) -> str:
        if self.line_no is None:
            return self.message
        return f"line {self.line_no}: {self.message}: {self.line!r}"


# =============================================================================
# CALL STACKS
# =============================================================================

def normalize_stack(stack: str) -> str:
    """
    Strip the return offset of the innermost (first) frame of a stack.

    Two captures of the same call site differ only by that offset, so the
    normalized text is used as the identity of a call stack. Empty lines are
    dropped. The operation is idempotent.

    Example:
        >>> normalize_stack("malloc+0x64\\nfoo\\nbar")
        'malloc\\nfoo\\nbar'
    """
    frames = [line for line in stack.split("\n") if line]
    if not frames:
        return ""
    frames[0] = _RETURN_OFFSET_RE.sub("", frames[0])
    return "\n".join(frames)


def stack_frames(stack: str) -> list[str]:
    """
    Return the frames of a stored stack, root-most frame first.

    Stacks are stored in capture order (innermost first); merging needs
    the opposite. A stack without frames yields a single placeholder frame.
    """
    if not stack:
        return [NO_STACK_FRAME]
    return list(reversed(stack.split("\n")))


def _strip_markers(line: str) -> str:
    return line.replace(ENTRY_START, "").replace(ENTRY_END, "")


# =============================================================================
# ENTRY DECODING
# =============================================================================

def parse_address(text: str) -> int:
    """Parse "0x1f00", "-0x1" or a decimal string to an int."""
    value = text.strip()
    negative = value.startswith("-")
    if negative or value.startswith("+"):
        value = value[1:]
    if value.lower().startswith("0x"):
        number = int(value, 16)
    else:
        number = int(value, 10)
    return -number if negative else number


def parse_entry(lines: list[str], line_no: int = 0, kinds: Iterable[str] = ALLOCATOR_EVENTS) -> TraceEntry:
    """
    Decode the lines of one marker-delimited block.

    Args:
        lines: Non-blank lines of the block, first line holds the header.
        line_no: Line number of the header (for error messages).
        kinds: Event names accepted in the current analysis mode.

    Returns:
        The decoded trace entry.

    Raises:
        FormatError: On an unknown event, too few fields or bad numbers.
    """
    if not lines:
        raise FormatError("empty trace entry", line_no)

    header = _strip_markers(lines[0]).strip()
    fields = header.split(";")

    if len(fields) < 4:
        raise FormatError("cannot decode line", line_no, header)

    kind = fields[3].strip()
    if kind not in MIN_HEADER_FIELDS or kind not in kinds:
        raise FormatError(f"cannot handle entry type '{kind}'", line_no, header)
    if len(fields) < MIN_HEADER_FIELDS[kind]:
        raise FormatError(f"too few fields for {kind}", line_no, header)

    entry: TraceEntry = {
        "seq": 0,
        "timestamp": fields[1],
        "thread_id": fields[2],
        "kind": kind,
        "address": "",
        "size": None,
        "previous_address": None,
        "success": None,
        "stack": "",
        "line_no": line_no,
        "header": header,
    }

    try:
        entry["seq"] = int(fields[0])

        if kind in (MALLOC, CALLOC, NEW_ARRAY, DELETE_ARRAY):
            entry["address"] = fields[4]
            entry["size"] = int(fields[5])
        elif kind == REALLOC:
            entry["previous_address"] = fields[4]
            entry["address"] = fields[5]
            entry["size"] = int(fields[6])
        elif kind == FREE:
            entry["address"] = fields[4]
        elif kind == BRK:
            entry["address"] = fields[4]
            entry["success"] = int(fields[5]) != -1
            if entry["success"]:
                parse_address(entry["address"])
        elif kind == SBRK:
            entry["address"] = fields[4]
            entry["previous_address"] = fields[4]
            entry["size"] = int(fields[5])
            entry["success"] = entry["address"] != "-0x1"
            parse_address(entry["address"])
    except ValueError as e:
        raise FormatError(f"bad numeric field ({e})", line_no, header)

    # Everything after the header is the call stack
    frames = []
    for raw in lines[1:]:
        frame = _strip_markers(raw).strip()
        if frame:
            frames.append(frame)
    entry["stack"] = normalize_stack("\n".join(frames))

    return entry


def read_trace_entries(lines: Iterable[str], kinds: Iterable[str] = ALLOCATOR_EVENTS) -> Iterator[TraceEntry]:
    """
    Lazily decode every entry of a trace.

    Args:
        lines: Any iterable of text lines (an open file works).
        kinds: Event names accepted in the current analysis mode.

    Yields:
        Trace entries in file order.

    Raises:
        FormatError: On marker nesting violations or undecodable entries.
    """
    kinds = tuple(kinds)
    block: list[str] = []
    block_line_no = 0
    in_entry = False

    for line_no, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")

        if ENTRY_START in line:
            if in_entry:
                raise FormatError(
                    f"found {ENTRY_START} while already processing a trace entry",
                    line_no, line)
            in_entry = True
            block = [line]
            block_line_no = line_no
            if ENTRY_END in line:
                in_entry = False
                yield parse_entry(block, block_line_no, kinds)
            continue

        if in_entry and line.strip():
            block.append(line)

        if ENTRY_END in line:
            if not in_entry:
                raise FormatError(
                    f"found {ENTRY_END} while not processing a trace entry",
                    line_no, line)
            in_entry = False
            yield parse_entry(block, block_line_no, kinds)

    if in_entry:
        log_warning(f"trace ends inside the entry starting at line {block_line_no}, entry dropped")


# =============================================================================
# PRE-PROCESSED FILES
# =============================================================================

def _parse_group(group: list[tuple[int, str]]) -> tuple[str, int]:
    """Turn (stack lines..., count line) into a normalized (stack, count)."""
    count_line_no, count_text = group[-1]
    try:
        count = int(count_text)
    except ValueError:
        raise FormatError("expected an occurrence count", count_line_no, count_text)
    stack = normalize_stack("\n".join(text for _, text in group[:-1]))
    return stack, count


def read_processed_sections(lines: Iterable[str]) -> tuple[list[tuple[str, int]], list[tuple[str, int]]]:
    """
    Read the allocation and deallocation sections of a pre-processed file.

    Layout:
        == allocations ==

        libc.so.1`malloc+0x64
        app`main+0x10
        42

        == deallocations ==
        ...

    Returns:
        (allocation groups, deallocation groups), each a list of
        (normalized stack, count) in file order.

    Raises:
        FormatError: If the file does not start with a section marker or a
                     group does not end with an integer count.
    """
    sections: list[list[tuple[str, int]]] = [[], []]
    section = -1
    group: list[tuple[int, str]] = []

    for line_no, raw in enumerate(lines, start=1):
        text = raw.strip()

        if not text:
            if group:
                sections[section].append(_parse_group(group))
                group = []
            continue

        if text.startswith(SECTION_MARKER):
            if group:
                sections[section].append(_parse_group(group))
                group = []
            if section == 1:
                raise FormatError("unexpected third section", line_no, text)
            section += 1
            continue

        if section == -1:
            raise FormatError("cannot determine file position", line_no, text)

        group.append((line_no, text))

    if group:
        sections[section].append(_parse_group(group))

    return sections[0], sections[1]
