"""
stack_tree.py

Merges a list of related call stacks into one indented tree: frames shared
by several stacks are printed once, and each stack's own tail ends with its
frequency annotation.

    _start
    	main
    		load_config
    		parse_args	***** Found  3  times *****
    		read_input	***** Found  2  times *****
"""

from typing import Callable, Union

from trace_parser import FormatError, stack_frames
from type_defs import StackOccurrence


def allocation_annotation(occ: StackOccurrence) -> str:
    return f"\t***** Found  {occ['count']}  times *****"


def brk_annotation(occ: StackOccurrence) -> str:
    return f"\t***** Found {occ['count']} times, overall size increase: {occ['size']} bytes *****"


class Leaf(object):
    """The unshared tail of a single stack."""
    __slots__ = ('frames', 'occurrence')

    def __init__(self, frames: list[str], occurrence: StackOccurrence):
        self.frames = frames
        self.occurrence = occurrence


class Branch(object):
    """A frame shared by every stack below it."""
    __slots__ = ('frame', 'children')

    def __init__(self, frame: str, children: list):
        self.frame = frame
        self.children = children


Node = Union[Leaf, Branch]
_Member = tuple[list[str], StackOccurrence]


def _group_by_frame(members: list[_Member], depth: int) -> dict[str, list[_Member]]:
    """Split members on their frame at `depth`, keeping first-seen order."""
    groups: dict[str, list[_Member]] = {}
    for frames, occ in members:
        if len(frames) < depth + 1:
            raise FormatError(
                f"found stack that does not have a next element:\n{occ['stack']}")
        groups.setdefault(frames[depth], []).append((frames, occ))
    return groups


def _build(members: list[_Member], depth: int) -> Node:
    # All members share frames [0, depth]
    if len(members) == 1:
        frames, occ = members[0]
        return Leaf(frames[depth:], occ)

    frame = members[0][0][depth]
    children = [_build(group, depth + 1)
                for group in _group_by_frame(members, depth + 1).values()]
    return Branch(frame, children)


def build_tree(occurrences: list[StackOccurrence]) -> list[Node]:
    """
    Build the merged forest for a list of stack occurrences.

    Stacks are grouped by their root frame first, so unrelated roots give
    separate trees.

    Raises:
        FormatError: If one stack ends where others still share frames with it.
    """
    members = [(stack_frames(occ["stack"]), occ) for occ in occurrences]
    return [_build(group, 0) for group in _group_by_frame(members, 0).values()]


def _render(node: Node, depth: int, annotate: Callable[[StackOccurrence], str], out: list[str]) -> None:
    if isinstance(node, Leaf):
        last = len(node.frames) - 1
        for i, frame in enumerate(node.frames):
            line = "\t" * (depth + i) + frame
            if i == last:
                line += annotate(node.occurrence)
            out.append(line + "\n")
        return

    out.append("\t" * depth + node.frame + "\n")
    for child in node.children:
        _render(child, depth + 1, annotate, out)


def render_tree(nodes: list[Node], annotate: Callable[[StackOccurrence], str] = allocation_annotation) -> str:
    out: list[str] = []
    for node in nodes:
        _render(node, 0, annotate, out)
    return "".join(out)


def merge_stacks(occurrences: list[StackOccurrence], with_size: bool = False) -> str:
    """
    Render a list of stack occurrences as one merged tree.

    Args:
        occurrences: Unique stacks of one classification.
        with_size: Annotate leaves with the cumulative size (brk stacks).

    Returns:
        The tree text, one frame per line, indented with tabs.
    """
    annotate = brk_annotation if with_size else allocation_annotation
    return render_tree(build_tree(occurrences), annotate)
