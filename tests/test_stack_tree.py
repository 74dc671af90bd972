import pytest

from stack_tree import Branch, Leaf, build_tree, merge_stacks
from trace_parser import FormatError, NO_STACK_FRAME


def occ(stack, count, size=0):
    return {"stack": stack, "count": count, "size": size}


def test_stacks_diverging_below_shared_prefix():
    tree = merge_stacks([occ("baz\nfoo\nroot", 3), occ("bar\nfoo\nroot", 2)])

    assert tree == (
        "root\n"
        "\tfoo\n"
        "\t\tbaz\t***** Found  3  times *****\n"
        "\t\tbar\t***** Found  2  times *****\n"
    )


def test_tree_shape():
    (root,) = build_tree([occ("baz\nfoo\nroot", 3), occ("bar\nfoo\nroot", 2)])

    assert isinstance(root, Branch)
    assert root.frame == "root"
    (foo,) = root.children
    assert foo.frame == "foo"
    assert [leaf.frames for leaf in foo.children] == [["baz"], ["bar"]]
    assert all(isinstance(leaf, Leaf) for leaf in foo.children)


def test_single_stack_is_printed_whole():
    assert merge_stacks([occ("malloc\nmain", 1)]) == "main\n\tmalloc\t***** Found  1  times *****\n"


def test_unrelated_roots_give_separate_trees():
    tree = merge_stacks([occ("a\nroot1", 1), occ("b\nroot2", 1)])

    assert tree.splitlines() == [
        "root1",
        "\ta\t***** Found  1  times *****",
        "root2",
        "\tb\t***** Found  1  times *****",
    ]


def test_leaf_keeps_its_unshared_tail():
    tree = merge_stacks([occ("x\ny\nmain", 2), occ("z\nmain", 1)])

    assert tree.splitlines() == [
        "main",
        "\ty",
        "\t\tx\t***** Found  2  times *****",
        "\tz\t***** Found  1  times *****",
    ]


def test_brk_annotation_has_size():
    tree = merge_stacks([occ("sbrk\nmain", 2, 60)], with_size=True)

    assert tree == "main\n\tsbrk\t***** Found 2 times, overall size increase: 60 bytes *****\n"


def test_empty_stack_uses_placeholder():
    tree = merge_stacks([occ("", 1), occ("malloc\nmain", 1)])

    assert tree.startswith(NO_STACK_FRAME + "\t*****")


def test_stack_ending_inside_shared_prefix_is_fatal():
    with pytest.raises(FormatError, match="does not have a next element"):
        merge_stacks([occ("foo\nroot", 1), occ("bar\nfoo\nroot", 1)])
