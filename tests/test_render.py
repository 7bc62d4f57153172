import json

import pytest

from helptree.models import Flag, Node, NodeKind, Positional, stub_node
from helptree.render import RenderOptions, collect_stats, render


def sample_tree() -> Node:
    return Node(
        name="git",
        full_path=("git",),
        description="the version control system",
        flags=(Flag(name="--version"), Flag(name="--verbose", short_name="v")),
        children=(
            Node(
                name="commit",
                full_path=("git", "commit"),
                description="record changes to the repository",
                flags=(Flag(name="--message", short_name="m", value_type="string"),),
                positionals=(Positional(name="file"),),
            ),
            Node(
                name="remote",
                full_path=("git", "remote"),
                children=(
                    Node(
                        name="add",
                        full_path=("git", "remote", "add"),
                        positionals=(
                            Positional(name="name", required=True),
                            Positional(name="url", required=True),
                        ),
                    ),
                    Node(name="remove", full_path=("git", "remote", "remove")),
                ),
            ),
            Node(
                name="Debug options",
                full_path=("git", "Debug options"),
                flags=tuple(Flag(name=f"--debug-{i}") for i in range(6)),
                kind=NodeKind.VIRTUAL,
            ),
            stub_node(full_path=("git", "frob"), reason="timed out after 5s"),
        ),
    )


PLAIN = RenderOptions(no_color=True)


def test_text_tree():
    out = render(sample_tree(), PLAIN)
    lines = out.splitlines()

    assert lines[0] == "▼ git [--version,--verbose]  the version control system"
    assert lines[1] == (
        "├── • commit [file] [--message=<string>]  record changes to the repository"
    )
    assert lines[2] == "├── ▼ remote"
    assert lines[3] == "│   ├── • add <name> <url>"
    assert lines[4] == "│   └── • remove"
    assert lines[5] == "├── ◇ Debug options [6 flags]"
    assert lines[6] == "└── • frob (?)  (could not get help: timed out after 5s)"
    assert "\033[" not in out


def test_colors():
    out = render(sample_tree(), RenderOptions())
    assert "\033[" in out
    assert "\033[33m--message\033[0m" in out


def test_max_depth():
    out = render(sample_tree(), RenderOptions(max_depth=1, no_color=True))
    assert "remote" in out
    assert "add" not in out


def test_filter_keeps_ancestors():
    out = render(sample_tree(), RenderOptions(filter="add", no_color=True))
    names = [line.split()[-1] for line in out.splitlines()]
    assert "remote" in out
    assert "add" in out
    assert "commit" not in out
    assert len(names) == 3


def test_exclude():
    out = render(sample_tree(), RenderOptions(exclude="remote", no_color=True))
    assert "remote" not in out
    assert "add" not in out
    assert "commit" in out


def test_commands_only_and_full_path():
    out = render(
        sample_tree(), RenderOptions(commands_only=True, full_path=True, no_color=True)
    )
    assert "--message" not in out
    assert "<name>" not in out
    assert "Debug options" not in out
    assert "git remote add" in out


def test_json():
    out = render(sample_tree(), RenderOptions(output="json"))
    payload = json.loads(out)
    assert payload["name"] == "git"
    assert [c["name"] for c in payload["children"]][:2] == ["commit", "remote"]


def test_unknown_format():
    with pytest.raises(ValueError, match="unknown output format"):
        render(sample_tree(), RenderOptions(output="yaml"))


def test_collect_stats():
    stats = collect_stats(sample_tree())
    assert stats.commands == 7
    assert stats.flags == 2 + 1 + 6
    assert stats.max_depth == 2
