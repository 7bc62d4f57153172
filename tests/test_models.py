import json

import pytest

from helptree.models import (
    Flag,
    Node,
    NodeKind,
    Positional,
    stub_node,
    unique_flags,
    validate_node_payload,
)


def sample_tree() -> Node:
    return Node(
        name="git",
        full_path=("git",),
        description="the version control system",
        flags=(
            Flag(name="--version"),
            Flag(name="--verbose", short_name="v"),
        ),
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
                flags=(Flag(name="--trace"), Flag(name="--dump")),
                kind=NodeKind.VIRTUAL,
            ),
        ),
    )


def test_node_helpers():
    tree = sample_tree()
    add = tree.find("remote").find("add")

    assert add.full_command == "git remote add"
    assert add.depth == 2
    assert tree.depth == 0
    assert add.is_leaf()
    assert not tree.is_leaf()
    assert tree.find("missing") is None
    assert tree.find("Debug options").is_virtual()
    assert [n.name for n in tree.walk()] == [
        "git",
        "commit",
        "remote",
        "add",
        "remove",
        "Debug options",
    ]


def test_serialized_form_survives_json():
    tree = sample_tree()
    payload = json.loads(json.dumps(tree.to_dict()))

    assert payload["children"][2]["kind"] == "virtual"
    assert payload["flags"][1] == {
        "name": "--verbose",
        "short_name": "v",
        "value_type": "bool",
        "description": "",
    }
    assert Node.from_dict(payload) == tree


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"name": "x", "full_path": "x"},
        {"name": "x", "full_path": ["x"], "discovered": "yes"},
        {"name": "x", "full_path": ["x"], "kind": "imaginary"},
        {"name": "x", "full_path": ["x"], "flags": [{"name": ""}]},
        {"name": "x", "full_path": ["x"], "positionals": [{"name": "a", "required": 1}]},
        {"name": "x", "full_path": ["x"], "children": "nope"},
    ],
)
def test_validate_rejects_malformed_payloads(payload):
    with pytest.raises(ValueError):
        validate_node_payload(payload=payload)


def test_stub_node():
    stub = stub_node(full_path=("git", "frob"), reason="timed out after 5s")

    assert stub.name == "frob"
    assert not stub.discovered
    assert stub.description == "(could not get help: timed out after 5s)"
    assert stub.is_leaf()


def test_unique_flags_keeps_first():
    flags = unique_flags(
        [Flag(name="--verbose", short_name="v"), Flag(name="--quiet"), Flag(name="--verbose")]
    )
    assert [f.name for f in flags] == ["--verbose", "--quiet"]
    assert flags[0].short_name == "v"


def test_nodes_are_immutable():
    tree = sample_tree()
    with pytest.raises(AttributeError):
        tree.name = "hg"  # type: ignore[misc]
