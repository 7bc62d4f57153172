"""Data model for discovered command hierarchies.

Nodes are immutable once built. The crawler assembles each node exactly once
(after its own parse and all of its children have finished) and the merger
builds new nodes instead of editing existing ones, so a tree handed to a
renderer or the cache never changes underneath it.

Serialized form (used by the JSON renderer and the cache):

    {
      "name": "kubectl",
      "full_path": ["kubectl"],
      "description": "...",
      "flags": [{"name": "--kubeconfig", "short_name": "", "value_type": "string", "description": "..."}],
      "positionals": [{"name": "FILE", "required": false}],
      "children": [...],
      "help_text": "...",
      "discovered": true,
      "kind": "real",
      "docs_url": "https://..."
    }
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Final, TypedDict

DEFAULT_VALUE_TYPE: Final[str] = "bool"


class NodeKind(enum.Enum):
    """Whether a node is a real subcommand or synthesized from a flag section."""

    REAL = "real"
    VIRTUAL = "virtual"


class FlagData(TypedDict):
    name: str
    short_name: str
    value_type: str
    description: str


class PositionalData(TypedDict):
    name: str
    required: bool


class NodeData(TypedDict):
    name: str
    full_path: list[str]
    description: str
    flags: list[FlagData]
    positionals: list[PositionalData]
    children: list["NodeData"]
    help_text: str
    discovered: bool
    kind: str
    docs_url: str


@dataclass(frozen=True, slots=True)
class Flag:
    """A command-line option.

    `name` is the canonical long form (`--output`), or the short form (`-C`)
    when the tool documents no long spelling.
    """

    name: str
    short_name: str = ""  # single letter, no leading dash
    value_type: str = DEFAULT_VALUE_TYPE
    description: str = ""

    def to_dict(self) -> FlagData:
        return {
            "name": self.name,
            "short_name": self.short_name,
            "value_type": self.value_type,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class Positional:
    name: str
    required: bool = False

    def to_dict(self) -> PositionalData:
        return {"name": self.name, "required": self.required}


@dataclass(frozen=True, slots=True)
class FlagSection:
    """A named group of flags, e.g. everything under "Debug options:"."""

    name: str
    flags: tuple[Flag, ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedHelp:
    """Structured result of parsing one blob of help text."""

    description: str = ""
    flags: tuple[Flag, ...] = ()
    positionals: tuple[Positional, ...] = ()
    subcommands: tuple[str, ...] = ()
    docs_url: str = ""
    sections: tuple[FlagSection, ...] = ()


@dataclass(frozen=True, slots=True)
class Node:
    """One command in a discovered hierarchy."""

    name: str
    full_path: tuple[str, ...]
    description: str = ""
    flags: tuple[Flag, ...] = ()
    positionals: tuple[Positional, ...] = ()
    children: tuple[Node, ...] = ()
    help_text: str = ""
    discovered: bool = True
    kind: NodeKind = NodeKind.REAL
    docs_url: str = ""

    @property
    def full_command(self) -> str:
        """The command as typed, e.g. `git remote add`."""
        if not self.full_path:
            return self.name
        return " ".join(self.full_path)

    @property
    def depth(self) -> int:
        return max(0, len(self.full_path) - 1)

    def is_leaf(self) -> bool:
        return not self.children

    def is_virtual(self) -> bool:
        return self.kind is NodeKind.VIRTUAL

    def find(self, name: str) -> Node | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def walk(self) -> Iterator[Node]:
        """Depth-first pre-order traversal."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> NodeData:
        return {
            "name": self.name,
            "full_path": list(self.full_path),
            "description": self.description,
            "flags": [f.to_dict() for f in self.flags],
            "positionals": [p.to_dict() for p in self.positionals],
            "children": [c.to_dict() for c in self.children],
            "help_text": self.help_text,
            "discovered": self.discovered,
            "kind": self.kind.value,
            "docs_url": self.docs_url,
        }

    @classmethod
    def from_dict(cls, payload: object) -> Node:
        return validate_node_payload(payload=payload)


def stub_node(*, full_path: tuple[str, ...], reason: str) -> Node:
    """Placeholder for a command whose help could not be obtained."""
    return Node(
        name=full_path[-1] if full_path else "",
        full_path=full_path,
        description=f"(could not get help: {reason})",
        discovered=False,
    )


def unique_flags(flags: list[Flag] | tuple[Flag, ...]) -> tuple[Flag, ...]:
    """Drop repeated flag names, keeping the first occurrence."""
    seen: set[str] = set()
    out: list[Flag] = []
    for flag in flags:
        if flag.name in seen:
            continue
        seen.add(flag.name)
        out.append(flag)
    return tuple(out)


def _require_str(payload: dict, key: str, *, allow_empty: bool = True) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    if not allow_empty and not value:
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _validate_flag(*, payload: object) -> Flag:
    if not isinstance(payload, dict):
        raise ValueError("flag must be an object")
    return Flag(
        name=_require_str(payload, "name", allow_empty=False),
        short_name=_require_str(payload, "short_name"),
        value_type=_require_str(payload, "value_type") or DEFAULT_VALUE_TYPE,
        description=_require_str(payload, "description"),
    )


def _validate_positional(*, payload: object) -> Positional:
    if not isinstance(payload, dict):
        raise ValueError("positional must be an object")
    required = payload.get("required", False)
    if not isinstance(required, bool):
        raise ValueError("positional required must be a boolean")
    return Positional(
        name=_require_str(payload, "name", allow_empty=False), required=required
    )


def validate_node_payload(*, payload: object) -> Node:
    """Rebuild a Node from its `to_dict()` form, rejecting malformed input."""
    if not isinstance(payload, dict):
        raise ValueError("node payload must be an object")

    full_path = payload.get("full_path")
    if not isinstance(full_path, list) or not all(
        isinstance(part, str) for part in full_path
    ):
        raise ValueError("full_path must be a list of strings")

    discovered = payload.get("discovered", True)
    if not isinstance(discovered, bool):
        raise ValueError("discovered must be a boolean")

    try:
        kind = NodeKind(payload.get("kind", NodeKind.REAL.value))
    except ValueError as e:
        raise ValueError(f"unknown node kind: {payload.get('kind')!r}") from e

    raw_lists = {}
    for key in ("flags", "positionals", "children"):
        raw = payload.get(key) or []
        if not isinstance(raw, list):
            raise ValueError(f"{key} must be a list")
        raw_lists[key] = raw

    return Node(
        name=_require_str(payload, "name"),
        full_path=tuple(full_path),
        description=_require_str(payload, "description"),
        flags=unique_flags([_validate_flag(payload=f) for f in raw_lists["flags"]]),
        positionals=tuple(
            _validate_positional(payload=p) for p in raw_lists["positionals"]
        ),
        children=tuple(
            validate_node_payload(payload=c) for c in raw_lists["children"]
        ),
        help_text=_require_str(payload, "help_text"),
        discovered=discovered,
        kind=kind,
        docs_url=_require_str(payload, "docs_url"),
    )
