"""Terminal and JSON rendering of discovered trees."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Final

from .models import DEFAULT_VALUE_TYPE, Flag, Node

# ANSI colors for terminal output
DIM: Final[str] = "\033[2m"
RESET: Final[str] = "\033[0m"
BOLD: Final[str] = "\033[1m"
CYAN: Final[str] = "\033[36m"
GREEN: Final[str] = "\033[32m"
YELLOW: Final[str] = "\033[33m"
BLUE: Final[str] = "\033[34m"
MAGENTA: Final[str] = "\033[35m"
RED: Final[str] = "\033[31m"

ICON_BRANCH: Final[str] = "▼ "
ICON_LEAF: Final[str] = "• "
ICON_VIRTUAL: Final[str] = "◇ "
CONN_MID: Final[str] = "├── "
CONN_LAST: Final[str] = "└── "
PAD_MID: Final[str] = "│   "
PAD_LAST: Final[str] = "    "

MAX_INLINE_FLAGS: Final[int] = 5

OUTPUT_FORMATS: Final[tuple[str, ...]] = ("text", "json")

_STRING_TYPES: Final[frozenset[str]] = frozenset({"string", "stringArray", "[]string"})
_INT_TYPES: Final[frozenset[str]] = frozenset({"int", "int64", "uint", "uint64", "count"})


@dataclass(frozen=True, slots=True)
class RenderOptions:
    max_depth: int = -1  # negative: unlimited
    filter: str = ""
    exclude: str = ""
    commands_only: bool = False
    full_path: bool = False
    output: str = "text"
    no_color: bool = False


@dataclass(frozen=True, slots=True)
class TreeStats:
    commands: int = 0
    flags: int = 0
    max_depth: int = 0


def collect_stats(root: Node) -> TreeStats:
    commands = flags = max_depth = 0
    stack = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        commands += 1
        flags += len(node.flags)
        max_depth = max(max_depth, depth)
        stack.extend((child, depth + 1) for child in node.children)
    return TreeStats(commands=commands, flags=flags, max_depth=max_depth)


def _flag_color(value_type: str) -> str:
    if value_type in ("", DEFAULT_VALUE_TYPE):
        return GREEN
    if value_type in _STRING_TYPES:
        return YELLOW
    if value_type in _INT_TYPES:
        return BLUE
    return MAGENTA


def _has_matching_descendant(node: Node, needle: str) -> bool:
    return any(needle in child.name for child in node.walk() if child is not node)


class _TextRenderer:
    def __init__(self, options: RenderOptions) -> None:
        self._opts = options
        self._lines: list[str] = []

    def _paint(self, text: str, color: str) -> str:
        if self._opts.no_color or not color:
            return text
        return f"{color}{text}{RESET}"

    def _format_flag(self, flag: Flag) -> str:
        out = self._paint(flag.name, _flag_color(flag.value_type))
        if flag.value_type and flag.value_type != DEFAULT_VALUE_TYPE:
            out += "=" + self._paint(f"<{flag.value_type}>", CYAN)
        return out

    def _meta(self, node: Node) -> list[str]:
        if self._opts.commands_only:
            return []
        meta = [
            self._paint(f"<{p.name}>" if p.required else f"[{p.name}]", CYAN)
            for p in node.positionals
        ]
        if 0 < len(node.flags) <= MAX_INLINE_FLAGS:
            meta.append("[" + ",".join(self._format_flag(f) for f in node.flags) + "]")
        elif len(node.flags) > MAX_INLINE_FLAGS:
            meta.append(self._paint(f"[{len(node.flags)} flags]", DIM))
        return meta

    def _visible(self, node: Node, depth: int) -> bool:
        opts = self._opts
        if opts.max_depth >= 0 and depth > opts.max_depth:
            return False
        if opts.commands_only and node.is_virtual():
            return False
        if opts.exclude and opts.exclude in node.name:
            return False
        if opts.filter and opts.filter not in node.name:
            return _has_matching_descendant(node, opts.filter)
        return True

    def render_node(self, node: Node, *, prefix: str, is_last: bool, depth: int) -> None:
        if not self._visible(node, depth):
            return

        if node.is_virtual():
            icon = ICON_VIRTUAL
        elif node.children:
            icon = ICON_BRANCH
        else:
            icon = ICON_LEAF

        label = node.full_command if self._opts.full_path else node.name
        name = self._paint(label, BOLD if depth == 0 else CYAN)
        if not node.discovered:
            name += " " + self._paint("(?)", RED)

        line = prefix
        if depth > 0:
            line += CONN_LAST if is_last else CONN_MID
        line += icon + name
        meta = self._meta(node)
        if meta:
            line += " " + " ".join(meta)
        if node.description:
            line += "  " + self._paint(node.description, DIM)
        self._lines.append(line)

        child_prefix = prefix
        if depth > 0:
            child_prefix += PAD_LAST if is_last else PAD_MID
        children = node.children
        for index, child in enumerate(children):
            self.render_node(
                child,
                prefix=child_prefix,
                is_last=index == len(children) - 1,
                depth=depth + 1,
            )

    def text(self) -> str:
        return "\n".join(self._lines) + ("\n" if self._lines else "")


def render(node: Node, options: RenderOptions | None = None) -> str:
    """Render `node` as a text tree or as JSON.

    Raises ValueError for an unknown output format.
    """
    options = options or RenderOptions()
    if options.output == "json":
        return json.dumps(node.to_dict(), indent=2) + "\n"
    if options.output in ("text", ""):
        renderer = _TextRenderer(options)
        renderer.render_node(node, prefix="", is_last=True, depth=0)
        return renderer.text()
    raise ValueError(f"unknown output format: {options.output}")
