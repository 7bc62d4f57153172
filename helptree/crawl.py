"""Recursive, bounded-concurrency discovery of a command tree.

The walk is coordinated from the calling thread. Every probe (run the help
command, parse its output) is a task on a fixed-size thread pool; when a probe
finishes the coordinator either fans out one task per subcommand or settles
the node. Each parent owns a pre-sized list of child slots indexed by the
subcommand's position in its help text, so `children` keeps the listing order
no matter which probe finishes first. A node is built once all of its slots
are filled, and only the coordinator thread ever writes a slot.

Per command path the walk goes Pending -> Probed -> Expanded | Leaf | Stub.
"""

from __future__ import annotations

import concurrent.futures
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import ClassVar, Protocol

from .config import DEFAULT_CONCURRENCY, DEFAULT_MAX_DEPTH, normalize_max_depth, trace
from .errors import BinaryNotFoundError, ProbeError
from .fetch import HelpFetcher, resolve_binary
from .models import Node, NodeKind, ParsedHelp, stub_node
from .parse import DEFAULT_PARSER, SectionParser


class HelpSource(Protocol):
    def fetch_help(
        self,
        binary: str,
        args_prefix: Sequence[str] = (),
        *,
        cancel: threading.Event | None = None,
    ) -> str | None: ...


@dataclass(frozen=True, slots=True)
class _ProbeOutcome:
    help_text: str
    parsed: ParsedHelp


@dataclass(slots=True, eq=False)
class _Branch:
    """Bookkeeping for one command path while its subtree is in flight."""

    full_path: tuple[str, ...]
    depth: int
    parent: _Branch | None = None
    slot: int = 0
    help_text: str = ""
    parsed: ParsedHelp = field(default_factory=ParsedHelp)
    children: list[Node | None] = field(default_factory=list)
    remaining: int = 0


def virtual_children(
    full_path: tuple[str, ...], parsed: ParsedHelp
) -> tuple[Node, ...]:
    """One synthesized leaf per named flag section."""
    return tuple(
        Node(
            name=section.name,
            full_path=(*full_path, section.name),
            flags=section.flags,
            kind=NodeKind.VIRTUAL,
        )
        for section in parsed.sections
    )


def _build_node(
    full_path: tuple[str, ...],
    *,
    help_text: str,
    parsed: ParsedHelp,
    children: tuple[Node, ...] = (),
) -> Node:
    return Node(
        name=full_path[-1],
        full_path=full_path,
        description=parsed.description,
        flags=parsed.flags,
        positionals=parsed.positionals,
        children=children,
        help_text=help_text,
        docs_url=parsed.docs_url,
    )


class _TreeWalk:
    def __init__(
        self,
        *,
        fetcher: HelpSource,
        parser: SectionParser,
        binary: str,
        max_depth: int,
        cancel: threading.Event | None,
        executor: concurrent.futures.Executor,
    ) -> None:
        self._fetcher = fetcher
        self._parser = parser
        self._binary = binary
        self._max_depth = max_depth
        self._cancel = cancel
        self._executor = executor
        self._futures: dict[concurrent.futures.Future[_ProbeOutcome | None], _Branch] = {}
        self._root: Node | None = None

    def run(self, cli_name: str) -> Node:
        self._submit(_Branch(full_path=(cli_name,), depth=0))
        while self._futures:
            done, _ = concurrent.futures.wait(
                self._futures, return_when=concurrent.futures.FIRST_COMPLETED
            )
            for future in done:
                self._on_probed(self._futures.pop(future), future)
        if self._root is None:
            raise RuntimeError("tree walk ended without a root node")
        return self._root

    def _probe(self, args: tuple[str, ...]) -> _ProbeOutcome | None:
        text = self._fetcher.fetch_help(self._binary, args, cancel=self._cancel)
        if not text:
            return None
        return _ProbeOutcome(help_text=text, parsed=self._parser.parse(text))

    def _submit(self, branch: _Branch) -> None:
        future = self._executor.submit(self._probe, branch.full_path[1:])
        self._futures[future] = branch

    def _on_probed(
        self,
        branch: _Branch,
        future: concurrent.futures.Future[_ProbeOutcome | None],
    ) -> None:
        reason = "no help output"
        try:
            outcome = future.result()
        except BinaryNotFoundError as e:
            if branch.parent is None:
                raise
            outcome, reason = None, str(e)
        except ProbeError as e:
            outcome, reason = None, str(e)

        if outcome is None:
            trace(f"stub: {' '.join(branch.full_path)}: {reason}")
            self._settle(branch, stub_node(full_path=branch.full_path, reason=reason))
            return

        parent = branch.parent
        if parent is not None and outcome.help_text == parent.help_text:
            # The tool echoed its parent's help (typical for unknown
            # subcommands); keep the child as a leaf rather than recursing.
            self._settle(
                branch,
                _build_node(
                    branch.full_path, help_text=parent.help_text, parsed=parent.parsed
                ),
            )
            return

        parsed = outcome.parsed
        branch.help_text = outcome.help_text
        branch.parsed = parsed
        trace(
            f"probed: {' '.join(branch.full_path)} "
            f"({len(parsed.subcommands)} subcommands, {len(parsed.flags)} flags)",
            level=2,
        )

        if branch.depth < self._max_depth and parsed.subcommands:
            branch.children = [None] * len(parsed.subcommands)
            branch.remaining = len(parsed.subcommands)
            for slot, name in enumerate(parsed.subcommands):
                self._submit(
                    _Branch(
                        full_path=(*branch.full_path, name),
                        depth=branch.depth + 1,
                        parent=branch,
                        slot=slot,
                    )
                )
            return

        children: tuple[Node, ...] = ()
        if branch.depth < self._max_depth and parsed.sections:
            children = virtual_children(branch.full_path, parsed)
        self._settle(
            branch,
            _build_node(
                branch.full_path,
                help_text=outcome.help_text,
                parsed=parsed,
                children=children,
            ),
        )

    def _settle(self, branch: _Branch, node: Node) -> None:
        while True:
            parent = branch.parent
            if parent is None:
                self._root = node
                return
            parent.children[branch.slot] = node
            parent.remaining -= 1
            if parent.remaining:
                return
            children = tuple(child for child in parent.children if child is not None)
            branch, node = parent, _build_node(
                parent.full_path,
                help_text=parent.help_text,
                parsed=parent.parsed,
                children=children,
            )


@dataclass(frozen=True, slots=True)
class Crawler:
    """The "help" discovery strategy: walk a CLI by probing its help output."""

    name: ClassVar[str] = "help"

    max_depth: int = DEFAULT_MAX_DEPTH
    concurrency: int = DEFAULT_CONCURRENCY
    fetcher: HelpSource = field(default_factory=HelpFetcher)
    parser: SectionParser = DEFAULT_PARSER
    resolver: Callable[[str], str] = resolve_binary

    def discover(
        self,
        cli_name: str,
        *,
        max_depth: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Node:
        """Build the command tree for `cli_name`.

        Raises BinaryNotFoundError when the executable cannot be found; every
        other per-command failure becomes a `discovered=False` stub.
        """
        depth_limit = normalize_max_depth(
            self.max_depth if max_depth is None else max_depth
        )
        binary = self.resolver(cli_name)
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, self.concurrency),
            thread_name_prefix="helptree-probe",
        ) as executor:
            walk = _TreeWalk(
                fetcher=self.fetcher,
                parser=self.parser,
                binary=binary,
                max_depth=depth_limit,
                cancel=cancel,
                executor=executor,
            )
            return walk.run(cli_name)
