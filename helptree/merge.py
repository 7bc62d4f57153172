"""Combining trees from several discovery strategies.

Only the "help" strategy exists today, but `run` accepts any number of
discoverers and unions what they find: a later strategy fills gaps left by an
earlier one and never overwrites it.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

from .config import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT_S, trace
from .crawl import Crawler
from .errors import BinaryNotFoundError, DiscoveryError, HelptreeError
from .fetch import HelpFetcher
from .models import Node


class Discoverer(Protocol):
    name: str

    def discover(
        self,
        cli_name: str,
        *,
        max_depth: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Node: ...


def _union_by_name(first: tuple, second: tuple) -> tuple:
    seen = {item.name for item in first}
    extra = []
    for item in second:
        if item.name not in seen:
            seen.add(item.name)
            extra.append(item)
    return (*first, *extra)


def _merge_pair(dst: Node, src: Node) -> Node:
    children = list(dst.children)
    for src_child in src.children:
        for index, dst_child in enumerate(children):
            if dst_child.name == src_child.name:
                children[index] = _merge_pair(dst_child, src_child)
                break
        else:
            children.append(src_child)

    return replace(
        dst,
        description=dst.description or src.description,
        help_text=dst.help_text or src.help_text,
        docs_url=dst.docs_url or src.docs_url,
        discovered=dst.discovered or src.discovered,
        flags=_union_by_name(dst.flags, src.flags),
        positionals=_union_by_name(dst.positionals, src.positionals),
        children=tuple(children),
    )


def merge(trees: Sequence[Node]) -> Node | None:
    """Union `trees` into one tree; the first tree wins on conflicts.

    Nodes are immutable, so the result shares unchanged subtrees with the
    inputs and the inputs themselves are left as they were.
    """
    if not trees:
        return None
    result = trees[0]
    for tree in trees[1:]:
        result = _merge_pair(result, tree)
    return result


def build_discoverers(
    strategies: Sequence[str],
    *,
    max_depth: int,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Discoverer]:
    """Instantiate discoverers by strategy name; unknown names are skipped."""

    def help_discoverer() -> Discoverer:
        return Crawler(
            max_depth=max_depth,
            concurrency=concurrency,
            fetcher=HelpFetcher(timeout_s=timeout_s),
        )

    result: list[Discoverer] = []
    for strategy in strategies:
        if strategy == "help":
            result.append(help_discoverer())
        else:
            trace(f"unknown strategy {strategy!r}, skipping")
    return result or [help_discoverer()]


def run(
    discoverers: Sequence[Discoverer],
    cli_name: str,
    *,
    cancel: threading.Event | None = None,
) -> Node:
    """Run every discoverer against `cli_name` and merge the results.

    A missing executable is reported straight away; any other strategy
    failure is skipped unless no strategy produced a tree at all.
    """
    if not discoverers:
        discoverers = [Crawler()]

    trees: list[Node] = []
    last_error: HelptreeError | None = None
    for discoverer in discoverers:
        try:
            trees.append(discoverer.discover(cli_name, cancel=cancel))
        except BinaryNotFoundError:
            raise
        except HelptreeError as e:
            trace(f"strategy {discoverer.name!r} failed: {e}")
            last_error = e

    merged = merge(trees)
    if merged is None:
        raise DiscoveryError(
            f"no discovery strategy produced a tree for {cli_name!r}"
        ) from last_error
    return merged
