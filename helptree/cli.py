"""Command-line entry point.

    helptree git                        # text tree
    helptree --depth 2 kubectl          # same as `helptree discover ...`
    helptree --output json git
    helptree cache list
    helptree cache clear [cli]
    helptree version
"""

from __future__ import annotations

import argparse
import sys
import threading
from dataclasses import replace
from typing import Final

from . import __version__
from .cache import TreeCache, cache_key
from .config import (
    Settings,
    load_settings,
    normalize_max_depth,
    parse_strategies,
    trace,
    verbosity,
)
from .errors import BinaryNotFoundError, HelptreeError
from .fetch import probe_version, resolve_binary
from .merge import build_discoverers, run
from .models import Node
from .render import OUTPUT_FORMATS, RenderOptions, render

ACTIONS: Final[frozenset[str]] = frozenset({"discover", "cache", "version"})
DEFAULT_OVERALL_TIMEOUT_S: Final[float] = 30.0
EXIT_NOT_FOUND: Final[int] = 127


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helptree",
        description="Discover a CLI's command hierarchy from its help output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="action")

    # discover command (default)
    disc_p = subparsers.add_parser("discover", help="Discover and print a command tree")
    disc_p.add_argument("cli", help="Executable to explore (name on PATH or a path)")
    disc_p.add_argument(
        "--depth",
        type=int,
        default=None,
        help="Max subcommand depth (default from config, 3)",
    )
    disc_p.add_argument(
        "-s",
        "--strategy",
        default=None,
        help="Discovery strategies, comma-separated (default: help)",
    )
    disc_p.add_argument("--output", default="text", choices=OUTPUT_FORMATS)
    disc_p.add_argument("--filter", default="", help="Only show nodes matching pattern")
    disc_p.add_argument("--exclude", default="", help="Hide nodes matching pattern")
    disc_p.add_argument(
        "--commands-only", action="store_true", help="Hide flags and positionals"
    )
    disc_p.add_argument("--full-path", action="store_true", help="Show full command paths")
    disc_p.add_argument("--no-color", action="store_true", help="Disable colors")
    disc_p.add_argument("--no-cache", action="store_true", help="Skip the tree cache")
    disc_p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_OVERALL_TIMEOUT_S,
        help="Overall discovery deadline in seconds (0 disables)",
    )
    disc_p.add_argument(
        "--probe-timeout",
        type=float,
        default=None,
        help="Per-invocation timeout in seconds (default from config, 5)",
    )
    disc_p.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Max help probes in flight (default from config, 8)",
    )
    disc_p.add_argument("--debug", action="store_true", help="Trace probes to stderr")

    # cache command
    cache_p = subparsers.add_parser("cache", help="Manage cached trees")
    cache_sub = cache_p.add_subparsers(dest="cache_action")
    clear_p = cache_sub.add_parser("clear", help="Clear cached trees")
    clear_p.add_argument("cli", nargs="?", help="Only clear entries for this CLI")
    cache_sub.add_parser("list", help="List CLIs with cached trees")

    subparsers.add_parser("version", help="Print version information")
    return parser


def _normalize_argv(argv: list[str]) -> list[str]:
    # `helptree git` is shorthand for `helptree discover git`.
    if not argv or argv[0] in ACTIONS or argv[0] in ("-h", "--help"):
        return argv
    return ["discover", *argv]


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    changes: dict[str, object] = {}
    if args.depth is not None:
        changes["max_depth"] = normalize_max_depth(args.depth)
    if args.strategy is not None:
        changes["strategies"] = parse_strategies(args.strategy)
    if args.probe_timeout is not None and args.probe_timeout > 0:
        changes["timeout_s"] = args.probe_timeout
    if args.concurrency is not None:
        changes["concurrency"] = max(1, args.concurrency)
    if args.no_color:
        changes["no_color"] = True
    return replace(settings, **changes)


def discover_tree(
    cli: str,
    *,
    settings: Settings,
    use_cache: bool = True,
    cancel: threading.Event | None = None,
) -> Node:
    """Discover `cli`, going through the tree cache unless disabled."""
    cache: TreeCache | None = None
    key = ""
    version = ""
    if use_cache:
        binary = resolve_binary(cli)
        version = probe_version(binary, timeout_s=settings.timeout_s)
        key = cache_key(cli, version, settings.strategies)
        cache = TreeCache(settings.cache_dir)
        cached = cache.get(key, max_age_s=settings.cache_max_age_s)
        if cached is not None:
            trace(f"cache hit: {cli} ({key})")
            return cached
        trace(f"cache miss: {cli} ({key})")

    discoverers = build_discoverers(
        settings.strategies,
        max_depth=settings.max_depth,
        timeout_s=settings.timeout_s,
        concurrency=settings.concurrency,
    )
    node = run(discoverers, cli, cancel=cancel)

    cancelled = cancel is not None and cancel.is_set()
    if cache is not None and node.discovered and not cancelled:
        try:
            cache.put(
                key,
                cli=cli,
                version=version,
                strategies=settings.strategies,
                node=node,
            )
        except OSError as e:
            trace(f"cache write failed: {e}")
    return node


def _run_discover(args: argparse.Namespace) -> int:
    if args.debug:
        with verbosity(2):
            return _discover_and_render(args)
    return _discover_and_render(args)


def _discover_and_render(args: argparse.Namespace) -> int:
    settings = _apply_overrides(load_settings(), args)

    cancel = threading.Event()
    timer: threading.Timer | None = None
    if args.timeout and args.timeout > 0:
        timer = threading.Timer(args.timeout, cancel.set)
        timer.daemon = True
        timer.start()
    try:
        node = discover_tree(
            args.cli,
            settings=settings,
            use_cache=not args.no_cache,
            cancel=cancel,
        )
    finally:
        if timer is not None:
            timer.cancel()
    if cancel.is_set():
        print(
            f"helptree: discovery deadline of {args.timeout:g}s reached, tree is partial",
            file=sys.stderr,
        )

    options = RenderOptions(
        max_depth=args.depth if args.depth is not None else -1,
        filter=args.filter,
        exclude=args.exclude,
        commands_only=args.commands_only,
        full_path=args.full_path,
        output=args.output,
        no_color=settings.no_color,
    )
    sys.stdout.write(render(node, options))
    return 0


def _run_cache(args: argparse.Namespace) -> int:
    cache = TreeCache(load_settings().cache_dir)
    if args.cache_action == "clear":
        if args.cli:
            cache.clear_cli(args.cli)
            print(f"Cache cleared for {args.cli!r}.")
        else:
            cache.clear()
            print("Cache cleared.")
        return 0
    if args.cache_action == "list":
        names = cache.list_clis()
        if not names:
            print("(cache is empty)")
        for name in names:
            print(name)
        return 0
    print("Missing cache action (clear or list)", file=sys.stderr)
    return 2


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    raw = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(_normalize_argv(raw))

    if args.action is None:
        parser.print_usage(sys.stderr)
        return 2

    if args.action == "version":
        print(f"helptree {__version__}")
        return 0

    try:
        if args.action == "cache":
            return _run_cache(args)
        return _run_discover(args)
    except BinaryNotFoundError as e:
        print(f"helptree: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except HelptreeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
