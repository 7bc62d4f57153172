import threading
import time
from dataclasses import dataclass, field

import pytest

from helptree.crawl import Crawler, virtual_children
from helptree.errors import (
    BinaryNotFoundError,
    ProbeCancelledError,
    ProbeTimeoutError,
)
from helptree.models import NodeKind
from helptree.parse import parse_help


def command_help(path: str, *, commands=(), flags=("verbose",)) -> str:
    lines = [f"{path} does things.", "", "Usage:", f"  {path} [command]", ""]
    if commands:
        lines.append("Available Commands:")
        lines += [f"  {name:<10}  Run {name}" for name in commands]
        lines.append("")
    lines.append("Flags:")
    lines += [f"      --{name}   Set {name}" for name in flags]
    return "\n".join(lines) + "\n"


@dataclass
class FakeFetcher:
    """Serves help text by argument path, optionally after a delay."""

    pages: dict[tuple[str, ...], object]
    delays: dict[tuple[str, ...], float] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)
    on_fetch: object = None

    def fetch_help(self, binary, args_prefix=(), *, cancel=None):
        key = tuple(args_prefix)
        with self.lock:
            self.calls.append(key)
        if cancel is not None and cancel.is_set():
            raise ProbeCancelledError(f"cancelled: {binary} {' '.join(key)}")
        time.sleep(self.delays.get(key, 0))
        page = self.pages.get(key)
        if self.on_fetch is not None:
            self.on_fetch(key)
        if isinstance(page, Exception):
            raise page
        return page


def tool_pages() -> dict[tuple[str, ...], object]:
    return {
        (): command_help("tool", commands=("alpha", "beta", "gamma")),
        ("alpha",): command_help("tool alpha", commands=("one", "two")),
        ("alpha", "one"): command_help("tool alpha one", flags=("force", "dry-run")),
        ("alpha", "two"): command_help("tool alpha two"),
        ("beta",): command_help("tool beta"),
        ("gamma",): command_help("tool gamma", commands=("deep",)),
        ("gamma", "deep"): command_help("tool gamma deep", commands=("deeper",)),
        ("gamma", "deep", "deeper"): command_help("tool gamma deep deeper"),
    }


def make_crawler(fetcher, **kwargs) -> Crawler:
    return Crawler(fetcher=fetcher, resolver=lambda name: name, **kwargs)


def test_discovers_full_tree_in_listing_order():
    root = make_crawler(FakeFetcher(tool_pages())).discover("tool")

    assert root.name == "tool"
    assert root.full_path == ("tool",)
    assert root.description == "tool does things."
    assert [c.name for c in root.children] == ["alpha", "beta", "gamma"]
    alpha = root.find("alpha")
    assert [c.full_command for c in alpha.children] == [
        "tool alpha one",
        "tool alpha two",
    ]
    one = alpha.find("one")
    assert [f.name for f in one.flags] == ["--force", "--dry-run"]
    assert one.is_leaf()
    assert all(node.discovered for node in root.walk())


def test_result_independent_of_concurrency_and_timing():
    delays = {("alpha",): 0.05, ("beta",): 0.0, ("gamma",): 0.02, ("alpha", "one"): 0.03}
    serial = make_crawler(FakeFetcher(tool_pages()), concurrency=1).discover("tool")
    parallel = make_crawler(
        FakeFetcher(tool_pages(), delays=delays), concurrency=8
    ).discover("tool")

    assert serial == parallel
    assert [c.name for c in parallel.children] == ["alpha", "beta", "gamma"]


def test_depth_bound():
    fetcher = FakeFetcher(tool_pages())
    root = make_crawler(fetcher, max_depth=1).discover("tool")

    assert max(node.depth for node in root.walk()) == 1
    assert max(len(call) for call in fetcher.calls) == 1
    assert root.find("alpha").is_leaf()


def test_depth_override_and_zero_depth():
    fetcher = FakeFetcher(tool_pages())
    root = make_crawler(fetcher, max_depth=3).discover("tool", max_depth=0)

    assert root.is_leaf()
    assert fetcher.calls == [()]


def test_negative_depth_means_default():
    fetcher = FakeFetcher(tool_pages())
    root = make_crawler(fetcher, max_depth=-1).discover("tool")

    deeper = root.find("gamma").find("deep").find("deeper")
    assert deeper is not None
    assert deeper.depth == 3


def test_each_path_probed_once():
    fetcher = FakeFetcher(tool_pages())
    make_crawler(fetcher).discover("tool")

    assert sorted(fetcher.calls) == sorted(tool_pages())


def test_failed_child_becomes_stub():
    pages = tool_pages()
    pages[("beta",)] = ProbeTimeoutError(["tool", "beta", "--help"], 5.0)
    root = make_crawler(FakeFetcher(pages)).discover("tool")

    assert [c.name for c in root.children] == ["alpha", "beta", "gamma"]
    beta = root.find("beta")
    assert not beta.discovered
    assert beta.description.startswith("(could not get help:")
    assert "timed out" in beta.description
    assert beta.full_path == ("tool", "beta")
    assert root.find("alpha").discovered
    assert root.find("gamma").discovered


def test_silent_child_becomes_stub():
    pages = tool_pages()
    pages[("beta",)] = None
    root = make_crawler(FakeFetcher(pages)).discover("tool")

    beta = root.find("beta")
    assert not beta.discovered
    assert beta.description == "(could not get help: no help output)"


def test_missing_child_binary_is_a_stub_not_an_error():
    pages = tool_pages()
    pages[("beta",)] = BinaryNotFoundError("tool-beta")
    root = make_crawler(FakeFetcher(pages)).discover("tool")

    assert not root.find("beta").discovered


def test_missing_root_binary_raises():
    def resolver(name):
        raise BinaryNotFoundError(name)

    crawler = Crawler(fetcher=FakeFetcher(tool_pages()), resolver=resolver)
    with pytest.raises(BinaryNotFoundError):
        crawler.discover("tool")

    fetcher = FakeFetcher({(): BinaryNotFoundError("tool")})
    with pytest.raises(BinaryNotFoundError):
        make_crawler(fetcher).discover("tool")


def test_root_without_help_is_a_stub():
    root = make_crawler(FakeFetcher({})).discover("tool")

    assert root.name == "tool"
    assert not root.discovered
    assert root.is_leaf()


def test_echoed_parent_help_becomes_leaf():
    pages = tool_pages()
    pages[("beta",)] = pages[()]
    fetcher = FakeFetcher(pages)
    root = make_crawler(fetcher).discover("tool")

    beta = root.find("beta")
    assert beta.is_leaf()
    assert beta.discovered
    assert beta.full_path == ("tool", "beta")
    assert ("beta", "alpha") not in fetcher.calls


def test_flag_sections_become_virtual_children():
    text = """Usage: tool [options]

Output options:
  -o, --output FILE   write to FILE
  --format FMT        output format

Debug options:
  --trace             trace execution
  --dump-config       dump configuration
"""
    root = make_crawler(FakeFetcher({(): text})).discover("tool")

    assert [c.name for c in root.children] == ["Output options", "Debug options"]
    output = root.children[0]
    assert output.kind is NodeKind.VIRTUAL
    assert output.is_virtual()
    assert output.full_path == ("tool", "Output options")
    assert [f.name for f in output.flags] == ["--output", "--format"]

    leaf = make_crawler(FakeFetcher({(): text})).discover("tool", max_depth=0)
    assert leaf.is_leaf()


def test_virtual_children_helper():
    parsed = parse_help(command_help("tool"))
    assert virtual_children(("tool",), parsed) == ()


def test_cancellation_turns_pending_probes_into_stubs():
    cancel = threading.Event()

    def cancel_after_root(key):
        if key == ():
            cancel.set()

    fetcher = FakeFetcher(tool_pages(), on_fetch=cancel_after_root)
    root = make_crawler(fetcher).discover("tool", cancel=cancel)

    assert root.discovered
    assert [c.name for c in root.children] == ["alpha", "beta", "gamma"]
    assert not any(child.discovered for child in root.children)
    assert all("cancelled" in child.description for child in root.children)


def test_cancel_before_start_gives_root_stub():
    cancel = threading.Event()
    cancel.set()
    root = make_crawler(FakeFetcher(tool_pages())).discover("tool", cancel=cancel)

    assert not root.discovered


def test_crawler_name():
    assert Crawler().name == "help"


@dataclass
class CountingFetcher:
    """Tracks how many probes run at once."""

    pages: dict[tuple[str, ...], str]
    active: int = 0
    peak: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch_help(self, binary, args_prefix=(), *, cancel=None):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(0.02)
            return self.pages.get(tuple(args_prefix))
        finally:
            with self.lock:
                self.active -= 1


def test_probes_in_flight_never_exceed_concurrency():
    names = [f"cmd{i}" for i in range(20)]
    pages = {(): command_help("tool", commands=names)}
    pages.update({(name,): command_help(f"tool {name}") for name in names})
    fetcher = CountingFetcher(pages)

    root = make_crawler(fetcher, concurrency=3).discover("tool")

    assert [c.name for c in root.children] == names
    assert 1 <= fetcher.peak <= 3
