"""Settings resolution and stderr diagnostics.

Settings come from, in increasing priority:
- built-in defaults,
- `config.json` in helptree's home (`~/.config/helptree`, or `HELPTREE_HOME`),
- `HELPTREE_<KEY>` environment variables,
- command-line flags (applied by the CLI on top of `load_settings()`).
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final

DEFAULT_MAX_DEPTH: Final[int] = 3
DEFAULT_TIMEOUT_S: Final[float] = 5.0
DEFAULT_CONCURRENCY: Final[int] = 8
DEFAULT_CACHE_MAX_AGE_S: Final[int] = 24 * 60 * 60
DEFAULT_STRATEGIES: Final[tuple[str, ...]] = ("help",)


def helptree_home() -> Path:
    """Return helptree's home directory.

    Defaults to `~/.config/helptree`, overridable via `HELPTREE_HOME`.
    """
    raw = os.environ.get("HELPTREE_HOME")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".config" / "helptree"


def helptree_config_path() -> Path:
    return helptree_home() / "config.json"


def _load_config() -> dict:
    path = helptree_config_path()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


def config_get(*, key: str) -> object | None:
    # Environment variables override config.json, e.g. `HELPTREE_MAX_DEPTH=2`.
    env_val = os.environ.get(f"HELPTREE_{key.upper()}")
    if env_val is not None and env_val.strip() != "":
        return env_val
    return _load_config().get(key)


def setting_int(*, key: str, default: int) -> int:
    cfg = config_get(key=key)
    if cfg is None or isinstance(cfg, bool):
        return default
    try:
        return int(cfg)
    except (TypeError, ValueError):
        return default


def setting_float(*, key: str, default: float) -> float:
    cfg = config_get(key=key)
    if cfg is None or isinstance(cfg, bool):
        return default
    try:
        return float(cfg)
    except (TypeError, ValueError):
        return default


def _truthy(raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int):
        return raw > 0
    if isinstance(raw, str):
        return raw.strip().lower() not in {"", "0", "false", "no", "off"}
    return False


_verbose_override: int | None = None


def _clamp_verbosity(level: int) -> int:
    return max(0, min(2, level))


@contextmanager
def verbosity(level: int) -> Iterator[None]:
    """Force the trace level for the duration of the block."""
    global _verbose_override
    previous = _verbose_override
    _verbose_override = _clamp_verbosity(level)
    try:
        yield
    finally:
        _verbose_override = previous


def verbose_level() -> int:
    """0 is quiet, 1 traces discovery steps, 2 also traces every probe."""
    if _verbose_override is not None:
        return _verbose_override
    raw = config_get(key="verbose")
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return 1 if raw else 0
    if isinstance(raw, int):
        return _clamp_verbosity(raw)
    if isinstance(raw, str):
        try:
            return _clamp_verbosity(int(raw.strip()))
        except ValueError:
            return 1 if _truthy(raw) else 0
    return 0


def trace(message: str, *, level: int = 1) -> None:
    """Print a `[helptree]` diagnostic to stderr when verbosity allows."""
    if verbose_level() >= level:
        print(f"[helptree] {message}", file=sys.stderr)


def parse_strategies(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated strategy list; blank input means the defaults."""
    if not raw or not raw.strip():
        return DEFAULT_STRATEGIES
    parts = [part.strip() for part in raw.split(",")]
    return tuple(part for part in parts if part) or DEFAULT_STRATEGIES


def normalize_max_depth(value: int | None) -> int:
    """Negative (or missing) depth means "use the default"."""
    if value is None or value < 0:
        return DEFAULT_MAX_DEPTH
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    max_depth: int = DEFAULT_MAX_DEPTH
    timeout_s: float = DEFAULT_TIMEOUT_S
    concurrency: int = DEFAULT_CONCURRENCY
    strategies: tuple[str, ...] = DEFAULT_STRATEGIES
    cache_dir: Path = Path(".")
    cache_max_age_s: int = DEFAULT_CACHE_MAX_AGE_S
    no_color: bool = False


def load_settings() -> Settings:
    cache_dir_raw = config_get(key="cache_dir")
    if isinstance(cache_dir_raw, str) and cache_dir_raw.strip():
        cache_dir = Path(cache_dir_raw).expanduser()
    else:
        cache_dir = helptree_home() / "cache"

    strategies_raw = config_get(key="strategies")
    if isinstance(strategies_raw, list):
        strategies_raw = ",".join(str(s) for s in strategies_raw)

    timeout_s = setting_float(key="timeout_s", default=DEFAULT_TIMEOUT_S)
    concurrency = setting_int(key="concurrency", default=DEFAULT_CONCURRENCY)

    return Settings(
        max_depth=normalize_max_depth(
            setting_int(key="max_depth", default=DEFAULT_MAX_DEPTH)
        ),
        timeout_s=timeout_s if timeout_s > 0 else DEFAULT_TIMEOUT_S,
        concurrency=max(1, concurrency),
        strategies=parse_strategies(
            strategies_raw if isinstance(strategies_raw, str) else None
        ),
        cache_dir=cache_dir,
        cache_max_age_s=max(
            0, setting_int(key="cache_max_age_s", default=DEFAULT_CACHE_MAX_AGE_S)
        ),
        no_color=bool(os.environ.get("NO_COLOR"))
        or _truthy(config_get(key="no_color")),
    )
