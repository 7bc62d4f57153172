"""On-disk cache of discovered trees.

One JSON file per cache key under the cache directory:

    {
      "key": "3f1c...",
      "cli": "kubectl",
      "version": "Client Version: v1.30.1",
      "strategies": ["help"],
      "cached_at": 1760900000,
      "tree": { ...Node.to_dict()... }
    }

Keys hash the CLI name, its version string, the sorted strategy list and
`CACHE_SCHEMA_VERSION`; bump the latter whenever parsing changes enough that
old trees should be ignored.
"""

from __future__ import annotations

import hashlib
import json
import os
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from .models import Node, validate_node_payload

CACHE_SCHEMA_VERSION: Final[str] = "v4"


def cache_key(cli: str, version: str, strategies: Sequence[str]) -> str:
    raw = "|".join([cli, version, ",".join(sorted(strategies)), CACHE_SCHEMA_VERSION])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class TreeCache:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _entries(self) -> list[tuple[Path, dict]]:
        if not self.directory.exists():
            return []
        entries = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                payload = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError):
                continue
            if isinstance(payload, dict):
                entries.append((path, payload))
        return entries

    def get(self, key: str, *, max_age_s: float = 0) -> Node | None:
        """Return the cached tree, or None if absent, unreadable or too old.

        `max_age_s <= 0` disables the age check.
        """
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError):
            return None
        if not isinstance(payload, dict):
            return None
        cached_at = payload.get("cached_at")
        if not isinstance(cached_at, (int, float)) or isinstance(cached_at, bool):
            return None
        if max_age_s > 0 and time.time() - cached_at > max_age_s:
            return None
        try:
            return validate_node_payload(payload=payload.get("tree"))
        except ValueError:
            return None

    def put(
        self,
        key: str,
        *,
        cli: str,
        version: str,
        strategies: Sequence[str],
        node: Node,
    ) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        payload = {
            "key": key,
            "cli": cli,
            "version": version,
            "strategies": sorted(strategies),
            "cached_at": int(time.time()),
            "tree": node.to_dict(),
        }
        # Atomic write: write to temp file then rename
        temp_path = path.with_suffix(f".tmp.{os.getpid()}")
        try:
            temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")
            temp_path.replace(path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)

    def clear_cli(self, cli: str) -> None:
        for path, payload in self._entries():
            if payload.get("cli") == cli:
                path.unlink(missing_ok=True)

    def list_clis(self) -> list[str]:
        names = {
            payload["cli"]
            for _, payload in self._entries()
            if isinstance(payload.get("cli"), str) and payload["cli"]
        }
        return sorted(names)
