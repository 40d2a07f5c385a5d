"""Persistent JSON document store.

Each store is a single JSON file.  Access is guarded by an ``asyncio.Lock``
held for the whole read-modify-write cycle so concurrent requests cannot lose
each other's updates, and writes go through a temp file + atomic rename so a
crash never leaves a half-written document behind.

The state document looks like::

    {
        "users":    {"<user_id>":    {...User...}},
        "clusters": {"<cluster_id>": {...ClusterConnection...}}
    }

and the audit document::

    {
        "records": [{...AuditRecord...}, ...]
    }
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, cast


class JsonStore:
    """One JSON document on disk, serialized through an asyncio lock."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def load(self) -> dict[str, Any]:
        """Return the full document.  Returns {} if the file is missing."""
        async with self._lock:
            return self._read()

    @asynccontextmanager
    async def edit(self) -> AsyncIterator[dict[str, Any]]:
        """Yield the document for in-place mutation and persist it afterwards.

        Nothing is written when the body raises.
        """
        async with self._lock:
            data = self._read()
            yield data
            self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        return cast(dict[str, Any], json.loads(self.path.read_text()))

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False))
        tmp.replace(self.path)
