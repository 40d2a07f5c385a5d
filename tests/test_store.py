"""Tests for the JSON document store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from rabbitmq_admin.store import JsonStore

pytestmark = pytest.mark.asyncio


async def test_missing_file_loads_empty(tmp_path: Path) -> None:
    assert await JsonStore(tmp_path / "none.json").load() == {}


async def test_edit_persists_and_creates_parent(tmp_path: Path) -> None:
    store = JsonStore(tmp_path / "nested" / "state.json")
    async with store.edit() as data:
        data["users"] = {"1": {"username": "alice"}}
    assert json.loads(store.path.read_text()) == {"users": {"1": {"username": "alice"}}}
    assert not store.path.with_suffix(".tmp").exists()


async def test_failed_edit_writes_nothing(tmp_path: Path) -> None:
    store = JsonStore(tmp_path / "state.json")
    async with store.edit() as data:
        data["n"] = 1
    with pytest.raises(RuntimeError):
        async with store.edit() as data:
            data["n"] = 2
            raise RuntimeError("abort")
    assert await store.load() == {"n": 1}
