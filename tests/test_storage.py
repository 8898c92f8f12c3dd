"""Storage backends."""

from __future__ import annotations

import asyncio

import pytest

from livesheet.storage import FileStorage, MemoryStorage, Storage


class TestMemoryStorage:
    def test_get_set(self) -> None:
        storage = MemoryStorage({"k": "v"})

        async def scenario() -> tuple:
            before = await storage.get("k")
            await storage.set("k", "w")
            return before, await storage.get("k"), await storage.get("missing")

        assert asyncio.run(scenario()) == ("v", "w", None)
        assert storage.reads == ["k", "k", "missing"]
        assert storage.writes == [("k", "w")]

    def test_satisfies_protocol(self) -> None:
        assert isinstance(MemoryStorage(), Storage)
        assert isinstance(FileStorage("."), Storage)


class TestFileStorage:
    def test_missing_key_reads_none(self, tmp_path) -> None:
        storage = FileStorage(tmp_path)
        assert asyncio.run(storage.get("formulas")) is None

    def test_round_trip(self, tmp_path) -> None:
        storage = FileStorage(tmp_path / "data")
        asyncio.run(storage.set("formulas", '{"a": "1"}'))

        path = tmp_path / "data" / "formulas.json"
        assert path.read_text() == '{"a": "1"}'
        assert asyncio.run(storage.get("formulas")) == '{"a": "1"}'
        assert not (tmp_path / "data" / "formulas.json.tmp").exists()

    def test_overwrite(self, tmp_path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.set("formulas", "{}"))
        asyncio.run(storage.set("formulas", '{"b": "2"}'))
        assert asyncio.run(storage.get("formulas")) == '{"b": "2"}'

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "x.json"])
    def test_unsafe_keys_rejected(self, tmp_path, key) -> None:
        storage = FileStorage(tmp_path)
        with pytest.raises(ValueError):
            storage.path_for(key)
