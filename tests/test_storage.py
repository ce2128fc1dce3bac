"""
Tests for the storage backends (src/storage/) and ledger persistence.

Tests cover:
- JSON file and memory backends
- Backend selection
- Engine and market state round trips
- Refusing saved state with a different creator royalty
"""

import json
import os
import sys

import pytest

sys.path.insert(0, "src")

from conftest import ALICE, BOB, CAROL, CREATOR
from storage import (
    JSONFileStorage,
    MemoryStorage,
    StorageError,
    StorageReadError,
    get_storage_backend,
)


# ============================================================
# JSON File Storage Tests
# ============================================================

class TestJSONFileStorage:
    """Tests for JSONFileStorage."""

    def test_missing_file_loads_none(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "ledger.json"))

        assert storage.load_state() is None

    def test_save_and_load(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "ledger.json"))

        storage.save_state({"ledger": {"held_balance": 2**255}})

        assert storage.load_state() == {"ledger": {"held_balance": 2**255}}

    def test_no_temp_file_left(self, tmp_path):
        path = tmp_path / "ledger.json"
        storage = JSONFileStorage(str(path))

        storage.save_state({"a": 1})

        assert path.exists()
        assert not os.path.exists(f"{path}.tmp")

    def test_empty_file_loads_none(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("  ")

        assert JSONFileStorage(str(path)).load_state() is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")

        with pytest.raises(StorageReadError):
            JSONFileStorage(str(path)).load_state()

    def test_info(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "ledger.json"))
        storage.save_state({"a": 1})

        info = storage.get_info()

        assert info["exists"] is True
        assert info["size_bytes"] > 0
        assert storage.is_available() is True


# ============================================================
# Memory Storage Tests
# ============================================================

class TestMemoryStorage:
    """Tests for MemoryStorage."""

    def test_empty(self):
        assert MemoryStorage().load_state() is None

    def test_stored_copy_is_isolated(self):
        storage = MemoryStorage()
        state = {"ledger": {"held_balance": 1}}

        storage.save_state(state)
        state["ledger"]["held_balance"] = 99
        loaded = storage.load_state()
        loaded["ledger"]["held_balance"] = 42

        assert storage.load_state() == {"ledger": {"held_balance": 1}}

    def test_clear(self):
        storage = MemoryStorage()
        storage.save_state({"a": 1})

        storage.clear()

        assert storage.load_state() is None
        assert storage.save_count == 1


# ============================================================
# Backend Selection Tests
# ============================================================

class TestGetStorageBackend:
    """Tests for get_storage_backend."""

    def test_memory(self):
        assert isinstance(get_storage_backend("memory"), MemoryStorage)

    def test_json_with_path(self, tmp_path):
        storage = get_storage_backend("json", str(tmp_path / "x.json"))

        assert isinstance(storage, JSONFileStorage)
        assert storage.file_path.endswith("x.json")

    def test_environment_default(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")

        assert isinstance(get_storage_backend(), MemoryStorage)

    def test_unknown(self):
        with pytest.raises(StorageError):
            get_storage_backend("postgres")


# ============================================================
# Engine Persistence Tests
# ============================================================

class TestEnginePersistence:
    """Tests for SettlementEngine.to_dict / load_state."""

    def _trade(self, engine):
        engine.create_listing(1, 1000, ALICE)
        engine.settle(1, BOB, ALICE, 1050, ALICE)
        engine.create_listing(1, 2000, BOB)

    def test_round_trip_through_json(self, engine, make_engine, tmp_path):
        self._trade(engine)
        storage = JSONFileStorage(str(tmp_path / "ledger.json"))
        storage.save_state(engine.to_dict())

        restored = make_engine()
        restored.load_state(storage.load_state())

        assert restored.held_balance == 50
        assert restored.balance_of(CREATOR) == 5
        assert restored.balance_of(ALICE) == 45
        assert restored.get_listing(1).total_due == 2100
        assert [r.price for r in restored.sale_history(1)] == [1000]

    def test_restored_engine_keeps_splitting(self, engine, make_engine):
        self._trade(engine)
        data = json.loads(json.dumps(engine.to_dict()))

        restored = make_engine()
        restored.load_state(data)
        result = restored.settle(1, CAROL, BOB, 2100, BOB)

        assert result.split.seller_credits == [(ALICE, 90)]

    def test_creator_royalty_cannot_change(self, engine, make_engine):
        self._trade(engine)

        with pytest.raises(ValueError):
            make_engine(creator_royalty=20).load_state(engine.to_dict())

    def test_creator_cannot_change(self, engine, registry, oracle, gateway):
        from scaling import LocalLockManager
        from settlement import SettlementEngine

        self._trade(engine)
        other = SettlementEngine(
            registry, oracle, gateway, creator=ALICE, creator_royalty=10, lock_manager=LocalLockManager()
        )

        with pytest.raises(ValueError, match="creator cannot change"):
            other.load_state(engine.to_dict())

        assert other.held_balance == 0


# ============================================================
# Market State Tests
# ============================================================

class TestMarketState:
    """Tests for api.state persistence of the whole market."""

    def test_state_restored_on_init(self, test_config):
        from api.state import init_market

        storage = MemoryStorage()
        first = init_market(test_config, storage)
        first.registry.mint(5, ALICE)
        first.oracle.set_rate(5, 1000)
        first.engine.create_listing(5, 1000, ALICE)
        first.persist()

        second = init_market(test_config, storage)

        assert second.registry.current_holder(5) == ALICE
        assert second.oracle.rate_bps_for(5) == 1000
        assert second.engine.get_listing(5).royalty_amount == 100

    def test_to_dict_sections(self, test_config):
        from api.state import init_market

        state = init_market(test_config, MemoryStorage()).to_dict()

        assert set(state) == {"version", "ledger", "registry", "rates"}
