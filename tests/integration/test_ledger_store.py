"""
Integration Tests for py_ledger_store.

Covers the JSON blob store, config loading, import error logging and the
ledger mutations (replace-by-provenance imports, manual trades, deletes).
"""
import json
import pytest
from datetime import datetime
from decimal import Decimal

from py_csv_parser.csv_parser import parse_csv, ParseError
from py_ledger_store.blob_store import BlobStore
from py_ledger_store.config_loader import load_config
from py_ledger_store.error_logger import ImportErrorLogger
from py_ledger_store.ledger import LedgerManager
from py_ledger_store.types import AppConfig, FilterPreferences, LedgerStoreError, LEDGER_KEY

HEADER = "Order Number,Order Type,Asset Type,Fiat Type,Price,Quantity,Counterparty,Status,Created Time,Maker Fee,Taker Fee"


def export(*lines):
    return "\n".join((HEADER,) + lines)


FIRST = export(
    "1,Buy,USDT,TRY,10,100,alice,Completed,2024-01-01 10:00:00,0,0",
    "2,Sell,USDT,TRY,12,50,bob,Completed,2024-01-02 10:00:00,0,0",
)
SECOND = export(
    "7,Buy,BTC,EUR,40000,0.5,carol,Completed,2024-02-01 10:00:00,0,0",
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store_dir(tmp_path):
    return tmp_path / "ledger"


@pytest.fixture
def store(store_dir):
    return BlobStore(str(store_dir))


@pytest.fixture
def manager(store):
    m = LedgerManager(store, AppConfig())
    m.load()
    return m


# =============================================================================
# Test Class: Blob store
# =============================================================================

class TestBlobStore:

    def test_round_trip(self, store):
        store.save("prefs", {"asset": "USDT"})
        assert store.load("prefs") == {"asset": "USDT"}

    def test_missing_key_returns_default(self, store):
        assert store.load("nothing", default=[]) == []

    def test_corrupt_file_backed_up(self, store, store_dir):
        (store_dir / "broken.json").write_text("{not json", encoding="utf-8")

        assert store.load("broken", default=[]) == []
        assert (store_dir / "broken.json.corrupt").exists()
        assert not (store_dir / "broken.json").exists()

    def test_delete(self, store, store_dir):
        store.save("k", [1])
        store.delete("k")
        assert not (store_dir / "k.json").exists()
        assert store.load("k", default=[]) == []


# =============================================================================
# Test Class: Config
# =============================================================================

class TestConfig:

    def test_defaults_when_missing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(str(tmp_path / "absent.json"))

        assert config.ledger_key == LEDGER_KEY
        assert config.default_asset == "USDT"

    def test_values_from_file(self, tmp_path):
        path = tmp_path / "p2p_config.json"
        path.write_text(json.dumps({
            "store_dir": str(tmp_path / "store"),
            "default_asset": "btc",
            "default_fiat": "eur",
            "log_level": "debug",
        }))

        config = load_config(str(path))

        assert config.default_asset == "BTC"
        assert config.default_fiat == "EUR"
        assert config.log_level == "DEBUG"
        assert (tmp_path / "store").is_dir()

    def test_invalid_file_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "p2p_config.json"
        path.write_text("[1, 2")

        config = load_config(str(path))

        assert config == AppConfig()


# =============================================================================
# Test Class: Import error log
# =============================================================================

class TestImportErrorLogger:

    def test_failure_logged(self, tmp_path):
        logger = ImportErrorLogger(str(tmp_path / "logs"))
        logger.log_failure("/exports/bad.csv", ParseError("not utf-8\nat byte 0"))

        failures = logger.get_failures()
        assert len(failures) == 1
        assert failures[0].file == "bad.csv"
        assert failures[0].error_type == "ParseError"
        assert failures[0].reason == "not utf-8 at byte 0"

    def test_failed_files_and_forget(self, tmp_path):
        logger = ImportErrorLogger(str(tmp_path))
        logger.log_failure("b.csv", OSError("locked"))
        logger.log_failure("a.csv", ParseError("x"))
        logger.log_failure("b.csv", ParseError("y"))

        assert logger.failed_files() == ["b.csv", "a.csv"]

        logger.forget("b.csv")
        assert [f.file for f in logger.get_failures()] == ["a.csv"]

    def test_clear_log(self, tmp_path):
        logger = ImportErrorLogger(str(tmp_path))
        logger.log_failure("bad.csv", ParseError("x"))
        logger.clear_log()
        assert logger.get_failures() == []


# =============================================================================
# Test Class: Ledger mutations
# =============================================================================

class TestLedgerManager:

    def test_reimport_replaces_same_source(self, manager):
        manager.import_batch({"a.csv": parse_csv(FIRST, "a.csv")})
        manager.import_batch({"a.csv": parse_csv(SECOND, "a.csv")})

        assert [r.order_number for r in manager.state.records] == ["7"]
        assert {r.source for r in manager.state.records} == {"a.csv"}

    def test_other_sources_and_manual_records_survive(self, manager):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        manager.add_manual_trade("buy", "11", "5", "USDT", "TRY", now=datetime(2024, 1, 3, 9, 0, 0))
        manager.import_rows("b.csv", parse_csv(SECOND, "b.csv"))
        manager.import_rows("b.csv", parse_csv(SECOND, "b.csv"))

        assert len(manager.state.records) == 4
        assert manager.sources() == ["a.csv", "b.csv"]

    def test_every_mutation_bumps_version_and_persists(self, manager, store):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        manager.delete_trade("2")

        assert manager.state.version == 2
        saved = store.load(LEDGER_KEY)
        assert [row["Order Number"] for row in saved] == ["1"]

    def test_failed_write_leaves_state_untouched(self, manager, store, store_dir):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        # A directory in place of the temp file makes the atomic write fail
        (store_dir / f"{LEDGER_KEY}.json.tmp").mkdir()

        with pytest.raises(LedgerStoreError):
            manager.import_rows("b.csv", parse_csv(SECOND, "b.csv"))

        assert manager.state.version == 1
        assert [r.order_number for r in manager.state.records] == ["1", "2"]
        assert [row["Order Number"] for row in store.load(LEDGER_KEY)] == ["1", "2"]

    def test_clear_removes_stored_ledger(self, manager, store_dir):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        manager.clear()

        assert not (store_dir / f"{LEDGER_KEY}.json").exists()
        assert manager.state.version == 2

    def test_reload_from_store(self, manager, store):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))

        fresh = LedgerManager(store, AppConfig())
        fresh.load()

        assert [r.order_number for r in fresh.state.records] == ["1", "2"]
        assert fresh.state.records[0].price == Decimal("10")
        assert fresh.state.records[0].source == "a.csv"

    def test_manual_trade_defaults(self, manager):
        record = manager.add_manual_trade("Sell", "12", "3", now=datetime(2024, 5, 1, 8, 30, 0))

        assert record.order_number.startswith("MANUAL-")
        assert record.counterparty == "Manual"
        assert record.manual is True
        assert record.status == "Completed"
        assert record.created_time == "2024-05-01 08:30:00"
        assert (record.asset, record.fiat) == ("USDT", "TRY")
        assert record.provenance == "manual"

    def test_manual_trade_rejects_unknown_side(self, manager):
        with pytest.raises(ValueError):
            manager.add_manual_trade("hold", "1", "1")

    def test_remove_source_and_clear(self, manager):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        manager.import_rows("b.csv", parse_csv(SECOND, "b.csv"))

        assert manager.remove_source("a.csv") == 2
        assert manager.sources() == ["b.csv"]

        manager.clear()
        assert manager.state.records == []

    def test_available_symbols(self, manager):
        manager.import_rows("a.csv", parse_csv(FIRST + "\n3,Buy,usdt,try,1,1,x,Completed,2024-01-01,0,0", "a.csv"))
        manager.import_rows("b.csv", parse_csv(SECOND, "b.csv"))

        assert manager.available_assets() == ["BTC", "USDT"]
        assert manager.available_fiats() == ["EUR", "TRY"]

    def test_export_can_be_reimported(self, manager):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))
        manager.add_manual_trade("buy", "11", "5", now=datetime(2024, 1, 3, 9, 0, 0))

        rows = parse_csv(manager.export_csv())

        assert [r["Order Number"] for r in rows] == ["1", "2", manager.state.records[-1].order_number]
        assert rows[2]["manual"] == "true"

    def test_settle_uses_preferences(self, manager):
        manager.import_rows("a.csv", parse_csv(FIRST, "a.csv"))

        result = manager.settle(FilterPreferences(asset="USDT", fiat="TRY", market_price="0"))

        assert result.summary.total_profit == Decimal("100")
        assert result.summary.remaining_qty == Decimal("50")
        assert result.summary.market_value == Decimal("600")

    def test_preferences_persist(self, manager, store):
        manager.save_preferences(FilterPreferences(asset="BTC", fiat="EUR", market_price="41000", monthly_goal=500))

        fresh = LedgerManager(store, AppConfig())
        fresh.load()

        assert fresh.preferences.asset == "BTC"
        assert fresh.preferences.market_price == "41000"
        assert fresh.preferences.monthly_goal == 500.0
