import csv
import io
import logging
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from py_trade_history.domain import (
    TradeRecord, OrderSide, SettlementResult, MANUAL_COUNTERPARTY, parse_decimal,
    H_ORDER_NUMBER, H_ORDER_TYPE, H_ASSET, H_FIAT, H_PRICE, H_QUANTITY, H_TOTAL,
    H_COUNTERPARTY, H_CREATED, H_STATUS, H_MAKER_FEE, H_TAKER_FEE, K_SOURCE, K_MANUAL,
)
from py_trade_history.settlement import settle
from .blob_store import BlobStore
from .types import AppConfig, FilterPreferences, LedgerState, PREFERENCES_KEY

EXPORT_COLUMNS = [
    H_ORDER_NUMBER, H_ORDER_TYPE, H_ASSET, H_FIAT, H_PRICE, H_QUANTITY, H_TOTAL,
    H_COUNTERPARTY, H_CREATED, H_STATUS, H_MAKER_FEE, H_TAKER_FEE, K_SOURCE, K_MANUAL,
]


class LedgerManager:
    """
    Owns the persisted trade set and the filter preferences.

    The ledger is loaded once and written back whole after every mutation.
    Imports replace everything previously imported from the same file.
    """

    def __init__(self, store: BlobStore, config: Optional[AppConfig] = None):
        self.store = store
        self.config = config or AppConfig()
        self.state = LedgerState()
        self.preferences = FilterPreferences(asset=self.config.default_asset, fiat=self.config.default_fiat)

    # --- Persistence ---

    def load(self) -> LedgerState:
        rows = self.store.load(self.config.ledger_key, default=[])
        if not isinstance(rows, list):
            logging.warning(f"Ledger {self.config.ledger_key} is not a list. Starting empty.")
            rows = []
        records = [TradeRecord.from_mapping(r) for r in rows if isinstance(r, Mapping)]
        self.state = LedgerState(records=records, version=0)

        defaults = FilterPreferences(asset=self.config.default_asset, fiat=self.config.default_fiat)
        prefs = self.store.load(PREFERENCES_KEY, default={})
        self.preferences = FilterPreferences.from_dict(prefs if isinstance(prefs, dict) else {}, defaults)

        logging.info(f"Loaded {len(records)} records from {self.config.ledger_key}")
        return self.state

    def save_preferences(self, preferences: Optional[FilterPreferences] = None) -> None:
        if preferences is not None:
            self.preferences = preferences
        self.store.save(PREFERENCES_KEY, asdict(self.preferences))

    def _commit(self, records: List[TradeRecord]) -> None:
        # State only moves forward once the store holds the new records
        if records:
            self.store.save(self.config.ledger_key, [r.to_mapping() for r in records])
        else:
            self.store.delete(self.config.ledger_key)
        self.state = LedgerState(records=records, version=self.state.version + 1)

    # --- Mutations ---

    def import_batch(self, batch: Mapping[str, Sequence[Mapping[str, Any]]]) -> int:
        """
        Merges a fully parsed batch of files into the ledger.

        All records previously imported from any file in the batch are dropped
        first, then the new rows are appended. Returns the number of new records.
        """
        names = set(batch)
        kept = [r for r in self.state.records if r.source not in names]
        dropped = len(self.state.records) - len(kept)

        incoming: List[TradeRecord] = []
        for name, rows in batch.items():
            for row in rows:
                record = TradeRecord.from_mapping(row)
                record.source = name
                incoming.append(record)

        if dropped:
            logging.info(f"Replaced {dropped} records from {', '.join(sorted(names))}")
        self._commit(kept + incoming)
        return len(incoming)

    def import_rows(self, source: str, rows: Sequence[Mapping[str, Any]]) -> int:
        return self.import_batch({source: rows})

    def add_manual_trade(
        self,
        side: str,
        price: Any,
        quantity: Any,
        asset: Optional[str] = None,
        fiat: Optional[str] = None,
        counterparty: str = "",
        now: Optional[datetime] = None,
    ) -> TradeRecord:
        order_side = OrderSide.parse(side)
        if order_side is None:
            raise ValueError(f"Order side must be buy or sell, got '{side}'")

        now = now or datetime.now()
        record = TradeRecord(
            order_number=f"MANUAL-{int(now.timestamp() * 1000)}",
            order_type=order_side.value.capitalize(),
            asset=asset or self.preferences.asset,
            fiat=fiat or self.preferences.fiat,
            price=parse_decimal(price),
            quantity=parse_decimal(quantity),
            counterparty=counterparty or MANUAL_COUNTERPARTY,
            created_time=now.strftime("%Y-%m-%d %H:%M:%S"),
            status="Completed",
            maker_fee=Decimal("0"),
            taker_fee=Decimal("0"),
            manual=True,
        )
        self._commit(self.state.records + [record])
        logging.info(f"Added manual {order_side.value} {record.quantity} {record.asset} @ {record.price}")
        return record

    def delete_trade(self, order_number: str) -> int:
        kept = [r for r in self.state.records if r.order_number != order_number]
        removed = len(self.state.records) - len(kept)
        if removed:
            self._commit(kept)
        return removed

    def remove_source(self, source: str) -> int:
        kept = [r for r in self.state.records if r.source != source]
        removed = len(self.state.records) - len(kept)
        if removed:
            self._commit(kept)
            logging.info(f"Removed {removed} records from {source}")
        return removed

    def clear(self) -> None:
        self._commit([])
        logging.info("Ledger cleared")

    # --- Queries ---

    def sources(self) -> List[str]:
        seen: Dict[str, None] = {}
        for r in self.state.records:
            if r.source:
                seen.setdefault(r.source, None)
        return list(seen)

    def available_assets(self) -> List[str]:
        return sorted({r.asset.upper() for r in self.state.records if r.asset})

    def available_fiats(self) -> List[str]:
        return sorted({r.fiat.upper() for r in self.state.records if r.fiat})

    def export_csv(self) -> str:
        """ Comma-delimited backup with a header row, readable by parse_csv. """
        output = io.StringIO()
        extra_cols: List[str] = []
        for r in self.state.records:
            for key in r.extra:
                if key not in extra_cols:
                    extra_cols.append(key)

        writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS + extra_cols, extrasaction='ignore', lineterminator='\n')
        writer.writeheader()
        for r in self.state.records:
            row = r.to_mapping()
            row.setdefault(K_SOURCE, "")
            row[K_MANUAL] = "true" if r.manual else ""
            writer.writerow(row)
        return output.getvalue()

    def settle(self, preferences: Optional[FilterPreferences] = None) -> SettlementResult:
        prefs = preferences or self.preferences
        return settle(
            self.state.records,
            prefs.asset,
            prefs.fiat,
            prefs.market_price,
            prefs.from_date,
            prefs.to_date,
        )
