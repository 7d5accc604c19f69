import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from decimal import Decimal, InvalidOperation
from datetime import datetime

# --- Constants ---
EPSILON = Decimal("0.00000001")
EPOCH = datetime(1970, 1, 1)
MANUAL_SOURCE = "manual"
MANUAL_COUNTERPARTY = "Manual"

# CSV header names as found in Binance P2P order exports
H_ORDER_NUMBER = "Order Number"
H_ORDER_TYPE = "Order Type"
H_ASSET = "Asset Type"
H_FIAT = "Fiat Type"
H_PRICE = "Price"
H_QUANTITY = "Quantity"
H_TOTAL = "Total Price"
H_COUNTERPARTY = "Counterparty"
H_COUNTERPARTY_TYPO = "Couterparty"
H_CREATED = "Created Time"
H_STATUS = "Status"
H_MAKER_FEE = "Maker Fee"
H_TAKER_FEE = "Taker Fee"
K_SOURCE = "sourceFile"
K_MANUAL = "manual"

KNOWN_KEYS = {
    H_ORDER_NUMBER, H_ORDER_TYPE, H_ASSET, H_FIAT, H_PRICE, H_QUANTITY, H_TOTAL,
    H_COUNTERPARTY, H_COUNTERPARTY_TYPO, H_CREATED, H_STATUS, H_MAKER_FEE,
    H_TAKER_FEE, K_SOURCE, K_MANUAL,
}

_NUMERIC_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d.%m.%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
)


# --- Lenient parsing ---

def parse_decimal(value: Any) -> Decimal:
    """ Reads the leading number of a cell ('12.5 USDT' -> 12.5). Anything else is 0. """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    if isinstance(value, (int, float)):
        value = repr(value)
    match = _NUMERIC_PREFIX.match(str(value).strip())
    if not match:
        return Decimal("0")
    try:
        number = Decimal(match.group(0))
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def parse_timestamp(raw: str) -> datetime:
    """ Created Time -> naive datetime. Unreadable values fall back to 1970-01-01. """
    text = (raw or "").strip()
    if text:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            # Offset-aware times become local wall time, like the naive export times
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone().replace(tzinfo=None)
            return parsed
        except ValueError:
            pass
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    logging.warning(f"Invalid timestamp '{raw}', using 1970-01-01")
    return EPOCH


def _text(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


# --- Enums ---
class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, raw: str) -> Optional["OrderSide"]:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return None


# --- Input ---

@dataclass
class TradeRecord:
    """
    One P2P order as ingested.

    Field defaults stand in for missing CSV cells. Numbers are parsed once,
    leniently, when the record is built from a row.
    """
    order_number: str = ""
    order_type: str = ""
    asset: str = ""
    fiat: str = ""
    price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")
    counterparty: str = ""
    created_time: str = ""
    status: str = ""
    maker_fee: Decimal = Decimal("0")
    taker_fee: Decimal = Decimal("0")
    source: Optional[str] = None
    manual: bool = False
    extra: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "TradeRecord":
        # Binance exports sometimes spell the column "Couterparty"
        counterparty = _text(row, H_COUNTERPARTY_TYPO) or _text(row, H_COUNTERPARTY)
        source = row.get(K_SOURCE)
        return cls(
            order_number=_text(row, H_ORDER_NUMBER),
            order_type=_text(row, H_ORDER_TYPE),
            asset=_text(row, H_ASSET),
            fiat=_text(row, H_FIAT),
            price=parse_decimal(row.get(H_PRICE)),
            quantity=parse_decimal(row.get(H_QUANTITY)),
            total_price=parse_decimal(row.get(H_TOTAL)),
            counterparty=counterparty,
            created_time=_text(row, H_CREATED),
            status=_text(row, H_STATUS),
            maker_fee=parse_decimal(row.get(H_MAKER_FEE)),
            taker_fee=parse_decimal(row.get(H_TAKER_FEE)),
            source=str(source) if source else None,
            manual=_flag(row.get(K_MANUAL, False)),
            extra={k: "" if v is None else str(v) for k, v in row.items() if k not in KNOWN_KEYS},
        )

    def to_mapping(self) -> Dict[str, Any]:
        """ JSON-compatible row using the export header names. """
        row: Dict[str, Any] = {
            H_ORDER_NUMBER: self.order_number,
            H_ORDER_TYPE: self.order_type,
            H_ASSET: self.asset,
            H_FIAT: self.fiat,
            H_PRICE: str(self.price),
            H_QUANTITY: str(self.quantity),
            H_TOTAL: str(self.total_price),
            H_COUNTERPARTY: self.counterparty,
            H_CREATED: self.created_time,
            H_STATUS: self.status,
            H_MAKER_FEE: str(self.maker_fee),
            H_TAKER_FEE: str(self.taker_fee),
        }
        row.update(self.extra)
        if self.source:
            row[K_SOURCE] = self.source
        if self.manual:
            row[K_MANUAL] = True
        return row

    @property
    def provenance(self) -> str:
        return self.source or MANUAL_SOURCE

    @property
    def side(self) -> Optional[OrderSide]:
        return OrderSide.parse(self.order_type)

    @property
    def fee(self) -> Decimal:
        return self.maker_fee + self.taker_fee

    @property
    def is_completed(self) -> bool:
        return self.status.strip().lower() == "completed"

    @property
    def timestamp(self) -> datetime:
        return parse_timestamp(self.created_time)


# --- Working state ---

@dataclass
class InventoryLot:
    price: Decimal
    quantity: Decimal  # Remaining, shrinks as sells consume it
    date: datetime


# --- Output ---

@dataclass
class AnnotatedTrade:
    index: int
    time: str
    timestamp: datetime
    description: str
    side: OrderSide
    price: Decimal
    quantity: Decimal
    fee: Decimal
    total: Decimal
    order_number: str
    counterparty: str
    manual: bool
    source: Optional[str] = None
    profit: Optional[Decimal] = None  # Sells only
    hold_seconds: Optional[float] = None  # Sells only, weighted by consumed qty

    @property
    def is_sell(self) -> bool:
        return self.side == OrderSide.SELL


@dataclass
class SettlementSummary:
    # Filtered by date range
    total_profit: Decimal
    net_profit: Decimal
    total_fees: Decimal
    total_buys: Decimal
    total_sells: Decimal
    buy_count: int
    sell_count: int
    # Global, full history of the pair
    remaining_qty: Decimal
    remaining_cost: Decimal
    market_price: Decimal
    market_value: Decimal
    unrealized_profit: Decimal
    last_sell_price: Optional[Decimal] = None


@dataclass
class SettlementResult:
    trades: List[AnnotatedTrade]
    summary: SettlementSummary
