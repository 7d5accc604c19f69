import logging
from decimal import Decimal
from datetime import date, datetime, time
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from .domain import (
    TradeRecord, AnnotatedTrade, SettlementSummary, SettlementResult,
    OrderSide, parse_decimal,
)
from .fifo_engine import FifoEngine

RecordLike = Union[TradeRecord, Mapping[str, Any]]


def _as_record(row: RecordLike) -> TradeRecord:
    if isinstance(row, TradeRecord):
        return row
    return TradeRecord.from_mapping(row)


def _parse_bound(raw: Optional[Union[str, date]], end_of_day: bool) -> Optional[datetime]:
    """ ISO date string -> inclusive datetime bound. Bad input disables the bound. """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        day = raw.date()
    elif isinstance(raw, date):
        day = raw
    else:
        try:
            day = date.fromisoformat(str(raw).strip()[:10])
        except ValueError:
            logging.warning(f"Ignoring invalid date filter '{raw}'")
            return None
    return datetime.combine(day, time.max if end_of_day else time.min)


def _describe(side: OrderSide, quantity: Decimal, asset: str) -> str:
    return f"{side.value.capitalize()} {quantity:.4f} {asset}"


def _annotate(record: TradeRecord, side: OrderSide, when: datetime, asset: str) -> AnnotatedTrade:
    total = record.total_price or (record.price * record.quantity)
    return AnnotatedTrade(
        index=0,  # Assigned after filtering
        time=record.created_time,
        timestamp=when,
        description=_describe(side, record.quantity, asset),
        side=side,
        price=record.price,
        quantity=record.quantity,
        fee=record.fee,
        total=total,
        order_number=record.order_number,
        counterparty=record.counterparty,
        manual=record.manual,
        source=record.source,
    )


def _sweep(scoped: List[Tuple[TradeRecord, datetime]], asset: str) -> Tuple[List[AnnotatedTrade], FifoEngine]:
    """ Runs FIFO over the whole chronological history of the pair. """
    engine = FifoEngine()
    annotated: List[AnnotatedTrade] = []

    for record, when in scoped:
        side = record.side
        if side is None:
            continue

        trade = _annotate(record, side, when, asset)

        if side == OrderSide.BUY:
            engine.add_lot(record.price, record.quantity, when)
        else:
            match = engine.consume(record.price, record.quantity, when)
            if match.unmatched_qty > 0:
                logging.debug(f"Sell {record.order_number} exceeds inventory by {match.unmatched_qty}")
            trade.profit = match.gross_profit - record.fee
            trade.hold_seconds = match.average_hold_seconds(record.quantity)

        annotated.append(trade)

    return annotated, engine


def _last_sell_price(scoped: List[Tuple[TradeRecord, datetime]]) -> Decimal:
    for record, _ in reversed(scoped):
        if record.side == OrderSide.SELL:
            return record.price
    return Decimal("0")


def settle(
    records: Iterable[RecordLike],
    asset: str,
    fiat: str,
    manual_market_price: Any = None,
    from_date: Optional[Union[str, date]] = None,
    to_date: Optional[Union[str, date]] = None,
) -> SettlementResult:
    """
    Computes FIFO realized profit per trade and the pair's summary.

    Cost basis is always built from the full history of the asset/fiat pair.
    The date range only limits which trades are returned and which trades
    feed the filtered totals (profit, fees, counts, volumes). Remaining
    inventory, market value and unrealized profit ignore the date range.

    Returns trades newest first. `index` is the 1-based position in the
    filtered chronological list.
    """
    # 1. Scope: completed orders of the exact pair
    scoped_records = [
        r for r in (_as_record(row) for row in records)
        if r.is_completed and r.asset == asset and r.fiat == fiat
    ]

    # 2. Chronological order, stable on ties
    scoped = [(r, r.timestamp) for r in scoped_records]
    scoped.sort(key=lambda pair: pair[1])

    # 3. FIFO sweep
    annotated, engine = _sweep(scoped, asset)

    # 4. Date filter for display only
    lower = _parse_bound(from_date, end_of_day=False)
    upper = _parse_bound(to_date, end_of_day=True)
    displayed = [
        t for t in annotated
        if (lower is None or t.timestamp >= lower) and (upper is None or t.timestamp <= upper)
    ]

    # 5a. Filtered totals
    total_profit = Decimal("0")
    total_fees = Decimal("0")
    total_buys = Decimal("0")
    total_sells = Decimal("0")
    buy_count = 0
    sell_count = 0
    for t in displayed:
        total_fees += t.fee
        if t.side == OrderSide.BUY:
            buy_count += 1
            total_buys += t.total
        else:
            sell_count += 1
            total_sells += t.total
            if t.profit is not None:
                total_profit += t.profit

    # 5b. Global totals
    remaining_qty = engine.remaining_quantity()
    remaining_cost = engine.remaining_cost()
    last_sell = _last_sell_price(scoped)
    market_price = last_sell if last_sell > 0 else parse_decimal(manual_market_price)
    market_value = remaining_qty * market_price

    summary = SettlementSummary(
        total_profit=total_profit,
        net_profit=total_profit,
        total_fees=total_fees,
        total_buys=total_buys,
        total_sells=total_sells,
        buy_count=buy_count,
        sell_count=sell_count,
        remaining_qty=remaining_qty,
        remaining_cost=remaining_cost,
        market_price=market_price,
        market_value=market_value,
        unrealized_profit=market_value - remaining_cost,
        last_sell_price=last_sell if last_sell > 0 else None,
    )

    # 6. Ordinals first, then newest-first for display
    for idx, t in enumerate(displayed, start=1):
        t.index = idx
    displayed.sort(key=lambda t: t.timestamp, reverse=True)

    return SettlementResult(trades=displayed, summary=summary)
