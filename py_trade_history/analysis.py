from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd

from .domain import AnnotatedTrade, OrderSide, MANUAL_COUNTERPARTY, parse_decimal

PERIODS = ("all", "today", "week", "month", "year")
NO_VALUE = "—"

FRAME_COLUMNS = [
    'index', 'timestamp', 'side', 'price', 'quantity', 'fee', 'total',
    'profit', 'hold_seconds', 'counterparty', 'order_number',
]


@dataclass
class PeriodSummary:
    total_profit: Decimal
    net_profit: Decimal
    total_buys: Decimal
    total_sells: Decimal
    total_fees: Decimal
    buy_count: int
    sell_count: int


@dataclass
class TradeStats:
    max_buy_price: Decimal
    max_sell_price: Decimal
    top_counterparty: Optional[str]
    top_counterparty_count: int
    avg_hold_seconds: Optional[float]

    @property
    def top_counterparty_text(self) -> str:
        if not self.top_counterparty:
            return NO_VALUE
        return f"{self.top_counterparty} ({self.top_counterparty_count})"

    @property
    def avg_hold_text(self) -> str:
        return format_hold_time(self.avg_hold_seconds)


@dataclass
class GoalProgress:
    goal: Decimal
    current: Decimal
    percentage: Decimal  # Capped at 100
    remaining: Decimal
    completed: bool


@dataclass
class SpreadResult:
    total_cost: Decimal
    total_revenue: Decimal
    total_fees: Decimal
    net_profit: Decimal
    margin_percentage: Decimal
    spread: Decimal


def trades_to_frame(trades: Sequence[AnnotatedTrade]) -> pd.DataFrame:
    """ Flat DataFrame view of annotated trades. Buys carry NaN profit/hold. """
    if not trades:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    rows = [{
        'index': t.index,
        'timestamp': pd.Timestamp(t.timestamp),
        'side': t.side.value,
        'price': float(t.price),
        'quantity': float(t.quantity),
        'fee': float(t.fee),
        'total': float(t.total),
        'profit': float(t.profit) if t.profit is not None else float('nan'),
        'hold_seconds': t.hold_seconds if t.hold_seconds is not None else float('nan'),
        'counterparty': t.counterparty,
        'order_number': t.order_number,
    } for t in trades]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def period_start(period: str, now: datetime) -> Optional[datetime]:
    if period == "all":
        return None
    midnight = pd.Timestamp(now).normalize()
    if period == "today":
        return midnight.to_pydatetime()
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return (midnight - pd.DateOffset(months=1)).to_pydatetime()
    if period == "year":
        return (midnight - pd.DateOffset(years=1)).to_pydatetime()
    raise ValueError(f"Unknown period '{period}'. Expected one of {', '.join(PERIODS)}")


def filter_period(trades: Sequence[AnnotatedTrade], period: str = "all", now: Optional[datetime] = None) -> List[AnnotatedTrade]:
    start = period_start(period, now or datetime.now())
    if start is None:
        return list(trades)
    return [t for t in trades if t.timestamp >= start]


def period_summary(trades: Sequence[AnnotatedTrade]) -> PeriodSummary:
    total_profit = Decimal("0")
    total_buys = Decimal("0")
    total_sells = Decimal("0")
    total_fees = Decimal("0")
    buy_count = 0
    sell_count = 0

    for t in trades:
        total_fees += t.fee
        if t.side == OrderSide.BUY:
            buy_count += 1
            total_buys += t.total
        else:
            sell_count += 1
            total_sells += t.total
            if t.profit is not None:
                total_profit += t.profit

    return PeriodSummary(
        total_profit=total_profit,
        net_profit=total_profit,
        total_buys=total_buys,
        total_sells=total_sells,
        total_fees=total_fees,
        buy_count=buy_count,
        sell_count=sell_count,
    )


def daily_profit(trades: Sequence[AnnotatedTrade]) -> List[Tuple[str, float]]:
    """ Realized profit per calendar day, oldest day first. """
    df = trades_to_frame(trades)
    sells = df[df['side'] == 'sell']
    if sells.empty:
        return []

    by_day = sells.groupby(sells['timestamp'].dt.strftime('%Y-%m-%d'))['profit'].sum().sort_index()
    return [(day, round(float(value), 2)) for day, value in by_day.items()]


def peak_hours(trades: Sequence[AnnotatedTrade], side: OrderSide, top: int = 3) -> List[Tuple[int, int]]:
    """ Busiest hours of day for one side as (hour, trade count). """
    df = trades_to_frame(trades)
    subset = df[df['side'] == side.value]
    if subset.empty:
        return []

    counts = subset['timestamp'].dt.hour.value_counts(sort=False)
    # Ties keep the earlier hour first
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [(int(hour), int(count)) for hour, count in ranked[:top]]


def format_peak_hours(peaks: Sequence[Tuple[int, int]]) -> str:
    if not peaks:
        return NO_VALUE
    return " | ".join(f"{hour}:00 ({count})" for hour, count in peaks)


def format_hold_time(seconds: Optional[float]) -> str:
    if seconds is None:
        return NO_VALUE
    days = seconds / (24 * 3600)
    if days < 1:
        return f"{seconds / 3600:.1f} Hr"
    return f"{days:.1f} Days"


def trade_stats(trades: Sequence[AnnotatedTrade]) -> TradeStats:
    df = trades_to_frame(trades)
    if df.empty:
        return TradeStats(Decimal("0"), Decimal("0"), None, 0, None)

    buys = [t.price for t in trades if t.side == OrderSide.BUY]
    sells = [t.price for t in trades if t.side == OrderSide.SELL]

    # Sells with zero hold time carry no information about holding
    holds = df.loc[(df['side'] == 'sell') & (df['hold_seconds'] > 0), 'hold_seconds']
    avg_hold = float(holds.mean()) if not holds.empty else None

    cps = df.loc[(df['counterparty'] != '') & (df['counterparty'] != MANUAL_COUNTERPARTY), 'counterparty']
    top_cp, top_count = None, 0
    if not cps.empty:
        counts = cps.value_counts()
        top_cp, top_count = str(counts.index[0]), int(counts.iloc[0])

    return TradeStats(
        max_buy_price=max(buys, default=Decimal("0")),
        max_sell_price=max(sells, default=Decimal("0")),
        top_counterparty=top_cp,
        top_counterparty_count=top_count,
        avg_hold_seconds=avg_hold,
    )


def month_to_date_profit(trades: Sequence[AnnotatedTrade], now: Optional[datetime] = None) -> Decimal:
    now = now or datetime.now()
    return sum(
        (t.profit for t in trades
         if t.is_sell and t.profit is not None
         and t.timestamp.year == now.year and t.timestamp.month == now.month),
        Decimal("0"),
    )


def goal_progress(current_profit: Decimal, goal: Any) -> GoalProgress:
    goal_value = parse_decimal(goal)
    if goal_value <= 0:
        return GoalProgress(goal_value, current_profit, Decimal("0"), Decimal("0"), False)

    pct = min(current_profit / goal_value * 100, Decimal("100"))
    return GoalProgress(
        goal=goal_value,
        current=current_profit,
        percentage=max(pct, Decimal("0")),
        remaining=max(goal_value - current_profit, Decimal("0")),
        completed=current_profit >= goal_value,
    )


def calculate_spread(buy_price: Any, sell_price: Any, amount: Any, fee_percentage: Any) -> SpreadResult:
    """ Profit of buying `amount` and selling it again, fee charged on both legs. """
    buy = parse_decimal(buy_price)
    sell = parse_decimal(sell_price)
    qty = parse_decimal(amount)
    fee_rate = parse_decimal(fee_percentage) / 100

    total_cost = buy * qty
    total_revenue = sell * qty
    total_fees = total_cost * fee_rate + total_revenue * fee_rate
    net_profit = total_revenue - total_cost - total_fees
    margin = (net_profit / total_cost * 100) if total_cost > 0 else Decimal("0")

    return SpreadResult(
        total_cost=total_cost,
        total_revenue=total_revenue,
        total_fees=total_fees,
        net_profit=net_profit,
        margin_percentage=margin,
        spread=sell - buy,
    )
