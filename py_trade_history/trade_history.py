import sys
import argparse
import logging
from dataclasses import replace
from typing import List, Optional

from py_ledger_store.config_loader import load_config
from py_ledger_store.blob_store import BlobStore
from py_ledger_store.ledger import LedgerManager
from .analysis import (
    PERIODS, filter_period, period_summary, daily_profit, trade_stats,
    peak_hours, format_peak_hours, month_to_date_profit, goal_progress,
)
from .domain import OrderSide
from .csv_generator import JournalCsvGenerator


def _money(value) -> str:
    return f"{value:.2f}"


def build_report(result, period: str = "all", goal=None) -> List[str]:
    """ Plain text report lines for the console. """
    s = result.summary
    lines = [
        f"Trades shown:        {len(result.trades)} ({s.buy_count} buy / {s.sell_count} sell)",
        f"Realized profit:     {_money(s.total_profit)}",
        f"Fees:                {_money(s.total_fees)}",
        f"Remaining quantity:  {s.remaining_qty:.6f}",
        f"Remaining cost:      {_money(s.remaining_cost)}",
        f"Market value:        {_money(s.market_value)}",
        f"Unrealized profit:   {_money(s.unrealized_profit)}",
    ]
    if s.last_sell_price is not None:
        lines.append(f"Based on last sell:  {_money(s.last_sell_price)}")

    in_period = filter_period(result.trades, period)
    ps = period_summary(in_period)
    stats = trade_stats(in_period)
    lines += [
        f"--- Period: {period} ---",
        f"Profit:              {_money(ps.total_profit)}",
        f"Bought / Sold:       {_money(ps.total_buys)} / {_money(ps.total_sells)}",
        f"Max buy / sell:      {_money(stats.max_buy_price)} / {_money(stats.max_sell_price)}",
        f"Top counterparty:    {stats.top_counterparty_text}",
        f"Avg hold:            {stats.avg_hold_text}",
        f"Peak buy hours:      {format_peak_hours(peak_hours(in_period, OrderSide.BUY))}",
        f"Peak sell hours:     {format_peak_hours(peak_hours(in_period, OrderSide.SELL))}",
    ]
    for day, profit in daily_profit(in_period):
        lines.append(f"  {day}  {profit:.2f}")

    if goal:
        progress = goal_progress(month_to_date_profit(result.trades), goal)
        lines.append(
            f"Monthly goal:        {_money(progress.current)} / {_money(progress.goal)} ({progress.percentage:.0f}%)"
        )
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="P2P Trade History - FIFO profit report")
    parser.add_argument("--config", default="p2p_config.json", help="Config file (default: p2p_config.json)")
    parser.add_argument("--asset", help="Asset symbol, e.g. USDT (default: saved preference)")
    parser.add_argument("--fiat", help="Fiat symbol, e.g. TRY (default: saved preference)")
    parser.add_argument("--market-price", help="Manual market price, used when no sell exists")
    parser.add_argument("--from", dest="from_date", help="Start date YYYY-MM-DD (inclusive)")
    parser.add_argument("--to", dest="to_date", help="End date YYYY-MM-DD (inclusive)")
    parser.add_argument("--period", default="all", choices=PERIODS, help="Analysis period (default: all)")
    parser.add_argument("--goal", type=float, help="Monthly profit goal, saved for later runs")
    parser.add_argument("--journal", help="Write the trade journal CSV to this path")
    args = parser.parse_args(argv)

    config = load_config(args.config)

    # Setup Logging
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    manager = LedgerManager(BlobStore(config.store_dir), config)
    manager.load()

    prefs = replace(
        manager.preferences,
        asset=(args.asset or manager.preferences.asset).upper(),
        fiat=(args.fiat or manager.preferences.fiat).upper(),
        market_price=args.market_price if args.market_price is not None else manager.preferences.market_price,
        from_date=args.from_date,
        to_date=args.to_date,
        monthly_goal=args.goal if args.goal is not None else manager.preferences.monthly_goal,
    )
    # Date range is per run, not remembered
    manager.save_preferences(replace(prefs, from_date=None, to_date=None))

    logging.info(f"Settling {prefs.asset}/{prefs.fiat} over {len(manager.state.records)} records...")
    result = manager.settle(prefs)

    for line in build_report(result, args.period, prefs.monthly_goal):
        print(line)

    if args.journal:
        with open(args.journal, "w", encoding="utf-8", newline="") as f:
            f.write(JournalCsvGenerator().generate(result.trades))
        logging.info(f"Journal written to {args.journal}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
