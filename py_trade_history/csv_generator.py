import csv
import io
from decimal import Decimal
from typing import Optional, Sequence

from .domain import AnnotatedTrade

class JournalCsvGenerator:
    def __init__(self):
        self.fieldnames = [
            'id', 'date', 'time', 'event', 'order', 'price', 'quantity',
            'Fee', 'Total', 'Trade_PnL', 'Hold_Seconds', 'counterparty',
            'order_number', 'source', 'manual',
        ]

    def _fmt(self, d: Optional[Decimal]) -> str:
        if d is None: return ""
        return f"{d:.2f}"

    def generate(self, trades: Sequence[AnnotatedTrade]) -> str:
        """ Semicolon separated journal, one row per trade in the given order. """
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=self.fieldnames, delimiter=';', lineterminator='\n')
        writer.writeheader()

        for t in trades:
            writer.writerow({
                'id': t.index,
                'date': t.timestamp.strftime("%Y-%m-%d"),
                'time': t.timestamp.strftime("%H:%M:%S"),
                'event': t.side.value,
                'order': t.description,
                'price': self._fmt(t.price),
                'quantity': f"{t.quantity:.6f}",
                'Fee': self._fmt(t.fee),
                'Total': self._fmt(t.total),
                # Buys have no realized result
                'Trade_PnL': self._fmt(t.profit),
                'Hold_Seconds': f"{t.hold_seconds:.0f}" if t.hold_seconds is not None else "",
                'counterparty': t.counterparty,
                'order_number': t.order_number,
                'source': t.source or "",
                'manual': "1" if t.manual else "0",
            })

        return output.getvalue()
