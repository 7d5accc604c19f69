from dataclasses import dataclass
from typing import List
from decimal import Decimal
from datetime import datetime
from .domain import InventoryLot, EPSILON


@dataclass
class MatchResult:
    """ Outcome of matching one sell against the open lots. """
    gross_profit: Decimal
    matched_qty: Decimal
    unmatched_qty: Decimal
    hold_numerator: float  # Sum of hold seconds * consumed qty

    def average_hold_seconds(self, sold_qty: Decimal) -> float:
        if sold_qty <= 0:
            return 0.0
        return self.hold_numerator / float(sold_qty)


class FifoEngine:
    """
    Inventory queue for a single asset/fiat pair.

    Lots live in a list and `_head` points at the oldest open one. Fully
    consumed lots are skipped by moving the pointer instead of popping the
    front of the list.
    """

    def __init__(self):
        self._lots: List[InventoryLot] = []
        self._head = 0

    def add_lot(self, price: Decimal, quantity: Decimal, date: datetime) -> InventoryLot:
        lot = InventoryLot(price=price, quantity=quantity, date=date)
        self._lots.append(lot)
        return lot

    def consume(self, price: Decimal, quantity: Decimal, date: datetime) -> MatchResult:
        """ Matches a sell of `quantity` at `price` against the oldest lots first. """
        remaining = quantity
        gross = Decimal("0")
        matched = Decimal("0")
        hold_numerator = 0.0

        while remaining > 0 and self._head < len(self._lots):
            lot = self._lots[self._head]
            hold_seconds = (date - lot.date).total_seconds()

            if lot.quantity <= remaining + EPSILON:
                # Whole lot closes
                take = lot.quantity
                self._head += 1
            else:
                # Partial close, lot stays at the front
                take = remaining
                lot.quantity -= take

            gross += (price - lot.price) * take
            hold_numerator += hold_seconds * float(take)
            matched += take
            remaining -= take

        unmatched = remaining if remaining > EPSILON else Decimal("0")
        if unmatched > 0:
            # Overselling: no lot left, the rest carries zero cost basis
            gross += price * unmatched

        return MatchResult(
            gross_profit=gross,
            matched_qty=matched,
            unmatched_qty=unmatched,
            hold_numerator=hold_numerator,
        )

    def open_lots(self) -> List[InventoryLot]:
        return self._lots[self._head:]

    def remaining_quantity(self) -> Decimal:
        return sum((lot.quantity for lot in self.open_lots()), Decimal("0"))

    def remaining_cost(self) -> Decimal:
        return sum((lot.price * lot.quantity for lot in self.open_lots()), Decimal("0"))
