"""
Café receipt - the bill shown at the end of a café date.
Stateless: totals are recomputed from the items every time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, List, Optional

SERVICE_CHARGE_RATE = Decimal("0.10")
GST_RATE = Decimal("0.09")
PST_RATE = Decimal("0.07")
CENT = Decimal("0.01")

@dataclass(frozen=True)
class ReceiptItem:
    name: str
    price: Decimal

    def __post_init__(self):
        object.__setattr__(self, "price", Decimal(str(self.price)))

@dataclass(frozen=True)
class ReceiptTotals:
    subtotal: Decimal
    service_charge: Decimal
    gst: Decimal
    pst: Decimal
    total: Decimal

    def rounded(self) -> "ReceiptTotals":
        """Every amount rounded half-up to cents, as displayed."""
        return ReceiptTotals(*(money(value) for value in
                               (self.subtotal, self.service_charge, self.gst, self.pst, self.total)))

def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def compute_totals(items: Iterable[ReceiptItem]) -> ReceiptTotals:
    """Service charge on the subtotal; GST and PST on subtotal + service."""
    subtotal = sum((item.price for item in items), Decimal("0"))
    service_charge = subtotal * SERVICE_CHARGE_RATE
    taxable = subtotal + service_charge
    gst = taxable * GST_RATE
    pst = taxable * PST_RATE
    total = taxable + gst + pst
    return ReceiptTotals(subtotal, service_charge, gst, pst, total)

# What the couple orders on a café date
DEFAULT_CAFE_ORDER = [
    ReceiptItem("Caramel Latte", Decimal("5.50")),
    ReceiptItem("Matcha Latte", Decimal("5.80")),
    ReceiptItem("Strawberry Shortcake", Decimal("7.20")),
]

@dataclass
class Receipt:
    """Checkout summary with a pay callback."""
    model_name: str
    items: List[ReceiptItem]
    on_pay: Optional[Callable[[], None]] = None
    timestamp: datetime = field(default_factory=datetime.now)
    guests: int = 2

    @property
    def totals(self) -> ReceiptTotals:
        return compute_totals(self.items)

    def lines(self) -> List[str]:
        totals = self.totals.rounded()
        lines = [
            "Café Receipt",
            f"Date: {self.timestamp:%Y-%m-%d}",
            f"Time: {self.timestamp:%H:%M:%S}",
            f"# of Guests: {self.guests}",
            f"Date with: {self.model_name}",
        ]
        lines += [f"{item.name}: ${money(item.price)}" for item in self.items]
        lines += [
            f"Subtotal: ${totals.subtotal}",
            f"Service Charge (10%): ${totals.service_charge}",
            f"GST (9%): ${totals.gst}",
            f"PST (7%): ${totals.pst}",
            f"Total: ${totals.total}",
        ]
        return lines

    def to_dict(self) -> dict:
        totals = self.totals
        return {
            "items": [{"name": item.name, "price": str(money(item.price))} for item in self.items],
            "subtotal": str(money(totals.subtotal)),
            "service_charge": str(money(totals.service_charge)),
            "gst": str(money(totals.gst)),
            "pst": str(money(totals.pst)),
            "total": str(money(totals.total)),
            "guests": self.guests,
        }

    def confirm(self):
        """Pay & return home."""
        if self.on_pay:
            self.on_pay()
