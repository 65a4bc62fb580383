# pricing.py
"""
Tax-base decomposition for receipts.

For a unit price P (tax inclusive) and discount rate r:

    dpp11      = P * 100 / 111
    discount   = r * dpp11
    dpp_faktur = dpp11 - discount
    dpp_lain   = dpp_faktur * 11 / 12
    ppn11      = 0.11 * dpp_faktur
    ppn12      = ppn11

The per-unit values are multiplied by the line quantity, and amount is
quantity * P. Values stay unrounded Decimals until rounded() is called.
"""
from collections import namedtuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import InvalidInput

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")

DEFAULT_DISCOUNT_RATE = Decimal("0.08")
PPN_RATE = Decimal("0.11")

FIELDS = ("amount", "dpp11", "discount", "dpp_faktur", "dpp_lain", "ppn11", "ppn12")


def to_decimal(value, field: str = "value") -> Decimal:
    """Convert int/str/float/Decimal to a finite Decimal without binary float noise."""
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidInput(f"{field} must be a number, got {value!r}")
    if not result.is_finite():
        raise InvalidInput(f"{field} must be a finite number, got {value!r}")
    return result


def money(value) -> Decimal:
    """Quantize to currency minor units (2dp, half-up)."""
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class PricingBreakdown(namedtuple("PricingBreakdown", FIELDS)):
    """Immutable breakdown for one line or for a whole cart."""
    __slots__ = ()

    @classmethod
    def zero(cls):
        return cls(*([ZERO] * len(FIELDS)))

    def __add__(self, other):
        if not isinstance(other, PricingBreakdown):
            return NotImplemented
        return PricingBreakdown(*(a + b for a, b in zip(self, other)))

    def rounded(self):
        return PricingBreakdown(*(money(v) for v in self))

    def as_dict(self):
        return dict(self._asdict())


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInput(f"quantity must be a whole number, got {quantity!r}")
    if quantity <= 0:
        raise InvalidInput(f"quantity must be at least 1, got {quantity}")
    return quantity


def check_discount_rate(discount_rate) -> Decimal:
    """None selects the default rate; anything else must lie in [0, 1]."""
    if discount_rate is None:
        return DEFAULT_DISCOUNT_RATE
    rate = to_decimal(discount_rate, "discount_rate")
    if rate < ZERO or rate > ONE:
        raise InvalidInput(f"discount_rate must be between 0 and 1, got {rate}")
    return rate


def compute_line_breakdown(price, quantity: int, discount_rate=None) -> PricingBreakdown:
    """
    Breakdown for a single cart line.
    discount_rate: None selects the fixed 8% base mode.
    """
    price = to_decimal(price, "price")
    if price < ZERO:
        raise InvalidInput(f"price must not be negative, got {price}")
    quantity = _check_quantity(quantity)
    rate = check_discount_rate(discount_rate)

    # multiply before dividing so that e.g. 111000 maps to exactly 100000
    dpp11 = price * 100 / 111
    discount = rate * dpp11
    dpp_faktur = dpp11 - discount
    dpp_lain = dpp_faktur * 11 / 12
    ppn11 = PPN_RATE * dpp_faktur
    ppn12 = ppn11

    qty = Decimal(quantity)
    return PricingBreakdown(
        amount=price * qty,
        dpp11=dpp11 * qty,
        discount=discount * qty,
        dpp_faktur=dpp_faktur * qty,
        dpp_lain=dpp_lain * qty,
        ppn11=ppn11 * qty,
        ppn12=ppn12 * qty,
    )


def compute_cart_breakdown(lines, discount_rate=None) -> PricingBreakdown:
    """
    Field-by-field sum over (price, quantity) pairs.
    """
    total = PricingBreakdown.zero()
    for price, quantity in lines:
        total = total + compute_line_breakdown(price, quantity, discount_rate)
    return total
