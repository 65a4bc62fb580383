# receipt.py
from collections import OrderedDict

from pricing import PricingBreakdown

# Intermediate tax-base values; never printed on a customer receipt.
ALWAYS_HIDDEN = ("dpp11", "dpp_lain", "ppn12")

# toggle name -> breakdown field, in receipt order
TOGGLES = OrderedDict([
    ("show_amount", "amount"),
    ("show_dpp_faktur", "dpp_faktur"),
    ("show_discount", "discount"),
    ("show_ppn11", "ppn11"),
])


class ReceiptFieldPolicy:
    """Selects which breakdown fields are visible on the printed receipt."""
    def __init__(self, show_amount: bool = True, show_dpp_faktur: bool = False,
                 show_discount: bool = False, show_ppn11: bool = False):
        self.show_amount = bool(show_amount)
        self.show_dpp_faktur = bool(show_dpp_faktur)
        self.show_discount = bool(show_discount)
        self.show_ppn11 = bool(show_ppn11)

    @classmethod
    def from_config(cls, config=None):
        """Build from the 'receipt' section of the app config."""
        section = (config or {}).get("receipt", {})
        return cls(**{k: section[k] for k in TOGGLES if k in section})

    def visible_fields(self):
        return [field for toggle, field in TOGGLES.items() if getattr(self, toggle)]

    def apply(self, breakdown: PricingBreakdown):
        values = breakdown.as_dict()
        return OrderedDict(
            (field, values[field]) for field in self.visible_fields()
            if field not in ALWAYS_HIDDEN
        )
