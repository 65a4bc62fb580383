# models.py
from datetime import datetime
from decimal import Decimal

from errors import InsufficientStock, InvalidInput
from pricing import ZERO, money, to_decimal

OUTBOUND = "outbound"


class Product:
    """Represents a product as read from the catalog."""
    def __init__(self, id, name: str, unit_price, stock_quantity: int,
                 min_stock_level: int = 10, barcode: str = None):
        self.id = id
        self.name = name
        self.unit_price = to_decimal(unit_price, "unit_price")
        self.stock_quantity = stock_quantity
        self.min_stock_level = min_stock_level
        self.barcode = barcode

    @classmethod
    def from_row(cls, row):
        """
        Build a Product from a catalog row (sqlite3.Row or dict).
        Raises InvalidInput for rows that break the catalog contract.
        """
        price = to_decimal(row['unit_price'], "unit_price")
        if price < ZERO:
            raise InvalidInput(f"Product {row['id']} has a negative price")
        try:
            stock = int(row['quantity_in_stock'])
            min_level = int(row['min_stock_level'] if row['min_stock_level'] is not None else 10)
        except (TypeError, ValueError):
            raise InvalidInput(f"Product {row['id']} has a non-integer stock value")
        if stock < 0:
            raise InvalidInput(f"Product {row['id']} has negative stock")
        return cls(row['id'], row['name'], price, stock, min_level, row['barcode'])

    @property
    def is_low_stock(self):
        return self.stock_quantity <= self.min_stock_level

    def __repr__(self):
        return f"Product(id={self.id!r}, name={self.name!r}, stock={self.stock_quantity})"


class CartLine:
    """One line in the current cart."""
    def __init__(self, product: Product, quantity: int):
        self.product = product
        self.quantity = quantity

    @property
    def line_total(self) -> Decimal:
        return self.product.unit_price * self.quantity


class Cart:
    """
    Ordered (product, quantity) lines for one checkout session.
    Stock checks use the last known stock of each product; the
    authoritative check happens when the sale is written.
    """
    def __init__(self, catalog=None):
        self.catalog = catalog
        self._lines = []

    def _find(self, product_id):
        for line in self._lines:
            if line.product.id == product_id:
                return line
        return None

    def add(self, product: Product):
        line = self._find(product.id)
        requested = (line.quantity if line else 0) + 1
        if requested > product.stock_quantity:
            raise InsufficientStock(product.id, requested, product.stock_quantity, product.name)
        if line:
            # keep the freshest stock figure the caller handed us
            line.product = product
            line.quantity = requested
        else:
            line = CartLine(product, 1)
            self._lines.append(line)
        return line

    def scan(self, product_id):
        """Look the product up in the catalog, then add one unit."""
        if self.catalog is None:
            raise InvalidInput("Cart has no product catalog to scan against")
        return self.add(self.catalog.lookup(product_id))

    def set_quantity(self, product_id, quantity: int):
        if quantity <= 0:
            self.remove(product_id)
            return None
        line = self._find(product_id)
        if line is None:
            return None
        if quantity > line.product.stock_quantity:
            raise InsufficientStock(product_id, quantity, line.product.stock_quantity,
                                    line.product.name)
        line.quantity = quantity
        return line

    def remove(self, product_id):
        self._lines = [line for line in self._lines if line.product.id != product_id]

    def clear(self):
        self._lines = []

    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines), ZERO)

    def quantity_of(self, product_id) -> int:
        line = self._find(product_id)
        return line.quantity if line else 0

    @property
    def lines(self):
        return tuple(self._lines)

    @property
    def is_empty(self):
        return not self._lines

    @property
    def item_count(self):
        return sum(line.quantity for line in self._lines)

    def __len__(self):
        return len(self._lines)


class Sale:
    """Sale header, created once per successful commit."""
    def __init__(self, sale_number: str, subtotal, tax_amount, total_amount,
                 payment_method: str, payment_received, change_amount,
                 customer_name: str = None, notes: str = None,
                 created_by: str = None, created_at: str = None, id: int = None):
        self.id = id
        self.sale_number = sale_number
        self.customer_name = customer_name
        self.subtotal = money(subtotal)
        self.tax_amount = money(tax_amount)
        self.total_amount = money(total_amount)
        self.payment_method = payment_method
        self.payment_received = money(payment_received)
        self.change_amount = money(change_amount)
        self.notes = notes
        self.created_by = created_by
        self.created_at = created_at or datetime.now().isoformat(timespec='seconds')

    @classmethod
    def from_row(cls, row):
        return cls(
            sale_number=row['sale_number'],
            subtotal=row['subtotal'],
            tax_amount=row['tax_amount'],
            total_amount=row['total_amount'],
            payment_method=row['payment_method'],
            payment_received=row['payment_received'],
            change_amount=row['change_amount'],
            customer_name=row['customer_name'],
            notes=row['notes'],
            created_by=row['created_by'],
            created_at=row['created_at'],
            id=row['id'],
        )

    def __repr__(self):
        return f"Sale({self.sale_number!r}, total={self.total_amount})"


class SaleItem:
    def __init__(self, product_id, quantity: int, unit_price, subtotal, sale_id: int = None):
        self.sale_id = sale_id
        self.product_id = product_id
        self.quantity = quantity
        self.unit_price = money(unit_price)
        self.subtotal = money(subtotal)


class StockMovement:
    """Stock decrement caused by a sale line."""
    def __init__(self, product_id, quantity: int, reference_number: str,
                 notes: str = None, created_by: str = None, created_at: str = None,
                 type: str = OUTBOUND):
        self.product_id = product_id
        self.type = type
        self.quantity = quantity
        self.reference_number = reference_number
        self.notes = notes if notes is not None else f"Sale: {reference_number}"
        self.created_by = created_by
        self.created_at = created_at or datetime.now().isoformat(timespec='seconds')
