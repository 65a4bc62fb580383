# checkout.py
"""
Sale commit: turns a finalized Cart into one Sale, its SaleItems and its
outbound StockMovements, written through the Ledger as a single unit.

    IDLE -> VALIDATING -> RESERVING -> PERSISTING -> COMMITTED
                 |            |             |
                 +------------+-------------+----> FAILED

The cart is never modified here; the caller clears it after a commit.
"""
import enum
import logging
import threading
from decimal import Decimal

from errors import (
    CheckoutError,
    CommitCancelled,
    CommitInProgress,
    EmptyCart,
    InsufficientPayment,
    InvalidInput,
    PersistenceFailure,
    SequenceGenerationFailed,
)
from models import Cart, Sale, SaleItem, StockMovement
from pricing import (
    PricingBreakdown,
    check_discount_rate,
    compute_line_breakdown,
    money,
    to_decimal,
)

logger = logging.getLogger("pos_checkout.checkout")

PAYMENT_METHODS = ("cash", "card", "transfer", "credit")


class CommitState(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RESERVING = "reserving"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


class CartBreakdown:
    """Pre-commit breakdown: one PricingBreakdown per line plus the total."""
    def __init__(self, lines, total: PricingBreakdown):
        self.lines = lines
        self.total = total


class SaleCommitService:
    """
    One instance per checkout session. At most one commit may be in
    flight at a time.
    """
    def __init__(self, ledger, sequence, tax_rate=11, discount_rate=None, created_by=None):
        self.ledger = ledger
        self.sequence = sequence
        self.tax_rate = to_decimal(tax_rate, "tax_rate")
        self.discount_rate = check_discount_rate(discount_rate)
        self.created_by = created_by
        self.state = CommitState.IDLE
        self.failure = None
        self._lock = threading.Lock()
        self._in_flight = False
        self._cancel_requested = False

    # Pricing
    def preview(self, cart: Cart, discount_rate=None) -> CartBreakdown:
        """Read-only breakdown; discount_rate overrides the session default."""
        rate = discount_rate if discount_rate is not None else self.discount_rate
        lines = [
            (line, compute_line_breakdown(line.product.unit_price, line.quantity, rate))
            for line in cart.lines
        ]
        total = PricingBreakdown.zero()
        for _, breakdown in lines:
            total = total + breakdown
        return CartBreakdown(lines, total)

    def totals(self, cart: Cart):
        """(subtotal, tax_amount, total_amount) for the cart, in minor units."""
        # must equal the sum of the SaleItem subtotals
        subtotal = sum((money(line.line_total) for line in cart.lines), Decimal("0.00"))
        tax = money(subtotal * self.tax_rate / Decimal(100))
        return subtotal, tax, subtotal + tax

    # Cancellation
    def cancel(self) -> bool:
        """
        Ask the in-flight commit to stop. Only honoured before a sale
        number is reserved; returns False once that point has passed.
        """
        with self._lock:
            if self.state in (CommitState.IDLE, CommitState.VALIDATING) and self._in_flight:
                self._cancel_requested = True
                return True
            return False

    def _enter(self, state: CommitState):
        with self._lock:
            if state is CommitState.RESERVING and self._cancel_requested:
                raise CommitCancelled()
            logger.debug(f"Commit state {self.state.value} -> {state.value}")
            self.state = state

    # Commit
    def commit(self, cart: Cart, payment_received, payment_method: str = "cash",
               customer_name: str = None, bank_details: str = None,
               created_by: str = None) -> Sale:
        """
        Validate, reserve a sale number and persist the sale.
        Raises a CheckoutError subclass on failure; the cart is untouched
        either way.
        """
        with self._lock:
            if self._in_flight:
                raise CommitInProgress()
            self._in_flight = True
            self._cancel_requested = False
            self.state = CommitState.IDLE
            self.failure = None

        try:
            sale = self._run(cart, payment_received, payment_method, customer_name,
                             bank_details, created_by or self.created_by)
        except CheckoutError as exc:
            self.state = CommitState.FAILED
            self.failure = exc
            logger.warning(f"Commit failed: {type(exc).__name__}: {exc}")
            raise
        finally:
            with self._lock:
                self._in_flight = False

        self.state = CommitState.COMMITTED
        logger.info(f"Sale {sale.sale_number} committed: total {sale.total_amount}, "
                    f"change {sale.change_amount}")
        return sale

    def _run(self, cart, payment_received, payment_method, customer_name,
             bank_details, created_by) -> Sale:
        self._enter(CommitState.VALIDATING)
        if cart.is_empty:
            raise EmptyCart()
        method = (payment_method or "cash").strip().lower()
        if method not in PAYMENT_METHODS:
            raise InvalidInput(f"Unknown payment method: {payment_method}")
        received = money(to_decimal(payment_received, "payment_received"))
        subtotal, tax, total = self.totals(cart)
        if received < total:
            raise InsufficientPayment(total, received)

        self._enter(CommitState.RESERVING)
        try:
            sale_number = self.sequence.next_sale_number()
        except SequenceGenerationFailed:
            raise
        except Exception as exc:
            raise SequenceGenerationFailed(f"Could not generate sale number: {exc}") from exc
        if not sale_number:
            raise SequenceGenerationFailed("Sequence generator returned an empty sale number")

        self._enter(CommitState.PERSISTING)
        notes = None
        if method != "cash" and bank_details:
            notes = f"Bank Details: {bank_details}"
        sale = Sale(
            sale_number=str(sale_number),
            customer_name=(customer_name or "").strip() or None,
            subtotal=subtotal,
            tax_amount=tax,
            total_amount=total,
            payment_method=method,
            payment_received=received,
            change_amount=received - total,
            notes=notes,
            created_by=created_by,
        )
        items, movements, decrements = [], [], []
        for line in cart.lines:
            items.append(SaleItem(
                product_id=line.product.id,
                quantity=line.quantity,
                unit_price=line.product.unit_price,
                subtotal=line.line_total,
            ))
            movements.append(StockMovement(
                product_id=line.product.id,
                quantity=line.quantity,
                reference_number=sale.sale_number,
                created_by=created_by,
                created_at=sale.created_at,
            ))
            decrements.append((line.product.id, line.quantity))

        try:
            return self.ledger.write_sale_atomic(sale, items, movements, decrements)
        except PersistenceFailure:
            self._compensate(sale.sale_number)
            raise
        except CheckoutError:
            raise
        except Exception as exc:
            self._compensate(sale.sale_number)
            raise PersistenceFailure(f"Failed to record sale {sale.sale_number}: {exc}") from exc

    def _compensate(self, sale_number: str):
        purge = getattr(self.ledger, "purge_sale", None)
        if purge is None:
            return
        try:
            purge(sale_number)
        except CheckoutError as exc:
            # the original failure is the one reported to the caller
            logger.error(f"Compensation for sale {sale_number} failed: {exc}")
