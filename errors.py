# errors.py


class CheckoutError(Exception):
    """Base class for every error raised by the checkout core."""


class InvalidInput(CheckoutError, ValueError):
    """Malformed pricing or catalog arguments."""


class ProductNotFound(CheckoutError, LookupError):
    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class InsufficientStock(CheckoutError, ValueError):
    """
    Raised by the Cart (advisory check against cached stock) and by the
    Ledger (authoritative check inside the atomic write).
    """
    def __init__(self, product_id, requested: int, available: int, name: str = None):
        label = name or f"product {product_id}"
        super().__init__(
            f"Not enough stock for {label}. Available: {available}, Requested: {requested}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCart(CheckoutError):
    def __init__(self):
        super().__init__("Cart is empty")


class InsufficientPayment(CheckoutError):
    def __init__(self, total, received):
        super().__init__(f"Insufficient payment: received {received}, total {total}")
        self.total = total
        self.received = received


class SequenceGenerationFailed(CheckoutError):
    pass


class PersistenceFailure(CheckoutError):
    """A grouped write failed; nothing from the attempt was kept."""


class CommitInProgress(CheckoutError):
    def __init__(self):
        super().__init__("A commit is already in progress for this session")


class CommitCancelled(CheckoutError):
    def __init__(self):
        super().__init__("Commit cancelled before a sale number was reserved")
