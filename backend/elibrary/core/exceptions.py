"""
Custom exceptions for the purchase and entitlement flow.

Call-level errors (verification, persistence failure) abort the request and
roll back; per-item errors are absorbed into the purchase summary.
"""


class PurchaseError(Exception):
    """Base class for purchase-flow errors."""

    pass


class VerificationError(PurchaseError):
    """Raised by receipt verifiers."""

    pass


class InvalidReceiptError(VerificationError):
    """
    Receipt is malformed, unsigned, rejected by the store or lists no items.

    Not retryable as-is: the client must obtain a new receipt.
    """

    def __init__(self, message: str = "Invalid receipt", status: int | None = None):
        super().__init__(message)
        self.status = status


class ProviderUnavailableError(VerificationError):
    """Store could not be reached or answered with a transient status."""

    def __init__(
        self, message: str = "Receipt provider unavailable", status: int | None = None
    ):
        super().__init__(message)
        self.status = status


class DeadlineExceededError(ProviderUnavailableError):
    """The caller-supplied deadline passed before verification finished."""

    pass


class UnknownProductError(PurchaseError):
    """A receipt line item references a product id missing from the catalog."""

    def __init__(self, product_id: str):
        super().__init__(f"Unknown product id: {product_id}")
        self.product_id = product_id


class PersistenceConflictError(PurchaseError):
    """
    A uniqueness constraint rejected a concurrent duplicate write.

    Repositories resolve this by re-reading the winning row.
    """

    pass


class PersistenceFailureError(PurchaseError):
    """The unit of work failed and was rolled back; safe to retry."""

    pass
