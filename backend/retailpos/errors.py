# Overview: Domain error hierarchy shared by the stock, sales, purchasing and register services.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the engine reports to its caller."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError, ValueError):
    """400-level input problem (malformed or inconsistent input)."""
    status_code = 400


class NotFoundError(LedgerError, LookupError):
    """Referenced sale, purchase order, item, session or stock row is missing."""
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (double-open register, already refunded)."""
    status_code = 409


class InsufficientStockError(LedgerError):
    """Quantity-availability violation for one (variant, store) pair."""

    status_code = 409

    def __init__(
        self,
        variant_id: int,
        store_id: int | None = None,
        requested: int | None = None,
        on_hand: int | None = None,
    ):
        super().__init__(
            f"Insufficient stock for variant {variant_id}",
            details={
                "variant_id": variant_id,
                "store_id": store_id,
                "requested": requested,
                "on_hand": on_hand,
            },
        )
        self.variant_id = variant_id
        self.store_id = store_id
        self.requested = requested
        self.on_hand = on_hand
