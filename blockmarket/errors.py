"""Domain error hierarchy.

Handlers map these onto HTTP responses; services raise them and never
translate them into status codes themselves.
"""

from typing import Iterable
from uuid import UUID


class MarketplaceError(Exception):
    """Base class for every error raised by the purchase core."""

    message = "Marketplace error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


# Validation: rejected at the API boundary, never retried


class ValidationError(MarketplaceError):
    message = "Invalid request"


class EmptyCart(ValidationError):
    message = "No blockIds provided"


class CurrencyMismatch(ValidationError):
    def __init__(self, currencies: Iterable[str]):
        self.currencies = sorted(set(currencies))
        super().__init__(
            "All blocks in a checkout must share one currency, got "
            + ", ".join(self.currencies)
        )


class NoBlocksFound(ValidationError):
    def __init__(self, missing_ids: Iterable[UUID] = ()):
        self.missing_ids = list(missing_ids)
        if self.missing_ids:
            detail = "Some blocks not found or not purchasable: " + ", ".join(
                str(block_id) for block_id in self.missing_ids
            )
        else:
            detail = "No purchasable blocks found"
        super().__init__(detail)


class InvalidAmount(MarketplaceError, ValueError):
    """Malformed numeric input; indicates an upstream data problem."""

    message = "Invalid amount"


# Access


class AuthenticationRequired(MarketplaceError):
    message = "Authentication required"


class PermissionDenied(MarketplaceError):
    message = "Forbidden"


# Not found / conflict


class NotFoundError(MarketplaceError):
    message = "Not found"


class PurchaseNotFound(NotFoundError):
    def __init__(self, purchase_id: UUID | str):
        self.purchase_id = purchase_id
        super().__init__(f"Purchase not found: {purchase_id}")


class ConflictError(MarketplaceError):
    message = "Conflict"


class InvalidStateTransition(ConflictError):
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity} cannot transition from {current} to {target}")


# Payout: surfaced to operators, not to buyers


class PayoutError(MarketplaceError):
    message = "Payout failed"


class PurchaseNotPaid(PayoutError):
    def __init__(self, purchase_id: UUID, status: str):
        self.purchase_id = purchase_id
        super().__init__(f"Purchase {purchase_id} is not PAID yet (status={status})")


class MissingPaymentReference(PayoutError):
    def __init__(self, purchase_id: UUID):
        self.purchase_id = purchase_id
        super().__init__(f"Purchase {purchase_id} has no payment reference")


class CreatorPayoutIneligible(PayoutError):
    def __init__(self, creator_id: UUID, reason: str):
        self.creator_id = creator_id
        self.reason = reason
        super().__init__(f"Creator {creator_id} cannot receive payouts: {reason}")


class InvalidPlatformFee(PayoutError):
    def __init__(self, block_id: UUID, fee_minor: int):
        self.block_id = block_id
        self.fee_minor = fee_minor
        super().__init__(f"Invalid platform fee {fee_minor} for block {block_id}")


# Transient: retry the whole operation


class TransientError(MarketplaceError):
    message = "Temporary failure, retry later"


class PayoutInProgress(TransientError):
    def __init__(self, purchase_id: UUID):
        self.purchase_id = purchase_id
        super().__init__(f"Payout already running for purchase {purchase_id}")
