"""Structured audit logging for money-moving actions.

Provides audit trails for purchases, licenses and creator payouts so
operators can reconcile against the payment gateway.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from blockmarket.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Purchase lifecycle
    PURCHASE_CREATED = "purchase_created"
    PURCHASE_PAID = "purchase_paid"
    PURCHASE_FULFILLMENT_DUPLICATE = "purchase_fulfillment_duplicate"
    PURCHASE_FAILED = "purchase_failed"
    PURCHASE_REFUNDED = "purchase_refunded"

    # Payouts
    PAYOUT_TRANSFERRED = "payout_transferred"
    PAYOUT_SKIPPED = "payout_skipped"
    PAYOUT_BACKFILLED = "payout_backfilled"
    PAYOUT_FAILED = "payout_failed"

    # Security
    PERMISSION_DENIED = "permission_denied"


class AuditLogger:
    """Centralized audit logging service."""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        actor_id: str,
        resource_type: str,
        resource_id: UUID | str,
        action: str,
        success: bool = True,
        metadata: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log an auditable event with structured context.

        Args:
            event_type: Type of audit event
            actor_id: Buyer id, or "system"/"stripe" for automated actors
            resource_type: Type of resource (purchase, license, payout)
            resource_id: ID of the affected resource
            action: Human-readable action description
            success: Whether the action succeeded
            metadata: Additional context (amounts, counts, references)
            error: Error message if action failed
        """
        audit_entry = {
            "event_type": event_type.value,
            "actor_id": actor_id,
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            "action": action,
            "success": success,
            "timestamp": datetime.utcnow().isoformat(),
            "metadata": metadata or {},
        }

        if error:
            audit_entry["error"] = error

        logger.info(
            "audit_event",
            **audit_entry,
        )

    @staticmethod
    def log_purchase_created(
        buyer_id: str,
        purchase_id: UUID,
        total_amount: Decimal,
        currency: str,
        item_count: int,
    ) -> None:
        """Log pending purchase creation."""
        AuditLogger.log_event(
            event_type=AuditEventType.PURCHASE_CREATED,
            actor_id=buyer_id,
            resource_type="purchase",
            resource_id=purchase_id,
            action="Pending purchase created",
            metadata={
                "total_amount": str(total_amount),
                "currency": currency,
                "item_count": item_count,
            },
        )

    @staticmethod
    def log_purchase_paid(
        buyer_id: str,
        purchase_id: UUID,
        payment_reference: str,
        license_count: int,
    ) -> None:
        """Log the PENDING -> PAID transition and license minting."""
        AuditLogger.log_event(
            event_type=AuditEventType.PURCHASE_PAID,
            actor_id=buyer_id,
            resource_type="purchase",
            resource_id=purchase_id,
            action="Purchase paid and licenses minted",
            metadata={
                "payment_reference": payment_reference,
                "license_count": license_count,
            },
        )

    @staticmethod
    def log_duplicate_fulfillment(
        purchase_id: UUID,
        payment_reference: str,
    ) -> None:
        """Log a fulfillment request for an already paid purchase."""
        AuditLogger.log_event(
            event_type=AuditEventType.PURCHASE_FULFILLMENT_DUPLICATE,
            actor_id="system",
            resource_type="purchase",
            resource_id=purchase_id,
            action="Fulfillment skipped, purchase already paid",
            metadata={"payment_reference": payment_reference},
        )

    @staticmethod
    def log_purchase_failed(purchase_id: UUID, reason: str) -> None:
        """Log a declined or abandoned payment."""
        AuditLogger.log_event(
            event_type=AuditEventType.PURCHASE_FAILED,
            actor_id="stripe",
            resource_type="purchase",
            resource_id=purchase_id,
            action="Purchase marked failed",
            metadata={"reason": reason},
        )

    @staticmethod
    def log_purchase_refunded(purchase_id: UUID, revoked_licenses: int) -> None:
        """Log a refund and the resulting license revocations."""
        AuditLogger.log_event(
            event_type=AuditEventType.PURCHASE_REFUNDED,
            actor_id="system",
            resource_type="purchase",
            resource_id=purchase_id,
            action="Purchase refunded",
            metadata={"revoked_licenses": revoked_licenses},
        )

    @staticmethod
    def log_payout_transferred(
        purchase_id: UUID,
        creator_id: UUID,
        amount_minor: int,
        currency: str,
        transfer_id: str,
    ) -> None:
        """Log a transfer issued to a creator."""
        AuditLogger.log_event(
            event_type=AuditEventType.PAYOUT_TRANSFERRED,
            actor_id="system",
            resource_type="payout",
            resource_id=purchase_id,
            action="Creator transfer issued",
            metadata={
                "creator_id": str(creator_id),
                "amount_minor": amount_minor,
                "currency": currency,
                "transfer_id": transfer_id,
            },
        )

    @staticmethod
    def log_payout_skipped(
        purchase_id: UUID,
        creator_id: UUID,
        transfer_id: str,
        backfilled: bool,
    ) -> None:
        """Log a creator payout recognized as already transferred."""
        AuditLogger.log_event(
            event_type=(
                AuditEventType.PAYOUT_BACKFILLED
                if backfilled
                else AuditEventType.PAYOUT_SKIPPED
            ),
            actor_id="system",
            resource_type="payout",
            resource_id=purchase_id,
            action=(
                "Existing transfer recorded locally"
                if backfilled
                else "Creator already paid"
            ),
            metadata={"creator_id": str(creator_id), "transfer_id": transfer_id},
        )

    @staticmethod
    def log_payout_failed(purchase_id: UUID, error: str) -> None:
        """Log a payout batch that needs operator follow-up."""
        AuditLogger.log_event(
            event_type=AuditEventType.PAYOUT_FAILED,
            actor_id="system",
            resource_type="payout",
            resource_id=purchase_id,
            action="Creator payout aborted",
            success=False,
            error=error,
        )

    @staticmethod
    def log_permission_denied(
        actor_id: str,
        resource_type: str,
        resource_id: UUID | str,
        attempted_action: str,
    ) -> None:
        """Log unauthorized access attempts."""
        AuditLogger.log_event(
            event_type=AuditEventType.PERMISSION_DENIED,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=f"Permission denied: {attempted_action}",
            success=False,
            metadata={"attempted_action": attempted_action},
        )
