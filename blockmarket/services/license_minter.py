"""License minting for paid purchases."""

import secrets
from datetime import datetime

from blockmarket.errors import InvalidStateTransition
from blockmarket.logging import get_logger
from blockmarket.models.license import DeliveryStatus, License, LicenseStatus
from blockmarket.models.purchase import Purchase, PurchaseStatus

logger = get_logger(__name__)


def new_transaction_hash() -> str:
    """64 lowercase hex characters from 32 bytes of OS randomness."""
    return secrets.token_hex(32)


class LicenseMinter:
    """Builds one License per line item of a paid purchase.

    Persisting the licenses is left to the caller so they land in the same
    transaction as the PAID transition.
    """

    def mint_licenses_for_purchase(self, purchase: Purchase) -> list[License]:
        if purchase.status != PurchaseStatus.PAID:
            raise InvalidStateTransition("License", purchase.status.value, "MINTED")

        now = datetime.utcnow()
        licenses = [
            License(
                purchase_id=purchase.id,
                buyer_id=purchase.buyer_id,
                block_id=item.block_id,
                type=item.license_type,
                status=LicenseStatus.ACTIVE,
                delivery_status=DeliveryStatus.READY,
                delivery_ready_at=now,
                transaction_hash=new_transaction_hash(),
                created_at=now,
            )
            for item in purchase.line_items
        ]

        logger.info(
            "licenses_minted",
            purchase_id=str(purchase.id),
            count=len(licenses),
        )

        return licenses
