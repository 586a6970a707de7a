"""PostgreSQL repository for License entities."""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.logging import get_logger
from blockmarket.models.license import (
    DeliveryStatus,
    License,
    LicenseStatus,
    LicenseSummary,
)
from blockmarket.storage.db_models import BlockTable, LicenseTable, PurchaseTable

logger = get_logger(__name__)


class PostgresLicenseRepository:
    """License repository using PostgreSQL."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create_many(self, licenses: list[License]) -> list[License]:
        """
        Insert licenses in the current transaction.

        The (purchase_id, block_id) unique constraint rejects a second
        license for the same line item.
        """
        self.session.add_all(
            [
                LicenseTable(
                    id=lic.id,
                    purchase_id=lic.purchase_id,
                    buyer_id=lic.buyer_id,
                    block_id=lic.block_id,
                    type=lic.type,
                    status=lic.status,
                    delivery_status=lic.delivery_status,
                    delivery_ready_at=lic.delivery_ready_at,
                    transaction_hash=lic.transaction_hash,
                    created_at=lic.created_at,
                )
                for lic in licenses
            ]
        )
        await self.session.flush()

        logger.info(
            "licenses_created",
            count=len(licenses),
            purchase_ids=sorted({str(lic.purchase_id) for lic in licenses}),
        )

        return licenses

    async def get_by_purchase(self, purchase_id: UUID) -> list[License]:
        """Licenses minted for one purchase."""
        stmt = (
            select(LicenseTable)
            .where(LicenseTable.purchase_id == purchase_id)
            .order_by(LicenseTable.created_at, LicenseTable.id)
        )
        result = await self.session.execute(stmt)
        return [self._to_domain_model(db_license) for db_license in result.scalars()]

    async def list_for_buyer(self, buyer_id: str) -> list[LicenseSummary]:
        """Licenses owned by a buyer, newest first, joined to block and purchase."""
        stmt = (
            select(
                LicenseTable,
                BlockTable.title,
                BlockTable.slug,
                PurchaseTable.status,
                PurchaseTable.paid_at,
            )
            .join(BlockTable, BlockTable.id == LicenseTable.block_id)
            .join(PurchaseTable, PurchaseTable.id == LicenseTable.purchase_id)
            .where(LicenseTable.buyer_id == buyer_id)
            .order_by(LicenseTable.created_at.desc())
        )
        result = await self.session.execute(stmt)

        return [
            LicenseSummary(
                license=self._to_domain_model(db_license),
                block_title=title,
                block_slug=slug,
                purchase_status=purchase_status.value,
                purchase_paid_at=paid_at,
            )
            for db_license, title, slug, purchase_status, paid_at in result.all()
        ]

    async def revoke_for_purchase(self, purchase_id: UUID) -> int:
        """Revoke every active license of a purchase; returns the number revoked."""
        stmt = (
            update(LicenseTable)
            .where(
                LicenseTable.purchase_id == purchase_id,
                LicenseTable.status == LicenseStatus.ACTIVE,
            )
            .values(
                status=LicenseStatus.ACTIVE.transition_to(LicenseStatus.REVOKED),
                delivery_status=DeliveryStatus.REVOKED,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        logger.info(
            "licenses_revoked",
            purchase_id=str(purchase_id),
            count=result.rowcount,
        )

        return result.rowcount

    def _to_domain_model(self, db_license: LicenseTable) -> License:
        """Convert database model to domain model."""
        return License(
            id=db_license.id,
            purchase_id=db_license.purchase_id,
            buyer_id=db_license.buyer_id,
            block_id=db_license.block_id,
            type=db_license.type,
            status=db_license.status,
            delivery_status=db_license.delivery_status,
            delivery_ready_at=db_license.delivery_ready_at,
            transaction_hash=db_license.transaction_hash,
            created_at=db_license.created_at,
        )
