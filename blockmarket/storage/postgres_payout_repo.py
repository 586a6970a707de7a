"""PostgreSQL repository for Payout records."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.logging import get_logger
from blockmarket.models.payout import Payout
from blockmarket.storage.db_models import PayoutTable

logger = get_logger(__name__)


class PostgresPayoutRepository:
    """Payout repository using PostgreSQL."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(self, entity: Payout) -> Payout:
        """Record a transfer; the transfer reference is unique."""
        db_payout = PayoutTable(
            id=entity.id,
            creator_id=entity.creator_id,
            purchase_id=entity.purchase_id,
            currency=entity.currency,
            amount=entity.amount,
            external_transfer_reference=entity.external_transfer_reference,
            period_start=entity.period_start,
            period_end=entity.period_end,
            paid_at=entity.paid_at,
            created_at=entity.created_at,
        )
        self.session.add(db_payout)
        await self.session.flush()

        logger.info(
            "payout_recorded",
            payout_id=str(entity.id),
            creator_id=str(entity.creator_id),
            transfer_id=entity.external_transfer_reference,
        )

        return entity

    async def get_by_transfer_reference(self, reference: str) -> Optional[Payout]:
        stmt = select(PayoutTable).where(PayoutTable.external_transfer_reference == reference)
        result = await self.session.execute(stmt)
        db_payout = result.scalar_one_or_none()
        return self._to_domain_model(db_payout) if db_payout else None

    async def list_by_purchase(self, purchase_id: UUID) -> list[Payout]:
        stmt = (
            select(PayoutTable)
            .where(PayoutTable.purchase_id == purchase_id)
            .order_by(PayoutTable.created_at)
        )
        result = await self.session.execute(stmt)
        return [self._to_domain_model(db_payout) for db_payout in result.scalars()]

    def _to_domain_model(self, db_payout: PayoutTable) -> Payout:
        """Convert database model to domain model."""
        return Payout(
            id=db_payout.id,
            creator_id=db_payout.creator_id,
            purchase_id=db_payout.purchase_id,
            currency=db_payout.currency,
            amount=db_payout.amount,
            external_transfer_reference=db_payout.external_transfer_reference,
            period_start=db_payout.period_start,
            period_end=db_payout.period_end,
            paid_at=db_payout.paid_at,
            created_at=db_payout.created_at,
        )
