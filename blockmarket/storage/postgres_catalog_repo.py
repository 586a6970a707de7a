"""PostgreSQL repository for the catalog data the purchase core reads."""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.logging import get_logger
from blockmarket.models.block import BlockQuote, BlockStatus, CreatorAccount
from blockmarket.storage.db_models import BlockTable

logger = get_logger(__name__)


def block_to_quote(db_block: BlockTable) -> BlockQuote:
    """Convert a block row (with its eagerly loaded creator) to a price snapshot."""
    creator = db_block.creator
    return BlockQuote(
        id=db_block.id,
        title=db_block.title,
        price=db_block.price,
        currency=db_block.currency,
        platform_fee_bps=db_block.platform_fee_bps,
        creator=CreatorAccount(
            id=creator.id,
            stripe_account_id=creator.stripe_account_id,
            stripe_account_status=creator.stripe_account_status,
        ),
    )


class PostgresCatalogRepository:
    """Read price snapshots and bump sold counts."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_blocks_by_ids(
        self, ids: Iterable[UUID], purchasable_only: bool = True
    ) -> list[BlockQuote]:
        """
        Load current price snapshots for the given blocks.

        Args:
            ids: Block ids; unknown ids are silently absent from the result
            purchasable_only: Restrict to PUBLISHED blocks

        Returns:
            List of BlockQuote in no particular order
        """
        ids = list(ids)
        if not ids:
            return []

        stmt = select(BlockTable).where(BlockTable.id.in_(ids))
        if purchasable_only:
            stmt = stmt.where(BlockTable.status == BlockStatus.PUBLISHED)

        result = await self.session.execute(stmt)
        return [block_to_quote(db_block) for db_block in result.scalars().unique()]

    async def increment_sold_count(self, block_id: UUID, by: int = 1) -> bool:
        """Atomically add ``by`` to a block's sold count (no read-modify-write)."""
        stmt = (
            update(BlockTable)
            .where(BlockTable.id == block_id)
            .values(sold_count=BlockTable.sold_count + by)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount != 1:
            logger.warning("sold_count_increment_missed", block_id=str(block_id))
            return False

        return True

    async def get_sold_count(self, block_id: UUID) -> int | None:
        stmt = select(BlockTable.sold_count).where(BlockTable.id == block_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
