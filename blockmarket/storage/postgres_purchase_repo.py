"""PostgreSQL repository for Purchase aggregates."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.logging import get_logger
from blockmarket.models.block import BlockQuote
from blockmarket.models.purchase import LineItem, Purchase, PurchaseStatus
from blockmarket.storage.db_models import BlockTable, LineItemTable, PurchaseTable
from blockmarket.storage.postgres_catalog_repo import block_to_quote

logger = get_logger(__name__)

# Columns the conditional status update may set alongside the status
_TRANSITION_FIELDS = frozenset(
    {"paid_at", "external_payment_reference", "stripe_charge_id"}
)
_INFORMATIONAL_FIELDS = frozenset({"checkout_session_id", "stripe_fee_amount"})


class PostgresPurchaseRepository:
    """Purchase repository using PostgreSQL.

    Never commits: the caller's session scope is the transaction.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[Purchase]:
        """
        Retrieve purchase with its line items.

        Args:
            id: Purchase id
            for_update: Take a row lock held until the session ends

        Returns:
            Purchase or None
        """
        stmt = (
            select(PurchaseTable)
            .where(PurchaseTable.id == id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        db_purchase = result.scalar_one_or_none()

        if not db_purchase:
            return None

        return self._to_domain_model(db_purchase)

    async def get_with_blocks(
        self, id: UUID
    ) -> Optional[tuple[Purchase, dict[UUID, BlockQuote]]]:
        """Retrieve purchase plus the current catalog row (and creator) of each line item."""
        purchase = await self.get_by_id(id)
        if purchase is None:
            return None

        stmt = select(BlockTable).where(BlockTable.id.in_(purchase.block_ids))
        result = await self.session.execute(stmt)
        blocks = {db_block.id: block_to_quote(db_block) for db_block in result.scalars().unique()}
        return purchase, blocks

    async def create(self, entity: Purchase) -> Purchase:
        """Insert a purchase and its line items."""
        db_purchase = PurchaseTable(
            id=entity.id,
            buyer_id=entity.buyer_id,
            status=entity.status,
            currency=entity.currency,
            subtotal_amount=entity.subtotal_amount,
            platform_fee_amount=entity.platform_fee_amount,
            stripe_fee_amount=entity.stripe_fee_amount,
            total_amount=entity.total_amount,
            external_payment_reference=entity.external_payment_reference,
            checkout_session_id=entity.checkout_session_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            line_items=[
                LineItemTable(
                    id=item.id,
                    block_id=item.block_id,
                    position=position,
                    unit_price=item.unit_price,
                    license_type=item.license_type,
                    quantity=item.quantity,
                )
                for position, item in enumerate(entity.line_items)
            ],
        )

        self.session.add(db_purchase)
        await self.session.flush()

        logger.info(
            "purchase_created",
            purchase_id=str(db_purchase.id),
            buyer_id=entity.buyer_id,
            line_items=len(entity.line_items),
        )

        return entity

    async def transition_status(
        self,
        id: UUID,
        expected: PurchaseStatus,
        target: PurchaseStatus,
        **fields: Any,
    ) -> bool:
        """
        Atomically move a purchase from ``expected`` to ``target``.

        Runs ``UPDATE ... WHERE id = :id AND status = :expected``. Under
        concurrent writers only one update matches; the others block on the
        row lock and then match zero rows.

        Returns:
            True if this call performed the transition
        """
        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        stmt = (
            update(PurchaseTable)
            .where(PurchaseTable.id == id, PurchaseTable.status == expected)
            .values(status=target, updated_at=datetime.utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        transitioned = result.rowcount == 1

        logger.info(
            "purchase_status_transition",
            purchase_id=str(id),
            expected=expected.value,
            target=target.value,
            transitioned=transitioned,
        )

        return transitioned

    async def update_informational(self, id: UUID, **fields: Any) -> bool:
        """Set fields that never affect the state machine (checkout session, Stripe fee)."""
        unknown = set(fields) - _INFORMATIONAL_FIELDS
        if unknown:
            raise ValueError(f"Unsupported informational fields: {sorted(unknown)}")

        stmt = (
            update(PurchaseTable)
            .where(PurchaseTable.id == id)
            .values(updated_at=datetime.utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_by_buyer(self, buyer_id: str) -> list[Purchase]:
        """Get all purchases for a buyer, newest first."""
        stmt = (
            select(PurchaseTable)
            .where(PurchaseTable.buyer_id == buyer_id)
            .order_by(PurchaseTable.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._to_domain_model(db_purchase) for db_purchase in result.scalars().unique()]

    def _to_domain_model(self, db_purchase: PurchaseTable) -> Purchase:
        """Convert database model to domain model."""
        line_items = [
            LineItem(
                id=item.id,
                block_id=item.block_id,
                unit_price=item.unit_price,
                license_type=item.license_type,
                quantity=item.quantity,
            )
            for item in db_purchase.line_items
        ]

        return Purchase(
            id=db_purchase.id,
            buyer_id=db_purchase.buyer_id,
            status=db_purchase.status,
            currency=db_purchase.currency,
            line_items=line_items,
            subtotal_amount=db_purchase.subtotal_amount,
            platform_fee_amount=db_purchase.platform_fee_amount,
            stripe_fee_amount=db_purchase.stripe_fee_amount,
            total_amount=db_purchase.total_amount,
            external_payment_reference=db_purchase.external_payment_reference,
            stripe_charge_id=db_purchase.stripe_charge_id,
            checkout_session_id=db_purchase.checkout_session_id,
            paid_at=db_purchase.paid_at,
            created_at=db_purchase.created_at,
            updated_at=db_purchase.updated_at,
        )
