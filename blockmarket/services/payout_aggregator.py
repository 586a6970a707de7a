"""Creator payouts for a paid purchase.

A payout run is safe to repeat end to end. Transfers are tagged with the
purchase id as transfer group; on every run the existing transfers in that
group are listed first and a creator whose destination already received a
transfer of the same amount and currency is skipped. If such a transfer has
no local Payout row (the run crashed after the transfer but before commit),
the row is backfilled from the gateway's record.
"""

from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Mapping, Optional, Protocol
from uuid import UUID

from blockmarket.errors import (
    CreatorPayoutIneligible,
    InvalidPlatformFee,
    MissingPaymentReference,
    PayoutError,
    PayoutInProgress,
    PurchaseNotFound,
    PurchaseNotPaid,
)
from blockmarket.logging import get_logger
from blockmarket.logging.audit import AuditLogger
from blockmarket.models.block import BlockQuote
from blockmarket.models.payout import CreatorPayout, Payout, PayoutReport, TransferRecord
from blockmarket.models.purchase import Purchase, PurchaseStatus
from blockmarket.services.money import calc_fee_minor_units, from_minor_units, to_minor_units
from blockmarket.services.stripe_gateway import BUYER_ID_KEY, CREATOR_ID_KEY, PURCHASE_ID_KEY
from blockmarket.storage.postgres_payout_repo import PostgresPayoutRepository
from blockmarket.storage.postgres_purchase_repo import PostgresPurchaseRepository
from blockmarket.storage.redis_locks import RedisLockHelper

logger = get_logger(__name__)


class TransferGateway(Protocol):
    async def create_transfer(
        self,
        amount_minor: int,
        currency: str,
        destination: str,
        group_key: str,
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> TransferRecord: ...

    async def list_transfers_by_group(self, group_key: str) -> list[TransferRecord]: ...


def transfer_idempotency_key(purchase_id: UUID, creator_id: UUID, amount_minor: int) -> str:
    return f"payout-{purchase_id}-{creator_id}-{amount_minor}"


def compute_creator_payouts(
    purchase: Purchase, blocks: Mapping[UUID, BlockQuote]
) -> list[CreatorPayout]:
    """
    Net amount owed to each creator, in line item order of first appearance.

    Every creator is checked before anything is summed, so one ineligible
    creator rejects the whole purchase.

    Raises:
        CreatorPayoutIneligible: A creator is not ENABLED or has no account
        InvalidPlatformFee: A block's fee configuration yields a negative fee
    """
    for item in purchase.line_items:
        block = blocks.get(item.block_id)
        if block is None:
            raise PayoutError(f"Block {item.block_id} of purchase {purchase.id} not in catalog")
        creator = block.creator
        if not creator.can_receive_payouts:
            reason = (
                "no Stripe account connected"
                if not creator.stripe_account_id
                else f"Stripe account status is {creator.stripe_account_status.value}"
            )
            raise CreatorPayoutIneligible(creator.id, reason)

    by_creator: dict[UUID, CreatorPayout] = {}
    for item in purchase.line_items:
        block = blocks[item.block_id]
        price_minor = to_minor_units(block.price)

        # Creators receive the full list price; the platform fee was charged
        # on top of it at checkout.
        net_minor = price_minor * item.quantity

        fee_minor = calc_fee_minor_units(price_minor, block.platform_fee_bps)
        if fee_minor < 0:
            raise InvalidPlatformFee(block.id, fee_minor)

        payout = by_creator.get(block.creator.id)
        if payout is None:
            payout = by_creator[block.creator.id] = CreatorPayout(
                creator_id=block.creator.id,
                destination=block.creator.stripe_account_id,
                currency=purchase.currency,
            )
        payout.amount_minor += net_minor
        payout.block_ids.append(block.id)

    return list(by_creator.values())


@asynccontextmanager
async def payout_lock(
    lock_helper: Optional[RedisLockHelper], purchase_id: UUID
) -> AsyncGenerator[None, None]:
    """
    Serialize payout runs for one purchase across workers.

    The session that records the run's Payout rows must be opened and
    committed inside this block, otherwise the next holder cannot see them.

    Raises:
        PayoutInProgress: Another worker holds the lock
    """
    if lock_helper is None:
        yield
        return

    async with lock_helper.acquire_payout_lock(purchase_id) as acquired:
        if not acquired:
            logger.warning("payout_lock_busy", purchase_id=str(purchase_id))
            raise PayoutInProgress(purchase_id)
        yield


class PayoutAggregator:
    """Transfers each creator's share of a paid purchase.

    Runs inside the caller's session; callers serialize runs with
    :func:`payout_lock` around that session.
    """

    def __init__(
        self,
        purchase_repo: PostgresPurchaseRepository,
        payout_repo: PostgresPayoutRepository,
        transfer_gateway: TransferGateway,
    ):
        """
        Initialize payout aggregator.

        Args:
            purchase_repo: Loads the purchase with blocks and creators
            payout_repo: Local payout records
            transfer_gateway: Stripe Connect transfers
        """
        self.purchase_repo = purchase_repo
        self.payout_repo = payout_repo
        self.transfer_gateway = transfer_gateway

    async def payout_creators_for_purchase(self, purchase_id: UUID) -> PayoutReport:
        """
        Pay every creator of a purchase exactly once.

        Raises:
            PurchaseNotFound, PurchaseNotPaid, MissingPaymentReference
            CreatorPayoutIneligible, InvalidPlatformFee: Nothing transferred
        """
        loaded = await self.purchase_repo.get_with_blocks(purchase_id)
        if loaded is None:
            raise PurchaseNotFound(purchase_id)
        purchase, blocks = loaded

        if purchase.status != PurchaseStatus.PAID:
            raise PurchaseNotPaid(purchase_id, purchase.status.value)
        if not purchase.external_payment_reference:
            raise MissingPaymentReference(purchase_id)

        payouts = compute_creator_payouts(purchase, blocks)

        group_key = str(purchase.id)
        existing_by_destination: dict[str, list[TransferRecord]] = defaultdict(list)
        for transfer in await self.transfer_gateway.list_transfers_by_group(group_key):
            if transfer.destination:
                existing_by_destination[transfer.destination].append(transfer)

        report = PayoutReport(purchase_id=purchase.id)
        period = purchase.paid_at or purchase.created_at

        for payout in payouts:
            match = next(
                (
                    transfer
                    for transfer in existing_by_destination[payout.destination]
                    if transfer.amount == payout.amount_minor
                    and transfer.currency == payout.currency
                ),
                None,
            )

            if match is not None:
                backfilled = False
                if await self.payout_repo.get_by_transfer_reference(match.id) is None:
                    report.backfilled.append(
                        await self.payout_repo.create(
                            self._payout_record(purchase, payout, match, period)
                        )
                    )
                    backfilled = True
                report.skipped_creator_ids.append(payout.creator_id)
                AuditLogger.log_payout_skipped(
                    purchase.id, payout.creator_id, match.id, backfilled=backfilled
                )
                continue

            transfer = await self.transfer_gateway.create_transfer(
                amount_minor=payout.amount_minor,
                currency=payout.currency,
                destination=payout.destination,
                group_key=group_key,
                metadata={
                    PURCHASE_ID_KEY: str(purchase.id),
                    CREATOR_ID_KEY: str(payout.creator_id),
                    BUYER_ID_KEY: purchase.buyer_id,
                },
                idempotency_key=transfer_idempotency_key(
                    purchase.id, payout.creator_id, payout.amount_minor
                ),
            )
            record = await self.payout_repo.create(
                self._payout_record(purchase, payout, transfer, period)
            )
            report.transferred.append(record)

            AuditLogger.log_payout_transferred(
                purchase_id=purchase.id,
                creator_id=payout.creator_id,
                amount_minor=transfer.amount,
                currency=payout.currency,
                transfer_id=transfer.id,
            )

        logger.info(
            "payout_run_completed",
            purchase_id=str(purchase.id),
            transferred=report.transfer_count,
            skipped=len(report.skipped_creator_ids),
            backfilled=len(report.backfilled),
        )

        return report

    def _payout_record(
        self,
        purchase: Purchase,
        payout: CreatorPayout,
        transfer: TransferRecord,
        period: datetime,
    ) -> Payout:
        return Payout(
            creator_id=payout.creator_id,
            purchase_id=purchase.id,
            currency=payout.currency,
            amount=from_minor_units(transfer.amount),
            external_transfer_reference=transfer.id,
            period_start=period,
            period_end=period,
        )
