"""Pytest configuration and shared fixtures.

The in-memory repositories mirror the behavior the services rely on from
the SQL repositories: conditional status updates, the unique
(purchase, block) license constraint and atomic sold-count increments.
"""

import asyncio
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping, Optional
from uuid import UUID, uuid4

import pytest

from blockmarket.models.block import BlockQuote, CreatorAccount, StripeAccountStatus
from blockmarket.models.license import DeliveryStatus, License, LicenseStatus
from blockmarket.models.payout import Payout, TransferRecord
from blockmarket.models.purchase import Purchase, PurchaseStatus
from blockmarket.services.fulfillment import FulfillmentService
from blockmarket.services.license_minter import LicenseMinter
from blockmarket.services.payout_aggregator import PayoutAggregator
from blockmarket.services.pricing import FeePolicy
from blockmarket.services.purchase_ledger import PurchaseLedger


class InMemoryMarketplace:
    """Shared state behind the in-memory repositories."""

    def __init__(self):
        self.blocks: dict[UUID, BlockQuote] = {}
        self.unpublished: set[UUID] = set()
        self.sold_counts: dict[UUID, int] = defaultdict(int)
        self.purchases: dict[UUID, Purchase] = {}
        self.licenses: list[License] = []
        self.payouts: list[Payout] = []
        self.paid_transitions = 0
        self._status_lock = asyncio.Lock()

    def add_creator(
        self,
        status: StripeAccountStatus = StripeAccountStatus.ENABLED,
        account_id: Optional[str] = "auto",
    ) -> CreatorAccount:
        creator_id = uuid4()
        if account_id == "auto":
            account_id = f"acct_{creator_id.hex[:12]}"
        return CreatorAccount(
            id=creator_id,
            stripe_account_id=account_id,
            stripe_account_status=status,
        )

    def add_block(
        self,
        price: str,
        creator: Optional[CreatorAccount] = None,
        currency: str = "USD",
        platform_fee_bps: int = 1500,
        published: bool = True,
    ) -> BlockQuote:
        block = BlockQuote(
            id=uuid4(),
            title=f"Block {len(self.blocks) + 1}",
            price=Decimal(price),
            currency=currency,
            platform_fee_bps=platform_fee_bps,
            creator=creator or self.add_creator(),
        )
        self.blocks[block.id] = block
        if not published:
            self.unpublished.add(block.id)
        return block

    def licenses_for(self, purchase_id: UUID) -> list[License]:
        return [lic for lic in self.licenses if lic.purchase_id == purchase_id]


class InMemoryCatalogRepository:
    def __init__(self, market: InMemoryMarketplace):
        self.market = market

    async def get_blocks_by_ids(
        self, ids: Iterable[UUID], purchasable_only: bool = True
    ) -> list[BlockQuote]:
        await asyncio.sleep(0)
        return [
            self.market.blocks[block_id]
            for block_id in ids
            if block_id in self.market.blocks
            and not (purchasable_only and block_id in self.market.unpublished)
        ]

    async def increment_sold_count(self, block_id: UUID, by: int = 1) -> bool:
        await asyncio.sleep(0)
        if block_id not in self.market.blocks:
            return False
        self.market.sold_counts[block_id] += by
        return True


class InMemoryPurchaseRepository:
    def __init__(self, market: InMemoryMarketplace):
        self.market = market

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[Purchase]:
        await asyncio.sleep(0)
        purchase = self.market.purchases.get(id)
        return purchase.model_copy(deep=True) if purchase else None

    async def get_with_blocks(self, id: UUID):
        purchase = await self.get_by_id(id)
        if purchase is None:
            return None
        blocks = {
            block_id: self.market.blocks[block_id]
            for block_id in purchase.block_ids
            if block_id in self.market.blocks
        }
        return purchase, blocks

    async def create(self, entity: Purchase) -> Purchase:
        self.market.purchases[entity.id] = entity.model_copy(deep=True)
        return entity

    async def transition_status(self, id, expected, target, **fields) -> bool:
        await asyncio.sleep(0)
        async with self.market._status_lock:
            current = self.market.purchases.get(id)
            if current is None or current.status != expected:
                return False
            self.market.purchases[id] = current.model_copy(update={"status": target, **fields})
            if target == PurchaseStatus.PAID:
                self.market.paid_transitions += 1
            return True

    async def update_informational(self, id: UUID, **fields) -> bool:
        current = self.market.purchases.get(id)
        if current is None:
            return False
        self.market.purchases[id] = current.model_copy(update=fields)
        return True


class InMemoryLicenseRepository:
    def __init__(self, market: InMemoryMarketplace):
        self.market = market

    async def create_many(self, licenses: list[License]) -> list[License]:
        await asyncio.sleep(0)
        existing = {(lic.purchase_id, lic.block_id) for lic in self.market.licenses}
        for lic in licenses:
            if (lic.purchase_id, lic.block_id) in existing:
                raise ValueError("duplicate license for purchase and block")
        self.market.licenses.extend(licenses)
        return licenses

    async def get_by_purchase(self, purchase_id: UUID) -> list[License]:
        return self.market.licenses_for(purchase_id)

    async def revoke_for_purchase(self, purchase_id: UUID) -> int:
        revoked = 0
        for index, lic in enumerate(self.market.licenses):
            if lic.purchase_id == purchase_id and lic.status == LicenseStatus.ACTIVE:
                self.market.licenses[index] = lic.model_copy(
                    update={
                        "status": LicenseStatus.REVOKED,
                        "delivery_status": DeliveryStatus.REVOKED,
                    }
                )
                revoked += 1
        return revoked


class InMemoryPayoutRepository:
    def __init__(self, market: InMemoryMarketplace):
        self.market = market

    async def create(self, entity: Payout) -> Payout:
        if await self.get_by_transfer_reference(entity.external_transfer_reference):
            raise ValueError("duplicate transfer reference")
        self.market.payouts.append(entity)
        return entity

    async def get_by_transfer_reference(self, reference: str) -> Optional[Payout]:
        return next(
            (p for p in self.market.payouts if p.external_transfer_reference == reference),
            None,
        )

    async def list_by_purchase(self, purchase_id: UUID) -> list[Payout]:
        return [p for p in self.market.payouts if p.purchase_id == purchase_id]


class FakeTransferGateway:
    """Transfer gateway that keeps transfers in memory, grouped by key."""

    def __init__(self):
        self.transfers: list[tuple[str, TransferRecord, dict]] = []
        self.fail_for_destinations: set[str] = set()
        self.create_calls = 0

    async def create_transfer(
        self,
        amount_minor: int,
        currency: str,
        destination: str,
        group_key: str,
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> TransferRecord:
        self.create_calls += 1
        if destination in self.fail_for_destinations:
            raise ConnectionError(f"timeout creating transfer to {destination}")
        record = TransferRecord(
            id=f"tr_{uuid4().hex[:16]}",
            amount=amount_minor,
            currency=currency.upper(),
            destination=destination,
        )
        self.transfers.append(
            (group_key, record, {"metadata": dict(metadata), "idempotency_key": idempotency_key})
        )
        return record

    async def list_transfers_by_group(self, group_key: str) -> list[TransferRecord]:
        return [record for key, record, _ in self.transfers if key == group_key]


@pytest.fixture
def market():
    """Empty in-memory marketplace."""
    return InMemoryMarketplace()


@pytest.fixture
def catalog_repo(market):
    return InMemoryCatalogRepository(market)


@pytest.fixture
def purchase_repo(market):
    return InMemoryPurchaseRepository(market)


@pytest.fixture
def license_repo(market):
    return InMemoryLicenseRepository(market)


@pytest.fixture
def payout_repo(market):
    return InMemoryPayoutRepository(market)


@pytest.fixture
def transfer_gateway():
    return FakeTransferGateway()


@pytest.fixture
def ledger(catalog_repo, purchase_repo, license_repo):
    """Purchase ledger over in-memory repositories with the default 15% fee."""
    return PurchaseLedger(catalog_repo, purchase_repo, license_repo, FeePolicy())


@pytest.fixture
def fulfillment(ledger, license_repo, catalog_repo):
    return FulfillmentService(ledger, license_repo, catalog_repo, LicenseMinter())


@pytest.fixture
def payout_aggregator(purchase_repo, payout_repo, transfer_gateway):
    return PayoutAggregator(purchase_repo, payout_repo, transfer_gateway)
