"""Fixtures for tests that run the SQL repositories against SQLite."""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from blockmarket.config.settings import Settings
from blockmarket.models.block import BlockStatus, StripeAccountStatus
from blockmarket.storage.database import Database
from blockmarket.storage.db_models import BlockTable, CreatorTable


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'blockmarket.db'}",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_test_secret",
    )


@pytest.fixture
async def database(settings):
    """Connected database with a fresh schema."""
    db = Database(settings)
    await db.connect()
    await db.create_tables()
    yield db
    await db.disconnect()


async def _insert_creator(
    database: Database,
    status: StripeAccountStatus = StripeAccountStatus.ENABLED,
    account_id: Optional[str] = "auto",
) -> CreatorTable:
    creator_id = uuid4()
    if account_id == "auto":
        account_id = f"acct_{creator_id.hex[:12]}"
    creator = CreatorTable(
        id=creator_id,
        display_name=f"Creator {creator_id.hex[:6]}",
        stripe_account_id=account_id,
        stripe_account_status=status,
    )
    async with database.session() as session:
        session.add(creator)
    return creator


async def _insert_block(
    database: Database,
    price: str,
    creator: Optional[CreatorTable] = None,
    status: BlockStatus = BlockStatus.PUBLISHED,
    currency: str = "USD",
    title: Optional[str] = None,
) -> UUID:
    """Insert a block (and a payout-ready creator unless one is given)."""
    if creator is None:
        creator = await _insert_creator(database)
    block_id = uuid4()
    async with database.session() as session:
        session.add(
            BlockTable(
                id=block_id,
                creator_id=creator.id,
                title=title or f"Block {block_id.hex[:6]}",
                slug=f"block-{block_id.hex}",
                price=Decimal(price),
                currency=currency,
                platform_fee_bps=1500,
                status=status,
                sold_count=0,
            )
        )
    return block_id


@pytest.fixture
def seed_creator(database):
    """``await seed_creator(status, account_id)`` inserts a creator."""

    async def _seed(status=StripeAccountStatus.ENABLED, account_id="auto") -> CreatorTable:
        return await _insert_creator(database, status, account_id)

    return _seed


@pytest.fixture
def seed_block(database):
    """``await seed_block(price, ...)`` inserts a block and returns its id."""

    async def _seed(price: str, **kwargs) -> UUID:
        return await _insert_block(database, price, **kwargs)

    return _seed
