"""Repository bundle bound to one session (one unit of work)."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.storage.postgres_catalog_repo import PostgresCatalogRepository
from blockmarket.storage.postgres_license_repo import PostgresLicenseRepository
from blockmarket.storage.postgres_payout_repo import PostgresPayoutRepository
from blockmarket.storage.postgres_purchase_repo import PostgresPurchaseRepository
from blockmarket.storage.postgres_webhook_event_repo import PostgresWebhookEventRepository


@dataclass
class Repositories:
    """All repositories sharing one session, so they commit or roll back together."""

    catalog: PostgresCatalogRepository
    purchases: PostgresPurchaseRepository
    licenses: PostgresLicenseRepository
    payouts: PostgresPayoutRepository
    webhook_events: PostgresWebhookEventRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "Repositories":
        return cls(
            catalog=PostgresCatalogRepository(session),
            purchases=PostgresPurchaseRepository(session),
            licenses=PostgresLicenseRepository(session),
            payouts=PostgresPayoutRepository(session),
            webhook_events=PostgresWebhookEventRepository(session),
        )
