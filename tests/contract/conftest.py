"""Fixtures for API tests: the real app over SQLite with Stripe faked out."""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from blockmarket.api.app import create_app
from blockmarket.api.dependencies import AppServices
from blockmarket.config.settings import Settings
from blockmarket.models.block import BlockStatus, StripeAccountStatus
from blockmarket.security.permissions import PermissionChecker
from blockmarket.storage.database import Database
from blockmarket.storage.db_models import Base, BlockTable, CreatorTable, WebhookEventTable

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_ID = "admin_1"


class FakeCheckoutService:
    """Checkout sessions without calling Stripe."""

    def __init__(self):
        self.sessions: list[tuple[Any, dict]] = []
        self.latest_charge: Optional[str] = "ch_test_1"

    async def create_checkout_session(self, purchase, titles):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append((purchase, dict(titles)))
        return session_id, f"https://checkout.stripe.com/c/pay/{session_id}"

    async def retrieve_latest_charge(self, payment_intent_id: str) -> Optional[str]:
        return self.latest_charge


class CatalogSeeder:
    """Seeds catalog rows and reads back state with a synchronous engine."""

    def __init__(self, url: str):
        self.engine = create_engine(url)
        Base.metadata.create_all(self.engine)

    def creator(
        self,
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
        with Session(self.engine, expire_on_commit=False) as session, session.begin():
            session.add(creator)
        return creator

    def block(
        self,
        price: str,
        creator: Optional[CreatorTable] = None,
        status: BlockStatus = BlockStatus.PUBLISHED,
        currency: str = "USD",
        title: Optional[str] = None,
    ) -> UUID:
        creator = creator or self.creator()
        block_id = uuid4()
        with Session(self.engine) as session, session.begin():
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

    def sold_count(self, block_id: UUID) -> int:
        with Session(self.engine) as session:
            return session.execute(
                select(BlockTable.sold_count).where(BlockTable.id == block_id)
            ).scalar_one()

    def event_status(self, external_id: str) -> Optional[str]:
        with Session(self.engine) as session:
            status = session.execute(
                select(WebhookEventTable.status).where(
                    WebhookEventTable.external_id == external_id
                )
            ).scalar_one_or_none()
        return status.value if status else None


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        admin_user_ids_csv=ADMIN_ID,
    )


@pytest.fixture
def catalog(tmp_path, settings):
    seeder = CatalogSeeder(f"sqlite:///{tmp_path / 'api.db'}")
    yield seeder
    seeder.engine.dispose()


@pytest.fixture
def checkout_service():
    return FakeCheckoutService()


@pytest.fixture
def services(settings, checkout_service, transfer_gateway):
    return AppServices(
        settings=settings,
        database=Database(settings),
        checkout_service=checkout_service,
        transfer_gateway=transfer_gateway,
        permission_checker=PermissionChecker(admin_user_ids=settings.admin_user_ids),
    )


@pytest.fixture
def app(services, catalog):
    return create_app(services=services, create_tables=True)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def send_event(client):
    """POST a signed Stripe event to the webhook endpoint."""

    def _send(event: dict[str, Any], secret: str = WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/webhooks/stripe",
            content=payload,
            headers={
                "Content-Type": "application/json",
                "Stripe-Signature": stripe_signature(payload, secret),
            },
        )

    return _send


@pytest.fixture
def checkout(client):
    """Create a checkout through the API and return the response body."""

    def _checkout(block_ids, buyer_id: str = "buyer_1") -> dict[str, Any]:
        response = client.post(
            "/checkout",
            json={"blockIds": [str(block_id) for block_id in block_ids]},
            headers={"X-User-Id": buyer_id},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _checkout


def _event(event_type: str, obj: dict[str, Any], event_id: Optional[str]) -> dict[str, Any]:
    return {
        "id": event_id or f"evt_{uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


@pytest.fixture
def checkout_completed():
    """Build a ``checkout.session.completed`` event for a purchase."""

    def _build(
        purchase_id: str,
        event_id: Optional[str] = None,
        payment_intent: str = "pi_test_1",
        session_id: str = "cs_test_1",
    ) -> dict[str, Any]:
        return _event(
            "checkout.session.completed",
            {
                "id": session_id,
                "object": "checkout.session",
                "payment_intent": payment_intent,
                "payment_status": "paid",
                "metadata": {"purchaseId": str(purchase_id), "buyerId": "buyer_1"},
            },
            event_id,
        )

    return _build


@pytest.fixture
def payment_failed():
    """Build a payment failure event of the given type for a purchase."""

    def _build(
        purchase_id: Optional[str],
        event_type: str = "payment_intent.payment_failed",
        event_id: Optional[str] = None,
    ) -> dict[str, Any]:
        metadata = {"purchaseId": str(purchase_id)} if purchase_id else {}
        return _event(
            event_type,
            {"id": "pi_test_1", "object": "payment_intent", "metadata": metadata},
            event_id,
        )

    return _build
