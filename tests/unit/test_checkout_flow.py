"""Unit tests for checkout orchestration."""

from unittest.mock import AsyncMock

import pytest

from blockmarket.errors import EmptyCart
from blockmarket.models.purchase import LicenseType, PurchaseStatus
from blockmarket.services.checkout_flow import CheckoutFlowService


@pytest.fixture
def stripe_service():
    service = AsyncMock()
    service.create_checkout_session.return_value = ("cs_test_1", "https://checkout.stripe.com/c/cs_test_1")
    return service


@pytest.fixture
def checkout_flow(ledger, catalog_repo, stripe_service):
    return CheckoutFlowService(ledger, catalog_repo, stripe_service)


@pytest.mark.asyncio
async def test_create_checkout(market, checkout_flow, stripe_service):
    block = market.add_block("12.00")

    result = await checkout_flow.create_checkout("buyer_1", [block.id], LicenseType.TEAM)

    assert result.checkout_url == "https://checkout.stripe.com/c/cs_test_1"
    assert result.purchase.status == PurchaseStatus.PENDING
    assert result.purchase.checkout_session_id == "cs_test_1"
    assert market.purchases[result.purchase.id].checkout_session_id == "cs_test_1"
    purchase_arg, titles = stripe_service.create_checkout_session.call_args.args
    assert purchase_arg.id == result.purchase.id
    assert titles == {block.id: block.title}


@pytest.mark.asyncio
async def test_gateway_failure_propagates(market, checkout_flow, stripe_service):
    """The caller's unit of work rolls the pending purchase back."""
    stripe_service.create_checkout_session.side_effect = RuntimeError("stripe down")

    with pytest.raises(RuntimeError):
        await checkout_flow.create_checkout("buyer_1", [market.add_block("1.00").id])


@pytest.mark.asyncio
async def test_invalid_cart_never_reaches_gateway(checkout_flow, stripe_service):
    with pytest.raises(EmptyCart):
        await checkout_flow.create_checkout("buyer_1", [])

    stripe_service.create_checkout_session.assert_not_called()
