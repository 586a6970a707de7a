"""Unit tests for creator payouts."""

from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from blockmarket.errors import (
    CreatorPayoutIneligible,
    InvalidPlatformFee,
    MissingPaymentReference,
    PayoutInProgress,
    PurchaseNotFound,
    PurchaseNotPaid,
)
from blockmarket.models.block import StripeAccountStatus
from blockmarket.models.purchase import LineItem, Purchase
from blockmarket.services.payout_aggregator import (
    compute_creator_payouts,
    payout_lock,
    transfer_idempotency_key,
)


async def _paid_purchase(ledger, fulfillment, blocks, reference="pi_123"):
    purchase = await ledger.create_pending_purchase("buyer_1", [block.id for block in blocks])
    result = await fulfillment.fulfill_purchase(purchase.id, reference)
    return result.purchase


@pytest.mark.asyncio
async def test_payout_transfers_each_creator(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    """Creators get list price times quantity; the checkout fee stays with the platform."""
    creator_x = market.add_creator()
    creator_y = market.add_creator()
    block_a = market.add_block("20.00", creator=creator_x)
    block_b = market.add_block("30.00", creator=creator_y)
    purchase = await _paid_purchase(ledger, fulfillment, [block_a, block_b])

    report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.transfer_count == 2
    amounts = {
        record.destination: record.amount for _, record, _ in transfer_gateway.transfers
    }
    assert amounts == {
        creator_x.stripe_account_id: 2000,
        creator_y.stripe_account_id: 3000,
    }
    assert all(group == str(purchase.id) for group, _, _ in transfer_gateway.transfers)
    assert sorted(p.amount for p in market.payouts) == [Decimal("20.00"), Decimal("30.00")]


@pytest.mark.asyncio
async def test_blocks_of_one_creator_are_grouped(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    creator = market.add_creator()
    blocks = [market.add_block(price, creator=creator) for price in ("1.50", "2.25", "10.00")]
    purchase = await _paid_purchase(ledger, fulfillment, blocks)

    report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.transfer_count == 1
    _, record, _ = transfer_gateway.transfers[0]
    assert record.amount == 1375
    assert record.destination == creator.stripe_account_id


@pytest.mark.asyncio
async def test_transfer_metadata_and_idempotency_key(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    creator = market.add_creator()
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("5.00", creator=creator)])

    await payout_aggregator.payout_creators_for_purchase(purchase.id)

    _, _, call = transfer_gateway.transfers[0]
    assert call["metadata"] == {
        "purchaseId": str(purchase.id),
        "creatorId": str(creator.id),
        "buyerId": "buyer_1",
    }
    assert call["idempotency_key"] == transfer_idempotency_key(purchase.id, creator.id, 500)


@pytest.mark.asyncio
async def test_rerun_issues_no_new_transfers(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    """A second run recognizes every creator as paid."""
    blocks = [market.add_block("20.00"), market.add_block("30.00")]
    purchase = await _paid_purchase(ledger, fulfillment, blocks)

    await payout_aggregator.payout_creators_for_purchase(purchase.id)
    second = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert second.transfer_count == 0
    assert len(second.skipped_creator_ids) == 2
    assert second.backfilled == []
    assert len(transfer_gateway.transfers) == 2
    assert len(market.payouts) == 2


@pytest.mark.asyncio
async def test_existing_transfer_without_record_is_backfilled(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    """Transfer made but its Payout row lost: record it, transfer nothing."""
    creator = market.add_creator()
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("12.00", creator=creator)])
    transfer = await transfer_gateway.create_transfer(
        amount_minor=1200,
        currency="USD",
        destination=creator.stripe_account_id,
        group_key=str(purchase.id),
        metadata={},
    )

    report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.transfer_count == 0
    assert [p.external_transfer_reference for p in report.backfilled] == [transfer.id]
    assert len(transfer_gateway.transfers) == 1
    assert market.payouts[0].amount == Decimal("12.00")
    assert market.payouts[0].period_start == purchase.paid_at


@pytest.mark.asyncio
async def test_different_amount_is_not_a_match(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    creator = market.add_creator()
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("12.00", creator=creator)])
    await transfer_gateway.create_transfer(
        amount_minor=999,
        currency="USD",
        destination=creator.stripe_account_id,
        group_key=str(purchase.id),
        metadata={},
    )

    report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.transfer_count == 1
    assert len(transfer_gateway.transfers) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,account_id",
    [
        (StripeAccountStatus.RESTRICTED, "auto"),
        (StripeAccountStatus.PENDING, "auto"),
        (StripeAccountStatus.ENABLED, None),
    ],
)
async def test_ineligible_creator_blocks_every_transfer(
    market, ledger, fulfillment, payout_aggregator, transfer_gateway, status, account_id
):
    """One ineligible creator: nobody is paid, nothing is recorded."""
    eligible = market.add_block("20.00")
    ineligible = market.add_block("30.00", creator=market.add_creator(status, account_id))
    purchase = await _paid_purchase(ledger, fulfillment, [eligible, ineligible])

    with pytest.raises(CreatorPayoutIneligible) as exc_info:
        await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert exc_info.value.creator_id == ineligible.creator.id
    assert transfer_gateway.create_calls == 0
    assert market.payouts == []


@pytest.mark.asyncio
async def test_retry_after_partial_failure_pays_only_the_rest(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    """X paid, Y timed out: the retry transfers to Y only."""
    creator_x = market.add_creator()
    creator_y = market.add_creator()
    purchase = await _paid_purchase(
        ledger,
        fulfillment,
        [market.add_block("20.00", creator=creator_x), market.add_block("30.00", creator=creator_y)],
    )
    transfer_gateway.fail_for_destinations.add(creator_y.stripe_account_id)

    with pytest.raises(ConnectionError):
        await payout_aggregator.payout_creators_for_purchase(purchase.id)
    assert len(transfer_gateway.transfers) == 1

    transfer_gateway.fail_for_destinations.clear()
    report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.skipped_creator_ids == [creator_x.id]
    assert [p.creator_id for p in report.transferred] == [creator_y.id]
    destinations = [record.destination for _, record, _ in transfer_gateway.transfers]
    assert destinations == [creator_x.stripe_account_id, creator_y.stripe_account_id]


@pytest.mark.asyncio
async def test_pending_purchase_is_not_paid_out(market, ledger, payout_aggregator, transfer_gateway):
    purchase = await ledger.create_pending_purchase("buyer_1", [market.add_block("5.00").id])

    with pytest.raises(PurchaseNotPaid):
        await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert transfer_gateway.create_calls == 0


@pytest.mark.asyncio
async def test_missing_payment_reference(market, ledger, fulfillment, payout_aggregator):
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("5.00")])
    market.purchases[purchase.id] = market.purchases[purchase.id].model_copy(
        update={"external_payment_reference": None}
    )

    with pytest.raises(MissingPaymentReference):
        await payout_aggregator.payout_creators_for_purchase(purchase.id)


@pytest.mark.asyncio
async def test_unknown_purchase(payout_aggregator):
    with pytest.raises(PurchaseNotFound):
        await payout_aggregator.payout_creators_for_purchase(uuid4())


@pytest.mark.asyncio
async def test_negative_platform_fee_is_rejected(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    purchase = await _paid_purchase(
        ledger, fulfillment, [market.add_block("20.00", platform_fee_bps=-100)]
    )

    with pytest.raises(InvalidPlatformFee):
        await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert transfer_gateway.create_calls == 0


@pytest.mark.asyncio
async def test_busy_lock_raises(market, ledger, fulfillment, payout_aggregator, transfer_gateway):
    """Another worker holds the payout lock."""

    @asynccontextmanager
    async def busy_lock(purchase_id):
        yield False

    lock_helper = MagicMock()
    lock_helper.acquire_payout_lock = busy_lock
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("5.00")])

    with pytest.raises(PayoutInProgress):
        async with payout_lock(lock_helper, purchase.id):
            await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert transfer_gateway.create_calls == 0


@pytest.mark.asyncio
async def test_lock_held_during_run(market, ledger, fulfillment, payout_aggregator):
    events = []

    @asynccontextmanager
    async def free_lock(purchase_id):
        events.append(("acquired", purchase_id))
        yield True
        events.append(("released", purchase_id))

    lock_helper = MagicMock()
    lock_helper.acquire_payout_lock = free_lock
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("5.00")])

    async with payout_lock(lock_helper, purchase.id):
        report = await payout_aggregator.payout_creators_for_purchase(purchase.id)
        events.append(("ran", purchase.id))

    assert [name for name, _ in events] == ["acquired", "ran", "released"]
    assert report.transfer_count == 1


@pytest.mark.asyncio
async def test_no_lock_helper_runs_unlocked(market, ledger, fulfillment, payout_aggregator):
    purchase = await _paid_purchase(ledger, fulfillment, [market.add_block("5.00")])

    async with payout_lock(None, purchase.id):
        report = await payout_aggregator.payout_creators_for_purchase(purchase.id)

    assert report.transfer_count == 1

def test_compute_creator_payouts_uses_quantity(market):
    """Net per creator is list price times quantity, summed per creator."""
    creator = market.add_creator()
    block_a = market.add_block("2.50", creator=creator)
    block_b = market.add_block("1.00", creator=creator)
    purchase = Purchase(
        buyer_id="buyer_1",
        line_items=[
            LineItem(block_id=block_a.id, unit_price=Decimal("2.50"), quantity=3),
            LineItem(block_id=block_b.id, unit_price=Decimal("1.00")),
        ],
        subtotal_amount=Decimal("8.50"),
        platform_fee_amount=Decimal("1.28"),
        total_amount=Decimal("9.78"),
    )

    payouts = compute_creator_payouts(purchase, market.blocks)

    assert len(payouts) == 1
    assert payouts[0].amount_minor == 850
    assert payouts[0].block_ids == [block_a.id, block_b.id]
