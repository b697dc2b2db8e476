from __future__ import annotations

import asyncio

import pytest

from mealpass_api.models import MealTransactionStatus
from mealpass_api.services.scanning import RedemptionReason, RedemptionStatus, ScanMetadata
from scan_support import MutableClock, ScanHarness, issue_qr, load_subscription, load_transactions, seed_customer


@pytest.mark.asyncio
async def test_concurrent_scans_consume_last_meal_once(file_session_factory) -> None:
    harness = ScanHarness(file_session_factory, MutableClock())
    seeded = await seed_customer(file_session_factory, breakfast=0, lunch=1, dinner=0)
    credential = issue_qr(seeded)

    results = await asyncio.gather(
        *[
            harness.redeem(credential, f"gate-{index}", ScanMetadata(client_id=f"device-{index}"))
            for index in range(6)
        ]
    )

    successes = [result for result in results if result.status is RedemptionStatus.SUCCESS]
    assert len(successes) == 1
    assert successes[0].balance_remaining == 0
    for result in results:
        if result.status is not RedemptionStatus.SUCCESS:
            assert result.reason in {
                RedemptionReason.DUPLICATE_SCAN,
                RedemptionReason.NO_MEALS_REMAINING,
                RedemptionReason.NO_ACTIVE_SUBSCRIPTION,
            }

    subscription = await load_subscription(file_session_factory, seeded.subscription_id)
    assert subscription.lunch_remaining == 0
    assert subscription.meals_remaining == 0

    transactions = await load_transactions(file_session_factory, seeded.customer_id)
    assert len(transactions) == 6
    assert [row.status for row in transactions].count(MealTransactionStatus.SUCCESS) == 1


@pytest.mark.asyncio
async def test_concurrent_retries_of_one_scan_share_a_transaction(file_session_factory) -> None:
    harness = ScanHarness(file_session_factory, MutableClock())
    seeded = await seed_customer(file_session_factory)
    credential = issue_qr(seeded)
    metadata = ScanMetadata(client_id="flaky-network-retry")

    results = await asyncio.gather(*[harness.redeem(credential, "gate-1", metadata) for _ in range(4)])

    assert {result.status for result in results} == {RedemptionStatus.SUCCESS}
    assert len({result.transaction_id for result in results}) == 1
    assert sum(1 for result in results if not result.idempotent) == 1
    assert (await load_subscription(file_session_factory, seeded.subscription_id)).lunch_remaining == 9


@pytest.mark.asyncio
async def test_concurrent_scans_of_one_card_debit_a_meal_once(file_session_factory) -> None:
    harness = ScanHarness(file_session_factory, MutableClock())
    seeded = await seed_customer(file_session_factory, lunch=5)
    credential = issue_qr(seeded)

    results = await asyncio.gather(
        *[
            harness.redeem(credential, f"gate-{index}", ScanMetadata(client_id=f"device-{index}"))
            for index in range(3)
        ]
    )

    [winner] = [result for result in results if result.status is RedemptionStatus.SUCCESS]
    losers = [result for result in results if result is not winner]
    assert [result.reason for result in losers] == [RedemptionReason.DUPLICATE_SCAN] * 2
    assert {result.duplicate_of_transaction_id for result in losers} == {winner.transaction_id}

    subscription = await load_subscription(file_session_factory, seeded.subscription_id)
    assert subscription.lunch_remaining == 4
    assert subscription.meals_remaining == 24

    transactions = await load_transactions(file_session_factory, seeded.customer_id)
    assert sorted(row.status.value for row in transactions) == ["duplicate", "duplicate", "success"]
