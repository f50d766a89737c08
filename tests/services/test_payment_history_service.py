"""Tests for the admin payments listing."""

import pytest

from coursehub.schemas.pagination import paginate
from coursehub.services.payment_history_service import PaymentHistoryService

pytestmark = pytest.mark.unit


async def test_pages_newest_first_with_owner(session_factory, make_user, make_subscription):
    created = []
    for i in range(5):
        user = await make_user(email=f"user{i}@example.com")
        created.append(await make_subscription(user, subscription_id=f"sub_{i}"))

    service = PaymentHistoryService(session_factory)
    first = await service.list_payments(paginate(1, 2))
    last = await service.list_payments(paginate(3, 2))

    assert first.total_count == 5
    assert first.total_pages == 3
    assert first.current_page == 1
    assert [p.id for p in first.payments] == [created[4].id, created[3].id]
    assert first.payments[0].user.email == "user4@example.com"
    assert [p.id for p in last.payments] == [created[0].id]


async def test_empty_listing(session_factory):
    result = await PaymentHistoryService(session_factory).list_payments(paginate())

    assert result.total_count == 0
    assert result.total_pages == 0
    assert result.payments == []
