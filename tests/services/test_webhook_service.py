"""Tests for WebhookService: verification, dispatch, idempotent deletion."""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
from sqlalchemy import select

from coursehub.db.models.subscription import STATUS_CANCEL_PENDING, Subscription
from coursehub.db.models.user import User
from coursehub.services.subscription_service import SubscriptionService
from coursehub.services.webhook_service import WebhookOutcome, WebhookService

pytestmark = pytest.mark.unit

_SECRET = "whsec_unit_test_secret"


def _signed(event: dict, secret: str = _SECRET) -> tuple[bytes, str]:
    """Payload and a valid Stripe-Signature header for ``event``."""
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return payload.encode(), f"t={timestamp},v1={signature}"


def _deleted_event(subscription_id: str, customer_id: str, event_id: str = "evt_deleted_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": subscription_id, "object": "subscription", "customer": customer_id}},
    }


@pytest.fixture
def service(session_factory):
    return WebhookService(session_factory, webhook_secret=_SECRET)


async def _state(session_factory, user_id: str):
    async with session_factory() as session:
        user = await session.get(User, user_id)
        rows = (await session.execute(select(Subscription).where(Subscription.user_id == user_id))).scalars().all()
        return user, list(rows)


async def test_deleted_event_removes_row_and_clears_flag(service, session_factory, make_user, make_subscription):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42", status=STATUS_CANCEL_PENDING)

    payload, sig = _signed(_deleted_event("sub_42", "cus_42"))
    outcome = await service.process(payload, sig)

    assert outcome is WebhookOutcome.PROCESSED
    refreshed, rows = await _state(session_factory, user.id)
    assert rows == []
    assert refreshed.subscriptions is False


async def test_redelivery_is_a_noop(service, session_factory, make_user, make_subscription):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42")
    payload, sig = _signed(_deleted_event("sub_42", "cus_42"))

    first = await service.process(payload, sig)
    second = await service.process(payload, sig)

    assert first is second is WebhookOutcome.PROCESSED
    refreshed, rows = await _state(session_factory, user.id)
    assert rows == []
    assert refreshed.subscriptions is False


async def test_deleted_event_leaves_other_users_alone(service, session_factory, make_user, make_subscription):
    target = await make_user(email="a@example.com", customer_id="cus_a")
    bystander = await make_user(email="b@example.com", customer_id="cus_b")
    await make_subscription(target, subscription_id="sub_a")
    await make_subscription(bystander, subscription_id="sub_b")

    payload, sig = _signed(_deleted_event("sub_a", "cus_a"))
    await service.process(payload, sig)

    other, rows = await _state(session_factory, bystander.id)
    assert [r.subscription_id for r in rows] == ["sub_b"]
    assert other.subscriptions is True


async def test_wrong_secret_is_rejected_without_writes(service, session_factory, make_user, make_subscription):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42")

    payload, sig = _signed(_deleted_event("sub_42", "cus_42"), secret="whsec_wrong_secret")
    outcome = await service.process(payload, sig)

    assert outcome is WebhookOutcome.REJECTED
    refreshed, rows = await _state(session_factory, user.id)
    assert len(rows) == 1
    assert refreshed.subscriptions is True


async def test_tampered_payload_is_rejected(service, session_factory, make_user, make_subscription):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42")

    payload, sig = _signed(_deleted_event("sub_other", "cus_other"))
    tampered = payload.replace(b"sub_other", b"sub_42").replace(b"cus_other", b"cus_42")

    assert await service.process(tampered, sig) is WebhookOutcome.REJECTED
    _, rows = await _state(session_factory, user.id)
    assert len(rows) == 1


async def test_missing_signature_is_rejected(service):
    payload, _ = _signed(_deleted_event("sub_1", "cus_1"))
    assert await service.process(payload, None) is WebhookOutcome.REJECTED


async def test_missing_secret_fails_closed(session_factory):
    service = WebhookService(session_factory, webhook_secret="")
    payload, sig = _signed(_deleted_event("sub_1", "cus_1"))
    assert await service.process(payload, sig) is WebhookOutcome.REJECTED


async def test_other_event_types_are_ignored(service, session_factory, make_user, make_subscription):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42")

    event = {
        "id": "evt_failed",
        "object": "event",
        "type": "invoice.payment_failed",
        "data": {"object": {"id": "in_1", "object": "invoice", "customer": "cus_42"}},
    }
    payload, sig = _signed(event)

    assert await service.process(payload, sig) is WebhookOutcome.IGNORED
    refreshed, rows = await _state(session_factory, user.id)
    assert len(rows) == 1
    assert refreshed.subscriptions is True


async def test_processing_errors_are_swallowed(service):
    payload, sig = _signed(_deleted_event("sub_1", "cus_1"))

    with patch.object(service, "_handle_subscription_deleted", side_effect=RuntimeError("db down")):
        outcome = await service.process(payload, sig)

    assert outcome is WebhookOutcome.FAILED


async def test_event_objects_without_dict_methods_are_applied(
    service, session_factory, make_user, make_subscription, keyed_obj
):
    user = await make_user(customer_id="cus_42")
    await make_subscription(user, subscription_id="sub_42")
    payload, sig = _signed(_deleted_event("sub_42", "cus_42"))

    with patch("stripe.Webhook.construct_event", return_value=keyed_obj(_deleted_event("sub_42", "cus_42"))):
        outcome = await service.process(payload, sig)

    assert outcome is WebhookOutcome.PROCESSED
    refreshed, rows = await _state(session_factory, user.id)
    assert rows == []
    assert refreshed.subscriptions is False


async def test_replaced_subscription_deletion_keeps_flag(
    service, session_factory, gateway, billing_lock, make_user, make_subscription, remote_subscription
):
    user = await make_user(customer_id="cus_1")
    await make_subscription(user, subscription_id="sub_old")
    gateway.create_subscription.return_value = remote_subscription("sub_new")
    await SubscriptionService(gateway, session_factory, billing_lock).update_subscription(
        user.id, "pm_2", "price_pro", "sub_old"
    )

    # Stripe reports the old subscription's end after the replacement exists
    payload, sig = _signed(_deleted_event("sub_old", "cus_1"))
    outcome = await service.process(payload, sig)

    assert outcome is WebhookOutcome.PROCESSED
    refreshed, rows = await _state(session_factory, user.id)
    assert [r.subscription_id for r in rows] == ["sub_new"]
    assert refreshed.subscriptions is True

    # Deleting the last row clears it
    payload, sig = _signed(_deleted_event("sub_new", "cus_1", event_id="evt_deleted_2"))
    await service.process(payload, sig)

    refreshed, rows = await _state(session_factory, user.id)
    assert rows == []
    assert refreshed.subscriptions is False
