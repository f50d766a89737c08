"""Stripe gateway: thin async wrapper over the Stripe SDK.

Every call goes through ``_provider_call`` so SDK failures surface as
``RemoteProviderError`` with the operation name attached.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import stripe
import structlog

from coursehub.core.config import get_settings
from coursehub.core.exceptions import RemoteProviderError

logger = structlog.get_logger(__name__)


def configure_stripe() -> None:
    """Configure the stripe module with the secret key and retry policy."""
    settings = get_settings()
    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = settings.stripe_max_network_retries


@contextmanager
def _provider_call(operation: str) -> Iterator[None]:
    try:
        yield
    except stripe.CardError as exc:
        logger.warning("stripe_card_error", operation=operation, code=exc.code)
        raise RemoteProviderError(operation, exc.user_message or "Your card was declined", status_code=402) from exc
    except stripe.StripeError as exc:
        logger.error(
            "stripe_call_failed",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
            request_id=getattr(exc, "request_id", None),
        )
        raise RemoteProviderError(operation, f"Payment provider error during {operation}") from exc


class StripeGateway:
    """Product, price, customer, payment-method, subscription and invoice calls."""

    def __init__(self) -> None:
        configure_stripe()

    # ── Catalog ─────────────────────────────────────────────────────

    async def create_product(self, name: str, description: str | None) -> stripe.Product:
        with _provider_call("create_product"):
            params = {"name": name}
            if description:
                params["description"] = description
            return await stripe.Product.create_async(**params)

    async def create_price(self, product_id: str, unit_amount: int, currency: str, interval: str) -> stripe.Price:
        with _provider_call("create_price"):
            return await stripe.Price.create_async(
                product=product_id,
                unit_amount=unit_amount,
                currency=currency,
                recurring={"interval": interval},
            )

    async def update_product(self, product_id: str, name: str | None = None, active: bool | None = None) -> stripe.Product:
        params: dict = {}
        if name is not None:
            params["name"] = name
        if active is not None:
            params["active"] = active
        with _provider_call("update_product"):
            return await stripe.Product.modify_async(product_id, **params)

    # ── Customers ───────────────────────────────────────────────────

    async def create_customer(self, email: str, user_id: str) -> stripe.Customer:
        with _provider_call("create_customer"):
            return await stripe.Customer.create_async(email=email, metadata={"user_id": user_id})

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Attach a payment method and make it the invoice default."""
        with _provider_call("attach_payment_method"):
            await stripe.PaymentMethod.attach_async(payment_method_id, customer=customer_id)
        with _provider_call("set_default_payment_method"):
            await stripe.Customer.modify_async(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )

    # ── Subscriptions ───────────────────────────────────────────────

    async def create_subscription(self, customer_id: str, price_id: str) -> stripe.Subscription:
        """Create a subscription, expanding the invoice's payment intent for 3-D Secure."""
        with _provider_call("create_subscription"):
            return await stripe.Subscription.create_async(
                customer=customer_id,
                items=[{"price": price_id}],
                expand=["latest_invoice.payment_intent"],
            )

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        with _provider_call("cancel_subscription"):
            return await stripe.Subscription.cancel_async(subscription_id)

    async def list_subscriptions(self, limit: int, starting_after: str | None = None):
        params: dict = {"limit": limit, "status": "all"}
        if starting_after:
            params["starting_after"] = starting_after
        with _provider_call("list_subscriptions"):
            return await stripe.Subscription.list_async(**params)

    # ── Invoices ────────────────────────────────────────────────────

    async def list_invoices(self, limit: int, starting_after: str | None = None):
        params: dict = {"limit": limit}
        if starting_after:
            params["starting_after"] = starting_after
        with _provider_call("list_invoices"):
            return await stripe.Invoice.list_async(**params)


def stripe_field(obj, key: str, default=None):
    """Read ``key`` from a Stripe object or a plain dict.

    Only ``in`` and item access are used: current SDK objects are not dicts
    and have no ``.get``. Unexpanded references (plain id strings) and
    ``None`` yield ``default``.
    """
    if obj is None or isinstance(obj, str) or key not in obj:
        return default
    return obj[key]


def subscription_interval(subscription) -> str | None:
    """Billing interval of a subscription's (single) price."""
    interval = stripe_field(stripe_field(subscription, "plan"), "interval")
    if interval:
        return interval

    items = stripe_field(stripe_field(subscription, "items"), "data") or []
    if items:
        recurring = stripe_field(stripe_field(items[0], "price"), "recurring")
        return stripe_field(recurring, "interval")
    return None


def payment_intent_of(subscription) -> dict | None:
    """Status and client secret of the first invoice's payment intent, if expanded."""
    invoice = stripe_field(subscription, "latest_invoice")
    intent = stripe_field(invoice, "payment_intent")
    if intent is None or isinstance(intent, str):
        return None

    return {"status": stripe_field(intent, "status"), "client_secret": stripe_field(intent, "client_secret")}


_gateway: StripeGateway | None = None


def get_stripe_gateway() -> StripeGateway:
    """Get the singleton StripeGateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
