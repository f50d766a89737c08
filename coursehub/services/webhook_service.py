"""WebhookService: verifies Stripe webhook deliveries and applies them locally.

Never raises: every delivery ends in a ``WebhookOutcome`` so the endpoint
can always acknowledge Stripe and avoid redelivery storms.
"""

from enum import Enum

import stripe
import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.config import get_settings
from coursehub.core.logging import bind_billing_context
from coursehub.db.models.subscription import Subscription
from coursehub.db.models.user import User
from coursehub.integrations.stripe_gateway import stripe_field

logger = structlog.get_logger(__name__)

SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    REJECTED = "rejected"
    FAILED = "failed"


class WebhookService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], webhook_secret: str | None = None):
        self.session_factory = session_factory
        self.webhook_secret = webhook_secret if webhook_secret is not None else get_settings().stripe_webhook_secret

    async def process(self, payload: bytes, signature: str | None) -> WebhookOutcome:
        """Verify ``payload`` against ``signature`` and dispatch the event."""
        try:
            event = self._verify(payload, signature)
            if event is None:
                return WebhookOutcome.REJECTED

            event_type = event["type"]
            bind_billing_context(event_id=stripe_field(event, "id"))
            logger.info("stripe_webhook_received", event_type=event_type)

            if event_type == SUBSCRIPTION_DELETED:
                await self._handle_subscription_deleted(event["data"]["object"])
                return WebhookOutcome.PROCESSED

            return WebhookOutcome.IGNORED
        except Exception as exc:
            logger.error(
                "stripe_webhook_processing_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return WebhookOutcome.FAILED

    def _verify(self, payload: bytes, signature: str | None):
        if not self.webhook_secret:
            logger.error("stripe_webhook_secret_missing")
            return None
        if not signature:
            logger.warning("stripe_webhook_signature_missing")
            return None

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            logger.warning("stripe_webhook_invalid_payload")
        except stripe.SignatureVerificationError:
            logger.warning("stripe_webhook_invalid_signature")
        return None

    async def _handle_subscription_deleted(self, subscription) -> None:
        """Drop the mirrored row and clear the customer's subscription flag.

        Bulk statements: zero matches is fine, so redelivery is a no-op. The
        flag is only cleared for users left with no subscription row, since a
        replaced subscription's deletion arrives after its successor exists.
        """
        subscription_id = stripe_field(subscription, "id")
        customer_id = stripe_field(subscription, "customer")
        bind_billing_context(subscription_id=subscription_id, customer_id=customer_id)

        async with self.session_factory() as session:
            removed = 0
            cleared = 0
            if subscription_id:
                result = await session.execute(
                    delete(Subscription).where(Subscription.subscription_id == subscription_id)
                )
                removed = result.rowcount
            if customer_id:
                result = await session.execute(
                    update(User)
                    .where(User.customer_id == customer_id, User.id.not_in(select(Subscription.user_id)))
                    .values(subscriptions=False)
                    .execution_options(synchronize_session=False)
                )
                cleared = result.rowcount
            await session.commit()

        logger.info("subscription_deleted_applied", rows_removed=removed, flags_cleared=cleared)
