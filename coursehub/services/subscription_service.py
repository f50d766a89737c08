"""SubscriptionService: per-user subscription lifecycle against Stripe.

States per user::

    NONE --create--> ACTIVE --cancel--> CANCEL_PENDING --webhook--> NONE
                     ACTIVE --update--> ACTIVE (replaced)

Local NotFound/Conflict checks always run before the first Stripe call, so a
rejected request never creates a remote resource. Every mutation holds the
user's billing lock for its whole duration.
"""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.exceptions import ConflictError, NotFoundError, RemoteProviderError
from coursehub.core.locking import BillingLock, user_lock_name
from coursehub.core.logging import bind_billing_context
from coursehub.db.models.plan import Plan
from coursehub.db.models.subscription import STATUS_ACTIVE, STATUS_CANCEL_PENDING, Subscription
from coursehub.db.models.user import User
from coursehub.integrations.stripe_gateway import StripeGateway, payment_intent_of, subscription_interval
from coursehub.schemas.billing import PaymentIntentInfo, SubscriptionResponse, SubscriptionResult

logger = structlog.get_logger(__name__)


class SubscriptionService:
    def __init__(
        self,
        gateway: StripeGateway,
        session_factory: async_sessionmaker[AsyncSession],
        lock: BillingLock,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.lock = lock

    async def create_subscription(self, user_id: str, payment_method_id: str, price_id: str) -> SubscriptionResult:
        """Subscribe a user with no current subscription.

        Remote resources created before a later failure are not rolled back;
        the reconciliation job repairs the drift.

        Raises:
            NotFoundError: unknown user
            ConflictError: user already subscribed, plan inactive, or lock busy
            RemoteProviderError: any Stripe failure
        """
        async with self.lock.hold(user_lock_name(user_id)) as acquired:
            if not acquired:
                raise ConflictError("Another billing operation is in progress")

            async with self.session_factory() as session:
                user = await self._get_user(session, user_id)

                existing = await self._find_subscription(session, user_id)
                if existing is not None:
                    raise ConflictError("You already have a subscription")

                await self._ensure_price_selectable(session, price_id)

                customer_id = user.customer_id
                if not customer_id:
                    customer = await self.gateway.create_customer(user.email, user.id)
                    customer_id = customer.id
                    user.customer_id = customer_id
                    await session.commit()
                    logger.info("stripe_customer_created", user_id=user_id, customer_id=customer_id)

                await self.gateway.set_default_payment_method(customer_id, payment_method_id)
                remote = await self.gateway.create_subscription(customer_id, price_id)

                row = Subscription(
                    user_id=user_id,
                    subscription_id=remote.id,
                    price_id=price_id,
                    payment_method_id=payment_method_id,
                    plan_interval=subscription_interval(remote),
                    status=STATUS_ACTIVE,
                )
                session.add(row)
                user.subscriptions = True
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.warning(
                        "subscription_insert_conflict",
                        user_id=user_id,
                        orphaned_subscription_id=remote.id,
                    )
                    raise ConflictError("You already have a subscription")
                await session.refresh(row)

        logger.info("subscription_created", user_id=user_id, subscription_id=remote.id, price_id=price_id)
        return self._result(row, remote)

    async def update_subscription(
        self,
        user_id: str,
        payment_method_id: str,
        price_id: str,
        subscription_id: str,
    ) -> SubscriptionResult:
        """Replace the user's subscription with one on ``price_id``.

        Phase 1 creates the new remote subscription; if that fails the old
        subscription is left exactly as it was. Phase 2 cancels the old remote
        subscription best-effort and swaps the local row in one transaction.

        Raises:
            NotFoundError: unknown user or no matching subscription row
            ConflictError: subscription already cancelling, plan inactive, or lock busy
            RemoteProviderError: payment method or new subscription creation failed
        """
        bind_billing_context(subscription_id=subscription_id)
        async with self.lock.hold(user_lock_name(user_id)) as acquired:
            if not acquired:
                raise ConflictError("Another billing operation is in progress")

            async with self.session_factory() as session:
                user = await self._get_user(session, user_id)

                current = await self._find_subscription(session, user_id, subscription_id)
                if current is None:
                    raise NotFoundError("Subscription not found")
                if current.status == STATUS_CANCEL_PENDING:
                    raise ConflictError("Subscription is already being cancelled")

                await self._ensure_price_selectable(session, price_id)

                customer_id = user.customer_id
                if not customer_id:
                    raise NotFoundError("Billing customer not found")

                await self.gateway.set_default_payment_method(customer_id, payment_method_id)

                # Phase 1: a failure here propagates with the old subscription intact
                remote = await self.gateway.create_subscription(customer_id, price_id)

                # Phase 2
                try:
                    await self.gateway.cancel_subscription(subscription_id)
                except RemoteProviderError:
                    logger.warning(
                        "old_subscription_cancel_failed",
                        user_id=user_id,
                        subscription_id=subscription_id,
                        new_subscription_id=remote.id,
                    )

                await session.execute(delete(Subscription).where(Subscription.subscription_id == subscription_id))
                row = Subscription(
                    user_id=user_id,
                    subscription_id=remote.id,
                    price_id=price_id,
                    payment_method_id=payment_method_id,
                    plan_interval=subscription_interval(remote),
                    status=STATUS_ACTIVE,
                )
                session.add(row)
                user.subscriptions = True
                await session.commit()
                await session.refresh(row)

        logger.info(
            "subscription_replaced",
            user_id=user_id,
            old_subscription_id=subscription_id,
            subscription_id=remote.id,
        )
        return self._result(row, remote)

    async def cancel_subscription(self, user_id: str, subscription_id: str) -> Subscription:
        """Request cancellation at Stripe and mark the row ``cancel_pending``.

        The row is removed (and the user's flag cleared) when the
        ``customer.subscription.deleted`` webhook arrives.

        Raises:
            NotFoundError: unknown user or subscription not owned by the user
            ConflictError: lock busy
            RemoteProviderError: Stripe refused the cancellation (no local change)
        """
        bind_billing_context(subscription_id=subscription_id)
        async with self.lock.hold(user_lock_name(user_id)) as acquired:
            if not acquired:
                raise ConflictError("Another billing operation is in progress")

            async with self.session_factory() as session:
                await self._get_user(session, user_id)

                row = await self._find_subscription(session, user_id, subscription_id)
                if row is None:
                    raise NotFoundError("Subscription not found")
                if row.status == STATUS_CANCEL_PENDING:
                    return row

                await self.gateway.cancel_subscription(subscription_id)

                row.status = STATUS_CANCEL_PENDING
                await session.commit()
                await session.refresh(row)

        logger.info("subscription_cancel_requested", user_id=user_id, subscription_id=subscription_id)
        return row

    async def get_my_subscription(self, user_id: str) -> Subscription:
        async with self.session_factory() as session:
            row = await self._find_subscription(session, user_id)
            if row is None:
                raise NotFoundError("Subscription not found")
            return row

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_user(session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def _find_subscription(
        session: AsyncSession,
        user_id: str,
        subscription_id: str | None = None,
    ) -> Subscription | None:
        query = select(Subscription).where(Subscription.user_id == user_id)
        if subscription_id is not None:
            query = query.where(Subscription.subscription_id == subscription_id)
        result = await session.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _ensure_price_selectable(session: AsyncSession, price_id: str) -> None:
        """Refuse prices that belong to a deactivated plan."""
        result = await session.execute(select(Plan).where(Plan.price_id == price_id))
        plan = result.scalar_one_or_none()
        if plan is not None and not plan.active:
            raise ConflictError("This plan is no longer available")

    @staticmethod
    def _result(row: Subscription, remote) -> SubscriptionResult:
        intent = payment_intent_of(remote)
        return SubscriptionResult(
            subscription=SubscriptionResponse.model_validate(row),
            payment_intent=PaymentIntentInfo(**intent) if intent else None,
        )
