"""ReconciliationService: repairs drift between local subscription rows and Stripe.

Partial failures (a lost webhook, a local write failing after a Stripe call)
leave the local mirror stale. This job diffs every local row against
Stripe's subscription list and:
  - deletes rows whose remote subscription is gone or terminally ended
  - recomputes every user's ``subscriptions`` flag from row existence

It never creates or cancels anything at Stripe. A Redis lock keeps it
single-flight across instances.
"""

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.exceptions import CourseHubError
from coursehub.core.locking import RECONCILE_LOCK_NAME, BillingLock
from coursehub.db.models.subscription import Subscription
from coursehub.db.models.user import User
from coursehub.integrations.stripe_gateway import StripeGateway
from coursehub.schemas.billing import ReconcileReport

logger = structlog.get_logger(__name__)

# Remote statuses after which Stripe will never bill again
TERMINAL_STATUSES = frozenset({"canceled", "incomplete_expired"})

_PAGE_SIZE = 100


class ReconciliationService:
    def __init__(
        self,
        gateway: StripeGateway,
        session_factory: async_sessionmaker[AsyncSession],
        lock: BillingLock,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.lock = lock

    async def reconcile(self) -> ReconcileReport:
        async with self.lock.hold(RECONCILE_LOCK_NAME) as acquired:
            if not acquired:
                logger.info("reconcile_skipped_lock_busy")
                return ReconcileReport(skipped=True)

            # Rows created after the listing starts are not in it and must be left alone
            listed_at = datetime.now(timezone.utc)
            remote_statuses = await self._remote_statuses()

            async with self.session_factory() as session:
                result = await session.execute(select(Subscription).where(Subscription.created_at < listed_at))
                rows = result.scalars().all()

                stale = [
                    row.subscription_id
                    for row in rows
                    if remote_statuses.get(row.subscription_id, "canceled") in TERMINAL_STATUSES
                ]
                if stale:
                    await session.execute(
                        delete(Subscription)
                        .where(Subscription.subscription_id.in_(stale))
                        .execution_options(synchronize_session=False)
                    )

                subscribed_users = select(Subscription.user_id)
                cleared = await session.execute(
                    update(User)
                    .where(User.subscriptions.is_(True), User.id.not_in(subscribed_users))
                    .values(subscriptions=False)
                    .execution_options(synchronize_session=False)
                )
                restored = await session.execute(
                    update(User)
                    .where(User.subscriptions.is_(False), User.id.in_(subscribed_users))
                    .values(subscriptions=True)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

        report = ReconcileReport(
            checked=len(rows),
            removed=len(stale),
            flags_fixed=cleared.rowcount + restored.rowcount,
        )
        logger.info("reconcile_completed", **report.model_dump())
        return report

    async def _remote_statuses(self) -> dict[str, str]:
        """Map of every Stripe subscription id to its status."""
        statuses: dict[str, str] = {}
        starting_after: str | None = None

        while True:
            page = await self.gateway.list_subscriptions(_PAGE_SIZE, starting_after)
            for sub in page.data:
                statuses[sub["id"]] = sub["status"]

            if not page.has_more or not page.data:
                break
            starting_after = page.data[-1]["id"]

        return statuses


async def run_periodic_reconciliation(service: ReconciliationService, interval_seconds: int) -> None:
    """Reconcile every ``interval_seconds`` until cancelled.

    Intended to run as ``asyncio.create_task(...)`` from the app lifespan.
    Failures are logged and the loop keeps going.
    """
    logger.info("reconciler_started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await service.reconcile()
        except CourseHubError as exc:
            logger.warning("reconcile_failed", error=exc.message)
        except Exception as exc:
            logger.error("reconcile_crashed", error=str(exc), error_type=type(exc).__name__, exc_info=True)
