"""PlanService: billing plan catalog mirrored 1:1 onto Stripe products/prices."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.exceptions import NotFoundError
from coursehub.db.models.plan import Plan
from coursehub.integrations.stripe_gateway import StripeGateway

logger = structlog.get_logger(__name__)


class PlanService:
    """Creates, edits and lists plans.

    Remote state is always written before local state. A failed remote call
    leaves the local catalog untouched; a failed local write after a
    successful remote call leaves an orphaned Stripe product/price.
    """

    def __init__(self, gateway: StripeGateway, session_factory: async_sessionmaker[AsyncSession]):
        self.gateway = gateway
        self.session_factory = session_factory

    async def create_plan(
        self,
        plan_type: str,
        description: str | None,
        amount: int,
        currency: str,
        interval: str,
    ) -> Plan:
        """Create a Stripe product and recurring price, then the local Plan row.

        Args:
            amount: unit amount in minor currency units

        Raises:
            RemoteProviderError: product or price creation failed (nothing persisted)
        """
        currency = currency.lower()
        product = await self.gateway.create_product(plan_type, description)
        price = await self.gateway.create_price(product.id, amount, currency, interval)

        async with self.session_factory() as session:
            plan = Plan(
                plan_type=plan_type,
                description=description,
                product_id=product.id,
                price_id=price.id,
                amount=amount,
                currency=currency,
                interval=interval,
            )
            session.add(plan)
            await session.commit()
            await session.refresh(plan)

        logger.info("plan_created", plan_id=plan.id, product_id=product.id, price_id=price.id)
        return plan

    async def edit_plan(
        self,
        plan_id: str,
        plan_type: str | None = None,
        active: bool | None = None,
        description: str | None = None,
    ) -> Plan:
        """Update name/active on the Stripe product, then the local row.

        Raises:
            NotFoundError: no plan with ``plan_id``
            RemoteProviderError: product update failed (local row unchanged)
        """
        async with self.session_factory() as session:
            plan = await session.get(Plan, plan_id)
            if plan is None:
                raise NotFoundError("Plan not found")

            if plan_type is not None or active is not None:
                await self.gateway.update_product(plan.product_id, name=plan_type, active=active)

            if plan_type is not None:
                plan.plan_type = plan_type
            if active is not None:
                plan.active = active
            if description is not None:
                plan.description = description

            await session.commit()
            await session.refresh(plan)

        logger.info("plan_updated", plan_id=plan_id, active=plan.active)
        return plan

    async def list_plans(self, active_only: bool = False) -> list[Plan]:
        async with self.session_factory() as session:
            query = select(Plan)
            if active_only:
                query = query.where(Plan.active.is_(True))
            result = await session.execute(query.order_by(Plan.created_at.desc()))
            return list(result.scalars().all())

    async def list_active_plans(self) -> list[Plan]:
        return await self.list_plans(active_only=True)

    async def get_plan(self, plan_id: str) -> Plan:
        async with self.session_factory() as session:
            plan = await session.get(Plan, plan_id)
            if plan is None:
                raise NotFoundError("Plan not found")
            return plan
