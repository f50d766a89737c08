"""PaymentHistoryService: admin listing of subscription payments."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from coursehub.db.models.subscription import Subscription
from coursehub.schemas.billing import PaymentListResponse, PaymentRecord
from coursehub.schemas.pagination import PageParams


class PaymentHistoryService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_payments(self, params: PageParams) -> PaymentListResponse:
        """Newest-first page of subscriptions with their owners."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Subscription)
                .options(selectinload(Subscription.user))
                .order_by(Subscription.created_at.desc())
                .offset(params.skip)
                .limit(params.take)
            )
            rows = result.scalars().all()

            total_count = (await session.execute(select(func.count()).select_from(Subscription))).scalar_one()

            return PaymentListResponse(
                total_count=total_count,
                total_pages=params.total_pages(total_count),
                current_page=params.page,
                payments=[PaymentRecord.model_validate(row) for row in rows],
            )
