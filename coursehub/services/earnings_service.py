"""EarningsService: total paid amount across the full Stripe invoice history."""

import structlog

from coursehub.core.config import get_settings
from coursehub.integrations.stripe_gateway import StripeGateway, stripe_field
from coursehub.schemas.billing import EarningsResponse

logger = structlog.get_logger(__name__)


class EarningsService:
    """Re-scans every invoice on each call; nothing is cached locally."""

    def __init__(self, gateway: StripeGateway, page_size: int | None = None):
        self.gateway = gateway
        self.page_size = page_size or get_settings().earnings_page_size

    async def total_earnings(self) -> EarningsResponse:
        total_cents = 0
        invoice_count = 0
        pages = 0
        starting_after: str | None = None

        while True:
            page = await self.gateway.list_invoices(self.page_size, starting_after)
            pages += 1

            for invoice in page.data:
                total_cents += stripe_field(invoice, "amount_paid") or 0
            invoice_count += len(page.data)

            if not page.has_more or not page.data:
                break
            starting_after = page.data[-1]["id"]

        logger.info("earnings_aggregated", pages=pages, invoice_count=invoice_count, total_cents=total_cents)
        return EarningsResponse(total_amount=total_cents / 100, invoice_count=invoice_count)
