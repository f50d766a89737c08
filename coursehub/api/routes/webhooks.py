"""Stripe webhook endpoint.

Mounted at the application root (``/stripe/webhook``). The body is read raw
so the signature is checked against the exact bytes Stripe signed.
"""

import structlog
from fastapi import APIRouter, Depends, Request

from coursehub.api.dependencies import get_webhook_service
from coursehub.services.webhook_service import WebhookService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/stripe/webhook")
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Always acknowledges: Stripe never sees an error from this endpoint."""
    payload = await request.body()
    outcome = await service.process(payload, request.headers.get("stripe-signature"))
    logger.info("stripe_webhook_acknowledged", outcome=outcome.value)
    return {"status": "ok"}
