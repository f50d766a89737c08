from fastapi import APIRouter

from coursehub.api.routes import health, payment, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(payment.router, prefix="/payment", tags=["payment"])

webhook_router = webhooks.router

__all__ = ["api_router", "webhook_router"]
