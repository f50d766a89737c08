"""Service providers for route handlers.

Overridable through ``app.dependency_overrides`` in tests.
"""

from coursehub.core.locking import BillingLock
from coursehub.db.base import get_session_factory
from coursehub.integrations.stripe_gateway import get_stripe_gateway
from coursehub.services.earnings_service import EarningsService
from coursehub.services.payment_history_service import PaymentHistoryService
from coursehub.services.plan_service import PlanService
from coursehub.services.reconciliation_service import ReconciliationService
from coursehub.services.subscription_service import SubscriptionService
from coursehub.services.webhook_service import WebhookService


def get_plan_service() -> PlanService:
    return PlanService(get_stripe_gateway(), get_session_factory())


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(get_stripe_gateway(), get_session_factory(), BillingLock())


def get_earnings_service() -> EarningsService:
    return EarningsService(get_stripe_gateway())


def get_payment_history_service() -> PaymentHistoryService:
    return PaymentHistoryService(get_session_factory())


def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService(get_stripe_gateway(), get_session_factory(), BillingLock())


def get_webhook_service() -> WebhookService:
    return WebhookService(get_session_factory())
