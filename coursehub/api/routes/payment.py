"""Payment routes: plans, subscriptions, earnings, payments, reconciliation."""

from fastapi import APIRouter, Body, Depends, Query

from coursehub.api.dependencies import (
    get_earnings_service,
    get_payment_history_service,
    get_plan_service,
    get_reconciliation_service,
    get_subscription_service,
)
from coursehub.core.auth import AuthUser, require_admin, require_auth
from coursehub.schemas.billing import (
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionUpdate,
    envelope,
)
from coursehub.schemas.pagination import paginate
from coursehub.services.earnings_service import EarningsService
from coursehub.services.payment_history_service import PaymentHistoryService
from coursehub.services.plan_service import PlanService
from coursehub.services.reconciliation_service import ReconciliationService
from coursehub.services.subscription_service import SubscriptionService

router = APIRouter()


# ---------- Plans ----------


@router.post("/create/stripe-plan")
async def create_plan(
    body: PlanCreate,
    _: AuthUser = Depends(require_admin),
    service: PlanService = Depends(get_plan_service),
):
    plan = await service.create_plan(body.plan_type, body.description, body.amount, body.currency, body.interval)
    return envelope("Plan created successfully", PlanResponse.model_validate(plan))


@router.get("/stripe-plans")
async def list_plans(service: PlanService = Depends(get_plan_service)):
    plans = await service.list_plans()
    return envelope("All plans fetched successfully", [PlanResponse.model_validate(p) for p in plans])


@router.get("/active-plans")
async def list_active_plans(service: PlanService = Depends(get_plan_service)):
    plans = await service.list_active_plans()
    return envelope("Active plans fetched successfully", [PlanResponse.model_validate(p) for p in plans])


@router.get("/stripe-plan/{plan_id}")
async def get_plan(plan_id: str, service: PlanService = Depends(get_plan_service)):
    plan = await service.get_plan(plan_id)
    return envelope("Plan fetched successfully", PlanResponse.model_validate(plan))


@router.patch("/update-plan/{plan_id}")
async def edit_plan(
    plan_id: str,
    body: PlanUpdate,
    _: AuthUser = Depends(require_admin),
    service: PlanService = Depends(get_plan_service),
):
    plan = await service.edit_plan(plan_id, plan_type=body.plan_type, active=body.active, description=body.description)
    return envelope("Plan updated successfully", PlanResponse.model_validate(plan))


# ---------- Reporting ----------


@router.get("/total-earnings")
async def total_earnings(
    _: AuthUser = Depends(require_admin),
    service: EarningsService = Depends(get_earnings_service),
):
    result = await service.total_earnings()
    return envelope("Total earnings fetched successfully", result)


@router.get("/payments")
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: AuthUser = Depends(require_admin),
    service: PaymentHistoryService = Depends(get_payment_history_service),
):
    result = await service.list_payments(paginate(page, limit))
    return envelope("Payments fetched successfully", result)


@router.post("/reconcile")
async def reconcile(
    _: AuthUser = Depends(require_admin),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    report = await service.reconcile()
    return envelope("Reconciliation finished", report)


# ---------- Subscriptions ----------


@router.post("/create/stripe-subscription")
async def create_subscription(
    body: SubscriptionCreate,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = await service.create_subscription(user.user_id, body.payment_method_id, body.price_id)
    return envelope("Payment successful", result)


@router.patch("/update/stripe-subscription")
async def update_subscription(
    body: SubscriptionUpdate,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = await service.update_subscription(
        user.user_id,
        body.payment_method_id,
        body.price_id,
        body.subscription_id,
    )
    return envelope("Subscription update successful", result)


@router.delete("/cancel/stripe-subscription")
async def cancel_subscription(
    body: SubscriptionCancel = Body(...),
    user: AuthUser = Depends(require_auth),
    service: SubscriptionService = Depends(get_subscription_service),
):
    row = await service.cancel_subscription(user.user_id, body.subscription_id)
    return envelope("Subscription cancellation requested", SubscriptionResponse.model_validate(row))


@router.get("/my-subscription")
async def my_subscription(
    user: AuthUser = Depends(require_auth),
    service: SubscriptionService = Depends(get_subscription_service),
):
    row = await service.get_my_subscription(user.user_id)
    return envelope("Subscription fetched successfully", SubscriptionResponse.model_validate(row))
