"""Billing Pydantic schemas for API requests and responses.

Request bodies accept the camelCase keys the web client already sends
(``paymentMethodId``, ``priceId`` ...) as well as snake_case.
"""

from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

Interval = Literal["day", "week", "month", "year"]


class ApiResponse(BaseModel, Generic[T]):
    """Envelope used by every successful synchronous endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    status_code: int = Field(200, alias="statusCode")
    message: str
    data: T | None = None


def envelope(message: str, data=None, status_code: int = 200) -> dict:
    return ApiResponse(message=message, data=data, status_code=status_code).model_dump(by_alias=True, mode="json")


# ---------- Plans ----------


class PlanCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_type: str = Field(alias="planType", min_length=1, max_length=100)
    description: str | None = None
    amount: int = Field(gt=0, description="Price in minor currency units (cents)")
    currency: str = Field("usd", min_length=3, max_length=3)
    interval: Interval = "month"


class PlanUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_type: str | None = Field(None, alias="planType", min_length=1, max_length=100)
    active: bool | None = None
    description: str | None = None


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_type: str
    description: str | None
    product_id: str
    price_id: str
    amount: int
    currency: str
    interval: str
    active: bool
    created_at: datetime


# ---------- Subscriptions ----------


class SubscriptionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_method_id: str = Field(alias="paymentMethodId", min_length=1)
    price_id: str = Field(alias="priceId", min_length=1)


class SubscriptionUpdate(SubscriptionCreate):
    subscription_id: str = Field(alias="subscriptionId", min_length=1)


class SubscriptionCancel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(alias="subscriptionId", min_length=1)


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    subscription_id: str
    price_id: str
    payment_method_id: str
    plan_interval: str | None
    status: str
    created_at: datetime


class PaymentIntentInfo(BaseModel):
    status: str | None = None
    client_secret: str | None = None


class SubscriptionResult(BaseModel):
    """Subscription row plus the first invoice's payment intent (for 3-D Secure)."""

    subscription: SubscriptionResponse
    payment_intent: PaymentIntentInfo | None = None


# ---------- Reporting ----------


class EarningsResponse(BaseModel):
    total_amount: float
    invoice_count: int


class PaymentUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None
    email: str


class PaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_interval: str | None
    status: str
    user: PaymentUser
    created_at: datetime


class PaymentListResponse(BaseModel):
    total_count: int
    total_pages: int
    current_page: int
    payments: list[PaymentRecord]


class ReconcileReport(BaseModel):
    skipped: bool = False
    checked: int = 0
    removed: int = 0
    flags_fixed: int = 0
