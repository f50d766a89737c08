"""Subscription model: local mirror of one user's Stripe subscription."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from coursehub.db.base import Base

STATUS_ACTIVE = "active"
STATUS_CANCEL_PENDING = "cancel_pending"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # One row per user
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False, index=True)
    user = relationship("User", back_populates="subscription")

    # Stripe
    subscription_id = Column(String(255), nullable=False, index=True)
    price_id = Column(String(255), nullable=False)
    payment_method_id = Column(String(255), nullable=False)
    plan_interval = Column(String(20), nullable=True)

    status = Column(String(30), nullable=False, default=STATUS_ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
