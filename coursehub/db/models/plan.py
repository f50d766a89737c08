"""Plan model: local mirror of a Stripe product + recurring price."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from coursehub.db.base import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Not unique: two plans may share a name
    plan_type = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Stripe
    product_id = Column(String(255), nullable=False, index=True)
    price_id = Column(String(255), nullable=False, unique=True, index=True)

    # Pricing (minor currency units)
    amount = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False, default="usd")
    interval = Column(String(20), nullable=False)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
