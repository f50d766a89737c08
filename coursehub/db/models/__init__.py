"""Re-export all models so Base.metadata sees them."""

from coursehub.db.models.plan import Plan
from coursehub.db.models.subscription import Subscription
from coursehub.db.models.user import User

__all__ = [
    "Plan",
    "Subscription",
    "User",
]
