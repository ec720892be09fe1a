"""SQLAlchemy ORM models for the storefront auth service.

All models are exported from this module for convenient imports:
    from auth_service.models import Base, User
"""

from auth_service.models.base import Base, TimestampMixin
from auth_service.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
]
