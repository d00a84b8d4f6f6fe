from clarity.models.base import Base, TimestampedBase
from clarity.models.rewrite import Rewrite
from clarity.models.user import User

__all__ = [
    "Base",
    "TimestampedBase",
    "Rewrite",
    "User",
]
