"""SQLAlchemy models package."""
from passgate.models.user import Role, User
from passgate.models.auth import RefreshToken, TokenStatus

__all__ = [
    "User",
    "Role",
    "RefreshToken",
    "TokenStatus",
]
