"""Refresh-token model."""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from passgate.clock import isoformat, utcnow
from passgate.database import Base


class TokenStatus(str, Enum):
    """Computed state of a refresh token."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class RefreshToken(Base):
    """Opaque refresh token with revocation and replacement links."""

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_active", "user_id", "revoked_at"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )

    token = Column(String(128), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(String(26), nullable=False, default=lambda: isoformat(utcnow()))
    expires_at = Column(String(26), nullable=False)
    revoked_at = Column(String(26))
    # Set only on rotation; never set by plain revocation.
    replaced_by = Column(String(128))

    user = relationship("User", back_populates="refresh_tokens")

    def status_at(self, now: datetime) -> TokenStatus:
        """Evaluate the token's state at ``now``; revocation wins over expiry."""
        if self.revoked_at is not None:
            return TokenStatus.REVOKED
        if now >= datetime.fromisoformat(self.expires_at):
            return TokenStatus.EXPIRED
        return TokenStatus.ACTIVE

    @property
    def status(self) -> TokenStatus:
        return self.status_at(utcnow())

    @property
    def is_expired(self) -> bool:
        return utcnow() >= datetime.fromisoformat(self.expires_at)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    @property
    def is_active(self) -> bool:
        return self.status is TokenStatus.ACTIVE

    @property
    def was_rotated(self) -> bool:
        """True when the token was consumed by a refresh rather than revoked outright."""
        return self.revoked_at is not None and self.replaced_by is not None
