"""Persistence for refresh tokens.

Nothing here commits; the caller owns the transaction. Revocations are single
UPDATE statements so ``revoked_at`` and ``replaced_by`` always land together.
Those statements bypass the identity map, so reads always repopulate rows the
session already holds.
"""
from collections.abc import Iterator
from datetime import datetime, timedelta
import logging
import secrets

from sqlalchemy import delete, or_, update
from sqlalchemy.orm import Session

from passgate.clock import isoformat, utcnow
from passgate.config import Settings
from passgate.models.auth import RefreshToken

logger = logging.getLogger(__name__)

REFRESH_TOKEN_BYTES = 64


def generate_refresh_token() -> str:
    """Generate an opaque, URL-safe refresh token value."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


class RefreshTokenRepository:
    """Refresh-token store backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, token: str) -> RefreshToken | None:
        return self.db.get(RefreshToken, token, populate_existing=True)

    def add(
        self,
        user_id: str,
        lifetime: timedelta,
        now: datetime,
        token: str | None = None,
    ) -> RefreshToken:
        """Persist a new active token for ``user_id`` valid for ``lifetime``."""
        record = RefreshToken(
            token=token or generate_refresh_token(),
            user_id=user_id,
            created_at=isoformat(now),
            expires_at=isoformat(now + lifetime),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def revoke(self, token: str, now: datetime, replaced_by: str | None = None) -> bool:
        """Revoke ``token`` if it is not revoked yet. Returns True if a row changed."""
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=isoformat(now), replaced_by=replaced_by)
        )
        return result.rowcount == 1

    def rotate(
        self,
        token: str,
        user_id: str,
        lifetime: timedelta,
        now: datetime,
    ) -> RefreshToken | None:
        """Consume an active token and issue its replacement.

        The old row is claimed with a compare-and-swap on its active state, so
        of two racing rotations only one sees a changed row. The loser gets
        None and nothing is inserted.
        """
        replacement = generate_refresh_token()
        stamp = isoformat(now)
        result = self.db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > stamp,
            )
            .values(revoked_at=stamp, replaced_by=replacement)
        )
        if result.rowcount != 1:
            return None
        return self.add(user_id, lifetime, now, token=replacement)

    def revoke_all_for_user(self, user_id: str, now: datetime) -> int:
        """Revoke every not-yet-revoked token of a user. Returns the number revoked."""
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=isoformat(now))
        )
        return result.rowcount

    def active_for_user(self, user_id: str, now: datetime) -> list[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > isoformat(now),
            )
            .order_by(RefreshToken.created_at)
            .populate_existing()
            .all()
        )

    def chain(self, token: str) -> Iterator[RefreshToken]:
        """Walk ``replaced_by`` links forward, starting at ``token``."""
        seen = set()
        record = self.get(token)
        while record is not None and record.token not in seen:
            seen.add(record.token)
            yield record
            record = self.get(record.replaced_by) if record.replaced_by else None

    def prune(self, cutoff: datetime) -> int:
        """Delete tokens that expired or were revoked before ``cutoff``."""
        stamp = isoformat(cutoff)
        result = self.db.execute(
            delete(RefreshToken)
            .where(or_(RefreshToken.expires_at < stamp, RefreshToken.revoked_at < stamp))
        )
        return result.rowcount


def prune_refresh_tokens(db: Session, settings: Settings, now: datetime | None = None) -> int:
    """Drop tokens that have been dead for longer than the retention window."""
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.refresh_token_retention_days)
    removed = RefreshTokenRepository(db).prune(cutoff)
    logger.info(f"Pruned {removed} refresh token(s) inactive since before {isoformat(cutoff)}")
    return removed
