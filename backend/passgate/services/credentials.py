"""Credential service: register, login, refresh and logout.

Each public operation is one unit of work on the session it was given. Errors
are raised internally as ``AuthError`` subclasses and converted to a failed
``ServiceResult`` at the public boundary; the transaction is committed only on
success.
"""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from passgate.clock import utcnow
from passgate.config import Settings
from passgate.errors import (
    AccountDisabled,
    AuthError,
    DuplicateEmail,
    DuplicateUsername,
    InvalidAccessToken,
    InvalidCredentials,
    InvalidRefreshToken,
    MissingSubjectClaim,
    PasswordMismatch,
    StoreUnavailable,
    TokenDecodeError,
    WeakCredential,
)
from passgate.models.auth import RefreshToken, TokenStatus
from passgate.models.user import User
from passgate.schemas.auth import AuthResponse, UserSummary
from passgate.services.refresh_tokens import RefreshTokenRepository
from passgate.services.token_codec import AccessTokenCodec
from passgate.services.user_store import SqlUserStore, UserStore, WeakPasswordError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Outcome of a credential operation."""

    data: T | None = None
    message: str = ""
    error: AuthError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, data: T, message: str = "Success") -> "ServiceResult[T]":
        return cls(data=data, message=message)

    @classmethod
    def fail(cls, error: AuthError) -> "ServiceResult[T]":
        return cls(message=error.public_detail, error=error)


class CredentialService:
    """Issues, rotates and revokes credentials for one database session."""

    def __init__(
        self,
        db: Session,
        users: UserStore,
        refresh_tokens: RefreshTokenRepository,
        codec: AccessTokenCodec,
        refresh_lifetime: timedelta = timedelta(days=7),
        default_role: str = "User",
        revoke_chain_on_reuse: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.codec = codec
        self.refresh_lifetime = refresh_lifetime
        self.default_role = default_role
        self.revoke_chain_on_reuse = revoke_chain_on_reuse
        self.clock = clock

    @classmethod
    def build(
        cls,
        db: Session,
        settings: Settings,
        codec: AccessTokenCodec | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "CredentialService":
        """Wire the service with the SQL-backed stores."""
        return cls(
            db,
            users=SqlUserStore.from_settings(db, settings),
            refresh_tokens=RefreshTokenRepository(db),
            codec=codec or AccessTokenCodec.from_settings(settings),
            refresh_lifetime=timedelta(days=settings.refresh_token_expire_days),
            default_role=settings.default_role,
            revoke_chain_on_reuse=settings.revoke_chain_on_reuse,
            clock=clock,
        )

    # Public operations

    def register(
        self,
        full_name: str,
        email: str,
        username: str,
        password: str,
        confirm_password: str,
    ) -> ServiceResult[AuthResponse]:
        return self._run("register", self._register, full_name, email, username, password, confirm_password)

    def login(self, email: str, password: str) -> ServiceResult[AuthResponse]:
        return self._run("login", self._login, email, password)

    def refresh(self, access_token: str, refresh_token: str) -> ServiceResult[AuthResponse]:
        return self._run("refresh", self._refresh, access_token, refresh_token)

    def logout(self, user_id: str) -> ServiceResult[int]:
        return self._run("logout", self._logout, user_id)

    def _run(self, operation: str, handler: Callable[..., tuple[Any, str]], *args) -> ServiceResult:
        try:
            data, message = handler(*args)
            self.db.commit()
        except AuthError as exc:
            self.db.rollback()
            cause = f" ({exc.__cause__})" if exc.__cause__ else ""
            logger.warning(f"{operation} rejected: {exc.code}: {exc}{cause}")
            return ServiceResult.fail(exc)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"{operation} failed in the credential store")
            return ServiceResult.fail(StoreUnavailable())
        return ServiceResult.ok(data, message)

    # Operation bodies

    def _register(self, full_name, email, username, password, confirm_password):
        if password != confirm_password:
            raise PasswordMismatch()
        if self.users.get_by_email(email) is not None:
            raise DuplicateEmail()
        if self.users.get_by_username(username) is not None:
            raise DuplicateUsername()

        try:
            user = self.users.create(full_name=full_name, email=email, username=username, password=password)
        except WeakPasswordError as exc:
            raise WeakCredential(str(exc), errors=exc.problems) from exc
        except IntegrityError as exc:
            # Another registration claimed the email or username after our checks.
            self.db.rollback()
            if self.users.get_by_email(email) is not None:
                raise DuplicateEmail("lost registration race") from exc
            if self.users.get_by_username(username) is not None:
                raise DuplicateUsername("lost registration race") from exc
            raise
        self.users.add_to_role(user, self.default_role)
        logger.info(f"Registered user {user.id}")

        now = self.clock()
        record = self.refresh_tokens.add(user.id, self.refresh_lifetime, now)
        return self._token_pair(user, record, now), "Registration successful."

    def _login(self, email, password):
        user = self.users.get_by_email(email)
        # Unknown email and wrong password must be indistinguishable.
        if not self.users.verify_password(user, password):
            raise InvalidCredentials("unknown email" if user is None else f"bad password for user {user.id}")
        if not user.is_active:
            raise AccountDisabled(f"user {user.id} is deactivated")

        now = self.clock()
        revoked = self.refresh_tokens.revoke_all_for_user(user.id, now)
        record = self.refresh_tokens.add(user.id, self.refresh_lifetime, now)
        logger.info(f"User {user.id} logged in; revoked {revoked} earlier refresh token(s)")
        return self._token_pair(user, record, now), "Login successful."

    def _refresh(self, access_token, refresh_token):
        try:
            claims = self.codec.decode_expired(access_token)
        except TokenDecodeError as exc:
            raise InvalidAccessToken(exc.code) from exc
        if not claims.user_id:
            raise MissingSubjectClaim(f"token {claims.jti} has no userId claim")

        now = self.clock()
        record = self.refresh_tokens.get(refresh_token)
        if record is None:
            raise InvalidRefreshToken("unknown refresh token")
        if record.user_id != claims.user_id:
            raise InvalidRefreshToken(f"refresh token does not belong to user {claims.user_id}")

        status = record.status_at(now)
        if status is not TokenStatus.ACTIVE:
            if record.was_rotated:
                self._handle_reuse(record, now)
            raise InvalidRefreshToken(f"refresh token is {status.value}")

        user = self.users.get_by_id(record.user_id)
        if user is None:
            raise InvalidRefreshToken(f"user {record.user_id} no longer exists")
        if not user.is_active:
            raise AccountDisabled(f"user {user.id} is deactivated")

        replacement = self.refresh_tokens.rotate(record.token, user.id, self.refresh_lifetime, now)
        if replacement is None:
            raise InvalidRefreshToken("refresh token was rotated concurrently")
        logger.info(f"Rotated refresh token for user {user.id}")
        return self._token_pair(user, replacement, now), "Token refreshed."

    def _logout(self, user_id):
        revoked = self.refresh_tokens.revoke_all_for_user(user_id, self.clock())
        logger.info(f"User {user_id} logged out; revoked {revoked} refresh token(s)")
        return revoked, "Logout successful."

    def _handle_reuse(self, record: RefreshToken, now: datetime) -> None:
        """A rotated-away token came back: assume theft and end the subject's sessions."""
        if not self.revoke_chain_on_reuse:
            logger.warning(f"Rotated refresh token replayed for user {record.user_id}")
            return
        revoked = self.refresh_tokens.revoke_all_for_user(record.user_id, now)
        # Commit now: the failed operation rolls back whatever is still pending.
        self.db.commit()
        logger.warning(
            f"Rotated refresh token replayed for user {record.user_id}; "
            f"revoked {revoked} active refresh token(s)"
        )

    def _token_pair(self, user: User, record: RefreshToken, now: datetime) -> AuthResponse:
        # Roles come from the store every time, never from the presented token.
        roles = self.users.get_roles(user)
        access_token, expires_at = self.codec.mint(user, roles, issued_at=now)
        return AuthResponse(
            access_token=access_token,
            refresh_token=record.token,
            access_token_expiry=expires_at,
            user=UserSummary.model_validate(user),
        )
