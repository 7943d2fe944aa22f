"""Access-token minting and verification."""
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
import uuid

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from passgate.clock import utcnow
from passgate.config import Settings
from passgate.errors import (
    AlgorithmMismatch,
    InvalidClaims,
    InvalidSignature,
    MalformedToken,
    TokenExpired,
)
from passgate.models.user import User
from passgate.security.signing import SigningKey


class AccessClaims(BaseModel):
    """Claims carried by an access token.

    ``user_id`` is optional so a token without it can be reported as a
    missing subject rather than as a malformed token.
    """

    model_config = ConfigDict(populate_by_name=True)

    sub: str
    email: str
    jti: str
    name: str
    full_name: str = Field(alias="fullName")
    user_id: str | None = Field(default=None, alias="userId")
    roles: list[str] = Field(default_factory=list, alias="role")
    iss: str
    aud: str
    iat: int
    exp: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc).replace(tzinfo=None)


class AccessTokenCodec:
    """Encode and decode signed access tokens (JWT)."""

    def __init__(
        self,
        key: SigningKey,
        lifetime: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.key = key
        self.lifetime = lifetime
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessTokenCodec":
        return cls(
            SigningKey.from_settings(settings),
            lifetime=timedelta(minutes=settings.access_token_expire_minutes),
        )

    def mint(
        self,
        user: User,
        roles: Iterable[str],
        issued_at: datetime | None = None,
    ) -> tuple[str, datetime]:
        """Create a signed access token for ``user``; returns the token and its expiry."""
        issued_at = issued_at or self.clock()
        expires_at = issued_at + self.lifetime
        claims = {
            "sub": user.id,
            "email": user.email,
            "jti": str(uuid.uuid4()),
            "name": user.username,
            "fullName": user.full_name or "",
            "userId": user.id,
            "role": list(roles),
            "iss": self.key.issuer,
            "aud": self.key.audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(claims, self.key.secret, algorithm=self.key.algorithm)
        return token, expires_at

    def decode(self, token: str) -> AccessClaims:
        """Fully verify a token, including its expiry."""
        return self._decode(token, verify_exp=True)

    def decode_expired(self, token: str) -> AccessClaims:
        """Verify signature, issuer and audience but accept an expired token.

        Only the refresh flow uses this; the identity it returns is claimed,
        not authorized.
        """
        return self._decode(token, verify_exp=False)

    def _decode(self, token: str, verify_exp: bool) -> AccessClaims:
        try:
            header = jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken(str(exc)) from exc

        declared = header.get("alg")
        if declared != self.key.algorithm:
            raise AlgorithmMismatch(f"expected {self.key.algorithm}, token declares {declared!r}")

        try:
            payload = jwt.decode(
                token,
                self.key.secret,
                algorithms=[self.key.algorithm],
                audience=self.key.audience,
                issuer=self.key.issuer,
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired(str(exc)) from exc
        except JWTClaimsError as exc:
            raise InvalidClaims(str(exc)) from exc
        except JWTError as exc:
            raise InvalidSignature(str(exc)) from exc

        try:
            return AccessClaims.model_validate(payload)
        except ValidationError as exc:
            raise MalformedToken(f"unexpected claim structure: {exc.error_count()} error(s)") from exc
