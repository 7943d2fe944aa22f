"""Signing key material for access tokens."""
from dataclasses import dataclass, field

from passgate.config import SUPPORTED_ALGORITHMS, Settings


@dataclass(frozen=True)
class SigningKey:
    """HMAC secret plus the issuer/audience every token is bound to.

    Built once from settings and handed to the codec explicitly.
    """

    secret: str = field(repr=False)
    issuer: str
    audience: str
    algorithm: str = "HS256"

    def __post_init__(self):
        if not self.secret:
            raise ValueError("Signing secret must not be empty.")
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {self.algorithm}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningKey":
        return cls(
            secret=settings.secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.algorithm,
        )
