"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math

from pydantic import field_validator
from pydantic_settings import BaseSettings

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App
    app_name: str = "Passgate"
    debug: bool = False
    
    # Database
    database_url: str = "sqlite:///./passgate.db"
    
    # Signing
    secret_key: str
    algorithm: str = "HS256"
    jwt_issuer: str = "passgate"
    jwt_audience: str = "passgate-clients"
    
    # Token lifetimes
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    refresh_token_retention_days: int = 30
    revoke_chain_on_reuse: bool = True
    
    # Identity store
    default_role: str = "User"
    password_min_length: int = 6
    password_require_digit: bool = True
    password_hash_rounds: int = 12
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        """Only symmetric HMAC algorithms are accepted for access tokens."""
        normalized = value.upper()
        if normalized not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"ALGORITHM must be one of {', '.join(SUPPORTED_ALGORITHMS)}.")
        return normalized

    @field_validator("access_token_expire_minutes", "refresh_token_expire_days", "refresh_token_retention_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
