"""Shared API dependencies."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from passgate.config import Settings, get_settings
from passgate.database import get_db
from passgate.errors import GENERIC_SESSION_MESSAGE, TokenError
from passgate.models.user import User
from passgate.services.credentials import CredentialService
from passgate.services.token_codec import AccessTokenCodec

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_token_codec",
    "get_credential_service",
    "get_current_user",
]


def get_token_codec(settings: Settings = Depends(get_settings)) -> AccessTokenCodec:
    """Access-token codec built from the configured signing key."""
    return AccessTokenCodec.from_settings(settings)


def get_credential_service(
    db: Session = Depends(get_db),
    codec: AccessTokenCodec = Depends(get_token_codec),
    settings: Settings = Depends(get_settings),
) -> CredentialService:
    """Credential service bound to the request's database session."""
    return CredentialService.build(db, settings, codec=codec)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    codec: AccessTokenCodec = Depends(get_token_codec),
) -> User:
    """Resolve the user behind a valid, unexpired bearer access token."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=GENERIC_SESSION_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    try:
        claims = codec.decode(credentials.credentials)
    except TokenError:
        raise unauthorized

    user = db.get(User, claims.user_id) if claims.user_id else None
    if user is None or not user.is_active:
        raise unauthorized
    return user
