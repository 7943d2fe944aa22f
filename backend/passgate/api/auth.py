"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status

from passgate.api.deps import get_credential_service, get_current_user
from passgate.models.user import User
from passgate.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
)
from passgate.services.credentials import CredentialService, ServiceResult

router = APIRouter(prefix="/auth", tags=["auth"])


def unwrap(result: ServiceResult):
    """Return the result's data or raise the matching HTTP error."""
    if result.succeeded:
        return result.data

    error = result.error
    headers = {"WWW-Authenticate": "Bearer"} if error.status_code == status.HTTP_401_UNAUTHORIZED else None
    raise HTTPException(
        status_code=error.status_code,
        detail=error.public_detail,
        headers=headers,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: RegisterRequest,
    service: CredentialService = Depends(get_credential_service),
):
    """Register a new user and issue a token pair."""
    return unwrap(service.register(
        full_name=user_data.full_name,
        email=user_data.email,
        username=user_data.username,
        password=user_data.password,
        confirm_password=user_data.confirm_password,
    ))


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: LoginRequest,
    service: CredentialService = Depends(get_credential_service),
):
    """Login and get tokens."""
    return unwrap(service.login(credentials.email, credentials.password))


@router.post("/refresh-token", response_model=AuthResponse)
def refresh_tokens(
    token_data: RefreshRequest,
    service: CredentialService = Depends(get_credential_service),
):
    """Exchange an expired access token plus its refresh token for a new pair."""
    return unwrap(service.refresh(token_data.access_token, token_data.refresh_token))


@router.post("/logout", response_model=MessageResponse)
def logout(
    service: CredentialService = Depends(get_credential_service),
    current_user: User = Depends(get_current_user),
):
    """Logout and revoke all refresh tokens for the current user."""
    unwrap(service.logout(current_user.id))
    return MessageResponse(message="Successfully logged out")
