"""Error taxonomy for the credential service.

Every error carries a machine ``code`` for logs, an HTTP ``status_code`` and a
``public_message`` that is safe to return to clients. The exception text and
cause chain are for logs only.
"""

GENERIC_AUTH_MESSAGE = "Invalid email or password."
GENERIC_SESSION_MESSAGE = "Invalid or expired session."


class AuthError(Exception):
    """Base class for failures reported by the credential service."""

    code = "auth_error"
    status_code = 400
    public_message = "Request could not be completed."

    def __init__(self, detail: str | None = None, errors: list[str] | None = None):
        super().__init__(detail or self.code)
        self.errors = list(errors or [])

    @property
    def public_detail(self) -> str:
        """Client-facing message, including any public validation problems."""
        if not self.errors:
            return self.public_message
        return f"{self.public_message} {' '.join(self.errors)}"


# Validation

class ValidationFailed(AuthError):
    code = "validation_failed"
    public_message = "Validation failed."


class PasswordMismatch(ValidationFailed):
    code = "password_mismatch"
    public_message = "Passwords do not match."


class DuplicateEmail(ValidationFailed):
    code = "duplicate_email"
    public_message = "Email already registered."


class DuplicateUsername(ValidationFailed):
    code = "duplicate_username"
    public_message = "Username already taken."


class WeakCredential(ValidationFailed):
    code = "weak_credential"
    public_message = "Registration failed."


# Authentication

class AuthenticationFailed(AuthError):
    code = "authentication_failed"
    status_code = 401
    public_message = GENERIC_AUTH_MESSAGE


class InvalidCredentials(AuthenticationFailed):
    code = "invalid_credentials"


class AccountDisabled(AuthenticationFailed):
    code = "account_disabled"
    status_code = 403
    public_message = "Your account has been deactivated."


# Tokens

class TokenError(AuthError):
    code = "token_error"
    status_code = 401
    public_message = GENERIC_SESSION_MESSAGE


class InvalidAccessToken(TokenError):
    code = "invalid_access_token"


class MissingSubjectClaim(TokenError):
    code = "missing_subject_claim"


class InvalidRefreshToken(TokenError):
    code = "invalid_refresh_token"


class TokenDecodeError(TokenError):
    """Raised by the access-token codec."""

    code = "token_decode_error"


class MalformedToken(TokenDecodeError):
    code = "malformed_token"


class AlgorithmMismatch(TokenDecodeError):
    code = "algorithm_mismatch"


class InvalidSignature(TokenDecodeError):
    code = "invalid_signature"


class InvalidClaims(TokenDecodeError):
    code = "invalid_claims"


class TokenExpired(TokenDecodeError):
    code = "token_expired"


# Infrastructure

class StoreUnavailable(AuthError):
    code = "store_unavailable"
    status_code = 503
    public_message = "Service temporarily unavailable. Please try again later."
