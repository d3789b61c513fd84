"""Custom exception classes for the application."""


class BaseAPIException(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ResourceNotFoundException(BaseAPIException):
    """Raised when resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with id {resource_id} not found",
            status_code=404
        )
        self.resource = resource
        self.resource_id = resource_id


class ExternalServiceException(BaseAPIException):
    """Raised when external service fails."""

    def __init__(self, service: str, message: str | None = None):
        error_message = f"External service '{service}' is unavailable"
        if message:
            error_message += f": {message}"
        super().__init__(error_message, status_code=503)
        self.service = service


class StoreUnavailable(ExternalServiceException):
    """Raised when the account store cannot be reached or a write fails.

    The core never retries; the caller sees a transient failure.
    """

    def __init__(self, message: str | None = None):
        super().__init__("account_store", message)


class TwoFactorException(BaseAPIException):
    """Base exception for two-factor authentication errors."""

    def __init__(self, message: str = "Two-factor authentication failed", status_code: int = 400):
        super().__init__(message, status_code=status_code)


class InvalidCodeFormat(TwoFactorException):
    """Raised when a submitted code is malformed (rejected before any HMAC work)."""

    def __init__(self, message: str = "Invalid code format"):
        super().__init__(message, status_code=422)


class VerificationFailed(TwoFactorException):
    """Raised when a code does not verify.

    Wrong TOTP codes and used or unknown backup codes share this message.
    """

    def __init__(self):
        super().__init__("Invalid verification code", status_code=401)


class InvalidState(TwoFactorException):
    """Raised when an operation is not allowed in the current enrollment state.

    The message is deliberately generic so account status is not exposed.
    """

    def __init__(self, message: str = "Two-factor operation not allowed"):
        super().__init__(message, status_code=400)


class InvalidSecret(TwoFactorException):
    """Raised when a TOTP secret is malformed or cannot be decrypted."""

    def __init__(self, message: str = "Invalid two-factor secret"):
        super().__init__(message, status_code=500)
