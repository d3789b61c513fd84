"""Authentication schemas."""

from pydantic import BaseModel, EmailStr


class Token(BaseModel):
    """Token response schema.

    `two_factor_required` is True when the token is not yet step-up verified
    and the client must call the two-factor verify endpoint.
    """

    access_token: str
    token_type: str = "bearer"
    two_factor_required: bool = False


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str
