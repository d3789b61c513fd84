"""API dependencies."""

from app.api.v1.dependencies.auth import (
    get_account_store,
    get_current_user,
    get_enrollment_service,
    get_step_up_gate,
    get_token_claims,
    require_step_up,
)

__all__ = [
    "get_account_store",
    "get_current_user",
    "get_enrollment_service",
    "get_step_up_gate",
    "get_token_claims",
    "require_step_up",
]
