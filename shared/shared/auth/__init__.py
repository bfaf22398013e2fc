from shared.auth.config import AuthSettings
from shared.auth.dependencies import (
    InvalidTokenError,
    decode_access_token,
    get_current_user_optional,
    get_current_user_required,
)

__all__ = [
    "AuthSettings",
    "InvalidTokenError",
    "decode_access_token",
    "get_current_user_optional",
    "get_current_user_required",
]
