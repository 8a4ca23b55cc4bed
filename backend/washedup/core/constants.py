"""User-facing messages for OAuth callback error codes (``/?error=<code>``)."""

AUTH_ERROR_MESSAGES: dict[str, str] = {
    "oauth_denied": "Authorization was denied. Please try again.",
    "invalid_state": "Security validation failed. Please try again.",
    "missing_code": "Authorization code missing. Please try again.",
    "user_not_found": "User account could not be found. Please try again.",
    "session_failed": "Failed to create session. Please try again.",
    "token_extraction_failed": "Failed to process authentication. Please try again.",
    "session_set_failed": "Failed to set session. Please try again.",
    "unknown": "An unknown error occurred. Please try again.",
}


def auth_error_message(code: str | None) -> str | None:
    if not code:
        return None
    return AUTH_ERROR_MESSAGES.get(code, AUTH_ERROR_MESSAGES["unknown"])
