"""
Custom exception classes for unified error handling.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppBaseError(Exception):
    """Base exception for all application errors."""
    error_code: str = "APP_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


# ── Provider errors (surfaced to the caller, never retried) ──

class ProviderError(AppBaseError):
    """Raised when the generative-answer provider rejects or fails a call."""
    status_code = status.HTTP_401_UNAUTHORIZED


class NoApiKeyError(ProviderError):
    """Raised when neither the learner nor the server has a model key."""
    error_code = "NO_API_KEY"

    def __init__(self, message: str = "Please provide your Groq API key"):
        super().__init__(
            message=message,
            detail="Add a key under Settings > AI Tutor or ask your institution admin.",
        )


class InvalidApiKeyError(ProviderError):
    """Raised when the provider rejects the key."""
    error_code = "INVALID_API_KEY"

    def __init__(self, message: str = "Your Groq API key limits reached or key is invalid"):
        super().__init__(message=message, detail="Check the key and try again.")


class ApiLimitReachedError(ProviderError):
    """Raised on rate limiting or an oversized payload."""
    error_code = "API_LIMIT_REACHED"

    def __init__(self, message: str = "Your Groq API key limits reached or key is invalid"):
        super().__init__(
            message=message,
            detail="Wait a minute or select a smaller region, then ask again.",
        )


class ProviderConfigError(ProviderError):
    """Raised when the configured model provider cannot be built."""
    error_code = "PROVIDER_MISCONFIGURED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, original_error: str = ""):
        super().__init__(
            message="AI Tutor is not configured correctly.",
            detail=original_error or None,
        )


class AIUnavailableError(ProviderError):
    """Raised when the model call fails for any other reason (timeout, 5xx)."""
    error_code = "AI_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, original_error: str = ""):
        super().__init__(
            message="AI Tutor is currently unavailable.",
            detail=original_error or None,
        )


# ── Lifecycle / access errors ────────────────────────────

class DoubtNotFoundError(AppBaseError):
    error_code = "DOUBT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, doubt_id: str):
        super().__init__(message="Doubt not found", detail=doubt_id)


class JobNotFoundError(AppBaseError):
    error_code = "JOB_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, job_id: str):
        super().__init__(message="No running generation with this job id", detail=job_id)


class DuplicateJobError(AppBaseError):
    """Raised when a learner reuses the id of one of their running generations."""
    error_code = "DUPLICATE_JOB"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, job_id: str):
        super().__init__(message="A generation with this job id is already running", detail=job_id)


class InvalidTransitionError(AppBaseError):
    """Raised when a doubt cannot move from its current status to the target."""
    error_code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move doubt from '{current}' to '{target}'",
            detail=None,
        )


class GenerationCancelledError(AppBaseError):
    """Raised when the learner stopped an in-flight generation."""
    error_code = "CANCELLED"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, doubt_id: str):
        super().__init__(message="Answer generation was cancelled", detail=doubt_id)


class PermissionDeniedError(AppBaseError):
    error_code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message=message)


class InvalidTokenError(AppBaseError):
    """Raised when JWT token is invalid or expired."""
    error_code = "INVALID_TOKEN"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self):
        super().__init__(
            message="Token is invalid or expired",
            detail="Please sign in again.",
        )


# ── Utility: convert to HTTP responses ───────────────────

async def app_error_handler(request: Request, error: AppBaseError) -> JSONResponse:
    """FastAPI exception handler rendering the {success:false, errorCode} envelope."""
    return JSONResponse(
        status_code=error.status_code,
        content={
            "success": False,
            "errorCode": error.error_code,
            "message": error.message,
            "detail": error.detail,
        },
    )
