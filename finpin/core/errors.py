from fastapi import HTTPException, status


class APIError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str, headers: dict[str, str] | None = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class ValidationError(APIError):
    """Malformed input. The caller must fix the request; retrying is pointless."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_ERROR"


class RateLimitExceeded(APIError):
    """Transient; the caller should back off until the window slides."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, limit: int, retry_after_seconds: int = 60):
        super().__init__(
            f"Rate limit exceeded: {limit} requests per minute",
            headers={"Retry-After": str(retry_after_seconds)},
        )
        self.limit = limit


class ParseFailed(APIError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "AI_API_ERROR"
