from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class AuthenticationError(ApiError):
    def __init__(self, message: str = "Invalid API key") -> None:
        super().__init__(
            code="AUTH_UNAUTHORIZED",
            message=message,
            error_class="security_sensitive",
            retryable=False,
            http_status=401,
        )


class ValidationError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="REQ_VALIDATION_FAILED",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=400,
        )


class NotFoundError(ApiError):
    def __init__(self, message: str = "Analysis not found") -> None:
        super().__init__(
            code="ANALYSIS_NOT_FOUND",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=404,
        )


class UpstreamUnavailableError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="UPSTREAM_UNAVAILABLE",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=503,
        )


class CircuitOpenError(ApiError):
    def __init__(self, name: str) -> None:
        super().__init__(
            code="UPSTREAM_CIRCUIT_OPEN",
            message=f"circuit breaker is open: {name}",
            error_class="transient",
            retryable=True,
            http_status=503,
        )
        self.breaker_name = name
