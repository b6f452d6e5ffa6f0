from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_API_KEY = "invalid_api_key"
    UNKNOWN_PROVIDER_TYPE = "unknown_provider_type"
    PROVIDER_NOT_FOUND = "provider_not_found"
    CLIENT_NOT_FOUND = "client_not_found"
    ALIAS_NOT_FOUND = "model_not_found"
    PROVIDER_INIT_FAILED = "provider_init_failed"
    UPSTREAM_ERROR = "upstream_error"
    VALIDATION_ERROR = "validation_error"
    EMPTY_COMPLETION = "empty_completion"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"


class GatewayError(Exception):
    """Base class of every error the gateway reports.

    ``retryable`` tells the completion orchestrator whether another attempt
    may succeed; ``status_code`` is the HTTP status the error maps to when it
    reaches a client.
    """

    code: ErrorCode = ErrorCode.UPSTREAM_ERROR
    error_type: str = "api_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(ValueError):
    """Raised when the configuration file cannot be loaded or validated."""


class AuthenticationFailed(GatewayError):
    code = ErrorCode.INVALID_API_KEY
    error_type = "authentication_error"
    status_code = 401


class UnknownProviderType(GatewayError):
    code = ErrorCode.UNKNOWN_PROVIDER_TYPE
    error_type = "invalid_request_error"
    status_code = 400

    def __init__(self, provider_type: str, available: list[str] | None = None) -> None:
        detail = f"Provider type '{provider_type}' is not registered."
        if available is not None:
            detail = f"{detail} Available types: {', '.join(available) or '<none>'}"
        super().__init__(detail)
        self.provider_type = provider_type


class ProviderNotFound(GatewayError):
    code = ErrorCode.PROVIDER_NOT_FOUND
    error_type = "invalid_request_error"
    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Provider '{name}' not found")
        self.name = name


class ClientNotFound(GatewayError):
    code = ErrorCode.CLIENT_NOT_FOUND
    error_type = "invalid_request_error"
    status_code = 404

    def __init__(self, name: str, alias: str) -> None:
        super().__init__(f"Provider '{name}' for model '{alias}' is no longer available")
        self.name = name
        self.alias = alias


class AliasNotFound(GatewayError):
    code = ErrorCode.ALIAS_NOT_FOUND
    error_type = "invalid_request_error"
    status_code = 404

    def __init__(self, alias: str) -> None:
        super().__init__(f"Model '{alias}' not found or provider not available")
        self.alias = alias


class ProviderInitializationFailed(GatewayError):
    code = ErrorCode.PROVIDER_INIT_FAILED
    error_type = "server_error"
    status_code = 503

    def __init__(self, name: str, cause: GatewayError) -> None:
        super().__init__(f"Failed to initialize provider '{name}': {cause.message}")
        self.name = name
        self.cause = cause


class UpstreamError(GatewayError):
    code = ErrorCode.UPSTREAM_ERROR
    error_type = "upstream_error"
    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        upstream_code: str | None = None,
        upstream_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.upstream_code = upstream_code
        self.upstream_type = upstream_type


class ValidationError(GatewayError):
    """The upstream payload did not match the expected schema."""

    code = ErrorCode.VALIDATION_ERROR
    error_type = "upstream_error"
    status_code = 502
    retryable = True


class EmptyCompletion(GatewayError):
    code = ErrorCode.EMPTY_COMPLETION
    error_type = "upstream_error"
    status_code = 502
    retryable = True

    def __init__(self, model: str) -> None:
        super().__init__(f"Upstream returned an empty completion for '{model}'")
        self.model = model


class MaxRetriesExceeded(GatewayError):
    code = ErrorCode.MAX_RETRIES_EXCEEDED
    error_type = "upstream_error"
    status_code = 502

    def __init__(self, attempts: int, last_error: GatewayError | None) -> None:
        message = f"Failed after {attempts} attempts"
        if last_error is not None:
            message = f"{message}: {last_error.message}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def make_error_body(
    *,
    message: str,
    error_type: str,
    code: ErrorCode | str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"message": message, "type": error_type}
    if code is not None:
        payload["code"] = code.value if isinstance(code, ErrorCode) else str(code)
    return {"error": payload}


def error_body_from(exc: GatewayError) -> dict[str, Any]:
    return make_error_body(message=exc.message, error_type=exc.error_type, code=exc.code)
