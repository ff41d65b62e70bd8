from __future__ import annotations

from typing import Any, Protocol

from fastapi import HTTPException, status


class ProviderErrorLike(Protocol):
    @property
    def category(self) -> str: ...

    @property
    def retryable(self) -> bool: ...


def provider_error_http_status(exc: ProviderErrorLike) -> int:
    return status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY


def provider_error_detail(*, provider: str, operation: str, exc: ProviderErrorLike) -> dict[str, Any]:
    detail: dict[str, Any] = {
        "type": "provider_error",
        "provider": provider,
        "operation": operation,
        "category": exc.category,
        "retryable": exc.retryable,
        "message": str(exc),
    }
    upstream_status = getattr(exc, "status_code", None)
    if upstream_status is not None:
        detail["upstream_status"] = upstream_status
    return detail


def provider_http_exception(*, provider: str, operation: str, exc: ProviderErrorLike) -> HTTPException:
    return HTTPException(
        status_code=provider_error_http_status(exc),
        detail=provider_error_detail(provider=provider, operation=operation, exc=exc),
    )
