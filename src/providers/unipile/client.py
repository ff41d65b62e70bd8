from __future__ import annotations

from typing import Any

import httpx


_API_PATH = "/api/v1"


class UnipileProviderError(Exception):
    """Provider-level exception for Unipile integration failures."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or self.status_code in {429, 500, 502, 503, 504}:
            return "transient"
        if (
            "not configured" in message
            or "invalid unipile api key" in message
            or "unexpected unipile" in message
            or "no provider_id" in message
            or (self.status_code is not None and 400 <= self.status_code < 500)
        ):
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def build_base_url(dsn: str | None) -> str:
    if not dsn:
        raise UnipileProviderError("UNIPILE_DSN not configured")
    base_url = dsn.strip().rstrip("/")
    if "://" not in base_url:
        base_url = f"https://{base_url}"
    if _API_PATH not in base_url:
        base_url = f"{base_url}{_API_PATH}"
    return base_url


def _headers(token: str | None) -> dict[str, str]:
    if not token:
        raise UnipileProviderError("UNIPILE_TOKEN not configured")
    return {
        "X-API-KEY": token,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _error_detail(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("message") or payload.get("title") or fallback)
    return fallback


def _request(
    *,
    method: str,
    path: str,
    dsn: str | None,
    token: str | None,
    timeout_seconds: float,
    params: dict[str, Any] | None = None,
    json_payload: dict[str, Any] | None = None,
) -> httpx.Response:
    url = f"{build_base_url(dsn)}{path}"
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            return client.request(
                method=method,
                url=url,
                headers=_headers(token),
                params=params,
                json=json_payload,
            )
    except httpx.HTTPError as exc:
        raise UnipileProviderError(f"Unipile connectivity error: {exc}") from exc


def _parse_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise UnipileProviderError("Unexpected Unipile non-JSON response", response.status_code) from exc


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code in {401, 403}:
        raise UnipileProviderError("Invalid Unipile API key", response.status_code)
    if response.status_code >= 400:
        raise UnipileProviderError(
            f"Unipile API returned HTTP {response.status_code}: {response.text[:200]}",
            response.status_code,
        )


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload and payload["data"] is not None:
        return payload["data"]
    return payload


def lookup_profile(
    *,
    dsn: str | None,
    token: str | None,
    account_id: str,
    public_identifier: str,
    provider: str = "LINKEDIN",
    timeout_seconds: float = 15.0,
) -> dict[str, Any]:
    if not account_id:
        raise UnipileProviderError("Unipile account_id is required")
    response = _request(
        method="GET",
        path=f"/users/{public_identifier}",
        dsn=dsn,
        token=token,
        timeout_seconds=timeout_seconds,
        params={"account_id": account_id},
    )
    _raise_for_status(response)
    raw = _parse_json(response)
    data = _unwrap(raw)
    if not isinstance(data, dict):
        raise UnipileProviderError("Unexpected Unipile lookup response shape", response.status_code)

    provider_id = data.get("provider_id") or (raw.get("provider_id") if isinstance(raw, dict) else None)
    provider_id = provider_id or data.get("id") or data.get("urn_id")
    if not provider_id:
        raise UnipileProviderError("No provider_id found in Unipile lookup response", response.status_code)

    returned_identifier = data.get("public_identifier")
    full_name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
    return {
        "provider": provider,
        "provider_id": str(provider_id),
        "profile_name": data.get("name") or full_name or "Unknown",
        "public_identifier": returned_identifier or public_identifier,
        "requested_identifier": public_identifier,
        "profile_match": (
            str(returned_identifier).lower() == public_identifier.lower() if returned_identifier else True
        ),
        "raw": data,
    }


def send_invitation(
    *,
    dsn: str | None,
    token: str | None,
    account_id: str,
    provider_id: str,
    provider: str = "LINKEDIN",
    message: str | None = None,
    timeout_seconds: float = 30.0,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "provider": provider,
        "account_id": account_id,
        "provider_id": provider_id,
    }
    if message:
        payload["message"] = message
    response = _request(
        method="POST",
        path="/users/invite",
        dsn=dsn,
        token=token,
        timeout_seconds=timeout_seconds,
        json_payload=payload,
    )

    if response.status_code == 409:
        return {"success": True, "already_sent": True, "data": _parse_json(response)}
    if response.status_code == 422:
        error_payload = _parse_json(response)
        error_type = str(error_payload.get("type") or "") if isinstance(error_payload, dict) else ""
        detail = _error_detail(error_payload, "Invitation failed (422)")
        if "already_invited" in error_type or "already" in detail or "recently" in detail:
            return {"success": True, "already_sent": True, "data": error_payload}
        raise UnipileProviderError(f"Unipile invitation rejected: {detail}", 422, error_payload)
    if response.status_code == 400:
        error_payload = _parse_json(response)
        detail = _error_detail(error_payload, "Invalid request")
        raise UnipileProviderError(f"Unipile invitation rejected: {detail}", 400, error_payload)
    _raise_for_status(response)
    return {"success": True, "already_sent": False, "data": _parse_json(response)}


def send_message(
    *,
    dsn: str | None,
    token: str | None,
    account_id: str,
    provider_id: str,
    message: str,
    provider: str = "LINKEDIN",
    timeout_seconds: float = 30.0,
) -> dict[str, Any]:
    response = _request(
        method="POST",
        path="/messages/send",
        dsn=dsn,
        token=token,
        timeout_seconds=timeout_seconds,
        json_payload={
            "provider": provider,
            "account_id": account_id,
            "provider_id": provider_id,
            "message": message,
        },
    )
    _raise_for_status(response)
    return {"success": True, "data": _parse_json(response)}


def list_accounts(*, dsn: str | None, token: str | None, timeout_seconds: float = 15.0) -> list[dict[str, Any]]:
    response = _request(method="GET", path="/accounts", dsn=dsn, token=token, timeout_seconds=timeout_seconds)
    _raise_for_status(response)
    data = _unwrap(_parse_json(response))
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        return data["items"]
    if isinstance(data, list):
        return data
    raise UnipileProviderError("Unexpected Unipile list accounts response shape", response.status_code)


def get_account(
    *,
    dsn: str | None,
    token: str | None,
    account_id: str,
    timeout_seconds: float = 15.0,
) -> dict[str, Any]:
    response = _request(
        method="GET",
        path=f"/accounts/{account_id}",
        dsn=dsn,
        token=token,
        timeout_seconds=timeout_seconds,
    )
    _raise_for_status(response)
    data = _unwrap(_parse_json(response))
    if not isinstance(data, dict):
        raise UnipileProviderError("Unexpected Unipile account response shape", response.status_code)
    return data


def disconnect_account(
    *,
    dsn: str | None,
    token: str | None,
    account_id: str,
    timeout_seconds: float = 15.0,
) -> dict[str, Any]:
    response = _request(
        method="DELETE",
        path=f"/accounts/{account_id}",
        dsn=dsn,
        token=token,
        timeout_seconds=timeout_seconds,
    )
    _raise_for_status(response)
    return {"success": True, "data": _parse_json(response) if response.content else None}
