from __future__ import annotations

from typing import Any

import httpx


CALLS_PATH = "/api/voiceagent/calls"
DEFAULT_INTERNAL_API_URL = "http://localhost:3004"


class VoiceAgentProviderError(Exception):
    """Provider-level exception for call-placement failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or self.status_code in {429, 500, 502, 503, 504}:
            return "transient"
        if self.status_code is not None and 400 <= self.status_code < 500:
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def resolve_base_url(base_url: str | None) -> str:
    # Tunnel URLs leak in from local dev envs and are never reachable server side.
    if not base_url or "ngrok" in base_url:
        return DEFAULT_INTERNAL_API_URL
    return base_url.rstrip("/")


def place_call(
    *,
    base_url: str | None,
    agent_id: str,
    to_number: str,
    lead_name: str,
    added_context: str,
    lead_id: str,
    idempotency_key: str | None = None,
    timeout_seconds: float = 10.0,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "agent_id": agent_id,
        "to_number": to_number,
        "lead_name": lead_name,
        "added_context": added_context,
        "initiated_by": "system_auto_call",
        "lead_id": lead_id,
        "source": "linkedin_connection_accepted",
    }
    headers = {"Content-Type": "application/json"}
    if idempotency_key:
        payload["idempotency_key"] = idempotency_key
        headers["Idempotency-Key"] = idempotency_key

    url = f"{resolve_base_url(base_url)}{CALLS_PATH}"
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            response = client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as exc:
        raise VoiceAgentProviderError(f"Voice agent connectivity error: request timed out after {timeout_seconds}s") from exc
    except httpx.HTTPError as exc:
        raise VoiceAgentProviderError(f"Voice agent connectivity error: {exc}") from exc

    if response.status_code >= 400:
        raise VoiceAgentProviderError(
            f"Voice agent API returned HTTP {response.status_code}: {response.text[:200]}",
            response.status_code,
        )
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise VoiceAgentProviderError("Unexpected voice agent non-JSON response", response.status_code) from exc
    return body if isinstance(body, dict) else {"data": body}
