from __future__ import annotations

import json

import httpx
import pytest

from src.providers.voice_agent import client as voice_client


def _install_transport(monkeypatch, handler):
    real_client = httpx.Client
    monkeypatch.setattr(
        voice_client.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def _call(**overrides):
    kwargs = {
        "base_url": "http://voice.internal/",
        "agent_id": "24",
        "to_number": "+14155550100",
        "lead_name": "Jane Doe",
        "added_context": "Calling Jane Doe who just accepted our LinkedIn connection request.",
        "lead_id": "lead-1",
        "idempotency_key": "linkedin-accept:lead-1",
    }
    kwargs.update(overrides)
    return voice_client.place_call(**kwargs)


def test_place_call_posts_expected_body(monkeypatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "call_id": "c-1"})

    _install_transport(monkeypatch, handler)
    result = _call()

    assert result == {"success": True, "call_id": "c-1"}
    assert str(seen[0].url) == "http://voice.internal/api/voiceagent/calls"
    assert seen[0].headers["Idempotency-Key"] == "linkedin-accept:lead-1"
    body = json.loads(seen[0].content)
    assert body["initiated_by"] == "system_auto_call"
    assert body["source"] == "linkedin_connection_accepted"
    assert body["lead_id"] == "lead-1"
    assert body["idempotency_key"] == "linkedin-accept:lead-1"


def test_tunnel_urls_fall_back_to_internal_default():
    assert voice_client.resolve_base_url("https://abcd.ngrok-free.app") == "http://localhost:3004"
    assert voice_client.resolve_base_url(None) == "http://localhost:3004"
    assert voice_client.resolve_base_url("http://calls.svc:8080/") == "http://calls.svc:8080"


def test_timeout_raises_provider_error(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    _install_transport(monkeypatch, handler)

    with pytest.raises(voice_client.VoiceAgentProviderError) as exc_info:
        _call(timeout_seconds=0.5)

    assert "timed out" in str(exc_info.value)
    assert exc_info.value.retryable is True


def test_http_error_status_raises(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(400, json={"error": "bad number"}))

    with pytest.raises(voice_client.VoiceAgentProviderError) as exc_info:
        _call()

    assert exc_info.value.status_code == 400
    assert exc_info.value.category == "terminal"


def test_empty_body_counts_as_accepted(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(202))

    assert _call() == {}
