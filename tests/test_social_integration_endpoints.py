from __future__ import annotations

from fastapi.testclient import TestClient

from src.config import settings
from src.main import app
from src.providers.unipile import client as unipile_client


def _fake_lookup(**kwargs):
    identifier = kwargs["public_identifier"]
    if identifier == "ghost":
        raise unipile_client.UnipileProviderError("No provider_id found in Unipile lookup response", 200)
    return {
        "provider": kwargs["provider"],
        "provider_id": f"pid-{identifier}",
        "profile_name": "Jane Doe",
        "public_identifier": identifier,
        "requested_identifier": identifier,
        "profile_match": True,
        "raw": {},
    }


def test_list_platforms():
    response = TestClient(app).get("/api/social-integration/platforms")

    assert response.status_code == 200
    platforms = {item["name"]: item for item in response.json()}
    assert set(platforms) == {"linkedin", "instagram", "facebook", "whatsapp"}
    assert platforms["linkedin"]["features"] == ["invite", "lookup", "message"]
    assert platforms["whatsapp"]["features"] == ["message"]


def test_lookup_extracts_identifier_from_url(monkeypatch):
    calls = []

    def _lookup(**kwargs):
        calls.append(kwargs)
        return _fake_lookup(**kwargs)

    monkeypatch.setattr(unipile_client, "lookup_profile", _lookup)

    response = TestClient(app).get(
        "/api/social-integration/linkedin/lookup",
        params={"account_id": "acc-1", "profile": "https://www.linkedin.com/in/jane-doe/"},
    )

    assert response.status_code == 200
    assert response.json()["provider_id"] == "pid-jane-doe"
    assert calls[0]["public_identifier"] == "jane-doe"
    assert calls[0]["provider"] == "LINKEDIN"


def test_unknown_platform_and_unsupported_feature():
    client = TestClient(app)

    unknown = client.get("/api/social-integration/myspace/lookup", params={"account_id": "a", "profile": "x"})
    unsupported = client.post(
        "/api/social-integration/whatsapp/send-invitation",
        json={"account_id": "a", "provider_id": "p"},
    )

    assert unknown.status_code == 404
    assert unsupported.status_code == 400


def test_send_invitation_reports_already_sent(monkeypatch):
    monkeypatch.setattr(unipile_client, "lookup_profile", _fake_lookup)
    monkeypatch.setattr(
        unipile_client,
        "send_invitation",
        lambda **kwargs: {"success": True, "already_sent": True, "data": {"detail": "conflict"}},
    )

    response = TestClient(app).post(
        "/api/social-integration/linkedin/send-invitation",
        json={"account_id": "acc-1", "profile": "linkedin.com/in/jdoe", "message": "Hi"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["already_sent"] is True
    assert body["provider_id"] == "pid-jdoe"
    assert body["profile_name"] == "Jane Doe"


def test_send_invitation_requires_recipient():
    response = TestClient(app).post("/api/social-integration/linkedin/send-invitation", json={"account_id": "acc-1"})

    assert response.status_code == 400


def test_provider_errors_map_to_gateway_statuses(monkeypatch):
    def _unavailable(**kwargs):
        raise unipile_client.UnipileProviderError("Unipile API returned HTTP 503: busy", 503)

    monkeypatch.setattr(unipile_client, "send_message", _unavailable)
    client = TestClient(app)

    retryable = client.post(
        "/api/social-integration/linkedin/send-message",
        json={"account_id": "acc-1", "provider_id": "p-1", "message": "hello"},
    )
    monkeypatch.setattr(unipile_client, "lookup_profile", _fake_lookup)
    terminal = client.get("/api/social-integration/linkedin/lookup", params={"account_id": "a", "profile": "ghost"})

    assert retryable.status_code == 503
    assert retryable.json()["detail"]["type"] == "provider_error"
    assert retryable.json()["detail"]["retryable"] is True
    assert terminal.status_code == 502
    assert terminal.json()["detail"]["category"] == "terminal"


def test_batch_invitations_tally_outcomes(monkeypatch):
    def _invite(**kwargs):
        if kwargs["provider_id"] == "pid-dup":
            return {"success": True, "already_sent": True, "data": None}
        if kwargs["provider_id"] == "pid-bad":
            raise unipile_client.UnipileProviderError("Unipile invitation rejected: nope", 422)
        return {"success": True, "already_sent": False, "data": None}

    monkeypatch.setattr(unipile_client, "lookup_profile", _fake_lookup)
    monkeypatch.setattr(unipile_client, "send_invitation", _invite)

    response = TestClient(app).post(
        "/api/social-integration/linkedin/batch-send-invitations",
        json={
            "account_id": "acc-1",
            "delay_ms": 0,
            "recipients": [
                {"profile": "linkedin.com/in/ok"},
                {"profile": "linkedin.com/in/dup"},
                {"profile": "linkedin.com/in/bad"},
                {"name": "no reference"},
            ],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 4
    assert body["successful"] == 1
    assert body["already_sent"] == 1
    assert body["failed"] == 2
    assert [item["status"] for item in body["results"]] == ["sent", "already_sent", "failed", "failed"]


def test_whatsapp_message_uses_phone_digits(monkeypatch):
    calls = []

    def _send(**kwargs):
        calls.append(kwargs)
        return {"success": True, "data": {"message_id": "m-1"}}

    monkeypatch.setattr(unipile_client, "send_message", _send)

    response = TestClient(app).post(
        "/api/social-integration/whatsapp/send-message",
        json={"account_id": "acc-1", "profile": "+1 (415) 555-0100", "message": "hello"},
    )

    assert response.status_code == 200
    assert calls[0]["provider_id"] == "14155550100"
    assert calls[0]["provider"] == "WHATSAPP"


def test_accounts_are_grouped_by_platform(monkeypatch):
    monkeypatch.setattr(
        unipile_client,
        "list_accounts",
        lambda **kwargs: [
            {"id": "acc-1", "type": "LINKEDIN"},
            {"id": "acc-2", "type": "MESSENGER"},
            {"id": "acc-3", "type": "WHATSAPP"},
            {"id": "acc-4", "type": "TELEGRAM"},
            {"id": "acc-5", "type": "LINKEDIN"},
        ],
    )

    response = TestClient(app).get("/api/social-integration/accounts")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 5
    assert [account["id"] for account in body["accounts"]["linkedin"]] == ["acc-1", "acc-5"]
    assert [account["id"] for account in body["accounts"]["facebook"]] == ["acc-2"]
    assert [account["id"] for account in body["accounts"]["whatsapp"]] == ["acc-3"]
    assert body["accounts"]["instagram"] == []
    assert [account["id"] for account in body["accounts"]["other"]] == ["acc-4"]


def test_accounts_provider_failure_is_retryable_gateway_error(monkeypatch):
    def _down(**kwargs):
        raise unipile_client.UnipileProviderError("Unipile API connectivity error: refused")

    monkeypatch.setattr(unipile_client, "list_accounts", _down)

    response = TestClient(app).get("/api/social-integration/accounts")

    assert response.status_code == 503
    assert response.json()["detail"]["operation"] == "list_accounts"


def test_platform_status_reports_configuration(monkeypatch):
    client = TestClient(app)
    monkeypatch.setattr(settings, "unipile_dsn", "https://u.test")
    monkeypatch.setattr(settings, "unipile_token", "tok")
    ready = client.get("/api/social-integration/linkedin/status")
    monkeypatch.setattr(settings, "unipile_token", None)
    missing = client.get("/api/social-integration/instagram/status")

    assert ready.json() == {
        "success": True,
        "platform": "linkedin",
        "configured": True,
        "message": "Platform is configured and ready",
    }
    assert missing.json()["configured"] is False
    assert missing.json()["message"] == "Platform credentials not configured"
    assert client.get("/api/social-integration/myspace/status").status_code == 404


def test_platform_status_for_account(monkeypatch):
    calls = []

    def _get_account(**kwargs):
        calls.append(kwargs)
        if kwargs["account_id"] == "gone":
            raise unipile_client.UnipileProviderError("Unipile API returned HTTP 404: not found", 404)
        return {"id": kwargs["account_id"], "type": "LINKEDIN", "name": "Sales seat"}

    monkeypatch.setattr(unipile_client, "get_account", _get_account)
    client = TestClient(app)

    connected = client.get("/api/social-integration/linkedin/status", params={"account_id": "acc-1"})
    gone = client.get("/api/social-integration/linkedin/status", params={"account_id": "gone"})

    assert connected.status_code == 200
    assert connected.json()["connected"] is True
    assert connected.json()["account"]["name"] == "Sales seat"
    assert calls[0]["account_id"] == "acc-1"
    assert gone.status_code == 502
    assert gone.json()["detail"]["upstream_status"] == 404


def test_disconnect_requires_account_id_and_calls_provider(monkeypatch):
    calls = []

    def _disconnect(**kwargs):
        calls.append(kwargs)
        return {"success": True, "data": {"object": "AccountDeleted"}}

    monkeypatch.setattr(unipile_client, "disconnect_account", _disconnect)
    client = TestClient(app)

    missing = client.post("/api/social-integration/linkedin/disconnect", json={})
    done = client.post("/api/social-integration/linkedin/disconnect", json={"account_id": "acc-1"})

    assert missing.status_code == 400
    assert done.status_code == 200
    assert done.json() == {
        "success": True,
        "platform": "linkedin",
        "account_id": "acc-1",
        "data": {"object": "AccountDeleted"},
    }
    assert [call["account_id"] for call in calls] == ["acc-1"]
