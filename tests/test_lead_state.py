from datetime import datetime, timedelta, timezone

from src.domain.lead_state import LeadStateMachine, can_transition, parse_event_timestamp
from src.stores import build_stores


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _machine(db):
    stores = build_stores(db)
    return LeadStateMachine(stores.leads, stores.stages, stores.call_history)


def _seed(db, **lead_fields):
    lead = {"id": "lead-1", "status": "request_sent", "stage": "sent", "organization_id": "org-1", "is_deleted": False}
    lead.update(lead_fields)
    db.tables.update(
        {
            "leads": [lead],
            "lead_stages": [
                {"organization_id": "org-1", "key": "contacted", "name": "Request Sent", "display_order": 1},
                {"organization_id": "org-1", "key": "accepted_stage", "name": "Accepted", "display_order": 2},
                {"organization_id": "org-1", "key": "dialed", "name": "Call Triggered", "display_order": 3},
            ],
            "call_logs_voiceagent": [],
        }
    )
    return dict(lead)


def test_parse_event_timestamp_formats():
    assert parse_event_timestamp(1714564800000) == NOW
    assert parse_event_timestamp("1714564800000") == NOW
    assert parse_event_timestamp("2024-05-01T12:00:00Z") == NOW
    assert parse_event_timestamp("2024-05-01T12:00:00") == NOW
    assert parse_event_timestamp("not a date") is None
    assert parse_event_timestamp(None) is None


def test_transition_table():
    assert can_transition("request_sent", "request_accepted")
    assert can_transition(None, "request_sent")
    assert not can_transition("call_triggered", "request_accepted")
    assert can_transition("some_crm_status", "request_accepted")


def test_stage_keys_resolved_per_organization(fake_db):
    _seed(fake_db)
    machine = _machine(fake_db)

    assert machine.resolve_stage_key("org-1", "request_sent") == "contacted"
    assert machine.resolve_stage_key("org-1", "request_accepted") == "accepted_stage"
    assert machine.resolve_stage_key("org-1", "call_triggered") == "dialed"
    assert machine.resolve_stage_key("org-1", "request_declined") is None
    assert machine.resolve_stage_key("org-2", "request_accepted") == "request_accepted"


def test_declined_updates_status_only(fake_db):
    lead = _seed(fake_db)

    _machine(fake_db).mark_request_declined(lead)

    row = fake_db.rows("leads")[0]
    assert row["status"] == "request_declined"
    assert row["stage"] == "sent"


def test_accepted_is_not_rewritten_when_already_applied(fake_db):
    lead = _seed(fake_db, status="request_accepted", stage="accepted_stage", updated_at="2024-01-01")

    returned, changed = _machine(fake_db).mark_request_accepted(lead)

    assert changed is False
    assert returned["id"] == "lead-1"
    assert fake_db.rows("leads")[0]["updated_at"] == "2024-01-01"


def test_stale_event_guard():
    machine = LeadStateMachine(None, None, None)
    assert machine.is_stale_event(NOW - timedelta(hours=25), NOW)
    assert not machine.is_stale_event(NOW - timedelta(minutes=30), NOW)
    assert not machine.is_stale_event(None, NOW)


def test_guards_skip_call_triggered_stage(fake_db):
    lead = _seed(fake_db, stage="dialed")

    result = _machine(fake_db).check_acceptance_guards(lead, event_time=None, received_at=NOW)

    assert result.skipped
    assert result.reason == "stage_already_call_triggered"


def test_guards_skip_recent_connection_call(fake_db):
    lead = _seed(fake_db)
    started = datetime.now(timezone.utc) - timedelta(days=1)
    fake_db.rows("call_logs_voiceagent").extend(
        [
            {
                "id": "call-1",
                "target": "lead-1",
                "added_context": "Calling Jane who just accepted our LinkedIn connection request.",
                "started_at": started.isoformat(),
            },
            {
                "id": "call-2",
                "target": "lead-1",
                "added_context": "Follow-up call",
                "idempotency_key": "linkedin-accept:lead-1",
                "started_at": (started - timedelta(hours=1)).isoformat(),
            },
            {
                "id": "call-3",
                "target": "lead-1",
                "added_context": "Unrelated campaign call",
                "started_at": started.isoformat(),
            },
        ]
    )

    result = _machine(fake_db).check_acceptance_guards(
        lead, event_time=None, received_at=datetime.now(timezone.utc)
    )

    assert result.reason == "call_already_made"
    assert result.existing_call_id == "call-1"
    assert result.call_count == 2


def test_guards_ignore_calls_outside_lookback(fake_db):
    lead = _seed(fake_db)
    fake_db.rows("call_logs_voiceagent").append(
        {
            "id": "call-old",
            "target": "lead-1",
            "added_context": "LinkedIn connection request",
            "started_at": (datetime.now(timezone.utc) - timedelta(days=8)).isoformat(),
        }
    )

    assert (
        _machine(fake_db).check_acceptance_guards(lead, event_time=None, received_at=datetime.now(timezone.utc))
        is None
    )


def test_call_triggered_transition_uses_org_stage(fake_db):
    lead = _seed(fake_db, status="request_accepted", stage="accepted_stage")

    updated = _machine(fake_db).mark_call_triggered(lead)

    assert updated["status"] == "call_triggered"
    assert updated["stage"] == "dialed"
