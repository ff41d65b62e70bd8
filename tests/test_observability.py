import json
import logging

from src.observability import metric_key, metrics_snapshot, record_skip


def test_metric_key_orders_labels():
    assert metric_key("webhook.events.received") == "webhook.events.received"
    assert metric_key("side_effect.auto_call", outcome="placed", channel="linkedin") == (
        "side_effect.auto_call|channel=linkedin,outcome=placed"
    )


def test_record_skip_counts_reason_and_logs_fields(caplog):
    caplog.set_level(logging.INFO, logger="social_integration")

    record_skip("webhook.acceptance.skipped", "lead_acceptance_skipped", "call_already_made", lead_id="lead-1")
    record_skip(
        "webhook.acceptance.skipped",
        "lead_acceptance_skipped",
        "call_already_made",
        request_id="req-9",
        lead_id="lead-2",
    )

    assert metrics_snapshot() == {"webhook.acceptance.skipped|reason=call_already_made": 2}
    payloads = [json.loads(record.getMessage()) for record in caplog.records]
    assert payloads[0] == {"event": "lead_acceptance_skipped", "lead_id": "lead-1", "reason": "call_already_made"}
    assert payloads[1]["request_id"] == "req-9"
