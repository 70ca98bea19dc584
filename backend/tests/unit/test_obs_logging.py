import json
import logging

from app.obs import logging as obs_logging


def _record(level=logging.INFO, msg="ranking_job.done", **extra):
    record = logging.makeLogRecord(
        {"name": "marketplace.test", "levelno": level, "levelname": logging.getLevelName(level), "msg": msg}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_context_and_extra():
    tokens = obs_logging.bind_context(request_id="req-1", route="/users/search", client_ip="10.0.0.1")
    try:
        line = obs_logging.JSONLogFormatter().format(_record(updated=3, score="discovery"))
    finally:
        obs_logging.reset_context(tokens)

    payload = json.loads(line)
    assert payload["msg"] == "ranking_job.done"
    assert payload["level"] == "info"
    assert payload["request_id"] == "req-1"
    assert payload["route"] == "/users/search"
    assert payload["ip"] == "10.0.0.1"
    assert payload["updated"] == 3
    assert payload["score"] == "discovery"
    assert "lineno" not in payload


def test_formatter_redacts_sensitive_fields_and_truncates():
    record = _record(
        phone_number="+34 600 000 000",
        auth_token="abc",
        bio="long story",
        note="x" * 400,
        targets=[f"u{i}" for i in range(15)],
        nested={"password": "hunter2", "city": "Madrid"},
    )

    payload = json.loads(obs_logging.JSONLogFormatter().format(record))

    assert payload["phone_number"] == "[redacted]"
    assert payload["auth_token"] == "[redacted]"
    assert payload["bio"] == "[redacted]"
    assert len(payload["note"]) == 257
    assert payload["targets"][-1] == "…"
    assert len(payload["targets"]) == 11
    assert payload["nested"] == {"password": "[redacted]", "city": "Madrid"}


def test_reset_context_restores_previous_values():
    outer = obs_logging.bind_context(request_id="outer")
    inner = obs_logging.bind_context(request_id="inner", user_id="u1")
    obs_logging.reset_context(inner)

    payload = json.loads(obs_logging.JSONLogFormatter().format(_record()))
    obs_logging.reset_context(outer)

    assert payload["request_id"] == "outer"
    assert "user_id" not in payload


def test_sampling_filter_only_drops_info_records():
    drop_all = obs_logging.InfoSamplingFilter(rate=0.0)
    keep_all = obs_logging.InfoSamplingFilter(rate=1.0)

    assert drop_all.filter(_record(logging.INFO)) is False
    assert drop_all.filter(_record(logging.WARNING)) is True
    assert drop_all.filter(_record(logging.DEBUG)) is True
    assert keep_all.filter(_record(logging.INFO)) is True


def test_sampling_filter_reads_rate_from_settings(monkeypatch):
    from app.settings import settings

    monkeypatch.setattr(settings, "obs_log_sampling_rate_info", 0.0)

    assert obs_logging.InfoSamplingFilter().filter(_record(logging.INFO)) is False
