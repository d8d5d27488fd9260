import json
import logging

from whoami_chat.obs import logging as obs_logging


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("whoami.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_includes_bound_context():
    tokens = obs_logging.bind_context(user_id="me", event="newMessage")
    try:
        payload = json.loads(obs_logging.JSONLogFormatter().format(_record("applied")))
    finally:
        obs_logging.reset_context(tokens)

    assert payload["msg"] == "applied"
    assert payload["user_id"] == "me"
    assert payload["event"] == "newMessage"
    assert payload["service"] == "whoami-chat"


def test_formatter_redacts_sensitive_extras():
    record = _record("sent", body="secret text", session_user="me", peers=list(range(20)), target="x" * 300)
    payload = json.loads(obs_logging.JSONLogFormatter().format(record))

    assert payload["body"] == "[redacted]"
    assert payload["session_user"] == "me"
    assert len(payload["peers"]) == 11
    assert len(payload["target"]) == 257
    assert "user_id" not in payload


def test_sampling_filter_keeps_warnings(monkeypatch):
    from whoami_chat.settings import settings

    monkeypatch.setattr(settings, "obs_log_sampling_rate_info", 0.0)
    sampler = obs_logging.InfoSamplingFilter()
    assert sampler.filter(_record("dropped")) is False
    warning = _record("kept")
    warning.levelno = logging.WARNING
    assert sampler.filter(warning) is True
