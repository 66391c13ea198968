import logging

from flox import logging_config
from flox.logging_config import add_service_context, configure_logging, redact_secrets


def test_secrets_are_masked():
    event = redact_secrets(None, "info", {
        "event": "subscription_provisioned",
        "client_secret": "seti_1_secret",
        "authorization": "Bearer abc",
        "token": None,
        "user_id": "user_1",
    })

    assert event["client_secret"] == "***"
    assert event["authorization"] == "***"
    assert event["token"] is None
    assert event["user_id"] == "user_1"


def test_service_context_does_not_override_bound_values():
    event = add_service_context(None, "info", {"event": "app_starting", "env": "staging"})

    assert event["service"] == "flox"
    assert event["env"] == "staging"


def test_quiet_loggers_follow_log_level(monkeypatch):
    monkeypatch.setattr(logging_config.settings, "log_level", "INFO")
    configure_logging()
    assert logging.getLogger("stripe").level == logging.WARNING

    logging.getLogger("stripe").setLevel(logging.NOTSET)
    monkeypatch.setattr(logging_config.settings, "log_level", "DEBUG")
    configure_logging()
    assert logging.getLogger("stripe").level == logging.NOTSET
