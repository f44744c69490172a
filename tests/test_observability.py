"""Tests for Sentry initialization."""

import pytest
from pydantic import SecretStr

from switchboard import observability
from switchboard.config import SentryConfig


def test_skips_without_config():
    assert observability.init_sentry(None) is False


def test_skips_without_dsn():
    assert observability.init_sentry(SentryConfig()) is False


def test_skips_when_sdk_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(observability, "SENTRY_AVAILABLE", False)
    config = SentryConfig(dsn=SecretStr("https://key@sentry.example/1"))

    assert observability.init_sentry(config) is False


def test_initializes_with_dsn(monkeypatch: pytest.MonkeyPatch):
    sentry_sdk = pytest.importorskip("sentry_sdk")
    calls: list[dict] = []
    monkeypatch.setattr(sentry_sdk, "init", lambda **kwargs: calls.append(kwargs))
    config = SentryConfig(
        dsn=SecretStr("https://key@sentry.example/1"), environment="staging"
    )

    assert observability.init_sentry(config) is True
    assert calls[0]["dsn"] == "https://key@sentry.example/1"
    assert calls[0]["environment"] == "staging"
    assert calls[0]["before_send"] is observability.scrub_event


def test_scrub_event_redacts_log_message():
    event = {
        "logentry": {
            "message": "handler_failed token=sk-proj-abcdefghijklmnopqrstuvwxyz123456"
        }
    }

    scrubbed = observability.scrub_event(event, {})

    assert "abcdefghijklmnopqrstuvwxyz" not in scrubbed["logentry"]["message"]
    assert scrubbed["logentry"]["message"].startswith("handler_failed")
