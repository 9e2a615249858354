"""
Tests for application config (Settings).

Ensures settings load from the MIXROOM_ environment and defaults are sane.
"""
from __future__ import annotations

import logging

import pytest

from mixroom.config import PAYMENT_STATUSES, Settings


def test_settings_loads_with_env() -> None:
    from mixroom.config import settings

    assert settings.app_name == "Mixroom"
    assert settings.app_version
    assert hasattr(settings, "database_url")


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MIXROOM_RATE_LIMIT_ENABLED", raising=False)
    s = Settings(_env_file=None)
    assert s.mutation_debounce_ms == 500
    assert s.share_token_bytes == 24
    assert s.access_token_algorithm == "HS256"
    assert s.rate_limit_enabled is True
    assert s.cors_origins == []


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIXROOM_MUTATION_DEBOUNCE_MS", "50")
    monkeypatch.setenv("MIXROOM_PORTAL_RATE_LIMIT", "10/minute")
    s = Settings(_env_file=None)
    assert s.mutation_debounce_ms == 50
    assert s.portal_rate_limit == "10/minute"


def test_cors_wildcard_warns_outside_debug(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="mixroom.config"):
        Settings(_env_file=None, debug=False, cors_origins=["*"])
    assert "CORS allows all origins" in caplog.text


def test_payment_statuses() -> None:
    assert PAYMENT_STATUSES == ("unpaid", "partial", "paid")
