"""Unit tests for Dramatiq broker selection."""

from __future__ import annotations

import dramatiq
import pytest
from dramatiq.brokers.rabbitmq import RabbitmqBroker
from dramatiq.brokers.stub import StubBroker

from cohortmill.reporting import _broker


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(_broker.BROKER_URL_ENV_VAR, raising=False)
    monkeypatch.delenv(_broker.ALLOW_STUB_ENV_VAR, raising=False)
    monkeypatch.setattr(_broker, "_broker_configured", False)


class TestBrokerFromEnv:
    """Tests for broker_from_env."""

    def test_broker_url_selects_rabbitmq(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A broker URL always wins over the stub broker."""
        monkeypatch.setenv(_broker.BROKER_URL_ENV_VAR, "amqp://guest@mq:5672/%2F")

        assert isinstance(_broker.broker_from_env(), RabbitmqBroker)

    def test_stub_when_allowed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The allow flag permits a stub broker outside tests."""
        monkeypatch.setattr(_broker, "_is_running_tests", lambda: False)
        monkeypatch.setenv(_broker.ALLOW_STUB_ENV_VAR, "yes")

        assert isinstance(_broker.broker_from_env(), StubBroker)

    def test_refuses_without_configuration(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Outside tests a missing broker URL is an error naming both settings."""
        monkeypatch.setattr(_broker, "_is_running_tests", lambda: False)

        with pytest.raises(RuntimeError) as excinfo:
            _broker.broker_from_env()

        assert _broker.BROKER_URL_ENV_VAR in str(excinfo.value)
        assert _broker.ALLOW_STUB_ENV_VAR in str(excinfo.value)


class TestEnsureBrokerConfigured:
    """Tests for ensure_broker_configured."""

    def test_installs_broker_when_none_is_set(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without a global broker the environment's broker is installed once."""
        installed: list[dramatiq.Broker] = []
        monkeypatch.setattr(_broker, "_current_broker", lambda: None)
        monkeypatch.setattr(dramatiq, "set_broker", installed.append)

        _broker.ensure_broker_configured()
        _broker.ensure_broker_configured()

        assert len(installed) == 1, "configuration should be idempotent"
        assert isinstance(installed[0], StubBroker)

    def test_keeps_existing_broker(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An already configured broker is left in place."""
        installed: list[dramatiq.Broker] = []
        monkeypatch.setattr(dramatiq, "set_broker", installed.append)

        _broker.ensure_broker_configured()

        assert installed == []
