"""Dramatiq broker selection for the precompute actor.

``COHORTMILL_BROKER_URL`` points the actor at RabbitMQ. Without it a
``StubBroker`` is used only under pytest or when
``COHORTMILL_ALLOW_STUB_BROKER`` is truthy.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.rabbitmq import RabbitmqBroker
from dramatiq.brokers.stub import StubBroker

BROKER_URL_ENV_VAR = "COHORTMILL_BROKER_URL"
ALLOW_STUB_ENV_VAR = "COHORTMILL_ALLOW_STUB_BROKER"

_TRUTHY = frozenset({"1", "true", "yes"})

_BROKER_LOCK = threading.Lock()
_broker_configured = False


def _is_running_tests() -> bool:
    return "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ


def _stub_allowed() -> bool:
    raw = os.environ.get(ALLOW_STUB_ENV_VAR, "")
    return raw.strip().lower() in _TRUTHY or _is_running_tests()


def broker_from_env() -> dramatiq.Broker:
    """Build the broker the environment selects.

    Returns
    -------
    dramatiq.Broker
        A ``RabbitmqBroker`` for ``COHORTMILL_BROKER_URL``, otherwise a
        ``StubBroker`` where one is allowed.

    Raises
    ------
    RuntimeError
        If no broker URL is set and a stub broker is not allowed.

    """
    url = os.environ.get(BROKER_URL_ENV_VAR, "").strip()
    if url:
        return RabbitmqBroker(url=url)
    if _stub_allowed():
        return StubBroker()
    msg = (
        f"No Dramatiq broker configured. Set {BROKER_URL_ENV_VAR} to a "
        f"RabbitMQ URL, or {ALLOW_STUB_ENV_VAR}=1 for local runs."
    )
    raise RuntimeError(msg)


def _current_broker() -> dramatiq.Broker | None:
    try:
        return dramatiq.get_broker()
    except (ImportError, LookupError):
        return None


def ensure_broker_configured() -> None:
    """Install the environment's broker unless one is already set.

    Safe to call from every actor invocation; only the first call inspects
    the global broker.
    """
    global _broker_configured

    if _broker_configured:
        return

    with _BROKER_LOCK:
        if _broker_configured:
            return
        if _current_broker() is None:
            dramatiq.set_broker(broker_from_env())
        _broker_configured = True
