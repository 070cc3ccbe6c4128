"""Shared fixtures for the TrustGate test suite."""

import os

import pytest

from trustgate.common.config import Config, reset_config
from trustgate.context.deriver import ContextDeriver
from trustgate.context.geolocation import StaticResolver
from trustgate.governance.policies.engine import SessionPolicyEngine
from trustgate.lifecycle.manager import SessionLifecycleManager
from trustgate.notifications.bus import EventBus
from trustgate.notifications.sink import CollectingSink
from trustgate.risk.scorer import RiskScorer
from trustgate.store.memory import InMemoryPolicyStore, InMemorySessionStore

from fixtures.sessions import BERLIN, NEW_YORK, TOKYO


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate every test from TRUSTGATE_* variables in the environment."""
    for name in list(os.environ):
        if name.startswith("TRUSTGATE_"):
            monkeypatch.delenv(name)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def policy_engine():
    return SessionPolicyEngine(policy_store=InMemoryPolicyStore())


@pytest.fixture
def resolver():
    return StaticResolver({
        NEW_YORK.ip_address: NEW_YORK,
        TOKYO.ip_address: TOKYO,
        BERLIN.ip_address: BERLIN,
    })


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def event_bus(sink):
    return EventBus(sinks=[sink])


@pytest.fixture
def manager(store, policy_engine, resolver, event_bus, config):
    return SessionLifecycleManager(
        store,
        policy_engine=policy_engine,
        context_deriver=ContextDeriver(resolver),
        risk_scorer=RiskScorer(store),
        event_bus=event_bus,
        config=config,
    )
