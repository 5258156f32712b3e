"""
Pytest fixtures and test configuration for gigmarket tests.
"""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from gigmarket import Marketplace, Role, UserRef
from gigmarket.lifecycle.events import RecordingSubscriber
from gigmarket.types import utc_now


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep logs and databases out of the real home directory."""
    monkeypatch.setenv("GIGMARKET_DATA_DIR", str(tmp_path / "home"))
    for name in ("GIGMARKET_MODEL_PROVIDER", "GIGMARKET_MODEL", "CLAUDE_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    yield
    for name in ("gigmarket", "gigmarket.events"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


@pytest.fixture
def client():
    return UserRef("client-1", Role.CLIENT)


@pytest.fixture
def other_client():
    return UserRef("client-2", Role.CLIENT)


@pytest.fixture
def freelancer():
    return UserRef("freelancer-1", Role.FREELANCER)


@pytest.fixture
def other_freelancer():
    return UserRef("freelancer-2", Role.FREELANCER)


@pytest.fixture
def admin():
    return UserRef("admin-1", Role.ADMIN)


@pytest.fixture
def deadline():
    return utc_now() + timedelta(days=7)


@pytest.fixture
def recorder():
    return RecordingSubscriber()


@pytest.fixture
def market(recorder):
    """In-memory marketplace with every event recorded."""
    m = Marketplace.in_memory()
    m.events.subscribe(recorder)
    return m


@pytest.fixture
def posted_job(market, client, deadline):
    """An open $500 job from a client holding $1000."""
    market.ledger.top_up(client.id, Decimal("1000.00"), "card-1")
    return market.lifecycle.create_job(
        client, "Build a landing page", "Responsive landing page", "web", Decimal("500.00"), deadline
    )


@pytest.fixture
def proposed_job(market, posted_job, freelancer):
    """posted_job with one proposal from freelancer."""
    market.lifecycle.submit_proposal(posted_job.id, freelancer, "I can do this", Decimal("450.00"))
    return posted_job


@pytest.fixture
def hired_job(market, proposed_job, client, freelancer):
    return market.lifecycle.hire(proposed_job.id, client, freelancer.id)
