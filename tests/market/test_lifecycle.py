"""
Tests for JobLifecycle: the write path that ties jobs, proposals and escrow together.

Fixtures (client, freelancer, market, posted_job, ...) live in tests/conftest.py.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest.mock import patch

import pytest

from gigmarket import MarketConfig, Marketplace, Role, UserRef
from gigmarket.errors import (
    Forbidden,
    InsufficientFunds,
    InvalidTransition,
    JobNotOpen,
    ProposalNotFound,
    StorageError,
)
from gigmarket.lifecycle import DisputeResolution, JobEventType

DELIVERABLE = {"name": "site.zip", "url": "https://files.example/site.zip"}


def _submitted(market, job, client, freelancer):
    market.lifecycle.start_work(job.id, freelancer)
    return market.lifecycle.submit_deliverable(job.id, freelancer, [DELIVERABLE])


class TestHappyPath:
    def test_full_lifecycle_pays_freelancer(self, market, posted_job, client, freelancer, recorder):
        market.lifecycle.submit_proposal(posted_job.id, freelancer, "I can do this", Decimal("450.00"))

        job = market.lifecycle.hire(posted_job.id, client, freelancer.id)
        assert job.status == "hired"
        assert job.hired_freelancer_id == freelancer.id
        assert market.ledger.get_balance(client.id) == Decimal("500.00")
        assert market.ledger.get_hold(job.id).state == "held"

        job = market.lifecycle.start_work(job.id, freelancer)
        assert job.status == "in_progress"

        job = market.lifecycle.submit_deliverable(job.id, freelancer, [DELIVERABLE])
        assert job.status == "submitted"
        assert job.deliverables[0].url == DELIVERABLE["url"]

        job = market.lifecycle.approve(job.id, client)
        assert job.status == "completed"
        assert job.completed_at is not None
        assert market.ledger.get_balance(freelancer.id) == Decimal("500.00")
        assert market.ledger.get_balance(client.id) == Decimal("500.00")
        assert market.ledger.get_hold(job.id).state == "released"

        assert recorder.types == [
            JobEventType.CREATED,
            JobEventType.PROPOSAL_SUBMITTED,
            JobEventType.HIRED,
            JobEventType.WORK_STARTED,
            JobEventType.SUBMITTED,
            JobEventType.COMPLETED,
        ]
        assert [(t.from_status, t.to_status) for t in market.lifecycle.get_job_history(job.id)] == [
            ("open", "hired"),
            ("hired", "in_progress"),
            ("in_progress", "submitted"),
            ("submitted", "completed"),
        ]

    def test_revision_round_trip(self, market, hired_job, client, freelancer):
        _submitted(market, hired_job, client, freelancer)
        job = market.lifecycle.reject_submission(hired_job.id, client, reason="needs dark mode")
        assert job.status == "in_progress"
        job = market.lifecycle.submit_deliverable(hired_job.id, freelancer, [DELIVERABLE])
        assert job.status == "submitted"
        assert market.lifecycle.approve(hired_job.id, client).status == "completed"

    def test_auto_start_work(self, client, freelancer, deadline):
        market = Marketplace.in_memory(config=MarketConfig(auto_start_work=True))
        market.ledger.top_up(client.id, Decimal("100"), "card-1")
        job = market.lifecycle.create_job(client, "Copy", "Write copy", "", Decimal("100"), deadline)
        market.lifecycle.submit_proposal(job.id, freelancer, "Hello", Decimal("100"))
        job = market.lifecycle.hire(job.id, client, freelancer.id)
        assert job.status == "in_progress"


class TestRoles:
    def test_only_clients_post(self, market, freelancer, deadline):
        with pytest.raises(Forbidden):
            market.lifecycle.create_job(freelancer, "T", "D", "", Decimal("10"), deadline)

    def test_only_freelancers_propose(self, market, posted_job, other_client):
        with pytest.raises(Forbidden):
            market.lifecycle.submit_proposal(posted_job.id, other_client, "hi", Decimal("10"))

    def test_only_job_client_hires(self, market, proposed_job, other_client, freelancer):
        with pytest.raises(Forbidden):
            market.lifecycle.hire(proposed_job.id, other_client, freelancer.id)

    def test_only_hired_freelancer_submits(self, market, hired_job, freelancer, other_freelancer):
        market.lifecycle.start_work(hired_job.id, freelancer)
        with pytest.raises(Forbidden):
            market.lifecycle.submit_deliverable(hired_job.id, other_freelancer, [DELIVERABLE])

    def test_only_client_approves(self, market, hired_job, client, freelancer):
        _submitted(market, hired_job, client, freelancer)
        with pytest.raises(Forbidden):
            market.lifecycle.approve(hired_job.id, freelancer)
        assert market.ledger.get_hold(hired_job.id).state == "held"

    def test_only_admin_resolves(self, market, hired_job, client):
        market.lifecycle.dispute(hired_job.id, client)
        with pytest.raises(Forbidden):
            market.lifecycle.resolve_dispute(hired_job.id, client, "client")

    def test_outsider_cannot_dispute(self, market, hired_job, other_freelancer):
        with pytest.raises(Forbidden):
            market.lifecycle.dispute(hired_job.id, other_freelancer)


class TestHire:
    def test_insufficient_funds_leaves_job_open(self, market, client, freelancer, deadline):
        market.ledger.top_up(client.id, Decimal("100.00"), "card-1")
        job = market.lifecycle.create_job(client, "Big job", "D", "", Decimal("500.00"), deadline)
        market.lifecycle.submit_proposal(job.id, freelancer, "hi", Decimal("500"))

        with pytest.raises(InsufficientFunds):
            market.lifecycle.hire(job.id, client, freelancer.id)

        job = market.lifecycle.get_job(job.id)
        assert job.status == "open"
        assert job.hired_freelancer_id is None
        assert market.ledger.get_hold(job.id) is None
        assert market.ledger.get_balance(client.id) == Decimal("100.00")

    def test_requires_proposal(self, market, posted_job, client, other_freelancer):
        with pytest.raises(ProposalNotFound):
            market.lifecycle.hire(posted_job.id, client, other_freelancer.id)

    def test_cannot_hire_twice(self, market, hired_job, client, other_freelancer):
        with pytest.raises(InvalidTransition):
            market.lifecycle.hire(hired_job.id, client, other_freelancer.id)

    def test_no_proposals_after_hire(self, market, hired_job, other_freelancer):
        with pytest.raises(JobNotOpen):
            market.lifecycle.submit_proposal(hired_job.id, other_freelancer, "late", Decimal("10"))

    def test_cannot_propose_on_own_job(self, market, client, deadline):
        dual = UserRef(client.id, Role.FREELANCER)
        market.ledger.top_up(client.id, Decimal("10"), "card-1")
        job = market.lifecycle.create_job(client, "T", "D", "", Decimal("10"), deadline)
        with pytest.raises(Forbidden):
            market.lifecycle.submit_proposal(job.id, dual, "me", Decimal("10"))

    def test_failed_hire_write_refunds_hold(self, market, proposed_job, client, freelancer):
        with patch.object(
            market.jobs, "set_hired_freelancer", side_effect=StorageError("disk gone")
        ):
            with pytest.raises(StorageError):
                market.lifecycle.hire(proposed_job.id, client, freelancer.id)

        assert market.ledger.get_hold(proposed_job.id).state == "refunded"
        assert market.ledger.get_balance(client.id) == Decimal("1000.00")
        assert market.lifecycle.get_job(proposed_job.id).status == "open"

        # The job can still be hired once storage recovers
        job = market.lifecycle.hire(proposed_job.id, client, freelancer.id)
        assert job.status == "hired"

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_concurrent_hires_single_winner(self, backend, tmp_path, client, deadline):
        if backend == "memory":
            market = Marketplace.in_memory()
        else:
            market = Marketplace.sqlite(tmp_path / "market.db")
        market.ledger.top_up(client.id, Decimal("1000.00"), "card-1")
        job = market.lifecycle.create_job(
            client, "Build a landing page", "Responsive", "web", Decimal("500.00"), deadline
        )
        freelancers = [UserRef(f"f-{i}", Role.FREELANCER) for i in range(6)]
        for f in freelancers:
            market.lifecycle.submit_proposal(job.id, f, "pick me", Decimal("500"))
        barrier = threading.Barrier(len(freelancers))

        def attempt(f):
            barrier.wait()
            try:
                market.lifecycle.hire(job.id, client, f.id)
                return f.id
            except InvalidTransition as e:
                return e

        with ThreadPoolExecutor(max_workers=len(freelancers)) as pool:
            outcomes = list(pool.map(attempt, freelancers))

        winners = [o for o in outcomes if isinstance(o, str)]
        losers = [o for o in outcomes if not isinstance(o, str)]
        assert len(winners) == 1
        assert len(losers) == len(freelancers) - 1
        assert all(type(e) is InvalidTransition for e in losers)
        assert {e.actual for e in losers} == {"hired"}

        hired = market.lifecycle.get_job(job.id)
        assert hired.hired_freelancer_id == winners[0]
        assert market.ledger.get_balance(client.id) == Decimal("500.00")
        assert market.ledger.get_hold(job.id).freelancer_id == winners[0]
        assert len(market.lifecycle._job_locks) == 0

    def test_job_locks_released_after_cancel_cycles(self, market, client, deadline):
        for _ in range(200):
            job = market.lifecycle.create_job(
                client, "Short gig", "desc", "", Decimal("5.00"), deadline
            )
            market.lifecycle.cancel(job.id, client)
        assert len(market.lifecycle._job_locks) == 0


class TestTransitions:
    def test_approve_requires_submission(self, market, hired_job, client):
        with pytest.raises(InvalidTransition):
            market.lifecycle.approve(hired_job.id, client)
        assert market.ledger.get_hold(hired_job.id).state == "held"

    def test_approve_twice_pays_once(self, market, hired_job, client, freelancer):
        _submitted(market, hired_job, client, freelancer)
        market.lifecycle.approve(hired_job.id, client)
        with pytest.raises(InvalidTransition):
            market.lifecycle.approve(hired_job.id, client)
        assert market.ledger.get_balance(freelancer.id) == Decimal("500.00")

    def test_submit_requires_deliverables(self, market, hired_job, freelancer):
        market.lifecycle.start_work(hired_job.id, freelancer)
        with pytest.raises(ValueError):
            market.lifecycle.submit_deliverable(hired_job.id, freelancer, [])

    def test_submit_before_start(self, market, hired_job, freelancer):
        with pytest.raises(InvalidTransition):
            market.lifecycle.submit_deliverable(hired_job.id, freelancer, [DELIVERABLE])

    def test_cancel_open_job(self, market, posted_job, client, recorder):
        job = market.lifecycle.cancel(posted_job.id, client, reason="changed my mind")
        assert job.status == "cancelled"
        assert job.cancelled_at is not None
        assert market.ledger.get_balance(client.id) == Decimal("1000.00")
        assert recorder.types[-1] == JobEventType.CANCELLED

    def test_cannot_cancel_after_hire(self, market, hired_job, client):
        with pytest.raises(InvalidTransition):
            market.lifecycle.cancel(hired_job.id, client)

    def test_terminal_jobs_stay_terminal(self, market, posted_job, client):
        market.lifecycle.cancel(posted_job.id, client)
        with pytest.raises(InvalidTransition):
            market.lifecycle.cancel(posted_job.id, client)
        with pytest.raises(InvalidTransition):
            market.lifecycle.dispute(posted_job.id, client)


class TestDisputes:
    def test_dispute_from_hired(self, market, hired_job, freelancer):
        job = market.lifecycle.dispute(hired_job.id, freelancer, reason="client unresponsive")
        assert job.status == "disputed"
        assert job.disputed_at is not None

    def test_cannot_dispute_open_job(self, market, posted_job, client):
        with pytest.raises(InvalidTransition):
            market.lifecycle.dispute(posted_job.id, client)

    def test_resolve_for_client_refunds(self, market, hired_job, client, freelancer, admin, recorder):
        _submitted(market, hired_job, client, freelancer)
        market.lifecycle.dispute(hired_job.id, client, reason="wrong work")

        job = market.lifecycle.resolve_dispute(hired_job.id, admin, DisputeResolution.CLIENT)

        assert job.status == "cancelled"
        assert job.hired_freelancer_id is None
        assert market.ledger.get_balance(client.id) == Decimal("1000.00")
        assert market.ledger.get_balance(freelancer.id) == Decimal("0.00")
        assert market.ledger.get_hold(hired_job.id).state == "refunded"
        assert recorder.events[-1].payload["resolution"] == "client"

    def test_resolve_for_freelancer_releases(self, market, hired_job, client, freelancer, admin):
        market.lifecycle.dispute(hired_job.id, freelancer)
        job = market.lifecycle.resolve_dispute(hired_job.id, admin, "freelancer")
        assert job.status == "completed"
        assert market.ledger.get_balance(freelancer.id) == Decimal("500.00")

    def test_invalid_resolution(self, market, hired_job, client, admin):
        market.lifecycle.dispute(hired_job.id, client)
        with pytest.raises(ValueError, match="Invalid resolution"):
            market.lifecycle.resolve_dispute(hired_job.id, admin, "split")

    def test_resolve_requires_dispute(self, market, hired_job, admin):
        with pytest.raises(InvalidTransition):
            market.lifecycle.resolve_dispute(hired_job.id, admin, "client")
        assert market.ledger.get_hold(hired_job.id).state == "held"


class TestProposalVisibility:
    def test_client_sees_all(self, market, proposed_job, client, other_freelancer):
        market.lifecycle.submit_proposal(proposed_job.id, other_freelancer, "me too", Decimal("400"))
        assert len(market.lifecycle.list_proposals(proposed_job.id, client)) == 2

    def test_freelancer_sees_own(self, market, proposed_job, freelancer, other_freelancer):
        market.lifecycle.submit_proposal(proposed_job.id, other_freelancer, "me too", Decimal("400"))
        visible = market.lifecycle.list_proposals(proposed_job.id, other_freelancer)
        assert [p.freelancer_id for p in visible] == [other_freelancer.id]

    def test_admin_sees_all(self, market, proposed_job, admin):
        assert len(market.lifecycle.list_proposals(proposed_job.id, admin)) == 1

    def test_ensure_job_client(self, market, posted_job, client, other_client, admin):
        assert market.lifecycle.ensure_job_client(posted_job.id, client).id == posted_job.id
        assert market.lifecycle.ensure_job_client(posted_job.id, admin).id == posted_job.id
        with pytest.raises(Forbidden):
            market.lifecycle.ensure_job_client(posted_job.id, other_client)


def test_failing_subscriber_does_not_break_operation(market, posted_job, client):
    def broken(event):
        raise RuntimeError("subscriber down")

    market.events.subscribe(broken)
    job = market.lifecycle.cancel(posted_job.id, client)
    assert job.status == "cancelled"
