"""Test the job, proposal, ledger and matching routes end to end."""

from datetime import datetime, timedelta, timezone

import pytest

API = "/api/v1"

CLIENT_ID = "usr_client_TEST"
FREELANCER_ID = "usr_freelancer_TEST"


def _deadline(days=7):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def _top_up(client, headers, amount="1000.00", key=None):
    body = {"amount": amount, "source_method_id": "card_test"}
    if key:
        body["idempotency_key"] = key
    return client.post(f"{API}/ledger/top-up", json=body, headers=headers)


def _post_job(client, headers, budget="500.00"):
    return client.post(
        f"{API}/jobs",
        json={
            "title": "Build a landing page",
            "description": "Single page, responsive, dark mode",
            "category": "web",
            "budget": budget,
            "deadline": _deadline(),
        },
        headers=headers,
    )


def _propose(client, job_id, headers, rate="450.00"):
    return client.post(
        f"{API}/jobs/{job_id}/proposals",
        json={"cover_letter": "I build fast landing pages", "proposed_rate": rate},
        headers=headers,
    )


def _balance(client, headers, **params):
    response = client.get(f"{API}/ledger/balance", params=params, headers=headers)
    assert response.status_code == 200
    return response.json()["balance"]


@pytest.fixture
def open_job(client, client_headers):
    assert _top_up(client, client_headers).status_code == 201
    response = _post_job(client, client_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def hired_job(client, open_job, client_headers, freelancer_headers):
    assert _propose(client, open_job["id"], freelancer_headers).status_code == 201
    response = client.post(
        f"{API}/jobs/{open_job['id']}/hire",
        json={"freelancer_id": FREELANCER_ID},
        headers=client_headers,
    )
    assert response.status_code == 200
    return response.json()


class TestJobFlow:
    def test_post_job(self, client, open_job):
        assert open_job["status"] == "open"
        assert open_job["client_id"] == CLIENT_ID
        assert open_job["budget"] == "500.00"
        assert open_job["hired_freelancer_id"] is None

        fetched = client.get(
            f"{API}/jobs/{open_job['id']}", headers={"Authorization": "Bearer x"}
        )
        assert fetched.status_code == 401

    def test_full_flow(self, client, hired_job, client_headers, freelancer_headers):
        job_id = hired_job["id"]
        assert hired_job["status"] == "hired"
        assert _balance(client, client_headers) == "500.00"

        hold = client.get(f"{API}/ledger/holds/{job_id}", headers=freelancer_headers).json()
        assert hold["state"] == "held"
        assert hold["amount"] == "500.00"

        started = client.post(f"{API}/jobs/{job_id}/start", headers=freelancer_headers)
        assert started.json()["status"] == "in_progress"

        submitted = client.post(
            f"{API}/jobs/{job_id}/submit",
            json={"deliverables": [{"name": "site.zip", "url": "https://files.example/site.zip"}]},
            headers=freelancer_headers,
        )
        assert submitted.status_code == 200
        assert submitted.json()["status"] == "submitted"
        assert submitted.json()["deliverables"][0]["name"] == "site.zip"

        approved = client.post(f"{API}/jobs/{job_id}/approve", headers=client_headers)
        assert approved.status_code == 200
        assert approved.json()["status"] == "completed"

        assert _balance(client, freelancer_headers) == "500.00"
        assert _balance(client, client_headers) == "500.00"

        history = client.get(f"{API}/jobs/{job_id}/history", headers=client_headers).json()
        assert [h["to_status"] for h in history] == ["hired", "in_progress", "submitted", "completed"]

    def test_my_jobs(self, client, hired_job, client_headers, freelancer_headers):
        mine = client.get(f"{API}/jobs/mine", headers=client_headers).json()
        assert [j["id"] for j in mine["jobs"]] == [hired_job["id"]]
        hired_for = client.get(f"{API}/jobs/mine", headers=freelancer_headers).json()
        assert hired_for["total"] == 1

    def test_open_listing_drops_hired_jobs(self, client, hired_job, client_headers):
        listing = client.get(f"{API}/jobs", headers=client_headers).json()
        assert hired_job["id"] not in [j["id"] for j in listing["jobs"]]

    def test_hired_job_cannot_be_cancelled(self, client, hired_job, client_headers):
        response = client.post(
            f"{API}/jobs/{hired_job['id']}/cancel",
            json={"reason": "changed plans"},
            headers=client_headers,
        )
        assert response.status_code == 409
        assert _balance(client, client_headers) == "500.00"

    def test_cancel_without_body(self, client, open_job, client_headers):
        response = client.post(f"{API}/jobs/{open_job['id']}/cancel", headers=client_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_dispute_resolved_by_admin(
        self, client, hired_job, client_headers, freelancer_headers, admin_headers
    ):
        job_id = hired_job["id"]
        disputed = client.post(
            f"{API}/jobs/{job_id}/dispute", json={"reason": "no reply"}, headers=client_headers
        )
        assert disputed.json()["status"] == "disputed"

        forbidden = client.post(
            f"{API}/jobs/{job_id}/resolve", json={"resolution": "client"}, headers=client_headers
        )
        assert forbidden.status_code == 403

        resolved = client.post(
            f"{API}/jobs/{job_id}/resolve", json={"resolution": "client"}, headers=admin_headers
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "cancelled"
        assert _balance(client, client_headers) == "1000.00"
        assert _balance(client, freelancer_headers) == "0.00"


class TestJobErrors:
    def test_unknown_job(self, client, client_headers):
        response = client.get(f"{API}/jobs/does-not-exist", headers=client_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "JobNotFound"
        assert response.json()["retryable"] is False

    def test_freelancer_cannot_post(self, client, freelancer_headers):
        response = _post_job(client, freelancer_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    def test_past_deadline(self, client, client_headers):
        response = client.post(
            f"{API}/jobs",
            json={
                "title": "Too late",
                "description": "x",
                "budget": "10.00",
                "deadline": _deadline(days=-1),
            },
            headers=client_headers,
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("budget", ["0", "-5.00", "1.001"])
    def test_invalid_budget(self, client, client_headers, budget):
        response = _post_job(client, client_headers, budget=budget)
        assert response.status_code == 422

    def test_hire_without_funds(self, client, client_headers, freelancer_headers):
        job = _post_job(client, client_headers).json()
        _propose(client, job["id"], freelancer_headers)
        response = client.post(
            f"{API}/jobs/{job['id']}/hire",
            json={"freelancer_id": FREELANCER_ID},
            headers=client_headers,
        )
        assert response.status_code == 402
        assert response.json()["error"] == "InsufficientFunds"
        assert client.get(f"{API}/jobs/{job['id']}", headers=client_headers).json()["status"] == "open"

    def test_hire_without_proposal(self, client, open_job, client_headers):
        response = client.post(
            f"{API}/jobs/{open_job['id']}/hire",
            json={"freelancer_id": FREELANCER_ID},
            headers=client_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "ProposalNotFound"

    def test_hire_twice(self, client, hired_job, client_headers):
        response = client.post(
            f"{API}/jobs/{hired_job['id']}/hire",
            json={"freelancer_id": FREELANCER_ID},
            headers=client_headers,
        )
        assert response.status_code == 409

    def test_approve_before_submission(self, client, hired_job, client_headers):
        response = client.post(f"{API}/jobs/{hired_job['id']}/approve", headers=client_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    def test_other_client_cannot_approve(self, client, hired_job, other_client_headers):
        response = client.post(
            f"{API}/jobs/{hired_job['id']}/approve", headers=other_client_headers
        )
        assert response.status_code == 403

    def test_submit_requires_deliverables(self, client, hired_job, freelancer_headers):
        response = client.post(
            f"{API}/jobs/{hired_job['id']}/submit",
            json={"deliverables": []},
            headers=freelancer_headers,
        )
        assert response.status_code == 422


class TestProposalRoutes:
    def test_submit_and_resubmit(self, client, open_job, freelancer_headers):
        first = _propose(client, open_job["id"], freelancer_headers, rate="450.00").json()
        assert first["status"] == "pending"
        assert first["sequence"] == 1
        assert first["proposed_rate"] == "450.00"

        second = _propose(client, open_job["id"], freelancer_headers, rate="400.00").json()
        assert second["id"] == first["id"]
        assert second["proposed_rate"] == "400.00"

    def test_visibility(
        self, client, open_job, client_headers, freelancer_headers, other_freelancer_headers
    ):
        _propose(client, open_job["id"], freelancer_headers)
        _propose(client, open_job["id"], other_freelancer_headers)
        url = f"{API}/jobs/{open_job['id']}/proposals"

        assert len(client.get(url, headers=client_headers).json()) == 2
        own = client.get(url, headers=freelancer_headers).json()
        assert [p["freelancer_id"] for p in own] == [FREELANCER_ID]

    def test_statuses_after_hire(self, client, hired_job, client_headers, other_freelancer_headers):
        url = f"{API}/jobs/{hired_job['id']}/proposals"
        proposals = client.get(url, headers=client_headers).json()
        assert [p["status"] for p in proposals] == ["accepted"]

        late = _propose(client, hired_job["id"], other_freelancer_headers)
        assert late.status_code == 409
        assert late.json()["error"] == "JobNotOpen"

    def test_client_cannot_propose(self, client, open_job, client_headers):
        assert _propose(client, open_job["id"], client_headers).status_code == 403

    def test_empty_cover_letter(self, client, open_job, freelancer_headers):
        response = client.post(
            f"{API}/jobs/{open_job['id']}/proposals",
            json={"cover_letter": "", "proposed_rate": "10.00"},
            headers=freelancer_headers,
        )
        assert response.status_code == 422


class TestLedgerRoutes:
    def test_top_up_is_idempotent(self, client, client_headers):
        first = _top_up(client, client_headers, "25.50", key="topup-1")
        second = _top_up(client, client_headers, "25.50", key="topup-1")
        assert first.status_code == 201
        assert second.json()["id"] == first.json()["id"]
        assert _balance(client, client_headers) == "25.50"

    def test_withdraw(self, client, client_headers):
        _top_up(client, client_headers, "100.00")
        response = client.post(
            f"{API}/ledger/withdraw",
            json={"amount": "40.00", "destination": "bank_test"},
            headers=client_headers,
        )
        assert response.status_code == 201
        assert response.json()["amount"] == "-40.00"
        assert _balance(client, client_headers) == "60.00"

    def test_overdraw(self, client, client_headers):
        response = client.post(
            f"{API}/ledger/withdraw", json={"amount": "1.00"}, headers=client_headers
        )
        assert response.status_code == 402

    def test_transactions_newest_first(self, client, client_headers):
        _top_up(client, client_headers, "1.00")
        _top_up(client, client_headers, "2.00")
        txns = client.get(f"{API}/ledger/transactions", headers=client_headers).json()
        assert [t["amount"] for t in txns] == ["2.00", "1.00"]

    def test_other_users_ledger(self, client, client_headers, freelancer_headers, admin_headers):
        _top_up(client, client_headers, "5.00")
        forbidden = client.get(
            f"{API}/ledger/balance", params={"user_id": CLIENT_ID}, headers=freelancer_headers
        )
        assert forbidden.status_code == 403
        assert _balance(client, admin_headers, user_id=CLIENT_ID) == "5.00"

    def test_transaction_lookup(self, client, client_headers, freelancer_headers):
        txn = _top_up(client, client_headers, "5.00").json()
        own = client.get(f"{API}/ledger/transactions/{txn['id']}", headers=client_headers)
        assert own.status_code == 200
        hidden = client.get(f"{API}/ledger/transactions/{txn['id']}", headers=freelancer_headers)
        assert hidden.status_code == 404
        missing = client.get(f"{API}/ledger/transactions/nope", headers=client_headers)
        assert missing.status_code == 404

    def test_hold_visibility(self, client, hired_job, client_headers, other_client_headers):
        url = f"{API}/ledger/holds/{hired_job['id']}"
        assert client.get(url, headers=client_headers).status_code == 200
        assert client.get(url, headers=other_client_headers).status_code == 403

    def test_no_hold_for_open_job(self, client, open_job, client_headers):
        response = client.get(f"{API}/ledger/holds/{open_job['id']}", headers=client_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "HoldNotFound"


class TestMatchingRoutes:
    def test_recommended_without_model(self, client, open_job, freelancer_headers):
        response = client.get(f"{API}/jobs/recommended", headers=freelancer_headers)
        assert response.status_code == 200
        assert response.json() == []

    def test_recommended_is_for_freelancers(self, client, client_headers):
        response = client.get(f"{API}/jobs/recommended", headers=client_headers)
        assert response.status_code == 403

    def test_ranked_proposals_without_model(self, client, open_job, client_headers, freelancer_headers):
        _propose(client, open_job["id"], freelancer_headers)
        response = client.get(
            f"{API}/jobs/{open_job['id']}/ranked-proposals", headers=client_headers
        )
        assert response.status_code == 200
        assert response.json() == []

    def test_ranked_proposals_owner_only(self, client, open_job, other_client_headers):
        response = client.get(
            f"{API}/jobs/{open_job['id']}/ranked-proposals", headers=other_client_headers
        )
        assert response.status_code == 403
