"""Tests for job models and JobService."""

import itertools
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from gigmarket.errors import InvalidTransition, JobNotFound
from gigmarket.jobs.models import (
    HIRED_STATUSES,
    VALID_JOB_TRANSITIONS,
    Deliverable,
    Job,
    JobStatus,
    is_valid_transition,
)
from gigmarket.jobs.service import JobService
from gigmarket.jobs.storage import InMemoryJobStorage
from gigmarket.storage import SQLiteMarketStorage
from gigmarket.types import utc_now


@pytest.fixture(params=["memory", "sqlite"])
def service(request, tmp_path):
    if request.param == "memory":
        return JobService(InMemoryJobStorage())
    return JobService(SQLiteMarketStorage(tmp_path / "jobs.db"))


@pytest.fixture
def future():
    return utc_now() + timedelta(days=3)


def _job(**overrides):
    values = dict(
        id="job-1",
        client_id="c1",
        title="Logo design",
        description="A logo",
        budget=Decimal("100.00"),
        deadline=utc_now() + timedelta(days=1),
    )
    values.update(overrides)
    return Job(**values)


class TestJobModel:
    def test_defaults(self):
        job = _job()
        assert job.status == "open"
        assert job.is_open
        assert not job.is_terminal
        assert job.deliverables == []

    def test_status_enum_coerced(self):
        assert _job(status=JobStatus.CANCELLED).status == "cancelled"

    def test_invalid_status(self):
        with pytest.raises(ValueError, match="Invalid status"):
            _job(status="funded")

    def test_empty_title(self):
        with pytest.raises(ValueError, match="Title cannot be empty"):
            _job(title="   ")

    def test_title_too_long(self):
        with pytest.raises(ValueError, match="Title too long"):
            _job(title="x" * 201)

    @pytest.mark.parametrize("budget", [Decimal("0"), Decimal("-1.00")])
    def test_budget_must_be_positive(self, budget):
        with pytest.raises(ValueError, match="positive"):
            _job(budget=budget)

    def test_float_budget_rejected(self):
        with pytest.raises(ValueError, match="float"):
            _job(budget=100.0)

    def test_budget_sub_cent_rejected(self):
        with pytest.raises(ValueError, match="two decimal places"):
            _job(budget=Decimal("10.001"))

    def test_string_budget_accepted(self):
        assert _job(budget="99.95").budget == Decimal("99.95")

    def test_hired_requires_freelancer(self):
        with pytest.raises(ValueError, match="must have a hired freelancer"):
            _job(status="hired")

    def test_open_cannot_have_freelancer(self):
        with pytest.raises(ValueError, match="cannot have a hired freelancer"):
            _job(hired_freelancer_id="f1")

    def test_client_cannot_hire_themselves(self):
        with pytest.raises(ValueError, match="hire themselves"):
            _job(status="hired", hired_freelancer_id="c1")

    def test_terminal_statuses(self):
        assert _job(status="cancelled").is_terminal
        assert _job(status="completed", hired_freelancer_id="f1").is_terminal

    def test_dict_round_trip(self):
        job = _job(
            status="submitted",
            hired_freelancer_id="f1",
            deliverables=[Deliverable("site.zip", "https://files.example/site.zip", size=10)],
            created_at=utc_now(),
        )
        restored = Job.from_dict(job.to_dict())
        assert restored == job
        assert job.to_dict()["budget"] == "100.00"


class TestTransitionTable:
    def test_open_edges(self):
        assert VALID_JOB_TRANSITIONS["open"] == {"hired", "cancelled"}

    def test_terminal_have_no_edges(self):
        assert not VALID_JOB_TRANSITIONS["completed"]
        assert not VALID_JOB_TRANSITIONS["cancelled"]

    @pytest.mark.parametrize(
        "from_status,to_status,expected",
        [
            ("open", "hired", True),
            ("open", "in_progress", False),
            ("hired", "in_progress", True),
            ("hired", "cancelled", False),
            ("submitted", "in_progress", True),
            ("submitted", "completed", True),
            ("disputed", "completed", True),
            ("disputed", "cancelled", True),
            ("completed", "disputed", False),
        ],
    )
    def test_edges(self, from_status, to_status, expected):
        assert is_valid_transition(from_status, to_status) is expected


class TestDeliverable:
    def test_requires_name_and_url(self):
        with pytest.raises(ValueError):
            Deliverable("", "https://x")
        with pytest.raises(ValueError):
            Deliverable("a", "")

    def test_negative_size(self):
        with pytest.raises(ValueError):
            Deliverable("a", "https://x", size=-1)


class TestJobService:
    def test_create_job(self, service, future):
        job = service.create_job("c1", "  Logo  ", "A logo", "design", Decimal("100"), future)
        assert job.title == "Logo"
        assert job.budget == Decimal("100.00")
        assert job.status == "open"
        assert service.get_job(job.id) == job

    def test_create_job_past_deadline(self, service):
        with pytest.raises(ValueError, match="Deadline"):
            service.create_job("c1", "Logo", "A logo", "", Decimal("10"), utc_now() - timedelta(seconds=1))

    def test_naive_deadline_treated_as_utc(self, service):
        naive = (datetime.now(timezone.utc) + timedelta(days=2)).replace(tzinfo=None)
        job = service.create_job("c1", "Logo", "A logo", "", Decimal("10"), naive)
        assert job.deadline.tzinfo is not None

    def test_create_job_zero_budget(self, service, future):
        with pytest.raises(ValueError, match="positive"):
            service.create_job("c1", "Logo", "A logo", "", Decimal("0"), future)

    def test_get_missing_job(self, service):
        with pytest.raises(JobNotFound):
            service.get_job("nope")

    def test_list_for_client_and_open(self, service, future):
        a = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        b = service.create_job("c1", "B", "b", "", Decimal("10"), future)
        service.create_job("c2", "C", "c", "", Decimal("10"), future)
        service.transition_status(b.id, JobStatus.OPEN, JobStatus.CANCELLED)

        assert {j.id for j in service.list_jobs_for_client("c1")} == {a.id, b.id}
        assert a.id in {j.id for j in service.list_open_jobs()}
        assert b.id not in {j.id for j in service.list_open_jobs()}

    def test_hire_sets_freelancer_and_timestamp(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        hired = service.set_hired_freelancer(job.id, "f1", actor_id="c1")
        assert hired.status == "hired"
        assert hired.hired_freelancer_id == "f1"
        assert hired.hired_at is not None
        assert [j.id for j in service.list_jobs_for_freelancer("f1")] == [job.id]

    def test_hire_requires_freelancer(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        with pytest.raises(ValueError):
            service.transition_status(job.id, JobStatus.OPEN, JobStatus.HIRED)

    def test_non_edge_rejected(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        with pytest.raises(InvalidTransition):
            service.transition_status(job.id, JobStatus.OPEN, JobStatus.COMPLETED)
        assert service.get_job(job.id).status == "open"

    def test_stale_from_status_rejected(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        service.transition_status(job.id, JobStatus.OPEN, JobStatus.CANCELLED)
        with pytest.raises(InvalidTransition) as exc_info:
            service.set_hired_freelancer(job.id, "f1")
        assert exc_info.value.actual == "cancelled"

    def test_transition_missing_job(self, service):
        with pytest.raises(JobNotFound):
            service.transition_status("nope", JobStatus.OPEN, JobStatus.CANCELLED)

    def test_history_in_order(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        service.set_hired_freelancer(job.id, "f1", actor_id="c1")
        service.transition_status(job.id, JobStatus.HIRED, JobStatus.IN_PROGRESS, actor_id="f1")
        history = service.get_job_history(job.id)
        assert [(t.from_status, t.to_status) for t in history] == [
            ("open", "hired"),
            ("hired", "in_progress"),
        ]
        assert history[0].actor_id == "c1"

    def test_deliverables_written_with_submission(self, service, future):
        job = service.create_job("c1", "A", "a", "", Decimal("10"), future)
        service.set_hired_freelancer(job.id, "f1")
        service.transition_status(job.id, JobStatus.HIRED, JobStatus.IN_PROGRESS)
        submitted = service.transition_status(
            job.id,
            JobStatus.IN_PROGRESS,
            JobStatus.SUBMITTED,
            deliverables=[Deliverable("report.pdf", "https://files.example/report.pdf")],
        )
        assert submitted.submitted_at is not None
        assert service.get_job(job.id).deliverables[0].name == "report.pdf"

    def test_date_deadline_means_end_of_day_utc(self, service):
        tomorrow = date.today() + timedelta(days=2)
        job = service.create_job("c1", "Logo", "A logo", "", Decimal("10"), tomorrow)
        assert job.deadline == datetime.combine(tomorrow, time.max, tzinfo=timezone.utc)
        assert service.get_job(job.id).deadline.date() == tomorrow

    def test_past_date_deadline_rejected(self, service):
        with pytest.raises(ValueError, match="future"):
            service.create_job(
                "c1", "Logo", "A logo", "", Decimal("10"), date.today() - timedelta(days=2)
            )

    @pytest.mark.parametrize("deadline", ["2030-01-01", 1893456000, None])
    def test_non_date_deadline_rejected(self, service, deadline):
        with pytest.raises(ValueError, match="date or datetime"):
            service.create_job("c1", "Logo", "A logo", "", Decimal("10"), deadline)


ALL_STATUS_PAIRS = list(itertools.product(list(JobStatus), repeat=2))


class TestEveryStatusPair:
    """Each of the 7x7 (from, to) pairs, driven through the service."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        ALL_STATUS_PAIRS,
        ids=[f"{a.value}->{b.value}" for a, b in ALL_STATUS_PAIRS],
    )
    def test_pair(self, service, from_status, to_status):
        seeded = _job(
            status=from_status,
            hired_freelancer_id="f1" if from_status.value in HIRED_STATUSES else None,
            created_at=utc_now(),
            updated_at=utc_now(),
        )
        service.storage.save_job(seeded)
        hire_with = "f1" if to_status == JobStatus.HIRED else None

        if is_valid_transition(from_status.value, to_status.value):
            job = service.transition_status(
                seeded.id, from_status, to_status, hired_freelancer_id=hire_with
            )
            assert job.status == to_status.value
            assert service.get_job(seeded.id).status == to_status.value
            assert [t.to_status for t in service.get_job_history(seeded.id)] == [to_status.value]
        else:
            with pytest.raises(InvalidTransition):
                service.transition_status(
                    seeded.id, from_status, to_status, hired_freelancer_id=hire_with
                )
            assert service.get_job(seeded.id).status == from_status.value
            assert service.get_job_history(seeded.id) == []
