"""
SQLite storage backend.

One database file holds jobs, proposals, transactions, escrow holds and
reviews. Implements JobStorage, ProposalStorage, LedgerStorage and
ReviewStorage. Each operation
opens its own connection, so an instance can be shared across threads.

Atomicity comes from the database itself:
- job status changes are UPDATE ... WHERE status = <expected>
- a partial unique index allows one held hold per job
- a unique index enforces one proposal per (job, freelancer)
- a partial unique index enforces per-user idempotency keys
- a unique index allows one review per (job, reviewer)
"""

import contextlib
import dataclasses
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union

from gigmarket.errors import StorageError
from gigmarket.jobs.models import Deliverable, Job, JobStateTransition, JobStatus
from gigmarket.jobs.storage import CONFLICT, MUTABLE_JOB_FIELDS, NOT_FOUND
from gigmarket.ledger.models import EscrowHold, HoldState, Transaction, TransactionStatus
from gigmarket.money import from_cents, to_cents
from gigmarket.proposals.models import Proposal
from gigmarket.reviews.models import Review
from gigmarket.types import format_datetime, parse_datetime
from gigmarket.utils import get_gigmarket_home

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT '',
    budget_cents INTEGER NOT NULL CHECK (budget_cents > 0),
    deadline TEXT NOT NULL,
    status TEXT NOT NULL,
    hired_freelancer_id TEXT,
    deliverables TEXT NOT NULL DEFAULT '[]',
    created_at TEXT,
    updated_at TEXT,
    hired_at TEXT,
    started_at TEXT,
    submitted_at TEXT,
    completed_at TEXT,
    disputed_at TEXT,
    cancelled_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_client ON jobs(client_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);

CREATE TABLE IF NOT EXISTS job_transitions (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    from_status TEXT,
    to_status TEXT NOT NULL,
    actor_id TEXT,
    reason TEXT,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_transitions_job ON job_transitions(job_id);

CREATE TABLE IF NOT EXISTS proposals (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    freelancer_id TEXT NOT NULL,
    cover_letter TEXT NOT NULL,
    proposed_rate_cents INTEGER NOT NULL,
    sequence INTEGER NOT NULL,
    created_at TEXT,
    updated_at TEXT,
    UNIQUE (job_id, freelancer_id)
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    description TEXT NOT NULL,
    amount_cents INTEGER NOT NULL,
    status TEXT NOT NULL,
    kind TEXT NOT NULL,
    job_id TEXT,
    reference TEXT,
    idempotency_key TEXT,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_idempotency
    ON transactions(user_id, idempotency_key) WHERE idempotency_key IS NOT NULL;

CREATE TABLE IF NOT EXISTS escrow_holds (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    freelancer_id TEXT NOT NULL,
    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
    state TEXT NOT NULL,
    created_at TEXT,
    settled_at TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_holds_one_active
    ON escrow_holds(job_id) WHERE state = 'held';

CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    reviewer_id TEXT NOT NULL,
    reviewee_id TEXT NOT NULL,
    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment TEXT NOT NULL,
    created_at TEXT,
    UNIQUE (job_id, reviewer_id)
);
CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);
"""

_JOB_TIMESTAMPS = (
    "created_at",
    "updated_at",
    "hired_at",
    "started_at",
    "submitted_at",
    "completed_at",
    "disputed_at",
    "cancelled_at",
)


class SQLiteMarketStorage:
    """SQLite-backed job, proposal and ledger storage.

    Several processes or Marketplace instances may open the same file.
    """

    shared = True

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        if db_path is None:
            db_path = get_gigmarket_home() / "market.db"
        self.db_path = Path(db_path).expanduser()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create database directory: {e}", cause=e) from e
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Yield a connection; commit on success, roll back on error, always close.

        sqlite3 errors surface as StorageError.
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(f"Database unavailable: {e}", cause=e) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise StorageError(f"Database error: {e}", cause=e) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )

    def close(self) -> None:
        """Connections are per-operation; nothing to release."""
        pass

    # === Row mapping ===

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            client_id=row["client_id"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            budget=from_cents(row["budget_cents"]),
            deadline=parse_datetime(row["deadline"]),
            status=row["status"],
            hired_freelancer_id=row["hired_freelancer_id"],
            deliverables=[Deliverable.from_dict(d) for d in json.loads(row["deliverables"] or "[]")],
            **{name: parse_datetime(row[name]) for name in _JOB_TIMESTAMPS},
        )

    @staticmethod
    def _job_values(job: Job) -> dict[str, Any]:
        values: dict[str, Any] = {
            "id": job.id,
            "client_id": job.client_id,
            "title": job.title,
            "description": job.description,
            "category": job.category,
            "budget_cents": to_cents(job.budget),
            "deadline": format_datetime(job.deadline),
            "status": job.status,
            "hired_freelancer_id": job.hired_freelancer_id,
            "deliverables": json.dumps([d.to_dict() for d in job.deliverables]),
        }
        values.update({name: format_datetime(getattr(job, name)) for name in _JOB_TIMESTAMPS})
        return values

    @staticmethod
    def _row_to_proposal(row: sqlite3.Row) -> Proposal:
        return Proposal(
            id=row["id"],
            job_id=row["job_id"],
            freelancer_id=row["freelancer_id"],
            cover_letter=row["cover_letter"],
            proposed_rate=from_cents(row["proposed_rate_cents"]),
            sequence=row["sequence"],
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            user_id=row["user_id"],
            description=row["description"],
            amount_cents=row["amount_cents"],
            status=row["status"],
            kind=row["kind"],
            job_id=row["job_id"],
            reference=row["reference"],
            idempotency_key=row["idempotency_key"],
            created_at=parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_hold(row: sqlite3.Row) -> EscrowHold:
        return EscrowHold(
            id=row["id"],
            job_id=row["job_id"],
            client_id=row["client_id"],
            freelancer_id=row["freelancer_id"],
            amount_cents=row["amount_cents"],
            state=row["state"],
            created_at=parse_datetime(row["created_at"]),
            settled_at=parse_datetime(row["settled_at"]),
        )

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            job_id=row["job_id"],
            reviewer_id=row["reviewer_id"],
            reviewee_id=row["reviewee_id"],
            rating=row["rating"],
            comment=row["comment"],
            created_at=parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _insert_transaction(conn: sqlite3.Connection, txn: Transaction) -> None:
        conn.execute(
            """INSERT INTO transactions
               (id, user_id, description, amount_cents, status, kind,
                job_id, reference, idempotency_key, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                txn.id,
                txn.user_id,
                txn.description,
                txn.amount_cents,
                txn.status,
                txn.kind,
                txn.job_id,
                txn.reference,
                txn.idempotency_key,
                format_datetime(txn.created_at),
            ),
        )

    # === JobStorage ===

    def save_job(self, job: Job) -> str:
        values = self._job_values(job)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO jobs ({columns}) VALUES ({placeholders})", tuple(values.values())
            )
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        query = "SELECT * FROM jobs WHERE 1=1"
        params: list[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value if isinstance(status, JobStatus) else status)
        if client_id is not None:
            query += " AND client_id = ?"
            params.append(client_id)
        if freelancer_id is not None:
            query += " AND hired_freelancer_id = ?"
            params.append(freelancer_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_job(r) for r in rows]

    def transition_job(
        self,
        job_id: str,
        expected: JobStatus,
        status: JobStatus,
        fields: dict[str, Any],
        transition: JobStateTransition,
    ) -> tuple[Optional[Job], Optional[str]]:
        unknown = set(fields) - MUTABLE_JOB_FIELDS
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")
        expected_value = JobStatus(expected).value

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
            if row is None:
                return None, NOT_FOUND
            if row["status"] != expected_value:
                return None, CONFLICT

            updated = dataclasses.replace(
                self._row_to_job(row), status=JobStatus(status).value, **fields
            )
            values = self._job_values(updated)
            del values["id"]
            assignments = ", ".join(f"{col} = ?" for col in values)
            cursor = conn.execute(
                f"UPDATE jobs SET {assignments} WHERE id = ? AND status = ?",
                (*values.values(), job_id, expected_value),
            )
            if cursor.rowcount == 0:
                return None, CONFLICT

            conn.execute(
                """INSERT INTO job_transitions
                   (id, job_id, from_status, to_status, actor_id, reason, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    transition.id,
                    transition.job_id,
                    transition.from_status,
                    transition.to_status,
                    transition.actor_id,
                    transition.reason,
                    format_datetime(transition.created_at),
                ),
            )
        return updated, None

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM job_transitions WHERE job_id = ? ORDER BY created_at, rowid",
                (job_id,),
            ).fetchall()
        return [
            JobStateTransition(
                id=r["id"],
                job_id=r["job_id"],
                from_status=r["from_status"],
                to_status=r["to_status"],
                actor_id=r["actor_id"],
                reason=r["reason"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]

    # === ProposalStorage ===

    def upsert_proposal(self, proposal: Proposal) -> Proposal:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO proposals
                   (id, job_id, freelancer_id, cover_letter, proposed_rate_cents,
                    sequence, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?,
                           (SELECT COALESCE(MAX(sequence), 0) + 1 FROM proposals WHERE job_id = ?),
                           ?, ?)
                   ON CONFLICT (job_id, freelancer_id) DO UPDATE SET
                       cover_letter = excluded.cover_letter,
                       proposed_rate_cents = excluded.proposed_rate_cents,
                       updated_at = excluded.updated_at""",
                (
                    proposal.id,
                    proposal.job_id,
                    proposal.freelancer_id,
                    proposal.cover_letter,
                    to_cents(proposal.proposed_rate),
                    proposal.job_id,
                    format_datetime(proposal.created_at),
                    format_datetime(proposal.updated_at),
                ),
            )
            row = conn.execute(
                "SELECT * FROM proposals WHERE job_id = ? AND freelancer_id = ?",
                (proposal.job_id, proposal.freelancer_id),
            ).fetchone()
        return self._row_to_proposal(row)

    def get_proposal(self, job_id: str, freelancer_id: str) -> Optional[Proposal]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM proposals WHERE job_id = ? AND freelancer_id = ?",
                (job_id, freelancer_id),
            ).fetchone()
        return self._row_to_proposal(row) if row else None

    def list_proposals(self, job_id: str) -> List[Proposal]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM proposals WHERE job_id = ? ORDER BY sequence", (job_id,)
            ).fetchall()
        return [self._row_to_proposal(r) for r in rows]

    def list_proposals_for_freelancer(self, freelancer_id: str) -> List[Proposal]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM proposals WHERE freelancer_id = ? ORDER BY updated_at DESC",
                (freelancer_id,),
            ).fetchall()
        return [self._row_to_proposal(r) for r in rows]

    # === LedgerStorage ===

    def append_transaction(self, transaction: Transaction) -> str:
        with self._connect() as conn:
            self._insert_transaction(conn, transaction)
        return transaction.id

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_transactions(self, user_id: str, limit: int = 100) -> List[Transaction]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE user_id = ? ORDER BY rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def find_transaction_by_key(self, user_id: str, idempotency_key: str) -> Optional[Transaction]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE user_id = ? AND idempotency_key = ?",
                (user_id, idempotency_key),
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def sum_completed(self, user_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount_cents), 0) AS total FROM transactions "
                "WHERE user_id = ? AND status = ?",
                (user_id, TransactionStatus.COMPLETED.value),
            ).fetchone()
        return int(row["total"])

    def update_transaction_status(
        self, transaction_id: str, expected: TransactionStatus, status: TransactionStatus
    ) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE transactions SET status = ? WHERE id = ? AND status = ?",
                (TransactionStatus(status).value, transaction_id, TransactionStatus(expected).value),
            )
        return cursor.rowcount == 1

    def create_hold(self, hold: EscrowHold, debit: Transaction) -> bool:
        with self._connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO escrow_holds
                       (id, job_id, client_id, freelancer_id, amount_cents, state, created_at, settled_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        hold.id,
                        hold.job_id,
                        hold.client_id,
                        hold.freelancer_id,
                        hold.amount_cents,
                        hold.state,
                        format_datetime(hold.created_at),
                        format_datetime(hold.settled_at),
                    ),
                )
            except sqlite3.IntegrityError:
                logger.debug(f"Active hold already exists for job {hold.job_id}")
                return False
            self._insert_transaction(conn, debit)
        return True

    def get_latest_hold(self, job_id: str) -> Optional[EscrowHold]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM escrow_holds WHERE job_id = ? ORDER BY rowid DESC LIMIT 1",
                (job_id,),
            ).fetchone()
        return self._row_to_hold(row) if row else None

    def settle_hold(
        self,
        hold_id: str,
        state: HoldState,
        settled_at: datetime,
        credits: List[Transaction],
    ) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE escrow_holds SET state = ?, settled_at = ? WHERE id = ? AND state = ?",
                (
                    HoldState(state).value,
                    format_datetime(settled_at),
                    hold_id,
                    HoldState.HELD.value,
                ),
            )
            if cursor.rowcount == 0:
                return False
            for credit in credits:
                self._insert_transaction(conn, credit)
        return True

    # === ReviewStorage ===

    def add_review(self, review: Review) -> bool:
        with self._connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO reviews
                       (id, job_id, reviewer_id, reviewee_id, rating, comment, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        review.id,
                        review.job_id,
                        review.reviewer_id,
                        review.reviewee_id,
                        review.rating,
                        review.comment,
                        format_datetime(review.created_at),
                    ),
                )
            except sqlite3.IntegrityError:
                logger.debug(f"{review.reviewer_id} already reviewed job {review.job_id}")
                return False
        return True

    def list_reviews_for_job(self, job_id: str) -> List[Review]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reviews WHERE job_id = ? ORDER BY rowid", (job_id,)
            ).fetchall()
        return [self._row_to_review(r) for r in rows]

    def list_reviews_for_user(self, reviewee_id: str, limit: Optional[int] = 100) -> List[Review]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reviews WHERE reviewee_id = ? ORDER BY rowid DESC LIMIT ?",
                (reviewee_id, -1 if limit is None else limit),
            ).fetchall()
        return [self._row_to_review(r) for r in rows]
