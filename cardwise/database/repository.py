"""Repository: CRUD operations against SQLite using raw SQL.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode and
foreign keys enabled. Worker threads each open their own Repository.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .models import (
    Card,
    CardRewardProgram,
    Category,
    Invoice,
    InvoiceStatus,
    Job,
    JobStatus,
    Point,
    RewardProgram,
    Transaction,
    User,
    _now,
)

# Longest error text kept on an invoice row
ERROR_MESSAGE_MAX_LENGTH = 255


class Repository:
    def __init__(self, db_path: str = ":memory:", timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                self.db_path, timeout=self.timeout, check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text()
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Users ───────────────────────────────────────────────

    def insert_user(self, user: User) -> User:
        self.conn.execute(
            "INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user.id, user.name, user.email, user.created_at),
        )
        self.conn.commit()
        return user

    def get_user(self, user_id: str) -> User | None:
        row = self.conn.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        row = self.conn.execute(
            "SELECT * FROM users WHERE email = ?", (email,)
        ).fetchone()
        return self._row_to_user(row) if row else None

    # ── Cards ───────────────────────────────────────────────

    def insert_card(self, card: Card) -> Card:
        self.conn.execute(
            "INSERT INTO cards"
            " (id, user_id, name, bank, last_digits, conversion_rate,"
            "  annual_fee, tier, active, created_at)"
            " VALUES (?,?,?,?,?,?,?,?,?,?)",
            (card.id, card.user_id, card.name, card.bank, card.last_digits,
             card.conversion_rate, card.annual_fee, card.tier,
             int(card.active), card.created_at),
        )
        self.conn.commit()
        return card

    def get_card(self, card_id: str) -> Card | None:
        row = self.conn.execute(
            "SELECT * FROM cards WHERE id = ?", (card_id,)
        ).fetchone()
        return self._row_to_card(row) if row else None

    def get_cards_for_user(
        self, user_id: str, active_only: bool = False,
    ) -> list[Card]:
        sql = "SELECT * FROM cards WHERE user_id = ?"
        if active_only:
            sql += " AND active = 1"
        sql += " ORDER BY created_at, rowid"
        rows = self.conn.execute(sql, (user_id,)).fetchall()
        return [self._row_to_card(r) for r in rows]

    def link_reward_program(self, link: CardRewardProgram) -> CardRewardProgram:
        """Attach a reward program to a card.

        Marking a link primary clears the flag on the card's other links.
        """
        try:
            self.conn.execute("BEGIN")
            if link.is_primary:
                self.conn.execute(
                    "UPDATE card_reward_programs SET is_primary = 0"
                    " WHERE card_id = ?",
                    (link.card_id,),
                )
            self.conn.execute(
                "INSERT INTO card_reward_programs"
                " (id, card_id, reward_program_id, conversion_rate,"
                "  is_primary, terms)"
                " VALUES (?,?,?,?,?,?)",
                (link.id, link.card_id, link.reward_program_id,
                 link.conversion_rate, int(link.is_primary), link.terms),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return link

    def get_card_reward_programs(self, card_id: str) -> list[CardRewardProgram]:
        """Reward program links for a card, primary first."""
        rows = self.conn.execute(
            "SELECT * FROM card_reward_programs WHERE card_id = ?"
            " ORDER BY is_primary DESC, rowid",
            (card_id,),
        ).fetchall()
        return [self._row_to_card_reward_program(r) for r in rows]

    # ── Catalogs ────────────────────────────────────────────

    def seed_categories(self, categories: list[Category]) -> int:
        """Insert or refresh catalog categories keyed by code."""
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                "INSERT INTO categories (id, code, name, description, icon, color)"
                " VALUES (?,?,?,?,?,?)"
                " ON CONFLICT(code) DO UPDATE SET"
                "  name = excluded.name,"
                "  description = excluded.description,"
                "  icon = excluded.icon,"
                "  color = excluded.color",
                [(c.id, c.code, c.name, c.description, c.icon, c.color)
                 for c in categories],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return len(categories)

    def get_categories(self) -> list[Category]:
        rows = self.conn.execute(
            "SELECT * FROM categories ORDER BY rowid"
        ).fetchall()
        return [self._row_to_category(r) for r in rows]

    def get_category_by_code(self, code: str) -> Category | None:
        row = self.conn.execute(
            "SELECT * FROM categories WHERE code = ?", (code,)
        ).fetchone()
        return self._row_to_category(row) if row else None

    def get_category_id_map(self) -> dict[str, str]:
        """Map category code → category id."""
        rows = self.conn.execute("SELECT id, code FROM categories").fetchall()
        return {r["code"]: r["id"] for r in rows}

    def seed_reward_programs(self, programs: list[RewardProgram]) -> int:
        """Insert or refresh reward programs keyed by name."""
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                "INSERT INTO reward_programs"
                " (id, name, code, description, website, logo_path)"
                " VALUES (?,?,?,?,?,?)"
                " ON CONFLICT(name) DO UPDATE SET"
                "  code = excluded.code,"
                "  description = excluded.description,"
                "  website = excluded.website,"
                "  logo_path = excluded.logo_path",
                [(p.id, p.name, p.code, p.description, p.website, p.logo_path)
                 for p in programs],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return len(programs)

    def get_reward_programs(self) -> list[RewardProgram]:
        rows = self.conn.execute(
            "SELECT * FROM reward_programs ORDER BY rowid"
        ).fetchall()
        return [self._row_to_reward_program(r) for r in rows]

    def get_reward_program(self, program_id: str) -> RewardProgram | None:
        row = self.conn.execute(
            "SELECT * FROM reward_programs WHERE id = ?", (program_id,)
        ).fetchone()
        return self._row_to_reward_program(row) if row else None

    def get_reward_program_by_code(self, code: str) -> RewardProgram | None:
        row = self.conn.execute(
            "SELECT * FROM reward_programs WHERE code = ?", (code,)
        ).fetchone()
        return self._row_to_reward_program(row) if row else None

    # ── Invoices ────────────────────────────────────────────

    def _insert_invoice_row(self, invoice: Invoice) -> None:
        self.conn.execute(
            "INSERT INTO invoices"
            " (id, user_id, card_id, reference_date, total_amount, status,"
            "  file_path, due_date, closing_date, notes, error_message,"
            "  created_at, updated_at)"
            " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (invoice.id, invoice.user_id, invoice.card_id,
             invoice.reference_date, invoice.total_amount, invoice.status,
             invoice.file_path, invoice.due_date, invoice.closing_date,
             invoice.notes, invoice.error_message,
             invoice.created_at, invoice.updated_at),
        )

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        self._insert_invoice_row(invoice)
        self.conn.commit()
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        row = self.conn.execute(
            "SELECT * FROM invoices WHERE id = ?", (invoice_id,)
        ).fetchone()
        return self._row_to_invoice(row) if row else None

    def list_invoices(
        self, user_id: str | None = None, status: str | None = None,
        limit: int = 50,
    ) -> list[Invoice]:
        sql = "SELECT * FROM invoices WHERE 1 = 1"
        params: list = []
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        rows = self.conn.execute(sql, params).fetchall()
        return [self._row_to_invoice(r) for r in rows]

    def transition_invoice_status(
        self, invoice_id: str, from_status: str, to_status: str,
    ) -> bool:
        """Compare-and-set the invoice status.

        Returns True when the invoice was in from_status and is now in
        to_status, False when another writer got there first.
        """
        cur = self.conn.execute(
            "UPDATE invoices SET status = ?, updated_at = ?"
            " WHERE id = ? AND status = ?",
            (to_status, _now(), invoice_id, from_status),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def set_invoice_status(self, invoice_id: str, status: str) -> bool:
        """Unconditional status override. Returns False if no such invoice."""
        cur = self.conn.execute(
            "UPDATE invoices SET status = ?, updated_at = ? WHERE id = ?",
            (status, _now(), invoice_id),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def mark_invoice_error(self, invoice_id: str, message: str) -> bool:
        """Move a Processing invoice to Error and record the failure text."""
        cur = self.conn.execute(
            "UPDATE invoices SET status = ?, error_message = ?, updated_at = ?"
            " WHERE id = ? AND status = ?",
            (InvoiceStatus.ERROR.value, message[:ERROR_MESSAGE_MAX_LENGTH],
             _now(), invoice_id, InvoiceStatus.PROCESSING.value),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def complete_invoice(
        self,
        invoice_id: str,
        transactions: list[Transaction],
        points: list[Point],
        due_date: str,
        closing_date: str,
    ) -> bool:
        """Persist a processing run in one database transaction.

        Replaces the invoice's transactions (and the points accrued from
        them), writes the new rows, then sets the total, the dates and the
        Pending status. Only an invoice still in Processing is touched;
        returns False without writing anything otherwise.
        """
        total = sum(t.amount for t in transactions)
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            cur = self.conn.execute(
                "UPDATE invoices SET total_amount = ?, due_date = ?,"
                " closing_date = ?, status = ?, error_message = NULL,"
                " updated_at = ?"
                " WHERE id = ? AND status = ?",
                (total, due_date, closing_date, InvoiceStatus.PENDING.value,
                 _now(), invoice_id, InvoiceStatus.PROCESSING.value),
            )
            if cur.rowcount != 1:
                self.conn.rollback()
                return False
            self.conn.execute(
                "DELETE FROM points WHERE transaction_id IN"
                " (SELECT id FROM transactions WHERE invoice_id = ?)",
                (invoice_id,),
            )
            self.conn.execute(
                "DELETE FROM transactions WHERE invoice_id = ?", (invoice_id,)
            )
            self.conn.executemany(
                "INSERT INTO transactions"
                " (id, invoice_id, category_id, merchant_name,"
                "  transaction_date, amount, points_earned, is_recommended,"
                "  description, created_at)"
                " VALUES (?,?,?,?,?,?,?,?,?,?)",
                [
                    (t.id, invoice_id, t.category_id, t.merchant_name,
                     t.transaction_date, t.amount, t.points_earned,
                     int(t.is_recommended), t.description, t.created_at)
                    for t in transactions
                ],
            )
            self.conn.executemany(
                "INSERT INTO points"
                " (id, user_id, reward_program_id, transaction_id, amount,"
                "  expiration_date, status, description, created_at)"
                " VALUES (?,?,?,?,?,?,?,?,?)",
                [
                    (p.id, p.user_id, p.reward_program_id, p.transaction_id,
                     p.amount, p.expiration_date, p.status, p.description,
                     p.created_at)
                    for p in points
                ],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return True

    # ── Transactions ────────────────────────────────────────

    def get_transactions_by_invoice(self, invoice_id: str) -> list[Transaction]:
        rows = self.conn.execute(
            "SELECT * FROM transactions WHERE invoice_id = ?"
            " ORDER BY transaction_date, rowid",
            (invoice_id,),
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_transaction(self, txn_id: str) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def mark_transactions_recommended(self, txn_ids: list[str]) -> None:
        if not txn_ids:
            return
        self.conn.executemany(
            "UPDATE transactions SET is_recommended = 1 WHERE id = ?",
            [(txn_id,) for txn_id in txn_ids],
        )
        self.conn.commit()

    # ── Points ──────────────────────────────────────────────

    def get_points_for_user(self, user_id: str) -> list[Point]:
        rows = self.conn.execute(
            "SELECT * FROM points WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,),
        ).fetchall()
        return [self._row_to_point(r) for r in rows]

    def get_points_for_transaction(self, txn_id: str) -> list[Point]:
        rows = self.conn.execute(
            "SELECT * FROM points WHERE transaction_id = ?", (txn_id,)
        ).fetchall()
        return [self._row_to_point(r) for r in rows]

    # ── Jobs ────────────────────────────────────────────────

    def _insert_job_row(self, job: Job) -> None:
        self.conn.execute(
            "INSERT INTO jobs"
            " (id, invoice_id, file_path, status, attempts, error_message,"
            "  created_at, started_at, finished_at, available_at)"
            " VALUES (?,?,?,?,?,?,?,?,?,?)",
            (job.id, job.invoice_id, job.file_path, job.status, job.attempts,
             job.error_message, job.created_at, job.started_at,
             job.finished_at, job.available_at),
        )

    def insert_job(self, job: Job) -> Job:
        self._insert_job_row(job)
        self.conn.commit()
        return job

    def insert_invoice_with_job(self, invoice: Invoice, job: Job) -> Invoice:
        """Create an invoice and its first job in one transaction."""
        try:
            self.conn.execute("BEGIN")
            self._insert_invoice_row(invoice)
            self._insert_job_row(job)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return invoice

    def requeue_invoice(self, invoice_id: str, job: Job) -> bool:
        """Move an Error invoice back to Processing and queue job for it.

        Both writes happen in one transaction. Returns False, writing
        nothing, when the invoice is no longer in Error.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            cur = self.conn.execute(
                "UPDATE invoices SET status = ?, updated_at = ?"
                " WHERE id = ? AND status = ?",
                (InvoiceStatus.PROCESSING.value, _now(), invoice_id,
                 InvoiceStatus.ERROR.value),
            )
            if cur.rowcount != 1:
                self.conn.rollback()
                return False
            self._insert_job_row(job)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return True

    def claim_next_job(self, now: str | None = None) -> Job | None:
        """Atomically move the oldest available queued job to running.

        Jobs whose invoice already has a running job are left queued, so
        two workers never process the same invoice at once. Retried jobs
        are not available before their available_at.
        """
        now = now or _now()
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            row = self.conn.execute(
                "SELECT * FROM jobs"
                " WHERE status = ?"
                "   AND (available_at IS NULL OR available_at <= ?)"
                "   AND invoice_id NOT IN ("
                "     SELECT invoice_id FROM jobs WHERE status = ?"
                "   )"
                " ORDER BY created_at, rowid LIMIT 1",
                (JobStatus.QUEUED.value, now, JobStatus.RUNNING.value),
            ).fetchone()
            if row is None:
                self.conn.rollback()
                return None
            started_at = _now()
            self.conn.execute(
                "UPDATE jobs SET status = ?, attempts = attempts + 1,"
                " started_at = ? WHERE id = ?",
                (JobStatus.RUNNING.value, started_at, row["id"]),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        job = self._row_to_job(row)
        job.status = JobStatus.RUNNING.value
        job.attempts += 1
        job.started_at = started_at
        return job

    def finish_job(
        self, job_id: str, status: str, error_message: str | None = None,
    ) -> bool:
        """Record a job's outcome. A job that already finished is left as is."""
        cur = self.conn.execute(
            "UPDATE jobs SET status = ?, error_message = ?, finished_at = ?"
            " WHERE id = ? AND status IN (?, ?)",
            (status, error_message, _now(), job_id,
             JobStatus.QUEUED.value, JobStatus.RUNNING.value),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def retry_job(
        self, job_id: str, invoice_id: str, error_message: str, available_at: str,
    ) -> bool:
        """Put a running job back in the queue after a transient failure.

        The invoice goes from Error back to Processing in the same
        transaction. Returns False, writing nothing, when the invoice was
        moved out of Error meanwhile or the job is no longer running.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            cur = self.conn.execute(
                "UPDATE invoices SET status = ?, updated_at = ?"
                " WHERE id = ? AND status = ?",
                (InvoiceStatus.PROCESSING.value, _now(), invoice_id,
                 InvoiceStatus.ERROR.value),
            )
            if cur.rowcount != 1:
                self.conn.rollback()
                return False
            cur = self.conn.execute(
                "UPDATE jobs SET status = ?, error_message = ?,"
                " available_at = ?, started_at = NULL"
                " WHERE id = ? AND status = ?",
                (JobStatus.QUEUED.value, error_message, available_at,
                 job_id, JobStatus.RUNNING.value),
            )
            if cur.rowcount != 1:
                self.conn.rollback()
                return False
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return True

    def fail_stale_jobs(self, started_before: str, message: str) -> list[Job]:
        """Fail running jobs started before the cutoff; their worker is gone.

        Invoices of those jobs still in Processing, with no other job queued
        or running, move to Error with the message so they can be
        reprocessed.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            rows = self.conn.execute(
                "SELECT * FROM jobs WHERE status = ? AND started_at < ?",
                (JobStatus.RUNNING.value, started_before),
            ).fetchall()
            now = _now()
            for row in rows:
                self.conn.execute(
                    "UPDATE jobs SET status = ?, error_message = ?, finished_at = ?"
                    " WHERE id = ?",
                    (JobStatus.FAILED.value, message, now, row["id"]),
                )
                # A requeued invoice belongs to its newer job
                self.conn.execute(
                    "UPDATE invoices SET status = ?, error_message = ?, updated_at = ?"
                    " WHERE id = ? AND status = ?"
                    "   AND NOT EXISTS ("
                    "     SELECT 1 FROM jobs WHERE invoice_id = ? AND status IN (?, ?)"
                    "   )",
                    (InvoiceStatus.ERROR.value, message[:ERROR_MESSAGE_MAX_LENGTH],
                     now, row["invoice_id"], InvoiceStatus.PROCESSING.value,
                     row["invoice_id"], JobStatus.QUEUED.value, JobStatus.RUNNING.value),
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        jobs = [self._row_to_job(r) for r in rows]
        for job in jobs:
            job.status = JobStatus.FAILED.value
            job.error_message = message
        return jobs

    def get_job(self, job_id: str) -> Job | None:
        row = self.conn.execute(
            "SELECT * FROM jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return self._row_to_job(row) if row else None

    def get_jobs_for_invoice(self, invoice_id: str) -> list[Job]:
        rows = self.conn.execute(
            "SELECT * FROM jobs WHERE invoice_id = ? ORDER BY created_at, rowid",
            (invoice_id,),
        ).fetchall()
        return [self._row_to_job(r) for r in rows]

    # ── API Usage ───────────────────────────────────────────

    def increment_api_usage(
        self, month: str, service: str,
        requests: int = 1,
        tokens_in: int = 0, tokens_out: int = 0,
        cost_cents: int = 0,
    ):
        """Upsert api_usage row: increment counters for month+service."""
        self.conn.execute(
            "INSERT INTO api_usage"
            " (id, month, service, request_count, input_tokens,"
            "  output_tokens, estimated_cost_cents, updated_at)"
            " VALUES (hex(randomblob(16)), ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)"
            " ON CONFLICT(month, service) DO UPDATE SET"
            "  request_count = request_count + excluded.request_count,"
            "  input_tokens = input_tokens + excluded.input_tokens,"
            "  output_tokens = output_tokens + excluded.output_tokens,"
            "  estimated_cost_cents = estimated_cost_cents + excluded.estimated_cost_cents,"
            "  updated_at = CURRENT_TIMESTAMP",
            (month, service, requests, tokens_in, tokens_out, cost_cents),
        )
        self.conn.commit()

    def get_monthly_cost(self, month: str) -> int:
        """Total estimated cost in cents for a given month."""
        row = self.conn.execute(
            "SELECT COALESCE(SUM(estimated_cost_cents), 0) FROM api_usage"
            " WHERE month = ?",
            (month,),
        ).fetchone()
        return row[0]

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"], name=row["name"], email=row["email"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"], user_id=row["user_id"], name=row["name"],
            bank=row["bank"], last_digits=row["last_digits"],
            conversion_rate=row["conversion_rate"],
            annual_fee=row["annual_fee"], tier=row["tier"],
            active=bool(row["active"]), created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_card_reward_program(row: sqlite3.Row) -> CardRewardProgram:
        return CardRewardProgram(
            id=row["id"], card_id=row["card_id"],
            reward_program_id=row["reward_program_id"],
            conversion_rate=row["conversion_rate"],
            is_primary=bool(row["is_primary"]), terms=row["terms"],
        )

    @staticmethod
    def _row_to_category(row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"], code=row["code"], name=row["name"],
            description=row["description"], icon=row["icon"],
            color=row["color"],
        )

    @staticmethod
    def _row_to_reward_program(row: sqlite3.Row) -> RewardProgram:
        return RewardProgram(
            id=row["id"], name=row["name"], code=row["code"],
            description=row["description"], website=row["website"],
            logo_path=row["logo_path"],
        )

    @staticmethod
    def _row_to_invoice(row: sqlite3.Row) -> Invoice:
        return Invoice(
            id=row["id"], user_id=row["user_id"], card_id=row["card_id"],
            reference_date=row["reference_date"],
            total_amount=row["total_amount"], status=row["status"],
            file_path=row["file_path"], due_date=row["due_date"],
            closing_date=row["closing_date"], notes=row["notes"],
            error_message=row["error_message"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], invoice_id=row["invoice_id"],
            category_id=row["category_id"],
            merchant_name=row["merchant_name"],
            transaction_date=row["transaction_date"], amount=row["amount"],
            points_earned=row["points_earned"],
            is_recommended=bool(row["is_recommended"]),
            description=row["description"], created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_point(row: sqlite3.Row) -> Point:
        return Point(
            id=row["id"], user_id=row["user_id"],
            reward_program_id=row["reward_program_id"],
            transaction_id=row["transaction_id"], amount=row["amount"],
            expiration_date=row["expiration_date"], status=row["status"],
            description=row["description"], created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"], invoice_id=row["invoice_id"],
            file_path=row["file_path"], status=row["status"],
            attempts=row["attempts"], error_message=row["error_message"],
            created_at=row["created_at"], started_at=row["started_at"],
            finished_at=row["finished_at"], available_at=row["available_at"],
        )
