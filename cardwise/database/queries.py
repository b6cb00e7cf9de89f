"""Complex queries that span multiple tables.

These go beyond single-table CRUD and implement the aggregations used by
the recommendation engine and the reporting commands. Date bounds are
ISO strings (YYYY-MM-DD) so callers control "today".
"""

from __future__ import annotations

import sqlite3


def get_top_categories(
    conn: sqlite3.Connection, user_id: str, since: str, limit: int = 5,
) -> list[dict]:
    """Categories with the highest spend since a date, charges only."""
    rows = conn.execute(
        "SELECT c.id, c.code, c.name, c.icon, c.color,"
        "  SUM(t.amount) AS total,"
        "  COUNT(*) AS count"
        " FROM transactions t"
        " JOIN invoices i ON t.invoice_id = i.id"
        " JOIN categories c ON t.category_id = c.id"
        " WHERE i.user_id = ? AND t.transaction_date >= ? AND t.amount > 0"
        " GROUP BY c.id"
        " ORDER BY total DESC"
        " LIMIT ?",
        (user_id, since, limit),
    ).fetchall()
    return [dict(r) for r in rows]


def get_top_merchants(
    conn: sqlite3.Connection, user_id: str, since: str, limit: int = 10,
) -> list[dict]:
    rows = conn.execute(
        "SELECT t.merchant_name,"
        "  SUM(t.amount) AS total,"
        "  COUNT(*) AS frequency"
        " FROM transactions t"
        " JOIN invoices i ON t.invoice_id = i.id"
        " WHERE i.user_id = ? AND t.transaction_date >= ? AND t.amount > 0"
        " GROUP BY t.merchant_name"
        " ORDER BY total DESC"
        " LIMIT ?",
        (user_id, since, limit),
    ).fetchall()
    return [dict(r) for r in rows]


def get_monthly_spending(
    conn: sqlite3.Connection, user_id: str, since: str,
) -> list[dict]:
    """Spend per calendar month ('YYYY-MM'), oldest first."""
    rows = conn.execute(
        "SELECT substr(t.transaction_date, 1, 7) AS month,"
        "  SUM(t.amount) AS total"
        " FROM transactions t"
        " JOIN invoices i ON t.invoice_id = i.id"
        " WHERE i.user_id = ? AND t.transaction_date >= ? AND t.amount > 0"
        " GROUP BY month"
        " ORDER BY month",
        (user_id, since),
    ).fetchall()
    return [dict(r) for r in rows]


def get_activity_counts(
    conn: sqlite3.Connection, user_id: str, since: str,
) -> dict:
    """Transaction count and distinct category count since a date."""
    row = conn.execute(
        "SELECT COUNT(*) AS transaction_count,"
        "  COUNT(DISTINCT t.category_id) AS category_count"
        " FROM transactions t"
        " JOIN invoices i ON t.invoice_id = i.id"
        " WHERE i.user_id = ? AND t.transaction_date >= ?",
        (user_id, since),
    ).fetchone()
    return dict(row)


def get_largest_transactions(
    conn: sqlite3.Connection, user_id: str, since: str, limit: int = 20,
) -> list[dict]:
    """Largest charges since a date, with the paying card and category code."""
    rows = conn.execute(
        "SELECT t.id, t.merchant_name, t.transaction_date, t.amount,"
        "  t.points_earned, i.card_id, c.code AS category_code"
        " FROM transactions t"
        " JOIN invoices i ON t.invoice_id = i.id"
        " LEFT JOIN categories c ON t.category_id = c.id"
        " WHERE i.user_id = ? AND t.transaction_date >= ? AND t.amount > 0"
        " ORDER BY t.amount DESC, t.rowid"
        " LIMIT ?",
        (user_id, since, limit),
    ).fetchall()
    return [dict(r) for r in rows]


def get_points_by_program(conn: sqlite3.Connection, user_id: str) -> list[dict]:
    """Active point balance per reward program."""
    rows = conn.execute(
        "SELECT rp.id, rp.name, rp.code,"
        "  SUM(p.amount) AS total"
        " FROM points p"
        " JOIN reward_programs rp ON p.reward_program_id = rp.id"
        " WHERE p.user_id = ? AND p.status = 'Active'"
        " GROUP BY rp.id"
        " ORDER BY total DESC",
        (user_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def get_expiring_points(
    conn: sqlite3.Connection, user_id: str, today: str, until: str,
) -> list[dict]:
    rows = conn.execute(
        "SELECT rp.name AS program, p.expiration_date,"
        "  SUM(p.amount) AS total"
        " FROM points p"
        " JOIN reward_programs rp ON p.reward_program_id = rp.id"
        " WHERE p.user_id = ? AND p.status = 'Active'"
        "   AND p.expiration_date IS NOT NULL"
        "   AND p.expiration_date >= ? AND p.expiration_date <= ?"
        " GROUP BY rp.id, p.expiration_date"
        " ORDER BY p.expiration_date",
        (user_id, today, until),
    ).fetchall()
    return [dict(r) for r in rows]


def get_monthly_points(
    conn: sqlite3.Connection, user_id: str, since: str,
) -> list[dict]:
    """Points accrued per month, keyed by the originating transaction date."""
    rows = conn.execute(
        "SELECT substr(COALESCE(t.transaction_date, p.created_at), 1, 7) AS month,"
        "  SUM(p.amount) AS total"
        " FROM points p"
        " LEFT JOIN transactions t ON p.transaction_id = t.id"
        " WHERE p.user_id = ?"
        "   AND COALESCE(t.transaction_date, p.created_at) >= ?"
        " GROUP BY month"
        " ORDER BY month",
        (user_id, since),
    ).fetchall()
    return [dict(r) for r in rows]


def get_invoice_category_summary(
    conn: sqlite3.Connection, invoice_id: str,
) -> list[dict]:
    """Spend by category for one invoice; uncategorized rows group as NULL."""
    rows = conn.execute(
        "SELECT c.code, c.name,"
        "  SUM(t.amount) AS total,"
        "  COUNT(*) AS txn_count"
        " FROM transactions t"
        " LEFT JOIN categories c ON t.category_id = c.id"
        " WHERE t.invoice_id = ?"
        " GROUP BY c.id"
        " ORDER BY total DESC",
        (invoice_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def get_status_counts(conn: sqlite3.Connection) -> dict:
    """Counts for the `cardwise status` command."""
    row = conn.execute(
        "SELECT"
        "  (SELECT COUNT(*) FROM invoices) AS total_invoices,"
        "  (SELECT COUNT(*) FROM invoices WHERE status = 'Processing') AS processing,"
        "  (SELECT COUNT(*) FROM invoices WHERE status = 'Pending') AS pending,"
        "  (SELECT COUNT(*) FROM invoices WHERE status = 'Error') AS errors,"
        "  (SELECT COUNT(*) FROM transactions) AS total_txns,"
        "  (SELECT COUNT(*) FROM jobs WHERE status = 'queued') AS queued_jobs,"
        "  (SELECT COUNT(*) FROM jobs WHERE status = 'failed') AS failed_jobs"
    ).fetchone()
    return dict(row)
