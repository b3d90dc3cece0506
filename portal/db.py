import contextlib
import importlib
import sqlite3
from typing import Dict, Iterable, List

from flask import current_app, g

from portal.errors import UpstreamUnavailable, is_transient_failure


class Database:
    def __init__(self, backend: str, connection, driver=None):
        self.backend = backend
        self._conn = connection
        self._driver = driver
        self._in_transaction = False

    def execute(self, sql: str, params: Iterable | None = None):
        try:
            if self.backend == "postgres":
                extras = importlib.import_module("psycopg2.extras")
                cursor = self._conn.cursor(cursor_factory=extras.RealDictCursor)
                if params:
                    cursor.execute(_convert_qmark_to_pg(sql), list(params))
                else:
                    cursor.execute(sql)
                return cursor
            return self._conn.execute(sql, tuple(params or ()))
        except sqlite3.OperationalError as exc:
            if is_transient_failure(str(exc)):
                raise UpstreamUnavailable(details=str(exc)) from exc
            raise
        except Exception as exc:
            if self._driver is not None and isinstance(exc, self._driver.OperationalError):
                raise UpstreamUnavailable(details=str(exc)) from exc
            raise

    @contextlib.contextmanager
    def transaction(self):
        """Run a multi-row mutation atomically; nested calls join the outer transaction."""
        if self._in_transaction:
            yield self
            return
        if self.backend == "postgres":
            self._conn.autocommit = False
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()
        finally:
            self._in_transaction = False
            if self.backend == "postgres":
                self._conn.autocommit = True

    def commit(self):
        if not self._in_transaction:
            self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        try:
            psycopg2 = importlib.import_module("psycopg2")
        except ImportError as exc:
            raise RuntimeError("psycopg2 is not installed; install the 'postgres' extra.") from exc
        try:
            conn = psycopg2.connect(db_path)
        except psycopg2.OperationalError as exc:
            raise UpstreamUnavailable(details=str(exc)) from exc
        conn.autocommit = True
        return Database("postgres", conn, driver=psycopg2)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def is_unique_violation(exc: BaseException, hints: Iterable[str] = ()) -> bool:
    pg_code = str(getattr(exc, "pgcode", "") or "").strip()
    message = str(exc or "").lower()
    if getattr(exc, "__cause__", None) is not None:
        message = f"{message} {str(exc.__cause__ or '').lower()}"

    normalized_hints = [hint.lower() for hint in hints if hint]
    if normalized_hints and not any(hint in message for hint in normalized_hints):
        return False

    if pg_code == "23505":
        return True
    if "unique constraint failed" in message:
        return True
    return "duplicate key value violates unique constraint" in message


def init_db():
    db = get_db()
    create_schema(db)
    db.commit()


_TYPES: Dict[str, Dict[str, str]] = {
    "sqlite": {"real": "REAL", "bool": "INTEGER", "false": "0", "json": "TEXT"},
    "postgres": {"real": "DOUBLE PRECISION", "bool": "BOOLEAN", "false": "FALSE", "json": "TEXT"},
}


def schema_statements(backend: str) -> List[str]:
    t = _TYPES["postgres" if backend == "postgres" else "sqlite"]
    return [
        """
        CREATE TABLE IF NOT EXISTS auth_users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            role TEXT NOT NULL DEFAULT 'vendor' CHECK (
                role IN ('vendor','procurement_officer','finance_officer','admin')
            ),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS vendors (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            business_type TEXT NOT NULL CHECK (business_type IN ('MSE','Large Enterprise')),
            contact_person TEXT,
            email TEXT NOT NULL UNIQUE,
            phone TEXT,
            address TEXT,
            mse_certificate TEXT,
            status TEXT NOT NULL DEFAULT 'Pending' CHECK (status IN ('Pending','Active','Suspended')),
            compliance_score {t["real"]} NOT NULL DEFAULT 0 CHECK (
                compliance_score >= 0 AND compliance_score <= 100
            ),
            bank_details {t["json"]},
            documents {t["json"]} NOT NULL DEFAULT '[]',
            rejection_reason TEXT,
            approved_by TEXT,
            approved_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS tenders (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            estimated_value {t["real"]} NOT NULL CHECK (estimated_value > 0),
            category TEXT NOT NULL CHECK (category IN ('goods','services','works')),
            submission_deadline TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (
                status IN ('draft','published','under_review','awarded','cancelled')
            ),
            is_reserved_for_mse {t["bool"]} NOT NULL DEFAULT {t["false"]},
            created_by TEXT NOT NULL,
            awarded_bid_id TEXT,
            documents {t["json"]} NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CHECK ((status = 'awarded') = (awarded_bid_id IS NOT NULL))
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS bids (
            id TEXT PRIMARY KEY,
            tender_id TEXT NOT NULL REFERENCES tenders (id),
            vendor_id TEXT NOT NULL REFERENCES vendors (id),
            amount {t["real"]} NOT NULL CHECK (amount > 0),
            status TEXT NOT NULL DEFAULT 'submitted' CHECK (
                status IN ('submitted','under_review','accepted','rejected')
            ),
            technical_score {t["real"]} CHECK (
                technical_score IS NULL OR (technical_score >= 0 AND technical_score <= 100)
            ),
            notes TEXT,
            documents {t["json"]} NOT NULL DEFAULT '[]',
            evaluated_by TEXT,
            evaluated_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_bids_tender_vendor ON bids (tender_id, vendor_id)",
        f"""
        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            vendor_id TEXT NOT NULL REFERENCES vendors (id),
            amount {t["real"]} NOT NULL CHECK (amount > 0),
            payment_method TEXT NOT NULL CHECK (payment_method IN ('bank_transfer','check','credit_card')),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','processing','completed','failed')
            ),
            transaction_id TEXT,
            related_tender TEXT REFERENCES tenders (id),
            related_bid TEXT REFERENCES bids (id),
            notes TEXT,
            payment_date TEXT,
            processed_by TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_payments_award
        ON payments (related_tender, related_bid)
        WHERE status <> 'failed'
        """,
        f"""
        CREATE TABLE IF NOT EXISTS compliance_history (
            id TEXT PRIMARY KEY,
            vendor_id TEXT NOT NULL REFERENCES vendors (id),
            previous_score {t["real"]} NOT NULL,
            new_score {t["real"]} NOT NULL,
            score_change {t["real"]} NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('positive','negative','neutral')),
            description TEXT NOT NULL,
            updated_by TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE INDEX IF NOT EXISTS ix_compliance_history_vendor ON compliance_history (vendor_id, created_at)",
        """
        CREATE TABLE IF NOT EXISTS vendor_approval_logs (
            id TEXT PRIMARY KEY,
            vendor_id TEXT NOT NULL REFERENCES vendors (id),
            previous_status TEXT,
            new_status TEXT NOT NULL,
            reason TEXT,
            approved_by TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS action_logs (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            action TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            details {t["json"]} NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE INDEX IF NOT EXISTS ix_action_logs_entity ON action_logs (entity_type, entity_id)",
        "CREATE INDEX IF NOT EXISTS ix_action_logs_user ON action_logs (user_id)",
        f"""
        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            message TEXT NOT NULL,
            related_id TEXT,
            is_read {t["bool"]} NOT NULL DEFAULT {t["false"]},
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE INDEX IF NOT EXISTS ix_notifications_user ON notifications (user_id, is_read)",
    ]


def create_schema(db) -> None:
    for statement in schema_statements(db.backend):
        db.execute(statement)


DROP_ORDER = (
    "notifications",
    "action_logs",
    "vendor_approval_logs",
    "compliance_history",
    "payments",
    "bids",
    "tenders",
    "vendors",
    "auth_users",
)
