"""Versioned schema migrations for comment storage.

Each migration is a list of single statements applied in order and recorded
in ``comment_migrations``. Applied ids are skipped, so running the list
again is a no-op.

Tables:
- comments: one row per submission, unique per (product, lower(email), text)
- comment_replies: moderator replies, removed with their parent comment
- comment_audit_logs: append-only moderation history
"""

from dataclasses import dataclass
from typing import Literal


Backend = Literal["sqlite", "postgres"]


@dataclass(frozen=True)
class Migration:
    id: str
    statements: tuple[str, ...]


MIGRATIONS_TABLE_SQL = {
    "sqlite": (
        "CREATE TABLE IF NOT EXISTS comment_migrations ("
        "id TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    ),
    "postgres": (
        "CREATE TABLE IF NOT EXISTS comment_migrations ("
        "id TEXT PRIMARY KEY, applied_at TIMESTAMPTZ NOT NULL)"
    ),
}


def _baseline(timestamp: str, boolean: str, false: str, metadata: str) -> Migration:
    return Migration(
        id="001_baseline",
        statements=(
            f"""
            CREATE TABLE IF NOT EXISTS comments (
                id TEXT PRIMARY KEY,
                product_id TEXT NOT NULL,
                rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
                author TEXT NOT NULL,
                email TEXT NOT NULL,
                text TEXT NOT NULL,
                status TEXT NOT NULL
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                created_at {timestamp} NOT NULL,
                moderated_at {timestamp},
                moderated_by_id TEXT,
                moderated_by_display_name TEXT
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS comment_replies (
                id TEXT PRIMARY KEY,
                comment_id TEXT NOT NULL
                    REFERENCES comments (id) ON DELETE CASCADE,
                author TEXT NOT NULL,
                text TEXT NOT NULL,
                is_admin {boolean} NOT NULL DEFAULT {false},
                admin_id TEXT,
                admin_display_name TEXT,
                responded_at {timestamp},
                status TEXT NOT NULL
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                created_at {timestamp} NOT NULL
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS comment_audit_logs (
                id TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                comment_id TEXT,
                reply_id TEXT,
                admin_id TEXT,
                admin_display_name TEXT,
                token_id TEXT,
                token_source TEXT,
                metadata {metadata},
                created_at {timestamp} NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_product_status "
            "ON comments (product_id, status)",
            "CREATE INDEX IF NOT EXISTS idx_replies_comment "
            "ON comment_replies (comment_id)",
            "CREATE INDEX IF NOT EXISTS idx_comments_moderated_at "
            "ON comments (moderated_at)",
            "CREATE INDEX IF NOT EXISTS idx_audit_logs_created "
            "ON comment_audit_logs (created_at)",
            "CREATE INDEX IF NOT EXISTS idx_audit_logs_comment "
            "ON comment_audit_logs (comment_id)",
        ),
    )


SQLITE_MIGRATIONS: tuple[Migration, ...] = (
    _baseline(timestamp="TEXT", boolean="INTEGER", false="0", metadata="TEXT"),
    Migration(
        id="002_unique_comment_dedupe",
        statements=(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_unique_comment "
            "ON comments (product_id, lower(email), text)",
        ),
    ),
)

POSTGRES_MIGRATIONS: tuple[Migration, ...] = (
    _baseline(
        timestamp="TIMESTAMPTZ", boolean="BOOLEAN", false="FALSE", metadata="JSONB"
    ),
    Migration(
        id="002_unique_comment_dedupe",
        # Hash the body: btree index rows are capped near 2.7kB
        statements=(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_unique_comment "
            "ON comments (product_id, lower(email), md5(text))",
        ),
    ),
)


def get_migrations(backend: Backend) -> tuple[Migration, ...]:
    return POSTGRES_MIGRATIONS if backend == "postgres" else SQLITE_MIGRATIONS
