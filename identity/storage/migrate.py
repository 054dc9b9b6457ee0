"""
Schema migrations for the credential store.

SQL files in `migrations/` are applied in filename order. Each applied
version is recorded with its checksum; editing an applied file is an error.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from identity.storage.config import StoreConfig, build_postgres_dsn, load_store_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Serializes concurrent server starts with DB_AUTO_MIGRATE=1.
MIGRATION_LOCK_KEY = 472910365512

_CREATE_LEDGER_SQL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
      version text PRIMARY KEY,
      checksum text NOT NULL,
      applied_at timestamptz NOT NULL DEFAULT now()
    );
"""


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class Migration:
    version: str
    checksum: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        return cls(
            version=path.name.split(".")[0],
            checksum=hashlib.sha256(raw).hexdigest(),
            sql=raw.decode("utf-8"),
        )


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.is_dir():
        return []
    return [Migration.from_file(p) for p in sorted(directory.glob("*.sql")) if p.is_file()]


def pending_migrations(migrations: Iterable[Migration], applied: dict) -> List[Migration]:
    """Filter out applied migrations, rejecting any whose file changed since."""
    out: List[Migration] = []
    for m in migrations:
        recorded = applied.get(m.version)
        if recorded is None:
            out.append(m)
        elif recorded != m.checksum:
            raise MigrationError(
                f"Migration checksum mismatch for {m.version}: db={recorded[:12]} file={m.checksum[:12]}"
            )
    return out


def _connect(dsn: str):
    import psycopg

    # Autocommit so each migration commits in its own conn.transaction() block.
    return psycopg.connect(dsn, autocommit=True)


def apply_migrations(*, dsn: str, migrations: Optional[Iterable[Migration]] = None) -> List[str]:
    """Apply pending migrations and return the versions applied."""
    migs = list(migrations) if migrations is not None else load_migrations()
    done: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            conn.execute(_CREATE_LEDGER_SQL)
            rows = conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()
            applied = {str(r[0]): str(r[1]) for r in rows}

            for m in pending_migrations(migs, applied):
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s", m.version)
                done.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))

    return done


def maybe_auto_migrate(cfg: Optional[StoreConfig] = None) -> Tuple[bool, str]:
    """
    Apply migrations at startup when DB_AUTO_MIGRATE=1.

    Returns: (did_attempt, message). Never raises.
    """
    cfg = cfg or load_store_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    try:
        versions = apply_migrations(dsn=dsn)
    except Exception as e:
        return True, f"Migration failed: {e}"
    if versions:
        return True, f"Applied {len(versions)} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
