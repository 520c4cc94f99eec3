"""
Versioned SQL migrations for the users/sessions schema.

Files in `migrations/` are applied in name order, one transaction each. Applied
versions are recorded with a checksum so an edited migration is detected instead of
silently skipped.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from signon.store.config import StoreConfig, build_postgres_dsn, load_store_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Serializes concurrent migrators (e.g. several replicas starting at once).
MIGRATION_LOCK_KEY = 583920174461


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    checksum: str
    sql: str


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.is_dir():
        return []
    out: List[Migration] = []
    for path in sorted(directory.glob("*.sql")):
        raw = path.read_bytes()
        out.append(
            Migration(
                version=path.stem.split("_", 1)[0],
                name=path.name,
                checksum=hashlib.sha256(raw).hexdigest(),
                sql=raw.decode("utf-8"),
            )
        )
    return out


def pending_migrations(applied: Dict[str, str], migrations: Sequence[Migration]) -> List[Migration]:
    """Migrations not yet recorded; raises if a recorded one was edited afterwards."""
    pending: List[Migration] = []
    for m in migrations:
        recorded = applied.get(m.version)
        if recorded is None:
            pending.append(m)
        elif recorded != m.checksum:
            raise RuntimeError(f"Migration {m.name} changed after it was applied ({recorded[:12]} != {m.checksum[:12]})")
    return pending


def _connect(dsn: str):
    import psycopg  # type: ignore[import-not-found]

    return psycopg.connect(dsn)


def apply_migrations(*, dsn: str, migrations: Optional[Sequence[Migration]] = None) -> Tuple[int, List[str]]:
    """
    Apply pending migrations under an advisory lock.

    Returns: (applied_count, applied_versions)
    """
    migs = list(migrations) if migrations is not None else load_migrations()
    done: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s)", (MIGRATION_LOCK_KEY,))
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                  version text PRIMARY KEY,
                  checksum text NOT NULL,
                  applied_at timestamptz NOT NULL DEFAULT now()
                )
                """
            )
            rows = conn.execute("SELECT version, checksum FROM schema_migrations").fetchall()
            applied = {str(v): str(c) for v, c in rows}

            for m in pending_migrations(applied, migs):
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s)",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s", m.name)
                done.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s)", (MIGRATION_LOCK_KEY,))

    return len(done), done


def maybe_auto_migrate(cfg: Optional[StoreConfig] = None) -> Tuple[bool, str]:
    """
    Migrate on startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Returns: (did_attempt, message). Failures are reported, not raised.
    """
    cfg = cfg or load_store_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    try:
        n, versions = apply_migrations(dsn=dsn)
    except Exception as e:
        logger.exception("Migration failed")
        return True, f"Migration failed: {e}"
    return True, f"Applied {n} migration(s): {', '.join(versions)}" if n else "No pending migrations"


def main() -> int:
    dsn = build_postgres_dsn(load_store_config())
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).")
        return 2
    n, versions = apply_migrations(dsn=dsn)
    print(f"Applied {n} migration(s): {', '.join(versions)}" if n else "No pending migrations.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
