from __future__ import annotations

import logging
import threading
from typing import Optional

from signon.auth.models import Session
from signon.store.db import Database
from signon.store.users import parse_uuid

logger = logging.getLogger(__name__)


class SessionIntegrityError(RuntimeError):
    """A live session references a user that does not exist."""


class SessionStore:
    """
    Sessions keyed by a Postgres-assigned UUID.

    A session is readable for `ttl_seconds` after creation. Expired rows are filtered
    out on read and deleted by `purge_expired` (see `SessionSweeper`).
    """

    def __init__(self, db: Database, *, ttl_seconds: int) -> None:
        self._db = db
        self._ttl_seconds = int(ttl_seconds)

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def create(self, user_id: str) -> str:
        uid = parse_uuid(user_id)
        if uid is None:
            raise ValueError(f"Invalid user id: {user_id!r}")
        with self._db.connection() as conn:
            row = conn.execute(
                "INSERT INTO sessions (user_id) VALUES (%s) RETURNING id",
                (uid,),
            ).fetchone()
        if not row:
            raise RuntimeError("Session insert returned no id")
        return str(row[0])

    def get(self, session_id: str) -> Optional[Session]:
        sid = parse_uuid(session_id)
        if sid is None:
            return None
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, created_at
                FROM sessions
                WHERE id = %s
                  AND created_at > now() - %s * interval '1 second'
                """,
                (sid, self._ttl_seconds),
            ).fetchone()
        if not row:
            return None
        return Session(id=str(row[0]), user_id=str(row[1]), created_at=row[2])

    def purge_expired(self) -> int:
        with self._db.connection() as conn:
            cur = conn.execute(
                "DELETE FROM sessions WHERE created_at <= now() - %s * interval '1 second'",
                (self._ttl_seconds,),
            )
            n = cur.rowcount or 0
        if n:
            logger.info("Purged %d expired session(s)", n)
        return n


class SessionSweeper:
    """Daemon thread that periodically deletes expired sessions."""

    def __init__(self, store: SessionStore, *, interval_seconds: float) -> None:
        self._store = store
        self._interval = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None or self._interval <= 0:
            return
        self._thread = threading.Thread(target=self._run, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._store.purge_expired()
            except Exception:
                # Next tick retries; reads already ignore expired rows.
                logger.exception("Session sweep failed")
