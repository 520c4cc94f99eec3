from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Sequence

from signon.auth.models import GoogleProfile, User
from signon.store.db import Database

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, email, google_id, verified_email, name, given_name, family_name, picture, locale, created_at"


def _row_to_user(row: Sequence[Any]) -> User:
    user_id, email, google_id, verified_email, name, given_name, family_name, picture, locale, created_at = row
    return User(
        id=str(user_id),
        email=email,
        google_id=google_id,
        verified_email=bool(verified_email),
        name=name,
        given_name=given_name,
        family_name=family_name,
        picture=picture,
        locale=locale,
        created_at=created_at,
    )


def parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    """Parse an opaque id; anything that is not a UUID cannot exist in the store."""
    try:
        return uuid.UUID(str(value or ""))
    except ValueError:
        return None


class UserStore:
    """Users keyed by email, with id lookup for session resolution."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_email(self, email: str) -> Optional[User]:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
                (email,),
            ).fetchone()
        return _row_to_user(row) if row else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        uid = parse_uuid(user_id)
        if uid is None:
            return None
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
                (uid,),
            ).fetchone()
        return _row_to_user(row) if row else None

    def upsert_on_first_login(self, profile: GoogleProfile) -> User:
        """
        Return the user for `profile.email`, inserting it on first login.

        An existing row is returned unchanged (no profile refresh). The UNIQUE(email)
        constraint makes concurrent first logins converge on a single row.
        """
        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                INSERT INTO users (email, google_id, verified_email, name, given_name, family_name, picture, locale)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (email) DO NOTHING
                RETURNING {_USER_COLUMNS}
                """,
                (
                    profile.email,
                    profile.id,
                    profile.verified_email,
                    profile.name,
                    profile.given_name,
                    profile.family_name,
                    profile.picture,
                    profile.locale,
                ),
            ).fetchone()
            if row:
                user = _row_to_user(row)
                logger.info("Created user %s on first login", user.id)
                return user

            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
                (profile.email,),
            ).fetchone()
        if not row:
            # Conflict on email but no row visible: only possible if the row was deleted concurrently.
            raise RuntimeError(f"User upsert for {profile.email} returned no row")
        return _row_to_user(row)
