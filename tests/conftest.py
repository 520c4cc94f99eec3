"""
Pytest config.

Pins the repo root on sys.path so `import signon` works without an editable install,
and provides in-memory stand-ins for the Postgres-backed stores.
"""

from __future__ import annotations

import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from signon.auth.config import load_auth_config  # noqa: E402
from signon.auth.models import GoogleProfile, Session, User  # noqa: E402

TEST_SECRET = "test-cookie-secret-for-testing-purposes-only"


class MemoryUserStore:
    def __init__(self) -> None:
        self.by_id: Dict[str, User] = {}

    def find_by_email(self, email: str) -> Optional[User]:
        for u in self.by_id.values():
            if u.email == email:
                return u
        return None

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.by_id.get(user_id)

    def upsert_on_first_login(self, profile: GoogleProfile) -> User:
        existing = self.find_by_email(profile.email)
        if existing is not None:
            return existing
        user = User(
            id=str(uuid.uuid4()),
            email=profile.email,
            google_id=profile.id,
            verified_email=profile.verified_email,
            name=profile.name,
            given_name=profile.given_name,
            family_name=profile.family_name,
            picture=profile.picture,
            locale=profile.locale,
            created_at=datetime.now(timezone.utc),
        )
        self.by_id[user.id] = user
        return user


class MemorySessionStore:
    def __init__(self, ttl_seconds: int = 90 * 24 * 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self.by_id: Dict[str, Session] = {}

    def create(self, user_id: str) -> str:
        sid = str(uuid.uuid4())
        self.by_id[sid] = Session(id=sid, user_id=user_id, created_at=datetime.now(timezone.utc))
        return sid

    def get(self, session_id: str) -> Optional[Session]:
        s = self.by_id.get(session_id)
        if s is None:
            return None
        if datetime.now(timezone.utc) - s.created_at >= timedelta(seconds=self.ttl_seconds):
            return None
        return s


@pytest.fixture
def auth_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("COOKIE_SECRET", TEST_SECRET)
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("GOOGLE_REDIRECT_URI", "http://localhost:3000/google/callback")
    for k in (
        "AUTH_COOKIE_SECURE",
        "AUTH_SESSION_TTL_SECONDS",
        "AUTH_HTTP_TIMEOUT_SECONDS",
        "GOOGLE_AUTHORIZE_URL",
        "GOOGLE_TOKEN_URL",
        "GOOGLE_USERINFO_URL",
    ):
        monkeypatch.delenv(k, raising=False)
    load_auth_config.cache_clear()
    yield load_auth_config()
    load_auth_config.cache_clear()


@pytest.fixture
def user_store() -> MemoryUserStore:
    return MemoryUserStore()


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()
