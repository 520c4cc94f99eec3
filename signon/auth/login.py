"""
Login orchestration: cookie -> session -> user, and Google code -> signed session token.

Routes stay thin; everything that touches the stores or the provider lives here.
"""
from __future__ import annotations

import logging
from typing import Optional

from signon.auth.config import AuthConfig
from signon.auth.google import fetch_profile_for_code
from signon.auth.models import User
from signon.auth.session import sign, verify
from signon.store.sessions import SessionIntegrityError, SessionStore
from signon.store.users import UserStore

logger = logging.getLogger(__name__)


def resolve_session_user(
    cfg: AuthConfig,
    users: UserStore,
    sessions: SessionStore,
    token: Optional[str],
) -> Optional[User]:
    """
    Return the logged-in user for a cookie value, or None for an anonymous request.

    A bad signature, unknown session or expired session is an authentication miss.
    A live session whose user is gone raises SessionIntegrityError.
    """
    session_id = verify(token, cfg.cookie_secret)
    if session_id is None:
        if token:
            logger.debug("Ignoring session cookie with invalid signature")
        return None

    session = sessions.get(session_id)
    if session is None:
        logger.debug("Session %s not found or expired", session_id)
        return None

    user = users.find_by_id(session.user_id)
    if user is None:
        raise SessionIntegrityError(f"Session {session.id} references missing user {session.user_id}")
    return user


def complete_login(cfg: AuthConfig, users: UserStore, sessions: SessionStore, *, code: str) -> str:
    """
    Finish the callback: exchange the code, upsert the user, create a session.

    Returns the signed cookie value. Raises ProviderError before any write if the
    provider exchange or profile fetch fails.
    """
    if not cfg.cookie_secret:
        raise ValueError("Cookie secret is not configured (COOKIE_SECRET)")

    profile = fetch_profile_for_code(cfg, code=code)

    user = users.upsert_on_first_login(profile)
    session_id = sessions.create(user.id)
    logger.info("Created session for user %s", user.id)
    return sign(session_id, cfg.cookie_secret)
