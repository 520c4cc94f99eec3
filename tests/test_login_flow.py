from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from signon.api.server import create_app
from signon.auth.models import GoogleProfile, Session
from signon.auth.session import sign


def _response(status: int, payload) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.json.return_value = payload
    return r


USERINFO = {
    "id": "1093",
    "email": "a@example.com",
    "verified_email": True,
    "name": "Ada Lovelace",
    "given_name": "Ada",
    "picture": "https://example.com/a.png",
    "locale": "en",
}


def _profile() -> GoogleProfile:
    return GoogleProfile.model_validate(USERINFO)


def _client(cfg, users, sessions) -> TestClient:
    return TestClient(create_app(cfg, users=users, sessions=sessions), follow_redirects=False)


def test_healthz_is_public(auth_env, user_store, session_store) -> None:
    r = _client(auth_env, user_store, session_store).get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_anonymous_root_redirects_to_google(auth_env, user_store, session_store) -> None:
    with patch("signon.auth.google.requests") as mock_requests:
        r = _client(auth_env, user_store, session_store).get("/")
        mock_requests.post.assert_not_called()
        mock_requests.get.assert_not_called()

    assert r.status_code == 302
    loc = urlparse(r.headers["location"])
    assert loc.netloc == "accounts.google.com"
    q = parse_qs(loc.query)
    assert q["response_type"] == ["code"]
    assert "openid email profile" in q["scope"][0]
    assert r.headers["cache-control"] == "no-store"
    assert not session_store.by_id


def test_callback_without_code_is_400(auth_env, user_store, session_store) -> None:
    c = _client(auth_env, user_store, session_store)
    assert c.get("/google/callback").status_code == 400
    assert c.get("/google/callback?code=").status_code == 400
    assert not user_store.by_id
    assert not session_store.by_id


def test_callback_success_then_cookie_login(auth_env, user_store, session_store) -> None:
    c = _client(auth_env, user_store, session_store)
    with patch("signon.auth.google.requests.post", return_value=_response(200, {"access_token": "at"})), patch(
        "signon.auth.google.requests.get", return_value=_response(200, USERINFO)
    ):
        r = c.get("/google/callback?code=abc")

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    set_cookie = r.headers["set-cookie"].lower()
    assert set_cookie.startswith("token=")
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert "max-age=7776000" in set_cookie

    assert len(user_store.by_id) == 1
    user = next(iter(user_store.by_id.values()))
    assert user.email == "a@example.com"
    assert len(session_store.by_id) == 1
    session = next(iter(session_store.by_id.values()))
    assert session.user_id == user.id

    token = r.cookies.get("token")
    assert token == sign(session.id, auth_env.cookie_secret)

    with patch("signon.auth.google.requests") as mock_requests:
        r2 = c.get("/", cookies={"token": token})
        mock_requests.post.assert_not_called()
        mock_requests.get.assert_not_called()
    assert r2.status_code == 200
    body = r2.json()
    assert body["email"] == "a@example.com"
    assert body["id"] == user.id
    assert body["given_name"] == "Ada"


def test_second_login_reuses_user_and_adds_session(auth_env, user_store, session_store) -> None:
    c = _client(auth_env, user_store, session_store)
    changed = dict(USERINFO, name="Someone Else")
    for info in (USERINFO, changed):
        with patch("signon.auth.google.requests.post", return_value=_response(200, {"access_token": "at"})), patch(
            "signon.auth.google.requests.get", return_value=_response(200, info)
        ):
            assert c.get("/google/callback?code=abc").status_code == 302

    assert len(user_store.by_id) == 1
    assert next(iter(user_store.by_id.values())).name == "Ada Lovelace"
    assert len(session_store.by_id) == 2


def test_token_exchange_failure_is_500_without_side_effects(auth_env, user_store, session_store) -> None:
    c = _client(auth_env, user_store, session_store)
    with patch("signon.auth.google.requests.post", return_value=_response(400, {"error": "invalid_grant"})):
        r = c.get("/google/callback?code=stale")

    assert r.status_code == 500
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}
    assert not user_store.by_id
    assert not session_store.by_id


def test_userinfo_failure_is_500_without_side_effects(auth_env, user_store, session_store) -> None:
    c = _client(auth_env, user_store, session_store)
    with patch("signon.auth.google.requests.post", return_value=_response(200, {"access_token": "at"})), patch(
        "signon.auth.google.requests.get", return_value=_response(503, {})
    ):
        r = c.get("/google/callback?code=abc")

    assert r.status_code == 500
    assert not user_store.by_id
    assert not session_store.by_id


def test_cookie_signed_with_other_secret_is_anonymous(auth_env, user_store, session_store) -> None:
    user = user_store.upsert_on_first_login(_profile())
    sid = session_store.create(user.id)
    forged = sign(sid, "some-other-secret")

    r = _client(auth_env, user_store, session_store).get("/", cookies={"token": forged})
    assert r.status_code == 302
    assert urlparse(r.headers["location"]).netloc == "accounts.google.com"


def test_expired_session_is_anonymous(auth_env, user_store, session_store) -> None:
    """Route-level behaviour with the in-memory store; the SQL expiry horizon is covered in
    test_store_sql.py and, against a live database, test_store_postgres.py."""
    user = user_store.upsert_on_first_login(_profile())
    sid = session_store.create(user.id)
    session_store.ttl_seconds = 0

    r = _client(auth_env, user_store, session_store).get("/", cookies={"token": sign(sid, auth_env.cookie_secret)})
    assert r.status_code == 302


def test_unknown_session_is_anonymous(auth_env, user_store, session_store) -> None:
    token = sign(str(uuid.uuid4()), auth_env.cookie_secret)
    r = _client(auth_env, user_store, session_store).get("/", cookies={"token": token})
    assert r.status_code == 302


def test_session_with_missing_user_is_500(auth_env, user_store, session_store) -> None:
    sid = str(uuid.uuid4())
    orphan = Session(id=sid, user_id=str(uuid.uuid4()), created_at=datetime.now(timezone.utc))
    session_store.by_id[sid] = orphan

    r = _client(auth_env, user_store, session_store).get("/", cookies={"token": sign(sid, auth_env.cookie_secret)})
    assert r.status_code == 500


def test_callback_without_cookie_secret_is_500(auth_env, monkeypatch, user_store, session_store) -> None:
    from signon.auth.config import load_auth_config

    monkeypatch.delenv("COOKIE_SECRET")
    load_auth_config.cache_clear()
    with patch("signon.auth.google.requests.post") as mock_post:
        r = _client(load_auth_config(), user_store, session_store).get("/google/callback?code=abc")
        mock_post.assert_not_called()
    assert r.status_code == 500
    assert not session_store.by_id
