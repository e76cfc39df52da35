import time

from app.halfride.db import session_scope
from app.halfride.models import AuditEvent, User

from conftest import signup


def _login(c, username, password="password123"):
    return c.post("/api/auth/login", json={"username": username, "password": password})


def test_signup_creates_user_and_session(app):
    c, uid = signup(app, "meera", is_female=True)

    r = c.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json == {"ok": True, "uid": str(uid), "username": "meera"}

    with session_scope(app) as s:
        u = s.get(User, uid)
        assert u.is_female is True
        assert u.session_jti_hash
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.signup").count() == 1


def test_signup_username_is_unique_case_insensitively(app):
    signup(app, "Kabir")
    c = app.test_client()
    r = c.post(
        "/api/auth/signup/complete",
        json={
            "username": "kabir",
            "password": "password123",
            "FirstName": "K",
            "LastName": "B",
            "DOB": "1990-01-01",
            "isFemale": False,
            "Phone": "+91",
        },
    )
    assert r.status_code == 409
    assert r.json["code"] == "USERNAME_TAKEN"


def test_signup_validation(client):
    base = {
        "username": "ok_name",
        "password": "password123",
        "FirstName": "A",
        "LastName": "B",
        "DOB": "1990-01-01",
        "isFemale": False,
        "Phone": "+91",
    }
    for field, value in (
        ("username", "x"),
        ("password", "short"),
        ("DOB", "not-a-date"),
        ("isFemale", "maybe"),
        ("FirstName", ""),
        ("Phone", ""),
    ):
        r = client.post("/api/auth/signup/complete", json={**base, field: value})
        assert r.status_code == 400, field
        assert r.json["ok"] is False


def test_login_logout_and_bad_credentials(app):
    signup(app, "dev")
    c = app.test_client()

    r = _login(c, "dev", "wrong-password")
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"

    r = _login(c, "DEV")
    assert r.status_code == 200
    assert r.json["username"] == "dev"
    assert c.get("/api/auth/me").status_code == 200

    assert c.post("/api/auth/logout").status_code == 200
    assert c.get("/api/auth/me").status_code == 401


def test_login_rejects_non_string_password(app):
    signup(app, "dev")
    c = app.test_client()

    for bad in (12345678, ["password123"], {"p": 1}):
        r = _login(c, "dev", bad)
        assert r.status_code == 400
        assert r.json["code"] == "VALIDATION_ERROR"
    assert c.get("/api/auth/me").status_code == 401


def test_logout_revokes_other_sessions(app):
    first, _ = signup(app, "tara")
    second = app.test_client()
    assert _login(second, "tara").status_code == 200

    # the second login rotated the session id, so the first cookie is stale
    assert first.get("/api/auth/me").status_code == 401
    assert second.get("/api/auth/me").status_code == 200


def test_login_rate_limited(app):
    signup(app, "sam")
    c = app.test_client()
    for _ in range(5):
        assert _login(c, "sam", "nope-nope").status_code == 401
    r = _login(c, "sam")
    assert r.status_code == 429
    assert r.json["code"] == "TOO_MANY_REQUESTS"


def test_expired_access_window_requires_refresh(app):
    c, _ = signup(app, "nina")
    app.config["SESSION_ACCESS_TTL_SECONDS"] = 60
    with c.session_transaction() as sess:
        sess["issued_at"] = int(time.time()) - 120

    r = c.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json["code"] == "ACCESS_TOKEN_EXPIRED"

    assert c.post("/api/auth/refresh").status_code == 200
    assert c.get("/api/auth/me").status_code == 200


def test_refresh_without_session_is_revoked(client):
    r = client.post("/api/auth/refresh")
    assert r.status_code == 401
    assert r.json["code"] == "REFRESH_REVOKED"


def test_forgot_password_requires_matching_phone(app):
    c, _ = signup(app, "omar", phone="+919999999999")

    anon = app.test_client()
    r = anon.post(
        "/api/auth/forgot-password/complete",
        json={"username": "omar", "Phone": "+910000000000", "newPassword": "newpassword1"},
    )
    assert r.status_code == 400
    assert r.json["code"] == "PHONE_MISMATCH"

    r = anon.post(
        "/api/auth/forgot-password/complete",
        json={"username": "omar", "Phone": "+919999999999", "newPassword": "newpassword1"},
    )
    assert r.status_code == 200

    # existing sessions are revoked and the new password works
    assert c.get("/api/auth/me").status_code == 401
    assert _login(anon, "omar").status_code == 401
    assert _login(anon, "omar", "newpassword1").status_code == 200
