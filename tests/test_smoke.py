def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain_text(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_health_reports_timestamp(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json["status"] == "ok"
    assert r.json["message"] == "Server is running"
    assert r.json["timestamp"]


def test_public_data_guest_then_personalised(app, client):
    from conftest import signup

    r = client.get("/api/public/data")
    assert r.json["message"] == "Hello guest"
    assert r.json["personalized"] is False

    c, _ = signup(app, "asha")
    r = c.get("/api/public/data")
    assert r.json["message"] == "Hello asha"
    assert r.json["personalized"] is True


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["ok"] is False
    assert r.json["code"] == "NOT_FOUND"
    assert r.json["error"] == "NOT_FOUND"


def test_wrong_method_uses_error_envelope(client):
    r = client.get("/api/auth/login")
    assert r.status_code == 405
    assert r.json["code"] == "METHOD_NOT_ALLOWED"


def test_protected_route_requires_session(client):
    r = client.get("/api/has-active-listing")
    assert r.status_code == 401
    assert r.json["message"] == "Missing access token"


def test_airports_list_and_terminals(client):
    r = client.get("/api/airports")
    assert r.status_code == 200
    codes = [a["airportCode"] for a in r.json["data"]]
    assert codes == ["BOM", "DEL"]

    r = client.post("/api/airport-terminals", json={"airportCode": "del"})
    assert r.status_code == 200
    assert {"id": "T3", "name": "Terminal 3"} in r.json["data"]

    r = client.post("/api/airport-terminals", json={"airportCode": "XXX"})
    assert r.status_code == 404

    r = client.post("/api/airport-terminals", json={"airportCode": "TOOLONG"})
    assert r.status_code == 400


def test_non_object_json_body_rejected(app):
    from conftest import signup

    c, _ = signup(app, "ravi")
    r = c.post("/api/request-connection", json=["not", "an", "object"])
    assert r.status_code == 400
    assert r.json["message"] == "Request body must be a JSON object"


def test_out_of_range_ids_are_client_errors(app, client):
    from conftest import signup

    huge = "99999999999999999999"
    r = client.get(f"/api/user/{huge}/photo")
    assert r.status_code == 404
    assert r.json["ok"] is False

    c, _ = signup(app, "ravi")
    assert c.get(f"/api/group/{huge}").status_code == 400
    assert c.get(f"/api/traveller-by-airport/DEL/{huge}").status_code == 404
    assert c.get(f"/api/groups/{huge}/messages").status_code == 400


def test_production_refuses_sqlite(tmp_path, monkeypatch):
    import pytest

    from app.halfride import create_app

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


def test_cors_origins_are_allowed(tmp_path, monkeypatch):
    from app.halfride import create_app

    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'cors.db'}")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173, https://halfride.example")
    c = create_app().test_client()

    r = c.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert r.headers.get("Access-Control-Allow-Origin") == "http://localhost:5173"
    r = c.get("/api/health", headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in r.headers
