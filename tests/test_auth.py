from schoolboard import main
from schoolboard.main import ensure_default_admin

from conftest import login


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_default_admin_is_created_once(client, db):
    assert db["users"].count_documents({"role": "admin"}) == 1
    assert ensure_default_admin(db) is False


def test_login_and_me(client, admin_headers):
    response = client.get("/api/auth/me", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["role"] == "admin"


def test_login_rejects_bad_password(client):
    response = client.post("/api/auth/login", data={"username": "admin", "password": "wrong"})
    assert response.status_code == 401


def test_requests_without_token_are_rejected(client, school):
    assert client.get("/api/branches").status_code == 401
    assert client.get("/api/branches", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_admin_registers_users(client, admin_headers):
    payload = {
        "username": "newteacher",
        "email": "newteacher@example.com",
        "full_name": "New Teacher",
        "password": "pass1234",
        "role": "teacher",
    }
    response = client.post("/api/auth/register", json=payload, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["role"] == "teacher"

    duplicate = client.post("/api/auth/register", json=payload, headers=admin_headers)
    assert duplicate.status_code == 400

    headers = login(client, "newteacher", "pass1234")
    assert client.get("/api/auth/me", headers=headers).json()["username"] == "newteacher"


def test_only_admin_registers_users(client, teacher_headers):
    payload = {
        "username": "sneaky",
        "email": "sneaky@example.com",
        "password": "pass1234",
        "role": "admin",
    }
    response = client.post("/api/auth/register", json=payload, headers=teacher_headers)
    assert response.status_code == 403


def test_inactive_users_cannot_log_in(client, db):
    db["users"].update_one({"username": "admin"}, {"$set": {"is_active": False}})
    response = client.post("/api/auth/login", data={"username": "admin", "password": "admin"})
    assert response.status_code == 400


def test_run_starts_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    main.run()
    assert calls == [(("schoolboard.main:app",), {"host": main.HOST, "port": main.PORT})]
