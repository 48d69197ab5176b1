from crewkit.models import Role
from crewkit.security import create_access_token


def test_login_and_me(client, make_user):
    user = make_user(Role.FIELD, email="neil@example.com")

    r = client.post("/auth/login", data={"username": "Neil@Example.com", "password": "password123"})
    assert r.status_code == 200
    data = r.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"

    r2 = client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert r2.status_code == 200
    me = r2.json()
    assert me["id"] == user.id
    assert me["email"] == "neil@example.com"
    assert me["role"] == "FIELD"
    assert "teamId" in me


def test_login_invalid_credentials(client, make_user):
    make_user(Role.FIELD, email="someone@example.com")

    r = client.post("/auth/login", data={"username": "someone@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid email or password", "code": "INVALID_CREDENTIALS"}

    r2 = client.post("/auth/login", data={"username": "nope@example.com", "password": "whatever1"})
    assert r2.status_code == 401
    assert r2.json()["code"] == "INVALID_CREDENTIALS"


def test_missing_and_bad_tokens(client):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.json()["code"] == "NOT_AUTHENTICATED"

    r2 = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r2.status_code == 401
    assert r2.json()["code"] == "INVALID_TOKEN"


def test_token_for_deleted_user(client):
    token = create_access_token("999")
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["code"] == "USER_NOT_FOUND"


def test_expired_token(client, make_user):
    user = make_user(Role.FIELD)
    token = create_access_token(str(user.id), expire_minutes=-1)
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_TOKEN"


def test_health_and_request_id(client):
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers["X-Request-ID"] == "abc-123"
