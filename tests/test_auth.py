from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from conftest import PASSWORD
from unisphere.database import async_session_maker
from unisphere.models.refresh_token import RefreshToken
from unisphere.services.auth import purge_expired_tokens
from unisphere.tasks.tokens import purge_refresh_tokens


def login(client, email, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def refresh(client, token):
    return client.post("/api/v1/auth/refresh", json={"refreshToken": token})


def load_token(seed, token):
    async def _load():
        async with async_session_maker() as db:
            result = await db.execute(select(RefreshToken).where(RefreshToken.token == token))
            return result.scalar_one_or_none()

    return seed.run(_load)


def test_login_returns_token_pair(client, seed):
    seed.user(email="a@x")

    response = login(client, "a@x")

    assert response.status_code == 200
    data = response.json()
    assert data["tokenType"] == "Bearer"
    assert data["expiresIn"] == 3600
    assert data["refreshExpiresIn"] == 30 * 24 * 3600
    assert data["accessToken"].count(".") == 2
    assert load_token(seed, data["refreshToken"]) is not None


def test_login_with_wrong_password(client, seed):
    seed.user(email="a@x")

    response = login(client, "a@x", "wrong-password")

    assert response.status_code == 401
    assert response.json() == {"error": "invalid credentials", "code": "Unauthorized"}


def test_login_unknown_user(client):
    response = login(client, "nobody@x")
    assert response.status_code == 401


def test_login_validation_error(client):
    response = client.post("/api/v1/auth/login", json={"email": "a@x"})
    assert response.status_code == 400
    assert response.json()["code"] == "BadRequest"


def test_refresh_is_one_shot(client, seed):
    seed.user(email="a@x")
    first = login(client, "a@x").json()

    second = refresh(client, first["refreshToken"])
    assert second.status_code == 200
    rotated = second.json()
    assert rotated["refreshToken"] != first["refreshToken"]
    assert rotated["accessToken"] != first["accessToken"]

    replay = refresh(client, first["refreshToken"])
    assert replay.status_code == 401
    assert replay.json()["code"] == "Unauthorized"
    assert replay.json()["error"] == "token revoked"

    third = refresh(client, rotated["refreshToken"])
    assert third.status_code == 200
    assert third.json()["refreshToken"] not in (first["refreshToken"], rotated["refreshToken"])


def test_refresh_with_expired_token_revokes_it(client, seed):
    user = seed.user()
    seed.refresh_token(user, "expired-token", datetime.now(timezone.utc) - timedelta(minutes=1))

    response = refresh(client, "expired-token")

    assert response.status_code == 401
    assert response.json()["error"] == "token expired"
    assert load_token(seed, "expired-token").revoked is True


def test_refresh_with_unknown_token(client):
    response = refresh(client, "does-not-exist")
    assert response.status_code == 401
    assert response.json()["error"] == "token not found"


def test_logout_then_refresh_fails(client, seed):
    seed.user(email="a@x")
    pair = login(client, "a@x").json()

    response = client.post("/api/v1/auth/logout", json={"refreshToken": pair["refreshToken"]})
    assert response.status_code == 204

    # already revoked
    again = client.post("/api/v1/auth/logout", json={"refreshToken": pair["refreshToken"]})
    assert again.status_code == 204

    assert refresh(client, pair["refreshToken"]).status_code == 401


def test_logout_unknown_token(client):
    response = client.post("/api/v1/auth/logout", json={"refreshToken": "nope"})
    assert response.status_code == 401


def test_me_accepts_bearer_and_bare_tokens(client, seed):
    user = seed.user(email="a@x")
    token = seed.token(user)

    with_scheme = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    bare = client.get("/api/v1/auth/me", headers={"Authorization": token})

    assert with_scheme.status_code == 200
    assert bare.status_code == 200
    data = with_scheme.json()
    assert data["id"] == user.id
    assert data["email"] == "a@x"
    assert data["roleType"] == "STUDENT"


def test_me_requires_valid_header(client, seed):
    seed.user()
    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer a.b.c"}).status_code == 401


def test_deactivated_user_cannot_use_token(client, seed):
    user = seed.user(is_active=False)
    response = client.get("/api/v1/auth/me", headers=seed.headers(user))
    assert response.status_code == 401


def _seed_purge_fixtures(seed):
    user = seed.user()
    now = datetime.now(timezone.utc)
    seed.refresh_token(user, "live", now + timedelta(days=1))
    seed.refresh_token(user, "expired", now - timedelta(days=1))
    seed.refresh_token(user, "revoked-recent", now + timedelta(days=1), revoked=True, created_at=now - timedelta(days=1))
    seed.refresh_token(user, "revoked-old", now + timedelta(days=5), revoked=True, created_at=now - timedelta(days=45))


def test_purge_removes_expired_and_aged_revoked_tokens(client, seed):
    _seed_purge_fixtures(seed)

    async def _purge():
        async with async_session_maker() as db:
            return await purge_expired_tokens(db)

    assert seed.run(_purge) == 2
    assert load_token(seed, "live") is not None
    assert load_token(seed, "revoked-recent") is not None
    assert load_token(seed, "expired") is None
    assert load_token(seed, "revoked-old") is None


def test_purge_task(client, seed):
    _seed_purge_fixtures(seed)

    result = purge_refresh_tokens()

    assert result == {"ok": True, "removed": 2}
