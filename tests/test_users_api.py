"""
User endpoint tests: the verification code and registration flow,
session login / logout, identity lookups and the error envelope.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from blog_service.cache import CacheManager, user_email_key, user_id_key
from blog_service.database import Database
from blog_service.main import create_app
from blog_service.models import User
from blog_service.security import hash_credential


async def _register(client: AsyncClient, sent_codes, email="ada@example.com", nickname="ada"):
    resp = await client.post("/api/v1/users/code", json={"email": email})
    assert resp.status_code == 200
    code = [c for e, c in sent_codes if e == email][-1]
    return await client.post("/api/v1/users/register", json={
        "email": email,
        "password": "s3cret",
        "confirm_password": "s3cret",
        "nickname": nickname,
        "verify_code": code,
    })


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_with_delivered_code(async_client: AsyncClient, sent_codes):
    resp = await _register(async_client, sent_codes)
    assert resp.status_code == 201
    body = resp.json()
    assert body["ok"] is True
    assert body["code"] == 200
    assert isinstance(body["data"]["id"], int)


@pytest.mark.asyncio
async def test_register_with_wrong_code(async_client: AsyncClient, sent_codes):
    await async_client.post("/api/v1/users/code", json={"email": "ada@example.com"})
    resp = await async_client.post("/api/v1/users/register", json={
        "email": "ada@example.com",
        "password": "s3cret",
        "confirm_password": "s3cret",
        "nickname": "ada",
        "verify_code": "not-it",
    })
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "code": 400, "message": "invalid verification code"}


@pytest.mark.asyncio
async def test_register_password_mismatch(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users/register", json={
        "email": "ada@example.com",
        "password": "one",
        "confirm_password": "two",
        "nickname": "ada",
        "verify_code": "abc123",
    })
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: AsyncClient, sent_codes):
    assert (await _register(async_client, sent_codes)).status_code == 201
    resp = await _register(async_client, sent_codes, nickname="someone-else")
    assert resp.status_code == 400
    assert resp.json()["message"] == "email already registered"


@pytest.mark.asyncio
async def test_register_missing_field(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users/register", json={"email": "ada@example.com"})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_me_logout(async_client: AsyncClient, sent_codes, fake_redis):
    user_id = (await _register(async_client, sent_codes)).json()["data"]["id"]

    resp = await async_client.post("/api/v1/users/login", json={
        "email": "ada@example.com", "password": "s3cret",
    })
    assert resp.status_code == 200
    assert resp.json()["data"]["nickname"] == "ada"
    assert "password" not in resp.json()["data"]
    assert await fake_redis.exists(user_id_key(user_id))

    me = await async_client.get("/api/v1/users/me")
    assert me.status_code == 200
    assert me.json()["data"]["id"] == user_id

    out = await async_client.post("/api/v1/users/logout")
    assert out.status_code == 200
    assert not await fake_redis.exists(user_id_key(user_id))
    assert not await fake_redis.exists(user_email_key("ada@example.com"))

    assert (await async_client.get("/api/v1/users/me")).status_code == 401


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient, sent_codes):
    await _register(async_client, sent_codes)
    resp = await async_client.post("/api/v1/users/login", json={
        "email": "ada@example.com", "password": "nope",
    })
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "code": 400, "message": "wrong email or password"}


@pytest.mark.asyncio
async def test_me_requires_login(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me")
    assert resp.status_code == 401
    assert resp.json() == {"ok": False, "code": 401, "message": "login required"}


@pytest.mark.asyncio
async def test_get_user_by_id(async_client: AsyncClient, sent_codes):
    other_id = (await _register(async_client, sent_codes, "bob@example.com", "bob")).json()["data"]["id"]
    await _register(async_client, sent_codes)
    await async_client.post("/api/v1/users/login", json={
        "email": "ada@example.com", "password": "s3cret",
    })

    resp = await async_client.get(f"/api/v1/users/{other_id}")
    assert resp.status_code == 200
    assert resp.json()["data"]["nickname"] == "bob"

    missing = await async_client.get("/api/v1/users/99999")
    assert missing.status_code == 404
    assert missing.json()["ok"] is False


@pytest.mark.asyncio
async def test_logout_succeeds_when_cache_is_down(database: Database, broken_cache: CacheManager):
    async with database.session_factory() as session:
        session.add(User(email="ada@example.com", nickname="ada", password=hash_credential("s3cret")))
        await session.commit()

    app = create_app(database=database, cache_manager=broken_cache)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        login = await client.post("/api/v1/users/login", json={
            "email": "ada@example.com", "password": "s3cret",
        })
        assert login.status_code == 200
        assert (await client.get("/api/v1/users/me")).status_code == 200

        out = await client.post("/api/v1/users/logout")
        assert out.status_code == 200
        assert out.json()["ok"] is True

        assert (await client.get("/api/v1/users/me")).status_code == 401
