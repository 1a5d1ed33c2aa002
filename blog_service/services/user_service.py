"""
User service: identity lookups, login, registration.

Identity reads follow the cache-aside policy in ``UserCache``: try the
cache, fall back to the store, and on a store hit write the snapshot
under both the id and the email key.  Cache trouble only ever costs a
store round trip; it never fails the operation.
"""
import logging
import secrets
import string
from collections.abc import Awaitable, Callable
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from blog_service import queries
from blog_service.cache import CacheManager, UserCache, verify_code_key
from blog_service.config import settings
from blog_service.errors import ResultCode
from blog_service.models import User
from blog_service.security import hash_credential, verify_credential

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.digits + string.ascii_lowercase
CODE_LENGTH = 6

# Delivers a verification code to an address; returns True once handed off.
CodeSender = Callable[[str, str], Awaitable[bool]]


class Registration(NamedTuple):
    user_id: int | None
    code: ResultCode
    message: str


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Public snapshot; the stored credential hash never leaves the service."""
    return {
        "id": user.id,
        "email": user.email,
        "nickname": user.nickname,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def _load(db: AsyncSession, user_cache: UserCache, stmt) -> dict | None:
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        return None
    snapshot = _user_to_dict(user)
    await user_cache.populate(snapshot)
    return snapshot


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def lookup_user_by_id(db: AsyncSession, user_cache: UserCache, user_id: int) -> dict | None:
    cached = await user_cache.lookup_by_id(user_id)
    if cached is not None:
        return cached
    return await _load(db, user_cache, queries.user_by_id_query(user_id))


async def lookup_user_by_email(db: AsyncSession, user_cache: UserCache, email: str) -> dict | None:
    cached = await user_cache.lookup_by_email(email)
    if cached is not None:
        return cached
    return await _load(db, user_cache, queries.user_by_email_query(email))


async def lookup_user_by_email_or_nickname(
    db: AsyncSession, user_cache: UserCache, email: str, nickname: str
) -> dict | None:
    """
    Return a user holding either *email* or *nickname*.  The email cache
    key is consulted first; nicknames are not cached.
    """
    cached = await user_cache.lookup_by_email(email)
    if cached is not None:
        return cached
    return await _load(
        db, user_cache, queries.user_by_email_or_nickname_query(email, nickname)
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

async def login(
    db: AsyncSession, user_cache: UserCache, email: str, credential: str
) -> dict | None:
    """
    Verify *credential* against the stored hash for *email*.

    Always reads the store so a changed credential takes effect at once;
    a successful login refreshes both cache entries.
    """
    user = (await db.execute(queries.user_by_email_query(email))).scalar_one_or_none()
    if user is None or not verify_credential(credential, user.password):
        return None
    snapshot = _user_to_dict(user)
    await user_cache.populate(snapshot)
    logger.info("User %s logged in", user.id)
    return snapshot


async def logout(user_cache: UserCache, user_id: int | None, email: str | None) -> None:
    """Drop the cached snapshots for the session's user, best effort."""
    removed = await user_cache.invalidate(user_id, email)
    logger.debug("Logout for user %s removed %d cache key(s)", user_id, removed)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def create_user(
    db: AsyncSession, email: str, credential: str, nickname: str
) -> int | None:
    """
    Insert a user and return the new id, or None when the email or
    nickname is already taken.  The unique constraints still guard
    against a concurrent insert slipping past the check.
    """
    existing = (
        await db.execute(queries.user_by_email_or_nickname_query(email, nickname))
    ).scalar_one_or_none()
    if existing is not None:
        return None

    user = User(email=email, password=hash_credential(credential), nickname=nickname)
    db.add(user)
    await db.flush()
    logger.info("User %s registered", user.id)
    return user.id


async def log_code_sender(email: str, code: str) -> bool:
    """Development sender: outbound mail is handled outside this service."""
    logger.info("Verification code for %s: %s", email, code)
    return True


async def issue_verification_code(
    cache: CacheManager, email: str, sender: CodeSender
) -> bool:
    """
    Store a fresh code for *email* for ``VERIFY_CODE_TTL`` seconds and
    hand it to *sender*.  Returns False when either step fails.
    """
    code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    stored = await cache.set(verify_code_key(email), {"code": code}, ttl=settings.VERIFY_CODE_TTL)
    if not stored:
        logger.error("Could not store verification code for %s", email)
        return False
    try:
        return bool(await sender(email, code))
    except Exception:
        logger.exception("Verification code delivery failed for %s", email)
        return False


async def check_verification_code(cache: CacheManager, email: str, code: str) -> bool:
    stored = await cache.get(verify_code_key(email))
    if not isinstance(stored, dict) or stored.get("code") is None:
        return False
    return secrets.compare_digest(str(stored["code"]), str(code))


async def register(
    db: AsyncSession,
    cache: CacheManager,
    user_cache: UserCache,
    email: str,
    credential: str,
    nickname: str,
    code: str,
) -> Registration:
    """
    Check the verification code, reject duplicate email / nickname, then
    create the user.  A code is consumed by a successful registration.
    """
    if not await check_verification_code(cache, email, code):
        return Registration(None, ResultCode.INVALID_PARAM, "invalid verification code")

    existing = await lookup_user_by_email_or_nickname(db, user_cache, email, nickname)
    if existing and existing["email"] == email:
        return Registration(None, ResultCode.INVALID_PARAM, "email already registered")
    if existing and existing["nickname"] == nickname:
        return Registration(None, ResultCode.INVALID_PARAM, "nickname already taken")

    user_id = await create_user(db, email, credential, nickname)
    if user_id is None:
        return Registration(None, ResultCode.SERVER_ERROR, "registration failed")

    await cache.delete(verify_code_key(email))
    return Registration(user_id, ResultCode.SUCCESS, "registered")
