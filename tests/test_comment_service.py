"""
Comment thread tests: top-level pagination, reply flattening, reply
ordering and the integrity checks applied when a reply is added.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from blog_service.models import Comment, Post, User
from blog_service.services import comment_service

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _setup_post(db: AsyncSession) -> tuple[User, Post]:
    user = User(email="reader@example.com", nickname="reader", password="unused")
    db.add(user)
    await db.flush()
    post = Post(
        title="Threads",
        category_id=1,
        category_name="general",
        content="Body",
        author_id=user.id,
        author_name=user.nickname,
    )
    db.add(post)
    await db.flush()
    return user, post


async def _comment(
    db: AsyncSession,
    user: User,
    post: Post,
    minute: int,
    parent: Comment | None = None,
    root: Comment | None = None,
    content: str = "",
) -> Comment:
    comment = Comment(
        post_id=post.id,
        user_id=user.id,
        user_name=user.nickname,
        parent_id=parent.id if parent else None,
        parent_grand_id=root.id if root else None,
        content=content or f"comment at {minute}",
        created_at=BASE_TIME + timedelta(minutes=minute),
    )
    db.add(comment)
    await db.flush()
    return comment


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reply_to_reply_is_flattened_into_thread(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    top = await _comment(db_session, user, post, minute=0)
    c1 = await _comment(db_session, user, post, minute=1, parent=top)
    c2 = await _comment(db_session, user, post, minute=2, parent=c1, root=top)

    threads = await comment_service.list_comments(db_session, post.id, page=1, page_size=10)
    assert [t["id"] for t in threads] == [top.id]
    assert [c["id"] for c in threads[0]["child_comments"]] == [c1.id, c2.id]
    assert threads[0]["child_comments"][1]["parent_grand_id"] == top.id


@pytest.mark.asyncio
async def test_threads_newest_first_replies_oldest_first(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    old_top = await _comment(db_session, user, post, minute=0)
    new_top = await _comment(db_session, user, post, minute=5)
    # Inserted out of chronological order on purpose
    late = await _comment(db_session, user, post, minute=9, parent=old_top)
    early = await _comment(db_session, user, post, minute=1, parent=old_top)

    threads = await comment_service.list_comments(db_session, post.id)
    assert [t["id"] for t in threads] == [new_top.id, old_top.id]
    assert threads[0]["child_comments"] == []
    assert [c["id"] for c in threads[1]["child_comments"]] == [early.id, late.id]


@pytest.mark.asyncio
async def test_pagination_only_limits_top_level(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    tops = [await _comment(db_session, user, post, minute=i * 10) for i in range(3)]
    for i in range(5):
        await _comment(db_session, user, post, minute=31 + i, parent=tops[2])

    first_page = await comment_service.list_comments(db_session, post.id, page=1, page_size=1)
    assert [t["id"] for t in first_page] == [tops[2].id]
    assert len(first_page[0]["child_comments"]) == 5

    page = await comment_service.list_comment_page(db_session, post.id, page=2, page_size=2)
    assert page["total"] == 3
    assert [t["id"] for t in page["items"]] == [tops[0].id]


@pytest.mark.asyncio
async def test_count_comments_counts_top_level_only(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    top = await _comment(db_session, user, post, minute=0)
    await _comment(db_session, user, post, minute=1, parent=top)
    await _comment(db_session, user, post, minute=2)

    assert await comment_service.count_comments(db_session, post.id) == 2


@pytest.mark.asyncio
async def test_list_comments_empty(db_session: AsyncSession):
    _, post = await _setup_post(db_session)
    assert await comment_service.list_comments(db_session, post.id) == []


# ---------------------------------------------------------------------------
# Adding
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment_derives_thread_root(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    top_id = await comment_service.add_comment(db_session, post.id, user.id, "reader", "top")
    reply_id = await comment_service.add_comment(
        db_session, post.id, user.id, "reader", "reply", parent_id=top_id
    )
    # parent_grand_id omitted by the caller; stored from the parent chain
    nested_id = await comment_service.add_comment(
        db_session, post.id, user.id, "reader", "nested", parent_id=reply_id
    )

    reply = await db_session.get(Comment, reply_id)
    nested = await db_session.get(Comment, nested_id)
    assert reply.parent_grand_id is None
    assert nested.parent_grand_id == top_id

    threads = await comment_service.list_comments(db_session, post.id)
    assert [c["id"] for c in threads[0]["child_comments"]] == [reply_id, nested_id]


@pytest.mark.asyncio
async def test_add_comment_accepts_consistent_root(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    top = await _comment(db_session, user, post, minute=0)
    reply = await _comment(db_session, user, post, minute=1, parent=top)

    assert await comment_service.add_comment(
        db_session, post.id, user.id, "reader", "direct", parent_id=top.id, parent_grand_id=top.id
    ) is not None
    assert await comment_service.add_comment(
        db_session, post.id, user.id, "reader", "deep", parent_id=reply.id, parent_grand_id=top.id
    ) is not None


@pytest.mark.asyncio
async def test_add_comment_rejects_broken_chains(db_session: AsyncSession):
    user, post = await _setup_post(db_session)
    other = Post(
        title="Elsewhere", category_id=1, category_name="general", content="x",
        author_id=user.id, author_name="reader",
    )
    db_session.add(other)
    await db_session.flush()
    top = await _comment(db_session, user, post, minute=0)
    foreign = await _comment(db_session, user, other, minute=0)
    reply = await _comment(db_session, user, post, minute=1, parent=top)

    add = comment_service.add_comment
    assert await add(db_session, 99999, user.id, "reader", "no post") is None
    assert await add(db_session, post.id, user.id, "reader", "x", parent_id=99999) is None
    assert await add(db_session, post.id, user.id, "reader", "x", parent_id=foreign.id) is None
    assert await add(db_session, post.id, user.id, "reader", "x", parent_grand_id=top.id) is None
    assert await add(
        db_session, post.id, user.id, "reader", "x", parent_id=reply.id, parent_grand_id=reply.id
    ) is None
