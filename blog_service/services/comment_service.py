"""
Comment service: two-level threads for a post.

A thread is a top-level comment plus every reply under it.  Replies to
replies are not nested further; each one records the thread's top-level
comment in ``parent_grand_id`` and is listed flat inside that thread.
Comments are append-only.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from blog_service import queries
from blog_service.models import Comment
from blog_service.shaping import build_threads, paginated

logger = logging.getLogger(__name__)


async def list_comments(
    db: AsyncSession, post_id: int, page: int = 1, page_size: int = 20
) -> list[dict]:
    """
    Return one page of threads, newest thread first.

    Pagination only applies to top-level comments; every reply of a
    thread on the page is returned, oldest first.
    """
    top_rows = (await db.execute(queries.top_comments_query(post_id, page, page_size))).all()
    if not top_rows:
        return []
    top_ids = [row.id for row in top_rows]
    reply_rows = (await db.execute(queries.thread_replies_query(post_id, top_ids))).all()
    return build_threads(top_rows, reply_rows)


async def count_comments(db: AsyncSession, post_id: int) -> int:
    """Number of top-level comments on the post."""
    result = await db.execute(queries.top_comment_count_query(post_id))
    return result.scalar_one() or 0


async def list_comment_page(
    db: AsyncSession, post_id: int, page: int = 1, page_size: int = 20
) -> dict:
    items = await list_comments(db, post_id, page, page_size)
    total = await count_comments(db, post_id)
    return paginated(items, total, page, page_size)


async def _thread_root(db: AsyncSession, post_id: int, parent_id: int) -> tuple[bool, int | None]:
    """
    Resolve the thread a reply to *parent_id* belongs to.

    Returns ``(found, parent_grand_id)`` where ``parent_grand_id`` is None
    for a direct reply to a top-level comment.
    """
    parent = (await db.execute(queries.comment_by_id_query(parent_id))).scalar_one_or_none()
    if parent is None or parent.post_id != post_id:
        return False, None
    if parent.parent_id is None:
        return True, None
    return True, parent.parent_grand_id or parent.parent_id


async def add_comment(
    db: AsyncSession,
    post_id: int,
    user_id: int,
    user_name: str,
    content: str,
    parent_id: int | None = None,
    parent_grand_id: int | None = None,
) -> int | None:
    """
    Append a comment and return its id.

    Returns None when the post does not exist, when *parent_id* is not a
    comment on the same post, or when *parent_grand_id* contradicts the
    parent chain.  The stored ``parent_grand_id`` is always derived from
    the parent, so callers may omit it.
    """
    post = (await db.execute(queries.post_by_id_query(post_id))).scalar_one_or_none()
    if post is None:
        return None

    stored_grand_id = None
    if parent_id is None:
        if parent_grand_id is not None:
            logger.info("Rejected comment on post %s: thread root without parent", post_id)
            return None
    else:
        found, stored_grand_id = await _thread_root(db, post_id, parent_id)
        if not found:
            logger.info("Rejected comment on post %s: parent %s not found", post_id, parent_id)
            return None
        # For a direct reply the thread root is the parent itself.
        expected = stored_grand_id if stored_grand_id is not None else parent_id
        if parent_grand_id is not None and parent_grand_id != expected:
            logger.info(
                "Rejected comment on post %s: parent_grand_id %s, expected %s",
                post_id, parent_grand_id, expected,
            )
            return None

    comment = Comment(
        post_id=post_id,
        user_id=user_id,
        user_name=user_name,
        parent_id=parent_id,
        parent_grand_id=stored_grand_id,
        content=content,
    )
    db.add(comment)
    await db.flush()
    return comment.id
