"""
Post service: listing, detail, likes, tags and authoring.

Design notes
------------
- Listing issues two statements: the aggregated post page and one tag
  lookup for the ids on that page.  ``tags`` is therefore always a list,
  even for posts without tag associations.
- The detail view bumps ``view_count`` and commits *before* reading the
  post back, so a request whose read fails still counts as a view.  The
  returned count is a snapshot.
- Previous/next neighbours are secondary: each lookup runs in its own
  savepoint, and a failing one is logged and reported as ``None``
  instead of failing the detail request.
- Apart from the view increment, service functions flush but do not
  commit; the transaction boundary is owned by the ``get_db`` dependency.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blog_service import queries
from blog_service.config import settings
from blog_service.models import Post, PostTag
from blog_service.queries import PostFilter
from blog_service.schemas import PostCreate, PostUpdate
from blog_service.shaping import (
    adjacent_row_to_dict,
    group_tags,
    paginated,
    post_row_to_dict,
    strip_markup,
    tag_row_to_dict,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _tags_for(db: AsyncSession, post_ids: list[int]) -> dict[int, list[dict]]:
    if not post_ids:
        return {}
    result = await db.execute(queries.post_tags_query(post_ids))
    return group_tags(result.all())


async def _adjacent(db: AsyncSession, stmt, label: str, post_id: int) -> dict | None:
    # Savepoint: a failed lookup must not abort the surrounding transaction
    try:
        async with db.begin_nested():
            result = await db.execute(stmt)
            row = result.first()
        return adjacent_row_to_dict(row)
    except SQLAlchemyError as exc:
        logger.warning("%s post lookup failed for post_id=%s: %s", label, post_id, exc)
        return None


async def _attach_tags(db: AsyncSession, post_id: int, tag_ids: list[int]) -> list[int]:
    """
    Associate the existing tags among *tag_ids* with the post.  Unknown
    ids are skipped; the post itself is kept either way.
    """
    wanted = list(dict.fromkeys(tag_ids))
    if not wanted:
        return []
    existing = set((await db.execute(queries.existing_tag_ids_query(wanted))).scalars().all())
    skipped = [tag_id for tag_id in wanted if tag_id not in existing]
    if skipped:
        logger.warning("Skipping unknown tag ids %s for post_id=%s", skipped, post_id)
    attached = [tag_id for tag_id in wanted if tag_id in existing]
    for tag_id in attached:
        db.add(PostTag(post_id=post_id, tag_id=tag_id))
    await db.flush()
    return attached


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

async def list_posts(
    db: AsyncSession,
    post_filter: PostFilter | None = None,
    page: int = 1,
    page_size: int = 20,
    viewer_id: int | None = None,
    preview: bool = True,
) -> list[dict]:
    """
    Return one page of posts, newest first.

    With *preview* the body is reduced to a plain-text excerpt of
    ``settings.LIST_PREVIEW_LENGTH`` characters.
    """
    post_filter = post_filter or PostFilter()
    result = await db.execute(
        queries.post_list_query(post_filter, page, page_size, viewer_id=viewer_id)
    )
    rows = result.all()
    tags = await _tags_for(db, [row.id for row in rows])

    items = []
    for row in rows:
        item = post_row_to_dict(row, tags.get(row.id))
        if preview:
            item["content"] = strip_markup(item["content"], settings.LIST_PREVIEW_LENGTH)
        items.append(item)
    return items


async def count_posts(db: AsyncSession, post_filter: PostFilter | None = None) -> int:
    result = await db.execute(queries.post_count_query(post_filter or PostFilter()))
    return result.scalar_one() or 0


async def list_post_page(
    db: AsyncSession,
    post_filter: PostFilter | None = None,
    page: int = 1,
    page_size: int = 20,
    viewer_id: int | None = None,
) -> dict:
    items = await list_posts(db, post_filter, page, page_size, viewer_id=viewer_id)
    total = await count_posts(db, post_filter)
    return paginated(items, total, page, page_size)


# ---------------------------------------------------------------------------
# Detail
# ---------------------------------------------------------------------------

async def get_post_detail(
    db: AsyncSession, post_id: int, viewer_id: int | None = None
) -> dict | None:
    """
    Count a view, then return the full post with its neighbours.

    Returns None when the post does not exist.
    """
    await db.execute(queries.increment_views_stmt(post_id))
    # The view is kept even if the read below fails
    await db.commit()

    result = await db.execute(queries.post_detail_query(post_id, viewer_id=viewer_id))
    row = result.first()
    if row is None:
        return None

    tags = await _tags_for(db, [row.id])
    data = post_row_to_dict(row, tags.get(row.id))
    data["prev_post"] = await _adjacent(db, queries.prev_post_query(post_id), "Previous", post_id)
    data["next_post"] = await _adjacent(db, queries.next_post_query(post_id), "Next", post_id)
    return data


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

async def toggle_post_like(
    db: AsyncSession, viewer_id: int, post_id: int, liked: bool
) -> bool:
    """
    Set the viewer's like state for a post.

    Returns True iff a row was inserted or deleted.  Liking twice is a
    no-op the second time: the pair is checked first and the unique
    constraint on ``(user_id, post_id)`` backs the check under races.
    """
    if liked:
        post = (await db.execute(queries.post_by_id_query(post_id))).scalar_one_or_none()
        if post is None:
            return False
        already = (await db.execute(queries.like_exists_query(viewer_id, post_id))).scalar()
        if already:
            return False
        result = await db.execute(queries.insert_like_stmt(viewer_id, post_id))
    else:
        result = await db.execute(queries.delete_like_stmt(viewer_id, post_id))
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

async def list_tags(db: AsyncSession) -> list[dict]:
    result = await db.execute(queries.tag_list_query())
    return [tag_row_to_dict(row) for row in result.all()]


async def list_tags_with_counts(db: AsyncSession) -> list[dict]:
    result = await db.execute(queries.tag_usage_query())
    return [tag_row_to_dict(row) for row in result.all()]


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------

async def create_post(
    db: AsyncSession, author_id: int, author_name: str, data: PostCreate
) -> int:
    """
    Insert a post and its tag associations; return the new post id.

    Tag associations are best effort: unknown tag ids are dropped with a
    warning and the post is still created.
    """
    post = Post(
        title=data.title,
        category_id=data.category_id,
        category_name=data.category_name,
        content=data.content,
        author_id=author_id,
        author_name=author_name,
        updated_by_id=author_id,
        updated_by_name=author_name,
        view_count=0,
    )
    db.add(post)
    await db.flush()
    await _attach_tags(db, post.id, data.tags)
    logger.info("Post %s created by user %s", post.id, author_id)
    return post.id


async def update_post(
    db: AsyncSession, post_id: int, editor_id: int, editor_name: str, data: PostUpdate
) -> bool:
    """
    Replace a post's title, category, content and tag set.

    Only the author may edit.  Returns False when the post does not exist
    or belongs to someone else.
    """
    post = (await db.execute(queries.post_by_id_query(post_id))).scalar_one_or_none()
    if post is None or post.author_id != editor_id:
        return False

    post.title = data.title
    post.category_id = data.category_id
    post.category_name = data.category_name
    post.content = data.content
    post.updated_by_id = editor_id
    post.updated_by_name = editor_name

    await db.execute(queries.clear_post_tags_stmt(post_id))
    await db.flush()
    await _attach_tags(db, post_id, data.tags)
    return True


async def delete_post(db: AsyncSession, post_id: int, user_id: int) -> bool:
    """
    Delete a post with its likes, comments and tag associations.

    Only the author may delete.  Returns False otherwise.
    """
    post = (await db.execute(queries.post_by_id_query(post_id))).scalar_one_or_none()
    if post is None or post.author_id != user_id:
        return False

    for stmt in queries.delete_post_stmts(post_id):
        await db.execute(stmt)
    logger.info("Post %s deleted by user %s", post_id, user_id)
    return True
