"""
Statement builders for posts, likes, tags, comments and users.

Every function here returns an unexecuted SQLAlchemy statement; the
services decide when to run them.  Values always travel as bound
parameters, never as interpolated literals.

Post listing shape
------------------
One row per post with the post columns plus:

- ``like_count`` / ``comment_count``: grouped counts joined with LEFT
  OUTER JOIN and COALESCEd to 0, so posts without likes or comments
  still appear.
- ``is_liked``: an EXISTS column, only projected when a viewer id is
  known.

Tags are fetched by a second statement (``post_tags_query``) keyed on the
ids of the page, which keeps the listing portable across dialects that
disagree on JSON aggregation.
"""
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import Select, delete, distinct, func, insert, or_, select, update
from sqlalchemy.orm import aliased

from blog_service.models import Comment, Post, PostLike, PostTag, Tag, User

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostFilter:
    """
    Optional, conjunctive listing filters.  A field left as ``None`` (or an
    empty keyword) adds no clause at all.
    """

    category_id: int | None = None
    tag_id: int | None = None
    keyword: str | None = None
    author_id: int | None = None

    def clauses(self) -> list:
        clauses = []
        if self.category_id is not None:
            clauses.append(Post.category_id == self.category_id)
        if self.tag_id is not None:
            clauses.append(
                select(PostTag.post_id)
                .where(PostTag.post_id == Post.id, PostTag.tag_id == self.tag_id)
                .correlate(Post)
                .exists()
            )
        if self.keyword:
            clauses.append(
                or_(
                    Post.title.contains(self.keyword, autoescape=True),
                    Post.content.contains(self.keyword, autoescape=True),
                )
            )
        if self.author_id is not None:
            clauses.append(Post.author_id == self.author_id)
        return clauses


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

_POST_COLUMNS = (
    Post.id,
    Post.title,
    Post.category_id,
    Post.category_name,
    Post.content,
    Post.author_id,
    Post.author_name,
    Post.updated_by_id,
    Post.updated_by_name,
    Post.created_at,
    Post.view_count,
)


def _post_projection(viewer_id: int | None) -> Select:
    like_counts = (
        select(PostLike.post_id, func.count().label("like_count"))
        .group_by(PostLike.post_id)
        .subquery("like_counts")
    )
    comment_counts = (
        select(Comment.post_id, func.count().label("comment_count"))
        .group_by(Comment.post_id)
        .subquery("comment_counts")
    )

    columns = [
        *_POST_COLUMNS,
        func.coalesce(like_counts.c.like_count, 0).label("like_count"),
        func.coalesce(comment_counts.c.comment_count, 0).label("comment_count"),
    ]
    if viewer_id is not None:
        columns.append(
            select(PostLike.id)
            .where(PostLike.post_id == Post.id, PostLike.user_id == viewer_id)
            .correlate(Post)
            .exists()
            .label("is_liked")
        )

    return (
        select(*columns)
        .select_from(Post)
        .outerjoin(like_counts, like_counts.c.post_id == Post.id)
        .outerjoin(comment_counts, comment_counts.c.post_id == Post.id)
    )


def post_list_query(
    post_filter: PostFilter,
    page: int,
    page_size: int,
    viewer_id: int | None = None,
) -> Select:
    """
    Newest-first page of posts.  *page* and *page_size* are used as given;
    clamping them to >= 1 is the caller's job.
    """
    return (
        _post_projection(viewer_id)
        .where(*post_filter.clauses())
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )


def post_count_query(post_filter: PostFilter) -> Select:
    return select(func.count(distinct(Post.id))).where(*post_filter.clauses())


def post_detail_query(post_id: int, viewer_id: int | None = None) -> Select:
    return _post_projection(viewer_id).where(Post.id == post_id)


def post_tags_query(post_ids: Iterable[int]) -> Select:
    return (
        select(PostTag.post_id, Tag.id, Tag.name)
        .join(Tag, Tag.id == PostTag.tag_id)
        .where(PostTag.post_id.in_(list(post_ids)))
        .order_by(PostTag.post_id, PostTag.created_at, Tag.id)
    )


def increment_views_stmt(post_id: int):
    return (
        update(Post)
        .where(Post.id == post_id)
        .values(view_count=Post.view_count + 1)
        .execution_options(synchronize_session=False)
    )


def _created_at_of(post_id: int):
    anchor = aliased(Post)
    return select(anchor.created_at).where(anchor.id == post_id).scalar_subquery()


def prev_post_query(post_id: int) -> Select:
    """The post created immediately before *post_id*."""
    return (
        select(Post.id, Post.title)
        .where(Post.created_at < _created_at_of(post_id))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(1)
    )


def next_post_query(post_id: int) -> Select:
    """The post created immediately after *post_id*."""
    return (
        select(Post.id, Post.title)
        .where(Post.created_at > _created_at_of(post_id))
        .order_by(Post.created_at.asc(), Post.id.asc())
        .limit(1)
    )


def post_by_id_query(post_id: int) -> Select:
    return select(Post).where(Post.id == post_id)


def delete_post_stmts(post_id: int) -> list:
    """Dependent rows first so the statements also run where FKs do not cascade."""
    return [
        delete(PostLike).where(PostLike.post_id == post_id),
        delete(Comment).where(Comment.post_id == post_id),
        delete(PostTag).where(PostTag.post_id == post_id),
        delete(Post).where(Post.id == post_id),
    ]


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

def like_exists_query(user_id: int, post_id: int) -> Select:
    return select(
        select(PostLike.id)
        .where(PostLike.user_id == user_id, PostLike.post_id == post_id)
        .exists()
    )


def insert_like_stmt(user_id: int, post_id: int):
    return insert(PostLike.__table__).values(user_id=user_id, post_id=post_id)


def delete_like_stmt(user_id: int, post_id: int):
    return delete(PostLike).where(PostLike.user_id == user_id, PostLike.post_id == post_id)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def tag_list_query() -> Select:
    return select(Tag.id, Tag.name).order_by(Tag.id)


def tag_usage_query() -> Select:
    """Tags with the number of posts using them, most used first."""
    usage = func.count(PostTag.post_id).label("count")
    return (
        select(Tag.id, Tag.name, usage)
        .join(PostTag, PostTag.tag_id == Tag.id)
        .group_by(Tag.id, Tag.name)
        .order_by(usage.desc(), Tag.id)
    )


def existing_tag_ids_query(tag_ids: Iterable[int]) -> Select:
    return select(Tag.id).where(Tag.id.in_(list(tag_ids)))


def clear_post_tags_stmt(post_id: int):
    return delete(PostTag).where(PostTag.post_id == post_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

_COMMENT_COLUMNS = (
    Comment.id,
    Comment.post_id,
    Comment.user_id,
    Comment.user_name,
    Comment.parent_id,
    Comment.parent_grand_id,
    Comment.content,
    Comment.created_at,
)


def top_comments_query(post_id: int, page: int, page_size: int) -> Select:
    return (
        select(*_COMMENT_COLUMNS)
        .where(Comment.post_id == post_id, Comment.parent_id.is_(None))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )


def thread_replies_query(post_id: int, top_ids: Iterable[int]) -> Select:
    """
    Every reply belonging to one of *top_ids*: direct replies match on
    ``parent_id``, deeper replies on ``parent_grand_id``.
    """
    top_ids = list(top_ids)
    return (
        select(*_COMMENT_COLUMNS)
        .where(
            Comment.post_id == post_id,
            or_(Comment.parent_id.in_(top_ids), Comment.parent_grand_id.in_(top_ids)),
        )
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )


def top_comment_count_query(post_id: int) -> Select:
    return (
        select(func.count())
        .select_from(Comment)
        .where(Comment.post_id == post_id, Comment.parent_id.is_(None))
    )


def comment_by_id_query(comment_id: int) -> Select:
    return select(Comment).where(Comment.id == comment_id)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def user_by_id_query(user_id: int) -> Select:
    return select(User).where(User.id == user_id)


def user_by_email_query(email: str) -> Select:
    return select(User).where(User.email == email)


def user_by_email_or_nickname_query(email: str, nickname: str) -> Select:
    return (
        select(User)
        .where(or_(User.email == email, User.nickname == nickname))
        .order_by(User.id)
        .limit(1)
    )
