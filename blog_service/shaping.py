"""
Turn raw result rows into the dictionaries handed to callers.

Posts come back as one row per post plus a separate tag row set; comments
come back as a page of top-level rows plus every reply for that page.
The helpers here stitch those together without dropping or duplicating
any column.
"""
import math
import re
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import datetime

_MARKUP_RE = re.compile(r"<[^>]*>?")


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def _mapping(row) -> Mapping:
    return row._mapping if hasattr(row, "_mapping") else row


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

def group_tags(rows: Iterable) -> dict[int, list[dict]]:
    """``(post_id, id, name)`` rows -> ``{post_id: [{"id", "name"}, ...]}``."""
    grouped: dict[int, list[dict]] = defaultdict(list)
    for row in rows:
        m = _mapping(row)
        grouped[m["post_id"]].append({"id": m["id"], "name": m["name"]})
    return grouped


def post_row_to_dict(row, tags: list[dict] | None = None) -> dict:
    """
    Serialise one listing/detail row.

    ``tags`` is always a list, empty when the post has none.  ``is_liked``
    is only emitted when the row carries it (i.e. a viewer was known) and
    is coerced to ``bool`` since some dialects return the EXISTS as 0/1.
    """
    m = _mapping(row)
    data = {
        "id": m["id"],
        "title": m["title"],
        "category_id": m["category_id"],
        "category_name": m["category_name"],
        "content": m["content"],
        "author_id": m["author_id"],
        "author_name": m["author_name"],
        "updated_by_id": m["updated_by_id"],
        "updated_by_name": m["updated_by_name"],
        "created_at": _iso(m["created_at"]),
        "view_count": m["view_count"],
        "like_count": int(m["like_count"] or 0),
        "comment_count": int(m["comment_count"] or 0),
        "tags": list(tags) if tags else [],
    }
    if "is_liked" in m:
        data["is_liked"] = bool(m["is_liked"])
    return data


def adjacent_row_to_dict(row) -> dict | None:
    if row is None:
        return None
    m = _mapping(row)
    return {"id": m["id"], "title": m["title"]}


def strip_markup(content: str | None, limit: int) -> str:
    """Plain-text preview: HTML tags removed, at most *limit* characters."""
    if not content:
        return ""
    return _MARKUP_RE.sub("", content)[:limit]


def tag_row_to_dict(row) -> dict:
    m = _mapping(row)
    data = {"id": m["id"], "name": m["name"]}
    if "count" in m:
        data["count"] = int(m["count"])
    return data


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

def comment_row_to_dict(row) -> dict:
    m = _mapping(row)
    return {
        "id": m["id"],
        "post_id": m["post_id"],
        "user_id": m["user_id"],
        "user_name": m["user_name"],
        "parent_id": m["parent_id"],
        "parent_grand_id": m["parent_grand_id"],
        "content": m["content"],
        "created_at": _iso(m["created_at"]),
    }


def build_threads(top_rows: Iterable, reply_rows: Iterable) -> list[dict]:
    """
    Nest replies under their top-level comment.

    A reply joins the thread of every top-level comment whose id matches
    its ``parent_id`` or ``parent_grand_id``, so replies to replies are
    flattened onto the thread root rather than nested further.  Top-level
    order is kept as given (newest first); each ``child_comments`` list is
    sorted oldest first.  ``sorted`` is stable, so replies sharing a
    timestamp keep the order the store returned them in.
    """
    threads = [comment_row_to_dict(row) for row in top_rows]
    by_id = {thread["id"]: thread for thread in threads}
    children: dict[int, list[tuple]] = defaultdict(list)

    for row in reply_rows:
        created_at = _mapping(row)["created_at"]
        reply = comment_row_to_dict(row)
        roots = {reply["parent_id"], reply["parent_grand_id"]} & by_id.keys()
        for root_id in roots:
            children[root_id].append((created_at, dict(reply)))

    for thread in threads:
        replies = sorted(children.get(thread["id"], []), key=lambda pair: pair[0])
        thread["child_comments"] = [reply for _, reply in replies]
    return threads


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

def paginated(items: list, total: int, page: int, page_size: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": math.ceil(total / page_size) if total > 0 and page_size > 0 else 0,
    }
