from sqlalchemy.dialects import postgresql

from blog_service.queries import PostFilter, post_count_query, post_list_query

HOSTILE = "x'; DROP TABLE posts; --"


def _compile(stmt):
    return stmt.compile(dialect=postgresql.dialect())


def test_absent_filters_add_no_where_clause():
    sql = str(_compile(post_list_query(PostFilter(), page=1, page_size=20)))
    assert "WHERE" not in sql.split("FROM posts", 1)[1].split("ORDER BY")[0]


def test_filter_values_are_bound_parameters():
    post_filter = PostFilter(category_id=3, tag_id=7, keyword=HOSTILE, author_id=11)
    compiled = _compile(post_list_query(post_filter, page=2, page_size=5))

    assert HOSTILE not in str(compiled)
    params = compiled.params
    assert HOSTILE in params.values()
    assert {3, 7, 11} <= set(v for v in params.values() if isinstance(v, int))


def test_viewer_adds_is_liked_column():
    anonymous = str(_compile(post_list_query(PostFilter(), 1, 20)))
    viewer = str(_compile(post_list_query(PostFilter(), 1, 20, viewer_id=4)))
    assert "is_liked" not in anonymous
    assert "is_liked" in viewer


def test_count_uses_distinct_ids_without_paging():
    sql = str(_compile(post_count_query(PostFilter(category_id=1))))
    assert "count(DISTINCT posts.id)" in sql
    assert "LIMIT" not in sql
