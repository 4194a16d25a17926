import pytest

from relata.model.postgres.sql.compiler import compile_query
from relata.model.postgres.sql.expressions import Gt, RawSQL
from relata.model.postgres.sql.queries import Column
from relata.model.query_builder import COMBINERS, Variation
from __tests__.model.models import Post, User
from __tests__.model.utils import assert_sql


def test_every_variation_has_a_combiner():
    assert set(COMBINERS) == set(Variation)


def test_where_shapes(client):
    query = (
        User.query()
        .where("username", "virk")
        .where("id", ">=", 10)
        .or_where({"username": "romain", "profile_id": 3})
        .where_not(Gt(Column("id"), Column("profile_id")))
    )
    expected = (
        "SELECT * FROM users WHERE ((((username = $1) AND (id >= $2)) "
        "OR ((username = $3) AND (profile_id = $4))) AND (NOT (id > profile_id)))"
    )
    assert_sql(query.to_sql(), expected, ["virk", 10, "romain", 3])


def test_invalid_where_arguments(client):
    with pytest.raises(TypeError):
        User.query().where("id", "=", 1, 2)
    with pytest.raises(ValueError):
        User.query().where("id", "~~", 1)


def test_in_null_between_like(client):
    query = (
        User.query()
        .where_in("id", [1, 2])
        .or_where_not_in("id", [])
        .where_not_null("profile_id")
        .where_between("id", (1, 9))
        .or_where_ilike("username", "v%")
    )
    expected = (
        "SELECT * FROM users WHERE (((((id IN ($1, $2)) OR (NOT (1 = 0))) AND (NOT (profile_id IS NULL))) "
        "AND (id BETWEEN $3 AND $4)) OR (username ILIKE $5))"
    )
    assert_sql(query.to_sql(), expected, [1, 2, 1, 9, "v%"])


def test_json_predicates(client):
    query = User.query().where_json_superset("settings", {"theme": "dark"}).where_json_path("settings", "$.lang", "en")
    expected = (
        "SELECT * FROM users WHERE ((settings @> $1::jsonb) "
        "AND (jsonb_path_query_first(settings, $2) #>> '{}' = $3))"
    )
    assert_sql(query.to_sql(), expected, ['{"theme": "dark"}', "$.lang", "en"])


def test_raw_expression(client):
    query = User.query().where(RawSQL("lower(username) = ?", ["virk"]))
    assert_sql(query.to_sql(), "SELECT * FROM users WHERE lower(username) = $1", ["virk"])


def test_shape_methods(client):
    query = (
        Post.query()
        .select("id", "title as heading")
        .left_join("users", "users.id", "posts.user_id")
        .order_by("-id")
        .order_by("title", "asc")
        .for_page(3, 10)
    )
    expected = (
        "SELECT id, title AS heading FROM posts LEFT JOIN users ON (users.id = posts.user_id) "
        "ORDER BY id DESC, title ASC LIMIT 10 OFFSET 20"
    )
    assert_sql(query.to_sql(), expected, [])


def test_count_query_wraps_grouped_queries(client):
    query = Post.query().where("title", "like", "a%").group_by("user_id").order_by("user_id").limit(5)
    assert_sql(
        compile_query(query._count_query()),
        "SELECT COUNT(*) AS total FROM (SELECT user_id FROM posts WHERE (title LIKE $1) GROUP BY user_id) AS subquery",
        ["a%"],
    )
    # the original query is untouched
    assert query.query.limit == 5
    assert len(query.query.order_by) == 1


@pytest.mark.asyncio
async def test_paginate_plain_query(client):
    client.queue({"total": 3}, [{"id": 1, "user_id": 1, "title": "a"}])
    page = await Post.query().paginate(3, 1)
    assert page.current_page == 3
    assert not page.has_more_pages
    assert [post.title for post in page] == ["a"]
    assert client.statements == [
        "SELECT COUNT(*) AS total FROM posts",
        "SELECT * FROM posts LIMIT 1 OFFSET 2",
    ]


@pytest.mark.asyncio
async def test_first_update_delete(client):
    client.queue([{"id": 1, "user_id": 1, "title": "a"}])
    post = await Post.query().where("id", 1).first()
    assert post.title == "a"
    assert client.statements[0] == "SELECT * FROM posts WHERE (id = $1) LIMIT 1"

    await Post.query().where("user_id", 1).update({"title": "b"})
    await Post.query().where("user_id", 1).delete()
    assert client.queries[1:] == [
        ("UPDATE posts SET title = $1 WHERE (user_id = $2)", ["b", 1]),
        ("DELETE FROM posts WHERE (user_id = $1)", [1]),
    ]


@pytest.mark.asyncio
async def test_first_without_rows(client):
    assert await Post.query().first() is None


@pytest.mark.asyncio
async def test_pojo_and_row_transformers(client):
    client.queue([{"id": 1, "user_id": 1, "title": "a"}], [{"id": 1, "user_id": 1, "title": "a"}])

    rows = await Post.query().pojo()
    assert rows == [{"id": 1, "user_id": 1, "title": "a"}]

    posts = await Post.query().row_transformer(lambda post: post.extras.setdefault("seen", True))
    assert posts[0].extras == {"seen": True}


def test_preload_unknown_relation(client):
    from relata.exceptions import RelationNotFoundError

    with pytest.raises(RelationNotFoundError):
        User.query().preload("comments")
