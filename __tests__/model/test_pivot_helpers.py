import pytest

from relata.model.many_to_many.pivot_helpers import PivotHelpers
from relata.model.many_to_many.sub_query_builder import ManyToManySubQueryBuilder
from relata.model.query_builder import Variation
from __tests__.model.models import Skill, User
from __tests__.model.utils import assert_sql


@pytest.fixture()
def query(client):
    return User(id=1, username="virk").related("skills").query().select("id")


def pivot_where(query):
    sql, params = query.to_sql()
    return sql[sql.index(" WHERE ") + len(" WHERE "):], params


def test_prefix_pivot_table(query):
    helpers = query.pivot_helpers
    assert isinstance(helpers, PivotHelpers)
    assert helpers.prefix_pivot_table("proficiency") == "skill_user.proficiency"
    assert helpers.prefix_pivot_table("users.id") == "users.id"

    query.is_pivot_only_query = True
    assert helpers.prefix_pivot_table("proficiency") == "proficiency"
    assert helpers.prefix_pivot_table("skill_user.proficiency") == "skill_user.proficiency"


def test_variations_combine_in_call_order(query):
    query.where_pivot("proficiency", "expert")
    query.or_where_pivot("rank", ">", 2)
    query.where_not_pivot("source", "import")
    query.or_where_not_pivot("archived", True)
    sql, params = pivot_where(query)
    assert sql == (
        "(((((skill_user.proficiency = $1) OR (skill_user.rank > $2)) AND (NOT (skill_user.source = $3)))"
        " OR (NOT (skill_user.archived = $4))) AND (skill_user.user_id = $5))"
    )
    assert params == ["expert", 2, "import", True, 1]


def test_helpers_take_the_variation_directly(query):
    helpers = query.pivot_helpers
    helpers.where_pivot(Variation.AND, "proficiency", "expert")
    helpers.where_null_pivot(Variation.OR_NOT, "archived_at")
    sql, params = pivot_where(query)
    assert sql == (
        "(((skill_user.proficiency = $1) OR (NOT (skill_user.archived_at IS NULL))) AND (skill_user.user_id = $2))"
    )
    assert params == ["expert", 1]


def test_and_aliases(query):
    query.and_where_pivot("proficiency", "expert").and_where_not_pivot("source", "import")
    sql, _ = pivot_where(query)
    assert sql == (
        "(((skill_user.proficiency = $1) AND (NOT (skill_user.source = $2))) AND (skill_user.user_id = $3))"
    )


def test_where_in_and_null_pivot(query):
    query.where_in_pivot("skill_id", [1, 2]).where_not_null_pivot("archived_at")
    sql, params = pivot_where(query)
    assert sql == (
        "(((skill_user.skill_id IN ($1, $2)) AND (NOT (skill_user.archived_at IS NULL)))"
        " AND (skill_user.user_id = $3))"
    )
    assert params == [1, 2, 1]


def test_where_not_in_pivot_and_or_null(query):
    query.where_not_in_pivot("skill_id", [4]).or_where_null_pivot("archived_at")
    sql, params = pivot_where(query)
    assert sql == (
        "(((NOT (skill_user.skill_id IN ($1))) OR (skill_user.archived_at IS NULL)) AND (skill_user.user_id = $2))"
    )
    assert params == [4, 1]


def test_where_in_pivot_with_subquery(query, client):
    python_skills = Skill.query(client).select("id").where("name", "python")
    query.where_in_pivot("skill_id", python_skills)
    sql, params = pivot_where(query)
    assert sql == (
        "((skill_user.skill_id IN (SELECT id FROM skills WHERE (name = $1))) AND (skill_user.user_id = $2))"
    )
    assert params == ["python", 1]


def test_where_pivot_with_mapping(query):
    query.where_pivot({"proficiency": "expert", "source": "import"})
    sql, params = pivot_where(query)
    assert sql == (
        "(((skill_user.proficiency = $1) AND (skill_user.source = $2)) AND (skill_user.user_id = $3))"
    )
    assert params == ["expert", "import", 1]


def test_pivot_only_query_keeps_bare_names(client):
    query = User(id=1, username="virk").related("skills").pivot_query()
    query.where_in_pivot("skill_id", [3]).where_null_pivot("archived_at").pivot_columns(["proficiency"])
    assert_sql(
        query.to_sql(),
        "SELECT proficiency AS pivot_proficiency FROM skill_user "
        "WHERE (((skill_id IN ($1)) AND (archived_at IS NULL)) AND (user_id = $2))",
        [3, 1],
    )


def test_pivot_columns_are_aliased_on_the_query_builder(query):
    query.pivot_columns(["note"])
    sql, _ = query.to_sql()
    assert "skill_user.note AS pivot_note" in sql


def test_sub_query_qualifies_without_aliasing(client):
    sub_query = ManyToManySubQueryBuilder(client, User.get_relation("skills"))
    sub_query.pivot_columns(["proficiency"]).where_pivot("proficiency", "expert")
    assert_sql(
        sub_query.to_sql(),
        "SELECT skill_user.proficiency FROM skills INNER JOIN skill_user ON (skills.id = skill_user.skill_id) "
        "WHERE ((skill_user.proficiency = $1) AND (skill_user.user_id = users.id))",
        ["expert"],
    )


def test_between_and_like_pivot(query):
    (
        query.where_between_pivot("rank", (1, 5))
        .or_where_not_between_pivot("rank", (8, 9))
        .where_like_pivot("source", "imp%")
        .or_where_ilike_pivot("note", "%Go%")
    )
    sql, params = pivot_where(query)
    assert sql == (
        "(((((skill_user.rank BETWEEN $1 AND $2) OR (NOT (skill_user.rank BETWEEN $3 AND $4)))"
        " AND (skill_user.source LIKE $5)) OR (skill_user.note ILIKE $6)) AND (skill_user.user_id = $7))"
    )
    assert params == [1, 5, 8, 9, "imp%", "%Go%", 1]


def test_json_pivot(query):
    (
        query.where_json_superset_pivot("meta", {"level": 2})
        .or_where_not_json_pivot("meta", {})
        .where_json_subset_pivot("meta", {"a": 1})
        .where_json_path_pivot("meta", "$.level", ">", 1)
    )
    sql, params = pivot_where(query)
    assert sql == (
        "(((((skill_user.meta @> $1::jsonb) OR (NOT (skill_user.meta = $2::jsonb)))"
        " AND (skill_user.meta <@ $3::jsonb))"
        " AND (jsonb_path_query_first(skill_user.meta, $4) #>> '{}' > $5)) AND (skill_user.user_id = $6))"
    )
    assert params == ['{"level": 2}', "{}", '{"a": 1}', "$.level", 1, 1]


def test_json_path_and_between_on_pivot_only_query(client):
    query = User(id=1, username="virk").related("skills").pivot_query()
    query.where_json_path_pivot("meta", "$.level", "3").and_where_between_pivot("rank", (1, 2))
    sql, params = pivot_where(query)
    assert sql == (
        "(((jsonb_path_query_first(meta, $1) #>> '{}' = $2) AND (rank BETWEEN $3 AND $4)) AND (user_id = $5))"
    )
    assert params == ["$.level", "3", 1, 2, 1]


def test_sub_query_like_pivot(client):
    sub_query = ManyToManySubQueryBuilder(client, User.get_relation("skills"))
    sub_query.where_ilike_pivot("note", "%go%")
    sql, params = pivot_where(sub_query)
    assert sql == "((skill_user.note ILIKE $1) AND (skill_user.user_id = users.id))"
    assert params == ["%go%"]
