import pytest

from relata.exceptions import RelationNotFoundError
from relata.factory import ModelFactory
from __tests__.model.models import Account, Post, User


PostFactory = ModelFactory.define(Post, lambda ctx: {"title": "hello"})
AccountFactory = ModelFactory.define(Account, lambda ctx: {"balance": 100})
UserFactory = (
    ModelFactory.define(User, lambda ctx: {"username": "stub" if ctx.is_stubbed else "virk"})
    .relation("posts", lambda: PostFactory)
    .relation("account", lambda: AccountFactory)
)


def test_only_has_one_and_has_many_are_supported():
    with pytest.raises(ValueError):
        ModelFactory.define(User, lambda ctx: {}).relation("profile", lambda: None)
    with pytest.raises(ValueError):
        ModelFactory.define(User, lambda ctx: {}).relation("skills", lambda: None)


def test_unknown_relation():
    with pytest.raises(RelationNotFoundError):
        UserFactory.query().with_("comments")


@pytest.mark.asyncio
async def test_make_stubbed_with_relations(client):
    user = await UserFactory.query().with_("posts", 3).with_("account").make_stubbed()

    assert user.username == "stub"
    assert user.id is not None
    assert len(user.posts) == 3
    assert all(post.user_id == user.id for post in user.posts)
    assert len({post.id for post in user.posts}) == 3
    assert user.account.user_id == user.id
    assert client.queries == []


@pytest.mark.asyncio
async def test_make_stubbed_many_with_merge(client):
    users = await UserFactory.query().merge([{"username": "a"}, {"username": "b"}]).make_stubbed_many(2)
    assert [user.username for user in users] == ["a", "b"]
    assert users[0].id != users[1].id


@pytest.mark.asyncio
async def test_create_with_relations(client):
    user = await UserFactory.query().with_("posts", 2).with_("account").create()

    assert user.username == "virk"
    assert user.is_persisted
    assert [post.user_id for post in user.posts] == [user.id, user.id]
    assert all(post.is_persisted for post in user.posts)
    assert user.account.user_id == user.id
    assert client.statements == [
        "INSERT INTO users (username, profile_id) VALUES ($1, $2) RETURNING *",
        "INSERT INTO posts (user_id, title) VALUES ($1, $2) RETURNING *",
        "INSERT INTO posts (user_id, title) VALUES ($1, $2) RETURNING *",
        "INSERT INTO accounts (user_id, balance) VALUES ($1, $2) RETURNING *",
    ]


@pytest.mark.asyncio
async def test_relation_callback_configures_the_related_builder(client):
    user = await UserFactory.query().with_(
        "posts", 2, lambda posts: posts.merge([{"title": "first"}, {"title": "second"}])
    ).create()
    assert [post.title for post in user.posts] == ["first", "second"]


@pytest.mark.asyncio
async def test_tap_runs_before_persisting(client):
    seen = []
    user = await UserFactory.query().tap(lambda model, ctx: seen.append((model.username, ctx.is_stubbed))).create()
    assert seen == [("virk", False)]
    assert user.is_persisted


@pytest.mark.asyncio
async def test_related_rows_share_the_parent_transaction(client):
    trx = await client.transaction()

    user = await UserFactory.query().use_ctx(trx).with_("posts", 2).create()

    assert user.trx is trx
    assert all(post.trx is trx for post in user.posts)
    assert len(trx.writes) == 3
    assert client.committed == []
