import pytest

from relata.exceptions import MissingLocalKeyError
from __tests__.model.models import Profile, User
from __tests__.model.utils import assert_sql


def persisted_user(**values):
    return User.from_row({"id": 4, "username": "virk", "profile_id": None, **values})


def test_relation_keys():
    relation = User.get_relation("profile")
    assert relation.local_key == "id"
    assert relation.foreign_key == "profile_id"
    assert relation.related_model() is Profile


def test_query_related_row(client):
    query = persisted_user(profile_id=5).related("profile").query()
    assert_sql(query.to_sql(), "SELECT * FROM profiles WHERE (id = $1)", [5])


def test_query_without_foreign_key(client):
    with pytest.raises(MissingLocalKeyError) as error:
        persisted_user().related("profile").query()
    assert error.value.key == "profile_id"


def test_eager_query_skips_missing_keys(client):
    parents = [persisted_user(profile_id=5), persisted_user(profile_id=None), persisted_user(profile_id=5), persisted_user(profile_id=7)]
    query = User.get_relation("profile").eager_query(parents, client)
    assert query.is_related_preload_query
    assert_sql(query.to_sql(), "SELECT * FROM profiles WHERE (id IN ($1, $2))", [5, 7])


@pytest.mark.asyncio
async def test_preload(client):
    client.queue(
        [{"id": 1, "username": "a", "profile_id": 5}, {"id": 2, "username": "b", "profile_id": None}],
        [{"id": 5, "display_name": "Virk"}],
    )
    users = await User.query().preload("profile")
    assert users[0].profile.display_name == "Virk"
    assert users[1].profile is None


@pytest.mark.asyncio
async def test_associate_saves_both_sides_in_one_transaction(client):
    user = User(username="virk")
    profile = Profile(display_name="Virk")

    await user.related("profile").associate(profile)

    assert profile.is_persisted
    assert user.is_persisted
    assert user.profile_id == profile.id
    assert user.profile is profile

    assert len(client.transactions) == 1
    assert client.transactions[0].committed
    assert_sql(client.committed[0], "INSERT INTO profiles (display_name) VALUES ($1) RETURNING *", ["Virk"])
    assert_sql(
        client.committed[1],
        "INSERT INTO users (username, profile_id) VALUES ($1, $2) RETURNING *",
        ["virk", profile.id],
    )


@pytest.mark.asyncio
async def test_associate_persisted_parent_updates_foreign_key(client):
    user = persisted_user()
    profile = Profile.from_row({"id": 9, "display_name": "Virk"})

    await user.related("profile").associate(profile)

    # the related row is clean, only the parent is written
    assert len(client.committed) == 1
    assert_sql(client.committed[0], "UPDATE users SET profile_id = $1 WHERE (id = $2)", [9, 4])


@pytest.mark.asyncio
async def test_associate_rolls_back_on_failure(client):
    user = persisted_user()
    client.fail_on = lambda sql: sql.startswith("UPDATE users")

    with pytest.raises(RuntimeError, match="forced failure"):
        await user.related("profile").associate(Profile(display_name="Virk"))

    assert user.profile_id is None
    assert user.profile is None
    assert client.committed == []
    assert client.transactions[0].rolled_back
    assert not client.transactions[0].committed
    # the profile insert ran inside the rolled back transaction
    assert client.statements[0].startswith("INSERT INTO profiles")
    # a finished transaction is not reused
    assert user.trx is None


@pytest.mark.asyncio
async def test_associate_retry_after_rollback_inserts_again(client):
    user = persisted_user()
    profile = Profile(display_name="Virk")
    client.fail_on = lambda sql: sql.startswith("UPDATE users")

    with pytest.raises(RuntimeError):
        await user.related("profile").associate(profile)

    assert profile.id is None
    assert not profile.is_persisted

    client.fail_on = None
    await user.related("profile").associate(profile)

    assert profile.id == 2
    assert user.profile_id == 2
    assert len(client.committed) == 2
    assert_sql(client.committed[0], "INSERT INTO profiles (display_name) VALUES ($1) RETURNING *", ["Virk"])
    assert_sql(client.committed[1], "UPDATE users SET profile_id = $1 WHERE (id = $2)", [2, 4])


@pytest.mark.asyncio
async def test_associate_failure_keeps_new_parent_unsaved(client):
    user = User(username="virk")
    client.fail_on = lambda sql: sql.startswith("INSERT INTO users")

    with pytest.raises(RuntimeError):
        await user.related("profile").associate(Profile(display_name="Virk"))

    assert not user.is_persisted
    assert user.id is None
    assert user.profile_id is None


@pytest.mark.asyncio
async def test_associate_reuses_open_transaction(client):
    trx = await client.transaction()
    user = persisted_user().use_transaction(trx)

    await user.related("profile").associate(Profile(display_name="Virk"))

    assert len(client.transactions) == 1
    assert not trx.committed
    assert len(trx.writes) == 2
    assert client.committed == []

    await trx.commit()
    assert len(client.committed) == 2


@pytest.mark.asyncio
async def test_dissociate_is_a_single_update(client):
    user = persisted_user(profile_id=5)

    await user.related("profile").dissociate()

    assert user.profile_id is None
    assert client.queries == [("UPDATE users SET profile_id = $1 WHERE (id = $2)", [None, 4])]


@pytest.mark.asyncio
async def test_dissociate_inside_transaction(client):
    trx = await client.transaction()
    user = persisted_user(profile_id=5).use_transaction(trx)

    await user.related("profile").dissociate()

    assert trx.writes == [("UPDATE users SET profile_id = $1 WHERE (id = $2)", [None, 4])]
    assert client.committed == []
