import pytest

from caustics.core.filters import NullsOrder, QueryMode, RelationCondition, SortOrder, field
from caustics.core.records import UNSET, ModelWithRelations, Selected
from caustics.errors import QueryValidationError
from tests.models import User


def _titles(rows):
    return [r.title for r in rows]


@pytest.mark.asyncio
async def test_find_many_filters_and_order(client, populated_db):
    posts = client.entity("Post")
    rows = await posts.find_many(field("rate").gte(3)).order_by("rate", "desc")
    assert [p.rate for p in rows] == [5, 4, 3]
    assert all(isinstance(p, ModelWithRelations) for p in rows)

    rows = await posts.find_many({"author_id": populated_db['users'][1].id}).where(field("content").is_null())
    assert _titles(rows) == ["SQLAlchemy Tips"]

    rows = await posts.find_many(field("title").starts_with("G")).order_by("title")
    assert _titles(rows) == ["Getting Started", "GraphQL is Great"]


@pytest.mark.asyncio
async def test_string_operators(client, populated_db):
    users = client.entity("User")
    assert [u.name for u in await users.find_many(field("name").contains("ALICE", QueryMode.INSENSITIVE))] == ["Alice Johnson"]
    assert [u.name for u in await users.find_many(field("email").ends_with("@example.com")).take(1)] == ["Alice Johnson"]
    # LIKE wildcards in the value are matched literally
    assert await users.find_many(field("name").contains("%")) == []
    rows = await users.find_many(field("id").in_([populated_db['users'][1].id, populated_db['users'][3].id]))
    assert [u.name for u in rows] == ["Bob Smith", "Dave NoPosts"]
    rows = await users.find_many(field("age").is_null())
    assert [u.name for u in rows] == ["Charlie Brown"]


@pytest.mark.asyncio
async def test_nulls_ordering(client, populated_db):
    users = client.entity("User")
    first = await users.find_many().order_by("age", SortOrder.ASC, NullsOrder.FIRST)
    assert [u.age for u in first] == [None, 25, 30, 40]
    last = await users.find_many().order_by("age", SortOrder.DESC, NullsOrder.LAST)
    assert [u.age for u in last] == [40, 30, 25, None]


@pytest.mark.asyncio
async def test_negative_take_and_cursor(client, populated_db):
    posts = client.entity("Post")
    ids = [p.id for p in populated_db['posts']]
    assert [p.id for p in await posts.find_many().take(-2)] == ids[3:]
    assert [p.id for p in await posts.find_many().cursor(ids[1]).take(2)] == ids[2:4]
    assert [p.id for p in await posts.find_many().cursor(ids[2]).take(-1)] == [ids[1]]
    # cursor over a non-unique ordering keeps the position in that ordering
    rows = await posts.find_many().order_by("rate", "desc").cursor(ids[2])
    assert [p.rate for p in rows] == [3, 2, 1]
    assert [p.id for p in await posts.find_many().skip(4)] == ids[4:]


@pytest.mark.asyncio
async def test_cursor_over_nullable_ordering(client, populated_db):
    posts = client.entity("Post")
    ids = [p.id for p in populated_db['posts']]
    # content asc: NULL first here, then the values
    rows = await posts.find_many().order_by("content", "asc").cursor(ids[2])
    assert [p.id for p in rows] == [ids[4], ids[0], ids[3], ids[1]]
    rows = await posts.find_many().order_by("content", "asc", NullsOrder.LAST).cursor(ids[3])
    assert [p.id for p in rows] == [ids[1], ids[2]]
    assert await posts.find_many().order_by("content", "asc", NullsOrder.LAST).cursor(ids[2]) == []
    rows = await posts.find_many().order_by("content").cursor(ids[0]).take(-2)
    assert [p.id for p in rows] == [ids[2], ids[4]]
    rows = await posts.find_many().order_by("content", "asc", NullsOrder.LAST).cursor(ids[1]).take(-2)
    assert [p.id for p in rows] == [ids[0], ids[3]]
    assert await posts.find_many().order_by("content").cursor(999) == []


@pytest.mark.asyncio
async def test_find_first_and_unique(client, populated_db):
    posts = client.entity("Post")
    assert (await posts.find_first(field("rate").lt(3)).order_by("rate")).title == "Python Best Practices"
    assert (await posts.find_first().take(-1)).title == "Getting Started"
    assert await posts.find_first(field("rate").gt(100)) is None
    assert await posts.find_unique({"id": 999}) is None


@pytest.mark.asyncio
async def test_builders_can_be_awaited_again(client, populated_db):
    posts = client.entity("Post")
    first = posts.find_first().order_by("rate", "desc").take(3)
    assert (await first).rate == 5
    assert (await first).rate == 5
    many = posts.find_many().order_by("rate", "desc").take(3)
    assert [p.rate for p in await many] == [5, 4, 3]
    assert [p.rate for p in await many] == [5, 4, 3]
    unique = posts.find_unique({"id": populated_db['posts'][0].id}).take(5)
    assert (await unique).title == "First Post"
    assert (await unique).title == "First Post"


@pytest.mark.asyncio
async def test_invalid_pagination_is_rejected(client, populated_db):
    with pytest.raises(QueryValidationError):
        await client.entity("Post").find_many().skip(-1)
    with pytest.raises(QueryValidationError):
        await client.entity("Post").find_many(field("nope").equals(1))
    with pytest.raises(QueryValidationError):
        await client.entity("Post").find_many().order_by_relation_count("post_comments").cursor(1)


@pytest.mark.asyncio
async def test_distinct_on_keeps_first_row_per_value(client, populated_db):
    posts = client.entity("Post")
    ids = [p.id for p in populated_db['posts']]
    rows = await posts.find_many().distinct_on("author_id")
    assert [p.id for p in rows] == [ids[0], ids[2], ids[4]]
    rows = await posts.find_many(field("rate").lte(3)).distinct_on("author_id")
    assert [p.id for p in rows] == [ids[1], ids[3], ids[4]]
    rows = await posts.find_many().distinct_on("author_id").take(-2)
    assert [p.id for p in rows] == [ids[2], ids[4]]


@pytest.mark.asyncio
async def test_distinct_on_with_relation_conditions(client, populated_db):
    posts = client.entity("Post")
    ids = [p.id for p in populated_db['posts']]
    rows = await posts.find_many(RelationCondition.some("post_comments")).distinct_on("author_id")
    assert [p.id for p in rows] == [ids[0], ids[2]]
    rows = await posts.find_many(RelationCondition.every("post_comments", field("rate").gte(3))).distinct_on("author_id")
    assert [p.id for p in rows] == [ids[1], ids[2], ids[4]]


@pytest.mark.asyncio
async def test_select_projection(client, populated_db):
    users = await client.entity("User").find_many().select("name").take(1)
    user = users[0]
    assert isinstance(user, Selected)
    assert user.name == "Alice Johnson"
    assert user.is_fetched("id")
    assert not user.is_fetched("email")
    assert user.email is UNSET
    assert user.get("email", "n/a") == "n/a"
    assert user.to_dict() == {"id": populated_db['users'][0].id, "name": "Alice Johnson"}

    with pytest.raises(QueryValidationError):
        await client.entity("User").find_many().select("posts")


@pytest.mark.asyncio
async def test_select_projection_sql_lists_only_needed_columns(client, populated_db, sql_statements):
    sql_statements.clear()
    await client.entity("Post").find_many().select("title").include("author")
    post_select = next(s for s in sql_statements if " from posts" in s)
    assert "posts.title" in post_select and "posts.author_id" in post_select
    assert "posts.content" not in post_select and "posts.metadata_json" not in post_select


@pytest.mark.asyncio
async def test_relation_conditions(client, populated_db):
    users = client.entity("User")
    some = await users.find_many(RelationCondition.some("posts", field("rate").gte(4)))
    assert [u.name for u in some] == ["Alice Johnson", "Bob Smith"]
    none = await users.find_many(RelationCondition.none("posts"))
    assert [u.name for u in none] == ["Dave NoPosts"]
    every = await users.find_many(RelationCondition.every("posts", field("rate").gte(3)))
    assert [u.name for u in every] == ["Alice Johnson", "Dave NoPosts"]
    assert await users.count(RelationCondition.some("post_comments")) == 3


@pytest.mark.asyncio
async def test_json_filters(client, populated_db):
    posts = client.entity("Post")
    assert _titles(await posts.find_many(field("metadata_json").json_path(["views"], 10))) == ["First Post"]
    assert _titles(await posts.find_many(field("metadata_json").json_array_contains(["tags"], "graphql"))) == ["GraphQL is Great"]
    assert _titles(await posts.find_many(field("metadata_json").json_object_contains(["flags"], "featured"))) == ["Python Best Practices"]
    assert _titles(await posts.find_many(field("metadata_json").json_string_starts_with(["tags", 0], "int"))) == ["First Post"]
    with pytest.raises(QueryValidationError):
        await posts.find_many(field("metadata_json").json_path([], 1))


@pytest.mark.asyncio
async def test_client_attribute_access(client, populated_db):
    assert await client.User.count() == 4
    assert await client.entity("user").count() == 4
    assert await client.entity(User).count() == 4
    with pytest.raises(AttributeError):
        client.Nope
