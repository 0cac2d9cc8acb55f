import pytest

from caustics.aggregates import AggregateExpr, avg, count, max_, min_, sum_
from caustics.core.filters import SortOrder, field
from caustics.errors import QueryValidationError


@pytest.mark.asyncio
async def test_group_by_with_aggregates(client, populated_db):
    alice, bob, charlie, _ = populated_db['users']
    rows = await client.entity("Post").group_by("author_id").count().sum("rate").max("rate")
    assert [r.keys["author_id"] for r in rows] == [alice.id, bob.id, charlie.id]
    assert [r.count for r in rows] == [2, 2, 1]
    assert [r.sum["rate"] for r in rows] == [8, 5, 2]
    assert [r.max["rate"] for r in rows] == [5, 4, 2]


@pytest.mark.asyncio
async def test_group_by_having_order_and_pagination(client, populated_db):
    posts = client.entity("Post")
    rows = await posts.group_by("author_id").count().having_count_gt(1).order_by(sum_("rate"), SortOrder.DESC)
    assert [r.count for r in rows] == [2, 2]
    assert rows[0].keys["author_id"] == populated_db['users'][0].id

    rows = await posts.group_by("category_slug").count().where(field("category_slug").is_not_null()).order_by("category_slug", "desc")
    assert [(r.keys["category_slug"], r.count) for r in rows] == [("tech", 2), ("life", 2)]

    rows = await posts.group_by("author_id").take(1).skip(1)
    assert [r.keys["author_id"] for r in rows] == [populated_db['users'][1].id]
    # negative pagination values clamp to zero
    assert await posts.group_by("author_id").take(-1) == []


@pytest.mark.asyncio
async def test_group_by_having_on_aggregate_expression(client, populated_db):
    rows = await client.entity("PostComment").group_by("author_id").having(avg("rate").gte(3)).avg("rate")
    assert [r.keys["author_id"] for r in rows] == [populated_db['users'][0].id, populated_db['users'][2].id]
    assert [float(r.avg["rate"]) for r in rows] == [4.0, 3.5]


@pytest.mark.asyncio
async def test_group_by_order_requires_grouped_field(client, populated_db):
    with pytest.raises(QueryValidationError):
        client.entity("Post").group_by("author_id").order_by("rate")
    with pytest.raises(QueryValidationError):
        client.entity("Post").group_by()


@pytest.mark.asyncio
async def test_aggregate_over_filtered_rows(client, populated_db):
    result = await client.entity("Post").aggregate(field("rate").gte(2)).count().sum("rate").min("rate").max("rate").avg("rate")
    assert result.count == 4
    assert result.sum == {"rate": 14}
    assert result.min == {"rate": 2}
    assert result.max == {"rate": 5}
    assert float(result.avg["rate"]) == 3.5
    # count is the default aggregate
    assert (await client.entity("User").aggregate()).count == 4


@pytest.mark.asyncio
async def test_count_of_a_field_skips_nulls(client, populated_db):
    result = await client.entity("User").aggregate().aggregate(count("age"), count())
    assert result.count_fields == {"age": 3}
    assert result.count == 4


@pytest.mark.asyncio
async def test_order_by_relation_count(client, populated_db):
    users = await client.entity("User").find_many().order_by_relation_count("post_comments", SortOrder.DESC).take(2)
    # Bob and Charlie wrote two comments each; ties fall back to id
    assert [u.name for u in users] == ["Bob Smith", "Charlie Brown"]
    with pytest.raises(QueryValidationError):
        await client.entity("Post").find_many().order_by_relation_count("author")


def test_aggregate_expression_labels():
    assert sum_("rate").label == "_sum__rate"
    assert count().label == "_count___all"
    assert repr(min_("rate")) == "min(rate)"
    assert max_("rate").gt(1).op == "gt"
    with pytest.raises(ValueError):
        AggregateExpr("median", "rate")
    with pytest.raises(ValueError):
        AggregateExpr("sum")
