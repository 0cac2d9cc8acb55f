import pytest

from caustics.core.descriptors import RelationKind
from caustics.core.filters import RelationFilter
from caustics.core.records import ModelWithRelations, RelationResult
from caustics.errors import DescriptorMismatch, EntityFetcherMissing, RelationNotFound
from caustics.keys import Key
from caustics.registry import EntityFetcher, EntityRegistry
from tests.models import Post, User


def test_belongs_to_descriptors(registry):
    post = registry.meta_for("Post")
    author = post.get_relation_descriptor("author")
    assert author.kind is RelationKind.BELONGS_TO
    assert (author.target_entity, author.foreign_key_column, author.target_table_name) == ("User", "author_id", "users")
    assert not author.is_foreign_key_nullable
    assert author.link_field == "author_id" and author.target_match_field == "id"
    assert post.get_relation_descriptor("reviewer").is_foreign_key_nullable
    category = post.get_relation_descriptor("category")
    assert category.target_primary_key_field == "slug"


def test_has_many_descriptors(registry):
    user = registry.meta_for("User")
    posts = user.get_relation_descriptor("posts")
    assert posts.kind is RelationKind.HAS_MANY
    assert posts.foreign_key_column == "author_id"
    assert posts.link_field == "id" and posts.target_match_field == "author_id"
    reviewed = user.get_relation_descriptor("reviewed_posts")
    assert reviewed.foreign_key_field == "reviewer_id" and reviewed.is_foreign_key_nullable
    assert {d.name for d in user.relation_descriptors()} == {"posts", "reviewed_posts", "post_comments"}
    assert user.get_relation_descriptor("nope") is None
    with pytest.raises(RelationNotFound):
        user.require_relation("nope")


def test_set_field_checks_result_shape(registry):
    user_meta, post_meta = registry.meta_for("User"), registry.meta_for("Post")
    user = ModelWithRelations(user_meta, {"id": 1})
    post = ModelWithRelations(post_meta, {"id": 1, "author_id": 1, "reviewer_id": None})
    posts_desc = user_meta.get_relation_descriptor("posts")
    author_desc = post_meta.get_relation_descriptor("author")
    with pytest.raises(DescriptorMismatch):
        posts_desc.set_field(user, RelationResult.one(None))
    with pytest.raises(DescriptorMismatch):
        author_desc.set_field(post, RelationResult.many([]))
    posts_desc.set_field(user, RelationResult.many([]))
    author_desc.set_field(post, RelationResult.one(user))
    assert user.posts == [] and post.author is user
    assert author_desc.get_foreign_key(post) == Key.int32(1)
    assert post_meta.get_relation_descriptor("reviewer").get_foreign_key(post) is None


def test_name_resolution(registry):
    assert registry.resolve_name("User") == "User"
    assert registry.resolve_name(User) == "User"
    assert registry.resolve_name("user") == "User"
    assert registry.resolve_name("post_comment") == "PostComment"
    assert registry.resolve_name("Nope") is None
    assert "GenericItem" in registry
    with pytest.raises(EntityFetcherMissing):
        registry.meta_for("Nope")
    with pytest.raises(EntityFetcherMissing):
        registry.fetcher_for("Nope")
    registry.validate()


def test_registry_registration_rules():
    reg = EntityRegistry()
    reg.register(Post)
    with pytest.raises(ValueError):
        reg.register(Post)
    # relations must point at registered entities
    with pytest.raises(EntityFetcherMissing):
        reg.validate()
    reg.register(User, name="Account")
    assert reg.resolve_name("User") == "Account"
    assert reg.resolve_name(User) == "Account"
    assert reg.meta_for("Account").model is User


def test_custom_fetcher_class_is_used():
    class AuditingFetcher(EntityFetcher):
        pass

    reg = EntityRegistry()
    reg.register(User, fetcher_cls=AuditingFetcher)
    assert isinstance(reg.fetcher_for("User"), AuditingFetcher)


@pytest.mark.asyncio
async def test_missing_foreign_key_short_circuits(engine, registry, sql_statements):
    post_fetcher = registry.fetcher_for("Post")
    user_fetcher = registry.fetcher_for("User")
    async with engine.connect() as conn:
        sql_statements.clear()
        one = await post_fetcher.fetch_by_foreign_key(conn, None, "reviewer_id", "User", "reviewer", RelationFilter("reviewer"))
        many = await user_fetcher.fetch_by_foreign_key_with_selection(conn, None, "author_id", "Post", "posts", RelationFilter("posts"))
        n = await user_fetcher.count_by_foreign_key(conn, None, "posts", RelationFilter("posts"))
    assert (one.is_many, one.value) == (False, None)
    assert (many.is_many, many.value) == (True, [])
    assert n == 0
    assert sql_statements == []


@pytest.mark.asyncio
async def test_fetch_by_foreign_key(engine, registry, populated_db):
    alice = populated_db['users'][0]
    fetcher = registry.fetcher_for("User")
    async with engine.connect() as conn:
        result = await fetcher.fetch_by_foreign_key(conn, Key.from_value(alice.id), "author_id", "Post", "posts", RelationFilter("posts", take=1))
        assert [p.title for p in result.records()] == ["First Post"]
        assert await fetcher.count_by_foreign_key(conn, Key.from_value(alice.id), "posts", RelationFilter("posts", take=1)) == 2
        with pytest.raises(RelationNotFound):
            await fetcher.fetch_by_foreign_key(conn, Key.from_value(alice.id), "author_id", "Category", "posts", RelationFilter("posts"))
