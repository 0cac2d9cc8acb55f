"""Database fixtures for caustics tests (shared).

Seeding goes through an ORM session so the data does not depend on the
code under test.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User, Category, Post, PostComment, GenericItem


async def create_sample_users(session: AsyncSession):
    users = [
        User(name="Alice Johnson", email="alice@example.com", age=30, is_admin=True),
        User(name="Bob Smith", email="bob@example.com", age=25),
        User(name="Charlie Brown", email="charlie@example.com", age=None),
        User(name="Dave NoPosts", email="dave@example.com", age=40),
    ]
    session.add_all(users)
    await session.flush()
    await session.commit()
    return users


@pytest.fixture(scope="function")
async def sample_users(db_session: AsyncSession):
    return await create_sample_users(db_session)


async def create_sample_categories(session: AsyncSession):
    categories = [
        Category(slug="tech", title="Technology"),
        Category(slug="life", title="Lifestyle"),
    ]
    session.add_all(categories)
    await session.commit()
    return categories


@pytest.fixture(scope="function")
async def sample_categories(db_session: AsyncSession):
    return await create_sample_categories(db_session)


async def create_sample_posts(session: AsyncSession, users):
    alice, bob, charlie, _ = users
    posts = [
        Post(title="First Post", content="Hello world!", rate=5, author_id=alice.id, reviewer_id=bob.id,
             category_slug="tech", metadata_json={"tags": ["intro", "hello"], "views": 10}),
        Post(title="GraphQL is Great", content="I love GraphQL!", rate=3, author_id=alice.id,
             category_slug="tech", metadata_json={"tags": ["graphql"], "rating": 4.5}),
        Post(title="SQLAlchemy Tips", content=None, rate=4, author_id=bob.id, reviewer_id=alice.id,
             metadata_json=None),
        Post(title="Python Best Practices", content="Here are some tips...", rate=1, author_id=bob.id,
             category_slug="life", metadata_json={"flags": {"featured": True}, "count": 3}),
        Post(title="Getting Started", content="A beginner's guide", rate=2, author_id=charlie.id,
             category_slug="life", metadata_json={}),
    ]
    for p in posts:
        # one flush per row keeps ids in declaration order
        session.add(p)
        await session.flush()
    await session.commit()
    return posts


@pytest.fixture(scope="function")
async def sample_posts(db_session: AsyncSession, sample_users, sample_categories):
    return await create_sample_posts(db_session, sample_users)


async def create_sample_comments(session: AsyncSession, users, posts):
    alice, bob, charlie, _ = users
    p1, p2, p3, p4, _ = posts
    comments = [
        PostComment(content="Great post!", rate=1, post_id=p1.id, author_id=bob.id),
        PostComment(content="Thanks for sharing", rate=2, post_id=p1.id, author_id=charlie.id),
        PostComment(content="Very helpful", rate=3, post_id=p2.id, author_id=bob.id),
        PostComment(content="Nice tips", rate=4, post_id=p3.id, author_id=alice.id),
        PostComment(content="Love it", rate=5, post_id=p4.id, author_id=charlie.id),
    ]
    for c in comments:
        session.add(c)
        await session.flush()
    await session.commit()
    return comments


@pytest.fixture(scope="function")
async def sample_comments(db_session: AsyncSession, sample_users, sample_posts):
    return await create_sample_comments(db_session, sample_users, sample_posts)


async def create_sample_items(session: AsyncSession):
    items = [
        GenericItem(name="A", code="a", count=1, active=True),
        GenericItem(name="B", code="b", count=2, active=False),
        GenericItem(name="C", code="c", count=3, active=True),
    ]
    session.add_all(items)
    await session.commit()
    return items


@pytest.fixture(scope="function")
async def sample_items(db_session: AsyncSession):
    return await create_sample_items(db_session)


@pytest.fixture(scope="function")
async def populated_db(sample_users, sample_categories, sample_posts, sample_comments, sample_items):
    return {
        'users': sample_users,
        'categories': sample_categories,
        'posts': sample_posts,
        'comments': sample_comments,
        'generic_items': sample_items,
    }
