"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure crudgate is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from crudgate.interface.permissions import AuthUser
from crudgate.interface.schema import Collection, Field, ForeignKeyInfo, Relationship
from crudgate.collection.schema import StaticSchemaRegistry
from crudgate.permissions.checker import PermissionChecker
from crudgate.permissions.store import InMemoryPolicyStore


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def admin_user():
    return AuthUser(id="admin-1", role_id="role-admin", role="admin", username="root", email="root@example.com")


@pytest.fixture
def editor_user():
    return AuthUser(id="U1", role_id="role-editor", role="editor", username="alice", email="alice@example.com")


@pytest.fixture
def viewer_user():
    return AuthUser(id="U2", role_id="role-viewer", role="viewer", username="bob", email="bob@example.com")


# ============================================================================
# Policies
# ============================================================================

@pytest.fixture
def memory_store():
    return InMemoryPolicyStore()


@pytest.fixture
def checker(memory_store):
    return PermissionChecker(memory_store, admin_role="admin")


# ============================================================================
# SQLite
# ============================================================================

@pytest.fixture
def sqlite_engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autocommit=False, autoflush=False)


@pytest.fixture
def blog_db(sqlite_engine):
    """authors and posts tables with a few rows"""
    with sqlite_engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE authors (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT UNIQUE)"
        ))
        conn.execute(text(
            "CREATE TABLE posts (id INTEGER PRIMARY KEY, title TEXT NOT NULL, status TEXT, "
            "author_id INTEGER REFERENCES authors(id), owner_id TEXT, secret TEXT, views INTEGER DEFAULT 0)"
        ))
        conn.execute(text(
            "INSERT INTO authors (id, name, email) VALUES "
            "(1, 'Ada', 'ada@example.com'), (2, 'Linus', 'linus@example.com')"
        ))
        conn.execute(text(
            "INSERT INTO posts (id, title, status, author_id, owner_id, secret, views) VALUES "
            "(1, 'First', 'published', 1, 'U1', 's1', 10), "
            "(2, 'Second', 'draft', 1, 'U1', 's2', 5), "
            "(3, 'Third', 'published', 2, 'U2', 's3', 7), "
            "(4, 'Fourth', 'published', NULL, 'U2', 's4', 1)"
        ))
    return sqlite_engine


@pytest.fixture
def blog_schema():
    authors = Collection(
        name="authors",
        table_name="authors",
        fields=[
            Field(name="id", data_type="integer", is_primary_key=True, is_nullable=False),
            Field(name="name", is_nullable=False),
            Field(name="email", is_unique=True),
        ],
    )
    posts = Collection(
        name="posts",
        table_name="posts",
        fields=[
            Field(name="id", data_type="integer", is_primary_key=True, is_nullable=False),
            Field(name="title", is_nullable=False),
            Field(name="status"),
            Field(name="author_id", data_type="integer",
                  foreign_key=ForeignKeyInfo(table="authors", column="id")),
            Field(name="owner_id"),
            Field(name="secret"),
            Field(name="views", data_type="integer"),
        ],
    )
    return StaticSchemaRegistry(
        collections=[authors, posts],
        relationships=[
            Relationship(collection="posts", field_name="author_id", related_collection="authors"),
        ],
    )
