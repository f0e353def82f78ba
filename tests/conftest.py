"""
Shared pytest fixtures and configuration for all tests.
"""

from collections.abc import Generator
from datetime import datetime
from typing import Any

import pytest
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gqlkit import loader
from gqlkit.database import db
from gqlkit.database.connection import create_tables, init_database, reset_database
from gqlkit.database.models import Base, generate_id, utcnow


class Posts(Base):
    """Test-only model exposed through the db handle."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0)
    author_id: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


@pytest.fixture
def schema_registry(monkeypatch: pytest.MonkeyPatch) -> loader.SchemaRegistry:
    """Give each test its own copy of the shared schema registry."""
    isolated = loader.registry.copy()
    monkeypatch.setattr(loader, "registry", isolated)
    return isolated


@pytest.fixture
def database_url(tmp_path: Any) -> Generator[str, None, None]:
    """A fresh SQLite database with all tables created."""
    url = f"sqlite:///{tmp_path / 'gqlkit.db'}"
    reset_database()
    init_database(url, force_reinit=True)
    create_tables()
    yield url
    reset_database()


@pytest.fixture
def posts(database_url: str) -> Generator[Any, None, None]:
    """Register the posts collection on the db handle."""
    collection = db.register("posts", Posts)
    yield collection
    db.unregister("posts")


# Test markers
def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
