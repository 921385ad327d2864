"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator

from loguru import logger
import pytest

from finsync.adapters.db.facade import DB


def create_db() -> DB:
    """Create in-memory database instance with all tables."""
    db = DB("sqlite:///:memory:")
    db.create_schema()
    return db


@pytest.fixture
def db() -> DB:
    return create_db()


@pytest.fixture
def captured_logs() -> Iterator[list[str]]:
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(str(message)), level="DEBUG"
    )
    try:
        yield messages
    finally:
        logger.remove(handler_id)
