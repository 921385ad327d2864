from __future__ import annotations

from loguru import logger

from finsync.adapters.cache.read_cache import (
    CATEGORIES_NAMESPACE,
    ReadCache,
    user_cache_key,
)
from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Category
from finsync.infra.clients.errors import require_user_id
from finsync.tools.categorize.categories import DEFAULT_CATEGORIES


def seed_categories(
    db: DB, user_id: str, *, cache: ReadCache | None = None
) -> list[Category]:
    """Create the default categories for ``user_id`` if they have none.

    Returns:
        The user's categories, freshly seeded or pre-existing
    """
    user_id = require_user_id(user_id)
    existing = db.list_categories(user_id)
    if existing:
        return existing

    created = db.create_categories(
        user_id, [dict(seed) for seed in DEFAULT_CATEGORIES]
    )
    if cache is not None:
        cache.invalidate(user_cache_key(CATEGORIES_NAMESPACE, user_id))
    logger.bind(user_id=user_id, count=len(created)).info(
        "Seeded {} default categories for user {}", len(created), user_id
    )
    return created
