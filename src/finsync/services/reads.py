from __future__ import annotations

from typing import Any

from finsync.adapters.cache.read_cache import (
    ACCOUNTS_NAMESPACE,
    CATEGORIES_NAMESPACE,
    TRANSACTIONS_NAMESPACE,
    ReadCache,
    user_cache_key,
)
from finsync.adapters.db.facade import DB
from finsync.infra.clients.errors import require_user_id


class CachedReads:
    """List reads served through a ReadCache.

    Values are stored as plain dicts so cached entries never hold ORM state.
    """

    def __init__(self, db: DB, cache: ReadCache) -> None:
        self._db = db
        self._cache = cache

    def list_accounts(self, user_id: str) -> list[dict[str, Any]]:
        user_id = require_user_id(user_id)
        key = user_cache_key(ACCOUNTS_NAMESPACE, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        rows = [account.to_dict() for account in self._db.list_accounts(user_id)]
        self._cache.set(key, rows)
        return rows

    def list_transactions(self, user_id: str) -> list[dict[str, Any]]:
        user_id = require_user_id(user_id)
        key = user_cache_key(TRANSACTIONS_NAMESPACE, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        rows = [txn.to_dict() for txn in self._db.list_transactions(user_id)]
        self._cache.set(key, rows)
        return rows

    def list_categories(self, user_id: str) -> list[dict[str, Any]]:
        user_id = require_user_id(user_id)
        key = user_cache_key(CATEGORIES_NAMESPACE, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        rows = [category.to_dict() for category in self._db.list_categories(user_id)]
        self._cache.set(key, rows)
        return rows
