from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import loguru
from loguru import logger

from finsync.adapters.cache.read_cache import (
    CATEGORIES_NAMESPACE,
    TRANSACTIONS_NAMESPACE,
    ReadCache,
    user_cache_key,
)
from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Transaction
from finsync.infra.clients.errors import require_user_id
from finsync.tools.categorize.categorizer_tool import (
    CategorizationResult,
    Categorizer,
)
from finsync.tools.categorize.seed import seed_categories

NO_UNCATEGORIZED_MESSAGE = "No uncategorized transactions found"


@dataclass(frozen=True, slots=True)
class Suggestion:
    transaction_id: int
    result: CategorizationResult
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "suggested_category": self.result.category,
            "confidence": self.result.confidence,
            "reason": self.reason,
        }


class BulkCategorizerLogger:
    """Handles all logging for BulkCategorizer."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def batch_start(self, user_id: str, count: int, max_concurrency: int) -> None:
        self._logger.bind(user_id=user_id, count=count).info(
            "Categorizing {} transactions for user {} (max concurrency: {})",
            count,
            user_id,
            max_concurrency,
        )

    def persist_failed(self, transaction_id: int, error: BaseException) -> None:
        self._logger.bind(transaction_id=transaction_id, error=str(error)).error(
            "Failed to save category for transaction {}: {}", transaction_id, error
        )

    def batch_complete(self, saved: int, failed: int) -> None:
        self._logger.bind(saved=saved, failed=failed).info(
            "Bulk categorization complete: {} saved, {} failed", saved, failed
        )


class BulkCategorizer:
    """Categorizes a user's uncategorized transactions and saves the labels.

    Categorization calls run concurrently under a semaphore. The resulting
    writes are applied one by one on the blocking DB facade; each write
    stands alone, so one failure leaves the other saved labels in place.
    """

    def __init__(
        self,
        db: DB,
        categorizer: Categorizer,
        *,
        cache: ReadCache | None = None,
        max_concurrency: int = 8,
        logger_instance: BulkCategorizerLogger | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._db = db
        self._categorizer = categorizer
        self._cache = cache
        self._max_concurrency = max_concurrency
        self._logger = logger_instance or BulkCategorizerLogger()

    async def categorize_transactions(
        self,
        user_id: str,
        transaction_ids: Sequence[int],
    ) -> dict[str, Any]:
        """Categorize and persist the selected uncategorized transactions.

        Args:
            user_id: Owner; transactions of other users are ignored
            transaction_ids: Candidate transaction ids

        Returns:
            Dict with message, results and failures
        """
        user_id = require_user_id(user_id)
        transactions = self._db.find_uncategorized_transactions(
            user_id, transaction_ids
        )
        if not transactions:
            return {"message": NO_UNCATEGORIZED_MESSAGE, "results": [], "failures": []}

        categories = seed_categories(self._db, user_id, cache=self._cache)
        category_ids = {c.name.strip().lower(): c.category_id for c in categories}

        self._logger.batch_start(user_id, len(transactions), self._max_concurrency)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def suggest(txn: Transaction) -> Suggestion:
            async with semaphore:
                result = await self._categorizer.categorize(txn.description, txn.amount)
            return Suggestion(
                transaction_id=txn.transaction_id,
                result=result,
                reason=self._reason(txn, result),
            )

        suggestions = await asyncio.gather(*(suggest(txn) for txn in transactions))

        results: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []
        for suggestion in suggestions:
            try:
                self._persist(suggestion, category_ids)
            except Exception as e:
                self._logger.persist_failed(suggestion.transaction_id, e)
                failures.append(
                    {"transaction_id": suggestion.transaction_id, "error": str(e)}
                )
            else:
                results.append(suggestion.to_dict())

        if results and self._cache is not None:
            self._cache.invalidate(
                user_cache_key(TRANSACTIONS_NAMESPACE, user_id),
                user_cache_key(CATEGORIES_NAMESPACE, user_id),
            )

        self._logger.batch_complete(len(results), len(failures))
        return {
            "message": f"Successfully categorized {len(results)} transactions",
            "results": results,
            "failures": failures,
        }

    def _persist(
        self, suggestion: Suggestion, category_ids: dict[str, int]
    ) -> Transaction:
        label = suggestion.result.category
        return self._db.update_transaction_category(
            suggestion.transaction_id,
            category=label,
            category_id=category_ids.get(label.strip().lower()),
        )

    @staticmethod
    def _reason(txn: Transaction, result: CategorizationResult) -> str:
        if result.is_fallback:
            return "Rule-based categorization (AI unavailable)"
        return f'AI analysis based on description: "{txn.description}"'
