from __future__ import annotations

from collections.abc import Iterable

import loguru
from loguru import logger

from finsync.adapters.db.facade import DB, DuplicateTransactionError
from finsync.adapters.db.models import (
    Account,
    Provider,
    TransactionType,
    external_transaction_column,
)
from finsync.tools.sync.types import ImportOutcome, TransactionDraft, to_cents

UNCATEGORIZED = "Uncategorized"


class ImporterLogger:
    """Handles all logging for TransactionImporter."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def invalid_record(self, external_id: str, account_id: int) -> None:
        self._logger.bind(external_id=external_id, account_id=account_id).warning(
            "Skipping transaction {} with unparseable amount or date", external_id
        )

    def insert_failed(
        self, external_id: str, account_id: int, error: Exception
    ) -> None:
        self._logger.bind(
            external_id=external_id, account_id=account_id, error=str(error)
        ).error("Failed to import transaction {}: {}", external_id, error)

    def concurrent_duplicate(self, external_id: str, account_id: int) -> None:
        self._logger.bind(external_id=external_id, account_id=account_id).debug(
            "Transaction {} inserted concurrently, skipping", external_id
        )

    def import_complete(self, account_id: int, outcome: ImportOutcome) -> None:
        self._logger.bind(
            account_id=account_id,
            inserted=outcome.inserted,
            skipped_existing=outcome.skipped_existing,
            skipped_invalid=outcome.skipped_invalid,
            failed=outcome.failed,
        ).info(
            "Imported {} new transactions for account {} "
            "({} existing, {} invalid, {} failed)",
            outcome.inserted,
            account_id,
            outcome.skipped_existing,
            outcome.skipped_invalid,
            outcome.failed,
        )


class TransactionImporter:
    """Inserts provider transactions that are not yet in the ledger.

    The dedup key is (user, account, provider transaction id). Amounts are
    stored absolute; a positive provider amount is INCOME, anything else is
    EXPENSE.
    """

    def __init__(self, db: DB, *, logger_instance: ImporterLogger | None = None):
        self._db = db
        self._logger = logger_instance or ImporterLogger()

    def import_transaction(
        self,
        user_id: str,
        account: Account,
        provider: Provider,
        draft: TransactionDraft,
    ) -> bool:
        """Insert ``draft`` unless it already exists.

        Returns:
            True if a row was inserted

        Raises:
            ValueError: If the draft's amount or date is missing
        """
        if draft.amount is None or draft.posted_at is None:
            raise ValueError(f"Transaction {draft.external_id} has no amount or date")

        existing = self._db.find_transaction_by_external(
            user_id=user_id,
            account_id=account.account_id,
            provider=provider,
            external_id=draft.external_id,
        )
        if existing is not None:
            return False

        txn_type = TransactionType.EXPENSE
        if draft.amount > 0:
            txn_type = TransactionType.INCOME
        try:
            self._db.insert_transaction(
                {
                    "user_id": user_id,
                    "account_id": account.account_id,
                    "amount_cents": abs(to_cents(draft.amount)),
                    "description": draft.description,
                    "posted_at": draft.posted_at,
                    "type": txn_type,
                    "category": draft.category or UNCATEGORIZED,
                    "is_recurring": False,
                    "tags": [],
                    "notes": None,
                    external_transaction_column(provider): draft.external_id,
                }
            )
        except DuplicateTransactionError:
            self._logger.concurrent_duplicate(draft.external_id, account.account_id)
            return False
        return True

    def import_many(
        self,
        user_id: str,
        account: Account,
        provider: Provider,
        drafts: Iterable[TransactionDraft],
    ) -> ImportOutcome:
        """Import drafts sequentially.

        Invalid records are skipped and a failed insert only loses that one
        record, so ``inserted`` always equals the rows written.
        """
        inserted = skipped_existing = skipped_invalid = failed = 0
        for draft in drafts:
            if draft.amount is None or draft.posted_at is None:
                self._logger.invalid_record(draft.external_id, account.account_id)
                skipped_invalid += 1
                continue
            try:
                was_inserted = self.import_transaction(
                    user_id, account, provider, draft
                )
            except Exception as e:
                self._logger.insert_failed(draft.external_id, account.account_id, e)
                failed += 1
                continue
            if was_inserted:
                inserted += 1
            else:
                skipped_existing += 1

        outcome = ImportOutcome(
            inserted=inserted,
            skipped_existing=skipped_existing,
            skipped_invalid=skipped_invalid,
            failed=failed,
        )
        self._logger.import_complete(account.account_id, outcome)
        return outcome
