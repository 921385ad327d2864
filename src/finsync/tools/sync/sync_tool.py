from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, timedelta

import loguru
from loguru import logger

from finsync.adapters.cache.read_cache import (
    ACCOUNTS_NAMESPACE,
    TRANSACTIONS_NAMESPACE,
    ReadCache,
    user_cache_key,
)
from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Provider, ProviderCredential
from finsync.infra.clients.errors import require_user_id
from finsync.tools.sync.importer import TransactionImporter
from finsync.tools.sync.providers import ProviderAdapter
from finsync.tools.sync.reconciler import AccountReconciler
from finsync.tools.sync.types import (
    AccountDraft,
    AccountSyncResult,
    CredentialSyncResult,
    SyncSummary,
)

DEFAULT_SYNC_WINDOW_DAYS = 90
NO_CREDENTIALS_MESSAGE = "No connected accounts found"


class SyncToolLogger:
    """Handles all logging for SyncTool with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def sync_start(self, user_id: str, credential_count: int) -> None:
        self._logger.bind(user_id=user_id, credentials=credential_count).info(
            "Syncing {} provider credentials for user {}", credential_count, user_id
        )

    def credential_start(self, credential: ProviderCredential) -> None:
        self._logger.bind(
            provider=credential.provider.value, item_id=credential.item_id
        ).info(
            "Syncing {} item {}", credential.provider.value, credential.item_id
        )

    def credential_failed(
        self, credential: ProviderCredential, error: Exception
    ) -> None:
        self._logger.bind(
            provider=credential.provider.value,
            item_id=credential.item_id,
            error=str(error),
        ).error(
            "Failed to sync {} item {}: {}",
            credential.provider.value,
            credential.item_id,
            error,
        )

    def account_failed(
        self, credential: ProviderCredential, external_id: str, error: Exception
    ) -> None:
        self._logger.bind(
            provider=credential.provider.value,
            item_id=credential.item_id,
            external_id=external_id,
            error=str(error),
        ).error("Failed to sync account {}: {}", external_id, error)

    def sync_summary(self, user_id: str, summary: SyncSummary) -> None:
        self._logger.bind(
            user_id=user_id,
            accounts=summary.accounts_synced,
            transactions=summary.transactions_synced,
            failures=len(summary.failures),
        ).info(
            "Sync complete for user {}: {} accounts, {} new transactions, {} failures",
            user_id,
            summary.accounts_synced,
            summary.transactions_synced,
            len(summary.failures),
        )


class SyncTool:
    """
    Pulls accounts and transactions for every stored provider credential of a
    user and writes them into the ledger without duplicates.

    Credentials and their accounts are processed sequentially. A failure in
    one credential or account is recorded in the summary and never stops the
    remaining units.
    """

    def __init__(
        self,
        db: DB,
        providers: Mapping[Provider, ProviderAdapter],
        *,
        cache: ReadCache | None = None,
        window_days: int = DEFAULT_SYNC_WINDOW_DAYS,
        today: Callable[[], date] = date.today,
        logger_instance: SyncToolLogger | None = None,
    ) -> None:
        """
        Initialize the sync tool.

        Args:
            db: Database facade
            providers: Provider adapters keyed by provider
            cache: Optional read cache to invalidate after writes
            window_days: Trailing transaction window fetched per account
            today: Clock used to compute the window
            logger_instance: Optional logger override
        """
        self._db = db
        self._providers = dict(providers)
        self._cache = cache
        self._window_days = window_days
        self._today = today
        self._reconciler = AccountReconciler(db)
        self._importer = TransactionImporter(db)
        self._logger = logger_instance or SyncToolLogger()

    def window(self) -> tuple[date, date]:
        """Inclusive (start, end) dates of the trailing sync window."""
        end = self._today()
        return end - timedelta(days=self._window_days), end

    def sync_user(self, user_id: str, provider: Provider | None = None) -> SyncSummary:
        """Sync every stored credential of ``user_id``.

        Args:
            user_id: Owner of the credentials
            provider: Restrict the run to one provider

        Returns:
            SyncSummary with per-credential results
        """
        user_id = require_user_id(user_id)
        credentials = self._db.list_credentials(user_id, provider)
        if not credentials:
            return SyncSummary(message=NO_CREDENTIALS_MESSAGE)

        self._logger.sync_start(user_id, len(credentials))
        results = [self.sync_credential(credential) for credential in credentials]

        total = sum(result.transactions_synced for result in results)
        summary = SyncSummary(
            message=f"Successfully synced {total} transactions",
            credentials=results,
        )
        self._logger.sync_summary(user_id, summary)
        return summary

    def sync_credential(self, credential: ProviderCredential) -> CredentialSyncResult:
        """Reconcile and import one credential; never raises."""
        self._logger.credential_start(credential)
        result = CredentialSyncResult(
            provider=credential.provider, item_id=credential.item_id, ok=True
        )

        adapter = self._providers.get(credential.provider)
        if adapter is None:
            result.ok = False
            result.error = f"Provider {credential.provider.value} is not configured"
            return result

        try:
            drafts = adapter.fetch_accounts(credential)
        except Exception as e:
            self._logger.credential_failed(credential, e)
            result.ok = False
            result.error = str(e)
            return result

        start_date, end_date = self.window()
        try:
            for draft in drafts:
                unit = self._sync_account(
                    adapter, credential, draft, start_date, end_date, result
                )
                result.accounts.append(unit)
        finally:
            self._invalidate(credential.user_id, result)
        return result

    def _sync_account(
        self,
        adapter: ProviderAdapter,
        credential: ProviderCredential,
        draft: AccountDraft,
        start_date: date,
        end_date: date,
        result: CredentialSyncResult,
    ) -> AccountSyncResult:
        unit = AccountSyncResult(external_id=draft.external_id, ok=False)
        try:
            draft = adapter.resolve_balance(credential, draft)
            account, created = self._reconciler.reconcile(
                credential.user_id, credential.provider, draft
            )
            unit.account_id = account.account_id
            unit.created = created
            if created:
                result.created_accounts.append(account)

            transactions = adapter.fetch_transactions(
                credential,
                draft.external_id,
                start_date=start_date,
                end_date=end_date,
            )
            outcome = self._importer.import_many(
                credential.user_id, account, credential.provider, transactions
            )
            unit.transactions_synced = outcome.inserted
            unit.ok = True
        except Exception as e:
            self._logger.account_failed(credential, draft.external_id, e)
            unit.error = str(e)
        return unit

    def _invalidate(self, user_id: str, result: CredentialSyncResult) -> None:
        if self._cache is None or not result.accounts:
            return
        self._cache.invalidate(
            user_cache_key(ACCOUNTS_NAMESPACE, user_id),
            user_cache_key(TRANSACTIONS_NAMESPACE, user_id),
        )
