"""Provider adapters that turn raw Plaid/Teller records into sync drafts."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
import math
from typing import Protocol

from finsync.adapters.db.models import Provider, ProviderCredential
from finsync.infra.clients.plaid import (
    AccountsGetAccount,
    PlaidClient,
    PlaidTransactionModel,
)
from finsync.infra.clients.teller import (
    TellerAccount,
    TellerClient,
    TellerTransaction,
)
from finsync.tools.sync.account_mapping import map_account_type
from finsync.tools.sync.types import AccountDraft, TransactionDraft


class ProviderAdapter(Protocol):
    """Read side of one provider, expressed in draft types."""

    @property
    def provider(self) -> Provider: ...

    def fetch_accounts(self, credential: ProviderCredential) -> list[AccountDraft]: ...

    def resolve_balance(
        self, credential: ProviderCredential, draft: AccountDraft
    ) -> AccountDraft: ...

    def fetch_transactions(
        self,
        credential: ProviderCredential,
        account_external_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TransactionDraft]: ...


def parse_iso_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_amount(value: str | float | None) -> float | None:
    if value is None:
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


class PlaidProvider:
    def __init__(self, client: PlaidClient) -> None:
        self._client = client

    @property
    def provider(self) -> Provider:
        return Provider.PLAID

    def fetch_accounts(self, credential: ProviderCredential) -> list[AccountDraft]:
        accounts = self._client.get_accounts(credential.access_token)
        return [self._account_draft(account, credential) for account in accounts]

    @staticmethod
    def _account_draft(
        account: AccountsGetAccount, credential: ProviderCredential
    ) -> AccountDraft:
        balances = account.balances
        return AccountDraft(
            external_id=account.account_id,
            name=account.name,
            type=map_account_type(account.type, account.subtype),
            balance=balances.current if balances.current is not None else 0.0,
            currency=balances.iso_currency_code or "USD",
            institution=credential.institution_name
            or account.official_name
            or account.name,
            mask=account.mask,
            credit_limit=balances.limit,
        )

    def resolve_balance(
        self, credential: ProviderCredential, draft: AccountDraft
    ) -> AccountDraft:
        """Plaid returns balances with the account list."""
        return draft

    def fetch_transactions(
        self,
        credential: ProviderCredential,
        account_external_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TransactionDraft]:
        transactions = self._client.list_all_transactions(
            credential.access_token,
            start_date=start_date,
            end_date=end_date,
            account_ids=[account_external_id],
        )
        return [
            self._transaction_draft(txn)
            for txn in transactions
            if txn.account_id == account_external_id
        ]

    @staticmethod
    def _transaction_draft(txn: PlaidTransactionModel) -> TransactionDraft:
        category = txn.category[0] if txn.category else None
        return TransactionDraft(
            external_id=txn.transaction_id,
            amount=parse_amount(txn.amount),
            description=txn.name or txn.merchant_name or "Plaid transaction",
            posted_at=parse_iso_date(txn.date),
            category=category or None,
        )


class TellerProvider:
    def __init__(self, client: TellerClient) -> None:
        self._client = client

    @property
    def provider(self) -> Provider:
        return Provider.TELLER

    def fetch_accounts(self, credential: ProviderCredential) -> list[AccountDraft]:
        """List enrollment accounts; balances are read per account later."""
        return [
            self._account_draft(account, credential)
            for account in self._client.list_accounts(credential.access_token)
        ]

    def resolve_balance(
        self, credential: ProviderCredential, draft: AccountDraft
    ) -> AccountDraft:
        balance = self._client.get_balances(
            credential.access_token, draft.external_id
        )
        return replace(draft, balance=balance.amount())

    @staticmethod
    def _account_draft(
        account: TellerAccount, credential: ProviderCredential
    ) -> AccountDraft:
        institution = account.institution.name if account.institution else None
        return AccountDraft(
            external_id=account.id,
            name=account.name,
            type=map_account_type(account.type, account.subtype),
            balance=0.0,
            currency=account.currency or "USD",
            institution=institution or credential.institution_name,
            mask=account.last_four,
        )

    def fetch_transactions(
        self,
        credential: ProviderCredential,
        account_external_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TransactionDraft]:
        transactions = self._client.list_transactions(
            credential.access_token,
            account_external_id,
            start_date=start_date,
            end_date=end_date,
        )
        return [self._transaction_draft(txn) for txn in transactions]

    @staticmethod
    def _transaction_draft(txn: TellerTransaction) -> TransactionDraft:
        return TransactionDraft(
            external_id=txn.id,
            amount=parse_amount(txn.amount),
            description=txn.display_description(),
            posted_at=parse_iso_date(txn.date),
        )
