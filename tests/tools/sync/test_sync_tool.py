from __future__ import annotations

from datetime import date
from typing import Any
from unittest.mock import patch

import pytest

from finsync.adapters.cache.read_cache import InMemoryReadCache
from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import (
    AccountType,
    Provider,
    ProviderCredential,
    Transaction,
)
from finsync.infra.clients.errors import UnknownUserError
from finsync.infra.clients.teller import TellerClient
from finsync.tools.sync.providers import TellerProvider
from finsync.tools.sync.sync_tool import NO_CREDENTIALS_MESSAGE, SyncTool
from finsync.tools.sync.types import AccountDraft, TransactionDraft

TODAY = date(2025, 3, 31)

# Helper functions


def account_draft(external_id: str, mask: str | None = None) -> AccountDraft:
    return AccountDraft(
        external_id=external_id,
        name=f"Account {external_id}",
        type=AccountType.CHECKING,
        balance=100.0,
        mask=mask,
    )


def txn_draft(external_id: str, amount: float = -10.0) -> TransactionDraft:
    return TransactionDraft(
        external_id=external_id,
        amount=amount,
        description=f"Purchase {external_id}",
        posted_at=date(2025, 3, 15),
    )


class FakeProvider:
    """In-memory provider adapter with optional failures."""

    def __init__(
        self,
        provider: Provider,
        accounts: list[AccountDraft],
        transactions: dict[str, list[TransactionDraft]] | None = None,
        *,
        fail_accounts: Exception | None = None,
        fail_transactions_for: set[str] | None = None,
        fail_balance_for: set[str] | None = None,
    ) -> None:
        self._provider = provider
        self.accounts = accounts
        self.transactions = transactions or {}
        self.fail_accounts = fail_accounts
        self.fail_transactions_for = fail_transactions_for or set()
        self.fail_balance_for = fail_balance_for or set()
        self.windows: list[tuple[date, date]] = []

    @property
    def provider(self) -> Provider:
        return self._provider

    def fetch_accounts(self, credential: ProviderCredential) -> list[AccountDraft]:
        if self.fail_accounts is not None:
            raise self.fail_accounts
        return list(self.accounts)

    def resolve_balance(
        self, credential: ProviderCredential, draft: AccountDraft
    ) -> AccountDraft:
        if draft.external_id in self.fail_balance_for:
            raise RuntimeError(f"balance unavailable for {draft.external_id}")
        return draft

    def fetch_transactions(
        self,
        credential: ProviderCredential,
        account_external_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TransactionDraft]:
        self.windows.append((start_date, end_date))
        if account_external_id in self.fail_transactions_for:
            raise RuntimeError(f"provider down for {account_external_id}")
        return list(self.transactions.get(account_external_id, []))


class FailingInsertDB(DB):
    """DB whose inserts fail for one description."""

    def __init__(self, url: str, failing_description: str) -> None:
        super().__init__(url)
        self.failing_description = failing_description

    def insert_transaction(self, data: dict[str, Any]) -> Transaction:
        if data["description"] == self.failing_description:
            raise RuntimeError("disk full")
        return super().insert_transaction(data)


def save_credential(db: DB, provider: Provider, item_id: str) -> None:
    db.save_credential(
        user_id="user-1",
        provider=provider,
        item_id=item_id,
        access_token=f"token-{item_id}",
    )


def create_sync_tool(
    db: DB, *providers: FakeProvider, cache: InMemoryReadCache | None = None
) -> SyncTool:
    return SyncTool(
        db,
        {p.provider: p for p in providers},
        cache=cache,
        today=lambda: TODAY,
    )


# Tests


def test_no_credentials_returns_message(db: DB) -> None:
    summary = create_sync_tool(db).sync_user("user-1")

    assert summary.to_dict() == {
        "message": NO_CREDENTIALS_MESSAGE,
        "accounts_synced": 0,
        "transactions_synced": 0,
        "failures": [],
    }


def test_blank_user_is_rejected(db: DB) -> None:
    with pytest.raises(UnknownUserError):
        create_sync_tool(db).sync_user("  ")


def test_sync_imports_new_and_skips_existing(db: DB) -> None:
    # setup
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(
        Provider.PLAID,
        [account_draft("acc-1")],
        {"acc-1": [txn_draft("t1")]},
    )
    tool = create_sync_tool(db, provider)
    tool.sync_user("user-1")
    provider.transactions["acc-1"] = [txn_draft("t1"), txn_draft("t2"), txn_draft("t3")]

    # act
    summary = tool.sync_user("user-1")

    # assert
    assert summary.transactions_synced == 2
    assert summary.message == "Successfully synced 2 transactions"
    assert db.count_transactions("user-1") == 3


def test_rerun_over_same_window_is_a_no_op(db: DB) -> None:
    # setup
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(
        Provider.PLAID,
        [account_draft("acc-1"), account_draft("acc-2")],
        {"acc-1": [txn_draft("t1")], "acc-2": [txn_draft("t2", amount=50.0)]},
    )
    tool = create_sync_tool(db, provider)

    # act
    first = tool.sync_user("user-1")
    second = tool.sync_user("user-1")

    # assert
    assert first.transactions_synced == 2
    assert first.accounts_synced == 2
    assert second.transactions_synced == 0
    assert second.message == "Successfully synced 0 transactions"
    assert len(db.list_accounts("user-1")) == 2
    assert db.count_transactions("user-1") == 2


def test_window_is_trailing_ninety_days(db: DB) -> None:
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(Provider.PLAID, [account_draft("acc-1")])

    create_sync_tool(db, provider).sync_user("user-1")

    assert provider.windows == [(date(2024, 12, 31), TODAY)]


def test_account_failure_does_not_stop_other_accounts(db: DB) -> None:
    # setup
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(
        Provider.PLAID,
        [account_draft("acc-1"), account_draft("acc-2"), account_draft("acc-3")],
        {"acc-1": [txn_draft("t1")], "acc-3": [txn_draft("t3")]},
        fail_transactions_for={"acc-2"},
    )

    # act
    summary = create_sync_tool(db, provider).sync_user("user-1")

    # assert
    assert summary.transactions_synced == 2
    assert summary.accounts_synced == 2
    assert summary.failures == [
        {
            "provider": "plaid",
            "item_id": "item-1",
            "account_id": "acc-2",
            "error": "provider down for acc-2",
        }
    ]


def test_balance_failure_is_scoped_to_its_account(db: DB) -> None:
    # setup
    save_credential(db, Provider.TELLER, "enr-1")
    provider = FakeProvider(
        Provider.TELLER,
        [account_draft("acc_1"), account_draft("acc_2")],
        {"acc_1": [txn_draft("tx1")], "acc_2": [txn_draft("tx2")]},
        fail_balance_for={"acc_2"},
    )

    # act
    summary = create_sync_tool(db, provider).sync_user("user-1")

    # assert
    assert summary.accounts_synced == 1
    assert summary.transactions_synced == 1
    assert [a.teller_account_id for a in db.list_accounts("user-1")] == ["acc_1"]
    [failure] = summary.failures
    assert failure["account_id"] == "acc_2"
    assert failure["error"] == "balance unavailable for acc_2"


def test_failed_insert_only_loses_that_transaction() -> None:
    # setup
    db = FailingInsertDB("sqlite:///:memory:", failing_description="Purchase t2")
    db.create_schema()
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(
        Provider.PLAID,
        [account_draft("acc-1")],
        {"acc-1": [txn_draft("t1"), txn_draft("t2"), txn_draft("t3")]},
    )

    # act
    summary = create_sync_tool(db, provider).sync_user("user-1")

    # assert
    assert summary.accounts_synced == 1
    assert summary.transactions_synced == 2
    assert db.count_transactions("user-1") == 2


def test_malformed_teller_record_only_skips_itself(db: DB) -> None:
    # setup
    save_credential(db, Provider.TELLER, "enr-1")
    client = TellerClient()
    responses = {
        "/accounts": [
            {"id": "acc_1", "name": "Checking", "type": "depository"},
            {"id": "acc_2", "name": "Savings", "type": "depository"},
        ],
        "/accounts/acc_1/balances": {"available": "10.00"},
        "/accounts/acc_2/balances": {"available": "20.00"},
        "/accounts/acc_1/transactions": [
            {"id": "a1", "amount": "-1.00", "date": "2025-03-01"},
            {"id": "a2", "amount": None, "date": "2025-03-02"},
            {"id": "a3", "amount": "-3.00", "date": "2025-03-03"},
        ],
        "/accounts/acc_2/transactions": [
            {"id": "b1", "amount": "5.00", "date": "2025-03-01"},
            {"amount": "6.00", "date": "2025-03-02"},
            {"id": "b3", "amount": "-7.00", "date": "2025-03-03"},
        ],
    }

    def fake_get(path: str, access_token: str, params: Any = None) -> Any:
        return responses[path]

    tool = SyncTool(
        db, {Provider.TELLER: TellerProvider(client)}, today=lambda: TODAY
    )

    # act
    with patch.object(client, "_get", side_effect=fake_get):
        summary = tool.sync_user("user-1")

    # assert
    assert summary.failures == []
    assert summary.accounts_synced == 2
    assert summary.transactions_synced == 4
    assert sorted(a.balance for a in db.list_accounts("user-1")) == [10.0, 20.0]


def test_credential_failure_does_not_stop_other_credentials(db: DB) -> None:
    # setup
    save_credential(db, Provider.PLAID, "item-1")
    save_credential(db, Provider.TELLER, "enr-1")
    plaid = FakeProvider(
        Provider.PLAID, [], fail_accounts=RuntimeError("ITEM_LOGIN_REQUIRED")
    )
    teller = FakeProvider(
        Provider.TELLER, [account_draft("acc_1")], {"acc_1": [txn_draft("tx1")]}
    )

    # act
    summary = create_sync_tool(db, plaid, teller).sync_user("user-1")

    # assert
    assert summary.transactions_synced == 1
    [failure] = summary.failures
    assert failure["provider"] == "plaid"
    assert failure["account_id"] is None
    assert failure["error"] == "ITEM_LOGIN_REQUIRED"


def test_provider_filter_limits_credentials(db: DB) -> None:
    save_credential(db, Provider.PLAID, "item-1")
    save_credential(db, Provider.TELLER, "enr-1")
    plaid = FakeProvider(Provider.PLAID, [account_draft("acc-1")])
    teller = FakeProvider(Provider.TELLER, [account_draft("acc_1")])

    summary = create_sync_tool(db, plaid, teller).sync_user(
        "user-1", Provider.TELLER
    )

    assert [r.provider for r in summary.credentials] == [Provider.TELLER]
    assert plaid.windows == []


def test_unconfigured_provider_is_reported(db: DB) -> None:
    save_credential(db, Provider.TELLER, "enr-1")

    summary = create_sync_tool(db).sync_user("user-1")

    [failure] = summary.failures
    assert failure["error"] == "Provider teller is not configured"


def test_sync_credential_reports_created_accounts(db: DB) -> None:
    # setup
    db.create_account(
        {
            "user_id": "user-1",
            "name": "Existing",
            "type": AccountType.CHECKING,
            "plaid_account_id": "acc-1",
        }
    )
    save_credential(db, Provider.PLAID, "item-1")
    [credential] = db.list_credentials("user-1")
    provider = FakeProvider(
        Provider.PLAID, [account_draft("acc-1"), account_draft("acc-2")]
    )

    # act
    result = create_sync_tool(db, provider).sync_credential(credential)

    # assert
    assert result.ok is True
    assert [a.plaid_account_id for a in result.created_accounts] == ["acc-2"]
    assert [unit.created for unit in result.accounts] == [False, True]


def test_successful_sync_invalidates_read_cache(db: DB) -> None:
    # setup
    cache = InMemoryReadCache()
    cache.set("accounts:user-1", ["stale"])
    cache.set("transactions:user-1", ["stale"])
    cache.set("categories:user-1", ["kept"])
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(Provider.PLAID, [account_draft("acc-1")])

    # act
    create_sync_tool(db, provider, cache=cache).sync_user("user-1")

    # assert
    assert cache.get("accounts:user-1") is None
    assert cache.get("transactions:user-1") is None
    assert cache.get("categories:user-1") == ["kept"]


def test_failed_credential_leaves_cache_untouched(db: DB) -> None:
    cache = InMemoryReadCache()
    cache.set("accounts:user-1", ["cached"])
    save_credential(db, Provider.PLAID, "item-1")
    provider = FakeProvider(Provider.PLAID, [], fail_accounts=RuntimeError("down"))

    create_sync_tool(db, provider, cache=cache).sync_user("user-1")

    assert cache.get("accounts:user-1") == ["cached"]
