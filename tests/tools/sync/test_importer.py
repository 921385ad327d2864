from __future__ import annotations

from datetime import date
from typing import Any

import pytest

from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import (
    Account,
    AccountType,
    Provider,
    Transaction,
    TransactionType,
)
from finsync.tools.sync.importer import UNCATEGORIZED, TransactionImporter
from finsync.tools.sync.types import TransactionDraft


class BrokenInsertDB(DB):
    """DB whose inserts fail for selected provider transaction ids."""

    def __init__(self, url: str, failing_ids: set[str]) -> None:
        super().__init__(url)
        self.failing_ids = failing_ids

    def insert_transaction(self, data: dict[str, Any]) -> Transaction:
        if data.get("plaid_transaction_id") in self.failing_ids:
            raise RuntimeError("database is locked")
        return super().insert_transaction(data)


def create_account(db: DB) -> Account:
    return db.create_account(
        {
            "user_id": "user-1",
            "name": "Checking",
            "type": AccountType.CHECKING,
            "balance_cents": 0,
            "plaid_account_id": "acc-1",
        }
    )


def create_draft(external_id: str = "t1", **overrides: object) -> TransactionDraft:
    data: dict[str, object] = {
        "external_id": external_id,
        "amount": -12.34,
        "description": "Starbucks",
        "posted_at": date(2025, 3, 1),
    }
    data.update(overrides)
    return TransactionDraft(**data)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("amount", "expected_type", "expected_cents"),
    [
        (-12.34, TransactionType.EXPENSE, 1_234),
        (2500.0, TransactionType.INCOME, 250_000),
        (0.0, TransactionType.EXPENSE, 0),
        (0.005, TransactionType.INCOME, 1),
    ],
)
def test_amount_is_stored_absolute_with_type_from_sign(
    db: DB, amount: float, expected_type: TransactionType, expected_cents: int
) -> None:
    # setup
    account = create_account(db)
    importer = TransactionImporter(db)

    # act
    inserted = importer.import_transaction(
        "user-1", account, Provider.PLAID, create_draft(amount=amount)
    )

    # assert
    [txn] = db.list_transactions("user-1")
    assert inserted is True
    assert txn.amount_cents == expected_cents
    assert txn.amount >= 0
    assert txn.type == expected_type


def test_new_rows_get_defaults(db: DB) -> None:
    account = create_account(db)
    importer = TransactionImporter(db)

    importer.import_transaction("user-1", account, Provider.PLAID, create_draft())
    importer.import_transaction(
        "user-1",
        account,
        Provider.PLAID,
        create_draft("t2", category="Food and Drink"),
    )

    labels = {t.plaid_transaction_id: t for t in db.list_transactions("user-1")}
    assert labels["t1"].category == UNCATEGORIZED
    assert labels["t2"].category == "Food and Drink"
    assert labels["t1"].is_recurring is False
    assert labels["t1"].tags == []
    assert labels["t1"].notes is None


def test_existing_transaction_is_skipped(db: DB) -> None:
    # setup
    account = create_account(db)
    importer = TransactionImporter(db)
    importer.import_transaction("user-1", account, Provider.PLAID, create_draft())

    # act
    again = importer.import_transaction(
        "user-1", account, Provider.PLAID, create_draft(amount=-99.0)
    )

    # assert
    assert again is False
    [txn] = db.list_transactions("user-1")
    assert txn.amount_cents == 1_234


def test_import_transaction_rejects_invalid_draft(db: DB) -> None:
    account = create_account(db)

    with pytest.raises(ValueError, match="no amount or date"):
        TransactionImporter(db).import_transaction(
            "user-1", account, Provider.PLAID, create_draft(amount=None)
        )


def test_import_many_counts_outcomes(db: DB, captured_logs: list[str]) -> None:
    # setup
    account = create_account(db)
    importer = TransactionImporter(db)
    importer.import_transaction("user-1", account, Provider.PLAID, create_draft("t1"))

    # act
    outcome = importer.import_many(
        "user-1",
        account,
        Provider.PLAID,
        [
            create_draft("t1"),
            create_draft("t2"),
            create_draft("t3", posted_at=None),
            create_draft("t4", amount=None),
            create_draft("t5"),
        ],
    )

    # assert
    assert outcome.inserted == 2
    assert outcome.skipped_existing == 1
    assert outcome.skipped_invalid == 2
    assert db.count_transactions("user-1") == 3
    assert any("unparseable" in message for message in captured_logs)
    assert outcome.failed == 0


def test_failed_insert_is_counted_and_rest_continue(captured_logs: list[str]) -> None:
    # setup
    db = BrokenInsertDB("sqlite:///:memory:", failing_ids={"t2"})
    db.create_schema()
    account = create_account(db)

    # act
    outcome = TransactionImporter(db).import_many(
        "user-1",
        account,
        Provider.PLAID,
        [create_draft("t1"), create_draft("t2"), create_draft("t3")],
    )

    # assert
    assert outcome.inserted == 2
    assert outcome.failed == 1
    assert db.count_transactions("user-1") == outcome.inserted
    assert any("database is locked" in message for message in captured_logs)
