from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from finsync.adapters.db.models import Account, AccountType, Provider


def to_cents(value: float) -> int:
    """Convert a currency amount to integer cents, rounding half up."""
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class AccountDraft:
    """Provider account mapped to the internal account shape."""

    external_id: str
    name: str
    type: AccountType
    balance: float
    currency: str = "USD"
    institution: str | None = None
    mask: str | None = None
    credit_limit: float | None = None


@dataclass(frozen=True, slots=True)
class TransactionDraft:
    """Provider transaction before dedup and insert.

    ``amount`` keeps the provider's sign; ``posted_at`` is None when the
    provider date could not be parsed.
    """

    external_id: str
    amount: float | None
    description: str
    posted_at: date | None
    category: str | None = None


@dataclass(frozen=True, slots=True)
class ImportOutcome:
    inserted: int = 0
    skipped_existing: int = 0
    skipped_invalid: int = 0
    failed: int = 0


@dataclass(slots=True)
class AccountSyncResult:
    """Outcome of one account unit inside a credential sync."""

    external_id: str
    ok: bool
    account_id: int | None = None
    created: bool = False
    transactions_synced: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "ok": self.ok,
            "account_id": self.account_id,
            "created": self.created,
            "transactions_synced": self.transactions_synced,
            "error": self.error,
        }


@dataclass(slots=True)
class CredentialSyncResult:
    """Outcome of one credential (Plaid item or Teller enrollment)."""

    provider: Provider
    item_id: str
    ok: bool
    accounts: list[AccountSyncResult] = field(default_factory=list)
    error: str | None = None
    created_accounts: list[Account] = field(default_factory=list)

    @property
    def accounts_synced(self) -> int:
        return sum(1 for unit in self.accounts if unit.ok)

    @property
    def transactions_synced(self) -> int:
        return sum(unit.transactions_synced for unit in self.accounts)

    def failures(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        if not self.ok:
            rows.append(
                {
                    "provider": self.provider.value,
                    "item_id": self.item_id,
                    "account_id": None,
                    "error": self.error,
                }
            )
        for unit in self.accounts:
            if not unit.ok:
                rows.append(
                    {
                        "provider": self.provider.value,
                        "item_id": self.item_id,
                        "account_id": unit.external_id,
                        "error": unit.error,
                    }
                )
        return rows


@dataclass(slots=True)
class SyncSummary:
    """Aggregate result of a user sync."""

    message: str
    credentials: list[CredentialSyncResult] = field(default_factory=list)

    @property
    def accounts_synced(self) -> int:
        return sum(result.accounts_synced for result in self.credentials)

    @property
    def transactions_synced(self) -> int:
        return sum(result.transactions_synced for result in self.credentials)

    @property
    def failures(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for result in self.credentials:
            rows.extend(result.failures())
        return rows

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "accounts_synced": self.accounts_synced,
            "transactions_synced": self.transactions_synced,
            "failures": self.failures,
        }


@dataclass(slots=True)
class LinkResult:
    """Result of completing a Plaid link or Teller enrollment."""

    message: str
    item_id: str
    accounts: list[Account] = field(default_factory=list)
    transactions_synced: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    sync_skipped: bool = False
    sync_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "message": self.message,
            "item_id": self.item_id,
            "accounts": [account.to_dict() for account in self.accounts],
            "transactions_synced": self.transactions_synced,
        }
        if self.failures:
            data["failures"] = self.failures
        if self.sync_skipped:
            data["sync_skipped"] = True
        if self.sync_error is not None:
            data["sync_error"] = self.sync_error
        return data
