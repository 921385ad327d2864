from __future__ import annotations

from typing import Any

from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import (
    Account,
    Provider,
    external_account_column,
)
from finsync.tools.sync.types import AccountDraft, to_cents


class AccountReconciler:
    """Create-or-update internal accounts from provider account drafts.

    Lookup is by the provider-scoped external id. Accounts created before
    external ids were stored (no Plaid or Teller id at all) are matched once
    by mask and institution and adopt the id.
    Existing accounts only ever receive balance and credit limit updates.
    """

    def __init__(self, db: DB) -> None:
        self._db = db

    def reconcile(
        self,
        user_id: str,
        provider: Provider,
        draft: AccountDraft,
    ) -> tuple[Account, bool]:
        """Upsert one account.

        Returns:
            (account, created) where ``created`` is True for a new row
        """
        existing = self._db.find_account_by_external(
            user_id=user_id, provider=provider, external_id=draft.external_id
        )
        external_column = external_account_column(provider)

        if existing is None and draft.mask:
            existing = self._db.find_unlinked_account_by_mask(
                user_id=user_id, mask=draft.mask, institution=draft.institution
            )

        if existing is not None:
            updates: dict[str, Any] = {
                "balance_cents": to_cents(draft.balance),
                "credit_limit_cents": (
                    to_cents(draft.credit_limit)
                    if draft.credit_limit is not None
                    else existing.credit_limit_cents
                ),
                external_column: draft.external_id,
            }
            return self._db.update_account(existing.account_id, updates), False

        created = self._db.create_account(
            {
                "user_id": user_id,
                "name": draft.name,
                "type": draft.type,
                "balance_cents": to_cents(draft.balance),
                "currency": draft.currency,
                "institution": draft.institution,
                "account_number": draft.mask,
                "credit_limit_cents": (
                    to_cents(draft.credit_limit)
                    if draft.credit_limit is not None
                    else None
                ),
                "is_active": True,
                external_column: draft.external_id,
            }
        )
        return created, True
