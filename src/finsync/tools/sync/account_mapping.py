from __future__ import annotations

from finsync.adapters.db.models import AccountType

_SIMPLE_TYPES: dict[str, AccountType] = {
    "credit": AccountType.CREDIT_CARD,
    "investment": AccountType.INVESTMENT,
    "loan": AccountType.LOAN,
}

_DEPOSITORY_SUBTYPES: dict[str, AccountType] = {
    "checking": AccountType.CHECKING,
    "savings": AccountType.SAVINGS,
}


def map_account_type(
    provider_type: str | None, provider_subtype: str | None = None
) -> AccountType:
    """Map a provider (type, subtype) pair to an internal account type.

    Total: unknown or missing values map to OTHER.
    """
    kind = (provider_type or "").strip().lower()
    subtype = (provider_subtype or "").strip().lower()
    if kind == "depository":
        return _DEPOSITORY_SUBTYPES.get(subtype, AccountType.OTHER)
    return _SIMPLE_TYPES.get(kind, AccountType.OTHER)
