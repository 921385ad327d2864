from __future__ import annotations

from datetime import date
import json
import os
from typing import Any, Literal, Self, TypedDict, cast
import urllib.error
import urllib.request

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from finsync.infra.clients.errors import ProviderClientError

PlaidEnv = Literal["sandbox", "development", "production"]


class PlaidClientError(ProviderClientError):
    """Base error for Plaid client failures."""


PLAID_ENV_MAP: dict[PlaidEnv, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

DEFAULT_PAGE_SIZE = 500


class PlaidItemInfo(TypedDict):
    item_id: str
    institution_id: str | None
    institution_name: str | None


class PlaidBaseModel(BaseModel):
    """Shared base for Plaid response models with a short parse alias."""

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class PublicTokenExchangeResponse(PlaidBaseModel):
    access_token: str
    item_id: str


class AccountBalances(PlaidBaseModel):
    current: float | None = None
    available: float | None = None
    limit: float | None = None
    iso_currency_code: str | None = None


class AccountsGetAccount(PlaidBaseModel):
    account_id: str
    name: str
    official_name: str | None = None
    mask: str | None = None
    subtype: str | None = None
    type: str | None = None
    balances: AccountBalances = Field(default_factory=AccountBalances)


class AccountsGetResponse(PlaidBaseModel):
    accounts: list[AccountsGetAccount]


class ItemModel(PlaidBaseModel):
    item_id: str
    institution_id: str | None = None


class ItemGetResponse(PlaidBaseModel):
    item: ItemModel


class InstitutionModel(PlaidBaseModel):
    name: str | None = None


class InstitutionGetByIdResponse(PlaidBaseModel):
    institution: InstitutionModel | None = None


class PlaidTransactionModel(PlaidBaseModel):
    transaction_id: str
    account_id: str
    amount: float | str | None = None
    iso_currency_code: str | None = None
    date: str | None = None
    name: str | None = None
    merchant_name: str | None = None
    pending: bool = False
    category: list[str] | None = None


class TransactionsGetResponse(PlaidBaseModel):
    transactions: list[PlaidTransactionModel] = Field(default_factory=list)
    total_transactions: int = 0
    dropped: int = 0

    @classmethod
    def parse(cls, data: Any) -> Self:
        """Validate transactions one by one so a malformed record only drops itself."""
        records = data.get("transactions") or []
        transactions: list[PlaidTransactionModel] = []
        for record in records:
            try:
                transactions.append(PlaidTransactionModel.parse(record))
            except ValidationError as e:
                logger.bind(error=str(e)).warning(
                    "Dropping malformed Plaid transaction: {}", e
                )
        return cls(
            transactions=transactions,
            total_transactions=data.get("total_transactions") or 0,
            dropped=len(records) - len(transactions),
        )


class PlaidClient:
    def __init__(
        self,
        *,
        client_id: str,
        secret: str,
        env: PlaidEnv = "sandbox",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client_id = client_id
        self._secret = secret
        self._env = env
        self._timeout_seconds = timeout_seconds

    @property
    def env(self) -> PlaidEnv:
        return self._env

    @classmethod
    def from_env(cls, *, timeout_seconds: float = 30.0) -> PlaidClient:
        """Construct a PlaidClient from environment variables.

        Required:
        - PLAID_CLIENT_ID
        - PLAID_ENV (defaults to sandbox)
        - PLAID_<ENV>_SECRET (e.g. PLAID_SANDBOX_SECRET)
        """
        env_str = os.getenv("PLAID_ENV", "sandbox").strip().lower()
        if env_str not in PLAID_ENV_MAP:
            raise PlaidClientError(
                f"Invalid PLAID_ENV={env_str!r}. "
                "Expected one of: sandbox, development, production."
            )
        env: PlaidEnv = env_str  # type: ignore[assignment]

        client_id = cls._getenv_or_die("PLAID_CLIENT_ID")
        secret = cls._getenv_or_die(f"PLAID_{env.upper()}_SECRET")
        return cls(
            client_id=client_id,
            secret=secret,
            env=env,
            timeout_seconds=timeout_seconds,
        )

    @staticmethod
    def _getenv_or_die(name: str) -> str:
        value = os.getenv(name, "").strip().strip("\"'")
        if not value:
            raise PlaidClientError(f"Missing required environment variable: {name}")
        return value

    def _base_url(self) -> str:
        try:
            return PLAID_ENV_MAP[self._env]
        except KeyError as e:
            raise PlaidClientError(
                f"Unsupported Plaid environment: {self._env!r}"
            ) from e

    def _auth(self) -> dict[str, Any]:
        return {"client_id": self._client_id, "secret": self._secret}

    def _parse_json_response(self, body: str) -> dict[str, Any]:
        """Parse JSON response from Plaid API.

        Raises:
            PlaidClientError: If JSON parsing fails
        """
        try:
            return cast(dict[str, Any], json.loads(body))
        except json.JSONDecodeError as e:
            raise PlaidClientError(
                f"Failed to parse Plaid response as JSON: {e}: {body}"
            ) from e

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._base_url().rstrip("/") + path
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(  # noqa: S310 - external HTTPS
                req, timeout=self._timeout_seconds
            ) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:  # pragma: no cover - network-dependent
            err_body = e.read().decode("utf-8", "ignore")
            raise PlaidClientError(
                f"Plaid API error ({e.code}): {err_body}", status_code=e.code
            ) from e
        except urllib.error.URLError as e:  # pragma: no cover - network-dependent
            raise PlaidClientError(f"Network error calling Plaid API: {e}") from e
        except TimeoutError as e:  # pragma: no cover - network-dependent
            raise PlaidClientError(f"Timed out calling Plaid API {path}") from e

        return self._parse_json_response(body)

    # High-level APIs -----------------------------------------------------

    def exchange_public_token(self, public_token: str) -> PublicTokenExchangeResponse:
        """Exchange a Link public_token for an access_token and item id."""
        payload = {**self._auth(), "public_token": public_token}
        return PublicTokenExchangeResponse.parse(
            self._post("/item/public_token/exchange", payload)
        )

    def get_accounts(self, access_token: str) -> list[AccountsGetAccount]:
        """Return accounts (with balances) for an item via /accounts/get."""
        payload = {**self._auth(), "access_token": access_token}
        resp = AccountsGetResponse.parse(self._post("/accounts/get", payload))
        return resp.accounts

    def get_item_info(self, access_token: str) -> PlaidItemInfo:
        """Return item and institution information for an access token."""
        payload = {**self._auth(), "access_token": access_token}
        item_resp = ItemGetResponse.parse(self._post("/item/get", payload))

        item_id = item_resp.item.item_id
        institution_id = item_resp.item.institution_id
        institution_name: str | None = None

        if institution_id:
            inst_payload: dict[str, Any] = {
                **self._auth(),
                "institution_id": institution_id,
                "country_codes": ["US"],
            }
            inst_resp = InstitutionGetByIdResponse.parse(
                self._post("/institutions/get_by_id", inst_payload)
            )
            if inst_resp.institution and inst_resp.institution.name:
                institution_name = inst_resp.institution.name

        info: PlaidItemInfo = {
            "item_id": item_id,
            "institution_id": institution_id,
            "institution_name": institution_name,
        }
        return info

    def list_transactions(
        self,
        access_token: str,
        *,
        start_date: date,
        end_date: date,
        account_ids: list[str] | None = None,
        offset: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> TransactionsGetResponse:
        """Return one page of transactions using Plaid's /transactions/get."""
        options: dict[str, Any] = {
            "count": limit,
            "offset": offset,
        }
        if account_ids:
            options["account_ids"] = account_ids

        payload: dict[str, Any] = {
            **self._auth(),
            "access_token": access_token,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "options": options,
        }
        return TransactionsGetResponse.parse(self._post("/transactions/get", payload))

    def list_all_transactions(
        self,
        access_token: str,
        *,
        start_date: date,
        end_date: date,
        account_ids: list[str] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[PlaidTransactionModel]:
        """Page through /transactions/get until ``total_transactions`` is reached."""
        transactions: list[PlaidTransactionModel] = []
        offset = 0
        while True:
            page = self.list_transactions(
                access_token,
                start_date=start_date,
                end_date=end_date,
                account_ids=account_ids,
                offset=offset,
                limit=page_size,
            )
            transactions.extend(page.transactions)
            received = len(page.transactions) + page.dropped
            offset += received
            if not received or offset >= page.total_transactions:
                return transactions
