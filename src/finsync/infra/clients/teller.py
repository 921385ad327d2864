from __future__ import annotations

import base64
from datetime import date
import json
import os
from pathlib import Path
import ssl
import tempfile
from typing import Any, Literal, Self
import urllib.error
import urllib.parse
import urllib.request

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from finsync.infra.clients.errors import ProviderClientError

TellerEnv = Literal["sandbox", "development", "production"]

TELLER_BASE_URL = "https://api.teller.io"
TELLER_ENVS: tuple[TellerEnv, ...] = ("sandbox", "development", "production")


class TellerClientError(ProviderClientError):
    """Base error for Teller client failures."""


class TellerBaseModel(BaseModel):
    """Shared base for Teller response models with a short parse alias."""

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class TellerInstitution(TellerBaseModel):
    id: str | None = None
    name: str | None = None


class TellerAccount(TellerBaseModel):
    id: str
    name: str
    type: str | None = None
    subtype: str | None = None
    currency: str | None = None
    last_four: str | None = None
    institution: TellerInstitution | None = None


class TellerBalance(TellerBaseModel):
    available: str | None = None
    ledger: str | None = None

    def amount(self) -> float:
        """Available balance, else ledger; unparseable values count as zero."""
        raw = self.available if self.available is not None else self.ledger
        try:
            return float(raw) if raw is not None else 0.0
        except ValueError:
            return 0.0


class TellerTransactionDetails(TellerBaseModel):
    description: str | None = None
    category: str | None = None


class TellerTransaction(TellerBaseModel):
    id: str
    account_id: str | None = None
    amount: str | float | None = None
    date: str | None = None
    description: str | None = None
    status: str | None = None
    details: TellerTransactionDetails | None = None

    def display_description(self) -> str:
        if self.description:
            return self.description
        if self.details and self.details.description:
            return self.details.description
        return "Teller transaction"


class _AccountList(TellerBaseModel):
    accounts: list[TellerAccount] = Field(default_factory=list)


def parse_transactions(records: list[Any]) -> list[TellerTransaction]:
    """Validate records one by one; malformed ones are logged and dropped."""
    transactions: list[TellerTransaction] = []
    for record in records:
        try:
            transactions.append(TellerTransaction.parse(record))
        except ValidationError as e:
            logger.bind(error=str(e)).warning(
                "Dropping malformed Teller transaction: {}", e
            )
    return transactions


class TellerClient:
    """Minimal Teller REST client.

    Requests authenticate with HTTP Basic auth using the enrollment access
    token as the user name. Outside sandbox every request also presents the
    application's mTLS client certificate.
    """

    def __init__(
        self,
        *,
        env: TellerEnv = "sandbox",
        cert_pem: str | None = None,
        key_pem: str | None = None,
        timeout_seconds: float = 30.0,
        base_url: str = TELLER_BASE_URL,
    ) -> None:
        if env not in TELLER_ENVS:
            raise TellerClientError(f"Unsupported Teller environment: {env!r}")
        self._env = env
        self._cert_pem = cert_pem
        self._key_pem = key_pem
        self._timeout_seconds = timeout_seconds
        self._base_url = base_url.rstrip("/")
        self._ssl_context: ssl.SSLContext | None = None

    @property
    def env(self) -> TellerEnv:
        return self._env

    @property
    def can_sync(self) -> bool:
        """True when requests can be made in the configured environment."""
        return self._env == "sandbox" or bool(self._cert_pem and self._key_pem)

    @classmethod
    def from_env(cls, *, timeout_seconds: float = 30.0) -> TellerClient:
        """Construct a TellerClient from environment variables.

        - TELLER_ENV (defaults to sandbox)
        - TELLER_CERT or TELLER_CERT_PATH, TELLER_KEY or TELLER_KEY_PATH
          (required to sync outside sandbox)
        """
        env_str = os.getenv("TELLER_ENV", "sandbox").strip().strip("\"'").lower()
        if env_str not in TELLER_ENVS:
            raise TellerClientError(
                f"Invalid TELLER_ENV={env_str!r}. "
                "Expected one of: sandbox, development, production."
            )
        env: TellerEnv = env_str  # type: ignore[assignment]
        return cls(
            env=env,
            cert_pem=cls._read_pem("TELLER_CERT", "TELLER_CERT_PATH"),
            key_pem=cls._read_pem("TELLER_KEY", "TELLER_KEY_PATH"),
            timeout_seconds=timeout_seconds,
        )

    @staticmethod
    def _read_pem(value_var: str, path_var: str) -> str | None:
        value = os.getenv(value_var, "").strip()
        if value:
            return value.replace("\\n", "\n")
        path = os.getenv(path_var, "").strip()
        if not path:
            return None
        try:
            return Path(path).expanduser().resolve().read_text(encoding="utf-8")
        except OSError as e:
            raise TellerClientError(f"Cannot read {path_var}={path!r}: {e}") from e

    def _context(self) -> ssl.SSLContext | None:
        if self._env == "sandbox":
            return None
        if self._ssl_context is not None:
            return self._ssl_context
        if not (self._cert_pem and self._key_pem):
            raise TellerClientError(
                "Teller mTLS credentials are required for development/production."
            )

        context = ssl.create_default_context()
        with tempfile.TemporaryDirectory() as tmp:
            cert_file = Path(tmp) / "cert.pem"
            key_file = Path(tmp) / "key.pem"
            cert_file.write_text(self._cert_pem, encoding="utf-8")
            key_file.write_text(self._key_pem, encoding="utf-8")
            try:
                context.load_cert_chain(certfile=cert_file, keyfile=key_file)
            except ssl.SSLError as e:
                raise TellerClientError(f"Invalid Teller mTLS credentials: {e}") from e
        self._ssl_context = context
        return context

    @staticmethod
    def _auth_header(access_token: str) -> str:
        token = base64.b64encode(f"{access_token}:".encode()).decode("ascii")
        return f"Basic {token}"

    def _get(
        self,
        path: str,
        access_token: str,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = self._base_url + path
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        req = urllib.request.Request(  # noqa: S310
            url,
            headers={
                "Authorization": self._auth_header(access_token),
                "Content-Type": "application/json",
            },
            method="GET",
        )

        try:
            with urllib.request.urlopen(  # noqa: S310 - external HTTPS
                req, timeout=self._timeout_seconds, context=self._context()
            ) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:  # pragma: no cover - network-dependent
            err_body = e.read().decode("utf-8", "ignore")
            raise TellerClientError(
                f"Teller error {e.code}: {err_body}", status_code=e.code
            ) from e
        except urllib.error.URLError as e:  # pragma: no cover - network-dependent
            raise TellerClientError(f"Network error calling Teller API: {e}") from e
        except TimeoutError as e:  # pragma: no cover - network-dependent
            raise TellerClientError(f"Timed out calling Teller API {path}") from e

        if not body:
            return {}
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise TellerClientError(
                f"Failed to parse Teller response as JSON: {e}: {body}"
            ) from e

    # High-level APIs -----------------------------------------------------

    def list_accounts(self, access_token: str) -> list[TellerAccount]:
        data = self._get("/accounts", access_token)
        return _AccountList.parse({"accounts": data or []}).accounts

    def get_balances(self, access_token: str, account_id: str) -> TellerBalance:
        quoted = urllib.parse.quote(account_id, safe="")
        return TellerBalance.parse(
            self._get(f"/accounts/{quoted}/balances", access_token)
        )

    def list_transactions(
        self,
        access_token: str,
        account_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TellerTransaction]:
        quoted = urllib.parse.quote(account_id, safe="")
        data = self._get(
            f"/accounts/{quoted}/transactions",
            access_token,
            params={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return parse_transactions(data or [])
