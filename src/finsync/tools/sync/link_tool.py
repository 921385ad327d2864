from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import loguru
from loguru import logger

from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Provider
from finsync.infra.clients.errors import require_user_id
from finsync.infra.clients.plaid import PlaidClient, PlaidClientError
from finsync.infra.clients.teller import TellerClient
from finsync.tools.sync.sync_tool import SyncTool
from finsync.tools.sync.types import LinkResult


class InvalidEnrollmentError(ValueError):
    """Raised when a Teller Connect payload lacks the token or enrollment id."""


class LinkToolLogger:
    """Handles all logging for LinkTool."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def credential_saved(self, provider: Provider, item_id: str, user_id: str) -> None:
        self._logger.bind(
            provider=provider.value, item_id=item_id, user_id=user_id
        ).info("Saved {} credential {} for user {}", provider.value, item_id, user_id)

    def institution_lookup_failed(self, item_id: str, error: Exception) -> None:
        self._logger.bind(item_id=item_id, error=str(error)).warning(
            "Could not resolve institution for item {}: {}", item_id, error
        )

    def sync_skipped(self, item_id: str) -> None:
        self._logger.bind(item_id=item_id).warning(
            "Skipping sync for enrollment {}: mTLS credentials are missing", item_id
        )


def _pick(payload: Mapping[str, Any], *paths: tuple[str, ...]) -> str | None:
    """Return the first non-empty string found along ``paths``."""
    for path in paths:
        node: Any = payload
        for key in path:
            node = node.get(key) if isinstance(node, Mapping) else None
        if isinstance(node, str) and node.strip():
            return node.strip()
    return None


class LinkTool:
    """Completes a new provider link and runs the first sync for it."""

    def __init__(
        self,
        db: DB,
        sync_tool: SyncTool,
        *,
        plaid_client: PlaidClient | None = None,
        teller_client: TellerClient | None = None,
        logger_instance: LinkToolLogger | None = None,
    ) -> None:
        self._db = db
        self._sync_tool = sync_tool
        self._plaid_client = plaid_client
        self._teller_client = teller_client
        self._logger = logger_instance or LinkToolLogger()

    def complete_plaid_link(self, user_id: str, public_token: str) -> LinkResult:
        """Exchange a Link public token, store the item and import its data.

        Raises:
            PlaidClientError: If Plaid is not configured or the exchange fails
        """
        user_id = require_user_id(user_id)
        if self._plaid_client is None:
            raise PlaidClientError("Plaid client is not configured")
        if not public_token:
            raise PlaidClientError("public_token is required")

        exchange = self._plaid_client.exchange_public_token(public_token)

        institution_name: str | None = None
        try:
            info = self._plaid_client.get_item_info(exchange.access_token)
            institution_name = info["institution_name"]
        except PlaidClientError as e:
            self._logger.institution_lookup_failed(exchange.item_id, e)

        credential = self._db.save_credential(
            user_id=user_id,
            provider=Provider.PLAID,
            item_id=exchange.item_id,
            access_token=exchange.access_token,
            institution_name=institution_name,
            environment=self._plaid_client.env,
        )
        self._logger.credential_saved(Provider.PLAID, credential.item_id, user_id)

        result = self._sync_tool.sync_credential(credential)
        return LinkResult(
            message="Accounts connected successfully",
            item_id=credential.item_id,
            accounts=result.created_accounts,
            transactions_synced=result.transactions_synced,
            failures=result.failures(),
        )

    def complete_teller_enrollment(
        self, user_id: str, payload: Mapping[str, Any]
    ) -> LinkResult:
        """Store a Teller Connect enrollment and import its data when possible.

        Accepts ``accessToken`` or ``access_token``, the enrollment id from
        ``enrollment.id`` or ``id``, and the institution name from
        ``enrollment.institution.name`` or ``institution.name``.

        Raises:
            InvalidEnrollmentError: If the token or enrollment id is missing
        """
        user_id = require_user_id(user_id)
        access_token = _pick(payload, ("accessToken",), ("access_token",))
        enrollment_id = _pick(payload, ("enrollment", "id"), ("id",))
        if not access_token or not enrollment_id:
            raise InvalidEnrollmentError("Missing Teller access token or enrollment id")
        institution_name = _pick(
            payload,
            ("enrollment", "institution", "name"),
            ("institution", "name"),
        )

        environment = self._teller_client.env if self._teller_client else "sandbox"
        credential = self._db.save_credential(
            user_id=user_id,
            provider=Provider.TELLER,
            item_id=enrollment_id,
            access_token=access_token,
            institution_name=institution_name,
            environment=environment,
        )
        self._logger.credential_saved(Provider.TELLER, enrollment_id, user_id)

        if self._teller_client is None or not self._teller_client.can_sync:
            self._logger.sync_skipped(enrollment_id)
            return LinkResult(
                message=(
                    "Teller enrollment saved. "
                    "Sync skipped because mTLS credentials are missing."
                ),
                item_id=enrollment_id,
                sync_skipped=True,
            )

        result = self._sync_tool.sync_credential(credential)
        if not result.ok:
            return LinkResult(
                message="Teller enrollment saved, but sync failed.",
                item_id=enrollment_id,
                sync_error=result.error,
            )
        return LinkResult(
            message="Teller enrollment saved",
            item_id=enrollment_id,
            accounts=result.created_accounts,
            transactions_synced=result.transactions_synced,
            failures=result.failures(),
        )
