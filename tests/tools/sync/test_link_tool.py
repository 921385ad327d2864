from __future__ import annotations

from datetime import date
from typing import Any

import pytest

from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import AccountType, Provider, ProviderCredential
from finsync.infra.clients.plaid import PlaidClientError, PublicTokenExchangeResponse
from finsync.infra.clients.teller import TellerClient
from finsync.tools.sync.link_tool import InvalidEnrollmentError, LinkTool
from finsync.tools.sync.sync_tool import SyncTool
from finsync.tools.sync.types import AccountDraft, TransactionDraft


class StaticProvider:
    def __init__(self, provider: Provider, *, fail: bool = False) -> None:
        self._provider = provider
        self.fail = fail

    @property
    def provider(self) -> Provider:
        return self._provider

    def fetch_accounts(self, credential: ProviderCredential) -> list[AccountDraft]:
        if self.fail:
            raise RuntimeError("Teller error 401: unauthorized")
        return [
            AccountDraft(
                external_id="acc-1",
                name="Checking",
                type=AccountType.CHECKING,
                balance=10.0,
                mask="0000",
            )
        ]

    def resolve_balance(
        self, credential: ProviderCredential, draft: AccountDraft
    ) -> AccountDraft:
        return draft

    def fetch_transactions(
        self,
        credential: ProviderCredential,
        account_external_id: str,
        *,
        start_date: date,
        end_date: date,
    ) -> list[TransactionDraft]:
        return [
            TransactionDraft(
                external_id="t1",
                amount=-5.0,
                description="Coffee",
                posted_at=date(2025, 3, 1),
            )
        ]


class FakePlaidClient:
    env = "sandbox"

    def __init__(self, *, institution_error: bool = False) -> None:
        self.institution_error = institution_error

    def exchange_public_token(self, public_token: str) -> PublicTokenExchangeResponse:
        return PublicTokenExchangeResponse(
            access_token=f"access-{public_token}", item_id="item-1"
        )

    def get_item_info(self, access_token: str) -> dict[str, Any]:
        if self.institution_error:
            raise PlaidClientError("institution lookup failed")
        return {
            "item_id": "item-1",
            "institution_id": "ins_1",
            "institution_name": "First Bank",
        }


def create_link_tool(
    db: DB,
    *,
    plaid_client: Any = None,
    teller_client: TellerClient | None = None,
    teller_fails: bool = False,
) -> LinkTool:
    sync_tool = SyncTool(
        db,
        {
            Provider.PLAID: StaticProvider(Provider.PLAID),
            Provider.TELLER: StaticProvider(Provider.TELLER, fail=teller_fails),
        },
        today=lambda: date(2025, 3, 31),
    )
    return LinkTool(
        db, sync_tool, plaid_client=plaid_client, teller_client=teller_client
    )


class TestPlaidLink:
    def test_link_saves_credential_and_runs_first_sync(self, db: DB) -> None:
        # setup
        tool = create_link_tool(db, plaid_client=FakePlaidClient())

        # act
        result = tool.complete_plaid_link("user-1", "public-1")

        # assert
        data = result.to_dict()
        assert data["message"] == "Accounts connected successfully"
        assert data["item_id"] == "item-1"
        assert data["transactions_synced"] == 1
        assert [a["name"] for a in data["accounts"]] == ["Checking"]
        [credential] = db.list_credentials("user-1")
        assert credential.access_token == "access-public-1"  # noqa: S105
        assert credential.institution_name == "First Bank"
        assert credential.environment == "sandbox"

    def test_institution_lookup_failure_is_tolerated(self, db: DB) -> None:
        tool = create_link_tool(
            db, plaid_client=FakePlaidClient(institution_error=True)
        )

        result = tool.complete_plaid_link("user-1", "public-1")

        assert result.item_id == "item-1"
        [credential] = db.list_credentials("user-1")
        assert credential.institution_name is None

    def test_relink_only_reports_new_accounts(self, db: DB) -> None:
        tool = create_link_tool(db, plaid_client=FakePlaidClient())
        tool.complete_plaid_link("user-1", "public-1")

        again = tool.complete_plaid_link("user-1", "public-2")

        assert again.accounts == []
        assert again.transactions_synced == 0
        assert len(db.list_credentials("user-1")) == 1

    def test_missing_plaid_client_raises(self, db: DB) -> None:
        with pytest.raises(PlaidClientError, match="not configured"):
            create_link_tool(db).complete_plaid_link("user-1", "public-1")

    def test_empty_public_token_raises(self, db: DB) -> None:
        tool = create_link_tool(db, plaid_client=FakePlaidClient())
        with pytest.raises(PlaidClientError, match="public_token"):
            tool.complete_plaid_link("user-1", "")


class TestTellerEnrollment:
    def test_sandbox_enrollment_syncs(self, db: DB) -> None:
        # input
        payload = {
            "accessToken": "token_abc",
            "enrollment": {"id": "enr_1", "institution": {"name": "Chase"}},
        }

        # setup
        tool = create_link_tool(db, teller_client=TellerClient())

        # act
        result = tool.complete_teller_enrollment("user-1", payload)

        # assert
        assert result.message == "Teller enrollment saved"
        assert result.transactions_synced == 1
        assert "sync_skipped" not in result.to_dict()
        [credential] = db.list_credentials("user-1", Provider.TELLER)
        assert credential.item_id == "enr_1"
        assert credential.institution_name == "Chase"

    def test_flat_payload_shape_is_accepted(self, db: DB) -> None:
        payload = {
            "access_token": "token_abc",
            "id": "enr_2",
            "institution": {"name": "Wells"},
        }
        tool = create_link_tool(db, teller_client=TellerClient())

        result = tool.complete_teller_enrollment("user-1", payload)

        assert result.item_id == "enr_2"
        [credential] = db.list_credentials("user-1")
        assert credential.institution_name == "Wells"

    def test_missing_mtls_skips_sync(self, db: DB) -> None:
        # setup
        tool = create_link_tool(db, teller_client=TellerClient(env="production"))

        # act
        result = tool.complete_teller_enrollment(
            "user-1", {"accessToken": "token_abc", "id": "enr_1"}
        )

        # assert
        assert result.sync_skipped is True
        assert result.to_dict()["sync_skipped"] is True
        assert "Sync skipped" in result.message
        assert db.count_transactions("user-1") == 0
        [credential] = db.list_credentials("user-1")
        assert credential.environment == "production"

    def test_sync_failure_keeps_enrollment(self, db: DB) -> None:
        tool = create_link_tool(db, teller_client=TellerClient(), teller_fails=True)

        result = tool.complete_teller_enrollment(
            "user-1", {"accessToken": "token_abc", "id": "enr_1"}
        )

        assert result.message == "Teller enrollment saved, but sync failed."
        assert result.sync_error == "Teller error 401: unauthorized"
        assert len(db.list_credentials("user-1")) == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"id": "enr_1"},
            {"accessToken": "token_abc"},
            {"accessToken": "  ", "id": "enr_1"},
        ],
    )
    def test_invalid_payload_raises(self, db: DB, payload: dict[str, Any]) -> None:
        tool = create_link_tool(db, teller_client=TellerClient())

        with pytest.raises(InvalidEnrollmentError):
            tool.complete_teller_enrollment("user-1", payload)
        assert db.list_credentials("user-1") == []
