from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
import typer

from finsync.adapters.cache.read_cache import InMemoryReadCache
from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Provider
from finsync.core.config import (
    SyncConfig,
    load_ai_config_from_env,
    load_sync_config_from_env,
)
from finsync.core.logging import configure_logging
from finsync.infra.clients.ai import AIClient, check_ai_status
from finsync.infra.clients.errors import ProviderClientError, UnknownUserError
from finsync.infra.clients.plaid import PlaidClient, PlaidClientError
from finsync.infra.clients.teller import TellerClient, TellerClientError
from finsync.services.reads import CachedReads
from finsync.tools.categorize.bulk_tool import BulkCategorizer
from finsync.tools.categorize.categorizer_tool import Categorizer
from finsync.tools.categorize.seed import seed_categories
from finsync.tools.insights.insights_tool import InsightsTool
from finsync.tools.sync.link_tool import InvalidEnrollmentError, LinkTool
from finsync.tools.sync.providers import PlaidProvider, ProviderAdapter, TellerProvider
from finsync.tools.sync.sync_tool import SyncTool

# Load environment variables from .env
load_dotenv()

app = typer.Typer(
    help="finsync: bank data sync and transaction categorization CLI.",
    no_args_is_help=True,
)

_cache = InMemoryReadCache()


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(1)


def _config() -> SyncConfig:
    try:
        return load_sync_config_from_env()
    except ValueError as e:
        raise _fail(f"Invalid configuration: {e}") from None


def _db(config: SyncConfig) -> DB:
    db = DB(config.database_url)
    db.create_schema()
    return db


def _ai_client() -> AIClient:
    try:
        return AIClient(load_ai_config_from_env())
    except ValueError as e:
        raise _fail(f"Invalid AI configuration: {e}") from None


def _providers(config: SyncConfig) -> dict[Provider, ProviderAdapter]:
    """Build adapters for every provider whose environment is configured."""
    providers: dict[Provider, ProviderAdapter] = {}
    try:
        providers[Provider.PLAID] = PlaidProvider(
            PlaidClient.from_env(timeout_seconds=config.http_timeout_seconds)
        )
    except PlaidClientError as e:
        typer.echo(f"Plaid disabled: {e}", err=True)
    try:
        providers[Provider.TELLER] = TellerProvider(
            TellerClient.from_env(timeout_seconds=config.http_timeout_seconds)
        )
    except TellerClientError as e:
        typer.echo(f"Teller disabled: {e}", err=True)
    return providers


def _sync_tool(config: SyncConfig, db: DB) -> SyncTool:
    return SyncTool(
        db,
        _providers(config),
        cache=_cache,
        window_days=config.sync_window_days,
    )


@app.callback()
def main_callback() -> None:
    """Configure logging before any command runs."""
    configure_logging(_config().log_level)


@app.command("init-db")
def init_db() -> None:
    """Create all tables in the configured database."""
    config = _config()
    _db(config)
    typer.echo(f"Database ready at {config.database_url}")


@app.command("seed-categories")
def seed_categories_cmd(
    user: str = typer.Option(..., "--user", help="User id"),
) -> None:
    """Create the default category set for a user."""
    db = _db(_config())
    try:
        categories = seed_categories(db, user, cache=_cache)
    except UnknownUserError as e:
        raise _fail(str(e)) from None
    _echo_json([category.to_dict() for category in categories])


@app.command("link-plaid")
def link_plaid(
    user: str = typer.Option(..., "--user", help="User id"),
    public_token: str = typer.Option(..., "--public-token", help="Link public token"),
) -> None:
    """Exchange a Plaid Link public token and import the new item."""
    config = _config()
    db = _db(config)
    try:
        plaid_client = PlaidClient.from_env(
            timeout_seconds=config.http_timeout_seconds
        )
        link_tool = LinkTool(db, _sync_tool(config, db), plaid_client=plaid_client)
        result = link_tool.complete_plaid_link(user, public_token)
    except (PlaidClientError, UnknownUserError) as e:
        raise _fail(f"Failed to exchange token: {e}") from None
    _echo_json(result.to_dict())


@app.command("enroll-teller")
def enroll_teller(
    user: str = typer.Option(..., "--user", help="User id"),
    payload: str = typer.Option(
        ..., "--payload", help="Teller Connect enrollment JSON, or a path to it"
    ),
) -> None:
    """Save a Teller Connect enrollment and import its accounts."""
    config = _config()
    db = _db(config)

    raw = payload
    if Path(payload).is_file():
        raw = Path(payload).read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise _fail(f"Enrollment payload is not valid JSON: {e}") from None
    if not isinstance(data, dict):
        raise _fail("Enrollment payload must be a JSON object")

    try:
        teller_client = TellerClient.from_env(
            timeout_seconds=config.http_timeout_seconds
        )
        link_tool = LinkTool(db, _sync_tool(config, db), teller_client=teller_client)
        result = link_tool.complete_teller_enrollment(user, data)
    except (InvalidEnrollmentError, TellerClientError, UnknownUserError) as e:
        raise _fail(str(e)) from None
    _echo_json(result.to_dict())


@app.command("sync")
def sync(
    user: str = typer.Option(..., "--user", help="User id"),
    provider: Provider | None = typer.Option(  # noqa: B008
        None, "--provider", help="Only sync this provider"
    ),
) -> None:
    """Sync accounts and transactions for all of a user's connections."""
    config = _config()
    db = _db(config)
    try:
        summary = _sync_tool(config, db).sync_user(user, provider)
    except UnknownUserError as e:
        raise _fail(str(e)) from None
    _echo_json(summary.to_dict())
    if summary.failures and not summary.accounts_synced:
        raise typer.Exit(1)


@app.command("categorize")
def categorize(
    description: str = typer.Argument(..., help="Transaction description"),
    amount: float = typer.Argument(..., help="Transaction amount"),
) -> None:
    """Suggest a category for a single transaction."""
    categorizer = Categorizer.with_ai(_ai_client())
    result = asyncio.run(categorizer.categorize(description, amount))
    _echo_json(result.model_dump())


@app.command("bulk-categorize")
def bulk_categorize(
    transaction_ids: list[int] = typer.Argument(  # noqa: B008
        ..., help="Transaction ids to categorize"
    ),
    user: str = typer.Option(..., "--user", help="User id"),
    max_concurrency: int = typer.Option(8, help="Concurrent AI requests"),
) -> None:
    """Categorize a user's uncategorized transactions and save the results."""
    db = _db(_config())
    bulk = BulkCategorizer(
        db,
        Categorizer.with_ai(_ai_client()),
        cache=_cache,
        max_concurrency=max_concurrency,
    )
    try:
        result = asyncio.run(bulk.categorize_transactions(user, transaction_ids))
    except (UnknownUserError, ValueError) as e:
        raise _fail(str(e)) from None
    _echo_json(result)


@app.command("ai-status")
def ai_status() -> None:
    """Check whether the AI backend is reachable."""
    status = asyncio.run(check_ai_status(_ai_client()))
    _echo_json(status)
    if not status["available"]:
        raise typer.Exit(1)


@app.command("insights")
def insights(
    user: str = typer.Option(..., "--user", help="User id"),
) -> None:
    """Analyze spending and print financial insights."""
    db = _db(_config())
    tool = InsightsTool(db, _ai_client())
    try:
        result = asyncio.run(tool.generate(user))
    except UnknownUserError as e:
        raise _fail(str(e)) from None
    _echo_json(result)


@app.command("accounts")
def accounts(user: str = typer.Option(..., "--user", help="User id")) -> None:
    """List a user's accounts."""
    reads = CachedReads(_db(_config()), _cache)
    _echo_json(reads.list_accounts(user))


@app.command("transactions")
def transactions(user: str = typer.Option(..., "--user", help="User id")) -> None:
    """List a user's transactions, newest first."""
    reads = CachedReads(_db(_config()), _cache)
    _echo_json(reads.list_transactions(user))


@app.command("categories")
def categories(user: str = typer.Option(..., "--user", help="User id")) -> None:
    """List a user's categories."""
    reads = CachedReads(_db(_config()), _cache)
    _echo_json(reads.list_categories(user))


def main() -> None:
    try:
        app()
    except ProviderClientError as e:
        typer.echo(f"Provider error: {e}", err=True)
        raise SystemExit(1) from None
