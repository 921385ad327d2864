from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any

from sqlalchemy import create_engine, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from finsync.adapters.db.models import (
    Account,
    AccountType,
    Base,
    Category,
    Provider,
    ProviderCredential,
    Transaction,
    TransactionType,
    external_account_column,
    external_transaction_column,
)

UNCATEGORIZED_LABELS: tuple[str, ...] = ("", "Other", "Uncategorized")


class DuplicateTransactionError(Exception):
    """Raised when an insert collides with an existing dedup key."""


class DB:
    """Database service layer providing ORM models and helper methods."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///finsync.db")
        """
        self._url = url
        engine_kwargs: dict[str, Any] = {"echo": False}
        if url.startswith("sqlite") and ":memory:" in url:
            # One shared connection so every session sees the same database.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session)

    @property
    def url(self) -> str:
        return self._url

    def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self._engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Provider credentials -------------------------------------------------

    def save_credential(
        self,
        *,
        user_id: str,
        provider: Provider,
        item_id: str,
        access_token: str,
        institution_name: str | None = None,
        environment: str | None = None,
    ) -> ProviderCredential:
        """Create or rotate a provider credential keyed by (provider, item_id).

        Args:
            user_id: Owner of the credential
            provider: Provider the item belongs to
            item_id: Provider-scoped item or enrollment id
            access_token: Long-lived access token
            institution_name: Optional institution display name
            environment: Optional provider environment label

        Returns:
            Created or updated ProviderCredential instance
        """
        with self.session() as session:  # type: Session
            credential = (
                session.query(ProviderCredential)
                .filter_by(provider=provider, item_id=item_id)
                .first()
            )
            if credential is None:
                credential = ProviderCredential(
                    user_id=user_id,
                    provider=provider,
                    item_id=item_id,
                    access_token=access_token,
                    institution_name=institution_name,
                    environment=environment,
                )
                session.add(credential)
            else:
                credential.access_token = access_token
                if institution_name is not None:
                    credential.institution_name = institution_name
                if environment is not None:
                    credential.environment = environment
                credential.updated_at = datetime.now()
            session.flush()
            session.refresh(credential)
            session.expunge(credential)
            return credential

    def list_credentials(
        self,
        user_id: str,
        provider: Provider | None = None,
    ) -> list[ProviderCredential]:
        """List a user's stored credentials, oldest first."""
        with self.session() as session:  # type: Session
            query = session.query(ProviderCredential).filter(
                ProviderCredential.user_id == user_id
            )
            if provider is not None:
                query = query.filter(ProviderCredential.provider == provider)
            credentials = query.order_by(ProviderCredential.credential_id).all()
            for credential in credentials:
                session.expunge(credential)
            return credentials

    # Accounts -------------------------------------------------------------

    def find_account_by_external(
        self,
        *,
        user_id: str,
        provider: Provider,
        external_id: str,
    ) -> Account | None:
        """Find an account by its provider-scoped external id."""
        column = getattr(Account, external_account_column(provider))
        with self.session() as session:  # type: Session
            account = (
                session.query(Account)
                .filter(Account.user_id == user_id, column == external_id)
                .first()
            )
            if account:
                session.expunge(account)
            return account

    def find_unlinked_account_by_mask(
        self,
        *,
        user_id: str,
        mask: str,
        institution: str | None,
    ) -> Account | None:
        """Find an account at ``institution`` matching ``mask``.

        Only rows without an external id for any provider qualify, so an
        account already linked through Plaid or Teller is never adopted.
        """
        institution_filter = (
            Account.institution.is_(None)
            if institution is None
            else Account.institution == institution
        )
        with self.session() as session:  # type: Session
            account = (
                session.query(Account)
                .filter(
                    Account.user_id == user_id,
                    Account.account_number == mask,
                    institution_filter,
                    Account.plaid_account_id.is_(None),
                    Account.teller_account_id.is_(None),
                )
                .order_by(Account.account_id)
                .first()
            )
            if account:
                session.expunge(account)
            return account

    def create_account(self, data: dict[str, Any]) -> Account:
        """Insert a new account.

        Args:
            data: Account fields: user_id, name, type, balance_cents, currency,
                institution, account_number, credit_limit_cents and the
                provider external id column

        Returns:
            Created Account instance
        """
        with self.session() as session:  # type: Session
            account = Account(
                user_id=data["user_id"],
                name=data["name"],
                type=AccountType(data["type"]),
                balance_cents=data.get("balance_cents", 0),
                currency=data.get("currency") or "USD",
                institution=data.get("institution"),
                account_number=data.get("account_number"),
                credit_limit_cents=data.get("credit_limit_cents"),
                is_active=data.get("is_active", True),
                plaid_account_id=data.get("plaid_account_id"),
                teller_account_id=data.get("teller_account_id"),
            )
            session.add(account)
            session.flush()
            session.refresh(account)
            session.expunge(account)
            return account

    def update_account(self, account_id: int, data: dict[str, Any]) -> Account:
        """Update mutable account fields.

        Identity fields (user, name, type, mask) are never changed here; an
        external id column may only be filled when it is still empty.

        Raises:
            ValueError: If the account does not exist
        """
        mutable = ("balance_cents", "credit_limit_cents", "is_active")
        with self.session() as session:  # type: Session
            account = (
                session.query(Account).filter(Account.account_id == account_id).first()
            )
            if account is None:
                raise ValueError(f"Account {account_id} not found")

            for key, value in data.items():
                if key in mutable:
                    setattr(account, key, value)
                elif key in ("plaid_account_id", "teller_account_id"):
                    if getattr(account, key) is None:
                        setattr(account, key, value)
            account.updated_at = datetime.now()

            session.flush()
            session.refresh(account)
            session.expunge(account)
            return account

    def list_accounts(self, user_id: str) -> list[Account]:
        with self.session() as session:  # type: Session
            accounts = (
                session.query(Account)
                .filter(Account.user_id == user_id)
                .order_by(Account.account_id)
                .all()
            )
            for account in accounts:
                session.expunge(account)
            return accounts

    # Transactions ---------------------------------------------------------

    def find_transaction_by_external(
        self,
        *,
        user_id: str,
        account_id: int,
        provider: Provider,
        external_id: str,
    ) -> Transaction | None:
        """Look up a transaction by its dedup key.

        Args:
            user_id: Owner
            account_id: Internal account id
            provider: Provider the transaction came from
            external_id: Provider-scoped transaction id

        Returns:
            Transaction instance or None if not found
        """
        column = getattr(Transaction, external_transaction_column(provider))
        with self.session() as session:  # type: Session
            transaction = (
                session.query(Transaction)
                .filter(
                    Transaction.user_id == user_id,
                    Transaction.account_id == account_id,
                    column == external_id,
                )
                .first()
            )
            if transaction:
                session.expunge(transaction)
            return transaction

    def insert_transaction(self, data: dict[str, Any]) -> Transaction:
        """Insert a new transaction.

        Args:
            data: Transaction fields: user_id, account_id, amount_cents,
                description, posted_at, type, and optionally category,
                category_id, is_recurring, tags, notes and the provider
                external id column

        Returns:
            Created Transaction instance

        Raises:
            DuplicateTransactionError: If the dedup key already exists
        """
        try:
            with self.session() as session:  # type: Session
                transaction = Transaction(
                    user_id=data["user_id"],
                    account_id=data["account_id"],
                    amount_cents=data["amount_cents"],
                    description=data["description"],
                    posted_at=data["posted_at"],
                    type=TransactionType(data["type"]),
                    category=data.get("category"),
                    category_id=data.get("category_id"),
                    is_recurring=data.get("is_recurring", False),
                    tags=list(data.get("tags") or []),
                    notes=data.get("notes"),
                    plaid_transaction_id=data.get("plaid_transaction_id"),
                    teller_transaction_id=data.get("teller_transaction_id"),
                )
                session.add(transaction)
                session.flush()
                session.refresh(transaction)
                session.expunge(transaction)
                return transaction
        except IntegrityError as e:
            raise DuplicateTransactionError(str(e.orig)) from e

    def find_uncategorized_transactions(
        self,
        user_id: str,
        transaction_ids: Sequence[int],
    ) -> list[Transaction]:
        """Return the user's transactions among ``transaction_ids`` that still
        need a category: no label, an "Other"/"Uncategorized" placeholder, or
        no category relation yet."""
        if not transaction_ids:
            return []

        with self.session() as session:  # type: Session
            transactions = (
                session.query(Transaction)
                .filter(
                    Transaction.user_id == user_id,
                    Transaction.transaction_id.in_(list(transaction_ids)),
                    or_(
                        Transaction.category.is_(None),
                        Transaction.category.in_(UNCATEGORIZED_LABELS),
                        Transaction.category_id.is_(None),
                    ),
                )
                .order_by(Transaction.transaction_id)
                .all()
            )
            for txn in transactions:
                session.expunge(txn)
            return transactions

    def update_transaction_category(
        self,
        transaction_id: int,
        *,
        category: str,
        category_id: int | None,
    ) -> Transaction:
        """Write both the category label and the category relation.

        Raises:
            ValueError: If the transaction does not exist
        """
        with self.session() as session:  # type: Session
            transaction = (
                session.query(Transaction)
                .filter(Transaction.transaction_id == transaction_id)
                .first()
            )
            if transaction is None:
                raise ValueError(f"Transaction {transaction_id} not found")

            transaction.category = category
            transaction.category_id = category_id
            transaction.updated_at = datetime.now()

            session.flush()
            session.refresh(transaction)
            session.expunge(transaction)
            return transaction

    def list_transactions(
        self,
        user_id: str,
        *,
        since: date | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """List a user's transactions, newest first."""
        with self.session() as session:  # type: Session
            query = session.query(Transaction).filter(Transaction.user_id == user_id)
            if since is not None:
                query = query.filter(Transaction.posted_at >= since)
            query = query.order_by(
                Transaction.posted_at.desc(), Transaction.transaction_id.desc()
            )
            if limit is not None:
                query = query.limit(limit)
            transactions = query.all()
            for txn in transactions:
                session.expunge(txn)
            return transactions

    def count_transactions(self, user_id: str) -> int:
        with self.session() as session:  # type: Session
            return int(
                session.query(func.count(Transaction.transaction_id))
                .filter(Transaction.user_id == user_id)
                .scalar()
                or 0
            )

    # Categories -----------------------------------------------------------

    def list_categories(self, user_id: str) -> list[Category]:
        with self.session() as session:  # type: Session
            categories = (
                session.query(Category)
                .filter(Category.user_id == user_id)
                .order_by(Category.category_id)
                .all()
            )
            for category in categories:
                session.expunge(category)
            return categories

    def create_categories(
        self,
        user_id: str,
        rows: Sequence[dict[str, str]],
    ) -> list[Category]:
        """Insert categories for a user in a single session.

        Args:
            user_id: Owner
            rows: Dicts with name, color and icon

        Returns:
            Created Category instances in input order
        """
        with self.session() as session:  # type: Session
            categories = [
                Category(
                    user_id=user_id,
                    name=row["name"],
                    color=row.get("color"),
                    icon=row.get("icon"),
                )
                for row in rows
            ]
            session.add_all(categories)
            session.flush()
            for category in categories:
                session.refresh(category)
                session.expunge(category)
            return categories
