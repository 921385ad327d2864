from __future__ import annotations

from datetime import date, datetime
import enum
from typing import Any

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class Provider(str, enum.Enum):
    PLAID = "plaid"
    TELLER = "teller"


class AccountType(str, enum.Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT_CARD = "CREDIT_CARD"
    INVESTMENT = "INVESTMENT"
    LOAN = "LOAN"
    OTHER = "OTHER"


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class ProviderCredential(Base):
    """Stored provider link (Plaid item or Teller enrollment) for one user."""

    __tablename__ = "provider_credentials"
    __table_args__ = (
        UniqueConstraint("provider", "item_id", name="uq_provider_credentials_item"),
    )

    credential_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    provider: Mapped[Provider] = mapped_column(
        Enum(Provider, native_enum=False, length=16), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    institution_name: Mapped[str | None] = mapped_column(String, nullable=True)
    environment: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class Account(Base):
    """Internal financial account, reconciled from provider account records."""

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "plaid_account_id", name="uq_accounts_plaid"),
        UniqueConstraint("user_id", "teller_account_id", name="uq_accounts_teller"),
    )

    account_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, native_enum=False, length=16), nullable=False
    )
    balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    currency: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'USD'")
    )
    institution: Mapped[str | None] = mapped_column(String, nullable=True)
    account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    credit_limit_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    plaid_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    teller_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    # Relationships
    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction", back_populates="account"
    )

    @property
    def balance(self) -> float:
        return self.balance_cents / 100

    @property
    def credit_limit(self) -> float | None:
        if self.credit_limit_cents is None:
            return None
        return self.credit_limit_cents / 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.account_id,
            "name": self.name,
            "type": self.type.value,
            "balance": self.balance,
            "currency": self.currency,
            "institution": self.institution,
            "account_number": self.account_number,
            "credit_limit": self.credit_limit,
            "is_active": self.is_active,
        }


class Category(Base):
    """User-owned spending category."""

    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
    )

    category_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    color: Mapped[str | None] = mapped_column(String, nullable=True)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    # Relationships
    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction", back_populates="category_ref"
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.category_id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
        }


class Transaction(Base):
    """Ledger transaction. Amount is absolute; direction lives in ``type``."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "account_id",
            "plaid_transaction_id",
            name="uq_transactions_plaid",
        ),
        UniqueConstraint(
            "user_id",
            "account_id",
            "teller_transaction_id",
            name="uq_transactions_teller",
        ),
    )

    transaction_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.account_id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    posted_at: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, length=16), nullable=False
    )
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.category_id"), nullable=True
    )
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    plaid_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    teller_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    # Relationships
    account: Mapped[Account] = relationship("Account", back_populates="transactions")
    category_ref: Mapped[Category | None] = relationship(
        "Category", back_populates="transactions"
    )

    @property
    def amount(self) -> float:
        return self.amount_cents / 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.transaction_id,
            "account_id": self.account_id,
            "amount": self.amount,
            "description": self.description,
            "date": self.posted_at.isoformat(),
            "type": self.type.value,
            "category": self.category,
            "category_id": self.category_id,
            "is_recurring": self.is_recurring,
            "tags": list(self.tags or []),
            "notes": self.notes,
        }


def external_transaction_column(provider: Provider) -> str:
    """Name of the Transaction column holding the provider's transaction id."""
    if provider is Provider.PLAID:
        return "plaid_transaction_id"
    return "teller_transaction_id"


def external_account_column(provider: Provider) -> str:
    """Name of the Account column holding the provider's account id."""
    if provider is Provider.PLAID:
        return "plaid_account_id"
    return "teller_account_id"
