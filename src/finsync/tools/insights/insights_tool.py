from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Literal

import loguru
from loguru import logger

from finsync.adapters.db.facade import DB
from finsync.adapters.db.models import Transaction, TransactionType
from finsync.infra.clients.ai import AIClient, AIClientError
from finsync.infra.clients.errors import require_user_id
from finsync.tools.categorize.categories import OTHER_CATEGORY

Trend = Literal["increasing", "decreasing", "stable"]
Severity = Literal["low", "medium", "high"]

HIGH_SPENDING_SHARE = 30.0
TREND_THRESHOLD_PERCENT = 10.0
INSIGHT_TRANSACTION_LIMIT = 1000


@dataclass(frozen=True, slots=True)
class SpendingPattern:
    category: str
    total_spent: float
    average_per_transaction: float
    transaction_count: int
    percentage_of_total: float
    trend: Trend
    last_month_amount: float
    change_percent: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class FinancialInsight:
    type: str
    title: str
    description: str
    severity: Severity
    actionable: bool
    action: str | None = None
    value: float | None = None
    percentage: float | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _previous_month(today: date) -> tuple[int, int]:
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def _category(txn: Transaction) -> str:
    return txn.category or OTHER_CATEGORY


def analyze_spending_patterns(
    transactions: Sequence[Transaction], today: date
) -> list[SpendingPattern]:
    """Group this month's expenses by category and compare with last month.

    Returns:
        Patterns sorted by total spent, largest first
    """
    last_year, last_month = _previous_month(today)
    current: dict[str, list[Transaction]] = {}
    previous: dict[str, float] = {}

    for txn in transactions:
        if txn.type is not TransactionType.EXPENSE:
            continue
        posted = txn.posted_at
        if (posted.year, posted.month) == (today.year, today.month):
            current.setdefault(_category(txn), []).append(txn)
        elif (posted.year, posted.month) == (last_year, last_month):
            previous[_category(txn)] = previous.get(_category(txn), 0.0) + abs(
                txn.amount
            )

    month_total = sum(abs(t.amount) for txns in current.values() for t in txns)
    patterns: list[SpendingPattern] = []
    for category, txns in current.items():
        total = sum(abs(t.amount) for t in txns)
        last_amount = previous.get(category, 0.0)
        change = 0.0
        if last_amount > 0:
            change = ((total - last_amount) / last_amount) * 100
        trend: Trend = "stable"
        if change > TREND_THRESHOLD_PERCENT:
            trend = "increasing"
        elif change < -TREND_THRESHOLD_PERCENT:
            trend = "decreasing"
        patterns.append(
            SpendingPattern(
                category=category,
                total_spent=round(total, 2),
                average_per_transaction=round(total / len(txns), 2),
                transaction_count=len(txns),
                percentage_of_total=(total / month_total) * 100 if month_total else 0.0,
                trend=trend,
                last_month_amount=round(last_amount, 2),
                change_percent=change,
            )
        )

    patterns.sort(key=lambda p: p.total_spent, reverse=True)
    return patterns


def high_spending_insight(
    patterns: Sequence[SpendingPattern],
) -> FinancialInsight | None:
    if not patterns or patterns[0].percentage_of_total <= HIGH_SPENDING_SHARE:
        return None
    top = patterns[0]
    return FinancialInsight(
        type="spending_pattern",
        title=f"High Spending in {top.category}",
        description=(
            f"{top.category} accounts for {top.percentage_of_total:.1f}% of your "
            "spending this month. Consider if this aligns with your priorities."
        ),
        severity="medium",
        actionable=True,
        action="Review Spending",
        value=top.total_spent,
        percentage=top.percentage_of_total,
        category=top.category,
    )


def summary_insight(transactions: Sequence[Transaction]) -> FinancialInsight:
    return FinancialInsight(
        type="spending_pattern",
        title="Spending Summary",
        description=(
            f"You have {len(transactions)} transactions. "
            "Review your spending patterns regularly."
        ),
        severity="low",
        actionable=True,
    )


async def generate_financial_insights(
    client: AIClient, transactions: Sequence[Transaction]
) -> list[FinancialInsight]:
    """Ask the AI backend for one tip; fall back to a plain summary."""
    total = sum(abs(t.amount) for t in transactions)
    messages = [
        {"role": "system", "content": "Analyze spending and give one financial tip."},
        {
            "role": "user",
            "content": f"{len(transactions)} transactions totaling ${total:.2f}",
        },
    ]
    try:
        tip = await client.complete(messages)
    except AIClientError as e:
        logger.bind(error=str(e)).warning("AI insights failed, using summary: {}", e)
        return [summary_insight(transactions)]

    return [
        FinancialInsight(
            type="spending_pattern",
            title="AI Insight",
            description=tip.strip(),
            severity="medium",
            actionable=True,
        )
    ]


class InsightsTool:
    """Builds spending insights for a user from their recent transactions."""

    def __init__(
        self,
        db: DB,
        ai_client: AIClient,
        *,
        today: Callable[[], date] = date.today,
        logger_instance: loguru.Logger = logger,
    ) -> None:
        self._db = db
        self._ai_client = ai_client
        self._today = today
        self._logger = logger_instance

    async def generate(self, user_id: str) -> dict[str, Any]:
        user_id = require_user_id(user_id)
        transactions = self._db.list_transactions(
            user_id, limit=INSIGHT_TRANSACTION_LIMIT
        )
        patterns = analyze_spending_patterns(transactions, self._today())
        insights = await generate_financial_insights(self._ai_client, transactions)
        high_spending = high_spending_insight(patterns)
        if high_spending is not None:
            insights.append(high_spending)

        self._logger.bind(user_id=user_id, insights=len(insights)).info(
            "Generated {} insights for user {}", len(insights), user_id
        )
        return {
            "insights": [insight.to_dict() for insight in insights],
            "patterns": [pattern.to_dict() for pattern in patterns],
        }
