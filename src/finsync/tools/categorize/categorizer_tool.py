from __future__ import annotations

from collections.abc import Sequence
import re
from typing import Protocol

import loguru
from loguru import logger
from pydantic import BaseModel, Field

from finsync.infra.clients.ai import AIClient, AIClientError
from finsync.tools.categorize.categories import (
    CATEGORY_DESCRIPTIONS,
    KEYWORD_TABLE,
    OTHER_CATEGORY,
    match_allowed_category,
)

AI_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.3
FALLBACK_TAG = "fallback"

_LABEL_NOISE = re.compile(r"[^a-zA-Z\s&]")


class CategorizationResult(BaseModel):
    """Category suggestion for a single transaction."""

    category: str = Field(..., description="Category label")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score")
    tags: list[str] = Field(default_factory=list, description="Provenance tags")

    @property
    def is_fallback(self) -> bool:
        return FALLBACK_TAG in self.tags


class CategorizerLogger:
    """Handles all logging for the categorizer with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def ai_skipped(self) -> None:
        self._logger.debug("AI backend not configured, using keyword heuristic")

    def ai_failed(self, description: str, error: Exception) -> None:
        self._logger.bind(description=description, error=str(error)).warning(
            "AI categorization failed for {!r}, deferring: {}", description, error
        )

    def ai_rejected(self, description: str, label: str) -> None:
        self._logger.bind(description=description, label=label).warning(
            "AI returned unknown category {!r} for {!r}, deferring", label, description
        )

    def categorized(self, description: str, result: CategorizationResult) -> None:
        self._logger.bind(
            description=description,
            category=result.category,
            confidence=result.confidence,
        ).debug("Categorized {!r} as {}", description, result.category)


class CategorizationStrategy(Protocol):
    """One link of the categorization chain; ``None`` defers to the next."""

    async def categorize(
        self, description: str, amount: float
    ) -> CategorizationResult | None: ...


def format_amount(amount: float) -> str:
    """Render an amount without trailing zeros, e.g. 6 -> "6", 6.5 -> "6.5"."""
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def build_categorization_messages(
    description: str, amount: float
) -> list[dict[str, str]]:
    catalogue = "\n".join(
        f"{name} - {summary}" for name, summary in CATEGORY_DESCRIPTIONS.items()
    )
    system = (
        "You are a financial transaction categorizer. "
        "Categorize the transaction into one of these categories:\n\n"
        f"{catalogue}\n\n"
        "Respond with ONLY the category name."
    )
    user = f'Transaction: "{description}" Amount: ${format_amount(amount)}'
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def clean_label(response: str) -> str:
    """First line of the response with everything but letters, spaces and
    ``&`` removed."""
    lines = response.strip().splitlines()
    first = lines[0] if lines else ""
    return _LABEL_NOISE.sub("", first).strip()


def heuristic_category(description: str) -> str:
    """First category in the keyword table whose keyword occurs in
    ``description``; "Other" when nothing matches."""
    text = description.lower()
    for category, keywords in KEYWORD_TABLE:
        if any(keyword in text for keyword in keywords):
            return category
    return OTHER_CATEGORY


class AIStrategy:
    def __init__(
        self, client: AIClient, *, logger_instance: CategorizerLogger | None = None
    ) -> None:
        self._client = client
        self._logger = logger_instance or CategorizerLogger()

    async def categorize(
        self, description: str, amount: float
    ) -> CategorizationResult | None:
        if not self._client.configured:
            self._logger.ai_skipped()
            return None

        try:
            response = await self._client.complete(
                build_categorization_messages(description, amount)
            )
        except AIClientError as e:
            self._logger.ai_failed(description, e)
            return None

        label = clean_label(response)
        category = match_allowed_category(label) if label else None
        if category is None:
            self._logger.ai_rejected(description, label)
            return None

        return CategorizationResult(
            category=category,
            confidence=AI_CONFIDENCE,
            tags=[category.lower()],
        )


class HeuristicStrategy:
    """Keyword fallback. Always answers."""

    async def categorize(
        self, description: str, amount: float
    ) -> CategorizationResult | None:
        return self.categorize_now(description)

    def categorize_now(self, description: str) -> CategorizationResult:
        return CategorizationResult(
            category=heuristic_category(description),
            confidence=FALLBACK_CONFIDENCE,
            tags=[FALLBACK_TAG],
        )


class Categorizer:
    """Runs strategies in order and returns the first answer.

    The keyword heuristic always closes the chain, so ``categorize`` never
    fails.
    """

    def __init__(
        self,
        strategies: Sequence[CategorizationStrategy] = (),
        *,
        logger_instance: CategorizerLogger | None = None,
    ) -> None:
        self._strategies = list(strategies)
        self._heuristic = HeuristicStrategy()
        self._logger = logger_instance or CategorizerLogger()

    @classmethod
    def with_ai(cls, client: AIClient) -> Categorizer:
        return cls([AIStrategy(client)])

    async def categorize(self, description: str, amount: float) -> CategorizationResult:
        for strategy in self._strategies:
            result = await strategy.categorize(description, amount)
            if result is not None:
                self._logger.categorized(description, result)
                return result

        result = self._heuristic.categorize_now(description)
        self._logger.categorized(description, result)
        return result
