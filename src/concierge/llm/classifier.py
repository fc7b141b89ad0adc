# src/concierge/llm/classifier.py
# 任務複雜度分類：關鍵字 + 長度啟發式
#   規則依序比對，先命中者勝（越前面越複雜）
#   純函式，不做 I/O

from __future__ import annotations

from typing import Tuple

from .types import TaskComplexity


TRAVEL_PLAN_PHRASES: Tuple[str, ...] = (
    "itinerary",
    "plan my trip",
    "travel plan",
    "detailed plan",
)

COMPLEX_INDICATORS: Tuple[str, ...] = (
    "analyze",
    "compare",
    "evaluate",
    "explain in detail",
    "specific recommendations",
    "comprehensive",
    "create a guide",
    "budget breakdown",
)

MODERATE_INDICATORS: Tuple[str, ...] = (
    "list",
    "summarize",
    "review",
    "describe",
    "suggestions",
    "recommendations",
)

COMPLEX_TOKEN_THRESHOLD = 50
MODERATE_TOKEN_THRESHOLD = 20


class TaskClassifier:
    def classify(self, prompt: str) -> TaskComplexity:
        text = (prompt or "").lower()

        # 完整行程規劃一律視為 COMPLEX
        if _contains_any(text, TRAVEL_PLAN_PHRASES):
            return TaskComplexity.COMPLEX

        token_count = len(text.split())

        if _contains_any(text, COMPLEX_INDICATORS) or token_count > COMPLEX_TOKEN_THRESHOLD:
            return TaskComplexity.COMPLEX

        if _contains_any(text, MODERATE_INDICATORS) or token_count > MODERATE_TOKEN_THRESHOLD:
            return TaskComplexity.MODERATE

        return TaskComplexity.SIMPLE


def _contains_any(text: str, phrases: Tuple[str, ...]) -> bool:
    return any(p in text for p in phrases)
