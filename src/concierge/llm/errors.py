# src/concierge/llm/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

# 給 HTTP 層用：AllProvidersFailedError 不要把 vendor 錯誤訊息直接丟給使用者
USER_FACING_UNAVAILABLE_MESSAGE = (
    "The travel assistant is temporarily unavailable. Please try again in a moment."
)


class LLMError(RuntimeError):
    pass


class ConfigurationError(LLMError):
    pass


class RequestValidationError(LLMError):
    pass


class NoEligibleModelsError(LLMError):
    pass


class ProviderError(LLMError):
    """單一 provider 呼叫失敗（網路、認證、回應格式、逾時）。"""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        model: Optional[str] = None,
        retriable: bool = False,
    ):
        self.provider = provider
        self.model = model
        self.retriable = retriable
        super().__init__(f"{provider} API error: {message}")


class ProviderTimeoutError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    pass


@dataclass(frozen=True)
class ProviderAttempt:
    provider: str
    model: str
    error: str


class AllProvidersFailedError(LLMError):
    def __init__(self, attempts: Sequence[ProviderAttempt]):
        self.attempts: List[ProviderAttempt] = list(attempts)
        tried = ", ".join(f"{a.provider}:{a.model}" for a in self.attempts) or "none"
        super().__init__(f"All models failed to generate a response (tried: {tried})")

    @property
    def user_message(self) -> str:
        """給終端使用者看的訊息（不含 vendor 錯誤細節）。"""
        return USER_FACING_UNAVAILABLE_MESSAGE
