# src/concierge/llm/providers/base.py
# BaseProvider：抽象介面
# 每個 vendor 一個 adapter（OpenAI / Claude / Gemini / Mock），對 router 提供同一個
# generate_completion(prompt, options) -> LLMResponse
# adapter 只負責「呼叫一次 + 正規化 + 包錯誤」；重試與 fallback 交給 router

from __future__ import annotations

import socket
from typing import Any, Optional, Protocol, runtime_checkable

from ..errors import ProviderError, ProviderRateLimitError, ProviderTimeoutError
from ..retry import is_retriable_exception
from ..types import LLMResponse, RequestOptions

TRAVEL_CONCIERGE_SYSTEM_PROMPT = (
    "You are a helpful AI travel concierge that assists with travel planning and recommendations."
)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SEC = 60.0


@runtime_checkable
class BaseProvider(Protocol):
    """
    LLM Provider 抽象介面（Protocol）
    可以用繼承實作，也可以直接寫 class 只要符合方法簽名即可。
    """

    name: str  # e.g. "openai", "anthropic", "google"

    def generate_completion(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        """
        - options.model 有值就用，否則用 provider 預設模型
        - 失敗一律丟 ProviderError（含 timeout），不在此重試
        """
        ...


def is_provider(obj: Any) -> bool:
    return isinstance(obj, BaseProvider)


def effective_timeout(options: RequestOptions, default: Optional[float]) -> Optional[float]:
    return options.timeout_sec if options.timeout_sec is not None else default


def wrap_provider_exception(provider: str, model: Optional[str], e: BaseException) -> ProviderError:
    """把 SDK / HTTP / 解析錯誤轉成 ProviderError（保留 provider 名稱與原始訊息）。"""
    if isinstance(e, ProviderError):
        return e

    msg = str(e) or type(e).__name__
    lowered = msg.lower()

    if isinstance(e, (TimeoutError, socket.timeout)) or "timeout" in lowered or "timed out" in lowered:
        return ProviderTimeoutError(provider, msg, model=model, retriable=True)
    if "rate limit" in lowered or "429" in lowered:
        return ProviderRateLimitError(provider, msg, model=model, retriable=True)
    return ProviderError(provider, msg, model=model, retriable=is_retriable_exception(e))
