# src/concierge/llm/providers/openai_provider.py
#
# OpenAIProvider：以 OpenAI Python SDK 的 Chat Completions 實作 BaseProvider
# system 角色放旅遊顧問 persona；top_k 不支援，直接忽略

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from openai import OpenAI

from ..normalize import estimated_usage, usage_from_any
from ..types import LLMResponse, RequestOptions
from .base import (
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SEC,
    TRAVEL_CONCIERGE_SYSTEM_PROMPT,
    BaseProvider,
    effective_timeout,
    wrap_provider_exception,
)


class OpenAIProvider(BaseProvider):
    """
    OpenAIProvider: 封裝 OpenAI Python SDK，提供 generate_completion(prompt, options)

    Env vars (optional):
      - OPENAI_API_KEY
      - OPENAI_BASE_URL
    """

    name: str = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: str = "gpt-4o",
        default_timeout: Optional[float] = DEFAULT_TIMEOUT_SEC,
        client: Any = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self.default_model = default_model
        self.default_timeout = default_timeout

        # client 可由外部注入（測試用）；SDK client 可跨執行緒共用
        self.client = client or OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
        )

    def generate_completion(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        options = options or RequestOptions()
        model = options.model or self.default_model

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": TRAVEL_CONCIERGE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.response_format == "json":
            payload["response_format"] = {"type": "json_object"}
        if options.headers:
            payload["extra_headers"] = dict(options.headers)

        # Python SDK：timeout 可直接作為 create() 的參數
        timeout = effective_timeout(options, self.default_timeout)
        if timeout is not None:
            payload["timeout"] = timeout

        try:
            resp = self.client.chat.completions.create(**payload)
            choice = resp.choices[0]
            text = choice.message.content or ""
        except Exception as e:
            raise wrap_provider_exception(self.name, model, e) from e

        usage = usage_from_any(getattr(resp, "usage", None)) or estimated_usage(prompt, text)

        return LLMResponse(
            text=text,
            provider=self.name,
            model=model,
            usage=usage,
            metadata={
                "id": getattr(resp, "id", None),
                "finish_reason": getattr(choice, "finish_reason", None),
            },
        )
