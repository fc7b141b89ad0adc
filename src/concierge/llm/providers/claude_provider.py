# src/concierge/llm/providers/claude_provider.py
#
# ClaudeProvider：以 Anthropic Python SDK 的 Messages API 實作 BaseProvider
# persona 走獨立的 system 參數；max_tokens 為必填，未指定時用 1024

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

import anthropic

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

DEFAULT_MAX_TOKENS = 1024


class ClaudeProvider(BaseProvider):
    """
    Env vars (optional):
      - ANTHROPIC_API_KEY
    """

    name: str = "anthropic"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        default_model: str = "claude-3-7-sonnet-20250219",
        default_timeout: Optional[float] = DEFAULT_TIMEOUT_SEC,
        client: Any = None,
    ):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.default_model = default_model
        self.default_timeout = default_timeout
        self.client = client or anthropic.Anthropic(api_key=self.api_key)

    def generate_completion(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        options = options or RequestOptions()
        model = options.model or self.default_model

        payload: Dict[str, Any] = {
            "model": model,
            "system": TRAVEL_CONCIERGE_SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.top_k is not None:
            payload["top_k"] = options.top_k
        if options.headers:
            payload["extra_headers"] = dict(options.headers)

        timeout = effective_timeout(options, self.default_timeout)
        if timeout is not None:
            payload["timeout"] = timeout

        try:
            resp = self.client.messages.create(**payload)
            text = self._extract_text(resp)
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
                "type": getattr(resp, "type", None),
                "stop_reason": getattr(resp, "stop_reason", None),
            },
        )

    def _extract_text(self, resp: Any) -> str:
        """
        Messages API 的 content 是 block 陣列；取 text block 串起來。
        沒有 text block 時把整個 content 轉成 JSON 字串當保底。
        """
        blocks = getattr(resp, "content", None) or []
        texts = [b.text for b in blocks if isinstance(getattr(b, "text", None), str)]
        if texts:
            return "".join(texts)
        if not blocks:
            return ""
        return json.dumps([getattr(b, "model_dump", lambda: str(b))() for b in blocks], default=str)
