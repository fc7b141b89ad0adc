# src/concierge/llm/providers/gemini_provider.py
from __future__ import annotations

import json
import os
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, Optional

from ..errors import ProviderError
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

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
READ_CHUNK_BYTES = 64 * 1024


class GeminiProvider(BaseProvider):
    """
    Gemini Provider（對應 Generative Language REST API）
    - 呼叫 POST {base_url}/models/{model}:generateContent
    - persona 直接接在 user 內容前面（不走 systemInstruction）
    - 有 usageMetadata 就用；沒有時以 ceil(len/4) 估算 token（usage.estimated=True）
    - timeout：urlopen 的 timeout 只限制單次 socket 操作，body 改成分段讀取並檢查整體耗時；
      超過 timeout 即丟 TimeoutError（最壞情況多等一次 socket timeout）

    環境變數建議：
      GEMINI_API_KEY=...
      GEMINI_BASE_URL=https://generativelanguage.googleapis.com/v1beta
    """

    name: str = "google"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: str = "gemini-2.0-flash",
        default_timeout: Optional[float] = DEFAULT_TIMEOUT_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.base_url = (base_url or os.getenv("GEMINI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.default_model = default_model
        self.default_timeout = default_timeout
        self._clock = clock

    def generate_completion(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        options = options or RequestOptions()
        model = options.model or self.default_model
        content = f"{TRAVEL_CONCIERGE_SYSTEM_PROMPT}\n\n{prompt}"

        generation_config: Dict[str, Any] = {
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.top_k is not None:
            generation_config["topK"] = options.top_k
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.response_format == "json":
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": content}]}],
            "generationConfig": generation_config,
        }

        url = f"{self.base_url}/models/{urllib.parse.quote(model, safe='')}:generateContent"
        timeout = effective_timeout(options, self.default_timeout)

        try:
            raw = self._post_json(url, payload, timeout=timeout, headers=options.headers)
            text = self._extract_text(raw, model)
        except ProviderError:
            raise
        except Exception as e:
            raise wrap_provider_exception(self.name, model, e) from e

        usage = usage_from_any(raw.get("usageMetadata")) or estimated_usage(content, text)

        return LLMResponse(
            text=text,
            provider=self.name,
            model=model,
            usage=usage,
            metadata={"finish_reason": self._finish_reason(raw)},
        )

    # -------------------------
    # internal helpers
    # -------------------------

    def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        timeout: Optional[float],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req_headers = {"Content-Type": "application/json"}
        if self.api_key:
            req_headers["x-goog-api-key"] = self.api_key
        req_headers.update(headers or {})

        req = urllib.request.Request(url=url, data=data, headers=req_headers, method="POST")
        started = self._clock()
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                body = self._read_body(resp, started=started, timeout=timeout)
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else str(e)
            raise RuntimeError(f"Gemini HTTPError {e.code}: {body}") from e
        except urllib.error.URLError as e:
            raise RuntimeError(f"Gemini URLError: {e.reason}") from e

        try:
            raw = json.loads(body)
        except ValueError as e:
            raise RuntimeError(f"Gemini returned non-JSON body: {body[:200]}") from e
        if not isinstance(raw, dict):
            raise RuntimeError("Gemini returned unexpected payload shape.")
        return raw

    def _read_body(self, resp: Any, *, started: float, timeout: Optional[float]) -> str:
        chunks = []
        while True:
            chunk = resp.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            chunks.append(chunk)
            if timeout is not None and self._clock() - started > timeout:
                raise TimeoutError(f"Gemini response exceeded total timeout of {timeout}s")
        return b"".join(chunks).decode("utf-8", errors="replace")

    def _extract_text(self, raw: Dict[str, Any], model: str) -> str:
        # 常見回傳形狀：
        # {
        #   "candidates": [{"content": {"parts": [{"text": "..."}], "role": "model"}, "finishReason": "STOP"}],
        #   "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 34, "totalTokenCount": 46},
        #   "promptFeedback": {"blockReason": "SAFETY"}   # 被擋時才有
        # }
        candidates = raw.get("candidates") or []
        if not candidates:
            reason = (raw.get("promptFeedback") or {}).get("blockReason")
            raise ProviderError(self.name, f"no candidates returned (blockReason={reason})", model=model)

        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

    def _finish_reason(self, raw: Dict[str, Any]) -> str:
        block_reason = (raw.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            return block_reason
        candidates = raw.get("candidates") or [{}]
        return (candidates[0] or {}).get("finishReason") or "STOP"
