# src/concierge/llm/providers/mock_provider.py
from __future__ import annotations

import json
import threading
from typing import List, Optional, Tuple

from ..errors import ProviderError, ProviderTimeoutError
from ..normalize import estimated_usage
from ..types import LLMResponse, RequestOptions


class MockProvider:
    """
    供本機/CI 測試用的 Mock Provider。

    特色：
    - 不需要任何金鑰
    - 預設回傳固定的 JSON 字串（旅遊建議形狀）
    - mode 可切換失敗情境：
        "ok"      正常回傳
        "error"   丟 ProviderError（一般失敗，router 會換下一個）
        "timeout" 丟 ProviderTimeoutError
        "crash"   丟非 ProviderError 的例外（模擬 adapter 本身的 bug）
    - calls 記錄每次呼叫的 (prompt, options)，方便測試計數與順序
    """

    def __init__(
        self,
        name: str = "mock",
        *,
        text: Optional[str] = None,
        mode: str = "ok",
        default_model: str = "mock-travel-1",
        call_log: Optional[List[str]] = None,
    ):
        self.name = name
        self.text = text
        self.mode = mode
        self.default_model = default_model
        self.calls: List[Tuple[str, RequestOptions]] = []
        # 多個 mock 共用同一個 call_log，可用來驗證跨 provider 的呼叫順序
        self.call_log = call_log
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def generate_completion(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        options = options or RequestOptions()
        model = options.model or self.default_model

        with self._lock:
            self.calls.append((prompt, options))
            if self.call_log is not None:
                self.call_log.append(f"{self.name}:{model}")

        mode = str(self.mode).lower()
        if mode == "error":
            raise ProviderError(self.name, "mock failure", model=model)
        if mode == "timeout":
            raise ProviderTimeoutError(self.name, "mock request timed out", model=model, retriable=True)
        if mode == "crash":
            raise RuntimeError(f"mock provider {self.name} crashed")

        text = self.text if self.text is not None else self._default_text(prompt)
        return LLMResponse(
            text=text,
            provider=self.name,
            model=model,
            usage=estimated_usage(prompt, text),
            metadata={"finish_reason": "stop", "mock": True},
        )

    def _default_text(self, prompt: str) -> str:
        payload = {
            "provider": self.name,
            "summary": "Here are some travel suggestions.",
            "prompt_chars": len(prompt),
        }
        return json.dumps(payload, ensure_ascii=False)
