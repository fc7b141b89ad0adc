# src/concierge/llm/normalize.py
from __future__ import annotations

import math
from typing import Any, Optional

from .types import LLMUsage


def estimate_tokens(text: str) -> int:
    """
    以字元長度粗估 token 數：ceil(len / 4)。
    僅供 provider 沒回報 usage 時使用，不是精確計數。
    """
    return math.ceil(len(text or "") / 4)


def estimated_usage(prompt: str, completion: str) -> LLMUsage:
    prompt_tokens = estimate_tokens(prompt)
    completion_tokens = estimate_tokens(completion)
    return LLMUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        estimated=True,
    )


def _get(obj: Any, *names: str) -> Optional[int]:
    for n in names:
        v = obj.get(n) if isinstance(obj, dict) else getattr(obj, n, None)
        if isinstance(v, int) and not isinstance(v, bool):
            return v
    return None


def usage_from_any(usage_any: Any) -> Optional[LLMUsage]:
    """
    把 SDK 物件或 dict 形式的 usage 轉成 LLMUsage。
    支援 OpenAI（prompt_tokens/completion_tokens）、Anthropic（input_tokens/output_tokens）、
    Gemini REST（promptTokenCount/candidatesTokenCount）的欄位名稱。
    無法取得 prompt/completion 數字時回傳 None，由呼叫端決定是否估算。
    """
    if usage_any is None:
        return None

    if isinstance(usage_any, LLMUsage):
        return usage_any

    prompt_tokens = _get(usage_any, "prompt_tokens", "input_tokens", "promptTokenCount")
    completion_tokens = _get(usage_any, "completion_tokens", "output_tokens", "candidatesTokenCount")
    if prompt_tokens is None or completion_tokens is None:
        return None

    total_tokens = _get(usage_any, "total_tokens", "totalTokenCount")
    if total_tokens is None:
        total_tokens = prompt_tokens + completion_tokens

    return LLMUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
    )
