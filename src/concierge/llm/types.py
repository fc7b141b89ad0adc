# src/concierge/llm/types.py
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .errors import RequestValidationError

CAPABILITY_MIN = 0
CAPABILITY_MAX = 10


class TaskComplexity(str, Enum):
    SIMPLE = "SIMPLE"
    MODERATE = "MODERATE"
    COMPLEX = "COMPLEX"


class FallbackStrategy(str, Enum):
    COST_ASCENDING = "cost-ascending"
    CAPABILITY_DESCENDING = "capability-descending"
    SPECIFIC_MODELS = "specific-models"
    DEFAULT_WEIGHTED = "default-weighted"


@dataclass(frozen=True)
class ModelCapabilities:
    speed: int
    knowledge: int
    reasoning: int
    creativity: int

    def total(self) -> int:
        return self.speed + self.knowledge + self.reasoning + self.creativity

    def meets(self, floor: Dict[str, int]) -> bool:
        """floor 內的每個欄位都必須 >= 門檻。"""
        return all(getattr(self, k) >= v for k, v in floor.items())


CAPABILITY_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(ModelCapabilities))


@dataclass(frozen=True)
class ModelConfig:
    provider: str                 # e.g. "openai" / "anthropic" / "google"
    name: str                     # vendor model id
    capabilities: ModelCapabilities
    cost_per_input_token: float
    cost_per_output_token: float
    max_context_tokens: int

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.name}"

    @property
    def combined_cost(self) -> float:
        return self.cost_per_input_token + self.cost_per_output_token

    @property
    def cost_per_1k(self) -> float:
        return self.combined_cost * 1000


@dataclass(frozen=True)
class RequestOptions:
    """
    單次 route_prompt 的呼叫參數。

    - model / preferred_model / preferred_provider: 指定模型或 provider
    - min_capability: 能力下限（部分欄位即可），會覆蓋任務複雜度推得的門檻
    - temperature / max_tokens / top_p / top_k: 轉給 provider；不支援的參數由 adapter 忽略
    - max_cost: (input + output) 每 1000 tokens 成本上限
    - fallback_strategy: None 表示預設的加權排序
    - fallback_models: specific-models 策略時必填（"provider:name" 或 "name"）
    - timeout_sec: 單次 provider 呼叫逾時；None 時用 RouterConfig.timeout_sec
    - response_format: "text" | "json"
    - headers: 額外 HTTP headers（provider 支援才帶）
    """

    model: Optional[str] = None
    preferred_model: Optional[str] = None
    preferred_provider: Optional[str] = None
    min_capability: Optional[Dict[str, int]] = None

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None

    max_cost: Optional[float] = None
    fallback_strategy: Optional[FallbackStrategy] = None
    fallback_models: Optional[Sequence[str]] = None

    timeout_sec: Optional[float] = None
    response_format: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    def validate(self) -> "RequestOptions":
        """檢查參數；回傳已正規化（fallback_strategy 轉為 enum）的 options。"""
        strategy = self.fallback_strategy
        if strategy is not None and not isinstance(strategy, FallbackStrategy):
            try:
                strategy = FallbackStrategy(strategy)
            except ValueError:
                raise RequestValidationError(f"Unknown fallback_strategy: {strategy!r}") from None

        # 單一字串會被逐字元迭代，必須是 list/tuple
        if isinstance(self.fallback_models, (str, bytes)):
            raise RequestValidationError(
                f"fallback_models must be a list of model names, got string {self.fallback_models!r}"
            )

        if strategy is FallbackStrategy.SPECIFIC_MODELS and not self.fallback_models:
            raise RequestValidationError(
                "fallback_models must be a non-empty list when using the specific-models strategy"
            )

        if self.min_capability:
            for k, v in self.min_capability.items():
                if k not in CAPABILITY_FIELDS:
                    raise RequestValidationError(f"Unknown capability in min_capability: {k!r}")
                if not isinstance(v, int) or isinstance(v, bool):
                    raise RequestValidationError(f"min_capability.{k} must be an integer, got {v!r}")

        if self.max_tokens is not None and self.max_tokens <= 0:
            raise RequestValidationError("max_tokens must be positive")
        if self.timeout_sec is not None and self.timeout_sec <= 0:
            raise RequestValidationError("timeout_sec must be positive")
        if self.max_cost is not None and self.max_cost < 0:
            raise RequestValidationError("max_cost must not be negative")
        if self.response_format not in (None, "text", "json"):
            raise RequestValidationError(f"Unsupported response_format: {self.response_format!r}")

        if strategy is self.fallback_strategy:
            return self
        return replace(self, fallback_strategy=strategy)


@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False         # True：以字元長度估算，非 provider 回報
    cost: Optional[float] = None    # 依 ModelConfig 單價估算


@dataclass(frozen=True)
class LLMResponse:
    text: str
    provider: str
    model: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # 回應會被快取並共用，metadata 包成唯讀 view
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
