# src/concierge/llm/model_configs.py
# 模型能力設定：provider / name / 能力分數 / 單價 / context window
#   啟動時載入一次，之後不可變更（要換就整組替換）
#   載入時驗證，不合法直接丟 ConfigurationError，不做 clamp

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .types import CAPABILITY_FIELDS, CAPABILITY_MAX, CAPABILITY_MIN, ModelCapabilities, ModelConfig


DEFAULT_MODEL_CONFIGS: Tuple[ModelConfig, ...] = (
    ModelConfig(
        provider="openai",
        name="gpt-4o",
        capabilities=ModelCapabilities(speed=8, knowledge=9, reasoning=9, creativity=9),
        cost_per_input_token=0.000005,
        cost_per_output_token=0.000015,
        max_context_tokens=128000,
    ),
    ModelConfig(
        provider="anthropic",
        name="claude-3-7-sonnet-20250219",
        capabilities=ModelCapabilities(speed=8, knowledge=8, reasoning=8, creativity=8),
        cost_per_input_token=0.000005,
        cost_per_output_token=0.000015,
        max_context_tokens=200000,
    ),
    ModelConfig(
        provider="google",
        name="gemini-2.0-flash",
        capabilities=ModelCapabilities(speed=10, knowledge=7, reasoning=7, creativity=7),
        cost_per_input_token=0.000001,
        cost_per_output_token=0.000002,
        max_context_tokens=128000,
    ),
)


def validate_model_configs(configs: Iterable[ModelConfig]) -> Tuple[ModelConfig, ...]:
    seen = set()
    out: List[ModelConfig] = []

    for cfg in configs:
        if not cfg.provider or not cfg.name:
            raise ConfigurationError(f"Model config requires provider and name: {cfg!r}")

        if cfg.key in seen:
            raise ConfigurationError(f"Duplicate model config: {cfg.key}")
        seen.add(cfg.key)

        for label, cost in (("cost_per_input_token", cfg.cost_per_input_token),
                            ("cost_per_output_token", cfg.cost_per_output_token)):
            if not isinstance(cost, (int, float)) or math.isnan(cost) or cost < 0:
                raise ConfigurationError(f"{cfg.key}: {label} must be a non-negative number, got {cost!r}")

        if not isinstance(cfg.max_context_tokens, int) or cfg.max_context_tokens <= 0:
            raise ConfigurationError(
                f"{cfg.key}: max_context_tokens must be a positive integer, got {cfg.max_context_tokens!r}"
            )

        for cap in CAPABILITY_FIELDS:
            score = getattr(cfg.capabilities, cap)
            if not isinstance(score, int) or isinstance(score, bool) or not (CAPABILITY_MIN <= score <= CAPABILITY_MAX):
                raise ConfigurationError(
                    f"{cfg.key}: capability {cap}={score!r} is outside {CAPABILITY_MIN}..{CAPABILITY_MAX}"
                )

        out.append(cfg)

    return tuple(out)


def model_config_from_dict(d: Mapping[str, Any]) -> ModelConfig:
    """
    由 toml 的 [[llm.models]] 表格建立 ModelConfig：

        [[llm.models]]
        provider = "openai"
        name = "gpt-4o-mini"
        capabilities = { speed = 9, knowledge = 7, reasoning = 7, creativity = 7 }
        cost_per_input_token = 0.00000015
        cost_per_output_token = 0.0000006
        max_context_tokens = 128000
    """
    try:
        caps = d["capabilities"]
        missing = [c for c in CAPABILITY_FIELDS if c not in caps]
        if missing:
            raise ConfigurationError(f"Model config {d.get('name')!r} missing capabilities: {missing}")

        return ModelConfig(
            provider=str(d["provider"]).lower(),
            name=str(d["name"]),
            capabilities=ModelCapabilities(**{c: caps[c] for c in CAPABILITY_FIELDS}),
            cost_per_input_token=d["cost_per_input_token"],
            cost_per_output_token=d["cost_per_output_token"],
            max_context_tokens=d["max_context_tokens"],
        )
    except KeyError as e:
        raise ConfigurationError(f"Model config missing field: {e.args[0]}") from e


def load_model_configs(overrides: Optional[Sequence[Mapping[str, Any]]] = None) -> Tuple[ModelConfig, ...]:
    """
    回傳已驗證的模型設定。
    overrides 有值時整組取代預設（不做逐筆 patch）。
    """
    if not overrides:
        return validate_model_configs(DEFAULT_MODEL_CONFIGS)
    return validate_model_configs(model_config_from_dict(d) for d in overrides)


def find_model_config(configs: Iterable[ModelConfig], provider: str) -> Optional[ModelConfig]:
    for cfg in configs:
        if cfg.provider == provider:
            return cfg
    return None


# enable_mock 時使用：能力給足，成本為 0，任何複雜度都能選到
MOCK_MODEL_CONFIG = ModelConfig(
    provider="mock",
    name="mock-travel-1",
    capabilities=ModelCapabilities(speed=10, knowledge=10, reasoning=10, creativity=10),
    cost_per_input_token=0.0,
    cost_per_output_token=0.0,
    max_context_tokens=128000,
)
