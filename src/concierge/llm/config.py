# src/concierge/llm/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .model_configs import MOCK_MODEL_CONFIG, find_model_config, load_model_configs
from .types import ModelConfig

CACHE_KEY_MODES = ("prompt", "prompt+options")


@dataclass(frozen=True)
class RouterConfig:
    timeout_sec: float = 60.0
    max_retries: int = 0
    retry_backoff: float = 1.5
    retry_jitter: float = 0.1

    # cache
    cache_ttl_sec: float = 3600.0
    cache_sweep_interval_sec: float = 60.0
    cache_key_mode: str = "prompt"

    # 主流程意外中斷時依序直接呼叫的 provider
    last_resort_providers: Tuple[str, ...] = ("openai", "google")

    # credentials（沒有 key 的 provider 不會被註冊）
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    gemini_base_url: Optional[str] = None
    enable_mock: bool = False

    models: Tuple[ModelConfig, ...] = ()


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def load_router_config(app_config: Optional[Dict[str, Any]] = None) -> RouterConfig:
    """
    讀取順序：concierge.toml 的 [llm] 表格 > 環境變數（.env 由 log_helper 載入）。

        [llm]
        timeout_sec = 60
        max_retries = 0
        cache_ttl_sec = 3600

        [llm.openai]
        api_key = "..."

        [llm.anthropic]
        api_key = "..."

        [llm.gemini]
        api_key = "..."
    """
    llm_cfg = (app_config or {}).get("llm") or {}
    if not isinstance(llm_cfg, dict):
        raise RuntimeError("[llm] in concierge.toml must be a table.")

    openai_cfg = llm_cfg.get("openai") or {}
    anthropic_cfg = llm_cfg.get("anthropic") or {}
    gemini_cfg = llm_cfg.get("gemini") or {}

    timeout = float(llm_cfg.get("timeout_sec", os.getenv("CONCIERGE_LLM_TIMEOUT", "60")))
    max_retries = int(llm_cfg.get("max_retries", os.getenv("CONCIERGE_LLM_MAX_RETRIES", "0")))
    backoff = float(llm_cfg.get("retry_backoff", 1.5))
    jitter = float(llm_cfg.get("retry_jitter", 0.1))

    cache_ttl = float(llm_cfg.get("cache_ttl_sec", os.getenv("CONCIERGE_CACHE_TTL", "3600")))
    sweep_interval = float(llm_cfg.get("cache_sweep_interval_sec", 60))
    cache_key_mode = str(llm_cfg.get("cache_key_mode", "prompt")).lower()
    if cache_key_mode not in CACHE_KEY_MODES:
        raise RuntimeError(f"Unknown llm.cache_key_mode: {cache_key_mode!r}")

    last_resort = tuple(str(p).lower() for p in llm_cfg.get("last_resort_providers", ("openai", "google")))

    enable_mock = bool(llm_cfg.get("enable_mock", _env_bool("CONCIERGE_LLM_MOCK")))

    models = load_model_configs(llm_cfg.get("models"))
    if enable_mock and find_model_config(models, "mock") is None:
        models = models + (MOCK_MODEL_CONFIG,)

    return RouterConfig(
        timeout_sec=timeout,
        max_retries=max_retries,
        retry_backoff=backoff,
        retry_jitter=jitter,
        cache_ttl_sec=cache_ttl,
        cache_sweep_interval_sec=sweep_interval,
        cache_key_mode=cache_key_mode,
        last_resort_providers=last_resort,
        openai_api_key=openai_cfg.get("api_key") or os.getenv("OPENAI_API_KEY"),
        openai_base_url=openai_cfg.get("base_url") or os.getenv("OPENAI_BASE_URL"),
        anthropic_api_key=anthropic_cfg.get("api_key") or os.getenv("ANTHROPIC_API_KEY"),
        gemini_api_key=gemini_cfg.get("api_key") or os.getenv("GEMINI_API_KEY"),
        gemini_base_url=gemini_cfg.get("base_url") or os.getenv("GEMINI_BASE_URL"),
        enable_mock=enable_mock,
        models=models,
    )
