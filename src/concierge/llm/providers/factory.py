# src/concierge/llm/providers/factory.py
# ProviderRegistry：由 (credential, adapter factory) 宣告表建立 adapter
#   沒有 credential 的 provider 不註冊，其模型也不會被選到（不是錯誤）
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from ..config import RouterConfig, load_router_config
from .base import BaseProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    name: str                                            # 與 ModelConfig.provider 對應
    label: str                                           # log 用
    credential: Callable[[RouterConfig], Optional[Any]]
    build: Callable[[RouterConfig], BaseProvider]


def _build_openai(cfg: RouterConfig) -> BaseProvider:
    from .openai_provider import OpenAIProvider

    return OpenAIProvider(api_key=cfg.openai_api_key, base_url=cfg.openai_base_url, default_timeout=cfg.timeout_sec)


def _build_claude(cfg: RouterConfig) -> BaseProvider:
    from .claude_provider import ClaudeProvider

    return ClaudeProvider(api_key=cfg.anthropic_api_key, default_timeout=cfg.timeout_sec)


def _build_gemini(cfg: RouterConfig) -> BaseProvider:
    from .gemini_provider import GeminiProvider

    return GeminiProvider(api_key=cfg.gemini_api_key, base_url=cfg.gemini_base_url, default_timeout=cfg.timeout_sec)


def _build_mock(cfg: RouterConfig) -> BaseProvider:
    from .mock_provider import MockProvider

    return MockProvider("mock")


DEFAULT_PROVIDER_SPECS: Sequence[ProviderSpec] = (
    ProviderSpec("openai", "OpenAI", lambda c: c.openai_api_key, _build_openai),
    ProviderSpec("anthropic", "Claude (Anthropic)", lambda c: c.anthropic_api_key, _build_claude),
    ProviderSpec("google", "Gemini (Google)", lambda c: c.gemini_api_key, _build_gemini),
    ProviderSpec("mock", "Mock", lambda c: c.enable_mock, _build_mock),
)


class ProviderRegistry:
    def __init__(self, providers: Dict[str, BaseProvider]):
        self._providers = dict(providers)

    @classmethod
    def from_config(
        cls,
        cfg: RouterConfig,
        specs: Sequence[ProviderSpec] = DEFAULT_PROVIDER_SPECS,
    ) -> "ProviderRegistry":
        providers: Dict[str, BaseProvider] = {}
        labels = []

        for spec in specs:
            if not spec.credential(cfg):
                continue
            logger.info("LLMRouter: Initializing %s provider", spec.label)
            providers[spec.name] = spec.build(cfg)
            labels.append(spec.label)

        if not providers:
            logger.warning("LLMRouter: No API keys provided for any LLM providers. Router will not function.")
        else:
            logger.info("LLMRouter: Initialized with providers: %s", ", ".join(labels))

        return cls(providers)

    @property
    def providers(self) -> Dict[str, BaseProvider]:
        return dict(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


def build_router(app_config: Optional[Dict[str, Any]] = None, *, logger: Optional[Any] = None):
    """
    依 concierge.toml 的 [llm]（或環境變數）建立 LLMRouter。
    app_config 為 None 時只看環境變數。
    """
    from ..router import LLMRouter

    cfg = load_router_config(app_config)
    registry = ProviderRegistry.from_config(cfg)
    return LLMRouter(registry.providers, config=cfg, logger=logger)
