# src/concierge/llm/router.py

# LLMRouter：統一呼叫入口 route_prompt()
#   流程：cache → 任務分類 → 篩選模型 → 排序 → 依序嘗試 provider → 寫入 cache
#   provider 失敗只記錄並換下一個；全部失敗才丟 AllProvidersFailedError
#   主流程意外中斷（非 ProviderError）時，最後再直接試一次可靠的預設 provider
#   同一次呼叫內的 fallback 一定是循序的，不平行打多個 LLM

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import observability as obs
from .cache import ResponseCache
from .classifier import TaskClassifier
from .config import RouterConfig
from .errors import (
    AllProvidersFailedError,
    LLMError,
    NoEligibleModelsError,
    ProviderAttempt,
    ProviderError,
)
from .model_configs import find_model_config, load_model_configs, validate_model_configs
from .providers.base import BaseProvider
from .retry import call_with_retry
from .types import FallbackStrategy, LLMResponse, ModelConfig, RequestOptions, TaskComplexity

# 任務複雜度推得的能力下限；明確指定的 min_capability 逐欄覆蓋
IMPLICIT_CAPABILITY_FLOORS: Dict[TaskComplexity, Dict[str, int]] = {
    TaskComplexity.COMPLEX: {"reasoning": 8, "knowledge": 8},
    TaskComplexity.MODERATE: {"reasoning": 7, "knowledge": 7},
    TaskComplexity.SIMPLE: {},
}


class LLMRouter:
    def __init__(
        self,
        providers: Optional[Mapping[str, BaseProvider]] = None,
        *,
        model_configs: Optional[Sequence[ModelConfig]] = None,
        config: Optional[RouterConfig] = None,
        cache: Optional[ResponseCache] = None,
        classifier: Optional[TaskClassifier] = None,
        logger: Optional[Any] = None,
    ):
        self.config = config or RouterConfig()
        self._logger = logger or logging.getLogger(__name__)

        if model_configs is not None:
            self.model_configs = validate_model_configs(model_configs)
        else:
            self.model_configs = self.config.models or load_model_configs()

        self._providers: Dict[str, BaseProvider] = dict(providers or {})

        self.cache = cache or ResponseCache(
            ttl_sec=self.config.cache_ttl_sec,
            sweep_interval_sec=self.config.cache_sweep_interval_sec,
            logger=self._logger,
        )
        self.classifier = classifier or TaskClassifier()

    @classmethod
    def from_config(cls, app_config: Optional[Dict[str, Any]] = None, logger: Optional[Any] = None) -> "LLMRouter":
        """依 concierge.toml / 環境變數建立 router（只註冊有 credential 的 provider）。"""
        from .providers.factory import build_router

        return build_router(app_config, logger=logger)

    # -------------------------
    # Registration
    # -------------------------
    @property
    def providers(self) -> Dict[str, BaseProvider]:
        return dict(self._providers)

    def register_provider(self, provider: BaseProvider, model_config: Optional[ModelConfig] = None) -> None:
        """
        註冊 adapter；若帶 model_config 且尚未存在，模型設定整組替換成「原設定 + 新設定」。
        建議在開始服務前完成註冊。
        """
        if model_config is not None:
            if model_config.provider != provider.name:
                raise ValueError(
                    f"model_config.provider={model_config.provider!r} does not match provider {provider.name!r}"
                )
            if all(c.key != model_config.key for c in self.model_configs):
                self.model_configs = validate_model_configs(self.model_configs + (model_config,))

        self._providers[provider.name] = provider
        self._log("info", f"LLMRouter: registered provider {provider.name}")

    # -------------------------
    # Lifecycle
    # -------------------------
    def close(self) -> None:
        self.cache.close()

    def __enter__(self) -> "LLMRouter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------
    # Public API
    # -------------------------
    def route_prompt(self, prompt: str, options: Optional[RequestOptions] = None) -> LLMResponse:
        options = (options or RequestOptions()).validate()
        trace_id = obs.new_trace_id()
        cache_key = self._cache_key(prompt, options)

        cached = self._cache_get(trace_id, cache_key)
        if cached is not None:
            obs.log_cache_hit(trace_id, prompt)
            return cached

        candidates = self.select_models(prompt, options, trace_id=trace_id)
        attempts: List[ProviderAttempt] = []

        try:
            return self._attempt_candidates(trace_id, prompt, cache_key, options, candidates, attempts)
        except LLMError:
            raise
        except Exception as e:
            return self._last_resort(trace_id, prompt, cache_key, options, attempts, e)

    def select_models(
        self,
        prompt: str,
        options: Optional[RequestOptions] = None,
        *,
        trace_id: Optional[str] = None,
    ) -> List[ModelConfig]:
        """回傳依策略排序好的候選模型；沒有候選時丟 NoEligibleModelsError。"""
        options = (options or RequestOptions()).validate()

        if not self._providers:
            raise NoEligibleModelsError("No providers registered; configure at least one provider credential.")

        eligible = [c for c in self.model_configs if c.provider in self._providers]

        if options.preferred_provider:
            eligible = [c for c in eligible if c.provider == options.preferred_provider]

        pinned_model = options.preferred_model or options.model
        if pinned_model:
            eligible = [c for c in eligible if c.name == pinned_model]

        complexity = self.classifier.classify(prompt)
        floor = dict(IMPLICIT_CAPABILITY_FLOORS[complexity])
        floor.update(options.min_capability or {})
        eligible = [c for c in eligible if c.capabilities.meets(floor)]

        if options.max_cost is not None:
            eligible = [c for c in eligible if c.cost_per_1k <= options.max_cost]

        if trace_id:
            obs.log_request_start(trace_id, prompt, complexity)

        if not eligible:
            raise NoEligibleModelsError(
                f"No eligible models found for the given prompt and options "
                f"(complexity={complexity.value}, floor={floor}, max_cost={options.max_cost})"
            )

        ranked = self._rank(eligible, options)
        if not ranked:
            raise NoEligibleModelsError(
                f"None of fallback_models {list(options.fallback_models or [])} is eligible"
            )

        if trace_id:
            obs.log_candidates(trace_id, options.fallback_strategy, [c.key for c in ranked])
        return ranked

    # -------------------------
    # Ranking
    # -------------------------
    def _rank(self, eligible: List[ModelConfig], options: RequestOptions) -> List[ModelConfig]:
        strategy = options.fallback_strategy

        if strategy is FallbackStrategy.COST_ASCENDING:
            return sorted(eligible, key=lambda c: c.combined_cost)

        if strategy is FallbackStrategy.CAPABILITY_DESCENDING:
            return sorted(eligible, key=lambda c: c.capabilities.total(), reverse=True)

        if strategy is FallbackStrategy.SPECIFIC_MODELS:
            # 依呼叫端給的順序；仍只允許通過篩選的模型
            ordered: List[ModelConfig] = []
            for entry in options.fallback_models or []:
                match = next((c for c in eligible if entry in (c.key, c.name)), None)
                if match is None:
                    self._log("debug", f"LLMRouter: fallback model {entry!r} is not eligible, skipped")
                    continue
                if match not in ordered:
                    ordered.append(match)
            return ordered

        return sorted(eligible, key=_weighted_score, reverse=True)

    # -------------------------
    # Attempts
    # -------------------------
    def _attempt_candidates(
        self,
        trace_id: str,
        prompt: str,
        cache_key: str,
        options: RequestOptions,
        candidates: List[ModelConfig],
        attempts: List[ProviderAttempt],
    ) -> LLMResponse:
        previous: Optional[str] = None

        for index, cfg in enumerate(candidates, start=1):
            adapter = self._providers.get(cfg.provider)
            if adapter is None:
                self._log("warning", f"LLMRouter: provider not found for model key {cfg.key}")
                continue

            if previous is not None:
                obs.log_fallback(trace_id, previous, cfg.key)
            previous = cfg.key

            call_options = self._call_options(options, cfg.name)
            obs.log_attempt(trace_id, cfg.provider, cfg.name, index)
            started = time.monotonic()

            try:
                response = call_with_retry(
                    lambda: adapter.generate_completion(prompt, call_options),
                    max_retries=self.config.max_retries,
                    backoff=self.config.retry_backoff,
                    jitter=self.config.retry_jitter,
                    on_retry=lambda n, e: obs.log_retry(trace_id, cfg.provider, cfg.name, n, e),
                )
            except ProviderError as e:
                obs.log_provider_failure(trace_id, cfg.provider, cfg.name, e)
                attempts.append(ProviderAttempt(cfg.provider, cfg.name, str(e)))
                continue

            return self._finish(trace_id, cache_key, response, cfg, started)

        obs.log_all_failed(trace_id, attempts)
        raise AllProvidersFailedError(attempts)

    def _last_resort(
        self,
        trace_id: str,
        prompt: str,
        cache_key: str,
        options: RequestOptions,
        attempts: List[ProviderAttempt],
        cause: Exception,
    ) -> LLMResponse:
        self._log("error", f"LLMRouter: ranked attempts aborted unexpectedly: {type(cause).__name__}: {cause}")

        for name in self.config.last_resort_providers:
            adapter = self._providers.get(name)
            if adapter is None:
                continue

            cfg = find_model_config(self.model_configs, name)
            model = cfg.name if cfg else None
            call_options = self._call_options(options, model)
            obs.log_last_resort(trace_id, name, cause)
            started = time.monotonic()

            try:
                response = adapter.generate_completion(prompt, call_options)
            except Exception as e:
                obs.log_provider_failure(trace_id, name, model, e)
                attempts.append(ProviderAttempt(name, model or "default", str(e)))
                continue

            return self._finish(trace_id, cache_key, response, cfg, started)

        obs.log_all_failed(trace_id, attempts)
        raise AllProvidersFailedError(attempts) from cause

    def _finish(
        self,
        trace_id: str,
        cache_key: str,
        response: LLMResponse,
        cfg: Optional[ModelConfig],
        started: float,
    ) -> LLMResponse:
        if cfg is not None and response.usage.cost is None:
            cost = (
                response.usage.prompt_tokens * cfg.cost_per_input_token
                + response.usage.completion_tokens * cfg.cost_per_output_token
            )
            response = replace(response, usage=replace(response.usage, cost=cost))

        obs.log_request_success(trace_id, response.provider, response.model, time.monotonic() - started, response.usage)
        self._cache_set(trace_id, cache_key, response)
        return response

    def _call_options(self, options: RequestOptions, model: Optional[str]) -> RequestOptions:
        timeout = options.timeout_sec if options.timeout_sec is not None else self.config.timeout_sec
        return replace(options, model=model, timeout_sec=timeout)

    # -------------------------
    # Cache（失敗一律視為 miss，不影響主流程）
    # -------------------------
    def _cache_key(self, prompt: str, options: RequestOptions) -> str:
        if self.config.cache_key_mode != "prompt+options":
            return prompt

        params = {
            "model": options.preferred_model or options.model,
            "provider": options.preferred_provider,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
            "top_k": options.top_k,
            "response_format": options.response_format,
        }
        return prompt + "\x1f" + json.dumps(params, sort_keys=True)

    def _cache_get(self, trace_id: str, key: str) -> Optional[LLMResponse]:
        try:
            return self.cache.get(key)
        except Exception as e:
            obs.log_cache_error(trace_id, "get", e)
            return None

    def _cache_set(self, trace_id: str, key: str, response: LLMResponse) -> None:
        try:
            self.cache.set(key, response)
        except Exception as e:
            obs.log_cache_error(trace_id, "set", e)

    def _log(self, level: str, msg: str) -> None:
        fn = getattr(self._logger, level, None)
        if callable(fn):
            fn(msg)


def _weighted_score(cfg: ModelConfig) -> float:
    """(reasoning * 2 + knowledge * 1.5 + creativity) / (input + output 單價)"""
    caps = cfg.capabilities
    weighted = caps.reasoning * 2 + caps.knowledge * 1.5 + caps.creativity
    if cfg.combined_cost <= 0:
        return math.inf
    return weighted / cfg.combined_cost
