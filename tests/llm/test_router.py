# tests/llm/test_router.py
import logging
from unittest.mock import MagicMock

import pytest

from concierge.llm.cache import ResponseCache
from concierge.llm.config import RouterConfig
from concierge.llm.errors import (
    AllProvidersFailedError,
    NoEligibleModelsError,
    RequestValidationError,
    USER_FACING_UNAVAILABLE_MESSAGE,
)
from concierge.llm.model_configs import DEFAULT_MODEL_CONFIGS
from concierge.llm.providers.mock_provider import MockProvider
from concierge.llm.router import LLMRouter
from concierge.llm.types import (
    FallbackStrategy,
    ModelCapabilities,
    ModelConfig,
    RequestOptions,
)


# -------------------------
# Helpers / fixtures
# -------------------------

def make_model(provider, name=None, *, speed=5, knowledge=9, reasoning=9, creativity=5, cost=0.000001):
    return ModelConfig(
        provider=provider,
        name=name or f"{provider}-model",
        capabilities=ModelCapabilities(speed=speed, knowledge=knowledge, reasoning=reasoning, creativity=creativity),
        cost_per_input_token=cost,
        cost_per_output_token=cost,
        max_context_tokens=8000,
    )


def make_router(providers, model_configs=None, config=None):
    return LLMRouter(
        {p.name: p for p in providers},
        model_configs=model_configs,
        config=config or RouterConfig(),
        cache=ResponseCache(start_sweeper=False),
    )


@pytest.fixture
def call_log():
    return []


@pytest.fixture
def default_mocks(call_log):
    """三個 mock，名稱對應預設模型設定的 provider。"""
    return {
        "openai": MockProvider("openai", text='{"from": "openai"}', call_log=call_log),
        "anthropic": MockProvider("anthropic", text='{"from": "anthropic"}', call_log=call_log),
        "google": MockProvider("google", text='{"from": "google"}', call_log=call_log),
    }


@pytest.fixture
def default_router(default_mocks):
    router = make_router(default_mocks.values(), model_configs=DEFAULT_MODEL_CONFIGS)
    yield router
    router.close()


# -------------------------
# Cache behaviour
# -------------------------

def test_second_call_within_ttl_served_from_cache(default_router, default_mocks):
    first = default_router.route_prompt("hi")
    second = default_router.route_prompt("hi")

    assert second == first
    assert sum(m.call_count for m in default_mocks.values()) == 1


def test_cache_hit_skips_classification(default_router):
    default_router.route_prompt("hi")
    default_router.classifier = MagicMock()

    default_router.route_prompt("hi")

    default_router.classifier.classify.assert_not_called()


def test_textually_different_prompts_are_cache_misses(default_router, default_mocks):
    default_router.route_prompt("hi")
    default_router.route_prompt("hi ")

    assert sum(m.call_count for m in default_mocks.values()) == 2


def test_cache_ignores_options_by_default(default_router, default_mocks):
    first = default_router.route_prompt("hi", RequestOptions(temperature=0.1))
    second = default_router.route_prompt("hi", RequestOptions(temperature=0.9))

    assert second is first
    assert sum(m.call_count for m in default_mocks.values()) == 1


def test_cache_key_mode_prompt_plus_options(default_mocks):
    router = make_router(
        default_mocks.values(),
        model_configs=DEFAULT_MODEL_CONFIGS,
        config=RouterConfig(cache_key_mode="prompt+options"),
    )
    try:
        router.route_prompt("hi", RequestOptions(temperature=0.1))
        router.route_prompt("hi", RequestOptions(temperature=0.9))
        router.route_prompt("hi", RequestOptions(temperature=0.9))
    finally:
        router.close()

    assert sum(m.call_count for m in default_mocks.values()) == 2


def test_cached_response_metadata_is_read_only(default_router, default_mocks):
    first = default_router.route_prompt("hi")

    with pytest.raises(TypeError):
        first.metadata["finish_reason"] = "tampered"

    second = default_router.route_prompt("hi")
    assert second.metadata["finish_reason"] == "stop"
    assert sum(m.call_count for m in default_mocks.values()) == 1


def test_cache_failure_degrades_to_miss(default_mocks):
    broken_cache = MagicMock()
    broken_cache.get.side_effect = RuntimeError("cache corrupted")
    broken_cache.set.side_effect = RuntimeError("cache corrupted")

    router = LLMRouter(default_mocks, model_configs=DEFAULT_MODEL_CONFIGS, cache=broken_cache)

    resp = router.route_prompt("hi")

    assert resp.provider == "google"
    broken_cache.get.assert_called_once_with("hi")


# -------------------------
# Selection / filters
# -------------------------

def test_min_capability_filters_low_reasoning_models():
    weak = MockProvider("weak")
    strong = MockProvider("strong")
    configs = [make_model("weak", reasoning=6), make_model("strong", reasoning=9)]
    router = make_router([weak, strong], model_configs=configs)

    selected = router.select_models("hi", RequestOptions(min_capability={"reasoning": 8}))

    assert [c.provider for c in selected] == ["strong"]
    router.close()


def test_no_model_meets_floor_raises_without_provider_calls():
    weak = MockProvider("weak")
    other = MockProvider("other")
    router = make_router([weak, other], model_configs=[make_model("weak", reasoning=6), make_model("other", reasoning=7)])

    with pytest.raises(NoEligibleModelsError):
        router.route_prompt("hi", RequestOptions(min_capability={"reasoning": 8}))

    assert weak.call_count == 0
    assert other.call_count == 0
    router.close()


def test_complex_prompt_applies_implicit_floor(default_router):
    selected = default_router.select_models("Create a detailed plan for my trip to Rome")

    # gemini-2.0-flash 的 reasoning/knowledge 只有 7
    assert [c.provider for c in selected] == ["openai", "anthropic"]


def test_moderate_prompt_implicit_floor_keeps_reasoning_seven(default_router):
    selected = default_router.select_models("list 3 restaurants")
    assert {c.provider for c in selected} == {"openai", "anthropic", "google"}


def test_explicit_min_capability_overrides_implicit_floor_per_field(default_router):
    prompt = "Create a detailed plan for my trip to Rome"

    selected = default_router.select_models(prompt, RequestOptions(min_capability={"reasoning": 7, "knowledge": 7}))

    assert "google" in {c.provider for c in selected}


def test_preferred_provider_and_model_filters(default_router):
    by_provider = default_router.select_models("hi", RequestOptions(preferred_provider="anthropic"))
    assert [c.name for c in by_provider] == ["claude-3-7-sonnet-20250219"]

    by_model = default_router.select_models("hi", RequestOptions(preferred_model="gpt-4o"))
    assert [c.provider for c in by_model] == ["openai"]

    by_pin = default_router.select_models("hi", RequestOptions(model="gemini-2.0-flash"))
    assert [c.provider for c in by_pin] == ["google"]


def test_max_cost_filter(default_router):
    # gpt-4o / claude: 0.02 per 1k；gemini: 0.003 per 1k
    selected = default_router.select_models("hi", RequestOptions(max_cost=0.01))
    assert [c.provider for c in selected] == ["google"]

    with pytest.raises(NoEligibleModelsError):
        default_router.select_models("hi", RequestOptions(max_cost=0.001))


def test_unregistered_provider_models_are_never_eligible():
    only_openai = MockProvider("openai")
    router = make_router([only_openai], model_configs=DEFAULT_MODEL_CONFIGS)

    selected = router.select_models("hi")

    assert [c.provider for c in selected] == ["openai"]
    router.close()


def test_no_providers_registered():
    router = make_router([], model_configs=DEFAULT_MODEL_CONFIGS)
    with pytest.raises(NoEligibleModelsError, match="No providers registered"):
        router.route_prompt("hi")
    router.close()


# -------------------------
# Ranking strategies
# -------------------------

def test_default_strategy_ranks_by_weighted_score_per_cost(default_router):
    selected = default_router.select_models("hi")
    assert [c.provider for c in selected] == ["google", "openai", "anthropic"]


def test_cost_ascending_tries_cheaper_model_first(call_log):
    a = MockProvider("a", call_log=call_log)
    b = MockProvider("b", call_log=call_log)
    configs = [make_model("b", cost=5.0), make_model("a", cost=1.0)]
    router = make_router([a, b], model_configs=configs)

    resp = router.route_prompt("hi", RequestOptions(fallback_strategy=FallbackStrategy.COST_ASCENDING))

    assert resp.provider == "a"
    assert call_log == ["a:a-model"]
    router.close()


def test_capability_descending_prefers_capable_even_if_costlier(call_log):
    cheap = MockProvider("cheap", call_log=call_log)
    smart = MockProvider("smart", call_log=call_log)
    configs = [
        make_model("cheap", speed=5, knowledge=8, reasoning=8, creativity=5, cost=0.000001),
        make_model("smart", speed=9, knowledge=10, reasoning=10, creativity=9, cost=0.001),
    ]
    router = make_router([cheap, smart], model_configs=configs)

    resp = router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    assert resp.provider == "smart"
    assert call_log == ["smart:smart-model"]
    router.close()


def test_specific_models_uses_caller_order(default_router, call_log, default_mocks):
    default_mocks["anthropic"].mode = "error"

    resp = default_router.route_prompt(
        "hi",
        RequestOptions(
            fallback_strategy=FallbackStrategy.SPECIFIC_MODELS,
            fallback_models=["anthropic:claude-3-7-sonnet-20250219", "gpt-4o"],
        ),
    )

    assert resp.provider == "openai"
    assert call_log == ["anthropic:claude-3-7-sonnet-20250219", "openai:gpt-4o"]


def test_specific_models_still_gated_by_eligibility(default_router):
    prompt = "Create a detailed plan for my trip to Rome"  # COMPLEX：gemini 不合格
    selected = default_router.select_models(
        prompt,
        RequestOptions(fallback_strategy="specific-models", fallback_models=["gemini-2.0-flash", "gpt-4o"]),
    )
    assert [c.name for c in selected] == ["gpt-4o"]

    with pytest.raises(NoEligibleModelsError):
        default_router.select_models(
            prompt,
            RequestOptions(fallback_strategy="specific-models", fallback_models=["gemini-2.0-flash"]),
        )


def test_specific_models_without_list_fails_validation_before_any_call(default_router, default_mocks):
    with pytest.raises(RequestValidationError):
        default_router.route_prompt("hi", RequestOptions(fallback_strategy=FallbackStrategy.SPECIFIC_MODELS))

    assert sum(m.call_count for m in default_mocks.values()) == 0


def test_specific_models_given_as_single_string_is_rejected(default_router, default_mocks):
    options = RequestOptions(fallback_strategy="specific-models", fallback_models="gpt-4o")

    with pytest.raises(RequestValidationError, match="list of model names"):
        default_router.route_prompt("hi", options)

    assert sum(m.call_count for m in default_mocks.values()) == 0


# -------------------------
# Fallback / exhaustion
# -------------------------

def _three_ranked(call_log, modes):
    providers = [
        MockProvider("first", mode=modes[0], text="first", call_log=call_log),
        MockProvider("second", mode=modes[1], text="second", call_log=call_log),
        MockProvider("third", mode=modes[2], text="third", call_log=call_log),
    ]
    configs = [
        make_model("first", speed=10, knowledge=10, reasoning=10, creativity=10),
        make_model("second", speed=9, knowledge=9, reasoning=9, creativity=9),
        make_model("third", speed=8, knowledge=8, reasoning=8, creativity=8),
    ]
    return providers, make_router(providers, model_configs=configs)


def test_falls_back_in_ranked_order_until_success(call_log):
    providers, router = _three_ranked(call_log, ["error", "timeout", "ok"])

    resp = router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    assert resp.text == "third"
    assert resp.provider == "third"
    assert call_log == ["first:first-model", "second:second-model", "third:third-model"]
    assert router.cache.get("hi") == resp
    router.close()


def test_success_stops_further_attempts(call_log):
    providers, router = _three_ranked(call_log, ["ok", "ok", "ok"])

    router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    assert call_log == ["first:first-model"]
    router.close()


def test_all_failed_raises_aggregate_and_leaves_cache_untouched(call_log):
    providers, router = _three_ranked(call_log, ["error", "error", "timeout"])

    with pytest.raises(AllProvidersFailedError) as exc_info:
        router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    err = exc_info.value
    assert [(a.provider, a.model) for a in err.attempts] == [
        ("first", "first-model"),
        ("second", "second-model"),
        ("third", "third-model"),
    ]
    assert "first:first-model" in str(err)
    assert len(call_log) == 3
    assert "hi" not in router.cache
    router.close()


def test_all_failed_exposes_generic_user_message(call_log):
    providers, router = _three_ranked(call_log, ["error", "error", "error"])

    with pytest.raises(AllProvidersFailedError) as exc_info:
        router.route_prompt("hi")

    err = exc_info.value
    assert err.user_message == USER_FACING_UNAVAILABLE_MESSAGE
    assert "mock failure" not in err.user_message
    assert "mock failure" in err.attempts[0].error
    router.close()


def test_provider_failures_are_logged(call_log, caplog):
    providers, router = _three_ranked(call_log, ["error", "ok", "ok"])

    with caplog.at_level(logging.WARNING, logger="concierge.llm"):
        router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    messages = [r.getMessage() for r in caplog.records]
    assert any("LLM Provider Failed" in m and "first" in m for m in messages)
    assert any("LLM Fallback" in m for m in messages)
    router.close()


def test_retriable_failure_retried_when_configured(monkeypatch):
    monkeypatch.setattr("concierge.llm.retry.time.sleep", lambda s: None)
    flaky = MockProvider("flaky", mode="timeout")
    backup = MockProvider("backup")
    configs = [
        make_model("flaky", speed=10, knowledge=10, reasoning=10, creativity=10),
        make_model("backup"),
    ]
    router = make_router([flaky, backup], model_configs=configs, config=RouterConfig(max_retries=2))

    resp = router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    assert resp.provider == "backup"
    assert flaky.call_count == 3
    assert backup.call_count == 1
    router.close()


def test_non_retriable_failure_not_retried_even_when_configured(monkeypatch):
    monkeypatch.setattr("concierge.llm.retry.time.sleep", lambda s: None)
    broken = MockProvider("broken", mode="error")
    backup = MockProvider("backup")
    configs = [make_model("broken", speed=10, knowledge=10, reasoning=10, creativity=10), make_model("backup")]
    router = make_router([broken, backup], model_configs=configs, config=RouterConfig(max_retries=2))

    router.route_prompt("hi", RequestOptions(fallback_strategy="capability-descending"))

    assert broken.call_count == 1
    router.close()


# -------------------------
# Last-resort path
# -------------------------

def test_unexpected_error_triggers_last_resort_provider(default_mocks):
    default_mocks["anthropic"].mode = "crash"
    router = make_router(default_mocks.values(), model_configs=DEFAULT_MODEL_CONFIGS)

    resp = router.route_prompt("hi", RequestOptions(preferred_provider="anthropic"))

    assert resp.provider == "openai"
    assert resp.model == "gpt-4o"
    assert default_mocks["anthropic"].call_count == 1
    assert default_mocks["openai"].call_count == 1
    assert router.cache.get("hi") == resp
    router.close()


def test_last_resort_tries_next_default_provider(default_mocks):
    default_mocks["anthropic"].mode = "crash"
    default_mocks["openai"].mode = "error"
    router = make_router(default_mocks.values(), model_configs=DEFAULT_MODEL_CONFIGS)

    resp = router.route_prompt("hi", RequestOptions(preferred_provider="anthropic"))

    assert resp.provider == "google"
    router.close()


def test_last_resort_exhausted_raises_aggregate():
    crashing = MockProvider("anthropic", mode="crash")
    router = make_router([crashing], model_configs=DEFAULT_MODEL_CONFIGS)

    with pytest.raises(AllProvidersFailedError) as exc_info:
        router.route_prompt("hi")

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    router.close()


def test_ordinary_failures_do_not_use_last_resort(default_mocks):
    default_mocks["anthropic"].mode = "error"
    router = make_router(default_mocks.values(), model_configs=DEFAULT_MODEL_CONFIGS)

    with pytest.raises(AllProvidersFailedError):
        router.route_prompt("hi", RequestOptions(preferred_provider="anthropic"))

    assert default_mocks["openai"].call_count == 0
    assert default_mocks["google"].call_count == 0
    router.close()


# -------------------------
# Options forwarding / response
# -------------------------

def test_adapter_receives_candidate_model_and_default_timeout(default_router, default_mocks):
    default_router.route_prompt("hi", RequestOptions(temperature=0.3, max_tokens=100))

    prompt, opts = default_mocks["google"].calls[0]
    assert prompt == "hi"
    assert opts.model == "gemini-2.0-flash"
    assert opts.timeout_sec == RouterConfig().timeout_sec
    assert opts.temperature == 0.3
    assert opts.max_tokens == 100


def test_explicit_timeout_forwarded(default_router, default_mocks):
    default_router.route_prompt("hi", RequestOptions(timeout_sec=5))
    _, opts = default_mocks["google"].calls[0]
    assert opts.timeout_sec == 5


def test_usage_cost_filled_from_model_prices(default_router):
    resp = default_router.route_prompt("hi")

    expected = resp.usage.prompt_tokens * 0.000001 + resp.usage.completion_tokens * 0.000002
    assert resp.usage.cost == pytest.approx(expected)
    assert resp.usage.estimated is True


def test_register_provider_adds_model_config():
    router = make_router([], model_configs=[])
    provider = MockProvider("extra")
    router.register_provider(provider, make_model("extra"))

    resp = router.route_prompt("hi")

    assert resp.provider == "extra"
    assert "extra" in router.providers
    router.close()


def test_register_provider_rejects_mismatched_config():
    router = make_router([], model_configs=[])
    with pytest.raises(ValueError):
        router.register_provider(MockProvider("a"), make_model("b"))
    router.close()


def test_budget_trip_end_to_end(default_router, default_mocks):
    prompt = "Plan a 5-day budget trip to Thailand"
    options = RequestOptions(min_capability={"reasoning": 7}, temperature=0.2)

    resp = default_router.route_prompt(prompt, options)

    # SIMPLE：沒有隱含門檻，reasoning>=7 三個模型都合格；預設加權排序 gemini 第一
    assert resp.text == '{"from": "google"}'
    assert resp.provider == "google"
    assert resp.model == "gemini-2.0-flash"
    assert default_router.cache.get(prompt) is resp

    _, opts = default_mocks["google"].calls[0]
    assert opts.temperature == 0.2
    assert default_mocks["openai"].call_count == 0
    assert default_mocks["anthropic"].call_count == 0
