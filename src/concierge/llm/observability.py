# router 事件 log（統一格式）
#   統一欄位：trace_id、provider、model、latency、tokens、attempt、error
#   logger 名稱掛在 "concierge" 之下，由 log_helper.init_logging() 決定輸出
import logging
import uuid

logger = logging.getLogger("concierge.llm")


def new_trace_id():
    return uuid.uuid4().hex[:12]


def _preview(prompt, limit=50):
    text = (prompt or "").replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."


def log_request_start(trace_id, prompt, complexity=None):
    log_data = {
        "trace_id": trace_id,
        "prompt": _preview(prompt),
    }
    if complexity is not None:
        log_data["complexity"] = getattr(complexity, "value", complexity)
    logger.debug(f"LLM Request Start: {log_data}")


def log_cache_hit(trace_id, prompt):
    log_data = {
        "trace_id": trace_id,
        "prompt": _preview(prompt),
    }
    logger.info(f"LLM Cache Hit: {log_data}")


def log_cache_error(trace_id, op, error):
    log_data = {
        "trace_id": trace_id,
        "op": op,
        "error": str(error),
    }
    logger.error(f"LLM Cache Error (treated as miss): {log_data}")


def log_candidates(trace_id, strategy, candidates):
    log_data = {
        "trace_id": trace_id,
        "strategy": getattr(strategy, "value", strategy) or "default-weighted",
        "candidates": list(candidates),
    }
    logger.debug(f"LLM Candidates: {log_data}")


def log_attempt(trace_id, provider, model, attempt):
    log_data = {
        "trace_id": trace_id,
        "provider": provider,
        "model": model,
        "attempt": attempt,
    }
    logger.info(f"LLM Attempt: {log_data}")


def log_retry(trace_id, provider, model, retry_count, error):
    log_data = {
        "trace_id": trace_id,
        "provider": provider,
        "model": model,
        "retry_count": retry_count,
        "error": str(error),
    }
    logger.info(f"LLM Retry: {log_data}")


def log_provider_failure(trace_id, provider, model, error):
    log_data = {
        "trace_id": trace_id,
        "provider": provider,
        "model": model,
        "error_type": type(error).__name__,
        "error": str(error),
    }
    logger.warning(f"LLM Provider Failed: {log_data}")


def log_fallback(trace_id, from_model, to_model):
    log_data = {
        "trace_id": trace_id,
        "from_model": from_model,
        "to_model": to_model,
    }
    logger.warning(f"LLM Fallback: {log_data}")


def log_request_success(trace_id, provider, model, latency, usage):
    log_data = {
        "trace_id": trace_id,
        "provider": provider,
        "model": model,
        "latency": round(latency, 3),
        "tokens": usage.total_tokens,
        "estimated_tokens": usage.estimated,
    }
    logger.info(f"LLM Request Success: {log_data}")


def log_all_failed(trace_id, attempts):
    log_data = {
        "trace_id": trace_id,
        "attempts": [f"{a.provider}:{a.model}" for a in attempts],
    }
    logger.error(f"LLM All Providers Failed: {log_data}")


def log_last_resort(trace_id, provider, error):
    log_data = {
        "trace_id": trace_id,
        "provider": provider,
        "cause": f"{type(error).__name__}: {error}",
    }
    logger.warning(f"LLM Last Resort: {log_data}")
