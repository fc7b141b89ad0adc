# src/concierge/llm/cache.py
# 回應快取（in-memory，TTL）
#   key：預設為原始 prompt 字串（不做正規化）
#   get 時過期即刪（lazy expiry）；背景執行緒定期掃描（active expiry）
#   process 重啟即清空，不做持久化

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .types import LLMResponse

DEFAULT_TTL_SEC = 3600.0
DEFAULT_SWEEP_INTERVAL_SEC = 60.0


@dataclass(frozen=True)
class CacheEntry:
    prompt: str
    response: LLMResponse
    timestamp: float
    expires_at: float


class ResponseCache:
    def __init__(
        self,
        *,
        ttl_sec: float = DEFAULT_TTL_SEC,
        sweep_interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC,
        clock: Callable[[], float] = time.time,
        start_sweeper: bool = True,
        logger: Optional[Any] = None,
    ):
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        if sweep_interval_sec <= 0:
            raise ValueError("sweep_interval_sec must be positive")

        self.ttl_sec = ttl_sec
        self.sweep_interval_sec = sweep_interval_sec
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        if start_sweeper:
            self._start_sweeper()

    # -------------------------
    # Public API
    # -------------------------
    def get(self, prompt: str) -> Optional[LLMResponse]:
        with self._lock:
            entry = self._entries.get(prompt)
            if entry is None:
                return None

            if self._clock() > entry.expires_at:
                del self._entries[prompt]
                return None

            return entry.response

    def set(self, prompt: str, response: LLMResponse) -> None:
        now = self._clock()
        entry = CacheEntry(prompt=prompt, response=response, timestamp=now, expires_at=now + self.ttl_sec)
        with self._lock:
            self._entries[prompt] = entry

    def sweep(self) -> int:
        """移除所有已過期的 entry，回傳移除筆數。"""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for k in expired:
                del self._entries[k]

        if expired:
            self._logger.debug("ResponseCache swept %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, prompt: object) -> bool:
        with self._lock:
            return prompt in self._entries

    # -------------------------
    # Lifecycle
    # -------------------------
    def close(self) -> None:
        self._stop.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=5.0)
        self._sweeper = None

    def __enter__(self) -> "ResponseCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------
    # internal helpers
    # -------------------------
    def _start_sweeper(self) -> None:
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name="response-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval_sec):
            try:
                self.sweep()
            except Exception:
                # 掃描失敗不能讓執行緒死掉；下一輪再試
                self._logger.exception("ResponseCache sweep failed")
