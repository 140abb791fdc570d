"""变更通知：按通道递增序号，供轮询/SSE 端点感知树结构变化。

使用 Redis（``INCR``/``SET``）保存序号与最近一次文档事件，Redis 不可用时回退到进程内存。
同一后端也承载可见共享列表的短期缓存。
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Optional

import redis

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import CHANNEL_DOCUMENTS
from app.packages.portal.core.logger import logger


class SignalBackend:
    """计数器与键值缓存接口。"""

    def incr(self, key: str) -> int:  # pragma: no cover - interface definition
        raise NotImplementedError

    def get_int(self, key: str) -> int:  # pragma: no cover
        raise NotImplementedError

    def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:  # pragma: no cover
        raise NotImplementedError

    def get_value(self, key: str) -> Optional[str]:  # pragma: no cover
        raise NotImplementedError


class RedisSignalBackend(SignalBackend):
    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._client.ping()

    def incr(self, key: str) -> int:
        return int(self._client.incr(key))

    def get_int(self, key: str) -> int:
        raw = self._client.get(key)
        return int(raw) if raw is not None else 0

    def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            self._client.set(key, value, ex=ttl_seconds)
        else:
            self._client.set(key, value)

    def get_value(self, key: str) -> Optional[str]:
        return self._client.get(key)


class InMemorySignalBackend(SignalBackend):
    """内存后端用于测试或缺少 Redis 时的回退实现。"""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}
        self._values: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def incr(self, key: str) -> int:
        with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value

    def get_int(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._values[key] = (value, expires_at)

    def get_value(self, key: str) -> Optional[str]:
        with self._lock:
            record = self._values.get(key)
            if record is None:
                return None
            value, expires_at = record
            if expires_at is not None and expires_at < time.monotonic():
                self._values.pop(key, None)
                return None
            return value


_backend: Optional[SignalBackend] = None


def get_backend() -> SignalBackend:
    global _backend
    if _backend is not None:
        return _backend

    settings = get_settings()
    try:
        backend = RedisSignalBackend(settings.redis_url)
        logger.info("Change signal store initialized with Redis at %s", settings.redis_url)
        _backend = backend
    except Exception as exc:  # pragma: no cover - fallback path
        logger.warning("Redis unavailable (%s), falling back to in-memory change signal store", exc)
        _backend = InMemorySignalBackend()
    return _backend


def use_backend(backend: SignalBackend) -> None:
    """替换当前后端（测试中注入内存实现）。"""
    global _backend
    _backend = backend


def sequence_key(channel: str) -> str:
    return f"{channel}_events_sequence"


LAST_DOCUMENT_EVENT_KEY = "documents_last_event"


class ChangeSignal:
    """即发即忘的变更计数器，失败只记日志不影响业务。"""

    def increment(self, channel: str, payload: Optional[dict[str, Any]] = None) -> Optional[int]:
        try:
            backend = get_backend()
            if channel == CHANNEL_DOCUMENTS and payload is not None:
                backend.set_value(LAST_DOCUMENT_EVENT_KEY, json.dumps(payload, ensure_ascii=False))
            return backend.incr(sequence_key(channel))
        except Exception as exc:
            logger.warning("Failed to increment change signal %s: %s", channel, exc)
            return None

    def sequence(self, channel: str) -> int:
        try:
            return get_backend().get_int(sequence_key(channel))
        except Exception as exc:
            logger.warning("Failed to read change signal %s: %s", channel, exc)
            return 0

    def snapshot(self, channel: str) -> dict[str, Any]:
        """返回 ``{"seq", "payload"}``；仅 documents 通道携带最近一次事件。"""
        payload = None
        if channel == CHANNEL_DOCUMENTS:
            try:
                raw = get_backend().get_value(LAST_DOCUMENT_EVENT_KEY)
                payload = json.loads(raw) if raw else None
            except Exception as exc:
                logger.warning("Failed to read last document event: %s", exc)
        return {"seq": self.sequence(channel), "payload": payload}


change_signal = ChangeSignal()
