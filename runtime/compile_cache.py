"""runtime.compile_cache

Process-lifetime memo caches for compiled expressions.

Keys are exact source text. A failed compile is cached as None so unchanged
text is never recompiled. Compilation is pure, so a duplicate compile on a
race is harmless; the lock only guards the dict/policy bookkeeping.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


class EvictionPolicy:
    """Decides which keys to drop after an insert. Default keeps everything."""

    def touch(self, entries: "OrderedDict[str, Any]", key: str) -> None:
        return None

    def evict(self, entries: "OrderedDict[str, Any]") -> int:
        return 0


class UnboundedPolicy(EvictionPolicy):
    pass


class LRUPolicy(EvictionPolicy):
    def __init__(self, max_entries: int = 512):
        self.max_entries = max(1, int(max_entries))

    def touch(self, entries: "OrderedDict[str, Any]", key: str) -> None:
        entries.move_to_end(key)

    def evict(self, entries: "OrderedDict[str, Any]") -> int:
        dropped = 0
        while len(entries) > self.max_entries:
            entries.popitem(last=False)
            dropped += 1
        return dropped


def policy_for_limit(max_entries: Optional[int]) -> EvictionPolicy:
    if max_entries is None or int(max_entries) <= 0:
        return UnboundedPolicy()
    return LRUPolicy(int(max_entries))


@dataclass(frozen=True)
class CacheStats:
    name: str
    size: int
    hits: int
    misses: int
    evictions: int


class CompileCache:
    def __init__(self, name: str, policy: Optional[EvictionPolicy] = None):
        self.name = name
        self.policy = policy or UnboundedPolicy()
        self._entries: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_compile(self, key: str, compile_fn: Callable[[str], Any]) -> Any:
        with self._lock:
            if key in self._entries:
                self._hits += 1
                self.policy.touch(self._entries, key)
                return self._entries[key]
            self._misses += 1

        value = compile_fn(key)

        with self._lock:
            if key in self._entries:
                return self._entries[key]
            self._entries[key] = value
            self._evictions += self.policy.evict(self._entries)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self.name,
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )


_DEFAULT_CACHES: Dict[str, CompileCache] = {}
_DEFAULT_LOCK = threading.Lock()


def default_cache(name: str) -> CompileCache:
    """Shared cache per name; policy comes from the compiler config."""
    with _DEFAULT_LOCK:
        c = _DEFAULT_CACHES.get(name)
        if c is None:
            from app.compiler_config import get_config

            cfg = get_config()
            limit = cfg.math_cache_max if name == "math" else cfg.bool_cache_max
            c = CompileCache(name, policy_for_limit(limit))
            _DEFAULT_CACHES[name] = c
        return c
