from __future__ import annotations

"""Bounded diagnostics log for compile/evaluation degradations.

Live preview never raises on bad input; the reason a value degraded is
pushed here instead so the editor can show a tail. Messages keyed with
`once_key` are recorded a single time per process.
"""

from collections import deque
from typing import Deque, List, Optional, Set

_MAX = 400
_buf: Deque[str] = deque(maxlen=_MAX)
_seen: Set[str] = set()


def resize(maxlen: int) -> None:
    global _buf
    n = max(1, int(maxlen))
    if _buf.maxlen == n:
        return
    _buf = deque(_buf, maxlen=n)


def push(line: str) -> None:
    try:
        _buf.append(str(line))
    except Exception:
        pass


def log(area: str, message: str, *, once_key: Optional[str] = None) -> None:
    if once_key is not None:
        k = f"{area}:{once_key}"
        if k in _seen:
            return
        _seen.add(k)
    push(f"[{area}] {message}")


def tail(n: int = 200) -> List[str]:
    try:
        if n <= 0:
            return []
        return list(_buf)[-n:]
    except Exception:
        return []


def clear() -> None:
    _buf.clear()
    _seen.clear()
