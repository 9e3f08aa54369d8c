"""Kotlin literal formatting shared by the behavior generators."""

from __future__ import annotations

import math
from typing import Any

from runtime.terms_v1 import finite_or_none, is_ident, js_number_text


def fmt_d(v: Any) -> str:
    """Double literal rounded to 6 decimals, always with a dot."""
    n = finite_or_none(v)
    if n is None:
        return "0.0"
    r = math.floor(n * 1000000 + 0.5) / 1000000
    s = js_number_text(r)
    if "." not in s and "e" not in s:
        s += ".0"
    return s


def default_num_kotlin(v: Any) -> str:
    n = finite_or_none(v)
    if n is None:
        return "0.0"
    if n == math.trunc(n):
        return f"{int(n)}.0"
    return js_number_text(n)


def fmt_k_num_literal(v: Any, fallback: Any = 0) -> str:
    """Int literal when integral, double otherwise."""
    for cand in (v, fallback):
        n = finite_or_none(cand)
        if n is None:
            continue
        if n == math.trunc(n):
            return str(int(n))
        return fmt_d(n)
    return "0"


def fmt_num_or_var(v: Any, fallback: Any = 0) -> str:
    n = finite_or_none(v)
    if n is not None:
        return fmt_d(n)
    s = str(v or "").strip()
    if is_ident(s):
        return f"{s}.toDouble()"
    return fmt_d(fallback)


def fmt_int_or_var(v: Any, fallback: Any = 0) -> str:
    n = finite_or_none(v)
    if n is not None:
        return str(math.trunc(n))
    s = str(v or "").strip()
    if is_ident(s):
        return f"{s}.toInt()"
    return str(math.trunc(safe_fallback(fallback)))


def safe_fallback(v: Any) -> float:
    n = finite_or_none(v)
    return 0.0 if n is None else n


def num_for_type(v: Any, type_name: str) -> str:
    """Default/bound literal for a declared emitter variable type."""
    n = finite_or_none(v)
    if n is None:
        return "0" if type_name == "int" else "0.0"
    if type_name == "int":
        return str(math.trunc(n))
    return fmt_d(n)
