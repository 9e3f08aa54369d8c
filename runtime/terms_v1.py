"""runtime.terms_v1

Operand model shared by conditions, var actions and the math compiler.

A term is one of:
  number        literal value
  var           named emitter variable (looked up in the variable store)
  builtin       particle context value (age, maxAge, sign, respawnCount, tick)
  reason        RemoveReason tag (death conditions only)

`life` is the legacy spelling of `maxAge`. Both names resolve to the same
value and either one may be present in a context map.

Constraints:
  - Lookups never raise; missing or non-finite values fall back.
  - Context values shadow variables with the same name.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple


IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
NUMERIC_LITERAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

BUILTINS = ("age", "maxAge", "sign", "respawnCount", "tick")
REASONS = ("AGE", "COLLISION", "OUT_OF_RANGE", "MANUAL", "UNKNOWN")
REASON_PREFIX = "RemoveReason."

# Bidirectional alias table: canonical name -> legacy name and back.
ALIAS_TABLE: Dict[str, str] = {"maxAge": "life", "life": "maxAge"}
CANONICAL_NAMES: Dict[str, str] = {"life": "maxAge"}

TERM_KINDS = ("number", "var") + BUILTINS
TERM_KINDS_WITH_REASON = TERM_KINDS + ("reason",)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def is_ident(name: Any) -> bool:
    if name is None:
        return False
    return bool(IDENT_RE.match(str(name).strip()))


def is_numeric_literal(text: Any) -> bool:
    if text is None:
        return False
    return bool(NUMERIC_LITERAL_RE.match(str(text).strip()))


def canonical_name(name: str) -> str:
    s = str(name or "").strip()
    return CANONICAL_NAMES.get(s, s)


def lookup_keys(name: str) -> Tuple[str, ...]:
    """Keys to try for `name`, canonical spelling first."""
    key = canonical_name(name)
    alias = ALIAS_TABLE.get(key)
    if alias:
        return (key, alias)
    return (key,)


def finite_or_none(v: Any) -> Optional[float]:
    if v is None:
        return None
    if isinstance(v, bool):
        return 1.0 if v else 0.0
    if isinstance(v, (int, float)):
        f = float(v)
        return f if math.isfinite(f) else None
    if isinstance(v, str):
        s = v.strip()
        if not s or "_" in s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    return None


def safe_num(v: Any, default: float = 0.0) -> float:
    n = finite_or_none(v)
    if n is None:
        return float(default)
    return n


def clamp_opts(n: float, *, int_mode: bool = False, lo: Optional[float] = None, hi: Optional[float] = None) -> float:
    if int_mode:
        n = float(math.trunc(n))
    if lo is not None:
        n = max(lo, n)
    if hi is not None:
        n = min(hi, n)
    return n


def js_number_text(v: Any) -> str:
    """Shortest round-trip text for a number, `5` rather than `5.0`."""
    n = finite_or_none(v)
    if n is None:
        return "0"
    if n == math.trunc(n) and abs(n) < 1e21:
        return str(int(n))
    s = repr(n)
    if "e" in s:
        mant, exp = s.split("e")
        sign = "-" if exp.startswith("-") else "+"
        return f"{mant}e{sign}{exp.lstrip('+-').lstrip('0') or '0'}"
    return s


def to_reason_token(raw: Any) -> str:
    s = str(raw or "").strip()
    if not s:
        return "AGE"
    if s in REASONS:
        return s
    if s.startswith(REASON_PREFIX):
        sub = s[len(REASON_PREFIX):].strip()
        if sub in REASONS:
            return sub
    return "AGE"


def _read_one(obj: Optional[Mapping[str, Any]], key: str) -> Optional[float]:
    if not isinstance(obj, Mapping):
        return None
    if key not in obj:
        return None
    return finite_or_none(obj.get(key))


def read_named_number(name: Any, ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None, fallback: float = 0.0) -> float:
    raw = str(name or "").strip()
    if not raw:
        return fallback
    for k in lookup_keys(raw):
        c = _read_one(ctx, k)
        if c is not None:
            return c
        v = _read_one(vars, k)
        if v is not None:
            return v
    return fallback


def eval_number_like(
    raw: Any,
    fallback: float = 0.0,
    ctx: Optional[Mapping[str, Any]] = None,
    vars: Optional[Mapping[str, Any]] = None,
    *,
    int_mode: bool = False,
    lo: Optional[float] = None,
    hi: Optional[float] = None,
) -> float:
    """Resolve a number, numeric string or identifier to a finite float."""
    n: Optional[float] = fallback
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        n = float(raw)
    elif isinstance(raw, str):
        s = raw.strip()
        if not s:
            n = fallback
        elif is_numeric_literal(s):
            n = float(s)
        elif is_ident(s):
            n = read_named_number(s, ctx, vars, fallback)
        else:
            n = fallback
    else:
        v = finite_or_none(raw)
        if v is not None:
            n = v
    if n is None or not math.isfinite(n):
        n = fallback
    return clamp_opts(float(n), int_mode=int_mode, lo=lo, hi=hi)


def normalize_term_kind(raw: Any, *, allow_reason: bool = False) -> str:
    s = canonical_name(str(raw or ""))
    kinds = TERM_KINDS_WITH_REASON if allow_reason else TERM_KINDS
    return s if s in kinds else "number"


@dataclass(frozen=True)
class Term:
    kind: str = "number"
    value: Any = 0

    @staticmethod
    def number(n: Any) -> "Term":
        return Term("number", safe_num(n, 0.0))

    @staticmethod
    def var(name: Any) -> "Term":
        s = str(name or "").strip()
        return Term("var", s if is_ident(s) else "")

    @staticmethod
    def builtin(name: str) -> "Term":
        key = canonical_name(name)
        if key not in BUILTINS:
            raise ValueError(f"unknown builtin: {name}")
        return Term(key, 0)

    @staticmethod
    def reason(tag: Any) -> "Term":
        return Term("reason", to_reason_token(tag))

    @staticmethod
    def normalize(kind: Any, value: Any, fallback: Optional["Term"] = None) -> "Term":
        fb = fallback or Term()
        k = normalize_term_kind(kind if kind not in (None, "") else fb.kind)
        if k == "number":
            return Term(k, safe_num(value if value is not None else fb.value, 0.0))
        if k == "var":
            v = str(value if value is not None else (fb.value or "")).strip()
            return Term(k, v if is_ident(v) else "")
        return Term(k, 0)

    @staticmethod
    def infer(expr: Any, fallback: Optional["Term"] = None) -> "Term":
        """Best-effort Term from a single-token expression string."""
        s = canonical_name(str(expr or "").strip())
        if not s:
            fb = fallback or Term()
            return Term.normalize(fb.kind, fb.value)
        if is_numeric_literal(s):
            return Term("number", float(s))
        if s in BUILTINS:
            return Term(s, 0)
        if is_ident(s):
            return Term("var", s)
        fb = fallback or Term()
        return Term.normalize(fb.kind, fb.value)

    def to_expr(self) -> str:
        if self.kind == "number":
            return js_number_text(self.value)
        if self.kind == "var":
            return str(self.value).strip() if is_ident(self.value) else "0"
        if self.kind in BUILTINS:
            return self.kind
        return "0"

    def resolve(self, ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None) -> Any:
        return resolve_term(self.kind, self.value, ctx, vars)


def resolve_term(kind: Any, value: Any, ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None) -> Any:
    t = canonical_name(str(kind or ""))
    if t == "number":
        return eval_number_like(value, 0.0, ctx, vars)
    if t == "var":
        return read_named_number(value, ctx, vars, 0.0)
    if t in BUILTINS:
        return read_named_number(t, ctx, vars, 0.0)
    if t == "reason":
        return to_reason_token(value)
    return 0.0


def resolve_ctx_name(key: str, ctx_map: Mapping[str, Any]) -> str:
    """Target expression mapped for a context key, honoring the alias table."""
    for k in lookup_keys(key):
        mapped = str((ctx_map or {}).get(k) or "").strip()
        if mapped:
            return mapped
    return ""


def term_to_kotlin(kind: Any, value: Any, ctx_map: Optional[Mapping[str, Any]] = None, num_fmt: Optional[Callable[[Any], str]] = None) -> str:
    from export.kotlin_fmt import default_num_kotlin

    fmt = num_fmt or default_num_kotlin
    t = canonical_name(str(kind or ""))
    if t == "number":
        return fmt(value)
    if t == "var":
        return str(value).strip() if is_ident(value) else "0.0"
    if t == "reason":
        return f"{REASON_PREFIX}{to_reason_token(value)}"
    if t in BUILTINS:
        mapped = resolve_ctx_name(t, ctx_map or {})
        return mapped or t
    return "0.0"
