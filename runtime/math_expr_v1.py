"""runtime.math_expr_v1

Infix arithmetic compiler used by computed-equality conditions.

Text is tokenized and converted to postfix (shunting-yard) once; the same
postfix program is then either evaluated against a particle context or
walked to produce a Kotlin expression, so preview and export cannot drift.

Grammar:
  identifiers, numeric literals (int / decimal / exponent), + - * / % ( )
  unary minus when `-` starts the expression or follows an operator or `(`

Precedence: unary minus 3 (right assoc), * / % 2, binary + - 1.

Evaluation never raises: unknown identifiers read as 0, division or modulo
by |v| < 1e-12 yields 0, malformed programs evaluate to 0.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Tuple

from app import log_buffer
from runtime.compile_cache import CompileCache, default_cache
from runtime.terms_v1 import (
    BUILTINS,
    canonical_name,
    eval_number_like,
    is_ident,
    is_numeric_literal,
    read_named_number,
    term_to_kotlin,
)

TOKEN_RE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*|\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|[()+\-*/%])\s*")

BINARY_OPS = ("+", "-", "*", "/", "%")
UNARY_MINUS = "u-"
NEAR_ZERO = 1e-12

Instr = Tuple[str, Any]  # ("n", float) | ("id", str) | ("op", str)


@dataclass(frozen=True)
class CompiledMathExpr:
    source: str
    program: Tuple[Instr, ...]


class MathCompileError(ValueError):
    pass


def _prec(op: str) -> int:
    if op == UNARY_MINUS:
        return 3
    if op in ("*", "/", "%"):
        return 2
    return 1


def _is_op(tok: str) -> bool:
    return tok in BINARY_OPS or tok == UNARY_MINUS


def tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    idx = 0
    while idx < len(text):
        m = TOKEN_RE.match(text, idx)
        if not m or m.end() == idx:
            raise MathCompileError(f"unexpected character at {idx}: {text[idx]!r}")
        tokens.append(m.group(1))
        idx = m.end()
    return tokens


def to_postfix(tokens: List[str]) -> Tuple[Instr, ...]:
    out: List[Instr] = []
    ops: List[str] = []
    prev = "start"  # start | value | op | (

    for tk in tokens:
        if is_numeric_literal(tk):
            out.append(("n", float(tk)))
            prev = "value"
            continue
        if is_ident(tk):
            out.append(("id", tk))
            prev = "value"
            continue
        if tk == "(":
            ops.append(tk)
            prev = "("
            continue
        if tk == ")":
            matched = False
            while ops:
                top = ops.pop()
                if top == "(":
                    matched = True
                    break
                out.append(("op", top))
            if not matched:
                raise MathCompileError("unbalanced ')'")
            prev = "value"
            continue
        if tk in BINARY_OPS:
            op = tk
            if op == "-" and prev in ("start", "op", "("):
                op = UNARY_MINUS
            right_assoc = op == UNARY_MINUS
            while ops and _is_op(ops[-1]):
                top = ops[-1]
                if (right_assoc and _prec(op) < _prec(top)) or (not right_assoc and _prec(op) <= _prec(top)):
                    out.append(("op", ops.pop()))
                    continue
                break
            ops.append(op)
            prev = "op"
            continue
        raise MathCompileError(f"unexpected token {tk!r}")

    while ops:
        top = ops.pop()
        if top in ("(", ")"):
            raise MathCompileError("unbalanced '('")
        out.append(("op", top))
    return tuple(out)


def _compile_uncached(key: str) -> Optional[CompiledMathExpr]:
    try:
        program = to_postfix(tokenize(key))
    except MathCompileError as e:
        log_buffer.log("math", f"compile failed for {key!r}: {e}", once_key=key)
        return None
    return CompiledMathExpr(source=key, program=program)


def compile_math_expr(text: Any, cache: Optional[CompileCache] = None) -> Optional[CompiledMathExpr]:
    """Compile `text` (memoized by trimmed text). Failures are cached as None."""
    key = str(text or "").strip()
    if not key:
        return None
    c = cache if cache is not None else default_cache("math")
    return c.get_or_compile(key, _compile_uncached)


def eval_binary(a: Any, op: str, b: Any) -> float:
    try:
        x = float(a)
        y = float(b)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(x) or not math.isfinite(y):
        return 0.0
    if op == "+":
        return x + y
    if op == "-":
        return x - y
    if op == "*":
        return x * y
    if op == "/":
        return 0.0 if abs(y) < NEAR_ZERO else x / y
    if op == "%":
        return 0.0 if abs(y) < NEAR_ZERO else math.fmod(x, y)
    return 0.0


def eval_compiled_math_expr(compiled: Optional[CompiledMathExpr], ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None) -> float:
    if compiled is None or not compiled.program:
        return 0.0
    st: List[float] = []
    for kind, v in compiled.program:
        if kind == "n":
            st.append(v if math.isfinite(v) else 0.0)
            continue
        if kind == "id":
            st.append(read_named_number(v, ctx, vars, 0.0))
            continue
        if v == UNARY_MINUS:
            if not st:
                return 0.0
            a = st.pop()
            st.append(-a if math.isfinite(a) else 0.0)
            continue
        if len(st) < 2:
            return 0.0
        b = st.pop()
        a = st.pop()
        st.append(eval_binary(a, v, b))
    if len(st) != 1:
        return 0.0
    out = st[0]
    return out if math.isfinite(out) else 0.0


def eval_math_expr(text: Any, ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None, fallback: float = 0.0, cache: Optional[CompileCache] = None) -> float:
    expr = str(text or "").strip()
    if not expr:
        return fallback
    compiled = compile_math_expr(expr, cache)
    if compiled is not None:
        return eval_compiled_math_expr(compiled, ctx, vars)
    return eval_number_like(expr, fallback, ctx, vars)


def _ident_to_kotlin(name: str, ctx_map: Mapping[str, Any], num_fmt: Callable[[Any], str]) -> str:
    key = canonical_name(name)
    if key in BUILTINS:
        return f"({term_to_kotlin(key, key, ctx_map, num_fmt)}).toDouble()"
    if is_ident(key):
        return f"({key}).toDouble()"
    return num_fmt(0)


def math_expr_to_kotlin(text: Any, ctx_map: Optional[Mapping[str, Any]] = None, num_fmt: Optional[Callable[[Any], str]] = None, cache: Optional[CompileCache] = None) -> str:
    from export.kotlin_fmt import default_num_kotlin

    fmt = num_fmt or default_num_kotlin
    cmap = ctx_map or {}
    expr = str(text or "").strip()
    if not expr:
        return fmt(0)
    compiled = compile_math_expr(expr, cache)
    if compiled is None or not compiled.program:
        if is_numeric_literal(expr):
            return fmt(float(expr))
        if is_ident(expr):
            return _ident_to_kotlin(expr, cmap, fmt)
        return fmt(0)

    st: List[str] = []
    for kind, v in compiled.program:
        if kind == "n":
            st.append(fmt(v))
            continue
        if kind == "id":
            st.append(_ident_to_kotlin(v, cmap, fmt))
            continue
        if v == UNARY_MINUS:
            if not st:
                return fmt(0)
            a = st.pop()
            st.append(f"(-({a}))")
            continue
        if len(st) < 2:
            return fmt(0)
        b = st.pop()
        a = st.pop()
        st.append(f"(({a}) {v} ({b}))")
    if len(st) != 1:
        return fmt(0)
    return st[0]
