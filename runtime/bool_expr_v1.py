"""runtime.bool_expr_v1

Free-form boolean conditions ("expr" mode of computed-equality rules).

Gate, in order:
  - empty text is rejected
  - every character must be in the allow-list (identifiers, digits,
    whitespace and `+-*/%().<>=!&|?:`)
  - the keyword blocklist is checked independently of the allow-list
  - the text must parse as a single expression

A text that passes compiles to a predicate memoized by exact trimmed text;
rejected text is memoized as None and never retried.

Kotlin output is a textual rewrite of the validated source (no re-parse):
strict equality is downgraded, `Math.abs(` becomes `kotlin.math.abs(`, and
known context names are replaced word-by-word by their mapped targets.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from app import log_buffer
from runtime import jsmini
from runtime.compile_cache import CompileCache, default_cache
from runtime.terms_v1 import ALIAS_TABLE

SAFE_RE = re.compile(r"^[0-9A-Za-z_+\-*/%().<>=!&|?: \t\r\n]+$")
BLOCK_RE = re.compile(
    r"=>|\b(?:new|function|while|for|if|return|class|import|export|this|window|globalThis|constructor|prototype)\b"
)

MATH_NS = jsmini.ReadOnlyNamespace(jsmini.js_math_namespace())

CONTEXT_KEYS = ("age", "maxAge", "life", "sign", "respawnCount", "tick", "reason")

MSG_EMPTY = "expression is empty"
MSG_UNSAFE = "expression contains unsupported characters or keywords"
MSG_SYNTAX = "syntax error"


@dataclass(frozen=True)
class BoolExprCheck:
    ok: bool
    error: str = ""


@dataclass(frozen=True)
class CompiledBoolExpr:
    source: str
    ast: Any

    def __call__(self, bindings: Dict[str, Any]) -> bool:
        interp = jsmini.Interpreter(jsmini.MappingHost(bindings))
        return jsmini.truthy(interp.evaluate(self.ast))


def is_safe_text(key: str) -> bool:
    return bool(SAFE_RE.match(key)) and not BLOCK_RE.search(key)


def _compile_uncached(key: str) -> Optional[CompiledBoolExpr]:
    if not is_safe_text(key):
        log_buffer.log("bool", f"rejected unsafe expression {key!r}", once_key=key)
        return None
    try:
        ast = jsmini.parse_expression(key)
    except jsmini.ScriptSyntaxError as e:
        log_buffer.log("bool", f"syntax error in {key!r}: {e}", once_key=key)
        return None
    return CompiledBoolExpr(source=key, ast=ast)


def compile_boolean_expr(text: Any, cache: Optional[CompileCache] = None) -> Optional[CompiledBoolExpr]:
    key = str(text or "").strip()
    if not key:
        return None
    c = cache if cache is not None else default_cache("bool")
    return c.get_or_compile(key, _compile_uncached)


def validate_boolean_expr(text: Any, cache: Optional[CompileCache] = None) -> BoolExprCheck:
    key = str(text or "").strip()
    if not key:
        return BoolExprCheck(False, MSG_EMPTY)
    if not is_safe_text(key):
        return BoolExprCheck(False, MSG_UNSAFE)
    if compile_boolean_expr(key, cache) is None:
        try:
            jsmini.parse_expression(key)
        except jsmini.ScriptSyntaxError as e:
            return BoolExprCheck(False, f"{MSG_SYNTAX}: {e}")
        return BoolExprCheck(False, MSG_SYNTAX)
    return BoolExprCheck(True, "")


def build_scope(ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """ctx first, vars override, then Math and abs."""
    scope: Dict[str, Any] = {}
    if isinstance(ctx, Mapping):
        scope.update(ctx)
    if isinstance(vars, Mapping):
        scope.update(vars)
    scope["Math"] = MATH_NS
    scope["abs"] = MATH_NS["abs"]
    return scope


def eval_boolean_expr(
    text: Any,
    ctx: Optional[Mapping[str, Any]] = None,
    vars: Optional[Mapping[str, Any]] = None,
    fallback: bool = False,
    cache: Optional[CompileCache] = None,
) -> bool:
    key = str(text or "").strip()
    if not key:
        return bool(fallback)
    fn = compile_boolean_expr(key, cache)
    if fn is None:
        return bool(fallback)
    try:
        return fn(build_scope(ctx, vars))
    except jsmini.ScriptError as e:
        log_buffer.log("bool", f"evaluation failed for {key!r}: {e}", once_key=f"eval:{key}")
        return bool(fallback)


def _replace_word(text: str, word: str, target: str) -> str:
    return re.sub(rf"\b{re.escape(word)}\b", lambda _m: target, text)


def boolean_expr_to_kotlin(text: Any, ctx_map: Optional[Mapping[str, Any]] = None, cache: Optional[CompileCache] = None) -> str:
    out = str(text or "").strip()
    if not out:
        return "false"
    if not validate_boolean_expr(out, cache).ok:
        return "false"
    out = out.replace("!==", "!=").replace("===", "==")
    out = re.sub(r"\bMath\.abs\s*\(", "kotlin.math.abs(", out)
    cmap = ctx_map or {}
    for key in CONTEXT_KEYS:
        target = str(cmap.get(key) or "").strip()
        if not target and key in ALIAS_TABLE:
            target = str(cmap.get(ALIAS_TABLE[key]) or "").strip()
        if not target or target == key:
            continue
        out = _replace_word(out, key, target)
    return out

