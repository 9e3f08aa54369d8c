"""runtime.conditions_v1

Chained condition rules: the model, its normalizer, a live evaluator and a
Kotlin generator that must make the same decision for the same inputs.

Shape (persisted JSON, camelCase keys):
  filter: { enabled, rules: [rule, ...] }
  rule:   { id, link and|or, left, leftVar, op, right, rightValue,
            calc* sub-model }

Left side:  age | maxAge | sign | respawnCount | tick | var (+ reason)
Right side: number | var | age | maxAge | sign | respawnCount | tick (+ reason)
Comparators: == != > >= < <= calc_eq

Evaluation is a flat left fold: the first rule seeds the result and every
following rule combines through its own link. No grouping or precedence.
The Kotlin text parenthesizes every step of the same fold.

A rule takes the computed-equality path when its op is calc_eq, or when it
is `==` and neither side is a reason tag. Computed equality either
evaluates a free-form boolean expression (valueMode "expr") or compares
`(a mathOp b)` against a fixed term or a second `(c1 op c2)` pair with a
1e-6 tolerance on ==/!= (valueMode "box").

Constraints:
  - normalize(normalize(x)) == normalize(x)
  - the first rule's link is always "and"
  - reason comparisons only use == or !=
  - an empty rule list normalizes to one default rule
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from runtime.bool_expr_v1 import boolean_expr_to_kotlin, eval_boolean_expr
from runtime.compile_cache import CompileCache
from runtime.math_expr_v1 import eval_binary, eval_math_expr, math_expr_to_kotlin
from runtime.terms_v1 import (
    BUILTINS,
    REASON_PREFIX,
    REASONS,
    Term,
    canonical_name,
    eval_number_like,
    finite_or_none,
    is_ident,
    is_numeric_literal,
    new_id,
    read_named_number,
    resolve_term,
    safe_num,
    term_to_kotlin,
    to_reason_token,
)

LINKS = ("and", "or")
COMPARATORS = ("==", "!=", ">", ">=", "<", "<=", "calc_eq")
LEFT_KINDS = BUILTINS + ("life", "var")
RIGHT_KINDS = ("number", "var") + BUILTINS + ("life",)
CALC_MATH_OPS = ("+", "-", "*", "/", "%")
CALC_VALUE_MODES = ("box", "expr")
CALC_RESULT_MODES = ("fixed", "calc")
CALC_RESULT_CMPS = ("==", "!=", ">", ">=", "<", "<=")
EQ_TOLERANCE = 1e-6

CALC_PAYLOAD_KEYS = (
    "calcValueMode",
    "calcBooleanExpr",
    "calcLeftExpr",
    "calcRightExpr",
    "calcExpectExpr",
    "calcExpectLeftExpr",
    "calcExpectRightExpr",
    "calcLeftTermType",
    "calcRightTermType",
    "calcFixedTermType",
    "calcExpectLeftTermType",
    "calcExpectRightTermType",
)

LEGACY_SEGMENT_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_.]*)\s*(==|!=|>=|<=|>|<)\s*(.+)$")
LEGACY_SPLIT_RE = re.compile(r"(&&|\|\|)")


def _pick(raw: Any, options: tuple, default: str, *, lower: bool = False) -> str:
    s = str(raw if raw is not None else "").strip()
    if lower:
        s = s.lower()
    return s if s in options else default


def normalize_link(raw: Any) -> str:
    return _pick(raw, LINKS, "and", lower=True)


def normalize_cmp(raw: Any) -> str:
    return _pick(raw, COMPARATORS, ">=")


def normalize_calc_math_op(raw: Any) -> str:
    return _pick(raw, CALC_MATH_OPS, "-")


def normalize_calc_expr(raw: Any, fallback: str = "0") -> str:
    s = str(raw if raw is not None else "").strip()
    if s:
        return s
    return str(fallback or "0")


def _is_reason_literal(s: str) -> bool:
    return s in REASONS or s.startswith(REASON_PREFIX)


@dataclass
class ConditionRule:
    id: str = ""
    link: str = "and"
    left: str = "age"
    left_var: str = ""
    op: str = ">="
    right: str = "number"
    right_value: Any = 0.0

    value_mode: str = "box"
    math_op: str = "-"
    expect_math_op: str = "+"
    result_mode: str = "fixed"
    result_cmp: str = "=="

    left_term: Term = field(default_factory=lambda: Term("age", 0))
    right_term: Term = field(default_factory=Term)
    fixed_term: Term = field(default_factory=Term)
    expect_left_term: Term = field(default_factory=Term)
    expect_right_term: Term = field(default_factory=Term)

    left_expr: str = "age"
    right_expr: str = "0"
    expect_expr: str = "0"
    expect_left_expr: str = "0"
    expect_right_expr: str = "0"
    boolean_expr: str = ""

    def has_reason_side(self) -> bool:
        return self.left == "reason" or self.right == "reason"

    def uses_calc_compare(self) -> bool:
        return self.op == "calc_eq" or (self.op == "==" and not self.has_reason_side())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "link": self.link,
            "left": self.left,
            "leftVar": self.left_var,
            "op": self.op,
            "right": self.right,
            "rightValue": self.right_value,
            "calcValueMode": self.value_mode,
            "calcMathOp": self.math_op,
            "calcExpectMathOp": self.expect_math_op,
            "calcResultMode": self.result_mode,
            "calcResultCmp": self.result_cmp,
            "calcLeftTermType": self.left_term.kind,
            "calcLeftTermValue": self.left_term.value,
            "calcRightTermType": self.right_term.kind,
            "calcRightTermValue": self.right_term.value,
            "calcFixedTermType": self.fixed_term.kind,
            "calcFixedTermValue": self.fixed_term.value,
            "calcExpectLeftTermType": self.expect_left_term.kind,
            "calcExpectLeftTermValue": self.expect_left_term.value,
            "calcExpectRightTermType": self.expect_right_term.kind,
            "calcExpectRightTermValue": self.expect_right_term.value,
            "calcLeftExpr": self.left_expr,
            "calcRightExpr": self.right_expr,
            "calcExpectExpr": self.expect_expr,
            "calcExpectLeftExpr": self.expect_left_expr,
            "calcExpectRightExpr": self.expect_right_expr,
            "calcBooleanExpr": self.boolean_expr,
        }

    @staticmethod
    def from_dict(d: Any, *, allow_reason: bool = False) -> "ConditionRule":
        return normalize_condition_rule(d, allow_reason=allow_reason)


@dataclass
class ConditionFilter:
    enabled: bool = False
    rules: List[ConditionRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": bool(self.enabled), "rules": [r.to_dict() for r in self.rules]}

    @staticmethod
    def from_dict(d: Any, *, allow_reason: bool = False) -> "ConditionFilter":
        return normalize_condition_filter(d, allow_reason=allow_reason)


RuleLike = Union[ConditionRule, Mapping[str, Any]]
FilterLike = Union[ConditionFilter, Mapping[str, Any], str, None]


def build_calc_compare_expr(rule: ConditionRule) -> str:
    left = f"(({rule.left_expr}) {rule.math_op} ({rule.right_expr}))"
    right = rule.expect_expr
    if rule.result_mode == "calc":
        right = f"(({rule.expect_left_expr}) {rule.expect_math_op} ({rule.expect_right_expr}))"
    return f"{left} {rule.result_cmp} ({right})"


def _rule_dict(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, ConditionRule):
        return raw.to_dict()
    if isinstance(raw, Mapping):
        return dict(raw)
    return {}


def _legacy_expr_for(kind: str, value: Any) -> str:
    """Text form of a side before the calc sub-model existed."""
    if kind == "reason":
        return "0"
    if kind == "var":
        return Term.var(value).to_expr()
    if kind == "number":
        n = finite_or_none(value)
        return Term.number(n if n is not None else 0).to_expr()
    return Term(canonical_name(kind), 0).to_expr()


def normalize_condition_rule(raw: Any, *, allow_reason: bool = False) -> ConditionRule:
    d = _rule_dict(raw)
    out = ConditionRule(
        id=str(d.get("id") or new_id()),
        link=normalize_link(d.get("link")),
        op=normalize_cmp(d.get("op")),
    )

    left_set = LEFT_KINDS + (("reason",) if allow_reason else ())
    right_set = RIGHT_KINDS + (("reason",) if allow_reason else ())

    left = str(d.get("left") or "").strip()
    if left in left_set:
        out.left = canonical_name(left)
    if out.left == "var":
        lv = str(d.get("leftVar") or "").strip()
        out.left_var = lv if is_ident(lv) else ""

    right = str(d.get("right") or "").strip()
    if right in right_set:
        out.right = canonical_name(right)
    if out.right == "number":
        out.right_value = safe_num(d.get("rightValue"), 0.0)
    elif out.right == "var":
        rv = str(d.get("rightValue") or "").strip()
        out.right_value = rv if is_ident(rv) else ""
    elif out.right == "reason":
        out.right_value = to_reason_token(d.get("rightValue"))
    else:
        out.right_value = 0.0

    if out.has_reason_side() and out.op not in ("==", "!="):
        out.op = "=="
    # Once normalized a rule always carries a calc sub-model, so a plain
    # non-reason `==` is stored as calc_eq. Evaluation treats both alike.
    if out.op == "==" and not out.has_reason_side():
        out.op = "calc_eq"

    legacy_right = _legacy_expr_for(out.right, out.right_value)
    out.value_mode = _pick(d.get("calcValueMode"), CALC_VALUE_MODES, "box")
    out.math_op = normalize_calc_math_op(d.get("calcMathOp"))
    out.expect_math_op = normalize_calc_math_op(d.get("calcExpectMathOp"))
    out.result_mode = _pick(d.get("calcResultMode"), CALC_RESULT_MODES, "fixed")
    out.result_cmp = _pick(d.get("calcResultCmp"), CALC_RESULT_CMPS, "==")

    left_fb = Term.infer(
        d.get("calcLeftExpr"),
        Term.normalize("var" if out.left == "var" else out.left, out.left_var or 0),
    )
    right_fb = Term.infer(d.get("calcRightExpr"), Term.infer(legacy_right))
    fixed_fb = Term.infer(d.get("calcExpectExpr"), Term.number(0))
    expect_left_fb = Term.infer(d.get("calcExpectLeftExpr"), Term.infer(legacy_right))
    expect_right_fb = Term.infer(d.get("calcExpectRightExpr"), Term.number(0))

    out.left_term = Term.normalize(d.get("calcLeftTermType"), d.get("calcLeftTermValue"), left_fb)
    out.right_term = Term.normalize(d.get("calcRightTermType"), d.get("calcRightTermValue"), right_fb)
    out.fixed_term = Term.normalize(d.get("calcFixedTermType"), d.get("calcFixedTermValue"), fixed_fb)
    out.expect_left_term = Term.normalize(d.get("calcExpectLeftTermType"), d.get("calcExpectLeftTermValue"), expect_left_fb)
    out.expect_right_term = Term.normalize(d.get("calcExpectRightTermType"), d.get("calcExpectRightTermValue"), expect_right_fb)

    if out.value_mode == "box":
        out.left_expr = out.left_term.to_expr()
        out.right_expr = out.right_term.to_expr()
        out.expect_expr = out.fixed_term.to_expr()
        out.expect_left_expr = out.expect_left_term.to_expr()
        out.expect_right_expr = out.expect_right_term.to_expr()
    else:
        out.left_expr = normalize_calc_expr(d.get("calcLeftExpr"), out.left_term.to_expr())
        out.right_expr = normalize_calc_expr(d.get("calcRightExpr"), out.right_term.to_expr())
        out.expect_expr = normalize_calc_expr(d.get("calcExpectExpr"), out.fixed_term.to_expr())
        out.expect_left_expr = normalize_calc_expr(d.get("calcExpectLeftExpr"), out.expect_left_term.to_expr())
        out.expect_right_expr = normalize_calc_expr(d.get("calcExpectRightExpr"), out.expect_right_term.to_expr())
    out.boolean_expr = normalize_calc_expr(d.get("calcBooleanExpr"), build_calc_compare_expr(out))
    return out


def create_condition_rule(seed: Optional[Mapping[str, Any]] = None, *, allow_reason: bool = False) -> ConditionRule:
    s = dict(seed or {})
    base = {
        "id": s.get("id") or new_id(),
        "link": "and",
        "left": "age",
        "leftVar": "",
        "op": ">=",
        "right": "number",
        "rightValue": 0,
        "calcValueMode": "box",
        "calcMathOp": "-",
        "calcExpectMathOp": "+",
        "calcResultMode": "fixed",
        "calcResultCmp": "==",
        "calcExpectExpr": "0",
        "calcLeftTermType": "age",
        "calcLeftTermValue": 0,
        "calcRightTermType": "number",
        "calcRightTermValue": 0,
    }
    for k, v in s.items():
        if v is not None:
            base[k] = v
    return normalize_condition_rule(base, allow_reason=allow_reason)


def _parse_left_token(raw: str, allow_reason: bool) -> Dict[str, Any]:
    s = str(raw or "").strip()
    if s in LEFT_KINDS:
        return {"left": canonical_name(s), "leftVar": ""}
    if allow_reason and (s == "reason" or _is_reason_literal(s)):
        return {"left": "reason", "leftVar": ""}
    if is_ident(s):
        return {"left": "var", "leftVar": s}
    return {"left": "age", "leftVar": ""}


def _parse_right_token(raw: str, allow_reason: bool) -> Dict[str, Any]:
    s = str(raw or "").strip()
    if not s:
        return {"right": "number", "rightValue": 0}
    if is_numeric_literal(s):
        return {"right": "number", "rightValue": float(s)}
    if allow_reason and s == "reason":
        return {"right": "reason", "rightValue": "AGE"}
    if allow_reason and _is_reason_literal(s):
        return {"right": "reason", "rightValue": to_reason_token(s)}
    if s in RIGHT_KINDS:
        return {"right": canonical_name(s), "rightValue": 0}
    if is_ident(s):
        return {"right": "var", "rightValue": s}
    return {"right": "number", "rightValue": 0}


def _legacy_calc_seed(seed: Mapping[str, Any]) -> Dict[str, Any]:
    """Box terms for a legacy `a == b` so the computed path checks (a - 0) == b."""
    left = seed.get("left")
    right = seed.get("right")
    if left == "reason" or right == "reason":
        return {}
    left_term = Term.normalize(left, seed.get("leftVar") if left == "var" else 0)
    fixed_term = Term.normalize(right, seed.get("rightValue"))
    return {
        "calcLeftTermType": left_term.kind,
        "calcLeftTermValue": left_term.value,
        "calcRightTermType": "number",
        "calcRightTermValue": 0,
        "calcFixedTermType": fixed_term.kind,
        "calcFixedTermValue": fixed_term.value,
    }


def parse_legacy_condition_expr(expr: Any, *, allow_reason: bool = False) -> List[ConditionRule]:
    """Parse `a >= 1 && b < c || ...`; segments that do not match are skipped."""
    raw = str(expr or "").strip()
    if not raw:
        return []
    rows: List[ConditionRule] = []
    link = "and"
    for seg in (x.strip() for x in LEGACY_SPLIT_RE.split(raw)):
        if not seg:
            continue
        if seg == "&&":
            link = "and"
            continue
        if seg == "||":
            link = "or"
            continue
        m = LEGACY_SEGMENT_RE.match(seg)
        if not m:
            continue
        seed: Dict[str, Any] = {"link": link if rows else "and", "op": m.group(2)}
        seed.update(_parse_left_token(m.group(1), allow_reason))
        seed.update(_parse_right_token(m.group(3), allow_reason))
        if seed["op"] == "==":
            seed.update(_legacy_calc_seed(seed))
        rows.append(create_condition_rule(seed, allow_reason=allow_reason))
    return rows


def normalize_condition_filter(raw: FilterLike, *, allow_reason: bool = False) -> ConditionFilter:
    if isinstance(raw, ConditionFilter):
        src: Mapping[str, Any] = raw.to_dict()
    elif isinstance(raw, Mapping):
        src = raw
    elif isinstance(raw, str):
        src = {"enabled": bool(raw.strip()), "expr": raw}
    else:
        src = {}

    rules: List[ConditionRule] = []
    if isinstance(src.get("rules"), list):
        rules = [normalize_condition_rule(it, allow_reason=allow_reason) for it in src["rules"]]
    else:
        legacy = str(src.get("expr") or src.get("condition") or "").strip()
        if legacy:
            rules = parse_legacy_condition_expr(legacy, allow_reason=allow_reason)
    if not rules:
        rules = [create_condition_rule({}, allow_reason=allow_reason)]

    for idx, row in enumerate(rules):
        if idx == 0:
            row.link = "and"
        if allow_reason and row.left == "reason":
            row.right = "reason"
            row.right_value = to_reason_token(row.right_value)
            if row.op not in ("==", "!="):
                row.op = "=="
    return ConditionFilter(enabled=bool(src.get("enabled")) and len(rules) > 0, rules=rules)


def create_condition_filter(seed: Optional[Mapping[str, Any]] = None, *, allow_reason: bool = False) -> ConditionFilter:
    base: Dict[str, Any] = {"enabled": False, "rules": [create_condition_rule({}, allow_reason=allow_reason)]}
    base.update(dict(seed or {}))
    return normalize_condition_filter(base, allow_reason=allow_reason)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _resolve_left(rule: ConditionRule, ctx: Mapping[str, Any], vars: Mapping[str, Any]) -> Any:
    if rule.left == "var":
        return read_named_number(rule.left_var, ctx, vars, 0.0)
    if rule.left == "reason":
        return to_reason_token(ctx.get("reason"))
    return resolve_term(rule.left, 0, ctx, vars)


def _resolve_right(rule: ConditionRule, ctx: Mapping[str, Any], vars: Mapping[str, Any]) -> Any:
    if rule.right == "var":
        return read_named_number(rule.right_value, ctx, vars, 0.0)
    if rule.right == "reason":
        return to_reason_token(rule.right_value)
    if rule.right == "number":
        return eval_number_like(rule.right_value, 0.0, ctx, vars)
    return resolve_term(rule.right, rule.right_value, ctx, vars)


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b
    return a == b


def compare_values(lhs: Any, op: str, rhs: Any) -> bool:
    if op in ("==", "!="):
        same = _same(lhs, rhs)
        return same if op == "==" else not same
    ln = finite_or_none(lhs) if not isinstance(lhs, str) else None
    rn = finite_or_none(rhs) if not isinstance(rhs, str) else None
    if ln is None or rn is None:
        return False
    if op == ">":
        return ln > rn
    if op == ">=":
        return ln >= rn
    if op == "<":
        return ln < rn
    if op == "<=":
        return ln <= rn
    return False


def compare_calc_result(lhs: Any, cmp: str, rhs: Any) -> bool:
    ln = finite_or_none(lhs)
    rn = finite_or_none(rhs)
    if ln is None or rn is None:
        return False
    if cmp == "==":
        return abs(ln - rn) <= EQ_TOLERANCE
    if cmp == "!=":
        return abs(ln - rn) > EQ_TOLERANCE
    if cmp == ">":
        return ln > rn
    if cmp == ">=":
        return ln >= rn
    if cmp == "<":
        return ln < rn
    if cmp == "<=":
        return ln <= rn
    return False


def evaluate_calc_eq_rule(
    rule: RuleLike,
    ctx: Optional[Mapping[str, Any]] = None,
    vars: Optional[Mapping[str, Any]] = None,
    fallback_left: Any = 0,
    fallback_right: Any = 0,
    *,
    math_cache: Optional[CompileCache] = None,
    bool_cache: Optional[CompileCache] = None,
) -> bool:
    cfg = rule if isinstance(rule, ConditionRule) else normalize_condition_rule(rule, allow_reason=True)
    ctx = ctx or {}
    vars = vars or {}
    if cfg.value_mode == "expr":
        return eval_boolean_expr(cfg.boolean_expr, ctx, vars, False, bool_cache)

    fb_l = safe_num(fallback_left, 0.0)
    fb_r = safe_num(fallback_right, 0.0)
    a = eval_math_expr(cfg.left_expr, ctx, vars, fb_l, math_cache)
    b = eval_math_expr(cfg.right_expr, ctx, vars, fb_r, math_cache)
    lhs = eval_binary(a, cfg.math_op, b)
    if cfg.result_mode == "calc":
        c1 = eval_math_expr(cfg.expect_left_expr, ctx, vars, fb_r, math_cache)
        c2 = eval_math_expr(cfg.expect_right_expr, ctx, vars, 0.0, math_cache)
        rhs = eval_binary(c1, cfg.expect_math_op, c2)
    else:
        rhs = eval_math_expr(cfg.expect_expr, ctx, vars, 0.0, math_cache)
    return compare_calc_result(lhs, cfg.result_cmp, rhs)


def evaluate_condition_filter(
    flt: FilterLike,
    ctx: Optional[Mapping[str, Any]] = None,
    vars: Optional[Mapping[str, Any]] = None,
    *,
    allow_reason: bool = False,
    math_cache: Optional[CompileCache] = None,
    bool_cache: Optional[CompileCache] = None,
) -> bool:
    cfg = flt if isinstance(flt, ConditionFilter) else normalize_condition_filter(flt, allow_reason=allow_reason)
    if not cfg.enabled or not cfg.rules:
        return True
    ctx = ctx or {}
    vars = vars or {}
    result: Optional[bool] = None
    for row in cfg.rules:
        lhs = _resolve_left(row, ctx, vars)
        rhs = _resolve_right(row, ctx, vars)
        if row.uses_calc_compare():
            ok = evaluate_calc_eq_rule(row, ctx, vars, lhs, rhs, math_cache=math_cache, bool_cache=bool_cache)
        else:
            ok = compare_values(lhs, row.op, rhs)
        if result is None:
            result = ok
        elif row.link == "or":
            result = result or ok
        else:
            result = result and ok
    return True if result is None else bool(result)


# ---------------------------------------------------------------------------
# Kotlin
# ---------------------------------------------------------------------------

def _calc_rule_to_kotlin(row: ConditionRule, ctx_map: Mapping[str, Any], num_fmt: Callable[[Any], str]) -> str:
    if row.value_mode == "expr":
        return f"({boolean_expr_to_kotlin(row.boolean_expr, ctx_map)})"
    calc_a = math_expr_to_kotlin(row.left_expr, ctx_map, num_fmt)
    calc_b = math_expr_to_kotlin(row.right_expr, ctx_map, num_fmt)
    left_expr = f"((({calc_a}) {normalize_calc_math_op(row.math_op)} ({calc_b})).toDouble())"
    if row.result_mode == "calc":
        c1 = math_expr_to_kotlin(row.expect_left_expr, ctx_map, num_fmt)
        c2 = math_expr_to_kotlin(row.expect_right_expr, ctx_map, num_fmt)
        right_expr = f"((({c1}) {normalize_calc_math_op(row.expect_math_op)} ({c2})).toDouble())"
    else:
        calc_c = math_expr_to_kotlin(row.expect_expr, ctx_map, num_fmt)
        right_expr = f"(({calc_c}).toDouble())"
    cmp = _pick(row.result_cmp, CALC_RESULT_CMPS, "==")
    if cmp == "==":
        return f"(kotlin.math.abs(({left_expr}) - ({right_expr})) <= 1e-6)"
    if cmp == "!=":
        return f"(kotlin.math.abs(({left_expr}) - ({right_expr})) > 1e-6)"
    return f"(({left_expr}) {cmp} ({right_expr}))"


def condition_filter_to_kotlin(
    flt: FilterLike,
    ctx_map: Optional[Mapping[str, Any]] = None,
    *,
    allow_reason: bool = False,
    num_fmt: Optional[Callable[[Any], str]] = None,
) -> str:
    """Kotlin boolean expression for the filter, "" when it always passes."""
    from export.kotlin_fmt import default_num_kotlin

    cfg = normalize_condition_filter(flt, allow_reason=allow_reason)
    if not cfg.enabled or not cfg.rules:
        return ""
    cmap = ctx_map or {}
    fmt = num_fmt or default_num_kotlin
    acc = ""
    for i, row in enumerate(cfg.rules):
        if row.uses_calc_compare():
            cmp = _calc_rule_to_kotlin(row, cmap, fmt)
        else:
            if row.left == "var":
                lhs = term_to_kotlin("var", row.left_var, cmap, fmt)
            elif row.left == "reason":
                lhs = str(cmap.get("reason") or "").strip() or "reason"
            else:
                lhs = term_to_kotlin(row.left, row.left, cmap, fmt)
            rhs = term_to_kotlin(row.right, row.right_value, cmap, fmt)
            cmp = f"({lhs} {row.op} {rhs})"
        # parenthesized left fold; Kotlin's && binds tighter than ||
        if i == 0:
            acc = cmp
        else:
            acc = f"({acc} {'||' if row.link == 'or' else '&&'} {cmp})"
    return acc
