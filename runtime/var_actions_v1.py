"""runtime.var_actions_v1

Single mutations of one emitter variable.

Ops: set add sub mul div inc dec
Value types: number | var | age | maxAge | sign | respawnCount | tick

Constraints:
  - actions never create variables; a missing name is a no-op
  - inc/dec step by exactly 1 and ignore the configured value
  - div by |v| < 1e-12 leaves the variable unchanged
  - legacy flat text (`x++`, `x -= 2`, `x = age`) upgrades to the structured form
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional

from runtime.math_expr_v1 import NEAR_ZERO
from runtime.terms_v1 import (
    BUILTINS,
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
)

OPS = ("set", "add", "sub", "mul", "div", "inc", "dec")
VALUE_TYPES = ("number", "var") + BUILTINS

KOTLIN_ASSIGN = {"set": "=", "add": "+=", "sub": "-=", "mul": "*=", "div": "/="}
LEGACY_OPS = {"=": "set", "+=": "add", "-=": "sub", "*=": "mul", "/=": "div"}

LEGACY_STEP_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(\+\+|--)$")
LEGACY_ASSIGN_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(\+=|-=|\*=|/=|=)\s*(.+)$")


@dataclass
class VarAction:
    id: str = ""
    var_name: str = ""
    op: str = "set"
    value_type: str = "number"
    value: Any = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "varName": self.var_name,
            "op": self.op,
            "valueType": self.value_type,
            "value": self.value,
        }

    @staticmethod
    def from_dict(d: Any) -> "VarAction":
        return normalize_var_action(d)


def _detect_value(raw: Any) -> Dict[str, Any]:
    s = canonical_name(str(raw or ""))
    if not s:
        return {"valueType": "number", "value": 0}
    if is_numeric_literal(s):
        return {"valueType": "number", "value": float(s)}
    if s in VALUE_TYPES:
        return {"valueType": s, "value": 0}
    if is_ident(s):
        return {"valueType": "var", "value": s}
    return {"valueType": "number", "value": 0}


def parse_legacy_var_action_expr(expr: Any) -> Optional[VarAction]:
    raw = str(expr or "").strip()
    if not raw:
        return None
    m = LEGACY_STEP_RE.match(raw)
    if m:
        return normalize_var_action({
            "varName": m.group(1),
            "op": "inc" if m.group(2) == "++" else "dec",
            "valueType": "number",
            "value": 1,
        })
    m = LEGACY_ASSIGN_RE.match(raw)
    if not m:
        return None
    rhs = _detect_value(m.group(3))
    return normalize_var_action({
        "varName": m.group(1),
        "op": LEGACY_OPS.get(m.group(2), "set"),
        "valueType": rhs["valueType"],
        "value": rhs["value"],
    })


def normalize_var_action(raw: Any) -> VarAction:
    if isinstance(raw, VarAction):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        return create_var_action()

    from_expr = str(raw.get("expr") or "").strip()
    if from_expr:
        parsed = parse_legacy_var_action_expr(from_expr)
        if parsed is not None:
            parsed.id = str(raw.get("id") or parsed.id or new_id())
            return parsed

    name = raw.get("varName")
    op = str(raw.get("op") or "")
    vt = canonical_name(str(raw.get("valueType") or ""))
    out = VarAction(
        id=str(raw.get("id") or new_id()),
        var_name=str(name).strip() if is_ident(name) else "",
        op=op if op in OPS else "set",
        value_type=vt if vt in VALUE_TYPES else "number",
    )
    if out.value_type == "number":
        out.value = safe_num(raw.get("value"), 0.0)
    elif out.value_type == "var":
        v = raw.get("value")
        out.value = str(v).strip() if is_ident(v) else ""
    else:
        out.value = 0
    return out


def normalize_var_action_list(items: Any) -> List[VarAction]:
    if not isinstance(items, list):
        return []
    return [normalize_var_action(it) for it in items]


def create_var_action(seed: Optional[Mapping[str, Any]] = None) -> VarAction:
    s = dict(seed or {})
    return normalize_var_action({
        "id": s.get("id") or new_id(),
        "varName": s.get("varName") or "",
        "op": s.get("op") or "add",
        "valueType": s.get("valueType") or "number",
        "value": s.get("value") if s.get("value") is not None else 1,
    })


def resolve_action_value(action: VarAction, ctx: Optional[Mapping[str, Any]] = None, vars: Optional[Mapping[str, Any]] = None) -> float:
    if action.value_type == "number":
        return eval_number_like(action.value, 0.0, ctx, vars)
    if action.value_type == "var":
        return read_named_number(action.value, ctx, vars, 0.0)
    v = resolve_term(action.value_type, action.value, ctx, vars)
    return safe_num(v, 0.0)


def apply_var_action(action: Any, vars: MutableMapping[str, Any], ctx: Optional[Mapping[str, Any]] = None) -> bool:
    """Mutate `vars` in place. Returns False when nothing was applied."""
    a = action if isinstance(action, VarAction) else normalize_var_action(action)
    if not is_ident(a.var_name):
        return False
    key = a.var_name
    if key not in vars:
        return False
    cur = finite_or_none(vars[key])
    if cur is None:
        cur = 0.0
    if a.op == "inc":
        vars[key] = cur + 1
        return True
    if a.op == "dec":
        vars[key] = cur - 1
        return True

    val = resolve_action_value(a, ctx, vars)
    if a.op == "set":
        vars[key] = val
    elif a.op == "add":
        vars[key] = cur + val
    elif a.op == "sub":
        vars[key] = cur - val
    elif a.op == "mul":
        vars[key] = cur * val
    elif a.op == "div":
        vars[key] = cur if abs(val) < NEAR_ZERO else cur / val
    else:
        return False
    return True


def var_action_to_kotlin(action: Any, ctx_map: Optional[Mapping[str, Any]] = None, num_fmt: Optional[Callable[[Any], str]] = None) -> str:
    a = action if isinstance(action, VarAction) else normalize_var_action(action)
    if not is_ident(a.var_name):
        return ""
    if a.op == "inc":
        return f"{a.var_name}++"
    if a.op == "dec":
        return f"{a.var_name}--"
    rhs = term_to_kotlin(a.value_type, a.value, ctx_map or {}, num_fmt)
    return f"{a.var_name} {KOTLIN_ASSIGN.get(a.op, '=')} {rhs}"
