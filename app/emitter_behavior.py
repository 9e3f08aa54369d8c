"""Emitter behavior document.

One JSON document per emitter holds everything the behavior editor edits:

  emitterVars    declared variables (name, int|double, default, optional bounds)
  tickExpression per-tick script (legacy keys: doTickExpression, tickScript)
  tickActions    conditional var actions, used when there is no script
  death          death/respawn config with its own condition and var actions

Normalization is the load path. It tolerates legacy shapes (flat condition
strings, `expr` var actions, `maxAgeExpr`) and always returns a complete,
valid document. Normalizing twice gives the same result.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from runtime.conditions_v1 import ConditionFilter, create_condition_filter, normalize_condition_filter
from runtime.do_tick_v1 import normalize_do_tick_source
from runtime.terms_v1 import finite_or_none, is_ident, new_id
from runtime.var_actions_v1 import VarAction, create_var_action, normalize_var_action, normalize_var_action_list

DEATH_MODES = ("dissipate", "respawn")
SIGN_MODES = ("keep", "set")
MAX_AGE_TYPES = ("number", "var", "age", "maxAge", "respawnCount")
TICK_VALUE_TYPES = ("number", "var", "tick")

NumOrVar = Union[float, str]


def _to_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def normalize_num_or_var(
    value: Any,
    fallback: NumOrVar,
    *,
    int_mode: bool = False,
    lo: Optional[float] = None,
    hi: Optional[float] = None,
) -> NumOrVar:
    """A finite number, or an identifier naming an emitter variable."""
    raw = "" if value is None else str(value).strip()
    if isinstance(value, bool):
        raw = "1" if value else "0"
    if raw and finite_or_none(raw) is None:
        return raw if is_ident(raw) else fallback
    n = finite_or_none(fallback if raw == "" else raw)
    if n is None:
        n = finite_or_none(fallback) or 0.0
    if int_mode:
        n = float(math.trunc(n))
    if lo is not None:
        n = max(lo, n)
    if hi is not None:
        n = min(hi, n)
    return n


def is_valid_emitter_var_name(name: Any) -> bool:
    return is_ident(name)


@dataclass
class EmitterVar:
    id: str = ""
    name: str = ""
    type: str = "double"  # int | double
    default_value: float = 0.0
    min_enabled: bool = False
    min_value: float = 0.0
    max_enabled: bool = False
    max_value: float = 0.0

    @property
    def is_int(self) -> bool:
        return self.type == "int"

    def has_bounds(self) -> bool:
        return self.min_enabled or self.max_enabled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "defaultValue": self.default_value,
            "minEnabled": self.min_enabled,
            "minValue": self.min_value,
            "maxEnabled": self.max_enabled,
            "maxValue": self.max_value,
        }

    @staticmethod
    def from_dict(d: Any) -> "EmitterVar":
        if isinstance(d, EmitterVar):
            d = d.to_dict()
        if not isinstance(d, Mapping):
            d = {}
        out = EmitterVar(
            id=str(d.get("id") or new_id()),
            name=str(d.get("name") or "").strip(),
            type="int" if str(d.get("type") or "double").lower() == "int" else "double",
            min_enabled=_to_bool(d.get("minEnabled")),
            max_enabled=_to_bool(d.get("maxEnabled")),
        )
        for attr, key in (("default_value", "defaultValue"), ("min_value", "minValue"), ("max_value", "maxValue")):
            n = finite_or_none(d.get(key)) if not isinstance(d.get(key), bool) else None
            if n is not None:
                setattr(out, attr, n)
        if out.is_int:
            out.default_value = float(math.trunc(out.default_value))
            out.min_value = float(math.trunc(out.min_value))
            out.max_value = float(math.trunc(out.max_value))
        if out.min_enabled and out.max_enabled and out.min_value > out.max_value:
            out.min_value, out.max_value = out.max_value, out.min_value
        return out


@dataclass
class TickAction(VarAction):
    condition: ConditionFilter = field(default_factory=lambda: create_condition_filter({}, allow_reason=False))

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["condition"] = self.condition.to_dict()
        return d

    @staticmethod
    def from_dict(d: Any) -> "TickAction":
        return normalize_tick_action(d)


def _filter_source(raw: Any) -> Any:
    """Conditions may be stored as an object or as a legacy flat string."""
    if isinstance(raw, (Mapping, ConditionFilter)):
        return raw
    s = "" if raw is None else str(raw)
    return {"enabled": bool(s.strip()), "expr": s}


def normalize_tick_action(raw: Any) -> TickAction:
    if isinstance(raw, TickAction):
        raw = raw.to_dict()
    src: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    base = normalize_var_action(src) if str(src.get("expr") or "").strip() else create_var_action(src)
    out = TickAction(
        id=base.id,
        var_name=base.var_name,
        op=base.op,
        value_type=base.value_type,
        value=base.value,
    )
    if out.op not in ("inc", "dec") and out.value_type not in TICK_VALUE_TYPES:
        out.value_type = "number"
        out.value = 0.0
    out.condition = normalize_condition_filter(_filter_source(src.get("condition")), allow_reason=False)
    return out


def create_tick_action(seed: Optional[Mapping[str, Any]] = None) -> TickAction:
    return normalize_tick_action(dict(seed or {}))


def create_death_var_action(seed: Optional[Mapping[str, Any]] = None) -> VarAction:
    return create_var_action(seed)


def create_emitter_var(seed: Optional[Mapping[str, Any]] = None) -> EmitterVar:
    base: Dict[str, Any] = {"id": new_id(), "name": "", "type": "double", "defaultValue": 0}
    base.update(dict(seed or {}))
    return EmitterVar.from_dict(base)


def normalize_max_age_type(raw: Any) -> str:
    s = str(raw or "").strip()
    t = "maxAge" if s == "life" else s
    return t if t in MAX_AGE_TYPES else "number"


def normalize_max_age_value(kind: str, raw: Any) -> NumOrVar:
    t = normalize_max_age_type(kind)
    if t == "number":
        return normalize_num_or_var(raw, 1.0, int_mode=True, lo=1)
    if t == "var":
        return str(raw).strip() if is_ident(raw) else ""
    return 0.0


def parse_legacy_max_age_expr(raw: Any) -> Optional[Dict[str, Any]]:
    s = str(raw or "").strip()
    if not s:
        return None
    n = finite_or_none(s)
    if n is not None:
        return {"type": "number", "value": float(max(1, math.trunc(n)))}
    if is_ident(s):
        if s in ("age", "maxAge", "life", "respawnCount"):
            return {"type": "maxAge" if s == "life" else s, "value": 0.0}
        return {"type": "var", "value": s}
    return None


@dataclass
class DeathBehavior:
    enabled: bool = False
    mode: str = "dissipate"
    condition: ConditionFilter = field(default_factory=lambda: create_condition_filter({}, allow_reason=True))
    respawn_count: NumOrVar = 1.0
    offset: Dict[str, NumOrVar] = field(default_factory=lambda: {"x": 0.0, "y": 0.0, "z": 0.0})
    size_mul: NumOrVar = 1.0
    speed_mul: NumOrVar = 1.0
    sign_mode: str = "keep"
    sign_value: NumOrVar = 0.0
    max_age_enabled: bool = False
    max_age_value_type: str = "number"
    max_age_value: NumOrVar = 1.0
    var_actions: List[VarAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "mode": self.mode,
            "condition": self.condition.to_dict(),
            "respawnCount": self.respawn_count,
            "offset": dict(self.offset),
            "sizeMul": self.size_mul,
            "speedMul": self.speed_mul,
            "signMode": self.sign_mode,
            "signValue": self.sign_value,
            "maxAgeEnabled": self.max_age_enabled,
            "maxAgeValueType": self.max_age_value_type,
            "maxAgeValue": self.max_age_value,
            "varActions": [a.to_dict() for a in self.var_actions],
        }

    @staticmethod
    def from_dict(d: Any) -> "DeathBehavior":
        return normalize_death_behavior(d)


def normalize_death_behavior(raw: Any) -> DeathBehavior:
    if isinstance(raw, DeathBehavior):
        raw = raw.to_dict()
    out = DeathBehavior()
    if not isinstance(raw, Mapping):
        return out
    out.enabled = _to_bool(raw.get("enabled"))
    out.mode = "respawn" if raw.get("mode") == "respawn" else "dissipate"
    out.condition = normalize_condition_filter(_filter_source(raw.get("condition")), allow_reason=True)

    out.respawn_count = normalize_num_or_var(raw.get("respawnCount"), 1.0, int_mode=True, lo=0)
    off = raw.get("offset") if isinstance(raw.get("offset"), Mapping) else {}
    out.offset = {k: normalize_num_or_var(off.get(k), 0.0) for k in ("x", "y", "z")}
    out.size_mul = normalize_num_or_var(raw.get("sizeMul"), 1.0)
    out.speed_mul = normalize_num_or_var(raw.get("speedMul"), 1.0)
    out.sign_mode = "set" if raw.get("signMode") == "set" else "keep"
    out.sign_value = normalize_num_or_var(raw.get("signValue"), 0.0, int_mode=True)

    out.max_age_enabled = _to_bool(raw.get("maxAgeEnabled"))
    out.max_age_value_type = normalize_max_age_type(raw.get("maxAgeValueType"))
    out.max_age_value = normalize_max_age_value(out.max_age_value_type, raw.get("maxAgeValue"))
    legacy = parse_legacy_max_age_expr(raw.get("maxAgeExpr"))
    if legacy is not None and not out.max_age_enabled:
        out.max_age_enabled = True
        out.max_age_value_type = legacy["type"]
        out.max_age_value = legacy["value"]

    out.var_actions = normalize_var_action_list(raw.get("varActions"))
    return out


@dataclass
class EmitterBehavior:
    emitter_vars: List[EmitterVar] = field(default_factory=list)
    tick_expression: str = ""
    tick_actions: List[TickAction] = field(default_factory=list)
    death: DeathBehavior = field(default_factory=DeathBehavior)

    def var_names(self) -> List[str]:
        out: List[str] = []
        for v in self.emitter_vars:
            if is_valid_emitter_var_name(v.name) and v.name not in out:
                out.append(v.name)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emitterVars": [v.to_dict() for v in self.emitter_vars],
            "tickExpression": self.tick_expression,
            "tickActions": [a.to_dict() for a in self.tick_actions],
            "death": self.death.to_dict(),
        }

    @staticmethod
    def from_dict(d: Any) -> "EmitterBehavior":
        return normalize_emitter_behavior(d)


def normalize_emitter_behavior(raw: Any) -> EmitterBehavior:
    if isinstance(raw, EmitterBehavior):
        raw = raw.to_dict()
    out = EmitterBehavior()
    if not isinstance(raw, Mapping):
        return out

    vars_raw = raw.get("emitterVars")
    out.emitter_vars = [EmitterVar.from_dict(v) for v in vars_raw] if isinstance(vars_raw, list) else []

    expr: Any = ""
    for key in ("tickExpression", "doTickExpression", "tickScript"):
        if raw.get(key) is not None:
            expr = raw.get(key)
            break
    out.tick_expression = normalize_do_tick_source(expr)

    ticks = raw.get("tickActions")
    out.tick_actions = [normalize_tick_action(t) for t in ticks] if isinstance(ticks, list) else []
    out.death = normalize_death_behavior(raw.get("death"))
    return out


def default_emitter_behavior() -> EmitterBehavior:
    return normalize_emitter_behavior({})


def load_emitter_behavior(path: Path) -> EmitterBehavior:
    """Read and normalize a behavior document. Raises on unreadable or invalid JSON."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return normalize_emitter_behavior(data)


def save_emitter_behavior(path: Path, cfg: Any) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    clean = normalize_emitter_behavior(cfg).to_dict()
    p.write_text(json.dumps(clean, indent=2), encoding="utf-8")
    return p
