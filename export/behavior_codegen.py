from __future__ import annotations

"""
Kotlin source generation for an emitter behavior document.

Output order:
- @CodecField declarations for each valid emitter variable
- applyEmitterVarBounds() when any variable has a bound
- override fun doTick()
- override fun singleParticleDeathAction(...)

The document is normalized first, so any raw dict (or a saved JSON file) can be
passed straight in.
"""

import re
from typing import Any, List, Mapping, Tuple

from app.compiler_config import get_config
from app.emitter_behavior import DeathBehavior, EmitterVar, TickAction, is_valid_emitter_var_name, normalize_emitter_behavior
from export.kotlin_fmt import fmt_int_or_var, fmt_k_num_literal, fmt_num_or_var, num_for_type
from runtime.conditions_v1 import condition_filter_to_kotlin
from runtime.do_tick_v1 import normalize_do_tick_source, translate_do_tick_to_kotlin
from runtime.terms_v1 import is_ident
from runtime.var_actions_v1 import var_action_to_kotlin

TICK_ACTION_CTX = {"tick": "tick"}
TICK_CONDITION_CTX = {
    "tick": "tick",
    "age": "0",
    "maxAge": "0",
    "life": "0",
    "sign": "0",
    "respawnCount": "0",
}
DEATH_CTX = {
    "age": "age",
    "maxAge": "maxAge",
    "life": "maxAge",
    "sign": "oldData.sign",
    "respawnCount": "respawnCount",
}
DEATH_CONDITION_CTX = dict(DEATH_CTX, reason="reason")

DEATH_SIGNATURE = (
    "override fun singleParticleDeathAction(",
    "    oldControler: ParticleControler,",
    "    oldData: ControlableParticleData,",
    "    respawnCount: Int,",
    "    reason: RemoveReason",
    "): List<Pair<ControlableParticleData, RelativeLocation>> {",
)

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def _int_literal(v: Any) -> str:
    return fmt_k_num_literal(v, 0)


def gen_emitter_vars_kotlin(emitter_vars: List[EmitterVar]) -> List[str]:
    lines: List[str] = []
    for v in emitter_vars:
        if not is_valid_emitter_var_name(v.name):
            continue
        kt_type = "Int" if v.is_int else "Double"
        lines.append("@CodecField")
        lines.append(f"var {v.name}: {kt_type} = {num_for_type(v.default_value, v.type)}")
        lines.append("")
    return lines


def gen_var_bounds_apply_fn(emitter_vars: List[EmitterVar]) -> Tuple[List[str], bool]:
    """Returns (lines, has_bounds). No lines at all when nothing is bounded."""
    clamps: List[str] = []
    for v in emitter_vars:
        if not is_valid_emitter_var_name(v.name) or not v.has_bounds():
            continue
        lo = num_for_type(v.min_value, v.type)
        hi = num_for_type(v.max_value, v.type)
        if v.min_enabled and v.max_enabled:
            clamps.append(f"    {v.name} = {v.name}.coerceIn({lo}, {hi})")
        elif v.min_enabled:
            clamps.append(f"    if ({v.name} < {lo}) {v.name} = {lo}")
        else:
            clamps.append(f"    if ({v.name} > {hi}) {v.name} = {hi}")
    if not clamps:
        return [], False
    return ["private fun applyEmitterVarBounds() {", *clamps, "}", ""], True


def gen_do_tick_kotlin(tick_expression: str, tick_actions: List[TickAction], has_bounds: bool) -> List[str]:
    indent = get_config().indent
    lines = ["override fun doTick() {"]
    script = normalize_do_tick_source(tick_expression)
    if script:
        lines.append(translate_do_tick_to_kotlin(script, indent))
        if has_bounds:
            lines.append(f"{indent}applyEmitterVarBounds()")
        lines.append("}")
        return lines

    count = 0
    for action in tick_actions:
        stmt = var_action_to_kotlin(action, TICK_ACTION_CTX, _int_literal)
        if not stmt:
            continue
        cond = condition_filter_to_kotlin(action.condition, TICK_CONDITION_CTX, allow_reason=False, num_fmt=_int_literal)
        if cond:
            lines.append(f"{indent}if ({cond}) {{")
            lines.append(f"{indent}{indent}{stmt}")
            lines.append(f"{indent}}}")
        else:
            lines.append(f"{indent}{stmt}")
        count += 1
    if not count:
        lines.append(f"{indent}// modify emitter variables here")
    elif has_bounds:
        lines.append(f"{indent}applyEmitterVarBounds()")
    lines.append("}")
    return lines


def max_age_value_to_kotlin(kind: str, value: Any) -> str:
    if kind == "number":
        return fmt_int_or_var(value, 1)
    if kind == "var":
        s = str(value or "").strip()
        return s if is_ident(s) else "1"
    if kind in ("age", "maxAge", "respawnCount"):
        return kind
    return "1"


def gen_death_action_kotlin(death: DeathBehavior, has_bounds: bool) -> List[str]:
    ind = get_config().indent
    lines = list(DEATH_SIGNATURE)
    if not death.enabled:
        lines.append(f"{ind}return listOf()")
        lines.append("}")
        return lines

    lines.append(f"{ind}val age = oldControler.currentAge")
    lines.append(f"{ind}val maxAge = oldControler.lifetime")

    cond = condition_filter_to_kotlin(death.condition, DEATH_CONDITION_CTX, allow_reason=True, num_fmt=_int_literal)
    if cond:
        lines.append(f"{ind}if (!({cond})) return listOf()")

    for action in death.var_actions:
        stmt = var_action_to_kotlin(action, DEATH_CTX, _int_literal)
        if stmt:
            lines.append(f"{ind}{stmt}")
    if has_bounds and death.var_actions:
        lines.append(f"{ind}applyEmitterVarBounds()")

    if death.mode == "dissipate":
        lines.append(f"{ind}return listOf()")
        lines.append("}")
        return lines

    ind2 = ind * 2
    ind3 = ind * 3
    off = death.offset
    lines.append(f"{ind}val res = mutableListOf<Pair<ControlableParticleData, RelativeLocation>>()")
    lines.append(f"{ind}repeat(maxOf(0, {fmt_int_or_var(death.respawn_count, 0)})) {{")
    lines.append(f"{ind2}val data = oldData.clone().apply {{")
    lines.append(f"{ind3}size = (size * {fmt_num_or_var(death.size_mul, 1.0)}).toFloat()")
    lines.append(f"{ind3}velocity = velocity.scale({fmt_num_or_var(death.speed_mul, 1.0)})")
    if death.sign_mode == "set":
        lines.append(f"{ind3}sign = {fmt_int_or_var(death.sign_value, 0)}")
    if death.max_age_enabled:
        expr = max_age_value_to_kotlin(death.max_age_value_type, death.max_age_value)
        lines.append(f"{ind3}maxAge = ({expr}).toInt().coerceAtLeast(1)")
    lines.append(f"{ind2}}}")
    lines.append(
        f"{ind2}res.add(data to RelativeLocation("
        f"{fmt_num_or_var(off.get('x'), 0)}, {fmt_num_or_var(off.get('y'), 0)}, {fmt_num_or_var(off.get('z'), 0)}))"
    )
    lines.append(f"{ind}}}")
    lines.append(f"{ind}return res")
    lines.append("}")
    return lines


def gen_emitter_behavior_kotlin(raw: Any) -> str:
    """Full Kotlin snippet for one emitter behavior (dict, EmitterBehavior or None)."""
    cfg = normalize_emitter_behavior(raw)
    lines: List[str] = []
    lines.extend(gen_emitter_vars_kotlin(cfg.emitter_vars))
    bounds, has_bounds = gen_var_bounds_apply_fn(cfg.emitter_vars)
    lines.extend(bounds)
    lines.extend(gen_do_tick_kotlin(cfg.tick_expression, cfg.tick_actions, has_bounds))
    lines.append("")
    lines.extend(gen_death_action_kotlin(cfg.death, has_bounds))
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


def gen_condition_kotlin(flt: Any, ctx_map: Mapping[str, Any], *, allow_reason: bool = False) -> str:
    """Standalone condition expression, "true" when the filter always passes."""
    return condition_filter_to_kotlin(flt, ctx_map, allow_reason=allow_reason, num_fmt=_int_literal) or "true"
