"""Selftests for export.behavior_codegen (Kotlin emission)

Run:
  python -m selftest.test_behavior_codegen
"""

from app.emitter_behavior import normalize_death_behavior, normalize_emitter_behavior
from export.behavior_codegen import (
    DEATH_SIGNATURE,
    gen_condition_kotlin,
    gen_death_action_kotlin,
    gen_do_tick_kotlin,
    gen_emitter_behavior_kotlin,
    gen_emitter_vars_kotlin,
    gen_var_bounds_apply_fn,
    max_age_value_to_kotlin,
)

VARS = [
    {"name": "hp", "type": "int", "defaultValue": 10, "minEnabled": True, "minValue": 0, "maxEnabled": True, "maxValue": 20},
    {"name": "wave", "type": "double", "defaultValue": 0.5},
    {"name": "floor", "type": "double", "minEnabled": True, "minValue": -1},
    {"name": "9bad", "type": "int"},
]


def _cfg(**extra):
    raw = {"emitterVars": VARS}
    raw.update(extra)
    return normalize_emitter_behavior(raw)


def test_var_declarations():
    lines = gen_emitter_vars_kotlin(_cfg().emitter_vars)
    assert lines == [
        "@CodecField",
        "var hp: Int = 10",
        "",
        "@CodecField",
        "var wave: Double = 0.5",
        "",
        "@CodecField",
        "var floor: Double = 0.0",
        "",
    ]


def test_bounds_function():
    lines, has_bounds = gen_var_bounds_apply_fn(_cfg().emitter_vars)
    assert has_bounds
    assert lines == [
        "private fun applyEmitterVarBounds() {",
        "    hp = hp.coerceIn(0, 20)",
        "    if (floor < -1.0) floor = -1.0",
        "}",
        "",
    ]
    lines, has_bounds = gen_var_bounds_apply_fn(normalize_emitter_behavior({"emitterVars": [{"name": "a"}]}).emitter_vars)
    assert lines == [] and not has_bounds


def test_do_tick_from_actions():
    cfg = _cfg(tickActions=[
        {"varName": "hp", "op": "sub", "value": 1, "condition": {"enabled": True, "rules": [{"left": "tick", "op": ">", "right": "number", "rightValue": 5}]}},
        {"varName": "wave", "op": "set", "valueType": "tick"},
        {"varName": "", "op": "inc"},
    ])
    lines = gen_do_tick_kotlin(cfg.tick_expression, cfg.tick_actions, True)
    assert lines == [
        "override fun doTick() {",
        "    if ((tick > 5)) {",
        "        hp -= 1",
        "    }",
        "    wave = tick",
        "    applyEmitterVarBounds()",
        "}",
    ]
    assert gen_do_tick_kotlin("", [], True) == [
        "override fun doTick() {",
        "    // modify emitter variables here",
        "}",
    ]


def test_do_tick_script_wins_over_actions():
    cfg = _cfg(
        tickExpression='incVar("hp")',
        tickActions=[{"varName": "wave", "op": "inc"}],
    )
    lines = gen_do_tick_kotlin(cfg.tick_expression, cfg.tick_actions, True)
    assert lines == [
        "override fun doTick() {",
        '    incVar("hp")',
        "    applyEmitterVarBounds()",
        "}",
    ]


def test_death_disabled():
    lines = gen_death_action_kotlin(normalize_death_behavior({"enabled": False, "varActions": [{"expr": "hp++"}]}), True)
    assert lines == list(DEATH_SIGNATURE) + ["    return listOf()", "}"]


def test_death_dissipate_with_gate_and_actions():
    death = normalize_death_behavior({
        "enabled": True,
        "mode": "dissipate",
        "condition": {"enabled": True, "rules": [{"left": "reason", "op": "==", "right": "reason", "rightValue": "COLLISION"}]},
        "varActions": [{"varName": "hp", "op": "add", "valueType": "age"}],
    })
    lines = gen_death_action_kotlin(death, True)
    assert lines[len(DEATH_SIGNATURE):] == [
        "    val age = oldControler.currentAge",
        "    val maxAge = oldControler.lifetime",
        "    if (!((reason == RemoveReason.COLLISION))) return listOf()",
        "    hp += age",
        "    applyEmitterVarBounds()",
        "    return listOf()",
        "}",
    ]


def test_death_respawn_block():
    death = normalize_death_behavior({
        "enabled": True,
        "mode": "respawn",
        "respawnCount": "hp",
        "offset": {"x": 1, "y": "wave", "z": 0},
        "sizeMul": 0.5,
        "speedMul": 2,
        "signMode": "set",
        "signValue": -1,
        "maxAgeEnabled": True,
        "maxAgeValueType": "number",
        "maxAgeValue": 40,
    })
    lines = gen_death_action_kotlin(death, False)
    assert lines[len(DEATH_SIGNATURE):] == [
        "    val age = oldControler.currentAge",
        "    val maxAge = oldControler.lifetime",
        "    val res = mutableListOf<Pair<ControlableParticleData, RelativeLocation>>()",
        "    repeat(maxOf(0, hp.toInt())) {",
        "        val data = oldData.clone().apply {",
        "            size = (size * 0.5).toFloat()",
        "            velocity = velocity.scale(2.0)",
        "            sign = -1",
        "            maxAge = (40).toInt().coerceAtLeast(1)",
        "        }",
        "        res.add(data to RelativeLocation(1.0, wave.toDouble(), 0.0))",
        "    }",
        "    return res",
        "}",
    ]


def test_max_age_expressions():
    assert max_age_value_to_kotlin("number", 12.9) == "12"
    assert max_age_value_to_kotlin("var", "hp") == "hp"
    assert max_age_value_to_kotlin("var", "") == "1"
    assert max_age_value_to_kotlin("respawnCount", 0) == "respawnCount"
    assert max_age_value_to_kotlin("bogus", 0) == "1"


def test_full_snippet():
    out = gen_emitter_behavior_kotlin({
        "emitterVars": [{"name": "wave"}, {"name": "pulse", "type": "int"}],
        "tickExpression": 'addVar("wave", 0.05); if (tick % 20 === 0) { setVar("pulse", 1) }',
    })
    assert out.startswith("@CodecField\nvar wave: Double = 0.0")
    assert "var pulse: Int = 0" in out
    assert "applyEmitterVarBounds" not in out
    assert "    if (tick % 20 == 0) {" in out
    assert "\n\n\n" not in out
    assert out.endswith("    return listOf()\n}")
    assert out.index("override fun doTick()") < out.index("override fun singleParticleDeathAction(")

    # a blank document still produces both overrides
    empty = gen_emitter_behavior_kotlin(None)
    assert empty.startswith("override fun doTick() {")
    assert "// modify emitter variables here" in empty


def test_standalone_condition():
    assert gen_condition_kotlin(None, {}) == "true"
    flt = {"enabled": True, "rules": [{"left": "age", "op": "<", "right": "maxAge"}]}
    assert gen_condition_kotlin(flt, {"age": "age", "maxAge": "lifetime"}) == "(age < lifetime)"


def main():
    test_var_declarations()
    test_bounds_function()
    test_do_tick_from_actions()
    test_do_tick_script_wins_over_actions()
    test_death_disabled()
    test_death_dissipate_with_gate_and_actions()
    test_death_respawn_block()
    test_max_age_expressions()
    test_full_snippet()
    test_standalone_condition()
    print("OK: behavior_codegen selftests passed")


if __name__ == "__main__":
    main()
