"""Selftests for runtime.behavior_runtime_v1 (live preview of one emitter behavior)

Run:
  python -m selftest.test_behavior_runtime
"""

import random
from types import SimpleNamespace

from export.behavior_codegen import gen_do_tick_kotlin
from runtime.behavior_runtime_v1 import BehaviorRuntime, ParticleState

VARS = [
    {"name": "hp", "type": "int", "defaultValue": 10, "minEnabled": True, "minValue": 0, "maxEnabled": True, "maxValue": 20},
    {"name": "wave", "type": "double", "defaultValue": 0.5},
]


def _assert_close(a: float, b: float, eps: float = 1e-9):
    assert abs(float(a) - float(b)) <= eps, (a, b)


def _rt(**extra) -> BehaviorRuntime:
    raw = {"emitterVars": VARS}
    raw.update(extra)
    rt = BehaviorRuntime(rng=random.Random(7))
    rt.ensure(raw)
    return rt


def test_ensure_seeds_and_keeps_values():
    rt = _rt()
    assert rt.vars == {"hp": 10.0, "wave": 0.5}

    rt.vars["hp"] = 3.0
    # same declarations (fresh ids) keep live values
    rt.ensure({"emitterVars": VARS, "tickActions": [{"varName": "hp", "op": "inc"}]})
    assert rt.vars["hp"] == 3.0

    changed = [dict(VARS[0]), dict(VARS[1], defaultValue=1.0)]
    rt.ensure({"emitterVars": changed})
    assert rt.vars == {"hp": 10.0, "wave": 1.0}


def test_bounds_clamp_and_truncate():
    rt = _rt()
    rt.vars["hp"] = 25.7
    rt.apply_bounds()
    assert rt.vars["hp"] == 20.0
    rt.vars["hp"] = -3.0
    rt.apply_bounds()
    assert rt.vars["hp"] == 0.0
    rt.vars["hp"] = 4.9
    rt.apply_bounds()
    assert rt.vars["hp"] == 4.0
    rt.vars["wave"] = -1e9
    rt.apply_bounds()
    assert rt.vars["wave"] == -1e9


def test_tick_actions_with_conditions():
    rt = _rt(tickActions=[
        {"varName": "hp", "op": "sub", "value": 1, "condition": {"enabled": True, "rules": [{"left": "tick", "op": ">", "right": "number", "rightValue": 2}]}},
        {"varName": "wave", "op": "set", "valueType": "tick"},
    ])
    for _ in range(3):
        rt.run_tick()
    assert rt.tick == 3
    assert rt.vars["hp"] == 9.0
    assert rt.vars["wave"] == 3.0
    for _ in range(20):
        rt.run_tick()
    # hp is held at its lower bound
    assert rt.vars["hp"] == 0.0


def test_tick_conditions_read_builtins_as_zero():
    raw = {
        "emitterVars": [{"name": "age", "defaultValue": 50}, {"name": "hits"}],
        "tickActions": [
            {"varName": "hits", "op": "inc", "condition": {"enabled": True, "rules": [{"left": "age", "op": ">", "right": "number", "rightValue": 10}]}},
        ],
    }
    rt = BehaviorRuntime(rng=random.Random(7))
    cfg = rt.ensure(raw)
    rt.run_tick()
    assert rt.vars["age"] == 50.0
    assert rt.vars["hits"] == 0.0
    # the generated doTick() gates on the same constant
    assert "    if ((0 > 10)) {" in gen_do_tick_kotlin(cfg.tick_expression, cfg.tick_actions, False)


def test_tick_script():
    rt = _rt(
        emitterVars=[{"name": "wave"}, {"name": "pulse"}],
        tickExpression='addVar("wave", 0.05); if (tick % 20 === 0) { setVar("pulse", 1) }',
    )
    assert rt.compiled is not None and rt.compiled.ok
    for _ in range(19):
        rt.run_tick()
    assert rt.vars["pulse"] == 0.0
    rt.run_tick()
    assert rt.vars["pulse"] == 1.0
    _assert_close(rt.vars["wave"], 1.0)


def test_rejected_script_does_nothing():
    rt = _rt(tickExpression="doStuff()", tickActions=[{"varName": "hp", "op": "inc"}])
    assert rt.compiled is not None and not rt.compiled.ok
    rt.run_tick()
    assert rt.tick == 1
    assert rt.vars["hp"] == 10.0


def test_death_disabled_and_dissipate():
    rt = _rt(death={"enabled": False, "varActions": [{"expr": "hp++"}]})
    assert rt.run_death({"age": 5, "life": 5}) == []
    assert rt.vars["hp"] == 10.0

    rt = _rt(death={
        "enabled": True,
        "condition": {"enabled": True, "rules": [{"left": "reason", "op": "==", "right": "reason", "rightValue": "COLLISION"}]},
        "varActions": [{"expr": "hp += 15"}],
    })
    assert rt.run_death({"age": 5}, reason="AGE") == []
    assert rt.vars["hp"] == 10.0
    assert rt.run_death({"age": 5}, reason="COLLISION") == []
    assert rt.vars["hp"] == 20.0


def test_respawn_plans():
    rt = _rt(
        emitterVars=[{"name": "hp", "type": "int", "defaultValue": 2}],
        death={
            "enabled": True,
            "mode": "respawn",
            "respawnCount": "hp",
            "offset": {"x": 1, "y": 0, "z": 0},
            "sizeMul": 0.5,
            "speedMul": 2,
            "signMode": "set",
            "signValue": -1,
            "maxAgeEnabled": True,
            "maxAgeValueType": "var",
            "maxAgeValue": "hp",
        },
    )
    particle = {"pos": [0, 1, 2], "vel": [1, 0, 0], "age": 5, "life": 30, "size": 2, "sign": 1, "respawnCount": 0}
    plans = rt.run_death(particle)
    assert len(plans) == 2
    p = plans[0]
    assert p.pos == (1.0, 1.0, 2.0)
    assert p.vel == (2.0, 0.0, 0.0)
    assert p.size == 1.0 and p.sign == -1
    assert p.life == 2.0 and p.respawn_count == 1 and p.age == 0.0
    assert p.to_dict()["respawnCount"] == 1
    assert plans[0] is not plans[1]


def test_respawn_max_age_from_context_and_zero_count():
    rt = _rt(death={"enabled": True, "mode": "respawn", "respawnCount": 1, "maxAgeEnabled": True, "maxAgeValueType": "life"})
    obj = SimpleNamespace(pos=(0, 0, 0), vel=(0, 0, 0), age=3, life=30, size=1, sign=0, respawn_count=4)
    plans = rt.run_death(obj)
    assert len(plans) == 1
    assert plans[0].life == 30.0 and plans[0].respawn_count == 5

    rt = _rt(death={"enabled": True, "mode": "respawn", "respawnCount": 0})
    assert rt.run_death({"age": 1}) == []


def test_particle_state_defaults():
    p = ParticleState.from_any({"maxAge": 12, "respawnCount": -2})
    assert p.life == 12.0 and p.respawn_count == 0 and p.size == 1.0
    assert ParticleState.from_any(p) is p


def main():
    test_ensure_seeds_and_keeps_values()
    test_bounds_clamp_and_truncate()
    test_tick_actions_with_conditions()
    test_tick_conditions_read_builtins_as_zero()
    test_tick_script()
    test_rejected_script_does_nothing()
    test_death_disabled_and_dissipate()
    test_respawn_plans()
    test_respawn_max_age_from_context_and_zero_count()
    test_particle_state_defaults()
    print("OK: behavior_runtime selftests passed")


if __name__ == "__main__":
    main()
