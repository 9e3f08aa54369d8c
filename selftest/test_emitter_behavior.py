"""Selftests for app.emitter_behavior (document normalization and persistence)

Run:
  python -m selftest.test_emitter_behavior
"""

import json
import tempfile
from pathlib import Path

from app.emitter_behavior import (
    EmitterVar,
    create_emitter_var,
    create_tick_action,
    default_emitter_behavior,
    load_emitter_behavior,
    normalize_death_behavior,
    normalize_emitter_behavior,
    normalize_num_or_var,
    normalize_tick_action,
    parse_legacy_max_age_expr,
    save_emitter_behavior,
)


def _strip_ids(obj):
    if isinstance(obj, dict):
        return {k: _strip_ids(v) for k, v in obj.items() if k != "id"}
    if isinstance(obj, list):
        return [_strip_ids(v) for v in obj]
    return obj


SAMPLE = {
    "emitterVars": [
        {"id": "v1", "name": "hp", "type": "int", "defaultValue": 10, "minEnabled": True, "minValue": 0, "maxEnabled": True, "maxValue": 20},
        {"id": "v2", "name": "wave", "type": "double", "defaultValue": 0.5},
    ],
    "tickExpression": "",
    "tickActions": [
        {"id": "t1", "varName": "hp", "op": "sub", "valueType": "number", "value": 1, "condition": "tick > 5"},
    ],
    "death": {
        "enabled": True,
        "mode": "respawn",
        "condition": {"enabled": True, "rules": [{"left": "reason", "op": "==", "right": "reason", "rightValue": "COLLISION"}]},
        "respawnCount": "hp",
        "offset": {"x": 1, "y": "wave", "z": "bogus expr"},
        "varActions": [{"id": "d1", "expr": "hp += 2"}],
    },
}


def test_defaults_are_complete():
    d = default_emitter_behavior().to_dict()
    assert d["emitterVars"] == [] and d["tickActions"] == []
    assert d["tickExpression"] == ""
    death = d["death"]
    assert death["enabled"] is False and death["mode"] == "dissipate"
    assert death["respawnCount"] == 1.0 and death["signMode"] == "keep"
    assert death["condition"]["enabled"] is False
    assert _strip_ids(normalize_emitter_behavior(None).to_dict()) == _strip_ids(d)
    assert _strip_ids(normalize_emitter_behavior("junk").to_dict()) == _strip_ids(d)


def test_normalize_is_idempotent():
    once = normalize_emitter_behavior(SAMPLE).to_dict()
    assert normalize_emitter_behavior(once).to_dict() == once
    assert once["tickActions"][0]["condition"]["enabled"] is True
    assert once["death"]["offset"] == {"x": 1.0, "y": "wave", "z": 0.0}
    assert once["death"]["respawnCount"] == "hp"
    assert once["death"]["varActions"][0]["op"] == "add"
    assert once["death"]["varActions"][0]["id"] == "d1"


def test_legacy_script_keys():
    b = normalize_emitter_behavior({"doTickExpression": "  incVar(\"hp\")\r\n", "tickScript": "ignored"})
    assert b.tick_expression == 'incVar("hp")'
    b = normalize_emitter_behavior({"tickScript": "decVar(\"hp\")"})
    assert b.tick_expression == 'decVar("hp")'


def test_emitter_var_int_truncation_and_bound_swap():
    v = EmitterVar.from_dict({
        "name": " hp ",
        "type": "INT",
        "defaultValue": 3.7,
        "minEnabled": "true",
        "minValue": 5.2,
        "maxEnabled": True,
        "maxValue": -2.9,
    })
    assert v.name == "hp" and v.is_int
    assert v.default_value == 3.0
    assert (v.min_value, v.max_value) == (-2.0, 5.0)
    assert v.has_bounds()

    fresh = create_emitter_var({"name": "w"})
    assert len(fresh.id) == 12 and fresh.type == "double" and not fresh.has_bounds()


def test_var_names_skip_invalid_and_duplicates():
    b = normalize_emitter_behavior({"emitterVars": [{"name": "a"}, {"name": "a"}, {"name": "2x"}, {"name": ""}]})
    assert b.var_names() == ["a"]
    assert len(b.emitter_vars) == 4


def test_tick_action_value_types():
    a = normalize_tick_action({"varName": "hp", "op": "add", "valueType": "age"})
    assert a.value_type == "number" and a.value == 0.0
    a = normalize_tick_action({"varName": "hp", "op": "set", "valueType": "tick"})
    assert a.value_type == "tick"
    a = normalize_tick_action({"varName": "hp", "op": "inc", "valueType": "age"})
    assert a.op == "inc"
    a = create_tick_action({"varName": "hp"})
    assert a.op == "add" and a.value == 1 and not a.condition.enabled
    a = normalize_tick_action({"expr": "hp *= 3", "condition": ""})
    assert a.op == "mul" and a.value == 3.0 and not a.condition.enabled


def test_death_numbers():
    d = normalize_death_behavior({"respawnCount": "-3", "signValue": "2.9", "sizeMul": "9bad"})
    assert d.respawn_count == 0.0
    assert d.sign_value == 2.0
    assert d.size_mul == 1.0
    assert normalize_death_behavior({"respawnCount": "3.9"}).respawn_count == 3.0
    assert normalize_num_or_var("", 4.0) == 4.0
    assert normalize_num_or_var(True, 0.0) == 1.0
    assert normalize_num_or_var("1 + 2", 7.0) == 7.0


def test_legacy_max_age():
    assert parse_legacy_max_age_expr("40.9") == {"type": "number", "value": 40.0}
    assert parse_legacy_max_age_expr("0") == {"type": "number", "value": 1.0}
    assert parse_legacy_max_age_expr("life") == {"type": "maxAge", "value": 0.0}
    assert parse_legacy_max_age_expr("hp") == {"type": "var", "value": "hp"}
    assert parse_legacy_max_age_expr("hp * 2") is None

    d = normalize_death_behavior({"maxAgeExpr": "hp"})
    assert d.max_age_enabled and d.max_age_value_type == "var" and d.max_age_value == "hp"
    # an explicit setting wins over the legacy field
    d = normalize_death_behavior({"maxAgeEnabled": True, "maxAgeValueType": "life", "maxAgeExpr": "hp"})
    assert d.max_age_value_type == "maxAge" and d.max_age_value == 0.0


def test_save_and_load_round_trip():
    with tempfile.TemporaryDirectory() as td:
        path = Path(td) / "nested" / "behavior.json"
        save_emitter_behavior(path, SAMPLE)
        assert path.exists()
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        # rule ids are minted on first normalization
        assert _strip_ids(on_disk) == _strip_ids(normalize_emitter_behavior(SAMPLE).to_dict())
        assert load_emitter_behavior(path).to_dict() == on_disk

        bad = Path(td) / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        try:
            load_emitter_behavior(bad)
        except ValueError:
            pass
        else:
            raise AssertionError("expected ValueError for malformed JSON")


def main():
    test_defaults_are_complete()
    test_normalize_is_idempotent()
    test_legacy_script_keys()
    test_emitter_var_int_truncation_and_bound_swap()
    test_var_names_skip_invalid_and_duplicates()
    test_tick_action_value_types()
    test_death_numbers()
    test_legacy_max_age()
    test_save_and_load_round_trip()
    print("OK: emitter_behavior selftests passed")


if __name__ == "__main__":
    main()
