"""Selftests for runtime.var_actions_v1

Run:
  python -m selftest.test_var_actions
"""

from export.kotlin_fmt import fmt_k_num_literal
from runtime.var_actions_v1 import (
    apply_var_action,
    create_var_action,
    normalize_var_action,
    parse_legacy_var_action_expr,
    var_action_to_kotlin,
)


def test_sub_on_existing_and_missing():
    action = {"varName": "hp", "op": "sub", "valueType": "number", "value": 3}
    store = {"hp": 10}
    assert apply_var_action(action, store) is True
    assert store == {"hp": 7}

    empty = {}
    assert apply_var_action(action, empty) is False
    assert empty == {}


def test_inc_dec_ignore_value():
    store = {"n": 1.5}
    assert apply_var_action({"varName": "n", "op": "inc", "value": 50}, store)
    assert store["n"] == 2.5
    assert apply_var_action({"varName": "n", "op": "dec", "valueType": "var", "value": "other"}, store)
    assert store["n"] == 1.5


def test_value_types():
    store = {"x": 0, "y": 4}
    apply_var_action({"varName": "x", "op": "set", "valueType": "var", "value": "y"}, store)
    assert store["x"] == 4
    apply_var_action({"varName": "x", "op": "add", "valueType": "age"}, store, {"age": 6})
    assert store["x"] == 10
    apply_var_action({"varName": "x", "op": "mul", "valueType": "life"}, store, {"maxAge": 2})
    assert store["x"] == 20
    apply_var_action({"varName": "x", "op": "set", "valueType": "tick"}, store, {"tick": 33})
    assert store["x"] == 33


def test_div_by_near_zero_leaves_value():
    store = {"x": 8}
    assert apply_var_action({"varName": "x", "op": "div", "value": 0}, store) is True
    assert store["x"] == 8
    apply_var_action({"varName": "x", "op": "div", "value": 2}, store)
    assert store["x"] == 4


def test_invalid_name_is_noop():
    store = {"9x": 1}
    assert apply_var_action({"varName": "9x", "op": "set", "value": 3}, store) is False
    assert store == {"9x": 1}


def test_legacy_expressions():
    a = parse_legacy_var_action_expr("x++")
    assert a is not None and a.var_name == "x" and a.op == "inc"
    a = parse_legacy_var_action_expr("x -= 2.5")
    assert a.op == "sub" and a.value_type == "number" and a.value == 2.5
    a = parse_legacy_var_action_expr("x = life")
    assert a.op == "set" and a.value_type == "maxAge"
    a = parse_legacy_var_action_expr("x *= speed")
    assert a.op == "mul" and a.value_type == "var" and a.value == "speed"
    assert parse_legacy_var_action_expr("x ** 2") is None
    assert parse_legacy_var_action_expr("") is None

    upgraded = normalize_var_action({"id": "keep", "expr": "hp += 1"})
    assert upgraded.id == "keep" and upgraded.op == "add" and upgraded.value == 1


def test_normalize_is_idempotent():
    raw = {"varName": " hp ", "op": "pow", "valueType": "bogus", "value": "abc"}
    once = normalize_var_action(raw).to_dict()
    assert once["op"] == "set" and once["valueType"] == "number" and once["value"] == 0
    assert normalize_var_action(once).to_dict() == once

    created = create_var_action({"varName": "hp"}).to_dict()
    assert created["op"] == "add" and created["value"] == 1
    assert normalize_var_action(created).to_dict() == created


def test_kotlin_statements():
    num = lambda v: fmt_k_num_literal(v, 0)  # noqa: E731
    assert var_action_to_kotlin({"varName": "hp", "op": "sub", "value": 3}, {}, num) == "hp -= 3"
    assert var_action_to_kotlin({"varName": "hp", "op": "inc"}, {}, num) == "hp++"
    assert var_action_to_kotlin({"varName": "hp", "op": "dec"}, {}, num) == "hp--"
    assert var_action_to_kotlin({"varName": "hp", "op": "div", "value": 0.5}, {}, num) == "hp /= 0.5"
    assert var_action_to_kotlin({"varName": "hp", "op": "set", "valueType": "tick"}, {"tick": "tick"}, num) == "hp = tick"
    assert var_action_to_kotlin({"varName": "hp", "op": "mul", "valueType": "var", "value": "k"}, {}, num) == "hp *= k"
    assert var_action_to_kotlin({"varName": "hp", "op": "add", "valueType": "life"}, {"maxAge": "lifetime"}, num) == "hp += lifetime"
    assert var_action_to_kotlin({"varName": "", "op": "inc"}, {}, num) == ""


def main():
    test_sub_on_existing_and_missing()
    test_inc_dec_ignore_value()
    test_value_types()
    test_div_by_near_zero_leaves_value()
    test_invalid_name_is_noop()
    test_legacy_expressions()
    test_normalize_is_idempotent()
    test_kotlin_statements()
    print("OK: var_actions selftests passed")


if __name__ == "__main__":
    main()
