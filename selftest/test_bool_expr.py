"""Selftests for runtime.bool_expr_v1

Run:
  python -m selftest.test_bool_expr
"""

from runtime.bool_expr_v1 import (
    MSG_EMPTY,
    MSG_UNSAFE,
    boolean_expr_to_kotlin,
    build_scope,
    compile_boolean_expr,
    eval_boolean_expr,
    validate_boolean_expr,
)
from runtime.compile_cache import CompileCache


def test_validate_gate():
    assert validate_boolean_expr("age > 3 && hp <= 10").ok
    assert validate_boolean_expr("Math.abs(sign) == 1 || tick % 2 == 0").ok

    r = validate_boolean_expr("   ")
    assert not r.ok and r.error == MSG_EMPTY

    # characters outside the allow-list
    r = validate_boolean_expr("hp > 'a'")
    assert not r.ok and r.error == MSG_UNSAFE
    assert not validate_boolean_expr("a[0] > 1").ok
    assert not validate_boolean_expr("a; b").ok


def test_blocklist_wins_over_allowed_characters():
    # every character here is allowed; the keyword alone rejects it
    r = validate_boolean_expr("function (x) (x)")
    assert not r.ok and r.error == MSG_UNSAFE
    assert not validate_boolean_expr("age > 1 && constructor").ok
    assert not validate_boolean_expr("this.age > 1").ok
    assert not validate_boolean_expr("new Date").ok
    assert not validate_boolean_expr("(x) => x").ok


def test_syntax_errors_are_reported_not_raised():
    r = validate_boolean_expr("age > ")
    assert not r.ok and r.error.startswith("syntax error")
    r = validate_boolean_expr("(age > 1")
    assert not r.ok


def test_eval_with_ctx_and_vars():
    assert eval_boolean_expr("age >= 10", {"age": 10}) is True
    assert eval_boolean_expr("age >= 10", {"age": 9}) is False
    # vars override context names
    assert eval_boolean_expr("hp == 3", {"hp": 1}, {"hp": 3}) is True
    assert eval_boolean_expr("abs(sign) == 1", {"sign": -1}) is True
    assert eval_boolean_expr("Math.abs(age) == 2", {"age": -2}) is True
    # `,` is outside the allow-list, so multi-argument calls never run
    assert not validate_boolean_expr("Math.max(age, 4) == 4").ok
    assert eval_boolean_expr("Math.max(age, 4) == 4", {"age": 2}, fallback=False) is False


def test_runtime_failures_use_fallback():
    # unknown name raises inside the interpreter; the caller's fallback wins
    assert eval_boolean_expr("ghost > 1", {}, {}, fallback=True) is True
    assert eval_boolean_expr("ghost > 1", {}, {}, fallback=False) is False
    # unsafe text never runs
    assert eval_boolean_expr("function", {}, {}, fallback=True) is True


def test_math_namespace_is_shared_and_read_only():
    assert build_scope({})["Math"] is build_scope({"age": 1})["Math"]
    # assignment into Math fails the evaluation and leaves the namespace intact
    assert eval_boolean_expr("(Math.PI = 3) == 3", {}, fallback=False) is False
    assert eval_boolean_expr("Math.PI > 3.1", {}) is True


def test_failed_compile_is_memoized():
    cache = CompileCache("bool-test")
    assert compile_boolean_expr("this > 1", cache) is None
    assert "this > 1" in cache
    ok = compile_boolean_expr("age > 1", cache)
    assert ok is not None and compile_boolean_expr(" age > 1 ", cache) is ok


def test_kotlin_rewrite():
    out = boolean_expr_to_kotlin("age === maxAge && Math.abs(sign) !== 1", {"age": "age", "maxAge": "lifetime", "sign": "oldData.sign"})
    assert out == "age == lifetime && kotlin.math.abs(oldData.sign) != 1"
    # legacy life reads the maxAge mapping
    assert boolean_expr_to_kotlin("life > 5", {"maxAge": "lifetime"}) == "lifetime > 5"
    # invalid expressions become a constant false
    assert boolean_expr_to_kotlin("function", {}) == "false"
    assert boolean_expr_to_kotlin("", {}) == "false"
    # whole words only
    assert boolean_expr_to_kotlin("ageX > age", {"age": "a"}) == "ageX > a"


def main():
    test_validate_gate()
    test_blocklist_wins_over_allowed_characters()
    test_syntax_errors_are_reported_not_raised()
    test_eval_with_ctx_and_vars()
    test_runtime_failures_use_fallback()
    test_math_namespace_is_shared_and_read_only()
    test_failed_compile_is_memoized()
    test_kotlin_rewrite()
    print("OK: bool_expr selftests passed")


if __name__ == "__main__":
    main()
