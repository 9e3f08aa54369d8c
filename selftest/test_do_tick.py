"""Selftests for runtime.do_tick_v1 (linter, runtime scope, Kotlin transpiler)

Run:
  python -m selftest.test_do_tick
"""

import math
import random

from app import log_buffer
from runtime.do_tick_v1 import (
    KIND_DISALLOWED_CALL,
    KIND_SYNTAX,
    KIND_UNKNOWN_IDENTIFIER,
    build_do_tick_completions,
    collect_declared_names,
    compile_do_tick_source,
    resolve_emitter_var_names,
    run_do_tick,
    strip_for_lint,
    translate_do_tick_to_kotlin,
    translate_function_keyword,
    validate_do_tick_source,
)

WAVE = 'addVar("wave", 0.05); if (tick % 20 === 0) { setVar("pulse", 1) }'


def test_wave_pulse_script_validates():
    r = validate_do_tick_source(WAVE, ["wave", "pulse"])
    assert r.ok, r.message


def test_unlisted_call_is_disallowed():
    r = validate_do_tick_source(WAVE.replace("addVar", "doStuff"), ["wave", "pulse"])
    assert not r.ok
    assert r.kind == KIND_DISALLOWED_CALL
    assert r.name == "doStuff"
    assert "doStuff" in r.message


def test_unknown_identifier():
    r = validate_do_tick_source("hp = hp + 1", ["wave"])
    assert not r.ok and r.kind == KIND_UNKNOWN_IDENTIFIER and r.name == "hp"
    # behavior dicts work as the allow-list source too
    assert validate_do_tick_source("hp = hp + 1", {"emitterVars": [{"name": "hp"}]}).ok


def test_syntax_error_short_circuits():
    r = validate_do_tick_source("if (tick > ", ["wave"])
    assert not r.ok and r.kind == KIND_SYNTAX
    assert r.message.startswith("syntax error")


def test_locals_comments_and_strings_are_exempt():
    src = """
    // doStuff() in a comment is fine
    const k = 2
    let f = (a, b) => a + b
    function twice(x) { return x * 2 }
    try { setVar("wave", f(k, twice(1))) } catch (err) { setVar("pulse", 0) }
    setVar("pulse", Math.sin(PI) + rand(0, 1) * 0)
    const o = { speed: 1 }
    """
    r = validate_do_tick_source(src, ["wave", "pulse"])
    assert r.ok, r.message
    names = collect_declared_names(src)
    assert {"k", "f", "a", "b", "twice", "x", "err", "o"} <= names


def test_member_calls_outside_math_are_disallowed():
    r = validate_do_tick_source("const o = { f: 1 }\no.f()", [])
    assert not r.ok and r.kind == KIND_DISALLOWED_CALL and r.name == "o.f"


def test_strip_preserves_offsets():
    src = 'a = "x(y)" // tail'
    stripped = strip_for_lint(src)
    assert len(stripped) == len(src)
    assert "x(y)" not in stripped and "tail" not in stripped


def test_runtime_scope():
    compiled = compile_do_tick_source(WAVE, ["wave", "pulse"])
    assert compiled.ok
    store = {"wave": 0, "pulse": 0}
    assert run_do_tick(compiled, store, tick=20) is True
    assert abs(store["wave"] - 0.05) < 1e-12
    assert store["pulse"] == 1
    store["pulse"] = 0
    run_do_tick(compiled, store, tick=21)
    assert abs(store["wave"] - 0.10) < 1e-12
    assert store["pulse"] == 0


def test_helpers_and_undeclared_writes():
    src = """
    setVar("ghost", 5)
    setVar("a", getVar("nan", 3))
    divVar("b", 0)
    clampVar("c", 0, 1)
    incVar("d"); decVar("e")
    mulVar("f", 3)
    setVar("g", randInt(5, 5) + clamp(9, 0, 2))
    """
    compiled = compile_do_tick_source(src, ["a", "b", "c", "d", "e", "f", "g", "nan"])
    assert compiled.ok, compiled.message
    store = {"a": 0, "b": 4, "c": 7, "d": 0, "e": 0, "f": 2, "g": 0, "nan": float("nan")}
    assert run_do_tick(compiled, store, tick=1, rng=random.Random(1))
    assert "ghost" not in store
    assert store["a"] == 3
    assert store["b"] == 4
    assert store["c"] == 1
    assert store["d"] == 1 and store["e"] == -1
    assert store["f"] == 6
    assert store["g"] == 7


def test_runaway_script_is_fenced_and_logged():
    log_buffer.clear()
    compiled = compile_do_tick_source("while (true) { incVar(\"a\") }", ["a"])
    assert compiled.ok
    store = {"a": 0}
    assert run_do_tick(compiled, store, tick=0, step_limit=500) is False
    assert any("[doTick]" in line for line in log_buffer.tail())
    assert math.isfinite(store["a"]) and store["a"] > 0


def test_failed_compile_does_not_run():
    compiled = compile_do_tick_source("doStuff()", [])
    assert not compiled.ok and compiled.program is None
    assert run_do_tick(compiled, {}, tick=0) is False


def test_kotlin_translation():
    out = translate_do_tick_to_kotlin(WAVE, "    ")
    assert out.split("\n") == [
        '    addVar("wave", 0.05)',
        "    if (tick % 20 == 0) {",
        '        setVar("pulse", 1)',
        "    }",
    ]

    src = "\n".join([
        "const k = 2;",
        "let v = flag ? 1 : 0;",
        "if (v === 1) {",
        '  setVar("pulse", k)',
        "} else {",
        '  setVar("pulse", 0)',
        "}",
    ])
    assert translate_do_tick_to_kotlin(src, "    ").split("\n") == [
        "    val k = 2",
        "    var v = if (flag) 1 else 0",
        "    if (v == 1) {",
        '        setVar("pulse", k)',
        "    } else {",
        '        setVar("pulse", 0)',
        "    }",
    ]
    assert translate_do_tick_to_kotlin("   ", "    ") == "    // no-op"
    assert translate_function_keyword("function twice(x) {") == "fun twice(x) {"


def test_var_names_and_completions():
    assert resolve_emitter_var_names({"emitterVars": [{"name": "a"}, {"name": "a"}, {"name": "1x"}, {"name": " b "}]}) == ["a", "b"]
    labels = {c.label: c for c in build_do_tick_completions(["hp"])}
    assert labels["hp"].priority == 280
    assert 'setVar("hp", value)' in labels
    assert labels["Math.min(a, b)"].to_dict()["cursorOffset"] == 11


def main():
    test_wave_pulse_script_validates()
    test_unlisted_call_is_disallowed()
    test_unknown_identifier()
    test_syntax_error_short_circuits()
    test_locals_comments_and_strings_are_exempt()
    test_member_calls_outside_math_are_disallowed()
    test_strip_preserves_offsets()
    test_runtime_scope()
    test_helpers_and_undeclared_writes()
    test_runaway_script_is_fenced_and_logged()
    test_failed_compile_does_not_run()
    test_kotlin_translation()
    test_var_names_and_completions()
    print("OK: do_tick selftests passed")


if __name__ == "__main__":
    main()
