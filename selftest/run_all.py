"""Run all selftests.

Usage:
  python -m selftest.run_all
"""

import importlib


TEST_MODULES = [
    'selftest.test_compile_cache',
    'selftest.test_math_expr',
    'selftest.test_jsmini',
    'selftest.test_bool_expr',
    'selftest.test_conditions',
    'selftest.test_var_actions',
    'selftest.test_do_tick',
    'selftest.test_emitter_behavior',
    'selftest.test_behavior_codegen',
    'selftest.test_behavior_runtime',
    'selftest.test_cli',
]


def main():
    failures = []
    for modname in TEST_MODULES:
        try:
            m = importlib.import_module(modname)
            # If module provides main(), call it; else do nothing.
            if hasattr(m, "main") and callable(getattr(m, "main")):
                m.main()
        except Exception as e:
            failures.append((modname, e))

    if failures:
        print("\nFAILED:")
        for modname, e in failures:
            print(f"- {modname}: {e}")
        raise SystemExit(1)

    print("\nOK: all selftests passed")


if __name__ == "__main__":
    main()
