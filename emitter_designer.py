"""Command-line entry for the emitter behavior compiler.

  python emitter_designer.py gen behavior.json [--out Emitter.kt]
  python emitter_designer.py lint "addVar('hp', 1)" --var hp
  python emitter_designer.py eval-math "age * 2 + 1" --ctx age=5
  python emitter_designer.py check-bool "age > 3 && hp < 10"
"""

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional


def _write_crash_log(exc: BaseException) -> None:
    """Best-effort crash log writer."""
    import traceback

    here = os.path.dirname(os.path.abspath(__file__))
    logs = os.path.join(here, "user_data", "logs")
    try:
        os.makedirs(logs, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        path = os.path.join(logs, f"crash_{ts}.log")
        with open(path, "w", encoding="utf-8") as f:
            f.write("Emitter designer crash log\n")
            f.write(f"UTC: {ts}\n\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        return
    print(f"[Emitter] Crash log written to: {path}")


def _parse_pairs(items: Optional[List[str]]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for item in items or []:
        key, sep, val = item.partition("=")
        if not sep or not key.strip():
            raise SystemExit(f"[Emitter] bad --ctx/--vars entry (want k=v): {item}")
        try:
            out[key.strip()] = float(val)
        except ValueError:
            raise SystemExit(f"[Emitter] not a number: {item}") from None
    return out


def cmd_gen(args: argparse.Namespace) -> int:
    from app.emitter_behavior import load_emitter_behavior
    from export.behavior_codegen import gen_emitter_behavior_kotlin

    try:
        behavior = load_emitter_behavior(Path(args.behavior))
    except (OSError, ValueError) as e:
        print(f"[Emitter] cannot read {args.behavior}: {e}")
        return 2
    text = gen_emitter_behavior_kotlin(behavior)
    if args.out:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        print(f"[Emitter] wrote {args.out} ({len(text)} chars)")
    else:
        print(text)
    return 0


def cmd_lint(args: argparse.Namespace) -> int:
    from runtime.do_tick_v1 import validate_do_tick_source

    src = args.script
    if args.file:
        src = Path(args.file).read_text(encoding="utf-8")
    res = validate_do_tick_source(src or "", args.var or [])
    if res.ok:
        print("[Emitter] OK")
        return 0
    print(f"[Emitter] {res.kind}: {res.message}")
    return 1


def cmd_eval_math(args: argparse.Namespace) -> int:
    from runtime.math_expr_v1 import compile_math_expr, eval_math_expr

    if compile_math_expr(args.expr) is None:
        print(f"[Emitter] invalid math expression: {args.expr}")
        return 1
    value = eval_math_expr(args.expr, _parse_pairs(args.ctx), _parse_pairs(args.vars), args.fallback)
    print(value)
    return 0


def cmd_check_bool(args: argparse.Namespace) -> int:
    from runtime.bool_expr_v1 import boolean_expr_to_kotlin, validate_boolean_expr

    check = validate_boolean_expr(args.expr)
    if not check.ok:
        print(f"[Emitter] {check.error}")
        return 1
    print(f"[Emitter] OK -> {boolean_expr_to_kotlin(args.expr, {})}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="emitter_designer", description="Emitter behavior expression compiler")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("gen", help="Generate Kotlin for a behavior JSON document")
    p.add_argument("behavior")
    p.add_argument("--out", default=None, help="Write to a file instead of stdout")
    p.set_defaults(func=cmd_gen)

    p = sub.add_parser("lint", help="Validate a do-tick script")
    p.add_argument("script", nargs="?", default="")
    p.add_argument("--file", default=None, help="Read the script from a file")
    p.add_argument("--var", action="append", help="Declared emitter variable (repeatable)")
    p.set_defaults(func=cmd_lint)

    p = sub.add_parser("eval-math", help="Evaluate an arithmetic expression")
    p.add_argument("expr")
    p.add_argument("--ctx", action="append", help="Context value k=v (repeatable)")
    p.add_argument("--vars", action="append", help="Emitter variable k=v (repeatable)")
    p.add_argument("--fallback", type=float, default=0.0)
    p.set_defaults(func=cmd_eval_math)

    p = sub.add_parser("check-bool", help="Validate a boolean expression and show its Kotlin form")
    p.add_argument("expr")
    p.set_defaults(func=cmd_check_bool)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    from app.compiler_config import get_config
    from app import log_buffer

    log_buffer.resize(get_config().log_buffer_size)
    args = build_parser().parse_args(argv)
    return int(args.func(args) or 0)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except SystemExit:
        raise
    except BaseException as e:
        _write_crash_log(e)
        raise
