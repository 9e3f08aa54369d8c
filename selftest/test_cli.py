"""Selftests for the emitter_designer command line

Run:
  python -m selftest.test_cli
"""

import contextlib
import io
import json
import tempfile
from pathlib import Path

import emitter_designer


def _run(argv):
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        code = emitter_designer.main(argv)
    return code, buf.getvalue()


def test_gen_to_file_and_stdout():
    with tempfile.TemporaryDirectory() as td:
        src = Path(td) / "behavior.json"
        src.write_text(json.dumps({"emitterVars": [{"name": "hp", "type": "int", "defaultValue": 3}]}), encoding="utf-8")

        code, out = _run(["gen", str(src)])
        assert code == 0
        assert "var hp: Int = 3" in out

        dest = Path(td) / "Emitter.kt"
        code, out = _run(["gen", str(src), "--out", str(dest)])
        assert code == 0 and "[Emitter] wrote" in out
        assert dest.read_text(encoding="utf-8").startswith("@CodecField")

        code, out = _run(["gen", str(Path(td) / "missing.json")])
        assert code == 2 and "cannot read" in out


def test_lint():
    code, out = _run(["lint", 'addVar("hp", 1)', "--var", "hp"])
    assert code == 0 and "OK" in out
    code, out = _run(["lint", "doStuff()"])
    assert code == 1 and "disallowed_call" in out


def test_eval_math_and_check_bool():
    code, out = _run(["eval-math", "age * 2 + 1", "--ctx", "age=5"])
    assert code == 0 and out.strip() == "11.0"
    code, out = _run(["eval-math", "age )"])
    assert code == 1

    code, out = _run(["check-bool", "age === 3"])
    assert code == 0 and "age == 3" in out
    code, out = _run(["check-bool", "this.x"])
    assert code == 1


def main():
    test_gen_to_file_and_stdout()
    test_lint()
    test_eval_math_and_check_bool()
    print("OK: cli selftests passed")


if __name__ == "__main__":
    main()
