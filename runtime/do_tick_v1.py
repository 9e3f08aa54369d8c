"""runtime.do_tick_v1

Per-tick behavior scripts: lint, compile, run against a variable store, and
translate to Kotlin.

Validation short-circuits on the first failure:
  1) strip comments and string literals into a scan-only copy
  2) parse the original text (syntax error -> kind "syntax")
  3) collect locally declared names (let/const/var/function/class heads,
     function and arrow parameters, catch bindings)
  4) first identifier that is not a keyword, helper, declared emitter var,
     local, `.`-preceded or `:`-followed -> kind "unknown_identifier"
     (names in call position are left to step 5)
  5) first call whose callee is not a helper, `Math.*` or a local
     -> kind "disallowed_call"

The runtime scope exposes tick, PI, Math and the helper functions listed in
API_CALLS. Declared emitter vars are readable and writable by bare name.
Reads of missing or non-finite values give 0; writes to keys that are not
already in the store are ignored.

Kotlin translation is line-oriented text rewriting, not a parser. A single
trailing ternary per line becomes if/else; nested ternaries are not handled.
"""

from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Set, Tuple

from app import log_buffer
from runtime import jsmini

IDENT_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

LINT_KEYWORDS = frozenset({
    "if", "else", "for", "while", "do", "switch", "case", "default", "break", "continue", "return",
    "let", "const", "var", "function", "class", "new", "this", "typeof", "instanceof",
    "try", "catch", "finally", "throw", "extends", "super", "import", "from", "export", "as",
    "true", "false", "null", "undefined", "in", "of", "await", "async",
})

RESERVED_CALL_NAMES = frozenset({
    "if", "for", "while", "switch", "catch", "function", "typeof", "return", "new", "class",
})

API_CALLS = frozenset({
    "setVar", "getVar", "hasVar",
    "addVar", "subVar", "mulVar", "divVar",
    "incVar", "decVar", "clampVar",
    "rand", "randInt", "clamp",
    "min", "max", "abs", "floor", "ceil", "round", "trunc",
    "pow", "sqrt", "sin", "cos", "tan", "log", "exp", "sign",
})

GLOBALS = frozenset({"Math", "PI", "tick"}) | API_CALLS

KIND_SYNTAX = "syntax"
KIND_UNKNOWN_IDENTIFIER = "unknown_identifier"
KIND_DISALLOWED_CALL = "disallowed_call"

_STRIP_RE = re.compile(
    r"/\*[\s\S]*?\*/|//[^\n]*|`(?:\\.|[^`\\])*`|\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'"
)
_DECL_RE = re.compile(r"\b(?:let|const|var|function|class)\s+([A-Za-z_$][A-Za-z0-9_$]*)")
_FUNC_PARAMS_RE = re.compile(r"\bfunction(?:\s+[A-Za-z_$][A-Za-z0-9_$]*)?\s*\(([^)]*)\)")
_CATCH_RE = re.compile(r"\bcatch\s*\(\s*([A-Za-z_$][A-Za-z0-9_$]*)\s*\)")
_ARROW_ONE_RE = re.compile(r"\b([A-Za-z_$][A-Za-z0-9_$]*)\s*=>")
_ARROW_MANY_RE = re.compile(r"\(\s*([^)]*?)\s*\)\s*=>")
_WORD_RE = re.compile(r"\b[A-Za-z_$][A-Za-z0-9_$]*\b")
_CALL_RE = re.compile(r"([A-Za-z_$][A-Za-z0-9_$]*(?:\.[A-Za-z_$][A-Za-z0-9_$]*)?)\s*\(")
_MATH_CALL_RE = re.compile(r"^Math\.[A-Za-z_$][A-Za-z0-9_$]*$")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    message: str = ""
    kind: str = ""
    name: str = ""


@dataclass(frozen=True)
class DoTickCompileResult:
    ok: bool
    source: str
    program: Optional[jsmini.Program] = None
    message: str = ""
    kind: str = ""
    name: str = ""


@dataclass(frozen=True)
class Completion:
    label: str
    insert_text: str = ""
    detail: str = ""
    priority: int = 0
    cursor_offset: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"label": self.label, "detail": self.detail, "priority": self.priority}
        if self.insert_text:
            d["insertText"] = self.insert_text
        if self.cursor_offset is not None:
            d["cursorOffset"] = self.cursor_offset
        return d


def normalize_do_tick_source(raw: Any) -> str:
    return str(raw or "").replace("\r\n", "\n").strip()


# ---------------------------------------------------------------------------
# Lint
# ---------------------------------------------------------------------------

def strip_for_lint(raw: Any) -> str:
    """Comments and string literals blanked to spaces; offsets are preserved."""
    return _STRIP_RE.sub(lambda m: " " * len(m.group(0)), str(raw or ""))


def _param_heads(params: str) -> Iterable[str]:
    for p in params.split(","):
        yield p.split("=")[0].strip()


def collect_declared_names(raw: Any) -> Set[str]:
    src = strip_for_lint(raw)
    names: Set[str] = set()

    def push(value: str) -> None:
        name = str(value or "").strip()
        if IDENT_RE.match(name):
            names.add(name)

    for m in _DECL_RE.finditer(src):
        push(m.group(1))
    for m in _FUNC_PARAMS_RE.finditer(src):
        for head in _param_heads(m.group(1) or ""):
            push(head)
    for m in _CATCH_RE.finditer(src):
        push(m.group(1))
    for m in _ARROW_ONE_RE.finditer(src):
        push(m.group(1))
    for m in _ARROW_MANY_RE.finditer(src):
        for head in _param_heads(m.group(1) or ""):
            push(head)
    return names


def _next_non_space(src: str, j: int) -> str:
    while j < len(src) and src[j].isspace():
        j += 1
    return src[j] if j < len(src) else ""


def find_first_unknown_identifier(raw: Any, allowed: Iterable[str] = ()) -> str:
    src = strip_for_lint(raw)
    allowed_set = set(allowed)
    local = collect_declared_names(src)
    for m in _WORD_RE.finditer(src):
        name = m.group(0)
        if name in LINT_KEYWORDS or name in GLOBALS or name in allowed_set or name in local:
            continue
        idx = m.start()
        if idx > 0 and src[idx - 1] == ".":
            continue
        nxt = _next_non_space(src, m.end())
        if nxt == ":":
            continue
        if nxt == "(":
            continue
        return name
    return ""


def collect_call_callees(raw: Any) -> List[str]:
    src = strip_for_lint(raw)
    out: List[str] = []
    for m in _CALL_RE.finditer(src):
        callee = m.group(1).strip()
        if not callee:
            continue
        head = src[max(0, m.start() - 32):m.start()].rstrip()
        if re.search(r"\bfunction\s*$", head) or re.search(r"\bnew\s*$", head):
            continue
        out.append(callee)
    return out


def find_first_disallowed_call(raw: Any, allowed_calls: Iterable[str] = API_CALLS, local_names: Iterable[str] = ()) -> str:
    allowed_set = set(allowed_calls)
    local_set = set(local_names)
    for callee in collect_call_callees(raw):
        if "." in callee:
            if _MATH_CALL_RE.match(callee):
                continue
            return callee
        if callee in RESERVED_CALL_NAMES or callee in allowed_set or callee in local_set:
            continue
        return callee
    return ""


def resolve_emitter_var_names(raw: Any) -> List[str]:
    """Unique valid names from a list of names, a behavior dict or a behavior object."""
    if isinstance(raw, (list, tuple)):
        items: Iterable[Any] = raw
        get_name: Callable[[Any], Any] = lambda it: it
    else:
        if isinstance(raw, Mapping):
            items = raw.get("emitterVars") or []
        else:
            items = getattr(raw, "emitter_vars", None) or []
        if not isinstance(items, (list, tuple)):
            items = []

        def get_name(it: Any) -> Any:
            if isinstance(it, Mapping):
                return it.get("name")
            return getattr(it, "name", "")

    out: List[str] = []
    seen: Set[str] = set()
    for it in items:
        name = str(get_name(it) or "").strip()
        if not IDENT_RE.match(name) or name in seen:
            continue
        seen.add(name)
        out.append(name)
    return out


def allowed_identifiers(raw_behavior_or_vars: Any) -> Set[str]:
    return set(GLOBALS) | set(resolve_emitter_var_names(raw_behavior_or_vars))


def _check(source: str, raw_behavior_or_vars: Any) -> Tuple[ValidationResult, Optional[jsmini.Program]]:
    if not source:
        return ValidationResult(True), None
    try:
        program = jsmini.parse_program(source)
    except jsmini.ScriptSyntaxError as e:
        return ValidationResult(False, f"syntax error: {e}", KIND_SYNTAX), None

    unknown = find_first_unknown_identifier(source, allowed_identifiers(raw_behavior_or_vars))
    if unknown:
        return ValidationResult(False, f"unknown identifier: {unknown}", KIND_UNKNOWN_IDENTIFIER, unknown), None

    bad_call = find_first_disallowed_call(source, API_CALLS, collect_declared_names(source))
    if bad_call:
        return ValidationResult(False, f"call not allowed: {bad_call}", KIND_DISALLOWED_CALL, bad_call), None
    return ValidationResult(True), program


def validate_do_tick_source(raw: Any, raw_behavior_or_vars: Any = ()) -> ValidationResult:
    result, _program = _check(normalize_do_tick_source(raw), raw_behavior_or_vars)
    return result


def compile_do_tick_source(raw: Any, raw_behavior_or_vars: Any = ()) -> DoTickCompileResult:
    source = normalize_do_tick_source(raw)
    check, program = _check(source, raw_behavior_or_vars)
    if not check.ok:
        return DoTickCompileResult(
            ok=False,
            source=source,
            message=check.message or "doTick compile failed",
            kind=check.kind,
            name=check.name,
        )
    return DoTickCompileResult(ok=True, source=source, program=program)


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

def _to_finite(v: Any, fallback: Any = 0) -> float:
    n = jsmini.to_number(v) if v is not jsmini.UNDEFINED else math.nan
    if math.isfinite(n):
        return n
    f = jsmini.to_number(fallback)
    return f if math.isfinite(f) else 0.0


def _key(name: Any) -> str:
    if name is None or name is jsmini.UNDEFINED:
        return ""
    return jsmini.js_to_string(name).strip()


class DoTickScope(jsmini.Host):
    """Bindings visible to a running do-tick script."""

    def __init__(self, vars: MutableMapping[str, Any], tick: Any = 0, rng: Optional[random.Random] = None):
        self.vars = vars if isinstance(vars, MutableMapping) else {}
        self.rng = rng or random.Random()
        self.helpers: Dict[str, Any] = self._build_helpers(_to_finite(tick, 0))

    # -- store access --
    def read_var(self, name: Any, fallback: Any = 0) -> float:
        key = _key(name)
        if not IDENT_RE.match(key) or key not in self.vars:
            return _to_finite(fallback, 0)
        return _to_finite(self.vars[key], fallback)

    def write_var(self, name: Any, value: Any) -> float:
        key = _key(name)
        if not IDENT_RE.match(key) or key not in self.vars:
            return 0.0
        nxt = _to_finite(value, 0)
        self.vars[key] = nxt
        return nxt

    def has_var(self, name: Any) -> bool:
        key = _key(name)
        return bool(IDENT_RE.match(key)) and key in self.vars

    # -- helpers --
    def random_float(self, lo: Any = 0, hi: Any = 1) -> float:
        a = _to_finite(0 if lo is jsmini.UNDEFINED else lo, 0)
        b = _to_finite(1 if hi is jsmini.UNDEFINED else hi, 1)
        low, high = min(a, b), max(a, b)
        return self.rng.random() * (high - low) + low

    def random_int(self, lo: Any = 0, hi: Any = 1) -> float:
        a = _to_finite(0 if lo is jsmini.UNDEFINED else lo, 0)
        b = _to_finite(1 if hi is jsmini.UNDEFINED else hi, 1)
        low = math.trunc(min(a, b))
        high = math.trunc(max(a, b))
        if high <= low:
            return float(low)
        return float(math.floor(self.rng.random() * (high - low + 1)) + low)

    @staticmethod
    def clamp_number(value: Any = 0, lo: Any = jsmini.UNDEFINED, hi: Any = jsmini.UNDEFINED) -> float:
        n = _to_finite(value, 0)
        low = _to_finite(lo, n)
        high = _to_finite(hi, n)
        if high < low:
            return min(max(n, high), low)
        return min(max(n, low), high)

    def _build_helpers(self, tick: float) -> Dict[str, Any]:
        U = jsmini.UNDEFINED
        m = jsmini.js_math_functions()

        def div_var(name: Any = U, value: Any = U) -> float:
            rhs = _to_finite(value, 0)
            if abs(rhs) < 1e-12:
                return self.read_var(name, 0)
            return self.write_var(name, self.read_var(name, 0) / rhs)

        def rand(lo: Any = U, hi: Any = U) -> float:
            if hi is U:
                return self.random_float(0, lo)
            return self.random_float(lo, hi)

        def rand_int(lo: Any = U, hi: Any = U) -> float:
            if hi is U:
                return self.random_int(0, lo)
            return self.random_int(lo, hi)

        helpers: Dict[str, Any] = {
            "Math": jsmini.js_math_namespace(),
            "PI": math.pi,
            "tick": tick,
            "setVar": lambda name=U, value=U: self.write_var(name, value),
            "getVar": lambda name=U, fallback=0: self.read_var(name, fallback),
            "hasVar": lambda name=U: self.has_var(name),
            "addVar": lambda name=U, value=U: self.write_var(name, self.read_var(name, 0) + _to_finite(value, 0)),
            "subVar": lambda name=U, value=U: self.write_var(name, self.read_var(name, 0) - _to_finite(value, 0)),
            "mulVar": lambda name=U, value=U: self.write_var(name, self.read_var(name, 0) * _to_finite(value, 0)),
            "divVar": div_var,
            "incVar": lambda name=U: self.write_var(name, self.read_var(name, 0) + 1),
            "decVar": lambda name=U: self.write_var(name, self.read_var(name, 0) - 1),
            "clampVar": lambda name=U, lo=U, hi=U: self.write_var(name, self.clamp_number(self.read_var(name, 0), lo, hi)),
            "rand": rand,
            "randInt": rand_int,
            "clamp": self.clamp_number,
        }
        for key in ("min", "max", "abs", "floor", "ceil", "round", "trunc", "pow", "sqrt",
                    "sin", "cos", "tan", "log", "exp", "sign"):
            helpers[key] = m[key]
        return helpers

    # -- jsmini.Host --
    def has(self, name: str) -> bool:
        if name in self.helpers:
            return True
        return bool(IDENT_RE.match(name)) and name in self.vars

    def get(self, name: str) -> Any:
        if name in self.helpers:
            return self.helpers[name]
        return self.read_var(name, 0)

    def set(self, name: str, value: Any) -> None:
        if name in self.helpers:
            self.helpers[name] = value
            return
        self.write_var(name, value)


def run_do_tick(
    compiled: DoTickCompileResult,
    vars: MutableMapping[str, Any],
    tick: Any = 0,
    *,
    step_limit: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> bool:
    """Run a compiled script once. Errors are logged, never raised."""
    if not compiled.ok or compiled.program is None:
        return False
    if step_limit is None:
        from app.compiler_config import get_config

        step_limit = get_config().script_step_limit
    interp = jsmini.Interpreter(DoTickScope(vars, tick, rng), step_limit=step_limit)
    try:
        interp.run(compiled.program)
    except jsmini.ScriptError as e:
        log_buffer.log("doTick", f"script aborted: {e}", once_key=f"{compiled.source}:{e}")
        return False
    return True


# ---------------------------------------------------------------------------
# Kotlin
# ---------------------------------------------------------------------------

_TERNARY_TAIL_RE = re.compile(r"\?\s*([^:]+)\s*:\s*(.+)$")
_TERNARY_RE = re.compile(r"^(.*?)([A-Za-z0-9_.)\]]+)\s*\?\s*([^:]+)\s*:\s*(.+)$")


def replace_ternary_inline(line: str) -> str:
    src = str(line or "")
    protected = _TERNARY_TAIL_RE.sub(lambda m: f"? {m.group(1).strip()} : {m.group(2).strip()}", src)
    m = _TERNARY_RE.match(protected)
    if not m:
        return protected
    left = m.group(1) or ""
    cond = (m.group(2) or "true").strip()
    yes = (m.group(3) or "0").strip()
    no = (m.group(4) or "0").strip()
    return f"{left}if ({cond}) {yes} else {no}"


def translate_function_keyword(line: str) -> str:
    out = re.sub(r"\bfunction\s+([A-Za-z_$][A-Za-z0-9_$]*)\s*\(", r"fun \1(", str(line or ""))
    return re.sub(r"\bfunction\s*\(", "fun(", out)


def split_statements(text: str) -> List[str]:
    """Split on `;` and newlines outside quotes; `{` ends a unit, `}` is its own unit."""
    out: List[str] = []
    buf: List[str] = []
    quote = ""
    escaped = False

    def flush() -> None:
        line = "".join(buf).strip()
        if line:
            out.append(line)
        buf.clear()

    for ch in str(text or ""):
        if quote:
            buf.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
            continue
        if ch in "\"'`":
            quote = ch
            buf.append(ch)
            continue
        if ch == "{":
            buf.append(ch)
            flush()
            continue
        if ch == "}":
            flush()
            out.append("}")
            continue
        if ch in ";\n":
            flush()
            continue
        buf.append(ch)
    flush()
    return out


def normalize_spacing(line: str) -> str:
    out = str(line or "").strip()
    if not out:
        return out
    out = out.replace("===", "==").replace("!==", "!=")
    out = re.sub(r"\b(if|for|while|when|catch)\(", r"\1 (", out)
    out = re.sub(r"\)\s*\{", ") {", out)
    out = re.sub(r"\}\s*else\b", "} else", out)
    out = re.sub(r",\s*", ", ", out)
    out = re.sub(r"\bfun\s+([A-Za-z_$][A-Za-z0-9_$]*)\s*\(", r"fun \1(", out)
    return out.rstrip()


def _rewrite_line(line: str) -> str:
    line = re.sub(r";+\s*$", "", line.rstrip())
    line = re.sub(r"\bconst\s+([A-Za-z_$][A-Za-z0-9_$]*)", r"val \1", line)
    line = re.sub(r"\blet\s+([A-Za-z_$][A-Za-z0-9_$]*)", r"var \1", line)
    line = translate_function_keyword(line)
    return replace_ternary_inline(line)


def translate_do_tick_to_kotlin(raw: Any, indent: str = "    ") -> str:
    source = normalize_do_tick_source(raw)
    if not source:
        return f"{indent}// no-op"

    transformed = "\n".join(_rewrite_line(line) for line in source.split("\n"))
    statements = split_statements(transformed)
    if not statements:
        return f"{indent}// no-op"

    out: List[str] = []
    depth = 0
    for raw_line in statements:
        line = normalize_spacing(raw_line)
        if not line:
            continue
        if line.startswith("}"):
            depth = max(0, depth - 1)
        is_else = line.startswith("else ") or line == "else" or line.startswith("else if")
        if is_else and out and out[-1].strip() == "}":
            out[-1] = f"{out[-1]} {line}"
            if line.endswith("{"):
                depth += 1
            continue
        out.append(f"{indent}{'    ' * depth}{line}")
        if line.endswith("{"):
            depth += 1
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Editor completions
# ---------------------------------------------------------------------------

_BASE_COMPLETIONS = (
    Completion("if (...) { ... }", "if ($0) {\n    \n}", "branch", 240),
    Completion("setVar(name, value)", 'setVar("$0", 0)', "set variable", 260),
    Completion("addVar(name, value)", 'addVar("$0", 1)', "add to variable", 255),
    Completion("subVar(name, value)", 'subVar("$0", 1)', "subtract from variable", 255),
    Completion("mulVar(name, value)", 'mulVar("$0", 1)', "multiply variable", 250),
    Completion("divVar(name, value)", 'divVar("$0", 1)', "divide variable", 250),
    Completion("incVar(name)", 'incVar("$0")', "increment variable", 245),
    Completion("decVar(name)", 'decVar("$0")', "decrement variable", 245),
    Completion("clampVar(name, min, max)", 'clampVar("$0", 0, 1)', "clamp variable", 235),
    Completion("getVar(name, fallback)", 'getVar("$0", 0)', "read variable", 225),
    Completion("rand(min, max)", "rand($0, 1)", "random float", 220),
    Completion("randInt(min, max)", "randInt($0, 10)", "random integer", 220),
    Completion("tick", "", "current tick", 260),
    Completion("PI", "", "pi", 220),
    Completion("Math.sin(x)", "Math.sin($0)", "math", 200),
    Completion("Math.cos(x)", "Math.cos($0)", "math", 200),
    Completion("Math.abs(x)", "Math.abs($0)", "math", 200),
    Completion("Math.min(a, b)", "Math.min($0, )", "math", 190, 11),
    Completion("Math.max(a, b)", "Math.max($0, )", "math", 190, 11),
    Completion("const value = 0", "const $0 = 0", "constant", 170),
    Completion("let value = 0", "let $0 = 0", "variable", 170),
    Completion("function helper() { }", "function $0() {\n    \n}", "function", 160),
)


def build_do_tick_completions(raw_behavior_or_vars: Any = ()) -> List[Completion]:
    out = list(_BASE_COMPLETIONS)
    for name in resolve_emitter_var_names(raw_behavior_or_vars):
        out.append(Completion(name, name, "emitter variable", 280))
        out.append(Completion(f'setVar("{name}", value)', f'setVar("{name}", $0)', "set variable", 275))
        out.append(Completion(f'addVar("{name}", value)', f'addVar("{name}", $0)', "add to variable", 270))
    return out
