"""runtime.jsmini

Parser and tree-walking interpreter for the small JavaScript subset that
editor scripts are written in (do-tick scripts and free-form boolean
conditions).

Scripts are parsed into an explicit AST and interpreted directly; nothing is
ever handed to Python's eval/exec. The interpreter counts steps and call
depth so a runaway script aborts instead of hanging the preview.

Supported statements:
  let/const/var, function declarations, if/else, while, do/while,
  for(init; test; update), break, continue, return, try/catch/finally,
  throw, blocks, expression statements (semicolons optional at line ends)

Supported expressions:
  = += -= *= /= %=, ?:, || &&, == != === !==, < <= > >=, + - * / %,
  ! - + typeof, prefix/postfix ++ --, calls, a.b, a[i], arrow functions,
  function expressions, array and object literals, numbers, strings,
  true false null undefined
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from runtime.terms_v1 import js_number_text


class ScriptError(ValueError):
    pass


class ScriptSyntaxError(ScriptError):
    def __init__(self, message: str, pos: int = 0, text: str = ""):
        self.pos = pos
        self.line = text.count("\n", 0, pos) + 1 if text else 1
        super().__init__(f"{message} (line {self.line})" if text else message)


class ScriptRuntimeError(ScriptError):
    pass


class ThrownValue(ScriptRuntimeError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Uncaught {js_to_string(value)}")


class StepLimitExceeded(ScriptError):
    pass


class _Undefined:
    _inst = None

    def __new__(cls):
        if cls._inst is None:
            cls._inst = super().__new__(cls)
        return cls._inst

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

RESERVED = frozenset({
    "let", "const", "var", "function", "return", "if", "else", "while", "do", "for",
    "break", "continue", "true", "false", "null", "undefined", "typeof", "new", "class",
    "this", "try", "catch", "finally", "throw", "switch", "case", "default", "in", "of",
    "instanceof", "delete", "void", "import", "export", "extends", "super", "yield",
    "await", "async", "with",
})

PUNCTUATORS = (
    "===", "!==", "=>", "==", "!=", "<=", ">=", "&&", "||", "++", "--",
    "+=", "-=", "*=", "/=", "%=",
    "+", "-", "*", "/", "%", "<", ">", "=", "!", "?", ":",
    "(", ")", "{", "}", "[", "]", ",", ";", ".",
)

ASSIGN_OPS = ("=", "+=", "-=", "*=", "/=", "%=")


@dataclass(frozen=True)
class Token:
    kind: str   # num | str | ident | punct | eof
    value: Any
    pos: int
    nl: bool = False  # a line break precedes this token


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "b": "\b", "f": "\f", "v": "\v"}


def tokenize(text: str) -> List[Token]:
    toks: List[Token] = []
    i = 0
    n = len(text)
    nl = False
    while i < n:
        ch = text[i]
        if ch == "\n":
            nl = True
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue
        if text.startswith("//", i):
            j = text.find("\n", i)
            i = n if j < 0 else j
            continue
        if text.startswith("/*", i):
            j = text.find("*/", i + 2)
            if j < 0:
                raise ScriptSyntaxError("Unterminated comment", i, text)
            if "\n" in text[i:j]:
                nl = True
            i = j + 2
            continue
        start = i
        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            j = i
            while j < n and text[j].isdigit():
                j += 1
            if j < n and text[j] == ".":
                j += 1
                while j < n and text[j].isdigit():
                    j += 1
            if j < n and text[j] in "eE":
                k = j + 1
                if k < n and text[k] in "+-":
                    k += 1
                if k < n and text[k].isdigit():
                    while k < n and text[k].isdigit():
                        k += 1
                    j = k
            if j < n and _is_ident_start(text[j]):
                raise ScriptSyntaxError("Invalid or unexpected token", j, text)
            toks.append(Token("num", float(text[i:j]), start, nl))
            nl = False
            i = j
            continue
        if ch in "\"'`":
            quote = ch
            j = i + 1
            buf: List[str] = []
            while True:
                if j >= n or (text[j] == "\n" and quote != "`"):
                    raise ScriptSyntaxError("Invalid or unexpected token", i, text)
                c = text[j]
                if c == "\\":
                    if j + 1 >= n:
                        raise ScriptSyntaxError("Invalid or unexpected token", i, text)
                    e = text[j + 1]
                    buf.append(_ESCAPES.get(e, e))
                    j += 2
                    continue
                if c == quote:
                    j += 1
                    break
                buf.append(c)
                j += 1
            toks.append(Token("str", "".join(buf), start, nl))
            nl = False
            i = j
            continue
        if _is_ident_start(ch):
            j = i + 1
            while j < n and _is_ident_part(text[j]):
                j += 1
            toks.append(Token("ident", text[i:j], start, nl))
            nl = False
            i = j
            continue
        for p in PUNCTUATORS:
            if text.startswith(p, i):
                toks.append(Token("punct", p, start, nl))
                nl = False
                i += len(p)
                break
        else:
            raise ScriptSyntaxError(f"Invalid or unexpected token {ch!r}", i, text)
    toks.append(Token("eof", None, n, nl))
    return toks


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass
class Num:
    value: float


@dataclass
class Str:
    value: str


@dataclass
class Lit:
    value: Any  # True / False / None / UNDEFINED


@dataclass
class Name:
    id: str
    pos: int = 0


@dataclass
class Member:
    obj: Any
    prop: str


@dataclass
class Index:
    obj: Any
    index: Any


@dataclass
class Call:
    callee: Any
    args: List[Any]


@dataclass
class Unary:
    op: str
    arg: Any


@dataclass
class Update:
    op: str
    prefix: bool
    target: Any


@dataclass
class Binary:
    op: str
    left: Any
    right: Any


@dataclass
class Logical:
    op: str
    left: Any
    right: Any


@dataclass
class Cond:
    test: Any
    yes: Any
    no: Any


@dataclass
class Assign:
    op: str
    target: Any
    value: Any


@dataclass
class ArrayLit:
    items: List[Any]


@dataclass
class ObjectLit:
    entries: List[Tuple[str, Any]]


@dataclass
class Param:
    name: str
    default: Any = None


@dataclass
class Func:
    name: str
    params: List[Param]
    body: Any            # Block, or an expression for concise arrows
    expr_body: bool = False


@dataclass
class VarDecl:
    kind: str
    decls: List[Tuple[str, Any]]


@dataclass
class FuncDecl:
    func: Func


@dataclass
class If:
    test: Any
    then: Any
    orelse: Any = None


@dataclass
class While:
    test: Any
    body: Any


@dataclass
class DoWhile:
    body: Any
    test: Any


@dataclass
class For:
    init: Any
    test: Any
    update: Any
    body: Any


@dataclass
class Block:
    body: List[Any] = field(default_factory=list)


@dataclass
class Return:
    arg: Any = None


@dataclass
class Break:
    pass


@dataclass
class Continue:
    pass


@dataclass
class Throw:
    arg: Any


@dataclass
class Try:
    block: Block
    param: Optional[str]
    handler: Optional[Block]
    finalizer: Optional[Block]


@dataclass
class ExprStmt:
    expr: Any


@dataclass
class Empty:
    pass


@dataclass
class Program:
    body: List[Any]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class Parser:
    def __init__(self, text: str):
        self.text = text
        self.toks = tokenize(text)
        self.i = 0

    # -- token helpers --
    def peek(self, k: int = 0) -> Token:
        j = min(self.i + k, len(self.toks) - 1)
        return self.toks[j]

    def next(self) -> Token:
        t = self.toks[self.i]
        if self.i < len(self.toks) - 1:
            self.i += 1
        return t

    def at(self, kind: str, value: Any = None) -> bool:
        t = self.peek()
        return t.kind == kind and (value is None or t.value == value)

    def at_punct(self, *values: str) -> bool:
        t = self.peek()
        return t.kind == "punct" and t.value in values

    def at_kw(self, word: str) -> bool:
        t = self.peek()
        return t.kind == "ident" and t.value == word

    def eat(self, kind: str, value: Any = None) -> bool:
        if self.at(kind, value):
            self.next()
            return True
        return False

    def fail(self, tok: Optional[Token] = None, message: str = "") -> ScriptSyntaxError:
        t = tok or self.peek()
        if not message:
            if t.kind == "eof":
                message = "Unexpected end of input"
            else:
                message = f"Unexpected token '{t.value}'"
        return ScriptSyntaxError(message, t.pos, self.text)

    def expect(self, kind: str, value: Any = None) -> Token:
        if not self.at(kind, value):
            raise self.fail()
        return self.next()

    def expect_ident(self) -> str:
        t = self.peek()
        if t.kind != "ident" or t.value in RESERVED:
            raise self.fail()
        self.next()
        return t.value

    def consume_semicolon(self) -> None:
        if self.eat("punct", ";"):
            return
        t = self.peek()
        if t.kind == "eof" or t.nl or (t.kind == "punct" and t.value == "}"):
            return
        raise self.fail()

    # -- statements --
    def parse_program(self) -> Program:
        body = []
        while not self.at("eof"):
            body.append(self.parse_statement())
        return Program(body)

    def parse_block(self) -> Block:
        self.expect("punct", "{")
        body = []
        while not self.at_punct("}"):
            if self.at("eof"):
                raise self.fail()
            body.append(self.parse_statement())
        self.next()
        return Block(body)

    def parse_statement(self) -> Any:
        t = self.peek()
        if t.kind == "punct":
            if t.value == "{":
                return self.parse_block()
            if t.value == ";":
                self.next()
                return Empty()
        if t.kind == "ident":
            w = t.value
            if w in ("let", "const", "var"):
                decl = self.parse_var_decl()
                self.consume_semicolon()
                return decl
            if w == "function":
                self.next()
                name = self.expect_ident()
                return FuncDecl(self.parse_function_rest(name))
            if w == "if":
                self.next()
                self.expect("punct", "(")
                test = self.parse_expression()
                self.expect("punct", ")")
                then = self.parse_statement()
                orelse = None
                if self.eat("ident", "else"):
                    orelse = self.parse_statement()
                return If(test, then, orelse)
            if w == "while":
                self.next()
                self.expect("punct", "(")
                test = self.parse_expression()
                self.expect("punct", ")")
                return While(test, self.parse_statement())
            if w == "do":
                self.next()
                body = self.parse_statement()
                self.expect("ident", "while")
                self.expect("punct", "(")
                test = self.parse_expression()
                self.expect("punct", ")")
                self.eat("punct", ";")
                return DoWhile(body, test)
            if w == "for":
                return self.parse_for()
            if w == "return":
                self.next()
                nt = self.peek()
                if nt.kind == "eof" or nt.nl or (nt.kind == "punct" and nt.value in (";", "}")):
                    self.eat("punct", ";")
                    return Return(None)
                arg = self.parse_expression()
                self.consume_semicolon()
                return Return(arg)
            if w == "break":
                self.next()
                self.consume_semicolon()
                return Break()
            if w == "continue":
                self.next()
                self.consume_semicolon()
                return Continue()
            if w == "throw":
                self.next()
                if self.peek().nl:
                    raise self.fail(message="Illegal newline after throw")
                arg = self.parse_expression()
                self.consume_semicolon()
                return Throw(arg)
            if w == "try":
                return self.parse_try()
        expr = self.parse_expression()
        self.consume_semicolon()
        return ExprStmt(expr)

    def parse_var_decl(self) -> VarDecl:
        kind = self.next().value
        decls = []
        while True:
            name = self.expect_ident()
            init = None
            if self.eat("punct", "="):
                init = self.parse_assignment()
            elif kind == "const":
                raise self.fail(message="Missing initializer in const declaration")
            decls.append((name, init))
            if not self.eat("punct", ","):
                break
        return VarDecl(kind, decls)

    def parse_for(self) -> For:
        self.next()
        self.expect("punct", "(")
        init = None
        if not self.at_punct(";"):
            if self.peek().kind == "ident" and self.peek().value in ("let", "const", "var"):
                init = self.parse_var_decl()
            else:
                init = ExprStmt(self.parse_expression())
        self.expect("punct", ";")
        test = None if self.at_punct(";") else self.parse_expression()
        self.expect("punct", ";")
        update = None if self.at_punct(")") else self.parse_expression()
        self.expect("punct", ")")
        return For(init, test, update, self.parse_statement())

    def parse_try(self) -> Try:
        self.next()
        block = self.parse_block()
        param = None
        handler = None
        finalizer = None
        if self.eat("ident", "catch"):
            if self.eat("punct", "("):
                param = self.expect_ident()
                self.expect("punct", ")")
            handler = self.parse_block()
        if self.eat("ident", "finally"):
            finalizer = self.parse_block()
        if handler is None and finalizer is None:
            raise self.fail(message="Missing catch or finally after try")
        return Try(block, param, handler, finalizer)

    def parse_params(self) -> List[Param]:
        self.expect("punct", "(")
        params: List[Param] = []
        if not self.at_punct(")"):
            while True:
                name = self.expect_ident()
                default = None
                if self.eat("punct", "="):
                    default = self.parse_assignment()
                params.append(Param(name, default))
                if not self.eat("punct", ","):
                    break
        self.expect("punct", ")")
        return params

    def parse_function_rest(self, name: str) -> Func:
        params = self.parse_params()
        body = self.parse_block()
        return Func(name, params, body)

    # -- expressions --
    def parse_expression(self) -> Any:
        expr = self.parse_assignment()
        while self.eat("punct", ","):
            # comma operator: evaluate both, keep the right value
            right = self.parse_assignment()
            expr = Binary(",", expr, right)
        return expr

    def _arrow_ahead(self) -> bool:
        t = self.peek()
        if t.kind == "ident" and t.value not in RESERVED:
            nt = self.peek(1)
            return nt.kind == "punct" and nt.value == "=>" and not nt.nl
        if t.kind == "punct" and t.value == "(":
            depth = 0
            j = self.i
            while j < len(self.toks):
                tk = self.toks[j]
                if tk.kind == "eof":
                    return False
                if tk.kind == "punct" and tk.value in ("(", "[", "{"):
                    depth += 1
                elif tk.kind == "punct" and tk.value in (")", "]", "}"):
                    depth -= 1
                    if depth == 0:
                        nt = self.toks[min(j + 1, len(self.toks) - 1)]
                        return nt.kind == "punct" and nt.value == "=>" and not nt.nl
                j += 1
        return False

    def parse_arrow(self) -> Func:
        if self.at("ident"):
            params = [Param(self.expect_ident())]
        else:
            params = self.parse_params()
        self.expect("punct", "=>")
        if self.at_punct("{"):
            return Func("", params, self.parse_block())
        return Func("", params, self.parse_assignment(), expr_body=True)

    def parse_assignment(self) -> Any:
        if self._arrow_ahead():
            return self.parse_arrow()
        left = self.parse_conditional()
        if self.at_punct(*ASSIGN_OPS):
            op_tok = self.next()
            if not isinstance(left, (Name, Member, Index)):
                raise self.fail(op_tok, "Invalid left-hand side in assignment")
            value = self.parse_assignment()
            return Assign(op_tok.value, left, value)
        return left

    def parse_conditional(self) -> Any:
        test = self.parse_binary(0)
        if self.eat("punct", "?"):
            yes = self.parse_assignment()
            self.expect("punct", ":")
            no = self.parse_assignment()
            return Cond(test, yes, no)
        return test

    _LEVELS: Sequence[Tuple[str, ...]] = (
        ("||",),
        ("&&",),
        ("==", "!=", "===", "!=="),
        ("<", ">", "<=", ">="),
        ("+", "-"),
        ("*", "/", "%"),
    )

    def parse_binary(self, level: int) -> Any:
        if level >= len(self._LEVELS):
            return self.parse_unary()
        ops = self._LEVELS[level]
        left = self.parse_binary(level + 1)
        while self.at_punct(*ops):
            op = self.next().value
            right = self.parse_binary(level + 1)
            if op in ("||", "&&"):
                left = Logical(op, left, right)
            else:
                left = Binary(op, left, right)
        return left

    def parse_unary(self) -> Any:
        if self.at_punct("!", "-", "+"):
            op = self.next().value
            return Unary(op, self.parse_unary())
        if self.at_kw("typeof"):
            self.next()
            return Unary("typeof", self.parse_unary())
        if self.at_punct("++", "--"):
            op_tok = self.next()
            target = self.parse_unary()
            if not isinstance(target, (Name, Member, Index)):
                raise self.fail(op_tok, "Invalid left-hand side expression in prefix operation")
            return Update(op_tok.value, True, target)
        return self.parse_postfix()

    def parse_postfix(self) -> Any:
        expr = self.parse_call_member()
        t = self.peek()
        if t.kind == "punct" and t.value in ("++", "--") and not t.nl:
            if not isinstance(expr, (Name, Member, Index)):
                raise self.fail(t, "Invalid left-hand side expression in postfix operation")
            self.next()
            return Update(t.value, False, expr)
        return expr

    def parse_call_member(self) -> Any:
        expr = self.parse_primary()
        while True:
            if self.eat("punct", "."):
                t = self.peek()
                if t.kind != "ident":
                    raise self.fail()
                self.next()
                expr = Member(expr, t.value)
                continue
            if self.at_punct("("):
                self.next()
                args = []
                if not self.at_punct(")"):
                    while True:
                        args.append(self.parse_assignment())
                        if not self.eat("punct", ","):
                            break
                self.expect("punct", ")")
                expr = Call(expr, args)
                continue
            if self.eat("punct", "["):
                idx = self.parse_expression()
                self.expect("punct", "]")
                expr = Index(expr, idx)
                continue
            return expr

    def parse_primary(self) -> Any:
        t = self.peek()
        if t.kind == "num":
            self.next()
            return Num(t.value)
        if t.kind == "str":
            self.next()
            return Str(t.value)
        if t.kind == "ident":
            w = t.value
            if w == "true":
                self.next()
                return Lit(True)
            if w == "false":
                self.next()
                return Lit(False)
            if w == "null":
                self.next()
                return Lit(None)
            if w == "undefined":
                self.next()
                return Lit(UNDEFINED)
            if w == "function":
                self.next()
                name = ""
                if self.at("ident") and not self.at_punct("("):
                    name = self.expect_ident()
                return self.parse_function_rest(name)
            if w in RESERVED:
                raise self.fail(t, f"Unsupported keyword '{w}'")
            self.next()
            return Name(w, t.pos)
        if t.kind == "punct":
            if t.value == "(":
                self.next()
                expr = self.parse_expression()
                self.expect("punct", ")")
                return expr
            if t.value == "[":
                self.next()
                items = []
                while not self.at_punct("]"):
                    items.append(self.parse_assignment())
                    if not self.eat("punct", ","):
                        break
                self.expect("punct", "]")
                return ArrayLit(items)
            if t.value == "{":
                return self.parse_object()
        raise self.fail()

    def parse_object(self) -> ObjectLit:
        self.expect("punct", "{")
        entries = []
        while not self.at_punct("}"):
            t = self.next()
            if t.kind in ("ident", "str"):
                key = str(t.value)
            elif t.kind == "num":
                key = js_to_string(t.value)
            else:
                raise self.fail(t)
            if self.eat("punct", ":"):
                entries.append((key, self.parse_assignment()))
            elif t.kind == "ident":
                entries.append((key, Name(key, t.pos)))
            else:
                raise self.fail()
            if not self.eat("punct", ","):
                break
        self.expect("punct", "}")
        return ObjectLit(entries)


def parse_program(text: str) -> Program:
    return Parser(text).parse_program()


def parse_expression(text: str) -> Any:
    p = Parser(text)
    if p.at("eof"):
        raise p.fail()
    expr = p.parse_expression()
    if not p.at("eof"):
        raise p.fail()
    return expr


# ---------------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------------

def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def to_number(v: Any) -> float:
    if isinstance(v, bool):
        return 1.0 if v else 0.0
    if _is_number(v):
        return float(v)
    if v is None:
        return 0.0
    if v is UNDEFINED:
        return math.nan
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return 0.0
        if "_" in s:
            return math.nan
        try:
            return float(s)
        except ValueError:
            return math.nan
    return math.nan


def truthy(v: Any) -> bool:
    if v is None or v is UNDEFINED:
        return False
    if isinstance(v, bool):
        return v
    if _is_number(v):
        return not (v == 0 or math.isnan(v))
    if isinstance(v, str):
        return v != ""
    return True


def js_to_string(v: Any) -> str:
    if v is None:
        return "null"
    if v is UNDEFINED:
        return "undefined"
    if isinstance(v, bool):
        return "true" if v else "false"
    if _is_number(v):
        f = float(v)
        if math.isnan(f):
            return "NaN"
        if math.isinf(f):
            return "Infinity" if f > 0 else "-Infinity"
        return js_number_text(f)
    if isinstance(v, str):
        return v
    if isinstance(v, list):
        return ",".join("" if x is None or x is UNDEFINED else js_to_string(x) for x in v)
    if isinstance(v, (JSFunction,)) or callable(v):
        return "function"
    return "[object Object]"


def js_typeof(v: Any) -> str:
    if v is UNDEFINED:
        return "undefined"
    if isinstance(v, bool):
        return "boolean"
    if _is_number(v):
        return "number"
    if isinstance(v, str):
        return "string"
    if isinstance(v, JSFunction) or callable(v):
        return "function"
    return "object"


def _primitive(v: Any) -> bool:
    return isinstance(v, (bool, int, float, str))


def loose_equals(a: Any, b: Any) -> bool:
    if a is None or a is UNDEFINED:
        return b is None or b is UNDEFINED
    if b is None or b is UNDEFINED:
        return False
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if _primitive(a) and _primitive(b):
        return to_number(a) == to_number(b)
    return a is b


def strict_equals(a: Any, b: Any) -> bool:
    if a is None or a is UNDEFINED or b is None or b is UNDEFINED:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return float(a) == float(b)
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def _arith(op: str, a: Any, b: Any) -> Any:
    if op == "+":
        if isinstance(a, (str, list, dict)) or isinstance(b, (str, list, dict)):
            return js_to_string(a) + js_to_string(b)
        return to_number(a) + to_number(b)
    x = to_number(a)
    y = to_number(b)
    if op == "-":
        return x - y
    if op == "*":
        try:
            return x * y
        except OverflowError:
            return math.inf
    if op == "/":
        if y == 0:
            if x == 0 or math.isnan(x):
                return math.nan
            return math.copysign(math.inf, x) * math.copysign(1.0, y)
        return x / y
    if op == "%":
        if y == 0 or math.isinf(x) or math.isnan(x) or math.isnan(y):
            return math.nan
        if math.isinf(y):
            return x
        return math.fmod(x, y)
    raise ScriptRuntimeError(f"unknown operator {op}")


def _compare(op: str, a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        x: Any = a
        y: Any = b
    else:
        x = to_number(a)
        y = to_number(b)
        if math.isnan(x) or math.isnan(y):
            return False
    if op == "<":
        return x < y
    if op == ">":
        return x > y
    if op == "<=":
        return x <= y
    return x >= y


# ---------------------------------------------------------------------------
# Math namespace
# ---------------------------------------------------------------------------

def _num_fn(fn: Callable[..., float]) -> Callable[..., float]:
    def wrapped(*args: Any) -> float:
        vals = [to_number(a) for a in args]
        try:
            return float(fn(*vals))
        except (ValueError, OverflowError, ZeroDivisionError):
            return math.nan
    return wrapped


def _js_round(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.floor(x + 0.5))


def _js_sign(x: float) -> float:
    if math.isnan(x):
        return math.nan
    if x > 0:
        return 1.0
    if x < 0:
        return -1.0
    return x


def _js_trunc(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.trunc(x))


def _js_floor(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.floor(x))


def _js_ceil(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.ceil(x))


def _js_log(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def _js_min(*xs: float) -> float:
    if not xs:
        return math.inf
    if any(math.isnan(x) for x in xs):
        return math.nan
    return min(xs)


def _js_max(*xs: float) -> float:
    if not xs:
        return -math.inf
    if any(math.isnan(x) for x in xs):
        return math.nan
    return max(xs)


def _arg0(fn: Callable[[float], float]) -> Callable[..., float]:
    def f(x: float = math.nan, *_rest: float) -> float:
        return fn(x)
    return f


def js_math_functions() -> Dict[str, Callable[..., float]]:
    return {
        "abs": _num_fn(_arg0(abs)),
        "floor": _num_fn(_arg0(_js_floor)),
        "ceil": _num_fn(_arg0(_js_ceil)),
        "round": _num_fn(_arg0(_js_round)),
        "trunc": _num_fn(_arg0(_js_trunc)),
        "sign": _num_fn(_arg0(_js_sign)),
        "sqrt": _num_fn(_arg0(math.sqrt)),
        "sin": _num_fn(_arg0(math.sin)),
        "cos": _num_fn(_arg0(math.cos)),
        "tan": _num_fn(_arg0(math.tan)),
        "asin": _num_fn(_arg0(math.asin)),
        "acos": _num_fn(_arg0(math.acos)),
        "atan": _num_fn(_arg0(math.atan)),
        "atan2": _num_fn(lambda y=math.nan, x=math.nan, *_r: math.atan2(y, x)),
        "log": _num_fn(_arg0(_js_log)),
        "exp": _num_fn(_arg0(math.exp)),
        "pow": _num_fn(lambda x=math.nan, y=math.nan, *_r: math.pow(x, y)),
        "hypot": _num_fn(lambda *xs: math.hypot(*xs)),
        "min": _num_fn(_js_min),
        "max": _num_fn(_js_max),
        "random": lambda *_a: random.random(),
    }


def js_math_namespace() -> Dict[str, Any]:
    ns: Dict[str, Any] = dict(js_math_functions())
    ns.update({
        "PI": math.pi,
        "E": math.e,
        "LN2": math.log(2),
        "LN10": math.log(10),
        "SQRT2": math.sqrt(2),
    })
    return ns


class ReadOnlyNamespace(dict):
    """Host object shared across evaluations; scripts may read but not assign."""

    def __setitem__(self, key: str, value: Any) -> None:
        raise ScriptRuntimeError(f"Cannot assign to read only property '{key}'")


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------

class Host:
    """Root bindings provider. Subclasses expose names to scripts."""

    def has(self, name: str) -> bool:
        return False

    def get(self, name: str) -> Any:
        return UNDEFINED

    def set(self, name: str, value: Any) -> None:
        raise ScriptRuntimeError(f"{name} is read-only")


class MappingHost(Host):
    def __init__(self, bindings: Dict[str, Any]):
        self.bindings = bindings

    def has(self, name: str) -> bool:
        return name in self.bindings

    def get(self, name: str) -> Any:
        return self.bindings[name]

    def set(self, name: str, value: Any) -> None:
        self.bindings[name] = value


class Env:
    def __init__(self, parent: Optional["Env"] = None, host: Optional[Host] = None):
        self.parent = parent
        self.host = host
        self.vars: Dict[str, Any] = {}
        self.consts: set = set()

    def find(self, name: str) -> Optional["Env"]:
        e: Optional[Env] = self
        while e is not None:
            if name in e.vars:
                return e
            if e.host is not None and e.host.has(name):
                return e
            e = e.parent
        return None

    def root(self) -> "Env":
        e = self
        while e.parent is not None:
            e = e.parent
        return e

    def declare(self, name: str, value: Any, const: bool = False) -> None:
        self.vars[name] = value
        if const:
            self.consts.add(name)
        else:
            self.consts.discard(name)

    def get(self, name: str) -> Any:
        e = self.find(name)
        if e is None:
            raise ScriptRuntimeError(f"{name} is not defined")
        if name in e.vars:
            return e.vars[name]
        return e.host.get(name)

    def set(self, name: str, value: Any) -> None:
        e = self.find(name)
        if e is None:
            self.root().vars[name] = value
            return
        if name in e.vars:
            if name in e.consts:
                raise ScriptRuntimeError("Assignment to constant variable.")
            e.vars[name] = value
            return
        e.host.set(name, value)


class JSFunction:
    def __init__(self, node: Func, env: Env, interp: "Interpreter"):
        self.node = node
        self.env = env
        self.interp = interp

    def __call__(self, *args: Any) -> Any:
        return self.interp.call_function(self, list(args))

    def __repr__(self) -> str:
        return f"<function {self.node.name or 'anonymous'}>"


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class Interpreter:
    MAX_CALL_DEPTH = 64

    def __init__(self, host: Optional[Host] = None, step_limit: int = 0):
        self.globals = Env(host=host or Host())
        self.step_limit = max(0, int(step_limit or 0))
        self.steps = 0
        self.depth = 0

    def _step(self) -> None:
        self.steps += 1
        if self.step_limit and self.steps > self.step_limit:
            raise StepLimitExceeded(f"script exceeded {self.step_limit} steps")

    # -- entry points --
    def run(self, program: Program) -> Any:
        self.steps = 0
        self.depth = 0
        try:
            self._exec_body(program.body, self.globals)
        except (_Break, _Continue):
            raise ScriptRuntimeError("Illegal break/continue statement")
        except _Return as r:
            return r.value
        except RecursionError:
            raise ScriptRuntimeError("Maximum call stack size exceeded")
        return UNDEFINED

    def evaluate(self, expr: Any) -> Any:
        self.steps = 0
        self.depth = 0
        try:
            return self.eval(expr, self.globals)
        except RecursionError:
            raise ScriptRuntimeError("Maximum call stack size exceeded")

    def call_function(self, fn: JSFunction, args: List[Any]) -> Any:
        self._step()
        if self.depth >= self.MAX_CALL_DEPTH:
            raise ScriptRuntimeError("Maximum call stack size exceeded")
        node = fn.node
        env = Env(parent=fn.env)
        for i, p in enumerate(node.params):
            v = args[i] if i < len(args) else UNDEFINED
            if v is UNDEFINED and p.default is not None:
                v = self.eval(p.default, env)
            env.declare(p.name, v)
        self.depth += 1
        try:
            if node.expr_body:
                return self.eval(node.body, env)
            try:
                self._exec_body(node.body.body, env)
            except _Return as r:
                return UNDEFINED if r.value is None else r.value
            return UNDEFINED
        finally:
            self.depth -= 1

    # -- statements --
    def _hoist(self, body: List[Any], env: Env) -> None:
        for st in body:
            if isinstance(st, FuncDecl):
                env.declare(st.func.name, JSFunction(st.func, env, self))

    def _exec_body(self, body: List[Any], env: Env) -> None:
        self._hoist(body, env)
        for st in body:
            self.exec(st, env)

    def exec(self, node: Any, env: Env) -> None:
        self._step()
        getattr(self, "_exec_" + type(node).__name__)(node, env)

    def _exec_ExprStmt(self, node: ExprStmt, env: Env) -> None:
        self.eval(node.expr, env)

    def _exec_Empty(self, node: Empty, env: Env) -> None:
        return None

    def _exec_FuncDecl(self, node: FuncDecl, env: Env) -> None:
        return None

    def _exec_VarDecl(self, node: VarDecl, env: Env) -> None:
        for name, init in node.decls:
            value = UNDEFINED if init is None else self.eval(init, env)
            env.declare(name, value, const=(node.kind == "const"))

    def _exec_Block(self, node: Block, env: Env) -> None:
        self._exec_body(node.body, Env(parent=env))

    def _exec_If(self, node: If, env: Env) -> None:
        if truthy(self.eval(node.test, env)):
            self.exec(node.then, env)
        elif node.orelse is not None:
            self.exec(node.orelse, env)

    def _exec_While(self, node: While, env: Env) -> None:
        while truthy(self.eval(node.test, env)):
            self._step()
            try:
                self.exec(node.body, env)
            except _Break:
                break
            except _Continue:
                continue

    def _exec_DoWhile(self, node: DoWhile, env: Env) -> None:
        while True:
            self._step()
            try:
                self.exec(node.body, env)
            except _Break:
                break
            except _Continue:
                pass
            if not truthy(self.eval(node.test, env)):
                break

    def _exec_For(self, node: For, env: Env) -> None:
        loop_env = Env(parent=env)
        if node.init is not None:
            self.exec(node.init, loop_env)
        while node.test is None or truthy(self.eval(node.test, loop_env)):
            self._step()
            try:
                self.exec(node.body, loop_env)
            except _Break:
                break
            except _Continue:
                pass
            if node.update is not None:
                self.eval(node.update, loop_env)

    def _exec_Return(self, node: Return, env: Env) -> None:
        raise _Return(None if node.arg is None else self.eval(node.arg, env))

    def _exec_Break(self, node: Break, env: Env) -> None:
        raise _Break()

    def _exec_Continue(self, node: Continue, env: Env) -> None:
        raise _Continue()

    def _exec_Throw(self, node: Throw, env: Env) -> None:
        raise ThrownValue(self.eval(node.arg, env))

    def _exec_Try(self, node: Try, env: Env) -> None:
        try:
            try:
                self.exec(node.block, env)
            except ScriptRuntimeError as e:
                if node.handler is None:
                    raise
                henv = Env(parent=env)
                if node.param:
                    henv.declare(node.param, e.value if isinstance(e, ThrownValue) else str(e))
                self.exec(node.handler, henv)
        finally:
            if node.finalizer is not None:
                self.exec(node.finalizer, env)

    # -- expressions --
    def eval(self, node: Any, env: Env) -> Any:
        return getattr(self, "_eval_" + type(node).__name__)(node, env)

    def _eval_Num(self, node: Num, env: Env) -> Any:
        return node.value

    def _eval_Str(self, node: Str, env: Env) -> Any:
        return node.value

    def _eval_Lit(self, node: Lit, env: Env) -> Any:
        return node.value

    def _eval_Name(self, node: Name, env: Env) -> Any:
        return env.get(node.id)

    def _eval_ArrayLit(self, node: ArrayLit, env: Env) -> Any:
        return [self.eval(x, env) for x in node.items]

    def _eval_ObjectLit(self, node: ObjectLit, env: Env) -> Any:
        return {k: self.eval(v, env) for k, v in node.entries}

    def _eval_Func(self, node: Func, env: Env) -> Any:
        return JSFunction(node, env, self)

    def _get_member(self, obj: Any, prop: Any) -> Any:
        if obj is None or obj is UNDEFINED:
            raise ScriptRuntimeError(f"Cannot read properties of {js_to_string(obj)} (reading '{js_to_string(prop)}')")
        if isinstance(obj, dict):
            return obj.get(js_to_string(prop), UNDEFINED)
        if isinstance(obj, (list, str)):
            if prop == "length":
                return float(len(obj))
            n = to_number(prop)
            if not math.isnan(n) and n == math.trunc(n) and 0 <= n < len(obj):
                return obj[int(n)]
        return UNDEFINED

    def _set_member(self, obj: Any, prop: Any, value: Any) -> None:
        if isinstance(obj, dict):
            obj[js_to_string(prop)] = value
            return
        if isinstance(obj, list):
            n = to_number(prop)
            if not math.isnan(n) and n == math.trunc(n) and n >= 0:
                i = int(n)
                while len(obj) <= i:
                    obj.append(UNDEFINED)
                obj[i] = value
                return
        raise ScriptRuntimeError(f"Cannot set property '{js_to_string(prop)}' of {js_to_string(obj)}")

    def _eval_Member(self, node: Member, env: Env) -> Any:
        return self._get_member(self.eval(node.obj, env), node.prop)

    def _eval_Index(self, node: Index, env: Env) -> Any:
        obj = self.eval(node.obj, env)
        return self._get_member(obj, self.eval(node.index, env))

    def _eval_Call(self, node: Call, env: Env) -> Any:
        fn = self.eval(node.callee, env)
        args = [self.eval(a, env) for a in node.args]
        if isinstance(fn, JSFunction):
            return self.call_function(fn, args)
        if callable(fn):
            self._step()
            try:
                out = fn(*args)
            except (TypeError, ValueError, OverflowError, ZeroDivisionError) as e:
                if isinstance(e, ScriptError):
                    raise
                raise ScriptRuntimeError(f"{_callee_name(node.callee)}: {e}")
            return UNDEFINED if out is None else out
        raise ScriptRuntimeError(f"{_callee_name(node.callee)} is not a function")

    def _eval_Unary(self, node: Unary, env: Env) -> Any:
        if node.op == "typeof":
            if isinstance(node.arg, Name) and env.find(node.arg.id) is None:
                return "undefined"
            return js_typeof(self.eval(node.arg, env))
        v = self.eval(node.arg, env)
        if node.op == "!":
            return not truthy(v)
        if node.op == "-":
            return -to_number(v)
        return to_number(v)

    def _read_target(self, target: Any, env: Env) -> Tuple[Callable[[], Any], Callable[[Any], None]]:
        if isinstance(target, Name):
            return (lambda: env.get(target.id)), (lambda v: env.set(target.id, v))
        obj = self.eval(target.obj, env)
        prop = target.prop if isinstance(target, Member) else self.eval(target.index, env)
        return (lambda: self._get_member(obj, prop)), (lambda v: self._set_member(obj, prop, v))

    def _eval_Update(self, node: Update, env: Env) -> Any:
        get, put = self._read_target(node.target, env)
        old = to_number(get())
        new = old + 1 if node.op == "++" else old - 1
        put(new)
        return new if node.prefix else old

    def _eval_Assign(self, node: Assign, env: Env) -> Any:
        if node.op == "=" and isinstance(node.target, Name):
            value = self.eval(node.value, env)
            env.set(node.target.id, value)
            return value
        get, put = self._read_target(node.target, env)
        if node.op == "=":
            value = self.eval(node.value, env)
        else:
            cur = get()
            value = _arith(node.op[0], cur, self.eval(node.value, env))
        put(value)
        return value

    def _eval_Logical(self, node: Logical, env: Env) -> Any:
        left = self.eval(node.left, env)
        if node.op == "&&":
            return self.eval(node.right, env) if truthy(left) else left
        return left if truthy(left) else self.eval(node.right, env)

    def _eval_Cond(self, node: Cond, env: Env) -> Any:
        if truthy(self.eval(node.test, env)):
            return self.eval(node.yes, env)
        return self.eval(node.no, env)

    def _eval_Binary(self, node: Binary, env: Env) -> Any:
        a = self.eval(node.left, env)
        b = self.eval(node.right, env)
        op = node.op
        if op == ",":
            return b
        if op == "==":
            return loose_equals(a, b)
        if op == "!=":
            return not loose_equals(a, b)
        if op == "===":
            return strict_equals(a, b)
        if op == "!==":
            return not strict_equals(a, b)
        if op in ("<", ">", "<=", ">="):
            return _compare(op, a, b)
        return _arith(op, a, b)


def _callee_name(node: Any) -> str:
    if isinstance(node, Name):
        return node.id
    if isinstance(node, Member):
        return f"{_callee_name(node.obj)}.{node.prop}"
    return "expression"
