from __future__ import annotations

from .terms_v1 import BUILTINS, REASONS, Term, eval_number_like, read_named_number, resolve_term, term_to_kotlin
from .compile_cache import CompileCache, LRUPolicy, UnboundedPolicy, default_cache

# Arithmetic expressions (shunting-yard, cached)
from .math_expr_v1 import (
    CompiledMathExpr,
    MathCompileError,
    compile_math_expr,
    eval_math_expr,
    math_expr_to_kotlin,
)

# Boolean sandbox (jsmini-backed)
from .bool_expr_v1 import (
    BoolExprCheck,
    boolean_expr_to_kotlin,
    compile_boolean_expr,
    eval_boolean_expr,
    validate_boolean_expr,
)

from .conditions_v1 import (
    ConditionFilter,
    ConditionRule,
    condition_filter_to_kotlin,
    create_condition_filter,
    create_condition_rule,
    evaluate_calc_eq_rule,
    evaluate_condition_filter,
    normalize_condition_filter,
    normalize_condition_rule,
    parse_legacy_condition_expr,
)

from .var_actions_v1 import VarAction, apply_var_action, normalize_var_action, var_action_to_kotlin

# Do-tick scripts
from .do_tick_v1 import (
    DoTickCompileResult,
    ValidationResult,
    build_do_tick_completions,
    compile_do_tick_source,
    run_do_tick,
    translate_do_tick_to_kotlin,
    validate_do_tick_source,
)
