from __future__ import annotations

"""
Behavior runtime v1 (live preview side)

Runs one emitter behavior against an in-memory variable store so the editor can
preview what the generated Kotlin will do:

- ensure(behavior): seed the store from declared defaults; re-seed only when the
  declaration signature (names, types, defaults, bounds) changes
- run_tick(): tick += 1, then the do-tick script or the conditional tick actions
- run_death(particle): condition gate, death var actions, respawn plans

The scheduler that owns particles and calls these stays outside.
"""

import hashlib as _hashlib
import json as _json
import math
import random
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.emitter_behavior import DeathBehavior, EmitterBehavior, EmitterVar, normalize_emitter_behavior
from runtime.compile_cache import CompileCache, default_cache
from runtime.conditions_v1 import evaluate_condition_filter
from runtime.do_tick_v1 import DoTickCompileResult, compile_do_tick_source, run_do_tick
from runtime.terms_v1 import eval_number_like, finite_or_none
from runtime.var_actions_v1 import apply_var_action

Vec3 = Tuple[float, float, float]


def _stable_hash(obj: Any) -> str:
    s = _json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return _hashlib.sha1(s.encode("utf-8")).hexdigest()


def _vec3(v: Any) -> Vec3:
    if isinstance(v, Mapping):
        v = (v.get("x"), v.get("y"), v.get("z"))
    if isinstance(v, (list, tuple)) and len(v) >= 3:
        return tuple(finite_or_none(c) or 0.0 for c in v[:3])  # type: ignore[return-value]
    return (0.0, 0.0, 0.0)


@dataclass
class ParticleState:
    """The particle fields death handling reads."""

    pos: Vec3 = (0.0, 0.0, 0.0)
    vel: Vec3 = (0.0, 0.0, 0.0)
    age: float = 0.0
    life: float = 0.0
    size: float = 1.0
    sign: int = 0
    respawn_count: int = 0

    @staticmethod
    def from_any(p: Any) -> "ParticleState":
        if isinstance(p, ParticleState):
            return p
        d: Mapping[str, Any] = p if isinstance(p, Mapping) else getattr(p, "__dict__", {})
        rc = d.get("respawn_count", d.get("respawnCount"))
        life = d.get("life", d.get("maxAge"))
        size = finite_or_none(d.get("size"))
        return ParticleState(
            pos=_vec3(d.get("pos")),
            vel=_vec3(d.get("vel")),
            age=finite_or_none(d.get("age")) or 0.0,
            life=finite_or_none(life) or 0.0,
            size=1.0 if size is None else size,
            sign=int(math.trunc(finite_or_none(d.get("sign")) or 0.0)),
            respawn_count=max(0, int(math.trunc(finite_or_none(rc) or 0.0))),
        )


@dataclass
class RespawnPlan:
    pos: Vec3
    vel: Vec3
    size: float
    sign: int
    life: float
    respawn_count: int
    age: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pos": list(self.pos),
            "vel": list(self.vel),
            "size": self.size,
            "sign": self.sign,
            "life": self.life,
            "respawnCount": self.respawn_count,
            "age": self.age,
        }


def _default_for(v: EmitterVar) -> float:
    return eval_number_like(v.default_value, 0.0, int_mode=v.is_int)


@dataclass
class BehaviorRuntime:
    vars: Dict[str, float] = field(default_factory=dict)
    tick: int = 0
    sig: str = ""
    behavior: EmitterBehavior = field(default_factory=EmitterBehavior)
    compiled: Optional[DoTickCompileResult] = None
    rng: random.Random = field(default_factory=random.Random)
    math_cache: CompileCache = field(default_factory=lambda: default_cache("math"))
    bool_cache: CompileCache = field(default_factory=lambda: default_cache("bool"))

    def ensure(self, raw: Any) -> EmitterBehavior:
        """Adopt a (possibly raw) behavior. Variable values survive unrelated edits."""
        behavior = normalize_emitter_behavior(raw)
        decls = [v for v in behavior.emitter_vars if v.name]
        sig = _stable_hash([{k: val for k, val in v.to_dict().items() if k != "id"} for v in decls])
        if sig != self.sig:
            self.sig = sig
            self.vars = {v.name: _default_for(v) for v in decls}
        else:
            for v in decls:
                self.vars.setdefault(v.name, _default_for(v))
        self.behavior = behavior

        src = behavior.tick_expression
        if self.compiled is None or self.compiled.source != src:
            self.compiled = compile_do_tick_source(src, behavior.var_names()) if src else None
        self.apply_bounds()
        return behavior

    def apply_bounds(self) -> None:
        for v in self.behavior.emitter_vars:
            name = v.name.strip()
            if not name or name not in self.vars:
                continue
            n = finite_or_none(self.vars[name])
            if n is None:
                n = _default_for(v)
            if v.min_enabled:
                lo = eval_number_like(v.min_value, 0.0 if v.is_int else -math.inf, int_mode=v.is_int)
                n = max(lo, n)
            if v.max_enabled:
                hi = eval_number_like(v.max_value, 0.0 if v.is_int else math.inf, int_mode=v.is_int)
                n = min(hi, n)
            if v.is_int:
                n = float(math.trunc(n))
            self.vars[name] = n

    def run_tick(self) -> None:
        self.tick += 1
        b = self.behavior
        if b.tick_expression:
            if self.compiled is not None and self.compiled.ok:
                run_do_tick(self.compiled, self.vars, self.tick, rng=self.rng)
            self.apply_bounds()
            return
        # no particle at tick time: builtins other than tick are 0
        ctx = {"tick": self.tick, "age": 0, "maxAge": 0, "life": 0, "sign": 0, "respawnCount": 0}
        for action in b.tick_actions:
            if not evaluate_condition_filter(
                action.condition, ctx, self.vars,
                allow_reason=False, math_cache=self.math_cache, bool_cache=self.bool_cache,
            ):
                continue
            apply_var_action(action, self.vars, ctx)
        self.apply_bounds()

    def run_death(self, particle: Any, reason: str = "AGE") -> List[RespawnPlan]:
        """Particles to spawn for one death, [] when the death is gated or dissipates."""
        death: DeathBehavior = self.behavior.death
        if not death.enabled:
            return []
        p = ParticleState.from_any(particle)
        respawn_count = p.respawn_count + 1
        ctx: Dict[str, Any] = {
            "age": p.age,
            "maxAge": p.life,
            "life": p.life,
            "sign": p.sign,
            "respawnCount": respawn_count,
            "tick": self.tick,
            "reason": reason,
        }
        if not evaluate_condition_filter(
            death.condition, ctx, self.vars,
            allow_reason=True, math_cache=self.math_cache, bool_cache=self.bool_cache,
        ):
            return []

        for action in death.var_actions:
            apply_var_action(action, self.vars, ctx)
        self.apply_bounds()

        if death.mode != "respawn":
            return []

        def num(raw: Any, fallback: float, **opts: Any) -> float:
            return eval_number_like(raw, fallback, ctx, self.vars, **opts)

        count = int(num(death.respawn_count, 1.0, int_mode=True, lo=0))
        if count <= 0:
            return []
        off = tuple(num(death.offset.get(k), 0.0) for k in ("x", "y", "z"))
        size_mul = num(death.size_mul, 1.0)
        speed_mul = num(death.speed_mul, 1.0)

        sign = p.sign
        if death.sign_mode == "set":
            sign = int(num(death.sign_value, float(p.sign), int_mode=True))
        life = self._death_max_age(death, p.life, ctx)

        base = RespawnPlan(
            pos=(p.pos[0] + off[0], p.pos[1] + off[1], p.pos[2] + off[2]),
            vel=(p.vel[0] * speed_mul, p.vel[1] * speed_mul, p.vel[2] * speed_mul),
            size=p.size * size_mul,
            sign=sign,
            life=life,
            respawn_count=respawn_count,
        )
        return [replace(base) for _ in range(count)]

    def _death_max_age(self, death: DeathBehavior, fallback: float, ctx: Mapping[str, Any]) -> float:
        if not death.max_age_enabled:
            return fallback
        t = death.max_age_value_type
        raw: Any = t if t in ("age", "maxAge", "respawnCount") else death.max_age_value
        return eval_number_like(raw, fallback, ctx, self.vars, int_mode=True, lo=1)
