from __future__ import annotations

"""Compiler configuration.

Sources, later wins:
  - defaults below
  - user_data/compiler_config.json (or an explicit path)
  - environment: EMITTER_SCRIPT_STEP_LIMIT, EMITTER_CACHE_MAX

Best-effort: malformed files or values fall back to defaults.
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_PATH = ROOT / "user_data" / "compiler_config.json"


@dataclass
class CompilerConfig:
    script_step_limit: int = 200_000   # 0 disables the fence
    math_cache_max: int = 0            # 0 = unbounded
    bool_cache_max: int = 0
    indent: str = "    "
    log_buffer_size: int = 400

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CompilerConfig":
        c = CompilerConfig()
        if not isinstance(d, dict):
            return c
        for f in fields(CompilerConfig):
            if f.name not in d:
                continue
            cur = getattr(c, f.name)
            try:
                if isinstance(cur, int):
                    setattr(c, f.name, max(0, int(d[f.name])))
                else:
                    setattr(c, f.name, str(d[f.name]))
            except (TypeError, ValueError):
                pass
        return c


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return max(0, int(raw.strip()))
    except ValueError:
        return None


def load_config(path: Optional[Path] = None) -> CompilerConfig:
    p = Path(path) if path is not None else DEFAULT_PATH
    data: Dict[str, Any] = {}
    if p.exists():
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            data = {}
    cfg = CompilerConfig.from_dict(data)

    steps = _env_int("EMITTER_SCRIPT_STEP_LIMIT")
    if steps is not None:
        cfg.script_step_limit = steps
    cache_max = _env_int("EMITTER_CACHE_MAX")
    if cache_max is not None:
        cfg.math_cache_max = cache_max
        cfg.bool_cache_max = cache_max
    return cfg


_CONFIG: Optional[CompilerConfig] = None


def get_config() -> CompilerConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def set_config(cfg: Optional[CompilerConfig]) -> None:
    """Replace the process config (None reloads lazily on next access)."""
    global _CONFIG
    _CONFIG = cfg
