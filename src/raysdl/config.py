"""Evaluation settings, loadable from a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import error_config

DEFAULT_MAX_LOOP_ITERATIONS = 10_000_000
DEFAULT_MAX_CALL_DEPTH = 50


@dataclass
class SdlConfig:
    """Settings for one scene evaluation.

    ``globals`` holds extra bindings placed in the root environment before
    the program runs (numbers, strings, booleans, lists and mappings).
    ``random_seed`` of ``None`` makes ``random()`` nondeterministic.
    """

    time_variable: str = "t"
    time: float = 0.0
    globals: Dict[str, Any] = field(default_factory=dict)
    random_seed: Optional[int] = None
    noise_seed: int = 0
    max_loop_iterations: Optional[int] = DEFAULT_MAX_LOOP_ITERATIONS
    max_call_depth: Optional[int] = DEFAULT_MAX_CALL_DEPTH

    def with_time(self, time: float) -> "SdlConfig":
        """Copy of this config with a different time binding."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["time"] = float(time)
        return SdlConfig(**data)


def _check_int(name: str, value: Any, source: Optional[str], allow_none: bool = True) -> None:
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise error_config(f"'{name}' must be an integer, got {value!r}", source)
    if name.startswith("max_") and value <= 0:
        raise error_config(f"'{name}' must be positive, got {value}", source)


def config_from_dict(data: Dict[str, Any], source: Optional[str] = None) -> SdlConfig:
    """Build an ``SdlConfig`` from a mapping, rejecting unknown keys."""

    if not isinstance(data, dict):
        raise error_config(f"configuration must be a mapping, got {type(data).__name__}", source)

    known = {f.name for f in fields(SdlConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise error_config(f"unknown configuration keys: {', '.join(unknown)}", source)

    time_variable = data.get("time_variable", "t")
    if not isinstance(time_variable, str) or not time_variable.isidentifier():
        raise error_config(f"'time_variable' must be an identifier, got {time_variable!r}", source)

    time = data.get("time", 0.0)
    if isinstance(time, bool) or not isinstance(time, (int, float)):
        raise error_config(f"'time' must be a number, got {time!r}", source)

    globals_ = data.get("globals") or {}
    if not isinstance(globals_, dict):
        raise error_config("'globals' must be a mapping of names to values", source)
    for name in globals_:
        if not isinstance(name, str) or not name.isidentifier():
            raise error_config(f"global name {name!r} is not a valid identifier", source)

    for name in ("random_seed", "max_loop_iterations", "max_call_depth"):
        _check_int(name, data.get(name), source)
    _check_int("noise_seed", data.get("noise_seed", 0), source, allow_none=False)

    return SdlConfig(
        time_variable=time_variable,
        time=float(time),
        globals=dict(globals_),
        random_seed=data.get("random_seed"),
        noise_seed=data.get("noise_seed", 0),
        max_loop_iterations=data.get("max_loop_iterations", DEFAULT_MAX_LOOP_ITERATIONS),
        max_call_depth=data.get("max_call_depth", DEFAULT_MAX_CALL_DEPTH),
    )


def load_config(path: Union[str, Path]) -> SdlConfig:
    """Load a YAML configuration file."""

    config_path = Path(path)
    if not config_path.exists():
        raise error_config(f"configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except yaml.YAMLError as e:
        raise error_config(f"YAML parse error: {e}", str(config_path))

    return config_from_dict(data, str(config_path))
