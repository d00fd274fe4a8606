"""
Execution context for the SDL interpreter.

Manages the environment chain and tracks per-evaluation state (source lines
for diagnostics, safety counters, the scene accumulator).
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from contextlib import contextmanager

from .values import Value, number_val, from_python, function_val
from .accumulator import SceneAccumulator
from .builtins import BuiltinRegistry
from ..config import SdlConfig


@dataclass(eq=False)
class Environment:
    """
    A single lexical scope containing variable bindings.

    Environments form a chain via the fixed `parent` field. A user function
    keeps the environment it was defined in alive for as long as the
    function value exists.
    """
    variables: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Environment"] = None
    name: str = "anonymous"  # For debugging

    def get(self, name: str) -> Optional[Value]:
        """Look up a variable in this scope or enclosing scopes."""
        env = self
        while env is not None:
            if name in env.variables:
                return env.variables[name]
            env = env.parent
        return None

    def declare(self, name: str, value: Value) -> None:
        """Bind a variable in this scope, shadowing any outer binding."""
        self.variables[name] = value

    def update(self, name: str, value: Value) -> bool:
        """
        Update an existing variable.

        Searches up the chain for the nearest scope that declares `name`.
        Returns True if found and updated, False if not found.
        """
        env = self
        while env is not None:
            if name in env.variables:
                env.variables[name] = value
                return True
            env = env.parent
        return False

    def assign(self, name: str, value: Value) -> None:
        """Update the nearest declaration, or declare here if there is none."""
        if not self.update(name, value):
            self.declare(name, value)

    def contains(self, name: str) -> bool:
        """Check if a variable exists in this scope or parents."""
        return self.get(name) is not None

    def child(self, name: str = "block") -> "Environment":
        """Create a nested scope whose parent is this one."""
        return Environment(parent=self, name=name)

    @property
    def depth(self) -> int:
        depth = 0
        env = self.parent
        while env is not None:
            depth += 1
            env = env.parent
        return depth


def create_root_environment(config: Optional[SdlConfig] = None,
                            time: Optional[float] = None) -> Environment:
    """
    Build the global scope: constants, the time variable, builtins and any
    extra globals from the configuration. User code may shadow all of them.
    """
    config = config or SdlConfig()
    root = Environment(name="global")

    registry = BuiltinRegistry(config.random_seed, config.noise_seed, config.max_loop_iterations)
    for name, fn in registry.functions.items():
        root.declare(name, function_val(fn))

    root.declare("PI", number_val(math.pi))
    root.declare("TAU", number_val(math.tau))
    root.declare("E", number_val(math.e))

    for name, data in config.globals.items():
        root.declare(name, from_python(data))

    root.declare(config.time_variable, number_val(config.time if time is None else time))
    return root


@dataclass
class ExecutionContext:
    """
    The full execution context for one evaluation of a program.

    Tracks:
    - The current environment
    - The scene accumulator receiving object declarations
    - Loop and call-depth counters for the configured safety limits
    - Source lines for error messages
    """
    current_env: Environment = field(default_factory=lambda: Environment(name="global"))
    accumulator: SceneAccumulator = field(default_factory=SceneAccumulator)
    config: SdlConfig = field(default_factory=SdlConfig)

    # Source tracking for error messages
    source_lines: List[str] = field(default_factory=list)

    # Safety counters
    loop_iterations: int = 0
    call_depth: int = 0

    @contextmanager
    def new_scope(self, name: str = "block", parent: Optional[Environment] = None):
        """
        Context manager to evaluate in a new nested scope.

        The scope's parent is the current environment, or `parent` when given
        (function calls run in a child of the captured environment).

        Usage:
            with ctx.new_scope("for-loop") as env:
                env.declare("i", number_val(0))
        """
        old_env = self.current_env
        base = parent if parent is not None else old_env
        self.current_env = base.child(name)
        try:
            yield self.current_env
        finally:
            self.current_env = old_env

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a source line for error messages."""
        if 1 <= line_num <= len(self.source_lines):
            return self.source_lines[line_num - 1]
        return None


def create_context(
    source: str = "",
    config: Optional[SdlConfig] = None,
    time: Optional[float] = None,
    env: Optional[Environment] = None,
    accumulator: Optional[SceneAccumulator] = None,
) -> ExecutionContext:
    """
    Create a fresh execution context.

    Args:
        source: The source code (for error messages)
        config: Evaluation settings; defaults are used when omitted
        time: Value bound to the time variable, overriding the config
        env: Root environment to evaluate in; built from config when omitted
        accumulator: Scene sink; a fresh one is created when omitted

    Returns:
        A new ExecutionContext
    """
    config = config or SdlConfig()
    return ExecutionContext(
        current_env=env if env is not None else create_root_environment(config, time),
        accumulator=accumulator if accumulator is not None else SceneAccumulator(),
        config=config,
        source_lines=source.split('\n') if source else [],
    )
