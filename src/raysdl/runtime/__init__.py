"""
SDL Runtime - Tree-walking interpreter for scene programs.

This module provides:
- Interpreter: Executes statements and records object declarations
- Value: Tagged runtime values (numbers, vectors, colors, containers, ...)
- Environment / ExecutionContext: Lexical scopes and per-run state
- SceneAccumulator: Ordered declarations plus camera/scene/skybox slots
- BuiltinRegistry: Built-in function implementations
"""

from .values import (
    Value,
    ValueKind,
    Vector3,
    Color,
    UserFunction,
    UNIT,
    number_val,
    string_val,
    bool_val,
    vector_val,
    color_val,
    array_val,
    dict_val,
    function_val,
    unit_val,
    to_display,
    to_python,
    from_python,
    values_equal,
)

from .context import (
    Environment,
    ExecutionContext,
    create_root_environment,
    create_context,
)

from .accumulator import (
    SceneAccumulator,
    DeclaredObject,
    SINGLETON_KINDS,
    canonical_kind,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    Signature,
    get_builtin_registry,
    call_builtin,
    hsv_to_rgb,
)

from .noise import PerlinNoise

from .interpreter import (
    Interpreter,
    ReturnSignal,
    evaluate_program,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'Vector3',
    'Color',
    'UserFunction',
    'UNIT',
    'number_val',
    'string_val',
    'bool_val',
    'vector_val',
    'color_val',
    'array_val',
    'dict_val',
    'function_val',
    'unit_val',
    'to_display',
    'to_python',
    'from_python',
    'values_equal',

    # Context
    'Environment',
    'ExecutionContext',
    'create_root_environment',
    'create_context',

    # Accumulator
    'SceneAccumulator',
    'DeclaredObject',
    'SINGLETON_KINDS',
    'canonical_kind',

    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'Signature',
    'get_builtin_registry',
    'call_builtin',
    'hsv_to_rgb',
    'PerlinNoise',

    # Interpreter
    'Interpreter',
    'ReturnSignal',
    'evaluate_program',
]
