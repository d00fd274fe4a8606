"""
raysdl - scene description language for a ray tracer.

This module provides:
- Lexer: Tokenizes SDL source code
- Parser: Builds the AST from tokens
- Interpreter: Evaluates a program into a SceneAccumulator
- Binder: Converts declared objects into typed scene entities

Usage:
    from raysdl import load_scene

    scene = load_scene('''
    camera { vw: 640, vh: 480, fov: 70 }
    for i in 0 to 3 {
        sphere { position: <i * 2, 0, -5>, radius: 0.5 }
    }
    ''')
    print(len(scene.objects))   # 3

    # Or run the stages separately
    tokens = tokenize(source)
    program = parse(tokens, source=source)
    accumulator = evaluate_program(program, source=source)
    bound = bind_scene(accumulator)
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
)

from .ast import (
    AstNode,
    AstVisitor,
    Program,
    format_ast,
    print_ast,
)

from .errors import (
    DslError,
    LexerError,
    ParserError,
    EvaluationError,
    UndefinedVariableError,
    ArityError,
    UnknownFunctionError,
    TypeMismatchError,
    IndexOutOfBoundsError,
    MissingKeyError,
    DuplicateSingletonError,
    LimitExceededError,
    BindError,
    MissingFieldError,
    FieldTypeError,
    UnknownObjectError,
    ConflictingFieldsError,
    ConfigError,
    Diagnostic,
    ErrorSeverity,
)

from .config import (
    SdlConfig,
    config_from_dict,
    load_config,
)

from .runtime import (
    Interpreter,
    evaluate_program,
    Value,
    ValueKind,
    Vector3,
    Color,
    Environment,
    SceneAccumulator,
    create_root_environment,
)

from .scene import BoundScene
from .binder import bind, bind_scene

logger = logging.getLogger(__name__)


def compile_source(source: str, filename: Optional[str] = None) -> Program:
    """Tokenize and parse source text."""
    return parse(tokenize(source, filename), filename, source)


def evaluate_source(source: str, config: Optional[SdlConfig] = None,
                    time: Optional[float] = None,
                    filename: Optional[str] = None) -> SceneAccumulator:
    """Compile and evaluate source text, returning the frozen accumulator."""
    program = compile_source(source, filename)
    return Interpreter(config).evaluate(program, source=source, time=time)


def load_scene(source: str, config: Optional[SdlConfig] = None,
               time: Optional[float] = None,
               filename: Optional[str] = None) -> BoundScene:
    """
    Run the whole pipeline: lex, parse, evaluate and bind.

    Args:
        source: SDL program text
        config: Evaluation settings (defaults when omitted)
        time: Value of the time variable, overriding the config
        filename: Shown in error positions

    Raises:
        DslError: The first lexer, parser, evaluation or binding error
    """
    config = config or SdlConfig()
    frame_time = config.time if time is None else float(time)
    accumulator = evaluate_source(source, config, frame_time, filename)
    return bind_scene(accumulator, frame_time)


def load_frames(source: str, times: Iterable[float],
                config: Optional[SdlConfig] = None,
                filename: Optional[str] = None) -> Iterator[BoundScene]:
    """
    Evaluate a program once per frame time.

    The source is parsed once; every frame is a fresh evaluation with only
    the time variable changed.
    """
    config = config or SdlConfig()
    program = compile_source(source, filename)
    interpreter = Interpreter(config)

    for frame, time in enumerate(times):
        logger.info("evaluating frame %d at %s=%g", frame, config.time_variable, time)
        accumulator = interpreter.evaluate(program, source=source, time=float(time))
        yield bind_scene(accumulator, float(time))


def load_scene_file(path: Union[str, Path], config: Optional[SdlConfig] = None,
                    time: Optional[float] = None) -> BoundScene:
    """Read a UTF-8 SDL file and run the pipeline on it."""
    source_path = Path(path)
    source = source_path.read_text(encoding="utf-8")
    return load_scene(source, config, time, filename=str(source_path))


__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'KEYWORDS',

    # Lexer / Parser
    'Lexer',
    'tokenize',
    'Parser',
    'parse',

    # AST
    'AstNode',
    'AstVisitor',
    'Program',
    'format_ast',
    'print_ast',

    # Errors
    'DslError',
    'LexerError',
    'ParserError',
    'EvaluationError',
    'UndefinedVariableError',
    'ArityError',
    'UnknownFunctionError',
    'TypeMismatchError',
    'IndexOutOfBoundsError',
    'MissingKeyError',
    'DuplicateSingletonError',
    'LimitExceededError',
    'BindError',
    'MissingFieldError',
    'FieldTypeError',
    'UnknownObjectError',
    'ConflictingFieldsError',
    'ConfigError',
    'Diagnostic',
    'ErrorSeverity',

    # Configuration
    'SdlConfig',
    'config_from_dict',
    'load_config',

    # Runtime
    'Interpreter',
    'evaluate_program',
    'Value',
    'ValueKind',
    'Vector3',
    'Color',
    'Environment',
    'SceneAccumulator',
    'create_root_environment',

    # Binding
    'BoundScene',
    'bind',
    'bind_scene',

    # Pipeline
    'compile_source',
    'evaluate_source',
    'load_scene',
    'load_frames',
    'load_scene_file',
]
