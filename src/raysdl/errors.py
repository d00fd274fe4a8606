"""
SDL exceptions and error handling.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Evaluation errors
- E5xx: Scene binding errors
- E6xx: Configuration errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: Optional[SourceSpan] = None   # None until a call site is known
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)
    related: List["Diagnostic"] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        if self.span is None:
            parts.append(f"{self.severity.value}[{self.code}]: {self.message}")
        else:
            parts.append(f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.span is not None and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        for related in self.related:
            where = related.span.start if related.span is not None else "?"
            parts.append(f"    --> {where}: {related.message}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        result = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "range": None,
            "hints": self.hints,
            "related": [r.to_json() for r in self.related],
        }
        if self.span is not None:
            result["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return result


class DslError(Exception):
    """Base exception for SDL errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def code(self) -> str:
        return self.diagnostic.code

    @property
    def span(self) -> Optional[SourceSpan]:
        return self.diagnostic.span

    def attach_span(self, span: Optional[SourceSpan],
                    source_line: Optional[str] = None) -> "DslError":
        """Record a source position if the error does not carry one yet."""
        if self.diagnostic.span is None and span is not None:
            self.diagnostic.span = span
            self.diagnostic.source_line = source_line
        return self

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(DslError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(DslError):
    """Error during parsing (E1xx)."""
    pass


class EvaluationError(DslError):
    """Error while evaluating a program (E4xx)."""
    pass


class UndefinedVariableError(EvaluationError):
    """Identifier not bound in any enclosing scope."""

    def __init__(self, diagnostic: Diagnostic, name: str):
        super().__init__(diagnostic)
        self.name = name


class ArityError(EvaluationError):
    """Function called with the wrong number of arguments."""

    def __init__(self, diagnostic: Diagnostic, name: str, expected: str, found: int):
        super().__init__(diagnostic)
        self.name = name
        self.expected = expected
        self.found = found


class UnknownFunctionError(EvaluationError):
    """Call to a name that is not bound at all."""

    def __init__(self, diagnostic: Diagnostic, name: str):
        super().__init__(diagnostic)
        self.name = name


class TypeMismatchError(EvaluationError):
    """Operator, builtin or field applied to incompatible value kinds."""
    pass


class IndexOutOfBoundsError(EvaluationError):
    """Array index outside the array, or not a whole number."""
    pass


class MissingKeyError(EvaluationError):
    """Dictionary lookup of a key that is not present."""

    def __init__(self, diagnostic: Diagnostic, key: str):
        super().__init__(diagnostic)
        self.key = key


class DuplicateSingletonError(EvaluationError):
    """Second declaration of camera, scene or skybox."""

    def __init__(self, diagnostic: Diagnostic, kind: str):
        super().__init__(diagnostic)
        self.kind = kind


class LimitExceededError(EvaluationError):
    """Loop iteration or call depth safety limit reached."""
    pass


class BindError(DslError):
    """Error converting a declared object into a scene entity (E5xx)."""

    def __init__(self, diagnostic: Diagnostic, kind: Optional[str] = None,
                 field: Optional[str] = None):
        super().__init__(diagnostic)
        self.kind = kind
        self.field = field


class MissingFieldError(BindError):
    """Required object field absent."""
    pass


class FieldTypeError(BindError, TypeMismatchError):
    """Object field holds a value of the wrong kind."""
    pass


class UnknownObjectError(BindError):
    """Object kind not recognised by the binder."""
    pass


class ConflictingFieldsError(BindError):
    """Two mutually exclusive fields given together."""
    pass


class ConfigError(DslError):
    """Invalid configuration file or value (E6xx)."""
    pass


def _error(code: str, message: str, span: Optional[SourceSpan] = None,
           source_line: Optional[str] = None, hints: Optional[List[str]] = None) -> Diagnostic:
    return Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=hints or [],
    )


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    return LexerError(_error("E001", f"unexpected character '{char}'", span, source_line))


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    return LexerError(_error(
        "E002", "unterminated string literal", span, source_line,
        hints=["string literals must be closed with a matching '\"'"],
    ))


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Invalid escape sequence in string."""
    return LexerError(_error(
        "E003", f"invalid escape sequence '\\{seq}'", span, source_line,
        hints=["valid escape sequences: \\n, \\t, \\\", \\\\"],
    ))


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E004: Invalid number literal."""
    return LexerError(_error("E004", f"invalid number literal '{text}'", span, source_line))


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    return ParserError(_error("E101", f"expected {expected}, found {found}", span, source_line))


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    """E102: Unexpected end of file."""
    return ParserError(_error("E102", f"unexpected end of file, expected {expected}", span))


def error_invalid_vector_literal(count: int, span: SourceSpan,
                                 source_line: str = None) -> ParserError:
    """E103: Vector literal without exactly three components."""
    return ParserError(_error(
        "E103", f"vector literal needs exactly 3 components, found {count}",
        span, source_line,
        hints=["write vectors as <x, y, z>"],
    ))


def error_nesting_too_deep(span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Expression nested deeper than the parser can follow."""
    return ParserError(_error(
        "E104", "expression is nested too deeply", span, source_line,
        hints=["split the expression using 'let' bindings"],
    ))


# --- Evaluation error codes ---

def error_undefined_variable(name: str, span: SourceSpan = None,
                             source_line: str = None) -> UndefinedVariableError:
    """E401: Undefined variable."""
    return UndefinedVariableError(
        _error("E401", f"undefined variable '{name}'", span, source_line), name
    )


def error_arity(name: str, expected: str, found: int, span: SourceSpan = None,
                source_line: str = None) -> ArityError:
    """E402: Wrong number of arguments."""
    plural = "" if expected == "1" else "s"
    return ArityError(
        _error("E402", f"'{name}' expects {expected} argument{plural}, got {found}",
               span, source_line),
        name, expected, found,
    )


def error_unknown_function(name: str, span: SourceSpan = None,
                           source_line: str = None) -> UnknownFunctionError:
    """E403: Unknown function."""
    return UnknownFunctionError(
        _error("E403", f"unknown function '{name}'", span, source_line), name
    )


def error_type_mismatch(expected: str, found: str, span: SourceSpan = None,
                        context: Optional[str] = None,
                        source_line: str = None) -> TypeMismatchError:
    """E404: Value of the wrong kind."""
    where = f" in {context}" if context else ""
    return TypeMismatchError(_error(
        "E404", f"type mismatch{where}: expected {expected}, found {found}",
        span, source_line,
    ))


def error_unsupported_operands(op: str, left: str, right: Optional[str] = None,
                               span: SourceSpan = None,
                               source_line: str = None) -> TypeMismatchError:
    """E404: Operator not defined for the operand kinds."""
    if right is None:
        message = f"unsupported operand for unary '{op}': {left}"
    else:
        message = f"unsupported operands for '{op}': {left} and {right}"
    return TypeMismatchError(_error("E404", message, span, source_line))


def error_index_out_of_bounds(index, length: int, span: SourceSpan = None,
                              source_line: str = None) -> IndexOutOfBoundsError:
    """E405: Array index out of range."""
    return IndexOutOfBoundsError(_error(
        "E405", f"index {index} out of bounds for length {length}", span, source_line,
    ))


def error_missing_key(key: str, span: SourceSpan = None,
                      source_line: str = None) -> MissingKeyError:
    """E406: Dictionary key not found."""
    return MissingKeyError(_error("E406", f"key '{key}' not found", span, source_line), key)


def error_duplicate_singleton(kind: str, span: SourceSpan = None,
                              previous: Optional[SourceSpan] = None,
                              source_line: str = None) -> DuplicateSingletonError:
    """E407: Singleton object declared twice."""
    diag = _error("E407", f"'{kind}' can only be declared once", span, source_line)
    if previous is not None:
        diag.related.append(_error("E407", "first declared here", previous))
    return DuplicateSingletonError(diag, kind)


def error_limit_exceeded(what: str, limit: int, span: SourceSpan = None,
                         source_line: str = None) -> LimitExceededError:
    """E408: Safety limit reached."""
    return LimitExceededError(_error(
        "E408", f"{what} limit of {limit} exceeded", span, source_line,
        hints=["raise the limit in the configuration file if this is intended"],
    ))


def error_division_by_zero(op: str, span: SourceSpan = None,
                           source_line: str = None) -> EvaluationError:
    """E409: Division or modulo by zero."""
    return EvaluationError(_error("E409", f"division by zero in '{op}'", span, source_line))


def error_scene_frozen(kind: str) -> EvaluationError:
    """E410: Declaration after evaluation finished."""
    return EvaluationError(_error(
        "E410", f"cannot declare '{kind}': scene is frozen after evaluation",
    ))


# --- Binding error codes ---

def error_missing_field(kind: str, field_name: str, span: SourceSpan = None) -> MissingFieldError:
    """E501: Required field missing."""
    return MissingFieldError(
        _error("E501", f"'{kind}' is missing required field '{field_name}'", span),
        kind, field_name,
    )


def error_field_type(kind: str, field_name: str, expected: str, found: str,
                     span: SourceSpan = None) -> FieldTypeError:
    """E502: Field of the wrong kind."""
    return FieldTypeError(
        _error("E502", f"field '{field_name}' of '{kind}' must be {expected}, found {found}", span),
        kind, field_name,
    )


def error_unknown_object(kind: str, span: SourceSpan = None) -> UnknownObjectError:
    """E503: Unknown object kind."""
    return UnknownObjectError(_error("E503", f"unknown object kind '{kind}'", span), kind)


def error_conflicting_fields(kind: str, first: str, second: str,
                             span: SourceSpan = None) -> ConflictingFieldsError:
    """E504: Mutually exclusive fields."""
    return ConflictingFieldsError(
        _error("E504", f"'{kind}' cannot have both '{first}' and '{second}'", span),
        kind, second,
    )


def error_invalid_field_value(kind: str, field_name: str, message: str,
                              span: SourceSpan = None) -> BindError:
    """E505: Field value of the right kind but not allowed."""
    return BindError(
        _error("E505", f"invalid '{field_name}' for '{kind}': {message}", span),
        kind, field_name,
    )


# --- Configuration error codes ---

def error_config(message: str, source: Optional[str] = None) -> ConfigError:
    """E601: Invalid configuration."""
    where = f"{source}: " if source else ""
    return ConfigError(_error("E601", f"{where}{message}"))
