"""
Abstract Syntax Tree (AST) node definitions for the scene description language.

A parsed program is an ordered list of statements. Nodes are plain
dataclasses; the evaluator reads them and never mutates them, so a single
Program can be evaluated many times (once per animation frame).
"""

from dataclasses import dataclass, field
from typing import Optional, List, Union, Any
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal number, string or boolean."""
    value: Union[float, str, bool]
    literal_type: TokenType  # NUMBER, STRING, TRUE, FALSE


@dataclass
class VectorLiteral(Expression):
    """A vector literal <x, y, z>."""
    x: Expression
    y: Expression
    z: Expression


@dataclass
class ArrayLiteral(Expression):
    """An array literal [a, b, c]."""
    elements: List[Expression]


@dataclass
class FieldShorthand(Expression):
    """A bare identifier inside {...}, sugar for `name: name`."""
    name: str


@dataclass
class DictEntry(AstNode):
    """One `key: value` entry of a dictionary literal."""
    key: str
    value: Expression


@dataclass
class DictLiteral(Expression):
    """A dictionary literal {key: value, shorthand, "quoted key": value}.

    Entries keep source order; a later entry with the same key wins.
    """
    entries: List[DictEntry]


@dataclass
class Identifier(Expression):
    """A variable reference."""
    name: str


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x && y)."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A unary operation (-x or !x)."""
    operator: TokenType
    operand: Expression


@dataclass
class Call(Expression):
    """A call of a named function, e.g. sin(x) or rgb(255, 0, 0)."""
    callee: str
    arguments: List[Expression]
    callee_span: Optional[SourceSpan] = None


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., list[0], dict["key"])."""
    object: Expression
    index: Expression


@dataclass
class MemberAccess(Expression):
    """Member access (e.g., position.x, material.ior)."""
    object: Expression
    member: str


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Block(AstNode):
    """A brace-delimited sequence of statements."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class LetStatement(Statement):
    """`let name = value`: declare in the current scope."""
    name: str
    value: Expression


@dataclass
class AssignStatement(Statement):
    """`name = value`: update the nearest scope that declares name."""
    name: str
    value: Expression


@dataclass
class ExpressionStatement(Statement):
    """An expression evaluated for its side effects."""
    expression: Expression


@dataclass
class IfBranch(AstNode):
    """One branch of an if chain; condition is None for the final else."""
    condition: Optional[Expression]
    body: Block


@dataclass
class IfStatement(Statement):
    """if / else if / else chain, first truthy branch wins."""
    branches: List[IfBranch]


@dataclass
class ForStatement(Statement):
    """`for name in lower to upper { ... }` with an exclusive upper bound."""
    variable: str
    lower: Expression
    upper: Expression
    body: Block


@dataclass
class FunctionDef(Statement):
    """`fn name(a, b) { ... }`."""
    name: str
    parameters: List[str]
    body: Block


@dataclass
class ReturnStatement(Statement):
    """`return` with an optional value."""
    value: Optional[Expression] = None


@dataclass
class ObjectDecl(Statement):
    """A scene object declaration such as `sphere { position: <0, 0, 0> }`."""
    kind: str
    body: DictLiteral


@dataclass
class BlockStatement(Statement):
    """A bare nested block, which opens a child scope."""
    body: Block


@dataclass
class Program(AstNode):
    """A complete parsed source file."""
    statements: List[Statement] = field(default_factory=list)


# =============================================================================
# Visitor Helpers
# =============================================================================

class PrintVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0, lines: Optional[List[str]] = None):
        self.indent = indent
        self.lines = lines if lines is not None else []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self) -> "PrintVisitor":
        return PrintVisitor(self.indent + 2, self.lines)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name in ("span", "callee_span"):
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._child().generic_visit(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self._child().generic_visit(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")


def format_ast(node: AstNode) -> str:
    """Render an AST node as an indented tree."""
    visitor = PrintVisitor()
    visitor.generic_visit(node)
    return "\n".join(visitor.lines)


def print_ast(node: AstNode) -> None:
    """Print an AST node for debugging."""
    print(format_ast(node))
