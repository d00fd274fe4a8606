"""
Token types for the scene description language lexer.

Token categories map onto error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Evaluation errors
- E5xx: Binding errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the SDL lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, -1.5, .25
    STRING = auto()             # "hello \"world\""
    TRUE = auto()               # true, yes
    FALSE = auto()              # false, no

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names and object kinds

    # --- Keywords ---
    LET = auto()                # let
    FN = auto()                 # fn
    IF = auto()                 # if
    ELSE = auto()               # else
    FOR = auto()                # for
    IN = auto()                 # in
    TO = auto()                 # to
    RETURN = auto()             # return

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %

    # --- Comparison operators ---
    LT = auto()                 # < (also opens a vector literal)
    GT = auto()                 # > (also closes a vector literal)
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # &&
    OR = auto()                 # ||
    BANG = auto()               # !

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    COLON = auto()              # :
    SEMICOLON = auto()          # ; (optional statement separator)
    COMMA = auto()              # ,
    DOT = auto()                # .

    # --- Special ---
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # float for numbers, decoded text for strings
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


# Keyword mapping - maps string to token type
KEYWORDS: dict[str, TokenType] = {
    "let": TokenType.LET,
    "fn": TokenType.FN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "to": TokenType.TO,
    "return": TokenType.RETURN,

    # Boolean literals and their spelled-out aliases
    "true": TokenType.TRUE,
    "yes": TokenType.TRUE,
    "false": TokenType.FALSE,
    "no": TokenType.FALSE,
}


# Tokens after which a '-' is a binary operator rather than a sign
OPERAND_END_TOKENS: frozenset = frozenset({
    TokenType.NUMBER,
    TokenType.STRING,
    TokenType.TRUE,
    TokenType.FALSE,
    TokenType.IDENTIFIER,
    TokenType.RPAREN,
    TokenType.RBRACKET,
})


# Human-readable names used in "expected X, found Y" diagnostics
TOKEN_DESCRIPTIONS: dict[TokenType, str] = {
    TokenType.NUMBER: "number",
    TokenType.STRING: "string",
    TokenType.IDENTIFIER: "identifier",
    TokenType.LBRACE: "'{'",
    TokenType.RBRACE: "'}'",
    TokenType.LPAREN: "'('",
    TokenType.RPAREN: "')'",
    TokenType.LBRACKET: "'['",
    TokenType.RBRACKET: "']'",
    TokenType.COLON: "':'",
    TokenType.COMMA: "','",
    TokenType.ASSIGN: "'='",
    TokenType.GT: "'>'",
    TokenType.EOF: "end of file",
}


def describe_token_type(token_type: TokenType) -> str:
    """Return a short description of a token type for error messages."""
    if token_type in TOKEN_DESCRIPTIONS:
        return TOKEN_DESCRIPTIONS[token_type]
    return f"'{token_type.name.lower()}'"


def describe_token(token: Token) -> str:
    """Describe a concrete token, quoting its lexeme where that helps."""
    if token.type == TokenType.EOF:
        return "end of file"
    if token.type in (TokenType.NUMBER, TokenType.IDENTIFIER):
        return f"{describe_token_type(token.type)} '{token.lexeme}'"
    if token.type == TokenType.STRING:
        return f"string {token.lexeme}"
    return f"'{token.lexeme}'"
