"""
Lexer for the scene description language.

Converts source text into a stream of tokens for the parser.
Supports:
- Single-line comments (#)
- Double-quoted string literals with backslash escapes
- Number literals (integer and fractional, with a context-sensitive sign)
- Keywords, identifiers, operators and punctuation

Whitespace, including newlines, is insignificant.
"""

from typing import List, Optional, Iterator
from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan, KEYWORDS, OPERAND_END_TOKENS,
)
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
)


ESCAPE_CHARS = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '\\': '\\',
    '"': '"',
}


# Two-character operators, keyed by (first, second) character
TWO_CHAR_TOKENS = {
    ('=', '='): TokenType.EQ,
    ('!', '='): TokenType.NE,
    ('<', '='): TokenType.LE,
    ('>', '='): TokenType.GE,
    ('&', '&'): TokenType.AND,
    ('|', '|'): TokenType.OR,
}

ONE_CHAR_TOKENS = {
    '+': TokenType.PLUS, '-': TokenType.MINUS, '*': TokenType.STAR,
    '/': TokenType.SLASH, '%': TokenType.PERCENT,
    '<': TokenType.LT, '>': TokenType.GT, '=': TokenType.ASSIGN, '!': TokenType.BANG,
    '{': TokenType.LBRACE, '}': TokenType.RBRACE,
    '(': TokenType.LPAREN, ')': TokenType.RPAREN,
    '[': TokenType.LBRACKET, ']': TokenType.RBRACKET,
    ':': TokenType.COLON, ';': TokenType.SEMICOLON, ',': TokenType.COMMA, '.': TokenType.DOT,
}


class Lexer:
    """
    Tokenizer for the scene description language.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)

    Iterating again restarts from the beginning of the source.
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self._lines: Optional[List[str]] = None
        self._reset()

    def _reset(self) -> None:
        self.pos = 0
        self.line = 1
        self.column = 1
        # Last token produced; decides whether a '-' may start a number
        self.previous: Optional[Token] = None

    @property
    def lines(self) -> List[str]:
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Text of a 1-indexed line, for diagnostics."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Character `offset` places ahead, or NUL past the end."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume one character, keeping line and column in step."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _match(self, expected: str) -> bool:
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _skip_whitespace_and_comments(self) -> None:
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n':
                self._advance()
            elif ch == '#':
                while self._peek() != '\n' and not self._is_at_end():
                    self._advance()
            else:
                return

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _sign_allowed(self) -> bool:
        """A '-' starts a number only where an operand cannot have just ended."""
        return self.previous is None or self.previous.type not in OPERAND_END_TOKENS

    def _scan_string(self) -> Token:
        """Scan a double-quoted string literal."""
        start = self._location()
        self._advance()  # consume opening quote

        chars = []
        while not self._is_at_end() and self._peek() != '"':
            ch = self._peek()
            if ch == '\n':
                raise error_unterminated_string(
                    self._span(start),
                    self.get_source_line(start.line)
                )
            if ch == '\\':
                esc_start = self._location()
                self._advance()  # consume backslash
                esc = self._advance()
                if esc not in ESCAPE_CHARS:
                    raise error_invalid_escape_sequence(
                        esc if esc != '\0' else '', self._span(esc_start),
                        self.get_source_line(esc_start.line)
                    )
                chars.append(ESCAPE_CHARS[esc])
            else:
                chars.append(self._advance())

        if self._is_at_end():
            raise error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )

        self._advance()  # consume closing quote
        return self._make_token(TokenType.STRING, ''.join(chars), start)

    def _scan_number(self) -> Token:
        """Scan a numeric literal, including an already-approved leading '-'."""
        start = self._location()
        self._match('-')

        while self._peek().isdigit():
            self._advance()

        if self._peek() == '.' and self._peek(1).isdigit():
            self._advance()  # consume '.'
            while self._peek().isdigit():
                self._advance()

        lexeme = self.source[start.offset:self.pos]
        # '1.2.3' and '3abc' are malformed rather than two tokens
        if self._peek() == '.' and self._peek(1).isdigit() or self._peek().isalpha() or self._peek() == '_':
            while self._peek().isalnum() or self._peek() in '._':
                self._advance()
            lexeme = self.source[start.offset:self.pos]
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )
        try:
            value = float(lexeme)
        except ValueError:
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )
        return self._make_token(TokenType.NUMBER, value, start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        start = self._location()

        while self._peek().isalnum() or self._peek() == '_':
            self._advance()

        lexeme = self.source[start.offset:self.pos]

        if lexeme in KEYWORDS:
            token_type = KEYWORDS[lexeme]
            if token_type == TokenType.TRUE:
                value = True
            elif token_type == TokenType.FALSE:
                value = False
            else:
                value = lexeme
            return self._make_token(token_type, value, start, lexeme)

        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        self._skip_whitespace_and_comments()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch == '"':
            return self._scan_string()

        if ch.isdigit() or (ch == '.' and self._peek(1).isdigit()):
            return self._scan_number()

        if ch == '-' and (self._peek(1).isdigit() or (self._peek(1) == '.' and self._peek(2).isdigit())):
            if self._sign_allowed():
                return self._scan_number()

        if ch.isalpha() or ch == '_':
            return self._scan_identifier_or_keyword()

        self._advance()

        second = self._peek()
        pair = TWO_CHAR_TOKENS.get((ch, second))
        if pair is not None:
            self._advance()
            return self._make_token(pair, ch + second, start)

        if ch in ONE_CHAR_TOKENS:
            return self._make_token(ONE_CHAR_TOKENS[ch], ch, start)

        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def _next_token(self) -> Token:
        token = self._scan_token()
        self.previous = token
        return token

    def tokenize(self) -> List[Token]:
        """All tokens of the source, ending with EOF."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        self._reset()
        while True:
            token = self._next_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Tokenize a whole source string.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens

    Raises:
        LexerError: If tokenization fails
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
