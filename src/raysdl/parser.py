"""
Recursive descent parser for the scene description language.

Builds the syntax tree of a scene program from the token list.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceLocation, SourceSpan, describe_token
from .ast import (
    # Expressions
    Expression, Literal, Identifier, BinaryOp, UnaryOp,
    Call, IndexAccess, MemberAccess,
    VectorLiteral, ArrayLiteral, DictLiteral, DictEntry, FieldShorthand,
    # Statements
    Statement, LetStatement, AssignStatement, ExpressionStatement,
    IfStatement, IfBranch, ForStatement, FunctionDef, ReturnStatement,
    ObjectDecl, BlockStatement, Block, Program,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_vector_literal,
    error_nesting_too_deep,
)


class Parser:
    """
    Recursive descent parser for the scene description language.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    The parser implements standard precedence climbing for expressions:
        Lowest:  ||
                 &&
                 == !=
                 < > <= >=
                 + -
                 * / %
        Highest: unary (! -), then postfix (call, index, member)
    """

    # Binding strength of each binary operator; larger binds tighter
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
    }

    # Vector components stop below comparisons so '>' closes the literal
    VECTOR_COMPONENT_PRECEDENCE = 5

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        self.tokens = list(tokens)
        self.filename = filename
        self.source = source
        self._lines = source.splitlines() if source is not None else None
        self.pos = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Take a token of `token_type`; anything else is a syntax error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Advance past the current token when its type is one of `token_types`."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, line: int) -> Optional[str]:
        if self._lines is not None and 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error at the current token."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(
            expected, describe_token(token), token.span,
            self._source_line(token.span.start.line)
        )

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse a full expression."""
        return self._parse_binary_expr(1)

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Binary operators at or above `min_precedence`, left associative."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            if op_token.type == TokenType.NUMBER and self._split_signed_number():
                op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator

            # All operators are left-associative
            right = self._parse_binary_expr(precedence + 1)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right
            )

        return left

    def _split_signed_number(self) -> bool:
        """
        Re-read a signed number that directly follows a vector literal.

        The lexer folds `-` into a number unless the previous token ends an
        operand, and it cannot tell the `>` closing a vector from a
        comparison. So `<1, 2, 3>-1` arrives as a vector then NUMBER(-1);
        split that number into MINUS and its magnitude.
        """
        token = self._current()
        if not token.lexeme.startswith("-") or self._peek(-1).type != TokenType.GT:
            return False

        start = token.span.start
        after_sign = SourceLocation(start.line, start.column + 1, start.offset + 1, start.filename)
        minus = Token(TokenType.MINUS, "-", "-", SourceSpan(start, after_sign))
        number = Token(TokenType.NUMBER, -token.value, token.lexeme[1:],
                       SourceSpan(after_sign, token.span.end))
        self.tokens[self.pos:self.pos + 1] = [minus, number]
        return True

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (!, -)."""
        if self._check_any(TokenType.BANG, TokenType.MINUS):
            op = self._advance()
            operand = self._parse_unary_expr()
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse postfix expressions (calls, indexing, member access)."""
        start = self._current()
        expr = self._parse_primary_expr()

        # Calls only apply directly to a name
        if isinstance(expr, Identifier) and self._check(TokenType.LPAREN):
            arguments = self._parse_arguments()
            expr = Call(
                span=self._span_from(start),
                callee=expr.name,
                arguments=arguments,
                callee_span=expr.span,
            )

        while True:
            if self._check(TokenType.LBRACKET):
                self._advance()  # consume '['
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(
                    span=self._span_from(start),
                    object=expr,
                    index=index
                )
            elif self._check(TokenType.DOT):
                self._advance()  # consume '.'
                member = self._consume(TokenType.IDENTIFIER, "member name after '.'").value
                expr = MemberAccess(
                    span=self._span_from(start),
                    object=expr,
                    member=member
                )
            else:
                break

        return expr

    def _parse_arguments(self) -> List[Expression]:
        """Parse a parenthesised, comma-separated argument list."""
        self._consume(TokenType.LPAREN, "'('")

        args = []
        if not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break  # Allow trailing comma
                args.append(self._parse_expression())

        self._consume(TokenType.RPAREN, "',' or ')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        """Literals, names, parentheses and the three bracketed literal forms."""
        token = self._current()

        if token.type in (TokenType.NUMBER, TokenType.STRING, TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return Literal(
                span=token.span,
                value=token.value,
                literal_type=token.type
            )

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.LT:
            return self._parse_vector_literal()

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        if token.type == TokenType.LBRACE:
            return self._parse_dict_literal()

        self._error("expression")

    def _parse_vector_literal(self) -> VectorLiteral:
        """Parse a vector literal <x, y, z>."""
        start = self._advance()  # consume '<'
        components = [self._parse_binary_expr(self.VECTOR_COMPONENT_PRECEDENCE)]

        while self._match(TokenType.COMMA):
            components.append(self._parse_binary_expr(self.VECTOR_COMPONENT_PRECEDENCE))

        if len(components) != 3:
            raise error_invalid_vector_literal(
                len(components), self._span_from(start),
                self._source_line(start.span.start.line)
            )

        self._consume(TokenType.GT, "'>' to close vector literal")
        return VectorLiteral(
            span=self._span_from(start),
            x=components[0],
            y=components[1],
            z=components[2],
        )

    def _parse_array_literal(self) -> ArrayLiteral:
        """Parse an array literal [a, b, c]."""
        start = self._advance()  # consume '['
        elements = []

        if not self._check(TokenType.RBRACKET):
            elements.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RBRACKET):
                    break
                elements.append(self._parse_expression())

        self._consume(TokenType.RBRACKET, "',' or ']'")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    def _parse_dict_literal(self) -> DictLiteral:
        """Parse a dictionary literal { key: value, shorthand, "key": value }."""
        start = self._advance()  # consume '{'
        entries = []

        if not self._check(TokenType.RBRACE):
            entries.append(self._parse_dict_entry())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RBRACE):
                    break
                entries.append(self._parse_dict_entry())

        self._consume(TokenType.RBRACE, "',' or '}'")
        return DictLiteral(span=self._span_from(start), entries=entries)

    def _parse_dict_entry(self) -> DictEntry:
        key_token = self._current()
        if self._check(TokenType.STRING):
            self._advance()
            self._consume(TokenType.COLON, "':'")
        else:
            self._consume(TokenType.IDENTIFIER, "identifier or string key")
            if not self._match(TokenType.COLON):
                return DictEntry(
                    span=key_token.span,
                    key=key_token.value,
                    value=FieldShorthand(span=key_token.span, name=key_token.value),
                )

        value = self._parse_expression()
        return DictEntry(
            span=SourceSpan(key_token.span.start, value.span.end),
            key=key_token.value,
            value=value,
        )

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Statement:
        """Parse a single statement."""
        token = self._current()

        if token.type == TokenType.LET:
            return self._parse_let_statement()
        if token.type == TokenType.IF:
            return self._parse_if_statement()
        if token.type == TokenType.FOR:
            return self._parse_for_statement()
        if token.type == TokenType.FN:
            return self._parse_function_def()
        if token.type == TokenType.RETURN:
            return self._parse_return_statement()
        if token.type == TokenType.LBRACE:
            body = self._parse_block()
            return BlockStatement(span=body.span, body=body)

        if token.type == TokenType.IDENTIFIER:
            following = self._peek(1).type
            if following == TokenType.LBRACE:
                return self._parse_object_decl()
            if following == TokenType.ASSIGN:
                return self._parse_assign_statement()

        expr = self._parse_expression()
        return ExpressionStatement(span=expr.span, expression=expr)

    def _parse_let_statement(self) -> LetStatement:
        """Parse `let name = value`."""
        start = self._advance()  # consume 'let'
        name = self._consume(TokenType.IDENTIFIER, "variable name after 'let'").value
        self._consume(TokenType.ASSIGN, "'='")
        value = self._parse_expression()
        return LetStatement(span=self._span_from(start), name=name, value=value)

    def _parse_assign_statement(self) -> AssignStatement:
        """Parse `name = value`."""
        start = self._advance()  # consume name
        self._consume(TokenType.ASSIGN, "'='")
        value = self._parse_expression()
        return AssignStatement(span=self._span_from(start), name=start.value, value=value)

    def _parse_if_statement(self) -> IfStatement:
        """Parse an if / else if / else chain."""
        start = self._advance()  # consume 'if'
        branches = []

        condition = self._parse_expression()
        body = self._parse_block()
        branches.append(IfBranch(span=self._span_from(start), condition=condition, body=body))

        while self._check(TokenType.ELSE):
            else_token = self._advance()
            if self._match(TokenType.IF):
                condition = self._parse_expression()
                body = self._parse_block()
                branches.append(IfBranch(span=self._span_from(else_token), condition=condition, body=body))
            else:
                body = self._parse_block()
                branches.append(IfBranch(span=self._span_from(else_token), condition=None, body=body))
                break

        return IfStatement(span=self._span_from(start), branches=branches)

    def _parse_for_statement(self) -> ForStatement:
        """Parse `for name in lower to upper { ... }`."""
        start = self._advance()  # consume 'for'
        variable = self._consume(TokenType.IDENTIFIER, "loop variable name").value
        self._consume(TokenType.IN, "'in'")
        lower = self._parse_expression()
        self._consume(TokenType.TO, "'to'")
        upper = self._parse_expression()
        body = self._parse_block()
        return ForStatement(
            span=self._span_from(start),
            variable=variable,
            lower=lower,
            upper=upper,
            body=body,
        )

    def _parse_function_def(self) -> FunctionDef:
        """Parse `fn name(a, b) { ... }`."""
        start = self._advance()  # consume 'fn'
        name = self._consume(TokenType.IDENTIFIER, "function name").value
        self._consume(TokenType.LPAREN, "'('")

        parameters = []
        if not self._check(TokenType.RPAREN):
            parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break
                parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
        self._consume(TokenType.RPAREN, "',' or ')'")

        body = self._parse_block()
        return FunctionDef(span=self._span_from(start), name=name, parameters=parameters, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        """Parse `return` with an optional value."""
        start = self._advance()  # consume 'return'
        value = None
        if not self._check_any(TokenType.RBRACE, TokenType.SEMICOLON, TokenType.EOF):
            value = self._parse_expression()
        return ReturnStatement(span=self._span_from(start), value=value)

    def _parse_object_decl(self) -> ObjectDecl:
        """Parse `kind { field: value, ... }`."""
        start = self._advance()  # consume kind
        body = self._parse_dict_literal()
        return ObjectDecl(span=self._span_from(start), kind=start.value, body=body)

    def _parse_block(self) -> Block:
        """Parse a brace-delimited block of statements."""
        start = self._consume(TokenType.LBRACE, "'{'")
        statements = []

        while not self._check(TokenType.RBRACE):
            if self._is_at_end():
                self._error("'}'")
            if self._match(TokenType.SEMICOLON):
                continue
            statements.append(self._parse_statement())

        self._advance()  # consume '}'
        return Block(span=self._span_from(start), statements=statements)

    # =========================================================================
    # Program
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse a complete source file."""
        start = self._current()
        statements = []

        while not self._is_at_end():
            if self._match(TokenType.SEMICOLON):
                continue
            statements.append(self._parse_statement())

        if statements:
            span = SourceSpan(start.span.start, statements[-1].span.end)
        else:
            span = start.span
        return Program(span=span, statements=statements)


def parse(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Program:
    """
    Parse a token list into a Program.

    Args:
        tokens: List of tokens from the lexer
        filename: Optional filename for error messages
        source: Optional original source code for error context

    Returns:
        Parsed Program AST

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, source)
    try:
        return parser.parse_program()
    except RecursionError:
        token = parser._current()
        raise error_nesting_too_deep(
            token.span, parser._source_line(token.span.start.line)
        ) from None
