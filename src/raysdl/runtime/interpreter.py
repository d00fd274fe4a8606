"""
Tree-walking interpreter for SDL programs.

Evaluates statements against an environment chain and records object
declarations into a SceneAccumulator.

`return` is modelled as an explicit value: every statement executor returns
either None (keep going) or a ReturnSignal, and blocks, ifs and loops hand a
signal straight back to their caller until a function call consumes it.
"""

import logging
import math
import sys
from dataclasses import dataclass
from typing import List, Optional

from .values import (
    Value, ValueKind, UserFunction, UNIT,
    number_val, string_val, bool_val, vector_val, array_val, dict_val,
    function_val, to_display, values_equal,
)
from .context import ExecutionContext, Environment, create_context
from .accumulator import SceneAccumulator
from .builtins import BuiltinFunction, arithmetic
from ..ast import (
    Statement, LetStatement, AssignStatement, ExpressionStatement,
    IfStatement, ForStatement, FunctionDef, ReturnStatement, ObjectDecl,
    BlockStatement, Block, Program,
    Expression, Literal, Identifier, BinaryOp, UnaryOp, Call,
    IndexAccess, MemberAccess, VectorLiteral, ArrayLiteral, DictLiteral,
    FieldShorthand,
)
from ..config import SdlConfig
from ..errors import (
    DslError,
    error_undefined_variable,
    error_unknown_function,
    error_arity,
    error_type_mismatch,
    error_unsupported_operands,
    error_index_out_of_bounds,
    error_missing_key,
    error_limit_exceeded,
)
from ..tokens import SourceSpan, TokenType

logger = logging.getLogger(__name__)


OPERATOR_SYMBOLS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.LT: "<",
    TokenType.LE: "<=",
    TokenType.GT: ">",
    TokenType.GE: ">=",
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.AND: "&&",
    TokenType.OR: "||",
    TokenType.BANG: "!",
}

ARITHMETIC_OPERATORS = (TokenType.PLUS, TokenType.MINUS, TokenType.STAR,
                        TokenType.SLASH, TokenType.PERCENT)

COMPARISON_OPERATORS = {
    TokenType.LT: lambda a, b: a < b,
    TokenType.LE: lambda a, b: a <= b,
    TokenType.GT: lambda a, b: a > b,
    TokenType.GE: lambda a, b: a >= b,
}

VECTOR_MEMBERS = ("x", "y", "z")
COLOR_MEMBERS = ("r", "g", "b")


@dataclass
class ReturnSignal:
    """A pending `return` travelling up to the enclosing function call."""
    value: Value


class Interpreter:
    """
    Tree-walking interpreter for SDL programs.

    Evaluates AST nodes by dispatching to type-specific methods. One
    interpreter can evaluate any number of programs; all per-run state lives
    in the ExecutionContext.
    """

    def __init__(self, config: Optional[SdlConfig] = None):
        self.config = config or SdlConfig()

    def evaluate(
        self,
        program: Program,
        env: Optional[Environment] = None,
        accumulator: Optional[SceneAccumulator] = None,
        source: str = "",
        time: Optional[float] = None,
    ) -> SceneAccumulator:
        """
        Run every top-level statement of a program.

        Args:
            program: The parsed program
            env: Root environment; a fresh one is built from the config if omitted
            accumulator: Scene sink; a fresh one is created if omitted
            source: Original source text, used for error context
            time: Value for the time variable (ignored when env is given)

        Returns:
            The frozen SceneAccumulator

        Raises:
            EvaluationError: On the first error; no partial scene is returned
        """
        ctx = create_context(source, self.config, time, env, accumulator)

        for stmt in program.statements:
            try:
                signal = self._execute_statement(stmt, ctx)
            except RecursionError:
                raise error_limit_exceeded(
                    "expression nesting", sys.getrecursionlimit(), stmt.span,
                    self._line(ctx, stmt.span),
                ) from None
            if signal is not None:
                # A top-level return ends the program
                break

        ctx.accumulator.freeze()
        logger.debug(
            "evaluated %d statements: %d objects, singletons: %s",
            len(program.statements), len(ctx.accumulator),
            ", ".join(sorted(ctx.accumulator.singletons)) or "none",
        )
        return ctx.accumulator

    # =========================================================================
    # Statements
    # =========================================================================

    def _execute_statements(self, statements: List[Statement],
                            ctx: ExecutionContext) -> Optional[ReturnSignal]:
        for stmt in statements:
            signal = self._execute_statement(stmt, ctx)
            if signal is not None:
                return signal
        return None

    def _execute_block(self, block: Block, ctx: ExecutionContext,
                       name: str = "block") -> Optional[ReturnSignal]:
        """Execute a block of statements in a fresh child scope."""
        with ctx.new_scope(name):
            return self._execute_statements(block.statements, ctx)

    def _execute_statement(self, stmt: Statement, ctx: ExecutionContext) -> Optional[ReturnSignal]:
        """Execute a statement."""
        if isinstance(stmt, LetStatement):
            ctx.current_env.declare(stmt.name, self._evaluate(stmt.value, ctx))
        elif isinstance(stmt, AssignStatement):
            ctx.current_env.assign(stmt.name, self._evaluate(stmt.value, ctx))
        elif isinstance(stmt, ExpressionStatement):
            self._evaluate(stmt.expression, ctx)
        elif isinstance(stmt, IfStatement):
            return self._execute_if(stmt, ctx)
        elif isinstance(stmt, ForStatement):
            return self._execute_for(stmt, ctx)
        elif isinstance(stmt, FunctionDef):
            self._execute_function_def(stmt, ctx)
        elif isinstance(stmt, ReturnStatement):
            value = self._evaluate(stmt.value, ctx) if stmt.value is not None else UNIT
            return ReturnSignal(value)
        elif isinstance(stmt, ObjectDecl):
            self._execute_object_decl(stmt, ctx)
        elif isinstance(stmt, BlockStatement):
            return self._execute_block(stmt.body, ctx)
        else:
            raise RuntimeError(f"Unknown statement type: {type(stmt).__name__}")
        return None

    def _execute_if(self, stmt: IfStatement, ctx: ExecutionContext) -> Optional[ReturnSignal]:
        """Run the first branch whose condition is truthy (or the else branch)."""
        for branch in stmt.branches:
            if branch.condition is None or self._evaluate(branch.condition, ctx).is_truthy():
                return self._execute_block(branch.body, ctx, "if")
        return None

    def _execute_for(self, stmt: ForStatement, ctx: ExecutionContext) -> Optional[ReturnSignal]:
        """
        Execute `for v in lo to hi`.

        Bounds are evaluated once and truncated toward zero; the upper bound
        is exclusive. Each iteration gets its own scope.
        """
        lower = self._loop_bound(stmt.lower, ctx)
        upper = self._loop_bound(stmt.upper, ctx)
        limit = ctx.config.max_loop_iterations

        for i in range(lower, upper):
            ctx.loop_iterations += 1
            if limit is not None and ctx.loop_iterations > limit:
                raise error_limit_exceeded(
                    "loop iteration", limit, stmt.span, self._line(ctx, stmt.span)
                )
            with ctx.new_scope("for") as env:
                env.declare(stmt.variable, number_val(i))
                signal = self._execute_statements(stmt.body.statements, ctx)
            if signal is not None:
                return signal
        return None

    def _loop_bound(self, expr: Expression, ctx: ExecutionContext) -> int:
        value = self._evaluate(expr, ctx)
        if value.kind != ValueKind.NUMBER or not math.isfinite(value.data):
            found = value.kind_name if value.kind != ValueKind.NUMBER else to_display(value)
            raise error_type_mismatch(
                "finite number", found, expr.span, "for loop bound", self._line(ctx, expr.span)
            )
        return int(value.data)

    def _execute_function_def(self, stmt: FunctionDef, ctx: ExecutionContext) -> None:
        fn = UserFunction(
            name=stmt.name,
            parameters=list(stmt.parameters),
            body=stmt.body,
            closure=ctx.current_env,
            span=stmt.span,
        )
        ctx.current_env.declare(stmt.name, function_val(fn))

    def _execute_object_decl(self, stmt: ObjectDecl, ctx: ExecutionContext) -> None:
        """Evaluate the body in a child scope and hand the fields to the accumulator."""
        with ctx.new_scope(f"object {stmt.kind}"):
            fields = self._eval_dict_entries(stmt.body, ctx)
        try:
            ctx.accumulator.declare(stmt.kind, fields, stmt.span)
        except DslError as e:
            e.attach_span(stmt.span, self._line(ctx, stmt.span))
            raise

    # =========================================================================
    # Expressions
    # =========================================================================

    def _evaluate(self, expr: Expression, ctx: ExecutionContext) -> Value:
        """Evaluate an expression to produce a Value."""
        if isinstance(expr, Literal):
            return self._eval_literal(expr)
        elif isinstance(expr, Identifier):
            return self._lookup(expr.name, expr.span, ctx)
        elif isinstance(expr, FieldShorthand):
            return self._lookup(expr.name, expr.span, ctx)
        elif isinstance(expr, BinaryOp):
            return self._eval_binary_op(expr, ctx)
        elif isinstance(expr, UnaryOp):
            return self._eval_unary_op(expr, ctx)
        elif isinstance(expr, Call):
            return self._eval_call(expr, ctx)
        elif isinstance(expr, IndexAccess):
            return self._eval_index_access(expr, ctx)
        elif isinstance(expr, MemberAccess):
            return self._eval_member_access(expr, ctx)
        elif isinstance(expr, VectorLiteral):
            return self._eval_vector_literal(expr, ctx)
        elif isinstance(expr, ArrayLiteral):
            return array_val([self._evaluate(e, ctx) for e in expr.elements])
        elif isinstance(expr, DictLiteral):
            return dict_val(self._eval_dict_entries(expr, ctx))
        else:
            raise RuntimeError(f"Unknown expression type: {type(expr).__name__}")

    def _eval_literal(self, lit: Literal) -> Value:
        if lit.literal_type == TokenType.NUMBER:
            return number_val(lit.value)
        elif lit.literal_type == TokenType.STRING:
            return string_val(lit.value)
        elif lit.literal_type in (TokenType.TRUE, TokenType.FALSE):
            return bool_val(lit.value)
        raise RuntimeError(f"Unknown literal type: {lit.literal_type}")

    def _lookup(self, name: str, span: SourceSpan, ctx: ExecutionContext) -> Value:
        value = ctx.current_env.get(name)
        if value is None:
            raise error_undefined_variable(name, span, self._line(ctx, span))
        return value

    def _eval_vector_literal(self, expr: VectorLiteral, ctx: ExecutionContext) -> Value:
        components = []
        for component in (expr.x, expr.y, expr.z):
            value = self._evaluate(component, ctx)
            if value.kind != ValueKind.NUMBER:
                raise error_type_mismatch(
                    "number", value.kind_name, component.span, "vector literal",
                    self._line(ctx, component.span),
                )
            components.append(value.data)
        return vector_val(*components)

    def _eval_dict_entries(self, expr: DictLiteral, ctx: ExecutionContext) -> dict:
        fields = {}
        for entry in expr.entries:
            fields[entry.key] = self._evaluate(entry.value, ctx)
        return fields

    def _eval_binary_op(self, op: BinaryOp, ctx: ExecutionContext) -> Value:
        """Evaluate a binary operation."""
        # Short-circuit for logical operators
        if op.operator == TokenType.AND:
            if not self._evaluate(op.left, ctx).is_truthy():
                return bool_val(False)
            return bool_val(self._evaluate(op.right, ctx).is_truthy())
        if op.operator == TokenType.OR:
            if self._evaluate(op.left, ctx).is_truthy():
                return bool_val(True)
            return bool_val(self._evaluate(op.right, ctx).is_truthy())

        left = self._evaluate(op.left, ctx)
        right = self._evaluate(op.right, ctx)
        symbol = OPERATOR_SYMBOLS[op.operator]

        if op.operator == TokenType.EQ:
            return bool_val(values_equal(left, right))
        if op.operator == TokenType.NE:
            return bool_val(not values_equal(left, right))

        if op.operator in COMPARISON_OPERATORS:
            if left.kind == right.kind and left.kind in (ValueKind.NUMBER, ValueKind.STRING):
                return bool_val(COMPARISON_OPERATORS[op.operator](left.data, right.data))
        elif op.operator in ARITHMETIC_OPERATORS:
            try:
                result = arithmetic(symbol, left, right)
            except DslError as e:
                e.attach_span(op.span, self._line(ctx, op.span))
                raise
            if result is not None:
                return result

        raise error_unsupported_operands(
            symbol, left.kind_name, right.kind_name, op.span, self._line(ctx, op.span)
        )

    def _eval_unary_op(self, op: UnaryOp, ctx: ExecutionContext) -> Value:
        """Evaluate a unary operation."""
        operand = self._evaluate(op.operand, ctx)

        if op.operator == TokenType.BANG:
            return bool_val(not operand.is_truthy())

        if operand.kind == ValueKind.NUMBER:
            return number_val(-operand.data)
        if operand.kind == ValueKind.VECTOR:
            return vector_val(-operand.data)

        raise error_unsupported_operands(
            "-", operand.kind_name, span=op.span, source_line=self._line(ctx, op.span)
        )

    def _eval_index_access(self, expr: IndexAccess, ctx: ExecutionContext) -> Value:
        """Evaluate `target[index]` on arrays, dictionaries and strings."""
        target = self._evaluate(expr.object, ctx)
        index = self._evaluate(expr.index, ctx)
        line = self._line(ctx, expr.span)

        if target.kind == ValueKind.DICTIONARY:
            if index.kind != ValueKind.STRING:
                raise error_type_mismatch("string key", index.kind_name, expr.index.span,
                                          "dictionary index", line)
            if index.data not in target.data:
                raise error_missing_key(index.data, expr.span, line)
            return target.data[index.data]

        if target.kind in (ValueKind.ARRAY, ValueKind.STRING):
            if index.kind != ValueKind.NUMBER:
                raise error_type_mismatch("number", index.kind_name, expr.index.span,
                                          f"{target.kind_name} index", line)
            length = len(target.data)
            position = index.data
            if not float(position).is_integer() or not 0 <= position < length:
                raise error_index_out_of_bounds(to_display(index), length, expr.span, line)
            item = target.data[int(position)]
            return item if target.kind == ValueKind.ARRAY else string_val(item)

        raise error_type_mismatch("array, dictionary or string", target.kind_name,
                                  expr.object.span, "index access", line)

    def _eval_member_access(self, expr: MemberAccess, ctx: ExecutionContext) -> Value:
        """Evaluate `target.member` on vectors, colors and dictionaries."""
        target = self._evaluate(expr.object, ctx)
        line = self._line(ctx, expr.span)

        if target.kind == ValueKind.DICTIONARY:
            if expr.member not in target.data:
                raise error_missing_key(expr.member, expr.span, line)
            return target.data[expr.member]
        if target.kind == ValueKind.VECTOR and expr.member in VECTOR_MEMBERS:
            return number_val(getattr(target.data, expr.member))
        if target.kind == ValueKind.COLOR and expr.member in COLOR_MEMBERS:
            return number_val(getattr(target.data, expr.member))

        raise error_type_mismatch(
            "vector, color or dictionary with member " + repr(expr.member),
            target.kind_name, expr.span, "member access", line,
        )

    # =========================================================================
    # Calls
    # =========================================================================

    def _eval_call(self, call: Call, ctx: ExecutionContext) -> Value:
        """Resolve the callee by name, evaluate arguments left to right, invoke."""
        callee_span = call.callee_span or call.span
        callee = ctx.current_env.get(call.callee)
        if callee is None:
            raise error_unknown_function(call.callee, callee_span, self._line(ctx, callee_span))
        if callee.kind != ValueKind.FUNCTION:
            raise error_type_mismatch(
                "function", callee.kind_name, callee_span, f"call of '{call.callee}'",
                self._line(ctx, callee_span),
            )

        args = [self._evaluate(arg, ctx) for arg in call.arguments]
        return self.call_function(callee, args, ctx, call.span, call.callee)

    def call_function(self, fn: Value, args: List[Value], ctx: ExecutionContext,
                      span: Optional[SourceSpan] = None, name: Optional[str] = None) -> Value:
        """Invoke a builtin or user function value with evaluated arguments."""
        target = fn.data
        try:
            if isinstance(target, BuiltinFunction):
                return target(args)
            return self._call_user_function(target, args, ctx, span, name or target.name)
        except DslError as e:
            e.attach_span(span, self._line(ctx, span))
            raise

    def _call_user_function(self, fn: UserFunction, args: List[Value], ctx: ExecutionContext,
                            span: Optional[SourceSpan], name: str) -> Value:
        """
        Run a user function in a child of its captured environment.

        Parameters are bound positionally; the result is the returned value,
        or unit when the body finishes without `return`.
        """
        if len(args) != len(fn.parameters):
            raise error_arity(name, str(len(fn.parameters)), len(args), span, self._line(ctx, span))

        limit = ctx.config.max_call_depth
        if limit is not None and ctx.call_depth >= limit:
            raise error_limit_exceeded("call depth", limit, span, self._line(ctx, span))

        ctx.call_depth += 1
        try:
            with ctx.new_scope(f"fn {name}", parent=fn.closure) as env:
                for param, value in zip(fn.parameters, args):
                    env.declare(param, value)
                signal = self._execute_statements(fn.body.statements, ctx)
        except RecursionError:
            raise error_limit_exceeded("call depth", ctx.call_depth, span, self._line(ctx, span))
        finally:
            ctx.call_depth -= 1

        return signal.value if signal is not None else UNIT

    def _line(self, ctx: ExecutionContext, span: Optional[SourceSpan]) -> Optional[str]:
        if span is None:
            return None
        return ctx.get_source_line(span.start.line)


def evaluate_program(
    program: Program,
    env: Optional[Environment] = None,
    accumulator: Optional[SceneAccumulator] = None,
    config: Optional[SdlConfig] = None,
    source: str = "",
    time: Optional[float] = None,
) -> SceneAccumulator:
    """
    Convenience function to evaluate a parsed program.

    Returns:
        The frozen SceneAccumulator holding every declared object
    """
    return Interpreter(config).evaluate(program, env, accumulator, source, time)
