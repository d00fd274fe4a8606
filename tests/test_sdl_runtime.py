"""
Tests for the SDL runtime (interpreter, values, environments, accumulator).
"""

import math
import textwrap

import pytest

from raysdl import (
    compile_source, evaluate_source, SdlConfig, Interpreter,
    create_root_environment,
    EvaluationError, UndefinedVariableError, ArityError, UnknownFunctionError,
    TypeMismatchError, IndexOutOfBoundsError, MissingKeyError,
    DuplicateSingletonError, LimitExceededError,
)
from raysdl.runtime import (
    Value, ValueKind, Vector3, Color, Environment, SceneAccumulator,
    number_val, string_val, bool_val, vector_val, array_val, dict_val, UNIT,
    to_display, to_python, from_python, values_equal, create_context,
)


def run(source, config=None):
    """Evaluate source in a fresh root environment; return (env, accumulator)."""
    source = textwrap.dedent(source)
    config = config or SdlConfig()
    env = create_root_environment(config)
    accumulator = Interpreter(config).evaluate(compile_source(source), env, source=source)
    return env, accumulator


def evaluate(expression, prelude=""):
    """Value of a single expression, after an optional prelude."""
    env, _ = run(f"{prelude}\nlet result = {expression}")
    return env.get("result")


# --- Value Tests ---

class TestValues:
    """Test runtime value wrappers."""

    def test_number_value(self):
        """Numbers are stored as floats."""
        v = number_val(3)
        assert v.data == 3.0
        assert isinstance(v.data, float)
        assert v.kind == ValueKind.NUMBER

    def test_truthiness(self):
        """Only false, 0, NaN and unit are falsy."""
        assert bool_val(True).is_truthy()
        assert not bool_val(False).is_truthy()
        assert not number_val(0).is_truthy()
        assert number_val(-2).is_truthy()
        assert not number_val(math.nan).is_truthy()
        assert not UNIT.is_truthy()
        assert string_val("").is_truthy()
        assert array_val([]).is_truthy()
        assert dict_val({}).is_truthy()
        assert vector_val(0, 0, 0).is_truthy()

    def test_structural_equality(self):
        """Values compare by content."""
        assert vector_val(1, 2, 3) == vector_val(1, 2, 3)
        assert array_val([number_val(1)]) == array_val([number_val(1)])
        assert number_val(1) != string_val("1")

    def test_values_equal_on_cycles(self):
        """values_equal treats a pair already under comparison as equal."""
        a, b = array_val([]), array_val([])
        a.data.append(a)
        b.data.append(b)
        assert values_equal(a, b)
        assert not values_equal(a, array_val([number_val(1)]))
        assert not values_equal(dict_val({"k": a}), dict_val({"j": a}))

    def test_color_clamps_channels(self):
        """Channels are clamped to [0, 255]."""
        assert Color(300, -5, 128).as_tuple() == (255.0, 0.0, 128.0)

    def test_display(self):
        """to_display renders the print form."""
        assert to_display(number_val(2)) == "2"
        assert to_display(number_val(2.5)) == "2.5"
        assert to_display(vector_val(1, 0, -1)) == "<1, 0, -1>"
        assert to_display(array_val([number_val(1), string_val("a")])) == '[1, "a"]'
        assert to_display(string_val("top")) == "top"

    def test_display_self_containing_array(self):
        """An array pushed into itself does not recurse forever."""
        items = []
        arr = array_val(items)
        items.append(arr)
        assert to_display(arr) == "[[...]]"

    def test_python_round_trip(self):
        """from_python and to_python agree on plain data."""
        data = {"a": 1.0, "b": [True, "x"]}
        assert to_python(from_python(data)) == data

    def test_from_python_rejects_unknown_types(self):
        """Unsupported objects are refused."""
        with pytest.raises(ValueError):
            from_python(object())


# --- Environment Tests ---

class TestEnvironment:
    """Test the scope chain."""

    def test_lookup_walks_outward(self):
        """Names resolve in enclosing scopes."""
        root = Environment(name="root")
        root.declare("x", number_val(1))
        child = root.child()
        assert child.get("x") == number_val(1)
        assert child.depth == 1

    def test_update_nearest_declaration(self):
        """update() changes the nearest declaring scope."""
        root = Environment()
        root.declare("x", number_val(1))
        middle = root.child()
        middle.declare("x", number_val(2))
        inner = middle.child()
        assert inner.update("x", number_val(3))
        assert middle.get("x") == number_val(3)
        assert root.get("x") == number_val(1)

    def test_assign_undeclared_declares_locally(self):
        """assign() of a new name binds it in the current scope."""
        root = Environment()
        child = root.child()
        child.assign("y", number_val(5))
        assert child.contains("y")
        assert not root.contains("y")

    def test_root_environment_constants(self):
        """PI, TAU, E, builtins and the time variable are pre-bound."""
        env = create_root_environment()
        assert env.get("PI").data == pytest.approx(math.pi)
        assert env.get("TAU").data == pytest.approx(2 * math.pi)
        assert env.get("E").data == pytest.approx(math.e)
        assert env.get("t").data == 0.0
        assert env.get("sin").kind == ValueKind.FUNCTION


# --- Scoping ---

class TestScoping:
    """Test lexical scoping rules."""

    def test_shadowing_does_not_leak(self):
        """let x = 1; { let x = 2 } leaves the outer x at 1."""
        env, _ = run("let x = 1; { let x = 2 }")
        assert env.get("x").data == 1.0

    def test_assignment_updates_ancestor(self):
        """let x = 1; { x = 2 } updates the outer x."""
        env, _ = run("let x = 1; { x = 2 }")
        assert env.get("x").data == 2.0

    def test_block_locals_are_dropped(self):
        """Names declared in a block are gone after it."""
        with pytest.raises(UndefinedVariableError):
            run("{ let inner = 1 } let y = inner")

    def test_for_variable_scoped_to_body(self):
        """The loop variable is not visible after the loop."""
        with pytest.raises(UndefinedVariableError) as exc_info:
            run("for i in 0 to 2 { } let y = i")
        assert exc_info.value.name == "i"

    def test_if_branch_scope(self):
        """Declarations inside an if branch stay inside it."""
        env, _ = run("let x = 1 if true { let x = 5 }")
        assert env.get("x").data == 1.0

    def test_constants_can_be_shadowed(self):
        """PI is an ordinary binding."""
        assert evaluate("PI", "let PI = 3").data == 3.0

    def test_undefined_variable_has_position(self):
        """The error points at the identifier."""
        with pytest.raises(UndefinedVariableError) as exc_info:
            run("let a = 1\nlet b = missing + a")
        err = exc_info.value
        assert err.code == "E401"
        assert err.span.start.line == 2
        assert err.span.start.column == 9


# --- Expressions ---

class TestExpressions:
    """Test operator semantics."""

    def test_arithmetic_precedence(self):
        """1 + 2 * 3 == 7."""
        assert evaluate("1 + 2 * 3").data == 7.0

    def test_modulo(self):
        """% keeps the sign of the dividend."""
        assert evaluate("7 % 3").data == 1.0
        assert evaluate("-7 % 3").data == -1.0

    def test_division_by_zero(self):
        """Dividing by zero is an evaluation error."""
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("1 / 0")
        assert exc_info.value.code == "E409"
        assert exc_info.value.span is not None

    def test_vector_arithmetic(self):
        """Component-wise and broadcast vector operators."""
        assert evaluate("<1, 2, 3> + <1, 1, 1>").data == Vector3(2, 3, 4)
        assert evaluate("<1, 2, 3> * 2").data == Vector3(2, 4, 6)
        assert evaluate("2 * <1, 2, 3>").data == Vector3(2, 4, 6)
        assert evaluate("<2, 4, 6> / 2").data == Vector3(1, 2, 3)
        assert evaluate("<1, 2, 3> - 1").data == Vector3(0, 1, 2)

    def test_vector_times_color(self):
        """Color channels act as vector components."""
        result = evaluate("<1, 2, 3> * rgb(10, 20, 30)")
        assert result.kind == ValueKind.VECTOR
        assert result.data == Vector3(10, 40, 90)

    def test_color_arithmetic(self):
        """Colors add with clamping and scale by numbers."""
        assert evaluate("rgb(200, 10, 0) + rgb(100, 10, 0)").data == Color(255, 20, 0)
        assert evaluate("rgb(100, 50, 0) * 2").data == Color(200, 100, 0)

    def test_string_concatenation(self):
        """'+' joins strings."""
        assert evaluate('"ab" + "cd"').data == "abcd"

    def test_unsupported_operands(self):
        """Mixing a number and a string is a type mismatch."""
        with pytest.raises(TypeMismatchError) as exc_info:
            evaluate('1 + "a"')
        assert exc_info.value.code == "E404"

    def test_number_minus_vector_is_unsupported(self):
        """Only '+' and '*' broadcast a leading number."""
        with pytest.raises(TypeMismatchError):
            evaluate("1 - <1, 2, 3>")

    def test_comparisons(self):
        """Ordering on numbers and strings."""
        assert evaluate("1 < 2").data is True
        assert evaluate("2 <= 2").data is True
        assert evaluate('"b" > "a"').data is True
        with pytest.raises(TypeMismatchError):
            evaluate("<1, 2, 3> < <4, 5, 6>")

    def test_equality_is_structural(self):
        """== compares contents for every kind."""
        assert evaluate("<1, 2, 3> == <1, 2, 3>").data is True
        assert evaluate("[1, [2]] == [1, [2]]").data is True
        assert evaluate("{a: 1} == {a: 1}").data is True
        assert evaluate('1 == "1"').data is False
        assert evaluate("1 != 2").data is True

    def test_equality_of_self_containing_arrays(self):
        """Comparing cyclic arrays terminates."""
        env, _ = run("""
        let a = [1]
        let b = [1]
        push(a, a)
        push(b, b)
        let same = a == b
        let itself = a == a
        push(b, 2)
        let differ = a != b
        """)
        assert env.get("same").data is True
        assert env.get("itself").data is True
        assert env.get("differ").data is True

    def test_vector_minus_signed_number(self):
        """<1, 2, 3>-1 subtracts from every component."""
        assert evaluate("<1, 2, 3>-1").data == Vector3(0.0, 1.0, 2.0)

    def test_deeply_nested_expression(self):
        """Evaluation deeper than the Python stack is a limit error."""
        with pytest.raises(LimitExceededError) as exc_info:
            run("let x = " + " + ".join(["1"] * 5000))
        assert exc_info.value.code == "E408"

    def test_logical_short_circuit(self):
        """The right operand is not evaluated when the left decides."""
        assert evaluate("false && missing").data is False
        assert evaluate("true || missing").data is True
        assert evaluate("1 && 2").data is True

    def test_unary_operators(self):
        """Negation and logical not."""
        assert evaluate("-<1, 2, 3>").data == Vector3(-1, -2, -3)
        assert evaluate("!0").data is True
        assert evaluate('!"text"').data is False
        with pytest.raises(TypeMismatchError):
            evaluate('-"text"')

    def test_vector_components_must_be_numbers(self):
        """<"a", 0, 0> is rejected."""
        with pytest.raises(TypeMismatchError):
            evaluate('<"a", 0, 0>')

    def test_array_index(self):
        """Arrays index from zero."""
        assert evaluate("[10, 20, 30][1]").data == 20.0

    def test_array_index_out_of_bounds(self):
        """Out-of-range and fractional indices fail."""
        with pytest.raises(IndexOutOfBoundsError):
            evaluate("[1, 2][2]")
        with pytest.raises(IndexOutOfBoundsError):
            evaluate("[1, 2][0.5]")
        with pytest.raises(IndexOutOfBoundsError):
            evaluate("[1, 2][-1]")

    def test_dictionary_index_and_member(self):
        """Dictionaries are read by key or member."""
        assert evaluate('d["a"]', "let d = {a: 1, b: 2}").data == 1.0
        assert evaluate("d.b", "let d = {a: 1, b: 2}").data == 2.0

    def test_missing_key(self):
        """A missing key is a MissingKeyError."""
        with pytest.raises(MissingKeyError) as exc_info:
            evaluate('{a: 1}["b"]')
        assert exc_info.value.key == "b"

    def test_string_index(self):
        """Indexing a string yields a one-character string."""
        assert evaluate('"abc"[1]').data == "b"

    def test_vector_and_color_members(self):
        """.x .y .z on vectors and .r .g .b on colors."""
        assert evaluate("<1, 2, 3>.y").data == 2.0
        assert evaluate("rgb(1, 2, 3).b").data == 3.0
        with pytest.raises(TypeMismatchError):
            evaluate("<1, 2, 3>.w")

    def test_dictionary_shorthand(self):
        """{ name } takes the value of the variable `name`."""
        result = evaluate("{ radius }", "let radius = 4")
        assert result.data["radius"].data == 4.0


# --- Functions ---

class TestFunctions:
    """Test user-defined functions and calls."""

    def test_add1(self):
        """add1(4) evaluates to 5."""
        assert evaluate("add1(4)", "fn add1(x) { return x + 1 }").data == 5.0

    def test_add1_arity(self):
        """Calling add1 with 0 or 2 arguments fails."""
        prelude = "fn add1(x) { return x + 1 }"
        with pytest.raises(ArityError):
            evaluate("add1()", prelude)
        with pytest.raises(ArityError) as exc_info:
            evaluate("add1(1, 2)", prelude)
        assert exc_info.value.expected == "1"
        assert exc_info.value.found == 2

    def test_function_without_return_yields_unit(self):
        """Falling off the end returns unit."""
        result = evaluate("f()", "fn f() { let a = 1 }")
        assert result.kind == ValueKind.UNIT

    def test_bare_return(self):
        """return with no value yields unit."""
        assert evaluate("f()", "fn f() { return }").kind == ValueKind.UNIT

    def test_recursion(self):
        """Functions can call themselves."""
        prelude = "fn fact(n) { if n <= 1 { return 1 } return n * fact(n - 1) }"
        assert evaluate("fact(5)", prelude).data == 120.0

    def test_return_from_inside_loop(self):
        """return leaves loops and ifs inside the function."""
        prelude = """
        fn first_square_over(limit) {
            for i in 0 to 100 {
                if i * i > limit { return i }
            }
            return -1
        }
        """
        assert evaluate("first_square_over(50)", prelude).data == 8.0
        assert evaluate("first_square_over(100000)", prelude).data == -1.0

    def test_closure_sees_later_assignments(self):
        """Captured environments are shared, not copied."""
        env, _ = run("""
        let count = 0
        fn bump() { count = count + 1 return count }
        bump()
        bump()
        let result = bump()
        """)
        assert env.get("result").data == 3.0
        assert env.get("count").data == 3.0

    def test_closure_outlives_defining_scope(self):
        """A returned function keeps its defining scope alive."""
        prelude = """
        fn make_adder(k) {
            fn add(x) { return x + k }
            return add
        }
        let add5 = make_adder(5)
        """
        assert evaluate("add5(10)", prelude).data == 15.0

    def test_function_uses_definition_scope_not_caller(self):
        """Free variables resolve where the function was defined."""
        prelude = """
        let k = 1
        fn get_k() { return k }
        fn caller() { let k = 99 return get_k() }
        """
        assert evaluate("caller()", prelude).data == 1.0

    def test_unknown_function(self):
        """Calling an unbound name."""
        with pytest.raises(UnknownFunctionError) as exc_info:
            evaluate("nope(1)")
        assert exc_info.value.code == "E403"
        assert exc_info.value.name == "nope"

    def test_calling_a_non_function(self):
        """Calling a number is a type mismatch."""
        with pytest.raises(TypeMismatchError):
            evaluate("x(1)", "let x = 3")

    def test_builtin_error_gets_call_position(self):
        """Errors raised inside builtins point at the call."""
        with pytest.raises(TypeMismatchError) as exc_info:
            run('let ok = 1\nlet bad = sqrt("four")')
        assert exc_info.value.span.start.line == 2

    def test_arguments_evaluated_left_to_right(self):
        """Side effects in arguments happen in order."""
        env, _ = run("""
        let log = []
        fn note(x) { push(log, x) return x }
        let r = add(note(1), note(2))
        """)
        assert [v.data for v in env.get("log").data] == [1.0, 2.0]


# --- Control Flow ---

class TestControlFlow:
    """Test if and for."""

    def test_if_else_if_else(self):
        """The first truthy branch runs."""
        source = """
        let x = {value}
        let r = 0
        if x < 0 {{ r = -1 }} else if x == 0 {{ r = 0 }} else {{ r = 1 }}
        """
        for value, expected in [(-5, -1.0), (0, 0.0), (3, 1.0)]:
            env, _ = run(source.format(value=value))
            assert env.get("r").data == expected

    def test_nan_condition_is_false(self):
        """NaN is falsy."""
        env, _ = run("let r = 0 if sqrt(-1) { r = 1 }")
        assert env.get("r").data == 0.0

    def test_for_upper_bound_exclusive(self):
        """for i in 0 to 3 runs three times."""
        env, _ = run("let total = 0 for i in 0 to 3 { total = total + i }")
        assert env.get("total").data == 3.0

    def test_for_bounds_truncate_toward_zero(self):
        """Fractional bounds are truncated toward zero."""
        env, _ = run("let n = 0 for i in 0 to 2.7 { n = n + 1 }")
        assert env.get("n").data == 2.0
        env, _ = run("let seen = [] for i in -1.5 to 1 { push(seen, i) }")
        assert [v.data for v in env.get("seen").data] == [-1.0, 0.0]

    def test_empty_range(self):
        """lower >= upper runs zero times."""
        env, _ = run("let n = 0 for i in 5 to 2 { n = n + 1 }")
        assert env.get("n").data == 0.0

    def test_bounds_evaluated_once(self):
        """Changing the bound variable inside the loop has no effect."""
        env, _ = run("let hi = 3 let n = 0 for i in 0 to hi { hi = 10 n = n + 1 }")
        assert env.get("n").data == 3.0

    def test_for_bound_must_be_number(self):
        """A string bound is a type mismatch."""
        with pytest.raises(TypeMismatchError):
            run('for i in 0 to "3" { }')

    def test_loop_iteration_limit(self):
        """The configured iteration limit stops runaway loops."""
        with pytest.raises(LimitExceededError) as exc_info:
            run("for i in 0 to 100 { }", SdlConfig(max_loop_iterations=10))
        assert exc_info.value.code == "E408"

    def test_call_depth_limit(self):
        """Unbounded recursion hits the call depth limit."""
        with pytest.raises(LimitExceededError):
            run("fn f(n) { return f(n + 1) } f(0)", SdlConfig(max_call_depth=20))

    def test_unknown_node_type(self):
        """A node type the interpreter does not handle is an internal error."""
        ctx = create_context()
        with pytest.raises(RuntimeError, match="Unknown expression type"):
            Interpreter()._evaluate(object(), ctx)
        with pytest.raises(RuntimeError, match="Unknown statement type"):
            Interpreter()._execute_statement(object(), ctx)

    def test_range_length_limit(self):
        """range() is held to the iteration limit before building its array."""
        config = SdlConfig(max_loop_iterations=100)
        with pytest.raises(LimitExceededError) as exc_info:
            run("let a = range(0, 100000000)", config)
        assert exc_info.value.code == "E408"
        assert exc_info.value.span.start.line == 1
        env, _ = run("let a = range(0, 100)", config)
        assert len(env.get("a").data) == 100

    def test_top_level_return_ends_program(self):
        """Statements after a top-level return are not executed."""
        _, acc = run("""
        sphere { position: <0, 0, 0>, radius: 1 }
        return;
        sphere { position: <1, 0, 0>, radius: 1 }
        """)
        assert len(acc) == 1


# --- Object Declarations ---

class TestObjectDeclarations:
    """Test how declarations fill the accumulator."""

    def test_for_loop_produces_three_spheres(self):
        """Each iteration declares one sphere, in order."""
        _, acc = run("for i in 0 to 3 { sphere { position: <i, 0, 0>, radius: 1 } }")
        spheres = acc.of_kind("sphere")
        assert len(spheres) == 3
        assert [s.fields["position"].data for s in spheres] == [
            Vector3(0, 0, 0), Vector3(1, 0, 0), Vector3(2, 0, 0),
        ]

    def test_field_order_preserved(self):
        """Fields keep their source order."""
        _, acc = run("sphere { radius: 1, position: <0, 0, 0>, material: {} }")
        assert list(acc.objects[0].fields) == ["radius", "position", "material"]

    def test_body_sees_enclosing_scope(self):
        """Field expressions read surrounding variables."""
        _, acc = run("let r = 2 sphere { position: <0, 0, 0>, radius: r * 2 }")
        assert acc.objects[0].fields["radius"].data == 4.0

    def test_singletons_use_slots(self):
        """camera, scene and skybox are not in the object list."""
        _, acc = run("""
        camera { fov: 70 }
        scene { max_ray_depth: 2 }
        skybox { type: "normal" }
        plane { origin: <0, 0, 0> }
        """)
        assert len(acc) == 1
        assert acc.camera.fields["fov"].data == 70.0
        assert acc.scene is not None
        assert acc.skybox is not None

    def test_duplicate_camera(self):
        """A second camera is an error pointing at both declarations."""
        with pytest.raises(DuplicateSingletonError) as exc_info:
            run("camera { fov: 60 }\ncamera { fov: 90 }")
        err = exc_info.value
        assert err.code == "E407"
        assert err.kind == "camera"
        assert err.span.start.line == 2
        assert err.diagnostic.related[0].span.start.line == 1

    def test_kind_aliases(self):
        """box and pointlight are stored under canonical names."""
        _, acc = run("""
        box { position: <0, 0, 0>, size: <1, 1, 1> }
        pointlight { position: <0, 5, 0> }
        """)
        assert [obj.kind for obj in acc] == ["aabb", "point_light"]

    def test_accumulator_frozen_after_evaluation(self):
        """Nothing can be declared once evaluation has finished."""
        _, acc = run("sphere { position: <0, 0, 0>, radius: 1 }")
        assert acc.frozen
        with pytest.raises(EvaluationError) as exc_info:
            acc.declare("sphere", {})
        assert exc_info.value.code == "E410"

    def test_declared_fields_are_read_only(self):
        """The field mapping of a declaration cannot be modified."""
        _, acc = run("sphere { position: <0, 0, 0>, radius: 1 }")
        with pytest.raises(TypeError):
            acc.objects[0].fields["radius"] = number_val(5)

    def test_determinism(self):
        """Evaluating the same program twice gives the same scene."""
        source = """
        camera { vw: 320, vh: 240 }
        fn ring(n, r) {
            for i in 0 to n {
                let a = TAU * i / n
                sphere { position: <cos(a) * r, 0, sin(a) * r>, radius: 0.2 }
            }
        }
        ring(8, 3)
        """
        first = evaluate_source(source).to_python()
        second = evaluate_source(source).to_python()
        assert first == second
        assert len(first["objects"]) == 8

    def test_array_sharing(self):
        """let b = a aliases the array; push through b is seen through a."""
        assert evaluate("len(a) == 4", "let a = [1, 2, 3]; let b = a; push(b, 4);").data is True

    def test_literal_creates_fresh_container(self):
        """Each evaluation of an array literal is a new array."""
        env, _ = run("""
        let all = []
        for i in 0 to 2 { let a = [] push(a, i) push(all, a) }
        """)
        assert [len(v.data) for v in env.get("all").data] == [1, 1]


class TestAccumulator:
    """Test the accumulator directly."""

    def test_manual_declaration(self):
        """declare() stores a read-only copy of the fields."""
        acc = SceneAccumulator()
        fields = {"radius": number_val(1)}
        declared = acc.declare("sphere", fields)
        fields["radius"] = number_val(9)
        assert declared.fields["radius"].data == 1.0
        assert acc.to_python()["objects"][0] == {"kind": "sphere", "fields": {"radius": 1.0}}
