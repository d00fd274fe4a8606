"""
Built-in function registry for the SDL interpreter.

Every builtin receives already-evaluated argument Values and returns a
Value. All of them are pure except `print` (writes to stdout), `push` and
`set` (mutate a shared array or dictionary in place) and `random`.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .values import (
    Value, ValueKind, Vector3, Color, UNIT,
    number_val, string_val, bool_val, vector_val, color_val,
    array_val, dict_val, to_display,
)
from .noise import PerlinNoise
from ..errors import (
    error_arity, error_type_mismatch, error_index_out_of_bounds,
    error_division_by_zero, error_limit_exceeded,
)


@dataclass(frozen=True)
class Signature:
    """Parameter names of a builtin; trailing `optional` ones may be omitted."""
    params: Tuple[str, ...]
    optional: int = 0
    variadic: bool = False

    @property
    def min_args(self) -> int:
        return len(self.params) - self.optional

    @property
    def max_args(self) -> Optional[int]:
        return None if self.variadic else len(self.params)

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def describe(self) -> str:
        """Human-readable arity, e.g. '2', '2 or 3', 'at least 1'."""
        if self.variadic:
            return f"at least {self.min_args}"
        if self.optional == 0:
            return str(self.min_args)
        if self.optional == 1:
            return f"{self.min_args} or {self.max_args}"
        return f"{self.min_args} to {self.max_args}"


def _sig(*params: str, optional: int = 0, variadic: bool = False) -> Signature:
    return Signature(tuple(params), optional, variadic)


@dataclass(eq=False)
class BuiltinFunction:
    """
    A built-in function with its implementation and signature.
    """
    name: str
    signature: Signature
    implementation: Callable[..., Value]
    doc: str = ""

    def __call__(self, args: List[Value]) -> Value:
        if not self.signature.accepts(len(args)):
            raise error_arity(self.name, self.signature.describe(), len(args))
        return self.implementation(*args)

    def __repr__(self) -> str:
        return f"<builtin {self.name}({', '.join(self.signature.params)})>"


# --- Argument checking helpers ---

def _expect(value: Value, kind: ValueKind, fn: str, position: int):
    if value.kind != kind:
        raise error_type_mismatch(
            kind.value, value.kind_name, context=f"argument {position} of '{fn}'"
        )
    return value.data


def _number(value: Value, fn: str, position: int = 1) -> float:
    return _expect(value, ValueKind.NUMBER, fn, position)


def _finite(value: Value, fn: str, position: int = 1) -> float:
    x = _number(value, fn, position)
    if not math.isfinite(x):
        raise error_type_mismatch(
            "finite number", repr(x), context=f"argument {position} of '{fn}'"
        )
    return x


def _vector(value: Value, fn: str, position: int = 1) -> Vector3:
    return _expect(value, ValueKind.VECTOR, fn, position)


def _array(value: Value, fn: str, position: int = 1) -> list:
    return _expect(value, ValueKind.ARRAY, fn, position)


def _dictionary(value: Value, fn: str, position: int = 1) -> dict:
    return _expect(value, ValueKind.DICTIONARY, fn, position)


def _color(value: Value, fn: str, position: int = 1) -> Color:
    return _expect(value, ValueKind.COLOR, fn, position)


def _index(value: Value, length: int, fn: str, position: int = 2) -> int:
    """A whole-number index within [0, length)."""
    index = _number(value, fn, position)
    if not float(index).is_integer() or not 0 <= index < length:
        raise error_index_out_of_bounds(to_display(value), length)
    return int(index)


# --- Arithmetic shared by operators and their named builtins ---

def _div(a: float, b: float, op: str) -> float:
    if b == 0.0:
        raise error_division_by_zero(op)
    return a / b


def _round_half_away(x: float) -> float:
    if math.isinf(x) or math.isnan(x):
        return x
    return math.copysign(math.floor(abs(x) + 0.5), x)


def _mod(a: float, b: float, op: str) -> float:
    if b == 0.0:
        raise error_division_by_zero(op)
    return math.fmod(a, b)


NUMBER_OPS: Dict[str, Callable[[float, float], float]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": lambda a, b: _div(a, b, "/"),
    "%": lambda a, b: _mod(a, b, "%"),
}


def arithmetic(op: str, left: Value, right: Value) -> Optional[Value]:
    """
    Apply an arithmetic operator, or return None if the kinds do not support it.

    Supported combinations:
        number  op number
        vector  op vector       component-wise
        vector  op number       broadcast (number op vector for + and *)
        color   op color        + and -, * multiplies normalised channels
        color   op number       * and /
        vector  * color         color channels used as components
        string  + string        concatenation
    """
    lk, rk = left.kind, right.kind
    fn = NUMBER_OPS[op]

    if lk == ValueKind.NUMBER and rk == ValueKind.NUMBER:
        return number_val(fn(left.data, right.data))

    if lk == ValueKind.VECTOR and rk == ValueKind.VECTOR:
        return vector_val(left.data.zip_with(right.data, fn))

    if lk == ValueKind.VECTOR and rk == ValueKind.NUMBER:
        return vector_val(left.data.map(lambda c: fn(c, right.data)))

    if lk == ValueKind.NUMBER and rk == ValueKind.VECTOR and op in ("+", "*"):
        return vector_val(right.data.map(lambda c: fn(left.data, c)))

    if lk == ValueKind.COLOR and rk == ValueKind.COLOR:
        if op in ("+", "-"):
            return color_val(Color.from_vector(left.data.to_vector().zip_with(right.data.to_vector(), fn)))
        if op == "*":
            return color_val(Color.from_vector(
                left.data.to_vector().zip_with(right.data.to_vector(), lambda a, b: a * b / 255.0)
            ))
        return None

    if lk == ValueKind.COLOR and rk == ValueKind.NUMBER and op in ("*", "/"):
        return color_val(Color.from_vector(left.data.to_vector().map(lambda c: fn(c, right.data))))

    if lk == ValueKind.NUMBER and rk == ValueKind.COLOR and op == "*":
        return color_val(Color.from_vector(right.data.to_vector().map(lambda c: left.data * c)))

    if {lk, rk} == {ValueKind.VECTOR, ValueKind.COLOR} and op in ("+", "-", "*", "/"):
        a = left.data if lk == ValueKind.VECTOR else left.data.to_vector()
        b = right.data if rk == ValueKind.VECTOR else right.data.to_vector()
        return vector_val(a.zip_with(b, fn))

    if lk == ValueKind.STRING and rk == ValueKind.STRING and op == "+":
        return string_val(left.data + right.data)

    return None


# --- Color helpers ---

def hsv_to_rgb(h: float, s: float, v: float) -> Color:
    """Convert hue in degrees and saturation/value in [0, 1] to a 0-255 color."""
    h = h % 360.0
    c = v * s
    x = c * (1.0 - abs((h / 60.0) % 2.0 - 1.0))
    m = v - c

    if h < 60.0:
        r, g, b = c, x, 0.0
    elif h < 120.0:
        r, g, b = x, c, 0.0
    elif h < 180.0:
        r, g, b = 0.0, c, x
    elif h < 240.0:
        r, g, b = 0.0, x, c
    elif h < 300.0:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x

    return Color((r + m) * 255.0, (g + m) * 255.0, (b + m) * 255.0)


def texture_val(texture_type: str, **fields: Value) -> Value:
    """A texture descriptor: a dictionary tagged with its `type`."""
    items = {"type": string_val(texture_type)}
    items.update(fields)
    return dict_val(items)


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Functions are registered by name (aliases register the same function
    under several names). `random` and `perlin` draw from generators owned
    by the registry, so two registries with the same seeds behave the same.
    `max_range_length` caps the size of the array `range` may build.
    """

    def __init__(self, random_seed: Optional[int] = None, noise_seed: int = 0,
                 max_range_length: Optional[int] = None):
        self.max_range_length = max_range_length
        self._functions: Dict[str, BuiltinFunction] = {}
        self.rng = np.random.default_rng(random_seed)
        self.perlin = PerlinNoise(noise_seed)
        self._register_all()

    @property
    def functions(self) -> Dict[str, BuiltinFunction]:
        return dict(self._functions)

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def register(self, func: BuiltinFunction, *aliases: str) -> None:
        """Register a function under its name and any aliases."""
        self._functions[func.name] = func
        for alias in aliases:
            self._functions[alias] = func

    def _register_all(self) -> None:
        self._register_math_functions()
        self._register_operator_functions()
        self._register_random_functions()
        self._register_vector_functions()
        self._register_color_functions()
        self._register_texture_functions()
        self._register_collection_functions()
        self._register_utility_functions()

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register single-number math functions and friends."""

        def unary(name: str, fn: Callable[[float], float]) -> BuiltinFunction:
            def _impl(x: Value) -> Value:
                try:
                    return number_val(fn(_number(x, name)))
                except ValueError:
                    return number_val(math.nan)
            return BuiltinFunction(name, _sig("x"), _impl)

        for name, fn in [
            ("sin", math.sin),
            ("cos", math.cos),
            ("tan", math.tan),
            ("asin", math.asin),
            ("acos", math.acos),
            ("atan", math.atan),
            ("sqrt", math.sqrt),
            ("abs", abs),
            ("floor", np.floor),
            ("ceil", np.ceil),
            ("round", _round_half_away),
        ]:
            self.register(unary(name, fn))

        self.register(unary("rad", math.radians), "radians")
        self.register(unary("deg", math.degrees), "degrees")

        def _atan2(y: Value, x: Value) -> Value:
            return number_val(math.atan2(_number(y, "atan2", 1), _number(x, "atan2", 2)))

        def _pow(base: Value, exp: Value) -> Value:
            b, e = _number(base, "pow", 1), _number(exp, "pow", 2)
            try:
                return number_val(math.pow(b, e))
            except (ValueError, OverflowError):
                return number_val(math.nan)

        def _min(*args: Value) -> Value:
            return number_val(min(_number(a, "min", i + 1) for i, a in enumerate(args)))

        def _max(*args: Value) -> Value:
            return number_val(max(_number(a, "max", i + 1) for i, a in enumerate(args)))

        def _clamp(x: Value, lo: Value, hi: Value) -> Value:
            value = _number(x, "clamp", 1)
            return number_val(min(_number(hi, "clamp", 3), max(_number(lo, "clamp", 2), value)))

        def _lerp(a: Value, b: Value, t: Value) -> Value:
            """Linear interpolation between two numbers or two vectors."""
            amount = _number(t, "lerp", 3)
            if a.kind == ValueKind.VECTOR:
                start, end = _vector(a, "lerp", 1), _vector(b, "lerp", 2)
                return vector_val(start.zip_with(end, lambda p, q: p + (q - p) * amount))
            start, end = _number(a, "lerp", 1), _number(b, "lerp", 2)
            return number_val(start + (end - start) * amount)

        self.register(BuiltinFunction("atan2", _sig("y", "x"), _atan2))
        self.register(BuiltinFunction("pow", _sig("base", "exponent"), _pow))
        self.register(BuiltinFunction("min", _sig("value", variadic=True), _min))
        self.register(BuiltinFunction("max", _sig("value", variadic=True), _max))
        self.register(BuiltinFunction("clamp", _sig("x", "lo", "hi"), _clamp))
        self.register(BuiltinFunction("lerp", _sig("a", "b", "t"), _lerp, _lerp.__doc__))

    def _register_operator_functions(self) -> None:
        """Named forms of the arithmetic operators: add, sub, mul, div, mod."""

        def operator(name: str, op: str) -> BuiltinFunction:
            def _impl(a: Value, b: Value) -> Value:
                result = arithmetic(op, a, b)
                if result is None:
                    raise error_type_mismatch(
                        "operands supported by " + repr(op),
                        f"{a.kind_name} and {b.kind_name}",
                        context=f"'{name}'",
                    )
                return result
            return BuiltinFunction(name, _sig("a", "b"), _impl)

        for name, op in [("add", "+"), ("sub", "-"), ("mul", "*"), ("div", "/"), ("mod", "%")]:
            self.register(operator(name, op))

    # --- Random and Noise ---

    def _register_random_functions(self) -> None:

        def _random(lo: Value, hi: Value) -> Value:
            """Uniform random number with both bounds included."""
            a, b = _finite(lo, "random", 1), _finite(hi, "random", 2)
            a, b = min(a, b), max(a, b)
            if a == b:
                return number_val(a)
            # Interpolate so that b - a never has to be representable
            u = self.rng.uniform(0.0, np.nextafter(1.0, np.inf))
            return number_val(min(b, max(a, a * (1.0 - u) + b * u)))

        def _perlin(x: Value, y: Value, z: Optional[Value] = None) -> Value:
            """Gradient noise in 2 or 3 dimensions, roughly in [-1, 1]."""
            px, py = _number(x, "perlin", 1), _number(y, "perlin", 2)
            pz = 0.0 if z is None else _number(z, "perlin", 3)
            return number_val(self.perlin.noise3(px, py, pz))

        self.register(BuiltinFunction("random", _sig("lo", "hi"), _random, _random.__doc__))
        self.register(BuiltinFunction("perlin", _sig("x", "y", "z", optional=1), _perlin, _perlin.__doc__))

    # --- Vector Functions ---

    def _register_vector_functions(self) -> None:

        def _vector_ctor(x: Value, y: Value, z: Value) -> Value:
            return vector_val(_number(x, "vector", 1), _number(y, "vector", 2), _number(z, "vector", 3))

        def _normalize(v: Value) -> Value:
            return vector_val(_vector(v, "normalize").normalized())

        def _magnitude(v: Value) -> Value:
            return number_val(_vector(v, "magnitude").magnitude())

        def _dot(a: Value, b: Value) -> Value:
            return number_val(_vector(a, "dot", 1).dot(_vector(b, "dot", 2)))

        def _cross(a: Value, b: Value) -> Value:
            return vector_val(_vector(a, "cross", 1).cross(_vector(b, "cross", 2)))

        def _angle(a: Value, b: Value) -> Value:
            """Angle between two vectors in radians."""
            u, v = _vector(a, "angle", 1), _vector(b, "angle", 2)
            denom = u.magnitude() * v.magnitude()
            if denom == 0.0:
                return number_val(0.0)
            return number_val(math.acos(max(-1.0, min(1.0, u.dot(v) / denom))))

        self.register(BuiltinFunction("vector", _sig("x", "y", "z"), _vector_ctor), "vec")
        self.register(BuiltinFunction("normalize", _sig("v"), _normalize))
        self.register(BuiltinFunction("magnitude", _sig("v"), _magnitude), "length")
        self.register(BuiltinFunction("dot", _sig("a", "b"), _dot))
        self.register(BuiltinFunction("cross", _sig("a", "b"), _cross))
        self.register(BuiltinFunction("angle", _sig("a", "b"), _angle, _angle.__doc__))

    # --- Color Functions ---

    def _register_color_functions(self) -> None:

        def _rgb(r: Value, g: Optional[Value] = None, b: Optional[Value] = None) -> Value:
            """Color from three 0-255 channels, or from one vector."""
            if g is None:
                if r.kind == ValueKind.COLOR:
                    return r
                return color_val(Color.from_vector(_vector(r, "color")))
            if b is None:
                raise error_arity("color", "1 or 3", 2)
            return color_val(_number(r, "color", 1), _number(g, "color", 2), _number(b, "color", 3))

        def _hsv(h: Value, s: Value, v: Value) -> Value:
            """Color from hue in degrees and saturation/value in [0, 1]."""
            return color_val(hsv_to_rgb(_number(h, "hsv", 1), _number(s, "hsv", 2), _number(v, "hsv", 3)))

        self.register(BuiltinFunction("color", _sig("r", "g", "b", optional=2), _rgb, _rgb.__doc__), "rgb")
        self.register(BuiltinFunction("hsv", _sig("h", "s", "v"), _hsv, _hsv.__doc__))

    # --- Texture Functions ---

    def _register_texture_functions(self) -> None:
        """Texture constructors used inside material dictionaries."""

        def _solid(c: Value) -> Value:
            _color(c, "solid")
            return texture_val("solid", color=c)

        def _checkerboard(a: Value, b: Value) -> Value:
            _color(a, "checkerboard", 1)
            _color(b, "checkerboard", 2)
            return texture_val("checkerboard", primary=a, secondary=b)

        def _image(path: Value) -> Value:
            _expect(path, ValueKind.STRING, "image", 1)
            return texture_val("image", path=path)

        self.register(BuiltinFunction("solid", _sig("color"), _solid))
        self.register(BuiltinFunction("checkerboard", _sig("a", "b"), _checkerboard))
        self.register(BuiltinFunction("image", _sig("path"), _image))

    # --- Arrays, Dictionaries, Strings ---

    def _register_collection_functions(self) -> None:

        def _len(value: Value) -> Value:
            """Length of an array, dictionary (key count) or string."""
            if value.kind in (ValueKind.ARRAY, ValueKind.DICTIONARY, ValueKind.STRING):
                return number_val(len(value.data))
            raise error_type_mismatch(
                "array, dictionary or string", value.kind_name, context="argument 1 of 'len'"
            )

        def _push(target: Value, item: Value) -> Value:
            """Append to an array in place."""
            _array(target, "push").append(item)
            return UNIT

        def _set(target: Value, key: Value, item: Value) -> Value:
            """Replace an array element or dictionary entry in place."""
            if target.kind == ValueKind.ARRAY:
                items = target.data
                items[_index(key, len(items), "set")] = item
                return UNIT
            if target.kind == ValueKind.DICTIONARY:
                name = _expect(key, ValueKind.STRING, "set", 2)
                target.data[name] = item
                return UNIT
            raise error_type_mismatch(
                "array or dictionary", target.kind_name, context="argument 1 of 'set'"
            )

        def _keys(target: Value) -> Value:
            return array_val([string_val(k) for k in _dictionary(target, "keys")])

        def _range(lo: Value, hi: Optional[Value] = None) -> Value:
            """Numbers from lo up to (not including) hi, or 0..lo with one argument."""
            if hi is None:
                start, stop = 0, int(_finite(lo, "range", 1))
            else:
                start, stop = int(_finite(lo, "range", 1)), int(_finite(hi, "range", 2))
            limit = self.max_range_length
            if limit is not None and stop - start > limit:
                raise error_limit_exceeded("range length", limit)
            return array_val([number_val(i) for i in range(start, stop)])

        def _concat(a: Value, b: Value) -> Value:
            if a.kind == ValueKind.STRING and b.kind == ValueKind.STRING:
                return string_val(a.data + b.data)
            return array_val(_array(a, "concat", 1) + _array(b, "concat", 2))

        def _reverse(a: Value) -> Value:
            if a.kind == ValueKind.STRING:
                return string_val(a.data[::-1])
            return array_val(list(reversed(_array(a, "reverse"))))

        self.register(BuiltinFunction("len", _sig("value"), _len, _len.__doc__))
        self.register(BuiltinFunction("push", _sig("array", "item"), _push, _push.__doc__))
        self.register(BuiltinFunction("set", _sig("target", "key", "item"), _set, _set.__doc__))
        self.register(BuiltinFunction("keys", _sig("dictionary"), _keys))
        self.register(BuiltinFunction("range", _sig("lo", "hi", optional=1), _range, _range.__doc__))
        self.register(BuiltinFunction("concat", _sig("a", "b"), _concat))
        self.register(BuiltinFunction("reverse", _sig("a"), _reverse))

    # --- Utility Functions ---

    def _register_utility_functions(self) -> None:

        def _str(value: Value) -> Value:
            return string_val(to_display(value))

        def _print_val(*args: Value) -> Value:
            """Print values separated by spaces."""
            print(" ".join(to_display(a) for a in args))
            return UNIT

        self.register(BuiltinFunction("str", _sig("value"), _str))
        self.register(BuiltinFunction("print", _sig("value", optional=1, variadic=True), _print_val,
                                      _print_val.__doc__))


# Global default registry (unseeded)
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(name: str, args: List[Value]) -> Value:
    """
    Call a built-in function by name.

    Raises UnknownFunctionError if there is no such builtin.
    """
    from ..errors import error_unknown_function

    func = get_builtin_registry().get_function(name)
    if func is None:
        raise error_unknown_function(name)
    return func(args)
