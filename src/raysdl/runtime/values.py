"""
Runtime values for the SDL interpreter.

Every value is a `Value(data, kind)` pair where `kind` is one member of the
closed `ValueKind` enum. Numbers, strings, booleans, vectors and colors are
immutable; arrays and dictionaries hold a Python list/dict that is shared by
every handle, so mutation through one handle is visible through all.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ValueKind(Enum):
    """The kinds of runtime value."""
    NUMBER = "number"
    STRING = "string"
    BOOL = "bool"
    VECTOR = "vector"
    COLOR = "color"
    ARRAY = "array"
    DICTIONARY = "dictionary"
    FUNCTION = "function"
    UNIT = "unit"


@dataclass(frozen=True)
class Vector3:
    """A 3D vector of floats."""
    x: float
    y: float
    z: float

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> "Vector3":
        return Vector3(-self.x, -self.y, -self.z)

    def map(self, fn) -> "Vector3":
        return Vector3(fn(self.x), fn(self.y), fn(self.z))

    def zip_with(self, other: "Vector3", fn) -> "Vector3":
        return Vector3(fn(self.x, other.x), fn(self.y, other.y), fn(self.z, other.z))

    def dot(self, other: "Vector3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: "Vector3") -> "Vector3":
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def magnitude(self) -> float:
        return math.sqrt(self.dot(self))

    def normalized(self) -> "Vector3":
        """Unit vector in the same direction; the zero vector stays zero."""
        length = self.magnitude()
        if length == 0.0:
            return self
        return Vector3(self.x / length, self.y / length, self.z / length)

    def as_tuple(self) -> tuple:
        return (self.x, self.y, self.z)


def _clamp_channel(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(255.0, max(0.0, float(value)))


@dataclass(frozen=True)
class Color:
    """An RGB color with each channel clamped to [0, 255]."""
    r: float
    g: float
    b: float

    def __post_init__(self):
        object.__setattr__(self, "r", _clamp_channel(self.r))
        object.__setattr__(self, "g", _clamp_channel(self.g))
        object.__setattr__(self, "b", _clamp_channel(self.b))

    @classmethod
    def from_vector(cls, v: Vector3) -> "Color":
        return cls(v.x, v.y, v.z)

    def to_vector(self) -> Vector3:
        return Vector3(self.r, self.g, self.b)

    def as_tuple(self) -> tuple:
        return (self.r, self.g, self.b)

    def as_bytes(self) -> tuple:
        """Channels rounded to integers in [0, 255]."""
        return tuple(int(round(c)) for c in self.as_tuple())

    def normalized(self) -> tuple:
        """Channels scaled to [0, 1]."""
        return tuple(c / 255.0 for c in self.as_tuple())


WHITE = Color(255.0, 255.0, 255.0)
BLACK = Color(0.0, 0.0, 0.0)


@dataclass(eq=False)
class UserFunction:
    """
    A function defined in SDL source.

    `closure` is the Environment that was current when the `fn` statement
    ran. It is held by reference, so later assignments to captured
    variables are visible on the next call.
    """
    name: str
    parameters: List[str]
    body: Any               # ast.Block
    closure: Any            # runtime.context.Environment
    span: Any = None

    def __repr__(self) -> str:
        return f"<fn {self.name}({', '.join(self.parameters)})>"


@dataclass(frozen=True)
class Value:
    """
    A runtime value tagged with its kind.

    The `data` field holds the Python payload:
        NUMBER      float
        STRING      str
        BOOL        bool
        VECTOR      Vector3
        COLOR       Color
        ARRAY       list of Value (shared)
        DICTIONARY  dict of str -> Value (shared, insertion ordered)
        FUNCTION    BuiltinFunction or UserFunction
        UNIT        None
    """
    data: Any
    kind: ValueKind

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.kind.name})"

    def is_truthy(self) -> bool:
        """Check if this value is truthy in a condition."""
        if self.kind == ValueKind.BOOL:
            return self.data
        if self.kind == ValueKind.NUMBER:
            return self.data != 0.0 and not math.isnan(self.data)
        if self.kind == ValueKind.UNIT:
            return False
        # Everything else is truthy, including empty arrays and strings
        return True

    @property
    def kind_name(self) -> str:
        return self.kind.value


# Convenience constructors

def number_val(x: float) -> Value:
    """Create a number value."""
    return Value(float(x), ValueKind.NUMBER)


def string_val(s: str) -> Value:
    """Create a string value."""
    return Value(str(s), ValueKind.STRING)


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return Value(bool(b), ValueKind.BOOL)


def vector_val(x, y: Optional[float] = None, z: Optional[float] = None) -> Value:
    """Create a vector value from a Vector3 or three numbers."""
    if isinstance(x, Vector3):
        return Value(x, ValueKind.VECTOR)
    return Value(Vector3(float(x), float(y), float(z)), ValueKind.VECTOR)


def color_val(r, g: Optional[float] = None, b: Optional[float] = None) -> Value:
    """Create a color value from a Color or three channel values."""
    if isinstance(r, Color):
        return Value(r, ValueKind.COLOR)
    return Value(Color(r, g, b), ValueKind.COLOR)


def array_val(items: List[Value]) -> Value:
    """Wrap a list of Values. The list itself is shared, not copied."""
    return Value(items, ValueKind.ARRAY)


def dict_val(items: Dict[str, Value]) -> Value:
    """Wrap a dict of Values. The dict itself is shared, not copied."""
    return Value(items, ValueKind.DICTIONARY)


def function_val(fn: Any) -> Value:
    """Create a function value from a BuiltinFunction or UserFunction."""
    return Value(fn, ValueKind.FUNCTION)


UNIT = Value(None, ValueKind.UNIT)


def unit_val() -> Value:
    """The unit value (no result)."""
    return UNIT


# Conversion utilities

def _format_number(x: float) -> str:
    if x.is_integer() and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


def to_display(value: Value, _seen: Optional[set] = None) -> str:
    """Render a value the way `print` and `str` show it."""
    return _display(value, top=True, seen=_seen if _seen is not None else set())


def _display(value: Value, top: bool, seen: set) -> str:
    kind = value.kind
    if kind == ValueKind.NUMBER:
        return _format_number(value.data)
    if kind == ValueKind.STRING:
        return value.data if top else f'"{value.data}"'
    if kind == ValueKind.BOOL:
        return "true" if value.data else "false"
    if kind == ValueKind.VECTOR:
        v = value.data
        return f"<{_format_number(v.x)}, {_format_number(v.y)}, {_format_number(v.z)}>"
    if kind == ValueKind.COLOR:
        c = value.data
        return f"rgb({_format_number(c.r)}, {_format_number(c.g)}, {_format_number(c.b)})"
    if kind == ValueKind.FUNCTION:
        return f"<fn {value.data.name}>"
    if kind == ValueKind.UNIT:
        return "()"

    # Containers may be reachable from themselves through push/set
    if id(value.data) in seen:
        return "[...]" if kind == ValueKind.ARRAY else "{...}"
    seen.add(id(value.data))
    try:
        if kind == ValueKind.ARRAY:
            return "[" + ", ".join(_display(v, False, seen) for v in value.data) + "]"
        items = (f"{k}: {_display(v, False, seen)}" for k, v in value.data.items())
        return "{" + ", ".join(items) + "}"
    finally:
        seen.discard(id(value.data))


def values_equal(a: Value, b: Value, _seen: Optional[set] = None) -> bool:
    """
    Structural equality as used by `==` and `!=`.

    Arrays and dictionaries compare element by element. A pair of containers
    already being compared further up counts as equal, so cyclic structures
    built with push/set terminate.
    """
    if a.kind != b.kind:
        return False
    if a.kind == ValueKind.FUNCTION:
        return a.data is b.data
    if a.kind not in (ValueKind.ARRAY, ValueKind.DICTIONARY):
        return a.data == b.data
    if a.data is b.data:
        return True
    if len(a.data) != len(b.data):
        return False

    seen = _seen if _seen is not None else set()
    pair = (id(a.data), id(b.data))
    if pair in seen:
        return True
    seen.add(pair)
    try:
        if a.kind == ValueKind.ARRAY:
            return all(values_equal(x, y, seen) for x, y in zip(a.data, b.data))
        if a.data.keys() != b.data.keys():
            return False
        return all(values_equal(v, b.data[k], seen) for k, v in a.data.items())
    finally:
        seen.discard(pair)


def to_python(value: Value) -> Any:
    """Convert a value into plain Python data (floats, tuples, lists, dicts)."""
    kind = value.kind
    if kind in (ValueKind.NUMBER, ValueKind.STRING, ValueKind.BOOL):
        return value.data
    if kind in (ValueKind.VECTOR, ValueKind.COLOR):
        return value.data.as_tuple()
    if kind == ValueKind.ARRAY:
        return [to_python(v) for v in value.data]
    if kind == ValueKind.DICTIONARY:
        return {k: to_python(v) for k, v in value.data.items()}
    if kind == ValueKind.FUNCTION:
        return repr(value.data)
    return None


def from_python(data: Any) -> Value:
    """Wrap plain Python data (as found in configuration files) as a Value."""
    if isinstance(data, Value):
        return data
    if data is None:
        return UNIT
    if isinstance(data, bool):
        return bool_val(data)
    if isinstance(data, (int, float)):
        return number_val(data)
    if isinstance(data, str):
        return string_val(data)
    if isinstance(data, Vector3):
        return vector_val(data)
    if isinstance(data, Color):
        return color_val(data)
    if isinstance(data, (list, tuple)):
        return array_val([from_python(item) for item in data])
    if isinstance(data, dict):
        return dict_val({str(k): from_python(v) for k, v in data.items()})
    raise ValueError(f"cannot convert {type(data).__name__} to an SDL value")
