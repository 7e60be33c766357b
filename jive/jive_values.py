"""
Defines the value model for the JIVE language runtime.

A script value is one of: the VOID marker (no type), the NULL marker (no
value), a boxed `Primitive` carrying its static primitive type, or an opaque
reference to a host (Python) object. Script arrays are represented by `Array`.
"""

import math
import struct
from typing import Any, List, Optional


class PrimitiveType:
    """A primitive type tag. Instances are singletons defined below."""
    __slots__ = ('name', 'box', 'rank')

    def __init__(self, name: str, box: Optional[type], rank: int):
        self.name = name
        self.box = box
        # Position on the numeric widening ladder; -1 for non-numeric types.
        self.rank = rank

    @property
    def is_numeric(self) -> bool:
        return self.rank >= 0

    @property
    def is_integral(self) -> bool:
        return self in INTEGRAL_TYPES

    def __repr__(self) -> str:
        return self.name

    def __reduce__(self):
        return (primitive_type, (self.name,))


BOOLEAN = PrimitiveType('boolean', bool, -1)
BYTE = PrimitiveType('byte', int, 0)
SHORT = PrimitiveType('short', int, 1)
CHAR = PrimitiveType('char', str, 1)
INT = PrimitiveType('int', int, 2)
LONG = PrimitiveType('long', int, 3)
FLOAT = PrimitiveType('float', float, 4)
DOUBLE = PrimitiveType('double', float, 5)
VOID_TYPE = PrimitiveType('void', None, -1)

PRIMITIVE_TYPES = {t.name: t for t in (BOOLEAN, BYTE, SHORT, CHAR, INT, LONG, FLOAT, DOUBLE, VOID_TYPE)}
INTEGRAL_TYPES = (BYTE, SHORT, CHAR, INT, LONG)
FLOATING_TYPES = (FLOAT, DOUBLE)

_INT_BITS = {BYTE: 8, SHORT: 16, INT: 32, LONG: 64}


def primitive_type(name: str) -> PrimitiveType:
    return PRIMITIVE_TYPES[name]


def wrap_int(value: int, bits: int) -> int:
    """Two's complement wraparound of `value` to a signed `bits`-wide integer."""
    mask = (1 << bits) - 1
    value &= mask
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def to_float32(value: float) -> float:
    if math.isnan(value) or math.isinf(value):
        return value
    try:
        return struct.unpack('f', struct.pack('f', value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _normalize(value: Any, ptype: PrimitiveType) -> Any:
    if ptype is BOOLEAN:
        return bool(value)
    if ptype is CHAR:
        if isinstance(value, str):
            if len(value) != 1:
                raise ValueError(f"char value must be a single character, got {value!r}")
            return value
        return chr(int(value) & 0xFFFF)
    if ptype in _INT_BITS:
        if isinstance(value, str):
            value = ord(value)
        elif isinstance(value, float):
            value = _float_to_integral(value, _INT_BITS[ptype] if ptype is LONG else 32)
        return wrap_int(int(value), _INT_BITS[ptype])
    if ptype is FLOAT:
        return to_float32(float(ord(value) if isinstance(value, str) else value))
    if ptype is DOUBLE:
        return float(ord(value) if isinstance(value, str) else value)
    raise ValueError(f"Cannot box a value of type {ptype!r}")


def _float_to_integral(value: float, bits: int) -> int:
    """Java narrowing of a floating value: NaN is 0, out-of-range values saturate."""
    if math.isnan(value):
        return 0
    hi = (1 << (bits - 1)) - 1
    lo = -(1 << (bits - 1))
    if value >= hi:
        return hi
    if value <= lo:
        return lo
    return int(value)


class Primitive:
    """An immutable boxed primitive value tagged with its primitive type."""
    __slots__ = ('value', 'type')

    NULL: 'Primitive'
    VOID: 'Primitive'

    def __init__(self, value: Any, ptype: Optional[PrimitiveType] = None):
        if ptype is None:
            ptype = infer_type(value)
        object.__setattr__(self, 'type', ptype)
        object.__setattr__(self, 'value', _normalize(value, ptype))

    @classmethod
    def _marker(cls, name: str) -> 'Primitive':
        p = object.__new__(cls)
        object.__setattr__(p, 'type', None)
        object.__setattr__(p, 'value', name)
        return p

    def __setattr__(self, key, value):
        raise AttributeError("Primitive values are immutable")

    def is_numeric(self) -> bool:
        return self.type is not None and self.type.is_numeric

    def number_value(self):
        """The numeric value, with chars read as their code point."""
        if self.type is CHAR:
            return ord(self.value)
        if self.type is BOOLEAN:
            raise ValueError("boolean has no numeric value")
        return self.value

    def host_value(self) -> Any:
        if self is Primitive.NULL or self is Primitive.VOID:
            return None
        return self.value

    def __eq__(self, other):
        if not isinstance(other, Primitive):
            return NotImplemented
        if self.type is None or other.type is None:
            return self is other
        return self.type is other.type and self.value == other.value

    def __hash__(self):
        if self.type is None:
            return id(self)
        return hash((self.type.name, self.value))

    def __str__(self) -> str:
        if self is Primitive.NULL:
            return 'null'
        if self is Primitive.VOID:
            return 'void'
        return format_primitive(self)

    def __repr__(self) -> str:
        if self.type is None:
            return f"Primitive.{self.value}"
        return f"Primitive({self.value!r}, {self.type.name})"


Primitive.NULL = Primitive._marker('NULL')
Primitive.VOID = Primitive._marker('VOID')
NULL = Primitive.NULL
VOID = Primitive.VOID


def format_primitive(p: Primitive) -> str:
    if p.type is BOOLEAN:
        return 'true' if p.value else 'false'
    if p.type in FLOATING_TYPES:
        v = p.value
        if math.isnan(v):
            return 'NaN'
        if math.isinf(v):
            return 'Infinity' if v > 0 else '-Infinity'
        return repr(v)
    return str(p.value)


def infer_type(value: Any) -> PrimitiveType:
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, int):
        return INT if -(1 << 31) <= value < (1 << 31) else LONG
    if isinstance(value, float):
        return DOUBLE
    raise ValueError(f"No primitive type for host value {value!r}")


def wrap(obj: Any) -> Any:
    """Convert a host value entering the script into a script value."""
    if obj is None:
        return NULL
    if isinstance(obj, (bool, int, float)) and not isinstance(obj, Primitive):
        return Primitive(obj)
    return obj


def unwrap(value: Any) -> Any:
    """Convert a script value leaving for the host into a plain Python value."""
    if isinstance(value, Primitive):
        return value.host_value()
    return value


def unwrap_all(values) -> List[Any]:
    return [unwrap(v) for v in values]


def is_void(value: Any) -> bool:
    return value is VOID


def is_null(value: Any) -> bool:
    return value is NULL


def is_primitive(value: Any) -> bool:
    return isinstance(value, Primitive) and value.type is not None


# =================================================================
# Arrays
# =================================================================

class ArrayType:
    """The type of a script array; `component` is a PrimitiveType, host class or ArrayType."""
    __slots__ = ('component',)

    def __init__(self, component):
        self.component = component

    @property
    def dimensions(self) -> int:
        return 1 + (self.component.dimensions if isinstance(self.component, ArrayType) else 0)

    @property
    def base_type(self):
        c = self.component
        while isinstance(c, ArrayType):
            c = c.component
        return c

    def __eq__(self, other):
        return isinstance(other, ArrayType) and self.component == other.component

    def __hash__(self):
        return hash(('array', self.component))

    def __repr__(self) -> str:
        return f"{type_name(self.component)}[]"


def array_type(base, dims: int):
    t = base
    for _ in range(dims):
        t = ArrayType(t)
    return t


class Array:
    """A fixed-length typed script array.

    Elements are held as script values. Stores are cast in ASSIGNMENT mode
    against the component type.
    """

    def __init__(self, component_type, elements: List[Any]):
        self.component_type = component_type
        self.elements = list(elements)

    @classmethod
    def allocate(cls, component_type, lengths: List[int]) -> 'Array':
        """Allocate a (possibly multi-dimensional) array filled with defaults.

        Trailing dimensions with no length (`new int[2][]`) are left NULL.
        """
        if not lengths:
            raise ValueError("array allocation needs at least one dimension")
        n = lengths[0]
        if n < 0:
            raise NegativeArraySizeError(str(n))
        if len(lengths) == 1:
            fill = default_value(component_type)
            return cls(component_type, [fill] * n)
        inner = component_type.component if isinstance(component_type, ArrayType) else component_type
        if lengths[1] is None:
            return cls(component_type, [NULL] * n)
        return cls(component_type, [cls.allocate(inner, lengths[1:]) for _ in range(n)])

    @property
    def type(self) -> ArrayType:
        return ArrayType(self.component_type)

    @property
    def length(self) -> int:
        return len(self.elements)

    def _check_index(self, index: int):
        if not 0 <= index < len(self.elements):
            raise IndexError(f"Array index out of bounds: {index}")

    def get(self, index: int) -> Any:
        self._check_index(index)
        return self.elements[index]

    def set(self, index: int, value: Any):
        from jive.jive_types import cast, ASSIGNMENT
        self._check_index(index)
        self.elements[index] = cast(value, self.component_type, ASSIGNMENT)

    def to_list(self) -> List[Any]:
        return [v.to_list() if isinstance(v, Array) else unwrap(v) for v in self.elements]

    def __len__(self) -> int:
        return len(self.elements)

    # The sequence protocol is the host's view: elements come out unwrapped.
    def __iter__(self):
        return (unwrap(v) for v in self.elements)

    def __getitem__(self, index):
        return unwrap(self.get(index))

    def __setitem__(self, index, value):
        self.set(index, wrap(value))

    def __repr__(self) -> str:
        return f"<Array {type_name(self.component_type)}[{len(self.elements)}]>"


class NegativeArraySizeError(ValueError):
    pass


def default_value(t) -> Any:
    if isinstance(t, PrimitiveType):
        if t is BOOLEAN:
            return Primitive(False, BOOLEAN)
        if t is CHAR:
            return Primitive('\x00', CHAR)
        if t is VOID_TYPE:
            return VOID
        return Primitive(0, t)
    return NULL


def type_name(t) -> str:
    if t is None:
        return 'loose'
    if isinstance(t, (PrimitiveType, ArrayType)):
        return repr(t)
    return getattr(t, '__qualname__', None) or getattr(t, '__name__', None) or str(t)
