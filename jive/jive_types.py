"""
The dynamic type engine: numeric promotion, cast / assignment compatibility
and Java-style operator semantics over `Primitive` values.
"""

import math
from typing import Any, List, Optional, Sequence

from jive.jive_errors import UtilEvalException, UtilTargetException
from jive.jive_values import (
    Primitive, PrimitiveType, ArrayType, Array, NULL, VOID,
    BOOLEAN, BYTE, SHORT, CHAR, INT, LONG, FLOAT, DOUBLE, VOID_TYPE,
    FLOATING_TYPES, format_primitive, type_name, wrap_int, to_float32,
)

ASSIGNMENT = 'assignment'
CAST = 'cast'

# Distance assigned to a loosely typed parameter; any typed match is more specific.
LOOSE_DISTANCE = 1000
_BOXING_DISTANCE = 20
_PROXY_DISTANCE = 50

# Widening primitive conversions and their step counts.
_WIDENING = {
    BYTE: {SHORT: 1, INT: 2, LONG: 3, FLOAT: 4, DOUBLE: 5},
    SHORT: {INT: 1, LONG: 2, FLOAT: 3, DOUBLE: 4},
    CHAR: {INT: 1, LONG: 2, FLOAT: 3, DOUBLE: 4},
    INT: {LONG: 1, FLOAT: 2, DOUBLE: 3},
    LONG: {FLOAT: 1, DOUBLE: 2},
    FLOAT: {DOUBLE: 1},
    DOUBLE: {},
    BOOLEAN: {},
}

COMPARISON_OPS = ('==', '!=', '<', '<=', '>', '>=')
SHIFT_OPS = ('<<', '>>', '>>>')
BOOLEAN_OPS = ('==', '!=', '&&', '||', '&', '|', '^')


class ClassCastError(TypeError):
    """Raised into the script when an explicit cast fails at runtime."""
    pass


# =================================================================
# Type queries
# =================================================================

def get_type(value: Any):
    """The runtime type of a script value; None for null."""
    if isinstance(value, Primitive):
        if value is NULL:
            return None
        if value is VOID:
            return VOID_TYPE
        return value.type
    if isinstance(value, Array):
        return value.type
    return type(value)


def get_types(args: Sequence[Any]) -> List[Any]:
    return [get_type(a) for a in args]


def is_interface(cls) -> bool:
    """Host 'interfaces' are Python classes with abstract methods."""
    return isinstance(cls, type) and bool(getattr(cls, '__abstractmethods__', None))


def _is_this(cls) -> bool:
    return isinstance(cls, type) and cls.__name__ == 'This' and cls.__module__ == 'jive.jive_this'


def _box_assignable(ptype: PrimitiveType, cls) -> bool:
    if cls is object:
        return True
    if not isinstance(cls, type):
        return False
    if ptype is BOOLEAN:
        return cls is bool
    if cls is bool:
        return False
    return issubclass(ptype.box, cls)


def _unbox_distance(from_cls, ptype: PrimitiveType) -> Optional[int]:
    if from_cls is bool:
        return _BOXING_DISTANCE if ptype is BOOLEAN else None
    if isinstance(from_cls, type) and issubclass(from_cls, int):
        if ptype is INT:
            return _BOXING_DISTANCE
        return _BOXING_DISTANCE + _WIDENING[INT][ptype] if ptype in _WIDENING[INT] else None
    if isinstance(from_cls, type) and issubclass(from_cls, float):
        return _BOXING_DISTANCE if ptype is DOUBLE else None
    return None


def _class_distance(from_cls, to_cls) -> Optional[int]:
    if from_cls is to_cls:
        return 0
    if not isinstance(from_cls, type) or not isinstance(to_cls, type):
        return None
    if to_cls is object:
        return len(from_cls.__mro__)
    if not issubclass(from_cls, to_cls):
        return None
    try:
        return from_cls.__mro__.index(to_cls)
    except ValueError:
        # Virtual subclass (ABC registration)
        return len(from_cls.__mro__)


def assignment_distance(from_type, to_type) -> Optional[int]:
    """Widening distance for an ASSIGNMENT conversion, or None if not assignable.

    `to_type` None is a loose parameter; `from_type` None is the null type.
    """
    if to_type is None:
        return LOOSE_DISTANCE
    if to_type is VOID_TYPE or from_type is VOID_TYPE:
        return None
    if from_type is None:
        return None if isinstance(to_type, PrimitiveType) else 1
    if isinstance(from_type, PrimitiveType):
        if isinstance(to_type, PrimitiveType):
            if from_type is to_type:
                return 0
            return _WIDENING[from_type].get(to_type)
        if _box_assignable(from_type, to_type):
            return _BOXING_DISTANCE + (_class_distance(from_type.box, to_type) or 0)
        return None
    if isinstance(to_type, PrimitiveType):
        return _unbox_distance(from_type, to_type)
    if isinstance(from_type, ArrayType):
        if isinstance(to_type, ArrayType):
            fc, tc = from_type.component, to_type.component
            if isinstance(fc, PrimitiveType) or isinstance(tc, PrimitiveType):
                return 0 if fc is tc else None
            return assignment_distance(fc, tc)
        return _class_distance(Array, to_type) if to_type is not object else 1
    if isinstance(to_type, ArrayType):
        return None
    d = _class_distance(from_type, to_type)
    if d is None and _is_this(from_type) and is_interface(to_type):
        return _PROXY_DISTANCE
    return d


def is_assignable(from_type, to_type) -> bool:
    return assignment_distance(from_type, to_type) is not None


def is_signature_assignable(from_types: Sequence[Any], to_types: Sequence[Any]) -> bool:
    if len(from_types) != len(to_types):
        return False
    return all(is_assignable(f, t) for f, t in zip(from_types, to_types))


def find_most_specific_signature(arg_types: Sequence[Any], candidates: Sequence[Sequence[Any]]) -> int:
    """Index of the most specific applicable signature, or -1 if none applies.

    Applicable candidates are ranked by total widening distance. Equal totals
    are split by specificity: a signature whose parameter types are all
    assignable to another's is more specific. An unresolved tie raises.
    """
    scored = []
    for i, sig in enumerate(candidates):
        if len(sig) != len(arg_types):
            continue
        distances = [assignment_distance(a, p) for a, p in zip(arg_types, sig)]
        if any(d is None for d in distances):
            continue
        scored.append((sum(distances), i))
    if not scored:
        return -1
    best = min(s for s, _ in scored)
    tied = [i for s, i in scored if s == best]
    if len(tied) == 1:
        return tied[0]
    for i in tied:
        if all(j == i or _more_specific(candidates[i], candidates[j]) for j in tied):
            return i
    sigs = ', '.join('(' + ', '.join(type_name(t) for t in candidates[i]) + ')' for i in tied)
    raise UtilEvalException(f"Ambiguous method call: candidates {sigs} all match argument types ("
                            + ', '.join(type_name(t) for t in arg_types) + ")")


def _more_specific(a: Sequence[Any], b: Sequence[Any]) -> bool:
    if list(a) == list(b):
        return False
    for x, y in zip(a, b):
        if y is None:
            continue
        if x is None or not is_assignable(x, y):
            return False
    return True


# =================================================================
# Casting
# =================================================================

def cast_error(to_type, from_type, operation: str) -> UtilEvalException:
    if operation == ASSIGNMENT:
        return UtilEvalException(f"Can't assign {type_name(from_type) if from_type is not None else 'null'} to {type_name(to_type)}")
    return UtilTargetException(ClassCastError(f"Cannot cast {type_name(from_type) if from_type is not None else 'null'} to {type_name(to_type)}"))


def cast(value: Any, to_type, operation: str = CAST) -> Any:
    """Convert `value` to `to_type` under ASSIGNMENT or CAST rules.

    A `to_type` of None is a loose target and returns the value unchanged.
    """
    if to_type is None:
        return value
    if value is VOID:
        raise UtilEvalException("Undefined variable or class name or 'void' value used in "
                                + ("assignment" if operation == ASSIGNMENT else "cast"))
    if to_type is VOID_TYPE:
        raise UtilEvalException("Cannot cast to void")

    if isinstance(to_type, PrimitiveType):
        if value is NULL:
            raise cast_error(to_type, None, operation)
        if isinstance(value, Primitive):
            return _cast_primitive(value, to_type, operation)
        if isinstance(value, (bool, int, float)):
            return _cast_primitive(Primitive(value), to_type, operation)
        raise cast_error(to_type, type(value), operation)

    if value is NULL:
        return NULL

    if isinstance(value, Primitive):
        if _box_assignable(value.type, to_type):
            return value
        raise cast_error(to_type, value.type, operation)

    from_type = get_type(value)
    if isinstance(to_type, ArrayType):
        if isinstance(value, Array) and is_assignable(from_type, to_type):
            return value
        raise cast_error(to_type, from_type, operation)
    if not isinstance(to_type, type):
        raise UtilEvalException(f"Not a type: {to_type!r}")
    if isinstance(value, to_type):
        return value
    if _is_this(type(value)) and is_interface(to_type):
        return value.get_interface(to_type)
    raise cast_error(to_type, from_type, operation)


def _cast_primitive(value: Primitive, to_type: PrimitiveType, operation: str) -> Primitive:
    from_type = value.type
    if from_type is to_type:
        return value
    if from_type is BOOLEAN or to_type is BOOLEAN:
        raise cast_error(to_type, from_type, operation)
    if operation == ASSIGNMENT and to_type not in _WIDENING[from_type]:
        raise cast_error(to_type, from_type, operation)
    return Primitive(value.value, to_type)


# =================================================================
# Operators
# =================================================================

def _unary_promote(t: PrimitiveType) -> PrimitiveType:
    return INT if t in (BYTE, SHORT, CHAR) else t


def promote(a: Primitive, b: Primitive):
    """Widen two numeric primitives to their lowest common type. Returns (a, b, type)."""
    ta, tb = _unary_promote(a.type), _unary_promote(b.type)
    common = ta if ta.rank >= tb.rank else tb
    return Primitive(a.number_value(), common), Primitive(b.number_value(), common), common


def binary_operation(lhs: Any, rhs: Any, op: str) -> Any:
    """Apply a non-short-circuit binary operator to two script values."""
    if isinstance(lhs, Primitive) and isinstance(rhs, Primitive) \
            and lhs.type is not None and rhs.type is not None:
        return primitive_binary(lhs, rhs, op)

    if op == '==':
        return Primitive(lhs is rhs, BOOLEAN)
    if op == '!=':
        return Primitive(lhs is not rhs, BOOLEAN)

    if op == '+' and (isinstance(lhs, str) or isinstance(rhs, str)):
        return to_script_string(lhs) + to_script_string(rhs)

    if lhs is VOID or rhs is VOID:
        raise UtilEvalException("illegal use of undefined variable, class, or 'void' literal")
    if lhs is NULL or rhs is NULL:
        raise UtilEvalException("illegal use of null value or 'null' literal")
    raise UtilEvalException(f"Operator: '{op}' inappropriate for objects")


def primitive_binary(lhs: Primitive, rhs: Primitive, op: str) -> Primitive:
    if lhs.type is BOOLEAN or rhs.type is BOOLEAN:
        if lhs.type is not rhs.type:
            if op == '==':
                return Primitive(False, BOOLEAN)
            if op == '!=':
                return Primitive(True, BOOLEAN)
            raise UtilEvalException(f"Type mismatch in operator. {lhs.type} cannot be used with {rhs.type}")
        return _boolean_op(lhs.value, rhs.value, op)

    if op in SHIFT_OPS:
        return _shift_op(lhs, rhs, op)

    a, b, common = promote(lhs, rhs)
    if common in FLOATING_TYPES:
        return _floating_op(a.value, b.value, op, common)
    return _integral_op(a.value, b.value, op, common)


def _boolean_op(a: bool, b: bool, op: str) -> Primitive:
    if op == '==':
        r = a == b
    elif op == '!=':
        r = a != b
    elif op in ('&&', '&'):
        r = a and b
    elif op in ('||', '|'):
        r = a or b
    elif op == '^':
        r = a != b
    else:
        raise UtilEvalException(f"Operator: '{op}' inappropriate for boolean")
    return Primitive(r, BOOLEAN)


def _compare(a, b, op: str) -> Primitive:
    if op == '==':
        r = a == b
    elif op == '!=':
        r = a != b
    elif op == '<':
        r = a < b
    elif op == '<=':
        r = a <= b
    elif op == '>':
        r = a > b
    else:
        r = a >= b
    return Primitive(r, BOOLEAN)


def _integral_op(a: int, b: int, op: str, t: PrimitiveType) -> Primitive:
    if op in COMPARISON_OPS:
        return _compare(a, b, op)
    bits = 64 if t is LONG else 32
    if op == '+':
        r = a + b
    elif op == '-':
        r = a - b
    elif op == '*':
        r = a * b
    elif op in ('/', '%'):
        if b == 0:
            raise UtilTargetException(ZeroDivisionError("/ by zero"), "Arithmetic Exception")
        q = abs(a) // abs(b)
        if (a < 0) != (b < 0):
            q = -q
        r = q if op == '/' else a - b * q
    elif op == '&':
        r = a & b
    elif op == '|':
        r = a | b
    elif op == '^':
        r = a ^ b
    else:
        raise UtilEvalException(f"Operator: '{op}' inappropriate for {t}")
    return Primitive(wrap_int(r, bits), t)


def _floating_op(a: float, b: float, op: str, t: PrimitiveType) -> Primitive:
    if op in COMPARISON_OPS:
        return _compare(a, b, op)
    if op == '+':
        r = a + b
    elif op == '-':
        r = a - b
    elif op == '*':
        r = a * b
    elif op == '/':
        if b == 0.0:
            if a == 0.0 or math.isnan(a):
                r = math.nan
            else:
                r = math.copysign(math.inf, a) * math.copysign(1.0, b)
        else:
            r = a / b
    elif op == '%':
        r = math.nan if b == 0.0 else math.fmod(a, b)
    elif op in SHIFT_OPS:
        raise UtilEvalException("Can't shift floatingpoint values")
    else:
        raise UtilEvalException(f"Operator: '{op}' inappropriate for {t}")
    if t is FLOAT:
        r = to_float32(r)
    return Primitive(r, t)


def _shift_op(lhs: Primitive, rhs: Primitive, op: str) -> Primitive:
    if lhs.type in FLOATING_TYPES or rhs.type in FLOATING_TYPES:
        raise UtilEvalException("Can't shift floatingpoint values")
    t = _unary_promote(lhs.type)
    bits = 64 if t is LONG else 32
    a = lhs.number_value()
    n = rhs.number_value() & (bits - 1)
    if op == '<<':
        r = a << n
    elif op == '>>':
        r = a >> n
    else:
        r = (a & ((1 << bits) - 1)) >> n
    return Primitive(wrap_int(r, bits), t)


def unary_operation(value: Any, op: str) -> Primitive:
    if value is VOID:
        raise UtilEvalException("illegal use of undefined variable, class, or 'void' literal")
    if value is NULL:
        raise UtilEvalException("illegal use of null value or 'null' literal")
    if not isinstance(value, Primitive):
        raise UtilEvalException(f"Operator: '{op}' inappropriate for objects")
    t = value.type
    if t is BOOLEAN:
        if op == '!':
            return Primitive(not value.value, BOOLEAN)
        raise UtilEvalException(f"Operator: '{op}' inappropriate for boolean")
    if op == '!':
        raise UtilEvalException(f"Operator: '!' inappropriate for {t}")

    pt = _unary_promote(t)
    v = value.number_value()
    if op == '+':
        return Primitive(v, pt)
    if op == '-':
        return Primitive(-v, pt)
    if op == '~':
        if pt in FLOATING_TYPES:
            raise UtilEvalException(f"Operator: '~' inappropriate for {t}")
        return Primitive(~v, pt)
    if op in ('++', '--'):
        # Increment and decrement keep the operand's own type.
        return Primitive(v + 1 if op == '++' else v - 1, t)
    raise UtilEvalException(f"Unknown unary operator: '{op}'")


def instance_of(value: Any, t) -> bool:
    if value is NULL or value is VOID:
        return False
    if isinstance(t, PrimitiveType):
        return isinstance(value, Primitive) and value.type is t
    if isinstance(value, Primitive):
        return _box_assignable(value.type, t)
    if isinstance(t, ArrayType):
        return isinstance(value, Array) and is_assignable(value.type, t)
    return isinstance(value, t)


def to_script_string(value: Any) -> str:
    if value is NULL:
        return 'null'
    if value is VOID:
        return 'void'
    if isinstance(value, Primitive):
        return format_primitive(value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def is_true(value: Any) -> bool:
    """The truth of a condition value, which must be a boolean."""
    if isinstance(value, Primitive) and value.type is BOOLEAN:
        return value.value
    if isinstance(value, bool):
        return value
    if value is VOID:
        raise UtilEvalException("Condition evaluates to void type")
    raise UtilEvalException("Condition must evaluate to a Boolean or boolean.")
