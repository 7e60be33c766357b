"""
Host reflection for JIVE.

The interpreter core reaches host (Python) objects only through a `HostBridge`:
`resolve_member()` turns a name on a target into a `Capability`, and
`invoke()` runs it. Field, index and property access and construction live on
the same bridge so an embedder can substitute a restricted implementation.
"""

import collections.abc
import inspect
from typing import Any, List, Optional

from jive.jive_errors import EvalError, InterpreterError, ReflectError, UtilTargetException
from jive.jive_values import Array, wrap, unwrap, unwrap_all


class HostInvocationError(Exception):
    """Host code raised while being invoked from a script. `target` is the original exception."""

    def __init__(self, target: BaseException):
        super().__init__(str(target))
        self.target = target


class Capability:
    """A resolved host member: a bound callable or a data attribute."""
    METHOD = 'method'
    FIELD = 'field'
    __slots__ = ('kind', 'owner', 'name', 'member')

    def __init__(self, kind: str, owner: Any, name: str, member: Any):
        self.kind = kind
        self.owner = owner
        self.name = name
        self.member = member

    def arity(self) -> Optional[range]:
        """The range of positional argument counts the member accepts, if knowable."""
        if self.kind != Capability.METHOD:
            return None
        return accepted_arity(self.member)

    def __repr__(self) -> str:
        return f"<Capability {self.kind} {self.name} of {self.owner!r}>"


def accepted_arity(fn) -> Optional[range]:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return None
    lo = hi = 0
    for p in sig.parameters.values():
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            hi += 1
            if p.default is p.empty:
                lo += 1
        elif p.kind == p.VAR_POSITIONAL:
            return range(lo, 1 << 16)
    return range(lo, hi + 1)


def _accessor(prefix: str, prop: str) -> List[str]:
    return [f"{prefix}_{prop}", prefix + prop[:1].upper() + prop[1:]]


def _sequence_index(index: int) -> int:
    # Script indexes never count from the end.
    if index < 0:
        raise IndexError(f"index {index} out of range")
    return index


class HostBridge:
    """The default bridge: plain Python attribute access and calls."""

    def resolve_member(self, target: Any, name: str) -> Optional[Capability]:
        if name.startswith('__'):
            return None
        try:
            member = getattr(target, name)
        except AttributeError:
            return None
        kind = Capability.METHOD if callable(member) and not inspect.isclass(member) else Capability.FIELD
        return Capability(kind, target, name, member)

    def resolve_method(self, target: Any, name: str, nargs: int) -> Capability:
        cap = self.resolve_member(target, name)
        if cap is None or (cap.kind != Capability.METHOD and not callable(cap.member)):
            owner = target.__name__ if inspect.isclass(target) or inspect.ismodule(target) else type(target).__name__
            raise ReflectError(f"Method {name}() with {nargs} argument(s) not found in {owner}")
        arity = cap.arity()
        if arity is not None and nargs not in arity:
            raise ReflectError(f"Wrong number of arguments for host method: {name}, expected "
                               f"{arity.start if len(arity) == 1 else f'{arity.start}..{arity.stop - 1}'}, got {nargs}")
        return cap

    def invoke(self, capability: Capability, args) -> Any:
        """Call a METHOD capability with script values, returning a script value."""
        try:
            result = capability.member(*unwrap_all(args))
        except Exception as e:
            if _is_interpreter_error(e):
                raise
            raise HostInvocationError(e) from e
        return wrap(result)

    def invoke_method(self, target: Any, name: str, args) -> Any:
        return self.invoke(self.resolve_method(target, name, len(args)), args)

    def construct(self, cls, args) -> Any:
        if inspect.isabstract(cls):
            raise ReflectError(f"Can't create instance of an interface: {cls.__name__}")
        if not inspect.isclass(cls):
            raise ReflectError(f"Not a class: {cls!r}")
        try:
            return cls(*unwrap_all(args))
        except TypeError as e:
            if accepted_arity(cls) is not None and len(args) not in accepted_arity(cls):
                raise ReflectError(f"Can't find constructor: {cls.__name__}({len(args)} args)") from e
            raise HostInvocationError(e) from e
        except Exception as e:
            if _is_interpreter_error(e):
                raise
            raise HostInvocationError(e) from e

    # -- fields --------------------------------------------------------

    def has_field(self, target: Any, name: str) -> bool:
        return not name.startswith('__') and hasattr(target, name)

    def get_field(self, target: Any, name: str) -> Any:
        if name.startswith('__'):
            raise ReflectError(f"No such field: {name}")
        try:
            return wrap(getattr(target, name))
        except AttributeError as e:
            raise ReflectError(f"No such field: {name}") from e
        except Exception as e:
            raise HostInvocationError(e) from e

    def set_field(self, target: Any, name: str, value: Any):
        try:
            setattr(target, name, unwrap(value))
        except (AttributeError, TypeError) as e:
            raise ReflectError(f"Can't set field: {name} : {e}") from e
        except Exception as e:
            raise HostInvocationError(e) from e

    # -- indexed elements ----------------------------------------------

    def get_index(self, target: Any, index: int) -> Any:
        if isinstance(target, Array):
            try:
                return target.get(index)
            except IndexError as e:
                raise UtilTargetException(e, f"Array index out of bounds: {index}") from e
        if isinstance(target, collections.abc.Sequence):
            try:
                return wrap(target[_sequence_index(index)])
            except IndexError as e:
                raise UtilTargetException(e, f"Index out of bounds: {index}") from e
        raise ReflectError("Not an array or sequence")

    def set_index(self, target: Any, index: int, value: Any):
        if isinstance(target, Array):
            try:
                target.set(index, value)
            except IndexError as e:
                raise UtilTargetException(e, f"Array index out of bounds: {index}") from e
            return
        if isinstance(target, collections.abc.MutableSequence):
            try:
                target[_sequence_index(index)] = unwrap(value)
            except IndexError as e:
                raise UtilTargetException(e, f"Index out of bounds: {index}") from e
            return
        raise ReflectError("Not a mutable array or sequence")

    def length(self, target: Any) -> Optional[int]:
        if isinstance(target, (Array, collections.abc.Sized)) and not isinstance(target, collections.abc.Mapping):
            return len(target)
        return None

    # -- bean style properties -----------------------------------------

    def get_property(self, target: Any, prop: str) -> Any:
        if isinstance(target, collections.abc.Mapping):
            return wrap(target.get(prop))
        for accessor in _accessor('get', prop) + _accessor('is', prop):
            fn = getattr(target, accessor, None)
            if callable(fn):
                return self.invoke(Capability(Capability.METHOD, target, accessor, fn), [])
        if self.has_field(target, prop):
            return self.get_field(target, prop)
        raise ReflectError(f"No such property: {prop}")

    def set_property(self, target: Any, prop: str, value: Any):
        if isinstance(target, collections.abc.MutableMapping):
            target[prop] = unwrap(value)
            return
        for accessor in _accessor('set', prop):
            fn = getattr(target, accessor, None)
            if callable(fn):
                self.invoke(Capability(Capability.METHOD, target, accessor, fn), [value])
                return
        self.set_field(target, prop, value)


def _is_interpreter_error(e: BaseException) -> bool:
    return isinstance(e, (EvalError, InterpreterError))


DEFAULT_BRIDGE = HostBridge()

