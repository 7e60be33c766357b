"""An assignable location, decoupled from how it was found."""

from typing import Any

from jive.jive_errors import ReflectError, UtilEvalException, UtilTargetException
from jive.jive_reflect import HostInvocationError
from jive.jive_values import NULL, VOID, Array


class LeftValue:
    """A resolved assignable location.

    Kinds:
      VARIABLE      a variable in `namespace`; `local` binds in that scope only
      FIELD         an attribute of a host object or class
      PROPERTY      a mapping key or bean-style property
      INDEX         an element of a script array or host sequence
      METHOD_RESULT the read-only result of a method call
    """
    VARIABLE = 'variable'
    FIELD = 'field'
    PROPERTY = 'property'
    INDEX = 'index'
    METHOD_RESULT = 'method_result'

    def __init__(self, kind: str, target: Any = None, key: Any = None, bridge=None, local: bool = False):
        self.kind = kind
        self.target = target
        self.key = key
        self.bridge = bridge
        self.local = local
        self._value = None

    @classmethod
    def variable(cls, namespace, name: str, local: bool = False) -> 'LeftValue':
        return cls(cls.VARIABLE, namespace, name, local=local)

    @classmethod
    def field(cls, target: Any, name: str, bridge) -> 'LeftValue':
        return cls(cls.FIELD, target, name, bridge)

    @classmethod
    def property(cls, target: Any, name: str, bridge) -> 'LeftValue':
        return cls(cls.PROPERTY, target, name, bridge)

    @classmethod
    def index(cls, target: Any, index: int, bridge) -> 'LeftValue':
        return cls(cls.INDEX, target, index, bridge)

    @classmethod
    def method_result(cls, value: Any) -> 'LeftValue':
        lv = cls(cls.METHOD_RESULT)
        lv._value = value
        return lv

    def get_value(self) -> Any:
        if self.kind == self.VARIABLE:
            return self.target.get_variable(self.key, not self.local)
        if self.kind == self.FIELD:
            return self._reflect(self.bridge.get_field, self.target, self.key)
        if self.kind == self.PROPERTY:
            return self._reflect(self.bridge.get_property, self.target, self.key)
        if self.kind == self.INDEX:
            return self._reflect(self.bridge.get_index, self.target, self.key)
        return self._value

    def assign(self, value: Any, strict: bool = False) -> Any:
        """Store `value` at this location and return it."""
        if self.kind == self.VARIABLE:
            if self.local:
                self.target.set_local_variable(self.key, value, strict)
            else:
                self.target.set_variable(self.key, value, strict)
        elif self.kind == self.FIELD:
            if self.target is NULL or self.target is VOID:
                raise UtilEvalException(f"Can't assign field '{self.key}' of a null or undefined value")
            self._reflect(self.bridge.set_field, self.target, self.key, value)
        elif self.kind == self.PROPERTY:
            self._reflect(self.bridge.set_property, self.target, self.key, value)
        elif self.kind == self.INDEX:
            self._reflect(self.bridge.set_index, self.target, self.key, value)
        else:
            raise UtilEvalException("method result is not assignable")
        return value

    @staticmethod
    def _reflect(op, *args):
        try:
            return op(*args)
        except ReflectError as e:
            raise UtilEvalException(str(e), cause=e) from e
        except HostInvocationError as e:
            raise UtilTargetException(e.target, in_native=True) from e

    def __repr__(self) -> str:
        target = 'array' if isinstance(self.target, Array) else type(self.target).__name__
        return f"<LeftValue {self.kind} {target}[{self.key!r}]>"
