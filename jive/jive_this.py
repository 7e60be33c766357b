"""
The scripted object closure.

Every namespace can be viewed as an object: `This` pairs a namespace with the
interpreter that declared it. Scripts get one from the `this` keyword, host
code gets one back when a script returns `this`, and either side can call its
methods by name. `get_interface()` turns it into an instance of host
interface classes whose methods dispatch back into the script.
"""

import threading
from typing import Any, Dict, Tuple

from jive.jive_callstack import CallStack
from jive.jive_errors import EvalError, TargetException, UtilEvalException
from jive.jive_nodes import HOST_CALL
from jive.jive_types import get_types
from jive.jive_values import BOOLEAN, INT, NULL, Array, ArrayType, Primitive, type_name, unwrap, wrap


class This:
    """A namespace viewed as an object."""

    def __init__(self, namespace, interpreter):
        self.namespace = namespace
        self.interpreter = interpreter
        self._interfaces: Dict[Tuple[type, ...], Any] = {}
        self._lock = threading.Lock()

    def get_namespace(self):
        return self.namespace

    # -----------------------------------------------------------------
    # Method invocation
    # -----------------------------------------------------------------

    def invoke_method(self, name: str, args=None, interpreter=None, callstack=None, caller_info=None,
                      declared_only: bool = False, from_namespace=None) -> Any:
        """Invoke a scripted method by name.

        Used both by the evaluator (`obj.m()` where obj is a This) and by
        host code calling back into a script, in which case a fresh call stack
        rooted at this namespace is created.
        """
        args = [NULL if a is None else a for a in (args or [])]
        if interpreter is None:
            interpreter = self.interpreter
        if callstack is None:
            callstack = CallStack(self.namespace)
        if caller_info is None:
            caller_info = HOST_CALL

        types = get_types(args)
        try:
            method = self.namespace.get_method(name, types, declared_only)
        except UtilEvalException as e:
            raise e.to_eval_error(f"Method {name}", caller_info, callstack)

        if method is not None:
            if from_namespace is not None and method.has_modifier('private') \
                    and not method.visible_from(from_namespace):
                raise EvalError(f"{method} is private in this scope.", caller_info, callstack)
            return method.invoke(args, interpreter, callstack, caller_info)

        # The object protocol, when not implemented by the script.
        if name == 'toString' and not args:
            return str(self)
        if name == 'hashCode' and not args:
            return Primitive(hash(self), INT)
        if name == 'equals' and len(args) == 1:
            return Primitive(self is args[0], BOOLEAN)
        if name == 'clone' and not args:
            return self._clone(callstack)

        # A catch-all invoke(String name, Object[] args) handler declared by the script.
        try:
            handler = self.namespace.get_method('invoke', [str, ArrayType(object)])
        except UtilEvalException:
            handler = None
        if handler is not None:
            return handler.invoke([name, Array(object, list(args))], interpreter, callstack, caller_info)

        sig = ', '.join(type_name(t) if t is not None else 'null' for t in types)
        raise EvalError(f"Method {name}({sig}) not found in object: {self.namespace.name}", caller_info, callstack)

    def _clone(self, callstack) -> 'This':
        from jive.jive_namespace import NameSpace
        ns = NameSpace(self.namespace, f"{self.namespace.name} clone")
        try:
            for var_name in self.namespace.get_variable_names():
                ns.set_local_variable(var_name, self.namespace.get_variable(var_name, False), False)
        except UtilEvalException as e:
            raise e.to_eval_error(None, HOST_CALL, callstack)
        for method in self.namespace.get_methods():
            ns.set_method(method)
        return ns.get_this(self.interpreter)

    def run(self):
        """Invoke the script's `run()`; lets a This stand in where host code wants a runnable."""
        return self.invoke_method('run', [])

    # -----------------------------------------------------------------
    # Host interface proxies
    # -----------------------------------------------------------------

    def get_interface(self, *classes: type) -> Any:
        """An instance of a generated subclass of `classes` dispatching into this object.

        Proxies are cached per tuple of classes, so asking twice yields the
        same object.
        """
        if len(classes) == 1 and isinstance(classes[0], (list, tuple)):
            classes = tuple(classes[0])
        if not classes:
            raise ValueError("get_interface() needs at least one class")
        with self._lock:
            proxy = self._interfaces.get(classes)
            if proxy is None:
                proxy_class = _proxy_class(classes)
                proxy = proxy_class.__new__(proxy_class)
                object.__setattr__(proxy, '_jive_target', self)
                self._interfaces[classes] = proxy
            return proxy

    def declares_method(self, name: str, nargs: int) -> bool:
        """Whether a scripted method `name` taking `nargs` arguments is visible from this object."""
        ns = self.namespace
        while ns is not None:
            if any(m.num_args == nargs for m in ns.methods.get(name, ())):
                return True
            ns = ns.parent
        return False

    def _proxy_call(self, proxy, name: str, args) -> Any:
        self.interpreter.debug("proxy call:", name, "on", self.namespace)
        try:
            if name == 'equals' and not self.declares_method('equals', 1):
                return args[0] is proxy
            if name == 'toString' and not self.declares_method('toString', 0):
                names = ', '.join(c.__name__ for c in type(proxy).__bases__)
                return f"{self}\nimplements: {names}"
            return unwrap(self.invoke_method(name, [wrap(a) for a in args]))
        except TargetException as te:
            raise host_exception(te) from te

    def __str__(self) -> str:
        return f"'this' reference to {self.namespace!r}"

    def __repr__(self) -> str:
        return f"<This {self.namespace.name}>"


def host_exception(te: TargetException) -> BaseException:
    """A fresh instance of the target's own class, chained to the wrapper by the caller."""
    target = te.target
    try:
        return type(target)(*target.args)
    except TypeError:
        return target


_proxy_classes: Dict[Tuple[type, ...], type] = {}
_proxy_lock = threading.Lock()


def _dispatcher(name: str, fallback=None):
    def method(self, *args):
        target = object.__getattribute__(self, '_jive_target')
        if fallback is not None and not target.declares_method(name, len(args)):
            return fallback(self, *args)
        return target._proxy_call(self, name, args)
    method.__name__ = name
    return method


def _proxy_class(classes: Tuple[type, ...]) -> type:
    with _proxy_lock:
        cls = _proxy_classes.get(classes)
        if cls is not None:
            return cls
        members = {}
        for base in classes:
            abstract = getattr(base, '__abstractmethods__', frozenset())
            for name in abstract:
                members.setdefault(name, _dispatcher(name))
            for name, value in vars(base).items():
                if callable(value) and not name.startswith('_') and name not in abstract:
                    # Concrete host methods run unless the script overrides them.
                    members.setdefault(name, _dispatcher(name, value))
        members['__eq__'] = lambda self, other: bool(_dispatcher('equals')(self, other))
        members['__hash__'] = lambda self: _dispatcher('hashCode')(self)
        members['__str__'] = lambda self: _dispatcher('toString')(self)
        members['__repr__'] = lambda self: f"<proxy {object.__getattribute__(self, '_jive_target')!r}>"
        name = 'Proxy_' + '_'.join(c.__name__ for c in classes)
        cls = type(name, classes, members)
        _proxy_classes[classes] = cls
        return cls
