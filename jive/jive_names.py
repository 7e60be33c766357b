"""
The compound-name resolver.

A `Name` resolves a dotted identifier path (`a.b.c`) against a namespace into
a value, a class, an assignable location or a method call. Resolution is
strictly left to right: each round classifies one leading segment group
(variable, class, field) and the rest of the path is resolved relative to that
result only.
"""

import inspect
from typing import Any, Optional

from jive.jive_errors import (
    EvalError, InterpreterError, ReflectError, TargetException, UtilEvalException, UtilTargetException,
)
from jive.jive_lvalue import LeftValue
from jive.jive_reflect import HostInvocationError
from jive.jive_types import get_types
from jive.jive_values import Primitive, Array, NULL, VOID, type_name


class ClassIdentifier:
    """Marks a resolved path segment as a class (or module) rather than a value."""
    __slots__ = ('target',)

    def __init__(self, target):
        self.target = target

    def __eq__(self, other):
        return isinstance(other, ClassIdentifier) and self.target is other.target

    def __hash__(self):
        return hash(id(self.target))

    def __repr__(self) -> str:
        return f"Class Identifier: {getattr(self.target, '__qualname__', self.target)}"


class ClassNotFound(UtilEvalException):
    pass


# -----------------------------------------------------------------
# Helpers on compound names
# -----------------------------------------------------------------

def is_compound(value: str) -> bool:
    return '.' in value


def count_parts(value: Optional[str]) -> int:
    return 0 if not value else value.count('.') + 1


def prefix(value: str, parts: Optional[int] = None) -> Optional[str]:
    """The first `parts` segments; default all but the last."""
    if parts is None:
        if not is_compound(value):
            return None
        parts = count_parts(value) - 1
    if parts < 1:
        return None
    return '.'.join(value.split('.')[:parts])


def suffix(value: str, parts: Optional[int] = None) -> Optional[str]:
    """The last `parts` segments; default all but the first."""
    if parts is None:
        if not is_compound(value):
            return None
        parts = count_parts(value) - 1
    if parts < 1:
        return None
    return '.'.join(value.split('.')[-parts:])


def get_class_namespace(ns):
    """The nearest enclosing class-body or class-instance namespace, or None."""
    while ns is not None:
        if ns.is_class:
            return ns
        if ns.is_method and ns.parent is not None and ns.parent.is_class:
            return ns.parent
        ns = ns.parent
    return None


SPECIAL_FIELDS = ('nameSpace', 'variables', 'methods', 'caller', 'interpreter', 'callStack')


class _Cursor:
    """Mutable state of one resolution; a Name itself holds no per-evaluation state."""
    __slots__ = ('eval_name', 'last_eval_name', 'base', 'depth')

    def __init__(self, value: str):
        self.eval_name = value
        self.last_eval_name = None
        self.base = None
        self.depth = 0

    def complete(self, last: str, rest: Optional[str], obj: Any) -> Any:
        if obj is None:
            raise InterpreterError(f"null result resolving: {last}")
        self.last_eval_name = last
        self.eval_name = rest
        self.base = obj
        return obj


class Name:
    """A dotted name bound to the namespace it is resolved in.

    Instances are cached by the namespace and are safe to share between
    threads: all resolution state lives in a per-call cursor.
    """

    def __init__(self, namespace, value: str):
        self.namespace = namespace
        self.value = value
        self._as_class = None
        self._class_of_static_method = None

    # -----------------------------------------------------------------
    # Values
    # -----------------------------------------------------------------

    def to_object(self, callstack, interpreter, force_class: bool = False) -> Any:
        cur = _Cursor(self.value)
        obj = None
        while cur.eval_name is not None:
            obj = self._consume_next_object_field(cur, callstack, interpreter, force_class, False)
        if obj is None:
            raise InterpreterError("null value in to_object()")
        return obj

    def _consume_next_object_field(self, cur: _Cursor, callstack, interpreter, force_class: bool,
                                   auto_allocate_this: bool) -> Any:
        ns = self.namespace
        eval_name = cur.eval_name
        base = cur.base

        # A simple variable first: variables shadow class names.
        if base is None and not is_compound(eval_name) and not force_class:
            obj = self._resolve_this_field_reference(cur, callstack, ns, interpreter, eval_name, False)
            if obj is not VOID:
                return cur.complete(eval_name, None, obj)

        var_name = prefix(eval_name, 1)
        from jive.jive_this import This
        if (base is None or isinstance(base, This)) and not force_class:
            if base is None:
                obj = self._resolve_this_field_reference(cur, callstack, ns, interpreter, var_name, False)
            else:
                obj = self._resolve_this_field_reference(cur, callstack, base.namespace, interpreter, var_name, True)
            if obj is not VOID:
                return cur.complete(var_name, suffix(eval_name), obj)

        # Progressively longer prefixes as a class name.
        if base is None:
            n = count_parts(eval_name)
            for i in range(1, n + 1):
                class_name = prefix(eval_name, i)
                cls = ns.get_class(class_name)
                if cls is not None:
                    return cur.complete(class_name, suffix(eval_name, n - i), ClassIdentifier(cls))

        if (base is None or isinstance(base, This)) and not force_class and auto_allocate_this:
            target = ns if base is None else base.namespace
            from jive.jive_namespace import NameSpace
            obj = NameSpace(target, f"auto: {var_name}").get_this(interpreter)
            target.set_variable(var_name, obj, False)
            return cur.complete(var_name, suffix(eval_name), obj)

        if base is None:
            if not is_compound(eval_name):
                return cur.complete(eval_name, None, VOID)
            raise UtilEvalException(f"Class or variable not found: {eval_name}")

        # From here on we are resolving relative to a base object.
        if base is NULL:
            raise UtilTargetException(AttributeError(f"Null Pointer while evaluating: {self.value}"))
        if base is VOID:
            raise UtilEvalException(f"Undefined variable or class name while evaluating: {self.value}")
        if isinstance(base, Primitive):
            raise UtilEvalException(f"Can't treat primitive like an object. Error while evaluating: {self.value}")

        field = prefix(eval_name, 1)
        if isinstance(base, ClassIdentifier):
            return cur.complete(field, suffix(eval_name), self._static_member(base.target, field))

        if force_class:
            raise UtilEvalException(f"{self.value} does not resolve to a class name.")

        if isinstance(base, This):
            return cur.complete(field, suffix(eval_name), base.namespace.get_variable(field, False))

        bridge = ns.bridge
        if field == 'length' and not isinstance(base, Array):
            length = bridge.length(base)
            if length is not None and not bridge.has_field(base, 'length'):
                return cur.complete(field, suffix(eval_name), Primitive(length))
        try:
            obj = bridge.get_field(base, field)
        except ReflectError:
            raise UtilEvalException(f"Cannot access field: {field}, on object: {base!r}")
        except HostInvocationError as e:
            raise UtilTargetException(e.target, in_native=True) from e
        return cur.complete(field, suffix(eval_name), obj)

    def _static_member(self, cls, field: str) -> Any:
        return get_static_member(self.namespace, cls, field)

    def _resolve_this_field_reference(self, cur: _Cursor, callstack, this_ns, interpreter, var_name: str,
                                      special_fields_visible: bool) -> Any:
        if var_name == 'this':
            if special_fields_visible:
                raise UtilEvalException("Redundant to call .this on This type")
            ths = this_ns.get_this(interpreter)
            class_ns = get_class_namespace(ths.namespace)
            if class_ns is not None:
                if is_compound(cur.eval_name):
                    return class_ns.get_this(interpreter)
                instance = class_ns.get_class_instance()
                return instance if instance is not None else class_ns.get_this(interpreter)
            return ths

        if var_name == 'super':
            ths = this_ns.get_super(interpreter)
            parent = ths.namespace.parent
            if parent is not None and parent.is_class:
                ths = parent.get_this(interpreter)
            return ths

        obj = None
        if var_name == 'global':
            obj = this_ns.get_global_this(interpreter)

        if obj is None and special_fields_visible:
            if var_name == 'nameSpace':
                obj = this_ns
            elif var_name == 'variables':
                obj = this_ns.get_variable_names()
            elif var_name == 'methods':
                obj = this_ns.get_method_names()
            elif var_name == 'interpreter':
                if cur.last_eval_name != 'this':
                    raise UtilEvalException("Can only call .interpreter on literal 'this'")
                obj = interpreter
            elif var_name == 'caller':
                if cur.last_eval_name not in ('this', 'caller'):
                    raise UtilEvalException("Can only call .caller on literal 'this' or literal '.caller'")
                if callstack is None:
                    raise InterpreterError("no callstack")
                cur.depth += 1
                frame = callstack.get(cur.depth)
                if frame is None:
                    raise UtilEvalException("No caller: the call stack is exhausted")
                return frame.get_this(interpreter)
            elif var_name == 'callStack':
                if cur.last_eval_name != 'this':
                    raise UtilEvalException("Can only call .callStack on literal 'this'")
                if callstack is None:
                    raise InterpreterError("no callstack")
                obj = callstack

        if obj is None:
            obj = this_ns.get_variable(var_name)
        return obj

    # -----------------------------------------------------------------
    # Classes
    # -----------------------------------------------------------------

    def to_class(self):
        if self._as_class is not None:
            return self._as_class
        if self.value == 'var':
            return None
        cls = self.namespace.get_class(self.value)
        if cls is None:
            try:
                obj = self.to_object(None, None, force_class=True)
            except UtilEvalException:
                obj = None
            if isinstance(obj, ClassIdentifier):
                cls = obj.target
        if cls is None:
            raise ClassNotFound(f"Class: {self.value} not found in namespace")
        self._as_class = cls
        return cls

    # -----------------------------------------------------------------
    # Assignable locations
    # -----------------------------------------------------------------

    def to_lvalue(self, callstack, interpreter) -> LeftValue:
        from jive.jive_this import This
        cur = _Cursor(self.value)
        if not is_compound(self.value):
            if self.value == 'this':
                raise UtilEvalException("Can't assign to 'this'.")
            return LeftValue.variable(self.namespace, self.value, local=False)

        obj = None
        try:
            while cur.eval_name is not None and is_compound(cur.eval_name):
                obj = self._consume_next_object_field(cur, callstack, interpreter, False, True)
        except UtilTargetException:
            raise
        except UtilEvalException as e:
            raise UtilEvalException(f"LeftValue evaluation: {e.message}") from e

        if cur.eval_name is None and isinstance(obj, ClassIdentifier):
            raise UtilEvalException(f"Can't assign to class: {self.value}")
        if obj is None:
            raise UtilEvalException(f"Error in LeftValue: {self.value}")

        field = cur.eval_name
        if isinstance(obj, This):
            if field in SPECIAL_FIELDS:
                raise UtilEvalException(f"Can't assign to special variable: {field}")
            # super.x finds the nearest definition from the super scope; this.x binds locally.
            local = cur.last_eval_name != 'super'
            return LeftValue.variable(obj.namespace, field, local=local)

        if field is not None:
            if obj is NULL:
                raise UtilTargetException(AttributeError(f"Null Pointer while evaluating: {self.value}"))
            if obj is VOID or isinstance(obj, Primitive):
                raise UtilEvalException(f"Can't assign field of non-object while evaluating: {self.value}")
            target = obj.target if isinstance(obj, ClassIdentifier) else obj
            static_this = getattr(target, '_jive_static_this', None) if inspect.isclass(target) else None
            if static_this is not None and static_this.namespace.get_variable_impl(field, False) is not None:
                return LeftValue.variable(static_this.namespace, field, local=True)
            instance_this = getattr(target, '_jive_this', None) if not inspect.isclass(target) else None
            if instance_this is not None:
                return LeftValue.variable(instance_this.namespace, field, local=True)
            return LeftValue.field(target, field, self.namespace.bridge)
        raise InterpreterError("Internal error in lhs...")

    # -----------------------------------------------------------------
    # Method invocation
    # -----------------------------------------------------------------

    def invoke_method(self, interpreter, args, callstack, caller_info) -> Any:
        method_name = suffix(self.value, 1)
        ns = callstack.top()

        if self._class_of_static_method is not None:
            return self._invoke_static(self._class_of_static_method, method_name, args, interpreter,
                                       callstack, caller_info)

        if not is_compound(self.value):
            return self._invoke_local_method(interpreter, args, callstack, caller_info)

        target_prefix = prefix(self.value)
        if target_prefix == 'super' and count_parts(self.value) == 2:
            ths = ns.get_this(interpreter)
            class_ns = get_class_namespace(ths.namespace)
            if class_ns is not None:
                instance = class_ns.get_class_instance()
                if instance is not None:
                    return interpreter.class_generator.invoke_superclass_method(
                        instance, method_name, args, interpreter, callstack, caller_info)

        target_name = ns.get_name_resolver(target_prefix)
        obj = target_name.to_object(callstack, interpreter)
        if obj is VOID:
            raise UtilEvalException(f"Attempt to resolve method: {method_name}() on undefined variable "
                                    f"or class name: {target_prefix}")
        if isinstance(obj, ClassIdentifier):
            self._class_of_static_method = obj.target
        return invoke_object_method(ns, obj, method_name, args, interpreter, callstack, caller_info)

    def _invoke_static(self, cls, method_name, args, interpreter, callstack, caller_info):
        return invoke_object_method(self.namespace, ClassIdentifier(cls), method_name, args, interpreter,
                                    callstack, caller_info)

    def _invoke_local_method(self, interpreter, args, callstack, caller_info) -> Any:
        if interpreter is None:
            raise InterpreterError("invoke_local_method: interpreter is None")
        method_name = self.value
        try:
            method = self.namespace.get_method(method_name, get_types(args))
        except UtilEvalException as e:
            raise e.to_eval_error("Local method invocation", caller_info, callstack)

        if method is None:
            sig = ', '.join(type_name(t) if t is not None else 'null' for t in get_types(args))
            raise EvalError(f"Command not found: {method_name}({sig})", caller_info, callstack)

        if method.has_modifier('private') and not method.visible_from(self.namespace):
            raise EvalError(f"{method} is private in this scope.", caller_info, callstack)
        return method.invoke(args, interpreter, callstack, caller_info)

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


def _host_call(bridge, target, method_name: str, args, caller_info, callstack) -> Any:
    try:
        return bridge.invoke_method(target, method_name, args)
    except HostInvocationError as e:
        raise TargetException("Method Invocation " + method_name, e.target, caller_info, callstack,
                              in_native=True) from e
    except ReflectError as e:
        raise EvalError(f"Error in method invocation: {e}", caller_info, callstack, cause=e) from e


def get_static_member(namespace, cls, field: str) -> Any:
    """`Cls.field`: a static variable of a scripted class, a host class attribute, or `Cls.this`."""
    if field == 'this':
        # Qualified this: the nearest enclosing instance of `cls`.
        ns = namespace
        while ns is not None:
            if ns.class_instance is not None and type(ns.class_instance) is cls:
                return ns.class_instance
            ns = ns.parent
        raise UtilEvalException(f"Can't find enclosing 'this' instance of class: {cls.__name__}")
    static_this = getattr(cls, '_jive_static_this', None) if inspect.isclass(cls) else None
    if static_this is not None:
        var = static_this.namespace.get_variable_impl(field, False)
        if var is not None:
            return var.get_value()
    try:
        obj = getattr(cls, field)
    except AttributeError:
        raise UtilEvalException(f"No static field or inner class: {field} of {cls!r}")
    except Exception as e:
        raise UtilTargetException(e, in_native=True) from e
    if inspect.isclass(obj) or inspect.ismodule(obj):
        return ClassIdentifier(obj)
    try:
        return namespace.bridge.get_field(cls, field)
    except ReflectError as e:
        raise UtilEvalException(str(e)) from e
    except HostInvocationError as e:
        raise UtilTargetException(e.target, in_native=True) from e


def invoke_object_method(namespace, obj, method_name: str, args, interpreter, callstack, caller_info) -> Any:
    """Invoke `method_name` on a resolved object: a This, a scripted instance, a class or a host object."""
    from jive.jive_this import This
    if obj is NULL:
        raise UtilTargetException(AttributeError("Null Pointer in Method Invocation"))
    if obj is VOID:
        raise UtilEvalException(f"Attempt to invoke method: {method_name}() on undefined value")
    if isinstance(obj, Primitive):
        raise UtilEvalException(f"Attempt to invoke method: {method_name}() on a primitive")

    if isinstance(obj, ClassIdentifier):
        cls = obj.target
        static_this = getattr(cls, '_jive_static_this', None) if inspect.isclass(cls) else None
        if static_this is not None:
            method = static_this.namespace.get_method(method_name, get_types(args), declared_only=True)
            if method is not None:
                return method.invoke(args, interpreter, callstack, caller_info)
        return _host_call(namespace.bridge, cls, method_name, args, caller_info, callstack)

    if isinstance(obj, This):
        return obj.invoke_method(method_name, args, interpreter, callstack, caller_info,
                                 declared_only=False, from_namespace=namespace)
    instance_this = getattr(obj, '_jive_this', None) if not inspect.isclass(obj) else None
    if instance_this is not None:
        # Methods a scripted class inherits from a host base run on the host side.
        if instance_this.namespace.get_method(method_name, get_types(args)) is None \
                and namespace.bridge.resolve_member(obj, method_name) is not None:
            return _host_call(namespace.bridge, obj, method_name, args, caller_info, callstack)
        return instance_this.invoke_method(method_name, args, interpreter, callstack, caller_info,
                                           declared_only=False, from_namespace=namespace)
    return _host_call(namespace.bridge, obj, method_name, args, caller_info, callstack)
