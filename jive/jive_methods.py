"""
Method values and invocation.

A `Method` is either scripted (a body block evaluated in a fresh callee
namespace) or host-backed (a Python callable reached through the host bridge,
used for methods of imported host objects and static classes).
"""

import contextlib
import functools
import threading
import weakref
from typing import Any, List, Optional

from jive.jive_callstack import CallStack
from jive.jive_errors import EvalError, TargetException, UtilEvalException
from jive.jive_nodes import ReturnControl, HOST_CALL
from jive.jive_reflect import HostInvocationError
from jive.jive_types import cast, ASSIGNMENT
from jive.jive_values import VOID, VOID_TYPE, type_name


# =================================================================
# Monitors for synchronized methods and blocks
# =================================================================

# Keyed by id(owner); entries never compare owners by equality.
_monitor_guard = threading.RLock()
_monitors = {}


class _Monitor:
    """The reentrant lock of one owner.

    A weak-referenceable owner keeps its monitor for as long as it lives.
    Any other owner is held strongly only while a thread holds or waits on
    the monitor.
    """
    __slots__ = ('ref', 'owner', 'lock', 'users')

    def __init__(self, owner):
        self.lock = threading.RLock()
        self.users = 0
        try:
            self.ref = weakref.ref(owner, functools.partial(_forget_monitor, id(owner)))
            self.owner = None
        except TypeError:
            self.ref = None
            self.owner = owner

    def belongs_to(self, owner) -> bool:
        current = self.ref() if self.ref is not None else self.owner
        return current is owner


def _forget_monitor(key, ref):
    with _monitor_guard:
        entry = _monitors.get(key)
        if entry is not None and entry.ref is ref:
            del _monitors[key]


def _acquire_monitor(owner) -> _Monitor:
    with _monitor_guard:
        entry = _monitors.get(id(owner))
        if entry is None or not entry.belongs_to(owner):
            entry = _monitors[id(owner)] = _Monitor(owner)
        entry.users += 1
        return entry


def _release_monitor(entry: _Monitor):
    with _monitor_guard:
        entry.users -= 1
        if entry.users == 0 and entry.ref is None:
            key = id(entry.owner)
            if _monitors.get(key) is entry:
                del _monitors[key]
            entry.owner = None


@contextlib.contextmanager
def synchronized_on(owner):
    """Hold the reentrant monitor of `owner`, chosen by identity, for the duration of the block."""
    entry = _acquire_monitor(owner)
    try:
        with entry.lock:
            yield entry.lock
    finally:
        _release_monitor(entry)


# =================================================================
# Method
# =================================================================

class Method:
    """A callable unit declared in a namespace.

    `return_type` None is loose, VOID_TYPE is `void`. `param_types` entries
    of None are loosely typed parameters.
    """

    def __init__(self, name: str, return_type, param_names: List[str], param_types: List[Any], body,
                 declaring_namespace, modifiers=None, param_modifiers=None, node=None):
        self.name = name
        self.return_type = return_type
        self.param_names = list(param_names)
        self.param_types = list(param_types)
        self.param_modifiers = list(param_modifiers) if param_modifiers else [None] * len(self.param_names)
        self.body = body
        self.declaring_namespace = declaring_namespace
        self.modifiers = modifiers
        self.node = node
        self.capability = None
        # Set for methods of scripted classes; used to find the superclass for super.m().
        self.declaring_class = None

    @classmethod
    def from_capability(cls, capability, nargs: int, namespace) -> 'Method':
        """A host-backed method with `nargs` loosely typed parameters."""
        m = cls(capability.name, None, [f"arg{i}" for i in range(nargs)], [None] * nargs, None, namespace)
        m.capability = capability
        return m

    @property
    def num_args(self) -> int:
        return len(self.param_names)

    def has_modifier(self, name: str) -> bool:
        return self.modifiers is not None and self.modifiers.has_modifier(name)

    def signature_equals(self, other: 'Method') -> bool:
        return self.name == other.name and self.param_types == other.param_types

    def visible_from(self, namespace) -> bool:
        """Private methods are visible from their declaring namespace and scopes nested in it."""
        ns = namespace
        while ns is not None:
            if ns is self.declaring_namespace:
                return True
            ns = ns.parent
        return False

    # -----------------------------------------------------------------

    def invoke(self, args, interpreter, callstack: Optional[CallStack] = None, caller_info=None,
               override_namespace: bool = False) -> Any:
        """Invoke with script-value `args`.

        With `override_namespace` the body runs in the current top frame
        instead of a fresh callee namespace (constructor bodies).
        """
        args = list(args) if args is not None else []
        if caller_info is None:
            caller_info = HOST_CALL

        if self.capability is not None:
            try:
                return self.declaring_namespace.bridge.invoke(self.capability, args)
            except HostInvocationError as e:
                raise TargetException("Exception invoking imported object method.", e.target, caller_info,
                                      callstack, in_native=True) from e

        if self.has_modifier('synchronized'):
            with synchronized_on(self._lock_owner(interpreter)):
                return self._invoke_impl(args, interpreter, callstack, caller_info, override_namespace)
        return self._invoke_impl(args, interpreter, callstack, caller_info, override_namespace)

    def _lock_owner(self, interpreter):
        ns = self.declaring_namespace
        if ns.is_class:
            instance = ns.get_class_instance()
            if instance is not None:
                return instance
            if ns.class_static is not None:
                return ns.class_static
        return ns.get_this(interpreter)

    def bind_arguments(self, local, args, interpreter, callstack, caller_info):
        """Declare the parameters in `local`, casting typed ones in assignment mode."""
        if len(args) != self.num_args:
            raise EvalError(f"Wrong number of arguments for local method: {self.name}", caller_info, callstack)
        for i, pname in enumerate(self.param_names):
            ptype = self.param_types[i]
            arg = args[i]
            if ptype is not None:
                try:
                    arg = cast(arg, ptype, ASSIGNMENT)
                except UtilEvalException as e:
                    raise EvalError(f"Invalid argument: `{pname}' for method: {self.name} : {e.message}",
                                    caller_info, callstack) from e
                try:
                    local.set_typed_variable(pname, ptype, arg, self.param_modifiers[i])
                except UtilEvalException as e:
                    raise e.to_eval_error("Typed method parameter assignment", caller_info, callstack)
            else:
                if arg is VOID:
                    raise EvalError(f"Undefined variable or class name, parameter: {pname} to method: {self.name}",
                                    caller_info, callstack)
                try:
                    local.set_local_variable(pname, arg, interpreter.strict)
                except UtilEvalException as e:
                    raise e.to_eval_error("Local method parameter assignment", caller_info, callstack)

    def _invoke_impl(self, args, interpreter, callstack, caller_info, override_namespace) -> Any:
        from jive.jive_namespace import NameSpace
        if callstack is None:
            callstack = CallStack(self.declaring_namespace)

        if override_namespace:
            local = callstack.top()
        else:
            local = NameSpace(self.declaring_namespace, self.name)
            local.is_method = True
        local.caller_info = caller_info
        local.executing_method = self
        self.bind_arguments(local, args, interpreter, callstack, caller_info)

        if not override_namespace:
            callstack.push(local)
        interpreter.debug("invoke method:", self.name, "in", local)
        try:
            ret = interpreter.evaluator.eval_block(self.body, callstack, override_namespace=True)
            return_stack = callstack.copy()
        finally:
            if not override_namespace:
                callstack.pop()

        ret_value = VOID
        if isinstance(ret, ReturnControl):
            if ret.kind != ReturnControl.RETURN:
                raise EvalError("'continue' or 'break' in method body", ret.node, return_stack)
            ret_value = ret.value

        if self.return_type is VOID_TYPE:
            return VOID
        if self.return_type is not None:
            try:
                ret_value = cast(ret_value, self.return_type, ASSIGNMENT)
            except UtilEvalException as e:
                node = ret.node if isinstance(ret, ReturnControl) else self.node
                raise e.to_eval_error(f"Incorrect type returned from method: {self.name}", node, callstack)
        return ret_value

    def __repr__(self) -> str:
        kind = 'Host Method' if self.capability is not None else 'Scripted Method'
        params = ', '.join(type_name(t) for t in self.param_types)
        return f"{kind}: {self.name}({params})"
