"""
The embedding surface of JIVE: configuration, the `Interpreter` facade and a
`ScriptRunner` that turns evaluation outcomes into structured results.
"""

import collections.abc
import importlib
import os
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Optional

import yaml

from jive.jive_callstack import CallStack
from jive.jive_classgen import ClassGenerator
from jive.jive_classpath import ClassRegistry, DEFAULT_IMPORTS
from jive.jive_errors import (
    DEFAULT_ERROR_TEMPLATE, EvalError, InterpreterError, TargetException, UtilEvalException,
)
from jive.jive_interpreter import Evaluator
from jive.jive_names import ClassIdentifier
from jive.jive_namespace import NameSpace
from jive.jive_nodes import HOST_CALL, Block, Node, ReturnControl
from jive.jive_reflect import HostBridge
from jive.jive_this import This
from jive.jive_values import unwrap, wrap


# ===================================================================
# 1. Configuration
# ===================================================================

class InterpreterConfig:
    """Settings for one Interpreter. Nothing here is process-wide."""

    FIELDS = ('strict', 'debug', 'trace', 'error_template', 'default_imports', 'auto_import_modules',
              'host_bridge')

    def __init__(self, strict: bool = False, debug: Optional[bool] = None, trace: bool = False,
                 error_template: str = DEFAULT_ERROR_TEMPLATE, default_imports: Iterable[str] = DEFAULT_IMPORTS,
                 auto_import_modules: bool = True, host_bridge: Optional[HostBridge] = None):
        self.strict = strict
        self.debug = bool(os.environ.get("JIVE_DEBUG")) if debug is None else debug
        self.trace = trace
        self.error_template = error_template
        self.default_imports = tuple(default_imports)
        self.auto_import_modules = auto_import_modules
        self.host_bridge = host_bridge

    @classmethod
    def from_mapping(cls, data: collections.abc.Mapping) -> 'InterpreterConfig':
        unknown = set(data) - set(cls.FIELDS)
        if unknown:
            raise ValueError(f"Unknown interpreter config keys: {', '.join(sorted(unknown))}")
        kwargs = dict(data)
        bridge = kwargs.get('host_bridge')
        if isinstance(bridge, str):
            kwargs['host_bridge'] = _load_object(bridge)()
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, source) -> 'InterpreterConfig':
        """Load from a YAML document (a string or an open stream).

        A `host_bridge` given in YAML is a `module:ClassName` path, instantiated
        with no arguments.
        """
        data = yaml.safe_load(source) or {}
        if not isinstance(data, collections.abc.Mapping):
            raise ValueError("Interpreter config must be a YAML mapping")
        return cls.from_mapping(data)

    def __repr__(self) -> str:
        items = ', '.join(f"{k}={getattr(self, k)!r}" for k in self.FIELDS if k != 'error_template')
        return f"InterpreterConfig({items})"


def _load_object(path: str):
    module_name, _, attr = path.partition(':')
    if not attr:
        module_name, _, attr = path.rpartition('.')
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Cannot load {path!r}: no attribute {attr!r}") from None


def _host_value(value: Any) -> Any:
    if isinstance(value, ClassIdentifier):
        return value.target
    return unwrap(value)


# ===================================================================
# 2. Interpreter facade
# ===================================================================

class Interpreter:
    """Evaluates syntax trees against a global namespace and lets the host read and write it."""

    def __init__(self, config: Optional[InterpreterConfig] = None, namespace: Optional[NameSpace] = None):
        self.config = config or InterpreterConfig()
        if namespace is None:
            registry = ClassRegistry(bridge=self.config.host_bridge,
                                     auto_import_modules=self.config.auto_import_modules)
            namespace = NameSpace(None, 'global', class_registry=registry,
                                  default_imports=self.config.default_imports)
        self.global_namespace = namespace
        self.evaluator = Evaluator(self)
        self.class_generator = ClassGenerator(self)

    @property
    def strict(self) -> bool:
        return self.config.strict

    def debug(self, *parts):
        if self.config.debug:
            print("[DBG]", *parts, file=sys.stderr)

    def trace_node(self, node: Node):
        if self.config.trace:
            print("[TRACE]", f"{node.file}:{node.line}", node.text, file=sys.stderr)

    # -- evaluation ----------------------------------------------------

    def eval(self, node_or_nodes, namespace: Optional[NameSpace] = None) -> Any:
        """Evaluate a node or a sequence of top-level nodes; returns the last value, unwrapped.

        Top-level statements run directly in the namespace, as if in a method
        body. A top-level `return` ends evaluation with its value.
        """
        ns = namespace or self.global_namespace
        nodes = list(node_or_nodes) if isinstance(node_or_nodes, (list, tuple)) else [node_or_nodes]
        callstack = CallStack(ns)
        ret = self.evaluator.eval_block(Block(nodes), callstack, override_namespace=True)
        if isinstance(ret, ReturnControl):
            if ret.kind != ReturnControl.RETURN:
                raise EvalError(f"'{ret.kind}' outside of a loop or switch", ret.node, callstack)
            ret = ret.value
        return _host_value(ret)

    # -- host access ---------------------------------------------------

    def get_namespace(self) -> NameSpace:
        return self.global_namespace

    def get(self, name: str) -> Any:
        """The value of a (possibly dotted) name in the global namespace, unwrapped; None if undefined."""
        try:
            value = self.global_namespace.get(name, self)
        except UtilEvalException as e:
            raise e.to_eval_error(f"get({name})", HOST_CALL, CallStack(self.global_namespace))
        return _host_value(value)

    def set(self, name: str, value: Any):
        """Assign `value` (wrapped) to a variable of the global namespace."""
        ns = self.global_namespace
        try:
            if '.' in name:
                lhs = ns.get_name_resolver(name).to_lvalue(CallStack(ns), self)
                lhs.assign(wrap(value), self.strict)
            else:
                ns.set_variable(name, wrap(value), False)
        except UtilEvalException as e:
            raise e.to_eval_error(f"set({name})", HOST_CALL, CallStack(ns))

    def unset(self, name: str):
        if '.' in name:
            raise EvalError(f"Can't unset dotted name: {name}", HOST_CALL)
        self.global_namespace.unset_variable(name)

    def import_object(self, obj: Any):
        """Make `obj`'s fields and methods resolvable by unqualified name in the global namespace."""
        self.global_namespace.import_object(obj)

    def as_interface(self, cls):
        """The global namespace viewed as an instance of the host interface `cls`."""
        return self.global_namespace.get_this(self).get_interface(cls)

    def invoke_method(self, this: This, name: str, args=()) -> Any:
        """Call a scripted method of `this` from host code, with host arguments and result."""
        if not isinstance(this, This):
            raise TypeError(f"invoke_method() needs a This, got {type(this).__name__}")
        return unwrap(this.invoke_method(name, [wrap(a) for a in args], self))

    def __repr__(self) -> str:
        return f"<Interpreter strict={self.strict} namespace={self.global_namespace.name}>"


# ===================================================================
# 3. Script execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of evaluating a tree."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_line: Optional[int] = None

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_line is not None and self.error_line > 0 and not msg.startswith("Error on line "):
            return f"Error on line {self.error_line}: {msg}"
        return msg


class ScriptRunner:
    """Runs trees through an Interpreter and reports failures as data instead of raising."""

    def __init__(self, interpreter: Optional[Interpreter] = None, config: Optional[InterpreterConfig] = None):
        self.interpreter = interpreter or Interpreter(config)

    def handle_node(self, node_or_nodes, source: Optional[str] = None) -> ExecutionResult:
        """Evaluate and return an ExecutionResult; `source` enables a source excerpt in errors."""
        try:
            value = self.interpreter.eval(node_or_nodes)
        except EvalError as e:
            line = e.error_line if e.node is not None else None
            return ExecutionResult(status='error', error_message=self._format_eval_error(e, source),
                                   error_line=line)
        except InterpreterError as e:
            return ExecutionResult(status='error', error_message=f"InternalError: {e}")
        return ExecutionResult(status='success', value=value)

    def _format_eval_error(self, e: EvalError, source: Optional[str]) -> str:
        kind = "TargetError" if isinstance(e, TargetException) else "EvalError"
        msg = f"{kind}: {e.format(self.interpreter.config.error_template)}"
        if source is not None and e.node is not None:
            context = self._source_context(source, e.error_line)
            if context:
                msg = f"{msg}\n{context}"
        return msg

    def _source_context(self, source: str, line: int, radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        return "\n".join(out)
