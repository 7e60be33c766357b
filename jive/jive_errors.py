"""
Error kinds raised by the JIVE interpreter.

Two families reach the embedder: `EvalError` (the script cannot continue
evaluating the current construct) and `TargetException` (an exception thrown
by the script itself or by host code it called). Low level components that do
not know the current AST node raise `UtilEvalException` / `UtilTargetException`,
which evaluator code converts with `to_eval_error()` before re-raising.
"""

from typing import Any, Optional

import pystache

DEFAULT_ERROR_TEMPLATE = (
    "<In file '{{file}}:{{line}}'>: {{message}}\n"
    "\tcode: {{code}}\n"
    "{{trace}}"
)

_renderer = pystache.Renderer(escape=lambda u: u, missing_tags='ignore')


def render_error(template: str, context: dict) -> str:
    return _renderer.render(template, context)


class InterpreterError(RuntimeError):
    """An internal consistency violation. Indicates an interpreter bug; never script-catchable."""
    pass


class ReflectError(Exception):
    """A host reflective failure: missing member, bad arity, non-instantiable class."""
    pass


class ClassGenerationError(Exception):
    """The class backend could not translate a scripted class body."""
    pass


class EvalError(Exception):
    """The script cannot continue evaluating the current construct.

    Carries the offending node and a frozen copy of the call stack so that
    later frame pops do not corrupt the reported trace.
    """

    def __init__(self, message: str, node: Any = None, callstack: Any = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self._message = message
        self.node = node
        self.callstack = callstack.copy() if callstack is not None else None
        if cause is not None:
            self.__cause__ = cause

    @property
    def raw_message(self) -> str:
        return self._message

    def prepend_message(self, s: Optional[str]):
        if not s:
            return
        self._message = s if not self._message else f"{s} : {self._message}"

    def rethrow(self, prefix: str):
        self.prepend_message(prefix)
        raise self

    @property
    def error_text(self) -> str:
        return self.node.text if self.node is not None else "<unknown error>"

    @property
    def error_line(self) -> int:
        return self.node.line if self.node is not None else -1

    @property
    def error_file(self) -> str:
        return self.node.file if self.node is not None else "<unknown file>"

    def script_stack_trace(self) -> str:
        if self.callstack is None:
            return "<Unknown>"
        lines = []
        for ns in self.callstack.frames():
            if not ns.is_method:
                continue
            node = ns.caller_info
            entry = "\nCalled from method: " + ns.qualified_name()
            if node is not None:
                entry += f" : at Line: {node.line} : in file: {node.file} : {node.text}"
            lines.append(entry)
        return ''.join(lines)

    def context(self) -> dict:
        return {
            'file': self.error_file,
            'line': self.error_line,
            'message': self.message_detail(),
            'code': self.error_text,
            'trace': self.script_stack_trace() if self.callstack is not None else '',
        }

    def message_detail(self) -> str:
        return self._message

    def format(self, template: str = DEFAULT_ERROR_TEMPLATE) -> str:
        return render_error(template, self.context())

    @property
    def message(self) -> str:
        return self.format()

    def __str__(self) -> str:
        return self.format()


class TargetException(EvalError):
    """Wraps an exception thrown by a script `throw` or by host code.

    `in_native` is set when the exception was raised inside host code, so
    stack traces of purely scripted throws don't dump irrelevant host frames.
    Script `catch` clauses observe `target`, never the wrapper.
    """

    def __init__(self, message: str, target: BaseException, node: Any = None, callstack: Any = None, in_native: bool = False):
        super().__init__(message, node, callstack, cause=target)
        self.target = target
        self.in_native = in_native

    def exception_in_native(self) -> bool:
        return self.in_native

    def message_detail(self) -> str:
        msg = self._message or ''
        return f"{msg}\nTarget exception: {type(self.target).__name__}: {self.target}" if self.target is not None else msg


class UtilEvalException(Exception):
    """Raised by components that lack the current node; must be converted before leaving the evaluator."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    def to_eval_error(self, msg: Optional[str], node: Any, callstack: Any) -> EvalError:
        full = f"{msg} : {self.message}" if msg else self.message
        return EvalError(full, node, callstack, cause=self.__cause__)

    def __str__(self) -> str:
        return self.message


class UtilTargetException(UtilEvalException):
    """A UtilEvalException carrying a target exception to be thrown into the script."""

    def __init__(self, target: BaseException, message: Optional[str] = None, in_native: bool = False):
        super().__init__(message or str(target), cause=target)
        self.target = target
        self.in_native = in_native

    def to_eval_error(self, msg: Optional[str], node: Any, callstack: Any) -> TargetException:
        full = f"{msg} : {self.message}" if msg else self.message
        return TargetException(full, self.target, node, callstack, in_native=self.in_native)
