"""The explicit per-evaluation stack of namespaces."""

from typing import List

from jive.jive_errors import InterpreterError


class CallStack:
    """A stack of NameSpace frames; `top()` is the current frame.

    One CallStack belongs to one evaluation and must never be mutated by two
    threads at once. `get(0)` is the top, `get(depth() - 1)` the bottom.
    """

    def __init__(self, namespace=None):
        self._stack: List = []
        if namespace is not None:
            self.push(namespace)

    def clear(self):
        self._stack.clear()

    def push(self, namespace):
        self._stack.append(namespace)

    def top(self):
        return self.get(0)

    def get(self, depth: int):
        if depth < 0 or depth >= len(self._stack):
            return None
        return self._stack[-1 - depth]

    def set(self, depth: int, namespace):
        self._stack[-1 - depth] = namespace

    def pop(self):
        if not self._stack:
            raise InterpreterError("pop on empty CallStack")
        return self._stack.pop()

    def swap(self, namespace):
        """Replace the top frame, returning the old one."""
        if not self._stack:
            raise InterpreterError("swap on empty CallStack")
        old = self._stack[-1]
        self._stack[-1] = namespace
        return old

    def depth(self) -> int:
        return len(self._stack)

    def frames(self) -> List:
        """Frames from top to bottom."""
        return list(reversed(self._stack))

    def copy(self) -> 'CallStack':
        cs = CallStack()
        cs._stack = list(self._stack)
        return cs

    def __len__(self) -> int:
        return len(self._stack)

    def __str__(self) -> str:
        return "CallStack:\n" + "\n".join(f"\t{ns}" for ns in self.frames())
