"""
The class registry: resolves dotted names to host classes (and modules used as
static holders), keeps the classes defined by scripts, and notifies namespaces
when its caches are reloaded.

All caches are shared between concurrent evaluations and guarded by a lock.
"""

import collections.abc
import importlib
import inspect
import sys
import threading
import weakref
from typing import Any, Dict, Optional

from jive.jive_reflect import HostBridge, DEFAULT_BRIDGE

# Java-flavoured names for common host classes.
DEFAULT_ALIASES = {
    'Object': object,
    'String': str,
    'Boolean': bool,
    'Integer': int,
    'Long': int,
    'Short': int,
    'Byte': int,
    'Character': str,
    'Float': float,
    'Double': float,
    'Throwable': BaseException,
    'Exception': Exception,
    'RuntimeException': RuntimeError,
    'Error': BaseException,
    'ArithmeticException': ArithmeticError,
    'NullPointerException': AttributeError,
    'ClassCastException': TypeError,
    'IllegalArgumentException': ValueError,
    'IllegalStateException': RuntimeError,
    'IndexOutOfBoundsException': IndexError,
    'ArrayIndexOutOfBoundsException': IndexError,
    'UnsupportedOperationException': NotImplementedError,
    'Iterable': collections.abc.Iterable,
    'List': list,
    'Map': dict,
    'Set': set,
}

DEFAULT_IMPORTS = ('builtins',)

_ABSENT = object()


class ClassRegistry:
    """Class lookup and caches owned by a root namespace."""

    def __init__(self, bridge: Optional[HostBridge] = None, aliases: Optional[Dict[str, Any]] = None,
                 auto_import_modules: bool = True):
        self.bridge = bridge or DEFAULT_BRIDGE
        self.auto_import_modules = auto_import_modules
        self._lock = threading.RLock()
        self._aliases = dict(DEFAULT_ALIASES if aliases is None else aliases)
        self._defined: Dict[str, Any] = {}
        self._cache: Dict[str, Any] = {}
        self._listeners = weakref.WeakSet()

    # -- lookup --------------------------------------------------------

    def class_for_name(self, name: str) -> Optional[Any]:
        """Resolve a fully-qualified name to a class or module, or None."""
        with self._lock:
            if name in self._defined:
                return self._defined[name]
            if name in self._aliases:
                return self._aliases[name]
            hit = self._cache.get(name)
            if hit is not None:
                return None if hit is _ABSENT else hit
        found = self._load(name)
        with self._lock:
            self._cache[name] = _ABSENT if found is None else found
        return found

    def _load(self, name: str) -> Optional[Any]:
        parts = name.split('.')
        if not all(p.isidentifier() for p in parts):
            return None
        for i in range(len(parts), 0, -1):
            module_name = '.'.join(parts[:i])
            module = self._import(module_name, single=(i == 1 and len(parts) == 1))
            if module is None:
                continue
            obj = module
            for attr in parts[i:]:
                obj = getattr(obj, attr, None)
                if obj is None:
                    break
            if obj is None:
                return None
            if inspect.isclass(obj) or inspect.ismodule(obj):
                return obj
            return None
        return None

    def _import(self, module_name: str, single: bool):
        if module_name in sys.modules:
            return sys.modules[module_name]
        # A bare undotted name is only a module if someone already imported it.
        if single or not self.auto_import_modules:
            return None
        try:
            return importlib.import_module(module_name)
        except ImportError:
            return None

    def is_package(self, name: str) -> bool:
        obj = self.class_for_name(name)
        if inspect.ismodule(obj):
            return True
        if not self.auto_import_modules:
            return False
        try:
            importlib.import_module(name)
        except ImportError:
            return False
        return True

    def import_module(self, name: str):
        """Explicitly import a module so undotted references to it resolve."""
        try:
            module = importlib.import_module(name)
        except ImportError:
            return None
        with self._lock:
            self._cache[name] = module
        return module

    # -- scripted classes ----------------------------------------------

    def define_class(self, name: str, cls: Any):
        with self._lock:
            self._defined[name] = cls
        self._notify()

    def defined_class(self, name: str) -> Optional[Any]:
        with self._lock:
            return self._defined.get(name)

    # -- listeners -----------------------------------------------------

    def add_listener(self, listener):
        with self._lock:
            self._listeners.add(listener)

    def remove_listener(self, listener):
        with self._lock:
            self._listeners.discard(listener)

    def reload(self):
        """Drop every cache and tell listening namespaces to forget resolved names."""
        with self._lock:
            self._cache.clear()
        self._notify()

    def _notify(self):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener.class_loader_changed()
