"""
Lexical scopes for the JIVE runtime.

A `NameSpace` holds variables, overloaded methods and imports and links to a
parent scope. A namespace with no parent is a root: it owns the class registry
shared by all of its descendants. `BlockNameSpace` is the transient child used
for `{ }` blocks, loop bodies and catch clauses.
"""

import threading
from typing import Any, Dict, List, Optional

from jive.jive_classpath import ClassRegistry, DEFAULT_IMPORTS
from jive.jive_errors import InterpreterError, UtilEvalException
from jive.jive_types import cast, ASSIGNMENT, CAST, find_most_specific_signature
from jive.jive_values import VOID, default_value, type_name


# =================================================================
# Modifiers
# =================================================================

class Modifiers:
    """A validated modifier set for a class, method or field declaration."""
    CLASS, METHOD, FIELD = 'class', 'method', 'field'

    _ALLOWED = {
        CLASS: {'public', 'protected', 'private', 'abstract', 'final', 'static', 'strictfp'},
        METHOD: {'public', 'protected', 'private', 'abstract', 'final', 'static', 'native',
                 'synchronized', 'strictfp', 'default'},
        FIELD: {'public', 'protected', 'private', 'final', 'static', 'transient', 'volatile'},
    }
    _VISIBILITY = ('public', 'protected', 'private')

    def __init__(self, context: str = FIELD, names=()):
        self.context = context
        self._names = set()
        for name in names:
            self.add_modifier(name)

    def add_modifier(self, name: str):
        if name in self._names:
            raise UtilEvalException(f"Duplicate modifier: {name}")
        if name not in self._ALLOWED[self.context]:
            raise UtilEvalException(f"{self.context} cannot be declared '{name}'")
        if name in self._VISIBILITY and any(v in self._names for v in self._VISIBILITY):
            raise UtilEvalException("public/private/protected cannot be used in combination.")
        self._names.add(name)

    def has_modifier(self, name: str) -> bool:
        return name in self._names

    def __iter__(self):
        return iter(sorted(self._names))

    def __bool__(self) -> bool:
        return bool(self._names)

    def __repr__(self) -> str:
        return f"Modifiers({', '.join(sorted(self._names))})"


def as_modifiers(modifiers, context: str = Modifiers.FIELD) -> Optional[Modifiers]:
    if modifiers is None or isinstance(modifiers, Modifiers):
        return modifiers
    return Modifiers(context, modifiers)


# =================================================================
# Variable
# =================================================================

class Variable:
    """A named storage cell. `type` None means loosely typed.

    A Variable can stand in for an imported host field; then `lvalue` is the
    delegate and reads and writes go through it.
    """
    DECLARATION, ASSIGNMENT = 'declaration', 'assignment'

    def __init__(self, name: str, type=None, value: Any = None, modifiers: Optional[Modifiers] = None,
                 lvalue=None):
        self.name = name
        self.type = type
        self.modifiers = modifiers
        self.lvalue = lvalue
        self.value = None
        if lvalue is None:
            self.set_value(value, Variable.DECLARATION)

    def set_value(self, value: Any, context: str):
        """Store `value`; None means "no initializer" and stores the type's default."""
        if self.has_modifier('final'):
            if self.value is not None:
                raise UtilEvalException(f"Final variable '{self.name}', can't re-assign.")
            if value is None and context == Variable.DECLARATION:
                return
        if value is None:
            value = default_value(self.type)
        if self.lvalue is not None:
            self.lvalue.assign(value, False)
            return
        if self.type is not None:
            value = cast(value, self.type, CAST if context == Variable.DECLARATION else ASSIGNMENT)
        self.value = value

    def get_value(self) -> Any:
        if self.lvalue is not None:
            return self.lvalue.get_value()
        return self.value

    def has_modifier(self, name: str) -> bool:
        return self.modifiers is not None and self.modifiers.has_modifier(name)

    def __repr__(self) -> str:
        return f"<Variable {self.name}: {type_name(self.type)} = {self.value!r}>"


# =================================================================
# NameSpace
# =================================================================

class NameSpace:
    """A lexical scope: variables, method overloads, imports and a parent link."""

    def __init__(self, parent: Optional['NameSpace'] = None, name: Optional[str] = None,
                 class_registry: Optional[ClassRegistry] = None, default_imports=DEFAULT_IMPORTS):
        self.name = name or 'anonymous'
        self.parent = parent
        self.variables: Dict[str, Variable] = {}
        self.methods: Dict[str, List[Any]] = {}
        self.imported_classes: Dict[str, str] = {}
        self.imported_packages: List[str] = []
        self.imported_objects: List[Any] = []
        self.imported_static: List[Any] = []
        self.package: Optional[str] = None
        self.is_class = False
        self.is_method = False
        self.class_static = None
        self.class_instance = None
        # The call-site node that created this frame, for stack traces.
        self.caller_info = None
        # The method whose body runs in this frame, if any.
        self.executing_method = None
        self._this = None
        self._this_lock = threading.Lock()
        self._names: Dict[str, Any] = {}
        self._class_cache: Dict[str, Any] = {}
        self._listening = False
        if parent is None:
            self._registry = class_registry or ClassRegistry()
            self._default_imports = tuple(default_imports)
            for package in default_imports:
                self.import_package(package)
        else:
            self._registry = class_registry

    # -- structure -----------------------------------------------------

    def get_class_registry(self) -> ClassRegistry:
        ns = self
        while ns._registry is None:
            ns = ns.parent
        return ns._registry

    @property
    def bridge(self):
        return self.get_class_registry().bridge

    def get_global(self) -> 'NameSpace':
        ns = self
        while ns.parent is not None:
            ns = ns.parent
        return ns

    def qualified_name(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    def get_package(self) -> Optional[str]:
        ns = self
        while ns is not None:
            if ns.package is not None:
                return ns.package
            ns = ns.parent
        return None

    def set_package(self, package: str):
        self.package = package

    def set_class_instance(self, instance):
        self.class_instance = instance
        self.name_space_changed()

    def get_class_instance(self):
        """The nearest bound class instance up the parent chain, or None."""
        ns = self
        while ns is not None:
            if ns.class_instance is not None:
                return ns.class_instance
            if ns.class_static is not None:
                return None
            ns = ns.parent
        return None

    def set_class_static(self, cls):
        self.class_static = cls
        self.name_space_changed()

    # -- variables -----------------------------------------------------

    def get_variable(self, name: str, recurse: bool = True) -> Any:
        """The value of `name`, or VOID when it is not defined."""
        var = self.get_variable_impl(name, recurse)
        if var is None:
            return VOID
        return var.get_value()

    def get_variable_impl(self, name: str, recurse: bool = True) -> Optional[Variable]:
        var = None
        if self.is_class:
            var = self.get_imported_var(name)
        if var is None:
            var = self.variables.get(name)
        if var is None and not self.is_class:
            var = self.get_imported_var(name)
        if recurse and var is None and self.parent is not None:
            var = self.parent.get_variable_impl(name, recurse)
        return var

    def get_declared_variables(self) -> List[Variable]:
        return list(self.variables.values())

    def get_variable_names(self) -> List[str]:
        return list(self.variables)

    def set_variable(self, name: str, value: Any, strict: bool = False, recurse: bool = True):
        """Assign to an existing variable found by the normal search, or create a loose local."""
        if value is None:
            raise InterpreterError("null variable value")
        existing = self.get_variable_impl(name, recurse)
        if existing is not None:
            existing.set_value(value, Variable.ASSIGNMENT)
            return
        if strict:
            raise UtilEvalException(f"(Strict Java mode) Assignment to undeclared variable: {name}")
        self.variables[name] = Variable(name, None, value)
        self.name_space_changed()

    def set_local_variable(self, name: str, value: Any, strict: bool = False):
        self.set_variable(name, value, strict, recurse=False)

    def set_typed_variable(self, name: str, type, value: Any, modifiers: Optional[Modifiers] = None):
        """Declare a typed variable in this scope.

        Redeclaring with the same type updates the value; a different type is
        an error. An existing untyped variable is replaced.
        """
        existing = self.get_variable_impl(name, False)
        if existing is not None and existing.type is not None:
            if existing.type != type:
                raise UtilEvalException(f"Typed variable: {name} was previously declared with type: "
                                        f"{type_name(existing.type)}")
            existing.modifiers = modifiers
            if value is not None:
                existing.set_value(value, Variable.DECLARATION)
            return
        self.variables[name] = Variable(name, type, value, modifiers)
        self.name_space_changed()

    def unset_variable(self, name: str):
        if self.variables.pop(name, None) is not None:
            self.name_space_changed()

    # -- methods -------------------------------------------------------

    def set_method(self, method):
        overloads = self.methods.setdefault(method.name, [])
        for i, m in enumerate(overloads):
            if m.signature_equals(method):
                overloads[i] = method
                break
        else:
            overloads.append(method)
        self.name_space_changed()

    def get_method(self, name: str, arg_types, declared_only: bool = False):
        """The most specific method for `name` applicable to `arg_types`, or None.

        Class namespaces look at imports before local declarations; ordinary
        namespaces look at local declarations first. The search then
        continues in the parent unless `declared_only`.
        """
        method = None
        if self.is_class and not declared_only:
            method = self.get_imported_method(name, arg_types)
        if method is None:
            overloads = self.methods.get(name)
            if overloads:
                idx = find_most_specific_signature(arg_types, [m.param_types for m in overloads])
                if idx >= 0:
                    method = overloads[idx]
        if method is None and not self.is_class and not declared_only:
            method = self.get_imported_method(name, arg_types)
        if method is None and not declared_only and self.parent is not None:
            return self.parent.get_method(name, arg_types)
        return method

    def get_methods(self) -> List[Any]:
        return [m for overloads in self.methods.values() for m in overloads]

    def get_method_names(self) -> List[str]:
        return list(self.methods)

    def unset_method(self, name: str):
        if self.methods.pop(name, None) is not None:
            self.name_space_changed()

    # -- imports -------------------------------------------------------

    def import_class(self, name: str, alias: Optional[str] = None):
        self.imported_classes[alias or name.rsplit('.', 1)[-1]] = name
        self.name_space_changed()

    def import_package(self, name: str):
        if name in self.imported_packages:
            self.imported_packages.remove(name)
        self.imported_packages.append(name)
        self.name_space_changed()

    def import_object(self, obj):
        if obj in self.imported_objects:
            self.imported_objects.remove(obj)
        self.imported_objects.append(obj)
        self.name_space_changed()

    def import_static(self, cls):
        if cls in self.imported_static:
            self.imported_static.remove(cls)
        self.imported_static.append(cls)
        self.name_space_changed()

    def _import_targets(self):
        from jive.jive_this import This
        for obj in reversed(self.imported_objects):
            yield obj, isinstance(obj, This)
        for cls in reversed(self.imported_static):
            yield cls, False

    def get_imported_var(self, name: str) -> Optional[Variable]:
        from jive.jive_lvalue import LeftValue
        bridge = None
        for target, is_this in self._import_targets():
            if is_this:
                var = target.namespace.get_variable_impl(name, False)
                if var is not None:
                    return var
                continue
            bridge = bridge or self.bridge
            cap = bridge.resolve_member(target, name)
            if cap is not None and cap.kind == cap.FIELD:
                return Variable(name, None, lvalue=LeftValue.field(target, name, bridge))
        return None

    def get_imported_method(self, name: str, arg_types):
        from jive.jive_methods import Method
        for target, is_this in self._import_targets():
            if is_this:
                method = target.namespace.get_method(name, arg_types, declared_only=True)
                if method is not None:
                    return method
                continue
            cap = self.bridge.resolve_member(target, name)
            if cap is None or cap.kind != cap.METHOD:
                continue
            arity = cap.arity()
            if arity is None or len(arg_types) in arity:
                return Method.from_capability(cap, len(arg_types), self)
        return None

    def get_imported_class_name(self, name: str) -> Optional[str]:
        ns = self
        while ns is not None:
            full = ns.imported_classes.get(name)
            if full is not None:
                return full
            ns = ns.parent
        return None

    def _all_imported_packages(self) -> List[str]:
        packages = []
        ns = self
        while ns is not None:
            packages.extend(reversed(ns.imported_packages))
            ns = ns.parent
        return packages

    def get_class(self, name: str):
        """Resolve a (possibly unqualified) class name through this scope's imports."""
        if name in self._class_cache:
            return self._class_cache[name]
        cls = self._get_class_impl(name)
        if cls is not None:
            self._class_cache[name] = cls
        return cls

    def _get_class_impl(self, name: str):
        registry = self.get_class_registry()
        full = self.get_imported_class_name(name)
        if full is not None:
            cls = registry.class_for_name(full)
            if cls is not None:
                return cls
        cls = registry.class_for_name(self._package_qualified(name)) if self.get_package() else None
        if cls is not None:
            return cls
        cls = registry.class_for_name(name)
        if cls is not None:
            return cls
        if '.' not in name:
            for package in self._all_imported_packages():
                cls = registry.class_for_name(f"{package}.{name}")
                if cls is not None:
                    return cls
        return None

    def _package_qualified(self, name: str) -> str:
        return f"{self.get_package()}.{name}"

    # -- object closures -----------------------------------------------

    def get_this(self, interpreter):
        with self._this_lock:
            if self._this is None:
                from jive.jive_this import This
                self._this = This(self, interpreter)
            return self._this

    def get_super(self, interpreter):
        return (self.parent or self).get_this(interpreter)

    def get_global_this(self, interpreter):
        return self.get_global().get_this(interpreter)

    def invoke_method(self, name: str, args, interpreter, callstack=None, caller_info=None):
        return self.get_this(interpreter).invoke_method(name, args, interpreter, callstack, caller_info,
                                                        declared_only=False)

    # -- name resolution cache -------------------------------------------

    def get_name_resolver(self, ambiguous_name: str):
        from jive.jive_names import Name
        name = self._names.get(ambiguous_name)
        if name is None:
            name = Name(self, ambiguous_name)
            self._names[ambiguous_name] = name
            if not self._listening:
                self.get_class_registry().add_listener(self)
                self._listening = True
        return name

    def get(self, name: str, interpreter):
        """Evaluate a dotted name in this scope and return its value."""
        from jive.jive_callstack import CallStack
        return self.get_name_resolver(name).to_object(CallStack(self), interpreter)

    def name_space_changed(self):
        self._names = {}
        self._class_cache = {}

    def class_loader_changed(self):
        self.name_space_changed()

    def clear(self):
        self.variables.clear()
        self.methods.clear()
        self.imported_classes.clear()
        self.imported_packages.clear()
        self.imported_objects.clear()
        self.imported_static.clear()
        if self.parent is None:
            for package in self._default_imports:
                self.import_package(package)
        self.name_space_changed()

    def get_all_names(self) -> List[str]:
        names = []
        ns = self
        while ns is not None:
            names.extend(ns.variables)
            names.extend(ns.methods)
            ns = ns.parent
        return names

    def __repr__(self) -> str:
        kind = ' (class)' if self.is_class else ' (method)' if self.is_method else ''
        return f"NameSpace: {self.name}{kind}"


class BlockNameSpace(NameSpace):
    """The scope of a `{ }` block, loop or catch clause.

    Untyped assignment only binds here when the variable was declared in this
    block; otherwise it goes to the enclosing scope. `this` and `super` are
    those of the enclosing non-block scope, and imports and method
    declarations are delegated to the parent.
    """

    def __init__(self, parent: NameSpace, name: Optional[str] = None):
        if parent is None:
            raise InterpreterError("BlockNameSpace without a parent")
        super().__init__(parent, name or f"{parent.name}/BlockNameSpace")

    def set_variable(self, name: str, value: Any, strict: bool = False, recurse: bool = True):
        if self._we_have_var(name):
            super().set_variable(name, value, strict, recurse=False)
        else:
            self.parent.set_variable(name, value, strict, recurse)

    def set_block_variable(self, name: str, value: Any):
        super().set_variable(name, value, False, recurse=False)

    def _we_have_var(self, name: str) -> bool:
        return name in self.variables

    def get_non_block_parent(self) -> NameSpace:
        ns = self.parent
        while isinstance(ns, BlockNameSpace):
            ns = ns.parent
        return ns

    def get_this(self, interpreter):
        return self.get_non_block_parent().get_this(interpreter)

    def get_super(self, interpreter):
        return self.get_non_block_parent().get_super(interpreter)

    def import_class(self, name: str, alias: Optional[str] = None):
        self.parent.import_class(name, alias)

    def import_package(self, name: str):
        self.parent.import_package(name)

    def set_method(self, method):
        self.parent.set_method(method)

    def __repr__(self) -> str:
        return f"BlockNameSpace: {self.name}"
