"""
Scripted class generation.

A script `class` declaration becomes a real Python class built with `type()`.
Static members are evaluated once into a class static namespace. Each
instance gets one namespace, parented on the class static namespace, into
which the instance members of every scripted class in its hierarchy are
evaluated base-first, so overriding methods replace the ones they override.
The generated Python methods are thin dispatchers back into the instance's
`This`, so host code can call scripted objects like any other object.
"""

import abc
import inspect
import itertools
from typing import Any, Dict, List, Optional

from jive.jive_callstack import CallStack
from jive.jive_errors import ClassGenerationError, EvalError, TargetException, UtilEvalException
from jive.jive_namespace import Modifiers, NameSpace, Variable
from jive.jive_nodes import (
    Block, ClassDeclaration, HOST_CALL, MethodDeclaration, MethodInvocation, TypedVariableDeclaration,
)
from jive.jive_reflect import Capability, HostInvocationError
from jive.jive_this import host_exception
from jive.jive_types import find_most_specific_signature, get_types
from jive.jive_values import PrimitiveType, ArrayType, type_name, unwrap, wrap

STATIC_THIS = '_jive_static_this'
INSTANCE_THIS = '_jive_this'


def is_scripted_class(cls) -> bool:
    """Whether `cls` itself (not just a base) was generated from a script declaration."""
    return inspect.isclass(cls) and STATIC_THIS in vars(cls)


def _scripted_chain(cls) -> List[type]:
    """The scripted classes and interfaces of `cls`'s hierarchy, base-first."""
    return [k for k in reversed(cls.__mro__) if is_scripted_class(k)]


def _scripted_superclass(cls) -> Optional[type]:
    """The nearest scripted class (not interface) `cls` extends, if any."""
    for k in cls.__mro__[1:]:
        if is_scripted_class(k) and not k._jive_is_interface:
            return k
    return None


def _class_variable(instance_ns, cls, name: str) -> Optional[Variable]:
    var = instance_ns.variables.get(name)
    if var is not None:
        return var
    for k in cls.__mro__:
        if is_scripted_class(k):
            var = k._jive_static_this.namespace.variables.get(name)
            if var is not None:
                return var
    return None


# =================================================================
# Generated members
# =================================================================

def _instance_dispatcher(name: str):
    def method(self, *args):
        this = object.__getattribute__(self, INSTANCE_THIS)
        try:
            return unwrap(this.invoke_method(name, [wrap(a) for a in args]))
        except TargetException as te:
            raise host_exception(te) from te
    method.__name__ = name
    return method


def _static_dispatcher(static_this, name: str):
    def method(*args):
        try:
            return unwrap(static_this.invoke_method(name, [wrap(a) for a in args], declared_only=True))
        except TargetException as te:
            raise host_exception(te) from te
    method.__name__ = name
    return staticmethod(method)


def _getattr(self, name):
    if name.startswith('_'):
        raise AttributeError(name)
    try:
        this = object.__getattribute__(self, INSTANCE_THIS)
    except AttributeError:
        raise AttributeError(name) from None
    var = _class_variable(this.namespace, type(self), name)
    if var is None:
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
    return unwrap(var.get_value())


def _setattr(self, name, value):
    if not name.startswith('_'):
        this = self.__dict__.get(INSTANCE_THIS)
        if this is not None:
            var = _class_variable(this.namespace, type(self), name)
            if var is not None:
                try:
                    var.set_value(wrap(value), Variable.ASSIGNMENT)
                except UtilEvalException as e:
                    raise TypeError(e.message) from e
                return
    object.__setattr__(self, name, value)


class _ClassBody:
    """A class body split into the parts evaluated per class and per instance."""

    def __init__(self, name: str, body: Block, is_interface: bool):
        self.nested_classes = []
        self.static_parts = []
        self.instance_parts = []
        self.instance_methods = []
        self.abstract_methods = []
        self.constructors = []
        for node in body.statements:
            if isinstance(node, ClassDeclaration):
                self.nested_classes.append(node)
            elif isinstance(node, MethodDeclaration):
                if 'static' in node.modifiers:
                    self.static_parts.append(node)
                elif node.name == name and node.return_type is None:
                    self.constructors.append(node)
                elif 'abstract' in node.modifiers or (is_interface and 'default' not in node.modifiers):
                    self.abstract_methods.append(node)
                else:
                    self.instance_methods.append(node)
            elif isinstance(node, TypedVariableDeclaration) and (is_interface or 'static' in node.modifiers):
                self.static_parts.append(node)
            else:
                self.instance_parts.append(node)


# =================================================================
# ClassGenerator
# =================================================================

class ClassGenerator:
    """Builds Python classes from script class declarations and constructs their instances."""

    def __init__(self, interpreter):
        self.interpreter = interpreter
        self._anonymous_ids = itertools.count(1)

    def _dbg(self, *parts):
        self.interpreter.debug(*parts)

    @property
    def evaluator(self):
        return self.interpreter.evaluator

    # -----------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------

    def generate_class(self, node: ClassDeclaration, callstack) -> type:
        """Evaluate a class declaration and return the generated class."""
        superclass = None
        if node.superclass is not None:
            superclass = self._resolve_base(node.superclass, callstack)
        interfaces = [self._resolve_base(i, callstack) for i in node.interfaces]
        if node.is_interface and superclass is not None:
            interfaces.insert(0, superclass)
            superclass = None
        try:
            modifiers = Modifiers(Modifiers.CLASS, node.modifiers)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)
        return self.generate(node.name, modifiers, superclass, interfaces, node.body, node.is_interface,
                             callstack, node)

    def generate_anonymous_class(self, base, body: Block, callstack, node) -> type:
        """The class of `new Base(...) { body }`: implements Base if it is an interface, else extends it."""
        name = f"{base.__name__}${next(self._anonymous_ids)}"
        if getattr(base, '_jive_is_interface', False):
            superclass, interfaces = None, [base]
        else:
            superclass, interfaces = base, []
        return self.generate(name, Modifiers(Modifiers.CLASS), superclass, interfaces, body, False, callstack,
                             node, anonymous=True)

    def _resolve_base(self, type_ref, callstack) -> type:
        t = self.evaluator.resolve_type(type_ref, callstack)
        if t is None or isinstance(t, (PrimitiveType, ArrayType)) or not inspect.isclass(t):
            raise EvalError(f"Can't extend or implement: {type_name(t)}", type_ref, callstack)
        return t

    def generate(self, name: str, modifiers: Modifiers, superclass, interfaces, body: Block, is_interface: bool,
                 callstack, node, anonymous: bool = False) -> type:
        enclosing = callstack.top()
        package = enclosing.get_package()
        class_name = f"{enclosing.name}${name}" if enclosing.is_class else name
        fq_name = f"{package}.{class_name}" if package else class_name

        if superclass is not None and getattr(superclass, '_jive_final', False):
            raise EvalError(f"Cannot inherit from final class: {type_name(superclass)}", node, callstack)

        parts = _ClassBody(name, body, is_interface)
        static_ns = NameSpace(enclosing, class_name)
        static_ns.is_class = True
        static_this = static_ns.get_this(self.interpreter)

        callstack.push(static_ns)
        try:
            nested = {n.name: self.evaluator.eval(n, callstack) for n in parts.nested_classes}

            cls = self._build_class(name, class_name, package, modifiers, superclass, interfaces, parts,
                                    static_this, is_interface, anonymous, nested)
            registry = enclosing.get_class_registry()
            registry.define_class(fq_name, cls)
            if '$' in fq_name and not anonymous:
                registry.define_class(fq_name.replace('$', '.'), cls)
            if not anonymous:
                enclosing.import_class(fq_name, name)
            static_ns.set_class_static(cls)
            self._dbg("generated class:", fq_name, "bases:", [b.__name__ for b in cls.__bases__])

            for part in parts.static_parts:
                if isinstance(part, MethodDeclaration):
                    method = self.evaluator.build_method(part, static_ns, callstack)
                    method.declaring_class = cls
                    static_ns.set_method(method)
                else:
                    self.evaluator.eval(part, callstack)
        finally:
            callstack.pop()
        return cls

    def _build_class(self, name, class_name, package, modifiers, superclass, interfaces, parts, static_this,
                     is_interface, anonymous, nested) -> type:
        bases = tuple(b for b in [superclass] + list(interfaces) if b is not None) or (object,)
        members: Dict[str, Any] = {
            '__module__': package or 'jive.scripted',
            '__qualname__': class_name,
            STATIC_THIS: static_this,
            '_jive_is_interface': is_interface,
            '_jive_anonymous': anonymous,
            '_jive_final': modifiers.has_modifier('final'),
            '_jive_body': parts,
        }
        members.update(nested)
        if not is_interface:
            generator = self

            def __init__(self, *args):
                if INSTANCE_THIS in self.__dict__:
                    return
                try:
                    generator.initialize_instance(self, type(self), [wrap(a) for a in args],
                                                  CallStack(static_this.namespace), HOST_CALL)
                except TargetException as te:
                    raise host_exception(te) from te

            members['__init__'] = __init__
            members['__getattr__'] = _getattr
            members['__setattr__'] = _setattr

        declared = set()
        for decl in parts.instance_methods:
            declared.add(decl.name)
            members[decl.name] = _instance_dispatcher(decl.name)
        for decl in parts.abstract_methods:
            if decl.name not in declared:
                members[decl.name] = abc.abstractmethod(_instance_dispatcher(decl.name))
        for decl in parts.static_parts:
            if isinstance(decl, MethodDeclaration):
                members[decl.name] = _static_dispatcher(static_this, decl.name)

        if 'toString' in declared:
            members['__str__'] = lambda self: str(self.toString())
        if 'equals' in declared:
            members['__eq__'] = lambda self, other: bool(self.equals(other))
            members['__hash__'] = object.__hash__
        if 'hashCode' in declared:
            members['__hash__'] = lambda self: int(self.hashCode())

        abstract = is_interface or modifiers.has_modifier('abstract')
        meta = abc.ABCMeta if abstract else type
        try:
            return meta(name, bases, members)
        except TypeError as e:
            raise ClassGenerationError(f"Can't generate class {class_name}: {e}") from e

    # -----------------------------------------------------------------
    # Instances
    # -----------------------------------------------------------------

    def construct(self, cls, args, callstack, node) -> Any:
        """`new Cls(args)` for a scripted class."""
        if cls._jive_is_interface or inspect.isabstract(cls):
            raise EvalError(f"Can't create instance of abstract class or interface: {type_name(cls)}", node,
                            callstack)
        try:
            instance = cls.__new__(cls)
        except Exception as e:
            raise TargetException("Object constructor", e, node, callstack, in_native=True) from e
        self.initialize_instance(instance, cls, args, callstack, node)
        return instance

    def initialize_instance(self, instance, cls, args, callstack, caller_info):
        """Bind the instance namespace, evaluate instance members and run the constructors."""
        static_ns = cls._jive_static_this.namespace
        instance_ns = NameSpace(static_ns, cls.__name__)
        instance_ns.is_class = True
        instance_ns.set_class_instance(instance)
        object.__setattr__(instance, INSTANCE_THIS, instance_ns.get_this(self.interpreter))
        class_methods = {}
        object.__setattr__(instance, '_jive_class_methods', class_methods)

        callstack.push(instance_ns)
        try:
            for k in _scripted_chain(cls):
                methods = []
                for decl in k._jive_body.instance_methods:
                    method = self.evaluator.build_method(decl, instance_ns, callstack)
                    method.declaring_class = k
                    instance_ns.set_method(method)
                    methods.append(method)
                class_methods[k] = methods
            self._construct_level(instance, cls, instance_ns, args, callstack, caller_info, None)
        finally:
            callstack.pop()

    def _constructors(self, cls, instance_ns, callstack) -> List[Any]:
        methods = []
        for decl in cls._jive_body.constructors:
            method = self.evaluator.build_method(decl, instance_ns, callstack)
            method.declaring_class = cls
            methods.append(method)
        return methods

    def _construct_level(self, instance, cls, instance_ns, args, callstack, caller_info, calling_constructor):
        """Run one class's part of construction: super or this(), field initializers, constructor body."""
        constructors = self._constructors(cls, instance_ns, callstack)
        constructor = None
        if constructors:
            try:
                idx = find_most_specific_signature(get_types(args), [c.param_types for c in constructors])
            except UtilEvalException as e:
                raise e.to_eval_error("Constructor", caller_info, callstack)
            if idx < 0:
                sig = ', '.join(type_name(t) for t in get_types(args))
                raise EvalError(f"Constructor not found: {cls.__name__}({sig})", caller_info, callstack)
            constructor = constructors[idx]
            if calling_constructor is not None and constructor.node is calling_constructor.node:
                raise EvalError("Recursive constructor call.", caller_info, callstack)
        elif args and not cls._jive_anonymous:
            raise EvalError(f"Constructor not found: {cls.__name__} takes no arguments", caller_info, callstack)

        frame = NameSpace(instance_ns, cls.__name__)
        frame.is_method = True
        frame.caller_info = caller_info
        frame.executing_method = constructor
        statements = list(constructor.body.statements) if constructor is not None else []
        first = statements[0] if statements else None
        explicit = first if isinstance(first, MethodInvocation) and first.name in ('super', 'this') else None

        callstack.push(frame)
        try:
            if constructor is not None:
                constructor.bind_arguments(frame, args, self.interpreter, callstack, caller_info)
            if explicit is not None:
                statements = statements[1:]
                alt_args = self.evaluator.eval_args(explicit.args, callstack)
            else:
                alt_args = list(args) if constructor is None and cls._jive_anonymous else []

            if explicit is not None and explicit.name == 'this':
                self._construct_level(instance, cls, instance_ns, alt_args, callstack, explicit, constructor)
            else:
                self._construct_super(instance, cls, instance_ns, alt_args, callstack, explicit or caller_info)
                callstack.push(instance_ns)
                try:
                    for part in cls._jive_body.instance_parts:
                        self.evaluator.eval(part, callstack)
                finally:
                    callstack.pop()

            if constructor is not None and statements:
                self._dbg("constructor:", cls.__name__, "args:", args)
                self.evaluator.eval_block(constructor.body, callstack, override_namespace=True,
                                          statements=statements)
        finally:
            callstack.pop()

    def _construct_super(self, instance, cls, instance_ns, args, callstack, caller_info):
        parent = _scripted_superclass(cls)
        if parent is not None:
            self._construct_level(instance, parent, instance_ns, args, callstack, caller_info, None)
            return
        owner = next(k for k in cls.__mro__[1:] if '__init__' in vars(k))
        if owner is object and not args:
            return
        try:
            super(cls, instance).__init__(*[unwrap(a) for a in args])
        except TypeError as e:
            raise EvalError(f"Superclass constructor not found for {cls.__name__}: {e}", caller_info,
                            callstack) from e
        except Exception as e:
            raise TargetException("Superclass constructor", e, caller_info, callstack, in_native=True) from e

    # -----------------------------------------------------------------
    # super.m()
    # -----------------------------------------------------------------

    def invoke_superclass_method(self, instance, name: str, args, interpreter, callstack, caller_info) -> Any:
        """Invoke the superclass version of `name` relative to the currently executing method's class."""
        cls = None
        ns = callstack.top()
        while ns is not None:
            method = ns.executing_method
            if method is not None and method.declaring_class is not None:
                cls = method.declaring_class
                break
            ns = ns.parent
        if cls is None:
            cls = type(instance)

        types = get_types(args)
        class_methods = instance.__dict__.get('_jive_class_methods', {})
        for base in cls.__mro__[1:]:
            if is_scripted_class(base):
                candidates = [m for m in class_methods.get(base, ()) if m.name == name]
                if candidates:
                    idx = find_most_specific_signature(types, [m.param_types for m in candidates])
                    if idx >= 0:
                        return candidates[idx].invoke(args, interpreter, callstack, caller_info)
                continue
            if name in vars(base):
                member = getattr(super(cls, instance), name)
                cap = Capability(Capability.METHOD, instance, name, member)
                try:
                    return callstack.top().bridge.invoke(cap, args)
                except HostInvocationError as e:
                    raise TargetException(f"Superclass method {name}", e.target, caller_info, callstack,
                                          in_native=True) from e
        raise UtilEvalException(f"Superclass method not found: {name} in {type_name(cls)}")
