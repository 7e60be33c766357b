"""
The JIVE tree-walking evaluator.

`Evaluator.eval(node, callstack)` is the single recursive dispatcher. A
statement evaluates to a value, or to a `ReturnControl` signal which blocks,
loops and method bodies consume. Lower layers raise `UtilEvalException` /
`UtilTargetException`; they are converted to `EvalError` / `TargetException`
here, where the offending node is known.
"""

import collections.abc
import inspect
from typing import Any, List, Optional

from jive.jive_errors import (
    EvalError, InterpreterError, ReflectError, TargetException, UtilEvalException, UtilTargetException,
)
from jive.jive_lvalue import LeftValue
from jive.jive_methods import Method, synchronized_on
from jive.jive_names import ClassIdentifier, get_static_member, invoke_object_method
from jive.jive_namespace import BlockNameSpace, Modifiers
from jive.jive_nodes import (
    AmbiguousName, ArrayAllocation, ArrayInitializer, Allocation, Assignment, BinaryExpression, Block, Break,
    CallSuffix, Cast, ClassDeclaration, ClassSuffix, Continue, EnhancedFor, ExpressionStatementList, FieldSuffix,
    For, If, ImportDeclaration, IndexSuffix, Literal, MethodDeclaration, MethodInvocation, Node,
    PackageDeclaration, PrimaryExpression, PropertySuffix, Return, ReturnControl, Switch, SwitchLabel, Ternary,
    Throw, Try, TypedVariableDeclaration, TypeRef, UnaryExpression, While,
)
from jive.jive_reflect import HostInvocationError
from jive.jive_this import This
from jive.jive_types import (
    ASSIGNMENT, CAST, binary_operation, cast, instance_of, is_interface, is_true, to_script_string,
    unary_operation,
)
from jive.jive_values import (
    BOOLEAN, CHAR, INT, NULL, VOID, VOID_TYPE, Array, ArrayType, NegativeArraySizeError, Primitive,
    PrimitiveType, PRIMITIVE_TYPES, array_type, type_name, wrap,
)

_COMPOUND_OPS = {
    '+=': '+', '-=': '-', '*=': '*', '/=': '/', '%=': '%', '&=': '&', '|=': '|', '^=': '^',
    '<<=': '<<', '>>=': '>>', '>>>=': '>>>',
}


class Evaluator:
    """The JIVE execution engine. One per Interpreter; holds no per-evaluation state."""

    def __init__(self, interpreter):
        self.interpreter = interpreter

    def _dbg(self, *parts):
        self.interpreter.debug(*parts)

    @property
    def strict(self) -> bool:
        return self.interpreter.strict

    # =================================================================
    # Dispatch
    # =================================================================

    def eval(self, node: Node, callstack) -> Any:
        """Evaluate one node in the namespace on top of `callstack`."""
        match node:
            case Literal():
                return node.value
            case AmbiguousName():
                return self._eval_ambiguous_name(node, callstack)
            case PrimaryExpression():
                return self.eval_primary(node, callstack, to_lhs=False)
            case MethodInvocation():
                return self._eval_method_invocation(node, callstack)
            case Assignment():
                return self._eval_assignment(node, callstack)
            case BinaryExpression():
                return self._eval_binary(node, callstack)
            case UnaryExpression():
                return self._eval_unary(node, callstack)
            case Ternary():
                cond = self.eval_condition(node.cond, callstack)
                return self.eval(node.then if cond else node.otherwise, callstack)
            case Cast():
                return self._eval_cast(node, callstack)
            case TypeRef():
                return self.resolve_type(node, callstack)
            case Allocation():
                return self._eval_allocation(node, callstack)
            case ArrayAllocation():
                return self._eval_array_allocation(node, callstack)
            case ArrayInitializer():
                return self.array_from_initializer(node, ArrayType(object), callstack)
            case Block():
                return self.eval_block(node, callstack)
            case If():
                if self.eval_condition(node.cond, callstack):
                    return self.eval(node.then, callstack)
                if node.otherwise is not None:
                    return self.eval(node.otherwise, callstack)
                return VOID
            case While():
                return self._eval_while(node, callstack)
            case For():
                return self._eval_for(node, callstack)
            case EnhancedFor():
                return self._eval_enhanced_for(node, callstack)
            case Switch():
                return self._eval_switch(node, callstack)
            case SwitchLabel():
                return VOID if node.is_default else self.eval(node.expr, callstack)
            case Try():
                return self._eval_try(node, callstack)
            case Return():
                value = VOID if node.expr is None else self.eval(node.expr, callstack)
                return ReturnControl(ReturnControl.RETURN, value, node)
            case Break() | Continue():
                if node.label is not None:
                    raise EvalError(f"Labelled break/continue not supported: {node.label}", node, callstack)
                kind = ReturnControl.BREAK if isinstance(node, Break) else ReturnControl.CONTINUE
                return ReturnControl(kind, None, node)
            case Throw():
                return self._eval_throw(node, callstack)
            case TypedVariableDeclaration():
                return self._eval_typed_declaration(node, callstack)
            case MethodDeclaration():
                return self._eval_method_declaration(node, callstack)
            case ClassDeclaration():
                return self.interpreter.class_generator.generate_class(node, callstack)
            case ImportDeclaration():
                return self._eval_import(node, callstack)
            case PackageDeclaration():
                callstack.top().set_package(node.name)
                return VOID
            case ExpressionStatementList():
                for expr in node.expressions:
                    self.eval(expr, callstack)
                return VOID
            case _:
                raise InterpreterError(f"Unknown node kind: {type(node).__name__}")

    # =================================================================
    # Blocks and control flow
    # =================================================================

    def eval_block(self, block: Optional[Block], callstack, override_namespace: bool = False,
                   statements: Optional[List[Node]] = None) -> Any:
        """Evaluate a block, in a fresh BlockNameSpace unless `override_namespace`.

        Class declarations are evaluated first so that statements may refer to
        classes declared later in the same block. Evaluation stops at the
        first ReturnControl, which is returned.
        """
        if block is None:
            return VOID
        if block.synchronized_on is not None:
            lock_value = self.eval(block.synchronized_on, callstack)
            if lock_value is NULL or lock_value is VOID or isinstance(lock_value, Primitive):
                raise EvalError("Synchronized block requires an object to lock on", block, callstack)
            with synchronized_on(lock_value):
                return self._eval_block_body(block, callstack, override_namespace, statements)
        return self._eval_block_body(block, callstack, override_namespace, statements)

    def _eval_block_body(self, block: Block, callstack, override_namespace: bool, statements) -> Any:
        nodes = block.statements if statements is None else statements
        enclosing = None
        if not override_namespace:
            enclosing = callstack.swap(BlockNameSpace(callstack.top()))
        ret = VOID
        try:
            for node in nodes:
                if isinstance(node, ClassDeclaration):
                    self.eval(node, callstack)
            for node in nodes:
                if isinstance(node, ClassDeclaration):
                    continue
                self.interpreter.trace_node(node)
                ret = self.eval(node, callstack)
                if isinstance(ret, ReturnControl):
                    break
        finally:
            if not override_namespace:
                callstack.swap(enclosing)
        return ret

    def eval_condition(self, node: Node, callstack) -> bool:
        value = self.eval(node, callstack)
        try:
            return is_true(value)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def _loop_signal(self, ret) -> Optional[str]:
        """Classify a loop body result: 'return', 'break', or None to keep looping."""
        if isinstance(ret, ReturnControl):
            if ret.kind == ReturnControl.RETURN:
                return 'return'
            if ret.kind == ReturnControl.BREAK:
                return 'break'
        return None

    def _eval_while(self, node: While, callstack) -> Any:
        first = node.do_while
        while first or self.eval_condition(node.cond, callstack):
            first = False
            if node.body is None:
                continue
            ret = self.eval(node.body, callstack)
            signal = self._loop_signal(ret)
            if signal == 'return':
                return ret
            if signal == 'break':
                break
        return VOID

    def _eval_for(self, node: For, callstack) -> Any:
        # The loop scope is swapped in rather than pushed: the loop still runs
        # as part of the enclosing frame. Each body evaluation gets its own
        # child block scope so per-iteration declarations start fresh.
        enclosing = callstack.swap(BlockNameSpace(callstack.top()))
        ret_control = VOID
        try:
            for init in node.init:
                self.eval(init, callstack)
            while node.cond is None or self.eval_condition(node.cond, callstack):
                if node.body is not None:
                    ret = self.eval(node.body, callstack)
                    signal = self._loop_signal(ret)
                    if signal == 'return':
                        ret_control = ret
                        break
                    if signal == 'break':
                        break
                for update in node.update:
                    self.eval(update, callstack)
        finally:
            callstack.swap(enclosing)
        return ret_control

    def _iteration_items(self, node: EnhancedFor, value, callstack):
        if value is NULL:
            raise EvalError("The collection, array, map, iterator, or enumeration portion of a for statement "
                            "cannot be null.", node, callstack)
        if isinstance(value, Array):
            return iter(value.elements)
        if isinstance(value, str):
            return (Primitive(c, CHAR) for c in value)
        if isinstance(value, collections.abc.Iterable) and not isinstance(value, Primitive):
            return (wrap(item) for item in value)
        raise EvalError(f"Can't iterate over type: {type_name(type(value))}", node, callstack)

    def _eval_enhanced_for(self, node: EnhancedFor, callstack) -> Any:
        iterable = self.eval(node.iterable, callstack)
        items = self._iteration_items(node, iterable, callstack)
        var_type = self.resolve_type(node.type_ref, callstack) if node.type_ref is not None else None
        modifiers = self._modifiers(node.modifiers, Modifiers.FIELD, node, callstack)

        loop_ns = BlockNameSpace(callstack.top())
        enclosing = callstack.swap(loop_ns)
        ret_control = VOID
        try:
            while True:
                try:
                    item = next(items)
                except StopIteration:
                    break
                except EvalError:
                    raise
                except Exception as e:
                    raise TargetException("for loop iterator", e, node, callstack, in_native=True) from e
                try:
                    if node.type_ref is not None:
                        loop_ns.unset_variable(node.name)
                        loop_ns.set_typed_variable(node.name, var_type, item, modifiers)
                    else:
                        loop_ns.set_block_variable(node.name, item)
                except UtilEvalException as e:
                    raise e.to_eval_error("for loop iterator variable:" + node.name, node, callstack)
                if node.body is None:
                    continue
                ret = self.eval(node.body, callstack)
                signal = self._loop_signal(ret)
                if signal == 'return':
                    ret_control = ret
                    break
                if signal == 'break':
                    break
        finally:
            callstack.swap(enclosing)
        return ret_control

    def _eval_switch(self, node: Switch, callstack) -> Any:
        switch_value = self.eval(node.expr, callstack)
        body = node.body
        if not body:
            raise EvalError("Empty switch statement.", node, callstack)
        if not isinstance(body[0], SwitchLabel):
            raise EvalError("Switch body must start with a case label.", node, callstack)

        matched = False
        for child in body:
            if isinstance(child, SwitchLabel):
                if not matched:
                    matched = child.is_default or self._switch_equals(
                        switch_value, self.eval(child.expr, callstack), node, callstack)
                continue
            if not matched:
                continue
            ret = self.eval(child, callstack)
            if isinstance(ret, ReturnControl):
                if ret.kind == ReturnControl.BREAK:
                    break
                return ret
        return VOID

    def _switch_equals(self, switch_value, label_value, node, callstack) -> bool:
        if isinstance(switch_value, Primitive) or isinstance(label_value, Primitive):
            try:
                return is_true(binary_operation(switch_value, label_value, '=='))
            except UtilEvalException as e:
                raise e.to_eval_error(f"Switch value: {node.expr.text}: ", node, callstack)
        return switch_value == label_value

    def _eval_try(self, node: Try, callstack) -> Any:
        depth = callstack.depth()
        pending = None
        ret = VOID
        try:
            try:
                ret = self.eval_block(node.block, callstack)
            except TargetException as e:
                # Frames of the methods that threw are gone; restore our depth.
                while callstack.depth() > depth:
                    callstack.pop()
                ret = self._handle_catch(node, e, callstack)
        except EvalError as e:
            pending = e

        if node.finally_block is not None:
            fin = self.eval_block(node.finally_block, callstack)
            if isinstance(fin, ReturnControl):
                # A return in finally wins over the try result and any pending error.
                return fin
        if pending is not None:
            raise pending
        return ret

    def _handle_catch(self, node: Try, error: TargetException, callstack) -> Any:
        target = error.target
        for clause in node.catches:
            param = clause.param
            catch_type = self.resolve_type(param.type_ref, callstack) if param.type_ref is not None else None
            if catch_type is not None:
                try:
                    cast(target, catch_type, ASSIGNMENT)
                except UtilEvalException:
                    continue
            self._dbg("catch:", type(target).__name__, "in", param.name)
            catch_ns = BlockNameSpace(callstack.top())
            try:
                if catch_type is not None:
                    modifiers = self._modifiers(param.modifiers, Modifiers.FIELD, param, callstack)
                    catch_ns.set_typed_variable(param.name, catch_type, target, modifiers)
                else:
                    catch_ns.set_block_variable(param.name, target)
            except UtilEvalException as e:
                raise e.to_eval_error("Catch parameter", param, callstack)
            enclosing = callstack.swap(catch_ns)
            try:
                return self.eval_block(clause.block, callstack, override_namespace=True)
            finally:
                callstack.swap(enclosing)
        raise error

    def _eval_throw(self, node: Throw, callstack):
        value = self.eval(node.expr, callstack)
        if not isinstance(value, BaseException):
            raise EvalError("Expression in 'throw' must be Exception type", node, callstack)
        raise TargetException("", value, node, callstack, in_native=False)

    # =================================================================
    # Names, suffixes and invocation
    # =================================================================

    def _eval_ambiguous_name(self, node: AmbiguousName, callstack) -> Any:
        ns = callstack.top()
        try:
            return ns.get_name_resolver(node.name).to_object(callstack, self.interpreter)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def to_lvalue(self, node: Node, callstack) -> LeftValue:
        if isinstance(node, AmbiguousName):
            try:
                return callstack.top().get_name_resolver(node.name).to_lvalue(callstack, self.interpreter)
            except UtilEvalException as e:
                raise e.to_eval_error(None, node, callstack)
        if isinstance(node, PrimaryExpression):
            return self.eval_primary(node, callstack, to_lhs=True)
        raise EvalError("Can't assign to prefix.", node, callstack)

    def eval_args(self, args: List[Node], callstack) -> List[Any]:
        values = []
        for arg in args:
            value = self.eval(arg, callstack)
            if value is VOID:
                raise EvalError(f"Undefined argument: {arg.text}", arg, callstack)
            values.append(value)
        return values

    def _eval_method_invocation(self, node: MethodInvocation, callstack) -> Any:
        args = self.eval_args(node.args, callstack)
        ns = callstack.top()
        self._dbg("invoke:", node.name, "in", ns)
        try:
            return ns.get_name_resolver(node.name).invoke_method(self.interpreter, args, callstack, node)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def eval_primary(self, node: PrimaryExpression, callstack, to_lhs: bool) -> Any:
        suffixes = node.suffixes
        if not suffixes:
            if to_lhs:
                return self.to_lvalue(node.prefix, callstack)
            return self.eval(node.prefix, callstack)

        first = suffixes[0]
        prefix = node.prefix
        if isinstance(first, ClassSuffix):
            if not isinstance(prefix, (AmbiguousName, TypeRef)):
                raise EvalError("Attempt to use .class suffix on non class.", first, callstack)
            type_ref = prefix if isinstance(prefix, TypeRef) else TypeRef(prefix.name, loc=prefix.loc)
            obj = self.resolve_type(type_ref, callstack)
            if to_lhs and len(suffixes) == 1:
                raise EvalError("Can't assign .class", first, callstack)
            suffixes = suffixes[1:]
            obj = ClassIdentifier(obj) if inspect.isclass(obj) and suffixes else obj
            if not suffixes:
                return obj
        else:
            obj = self.eval(prefix, callstack)

        last = len(suffixes) - 1
        for i, suffix in enumerate(suffixes):
            obj = self._do_suffix(suffix, obj, callstack, to_lhs and i == last)
        return obj

    def _do_suffix(self, suffix: Node, obj, callstack, to_lhs: bool) -> Any:
        try:
            if isinstance(suffix, FieldSuffix):
                return self._do_field(suffix, obj, callstack, to_lhs)
            if isinstance(suffix, CallSuffix):
                args = self.eval_args(suffix.args, callstack)
                value = invoke_object_method(callstack.top(), obj, suffix.name, args, self.interpreter,
                                             callstack, suffix)
                return LeftValue.method_result(value) if to_lhs else value
            if isinstance(suffix, IndexSuffix):
                return self._do_index(suffix, obj, callstack, to_lhs)
            if isinstance(suffix, PropertySuffix):
                return self._do_property(suffix, obj, callstack, to_lhs)
            if isinstance(suffix, ClassSuffix):
                raise EvalError("Attempt to use .class suffix on non class.", suffix, callstack)
        except UtilEvalException as e:
            raise e.to_eval_error(None, suffix, callstack)
        except ReflectError as e:
            raise EvalError(f"reflection error: {e}", suffix, callstack, cause=e)
        except HostInvocationError as e:
            raise TargetException("target exception", e.target, suffix, callstack, in_native=True) from e
        raise InterpreterError(f"Unknown suffix type: {type(suffix).__name__}")

    def _check_object(self, obj, what: str):
        if obj is NULL:
            raise UtilTargetException(AttributeError(f"Null Pointer while evaluating: {what}"))
        if obj is VOID:
            raise UtilEvalException(f"Undefined variable or class name while evaluating: {what}")
        if isinstance(obj, Primitive):
            raise UtilEvalException(f"Can't treat primitive like an object. Error while evaluating: {what}")

    def _do_field(self, suffix: FieldSuffix, obj, callstack, to_lhs: bool) -> Any:
        name = suffix.name
        self._check_object(obj, name)
        ns = callstack.top()
        bridge = ns.bridge
        if name == 'length' and isinstance(obj, Array):
            if to_lhs:
                raise UtilEvalException("Can't assign array length")
            return Primitive(obj.length, INT)

        if isinstance(obj, ClassIdentifier):
            cls = obj.target
            if to_lhs:
                static_this = getattr(cls, '_jive_static_this', None)
                if static_this is not None and static_this.namespace.get_variable_impl(name, False) is not None:
                    return LeftValue.variable(static_this.namespace, name, local=True)
                return LeftValue.field(cls, name, bridge)
            return get_static_member(ns, cls, name)

        if isinstance(obj, This):
            if to_lhs:
                return LeftValue.variable(obj.namespace, name, local=True)
            return obj.namespace.get_variable(name, False)

        instance_this = getattr(obj, '_jive_this', None) if not inspect.isclass(obj) else None
        if instance_this is not None and instance_this.namespace.get_variable_impl(name, True) is not None:
            if to_lhs:
                return LeftValue.variable(instance_this.namespace, name, local=False)
            return instance_this.namespace.get_variable(name)

        if to_lhs:
            return LeftValue.field(obj, name, bridge)
        if name == 'length' and not bridge.has_field(obj, 'length'):
            length = bridge.length(obj)
            if length is not None:
                return Primitive(length, INT)
        return bridge.get_field(obj, name)

    def _do_index(self, suffix: IndexSuffix, obj, callstack, to_lhs: bool) -> Any:
        self._check_object(obj, 'index')
        index_value = self.eval(suffix.index, callstack)
        try:
            index = cast(index_value, INT, ASSIGNMENT).value
        except UtilEvalException as e:
            raise e.to_eval_error("Arrays may only be indexed by integer types.", suffix, callstack)
        bridge = callstack.top().bridge
        if to_lhs:
            return LeftValue.index(obj, index, bridge)
        return bridge.get_index(obj, index)

    def _do_property(self, suffix: PropertySuffix, obj, callstack, to_lhs: bool) -> Any:
        if obj is VOID:
            raise EvalError("Attempt to access property on undefined variable or class name", suffix, callstack)
        if isinstance(obj, Primitive):
            raise EvalError("Attempt to access property on a primitive", suffix, callstack)
        key = self.eval(suffix.key, callstack)
        if not isinstance(key, str):
            raise EvalError("Property expression must be a String or identifier.", suffix, callstack)
        bridge = callstack.top().bridge
        if to_lhs:
            return LeftValue.property(obj, key, bridge)
        try:
            return bridge.get_property(obj, key)
        except ReflectError:
            raise EvalError(f"No such property: {key}", suffix, callstack)

    # =================================================================
    # Expressions
    # =================================================================

    def _eval_assignment(self, node: Assignment, callstack) -> Any:
        lhs = self.to_lvalue(node.lhs, callstack)
        lhs_value = None
        try:
            if node.op != '=':
                # Read before evaluating the rhs: i = 1; i += i++; leaves 2.
                lhs_value = lhs.get_value()
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

        if isinstance(node.rhs, ArrayInitializer):
            raise EvalError("Array initializer requires a typed declaration.", node, callstack)
        rhs = self.eval(node.rhs, callstack)
        if rhs is VOID:
            raise EvalError("Void assignment.", node, callstack)

        try:
            if node.op == '=':
                return lhs.assign(rhs, self.strict)
            return lhs.assign(self._operation(lhs_value, rhs, _COMPOUND_OPS[node.op]), self.strict)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def _operation(self, lhs, rhs, op: str) -> Any:
        if isinstance(lhs, str) and rhs is not VOID:
            if op != '+':
                raise UtilEvalException("Use of non + operator with String LeftValue")
            return lhs + to_script_string(rhs)
        if lhs is VOID or rhs is VOID:
            raise UtilEvalException("Illegal use of undefined object or 'void' literal")
        if lhs is NULL or rhs is NULL:
            raise UtilEvalException("Illegal use of null object or 'null' literal")
        if isinstance(lhs, Primitive) and isinstance(rhs, Primitive):
            return binary_operation(lhs, rhs, op)
        raise UtilEvalException(f"Non primitive value in operator: {type_name(type(lhs))} {op} "
                                f"{type_name(type(rhs))}")

    def _eval_binary(self, node: BinaryExpression, callstack) -> Any:
        op = node.op
        if op == 'instanceof':
            value = self.eval(node.lhs, callstack)
            if not isinstance(node.rhs, TypeRef):
                raise EvalError("instanceof requires a type", node, callstack)
            t = self.resolve_type(node.rhs, callstack)
            return Primitive(instance_of(value, t), BOOLEAN)

        if op in ('&&', '||'):
            lhs = self.eval_condition(node.lhs, callstack)
            if op == '&&' and not lhs:
                return Primitive(False, BOOLEAN)
            if op == '||' and lhs:
                return Primitive(True, BOOLEAN)
            return Primitive(self.eval_condition(node.rhs, callstack), BOOLEAN)

        lhs = self.eval(node.lhs, callstack)
        rhs = self.eval(node.rhs, callstack)
        try:
            return binary_operation(lhs, rhs, op)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def _eval_unary(self, node: UnaryExpression, callstack) -> Any:
        try:
            if node.op in ('++', '--'):
                lhs = self.to_lvalue(node.operand, callstack)
                before = lhs.get_value()
                after = unary_operation(before, node.op)
                lhs.assign(after, self.strict)
                return before if node.postfix else after
            return unary_operation(self.eval(node.operand, callstack), node.op)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def _eval_cast(self, node: Cast, callstack) -> Any:
        to_type = self.resolve_type(node.type_ref, callstack)
        value = self.eval(node.expr, callstack)
        if to_type is None:
            return value
        try:
            return cast(value, to_type, CAST)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    # =================================================================
    # Types, allocation and arrays
    # =================================================================

    def resolve_type(self, type_ref: Optional[TypeRef], callstack) -> Any:
        """The type a TypeRef names; None for the loose type."""
        if type_ref is None or type_ref.is_loose:
            return None
        name = type_ref.name
        if isinstance(name, (PrimitiveType, ArrayType)) or inspect.isclass(name):
            base = name
        elif name in PRIMITIVE_TYPES:
            base = PRIMITIVE_TYPES[name]
        else:
            try:
                base = callstack.top().get_name_resolver(name).to_class()
            except UtilEvalException as e:
                raise e.to_eval_error(None, type_ref, callstack)
        if type_ref.dims:
            if base is VOID_TYPE:
                raise EvalError("void[] is not a type", type_ref, callstack)
            return array_type(base, type_ref.dims)
        return base

    def _eval_allocation(self, node: Allocation, callstack) -> Any:
        cls = self.resolve_type(node.type_ref, callstack)
        args = self.eval_args(node.args, callstack)
        if cls is None or isinstance(cls, (PrimitiveType, ArrayType)):
            raise EvalError(f"Can't instantiate type: {type_name(cls)}", node, callstack)
        generator = self.interpreter.class_generator

        if node.body is not None:
            cls = generator.generate_anonymous_class(cls, node.body, callstack, node)

        if getattr(cls, '_jive_static_this', None) is not None:
            return generator.construct(cls, args, callstack, node)

        if is_interface(cls):
            raise EvalError(f"Can't create instance of an interface: {type_name(cls)}", node, callstack)
        try:
            return wrap(callstack.top().bridge.construct(cls, args))
        except ReflectError as e:
            raise EvalError(f"Constructor error: {e}", node, callstack, cause=e)
        except HostInvocationError as e:
            raise TargetException("Object constructor", e.target, node, callstack, in_native=True) from e

    def _eval_array_allocation(self, node: ArrayAllocation, callstack) -> Any:
        base = self.resolve_type(node.type_ref, callstack)
        if base is None:
            base = object
        dims = len(node.dims)
        if dims == 0:
            raise EvalError("Array allocation needs at least one dimension", node, callstack)
        atype = array_type(base, dims)

        if node.initializer is not None:
            return self.array_from_initializer(node.initializer, atype, callstack)

        lengths = []
        for dim in node.dims:
            if dim is None:
                lengths.append(None)
                continue
            if lengths and lengths[-1] is None:
                raise EvalError("Array dimensions must be sized from the left", node, callstack)
            value = self.eval(dim, callstack)
            try:
                lengths.append(cast(value, INT, ASSIGNMENT).value)
            except UtilEvalException as e:
                raise e.to_eval_error("Array index", dim, callstack)
        if lengths[0] is None:
            raise EvalError("Array size must be specified", node, callstack)
        try:
            return Array.allocate(atype.component, lengths)
        except NegativeArraySizeError as e:
            raise TargetException("Negative array size", e, node, callstack) from e

    def array_from_initializer(self, node: ArrayInitializer, atype: ArrayType, callstack) -> Array:
        component = atype.component
        elements = []
        for element in node.elements:
            if isinstance(element, ArrayInitializer):
                if not isinstance(component, ArrayType):
                    if component is not object:
                        raise EvalError("Incompatible initializer. Allocation calls for a "
                                        f"{atype.dimensions}-dimensional array", element, callstack)
                    value = self.array_from_initializer(element, ArrayType(object), callstack)
                else:
                    value = self.array_from_initializer(element, component, callstack)
            else:
                value = self.eval(element, callstack)
                if value is VOID:
                    raise EvalError("Void in array initializer.", element, callstack)
                try:
                    value = cast(value, component, CAST)
                except UtilEvalException as e:
                    raise e.to_eval_error(f"Error in array initializer: {type_name(component)}", element,
                                          callstack)
            elements.append(value)
        return Array(component, elements)

    # =================================================================
    # Declarations
    # =================================================================

    def _modifiers(self, names, context: str, node: Node, callstack) -> Optional[Modifiers]:
        if not names:
            return None
        try:
            return Modifiers(context, names)
        except UtilEvalException as e:
            raise e.to_eval_error(None, node, callstack)

    def _eval_typed_declaration(self, node: TypedVariableDeclaration, callstack) -> Any:
        ns = callstack.top()
        base = self.resolve_type(node.type_ref, callstack)
        if base is None and self.strict:
            raise EvalError("(Strict Java Mode) Undeclared variable type", node, callstack)
        modifiers = self._modifiers(node.modifiers, Modifiers.FIELD, node, callstack)
        for decl in node.declarators:
            var_type = array_type(base, decl.dims) if decl.dims and base is not None else base
            value = None
            if isinstance(decl.init, ArrayInitializer):
                if not isinstance(var_type, ArrayType) and var_type is not None:
                    raise EvalError(f"Array initializer for non-array type: {type_name(var_type)}", decl, callstack)
                value = self.array_from_initializer(decl.init, var_type or ArrayType(object), callstack)
            elif decl.init is not None:
                value = self.eval(decl.init, callstack)
                if value is VOID:
                    raise EvalError(f"Void initializer for variable: {decl.name}", decl, callstack)
            try:
                ns.set_typed_variable(decl.name, var_type, value, modifiers)
            except UtilEvalException as e:
                raise e.to_eval_error("Typed variable declaration", node, callstack)
        return VOID

    def _eval_method_declaration(self, node: MethodDeclaration, callstack) -> Any:
        ns = callstack.top()
        method = self.build_method(node, ns, callstack)
        ns.set_method(method)
        return VOID

    def build_method(self, node: MethodDeclaration, namespace, callstack) -> Method:
        if node.return_type is None:
            return_type = None
            if self.strict:
                raise EvalError(f"(Strict Java Mode) Undeclared return type for method: {node.name}", node,
                                callstack)
        else:
            return_type = self.resolve_type(node.return_type, callstack)
        names, types, param_modifiers = [], [], []
        for param in node.params:
            if param.type_ref is None and self.strict:
                raise EvalError(f"(Strict Java Mode) Undeclared argument type, parameter: {param.name} in method: "
                                f"{node.name}", param, callstack)
            names.append(param.name)
            types.append(self.resolve_type(param.type_ref, callstack))
            param_modifiers.append(self._modifiers(param.modifiers, Modifiers.FIELD, param, callstack))
        modifiers = self._modifiers(node.modifiers, Modifiers.METHOD, node, callstack)
        return Method(node.name, return_type, names, types, node.body, namespace, modifiers, param_modifiers,
                      node=node)

    def _eval_import(self, node: ImportDeclaration, callstack) -> Any:
        ns = callstack.top()
        if node.static:
            if not node.wildcard:
                raise EvalError("static field imports not supported yet", node, callstack)
            cls = ns.get_class(node.name)
            if cls is None:
                raise EvalError(f"Can't find class for static import: {node.name}", node, callstack)
            ns.import_static(cls)
        elif node.wildcard:
            ns.import_package(node.name)
        else:
            ns.import_class(node.name)
        self._dbg("import:", node.name, "static" if node.static else "")
        return VOID
