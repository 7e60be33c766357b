"""
AST node kinds consumed by the JIVE evaluator.

There is no parser in this package: embedders (and the tests) build trees
directly from these classes. Every node carries an optional `SourceLocation`
used in error reports; when no source text is given, the node's text is
rendered by `jive_printer.Printer`.
"""

from typing import Any, List, Optional, Sequence

from jive.jive_values import wrap


class SourceLocation:
    """Where a node came from: file name, 1-based line and the source text."""
    __slots__ = ('file', 'line', 'text')

    def __init__(self, file: str = '<unknown file>', line: int = -1, text: Optional[str] = None):
        self.file = file
        self.line = line
        self.text = text

    def __repr__(self) -> str:
        return f"SourceLocation({self.file!r}, {self.line})"


class Node:
    """Base class of all AST nodes."""

    def __init__(self, loc: Optional[SourceLocation] = None):
        self.loc = loc
        self._text = None

    @property
    def file(self) -> str:
        return self.loc.file if self.loc is not None else '<unknown file>'

    @property
    def line(self) -> int:
        return self.loc.line if self.loc is not None else -1

    @property
    def text(self) -> str:
        if self.loc is not None and self.loc.text is not None:
            return self.loc.text
        if self._text is None:
            from jive.jive_printer import Printer
            self._text = Printer().pformat(self)
        return self._text

    def eval(self, callstack, interpreter) -> Any:
        return interpreter.evaluator.eval(self, callstack)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.text!r}>"


class _HostCall(Node):
    """The caller-info node for invocations that come from Python code."""

    @property
    def file(self) -> str:
        return '<Called from Python code>'

    @property
    def text(self) -> str:
        return '<Called from Python code>'


HOST_CALL = _HostCall()


class ReturnControl:
    """A control-flow signal produced by `return`, `break` and `continue`.

    It is returned (never raised) up through the evaluator until a loop or a
    method boundary consumes it.
    """
    RETURN, BREAK, CONTINUE = 'return', 'break', 'continue'
    __slots__ = ('kind', 'value', 'node')

    def __init__(self, kind: str, value: Any, node: Optional[Node]):
        self.kind = kind
        self.value = value
        self.node = node

    def __repr__(self) -> str:
        return f"<ReturnControl {self.kind} {self.value!r}>"


# =================================================================
# Expressions
# =================================================================

class Literal(Node):
    """A constant. Host values are wrapped: None is null, 5 is an int, 'a' is a String."""

    def __init__(self, value: Any, loc=None):
        super().__init__(loc)
        self.value = wrap(value)


class AmbiguousName(Node):
    """A possibly dotted identifier (`x`, `a.b.c`) resolved at evaluation time."""

    def __init__(self, name: str, loc=None):
        super().__init__(loc)
        self.name = name


class TypeRef(Node):
    """A type in source: a primitive name, a (dotted) class name or a host class, plus array dims.

    `name` None or 'var' is the loose type.
    """

    def __init__(self, name: Any, dims: int = 0, loc=None):
        super().__init__(loc)
        self.name = name
        self.dims = dims

    @property
    def is_loose(self) -> bool:
        return self.name is None or self.name == 'var'


class FieldSuffix(Node):
    def __init__(self, name: str, loc=None):
        super().__init__(loc)
        self.name = name


class CallSuffix(Node):
    """`.name(args)` applied to the value of the preceding prefix."""

    def __init__(self, name: str, args: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.name = name
        self.args = list(args)


class IndexSuffix(Node):
    def __init__(self, index: Node, loc=None):
        super().__init__(loc)
        self.index = index


class PropertySuffix(Node):
    """`obj{"key"}`: mapping or bean-style property access."""

    def __init__(self, key: Node, loc=None):
        super().__init__(loc)
        self.key = key


class ClassSuffix(Node):
    """`Type.class`"""
    pass


class PrimaryExpression(Node):
    """A prefix expression followed by zero or more suffixes."""

    def __init__(self, prefix: Node, suffixes: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.prefix = prefix
        self.suffixes = list(suffixes)


class MethodInvocation(Node):
    """`name(args)` where `name` may be dotted (`obj.m`, `pkg.Cls.m`, `super.m`)."""

    def __init__(self, name: str, args: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.name = name
        self.args = list(args)


class Assignment(Node):
    OPERATORS = ('=', '+=', '-=', '*=', '/=', '%=', '&=', '|=', '^=', '<<=', '>>=', '>>>=')

    def __init__(self, lhs: Node, op: str, rhs: Node, loc=None):
        super().__init__(loc)
        if op not in self.OPERATORS:
            raise ValueError(f"Unknown assignment operator: {op}")
        self.lhs = lhs
        self.op = op
        self.rhs = rhs


class BinaryExpression(Node):
    """`lhs op rhs`, including `&&`, `||` and `instanceof` (rhs is a TypeRef)."""

    def __init__(self, lhs: Node, op: str, rhs: Node, loc=None):
        super().__init__(loc)
        self.lhs = lhs
        self.op = op
        self.rhs = rhs


class UnaryExpression(Node):
    def __init__(self, op: str, operand: Node, postfix: bool = False, loc=None):
        super().__init__(loc)
        self.op = op
        self.operand = operand
        self.postfix = postfix


class Ternary(Node):
    def __init__(self, cond: Node, then: Node, otherwise: Node, loc=None):
        super().__init__(loc)
        self.cond = cond
        self.then = then
        self.otherwise = otherwise


class Cast(Node):
    def __init__(self, type_ref: TypeRef, expr: Node, loc=None):
        super().__init__(loc)
        self.type_ref = type_ref
        self.expr = expr


class Allocation(Node):
    """`new Type(args)`, optionally with an anonymous class `body`."""

    def __init__(self, type_ref: TypeRef, args: Sequence[Node] = (), body: Optional['Block'] = None, loc=None):
        super().__init__(loc)
        self.type_ref = type_ref
        self.args = list(args)
        self.body = body


class ArrayInitializer(Node):
    """`{a, b, {c}}`; nested initializers build nested arrays."""

    def __init__(self, elements: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.elements = list(elements)


class ArrayAllocation(Node):
    """`new T[n][m][]` (`dims` entries of None are unsized) or `new T[] {…}`."""

    def __init__(self, type_ref: TypeRef, dims: Sequence[Optional[Node]] = (),
                 initializer: Optional[ArrayInitializer] = None, loc=None):
        super().__init__(loc)
        self.type_ref = type_ref
        self.dims = list(dims)
        self.initializer = initializer


# =================================================================
# Statements
# =================================================================

class Block(Node):
    """`{ statements }`, or `synchronized (expr) { statements }`."""

    def __init__(self, statements: Sequence[Node] = (), synchronized_on: Optional[Node] = None, loc=None):
        super().__init__(loc)
        self.statements = list(statements)
        self.synchronized_on = synchronized_on


class If(Node):
    def __init__(self, cond: Node, then: Node, otherwise: Optional[Node] = None, loc=None):
        super().__init__(loc)
        self.cond = cond
        self.then = then
        self.otherwise = otherwise


class While(Node):
    def __init__(self, cond: Node, body: Optional[Node], do_while: bool = False, loc=None):
        super().__init__(loc)
        self.cond = cond
        self.body = body
        self.do_while = do_while


class For(Node):
    def __init__(self, init: Sequence[Node] = (), cond: Optional[Node] = None, update: Sequence[Node] = (),
                 body: Optional[Node] = None, loc=None):
        super().__init__(loc)
        self.init = list(init)
        self.cond = cond
        self.update = list(update)
        self.body = body


class EnhancedFor(Node):
    """`for (T name : iterable) body`; `type_ref` None is `for (name : iterable)`."""

    def __init__(self, name: str, iterable: Node, body: Optional[Node], type_ref: Optional[TypeRef] = None,
                 modifiers: Sequence[str] = (), loc=None):
        super().__init__(loc)
        self.name = name
        self.iterable = iterable
        self.body = body
        self.type_ref = type_ref
        self.modifiers = list(modifiers)


class SwitchLabel(Node):
    """`case expr:`; an `expr` of None is `default:`."""

    def __init__(self, expr: Optional[Node] = None, loc=None):
        super().__init__(loc)
        self.expr = expr

    @property
    def is_default(self) -> bool:
        return self.expr is None


class Switch(Node):
    """`switch (expr) { ... }`; `body` interleaves SwitchLabels and statements."""

    def __init__(self, expr: Node, body: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.expr = expr
        self.body = list(body)


class FormalParameter(Node):
    def __init__(self, name: str, type_ref: Optional[TypeRef] = None, modifiers: Sequence[str] = (), loc=None):
        super().__init__(loc)
        self.name = name
        self.type_ref = type_ref
        self.modifiers = list(modifiers)


class Catch(Node):
    def __init__(self, param: FormalParameter, block: Block, loc=None):
        super().__init__(loc)
        self.param = param
        self.block = block


class Try(Node):
    def __init__(self, block: Block, catches: Sequence[Catch] = (), finally_block: Optional[Block] = None, loc=None):
        super().__init__(loc)
        self.block = block
        self.catches = list(catches)
        self.finally_block = finally_block


class Return(Node):
    def __init__(self, expr: Optional[Node] = None, loc=None):
        super().__init__(loc)
        self.expr = expr


class Break(Node):
    def __init__(self, label: Optional[str] = None, loc=None):
        super().__init__(loc)
        self.label = label


class Continue(Node):
    def __init__(self, label: Optional[str] = None, loc=None):
        super().__init__(loc)
        self.label = label


class Throw(Node):
    def __init__(self, expr: Node, loc=None):
        super().__init__(loc)
        self.expr = expr


class VariableDeclarator(Node):
    """`name` or `name = init`; `dims` adds C-style array dims (`int a[]`)."""

    def __init__(self, name: str, init: Optional[Node] = None, dims: int = 0, loc=None):
        super().__init__(loc)
        self.name = name
        self.init = init
        self.dims = dims


class TypedVariableDeclaration(Node):
    def __init__(self, type_ref: TypeRef, declarators: Sequence[VariableDeclarator], modifiers: Sequence[str] = (),
                 loc=None):
        super().__init__(loc)
        self.type_ref = type_ref
        self.declarators = list(declarators)
        self.modifiers = list(modifiers)


class MethodDeclaration(Node):
    """A method. `return_type` None is loose; TypeRef('void') declares no value."""

    def __init__(self, name: str, params: Sequence[FormalParameter] = (), body: Optional[Block] = None,
                 return_type: Optional[TypeRef] = None, modifiers: Sequence[str] = (), loc=None):
        super().__init__(loc)
        self.name = name
        self.params = list(params)
        self.body = body if body is not None else Block()
        self.return_type = return_type
        self.modifiers = list(modifiers)


class ClassDeclaration(Node):
    def __init__(self, name: str, body: Optional[Block] = None, superclass: Optional[TypeRef] = None,
                 interfaces: Sequence[TypeRef] = (), modifiers: Sequence[str] = (), is_interface: bool = False,
                 loc=None):
        super().__init__(loc)
        self.name = name
        self.body = body if body is not None else Block()
        self.superclass = superclass
        self.interfaces = list(interfaces)
        self.modifiers = list(modifiers)
        self.is_interface = is_interface


class ImportDeclaration(Node):
    """`import a.b.C;`, `import a.b.*;` or `import static a.b.C.*;`"""

    def __init__(self, name: str, wildcard: bool = False, static: bool = False, loc=None):
        super().__init__(loc)
        self.name = name
        self.wildcard = wildcard
        self.static = static


class PackageDeclaration(Node):
    def __init__(self, name: str, loc=None):
        super().__init__(loc)
        self.name = name


class ExpressionStatementList(Node):
    """Comma separated expressions, as in `for (i = 0, j = 1; ...)`."""

    def __init__(self, expressions: Sequence[Node] = (), loc=None):
        super().__init__(loc)
        self.expressions = list(expressions)


def statements(nodes: Any) -> List[Node]:
    """Normalize a node or a sequence of nodes to a list."""
    if isinstance(nodes, Node):
        return [nodes]
    return list(nodes)
