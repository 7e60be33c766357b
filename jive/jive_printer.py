"""
A pretty-printer for JIVE syntax trees.

Renders nodes back to Java-like source. Used for the `text` of nodes built
without source locations, so error messages can quote the failing code.
"""
from jive.jive_nodes import (
    AmbiguousName, ArrayAllocation, ArrayInitializer, Allocation, Assignment, BinaryExpression, Block, Break,
    CallSuffix, Cast, Catch, ClassDeclaration, ClassSuffix, Continue, EnhancedFor, ExpressionStatementList,
    FieldSuffix, For, FormalParameter, If, ImportDeclaration, IndexSuffix, Literal, MethodDeclaration,
    MethodInvocation, PackageDeclaration, PrimaryExpression, PropertySuffix, Return, Switch, SwitchLabel, Ternary,
    Throw, Try, TypedVariableDeclaration, TypeRef, UnaryExpression, VariableDeclarator, While,
)
from jive.jive_values import CHAR, BOOLEAN, FLOAT, LONG, NULL, VOID, Primitive, type_name

# Statements that are terminated with ';' when printed inside a block.
_SIMPLE_STATEMENTS = (
    Literal, AmbiguousName, PrimaryExpression, MethodInvocation, Assignment, BinaryExpression, UnaryExpression,
    Ternary, Cast, Allocation, ArrayAllocation, Return, Break, Continue, Throw, TypedVariableDeclaration,
    ImportDeclaration, PackageDeclaration, ExpressionStatementList,
)

_ESCAPES = {'\\': '\\\\', '"': '\\"', "'": "\\'", '\n': '\\n', '\t': '\\t', '\r': '\\r'}


def _escape(s: str) -> str:
    return ''.join(_ESCAPES.get(c, c) for c in s)


class Printer:
    """Formats JIVE nodes into readable source strings."""

    def __init__(self, indent_width=4):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format a node."""
        if obj is None:
            return ''
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, level)

    def _create_handlers(self):
        return {
            Literal: self._pformat_literal,
            AmbiguousName: lambda n, l: n.name,
            TypeRef: self._pformat_type_ref,
            FieldSuffix: lambda n, l: f".{n.name}",
            CallSuffix: lambda n, l: f".{n.name}({self._args(n.args, l)})",
            IndexSuffix: lambda n, l: f"[{self.pformat(n.index, l)}]",
            PropertySuffix: lambda n, l: f"{{{self.pformat(n.key, l)}}}",
            ClassSuffix: lambda n, l: ".class",
            PrimaryExpression: self._pformat_primary,
            MethodInvocation: lambda n, l: f"{n.name}({self._args(n.args, l)})",
            Assignment: lambda n, l: f"{self.pformat(n.lhs, l)} {n.op} {self.pformat(n.rhs, l)}",
            BinaryExpression: self._pformat_binary,
            UnaryExpression: self._pformat_unary,
            Ternary: lambda n, l: (f"{self.pformat(n.cond, l)} ? {self.pformat(n.then, l)} : "
                                   f"{self.pformat(n.otherwise, l)}"),
            Cast: lambda n, l: f"({self.pformat(n.type_ref, l)}) {self.pformat(n.expr, l)}",
            Allocation: self._pformat_allocation,
            ArrayInitializer: lambda n, l: "{" + ", ".join(self.pformat(e, l) for e in n.elements) + "}",
            ArrayAllocation: self._pformat_array_allocation,
            Block: self._pformat_block,
            If: self._pformat_if,
            While: self._pformat_while,
            For: self._pformat_for,
            EnhancedFor: self._pformat_enhanced_for,
            SwitchLabel: lambda n, l: "default:" if n.is_default else f"case {self.pformat(n.expr, l)}:",
            Switch: self._pformat_switch,
            FormalParameter: self._pformat_parameter,
            Catch: lambda n, l: f"catch ({self.pformat(n.param, l)}) {self.pformat(n.block, l)}",
            Try: self._pformat_try,
            Return: lambda n, l: "return" if n.expr is None else f"return {self.pformat(n.expr, l)}",
            Break: lambda n, l: "break" if n.label is None else f"break {n.label}",
            Continue: lambda n, l: "continue" if n.label is None else f"continue {n.label}",
            Throw: lambda n, l: f"throw {self.pformat(n.expr, l)}",
            VariableDeclarator: self._pformat_declarator,
            TypedVariableDeclaration: self._pformat_typed_declaration,
            MethodDeclaration: self._pformat_method,
            ClassDeclaration: self._pformat_class,
            ImportDeclaration: self._pformat_import,
            PackageDeclaration: lambda n, l: f"package {n.name}",
            ExpressionStatementList: lambda n, l: ", ".join(self.pformat(e, l) for e in n.expressions),
        }

    # -- expressions ---------------------------------------------------

    def _args(self, args, level):
        return ", ".join(self.pformat(a, level) for a in args)

    def _pformat_literal(self, node, level):
        value = node.value
        if value is NULL:
            return 'null'
        if value is VOID:
            return 'void'
        if isinstance(value, str):
            return f'"{_escape(value)}"'
        if isinstance(value, Primitive):
            if value.type is BOOLEAN:
                return 'true' if value.value else 'false'
            if value.type is CHAR:
                return f"'{_escape(value.value)}'"
            if value.type is LONG:
                return f"{value.value}L"
            if value.type is FLOAT:
                return f"{value.value}f"
            return str(value.value)
        return repr(value)

    def _pformat_type_ref(self, node, level):
        if node.is_loose:
            return 'var' + '[]' * node.dims
        name = node.name if isinstance(node.name, str) else type_name(node.name)
        return name + '[]' * node.dims

    def _pformat_primary(self, node, level):
        return self.pformat(node.prefix, level) + ''.join(self.pformat(s, level) for s in node.suffixes)

    def _operand(self, node, level):
        text = self.pformat(node, level)
        if isinstance(node, (BinaryExpression, Ternary, Assignment)):
            return f"({text})"
        return text

    def _pformat_binary(self, node, level):
        return f"{self._operand(node.lhs, level)} {node.op} {self._operand(node.rhs, level)}"

    def _pformat_unary(self, node, level):
        operand = self._operand(node.operand, level)
        return f"{operand}{node.op}" if node.postfix else f"{node.op}{operand}"

    def _pformat_allocation(self, node, level):
        text = f"new {self.pformat(node.type_ref, level)}({self._args(node.args, level)})"
        if node.body is not None:
            text += " " + self.pformat(node.body, level)
        return text

    def _pformat_array_allocation(self, node, level):
        text = "new " + self.pformat(node.type_ref, level)
        text += ''.join(f"[{self.pformat(d, level)}]" for d in node.dims)
        if node.initializer is not None:
            text += " " + self.pformat(node.initializer, level)
        return text

    # -- statements ----------------------------------------------------

    def _statement(self, node, level):
        text = self.pformat(node, level)
        if isinstance(node, _SIMPLE_STATEMENTS):
            text += ';'
        return text

    def _pformat_block(self, node, level):
        head = ''
        if node.synchronized_on is not None:
            head = f"synchronized ({self.pformat(node.synchronized_on, level)}) "
        if not node.statements:
            return head + "{}"
        outer_indent = self._indent_char * level
        inner_indent = self._indent_char * (level + 1)
        lines = [inner_indent + self._statement(s, level + 1) for s in node.statements]
        return head + "{\n" + "\n".join(lines) + f"\n{outer_indent}}}"

    def _body(self, node, level):
        if node is None:
            return ';'
        if isinstance(node, Block):
            return " " + self.pformat(node, level)
        return "\n" + self._indent_char * (level + 1) + self._statement(node, level + 1)

    def _pformat_if(self, node, level):
        text = f"if ({self.pformat(node.cond, level)}){self._body(node.then, level)}"
        if node.otherwise is not None:
            if isinstance(node.otherwise, If):
                text += " else " + self.pformat(node.otherwise, level)
            else:
                text += f" else{self._body(node.otherwise, level)}"
        return text

    def _pformat_while(self, node, level):
        cond = self.pformat(node.cond, level)
        if node.do_while:
            return f"do{self._body(node.body, level)} while ({cond});"
        return f"while ({cond}){self._body(node.body, level)}"

    def _pformat_for(self, node, level):
        init = ", ".join(self.pformat(i, level) for i in node.init)
        cond = self.pformat(node.cond, level)
        update = ", ".join(self.pformat(u, level) for u in node.update)
        return f"for ({init}; {cond}; {update}){self._body(node.body, level)}"

    def _pformat_enhanced_for(self, node, level):
        var = node.name
        if node.type_ref is not None:
            var = f"{self.pformat(node.type_ref, level)} {var}"
        if node.modifiers:
            var = " ".join(node.modifiers) + " " + var
        return f"for ({var} : {self.pformat(node.iterable, level)}){self._body(node.body, level)}"

    def _pformat_switch(self, node, level):
        outer_indent = self._indent_char * level
        label_indent = self._indent_char * (level + 1)
        stmt_indent = self._indent_char * (level + 2)
        lines = []
        for child in node.body:
            if isinstance(child, SwitchLabel):
                lines.append(label_indent + self.pformat(child, level + 1))
            else:
                lines.append(stmt_indent + self._statement(child, level + 2))
        return f"switch ({self.pformat(node.expr, level)}) {{\n" + "\n".join(lines) + f"\n{outer_indent}}}"

    def _pformat_parameter(self, node, level):
        parts = list(node.modifiers)
        if node.type_ref is not None:
            parts.append(self.pformat(node.type_ref, level))
        parts.append(node.name)
        return " ".join(parts)

    def _pformat_try(self, node, level):
        text = "try " + self.pformat(node.block, level)
        for clause in node.catches:
            text += " " + self.pformat(clause, level)
        if node.finally_block is not None:
            text += " finally " + self.pformat(node.finally_block, level)
        return text

    # -- declarations --------------------------------------------------

    def _pformat_declarator(self, node, level):
        text = node.name + '[]' * node.dims
        if node.init is not None:
            text += " = " + self.pformat(node.init, level)
        return text

    def _pformat_typed_declaration(self, node, level):
        parts = list(node.modifiers) + [self.pformat(node.type_ref, level)]
        return " ".join(parts) + " " + ", ".join(self.pformat(d, level) for d in node.declarators)

    def _pformat_method(self, node, level):
        parts = list(node.modifiers)
        if node.return_type is not None:
            parts.append(self.pformat(node.return_type, level))
        params = ", ".join(self.pformat(p, level) for p in node.params)
        parts.append(f"{node.name}({params})")
        return " ".join(parts) + " " + self.pformat(node.body, level)

    def _pformat_class(self, node, level):
        parts = list(node.modifiers)
        parts.append("interface" if node.is_interface else "class")
        parts.append(node.name)
        if node.superclass is not None:
            parts.append("extends " + self.pformat(node.superclass, level))
        if node.interfaces:
            keyword = "extends" if node.is_interface else "implements"
            parts.append(keyword + " " + ", ".join(self.pformat(i, level) for i in node.interfaces))
        return " ".join(parts) + " " + self.pformat(node.body, level)

    def _pformat_import(self, node, level):
        text = "import static " if node.static else "import "
        return text + node.name + (".*" if node.wildcard else "")
