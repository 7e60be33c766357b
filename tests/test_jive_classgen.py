import abc
import threading

import pytest

from jive.jive_errors import EvalError
from jive.jive_methods import synchronized_on
from jive.jive_nodes import (
    AmbiguousName, Allocation, Assignment, BinaryExpression, Block, ClassDeclaration, FormalParameter, Literal,
    MethodDeclaration, MethodInvocation, Return, Throw, TypedVariableDeclaration, TypeRef, UnaryExpression,
    VariableDeclarator,
)
from jive.jive_runtime import Interpreter


@pytest.fixture
def interp():
    return Interpreter()


def lit(value):
    return Literal(value)


def name(n):
    return AmbiguousName(n)


def assign(lhs, rhs):
    return Assignment(name(lhs), '=', rhs)


def plus(lhs, rhs):
    return BinaryExpression(lhs, '+', rhs)


def field(type_name, var, init=None, modifiers=()):
    return TypedVariableDeclaration(TypeRef(type_name), [VariableDeclarator(var, init)], modifiers)


def params(*pairs):
    return [FormalParameter(n, TypeRef(t)) for n, t in pairs]


def method(method_name, return_type, *statements, args=(), modifiers=()):
    return MethodDeclaration(method_name, params(*args), Block(list(statements)), TypeRef(return_type),
                             modifiers)


def constructor(class_name, *statements, args=()):
    return MethodDeclaration(class_name, params(*args), Block(list(statements)))


def new(type_name, *args, body=None):
    return Allocation(TypeRef(type_name), args, body)


def cls(class_name, *members, **kwargs):
    return ClassDeclaration(class_name, Block(list(members)), **kwargs)


def point_class():
    return cls(
        'Point',
        field('int', 'x'),
        field('int', 'y'),
        constructor('Point', assign('this.x', name('x')), assign('this.y', name('y')),
                    args=[('x', 'int'), ('y', 'int')]),
        method('sum', 'int', Return(plus(name('x'), name('y')))),
    )


# -----------------------------------------------------------------
# Fields, constructors and methods
# -----------------------------------------------------------------

def test_fields_and_constructor(interp):
    interp.eval([point_class(), assign('p', new('Point', lit(3), lit(4)))])
    p = interp.get('p')
    assert type(p) is interp.get('Point')
    assert (p.x, p.y) == (3, 4)
    assert interp.get('p.x') == 3
    assert interp.eval(MethodInvocation('p.sum')) == 7
    p.x = 10
    assert p.sum() == 14


def test_typed_fields_reject_bad_host_assignment(interp):
    interp.eval([point_class(), assign('p', new('Point', lit(3), lit(4)))])
    with pytest.raises(TypeError):
        interp.get('p').x = "ten"


def test_constructing_from_python(interp):
    interp.eval(point_class())
    Point = interp.get('Point')
    p = Point(1, 2)
    assert p.sum() == 3
    assert Point.__qualname__ == 'Point'


def test_constructor_not_found(interp):
    interp.eval(point_class())
    with pytest.raises(EvalError, match="Constructor not found: Point"):
        interp.eval(new('Point', lit("x")))


def test_ambiguous_constructor_call(interp):
    interp.eval(cls('Either',
                    constructor('Either', args=[('a', 'int'), ('b', 'long')]),
                    constructor('Either', args=[('a', 'long'), ('b', 'int')])))
    with pytest.raises(EvalError, match="Ambiguous method call"):
        interp.eval(new('Either', lit(1), lit(1)))


def test_field_initializers_run_before_constructor_body(interp):
    interp.eval([
        cls('Init',
            field('int', 'x', lit(1)),
            field('int', 'y'),
            constructor('Init', assign('y', plus(name('x'), lit(1))))),
        assign('i', new('Init')),
    ])
    assert interp.get('i.y') == 2


def test_classes_without_constructor_take_no_arguments(interp):
    interp.eval(cls('Plain'))
    assert interp.eval(new('Plain')) is not None
    with pytest.raises(EvalError, match="takes no arguments"):
        interp.eval(new('Plain', lit(1)))


def test_this_delegation(interp):
    interp.eval([
        cls('Pair',
            field('int', 'a'),
            field('int', 'b'),
            constructor('Pair', MethodInvocation('this', [name('a'), lit(0)]), args=[('a', 'int')]),
            constructor('Pair', assign('this.a', name('a')), assign('this.b', name('b')),
                        args=[('a', 'int'), ('b', 'int')])),
        assign('pair', new('Pair', lit(5))),
    ])
    assert (interp.get('pair.a'), interp.get('pair.b')) == (5, 0)


def test_recursive_constructor_call(interp):
    interp.eval(cls('Loop', constructor('Loop', MethodInvocation('this', [name('a')]), args=[('a', 'int')])))
    with pytest.raises(EvalError, match="Recursive constructor call."):
        interp.eval(new('Loop', lit(1)))


def test_to_string_override(interp):
    interp.eval(cls('Named', method('toString', 'String', Return(lit("named")))))
    assert str(interp.eval(new('Named'))) == "named"


def test_synchronized_methods_lock_on_identity_not_script_equality(interp):
    interp.eval([
        cls('Key',
            method('hashCode', 'int', Return(MethodInvocation('h'))),
            method('h', 'int', Return(lit(1)), modifiers=['synchronized']),
            MethodDeclaration('equals', [FormalParameter('o')], Block([Return(lit(True))]), TypeRef('boolean')),
            method('run', 'int', Return(lit(5)), modifiers=['synchronized'])),
        assign('a', new('Key')),
        assign('b', new('Key')),
    ])
    a, b = interp.get('a'), interp.get('b')
    assert a == b
    assert hash(a) == 1

    results = []
    worker = threading.Thread(target=lambda: results.append(a.run()))
    worker.start()
    worker.join(5)
    assert not worker.is_alive()
    assert results == [5]

    with synchronized_on(a):
        other = threading.Thread(target=lambda: results.append(b.run()))
        other.start()
        other.join(5)
    assert not other.is_alive()
    assert results == [5, 5]


def test_exceptions_from_scripted_methods_reach_python(interp):
    boom = new('IllegalStateException', lit("no"))
    interp.eval([cls('Thrower', method('go', 'void', Throw(boom))), assign('t', new('Thrower'))])
    with pytest.raises(RuntimeError, match="no"):
        interp.get('t').go()


# -----------------------------------------------------------------
# Inheritance
# -----------------------------------------------------------------

def animals():
    animal = cls(
        'Animal',
        field('String', 'name'),
        constructor('Animal', assign('this.name', name('name')), args=[('name', 'String')]),
        method('speak', 'String', Return(lit("..."))),
        method('describe', 'String', Return(plus(plus(name('name'), lit(" says ")), MethodInvocation('speak')))),
    )
    dog = cls(
        'Dog',
        constructor('Dog', MethodInvocation('super', [name('name')]), args=[('name', 'String')]),
        method('speak', 'String', Return(lit("Woof"))),
        method('parentSpeak', 'String', Return(MethodInvocation('super.speak'))),
        superclass=TypeRef('Animal'),
    )
    return [animal, dog, assign('d', new('Dog', lit("rex")))]


def test_overriding_and_super_constructor(interp):
    interp.eval(animals())
    d = interp.get('d')
    assert isinstance(d, interp.get('Animal'))
    assert d.name == "rex"
    assert d.describe() == "rex says Woof"
    assert interp.eval(MethodInvocation('d.speak')) == "Woof"


def test_super_method_call(interp):
    interp.eval(animals())
    assert interp.eval(MethodInvocation('d.parentSpeak')) == "..."


def test_interfaces(interp):
    shape = cls('Shape', method('area', 'double'), is_interface=True)
    square = cls(
        'Square',
        field('double', 'side'),
        constructor('Square', assign('side', name('s')), args=[('s', 'double')]),
        method('area', 'double', Return(BinaryExpression(name('side'), '*', name('side')))),
        interfaces=[TypeRef('Shape')],
    )
    interp.eval([
        shape, square,
        TypedVariableDeclaration(TypeRef('Shape'), [VariableDeclarator('s', new('Square', lit(3)))]),
    ])
    s = interp.get('s')
    assert s.area() == 9.0
    assert interp.eval(BinaryExpression(name('s'), 'instanceof', TypeRef('Shape'))) is True
    with pytest.raises(EvalError, match="Can't create instance of abstract class or interface"):
        interp.eval(new('Shape'))


def test_abstract_classes_cannot_be_instantiated(interp):
    interp.eval(cls('Thing', MethodDeclaration('run', [], None, TypeRef('void'), ['abstract']),
                    modifiers=['abstract']))
    with pytest.raises(EvalError, match="Can't create instance of abstract class or interface"):
        interp.eval(new('Thing'))


def test_final_classes_cannot_be_extended(interp):
    interp.eval(cls('Sealed', modifiers=['final']))
    with pytest.raises(EvalError, match="Cannot inherit from final class"):
        interp.eval(cls('Sub', superclass=TypeRef('Sealed')))


def test_private_methods(interp):
    interp.eval([
        cls('Vault',
            method('secret', 'int', Return(lit(42)), modifiers=['private']),
            method('reveal', 'int', Return(MethodInvocation('secret')))),
        assign('v', new('Vault')),
    ])
    assert interp.eval(MethodInvocation('v.reveal')) == 42
    with pytest.raises(EvalError, match="is private in this scope."):
        interp.eval(MethodInvocation('v.secret'))


# -----------------------------------------------------------------
# Static members and nesting
# -----------------------------------------------------------------

def test_static_members(interp):
    interp.eval([
        cls('Counter',
            field('int', 'count', lit(0), modifiers=['static']),
            constructor('Counter', UnaryExpression('++', name('count'), postfix=True)),
            method('total', 'int', Return(name('count')), modifiers=['static'])),
        new('Counter'),
        new('Counter'),
    ])
    assert interp.eval(MethodInvocation('Counter.total')) == 2
    assert interp.get('Counter.count') == 2
    assert interp.get('Counter').total() == 2


def test_nested_classes(interp):
    inner = cls('Inner', method('v', 'int', Return(lit(7))), modifiers=['static'])
    interp.eval([cls('Outer', inner), assign('i', new('Outer.Inner'))])
    Outer = interp.get('Outer')
    assert Outer.Inner.__qualname__ == 'Outer$Inner'
    assert type(interp.get('i')) is Outer.Inner
    assert interp.eval(MethodInvocation('i.v')) == 7


# -----------------------------------------------------------------
# Host base classes
# -----------------------------------------------------------------

class Greeter(abc.ABC):
    @abc.abstractmethod
    def greet(self, who):
        ...

    def shout(self, who):
        return self.greet(who).upper()


class Base:
    def __init__(self, label):
        self.label_text = label

    def label(self):
        return f"base:{self.label_text}"

    def shout_label(self):
        return self.label().upper()


def test_anonymous_class_implementing_host_interface(interp):
    interp.set('Greeter', Greeter)
    body = Block([method('greet', 'String', Return(plus(lit("yo "), name('who'))), args=[('who', 'String')])])
    interp.eval(assign('g', Allocation(TypeRef(Greeter), [], body)))
    g = interp.get('g')
    assert isinstance(g, Greeter)
    assert type(g).__name__.startswith('Greeter$')
    assert g.greet("al") == "yo al"
    assert g.shout("al") == "YO AL"


def test_scripted_class_extending_host_class(interp):
    child = cls(
        'Child',
        constructor('Child', MethodInvocation('super', [lit("kid")])),
        method('label', 'String', Return(plus(lit("child/"), MethodInvocation('super.label')))),
        superclass=TypeRef(Base),
    )
    interp.eval([child, assign('c', new('Child'))])
    c = interp.get('c')
    assert isinstance(c, Base)
    assert c.label_text == "kid"
    assert c.label() == "child/base:kid"
    assert interp.eval(MethodInvocation('c.shout_label')) == "CHILD/BASE:KID"
