import abc
import threading

import pytest

from jive.jive_errors import EvalError
from jive.jive_nodes import (
    AmbiguousName, Allocation, Assignment, BinaryExpression, Block, CallSuffix, FormalParameter, Literal,
    MethodDeclaration, MethodInvocation, PrimaryExpression, Return, Throw, TypedVariableDeclaration, TypeRef,
    UnaryExpression, VariableDeclarator,
)
from jive.jive_runtime import Interpreter
from jive.jive_this import This


@pytest.fixture
def interp():
    return Interpreter()


def name(n):
    return AmbiguousName(n)


def method(method_name, params, *statements):
    return MethodDeclaration(method_name, [FormalParameter(p) for p in params], Block(list(statements)))


def make_counter():
    return method(
        'makeCounter', [],
        Assignment(name('count'), '=', Literal(0)),
        method('increment', [],
               UnaryExpression('++', name('count'), postfix=True),
               Return(name('count'))),
        method('invoke', ['name', 'args'],
               Return(BinaryExpression(Literal("missing "), '+', name('name')))),
        Return(name('this')),
    )


@pytest.fixture
def counter(interp):
    interp.eval([make_counter(), Assignment(name('c'), '=', MethodInvocation('makeCounter'))])
    return interp.get('c')


class Greeter(abc.ABC):
    @abc.abstractmethod
    def greet(self, who):
        ...

    def shout(self, who):
        return self.greet(who).upper()


def _greet_method(*extra):
    return method('greet', ['who'], Return(BinaryExpression(Literal("hi "), '+', name('who'))), *extra)


# -----------------------------------------------------------------
# Scripted objects
# -----------------------------------------------------------------

def test_global_this(interp):
    this = interp.eval(name('this'))
    assert isinstance(this, This)
    assert this.namespace is interp.get_namespace()
    assert this is interp.eval(name('this'))


def test_method_closures_keep_their_scope(interp, counter):
    assert isinstance(counter, This)
    assert interp.invoke_method(counter, 'increment') == 1
    assert interp.invoke_method(counter, 'increment') == 2
    assert interp.get('c.count') == 2
    assert interp.get('count') is None


def test_calling_closure_methods_from_scripts(interp, counter):
    interp.eval(PrimaryExpression(name('c'), [CallSuffix('increment')]))
    assert interp.eval(MethodInvocation('c.increment')) == 2


def test_object_protocol(interp, counter):
    assert interp.invoke_method(counter, 'toString').startswith("'this' reference to NameSpace: makeCounter")
    assert interp.invoke_method(counter, 'equals', [counter]) is True
    assert interp.invoke_method(counter, 'equals', ["other"]) is False
    assert isinstance(interp.invoke_method(counter, 'hashCode'), int)


def test_invoke_catch_all(interp, counter):
    assert interp.invoke_method(counter, 'nope') == "missing nope"


def test_typed_invoke_catch_all_receives_an_object_array(interp):
    handler = MethodDeclaration(
        'invoke',
        [FormalParameter('name', TypeRef('String')), FormalParameter('args', TypeRef('Object', dims=1))],
        Block([Return(BinaryExpression(name('name'), '+', name('args.length')))]),
        TypeRef('String'))
    interp.eval([method('typed', [], handler, Return(name('this'))),
                 Assignment(name('t'), '=', MethodInvocation('typed'))])
    assert interp.eval(MethodInvocation('t.foo', [Literal(1), Literal(2)])) == "foo2"
    assert interp.invoke_method(interp.get('t'), 'bar') == "bar0"


def test_missing_method(interp):
    with pytest.raises(EvalError, match=r"Method nope\(\) not found in object: global"):
        interp.invoke_method(interp.eval(name('this')), 'nope')


def test_invoke_method_needs_a_this(interp):
    with pytest.raises(TypeError):
        interp.invoke_method("not a this", 'm')


def test_clone_copies_variables(interp, counter):
    interp.invoke_method(counter, 'increment')
    copy = interp.invoke_method(counter, 'clone')
    assert isinstance(copy, This) and copy is not counter
    assert copy.namespace.get_variable('count', False).value == 1


def test_run(interp):
    interp.set('counter', 0)
    interp.eval(method('run', [], UnaryExpression('++', name('counter'))))
    this = interp.eval(name('this'))
    worker = threading.Thread(target=this.run)
    worker.start()
    worker.join(5)
    assert interp.get('counter') == 1


# -----------------------------------------------------------------
# Host interfaces
# -----------------------------------------------------------------

def test_as_interface(interp):
    interp.eval(_greet_method())
    greeter = interp.as_interface(Greeter)
    assert isinstance(greeter, Greeter)
    assert greeter.greet("bob") == "hi bob"
    assert greeter.shout("bob") == "HI BOB"
    assert interp.as_interface(Greeter) is greeter
    assert greeter == greeter
    assert "implements: Greeter" in str(greeter)


def test_scripts_can_override_concrete_methods(interp):
    interp.eval([_greet_method(), method('shout', ['who'], Return(Literal("quiet")))])
    assert interp.as_interface(Greeter).shout("bob") == "quiet"


def test_exceptions_cross_back_into_python(interp):
    bad = Allocation(TypeRef('IllegalArgumentException'), [Literal("bad")])
    interp.eval(method('greet', ['who'], Throw(bad)))
    with pytest.raises(ValueError, match="bad"):
        interp.as_interface(Greeter).greet("bob")


def test_typed_declaration_converts_this_to_interface(interp):
    interp.eval([
        _greet_method(),
        TypedVariableDeclaration(TypeRef(Greeter), [VariableDeclarator('g', name('this'))]),
    ])
    g = interp.get('g')
    assert isinstance(g, Greeter)
    assert g.greet("x") == "hi x"
