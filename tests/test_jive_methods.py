import gc
import threading

import pytest

from jive import jive_methods
from jive.jive_errors import EvalError, TargetException
from jive.jive_methods import synchronized_on
from jive.jive_nodes import (
    AmbiguousName, BinaryExpression, Block, Break, FormalParameter, If, Literal, MethodDeclaration,
    MethodInvocation, Return, TypeRef,
)
from jive.jive_runtime import Interpreter
from jive.jive_values import INT, LONG, Primitive


@pytest.fixture
def interp():
    return Interpreter()


def lit(value):
    return Literal(value)


def call(method, *args):
    return MethodInvocation(method, args)


def returning(method, param_type, result):
    """`method(param_type x) { return result; }`"""
    return MethodDeclaration(method, [FormalParameter('x', TypeRef(param_type))], Block([Return(lit(result))]))


# -----------------------------------------------------------------
# Overload selection
# -----------------------------------------------------------------

def test_exact_overload_preferred(interp):
    interp.eval([returning('f', 'int', "int"), returning('f', 'long', "long")])
    assert interp.eval(call('f', lit(5))) == "int"
    assert interp.eval(call('f', lit(Primitive(5, LONG)))) == "long"


def test_minimal_widening_overload(interp):
    interp.eval([returning('f', 'double', "double"), returning('f', 'long', "long")])
    assert interp.eval(call('f', lit(5))) == "long"
    assert interp.eval(call('f', lit(5.0))) == "double"


def test_redeclaring_a_signature_replaces_it(interp):
    interp.eval([returning('f', 'int', "old"), returning('f', 'int', "new")])
    assert interp.eval(call('f', lit(1))) == "new"
    assert len(interp.get_namespace().methods['f']) == 1


def test_loose_parameters_accept_anything(interp):
    interp.eval(MethodDeclaration('echo', [FormalParameter('x')], Block([Return(AmbiguousName('x'))])))
    assert interp.eval(call('echo', lit("s"))) == "s"
    assert interp.eval(call('echo', lit(2))) == 2


# -----------------------------------------------------------------
# Argument binding
# -----------------------------------------------------------------

def test_command_not_found(interp):
    interp.eval(returning('f', 'int', "int"))
    with pytest.raises(EvalError) as info:
        interp.eval(call('f', lit("s")))
    assert info.value.raw_message == "Command not found: f(str)"
    with pytest.raises(EvalError, match=r"Command not found: g\(\)"):
        interp.eval(call('g'))


def test_direct_invocation_checks_arguments(interp):
    interp.eval(returning('f', 'int', "int"))
    method = interp.get_namespace().get_method('f', [INT])
    with pytest.raises(EvalError) as info:
        method.invoke([], interp)
    assert info.value.raw_message == "Wrong number of arguments for local method: f"
    with pytest.raises(EvalError) as info:
        method.invoke(["s"], interp)
    assert info.value.raw_message.startswith("Invalid argument: `x' for method: f")
    assert method.invoke([Primitive(3)], interp) == "int"


def test_undefined_argument(interp):
    interp.eval(returning('f', 'int', "int"))
    with pytest.raises(EvalError, match="Undefined argument"):
        interp.eval(call('f', AmbiguousName('undefined_arg')))


# -----------------------------------------------------------------
# Return values
# -----------------------------------------------------------------

def test_void_method_discards_return_value(interp):
    interp.eval(MethodDeclaration('v', [], Block([Return(lit(1))]), return_type=TypeRef('void')))
    assert interp.eval(call('v')) is None


def test_method_without_return_yields_nothing(interp):
    interp.eval(MethodDeclaration('noop', [], Block()))
    assert interp.eval(call('noop')) is None


def test_typed_return_is_converted(interp):
    interp.eval(MethodDeclaration('five', [], Block([Return(lit(5))]), return_type=TypeRef('long')))
    method = interp.get_namespace().get_method('five', [])
    assert method.invoke([], interp) == Primitive(5, LONG)


def test_incorrect_return_type(interp):
    interp.eval(MethodDeclaration('h', [], Block([Return(lit("s"))]), return_type=TypeRef('int')))
    with pytest.raises(EvalError) as info:
        interp.eval(call('h'))
    assert info.value.raw_message.startswith("Incorrect type returned from method: h")


def test_break_in_method_body(interp):
    interp.eval(MethodDeclaration('b', [], Block([Break()])))
    with pytest.raises(EvalError, match="'continue' or 'break' in method body"):
        interp.eval(call('b'))


def test_recursion(interp):
    n = AmbiguousName('n')
    body = Block([
        If(BinaryExpression(n, '<=', lit(1)), Return(lit(1))),
        Return(BinaryExpression(n, '*', call('fact', BinaryExpression(n, '-', lit(1))))),
    ])
    interp.eval(MethodDeclaration('fact', [FormalParameter('n', TypeRef('long'))], body, return_type=TypeRef('long')))
    assert interp.eval(call('fact', lit(20))) == 2432902008176640000


# -----------------------------------------------------------------
# Host-backed methods
# -----------------------------------------------------------------

class Greeter:
    def __init__(self):
        self.name = "cfg"

    def greet(self, prefix):
        return f"{prefix}{self.name}"

    def fail(self):
        raise KeyError("nope")


def test_imported_object_methods(interp):
    interp.import_object(Greeter())
    assert interp.eval(call('greet', lit(">"))) == ">cfg"
    with pytest.raises(TargetException) as info:
        interp.eval(call('fail'))
    assert isinstance(info.value.target, KeyError)
    assert info.value.exception_in_native()


# -----------------------------------------------------------------
# Synchronization
# -----------------------------------------------------------------

class Token:
    pass


class AlwaysEqual:
    def __eq__(self, other):
        return True

    def __hash__(self):
        return 1


def test_monitors_are_chosen_by_identity():
    a, b = AlwaysEqual(), AlwaysEqual()
    holding, done = threading.Event(), threading.Event()
    entered = []

    def hold_a():
        with synchronized_on(a):
            holding.set()
            done.wait(5)

    def enter_b():
        with synchronized_on(b):
            entered.append('b')

    holder = threading.Thread(target=hold_a)
    holder.start()
    assert holding.wait(5)
    other = threading.Thread(target=enter_b)
    other.start()
    other.join(5)
    done.set()
    holder.join(5)
    assert entered == ['b']


def test_monitor_is_reentrant_for_any_owner():
    for owner in ([], "text", Token()):
        with synchronized_on(owner) as lock:
            with synchronized_on(owner) as again:
                assert again is lock


def test_unreferenceable_owners_are_not_retained():
    owner = []
    with synchronized_on(owner):
        assert id(owner) in jive_methods._monitors
    assert id(owner) not in jive_methods._monitors


def test_monitor_entry_is_dropped_with_its_owner():
    owner = Token()
    key = id(owner)
    with synchronized_on(owner):
        pass
    assert key in jive_methods._monitors
    del owner
    gc.collect()
    assert key not in jive_methods._monitors


def test_synchronized_method_is_reentrant(interp):
    n = AmbiguousName('n')
    body = Block([
        If(BinaryExpression(n, '>', lit(0)), Return(call('countdown', BinaryExpression(n, '-', lit(1))))),
        Return(n),
    ])
    interp.eval(MethodDeclaration('countdown', [FormalParameter('n', TypeRef('int'))], body,
                                  modifiers=['synchronized']))
    assert interp.eval(call('countdown', lit(5))) == 0


class Recorder:
    def __init__(self):
        self.events = []
        self.entered = {'a': threading.Event(), 'b': threading.Event()}
        self.release = threading.Event()

    def enter(self, tag):
        self.events.append(f"enter {tag}")
        self.entered[tag].set()
        if tag == 'a':
            self.release.wait(5)

    def leave(self, tag):
        self.events.append(f"leave {tag}")


def test_synchronized_method_blocks_concurrent_callers(interp):
    recorder = Recorder()
    interp.set('recorder', recorder)
    tag = AmbiguousName('tag')
    body = Block([call('recorder.enter', tag), call('recorder.leave', tag)])
    interp.eval(MethodDeclaration('work', [FormalParameter('tag', TypeRef('String'))], body,
                                  modifiers=['synchronized']))

    first = threading.Thread(target=interp.eval, args=(call('work', lit('a')),))
    second = threading.Thread(target=interp.eval, args=(call('work', lit('b')),))
    first.start()
    assert recorder.entered['a'].wait(5)
    second.start()
    assert not recorder.entered['b'].wait(0.2)
    recorder.release.set()
    first.join(5)
    second.join(5)
    assert recorder.events == ['enter a', 'leave a', 'enter b', 'leave b']
