import collections
import math
from types import SimpleNamespace

import pytest

from jive.jive_errors import EvalError, TargetException
from jive.jive_names import count_parts, prefix, suffix
from jive.jive_nodes import (
    AmbiguousName, Assignment, Block, Cast, ClassSuffix, FieldSuffix, Literal, MethodDeclaration, MethodInvocation,
    PrimaryExpression, PropertySuffix, Return, TypeRef,
)
from jive.jive_runtime import Interpreter
from jive.jive_this import This


@pytest.fixture
def interp():
    return Interpreter()


def name(n):
    return AmbiguousName(n)


@pytest.mark.parametrize("func, value, parts, expected", [
    (prefix, 'a.b.c', None, 'a.b'),
    (prefix, 'a.b.c', 1, 'a'),
    (prefix, 'a', None, None),
    (suffix, 'a.b.c', None, 'b.c'),
    (suffix, 'a.b.c', 1, 'c'),
    (suffix, 'a', None, None),
])
def test_compound_name_helpers(func, value, parts, expected):
    assert func(value, parts) == expected


def test_count_parts():
    assert count_parts('a.b.c') == 3
    assert count_parts('a') == 1
    assert count_parts('') == 0


# -----------------------------------------------------------------
# Left-to-right resolution
# -----------------------------------------------------------------

def test_each_segment_resolves_against_the_previous_result(interp):
    interp.set('a', SimpleNamespace(b=SimpleNamespace(c=1)))
    interp.set('b', SimpleNamespace(c=2))
    assert interp.get('a.b.c') == 1
    assert interp.get('b.c') == 2


def test_variables_shadow_class_names(interp):
    assert interp.get('String') is str
    interp.set('String', "shadow")
    assert interp.get('String') == "shadow"


def test_class_and_module_prefixes(interp):
    assert interp.get('collections.OrderedDict') is collections.OrderedDict
    assert interp.get('math.pi') == math.pi


def test_undefined_names(interp):
    assert interp.get('nothing_here') is None
    with pytest.raises(EvalError, match="Class or variable not found"):
        interp.get('no_such_thing_xyz.x')


def test_null_base_is_a_null_pointer(interp):
    interp.set('n', None)
    with pytest.raises(TargetException) as info:
        interp.get('n.x')
    assert isinstance(info.value.target, AttributeError)


def test_primitive_base_is_an_error(interp):
    interp.set('p', 5)
    with pytest.raises(EvalError) as info:
        interp.get('p.x')
    assert not isinstance(info.value, TargetException)
    assert "Can't treat primitive like an object" in info.value.raw_message


def test_length_of_host_sequences(interp):
    interp.set('lst', [1, 2, 3])
    assert interp.get('lst.length') == 3


def test_missing_field(interp):
    interp.set('obj', SimpleNamespace())
    with pytest.raises(EvalError, match="Cannot access field: missing"):
        interp.get('obj.missing')


def test_assignment_allocates_intermediate_objects(interp):
    interp.set('holder.count', 5)
    assert isinstance(interp.get('holder'), This)
    assert interp.get('holder.count') == 5


# -----------------------------------------------------------------
# this, global and special fields
# -----------------------------------------------------------------

def test_this_fields(interp):
    interp.set('x', 1)
    assert interp.eval(name('this.x')) == 1
    assert interp.eval(name('global.x')) == 1
    assert interp.eval(name('this')) is interp.eval(name('global'))


def test_this_interpreter(interp):
    assert interp.eval(name('this.interpreter')) is interp
    with pytest.raises(EvalError, match="Can only call .interpreter on literal 'this'"):
        interp.eval(name('global.interpreter'))


def test_this_variables_and_methods(interp):
    interp.set('v1', 1)
    interp.eval(MethodDeclaration('m1', [], Block()))
    assert 'v1' in interp.eval(name('this.variables'))
    assert interp.eval(name('this.methods')) == ['m1']
    assert interp.eval(name('this.nameSpace')) is interp.get_namespace()


def test_this_caller(interp):
    interp.eval(MethodDeclaration('who_called', [], Block([Return(name('this.caller'))])))
    caller = interp.eval(MethodInvocation('who_called'))
    assert caller is interp.eval(name('this'))


def test_caller_needs_literal_this(interp):
    interp.eval(Assignment(name('t'), '=', name('this')))
    with pytest.raises(EvalError, match="Can only call .caller on literal 'this'"):
        interp.eval(name('t.caller'))
    with pytest.raises(EvalError, match="Can only call .interpreter on literal 'this'"):
        interp.eval(name('t.interpreter'))


def test_cannot_assign_this(interp):
    with pytest.raises(EvalError, match="Can't assign to 'this'"):
        interp.eval(Assignment(name('this'), '=', Literal(1)))


# -----------------------------------------------------------------
# Invocation and suffixes
# -----------------------------------------------------------------

def test_static_host_method(interp):
    assert interp.eval(MethodInvocation('math.sqrt', [Literal(16.0)])) == 4.0


def test_method_on_null(interp):
    interp.set('n', None)
    with pytest.raises(TargetException) as info:
        interp.eval(MethodInvocation('n.foo'))
    assert isinstance(info.value.target, AttributeError)


def test_host_instance_method(interp):
    interp.set('s', "abc")
    assert interp.eval(MethodInvocation('s.upper')) == "ABC"
    with pytest.raises(EvalError, match="Error in method invocation"):
        interp.eval(MethodInvocation('s.no_such_method'))


def test_property_suffix(interp):
    cfg = {'k': 'v'}
    interp.set('cfg', cfg)
    assert interp.eval(PrimaryExpression(name('cfg'), [PropertySuffix(Literal("k"))])) == 'v'
    interp.eval(Assignment(PrimaryExpression(name('cfg'), [PropertySuffix(Literal("n"))]), '=', Literal(2)))
    assert cfg == {'k': 'v', 'n': 2}


def test_field_suffix_assignment(interp):
    obj = SimpleNamespace(a=1)
    interp.set('obj', obj)
    interp.eval(Assignment(PrimaryExpression(name('obj'), [FieldSuffix('a')]), '+=', Literal(2)))
    assert obj.a == 3


def test_class_suffix(interp):
    assert interp.eval(PrimaryExpression(name('String'), [ClassSuffix()])) is str


def test_unknown_type(interp):
    with pytest.raises(EvalError, match="Class: Nope not found"):
        interp.eval(Cast(TypeRef('Nope'), Literal(1)))
