import collections
import fractions
import math
from types import SimpleNamespace

import pytest

from jive.jive_callstack import CallStack
from jive.jive_errors import EvalError, TargetException, UtilEvalException, UtilTargetException
from jive.jive_namespace import NameSpace
from jive.jive_nodes import (
    AmbiguousName, Allocation, Assignment, BinaryExpression, Block, Break, ImportDeclaration, Literal,
    MethodDeclaration, MethodInvocation, Node, SourceLocation, Throw, TypeRef,
)
from jive.jive_reflect import HostBridge
from jive.jive_runtime import ExecutionResult, Interpreter, InterpreterConfig, ScriptRunner


def name(n):
    return AmbiguousName(n)


def lit(value):
    return Literal(value)


def at(line, text, file='demo.java'):
    return SourceLocation(file, line, text)


# -----------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------

def test_config_from_yaml():
    config = InterpreterConfig.from_yaml("strict: true\ntrace: true\ndefault_imports: [builtins, collections]\n")
    assert config.strict is True
    assert config.trace is True
    assert config.default_imports == ('builtins', 'collections')
    assert config.auto_import_modules is True


def test_empty_yaml_gives_defaults(monkeypatch):
    monkeypatch.delenv("JIVE_DEBUG", raising=False)
    config = InterpreterConfig.from_yaml("")
    assert config.strict is False
    assert config.debug is False
    assert config.host_bridge is None


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown interpreter config keys: bogus"):
        InterpreterConfig.from_yaml("bogus: 1\nstrict: false\n")


def test_config_must_be_a_mapping():
    with pytest.raises(ValueError, match="must be a YAML mapping"):
        InterpreterConfig.from_yaml("- a\n- b\n")


@pytest.mark.parametrize("path", ["jive.jive_reflect:HostBridge", "jive.jive_reflect.HostBridge"])
def test_config_loads_host_bridge_by_path(path):
    config = InterpreterConfig.from_mapping({'host_bridge': path})
    assert isinstance(config.host_bridge, HostBridge)


def test_config_bad_host_bridge_path():
    with pytest.raises(ValueError, match="no attribute 'Missing'"):
        InterpreterConfig.from_mapping({'host_bridge': "jive.jive_reflect:Missing"})


def test_debug_defaults_from_environment(monkeypatch):
    monkeypatch.setenv("JIVE_DEBUG", "1")
    assert InterpreterConfig().debug is True
    assert InterpreterConfig(debug=False).debug is False
    monkeypatch.delenv("JIVE_DEBUG")
    assert InterpreterConfig().debug is False


def test_debug_output(capsys):
    interp = Interpreter(InterpreterConfig(debug=True))
    interp.eval(ImportDeclaration('math', wildcard=True, static=True))
    assert "[DBG] import: math static" in capsys.readouterr().err


def test_no_debug_output_by_default(capsys):
    Interpreter(InterpreterConfig(debug=False)).debug("quiet")
    assert capsys.readouterr().err == ""


def test_trace_output(capsys):
    interp = Interpreter(InterpreterConfig(trace=True, debug=False))
    interp.eval(Assignment(name('x'), '=', lit(1), loc=at(4, "x = 1;")))
    assert capsys.readouterr().err == "[TRACE] demo.java:4 x = 1;\n"


def test_interpreters_do_not_share_globals():
    first, second = Interpreter(), Interpreter()
    first.set('x', 1)
    assert second.get('x') is None
    assert repr(first) == "<Interpreter strict=False namespace=global>"


# -----------------------------------------------------------------
# Host access
# -----------------------------------------------------------------

def test_set_get_unset():
    interp = Interpreter()
    interp.set('x', 5)
    assert interp.get('x') == 5
    assert interp.eval(BinaryExpression(name('x'), '*', lit(2))) == 10
    interp.unset('x')
    assert interp.get('x') is None


def test_dotted_set_writes_host_fields():
    interp = Interpreter()
    obj = SimpleNamespace(a=1)
    interp.set('obj', obj)
    interp.set('obj.a', 5)
    assert obj.a == 5


def test_unset_dotted_name():
    with pytest.raises(EvalError, match="Can't unset dotted name: a.b"):
        Interpreter().unset('a.b')


def test_import_object():
    interp = Interpreter()
    interp.import_object(SimpleNamespace(limit=3, double=lambda v: v * 2))
    assert interp.eval(name('limit')) == 3
    assert interp.eval(MethodInvocation('double', [lit(4)])) == 8


def test_eval_in_child_namespace():
    interp = Interpreter()
    interp.set('x', 1)
    child = NameSpace(interp.get_namespace(), 'child')
    interp.eval(Assignment(name('y'), '=', BinaryExpression(name('x'), '+', lit(1))), child)
    assert interp.eval(name('y'), child) == 2
    assert interp.get('y') is None


# -----------------------------------------------------------------
# Imports
# -----------------------------------------------------------------

def test_static_wildcard_import():
    interp = Interpreter()
    interp.eval(ImportDeclaration('math', wildcard=True, static=True))
    assert interp.eval(MethodInvocation('sqrt', [lit(16.0)])) == 4.0
    assert interp.eval(name('pi')) == math.pi


def test_static_field_import_is_unsupported():
    with pytest.raises(EvalError, match="static field imports not supported yet"):
        Interpreter().eval(ImportDeclaration('math.pi', static=True))


def test_class_import():
    interp = Interpreter()
    value = interp.eval([ImportDeclaration('collections.OrderedDict'), Allocation(TypeRef('OrderedDict'))])
    assert isinstance(value, collections.OrderedDict)


def test_package_import():
    interp = Interpreter()
    value = interp.eval([ImportDeclaration('fractions', wildcard=True),
                         Allocation(TypeRef('Fraction'), [lit(1), lit(3)])])
    assert value == fractions.Fraction(1, 3)


# -----------------------------------------------------------------
# ScriptRunner
# -----------------------------------------------------------------

SOURCE = "int x = 1;\nbreak;\nx++;\n"


def test_runner_success():
    result = ScriptRunner().handle_node([Assignment(name('x'), '=', lit(1)), BinaryExpression(name('x'), '+', lit(1))])
    assert result.status == 'success'
    assert result.value == 2
    assert result.format_error() == ""


def test_runner_eval_error_with_source_context():
    result = ScriptRunner().handle_node(Break(loc=at(2, "break;")), source=SOURCE)
    assert result.status == 'error'
    assert result.error_line == 2
    msg = result.error_message
    assert msg.startswith("EvalError: <In file 'demo.java:2'>: 'break' outside of a loop or switch")
    assert "\tcode: break;" in msg
    assert "  1 | int x = 1;\n> 2 | break;\n  3 | x++;" in msg
    assert result.format_error().startswith("Error on line 2: EvalError:")


def test_runner_target_error():
    boom = Throw(Allocation(TypeRef('RuntimeException'), [lit("boom")]), loc=at(1, 'throw new RuntimeException("boom");'))
    result = ScriptRunner().handle_node(boom)
    assert result.status == 'error'
    assert result.error_message.startswith("TargetError: ")
    assert "Target exception: RuntimeError: boom" in result.error_message


def test_runner_internal_error():
    result = ScriptRunner().handle_node(Node())
    assert result.status == 'error'
    assert result.error_message == "InternalError: Unknown node kind: Node"
    assert result.error_line is None


def test_runner_custom_error_template():
    runner = ScriptRunner(config=InterpreterConfig(error_template="{{line}}|{{message}}"))
    result = runner.handle_node(Break(loc=at(2, "break;")))
    assert result.error_message == "EvalError: 2|'break' outside of a loop or switch"


def test_format_error_adds_line():
    assert ExecutionResult(status='error', error_message="boom", error_line=3).format_error() == "Error on line 3: boom"
    assert ExecutionResult(status='error', error_message="boom").format_error() == "boom"
    assert ExecutionResult(status='error').format_error() == "Unknown error"


# -----------------------------------------------------------------
# Errors
# -----------------------------------------------------------------

def test_script_stack_trace_lists_method_frames():
    interp = Interpreter()
    interp.eval(MethodDeclaration('f', [], Block([Break(loc=at(3, "break;"))])))
    with pytest.raises(EvalError) as info:
        interp.eval(MethodInvocation('f', loc=at(7, "f();")))
    trace = info.value.script_stack_trace()
    assert "Called from method: f : at Line: 7 : in file: demo.java : f();" in trace
    assert info.value.error_line == 3


def test_error_callstack_is_frozen():
    ns = NameSpace(None, 'global')
    stack = CallStack(ns)
    error = EvalError("msg", None, stack)
    stack.push(NameSpace(ns, 'later'))
    assert error.callstack.depth() == 1


def test_error_without_node_or_stack():
    error = EvalError("msg")
    assert error.error_text == "<unknown error>"
    assert error.error_line == -1
    assert error.error_file == "<unknown file>"
    assert error.script_stack_trace() == "<Unknown>"
    assert "<In file '<unknown file>:-1'>: msg" in str(error)


def test_prepend_message():
    error = EvalError("msg")
    error.prepend_message("ctx")
    assert error.raw_message == "ctx : msg"
    error.prepend_message(None)
    assert error.raw_message == "ctx : msg"
    empty = EvalError("")
    empty.prepend_message("ctx")
    assert empty.raw_message == "ctx"
    with pytest.raises(EvalError) as info:
        EvalError("inner").rethrow("outer")
    assert info.value.raw_message == "outer : inner"


def test_util_exceptions_convert():
    error = UtilEvalException("boom").to_eval_error("ctx", None, None)
    assert type(error) is EvalError
    assert error.raw_message == "ctx : boom"

    target = KeyError('k')
    converted = UtilTargetException(target, in_native=True).to_eval_error(None, None, None)
    assert isinstance(converted, TargetException)
    assert converted.target is target
    assert converted.exception_in_native()
    assert converted.raw_message == "'k'"
    assert "Target exception: KeyError: 'k'" in converted.message_detail()
