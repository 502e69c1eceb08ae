"""Additional interpreter tests covering control flow, errors and edge cases."""

import pytest

from backend.kinnie.errors import ArityError, UndefinedNameError
from backend.kinnie.interpreter import Interpreter


def test_ret_inside_if_leaves_the_function():
    it = Interpreter()
    code = (
        'fun pick(a) { if a > 1 { ret 10 } ret 20 }\n'
        'fun main() { var x = pick(5) out x var y = pick(0) out y }\n'
    )
    res = it.run(code)
    assert res['errors'] is None
    assert res['output'] == '10.020.0'


def test_ret_inside_rep_stops_the_loop():
    it = Interpreter()
    code = (
        'fun first(n) { rep n { out "." if n == 2 { ret n } } ret 99 }\n'
        'fun main() { var r = first(5) out r }\n'
    )
    res = it.run(code)
    assert res['errors'] is None
    assert res['output'] == '...2.0'


def test_value_from_nested_call_does_not_leak_into_caller():
    it = Interpreter()
    code = (
        'fun g() { ret 1 }\n'
        'fun f() { var a = g() }\n'
        'fun main() { var r = f() }\n'
    )
    res = it.run(code)
    assert res['errors']['code'] == 'MISSING_RETURN'


def test_end_stops_current_block_only():
    it = Interpreter()
    res = it.run('fun main() { if 1 { out "a" end out "b" } out "c" end out "d" }')
    assert res['errors'] is None
    assert res['output'] == 'ac'


def test_end_in_function_returns_nothing():
    it = Interpreter()
    res = it.run('fun f() { end ret 1 } fun main() { f() var r = f() }')
    assert res['errors']['code'] == 'MISSING_RETURN'


def test_assignment_without_var_declares_in_current_scope():
    it = Interpreter()
    res = it.run('fun main() { x = 4 out x }')
    assert res['errors'] is None
    assert res['output'] == '4.0'
    res = it.run('fun main() { if 1 { z = 1 } out z }')
    assert res['errors']['code'] == 'UNDEFINED_NAME'


def test_variable_can_change_type_on_reassignment():
    it = Interpreter()
    res = it.run('fun main() { var v = 1 v = "one" out v }')
    assert res['output'] == 'one'


def test_string_in_arithmetic_is_type_mismatch():
    it = Interpreter()
    res = it.run('fun main() {\n  var s = "a"\n  var t = s + 1\n}')
    err = res['errors']
    assert err['code'] == 'TYPE_MISMATCH'
    assert err['line'] == 3
    assert err['column'] == 11


def test_string_counter_in_rep_is_type_mismatch():
    it = Interpreter()
    res = it.run('fun main() { var s = "a" rep s { } }')
    assert res['errors']['code'] == 'TYPE_MISMATCH'


def test_string_in_condition_is_type_mismatch():
    it = Interpreter()
    res = it.run('fun main() { var s = "a" if s == 1 { out "x" } }')
    assert res['errors']['code'] == 'TYPE_MISMATCH'


def test_modulo_truncates_and_keeps_dividend_sign():
    it = Interpreter()
    res = it.run('fun main() { var m = 7 % 3 out m out " " var n = 0 - 7 % 3 out n }')
    assert res['output'] == '1.0 -1.0'


def test_division_by_zero():
    it = Interpreter()
    res = it.run('fun main() { var z = 0 var x = 1 / z }')
    assert res['errors']['code'] == 'DIVISION_BY_ZERO'
    res = it.run('fun main() { var x = 1 % 0 }')
    assert res['errors']['code'] == 'DIVISION_BY_ZERO'


def test_missing_main():
    it = Interpreter()
    res = it.run('fun helper() { out 1 }')
    assert res['errors']['code'] == 'UNDEFINED_NAME'
    assert 'main' in res['errors']['message']


def test_unknown_function():
    it = Interpreter()
    res = it.run('fun main() { nope(1) }')
    assert res['errors']['code'] == 'UNDEFINED_NAME'


def test_unknown_character_reported_with_position():
    it = Interpreter()
    res = it.run('fun main() {\n  var x = 1\n  @\n}')
    err = res['errors']
    assert err['code'] == 'UNKNOWN_CHARACTER'
    assert err['line'] == 3
    assert err['column'] == 3
    assert err['context']['line_text'] == '  @'


def test_lone_bang_is_unknown_character():
    it = Interpreter()
    res = it.run('fun main() { var x = 1 if x ! 2 { out x } }')
    assert res['errors']['code'] == 'UNKNOWN_CHARACTER'


def test_unclosed_interpolation_is_syntax_error():
    it = Interpreter()
    res = it.run('fun main() { var x = 1 out "a{x" }')
    assert res['errors']['code'] == 'SYNTAX_ERROR'


def test_unknown_command_syntax_error():
    it = Interpreter()
    res = it.run('fun main() { else { } }')
    assert res['errors']['code'] == 'SYNTAX_ERROR'
    assert isinstance(res['errors']['position'], int)


def test_syntax_error_missing_brace():
    it = Interpreter()
    res = it.run('fun main() { out 1 ')
    err = res['errors']
    assert err['code'] == 'SYNTAX_ERROR'
    assert err.get('hint')


def test_top_level_statement_is_syntax_error():
    it = Interpreter()
    res = it.run('var x = 1\nfun main() { }')
    assert res['errors']['code'] == 'SYNTAX_ERROR'
    assert res['errors']['line'] == 1


def test_duplicate_function_is_syntax_error():
    it = Interpreter()
    res = it.run('fun main() { } fun main() { }')
    assert res['errors']['code'] == 'SYNTAX_ERROR'


def test_main_with_parameters_is_arity_error():
    it = Interpreter()
    with pytest.raises(ArityError):
        it.execute(it.load('fun main(a) { }'))


def test_execute_raises_and_keeps_partial_output():
    it = Interpreter()
    program = it.load('fun main() { out "before" out missing }')
    with pytest.raises(UndefinedNameError) as info:
        it.execute(program)
    assert info.value.token.value == 'missing'
    assert it.output == 'before'


def test_runs_are_isolated():
    it = Interpreter()
    first = it.run('fun main() { var x = 1 out x }')
    second = it.run('fun main() { out x }')
    assert first['output'] == '1.0'
    assert second['errors']['code'] == 'UNDEFINED_NAME'
    assert second['output'] == ''


def test_stats_present_on_success():
    it = Interpreter()
    res = it.run('fun f() { ret 1 } fun main() { var a = f() }')
    assert res['errors'] is None
    assert res['stats']['calls'] == 2
    assert res['stats']['steps'] == 2


def test_end_inside_rep_ends_only_that_iteration():
    it = Interpreter()
    res = it.run('fun main() { var n = 3 rep n { out "a" end out "b" } out n }')
    assert res['errors'] is None
    assert res['output'] == 'aaa3.0'


def test_interpolation_uses_integer_format():
    it = Interpreter()
    res = it.run('fun main() { var x = 7 / 2 out "x={x}" }', settings={'number_format': 'integer'})
    assert res['errors'] is None
    assert res['output'] == 'x=3'


def test_fractional_repeat_count_is_truncated_with_warning():
    it = Interpreter()
    res = it.run('fun main() { var n = 5 / 2 rep n { out "." } }')
    assert res['errors'] is None
    assert res['output'] == '..'
    assert res['warnings'] == ['line 1: repeat count 2.5 truncated to 2']


def test_result_always_has_warnings():
    it = Interpreter()
    assert it.run('fun main() { out 1 }')['warnings'] == []
    assert it.run('fun main() { out x }')['warnings'] == []
