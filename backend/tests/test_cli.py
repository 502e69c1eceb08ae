"""Command-line entry point tests."""

from backend.kinnie import cli


def test_runs_program_file(tmp_path, capsys):
    src = tmp_path / 'hello.kn'
    src.write_text('fun main() { out "hi" out 2 }', encoding='utf-8')
    assert cli.main([str(src)]) == 0
    captured = capsys.readouterr()
    assert captured.out == 'hi2.0'
    assert captured.err == ''


def test_inline_program_text(capsys):
    assert cli.main(['fun main() { out "inline" }']) == 0
    assert capsys.readouterr().out == 'inline'


def test_missing_kn_file(capsys):
    assert cli.main(['does/not/exist.kn']) == 1
    err = capsys.readouterr().err
    assert 'Failed to read does/not/exist.kn' in err


def test_empty_file(tmp_path, capsys):
    src = tmp_path / 'empty.kn'
    src.write_text('', encoding='utf-8')
    assert cli.main([str(src)]) == 1
    assert 'The file is empty' in capsys.readouterr().err


def test_error_keeps_partial_output_and_prints_one_diagnostic(tmp_path, capsys):
    src = tmp_path / 'bad.kn'
    src.write_text('fun main() {\n  out "a"\n  out nope\n}\n', encoding='utf-8')
    assert cli.main([str(src)]) == 1
    captured = capsys.readouterr()
    assert captured.out == 'a'
    lines = captured.err.strip().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith(f'{src}:3:')
    assert 'UNDEFINED_NAME' in lines[0]


def test_format_error_without_position():
    err = {'code': 'UNDEFINED_NAME', 'message': "No 'main' function found"}
    assert cli.format_error(err, 'x.kn') == "x.kn: UNDEFINED_NAME: No 'main' function found"


def test_oversized_number_is_a_diagnostic_not_a_traceback(capsys):
    program = 'fun main() { var x = ' + '9' * 400 + ' out x }'
    assert cli.main([program]) == 1
    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith('<string>:1:22: RESOURCE_EXHAUSTED')
