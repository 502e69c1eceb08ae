"""Tokenizer tests."""

import pytest

from backend.kinnie.errors import ResourceExhaustedError
from backend.kinnie.lexer import tokenize


def types(text):
    return [t.type for t in tokenize(text)]


def test_keywords_identifiers_and_literals():
    toks = tokenize('var x = "a b" out x1 rep fun if else end ret')
    assert [t.type for t in toks] == [
        'VAR', 'IDENT', 'ASSIGN', 'STRING', 'OUT', 'IDENT', 'REP', 'FUN', 'IF', 'ELSE', 'END', 'RET', 'EOF',
    ]
    assert toks[3].value == 'a b'
    assert toks[5].value == 'x1'


def test_keywords_are_case_sensitive():
    assert types('Var OUT') == ['IDENT', 'IDENT', 'EOF']


def test_two_character_operators_use_lookahead():
    assert types('== != >= <= > < =') == ['EQ', 'NE', 'GE', 'LE', 'GT', 'LT', 'ASSIGN', 'EOF']
    assert types('x>=1') == ['IDENT', 'GE', 'NUMBER', 'EOF']
    assert types('a=') == ['IDENT', 'ASSIGN', 'EOF']


def test_lone_bang_and_stray_characters_are_unknown():
    toks = tokenize('! @ a_b')
    assert [t.type for t in toks] == ['UNKNOWN', 'UNKNOWN', 'IDENT', 'UNKNOWN', 'IDENT', 'EOF']
    assert toks[0].kind == 'unknown'


def test_numbers_are_digit_runs_only():
    toks = tokenize('12.5 7ab')
    assert [(t.type, t.value) for t in toks[:-1]] == [
        ('NUMBER', '12'), ('UNKNOWN', '.'), ('NUMBER', '5'), ('NUMBER', '7'), ('IDENT', 'ab'),
    ]


def test_strings_are_verbatim():
    toks = tokenize(r'"line\n{x}"')
    assert toks[0].value == r'line\n{x}'
    # an unterminated literal runs to the end of input
    assert tokenize('"open')[0].value == 'open'


def test_punctuation_and_arithmetic():
    assert types('{ } ( ) , + - * / %') == [
        'LBRACE', 'RBRACE', 'LPAREN', 'RPAREN', 'COMMA', 'PLUS', 'MINUS', 'STAR', 'SLASH', 'PERCENT', 'EOF',
    ]


def test_positions():
    toks = tokenize('fun main {\n  out 1\n}')
    out = toks[3]
    assert out.type == 'OUT'
    assert (out.line, out.column, out.position) == (2, 3, 3)
    assert toks[-1].kind == 'end-of-input'


def test_token_kinds():
    kinds = [t.kind for t in tokenize('var x = 1 + "s" {')]
    assert kinds == ['keyword', 'identifier', 'operator', 'literal', 'operator', 'literal', 'punctuation', 'end-of-input']


def test_token_limit():
    with pytest.raises(ResourceExhaustedError):
        tokenize('a b c d', max_tokens=3)
    assert len(tokenize('a b c', max_tokens=3)) == 4


def test_lexeme_limit():
    with pytest.raises(ResourceExhaustedError):
        tokenize('"' + 'x' * 20 + '"', max_lexeme_chars=10)
