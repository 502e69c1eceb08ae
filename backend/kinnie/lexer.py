"""Kinnie tokenizer.

Turns raw source text into a flat, ordered list of `Token`s terminated by an
EOF sentinel. The tokenizer never fails on an unexpected character: it emits
an UNKNOWN token and lets the parser report it with a position, so a stray
character only matters once the parser actually reaches it.

The only failures raised here are resource limits (too many tokens, an
oversized lexeme).
"""

import string
from dataclasses import dataclass
from typing import List

from .errors import ResourceExhaustedError


# token kinds, grouped by the category reported through Token.kind
KEYWORDS = {
    "var": "VAR",
    "ret": "RET",
    "out": "OUT",
    "rep": "REP",
    "fun": "FUN",
    "if": "IF",
    "else": "ELSE",
    "end": "END",
}

PUNCTUATION = {
    "{": "LBRACE",
    "}": "RBRACE",
    "(": "LPAREN",
    ")": "RPAREN",
    ",": "COMMA",
}

ARITHMETIC = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "%": "PERCENT",
}

# two-character operators first, then their one-character fallbacks
COMPARISONS = {
    "==": "EQ",
    "!=": "NE",
    ">=": "GE",
    "<=": "LE",
    "=": "ASSIGN",
    ">": "GT",
    "<": "LT",
}

ARITHMETIC_TYPES = frozenset(ARITHMETIC.values())
COMPARISON_TYPES = frozenset({"EQ", "NE", "GE", "LE", "GT", "LT"})

_IDENT_START = frozenset(string.ascii_letters)
_IDENT_PART = frozenset(string.ascii_letters + string.digits)
_DIGITS = frozenset(string.digits)


@dataclass(frozen=True)
class Token:
    type: str
    value: str
    line: int
    column: int
    position: int

    @property
    def kind(self) -> str:
        """Coarse category of the token: keyword, identifier, literal, ..."""
        if self.type in KEYWORDS.values():
            return "keyword"
        if self.type == "IDENT":
            return "identifier"
        if self.type in ("NUMBER", "STRING"):
            return "literal"
        if self.type in ARITHMETIC_TYPES or self.type in COMPARISON_TYPES or self.type == "ASSIGN":
            return "operator"
        if self.type in PUNCTUATION.values():
            return "punctuation"
        if self.type == "EOF":
            return "end-of-input"
        return "unknown"


class Lexer:
    def __init__(self, text: str, *, max_tokens: int = 100_000, max_lexeme_chars: int = 4096) -> None:
        self.text = text
        self.max_tokens = max_tokens
        self.max_lexeme_chars = max_lexeme_chars
        self.index = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        text = self.text
        n = len(text)
        while self.index < n:
            ch = text[self.index]
            if ch.isspace():
                self._advance()
                continue
            if ch == '"':
                self._consume_string()
                continue
            if ch in _DIGITS:
                self._consume_run("NUMBER", _DIGITS)
                continue
            if ch in _IDENT_START:
                self._consume_identifier()
                continue
            if ch in PUNCTUATION:
                self._emit(PUNCTUATION[ch], ch)
                self._advance()
                continue
            if ch in ARITHMETIC:
                self._emit(ARITHMETIC[ch], ch)
                self._advance()
                continue
            if ch in "=!<>":
                self._consume_comparison()
                continue
            self._emit("UNKNOWN", ch)
            self._advance()
        self._emit("EOF", "")
        return self.tokens

    def _emit(self, token_type: str, value: str, line: int = 0, column: int = 0) -> None:
        # the EOF sentinel does not count against the limit
        if token_type != "EOF" and len(self.tokens) >= self.max_tokens:
            raise ResourceExhaustedError(
                f"Program exceeds the token limit ({self.max_tokens})",
                hint="Split the program or raise max_tokens.",
            )
        if len(value) > self.max_lexeme_chars:
            raise ResourceExhaustedError(
                f"Lexeme exceeds {self.max_lexeme_chars} characters at line {line or self.line}",
            )
        self.tokens.append(Token(token_type, value, line or self.line, column or self.column, len(self.tokens)))

    def _consume_string(self) -> None:
        line, col = self.line, self.column
        self._advance()  # opening quote
        start = self.index
        # captured verbatim; an unterminated literal runs to end of input
        while self.index < len(self.text) and self.text[self.index] != '"':
            self._advance()
        value = self.text[start:self.index]
        if self.index < len(self.text):
            self._advance()  # closing quote
        self._emit("STRING", value, line, col)

    def _consume_run(self, token_type: str, allowed: frozenset) -> None:
        line, col = self.line, self.column
        start = self.index
        while self.index < len(self.text) and self.text[self.index] in allowed:
            self._advance()
        value = self.text[start:self.index]
        self._emit(token_type, value, line, col)

    def _consume_identifier(self) -> None:
        line, col = self.line, self.column
        start = self.index
        while self.index < len(self.text) and self.text[self.index] in _IDENT_PART:
            self._advance()
        value = self.text[start:self.index]
        self._emit(KEYWORDS.get(value, "IDENT"), value, line, col)

    def _consume_comparison(self) -> None:
        line, col = self.line, self.column
        pair = self.text[self.index:self.index + 2]
        if len(pair) == 2 and pair in COMPARISONS:
            self._advance()
            self._advance()
            self._emit(COMPARISONS[pair], pair, line, col)
            return
        ch = self.text[self.index]
        self._advance()
        # a lone '!' has no meaning
        self._emit(COMPARISONS.get(ch, "UNKNOWN"), ch, line, col)

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1


def tokenize(text: str, *, max_tokens: int = 100_000, max_lexeme_chars: int = 4096) -> List[Token]:
    """Tokenize `text` and return the token list (EOF-terminated)."""
    return Lexer(text, max_tokens=max_tokens, max_lexeme_chars=max_lexeme_chars).tokenize()
