"""Kinnie error taxonomy.

Every fatal condition the tokenizer, parser or interpreter can detect is a
subclass of `KinnieError`. Each class carries a stable `code` which is what
`Interpreter.run` reports in its structured error dict, so API callers and
tests can match on the code rather than on message text.
"""

from typing import Any, Dict, Optional


class KinnieError(Exception):
    """Base class for all Kinnie failures.

    Attributes:
        message: human readable description.
        token: offending token when one is known; used for line/column/position.
        hint: optional short suggestion for the user.
    """

    code = "KINNIE_ERROR"

    def __init__(self, message: str, *, token: Optional[Any] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.token = token
        self.hint = hint

    def to_dict(self, source_lines: Optional[list] = None) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.token is not None:
            err["line"] = self.token.line
            err["column"] = self.token.column
            err["position"] = self.token.position
            if source_lines and 0 < self.token.line <= len(source_lines):
                err["context"] = {"line_text": source_lines[self.token.line - 1]}
        if self.hint:
            err["hint"] = self.hint
        return err

    def __str__(self) -> str:
        if self.token is None:
            return self.message
        return f"{self.message} at line {self.token.line}, column {self.token.column} (token {self.token.position})"


class StructuralParseError(KinnieError):
    """Missing brace, paren or name; unknown command."""

    code = "SYNTAX_ERROR"


class LexUnknownCharacterError(StructuralParseError):
    """The parser reached a token the tokenizer could not classify."""

    code = "UNKNOWN_CHARACTER"


class UndefinedNameError(KinnieError):
    code = "UNDEFINED_NAME"


class TypeMismatchError(KinnieError):
    code = "TYPE_MISMATCH"


class ArityError(KinnieError):
    code = "ARITY_ERROR"


class MissingReturnError(KinnieError):
    code = "MISSING_RETURN"


class ResourceExhaustedError(KinnieError):
    """A configured limit (tokens, steps, time, depth, loop, output, number range) was exceeded."""

    code = "RESOURCE_EXHAUSTED"


class DivisionByZeroError(KinnieError):
    code = "DIVISION_BY_ZERO"


class ScopeUnderflowError(KinnieError):
    code = "SCOPE_UNDERFLOW"


class ConfigurationError(KinnieError):
    """A per-run setting has an invalid value."""

    code = "INVALID_SETTINGS"
