"""Kinnie interpreter module.

This module walks the statement trees produced by `parser.py`. All run state
(scope stack, function table, return slot, step counter, output buffer) lives
on one `Interpreter` instance, so independent runs never share anything and
tests can build as many interpreters as they like.

Two entry points are provided:

- `execute(program)` runs an already-parsed program and raises `KinnieError`
  subclasses on failure; hosts that want exceptions use this.
- `run(code, settings)` tokenizes, parses and executes, and always returns a
  result dict (`output`, `warnings`, `errors`, `declarations`, `stats`).
  Errors come back as structured dicts carrying a stable `code` plus
  line/column/position.

Runtime limits (tokens, steps, wall-clock time, loop goal, call depth, scope
depth, output size, number range) are tunable or fixed bounds; exceeding any
of them raises `ResourceExhaustedError` instead of silently truncating.
"""

import json
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Union

from . import subprocess_runner
from .declarations import DeclarationWriter
from .errors import (
    ArityError,
    ConfigurationError,
    DivisionByZeroError,
    KinnieError,
    MissingReturnError,
    ResourceExhaustedError,
    StructuralParseError,
    TypeMismatchError,
    UndefinedNameError,
)
from .lexer import Token, tokenize
from .parser import (
    Assign,
    Block,
    CallExpression,
    CallStatement,
    Condition,
    End,
    Expression,
    FunctionDef,
    Identifier,
    If,
    NumberLiteral,
    Print,
    Program,
    Repeat,
    Return,
    Statement,
    StringLiteral,
    parse,
)
from .scope import ReturnSlot, ScopeStack, Value

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Number = Union[int, float]

NUMBER_FORMATS = ("fraction", "integer")

# integer results must fit a C `long long`
INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1

# attributes a `settings` dict may override for one run
SETTING_KEYS = (
    "max_tokens",
    "max_lexeme_chars",
    "max_steps",
    "max_time_s",
    "max_loop",
    "max_call_depth",
    "max_scope_depth",
    "max_output_chars",
    "number_format",
    "emit_declarations",
)


class ReturnSignal(Exception):
    """Unwinds nested blocks up to the owning function call."""

    def __init__(self, value: Value) -> None:
        super().__init__(value)
        self.value = value


class EndSignal(Exception):
    """Leaves the block currently being executed."""


def _trunc_div(a: int, b: int) -> int:
    # C division: the quotient truncates toward zero
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


class Interpreter:
    """Top-level Kinnie interpreter.

    Tunable attributes (defaults set in __init__, overridable per run through
    the `settings` argument of `run`):
    - max_tokens, max_lexeme_chars: tokenizer limits
    - max_steps: executed statements per run
    - max_time_s: wall-clock budget for executing one program (seconds)
    - max_loop: largest goal a `rep` loop may start with
    - max_call_depth, max_scope_depth: nesting of calls and of all frames
    - max_output_chars: size of the collected output
    - number_format: "fraction" (floats, printed with one decimal) or "integer"
    - emit_declarations: collect the side declaration file for `main`'s vars
    """

    def __init__(self) -> None:
        self.max_tokens = 100_000
        self.max_lexeme_chars = 4096
        self.max_steps = 100_000
        self.max_time_s = 1.5
        self.max_loop = 10_000
        self.max_call_depth = 32
        self.max_scope_depth = 64
        self.max_output_chars = 65_536
        self.number_format = "fraction"
        self.emit_declarations = False

        self._dispatch: Dict[type, Callable[[Any], None]] = {
            Assign: self._exec_assign,
            CallStatement: self._exec_call_statement,
            Print: self._exec_print,
            If: self._exec_if,
            Repeat: self._exec_repeat,
            Return: self._exec_return,
            End: self._exec_end,
        }
        self._reset_state()

    def _reset_state(self) -> None:
        self.program: Optional[Program] = None
        self.scopes = ScopeStack(max_depth=self.max_scope_depth)
        self.return_slot = ReturnSlot()
        self.steps = 0
        self.calls = 0
        self.warnings: List[str] = []
        self._start_wall = time.time()
        self._call_depth = 0
        self._output: List[str] = []
        self._output_chars = 0
        self.declarations: Optional[DeclarationWriter] = (
            DeclarationWriter(self.number_format) if self.emit_declarations else None
        )

    @property
    def output(self) -> str:
        return "".join(self._output)

    # --- loading -------------------------------------------------------

    def load(self, code: str) -> Program:
        """Tokenize and parse `code` into its function table."""
        tokens = tokenize(code, max_tokens=self.max_tokens, max_lexeme_chars=self.max_lexeme_chars)
        try:
            return parse(tokens, max_nesting=self.max_scope_depth)
        except RecursionError:
            raise ResourceExhaustedError("Program nesting exceeds the parser's recursion limit")

    def execute(self, program: Program) -> str:
        """Run `program` starting from `main()` and return the collected output.

        Output produced before a failure stays available through `output`.
        """
        self._reset_state()
        self.program = program
        main = program.get("main")
        if main is None:
            raise UndefinedNameError("No 'main' function found", hint="Define: fun main() { ... }")
        if main.params:
            raise ArityError(f"The arguments do not match. Expected {len(main.params)}, got 0", token=main.token)
        try:
            self._invoke(main, [])
        except RecursionError:
            raise ResourceExhaustedError("Recursion depth exceeded", hint="Lower max_scope_depth or max_call_depth.")
        return self.output

    # --- functions -----------------------------------------------------

    def _call(self, call: CallExpression) -> Optional[Value]:
        func = self.program.get(call.name) if self.program is not None else None
        if func is None:
            raise UndefinedNameError(f"Unknown function: {call.name}", token=call.token)
        if len(call.args) != len(func.params):
            raise ArityError(
                f"The arguments do not match. Expected {len(func.params)}, got {len(call.args)}",
                token=call.token,
            )
        # arguments are evaluated in the caller's scope
        args = [self._evaluate_value(arg) for arg in call.args]
        return self._invoke(func, args, call.token)

    def _invoke(self, func: FunctionDef, args: List[Value], token: Optional[Token] = None) -> Optional[Value]:
        if self._call_depth >= self.max_call_depth:
            raise ResourceExhaustedError(f"Call depth limit exceeded ({self.max_call_depth})", token=token or func.token)
        logger.debug("call %s depth=%d", func.name, self._call_depth + 1)
        self.calls += 1
        self._call_depth += 1
        self.return_slot.reset()
        self.scopes.push(True)
        try:
            for name, value in zip(func.params, args):
                self.scopes.bind(name, value)
            try:
                self._execute_statements(func.body.statements)
            except ReturnSignal:
                pass
            else:
                # a nested call may have filled the slot; this call returned nothing
                self.return_slot.reset()
            return self.return_slot.value if self.return_slot.has_value else None
        finally:
            self.scopes.pop()
            self._call_depth -= 1

    # --- statements ----------------------------------------------------

    def _execute_statements(self, statements: List[Statement]) -> None:
        try:
            for stmt in statements:
                self._execute_statement(stmt)
        except EndSignal:
            return

    def _execute_statement(self, stmt: Statement) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise ResourceExhaustedError(f"Step limit exceeded ({self.max_steps})", token=stmt.token)
        if time.time() - self._start_wall > self.max_time_s:
            raise ResourceExhaustedError(f"Time limit exceeded ({self.max_time_s}s)", token=stmt.token)
        handler = self._dispatch.get(type(stmt))
        if handler is None:
            raise StructuralParseError(f"Unknown command {type(stmt).__name__}", token=stmt.token)
        handler(stmt)

    def _run_nested(self, block: Block) -> None:
        self.scopes.push(False)
        try:
            self._execute_statements(block.statements)
        finally:
            self.scopes.pop()

    def _exec_assign(self, stmt: Assign) -> None:
        value = self._evaluate_value(stmt.value)
        self.scopes.bind(stmt.target, value)
        # only `var` statements run directly in the entry main frame
        if stmt.declare and self.declarations is not None and self.scopes.depth == 1:
            self.declarations.declare(stmt.target, value)

    def _exec_call_statement(self, stmt: CallStatement) -> None:
        self._call(stmt.call)

    def _exec_print(self, stmt: Print) -> None:
        if isinstance(stmt.value, StringLiteral):
            self._write(self._render_template(stmt.value))
            return
        ident = stmt.value.bare_identifier()
        if ident is not None:
            var = self.scopes.lookup(ident.name)
            if var is not None and var.value.is_string:
                self._write(var.value.as_string(ident.name).replace("\\n", "\n"))
                return
        self._write(self._format_number(self._evaluate_expression(stmt.value)))

    def _exec_if(self, stmt: If) -> None:
        block = stmt.then_block if self._evaluate_condition(stmt.condition) else stmt.else_block
        if block is not None:
            self._run_nested(block)

    def _exec_repeat(self, stmt: Repeat) -> None:
        name = stmt.counter.name
        token = stmt.counter.token
        counter = self.scopes.lookup(name)
        if counter is None:
            raise UndefinedNameError(f"Loop counter not found: {name}", token=token)
        raw_goal = counter.value.as_number(name, token)
        if not math.isfinite(raw_goal) or raw_goal > self.max_loop:
            raise ResourceExhaustedError(
                f"Repeat count {self._format_number(raw_goal)} exceeds the loop limit ({self.max_loop})",
                token=token,
            )
        goal = int(raw_goal)
        if goal != raw_goal:
            self.warnings.append(f"line {token.line}: repeat count {raw_goal} truncated to {goal}")
        counter.value = Value.number(self._to_number(0, token))
        while counter.value.as_number(name, token) < goal:
            self._run_nested(stmt.body)
            index = counter.value.as_number(name, token)
            counter.value = Value.number(self._check_range(index + 1, token))

    def _exec_return(self, stmt: Return) -> None:
        value = self._evaluate_value(stmt.value)
        self.return_slot.set(value)
        raise ReturnSignal(value)

    def _exec_end(self, stmt: End) -> None:
        raise EndSignal()

    # --- values and expressions ----------------------------------------

    def _evaluate_value(self, node: Union[StringLiteral, CallExpression, Expression]) -> Value:
        if isinstance(node, StringLiteral):
            return Value.string(node.text)
        if isinstance(node, CallExpression):
            result = self._call(node)
            if result is None:
                raise MissingReturnError(f"Function {node.name} did not return a value", token=node.token)
            return result
        ident = node.bare_identifier()
        if ident is not None:
            var = self.scopes.lookup(ident.name)
            if var is not None and var.value.is_string:
                return var.value
        return Value.number(self._evaluate_expression(node))

    def _evaluate_expression(self, expr: Expression) -> Number:
        # strictly left to right, no precedence
        result = self._operand(expr.first)
        for step in expr.steps:
            result = self._apply(step.op, result, self._operand(step.operand))
        return result

    def _operand(self, node: Union[NumberLiteral, Identifier]) -> Number:
        if isinstance(node, NumberLiteral):
            try:
                literal = int(node.text)
            except ValueError:
                # more digits than int() will parse
                raise ResourceExhaustedError(f"Number literal too long ({len(node.text)} digits)", token=node.token)
            return self._to_number(literal, node.token)
        var = self.scopes.lookup(node.name)
        if var is None:
            raise UndefinedNameError(f"Unknown variable: {node.name}", token=node.token)
        return var.value.as_number(node.name, node.token)

    def _apply(self, op: Token, left: Number, right: Number) -> Number:
        if op.type == "PLUS":
            result = left + right
        elif op.type == "MINUS":
            result = left - right
        elif op.type == "STAR":
            result = left * right
        elif op.type == "SLASH":
            if right == 0:
                raise DivisionByZeroError("Division by zero", token=op)
            if self.number_format == "integer":
                result = _trunc_div(int(left), int(right))
            else:
                result = left / right
        elif op.type == "PERCENT":
            # both operands are truncated to whole numbers first
            if not (math.isfinite(left) and math.isfinite(right)):
                raise TypeMismatchError("Modulo needs finite numbers", token=op)
            a, b = int(left), int(right)
            if b == 0:
                raise DivisionByZeroError("Modulo by zero", token=op)
            return self._to_number(a - b * _trunc_div(a, b), op)
        else:
            raise StructuralParseError(f"Unsupported operator '{op.value}'", token=op)
        return self._check_range(result, op)

    def _evaluate_condition(self, cond: Condition) -> bool:
        left = self._operand(cond.left)
        if cond.op is None or cond.right is None:
            return left != 0
        right = self._operand(cond.right)
        op = cond.op.type
        if op == "EQ":
            return left == right
        if op == "NE":
            return left != right
        if op == "GT":
            return left > right
        if op == "LT":
            return left < right
        if op == "GE":
            return left >= right
        if op == "LE":
            return left <= right
        raise StructuralParseError(f"Unsupported comparison '{cond.op.value}'", token=cond.op)

    # --- output --------------------------------------------------------

    def _to_number(self, value: Number, token: Optional[Token] = None) -> Number:
        try:
            number = int(value) if self.number_format == "integer" else float(value)
        except OverflowError:
            raise ResourceExhaustedError("Number out of range", token=token)
        return self._check_range(number, token)

    def _check_range(self, number: Number, token: Optional[Token] = None) -> Number:
        if self.number_format == "integer":
            if not INT_MIN <= number <= INT_MAX:
                raise ResourceExhaustedError("Integer result out of 64-bit range", token=token)
        elif math.isinf(number):
            raise ResourceExhaustedError("Number out of range", token=token)
        return number

    def _format_number(self, value: Number) -> str:
        if self.number_format == "integer":
            return str(int(value))
        return "%.1f" % value

    def _render_template(self, literal: StringLiteral) -> str:
        """Translate `\\n` pairs and splice `{name}` placeholders."""
        text = literal.text
        parts: List[str] = []
        j = 0
        while j < len(text):
            ch = text[j]
            if ch == "\\" and text[j + 1:j + 2] == "n":
                parts.append("\n")
                j += 2
                continue
            if ch == "{":
                close = text.find("}", j + 1)
                if close < 0:
                    raise StructuralParseError("Missing closing '}' in string interpolation", token=literal.token)
                name = text[j + 1:close]
                var = self.scopes.lookup(name)
                if var is None:
                    raise UndefinedNameError(f"Variable not found: {name}", token=literal.token)
                if var.value.is_string:
                    parts.append(var.value.as_string(name))
                else:
                    parts.append(self._format_number(var.value.as_number(name)))
                j = close + 1
                continue
            parts.append(ch)
            j += 1
        return "".join(parts)

    def _write(self, text: str) -> None:
        if self._output_chars + len(text) > self.max_output_chars:
            raise ResourceExhaustedError(f"Output length limit reached ({self.max_output_chars})")
        self._output.append(text)
        self._output_chars += len(text)

    # --- run API -------------------------------------------------------

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        for key in SETTING_KEYS:
            if key in settings and settings[key] is not None:
                setattr(self, key, settings[key])
        if self.number_format not in NUMBER_FORMATS:
            raise ConfigurationError(f"number_format must be one of {NUMBER_FORMATS}, got {self.number_format!r}")

    def _err(self, error: KinnieError, source_lines: List[str]) -> Dict[str, Any]:
        return error.to_dict(source_lines)

    @staticmethod
    def _error_result(errors: Dict[str, Any], output: str = "", warnings: Optional[List[str]] = None) -> Dict[str, Any]:
        return {
            "output": output,
            "warnings": list(warnings or []),
            "errors": errors,
            "declarations": None,
            "stats": None,
        }

    def run(self, code: str, settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Load and execute `code`, returning a result dict instead of raising.

        `settings` overrides tunables for this run only; the instance keeps
        its own values afterwards.

        Returns a dict with keys:
            output: everything printed (partial output is kept on failure)
            warnings: non-fatal notes collected while running
            errors: None, or {code, message, line, column, position, context, hint}
            declarations: rendered side declaration file, when enabled
            stats: {steps, calls, duration_ms} on success, else None
        """
        settings_local: Dict[str, Any] = settings or {}
        if settings_local.get("use_subprocess"):
            return self._run_in_subprocess(code, settings_local)

        saved = {key: getattr(self, key) for key in SETTING_KEYS}
        try:
            return self._run_local(code, settings_local)
        finally:
            for key, value in saved.items():
                setattr(self, key, value)

    def _run_local(self, code: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        self._reset_state()
        start_time = time.time()
        source_lines = code.splitlines()
        try:
            self._apply_settings(settings)
            self._reset_state()
            program = self.load(code)
            self.execute(program)
        except KinnieError as e:
            logger.debug("run failed: %s", e)
            return self._error_result(self._err(e, source_lines), self.output, self.warnings)
        return self._finalize_run(start_time)

    def _finalize_run(self, start_time: float) -> Dict[str, Any]:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug("run finished: steps=%d calls=%d in %dms", self.steps, self.calls, duration_ms)
        return {
            "output": self.output,
            "warnings": list(self.warnings),
            "errors": None,
            "declarations": self.declarations.render() if self.declarations is not None else None,
            "stats": {"steps": self.steps, "calls": self.calls, "duration_ms": duration_ms},
        }

    def _run_in_subprocess(self, code: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        # Run the program in a sandboxed worker process; the worker builds its
        # own Interpreter and replies with the same result dict shape.
        child_settings = {k: v for k, v in settings.items() if k in SETTING_KEYS}
        try:
            rc, out, err = subprocess_runner.run_code_in_subprocess(
                code, child_settings, timeout_s=int(settings.get("timeout_s", 2))
            )
        except OSError as e:
            return self._error_result({"code": "SUBPROCESS_ERROR", "message": str(e)})
        if rc == -1:
            return self._error_result({"code": "TIMEOUT", "message": "Time limit exceeded"})
        try:
            payload = json.loads(out)
        except ValueError:
            return self._error_result({"code": "SUBPROCESS_FAILED", "message": err or f"worker exited with {rc}"}, out)
        return payload
