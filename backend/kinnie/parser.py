"""Kinnie parser: tokens to function table and statement trees.

The whole program is parsed once before anything runs. The top level may
only contain `fun NAME ( PARAMS ) { BODY }` forms; each body becomes an owned
`Block` of statement nodes, so the interpreter never re-scans braces while
executing loops or branches.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, NoReturn, Optional, Union

from .errors import LexUnknownCharacterError, ResourceExhaustedError, StructuralParseError
from .lexer import ARITHMETIC_TYPES, COMPARISON_TYPES, Token

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class Node:
    token: Token


# --- expressions ---------------------------------------------------------

@dataclass
class NumberLiteral(Node):
    text: str


@dataclass
class StringLiteral(Node):
    text: str


@dataclass
class Identifier(Node):
    name: str


Operand = Union[NumberLiteral, Identifier]


@dataclass
class BinaryStep:
    op: Token
    operand: Operand


@dataclass
class Expression(Node):
    """An operand followed by zero or more `op operand` steps, folded left to right."""

    first: Operand
    steps: List[BinaryStep] = field(default_factory=list)

    def bare_identifier(self) -> Optional[Identifier]:
        if not self.steps and isinstance(self.first, Identifier):
            return self.first
        return None


@dataclass
class CallExpression(Node):
    name: str
    args: List["Value"]


Value = Union[StringLiteral, CallExpression, Expression]


# --- statements ----------------------------------------------------------

class Statement(Node):
    pass


@dataclass
class Block:
    statements: List[Statement]


@dataclass
class Assign(Statement):
    target: str
    value: Value
    declare: bool


@dataclass
class CallStatement(Statement):
    call: CallExpression


@dataclass
class Print(Statement):
    value: Union[StringLiteral, Expression]


@dataclass
class Condition(Node):
    left: Operand
    op: Optional[Token] = None
    right: Optional[Operand] = None


@dataclass
class If(Statement):
    condition: Condition
    then_block: Block
    else_block: Optional[Block]


@dataclass
class Repeat(Statement):
    counter: Identifier
    body: Block


@dataclass
class Return(Statement):
    value: Value


@dataclass
class End(Statement):
    pass


@dataclass
class FunctionDef(Node):
    name: str
    params: List[str]
    body: Block


@dataclass
class Program:
    """The function table: name -> FunctionDef, in definition order."""

    functions: Dict[str, FunctionDef]

    def get(self, name: str) -> Optional[FunctionDef]:
        return self.functions.get(name)


class Parser:
    def __init__(self, tokens: List[Token], *, max_nesting: int = 64):
        if not tokens or tokens[-1].type != "EOF":
            raise ValueError("token list must end with an EOF token")
        self.tokens = tokens
        self.max_nesting = max_nesting
        self.index = 0
        self._nesting = 0

    def parse(self) -> Program:
        functions: Dict[str, FunctionDef] = {}
        while self._peek().type != "EOF":
            token = self._peek()
            if token.type != "FUN":
                self._reject(token, "Only function definitions are allowed at the top level", hint="Wrap statements in: fun main() { ... }")
            func = self._parse_function()
            if func.name in functions:
                raise StructuralParseError(f"Function '{func.name}' is already defined", token=func.token)
            functions[func.name] = func
            logger.debug("registered function %s(%s)", func.name, ", ".join(func.params))
        return Program(functions=functions)

    # --- top level ---------------------------------------------------

    def _parse_function(self) -> FunctionDef:
        keyword = self._consume("FUN")
        name = self._consume("IDENT", "Expected function name after 'fun'")
        params: List[str] = []
        # the parameter list is optional: `fun main { ... }`
        if self._match("LPAREN"):
            if self._peek().type != "RPAREN":
                while True:
                    param = self._consume("IDENT", "Expected parameter name")
                    if param.value in params:
                        raise StructuralParseError(f"Duplicate parameter '{param.value}'", token=param)
                    params.append(param.value)
                    if not self._match("COMMA"):
                        break
            self._consume("RPAREN", "Expected ')' after parameters")
        body = self._parse_block("Expected '{' after function signature")
        return FunctionDef(token=keyword, name=name.value, params=params, body=body)

    def _parse_block(self, missing_open: str) -> Block:
        open_brace = self._consume("LBRACE", missing_open)
        self._nesting += 1
        if self._nesting > self.max_nesting:
            raise ResourceExhaustedError(f"Blocks nested deeper than {self.max_nesting}", token=open_brace)
        statements: List[Statement] = []
        while self._peek().type != "RBRACE":
            if self._peek().type == "EOF":
                raise StructuralParseError("Expected '}' to close block", token=open_brace, hint="Add the missing '}'.")
            statements.append(self._parse_statement())
        self._advance()
        self._nesting -= 1
        return Block(statements=statements)

    # --- statements --------------------------------------------------

    def _parse_statement(self) -> Statement:
        token = self._peek()
        if token.type == "VAR":
            self._advance()
            name = self._consume("IDENT", "Expected variable name after 'var'")
            self._consume("ASSIGN", "Expected '=' after variable name")
            return Assign(token=name, target=name.value, value=self._parse_value(), declare=True)
        if token.type == "IDENT":
            following = self._peek_next().type
            if following == "ASSIGN":
                self._advance()
                self._advance()
                return Assign(token=token, target=token.value, value=self._parse_value(), declare=False)
            if following == "LPAREN":
                return CallStatement(token=token, call=self._parse_call())
            self._reject(token, f"Unknown command '{token.value}'", hint="Expected '=' or '(' after a name.")
        if token.type == "OUT":
            self._advance()
            if self._peek().type == "STRING":
                return Print(token=token, value=self._parse_string())
            return Print(token=token, value=self._parse_expression())
        if token.type == "IF":
            return self._parse_if()
        if token.type == "REP":
            self._advance()
            counter = self._consume("IDENT", "Expected loop counter variable after 'rep'")
            body = self._parse_block("Expected '{' after repeat")
            return Repeat(token=token, counter=Identifier(token=counter, name=counter.value), body=body)
        if token.type == "RET":
            self._advance()
            return Return(token=token, value=self._parse_value())
        if token.type == "END":
            self._advance()
            return End(token=token)
        if token.type == "FUN":
            self._reject(token, "Nested function definitions are not supported")
        self._reject(token, f"Unknown command '{token.value or token.type}'")

    def _parse_if(self) -> If:
        keyword = self._consume("IF")
        left = self._parse_operand()
        condition = Condition(token=keyword, left=left)
        if self._peek().type in COMPARISON_TYPES:
            condition.op = self._advance()
            condition.right = self._parse_operand()
        then_block = self._parse_block("Expected '{' after if condition")
        else_block: Optional[Block] = None
        if self._match("ELSE"):
            else_block = self._parse_block("Expected '{' after else")
        return If(token=keyword, condition=condition, then_block=then_block, else_block=else_block)

    # --- values ------------------------------------------------------

    def _parse_value(self) -> Value:
        token = self._peek()
        if token.type == "STRING":
            return self._parse_string()
        if token.type == "IDENT" and self._peek_next().type == "LPAREN":
            return self._parse_call()
        return self._parse_expression()

    def _parse_string(self) -> StringLiteral:
        token = self._consume("STRING")
        return StringLiteral(token=token, text=token.value)

    def _parse_call(self) -> CallExpression:
        name = self._consume("IDENT")
        self._consume("LPAREN")
        args: List[Value] = []
        if self._peek().type != "RPAREN":
            while True:
                args.append(self._parse_value())
                if not self._match("COMMA"):
                    break
        self._consume("RPAREN", "Expected ')'")
        return CallExpression(token=name, name=name.value, args=args)

    def _parse_expression(self) -> Expression:
        start = self._peek()
        expr = Expression(token=start, first=self._parse_operand())
        while self._peek().type in ARITHMETIC_TYPES:
            op = self._advance()
            expr.steps.append(BinaryStep(op=op, operand=self._parse_operand()))
        return expr

    def _parse_operand(self) -> Operand:
        token = self._peek()
        if token.type == "NUMBER":
            self._advance()
            return NumberLiteral(token=token, text=token.value)
        if token.type == "IDENT":
            self._advance()
            return Identifier(token=token, name=token.value)
        self._reject(token, "Expected a number or variable")

    # --- token helpers -----------------------------------------------

    def _reject(self, token: Token, message: str, *, hint: Optional[str] = None) -> NoReturn:
        if token.type == "UNKNOWN":
            raise LexUnknownCharacterError(f"Unknown character '{token.value}'", token=token)
        raise StructuralParseError(message, token=token, hint=hint)

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        return self.tokens[min(self.index + 1, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type != "EOF":
            self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self._advance()
            return True
        return False

    def _consume(self, token_type: str, message: Optional[str] = None) -> Token:
        token = self._peek()
        if token.type != token_type:
            self._reject(token, message or f"Expected {token_type}")
        return self._advance()


def parse(tokens: List[Token], *, max_nesting: int = 64) -> Program:
    return Parser(tokens, max_nesting=max_nesting).parse()
