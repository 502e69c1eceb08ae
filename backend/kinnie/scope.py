"""Runtime values, variables and the scope stack.

Lookup rule: frames are scanned from the innermost outward and the scan stops
right after the first function-boundary frame, so a function body sees its
own parameters and the transparent block frames nested inside it, never the
locals of whoever called it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .errors import ResourceExhaustedError, ScopeUnderflowError, TypeMismatchError

TYPE_NUMBER = "Number"
TYPE_STRING = "String"


@dataclass(frozen=True)
class Value:
    type: str
    value: Union[int, float, str]

    @classmethod
    def number(cls, value: Union[int, float]) -> "Value":
        return cls(TYPE_NUMBER, value)

    @classmethod
    def string(cls, value: str) -> "Value":
        return cls(TYPE_STRING, value)

    @property
    def is_number(self) -> bool:
        return self.type == TYPE_NUMBER

    @property
    def is_string(self) -> bool:
        return self.type == TYPE_STRING

    def as_number(self, name: str = "value", token=None) -> Union[int, float]:
        if self.type != TYPE_NUMBER:
            raise TypeMismatchError(f"Variable {name} is not a number", token=token)
        return self.value  # type: ignore[return-value]

    def as_string(self, name: str = "value", token=None) -> str:
        if self.type != TYPE_STRING:
            raise TypeMismatchError(f"Variable {name} is not a string", token=token)
        return self.value  # type: ignore[return-value]


@dataclass
class Variable:
    name: str
    value: Value


@dataclass
class Scope:
    is_function_boundary: bool
    variables: List[Variable] = field(default_factory=list)

    def find(self, name: str) -> Optional[Variable]:
        for var in self.variables:
            if var.name == name:
                return var
        return None


class ScopeStack:
    def __init__(self, max_depth: int = 64):
        self.max_depth = max_depth
        self.frames: List[Scope] = []

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def depth(self) -> int:
        return len(self.frames)

    def push(self, is_function_boundary: bool) -> Scope:
        if len(self.frames) >= self.max_depth:
            raise ResourceExhaustedError(
                f"Scope depth exceeded ({self.max_depth})",
                hint="Reduce recursion or block nesting, or raise max_scope_depth.",
            )
        scope = Scope(is_function_boundary=is_function_boundary)
        self.frames.append(scope)
        return scope

    def pop(self) -> Scope:
        if not self.frames:
            raise ScopeUnderflowError("Scope underflow")
        return self.frames.pop()

    def lookup(self, name: str) -> Optional[Variable]:
        for scope in reversed(self.frames):
            var = scope.find(name)
            if var is not None:
                return var
            if scope.is_function_boundary:
                break
        return None

    def bind(self, name: str, value: Value) -> Variable:
        """Update a visible binding, or create one in the innermost frame.

        Assigning to a name that was never declared therefore declares it in
        the current frame.
        """
        var = self.lookup(name)
        if var is not None:
            var.value = value
            return var
        if not self.frames:
            raise ScopeUnderflowError(f"No scope to bind '{name}' in")
        var = Variable(name=name, value=value)
        self.frames[-1].variables.append(var)
        return var


class ReturnSlot:
    """Carries a callee's `ret` value back to the caller."""

    def __init__(self) -> None:
        self.value: Optional[Value] = None
        self.has_value = False

    def reset(self) -> None:
        self.value = None
        self.has_value = False

    def set(self, value: Value) -> None:
        self.value = value
        self.has_value = True
