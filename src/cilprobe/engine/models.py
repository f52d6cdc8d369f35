"""
Data models for the constant-resolution engine.

Key concepts
────────────
LiteralKind       — the two value kinds the engine can recover
InstructionKind   — closed classification of one CIL instruction
Instruction       — a decoded instruction (kind + literal or field operand)
PendingLiteral    — single-slot evaluation-stack model (empty | literal)
InitializerValues — name → value maps recorded from a static initializer
ResolvedValue     — engine output plus the path that produced it
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from cilprobe.metadata.models import FieldRef

__all__ = [
    "LiteralKind",
    "InstructionKind",
    "Literal",
    "Instruction",
    "PendingLiteral",
    "InitializerValues",
    "ResolutionSource",
    "ResolvedValue",
]


class LiteralKind(str, Enum):
    INT    = "int"
    STRING = "string"

    def accepts(self, value: object) -> bool:
        """True if `value` is a Python value of this kind."""
        if self is LiteralKind.INT:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, str)


class InstructionKind(str, Enum):
    PUSH_INT           = "push_int"
    PUSH_STRING        = "push_string"
    LOAD_STATIC_FIELD  = "load_static_field"
    STORE_STATIC_FIELD = "store_static_field"
    RETURN             = "return"
    NOP                = "nop"
    OTHER              = "other"


@dataclass(frozen=True)
class Literal:
    kind:  LiteralKind
    value: Union[int, str]


@dataclass(frozen=True)
class Instruction:
    kind:  InstructionKind
    value: Union[int, str, None] = None     # PUSH_INT / PUSH_STRING
    field: Optional[FieldRef] = None        # LOAD / STORE; None if unresolved

    @property
    def literal(self) -> Optional[Literal]:
        if self.kind is InstructionKind.PUSH_INT:
            return Literal(LiteralKind.INT, self.value)
        if self.kind is InstructionKind.PUSH_STRING:
            return Literal(LiteralKind.STRING, self.value)
        return None


class PendingLiteral:
    """
    Single-slot model of the evaluation stack top.

    Either empty or holding exactly one literal of one kind. A new literal
    replaces whatever is held; take() consumes the slot.
    """

    def __init__(self) -> None:
        self._held: Optional[Literal] = None

    @property
    def is_empty(self) -> bool:
        return self._held is None

    def hold(self, literal: Literal) -> None:
        self._held = literal

    def take(self) -> Optional[Literal]:
        literal, self._held = self._held, None
        return literal

    def __repr__(self) -> str:
        return f"PendingLiteral({self._held!r})"


@dataclass
class InitializerValues:
    """Values assigned to static fields by literal stores in a static initializer."""
    ints:    dict[str, int] = field(default_factory=dict)
    strings: dict[str, str] = field(default_factory=dict)

    def record(self, field_name: str, literal: Literal) -> None:
        target = self.ints if literal.kind is LiteralKind.INT else self.strings
        target[field_name] = literal.value

    def lookup(self, field_name: str, kind: LiteralKind) -> Union[int, str, None]:
        source = self.ints if kind is LiteralKind.INT else self.strings
        return source.get(field_name)

    def __bool__(self) -> bool:
        return bool(self.ints or self.strings)


class ResolutionSource(str, Enum):
    """Which path produced a ResolvedValue. Diagnostic only."""
    EMBEDDED_CONSTANT  = "embedded_constant"
    STATIC_INITIALIZER = "static_initializer"
    GETTER             = "getter"
    NONE               = "none"


@dataclass(frozen=True)
class ResolvedValue:
    value:  Union[int, str, None] = None
    source: ResolutionSource = ResolutionSource.NONE

    @classmethod
    def absent(cls) -> "ResolvedValue":
        return cls()

    @property
    def found(self) -> bool:
        return self.value is not None

    def __str__(self) -> str:
        if not self.found:
            return "absent"
        return f"{self.value!r} via {self.source.value}"
