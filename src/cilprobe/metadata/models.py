"""
Data models for the metadata module — a read-only view of one .NET module.

Key concepts
────────────
ModuleDescriptor    — every type declared in the module (nested ones included)
TypeDescriptor      — fields, properties and methods of ONE type
RawInstruction      — one CIL instruction with its operand already resolved
FieldRef            — best-effort reference to a field from an instruction

Readers (see base.py) build these once per file; the engine only reads them.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

__all__ = [
    "ConstantValue",
    "FieldRef",
    "RawInstruction",
    "FieldDescriptor",
    "MethodDescriptor",
    "PropertyDescriptor",
    "TypeDescriptor",
    "ModuleDescriptor",
    "STATIC_CONSTRUCTOR_NAME",
    "OP_NOP",
    "OP_RET",
    "OP_LDC_I4_S",
    "OP_LDC_I4",
    "OP_LDSTR",
    "OP_LDSFLD",
    "OP_STSFLD",
]

ConstantValue = Union[int, str]

STATIC_CONSTRUCTOR_NAME = ".cctor"

# ── ECMA-335 opcode values carried by RawInstruction.opcode ──────────────────
OP_NOP      = 0x00
OP_RET      = 0x2A
OP_LDC_I4_S = 0x1F
OP_LDC_I4   = 0x20
OP_LDSTR    = 0x72
OP_LDSFLD   = 0x7E
OP_STSFLD   = 0x80


@dataclass(frozen=True)
class FieldRef:
    """
    Field operand of an ldsfld / stsfld instruction.

    `declaring_type` is None when the reference points outside the module
    (a MemberRef into another assembly); such a reference keeps its name but
    cannot be resolved to a FieldDescriptor.
    """
    name:           str
    declaring_type: Optional[str] = None


@dataclass(frozen=True)
class RawInstruction:
    opcode:  int            # ECMA-335 opcode value, e.g. 0x72 for ldstr
    operand: Any = None     # int | str | FieldRef | None
    offset:  int = 0

    def __str__(self) -> str:
        operand = "" if self.operand is None else f" {self.operand!r}"
        return f"IL_{self.offset:04x}: 0x{self.opcode:02X}{operand}"


@dataclass
class FieldDescriptor:
    name:           str
    is_static:      bool = False
    constant:       Optional[ConstantValue] = None   # embedded compile-time value
    declaring_type: str = ""

    @property
    def has_constant(self) -> bool:
        return self.constant is not None


@dataclass
class MethodDescriptor:
    name:         str
    is_static:    bool = False
    instructions: list[RawInstruction] = field(default_factory=list)

    @property
    def has_body(self) -> bool:
        return bool(self.instructions)


@dataclass
class PropertyDescriptor:
    name:   str
    getter: Optional[MethodDescriptor] = None


@dataclass
class TypeDescriptor:
    name:       str
    namespace:  str = ""
    fields:     list[FieldDescriptor] = field(default_factory=list)
    properties: list[PropertyDescriptor] = field(default_factory=list)
    methods:    list[MethodDescriptor] = field(default_factory=list)
    enclosing:  Optional[str] = None     # full name of the enclosing type

    @property
    def full_name(self) -> str:
        """Dotted name for top-level types, Outer/Inner for nested ones."""
        if self.enclosing:
            return f"{self.enclosing}/{self.name}"
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    @property
    def static_initializer(self) -> Optional[MethodDescriptor]:
        for method in self.methods:
            if method.is_static and method.name == STATIC_CONSTRUCTOR_NAME:
                return method
        return None

    # ── Lookups (exact, case-sensitive, within this type only) ────────────

    def find_field(self, name: str) -> Optional[FieldDescriptor]:
        for fld in self.fields:
            if fld.name == name:
                return fld
        return None

    def find_property(self, name: str) -> Optional[PropertyDescriptor]:
        """First property called `name` that has a readable accessor."""
        for prop in self.properties:
            if prop.name == name and prop.getter is not None:
                return prop
        return None

    def __str__(self) -> str:
        return (
            f"{self.full_name} ({len(self.fields)} fields, "
            f"{len(self.properties)} properties, {len(self.methods)} methods)"
        )


@dataclass
class ModuleDescriptor:
    """
    Canonical output of any module reader.
    `types` is flat: nested types appear alongside top-level ones.
    """
    name:  str
    path:  str = ""
    types: list[TypeDescriptor] = field(default_factory=list)

    def find_type(self, full_name: str) -> Optional[TypeDescriptor]:
        """
        Exact lookup by full name.

        Top-level types are searched first, then nested ones. A nested type
        matches either its metadata form (Outer/Inner) or the dotted form
        (Outer.Inner) people tend to write.
        """
        for t in self.types:
            if t.enclosing is None and t.full_name == full_name:
                return t
        for t in self.types:
            if t.enclosing is None:
                continue
            if full_name in (t.full_name, f"{t.enclosing}.{t.name}"):
                return t
        return None

    def resolve_field(self, ref: FieldRef) -> Optional[FieldDescriptor]:
        """Best-effort lookup of a field reference; None when it can't be resolved."""
        if ref.declaring_type is None:
            return None
        owner = self.find_type(ref.declaring_type)
        if owner is None:
            return None
        return owner.find_field(ref.name)
