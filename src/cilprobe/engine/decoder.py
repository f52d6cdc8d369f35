"""
Instruction decoder — classifies one raw CIL instruction.

Only the handful of opcodes the engine reasons about get a distinct
InstructionKind; everything else is OTHER. Integer pushes are decoded
conservatively: an operand of the wrong type or width is not a literal.
"""

import logging
from typing import Optional, Sequence

from cilprobe.metadata.models import (
    OP_LDC_I4,
    OP_LDC_I4_S,
    OP_LDSFLD,
    OP_LDSTR,
    OP_NOP,
    OP_RET,
    OP_STSFLD,
    FieldRef,
    RawInstruction,
)
from .models import Instruction, InstructionKind

__all__ = ["decode", "decode_all", "next_meaningful"]

logger = logging.getLogger(__name__)

# ldc.i4.m1 .. ldc.i4.8 carry their value in the opcode itself
_SHORT_FORM_INTS = {0x15 + i: i - 1 for i in range(10)}

# Operand-carrying integer pushes → inclusive signed range
_OPERAND_INT_RANGES = {
    OP_LDC_I4_S: (-(1 << 7), (1 << 7) - 1),
    OP_LDC_I4:   (-(1 << 31), (1 << 31) - 1),
}

_FIELD_KINDS = {
    OP_LDSFLD: InstructionKind.LOAD_STATIC_FIELD,
    OP_STSFLD: InstructionKind.STORE_STATIC_FIELD,
}

_SIMPLE_KINDS = {
    OP_NOP: InstructionKind.NOP,
    OP_RET: InstructionKind.RETURN,
}

_OTHER = Instruction(InstructionKind.OTHER)


def _int_literal(raw: RawInstruction) -> Optional[int]:
    if raw.opcode in _SHORT_FORM_INTS:
        return _SHORT_FORM_INTS[raw.opcode]
    bounds = _OPERAND_INT_RANGES.get(raw.opcode)
    if bounds is None:
        return None
    operand = raw.operand
    if not isinstance(operand, int) or isinstance(operand, bool):
        return None
    low, high = bounds
    if not low <= operand <= high:
        return None
    return operand


def decode(raw: RawInstruction) -> Instruction:
    """Return the classification and operand of a single instruction."""
    value = _int_literal(raw)
    if value is not None:
        return Instruction(InstructionKind.PUSH_INT, value=value)

    if raw.opcode in _OPERAND_INT_RANGES:
        logger.debug("Rejected integer push with operand %r: %s", raw.operand, raw)
        return _OTHER

    if raw.opcode == OP_LDSTR:
        if isinstance(raw.operand, str):
            return Instruction(InstructionKind.PUSH_STRING, value=raw.operand)
        return _OTHER

    kind = _FIELD_KINDS.get(raw.opcode)
    if kind is not None:
        ref = raw.operand if isinstance(raw.operand, FieldRef) else None
        return Instruction(kind, field=ref)

    return Instruction(_SIMPLE_KINDS.get(raw.opcode, InstructionKind.OTHER))


def decode_all(raws: Sequence[RawInstruction]) -> list[Instruction]:
    return [decode(raw) for raw in raws]


def next_meaningful(instructions: Sequence[Instruction], start: int) -> Optional[Instruction]:
    """First instruction at or after `start` that is not a nop, or None."""
    for insn in instructions[start:]:
        if insn.kind is not InstructionKind.NOP:
            return insn
    return None
