"""
Static-initializer scanner.

Walks a type's .cctor and records, for every "push literal; stsfld F"
pattern, the literal stored into F. Later stores to the same field win.
Anything that is not a literal push or a store is stepped over without
touching the pending literal.
"""

import logging

from cilprobe.metadata.models import TypeDescriptor
from .decoder import decode_all
from .models import InitializerValues, InstructionKind, PendingLiteral

__all__ = ["scan_static_initializer"]

logger = logging.getLogger(__name__)


def scan_static_initializer(type_desc: TypeDescriptor) -> InitializerValues:
    """
    Return the literal assignments made by the type's static initializer.

    A type without a .cctor (or with an empty one) yields empty maps.
    """
    values = InitializerValues()
    cctor = type_desc.static_initializer
    if cctor is None or not cctor.has_body:
        logger.debug("%s: no static initializer", type_desc.full_name)
        return values

    pending = PendingLiteral()
    for insn in decode_all(cctor.instructions):
        literal = insn.literal
        if literal is not None:
            pending.hold(literal)
            continue

        if insn.kind is not InstructionKind.STORE_STATIC_FIELD or insn.field is None:
            continue
        if pending.is_empty:
            # Stored value was computed, not a literal
            continue

        stored = pending.take()
        values.record(insn.field.name, stored)
        logger.debug("%s: .cctor stores %r into %s", type_desc.full_name, stored.value, insn.field.name)

    logger.debug(
        "%s: .cctor assigns %d int / %d string fields",
        type_desc.full_name, len(values.ints), len(values.strings),
    )
    return values
