"""
Getter evaluator — decides whether a property accessor returns a fixed value.

Two shapes are recognised, each anywhere in the body:

    ldc.i4 / ldstr <literal>    nop*    ret
    ldsfld <field>              nop*    ret

A candidate whose next non-nop instruction is not `ret` is rejected and the
scan moves on, so a body with several return sites (branches) can still
resolve through a later one. The first candidate that yields a value of the
requested kind wins.

A forwarded field resolves through the value the owning type's static
initializer stores under that field's name, falling back to the field's
own embedded constant. The lookup is keyed by the loaded field's name, so any member
name works, not just a fixed pair.
"""

import logging
from typing import Optional, Sequence

from cilprobe.metadata.models import FieldRef, MethodDescriptor, ModuleDescriptor
from .decoder import decode_all, next_meaningful
from .models import (
    InitializerValues,
    Instruction,
    InstructionKind,
    LiteralKind,
    ResolutionSource,
    ResolvedValue,
)

__all__ = ["evaluate_getter"]

logger = logging.getLogger(__name__)


def evaluate_getter(
    getter: MethodDescriptor,
    kind: LiteralKind,
    initializer_values: InitializerValues,
    module: Optional[ModuleDescriptor] = None,
) -> ResolvedValue:
    """
    Evaluate a trivial accessor body.

    Args:
        getter:             The property's get method.
        kind:               Value kind the caller expects.
        initializer_values: Output of scan_static_initializer() for the
                            type that owns the getter.
        module:             Used to resolve forwarded fields to their
                            embedded constants; None skips that fallback.

    Returns:
        ResolvedValue with source GETTER, or an absent value when no
        candidate resolves. Never raises for unrecognised bodies.
    """
    if not getter.has_body:
        logger.debug("%s: no body", getter.name)
        return ResolvedValue.absent()

    instructions = decode_all(getter.instructions)
    for index, insn in enumerate(instructions):
        if not _returns_next(instructions, index):
            continue

        value = None
        literal = insn.literal
        if literal is not None:
            if literal.kind is kind:
                value = literal.value
        elif insn.kind is InstructionKind.LOAD_STATIC_FIELD and insn.field is not None:
            value = _field_value(insn.field, kind, initializer_values, module)

        if value is not None:
            logger.debug("%s: resolved %r at position %d", getter.name, value, index)
            return ResolvedValue(value, ResolutionSource.GETTER)

    logger.debug("%s: no resolvable constant", getter.name)
    return ResolvedValue.absent()


def _returns_next(instructions: Sequence[Instruction], index: int) -> bool:
    following = next_meaningful(instructions, index + 1)
    return following is not None and following.kind is InstructionKind.RETURN


def _field_value(
    ref: FieldRef,
    kind: LiteralKind,
    initializer_values: InitializerValues,
    module: Optional[ModuleDescriptor],
):
    value = initializer_values.lookup(ref.name, kind)
    if value is not None:
        return value

    if module is None:
        return None
    target = module.resolve_field(ref)
    if target is None:
        logger.debug("Unresolved field reference %s", ref.name)
        return None
    if target.has_constant and kind.accepts(target.constant):
        return target.constant
    return None
