"""
MemberResolver — public entry point of the constant-resolution engine.

Resolution order for a member name (first success wins):
  1. Field with an embedded compile-time constant of the requested kind
  2. Field assigned a literal of that kind in the static initializer
  3. Property whose getter trivially returns a value of that kind
  4. Otherwise absent — a normal outcome, never an error
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from cilprobe.metadata.models import ModuleDescriptor, TypeDescriptor
from .getter import evaluate_getter
from .initializer import scan_static_initializer
from .models import InitializerValues, LiteralKind, ResolutionSource, ResolvedValue

__all__ = ["MemberResolver", "ProbeResult"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Both member values of one inspection."""
    int_value:    ResolvedValue
    string_value: ResolvedValue

    @property
    def success(self) -> bool:
        return self.int_value.found or self.string_value.found


class MemberResolver:
    """
    Resolves named static members of types in one module.

    The static-initializer scan is done once per type and reused for every
    member asked about afterwards.

    Usage::

        resolver = MemberResolver(module)
        network = resolver.resolve(protocol_type, "network", LiteralKind.INT)
        if network.found:
            print(network.value)
    """

    def __init__(self, module: Optional[ModuleDescriptor] = None) -> None:
        self._module = module
        self._initializers: dict[str, InitializerValues] = {}

    # ── Public API ────────────────────────────────────────────────────────

    def resolve(self, type_desc: TypeDescriptor, member_name: str,
                kind: LiteralKind) -> ResolvedValue:
        result = self._resolve(type_desc, member_name, kind)
        logger.info("%s.%s (%s): %s", type_desc.full_name, member_name, kind.value, result)
        return result

    def probe(self, type_desc: TypeDescriptor, int_member: str,
              string_member: str) -> ProbeResult:
        """Resolve one integer member and one string member of the same type."""
        return ProbeResult(
            int_value=self.resolve(type_desc, int_member, LiteralKind.INT),
            string_value=self.resolve(type_desc, string_member, LiteralKind.STRING),
        )

    def initializer_values(self, type_desc: TypeDescriptor) -> InitializerValues:
        key = type_desc.full_name
        if key not in self._initializers:
            self._initializers[key] = scan_static_initializer(type_desc)
        return self._initializers[key]

    # ── Internal helpers ──────────────────────────────────────────────────

    def _resolve(self, type_desc: TypeDescriptor, member_name: str,
                 kind: LiteralKind) -> ResolvedValue:
        cctor_values = self.initializer_values(type_desc)

        fld = type_desc.find_field(member_name)
        if fld is not None:
            if fld.has_constant and kind.accepts(fld.constant):
                return ResolvedValue(fld.constant, ResolutionSource.EMBEDDED_CONSTANT)

            assigned = cctor_values.lookup(member_name, kind)
            if assigned is not None:
                return ResolvedValue(assigned, ResolutionSource.STATIC_INITIALIZER)

        prop = type_desc.find_property(member_name)
        if prop is not None:
            return evaluate_getter(prop.getter, kind, cctor_values, self._module)

        return ResolvedValue.absent()
