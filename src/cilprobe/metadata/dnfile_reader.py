"""
DnfileModuleReader — static metadata reader built on dnfile + dncil.

Nothing is executed: the module is parsed as a PE file, its CLR metadata
tables are walked, and method bodies are disassembled from their RVAs.

High-level flow:
  1. Open the PE with dnfile.dnPE and check it carries CLR metadata
  2. Index the Constant, NestedClass, PropertyMap and MethodSemantics tables
  3. Build one TypeDescriptor per TypeDef row (fields first, so that field
     tokens inside method bodies can be turned into FieldRef operands)
  4. Disassemble each method body with dncil and resolve its operands
  5. Close the PE unconditionally
"""

import logging
import struct
from pathlib import Path
from typing import Any, Optional

import dnfile
import pefile
from dncil.cil.body import CilMethodBody
from dncil.cil.body.reader import CilMethodBodyReaderBase
from dncil.cil.error import MethodBodyFormatError
from dncil.clr.token import StringToken, Token
from dnfile.enums import MetadataTables

from cilprobe.exceptions import MetadataError
from .base import AbstractModuleReader
from .models import (
    OP_LDC_I4,
    OP_LDC_I4_S,
    OP_LDSFLD,
    OP_LDSTR,
    OP_STSFLD,
    ConstantValue,
    FieldDescriptor,
    FieldRef,
    MethodDescriptor,
    ModuleDescriptor,
    PropertyDescriptor,
    RawInstruction,
    TypeDescriptor,
)

__all__ = ["DnfileModuleReader"]

logger = logging.getLogger(__name__)

# ── CorElementType values used by Constant rows ───────────────────────────────
ELEMENT_TYPE_I4     = 0x08
ELEMENT_TYPE_STRING = 0x0E

# dnfile / dncil fail with these on truncated or inconsistent metadata
_PARSE_ERRORS = (AssertionError, IndexError, struct.error, ValueError)


class DnfileModuleReader(AbstractModuleReader):
    """Read a .NET module from disk into a ModuleDescriptor."""

    def read(self, path: str) -> ModuleDescriptor:
        module_path = Path(path)
        if not module_path.is_file():
            raise FileNotFoundError(f"File not found: {module_path.resolve()}")

        try:
            pe = dnfile.dnPE(str(module_path))
        except pefile.PEFormatError as exc:
            raise MetadataError(f"{module_path.name} is not a PE file: {exc}") from exc
        except _PARSE_ERRORS as exc:
            raise MetadataError(
                f"{module_path.name} has malformed CLR metadata: {exc!r}"
            ) from exc

        try:
            if getattr(pe, "net", None) is None or pe.net.mdtables is None:
                raise MetadataError(f"{module_path.name} has no CLR metadata")
            module = _ModuleBuilder(pe, module_path).build()
        except _PARSE_ERRORS as exc:
            raise MetadataError(
                f"{module_path.name} has malformed CLR metadata: {exc!r}"
            ) from exc
        finally:
            pe.close()

        logger.info("Read %d types from %s", len(module.types), module_path.name)
        return module


# ── Helpers ───────────────────────────────────────────────────────────────────


def _text(value: Any) -> str:
    """Heap strings come back as str or as heap items carrying .value."""
    if value is None:
        return ""
    return str(getattr(value, "value", value))


def _blob(value: Any) -> bytes:
    raw = getattr(value, "value", value)
    if raw is None:
        return b""
    return bytes(raw)


def decode_constant(element_type: int, blob: bytes) -> Optional[ConstantValue]:
    """
    Decode a Constant row's value.

    Only 32-bit integers and strings are of interest; every other element
    type (and a null string, stored as ELEMENT_TYPE_CLASS) yields None.
    """
    if element_type == ELEMENT_TYPE_I4:
        if len(blob) != 4:
            return None
        return struct.unpack("<i", blob)[0]
    if element_type == ELEMENT_TYPE_STRING:
        try:
            return blob.decode("utf-16-le")
        except UnicodeDecodeError:
            return None
    return None


def signed_int8(value: int) -> int:
    """ldc.i4.s carries one byte; some disassemblers hand it back unsigned."""
    if 0x80 <= value <= 0xFF:
        return value - 0x100
    return value


class _BodyReader(CilMethodBodyReaderBase):
    """Feeds dncil the bytes at a method's RVA."""

    def __init__(self, pe: dnfile.dnPE, rva: int) -> None:
        self._pe = pe
        self._offset = pe.get_offset_from_rva(rva)

    def read(self, n: int) -> bytes:
        data = self._pe.get_data(self._pe.get_rva_from_offset(self._offset), n)
        self._offset += n
        return data

    def tell(self) -> int:
        return self._offset

    def seek(self, offset: int) -> int:
        self._offset = offset
        return self._offset


class _ModuleBuilder:
    """One-shot builder; holds the open dnPE only for the duration of build()."""

    def __init__(self, pe: dnfile.dnPE, path: Path) -> None:
        self._pe = pe
        self._path = path
        self._tables = pe.net.mdtables
        # Field rid → (name, declaring type full name)
        self._field_owners: dict[int, tuple[str, str]] = {}
        self._member_refs = self._rows("MemberRef")

    def _rows(self, name: str) -> list:
        table = getattr(self._tables, name, None)
        return list(table) if table is not None else []

    # ── Table indexes ─────────────────────────────────────────────────────

    def _constants(self) -> dict[int, ConstantValue]:
        """Field rid → decoded embedded constant."""
        result: dict[int, ConstantValue] = {}
        for row in self._rows("Constant"):
            parent = row.Parent
            if parent is None or not isinstance(parent.row, dnfile.mdtable.FieldRow):
                continue
            value = decode_constant(int(row.Type), _blob(row.Value))
            if value is not None:
                result[parent.row_index] = value
        return result

    def _enclosing(self) -> dict[int, int]:
        """Nested TypeDef rid → enclosing TypeDef rid."""
        return {
            row.NestedClass.row_index: row.EnclosingClass.row_index
            for row in self._rows("NestedClass")
        }

    def _getters(self) -> dict[int, int]:
        """Property rid → getter MethodDef rid."""
        result: dict[int, int] = {}
        for row in self._rows("MethodSemantics"):
            assoc = row.Association
            if not row.Semantics.msGetter or assoc is None:
                continue
            if isinstance(assoc.row, dnfile.mdtable.PropertyRow):
                result[assoc.row_index] = row.Method.row_index
        return result

    def _property_lists(self) -> dict[int, list]:
        """TypeDef rid → its Property table indexes."""
        return {
            row.Parent.row_index: list(row.PropertyList or [])
            for row in self._rows("PropertyMap")
        }

    # ── Build ─────────────────────────────────────────────────────────────

    def build(self) -> ModuleDescriptor:
        typedefs = self._rows("TypeDef")
        constants = self._constants()
        enclosing = self._enclosing()
        getters = self._getters()
        property_lists = self._property_lists()

        full_names: dict[int, str] = {}

        def full_name(rid: int) -> str:
            if rid not in full_names:
                row = typedefs[rid - 1]
                name = _text(row.TypeName)
                outer = enclosing.get(rid)
                if outer is not None and outer != rid:
                    full_names[rid] = f"{full_name(outer)}/{name}"
                else:
                    ns = _text(row.TypeNamespace)
                    full_names[rid] = f"{ns}.{name}" if ns else name
            return full_names[rid]

        # Pass 1: types and fields
        types: list[TypeDescriptor] = []
        for rid, row in enumerate(typedefs, start=1):
            outer = enclosing.get(rid)
            type_desc = TypeDescriptor(
                name=_text(row.TypeName),
                namespace=_text(row.TypeNamespace),
                enclosing=full_name(outer) if outer is not None else None,
            )
            owner = full_name(rid)
            for index in row.FieldList or []:
                fld = index.row
                fname = _text(fld.Name)
                self._field_owners[index.row_index] = (fname, owner)
                type_desc.fields.append(FieldDescriptor(
                    name=fname,
                    is_static=bool(fld.Flags.fdStatic),
                    constant=constants.get(index.row_index),
                    declaring_type=owner,
                ))
            types.append(type_desc)

        # Pass 2: methods and properties
        for rid, (row, type_desc) in enumerate(zip(typedefs, types), start=1):
            methods_by_rid: dict[int, MethodDescriptor] = {}
            for index in row.MethodList or []:
                method = self._build_method(index.row)
                methods_by_rid[index.row_index] = method
                type_desc.methods.append(method)

            for index in property_lists.get(rid, []):
                getter_rid = getters.get(index.row_index)
                type_desc.properties.append(PropertyDescriptor(
                    name=_text(index.row.Name),
                    getter=methods_by_rid.get(getter_rid) if getter_rid else None,
                ))

        return ModuleDescriptor(name=self._path.name, path=str(self._path), types=types)

    def _build_method(self, row) -> MethodDescriptor:
        name = _text(row.Name)
        method = MethodDescriptor(name=name, is_static=bool(row.Flags.mdStatic))
        if not row.Rva:
            return method

        try:
            body = CilMethodBody(_BodyReader(self._pe, row.Rva))
        except (MethodBodyFormatError, pefile.PEFormatError) as exc:
            logger.warning("Skipping malformed body of %s: %s", name, exc)
            return method

        for insn in body.instructions:
            opcode = insn.opcode.value
            method.instructions.append(RawInstruction(
                opcode=opcode,
                operand=self._operand(opcode, insn.operand),
                offset=insn.offset,
            ))
        logger.debug("%s: %d instructions", name, len(method.instructions))
        return method

    # ── Operand resolution (best effort, never raises) ────────────────────

    def _operand(self, opcode: int, operand: Any) -> Any:
        if opcode == OP_LDC_I4_S and isinstance(operand, int):
            return signed_int8(operand)
        if opcode == OP_LDC_I4:
            return operand
        if opcode == OP_LDSTR and isinstance(operand, StringToken):
            return self._user_string(operand.rid)
        if opcode in (OP_LDSFLD, OP_STSFLD) and isinstance(operand, Token):
            return self._field_ref(operand)
        return None

    def _user_string(self, rid: int) -> Optional[str]:
        heap = self._pe.net.user_strings
        if heap is None:
            return None
        try:
            item = heap.get_us(rid) if hasattr(heap, "get_us") else heap.get(rid)
        except UnicodeDecodeError as exc:
            logger.debug("Undecodable #US entry 0x%06x: %s", rid, exc)
            return None
        if item is None:
            return None
        value = getattr(item, "value", item)
        if isinstance(value, bytes):
            return value.decode("utf-16-le", errors="replace")
        return value

    def _field_ref(self, token: Token) -> Optional[FieldRef]:
        if token.table == MetadataTables.Field:
            owner = self._field_owners.get(token.rid)
            if owner is None:
                return None
            name, declaring = owner
            return FieldRef(name=name, declaring_type=declaring)
        if token.table == MetadataTables.MemberRef:
            if not 0 < token.rid <= len(self._member_refs):
                return None
            row = self._member_refs[token.rid - 1]
            return FieldRef(name=_text(row.Name))
        return None
