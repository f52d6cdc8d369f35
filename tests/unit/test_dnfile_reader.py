"""
Unit tests for DnfileModuleReader.

No real .NET binaries required — the file-level failure modes use temporary
files, and dnfile itself is mocked where a parsed PE is needed. Table rows
are plain namespaces carrying the attributes dnfile exposes.
"""

import struct
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import dnfile
import pytest
from dncil.cil.error import MethodBodyFormatError
from dncil.clr.token import StringToken, Token

from cilprobe.engine.resolver import MemberResolver
from cilprobe.exceptions import MetadataError
from cilprobe.metadata.base import get_reader
from cilprobe.metadata.dnfile_reader import (
    ELEMENT_TYPE_I4,
    ELEMENT_TYPE_STRING,
    DnfileModuleReader,
    _ModuleBuilder,
    decode_constant,
    signed_int8,
)
from cilprobe.metadata.models import (
    OP_LDC_I4_S,
    OP_LDSFLD,
    OP_LDSTR,
    OP_RET,
    OP_STSFLD,
    FieldRef,
)


class TestDecodeConstant:

    def test_int32(self):
        assert decode_constant(ELEMENT_TYPE_I4, struct.pack("<i", 2590)) == 2590

    def test_negative_int32(self):
        assert decode_constant(ELEMENT_TYPE_I4, struct.pack("<i", -5)) == -5

    def test_truncated_int32_is_none(self):
        assert decode_constant(ELEMENT_TYPE_I4, b"\x01\x02") is None

    def test_string(self):
        assert decode_constant(ELEMENT_TYPE_STRING, "2590.1".encode("utf-16-le")) == "2590.1"

    def test_empty_string(self):
        assert decode_constant(ELEMENT_TYPE_STRING, b"") == ""

    def test_odd_length_string_is_none(self):
        assert decode_constant(ELEMENT_TYPE_STRING, b"\x41") is None

    @pytest.mark.parametrize("element_type", [0x02, 0x04, 0x06, 0x09, 0x0A, 0x0C, 0x12])
    def test_other_element_types_are_ignored(self, element_type):
        assert decode_constant(element_type, b"\x00\x00\x00\x00") is None


class TestSignedInt8:

    @pytest.mark.parametrize("raw,expected", [
        (0, 0), (127, 127), (128, -128), (255, -1), (-3, -3),
    ])
    def test_normalises_unsigned_bytes(self, raw, expected):
        assert signed_int8(raw) == expected


class TestRead:

    def test_missing_file_raises_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DnfileModuleReader().read(str(tmp_path / "Rust.Global.dll"))

    def test_directory_is_not_a_module(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DnfileModuleReader().read(str(tmp_path))

    def test_non_pe_file_raises_metadata_error(self, tmp_path):
        junk = tmp_path / "junk.dll"
        junk.write_bytes(b"this is not a portable executable" * 4)
        with pytest.raises(MetadataError):
            DnfileModuleReader().read(str(junk))

    def test_native_pe_without_clr_header_is_closed(self, tmp_path):
        dll = tmp_path / "native.dll"
        dll.write_bytes(b"MZ")
        fake_pe = MagicMock()
        fake_pe.net = None
        with patch("cilprobe.metadata.dnfile_reader.dnfile.dnPE", return_value=fake_pe):
            with pytest.raises(MetadataError, match="no CLR metadata"):
                DnfileModuleReader().read(str(dll))
        fake_pe.close.assert_called_once()


def test_get_reader_returns_dnfile_reader():
    assert isinstance(get_reader(), DnfileModuleReader)


# ─────────────────────────────────────────────────────────────────────────────
# Corrupted metadata
# ─────────────────────────────────────────────────────────────────────────────

class TestCorruptedMetadata:

    @pytest.mark.parametrize("error", [
        AssertionError("bad stream header"),
        IndexError("list index out of range"),
        struct.error("unpack requires a buffer of 4 bytes"),
        ValueError("invalid heap offset"),
    ])
    def test_clr_header_parse_failure_is_metadata_error(self, tmp_path, error):
        dll = tmp_path / "corrupt.dll"
        dll.write_bytes(b"MZ")
        with patch("cilprobe.metadata.dnfile_reader.dnfile.dnPE", side_effect=error):
            with pytest.raises(MetadataError, match="malformed CLR metadata") as exc_info:
                DnfileModuleReader().read(str(dll))
        assert exc_info.value.__cause__ is error

    def test_dangling_enclosing_type_is_metadata_error_and_closed(self, tmp_path):
        dll = tmp_path / "corrupt.dll"
        dll.write_bytes(b"MZ")
        fake_pe = _fake_pe(
            TypeDef=[_typedef("Inner")],
            NestedClass=[SimpleNamespace(NestedClass=_index(1), EnclosingClass=_index(5))],
        )
        with patch("cilprobe.metadata.dnfile_reader.dnfile.dnPE", return_value=fake_pe):
            with pytest.raises(MetadataError, match="corrupt.dll"):
                DnfileModuleReader().read(str(dll))
        fake_pe.close.assert_called_once()


# ─────────────────────────────────────────────────────────────────────────────
# Table walking (_ModuleBuilder)
# ─────────────────────────────────────────────────────────────────────────────

def _index(rid: int, row=None) -> SimpleNamespace:
    """A table reference as dnfile hands it out: the row plus its 1-based index."""
    return SimpleNamespace(row=row, row_index=rid)


def _field(name: str, static: bool = True) -> SimpleNamespace:
    return SimpleNamespace(Name=name, Flags=SimpleNamespace(fdStatic=static))


def _method(name: str, rva: int = 0, static: bool = True) -> SimpleNamespace:
    return SimpleNamespace(Name=name, Rva=rva, Flags=SimpleNamespace(mdStatic=static))


def _typedef(name: str, namespace: str = "", fields=(), methods=()) -> SimpleNamespace:
    return SimpleNamespace(
        TypeName=name,
        TypeNamespace=namespace,
        FieldList=list(fields),
        MethodList=list(methods),
    )


def _insn(opcode: int, operand=None, offset: int = 0) -> SimpleNamespace:
    return SimpleNamespace(opcode=SimpleNamespace(value=opcode), operand=operand, offset=offset)


def _fake_pe(**tables) -> MagicMock:
    pe = MagicMock()
    pe.net.mdtables = SimpleNamespace(**tables)
    pe.net.user_strings.get_us.side_effect = lambda rid: SimpleNamespace(
        value={1: "2590.1"}.get(rid),
    )
    return pe


@pytest.fixture
def protocol_pe() -> MagicMock:
    """
    Rust.Protocol with:
      network   int constant 2590
      printable string constant "2590.1"
      _save     no constant, assigned in .cctor
      save      property whose getter returns _save
    and a nested Rust.Protocol/Inner.
    """
    network = _field("network")
    printable = _field("printable")
    save_field = _field("_save")
    save_prop = MagicMock(spec=dnfile.mdtable.PropertyRow)
    save_prop.Name = "save"

    protocol = _typedef(
        "Protocol", "Rust",
        fields=[_index(1, network), _index(2, printable), _index(3, save_field)],
        methods=[_index(1, _method("get_save", rva=0x2050)),
                 _index(2, _method(".cctor", rva=0x2060)),
                 _index(3, _method("Abstract"))],
    )
    inner = _typedef("Inner", "")

    def constant(rid, element_type, blob):
        parent = _index(rid, MagicMock(spec=dnfile.mdtable.FieldRow))
        return SimpleNamespace(Parent=parent, Type=element_type, Value=blob)

    return _fake_pe(
        TypeDef=[protocol, inner],
        Constant=[
            constant(1, ELEMENT_TYPE_I4, struct.pack("<i", 2590)),
            constant(2, ELEMENT_TYPE_STRING, "2590.1".encode("utf-16-le")),
        ],
        NestedClass=[SimpleNamespace(NestedClass=_index(2), EnclosingClass=_index(1))],
        PropertyMap=[SimpleNamespace(Parent=_index(1), PropertyList=[_index(1, save_prop)])],
        MethodSemantics=[
            SimpleNamespace(Semantics=SimpleNamespace(msGetter=False),
                            Association=_index(1, save_prop), Method=_index(2)),
            SimpleNamespace(Semantics=SimpleNamespace(msGetter=True),
                            Association=_index(1, save_prop), Method=_index(1)),
        ],
        MemberRef=[SimpleNamespace(Name="network")],
    )


GETTER_BODY = SimpleNamespace(instructions=[
    _insn(OP_LDSFLD, Token(0x04000003), 0x00),
    _insn(OP_RET, None, 0x05),
])

CCTOR_BODY = SimpleNamespace(instructions=[
    _insn(OP_LDC_I4_S, 0xFE, 0x00),
    _insn(OP_STSFLD, Token(0x04000003), 0x02),
    _insn(OP_LDSTR, StringToken(0x70000001), 0x07),
    _insn(OP_STSFLD, Token(0x0A000001), 0x0C),
    _insn(OP_LDSFLD, Token(0x0A000009), 0x11),
    _insn(OP_RET, None, 0x16),
])


def _build(pe, bodies=(GETTER_BODY, CCTOR_BODY)):
    with patch("cilprobe.metadata.dnfile_reader.CilMethodBody", side_effect=list(bodies)):
        return _ModuleBuilder(pe, Path("Rust.Global.dll")).build()


class TestModuleBuilder:

    def test_field_constants_are_decoded(self, protocol_pe):
        protocol = _build(protocol_pe).find_type("Rust.Protocol")
        assert protocol.find_field("network").constant == 2590
        assert protocol.find_field("printable").constant == "2590.1"
        assert protocol.find_field("_save").has_constant is False
        assert protocol.find_field("network").declaring_type == "Rust.Protocol"

    def test_nested_type_full_name(self, protocol_pe):
        module = _build(protocol_pe)
        inner = module.find_type("Rust.Protocol/Inner")
        assert inner is not None
        assert inner.enclosing == "Rust.Protocol"
        assert module.find_type("Rust.Protocol.Inner") is inner

    def test_getter_wired_through_method_semantics(self, protocol_pe):
        prop = _build(protocol_pe).find_type("Rust.Protocol").find_property("save")
        assert prop is not None
        assert prop.getter.name == "get_save"

    def test_field_token_becomes_declared_field_ref(self, protocol_pe):
        getter = _build(protocol_pe).find_type("Rust.Protocol").find_property("save").getter
        assert getter.instructions[0].operand == FieldRef("_save", "Rust.Protocol")

    def test_cctor_operands(self, protocol_pe):
        cctor = _build(protocol_pe).find_type("Rust.Protocol").static_initializer
        operands = [insn.operand for insn in cctor.instructions]
        assert operands == [
            -2,                       # ldc.i4.s 0xFE, sign-fixed
            FieldRef("_save", "Rust.Protocol"),
            "2590.1",                 # from #US
            FieldRef("network"),      # MemberRef: declaring_type is None
            None,                     # MemberRef rid out of range
            None,
        ]
        assert [insn.offset for insn in cctor.instructions][-1] == 0x16

    def test_method_without_rva_has_no_body(self, protocol_pe):
        protocol = _build(protocol_pe).find_type("Rust.Protocol")
        abstract = next(m for m in protocol.methods if m.name == "Abstract")
        assert abstract.has_body is False

    def test_malformed_body_is_skipped(self, protocol_pe):
        module = _build(protocol_pe, bodies=[MethodBodyFormatError("bad header"), CCTOR_BODY])
        protocol = module.find_type("Rust.Protocol")
        assert protocol.find_property("save").getter.has_body is False
        assert protocol.static_initializer.has_body

    def test_built_module_resolves_end_to_end(self, protocol_pe):
        module = _build(protocol_pe)
        result = MemberResolver(module).probe(module.find_type("Rust.Protocol"), "save", "printable")
        assert result.int_value.value == -2
        assert result.string_value.value == "2590.1"
