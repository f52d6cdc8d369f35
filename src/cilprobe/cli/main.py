"""
CLI entry point for cil-probe.

Usage
─────
  # Default target: Rust.Protocol.network (int) / .printable (string)
  cil-probe "C:/Games/Rust/RustDedicated_Data/Managed/Rust.Global.dll"

  # Any other type / member pair
  cil-probe Game.dll --type Game.Build --int-member revision --string-member tag

  # Show which resolution path produced each value
  python -m cilprobe Game.dll --explain --debug

Exit codes
──────────
  0  at least one member resolved
  1  report written, but nothing resolved
  2  bad usage
  3  file not found, not a .NET module, or type not found

The probe itself is cmd_probe(), which can be unit-tested with any
AbstractModuleReader without going through argparse.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from cilprobe.config import ProbeConfig
from cilprobe.engine.resolver import MemberResolver
from cilprobe.exceptions import MetadataError, TypeNotFoundError
from cilprobe.metadata.base import AbstractModuleReader, get_reader
from .report import ProbeReport

__all__ = [
    "build_parser",
    "cmd_probe",
    "main",
    "EXIT_OK",
    "EXIT_UNRESOLVED",
    "EXIT_USAGE",
    "EXIT_NOT_FOUND",
]

logger = logging.getLogger(__name__)

EXIT_OK         = 0
EXIT_UNRESOLVED = 1
EXIT_USAGE      = 2     # argparse exits with this code on its own
EXIT_NOT_FOUND  = 3


# ── Argument parser ────────────────────────────────────────────────────────────


def build_parser(defaults: Optional[ProbeConfig] = None) -> argparse.ArgumentParser:
    """
    Build and return the argument parser.

    `defaults` seeds --type / --int-member / --string-member, normally from
    ProbeConfig.from_env().
    """
    defaults = defaults or ProbeConfig()
    parser = argparse.ArgumentParser(
        prog="cil-probe",
        description="Recover constant static member values from a .NET module without running it",
    )
    parser.add_argument(
        "module",
        metavar="PATH",
        help="Path to the compiled module (.dll / .exe)",
    )
    parser.add_argument(
        "--type",
        dest="type_name",
        default=defaults.type_name,
        metavar="NAME",
        help=f"Full name of the type to inspect (default: {defaults.type_name})",
    )
    parser.add_argument(
        "--int-member",
        default=defaults.int_member,
        metavar="NAME",
        help=f"Integer member to resolve (default: {defaults.int_member})",
    )
    parser.add_argument(
        "--string-member",
        default=defaults.string_member,
        metavar="NAME",
        help=f"String member to resolve (default: {defaults.string_member})",
    )
    parser.add_argument(
        "--output",
        default=None,
        metavar="FILE",
        help="Write the JSON report to FILE instead of stdout",
    )
    parser.add_argument(
        "--compact",
        action="store_true",
        default=False,
        help="Emit single-line JSON",
    )
    parser.add_argument(
        "--explain",
        action="store_true",
        default=False,
        help="Include the resolution path of each member in the report",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable verbose debug logging",
    )
    return parser


# ── Command implementation ────────────────────────────────────────────────────


def cmd_probe(
    module_path: str,
    config: ProbeConfig,
    reader: Optional[AbstractModuleReader] = None,
) -> ProbeReport:
    """
    Read the module, locate the type and resolve both members.

    Args:
        module_path: Path to the module on disk.
        config:      Target type / member names.
        reader:      Module reader; defaults to get_reader().

    Returns:
        ProbeReport — members that could not be resolved are None.

    Raises:
        FileNotFoundError: module_path does not exist.
        MetadataError:     The file is not a readable .NET module.
        TypeNotFoundError: config.type_name is not declared in the module.
    """
    reader = reader or get_reader()
    module = reader.read(module_path)

    type_desc = module.find_type(config.type_name)
    if type_desc is None:
        raise TypeNotFoundError(config.type_name)
    logger.info("Found %s", type_desc)

    result = MemberResolver(module).probe(type_desc, config.int_member, config.string_member)
    return ProbeReport.from_result(
        config.type_name, config.int_member, config.string_member, result,
    )


def _write_report(text: str, output: Optional[str]) -> None:
    if output is None:
        print(text)
        return
    out_path = Path(output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text + "\n", encoding="utf-8")
    logger.info("Report written to %s", out_path)


# ── Entry point ───────────────────────────────────────────────────────────────


def main(
    argv: Optional[list[str]] = None,
    reader: Optional[AbstractModuleReader] = None,
) -> int:
    """Main CLI entry point. Returns exit code."""
    parser = build_parser(ProbeConfig.from_env())
    ns = parser.parse_args(argv)

    level = logging.DEBUG if ns.debug else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")

    config = ProbeConfig(
        type_name=ns.type_name,
        int_member=ns.int_member,
        string_member=ns.string_member,
        indent=None if ns.compact else 2,
        explain=ns.explain,
    )

    try:
        report = cmd_probe(ns.module, config, reader=reader)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except (MetadataError, TypeNotFoundError) as exc:
        logger.debug("probe failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND

    _write_report(report.to_json(indent=config.indent, explain=config.explain), ns.output)
    return EXIT_OK if report.success else EXIT_UNRESOLVED


if __name__ == "__main__":
    raise SystemExit(main())
