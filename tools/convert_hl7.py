"""Convert an HL7 v2.x message file into a FHIR FR Core Bundle (JSON).

Features:
  - Converts ADT, SIU and ORM messages (one message per file).
  - Writes the Bundle to stdout or to a file, warnings to stderr.
  - Optional FR Core shape checks (--validate), strict mode changes the exit code.
  - Lists supported message types and events.

Usage:
    python tools/convert_hl7.py convert tests/exemples/adt_a01.hl7
    python tools/convert_hl7.py convert msg.hl7 --bundle-type transaction --output bundle.json
    python tools/convert_hl7.py convert msg.hl7 --validate --strict
    python tools/convert_hl7.py types

Exit codes:
    0 : success
    1 : unreadable input file
    2 : conversion error (empty message, missing MSH, unsupported type...)
    3 : strict mode and FR Core checks failed
"""
import sys
import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

# Ensure project root import
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from frcore_bridge.config import BUNDLE_TYPES, ConversionOptions, configure_logging, env_flag
from frcore_bridge.converter import convert
from frcore_bridge.errors import ConversionError
from frcore_bridge.services.message_router import describe_message_type, supported_message_types

logger = logging.getLogger("tools.convert_hl7")

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_CONVERSION = 2
EXIT_NOT_COMPLIANT = 3


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HL7 v2.x -> FHIR FR Core Bundle")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING... (défaut: FRCORE_LOG_LEVEL ou INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    conv = sub.add_parser("convert", help="Convertit un fichier HL7 en Bundle FHIR")
    conv.add_argument("file", help="Fichier HL7 (ou '-' pour stdin)")
    conv.add_argument("--bundle-type", choices=BUNDLE_TYPES, default=None)
    conv.add_argument("--no-french", action="store_true", help="Désactive l'enrichissement par segments Z")
    conv.add_argument("--no-header", action="store_true", help="Pas de MessageHeader (Bundle collection)")
    conv.add_argument("--validate", action="store_true", help="Contrôles de forme FR Core")
    conv.add_argument("--strict", action="store_true", help="Code retour 3 si les contrôles échouent")
    conv.add_argument("--output", "-o", default=None, help="Fichier JSON de sortie (défaut: stdout)")
    conv.add_argument("--encoding", default="utf-8", help="Encodage du fichier (défaut: utf-8)")

    sub.add_parser("types", help="Liste les types de messages pris en charge")
    return parser


def _read_input(path: str, encoding: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding=encoding, errors="replace")


def _cmd_convert(args: argparse.Namespace) -> int:
    try:
        raw = _read_input(args.file, args.encoding)
    except OSError as e:
        print(f"✗ Lecture impossible: {e}", file=sys.stderr)
        return EXIT_INPUT

    options = ConversionOptions(
        french_mode=not args.no_french and env_flag("FRCORE_FRENCH_MODE", "1"),
        generate_message_header=not args.no_header,
        validate_fr_core=args.validate or args.strict,
        strict_compliance=args.strict or env_flag("FRCORE_STRICT"),
        bundle_type=args.bundle_type,
    )

    try:
        result = convert(raw, options)
    except ConversionError as e:
        print(f"✗ {e.kind}: {e}", file=sys.stderr)
        return EXIT_CONVERSION

    payload = json.dumps(result.bundle, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        print(f"✓ Bundle écrit: {args.output} ({len(result.bundle.get('entry', []))} entrées)", file=sys.stderr)
    else:
        print(payload)

    for warning in result.warnings:
        print(f"  ⚠ {warning}", file=sys.stderr)

    if result.validation is not None:
        print(f"Contrôle FR Core: {result.validation.level}", file=sys.stderr)
        for issue in result.validation.issues:
            print(f"  [{issue.severity}] {issue.code}: {issue.message} {issue.location}".rstrip(), file=sys.stderr)
        if options.strict_compliance and not result.validation.is_valid:
            return EXIT_NOT_COMPLIANT
    return EXIT_OK


def _cmd_types() -> int:
    for message_type in supported_message_types():
        info = describe_message_type(message_type)
        print(f"{message_type} - {info['label']}")
        print(f"  events   : {', '.join(info['events'])}")
        print(f"  segments : {', '.join(info['segments'])}")
        print(f"  resources: {', '.join(info['resources'])}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "convert":
        return _cmd_convert(args)
    return _cmd_types()


if __name__ == "__main__":
    sys.exit(main())
