"""
Health Record Reconciler - Command Line Interface

Normalize one connection's FHIR export, or reconcile exports from several
connections into a deduplicated view, and print the result as JSON.

Usage:
    reconciler normalize epic.json --source epic
    reconciler normalize epic.json --source epic --enrich
    reconciler reconcile epic=epic.json humana=humana.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from reconciler.core.config import settings
from reconciler.core.errors import ReconcilerError
from reconciler.services.aggregator import (
    NormalizedHealthRecord,
    normalize_health_record,
    reconcile_health_records,
    split_fhir_bundle,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Input
# ============================================================================

def load_bundle(path: str | Path) -> dict[str, Any]:
    """Read a keyed bundle (or a FHIR Bundle resource) from a JSON file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        raise ReconcilerError(f"File not found: {path}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise ReconcilerError(f"Could not read bundle {path}: {e}") from e

    if not isinstance(data, dict):
        raise ReconcilerError(f"Bundle {path} must be a JSON object")
    return split_fhir_bundle(data)


def parse_source_arg(value: str) -> tuple[str, str]:
    """Split a ``source=path`` argument."""
    source, sep, path = value.partition("=")
    if not sep or not source or not path:
        raise ReconcilerError(f"Expected SOURCE=PATH, got: {value}")
    return source, path


async def _normalize(path: str, source: str, enrich: bool) -> NormalizedHealthRecord:
    return await normalize_health_record(load_bundle(path), source, enable_lookup=enrich)


# ============================================================================
# Commands
# ============================================================================

async def run_normalize(args: argparse.Namespace) -> dict[str, Any]:
    record = await _normalize(args.bundle, args.source, args.enrich)
    return record.to_dict(include_raw=args.raw)


async def run_reconcile(args: argparse.Namespace) -> dict[str, Any]:
    pairs = [parse_source_arg(value) for value in args.bundles]
    records = [await _normalize(path, source, args.enrich) for source, path in pairs]
    return reconcile_health_records(records).to_dict(include_raw=args.raw)


COMMANDS = {
    "normalize": run_normalize,
    "reconcile": run_reconcile,
}


# ============================================================================
# Main Entry Point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reconciler",
        description="Health Record Reconciler - normalize and deduplicate FHIR records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reconciler normalize epic.json --source epic
  reconciler reconcile epic=epic.json humana=humana.json --enrich
""",
    )
    # Output and lookup options, accepted after either command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--indent", type=int, default=2, help="JSON indentation (default: 2)")
    common.add_argument("--raw", action="store_true", help="Include raw source payloads")
    common.add_argument(
        "--enrich",
        action="store_true",
        help="Look up codes missing from the local tables (LOINC FHIR, RxNav)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    normalize = subparsers.add_parser("normalize", parents=[common], help="Normalize one connection's bundle")
    normalize.add_argument("bundle", help="Path to a bundle JSON file")
    normalize.add_argument("--source", "-s", required=True, help="Connection tag, e.g. epic")

    reconcile = subparsers.add_parser("reconcile", parents=[common], help="Reconcile several connections")
    reconcile.add_argument("bundles", nargs="+", metavar="SOURCE=PATH", help="Bundles to reconcile")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        output = asyncio.run(COMMANDS[args.command](args))
    except ReconcilerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=args.indent or None))
    return 0


if __name__ == "__main__":
    sys.exit(main())
