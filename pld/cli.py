"""CLI entry point for offline compliance checks.

Usage:
    python -m pld.cli score --activity INMUEBLES --factor pep_match --factor cash_payment
    python -m pld.cli accumulate --input operations.jsonl --as-of 2026-06-30
    python -m pld.cli validate-catalog --catalog catalogs/custom.yaml
"""

import argparse
import json
import sys
from datetime import date
from pathlib import Path

from pld.domains.compliance.accumulation import compute_all_accumulations
from pld.domains.compliance.catalog import load_catalog
from pld.domains.compliance.config import ComplianceConfig
from pld.domains.compliance.errors import ComplianceEngineError, TierConfigError
from pld.domains.compliance.models import MonitoringStatus, Operation
from pld.domains.compliance.scoring import score
from pld.domains.compliance.store import StaticUnitValueProvider
from pld.shared.logging import setup_logging


def _read_operations(path: str) -> list[Operation]:
    """JSON array or JSON lines of operations."""
    text = Path(path).read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        records = json.loads(text)
    else:
        records = [json.loads(line) for line in text.splitlines() if line.strip()]
    return [Operation.model_validate(r) for r in records]


def _cmd_score(args: argparse.Namespace, config: ComplianceConfig) -> int:
    catalog = load_catalog(args.catalog or config.catalog_path)
    result = score(args.factor or [], args.activity, catalog.risk)
    print(result.model_dump_json(indent=2))
    return 0


def _cmd_accumulate(args: argparse.Namespace, config: ComplianceConfig) -> int:
    catalog = load_catalog(
        args.catalog or config.catalog_path,
        default_window_months=config.accumulation.default_window_months,
    )
    as_of = date.fromisoformat(args.as_of) if args.as_of else date.today()
    unit_value = StaticUnitValueProvider(config.fiscal.unit_values).get_unit_value(
        args.fiscal_year or as_of.year
    )
    operations = _read_operations(args.input)
    results = compute_all_accumulations(
        operations, catalog.thresholds(unit_value), as_of, config.breakpoints
    )
    if args.status:
        results = [r for r in results if r.monitoring_status == MonitoringStatus(args.status)]

    lines = [r.model_dump_json() for r in results]
    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        Path(args.output).write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        print(f"Wrote {len(lines)} accumulations to {args.output}", file=sys.stderr)
    else:
        for line in lines:
            print(line)
    critico = sum(1 for r in results if r.monitoring_status == MonitoringStatus.CRITICO)
    print(f"{len(results)} groups, {critico} at reporting threshold", file=sys.stderr)
    return 0


def _cmd_validate_catalog(args: argparse.Namespace, config: ComplianceConfig) -> int:
    path = args.catalog or config.catalog_path
    try:
        catalog = load_catalog(path)
    except TierConfigError as exc:
        print(f"Invalid catalog: {exc}", file=sys.stderr)
        return 1
    print(
        json.dumps(
            {
                "version": catalog.version,
                "activities": catalog.risk.activity_types(),
                "general_factors": sorted(catalog.risk.general_factors),
            },
            indent=2,
        )
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PLD risk and threshold compliance engine")
    parser.add_argument("--log-level", type=str, default="WARNING", help="structlog level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_score = sub.add_parser("score", help="Score triggered risk factors for an activity")
    p_score.add_argument("--activity", type=str, required=True, help="Activity type code")
    p_score.add_argument(
        "--factor", type=str, action="append", help="Triggered factor id (repeatable)"
    )
    p_score.add_argument("--catalog", type=str, default=None, help="Path to catalog YAML")

    p_acc = sub.add_parser("accumulate", help="Batch accumulation report from an operation file")
    p_acc.add_argument("--input", type=str, required=True, help="JSON or JSONL operations file")
    p_acc.add_argument("--as-of", type=str, default=None, help="Evaluation date (YYYY-MM-DD)")
    p_acc.add_argument("--fiscal-year", type=int, default=None, help="UMA year override")
    p_acc.add_argument(
        "--status",
        type=str,
        default=None,
        choices=[s.value for s in MonitoringStatus],
        help="Only report groups in this monitoring status",
    )
    p_acc.add_argument("--catalog", type=str, default=None, help="Path to catalog YAML")
    p_acc.add_argument("--output", type=str, default=None, help="Write JSONL here instead of stdout")

    p_val = sub.add_parser("validate-catalog", help="Load and validate a catalog YAML")
    p_val.add_argument("--catalog", type=str, default=None, help="Path to catalog YAML")

    return parser


_COMMANDS = {
    "score": _cmd_score,
    "accumulate": _cmd_accumulate,
    "validate-catalog": _cmd_validate_catalog,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # Results go to stdout, logs to stderr
    setup_logging(args.log_level, json=False, stream=sys.stderr, cache_loggers=False)
    config = ComplianceConfig.from_env()
    try:
        return _COMMANDS[args.command](args, config)
    except ComplianceEngineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        # JSONDecodeError and pydantic ValidationError are both ValueErrors
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
