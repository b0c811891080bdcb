#!/usr/bin/env python3
"""
Report dangling references between documents, lines, parties and vehicles.

Read-only.  Exit code 0 when the store is clean, 1 when anomalies exist.

Usage:
    python3 scripts/audit_integrity.py
    python3 scripts/audit_integrity.py --json --sample-size 50
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML file")
    parser.add_argument("--db-url", default=None, help="Override the database URL")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument(
        "--sample-size", type=int, default=None, help="Ids kept per finding"
    )
    args = parser.parse_args(argv)

    from fulfillment_config import get_active_settings
    from fulfillment_kernel.db.engine import init_engine_from_url, session_scope
    from fulfillment_kernel.exceptions import FulfillmentError
    from fulfillment_kernel.logging_config import LogContext, configure_logging
    from fulfillment_services.integrity_audit_service import IntegrityAuditService

    try:
        settings = get_active_settings(args.config)
    except (FulfillmentError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=settings.log_level_value)
    LogContext.set(actor="cli.audit_integrity")
    init_engine_from_url(args.db_url or settings.database_url, echo=settings.echo_sql)

    sample_size = args.sample_size or settings.anomaly_sample_size
    with session_scope() as session:
        report = IntegrityAuditService(session, sample_size=sample_size).audit()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif report.is_clean:
        print("No integrity anomalies found.")
    else:
        print(f"{report.total_anomalies} anomalies in {len(report.findings)} checks:")
        for finding in report.findings:
            print(
                f"  [{finding.severity.value.upper()}] {finding.code.value}: "
                f"{finding.count} - {finding.message}"
            )
            for entity_id in finding.sample_ids:
                print(f"      {entity_id}")

    return 0 if report.is_clean else 1


if __name__ == "__main__":
    sys.exit(main())
