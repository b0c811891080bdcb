#!/usr/bin/env python3
"""
Explain how the reconciliation engine sees one invoice.

Shows the invoice's vehicles, whether its proforma link is valid, which
cascade step would link it now, and every open proforma sharing one of its
vehicles with stored and derived status.  Read-only.

Usage:
    python3 scripts/diagnose_invoice.py --invoice-id 6f1c...
"""

import argparse
import json
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--invoice-id", type=UUID, required=True)
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML file")
    parser.add_argument("--db-url", default=None, help="Override the database URL")
    parser.add_argument("--json", action="store_true", help="Print as JSON")
    args = parser.parse_args(argv)

    from fulfillment_config import get_active_settings
    from fulfillment_kernel.db.engine import init_engine_from_url, session_scope
    from fulfillment_kernel.exceptions import FulfillmentError
    from fulfillment_kernel.logging_config import configure_logging
    from fulfillment_services.diagnostics_service import DiagnosticsService

    try:
        settings = get_active_settings(args.config)
    except (FulfillmentError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=settings.log_level_value)
    init_engine_from_url(args.db_url or settings.database_url, echo=settings.echo_sql)

    try:
        with session_scope() as session:
            diagnosis = DiagnosticsService(session).diagnose_invoice(args.invoice_id)
    except FulfillmentError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    data = diagnosis.to_dict()
    if args.json:
        print(json.dumps(data, indent=2))
        return 0

    print(f"Invoice {data['number']} ({data['invoice_id']})")
    print(f"  Eligible:        {data['is_eligible']}")
    print(f"  Vehicles:        {', '.join(data['vehicle_ids']) or '-'}")
    print(f"  Linked proforma: {data['linked_proforma_id'] or '-'}"
          f" ({'valid' if data['link_is_valid'] else 'not valid'})")
    print(f"  Cascade would pick: {data['candidate_proforma_id'] or '-'}"
          f" via {data['candidate_method'] or '-'}")
    print("  Proformas sharing vehicles:")
    if not data["related_proformas"]:
        print("    (none)")
    for related in data["related_proformas"]:
        derived = related["derived_status"] or related["exclusion"]
        print(
            f"    {related['number']}: stored={related['stored_status']} "
            f"derived={derived} covered={related['covered']}/{related['total']}"
            f" same_party={related['same_party']}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
