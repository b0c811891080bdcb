"""
Fulfillment services -- the imperative shell.

Composes kernel selectors and the document writer with the pure engines.
Services flush but never commit; the caller owns the transaction.
"""

from fulfillment_services.diagnostics_service import (
    DiagnosticsService,
    InvoiceDiagnosis,
    RelatedProforma,
)
from fulfillment_services.fulfillment_service import FulfillmentService
from fulfillment_services.integrity_audit_service import (
    AnomalyCode,
    AnomalyFinding,
    AnomalyReport,
    CheckSeverity,
    IntegrityAuditService,
)
from fulfillment_services.linking_service import LinkingService, LinkOutcome
from fulfillment_services.reconciliation_service import (
    EntityFailure,
    ProformaResult,
    ReconciliationReport,
    ReconciliationService,
)

__all__ = [
    "AnomalyCode",
    "AnomalyFinding",
    "AnomalyReport",
    "CheckSeverity",
    "DiagnosticsService",
    "EntityFailure",
    "FulfillmentService",
    "IntegrityAuditService",
    "InvoiceDiagnosis",
    "LinkOutcome",
    "LinkingService",
    "ProformaResult",
    "ReconciliationReport",
    "ReconciliationService",
    "RelatedProforma",
]
