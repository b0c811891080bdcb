"""
IntegrityAuditService -- advisory report on dangling references.

Architecture: fulfillment_services -- imperative shell over
IntegritySelector.  Strictly read-only.

Invariants enforced:
    - Never mutates; anomalies are reported, never raised.
    - Every finding carries its total count and a bounded sample of ids.
    - Findings come out in a fixed check order, so two audits of the same
      data compare equal (the generation timestamp is excluded).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.selectors.integrity_selector import (
    DanglingReferences,
    IntegritySelector,
)

logger = get_logger("services.integrity_audit")


class CheckSeverity(str, Enum):
    """Severity level of an integrity finding."""

    ERROR = "error"
    WARNING = "warning"


class AnomalyCode(str, Enum):
    LINE_ITEM_ORPHANED_PROFORMA = "LINE_ITEM_ORPHANED_PROFORMA"
    LINE_ITEM_ORPHANED_INVOICE = "LINE_ITEM_ORPHANED_INVOICE"
    LINE_ITEM_PARENT_AMBIGUOUS = "LINE_ITEM_PARENT_AMBIGUOUS"
    LINE_ITEM_DANGLING_VEHICLE = "LINE_ITEM_DANGLING_VEHICLE"
    PROFORMA_DANGLING_COMPANY = "PROFORMA_DANGLING_COMPANY"
    PROFORMA_DANGLING_CLIENT = "PROFORMA_DANGLING_CLIENT"
    INVOICE_DANGLING_COMPANY = "INVOICE_DANGLING_COMPANY"
    INVOICE_DANGLING_CLIENT = "INVOICE_DANGLING_CLIENT"
    INVOICE_DANGLING_PROFORMA = "INVOICE_DANGLING_PROFORMA"


@dataclass(frozen=True)
class AnomalyFinding:
    """One class of anomaly found by the audit."""

    code: AnomalyCode
    severity: CheckSeverity
    message: str
    count: int
    sample_ids: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "count": self.count,
            "sample_ids": [str(i) for i in self.sample_ids],
        }


@dataclass(frozen=True)
class AnomalyReport:
    """All anomalies found by one audit."""

    findings: tuple[AnomalyFinding, ...] = ()
    checks_run: tuple[AnomalyCode, ...] = ()
    sample_size: int = 0
    generated_at: datetime | None = field(default=None, compare=False)

    @property
    def is_clean(self) -> bool:
        return not self.findings

    @property
    def total_anomalies(self) -> int:
        return sum(f.count for f in self.findings)

    @property
    def error_count(self) -> int:
        return sum(
            f.count for f in self.findings if f.severity == CheckSeverity.ERROR
        )

    def finding(self, code: AnomalyCode) -> AnomalyFinding | None:
        for f in self.findings:
            if f.code == code:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": (
                self.generated_at.isoformat() if self.generated_at else None
            ),
            "is_clean": self.is_clean,
            "total_anomalies": self.total_anomalies,
            "sample_size": self.sample_size,
            "checks_run": [c.value for c in self.checks_run],
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class _Check:
    code: AnomalyCode
    severity: CheckSeverity
    message: str
    query: Callable[[IntegritySelector], DanglingReferences]


_CHECKS: tuple[_Check, ...] = (
    _Check(
        AnomalyCode.LINE_ITEM_ORPHANED_PROFORMA,
        CheckSeverity.ERROR,
        "Line items reference a proforma that does not exist",
        IntegritySelector.line_items_with_missing_proforma,
    ),
    _Check(
        AnomalyCode.LINE_ITEM_ORPHANED_INVOICE,
        CheckSeverity.ERROR,
        "Line items reference an invoice that does not exist",
        IntegritySelector.line_items_with_missing_invoice,
    ),
    _Check(
        AnomalyCode.LINE_ITEM_PARENT_AMBIGUOUS,
        CheckSeverity.ERROR,
        "Line items reference both a proforma and an invoice, or neither",
        IntegritySelector.line_items_with_ambiguous_parent,
    ),
    _Check(
        AnomalyCode.LINE_ITEM_DANGLING_VEHICLE,
        CheckSeverity.WARNING,
        "Line items reference a vehicle that does not exist",
        IntegritySelector.line_items_with_missing_vehicle,
    ),
    _Check(
        AnomalyCode.PROFORMA_DANGLING_COMPANY,
        CheckSeverity.ERROR,
        "Proformas reference a missing or empty company",
        IntegritySelector.proformas_with_missing_company,
    ),
    _Check(
        AnomalyCode.PROFORMA_DANGLING_CLIENT,
        CheckSeverity.WARNING,
        "Proformas reference a client that does not exist",
        IntegritySelector.proformas_with_missing_client,
    ),
    _Check(
        AnomalyCode.INVOICE_DANGLING_COMPANY,
        CheckSeverity.ERROR,
        "Invoices reference a missing or empty company",
        IntegritySelector.invoices_with_missing_company,
    ),
    _Check(
        AnomalyCode.INVOICE_DANGLING_CLIENT,
        CheckSeverity.WARNING,
        "Invoices reference a client that does not exist",
        IntegritySelector.invoices_with_missing_client,
    ),
    _Check(
        AnomalyCode.INVOICE_DANGLING_PROFORMA,
        CheckSeverity.WARNING,
        "Invoices are linked to a proforma that does not exist",
        IntegritySelector.invoices_with_missing_proforma,
    ),
)


class IntegrityAuditService:
    """Runs every referential integrity check and collects the findings.

    Non-goals:
        - Does NOT repair anything.
        - Does NOT raise on anomalies.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sample_size: int = 20,
    ) -> None:
        self._selector = IntegritySelector(session, sample_size=sample_size)
        self._clock = clock or SystemClock()
        self._sample_size = sample_size

    def audit(self) -> AnomalyReport:
        findings: list[AnomalyFinding] = []
        for check in _CHECKS:
            result = check.query(self._selector)
            if result.count == 0:
                continue
            findings.append(
                AnomalyFinding(
                    code=check.code,
                    severity=check.severity,
                    message=check.message,
                    count=result.count,
                    sample_ids=result.sample_ids,
                )
            )
            logger.warning(
                "integrity_anomaly_found",
                extra={
                    "code": check.code.value,
                    "severity": check.severity.value,
                    "count": result.count,
                },
            )

        report = AnomalyReport(
            findings=tuple(findings),
            checks_run=tuple(c.code for c in _CHECKS),
            sample_size=self._sample_size,
            generated_at=self._clock.now(),
        )
        logger.info(
            "audit_completed",
            extra={
                "finding_count": len(report.findings),
                "total_anomalies": report.total_anomalies,
            },
        )
        return report
