"""
ReconciliationService -- the reconciliation pass driver.

Brings derived state in line with the documents: links unlinked (or
stale-linked) invoices, then reclassifies every open proforma and writes
the status where it changed.

Architecture: fulfillment_services -- imperative shell.
    Composes InvoiceSelector / ProformaSelector (reads), LinkingService and
    FulfillmentService (decisions), DocumentWriter (conditional writes).

Invariants enforced:
    - All link work completes before any proforma is classified.
    - A status is written only if it differs from the stored value.
    - Each entity is processed inside its own SAVEPOINT.  A data-access
      error or FulfillmentError rolls back that entity only, is recorded as
      an EntityFailure and the pass continues.
    - Re-running a pass over unchanged data writes nothing and yields an
      equal report (timestamps and pass id are excluded from equality).
    - Cancellation is honoured between entities.
    - Any other exception rolls back the entity SAVEPOINT and propagates.
    - The service flushes but never commits.  preview() wraps the whole
      pass in a SAVEPOINT that is rolled back.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import Invoice, Proforma, ProformaStatus
from fulfillment_kernel.exceptions import FulfillmentError, InvoiceNotFoundError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.selectors.invoice_selector import InvoiceSelector
from fulfillment_kernel.selectors.proforma_selector import ProformaSelector
from fulfillment_kernel.services.document_writer import DocumentWriter

from fulfillment_engines.fulfillment import FulfillmentExclusion
from fulfillment_engines.linking import EntityLinker
from fulfillment_services.fulfillment_service import FulfillmentService
from fulfillment_services.linking_service import LinkingService, LinkOutcome

logger = get_logger("services.reconciliation")

T = TypeVar("T")


# =============================================================================
# Report types
# =============================================================================


@dataclass(frozen=True)
class ProformaResult:
    """Before/after status of one processed proforma."""

    proforma_id: UUID
    number: str
    before_status: ProformaStatus
    after_status: ProformaStatus
    covered: int
    total: int
    exclusion: FulfillmentExclusion | None = None

    @property
    def changed(self) -> bool:
        return self.before_status != self.after_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "proforma_id": str(self.proforma_id),
            "number": self.number,
            "before_status": self.before_status.value,
            "after_status": self.after_status.value,
            "covered": self.covered,
            "total": self.total,
            "exclusion": self.exclusion.value if self.exclusion else None,
        }


@dataclass(frozen=True)
class EntityFailure:
    """One entity whose update was rolled back."""

    entity_type: str
    entity_id: UUID
    error_code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    invoices: tuple[LinkOutcome, ...] = ()
    proformas: tuple[ProformaResult, ...] = ()
    failures: tuple[EntityFailure, ...] = ()
    cancelled: bool = False
    dry_run: bool = False
    pass_id: UUID | None = field(default=None, compare=False)
    started_at: datetime | None = field(default=None, compare=False)
    finished_at: datetime | None = field(default=None, compare=False)

    @property
    def links_created(self) -> int:
        return sum(1 for o in self.invoices if o.link_created)

    @property
    def links_replaced(self) -> int:
        return sum(1 for o in self.invoices if o.link_replaced)

    @property
    def statuses_changed(self) -> int:
        return sum(1 for p in self.proformas if p.changed)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def proforma(self, proforma_id: UUID) -> ProformaResult | None:
        for result in self.proformas:
            if result.proforma_id == proforma_id:
                return result
        return None

    def invoice(self, invoice_id: UUID) -> LinkOutcome | None:
        for outcome in self.invoices:
            if outcome.invoice_id == invoice_id:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_id": str(self.pass_id) if self.pass_id else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "links_created": self.links_created,
            "links_replaced": self.links_replaced,
            "statuses_changed": self.statuses_changed,
            "failure_count": self.failure_count,
            "invoices": [o.to_dict() for o in self.invoices],
            "proformas": [p.to_dict() for p in self.proformas],
            "failures": [f.to_dict() for f in self.failures],
        }


class _PassCancelled(Exception):
    """Internal signal: the stop event was set between entities."""


# =============================================================================
# Service
# =============================================================================


class ReconciliationService:
    """Drives a reconciliation pass over the whole store or one invoice.

    Contract:
        - ``run(stop_event=None)`` processes every invoice needing a link,
          then every open proforma.
        - ``reconcile_invoice(invoice_id)`` links one invoice (if eligible)
          and reclassifies the open proformas sharing a vehicle with it.
        - ``preview()`` computes a full pass and rolls it back.

    Non-goals:
        - Does NOT commit.  The caller owns the transaction.
        - Does NOT create or delete documents.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        writer: DocumentWriter | None = None,
        linker: EntityLinker | None = None,
        record_history: bool = True,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._writer = writer or DocumentWriter(
            session, clock=self._clock, record_history=record_history
        )
        self._invoices = InvoiceSelector(session)
        self._proformas = ProformaSelector(session)
        self._linking = LinkingService(session, writer=self._writer, linker=linker)
        self._fulfillment = FulfillmentService(session)

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def run(self, stop_event: threading.Event | None = None) -> ReconciliationReport:
        """Full pass: link invoices, then reclassify open proformas."""
        return self._run_pass(
            invoices=self._invoices.invoices_needing_link,
            proformas=self._proformas.open_proformas,
            stop_event=stop_event,
        )

    def preview(self) -> ReconciliationReport:
        """Full pass inside a SAVEPOINT that is always rolled back."""
        outer = self._session.begin_nested()
        try:
            return self._run_pass(
                invoices=self._invoices.invoices_needing_link,
                proformas=self._proformas.open_proformas,
                dry_run=True,
            )
        finally:
            outer.rollback()

    def reconcile_invoice(self, invoice_id: UUID) -> ReconciliationReport:
        """Targeted pass after one invoice was created, changed or voided.

        Raises:
            InvoiceNotFoundError: no such invoice.
        """
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))

        return self._run_pass(
            invoices=lambda: [invoice] if invoice.is_eligible else [],
            proformas=lambda: self._proformas.open_proformas_listing_vehicles(
                invoice.vehicle_ids
            ),
        )

    # -----------------------------------------------------------------
    # Pass mechanics
    # -----------------------------------------------------------------

    def _run_pass(
        self,
        invoices: Callable[[], Sequence[Invoice]],
        proformas: Callable[[], Sequence[Proforma]],
        stop_event: threading.Event | None = None,
        dry_run: bool = False,
    ) -> ReconciliationReport:
        pass_id = uuid4()
        started_at = self._clock.now()
        link_outcomes: list[LinkOutcome] = []
        proforma_results: list[ProformaResult] = []
        failures: list[EntityFailure] = []
        cancelled = False

        with LogContext.bind(pass_id=str(pass_id)):
            logger.info("reconciliation_started", extra={"dry_run": dry_run})
            try:
                for invoice in invoices():
                    self._check_stop(stop_event)
                    outcome = self._isolated(
                        "invoice",
                        invoice.invoice_id,
                        lambda inv=invoice: self._linking.link_invoice(inv),
                        failures,
                    )
                    if outcome is not None:
                        link_outcomes.append(outcome)

                for proforma in proformas():
                    self._check_stop(stop_event)
                    result = self._isolated(
                        "proforma",
                        proforma.proforma_id,
                        lambda pf=proforma: self._reclassify(pf, pass_id),
                        failures,
                    )
                    if result is not None:
                        proforma_results.append(result)
            except _PassCancelled:
                cancelled = True
                logger.warning("reconciliation_cancelled")

            report = ReconciliationReport(
                invoices=tuple(link_outcomes),
                proformas=tuple(proforma_results),
                failures=tuple(failures),
                cancelled=cancelled,
                dry_run=dry_run,
                pass_id=pass_id,
                started_at=started_at,
                finished_at=self._clock.now(),
            )
            logger.info(
                "reconciliation_completed",
                extra={
                    "dry_run": dry_run,
                    "cancelled": cancelled,
                    "invoices_processed": len(report.invoices),
                    "proformas_processed": len(report.proformas),
                    "links_created": report.links_created,
                    "links_replaced": report.links_replaced,
                    "statuses_changed": report.statuses_changed,
                    "failure_count": report.failure_count,
                },
            )
        return report

    @staticmethod
    def _check_stop(stop_event: threading.Event | None) -> None:
        if stop_event is not None and stop_event.is_set():
            raise _PassCancelled()

    def _isolated(
        self,
        entity_type: str,
        entity_id: UUID,
        work: Callable[[], T],
        failures: list[EntityFailure],
    ) -> T | None:
        """Run ``work`` in a SAVEPOINT; record and swallow entity failures."""
        with LogContext.bind(entity_type=entity_type, entity_id=str(entity_id)):
            savepoint = self._session.begin_nested()
            try:
                result = work()
                savepoint.commit()
                return result
            except (SQLAlchemyError, FulfillmentError) as exc:
                savepoint.rollback()
                if isinstance(exc, FulfillmentError):
                    code = exc.code
                else:
                    code = "DATA_ACCESS_ERROR"
                failures.append(
                    EntityFailure(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        error_code=code,
                        message=str(exc),
                    )
                )
                logger.warning(
                    "entity_failed",
                    extra={"error_code": code},
                    exc_info=True,
                )
                return None
            except Exception:
                savepoint.rollback()
                logger.error("entity_aborted", exc_info=True)
                raise

    def _reclassify(self, proforma: Proforma, pass_id: UUID) -> ProformaResult:
        assessment = self._fulfillment.assess(proforma)
        after = proforma.status
        if assessment.changed:
            self._writer.update_proforma_status(
                proforma.proforma_id,
                proforma.status,
                assessment.derived_status,
                covered=assessment.covered,
                total=assessment.total,
                pass_id=pass_id,
            )
            after = assessment.derived_status

        return ProformaResult(
            proforma_id=proforma.proforma_id,
            number=proforma.number,
            before_status=proforma.status,
            after_status=after,
            covered=assessment.covered,
            total=assessment.total,
            exclusion=assessment.exclusion,
        )
