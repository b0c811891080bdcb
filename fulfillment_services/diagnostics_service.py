"""
DiagnosticsService -- explains how the engine sees one invoice.

Read-only.  For an invoice, lists its vehicles, the state of its current
link, every open proforma sharing one of its vehicles with stored and
derived status, and which cascade step would link it right now.

Architecture: fulfillment_services -- imperative shell.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.documents import Invoice, Proforma, ProformaStatus
from fulfillment_kernel.exceptions import InvoiceNotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.selectors.invoice_selector import InvoiceSelector
from fulfillment_kernel.selectors.proforma_selector import ProformaSelector

from fulfillment_engines.fulfillment import FulfillmentExclusion
from fulfillment_engines.linking import EntityLinker, LinkDecision
from fulfillment_services.fulfillment_service import FulfillmentService

logger = get_logger("services.diagnostics")


@dataclass(frozen=True)
class RelatedProforma:
    """An open proforma sharing at least one vehicle with the invoice."""

    proforma_id: UUID
    number: str
    same_party: bool
    shared_vehicle_ids: frozenset[UUID]
    stored_status: ProformaStatus
    derived_status: ProformaStatus | None
    covered: int
    total: int
    exclusion: FulfillmentExclusion | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "proforma_id": str(self.proforma_id),
            "number": self.number,
            "same_party": self.same_party,
            "shared_vehicle_ids": sorted(str(v) for v in self.shared_vehicle_ids),
            "stored_status": self.stored_status.value,
            "derived_status": (
                self.derived_status.value if self.derived_status else None
            ),
            "covered": self.covered,
            "total": self.total,
            "exclusion": self.exclusion.value if self.exclusion else None,
        }


@dataclass(frozen=True)
class InvoiceDiagnosis:
    """Everything the engine knows about one invoice."""

    invoice: Invoice
    linked_proforma: Proforma | None
    link_is_valid: bool
    candidate: LinkDecision
    related: tuple[RelatedProforma, ...]

    def to_dict(self) -> dict[str, Any]:
        inv = self.invoice
        return {
            "invoice_id": str(inv.invoice_id),
            "number": inv.number,
            "is_eligible": inv.is_eligible,
            "vehicle_ids": sorted(str(v) for v in inv.vehicle_ids),
            "linked_proforma_id": str(inv.proforma_id) if inv.proforma_id else None,
            "link_is_valid": self.link_is_valid,
            "candidate_proforma_id": (
                str(self.candidate.proforma_id) if self.candidate.matched else None
            ),
            "candidate_method": (
                self.candidate.method.value if self.candidate.method else None
            ),
            "related_proformas": [r.to_dict() for r in self.related],
        }


class DiagnosticsService:
    """Read-only explanation of linking and coverage for an invoice."""

    def __init__(
        self,
        session: Session,
        linker: EntityLinker | None = None,
    ) -> None:
        self._invoices = InvoiceSelector(session)
        self._proformas = ProformaSelector(session)
        self._fulfillment = FulfillmentService(session)
        self._linker = linker or EntityLinker()

    def diagnose_invoice(self, invoice_id: UUID) -> InvoiceDiagnosis:
        """
        Raises:
            InvoiceNotFoundError: no such invoice.
        """
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))

        linked = (
            self._proformas.get(invoice.proforma_id)
            if invoice.proforma_id is not None
            else None
        )
        link_is_valid = linked is not None and not linked.is_terminal

        related: list[RelatedProforma] = []
        for proforma in self._proformas.open_proformas_listing_vehicles(
            invoice.vehicle_ids
        ):
            assessment = self._fulfillment.assess(proforma)
            related.append(
                RelatedProforma(
                    proforma_id=proforma.proforma_id,
                    number=proforma.number,
                    same_party=(
                        proforma.client_id == invoice.client_id
                        and proforma.company_id == invoice.company_id
                    ),
                    shared_vehicle_ids=proforma.vehicle_ids & invoice.vehicle_ids,
                    stored_status=proforma.status,
                    derived_status=assessment.derived_status,
                    covered=assessment.covered,
                    total=assessment.total,
                    exclusion=assessment.exclusion,
                )
            )

        diagnosis = InvoiceDiagnosis(
            invoice=invoice,
            linked_proforma=linked,
            link_is_valid=link_is_valid,
            candidate=self._linker.resolve(invoice, self._proformas),
            related=tuple(related),
        )
        logger.info(
            "invoice_diagnosed",
            extra={
                "invoice_id": str(invoice_id),
                "link_is_valid": link_is_valid,
                "related_count": len(related),
            },
        )
        return diagnosis
