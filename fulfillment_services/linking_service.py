"""
LinkingService -- records which proforma an invoice fulfills.

Composes InvoiceSelector, ProformaSelector (as the candidate source), the
pure EntityLinker cascade and the conditional DocumentWriter.

Architecture: fulfillment_services -- imperative shell.

Invariants enforced:
    - Only active, non-voided invoices are linked.
    - A link to an existing non-terminal proforma is confirmed, never
      re-matched or overwritten.
    - The stored link is written only when the cascade proposes a
      different proforma, conditioned on the link value observed.
    - No candidate leaves the invoice as it is (unlinked, or still pointing
      at a stale proforma).  That is an outcome, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.documents import Invoice, Proforma
from fulfillment_kernel.exceptions import (
    InvoiceNotEligibleError,
    InvoiceNotFoundError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.selectors.invoice_selector import InvoiceSelector
from fulfillment_kernel.selectors.proforma_selector import ProformaSelector
from fulfillment_kernel.services.document_writer import DocumentWriter

from fulfillment_engines.linking import EntityLinker, LinkMethod

logger = get_logger("services.linking")


@dataclass(frozen=True)
class LinkOutcome:
    """What happened to one invoice's link."""

    invoice_id: UUID
    previous_link: UUID | None
    new_link: UUID | None
    method: LinkMethod | None
    proforma: Proforma | None = field(default=None, compare=False, repr=False)

    @property
    def had_link(self) -> bool:
        return self.previous_link is not None

    @property
    def changed(self) -> bool:
        return self.new_link != self.previous_link

    @property
    def link_created(self) -> bool:
        return self.previous_link is None and self.new_link is not None

    @property
    def link_replaced(self) -> bool:
        return (
            self.previous_link is not None
            and self.new_link is not None
            and self.new_link != self.previous_link
        )

    def to_dict(self) -> dict:
        return {
            "invoice_id": str(self.invoice_id),
            "had_link": self.had_link,
            "previous_link": str(self.previous_link) if self.previous_link else None,
            "new_link": str(self.new_link) if self.new_link else None,
            "method": self.method.value if self.method else None,
        }


class LinkingService:
    """Links invoices to the proformas they fulfill.

    Contract:
        - ``link(invoice_id)`` validates eligibility, then links.
        - ``link_invoice(invoice)`` links an already loaded, eligible invoice
          and reports what changed.

    Non-goals:
        - Does NOT commit.  The caller owns the transaction.
        - Does NOT reclassify proformas.
    """

    def __init__(
        self,
        session: Session,
        writer: DocumentWriter | None = None,
        linker: EntityLinker | None = None,
    ) -> None:
        self._session = session
        self._invoices = InvoiceSelector(session)
        self._proformas = ProformaSelector(session)
        self._writer = writer or DocumentWriter(session)
        self._linker = linker or EntityLinker()

    def link(self, invoice_id: UUID) -> Proforma | None:
        """Link one invoice and return the proforma it now fulfills.

        Raises:
            InvoiceNotFoundError: no such invoice.
            InvoiceNotEligibleError: the invoice is inactive or voided.
            OptimisticLockError: the link changed under us.
        """
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return self.link_invoice(invoice).proforma

    def current_link(self, invoice: Invoice) -> Proforma | None:
        """The linked proforma if it exists and is still open."""
        if invoice.proforma_id is None:
            return None
        proforma = self._proformas.get(invoice.proforma_id)
        if proforma is None or proforma.is_terminal:
            return None
        return proforma

    def link_invoice(self, invoice: Invoice) -> LinkOutcome:
        if not invoice.is_eligible:
            reason = "voided" if invoice.is_voided else "inactive"
            raise InvoiceNotEligibleError(str(invoice.invoice_id), reason)

        confirmed = self.current_link(invoice)
        if confirmed is not None:
            return LinkOutcome(
                invoice_id=invoice.invoice_id,
                previous_link=invoice.proforma_id,
                new_link=invoice.proforma_id,
                method=LinkMethod.EXISTING,
                proforma=confirmed,
            )

        decision = self._linker.resolve(invoice, self._proformas)
        if not decision.matched:
            if invoice.proforma_id is not None:
                logger.info(
                    "stale_link_kept",
                    extra={
                        "invoice_id": str(invoice.invoice_id),
                        "proforma_id": str(invoice.proforma_id),
                    },
                )
            return LinkOutcome(
                invoice_id=invoice.invoice_id,
                previous_link=invoice.proforma_id,
                new_link=invoice.proforma_id,
                method=None,
            )

        if decision.proforma_id != invoice.proforma_id:
            self._writer.update_invoice_link(
                invoice.invoice_id, invoice.proforma_id, decision.proforma_id
            )

        return LinkOutcome(
            invoice_id=invoice.invoice_id,
            previous_link=invoice.proforma_id,
            new_link=decision.proforma_id,
            method=decision.method,
            proforma=decision.proforma,
        )
