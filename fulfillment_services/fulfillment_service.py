"""
FulfillmentService -- gathers vehicle coverage and classifies proformas.

Architecture: fulfillment_services -- imperative shell around the pure
FulfillmentCalculator.  Read-only; persisting a new status is the
reconciliation driver's job.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.documents import Proforma
from fulfillment_kernel.exceptions import ProformaNotFoundError
from fulfillment_kernel.selectors.invoice_selector import InvoiceSelector
from fulfillment_kernel.selectors.proforma_selector import ProformaSelector

from fulfillment_engines.fulfillment import (
    FulfillmentAssessment,
    FulfillmentCalculator,
)


class FulfillmentService:
    """Classifies proformas against the current invoicing state."""

    def __init__(
        self,
        session: Session,
        calculator: FulfillmentCalculator | None = None,
    ) -> None:
        self._invoices = InvoiceSelector(session)
        self._proformas = ProformaSelector(session)
        self._calculator = calculator or FulfillmentCalculator()

    def classify(self, proforma_id: UUID) -> FulfillmentAssessment:
        """Classify a stored proforma.

        Raises:
            ProformaNotFoundError: no such proforma.
        """
        proforma = self._proformas.get(proforma_id)
        if proforma is None:
            raise ProformaNotFoundError(str(proforma_id))
        return self.assess(proforma)

    def assess(self, proforma: Proforma) -> FulfillmentAssessment:
        """Classify an already loaded proforma."""
        covered = self._invoices.covered_vehicle_ids(proforma.vehicle_ids)
        return self._calculator.classify(
            proforma=proforma, covered_vehicle_ids=covered
        )
