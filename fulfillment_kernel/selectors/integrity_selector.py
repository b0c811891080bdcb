"""
Module: fulfillment_kernel.selectors.integrity_selector
Responsibility: Read-only anti-join queries that find dangling references
    between documents, lines, parties and vehicles.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query returns the total count plus a bounded, id-ordered sample,
      so a report stays small on a badly damaged dataset.
    - A NULL company is dangling: every document must have an issuer.
      Other NULL references are optional and only checked when set.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql import Select

from fulfillment_kernel.models.client import Client
from fulfillment_kernel.models.company import Company
from fulfillment_kernel.models.invoice import Invoice
from fulfillment_kernel.models.line_item import LineItem
from fulfillment_kernel.models.proforma import Proforma
from fulfillment_kernel.models.vehicle import Vehicle
from fulfillment_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class DanglingReferences:
    """Result of one integrity query."""

    count: int
    sample_ids: tuple[UUID, ...]


def _missing(target_id, reference):
    """True when ``reference`` is set but no ``target_id`` row matches it."""
    return and_(
        reference.is_not(None),
        ~select(target_id).where(target_id == reference).exists(),
    )


class IntegritySelector(BaseSelector[LineItem]):
    """Anti-join queries used by the integrity auditor."""

    def __init__(self, session, sample_size: int = 20):
        super().__init__(session)
        self.sample_size = sample_size

    def _collect(self, ids: Select) -> DanglingReferences:
        count = self.session.scalar(
            select(func.count()).select_from(ids.subquery())
        )
        id_column = ids.selected_columns[0]
        sample = self.session.scalars(
            ids.order_by(id_column).limit(self.sample_size)
        ).all()
        return DanglingReferences(count=count or 0, sample_ids=tuple(sample))

    # -----------------------------------------------------------------
    # Line items
    # -----------------------------------------------------------------

    def line_items_with_missing_proforma(self) -> DanglingReferences:
        return self._collect(
            select(LineItem.id).where(_missing(Proforma.id, LineItem.proforma_id))
        )

    def line_items_with_missing_invoice(self) -> DanglingReferences:
        return self._collect(
            select(LineItem.id).where(_missing(Invoice.id, LineItem.invoice_id))
        )

    def line_items_with_ambiguous_parent(self) -> DanglingReferences:
        """Lines referencing both a proforma and an invoice, or neither."""
        return self._collect(
            select(LineItem.id).where(
                or_(
                    and_(
                        LineItem.proforma_id.is_not(None),
                        LineItem.invoice_id.is_not(None),
                    ),
                    and_(
                        LineItem.proforma_id.is_(None),
                        LineItem.invoice_id.is_(None),
                    ),
                )
            )
        )

    def line_items_with_missing_vehicle(self) -> DanglingReferences:
        return self._collect(
            select(LineItem.id).where(_missing(Vehicle.id, LineItem.vehicle_id))
        )

    # -----------------------------------------------------------------
    # Proformas
    # -----------------------------------------------------------------

    def proformas_with_missing_company(self) -> DanglingReferences:
        return self._collect(
            select(Proforma.id).where(
                or_(
                    Proforma.company_id.is_(None),
                    _missing(Company.id, Proforma.company_id),
                )
            )
        )

    def proformas_with_missing_client(self) -> DanglingReferences:
        return self._collect(
            select(Proforma.id).where(_missing(Client.id, Proforma.client_id))
        )

    # -----------------------------------------------------------------
    # Invoices
    # -----------------------------------------------------------------

    def invoices_with_missing_company(self) -> DanglingReferences:
        return self._collect(
            select(Invoice.id).where(
                or_(
                    Invoice.company_id.is_(None),
                    _missing(Company.id, Invoice.company_id),
                )
            )
        )

    def invoices_with_missing_client(self) -> DanglingReferences:
        return self._collect(
            select(Invoice.id).where(_missing(Client.id, Invoice.client_id))
        )

    def invoices_with_missing_proforma(self) -> DanglingReferences:
        return self._collect(
            select(Invoice.id).where(_missing(Proforma.id, Invoice.proforma_id))
        )
