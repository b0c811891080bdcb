"""
Module: fulfillment_kernel.selectors.invoice_selector
Responsibility: Read-only access to invoices, the link work-list, and the
    set of vehicles covered by eligible invoices.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Eligibility: is_active is not false (NULL counts as active, as legacy
      rows have it) and state is not 'voided'.  Only eligible invoices
      contribute coverage or appear on the link work-list.
    - Coverage counts any eligible invoice, linked to a proforma or not.
    - Ordering is deterministic: issued_on ascending, then id.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import and_, exists, or_, select

from fulfillment_kernel.domain.documents import (
    DERIVED_PROFORMA_STATUSES,
    Invoice,
    InvoiceState,
    LineItem,
)
from fulfillment_kernel.models.invoice import Invoice as InvoiceModel
from fulfillment_kernel.models.line_item import LineItem as LineItemModel
from fulfillment_kernel.models.proforma import Proforma as ProformaModel
from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.proforma_selector import line_to_dto

_OPEN_STATUS_VALUES = tuple(sorted(s.value for s in DERIVED_PROFORMA_STATUSES))


def eligible_invoice_clause():
    """SQL predicate for invoices that count toward coverage."""
    return and_(
        InvoiceModel.is_active.is_not(False),
        InvoiceModel.state != InvoiceState.VOIDED.value,
    )


class InvoiceSelector(BaseSelector[InvoiceModel]):
    """Selector for invoice queries."""

    def _lines_by_invoice(
        self, invoice_ids: Iterable[UUID]
    ) -> dict[UUID, tuple[LineItem, ...]]:
        ids = list(invoice_ids)
        if not ids:
            return {}
        rows = self.session.scalars(
            select(LineItemModel)
            .where(LineItemModel.invoice_id.in_(ids))
            .order_by(LineItemModel.position, LineItemModel.id)
        ).all()
        grouped: dict[UUID, list[LineItem]] = defaultdict(list)
        for row in rows:
            grouped[row.invoice_id].append(line_to_dto(row))
        return {key: tuple(lines) for key, lines in grouped.items()}

    def _to_dtos(self, rows: Sequence[InvoiceModel]) -> list[Invoice]:
        lines = self._lines_by_invoice(r.id for r in rows)
        return [
            Invoice(
                invoice_id=r.id,
                number=r.number,
                company_id=r.company_id,
                client_id=r.client_id,
                issued_on=r.issued_on,
                is_active=r.is_active is not False,
                state=InvoiceState.from_stored(r.state),
                notes=r.notes,
                proforma_id=r.proforma_id,
                lines=lines.get(r.id, ()),
            )
            for r in rows
        ]

    def get(self, invoice_id: UUID) -> Invoice | None:
        """Return the invoice, or None if it does not exist."""
        row = self.session.get(InvoiceModel, invoice_id)
        if row is None:
            return None
        return self._to_dtos([row])[0]

    def invoices_needing_link(self) -> list[Invoice]:
        """Eligible invoices without a link to an existing open proforma.

        Covers never-linked invoices as well as stale links (the linked
        proforma is missing or has become terminal).
        """
        valid_link = exists().where(
            ProformaModel.id == InvoiceModel.proforma_id,
            ProformaModel.status.in_(_OPEN_STATUS_VALUES),
        )
        stmt = (
            select(InvoiceModel)
            .where(eligible_invoice_clause())
            .where(or_(InvoiceModel.proforma_id.is_(None), ~valid_link))
            .order_by(InvoiceModel.issued_on, InvoiceModel.id)
        )
        return self._to_dtos(self.session.scalars(stmt).all())

    def invoices_listing_vehicles(
        self, vehicle_ids: frozenset[UUID]
    ) -> list[Invoice]:
        """Invoices of any state with a line for one of the vehicles."""
        if not vehicle_ids:
            return []
        listing = (
            select(LineItemModel.invoice_id)
            .where(LineItemModel.vehicle_id.in_(list(vehicle_ids)))
            .where(LineItemModel.invoice_id.is_not(None))
        )
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.id.in_(listing))
            .order_by(InvoiceModel.issued_on, InvoiceModel.id)
        )
        return self._to_dtos(self.session.scalars(stmt).all())

    def covered_vehicle_ids(
        self, vehicle_ids: frozenset[UUID] | None = None
    ) -> frozenset[UUID]:
        """Vehicles appearing on a line of an eligible invoice.

        Args:
            vehicle_ids: If given, restrict the answer to these vehicles.
        """
        if vehicle_ids is not None and not vehicle_ids:
            return frozenset()
        stmt = (
            select(LineItemModel.vehicle_id)
            .join(InvoiceModel, InvoiceModel.id == LineItemModel.invoice_id)
            .where(eligible_invoice_clause())
            .where(LineItemModel.vehicle_id.is_not(None))
            .distinct()
        )
        if vehicle_ids is not None:
            stmt = stmt.where(LineItemModel.vehicle_id.in_(list(vehicle_ids)))
        return frozenset(self.session.scalars(stmt).all())
