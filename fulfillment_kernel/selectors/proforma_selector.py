"""
Module: fulfillment_kernel.selectors.proforma_selector
Responsibility: Read-only access to proformas and their lines, returned as
    frozen ``Proforma`` DTOs.  Also serves as the candidate source for the
    entity linking cascade.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Open" means status in (pending, partially_fulfilled, fulfilled).
      Terminal proformas are never returned as candidates.  Rows carrying a
      status outside the known set are skipped rather than guessed at.
    - Lines are loaded in one batched query per call and sorted by position.
    - Ordering is deterministic: issued_on ascending, then id.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.domain.documents import (
    DERIVED_PROFORMA_STATUSES,
    LineItem,
    Proforma,
    ProformaStatus,
)
from fulfillment_kernel.models.line_item import LineItem as LineItemModel
from fulfillment_kernel.models.proforma import Proforma as ProformaModel
from fulfillment_kernel.selectors.base import BaseSelector

_OPEN_STATUS_VALUES = tuple(sorted(s.value for s in DERIVED_PROFORMA_STATUSES))
_KNOWN_STATUS_VALUES = frozenset(s.value for s in ProformaStatus)


def line_to_dto(line: LineItemModel) -> LineItem:
    """Convert a line_items row to its DTO."""
    return LineItem(
        line_id=line.id,
        position=line.position,
        quantity=line.quantity,
        unit_price=line.unit_price,
        description=line.description,
        vehicle_id=line.vehicle_id,
    )


class ProformaSelector(BaseSelector[ProformaModel]):
    """
    Selector for proforma queries.

    Implements ``fulfillment_engines.linking.ProformaCandidateSource``
    (``open_proformas``, ``proformas_for_party``,
    ``proformas_sharing_vehicles``).
    """

    def _lines_by_proforma(
        self, proforma_ids: Iterable[UUID]
    ) -> dict[UUID, tuple[LineItem, ...]]:
        ids = list(proforma_ids)
        if not ids:
            return {}
        rows = self.session.scalars(
            select(LineItemModel)
            .where(LineItemModel.proforma_id.in_(ids))
            .order_by(LineItemModel.position, LineItemModel.id)
        ).all()
        grouped: dict[UUID, list[LineItem]] = defaultdict(list)
        for row in rows:
            grouped[row.proforma_id].append(line_to_dto(row))
        return {key: tuple(lines) for key, lines in grouped.items()}

    def _to_dtos(self, rows: Sequence[ProformaModel]) -> list[Proforma]:
        rows = [r for r in rows if r.status in _KNOWN_STATUS_VALUES]
        lines = self._lines_by_proforma(r.id for r in rows)
        return [
            Proforma(
                proforma_id=r.id,
                number=r.number,
                company_id=r.company_id,
                client_id=r.client_id,
                issued_on=r.issued_on,
                status=ProformaStatus(r.status),
                notes=r.notes,
                lines=lines.get(r.id, ()),
            )
            for r in rows
        ]

    def _open_query(self):
        return (
            select(ProformaModel)
            .where(ProformaModel.status.in_(_OPEN_STATUS_VALUES))
            .order_by(ProformaModel.issued_on, ProformaModel.id)
        )

    # -----------------------------------------------------------------
    # Point lookups
    # -----------------------------------------------------------------

    def get(self, proforma_id: UUID) -> Proforma | None:
        """Return the proforma, or None if it does not exist."""
        row = self.session.get(ProformaModel, proforma_id)
        if row is None:
            return None
        dtos = self._to_dtos([row])
        return dtos[0] if dtos else None

    def exists(self, proforma_id: UUID) -> bool:
        return self.session.scalar(
            select(ProformaModel.id).where(ProformaModel.id == proforma_id)
        ) is not None

    # -----------------------------------------------------------------
    # Candidate source
    # -----------------------------------------------------------------

    def open_proformas(self) -> list[Proforma]:
        """All non-terminal proformas, issued_on ascending then id."""
        return self._to_dtos(self.session.scalars(self._open_query()).all())

    def proformas_for_party(
        self, client_id: UUID, company_id: UUID
    ) -> list[Proforma]:
        """Non-terminal proformas of one client at one company."""
        stmt = self._open_query().where(
            ProformaModel.client_id == client_id,
            ProformaModel.company_id == company_id,
        )
        return self._to_dtos(self.session.scalars(stmt).all())

    def proformas_sharing_vehicles(
        self,
        client_id: UUID,
        company_id: UUID,
        vehicle_ids: frozenset[UUID],
    ) -> list[Proforma]:
        """Non-terminal proformas of the party listing any of the vehicles."""
        if not vehicle_ids:
            return []
        listing = (
            select(LineItemModel.proforma_id)
            .where(LineItemModel.vehicle_id.in_(list(vehicle_ids)))
            .where(LineItemModel.proforma_id.is_not(None))
        )
        stmt = self._open_query().where(
            ProformaModel.client_id == client_id,
            ProformaModel.company_id == company_id,
            ProformaModel.id.in_(listing),
        )
        return self._to_dtos(self.session.scalars(stmt).all())

    # -----------------------------------------------------------------
    # Targeted reconciliation / diagnostics
    # -----------------------------------------------------------------

    def open_proformas_listing_vehicles(
        self, vehicle_ids: frozenset[UUID]
    ) -> list[Proforma]:
        """Non-terminal proformas of any party listing any of the vehicles."""
        if not vehicle_ids:
            return []
        listing = (
            select(LineItemModel.proforma_id)
            .where(LineItemModel.vehicle_id.in_(list(vehicle_ids)))
            .where(LineItemModel.proforma_id.is_not(None))
        )
        stmt = self._open_query().where(ProformaModel.id.in_(listing))
        return self._to_dtos(self.session.scalars(stmt).all())
