"""
Fulfillment calculator -- derives a proforma's status from vehicle coverage.

Responsibility:
    Count the distinct vehicles a proforma lists and how many of them appear
    on an eligible invoice, and map the pair to a status.  Pure: the set of
    covered vehicles is gathered by the caller.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Counts are of distinct vehicle identities, not lines.
    - A proforma without vehicle-bearing lines is excluded and keeps its
      status (NO_VEHICLES).
    - Terminal proformas are excluded and never reclassified (TERMINAL).
    - covered == 0 -> pending; 0 < covered < total -> partially_fulfilled;
      covered == total -> fulfilled.  Transitions are reversible.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from fulfillment_kernel.domain.documents import Proforma, ProformaStatus
from fulfillment_engines.tracer import traced_engine


class FulfillmentExclusion(str, Enum):
    """Why a proforma was not classified."""

    NO_VEHICLES = "no_vehicles"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class FulfillmentAssessment:
    """Result of classifying one proforma."""

    proforma_id: UUID
    current_status: ProformaStatus
    total: int
    covered: int
    derived_status: ProformaStatus | None = None
    exclusion: FulfillmentExclusion | None = None

    @property
    def is_excluded(self) -> bool:
        return self.exclusion is not None

    @property
    def changed(self) -> bool:
        """True when the derived status differs from the stored one."""
        return (
            self.derived_status is not None
            and self.derived_status != self.current_status
        )


def derive_status(covered: int, total: int) -> ProformaStatus:
    """Map coverage counts to a status.  Requires 0 <= covered <= total, total > 0."""
    if total <= 0:
        raise ValueError("total must be positive")
    if covered < 0 or covered > total:
        raise ValueError(f"covered={covered} outside 0..{total}")
    if covered == 0:
        return ProformaStatus.PENDING
    if covered < total:
        return ProformaStatus.PARTIALLY_FULFILLED
    return ProformaStatus.FULFILLED


class FulfillmentCalculator:
    """Pure classifier for proforma fulfillment."""

    @traced_engine("fulfillment_calculator", "1.0", fingerprint_fields=("proforma",))
    def classify(
        self,
        proforma: Proforma,
        covered_vehicle_ids: frozenset[UUID],
    ) -> FulfillmentAssessment:
        """Classify a proforma given the vehicles covered by eligible invoices.

        ``covered_vehicle_ids`` may be any superset of relevant vehicles;
        only those the proforma lists are counted.
        """
        vehicles = proforma.vehicle_ids
        total = len(vehicles)
        covered = len(vehicles & covered_vehicle_ids)

        if proforma.is_terminal:
            return FulfillmentAssessment(
                proforma_id=proforma.proforma_id,
                current_status=proforma.status,
                total=total,
                covered=covered,
                exclusion=FulfillmentExclusion.TERMINAL,
            )

        if total == 0:
            return FulfillmentAssessment(
                proforma_id=proforma.proforma_id,
                current_status=proforma.status,
                total=0,
                covered=0,
                exclusion=FulfillmentExclusion.NO_VEHICLES,
            )

        return FulfillmentAssessment(
            proforma_id=proforma.proforma_id,
            current_status=proforma.status,
            total=total,
            covered=covered,
            derived_status=derive_status(covered, total),
        )
