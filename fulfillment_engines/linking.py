"""
Entity linking cascade -- infers which proforma an invoice fulfills.

Responsibility:
    Given an invoice and a read-only source of candidate proformas, run an
    ordered list of matchers and return the first proforma any of them
    proposes.  No I/O beyond the candidate source; recording the link is
    the caller's job.

Architecture position:
    Engines -- pure calculation layer.  Consumes frozen
    ``fulfillment_kernel.domain`` DTOs.  The candidate source is a Protocol
    so matchers can be exercised against an in-memory list.

Invariants enforced:
    - Terminal proformas are never proposed, whatever the source returns.
    - Ties inside a step go to the most recently issued proforma, then the
      lowest id (``Proforma.recency_key``).
    - The textual step scans proformas by issue date ascending, then id,
      and the first number found inside the notes wins.
    - Deterministic: the same invoice and candidates give the same answer.

Cascade (``DEFAULT_CASCADE``):
    1. shared_vehicle     same client and company, shares a vehicle
    2. textual_reference  proforma number appears in the invoice notes
    3. same_party         same client and company, most recent
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Protocol
from uuid import UUID

from fulfillment_kernel.domain.documents import Invoice, Proforma
from fulfillment_kernel.logging_config import get_logger
from fulfillment_engines.tracer import traced_engine

logger = get_logger("engines.linking")


class LinkMethod(str, Enum):
    """How an invoice's proforma was determined."""

    EXISTING = "existing"
    SHARED_VEHICLE = "shared_vehicle"
    TEXTUAL_REFERENCE = "textual_reference"
    SAME_PARTY = "same_party"


class ProformaCandidateSource(Protocol):
    """Read-only access to candidate proformas.

    Implementations may return more than strictly matches; every matcher
    re-checks its own criteria.
    """

    def open_proformas(self) -> Sequence[Proforma]:
        ...

    def proformas_for_party(
        self, client_id: UUID, company_id: UUID
    ) -> Sequence[Proforma]:
        ...

    def proformas_sharing_vehicles(
        self,
        client_id: UUID,
        company_id: UUID,
        vehicle_ids: frozenset[UUID],
    ) -> Sequence[Proforma]:
        ...


@dataclass(frozen=True)
class LinkDecision:
    """Outcome of running the cascade for one invoice."""

    invoice_id: UUID
    proforma: Proforma | None
    method: LinkMethod | None

    @property
    def matched(self) -> bool:
        return self.proforma is not None

    @property
    def proforma_id(self) -> UUID | None:
        return self.proforma.proforma_id if self.proforma else None


def most_recent(candidates: Iterable[Proforma]) -> Proforma | None:
    """Latest issued non-terminal proforma, lowest id on ties."""
    open_candidates = [p for p in candidates if not p.is_terminal]
    if not open_candidates:
        return None
    return min(open_candidates, key=lambda p: p.recency_key)


def _same_party(invoice: Invoice, proforma: Proforma) -> bool:
    return (
        proforma.client_id == invoice.client_id
        and proforma.company_id == invoice.company_id
    )


class ProformaMatcher(ABC):
    """One step of the linking cascade."""

    method: ClassVar[LinkMethod]

    @abstractmethod
    def match(
        self, invoice: Invoice, source: ProformaCandidateSource
    ) -> Proforma | None:
        """Return the proforma this step links the invoice to, or None."""


class SharedVehicleMatcher(ProformaMatcher):
    """Same client and company, with at least one vehicle in common."""

    method = LinkMethod.SHARED_VEHICLE

    def match(
        self, invoice: Invoice, source: ProformaCandidateSource
    ) -> Proforma | None:
        if not invoice.has_party:
            return None
        vehicles = invoice.vehicle_ids
        if not vehicles:
            return None
        candidates = source.proformas_sharing_vehicles(
            invoice.client_id, invoice.company_id, vehicles
        )
        return most_recent(
            p for p in candidates
            if _same_party(invoice, p) and p.vehicle_ids & vehicles
        )


class TextualReferenceMatcher(ProformaMatcher):
    """A proforma number written into the invoice notes."""

    method = LinkMethod.TEXTUAL_REFERENCE

    def match(
        self, invoice: Invoice, source: ProformaCandidateSource
    ) -> Proforma | None:
        notes = invoice.notes
        if not notes:
            return None
        ordered = sorted(
            (p for p in source.open_proformas() if not p.is_terminal),
            key=lambda p: (p.issued_on, str(p.proforma_id)),
        )
        for proforma in ordered:
            number = proforma.number.strip() if proforma.number else ""
            if number and number in notes:
                return proforma
        return None


class SamePartyMatcher(ProformaMatcher):
    """Any open proforma of the same client and company."""

    method = LinkMethod.SAME_PARTY

    def match(
        self, invoice: Invoice, source: ProformaCandidateSource
    ) -> Proforma | None:
        if not invoice.has_party:
            return None
        candidates = source.proformas_for_party(
            invoice.client_id, invoice.company_id
        )
        return most_recent(p for p in candidates if _same_party(invoice, p))


DEFAULT_CASCADE: tuple[ProformaMatcher, ...] = (
    SharedVehicleMatcher(),
    TextualReferenceMatcher(),
    SamePartyMatcher(),
)


class EntityLinker:
    """Runs a matcher cascade; the first step that proposes a proforma wins.

    Usage:
        linker = EntityLinker()
        decision = linker.resolve(invoice, ProformaSelector(session))
    """

    def __init__(self, cascade: Sequence[ProformaMatcher] = DEFAULT_CASCADE):
        self._cascade = tuple(cascade)

    @property
    def cascade(self) -> tuple[ProformaMatcher, ...]:
        return self._cascade

    @traced_engine("entity_linker", "1.0")
    def resolve(
        self, invoice: Invoice, source: ProformaCandidateSource
    ) -> LinkDecision:
        for matcher in self._cascade:
            proforma = matcher.match(invoice, source)
            if proforma is not None:
                logger.debug(
                    "link_candidate_found",
                    extra={
                        "invoice_id": str(invoice.invoice_id),
                        "proforma_id": str(proforma.proforma_id),
                        "method": matcher.method.value,
                    },
                )
                return LinkDecision(invoice.invoice_id, proforma, matcher.method)

        logger.debug(
            "link_candidate_not_found",
            extra={"invoice_id": str(invoice.invoice_id)},
        )
        return LinkDecision(invoice.invoice_id, None, None)
