"""
Document DTOs -- pure, frozen representations of the reconciled records.

Responsibility:
    Typed entities for Company, Client, Vehicle, LineItem, Proforma and
    Invoice, with optional references made explicit.  Selectors build these
    from ORM rows; engines consume them.  No ORM, no I/O.

Architecture position:
    Kernel > Domain -- pure functional core.  MUST NOT import from db/,
    models/, selectors/ or services/.

Invariants enforced:
    - A LineItem's ``vehicle_id`` is optional; lines without one are
      invisible to fulfillment reasoning (``vehicle_ids`` skips them).
    - ``vehicle_ids`` is a frozenset: duplicate lines for one vehicle
      collapse to a single identity.
    - Terminal proforma statuses (voided, cancelled) encode a human
      decision and are exposed through ``ProformaStatus.is_terminal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ProformaStatus(str, Enum):
    """Lifecycle status of a proforma.

    PENDING / PARTIALLY_FULFILLED / FULFILLED are derived from vehicle
    coverage and move freely in both directions.  VOIDED and CANCELLED are
    terminal and never recomputed.
    """

    PENDING = "pending"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    VOIDED = "voided"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PROFORMA_STATUSES


TERMINAL_PROFORMA_STATUSES: frozenset[ProformaStatus] = frozenset({
    ProformaStatus.VOIDED,
    ProformaStatus.CANCELLED,
})

DERIVED_PROFORMA_STATUSES: frozenset[ProformaStatus] = frozenset({
    ProformaStatus.PENDING,
    ProformaStatus.PARTIALLY_FULFILLED,
    ProformaStatus.FULFILLED,
})


class InvoiceState(str, Enum):
    """Document state of an invoice (independent of the ``is_active`` flag).

    Only VOIDED affects reconciliation.  Stored states the engine does not
    name (paid, pending and so on in legacy rows) load as OTHER.
    """

    ISSUED = "issued"
    VOIDED = "voided"
    OTHER = "other"

    @classmethod
    def from_stored(cls, value: str | None) -> InvoiceState:
        if value == cls.VOIDED.value:
            return cls.VOIDED
        if value == cls.ISSUED.value:
            return cls.ISSUED
        return cls.OTHER


@dataclass(frozen=True)
class Company:
    """Legal entity issuing documents."""

    company_id: UUID
    name: str
    tax_id: str


@dataclass(frozen=True)
class Client:
    """Counterparty of a document."""

    client_id: UUID
    name: str
    identification: str


@dataclass(frozen=True)
class Vehicle:
    """A single inventory unit, identified by its plate."""

    vehicle_id: UUID
    plate: str
    model: str | None = None


@dataclass(frozen=True)
class LineItem:
    """One line of a proforma or an invoice."""

    line_id: UUID
    position: int
    quantity: Decimal
    unit_price: Decimal
    description: str | None = None
    vehicle_id: UUID | None = None

    @property
    def has_vehicle(self) -> bool:
        return self.vehicle_id is not None


def _vehicle_ids(lines: tuple[LineItem, ...]) -> frozenset[UUID]:
    return frozenset(
        line.vehicle_id for line in lines if line.vehicle_id is not None
    )


@dataclass(frozen=True)
class Proforma:
    """Preliminary multi-line quotation."""

    proforma_id: UUID
    number: str
    company_id: UUID | None
    client_id: UUID | None
    issued_on: date
    status: ProformaStatus
    notes: str | None = None
    lines: tuple[LineItem, ...] = ()

    @property
    def vehicle_ids(self) -> frozenset[UUID]:
        """Distinct vehicles listed on vehicle-bearing lines."""
        return _vehicle_ids(self.lines)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def recency_key(self) -> tuple[int, str]:
        """Sort key: most recently issued first, then lowest id.

        Sorting ascending by this key yields the deterministic
        "latest issue date, lowest identifier" order.
        """
        return (-self.issued_on.toordinal(), str(self.proforma_id))


@dataclass(frozen=True)
class Invoice:
    """Finalized billing document."""

    invoice_id: UUID
    number: str
    company_id: UUID | None
    client_id: UUID | None
    issued_on: date
    is_active: bool
    state: InvoiceState
    notes: str | None = None
    proforma_id: UUID | None = None
    lines: tuple[LineItem, ...] = ()

    @property
    def vehicle_ids(self) -> frozenset[UUID]:
        return _vehicle_ids(self.lines)

    @property
    def is_voided(self) -> bool:
        return self.state == InvoiceState.VOIDED

    @property
    def is_eligible(self) -> bool:
        """Active and not voided: counts toward coverage and may be linked."""
        return self.is_active and not self.is_voided

    @property
    def has_party(self) -> bool:
        """Both a client and a company are known."""
        return self.client_id is not None and self.company_id is not None
