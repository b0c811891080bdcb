"""
Module: fulfillment_kernel.models.proforma
Responsibility: ORM persistence for proformas (preliminary quotations).
Architecture position: Kernel > Models.  May import from db/base.py and domain/.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - number is unique per company (uq_proforma_company_number).
    - status is derived for pending / partially_fulfilled / fulfilled and is
      only ever written through DocumentWriter.update_proforma_status, which
      conditions the UPDATE on the previously observed value.
    - voided and cancelled are terminal: set by people, never recomputed.
    - company_id / client_id are plain indexed columns; dangling values are
      representable and reported by the integrity auditor.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString
from fulfillment_kernel.domain.documents import ProformaStatus


class Proforma(TrackedBase):
    """Preliminary multi-line quotation issued by a company to a client."""

    __tablename__ = "proformas"

    __table_args__ = (
        UniqueConstraint("company_id", "number", name="uq_proforma_company_number"),
        Index("idx_proforma_party", "client_id", "company_id"),
        Index("idx_proforma_status", "status"),
        Index("idx_proforma_issued_on", "issued_on"),
    )

    # Human-readable reference, e.g. "PRO-2024-0012"
    number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    issued_on: Mapped[date] = mapped_column(
        nullable=False,
    )

    valid_until: Mapped[date | None] = mapped_column(
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ProformaStatus.PENDING.value,
    )

    def __repr__(self) -> str:
        return f"<Proforma {self.number} [{self.status}]>"
