"""
Module: fulfillment_kernel.models.invoice
Responsibility: ORM persistence for invoices (finalized billing documents).
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - number is unique per company (uq_invoice_company_number).
    - Only invoices with is_active = True and a state other than 'voided'
      count toward proforma coverage or may be linked.  is_active is the
      soft-delete flag; state records a document void.  Other stored
      states (paid, pending, ...) do not affect eligibility.  NULL
      is_active in legacy rows is treated as active by the selectors.
    - proforma_id is the link to the fulfilled proforma.  It is written only
      through DocumentWriter.update_invoice_link (conditional update).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString
from fulfillment_kernel.domain.documents import InvoiceState


class Invoice(TrackedBase):
    """Finalized billing document."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("company_id", "number", name="uq_invoice_company_number"),
        Index("idx_invoice_party", "client_id", "company_id"),
        Index("idx_invoice_proforma", "proforma_id"),
        Index("idx_invoice_active_state", "is_active", "state"),
    )

    number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    issued_on: Mapped[date] = mapped_column(
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_active: Mapped[bool | None] = mapped_column(
        Boolean,
        nullable=True,
        default=True,
    )

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceState.ISSUED.value,
    )

    # Link to the proforma this invoice fulfills
    proforma_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.number} [{self.state}] proforma={self.proforma_id}>"
