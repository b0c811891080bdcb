"""
Module: fulfillment_kernel.models.company
Responsibility: ORM persistence for the legal entities that issue proformas
    and invoices.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - tax_id is unique (uq_company_tax_id).
    - Identity is immutable once documents reference it; documents carry the
      company id as a plain column, so deleting a company leaves dangling
      references for the integrity auditor to report.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase


class Company(TrackedBase):
    """Legal entity issuing documents."""

    __tablename__ = "companies"

    __table_args__ = (
        UniqueConstraint("tax_id", name="uq_company_tax_id"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Tax registration number
    tax_id: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Company {self.tax_id}: {self.name}>"
