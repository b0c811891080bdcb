"""
Module: fulfillment_kernel.models.line_item
Responsibility: ORM persistence for the lines of proformas and invoices.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - A line belongs to exactly one parent document: either proforma_id or
      invoice_id is set, never both.  This is not a database constraint
      because lines are written by several uncoordinated import paths; the
      integrity auditor reports lines that violate it.
    - vehicle_id is optional.  Lines without a vehicle (services, fees) are
      ignored by fulfillment reasoning.
    - quantity and unit_price are Decimal, never float.

Failure modes:
    - A line whose parent row no longer exists is an integrity anomaly
      (LINE_ITEM_ORPHANED_PROFORMA / LINE_ITEM_ORPHANED_INVOICE).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class LineItem(TrackedBase):
    """One line of a proforma or an invoice."""

    __tablename__ = "line_items"

    __table_args__ = (
        Index("idx_line_item_proforma", "proforma_id"),
        Index("idx_line_item_invoice", "invoice_id"),
        Index("idx_line_item_vehicle", "vehicle_id"),
    )

    # Parent documents (exactly one expected)
    proforma_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # 1-based position within the parent document
    position: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    quantity: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("1"),
    )

    unit_price: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    vehicle_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    @property
    def parent_kind(self) -> str | None:
        """'proforma', 'invoice', or None when the parent is ambiguous."""
        if self.proforma_id is not None and self.invoice_id is None:
            return "proforma"
        if self.invoice_id is not None and self.proforma_id is None:
            return "invoice"
        return None

    def __repr__(self) -> str:
        parent = self.proforma_id or self.invoice_id
        return f"<LineItem {parent}#{self.position} vehicle={self.vehicle_id}>"
