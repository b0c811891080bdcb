"""
Module: fulfillment_kernel.models.status_change
Responsibility: Append-only history of proforma status changes made by the
    reconciliation engine, with the coverage counts that justified them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are only ever inserted, by DocumentWriter in the same SAVEPOINT as
      the status update they describe.  A rolled-back update leaves no
      history row behind.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


class ProformaStatusChange(Base):
    """One status transition of one proforma."""

    __tablename__ = "proforma_status_changes"

    __table_args__ = (
        Index("idx_status_change_proforma", "proforma_id", "recorded_at"),
        Index("idx_status_change_pass", "pass_id"),
    )

    proforma_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    previous_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    new_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    covered_vehicles: Mapped[int] = mapped_column(nullable=False)

    total_vehicles: Mapped[int] = mapped_column(nullable=False)

    # Reconciliation pass that made the change, if any
    pass_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ProformaStatusChange {self.proforma_id}: "
            f"{self.previous_status} -> {self.new_status}>"
        )
