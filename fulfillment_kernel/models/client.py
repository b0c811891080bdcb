"""
Module: fulfillment_kernel.models.client
Responsibility: ORM persistence for the counterparties documents are issued to.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase


class Client(TrackedBase):
    """Counterparty of a proforma or invoice."""

    __tablename__ = "clients"

    __table_args__ = (
        UniqueConstraint("identification", name="uq_client_identification"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # National id or tax number of the client
    identification: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Client {self.identification}: {self.name}>"
