"""
Module: fulfillment_kernel.models.vehicle
Responsibility: ORM persistence for inventory units.  A vehicle is the unit
    of fulfillment: proforma coverage is counted in distinct vehicles.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - plate is unique (uq_vehicle_plate).
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase


class Vehicle(TrackedBase):
    """A single vehicle in inventory, identified by its plate."""

    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("plate", name="uq_vehicle_plate"),
        Index("idx_vehicle_chassis", "chassis"),
    )

    plate: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    chassis: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    model: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    color: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    mileage_km: Mapped[int | None] = mapped_column(
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Vehicle {self.plate}>"
