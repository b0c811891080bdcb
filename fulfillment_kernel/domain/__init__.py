"""
Pure domain layer.

Frozen document DTOs, status enums and the injectable clock.  No ORM,
no database, no I/O (SystemClock aside).
"""

from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.documents import (
    DERIVED_PROFORMA_STATUSES,
    TERMINAL_PROFORMA_STATUSES,
    Client,
    Company,
    Invoice,
    InvoiceState,
    LineItem,
    Proforma,
    ProformaStatus,
    Vehicle,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Client",
    "Company",
    "Invoice",
    "InvoiceState",
    "LineItem",
    "Proforma",
    "ProformaStatus",
    "Vehicle",
    "DERIVED_PROFORMA_STATUSES",
    "TERMINAL_PROFORMA_STATUSES",
]
