"""Read-only selectors returning frozen document DTOs."""

from fulfillment_kernel.selectors.integrity_selector import (
    DanglingReferences,
    IntegritySelector,
)
from fulfillment_kernel.selectors.invoice_selector import InvoiceSelector
from fulfillment_kernel.selectors.proforma_selector import ProformaSelector

__all__ = [
    "DanglingReferences",
    "IntegritySelector",
    "InvoiceSelector",
    "ProformaSelector",
]
