"""ORM models for the fulfillment kernel."""

from fulfillment_kernel.models.client import Client
from fulfillment_kernel.models.company import Company
from fulfillment_kernel.models.invoice import Invoice
from fulfillment_kernel.models.line_item import LineItem
from fulfillment_kernel.models.proforma import Proforma
from fulfillment_kernel.models.status_change import ProformaStatusChange
from fulfillment_kernel.models.vehicle import Vehicle

__all__ = [
    "Client",
    "Company",
    "Invoice",
    "LineItem",
    "Proforma",
    "ProformaStatusChange",
    "Vehicle",
]
