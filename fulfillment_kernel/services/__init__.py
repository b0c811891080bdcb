"""Kernel write-side services."""

from fulfillment_kernel.services.document_writer import DocumentWriter

__all__ = ["DocumentWriter"]
