"""
Fulfillment Kernel

Persistence and domain core for proforma fulfillment reconciliation:
- Document models with explicit optional references
- Read-only selectors returning frozen DTOs
- Conditional (optimistic) writes with status history
- Structured JSON logging and typed errors
"""

__version__ = "0.1.0"
