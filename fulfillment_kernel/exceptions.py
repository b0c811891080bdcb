"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A reconciliation pass records per-entity failures in its report and keeps
going.  Callers (the driver, CLIs, an HTTP trigger) must be able to tell a
lost optimistic-lock race from an ineligible invoice without parsing
message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, report-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentError (base)
    |
    +-- DocumentError
    |   +-- ProformaNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceNotEligibleError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Document        | PROFORMA_NOT_FOUND          | Proforma id doesn't resolve
                | INVOICE_NOT_FOUND           | Invoice id doesn't resolve
                | INVOICE_NOT_ELIGIBLE        | Linking a voided / inactive invoice
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Stored value changed since it was read
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Settings file or value is invalid

Integrity anomalies (dangling references) are NEVER raised.  They are only
surfaced through the integrity audit report.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        writer.update_proforma_status(proforma_id, expected, new)
    except OptimisticLockError as e:
        # Another pass (or a human) changed the row first.  Harmless:
        # the next pass recomputes from current data.
        report_failure(code=e.code, entity_id=e.entity_id)
"""


class FulfillmentError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_ERROR"


# Document-related exceptions


class DocumentError(FulfillmentError):
    """Base exception for proforma / invoice lookup and eligibility errors."""

    code: str = "DOCUMENT_ERROR"


class ProformaNotFoundError(DocumentError):
    """Proforma does not exist."""

    code: str = "PROFORMA_NOT_FOUND"

    def __init__(self, proforma_id: str):
        self.proforma_id = proforma_id
        super().__init__(f"Proforma not found: {proforma_id}")


class InvoiceNotFoundError(DocumentError):
    """Invoice does not exist."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvoiceNotEligibleError(DocumentError):
    """Only active, non-voided invoices can be linked to a proforma."""

    code: str = "INVOICE_NOT_ELIGIBLE"

    def __init__(self, invoice_id: str, reason: str):
        self.invoice_id = invoice_id
        self.reason = reason
        super().__init__(
            f"Invoice {invoice_id} is not eligible for linking: {reason}"
        )


# Concurrency-related exceptions


class ConcurrencyError(FulfillmentError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Conditional write matched no row: the stored value moved on."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, field_name: str, expected: str | None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.field_name = field_name
        self.expected = expected
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"{field_name} is no longer {expected!r}"
        )


# Configuration exceptions


class ConfigurationError(FulfillmentError):
    """Settings could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting '{setting}': {reason}")
