"""
DocumentWriter -- the only code path that mutates documents.

Responsibility:
    Applies the two writes the reconciliation engine is allowed to make:
    a proforma's derived status and an invoice's proforma link.  Both are
    conditional UPDATEs guarded by the value the caller last observed
    (optimistic concurrency), so a concurrent change made by another code
    path between read and write is detected instead of overwritten.

Architecture position:
    Kernel > Services.  May import from db/, models/, domain/.

Invariants enforced:
    - UPDATE ... WHERE id = :id AND <column> = :observed.  Zero affected
      rows raise OptimisticLockError; nothing is changed.
    - Every status change appends a ProformaStatusChange row in the same
      transaction (when history recording is enabled).
    - Flush only.  The caller owns the transaction or SAVEPOINT.

Failure modes:
    - OptimisticLockError when the row is gone or its value moved.
    - SQLAlchemyError propagated from the database.
"""

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import ProformaStatus
from fulfillment_kernel.exceptions import OptimisticLockError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.invoice import Invoice
from fulfillment_kernel.models.proforma import Proforma
from fulfillment_kernel.models.status_change import ProformaStatusChange
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.document_writer")


class DocumentWriter(BaseService[Proforma]):
    """Conditional writer for proforma status and invoice links."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        record_history: bool = True,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._record_history = record_history

    def update_proforma_status(
        self,
        proforma_id: UUID,
        expected: ProformaStatus,
        new: ProformaStatus,
        *,
        covered: int,
        total: int,
        pass_id: UUID | None = None,
    ) -> None:
        """Set a proforma's status if it still holds ``expected``.

        Raises:
            OptimisticLockError: the stored status is no longer ``expected``
                or the proforma no longer exists.
        """
        result = self.session.execute(
            update(Proforma)
            .where(Proforma.id == proforma_id)
            .where(Proforma.status == expected.value)
            .values(status=new.value)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise OptimisticLockError(
                "Proforma", proforma_id, "status", expected.value
            )

        if self._record_history:
            self.session.add(
                ProformaStatusChange(
                    proforma_id=proforma_id,
                    previous_status=expected.value,
                    new_status=new.value,
                    covered_vehicles=covered,
                    total_vehicles=total,
                    pass_id=pass_id,
                    recorded_at=self._clock.now(),
                )
            )
        self.session.flush()

        logger.info(
            "proforma_status_changed",
            extra={
                "proforma_id": str(proforma_id),
                "previous_status": expected.value,
                "new_status": new.value,
                "covered_vehicles": covered,
                "total_vehicles": total,
            },
        )

    def update_invoice_link(
        self,
        invoice_id: UUID,
        expected_proforma_id: UUID | None,
        new_proforma_id: UUID | None,
    ) -> None:
        """Point an invoice at a proforma if its link is still as observed.

        Raises:
            OptimisticLockError: the stored link moved or the invoice is gone.
        """
        if expected_proforma_id is None:
            observed = Invoice.proforma_id.is_(None)
        else:
            observed = Invoice.proforma_id == expected_proforma_id

        result = self.session.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id)
            .where(observed)
            .values(proforma_id=new_proforma_id)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise OptimisticLockError(
                "Invoice", invoice_id, "proforma_id", expected_proforma_id
            )
        self.session.flush()

        logger.info(
            "invoice_linked",
            extra={
                "invoice_id": str(invoice_id),
                "previous_proforma_id": (
                    str(expected_proforma_id) if expected_proforma_id else None
                ),
                "proforma_id": str(new_proforma_id) if new_proforma_id else None,
            },
        )
