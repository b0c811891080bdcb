"""
Tests for ReconciliationService -- the reconciliation pass driver.

Covers linking plus classification end to end, idempotence, reversible
status transitions, exclusions, stale links, per-entity failure isolation,
status history, dry runs, targeted passes and cancellation.

Uses the standard session fixture with automatic rollback.
"""

import threading
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from fulfillment_kernel.domain.documents import ProformaStatus
from fulfillment_kernel.exceptions import InvoiceNotFoundError, OptimisticLockError
from fulfillment_kernel.models import ProformaStatusChange
from fulfillment_kernel.services.document_writer import DocumentWriter
from fulfillment_engines.fulfillment import FulfillmentExclusion
from fulfillment_engines.linking import LinkMethod
from fulfillment_services.reconciliation_service import ReconciliationService


# =============================================================================
# Helpers
# =============================================================================


def _status(session, proforma) -> str:
    session.refresh(proforma)
    return proforma.status


def _link(session, invoice):
    session.refresh(invoice)
    return invoice.proforma_id


class FlakyWriter(DocumentWriter):
    """Writes, then fails, for selected proformas."""

    def __init__(self, session, fail_for, error):
        super().__init__(session)
        self.fail_for = set(fail_for)
        self.error = error

    def update_proforma_status(self, proforma_id, *args, **kwargs):
        super().update_proforma_status(proforma_id, *args, **kwargs)
        if proforma_id in self.fail_for:
            raise self.error


class StoppingWriter(DocumentWriter):
    """Sets the stop event as soon as the first link is written."""

    def __init__(self, session, stop_event):
        super().__init__(session)
        self.stop_event = stop_event

    def update_invoice_link(self, *args, **kwargs):
        super().update_invoice_link(*args, **kwargs)
        self.stop_event.set()


@pytest.fixture
def service(session, deterministic_clock):
    return ReconciliationService(session, clock=deterministic_clock)


# =============================================================================
# Full pass
# =============================================================================


class TestFullPass:
    def test_links_invoice_and_classifies_proforma(self, session, docs, party, service):
        company, client = party
        v1, v2, v3 = docs.vehicles(3)
        proforma = docs.proforma(company, client, [v1, v2, v3])
        invoice = docs.invoice(company, client, [v1, v2])

        report = service.run()

        assert _link(session, invoice) == proforma.id
        assert _status(session, proforma) == ProformaStatus.PARTIALLY_FULFILLED.value
        assert report.links_created == 1
        assert report.statuses_changed == 1
        assert report.failure_count == 0
        outcome = report.invoice(invoice.id)
        assert outcome.method == LinkMethod.SHARED_VEHICLE
        assert not outcome.had_link
        result = report.proforma(proforma.id)
        assert (result.before_status, result.after_status) == (
            ProformaStatus.PENDING,
            ProformaStatus.PARTIALLY_FULFILLED,
        )
        assert (result.covered, result.total) == (2, 3)

    def test_status_moves_both_ways(self, session, docs, party, service):
        """{V1,V2,V3}: invoice V1+V2, then V3, then void the first."""
        company, client = party
        v1, v2, v3 = docs.vehicles(3)
        proforma = docs.proforma(company, client, [v1, v2, v3])

        first = docs.invoice(company, client, [v1, v2])
        service.run()
        assert _status(session, proforma) == ProformaStatus.PARTIALLY_FULFILLED.value

        docs.invoice(company, client, [v3])
        service.run()
        assert _status(session, proforma) == ProformaStatus.FULFILLED.value

        first.state = "voided"
        session.flush()
        report = service.run()
        assert _status(session, proforma) == ProformaStatus.PARTIALLY_FULFILLED.value
        assert report.proforma(proforma.id).before_status == ProformaStatus.FULFILLED

    def test_zero_coverage_resets_to_pending(self, session, docs, party, service):
        company, client = party
        proforma = docs.proforma(company, client, docs.vehicles(2), status="fulfilled")

        service.run()

        assert _status(session, proforma) == ProformaStatus.PENDING.value

    def test_inactive_invoice_does_not_cover(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        invoice = docs.invoice(company, client, [v1], is_active=False)

        report = service.run()

        assert _status(session, proforma) == ProformaStatus.PENDING.value
        assert _link(session, invoice) is None
        assert report.invoice(invoice.id) is None

    def test_null_active_flag_counts_as_active(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1], is_active=None)

        service.run()

        assert _status(session, proforma) == ProformaStatus.FULFILLED.value

    @pytest.mark.parametrize("state", ["paid", "pendiente"])
    def test_invoice_in_other_state_links_and_covers(
        self, session, docs, party, service, state
    ):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        invoice = docs.invoice(company, client, [v1], state=state)

        report = service.run()

        assert report.failure_count == 0
        assert _link(session, invoice) == proforma.id
        assert _status(session, proforma) == ProformaStatus.FULFILLED.value

    def test_invoice_state_changed_to_paid_mid_life(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        invoice = docs.invoice(company, client, [v1])
        service.run()

        invoice.state = "paid"
        session.flush()
        report = service.run()

        assert not report.cancelled
        assert _status(session, proforma) == ProformaStatus.FULFILLED.value

    def test_coverage_ignores_which_proforma_an_invoice_is_linked_to(
        self, session, docs, party, service
    ):
        company, client = party
        other_client = docs.client()
        v1 = docs.vehicle()
        mine = docs.proforma(company, client, [v1])
        theirs = docs.proforma(company, other_client, [v1])
        docs.invoice(company, client, [v1], proforma=mine)

        service.run()

        assert _status(session, mine) == ProformaStatus.FULFILLED.value
        assert _status(session, theirs) == ProformaStatus.FULFILLED.value

    def test_link_work_precedes_classification(self, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1])

        report = service.run()

        assert len(report.invoices) == 1
        assert len(report.proformas) == 1

    def test_report_to_dict(self, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1])

        data = service.run().to_dict()

        assert data["dry_run"] is False
        assert data["links_created"] == 1
        assert data["statuses_changed"] == 1
        assert data["proformas"][0]["proforma_id"] == str(proforma.id)
        assert data["proformas"][0]["after_status"] == "fulfilled"
        assert data["failures"] == []
        assert data["pass_id"] is not None

    def test_logs_pass_lifecycle(self, docs, party, service, captured_logs):
        company, client = party
        docs.proforma(company, client, docs.vehicles(1))

        report = service.run()

        logs = captured_logs()
        started = [r for r in logs if r["message"] == "reconciliation_started"]
        completed = [r for r in logs if r["message"] == "reconciliation_completed"]
        assert len(started) == 1 and len(completed) == 1
        assert completed[0]["pass_id"] == str(report.pass_id)
        assert completed[0]["statuses_changed"] == 0


# =============================================================================
# Idempotence
# =============================================================================


class TestIdempotence:
    def test_second_pass_changes_nothing(self, session, docs, party, service):
        company, client = party
        v1, v2 = docs.vehicles(2)
        docs.proforma(company, client, [v1, v2])
        docs.proforma(company, client, [docs.vehicle()], status="fulfilled")
        docs.invoice(company, client, [v1])
        docs.invoice(company, client, [], notes="no vehicles here")

        first = service.run()
        second = service.run()
        third = service.run()

        assert first.statuses_changed == 2
        assert second.statuses_changed == 0
        assert second.links_created == 0
        assert second.links_replaced == 0
        assert second == third
        assert second.pass_id != third.pass_id

    def test_second_pass_writes_no_history(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1])

        service.run()
        service.run()

        changes = session.scalars(select(ProformaStatusChange)).all()
        assert len(changes) == 1


# =============================================================================
# Exclusions
# =============================================================================


class TestExclusions:
    def test_vehicle_less_proforma_keeps_status(self, session, docs, party, service):
        company, client = party
        proforma = docs.proforma(
            company, client, [], status="partially_fulfilled", extra_lines=2
        )
        docs.invoice(company, client, docs.vehicles(1))

        report = service.run()

        assert _status(session, proforma) == ProformaStatus.PARTIALLY_FULFILLED.value
        result = report.proforma(proforma.id)
        assert result.exclusion == FulfillmentExclusion.NO_VEHICLES
        assert not result.changed

    @pytest.mark.parametrize("status", ["voided", "cancelled"])
    def test_terminal_proforma_untouched(self, session, docs, party, service, status):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1], status=status)
        invoice = docs.invoice(company, client, [v1])

        report = service.run()

        assert _status(session, proforma) == status
        assert report.proforma(proforma.id) is None
        assert _link(session, invoice) is None


# =============================================================================
# Link maintenance
# =============================================================================


class TestLinkMaintenance:
    def test_valid_link_is_not_overwritten(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        chosen = docs.proforma(company, client, [docs.vehicle()], issued_on=date(2025, 1, 1))
        docs.proforma(company, client, [v1], issued_on=date(2025, 2, 1))
        invoice = docs.invoice(company, client, [v1], proforma=chosen)

        report = service.run()

        assert _link(session, invoice) == chosen.id
        assert report.invoice(invoice.id) is None

    def test_stale_link_to_terminal_proforma_is_replaced(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        cancelled = docs.proforma(company, client, [v1], status="cancelled")
        replacement = docs.proforma(company, client, [v1])
        invoice = docs.invoice(company, client, [v1], proforma=cancelled)

        report = service.run()

        assert _link(session, invoice) == replacement.id
        assert report.links_replaced == 1
        assert report.links_created == 0

    def test_stale_link_without_candidate_is_left_alone(self, session, docs, party, service):
        company, client = party
        missing = docs.proforma(company, client, [])
        missing_id = missing.id
        session.delete(missing)
        session.flush()
        invoice = docs.invoice(docs.company(), docs.client(), [], proforma_id=missing_id)

        first = service.run()
        second = service.run()

        assert _link(session, invoice) == missing_id
        outcome = first.invoice(invoice.id)
        assert outcome.method is None
        assert not outcome.changed
        assert first == second

    def test_unmatched_invoice_stays_unlinked(self, session, docs, party, service):
        company, client = party
        invoice = docs.invoice(company, client, docs.vehicles(1))

        report = service.run()

        assert _link(session, invoice) is None
        assert report.invoice(invoice.id).new_link is None
        assert report.failure_count == 0


# =============================================================================
# Failure isolation
# =============================================================================


class TestFailureIsolation:
    def test_data_access_error_rolls_back_only_that_proforma(
        self, session, docs, party, deterministic_clock
    ):
        company, client = party
        proformas = []
        for _ in range(3):
            v = docs.vehicle()
            proformas.append(docs.proforma(company, client, [v]))
            docs.invoice(company, client, [v], proforma=proformas[-1])
        broken = proformas[1]
        writer = FlakyWriter(
            session,
            fail_for=[broken.id],
            error=OperationalError("UPDATE proformas", {}, Exception("connection reset")),
        )
        service = ReconciliationService(session, clock=deterministic_clock, writer=writer)

        report = service.run()

        assert _status(session, proformas[0]) == ProformaStatus.FULFILLED.value
        assert _status(session, broken) == ProformaStatus.PENDING.value
        assert _status(session, proformas[2]) == ProformaStatus.FULFILLED.value
        assert report.failure_count == 1
        failure = report.failures[0]
        assert failure.entity_type == "proforma"
        assert failure.entity_id == broken.id
        assert failure.error_code == "DATA_ACCESS_ERROR"
        history = session.scalars(
            select(ProformaStatusChange).where(ProformaStatusChange.proforma_id == broken.id)
        ).all()
        assert history == []

    def test_optimistic_lock_conflict_is_recorded(
        self, session, docs, party, deterministic_clock
    ):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1], proforma=proforma)
        writer = FlakyWriter(
            session,
            fail_for=[proforma.id],
            error=OptimisticLockError("Proforma", str(proforma.id), "status", "pending"),
        )
        service = ReconciliationService(session, clock=deterministic_clock, writer=writer)

        report = service.run()

        assert report.failures[0].error_code == "OPTIMISTIC_LOCK_CONFLICT"
        assert _status(session, proforma) == ProformaStatus.PENDING.value

    def test_failed_pass_logs_entity_failure(
        self, session, docs, party, deterministic_clock, captured_logs
    ):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1], proforma=proforma)
        writer = FlakyWriter(
            session,
            fail_for=[proforma.id],
            error=OptimisticLockError("Proforma", str(proforma.id), "status", "pending"),
        )

        ReconciliationService(session, clock=deterministic_clock, writer=writer).run()

        failed = [r for r in captured_logs() if r["message"] == "entity_failed"]
        assert len(failed) == 1
        assert failed[0]["entity_id"] == str(proforma.id)
        assert failed[0]["exc_code"] == "OPTIMISTIC_LOCK_CONFLICT"

    def test_unexpected_error_rolls_back_entity_and_propagates(
        self, session, docs, party, deterministic_clock, captured_logs
    ):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1], proforma=proforma)
        writer = FlakyWriter(
            session, fail_for=[proforma.id], error=RuntimeError("unexpected")
        )
        service = ReconciliationService(session, clock=deterministic_clock, writer=writer)

        with pytest.raises(RuntimeError):
            service.run()

        assert _status(session, proforma) == ProformaStatus.PENDING.value
        assert session.scalars(select(ProformaStatusChange)).all() == []
        assert any(r["message"] == "entity_aborted" for r in captured_logs())


# =============================================================================
# Status history
# =============================================================================


class TestStatusHistory:
    def test_history_row_per_change(self, session, docs, party, service, deterministic_clock):
        company, client = party
        v1, v2 = docs.vehicles(2)
        proforma = docs.proforma(company, client, [v1, v2])
        docs.invoice(company, client, [v1])

        report = service.run()

        change = session.scalars(select(ProformaStatusChange)).one()
        assert change.proforma_id == proforma.id
        assert change.previous_status == "pending"
        assert change.new_status == "partially_fulfilled"
        assert (change.covered_vehicles, change.total_vehicles) == (1, 2)
        assert change.pass_id == report.pass_id

    def test_history_can_be_disabled(self, session, docs, party, deterministic_clock):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1])

        ReconciliationService(
            session, clock=deterministic_clock, record_history=False
        ).run()

        assert _status(session, proforma) == ProformaStatus.FULFILLED.value
        assert session.scalars(select(ProformaStatusChange)).all() == []


# =============================================================================
# Dry run
# =============================================================================


class TestPreview:
    def test_preview_reports_without_writing(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        invoice = docs.invoice(company, client, [v1])

        preview = service.preview()

        assert preview.dry_run
        assert preview.links_created == 1
        assert preview.statuses_changed == 1
        assert _status(session, proforma) == ProformaStatus.PENDING.value
        assert _link(session, invoice) is None
        assert session.scalars(select(ProformaStatusChange)).all() == []

    def test_preview_matches_real_pass(self, docs, party, service):
        company, client = party
        v1, v2 = docs.vehicles(2)
        docs.proforma(company, client, [v1, v2])
        docs.invoice(company, client, [v2])

        preview = service.preview()
        real = service.run()

        assert preview.invoices == real.invoices
        assert preview.proformas == real.proformas


# =============================================================================
# Targeted reconciliation
# =============================================================================


class TestReconcileInvoice:
    def test_only_touches_proformas_sharing_vehicles(self, session, docs, party, service):
        company, client = party
        v1, v2 = docs.vehicles(2)
        related = docs.proforma(company, client, [v1])
        unrelated = docs.proforma(company, client, [v2], status="fulfilled")
        invoice = docs.invoice(company, client, [v1])

        report = service.reconcile_invoice(invoice.id)

        assert _link(session, invoice) == related.id
        assert _status(session, related) == ProformaStatus.FULFILLED.value
        assert _status(session, unrelated) == "fulfilled"
        assert [p.proforma_id for p in report.proformas] == [related.id]

    def test_voided_invoice_regresses_without_linking(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1], status="fulfilled")
        invoice = docs.invoice(company, client, [v1], state="voided")

        report = service.reconcile_invoice(invoice.id)

        assert report.invoices == ()
        assert _link(session, invoice) is None
        assert _status(session, proforma) == ProformaStatus.PENDING.value

    def test_unknown_invoice_raises(self, service):
        from uuid import uuid4

        with pytest.raises(InvoiceNotFoundError):
            service.reconcile_invoice(uuid4())


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    def test_preset_stop_event_processes_nothing(self, session, docs, party, service):
        company, client = party
        v1 = docs.vehicle()
        proforma = docs.proforma(company, client, [v1])
        docs.invoice(company, client, [v1])
        stop = threading.Event()
        stop.set()

        report = service.run(stop_event=stop)

        assert report.cancelled
        assert report.invoices == ()
        assert report.proformas == ()
        assert _status(session, proforma) == ProformaStatus.PENDING.value

    def test_stops_between_entities(self, session, docs, party, deterministic_clock):
        company, client = party
        v1, v2 = docs.vehicles(2)
        docs.proforma(company, client, [v1, v2])
        first = docs.invoice(company, client, [v1], issued_on=date(2025, 2, 1))
        second = docs.invoice(company, client, [v2], issued_on=date(2025, 2, 2))
        stop = threading.Event()
        writer = StoppingWriter(session, stop)
        service = ReconciliationService(session, clock=deterministic_clock, writer=writer)

        report = service.run(stop_event=stop)

        assert report.cancelled
        assert [o.invoice_id for o in report.invoices] == [first.id]
        assert _link(session, first) is not None
        assert _link(session, second) is None
        assert report.proformas == ()
