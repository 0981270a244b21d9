"""
Unit tests for ImportService.

Exercises the batch workflow end to end against the in-memory record store.

Run: pytest tests/unit/test_import_service.py -v
"""

from decimal import Decimal
from threading import Event
import pytest

from exceptions import (
    BatchAlreadyUploadedError,
    BatchCommitInProgressError,
    BatchNotDeletableError,
    BatchNotFoundError,
    BatchNotPreviewedError,
    BatchNotRevertibleError,
    BatchNotUploadedError,
    DuplicateSourceFieldError,
    ImportParseError,
)
from models.import_batch import BatchCreate, BatchStatus, FieldMappingInput, MergeStrategy, SourceFormat
from models.preview import CommitStatus, PreviewAction, Resolution
from models.validation import ErrorSeverity, RuleType, ValidationRule
from tests.factories import INVOICE_MAPPINGS, InvoiceRowFactory, RecordFactory

COLLECTION = "ap/invoice"


def new_batch(service, strategy=MergeStrategy.APPEND, keys=("invoiceNumber",), **overrides):
    data = {
        "name": "AP invoices",
        "source_format": SourceFormat.CSV,
        "collection": COLLECTION,
        "merge_strategy": strategy,
        "composite_keys": list(keys),
        **overrides,
    }
    return service.create_batch(BatchCreate(**data))


def invoice_mappings():
    return [FieldMappingInput(**m) for m in INVOICE_MAPPINGS]


def staged(service, content, strategy=MergeStrategy.APPEND, rules=None):
    """Create, upload, map and (optionally) validate a batch."""
    batch = new_batch(service, strategy)
    service.upload_data(batch.id, content)
    service.save_field_mappings(batch.id, invoice_mappings())
    if rules:
        service.validate_rows(batch.id, rules)
    return batch


# ===================
# BATCH LIFECYCLE TESTS
# ===================

class TestCreateAndUpload:
    def test_create_batch(self, service):
        batch = new_batch(service)

        assert batch.status == BatchStatus.CREATED
        assert batch.raw_data == []
        assert service.get_batch(batch.id).name == "AP invoices"

    def test_unknown_batch(self, service):
        with pytest.raises(BatchNotFoundError):
            service.get_batch("nope")

    def test_upload_parses_rows(self, service, invoice_csv):
        batch = new_batch(service)
        uploaded = service.upload_data(batch.id, invoice_csv)

        assert uploaded.status == BatchStatus.UPLOADED
        assert uploaded.total_rows == 3
        assert uploaded.raw_data[0]["Invoice Number"] == "INV-001"
        assert uploaded.headers == ["Invoice Number", "Invoice Date", "Vendor", "Amount"]
        assert uploaded.uploaded_at is not None

    def test_upload_twice_rejected(self, service, invoice_csv):
        batch = new_batch(service)
        service.upload_data(batch.id, invoice_csv)

        with pytest.raises(BatchAlreadyUploadedError):
            service.upload_data(batch.id, "Invoice Number\nINV-999\n")

        assert service.get_batch(batch.id).raw_data[0]["Invoice Number"] == "INV-001"

    def test_upload_malformed_json(self, service):
        batch = new_batch(service, source_format=SourceFormat.JSON)

        with pytest.raises(ImportParseError):
            service.upload_data(batch.id, "[{")
        assert service.get_batch(batch.id).status == BatchStatus.CREATED

    def test_upload_uses_batch_delimiter(self, service):
        batch = new_batch(service, delimiter="|")
        uploaded = service.upload_data(batch.id, "a|b\n1,5|2\n")

        assert uploaded.raw_data == [{"a": "1,5", "b": "2"}]

    def test_stages_need_upload(self, service):
        batch = new_batch(service)

        with pytest.raises(BatchNotUploadedError):
            service.validate_rows(batch.id, [])
        with pytest.raises(BatchNotUploadedError):
            service.preview(batch.id)


class TestDetectAndMatch:
    def test_detect_format_stateless(self, service):
        result = service.detect_format("!TRNS\tTRNSTYPE\tDATE\tAMOUNT\nTRNS\tBILL\t01/15/2024\t10\n")
        assert result.format == SourceFormat.IIF
        assert result.confidence >= 0.8

    def test_detect_batch_is_advisory(self, service):
        batch = new_batch(service)
        service.upload_data(batch.id, "a\tb\n1\t2\n")

        detection = service.detect_batch(batch.id, filename="export.txt")
        stored = service.get_batch(batch.id)

        assert detection.format == SourceFormat.TSV
        assert stored.detection == detection
        assert stored.source_format == SourceFormat.CSV
        assert stored.status == BatchStatus.DETECTED

    def test_auto_match_batch(self, service, invoice_csv):
        batch = new_batch(service)
        service.upload_data(batch.id, invoice_csv)

        results = service.auto_match_batch(batch.id, ["invoiceNumber", "invoiceDate", "vendorName", "amount"])
        by_source = {r.source_field: r for r in results}

        assert by_source["Invoice Number"].target_field == "invoiceNumber"
        assert by_source["Invoice Date"].target_field == "invoiceDate"
        assert by_source["Amount"].target_field == "amount"
        assert by_source["Invoice Date"].transform == "date"
        assert by_source["Amount"].transform == "number"


class TestFieldMappings:
    def test_save_and_get(self, service, invoice_csv):
        batch = new_batch(service)
        service.upload_data(batch.id, invoice_csv)
        saved = service.save_field_mappings(batch.id, invoice_mappings())

        assert [m.position for m in saved] == [0, 1, 2, 3]
        assert service.get_field_mappings(batch.id) == saved
        assert service.get_batch(batch.id).status == BatchStatus.MAPPED

    def test_save_replaces(self, service):
        batch = new_batch(service)
        service.save_field_mappings(batch.id, invoice_mappings())
        service.save_field_mappings(batch.id, [FieldMappingInput(source_field="Vendor", target_field="vendorName")])

        assert [m.source_field for m in service.get_field_mappings(batch.id)] == ["Vendor"]

    def test_duplicate_source_rejected(self, service):
        batch = new_batch(service)
        duplicate = [
            FieldMappingInput(source_field="Vendor", target_field="vendorName"),
            FieldMappingInput(source_field="Vendor", target_field="name"),
        ]
        with pytest.raises(DuplicateSourceFieldError):
            service.save_field_mappings(batch.id, duplicate)


# ===================
# VALIDATION TESTS
# ===================

class TestValidateRows:
    def test_findings_persisted(self, service, invoice_csv):
        content = invoice_csv + ",01/18/2024,Acme Supply,abc\n"
        batch = new_batch(service)
        service.upload_data(batch.id, content)
        service.save_field_mappings(batch.id, invoice_mappings())

        summary = service.validate_rows(batch.id, [
            ValidationRule(field="invoiceNumber", type=RuleType.REQUIRED),
            ValidationRule(field="amount", type=RuleType.NUMERIC, severity=ErrorSeverity.WARNING),
        ])

        assert summary.valid is False
        assert summary.error_count == 1
        assert summary.warning_count == 1
        assert len(service.get_import_errors(batch.id)) == 2
        warnings = service.get_import_errors(batch.id, ErrorSeverity.WARNING)
        assert [w.field for w in warnings] == ["amount"]
        assert warnings[0].row_number == 4

    def test_revalidation_replaces_findings(self, service, invoice_csv):
        batch = staged(service, invoice_csv + ",01/18/2024,Acme Supply,5\n",
                       rules=[ValidationRule(field="invoiceNumber", type="required")])
        assert len(service.get_import_errors(batch.id)) == 1

        service.validate_rows(batch.id, [])
        assert service.get_import_errors(batch.id) == []

    def test_raw_data_unchanged(self, service, invoice_csv):
        batch = staged(service, invoice_csv, rules=[ValidationRule(field="amount", type="numeric")])
        assert service.get_batch(batch.id).raw_data[0]["Amount"] == "100.00"


# ===================
# PREVIEW / COMMIT SCENARIOS
# ===================

class TestCommitScenarios:
    """Full workflow scenarios."""

    def test_skip_strategy_existing_record(self, service, record_store):
        record_store.seed(COLLECTION, [RecordFactory.create(invoiceNumber="INV-001")])
        content = InvoiceRowFactory.to_csv([InvoiceRowFactory.create(invoice_number="INV-001")])
        batch = staged(service, content, MergeStrategy.SKIP)

        preview = service.preview(batch.id)
        assert preview.rows[0].action == PreviewAction.SKIP

        result = service.commit(batch.id)
        assert result.skipped_rows == 1
        assert result.imported_rows == 0
        assert len(record_store.records(COLLECTION)) == 1

    def test_manual_conflict_resolved_to_update(self, service, record_store):
        record_store.seed(COLLECTION, [
            RecordFactory.create(id="rec-1", invoiceNumber="INV-001", amount=Decimal("100")),
        ])
        content = InvoiceRowFactory.to_csv([InvoiceRowFactory.create(invoice_number="INV-001", amount="150")])
        batch = staged(service, content, MergeStrategy.MANUAL)

        preview = service.preview(batch.id)
        row = preview.rows[0]
        assert row.action == PreviewAction.CONFLICT
        assert [(c.field, c.source_value, c.existing_value) for c in row.conflicts] == [("amount", 150, 100)]

        result = service.commit(batch.id, resolutions={1: Resolution.UPDATE})
        assert result.imported_rows == 1
        assert record_store.get(COLLECTION, "rec-1")["amount"] == Decimal("150")
        assert service.get_batch(batch.id).updated_ids == ["rec-1"]

    def test_required_failures_make_partial(self, service, record_store):
        rows = InvoiceRowFactory.create_batch(100)
        for index in (10, 50, 90):
            rows[index]["Invoice Number"] = ""
        batch = staged(
            service,
            InvoiceRowFactory.to_csv(rows),
            rules=[ValidationRule(field="invoiceNumber", type=RuleType.REQUIRED)],
        )
        service.preview(batch.id)

        result = service.commit(batch.id)

        assert result.imported_rows == 97
        assert result.error_rows == 3
        assert result.status == CommitStatus.PARTIAL
        stored = service.get_batch(batch.id)
        assert stored.status == BatchStatus.PARTIAL
        assert len(stored.inserted_ids) == 97
        assert len(record_store.records(COLLECTION)) == 97

    def test_numeric_failure_blocks_row(self, service, record_store):
        content = (
            "Invoice Number,Invoice Date,Vendor,Amount\n"
            "INV-001,01/15/2024,Acme Supply,abc\n"
            "INV-002,01/16/2024,Acme Supply,10\n"
        )
        batch = staged(service, content, rules=[ValidationRule(field="amount", type=RuleType.NUMERIC)])
        assert service.get_batch(batch.id).status == BatchStatus.VALIDATED
        service.preview(batch.id)

        result = service.commit(batch.id)

        assert result.imported_rows == 1
        assert result.error_rows == 1
        assert result.status == CommitStatus.PARTIAL
        assert result.row_errors[0].row_number == 1
        assert [r["invoiceNumber"] for r in record_store.records(COLLECTION)] == ["INV-002"]

    def test_commit_needs_preview(self, service, invoice_csv):
        batch = staged(service, invoice_csv)

        with pytest.raises(BatchNotPreviewedError):
            service.commit(batch.id)

    def test_commit_consumes_preview(self, service, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)
        service.commit(batch.id)

        with pytest.raises(BatchNotPreviewedError):
            service.commit(batch.id)
        assert service.get_commit_result(batch.id).imported_rows == 3

    def test_concurrent_commit_rejected(self, service, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)

        steps = service.iter_commit(batch.id)
        next(steps)
        assert service.get_batch(batch.id).status == BatchStatus.COMMITTING
        with pytest.raises(BatchCommitInProgressError):
            service.iter_commit(batch.id)

        list(steps)
        assert service.get_batch(batch.id).status == BatchStatus.COMPLETED

    def test_progress_callback(self, service, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)
        seen = []

        service.commit(batch.id, progress_callback=seen.append)

        assert seen == sorted(seen)
        assert seen[-1] == 100

    def test_cancelled_commit_keeps_applied_rows(self, service, record_store, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)
        cancel = Event()

        result = service.commit(batch.id, progress_callback=lambda _: cancel.set(), cancel_event=cancel)

        assert result.cancelled is True
        assert result.imported_rows == 1
        assert result.skipped_rows == 2
        assert len(record_store.records(COLLECTION)) == 1
        assert service.get_batch(batch.id).status == BatchStatus.PARTIAL

    def test_unavailable_store_fails_batch(self, service, record_store, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)
        record_store.available = False

        result = service.commit(batch.id)

        assert result.status == CommitStatus.FAILED
        assert result.error_rows == 3
        assert service.get_batch(batch.id).status == BatchStatus.FAILED


# ===================
# HISTORY / REVERT / DELETE TESTS
# ===================

class TestHistoryRevertDelete:
    def test_history_totals(self, service, invoice_csv):
        first = staged(service, invoice_csv)
        service.preview(first.id)
        service.commit(first.id)
        new_batch(service)

        history = service.get_import_history()

        assert history.total_batches == 2
        assert history.total_imported == 3
        assert history.total_skipped == 0
        assert history.batches[1].id == first.id

    def test_list_filters(self, service, invoice_csv):
        committed = staged(service, invoice_csv)
        service.preview(committed.id)
        service.commit(committed.id)
        new_batch(service, collection="ap/vendor")

        assert [b.id for b in service.list_batches(status=BatchStatus.COMPLETED)] == [committed.id]
        assert len(service.list_batches(collection="ap/vendor")) == 1

    def test_revert_deletes_inserted(self, service, record_store, invoice_csv):
        batch = staged(service, invoice_csv)
        service.preview(batch.id)
        service.commit(batch.id)

        result = service.revert_batch(batch.id)

        assert result.deleted_rows == 3
        assert result.failed_rows == 0
        assert record_store.records(COLLECTION) == []
        reverted = service.get_batch(batch.id)
        assert reverted.status == BatchStatus.REVERTED
        assert reverted.reverted_at is not None

        with pytest.raises(BatchNotRevertibleError):
            service.revert_batch(batch.id)

    def test_revert_leaves_updates(self, service, record_store):
        record_store.seed(COLLECTION, [RecordFactory.create(id="rec-1", invoiceNumber="INV-001")])
        content = InvoiceRowFactory.to_csv([
            InvoiceRowFactory.create(invoice_number="INV-001", amount="150"),
            InvoiceRowFactory.create(invoice_number="INV-002"),
        ])
        batch = staged(service, content, MergeStrategy.OVERWRITE)
        service.preview(batch.id)
        service.commit(batch.id)

        result = service.revert_batch(batch.id)

        assert result.deleted_rows == 1
        assert [r["id"] for r in record_store.records(COLLECTION)] == ["rec-1"]

    def test_revert_needs_commit(self, service):
        batch = new_batch(service)
        with pytest.raises(BatchNotRevertibleError):
            service.revert_batch(batch.id)

    def test_delete_only_terminal(self, service, invoice_csv):
        batch = staged(service, invoice_csv)
        with pytest.raises(BatchNotDeletableError):
            service.delete_batch(batch.id)

        service.preview(batch.id)
        service.commit(batch.id)
        assert service.delete_batch(batch.id) is True
        with pytest.raises(BatchNotFoundError):
            service.get_batch(batch.id)
