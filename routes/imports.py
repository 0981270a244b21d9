"""
Import batch API routes.

Exposes the batch workflow: detect → create → upload → map → validate →
preview → commit, plus history, revert and delete.
"""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.import_batch import (
    AutoMatchRequest,
    AutoMatchResult,
    BatchAutoMatchRequest,
    BatchCreate,
    BatchStatus,
    BatchSummary,
    DetectFormatRequest,
    FieldMapping,
    FormatDetectionResult,
    ImportBatch,
    ImportHistory,
    SaveMappingsRequest,
    UploadRequest,
)
from models.preview import CommitRequest, CommitResult, PreviewResult, RevertResult
from models.validation import ErrorSeverity, ImportRowError, ValidateRequest, ValidationSummary
from services.import_service import get_import_service
from exceptions import AppError, NotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# STATELESS HELPERS
# ===================

@router.post("/detect", response_model=FormatDetectionResult)
async def detect_format(data: DetectFormatRequest):
    """
    Detect the format of raw file content.

    Advisory only: low confidence is reported, never an error.
    """
    try:
        service = get_import_service()
        return service.detect_format(data.content, data.filename, data.default_format)

    except Exception as e:
        return handle_error(e)


@router.post("/auto-match", response_model=list[AutoMatchResult])
async def auto_match_fields(data: AutoMatchRequest):
    """Propose a one-to-one header → target field mapping."""
    try:
        service = get_import_service()
        return service.auto_match_fields(
            data.source_headers,
            data.target_fields,
            data.source_format,
            data.sample_rows,
        )

    except Exception as e:
        return handle_error(e)


@router.get("/history", response_model=ImportHistory)
async def get_import_history():
    """All batches with imported/skipped/error totals."""
    try:
        service = get_import_service()
        return service.get_import_history()

    except Exception as e:
        return handle_error(e)


# ===================
# BATCH CRUD
# ===================

@router.post("", response_model=ImportBatch, status_code=status.HTTP_201_CREATED)
async def create_batch(data: BatchCreate):
    """
    Create an import batch.

    Required: name, source_format, collection
    """
    try:
        service = get_import_service()
        return service.create_batch(data)

    except Exception as e:
        return handle_error(e)


@router.get("", response_model=list[BatchSummary])
async def list_batches(
    status: Optional[BatchStatus] = Query(None, description="Filter by batch status"),
    collection: Optional[str] = Query(None, description="Filter by target collection"),
):
    """List batches, newest first."""
    try:
        service = get_import_service()
        return [BatchSummary.from_batch(b) for b in service.list_batches(status, collection)]

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}", response_model=ImportBatch)
async def get_batch(batch_id: str):
    """Get a batch with its parsed rows."""
    try:
        service = get_import_service()
        return service.get_batch(batch_id)

    except Exception as e:
        return handle_error(e)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(batch_id: str):
    """
    Delete a finished batch.

    Only completed, partial, failed or reverted batches can be deleted.
    """
    try:
        service = get_import_service()
        service.delete_batch(batch_id)
        return None

    except Exception as e:
        return handle_error(e)


# ===================
# STAGES
# ===================

@router.post("/{batch_id}/upload", response_model=ImportBatch)
async def upload_data(batch_id: str, data: UploadRequest):
    """Upload raw file content (once per batch)."""
    try:
        service = get_import_service()
        return service.upload_data(batch_id, data.content, data.column_widths)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/detect", response_model=FormatDetectionResult)
async def detect_batch(
    batch_id: str,
    filename: Optional[str] = Query(None, description="Original file name, for its extension"),
):
    """Re-run format detection on the batch's uploaded content."""
    try:
        service = get_import_service()
        return service.detect_batch(batch_id, filename)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/auto-match", response_model=list[AutoMatchResult])
async def auto_match_batch(batch_id: str, data: BatchAutoMatchRequest):
    """Auto-match the batch's headers against target fields."""
    try:
        service = get_import_service()
        return service.auto_match_batch(batch_id, data.target_fields)

    except Exception as e:
        return handle_error(e)


@router.put("/{batch_id}/mappings", response_model=list[FieldMapping])
async def save_field_mappings(batch_id: str, data: SaveMappingsRequest):
    """Replace the batch's field mappings."""
    try:
        service = get_import_service()
        return service.save_field_mappings(batch_id, data.mappings, data.allow_many_to_one)

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}/mappings", response_model=list[FieldMapping])
async def get_field_mappings(batch_id: str):
    """Saved field mappings in order."""
    try:
        service = get_import_service()
        return service.get_field_mappings(batch_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/validate", response_model=ValidationSummary)
async def validate_rows(batch_id: str, data: ValidateRequest):
    """
    Validate mapped rows against the posted rules.

    Custom (predicate) rules are available to in-process callers only.
    """
    try:
        service = get_import_service()
        return service.validate_rows(batch_id, data.rules)

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}/errors", response_model=list[ImportRowError])
async def get_import_errors(
    batch_id: str,
    severity: Optional[ErrorSeverity] = Query(None, description="error or warning"),
):
    """Validation findings ordered by row."""
    try:
        service = get_import_service()
        return service.get_import_errors(batch_id, severity)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/preview", response_model=PreviewResult)
async def preview(batch_id: str):
    """Dry-run the commit. Nothing is written."""
    try:
        service = get_import_service()
        return service.preview(batch_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/commit", response_model=CommitResult)
async def commit(batch_id: str, data: Optional[CommitRequest] = None):
    """
    Apply the current preview to the record store.

    Conflict rows without a resolution are skipped.
    """
    try:
        service = get_import_service()
        resolutions = data.resolutions if data else None
        return service.commit(batch_id, resolutions)

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}/commit", response_model=CommitResult)
async def get_commit_result(batch_id: str):
    """Result of the batch's last commit."""
    try:
        service = get_import_service()
        result = service.get_commit_result(batch_id)
        if result is None:
            raise NotFoundError("Commit result", batch_id, code="COMMIT_RESULT_NOT_FOUND")
        return result

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/revert", response_model=RevertResult)
async def revert_batch(batch_id: str):
    """Delete the records the batch's commit inserted."""
    try:
        service = get_import_service()
        return service.revert_batch(batch_id)

    except Exception as e:
        return handle_error(e)
