"""
import_engine.errors - Failure taxonomy for the import pipeline.

Every error that can abort a validate or commit call derives from
ImportPipelineError and knows its HTTP status.  Row-level problems are
never raised past the row loop; they end up in ImportRow.field_errors or
in the commit report instead.
"""

from __future__ import annotations


class ImportPipelineError(Exception):
    """Base class.  `message` is always safe to show to the caller."""

    status = 400
    message = "import failed"

    def __init__(self, message: str | None = None, **payload):
        self.message = message or self.message
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message, **self.payload}


# ── File-level (validate) ─────────────────────────────────────────────

class InvalidDelimiter(ImportPipelineError):
    status = 400
    message = "Unsupported delimiter"


class MalformedFile(ImportPipelineError):
    status = 400
    message = "File could not be parsed as CSV"


class MissingUpload(ImportPipelineError):
    status = 400
    message = "No file uploaded"


class UnknownEntity(ImportPipelineError):
    status = 404
    message = "Unknown import entity"


# ── Token lifecycle (commit) ──────────────────────────────────────────

class TokenNotFound(ImportPipelineError):
    status = 404
    message = "Import token not found; validate the file again"


class TokenExpired(ImportPipelineError):
    status = 410
    message = "Import token has expired; validate the file again"


class TokenAlreadyConsumed(ImportPipelineError):
    status = 409
    message = "Import token has already been used"


class DelimiterMismatch(ImportPipelineError):
    status = 422
    message = "Delimiter does not match the one used during validation"


class OptionMismatch(ImportPipelineError):
    status = 422
    message = "create_missing_refs does not match the value used during validation"


# ── Commit outcome ────────────────────────────────────────────────────

class RowsRejected(ImportPipelineError):
    """Abort-on-error commit found at least one bad row; nothing was written."""
    status = 422
    message = "Import aborted: some rows are invalid"


class CommitInterrupted(ImportPipelineError):
    status = 408
    message = "Import aborted: commit did not finish in time; nothing was written"


class PersistenceFailure(ImportPipelineError):
    status = 500
    message = "Import failed while saving; nothing was written"


# ── Row-level (never leaves the coordinator) ──────────────────────────

class RowRejected(Exception):
    """A single row cannot be persisted.  Carries field → message."""

    def __init__(self, errors: dict[str, str], row_number: int | None = None):
        self.errors = errors
        self.row_number = row_number
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


class UnresolvedReference(RowRejected):
    """A category/brand/supplier name matched nothing and creation is off."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__({field: f"{field} '{value}' does not exist"})
