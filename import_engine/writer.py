"""
import_engine.writer - Persist staged rows for one entity kind.

Two modes, picked by the caller's partial-failure policy:

  atomic=True   every row goes into the caller's open transaction; the
                first failure raises and the caller rolls everything back.
  atomic=False  each row (reference creation included) runs in its own
                SAVEPOINT; a failing row is rolled back alone and reported
                as skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from import_engine.errors import CommitInterrupted, RowRejected
from import_engine.field_map import EntitySchema
from import_engine.report import RowResult
from import_engine.resolver import CommittableRow, ReferenceResolver
from import_engine.row_processor import ImportRow

logger = logging.getLogger(__name__)

EXISTS_IN_DB = "already exists in database"
INTERRUPTED = "import stopped before this row was written"
SAVE_FAILED = "row could not be saved"

# Drivers raise the last two unwrapped for values they cannot bind
# (pysqlite: ints beyond 64 bits)
STORAGE_ERRORS = (SQLAlchemyError, OverflowError, ValueError)


class Deadline:
    """Request-scoped stop signal: a timeout, an Event, or both."""

    def __init__(self, seconds: Optional[float] = None,
                 cancel: Optional[threading.Event] = None):
        self._until = time.monotonic() + seconds if seconds is not None else None
        self._cancel = cancel

    @property
    def reached(self) -> bool:
        if self._cancel is not None and self._cancel.is_set():
            return True
        return self._until is not None and time.monotonic() >= self._until


class CommitWriter:

    def __init__(self, session: Session, schema: EntitySchema, resolver: ReferenceResolver):
        self.session = session
        self.schema = schema
        self.resolver = resolver

    # ── Batch ──────────────────────────────────────────────────────────

    def insert_batch(
        self,
        rows: Iterable[ImportRow],
        *,
        atomic: bool,
        deadline: Optional[Deadline] = None,
    ) -> tuple[list[RowResult], bool]:
        """
        Write rows in file order.  Returns (per-row results, interrupted).

        atomic=True raises RowRejected (with row_number set) or
        CommitInterrupted; STORAGE_ERRORS propagate untouched.
        """
        deadline = deadline or Deadline()
        rows = list(rows)
        results: list[RowResult] = []

        for idx, row in enumerate(rows):
            if deadline.reached:
                if atomic:
                    raise CommitInterrupted()
                results.extend(RowResult.skipped(r.row_number, {"row": INTERRUPTED})
                               for r in rows[idx:])
                return results, True

            if not row.is_valid:
                results.append(RowResult.skipped(row.row_number, row.field_errors))
            elif atomic:
                results.append(self._insert_or_raise(row))
            else:
                results.append(self._insert_isolated(row))

        return results, False

    # ── Single row ─────────────────────────────────────────────────────

    def insert(self, row: CommittableRow) -> RowResult:
        """Add one resolved row and flush.  Raises RowRejected on a DB conflict."""
        if not isinstance(row, CommittableRow):
            raise TypeError("only reference-resolved rows can be inserted")
        self._check_existing(row)
        record = self.schema.model(**row.values)
        self.session.add(record)
        self.session.flush()
        return RowResult.ok(row.row_number, record.id)

    # ── Private helpers ────────────────────────────────────────────────

    def _insert_or_raise(self, row: ImportRow) -> RowResult:
        try:
            return self.insert(self.resolver.resolve(row))
        except RowRejected as exc:
            exc.row_number = row.row_number
            raise

    def _insert_isolated(self, row: ImportRow) -> RowResult:
        savepoint = self.session.begin_nested()
        try:
            result = self.insert(self.resolver.resolve(row))
        except RowRejected as exc:
            savepoint.rollback()
            self.resolver.discard_pending()
            return RowResult.skipped(row.row_number, exc.errors)
        except STORAGE_ERRORS:
            savepoint.rollback()
            self.resolver.discard_pending()
            logger.exception(f"Row {row.row_number} failed to save")
            return RowResult.skipped(row.row_number, {"row": SAVE_FAILED})
        savepoint.commit()
        self.resolver.keep_pending()
        return result

    def _check_existing(self, row: CommittableRow) -> None:
        model = self.schema.model
        errors: dict[str, str] = {}
        for spec in self.schema.unique_fields:
            value = row.values.get(spec.name)
            if value is None:
                continue
            # Case-insensitive, matching how references are resolved
            column = getattr(model, spec.name)
            found = self.session.execute(
                select(model.id).where(func.lower(column) == str(value).lower()).limit(1)
            ).first()
            if found is not None:
                errors[spec.name] = EXISTS_IN_DB
        if errors:
            raise RowRejected(errors, row.row_number)
