"""
import_engine.importer - Top-level orchestrator.

validate:  csv_parser → row_processor → staging (token) → ValidationReport
commit:    staging (consume token) → resolver → writer → CommitReport

Nothing is written during validate, and a token is good for exactly one
commit attempt.
"""

from __future__ import annotations

import csv
import io
import logging
import threading
from typing import Callable, Optional

from sqlalchemy.orm import Session

from db.engine import get_session
from import_engine.csv_parser import normalize_delimiter, parse
from import_engine.errors import (
    CommitInterrupted,
    DelimiterMismatch,
    OptionMismatch,
    PersistenceFailure,
    RowRejected,
    RowsRejected,
    TokenNotFound,
)
from import_engine.field_map import EntityKind, schema_for
from import_engine.report import CommitOutcome, CommitReport, ValidationReport
from import_engine.resolver import ReferenceResolver
from import_engine.row_processor import RowValidator
from import_engine.staging import StagingStore
from import_engine.writer import STORAGE_ERRORS, CommitWriter, Deadline

logger = logging.getLogger(__name__)


class ImportCoordinator:

    def __init__(
        self,
        store: StagingStore,
        *,
        session_factory: Callable[[], Session] = get_session,
        sample_limit: int = 10,
        commit_timeout: Optional[float] = None,
    ):
        self.store = store
        self.session_factory = session_factory
        self.sample_limit = sample_limit
        self.commit_timeout = commit_timeout

    # ── Phase 1 ────────────────────────────────────────────────────────

    def validate(
        self,
        kind: EntityKind,
        file_content: str | bytes,
        delimiter: str,
        *,
        create_missing_refs: bool = False,
    ) -> ValidationReport:
        """
        Parse and check every row, stage the result, return counts + samples.

        Raises InvalidDelimiter / MalformedFile before anything is staged.
        """
        schema = schema_for(kind)
        sep = normalize_delimiter(delimiter)
        parsed = parse(file_content, sep, schema)

        rows = RowValidator(schema, sep).validate_all(parsed.rows)
        batch = self.store.put(
            kind, sep, rows,
            create_missing_refs=bool(create_missing_refs and schema.references),
        )
        report = ValidationReport.from_batch(batch, self.sample_limit)

        logger.info(
            f"Validated {kind.value} import {batch.token[:8]}…: "
            f"{report.total} rows, {report.valid} valid, {report.invalid} invalid"
            + (f", ignored columns {parsed.unknown_columns}" if parsed.unknown_columns else "")
            + (f", missing columns {parsed.missing_columns}" if parsed.missing_columns else "")
        )
        return report

    # ── Phase 2 ────────────────────────────────────────────────────────

    def commit(
        self,
        kind: EntityKind,
        token: str,
        *,
        insert_valid_only: bool,
        delimiter: str,
        create_missing_refs: Optional[bool] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommitReport:
        """
        Persist a staged batch.

        insert_valid_only=True   write every row that survives reference
                                 resolution; skip and count the rest.
        insert_valid_only=False  all or nothing; any bad row raises
                                 RowsRejected and nothing is written.
        """
        schema = schema_for(kind)
        batch = self.store.get(token)
        if batch.entity_kind is not kind:
            raise TokenNotFound()

        # Caller errors: rejected without burning the token
        if normalize_delimiter(delimiter) != batch.delimiter:
            raise DelimiterMismatch(
                f"Delimiter {delimiter!r} does not match {batch.delimiter!r} "
                f"used during validation"
            )
        if (create_missing_refs is not None and schema.references
                and bool(create_missing_refs) != batch.create_missing_refs):
            raise OptionMismatch()

        batch = self.store.consume(token)
        tag = f"{kind.value} import {token[:8]}…"

        if not insert_valid_only and batch.invalid_count:
            logger.info(f"Aborted {tag}: {batch.invalid_count} invalid row(s)")
            raise RowsRejected(
                f"Import aborted: {batch.invalid_count} row(s) are invalid; "
                f"nothing was imported",
                inserted_count=0,
                skipped_count=batch.total,
                errors=[
                    {"row": r.row_number, "errors": dict(r.field_errors)}
                    for r in batch.rows if not r.is_valid
                ],
            )

        session = self.session_factory()
        resolver = ReferenceResolver(session, schema, batch.create_missing_refs)
        writer = CommitWriter(session, schema, resolver)
        deadline = Deadline(self.commit_timeout, cancel)

        try:
            results, interrupted = writer.insert_batch(
                batch.rows, atomic=not insert_valid_only, deadline=deadline,
            )
            session.commit()
        except RowRejected as exc:
            session.rollback()
            detail = "; ".join(exc.errors.values())
            logger.info(f"Aborted {tag} at row {exc.row_number}: {detail}")
            raise RowsRejected(
                f"Import aborted at row {exc.row_number}: {detail}; nothing was imported",
                inserted_count=0,
                skipped_count=batch.total,
                errors=[{"row": exc.row_number, "errors": dict(exc.errors)}],
            ) from exc
        except CommitInterrupted:
            session.rollback()
            logger.warning(f"Aborted {tag}: deadline reached, rolled back")
            raise
        except STORAGE_ERRORS as exc:
            session.rollback()
            logger.exception(f"Persistence failure during {tag}")
            raise PersistenceFailure() from exc
        finally:
            session.close()

        if not insert_valid_only:
            outcome = CommitOutcome.COMMITTED_ALL
        elif interrupted:
            outcome = CommitOutcome.INTERRUPTED
        else:
            outcome = CommitOutcome.COMMITTED_PARTIAL

        report = CommitReport(kind, outcome, results, resolver.created)
        logger.info(
            f"Committed {tag}: {report.inserted_count} inserted, "
            f"{report.skipped_count} skipped ({outcome.value})"
        )
        return report


def template_csv(kind: EntityKind) -> str:
    """Header-only CSV for the given entity."""
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(schema_for(kind).field_names)
    return buf.getvalue()
