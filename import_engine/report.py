"""
import_engine.report - Structured results of the validate and commit phases.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from import_engine.field_map import EntityKind


def _jsonable(values: Mapping) -> dict:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in values.items()}


# ── Validate ───────────────────────────────────────────────────────────

@dataclass
class ValidationReport:
    token: str
    entity_kind: EntityKind
    delimiter: str
    expires_at: str
    total: int = 0
    valid: int = 0
    invalid: int = 0
    valid_samples: list[dict] = field(default_factory=list)     # [{row, data}]
    invalid_samples: list[dict] = field(default_factory=list)   # [{row, data, errors}]

    @classmethod
    def from_batch(cls, batch, sample_limit: int) -> "ValidationReport":
        report = cls(
            token=batch.token,
            entity_kind=batch.entity_kind,
            delimiter=batch.delimiter,
            expires_at=batch.expires_at.isoformat(),
        )
        for row in batch.rows:
            report.total += 1
            if row.is_valid:
                report.valid += 1
                if len(report.valid_samples) < sample_limit:
                    report.valid_samples.append({
                        "row": row.row_number,
                        "data": _jsonable(row.normalized_fields),
                    })
            else:
                report.invalid += 1
                if len(report.invalid_samples) < sample_limit:
                    report.invalid_samples.append({
                        "row": row.row_number,
                        "data": dict(row.raw_fields),
                        "errors": dict(row.field_errors),
                    })
        return report

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "entity": self.entity_kind.value,
            "delimiter": self.delimiter,
            "expires_at": self.expires_at,
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "valid_samples": self.valid_samples,
            "invalid_samples": self.invalid_samples,
        }


# ── Commit ─────────────────────────────────────────────────────────────

class CommitOutcome(enum.Enum):
    COMMITTED_ALL     = "committed_all"       # abort-on-error, everything written
    COMMITTED_PARTIAL = "committed_partial"   # insert-valid-only
    INTERRUPTED       = "interrupted"         # insert-valid-only, stopped early


@dataclass(frozen=True)
class RowResult:
    row_number: int
    inserted: bool
    record_id: Optional[int] = None
    errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "errors", MappingProxyType(dict(self.errors)))

    @classmethod
    def ok(cls, row_number: int, record_id: int) -> "RowResult":
        return cls(row_number, True, record_id)

    @classmethod
    def skipped(cls, row_number: int, errors: Mapping[str, str]) -> "RowResult":
        return cls(row_number, False, None, errors)


@dataclass
class CommitReport:
    entity_kind: EntityKind
    outcome: CommitOutcome
    results: list[RowResult] = field(default_factory=list)
    created_refs: dict[str, list[str]] = field(default_factory=dict)

    @property
    def inserted_count(self) -> int:
        return sum(1 for r in self.results if r.inserted)

    @property
    def skipped_count(self) -> int:
        return len(self.results) - self.inserted_count

    @property
    def message(self) -> str:
        msg = f"Imported {self.inserted_count} {self.entity_kind.value}(s)"
        if self.skipped_count:
            msg += f"; skipped {self.skipped_count} row(s)"
        if self.outcome is CommitOutcome.INTERRUPTED:
            msg += "; import stopped before finishing"
        return msg + "."

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "outcome": self.outcome.value,
            "inserted_count": self.inserted_count,
            "skipped_count": self.skipped_count,
            "skipped_rows": [
                {"row": r.row_number, "errors": dict(r.errors)}
                for r in self.results if not r.inserted
            ],
            "created_refs": self.created_refs,
        }
