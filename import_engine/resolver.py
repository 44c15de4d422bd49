"""
import_engine.resolver - Turn category/brand/supplier names into ids.

Runs only at commit time, inside the commit's session, one row at a
time.  The output type, CommittableRow, is the only thing CommitWriter
accepts, so a row cannot reach the database without passing through here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from import_engine.errors import UnresolvedReference
from import_engine.field_map import EntitySchema, FieldSpec
from import_engine.row_processor import ImportRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommittableRow:
    """Structurally valid and reference-resolved; ready for insert."""

    row_number: int
    values: Mapping[str, object]          # model attribute → value

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))


class ReferenceResolver:
    """
    Caches lookups for the life of one commit, so an unknown name shared
    by many rows is created exactly once.

    Callers running each row in its own savepoint must call
    discard_pending() after rolling a row back and keep_pending() after
    releasing it; otherwise the cache would point at rolled-back ids.
    """

    def __init__(self, session: Session, schema: EntitySchema, create_missing: bool):
        self.session = session
        self.schema = schema
        self.create_missing = create_missing
        self._cache: dict[tuple[str, str], int] = {}
        self._pending: list[tuple[tuple[str, str], str]] = []
        self.created: dict[str, list[str]] = {}

    def resolve(self, row: ImportRow) -> CommittableRow:
        """Raises UnresolvedReference (row-level) when a name cannot be matched."""
        if not row.is_valid:
            raise ValueError(f"row {row.row_number} failed validation and cannot be resolved")

        values = dict(row.normalized_fields)
        for spec in self.schema.references:
            name = values.pop(spec.name, None)
            values[spec.column] = self._lookup(spec, name) if name else None
        return CommittableRow(row.row_number, values)

    def discard_pending(self) -> None:
        for key, name in self._pending:
            self._cache.pop(key, None)
            names = self.created.get(key[0])
            if names and name in names:
                names.remove(name)
                if not names:
                    del self.created[key[0]]
        self._pending.clear()

    def keep_pending(self) -> None:
        self._pending.clear()

    # ── Private helpers ────────────────────────────────────────────────

    def _lookup(self, spec: FieldSpec, name: str) -> int:
        key = (spec.name, name.casefold())
        if key in self._cache:
            return self._cache[key]

        record = self._find(spec.target, name)
        if record is None:
            if not self.create_missing:
                raise UnresolvedReference(spec.name, name)
            record = spec.target(name=name)
            self.session.add(record)
            self.session.flush()
            self._pending.append((key, name))
            self.created.setdefault(spec.name, []).append(name)
            logger.info(f"Created {spec.name} '{name}' (id={record.id}) during import")

        self._cache[key] = record.id
        return record.id

    def _find(self, model: type, name: str) -> Optional[object]:
        stmt = select(model).where(func.lower(model.name) == name.lower())
        record = self.session.execute(stmt).scalars().first()
        if record is None and name.isdigit():
            # Legacy *_id columns carry the primary key instead of a name
            record = self.session.get(model, int(name))
        return record
