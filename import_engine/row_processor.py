"""
import_engine.row_processor - Structural validation of one CSV row.

Single-responsibility: given a RawRow, return an ImportRow carrying
either typed values or one message per failing field.  No session, no
network: whether a referenced category/brand/supplier exists is a
commit-time question (see resolver).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Iterable, Mapping

from import_engine.csv_parser import RawRow
from import_engine.field_map import MAX_DIGITS, EntitySchema, FieldSpec, FieldType


DUPLICATE_IN_FILE = "duplicate within file"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DECIMAL_COMMA_RE = re.compile(r"^-?\d+,\d+$")


@dataclass(frozen=True)
class ImportRow:
    """One staged row.  Immutable once built."""

    row_number: int
    raw_fields: Mapping[str, str]
    normalized_fields: Mapping[str, object]
    field_errors: Mapping[str, str]

    def __post_init__(self):
        for name in ("raw_fields", "normalized_fields", "field_errors"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def is_valid(self) -> bool:
        return not self.field_errors


class RowValidator:
    """
    Validates rows of one file.  Stateful only for intra-file duplicate
    tracking, so use one instance per file.
    """

    def __init__(self, schema: EntitySchema, delimiter: str = ","):
        self.schema = schema
        # With ; | or tab separators a decimal comma cannot be a column break
        self._decimal_comma = delimiter != ","
        self._seen: dict[str, dict[str, int]] = {
            spec.name: {} for spec in schema.unique_fields
        }

    def validate(self, raw: RawRow) -> ImportRow:
        errors: dict[str, str] = {}
        values: dict[str, object] = {}

        for spec in self.schema.fields:
            text = (raw.fields.get(spec.name) or "").strip()
            if not text:
                if spec.required:
                    errors[spec.name] = f"{spec.name} is required"
                else:
                    values[spec.name] = spec.default
                continue

            if spec.unique:
                dup = self._check_duplicate(spec, text, raw.row_number)
                if dup:
                    errors[spec.name] = dup
                    continue

            try:
                values[spec.name] = self._coerce(spec, text)
            except ValueError as exc:
                errors[spec.name] = str(exc)

        if raw.overflow:
            errors["row"] = f"row has {len(raw.overflow)} more value(s) than the header"

        if errors:
            return ImportRow(raw.row_number, raw.fields, {}, errors)

        if self.schema.derive:
            errors = self.schema.derive(values)
            if errors:
                return ImportRow(raw.row_number, raw.fields, {}, errors)
        return ImportRow(raw.row_number, raw.fields, values, {})

    def validate_all(self, rows: Iterable[RawRow]) -> list[ImportRow]:
        return [self.validate(r) for r in rows]

    # ── Private helpers ────────────────────────────────────────────────

    def _check_duplicate(self, spec: FieldSpec, text: str, row_number: int) -> str | None:
        seen = self._seen[spec.name]
        key = text.casefold()
        if key in seen:
            return f"{DUPLICATE_IN_FILE} (first seen on row {seen[key]})"
        seen[key] = row_number
        return None

    def _coerce(self, spec: FieldSpec, text: str) -> object:
        if spec.type is FieldType.INTEGER:
            return self._integer(spec, text)
        if spec.type is FieldType.DECIMAL:
            return self._decimal(spec, text)
        if spec.type is FieldType.CHOICE:
            key = text.lower()
            for canonical, spellings in spec.choices.items():
                if key in spellings:
                    return canonical
            raise ValueError(f"{spec.name} must be one of {', '.join(spec.choices)}")
        if spec.type is FieldType.EMAIL:
            if not _EMAIL_RE.match(text):
                raise ValueError(f"{spec.name} must be a valid email address")

        # TEXT, EMAIL, REFERENCE
        if spec.max_length and len(text) > spec.max_length:
            raise ValueError(f"{spec.name} must be at most {spec.max_length} characters")
        return text

    def _number(self, spec: FieldSpec, text: str) -> Decimal:
        cleaned = text.replace(" ", "")
        if self._decimal_comma and _DECIMAL_COMMA_RE.match(cleaned):
            cleaned = cleaned.replace(",", ".")
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"{spec.name} must be a number") from None
        if not value.is_finite():
            raise ValueError(f"{spec.name} must be a number")
        if value and value.adjusted() >= MAX_DIGITS[spec.type]:
            # Negative values report their lower bound first
            self._check_bounds(spec, value)
            raise ValueError(f"{spec.name} is too large")
        return value

    def _integer(self, spec: FieldSpec, text: str) -> int:
        value = self._number(spec, text)
        if value != value.to_integral_value():
            raise ValueError(f"{spec.name} must be a whole number")
        result = int(value)
        self._check_bounds(spec, result)
        return result

    def _decimal(self, spec: FieldSpec, text: str) -> Decimal:
        value = self._number(spec, text)
        self._check_bounds(spec, value)
        return value

    @staticmethod
    def _check_bounds(spec: FieldSpec, value) -> None:
        if spec.minimum is not None and value < spec.minimum:
            if spec.minimum == 1 and spec.type is FieldType.INTEGER:
                raise ValueError(f"{spec.name} must be a positive integer")
            if spec.minimum == 0:
                raise ValueError(f"{spec.name} must not be negative")
            raise ValueError(f"{spec.name} must be at least {spec.minimum}")
        if spec.maximum is not None and value > spec.maximum:
            raise ValueError(f"{spec.name} must be at most {spec.maximum}")
