"""
import_engine.csv_parser - Low-level CSV reading and header resolution.

Responsibilities:
  • delimiter whitelisting (, ; | tab)
  • BOM removal and encoding fallback
  • alias-aware, case-insensitive header matching per entity schema
  • blank-line skipping without consuming a row number

Knows nothing about field types; see row_processor for that.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field

from import_engine.errors import InvalidDelimiter, MalformedFile
from import_engine.field_map import EntitySchema, normalise_header


# Accepted spellings → actual separator.  "\\t" is what HTML selects send.
SUPPORTED_DELIMITERS: dict[str, str] = {
    ",": ",",
    ";": ";",
    "|": "|",
    "\t": "\t",
    "\\t": "\t",
    "tab": "\t",
}


@dataclass(frozen=True)
class RawRow:
    row_number: int                    # 1-based, header excluded
    fields: dict[str, str]             # logical name (or original header) → text
    overflow: tuple[str, ...] = ()     # values beyond the last header column


@dataclass
class ParsedFile:
    header_map: dict[str, str | None] = field(default_factory=dict)
    rows: list[RawRow] = field(default_factory=list)
    # Required fields with no column; every row reports them as missing
    missing_columns: list[str] = field(default_factory=list)

    @property
    def unknown_columns(self) -> list[str]:
        return [h for h, logical in self.header_map.items() if logical is None]


def normalize_delimiter(value: str | None) -> str:
    """Return the separator character or raise InvalidDelimiter."""
    if value is None or value == "":
        raise InvalidDelimiter("Delimiter is required")
    if value in SUPPORTED_DELIMITERS:
        return SUPPORTED_DELIMITERS[value]
    key = value.strip().lower()
    if key in SUPPORTED_DELIMITERS:
        return SUPPORTED_DELIMITERS[key]
    raise InvalidDelimiter(
        f"Unsupported delimiter {value!r}; use one of , ; | or tab"
    )


def parse(raw: str | bytes, delimiter: str, schema: EntitySchema) -> ParsedFile:
    """
    Split raw file content into header map + ordered raw rows.

    Zero bytes or a header-only file is a valid, empty result.
    Raises InvalidDelimiter or MalformedFile for file-level problems.
    """
    sep = normalize_delimiter(delimiter)
    text = _decode(raw)
    if not text.strip():
        return ParsedFile()

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=sep, strict=True)
    result = ParsedFile()

    try:
        header = _first_non_blank(reader)
        if header is None:
            return result

        keys = _resolve_header(header, schema, result)

        row_number = 0
        for record in reader:
            if _is_blank(record):
                continue
            row_number += 1
            values = dict(zip(keys, record))
            overflow = tuple(v for v in record[len(keys):] if v.strip())
            result.rows.append(RawRow(row_number, values, overflow))
    except csv.Error as exc:
        raise MalformedFile(f"CSV error on line {reader.line_num}: {exc}") from exc

    return result


# ── Private helpers ────────────────────────────────────────────────────

def _resolve_header(
    header: list[str],
    schema: EntitySchema,
    result: ParsedFile,
) -> list[str]:
    """Fill header_map / missing_columns and return the per-column row keys."""
    aliases = schema.alias_table()
    keys: list[str] = []
    claimed: dict[str, str] = {}               # logical → original header

    for idx, original in enumerate(header):
        original = original.strip() or f"column_{idx + 1}"
        logical = aliases.get(normalise_header(original))
        if logical is not None:
            if logical in claimed:
                raise MalformedFile(
                    f"Columns '{claimed[logical]}' and '{original}' "
                    f"both map to '{logical}'"
                )
            claimed[logical] = original
        elif original in result.header_map:
            # Repeated unknown header: suffix it so no value is overwritten
            original = f"{original}_{idx + 1}"
        result.header_map[original] = logical
        keys.append(logical or original)

    result.missing_columns = [n for n in schema.required if n not in claimed]
    return keys


def _first_non_blank(reader) -> list[str] | None:
    for record in reader:
        if not _is_blank(record):
            return record
    return None


def _is_blank(record: list[str]) -> bool:
    return not any(v.strip() for v in record)


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        # Strip UTF-8 BOM
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            # Legacy spreadsheet exports
            return raw.decode("cp1252", errors="replace")
    if raw.startswith("\ufeff"):
        return raw[1:]
    return raw
