import pytest

from import_engine.csv_parser import normalize_delimiter, parse
from import_engine.errors import InvalidDelimiter, MalformedFile
from import_engine.field_map import CATEGORY_SCHEMA, PRODUCT_SCHEMA


def test_header_aliases_are_case_insensitive():
    text = "Code,Product Name,PACK_SIZE,Brand_ID\nA1,Aspirin,10,Acme\n"
    parsed = parse(text, ",", PRODUCT_SCHEMA)

    assert parsed.header_map == {
        "Code": "product_code",
        "Product Name": "name",
        "PACK_SIZE": "pack_size",
        "Brand_ID": "brand",
    }
    assert parsed.rows[0].fields == {
        "product_code": "A1", "name": "Aspirin", "pack_size": "10", "brand": "Acme",
    }


def test_sku_alias_maps_to_product_code():
    parsed = parse("sku;name;pack_size\nX-9;Gauze;5\n", ";", PRODUCT_SCHEMA)
    assert parsed.rows[0].fields["product_code"] == "X-9"


def test_unknown_columns_are_kept_but_flagged():
    parsed = parse("name,colour\nTablets,red\n", ",", CATEGORY_SCHEMA)

    assert parsed.rows[0].fields == {"name": "Tablets", "colour": "red"}
    assert parsed.unknown_columns == ["colour"]


@pytest.mark.parametrize("content", [b"", "", "   \n\n", "name\n", "name\n\n\n"])
def test_empty_or_header_only_file_yields_no_rows(content):
    parsed = parse(content, ",", CATEGORY_SCHEMA)
    assert parsed.rows == []


def test_blank_lines_do_not_consume_row_numbers():
    parsed = parse("name\nA\n\n  \nB\n\n\n", ",", CATEGORY_SCHEMA)
    assert [(r.row_number, r.fields["name"]) for r in parsed.rows] == [(1, "A"), (2, "B")]


@pytest.mark.parametrize("value, expected", [
    (",", ","), (";", ";"), ("|", "|"), ("\t", "\t"), ("\\t", "\t"), ("TAB", "\t"),
])
def test_supported_delimiters(value, expected):
    assert normalize_delimiter(value) == expected


@pytest.mark.parametrize("value", [":", "::", "x", "", None])
def test_unsupported_delimiter_is_rejected(value):
    with pytest.raises(InvalidDelimiter):
        normalize_delimiter(value)


def test_parse_rejects_unsupported_delimiter_before_reading():
    with pytest.raises(InvalidDelimiter):
        parse("name\nA\n", ":", CATEGORY_SCHEMA)


def test_tab_separated_file():
    parsed = parse("product_code\tname\tpack_size\nA\tAlpha\t2\n", "\\t", PRODUCT_SCHEMA)
    assert parsed.rows[0].fields["pack_size"] == "2"


def test_missing_required_column_is_left_to_row_validation():
    parsed = parse("product_code,name\nA,Alpha\n", ",", PRODUCT_SCHEMA)

    assert parsed.missing_columns == ["pack_size"]
    assert parsed.rows[0].fields == {"product_code": "A", "name": "Alpha"}


def test_header_only_file_without_required_columns_is_empty():
    parsed = parse(b"product_code,name\n", ",", PRODUCT_SCHEMA)

    assert parsed.rows == []
    assert parsed.missing_columns == ["pack_size"]


def test_repeated_unknown_headers_keep_every_value():
    parsed = parse("name,note,note\nTablets,first,second\n", ",", CATEGORY_SCHEMA)

    assert parsed.rows[0].fields == {"name": "Tablets", "note": "first", "note_3": "second"}
    assert parsed.unknown_columns == ["note", "note_3"]


def test_two_columns_for_one_field_is_malformed():
    with pytest.raises(MalformedFile, match="both map to 'product_code'"):
        parse("code,sku,name,pack_size\nA,B,C,1\n", ",", PRODUCT_SCHEMA)


def test_broken_quoting_is_malformed():
    with pytest.raises(MalformedFile):
        parse('name\n"Tablets"x\n', ",", CATEGORY_SCHEMA)


def test_utf8_bom_is_stripped():
    parsed = parse(b"\xef\xbb\xbfname\nTablets\n", ",", CATEGORY_SCHEMA)
    assert parsed.header_map == {"name": "name"}


def test_cp1252_fallback():
    parsed = parse(b"name\nCaf\xe9\n", ",", CATEGORY_SCHEMA)
    assert parsed.rows[0].fields["name"] == "Café"


def test_values_beyond_header_are_reported_as_overflow():
    parsed = parse("name\nTablets,extra\n", ",", CATEGORY_SCHEMA)
    assert parsed.rows[0].overflow == ("extra",)


def test_raw_values_are_not_modified():
    parsed = parse("name\n  Tablets  \n", ",", CATEGORY_SCHEMA)
    assert parsed.rows[0].fields["name"] == "  Tablets  "
