"""
import_engine.field_map - Per-entity column schemas and header aliases.

Each EntityKind owns one EntitySchema: the ordered list of logical
fields, how each one is typed and checked, which header spellings map
onto it, and which ORM model a committed row becomes.  Validation and
persistence dispatch on the schema only, never on the entity name.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from db.models import Brand, Category, Customer, Product, Supplier


class EntityKind(enum.Enum):
    PRODUCT  = "product"
    CATEGORY = "category"
    BRAND    = "brand"
    SUPPLIER = "supplier"
    CUSTOMER = "customer"

    @property
    def slug(self) -> str:
        """URL segment, e.g. 'categories'."""
        return _SLUGS[self]

    @classmethod
    def from_slug(cls, value: str) -> "EntityKind":
        """Accept 'products', 'product', 'Products' …  Raises ValueError."""
        key = (value or "").strip().lower()
        for kind, slug in _SLUGS.items():
            if key in (slug, kind.value):
                return kind
        raise ValueError(f"unknown entity {value!r}")


_SLUGS = {
    EntityKind.PRODUCT:  "products",
    EntityKind.CATEGORY: "categories",
    EntityKind.BRAND:    "brands",
    EntityKind.SUPPLIER: "suppliers",
    EntityKind.CUSTOMER: "customers",
}


class FieldType(enum.Enum):
    TEXT      = "text"
    INTEGER   = "integer"
    DECIMAL   = "decimal"
    CHOICE    = "choice"
    EMAIL     = "email"
    REFERENCE = "reference"


# Integer-part digits the storage columns can hold: 64-bit INTEGER, Numeric(12, 2)
MAX_DIGITS: dict[FieldType, int] = {
    FieldType.INTEGER: 18,
    FieldType.DECIMAL: 10,
}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    aliases: tuple[str, ...] = ()
    max_length: Optional[int] = None
    minimum: Optional[int] = None          # numeric lower bound (inclusive)
    maximum: Optional[int] = None          # numeric upper bound (inclusive)
    unique: bool = False                   # within file and in the database
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)
    default: object = None
    # REFERENCE only
    target: Optional[type] = None
    column: Optional[str] = None


@dataclass(frozen=True)
class EntitySchema:
    kind: EntityKind
    model: type
    fields: tuple[FieldSpec, ...]
    derive: Optional[Callable[[dict], dict[str, str]]] = None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def required(self) -> list[str]:
        return [f.name for f in self.fields if f.required]

    @property
    def references(self) -> list[FieldSpec]:
        return [f for f in self.fields if f.type is FieldType.REFERENCE]

    @property
    def unique_fields(self) -> list[FieldSpec]:
        return [f for f in self.fields if f.unique]

    def alias_table(self) -> dict[str, str]:
        """Normalised header spelling → logical field name."""
        table: dict[str, str] = {}
        for spec in self.fields:
            table[spec.name] = spec.name
            for alias in spec.aliases:
                table[normalise_header(alias)] = spec.name
        return table


def normalise_header(header: str) -> str:
    """'  Product Code ' → 'product_code'."""
    return re.sub(r"[\s\-]+", "_", (header or "").strip().lower())


# ── Product price derivation ──────────────────────────────────────────

_CENT = Decimal("0.01")

_PRICE_PAIRS = (
    ("pack_purchase_price", "unit_purchase_price"),
    ("pack_sale_price", "unit_sale_price"),
)


def derive_prices(values: dict) -> dict[str, str]:
    """
    Fill the missing half of each pack/unit price pair from pack_size.

    Returns field errors for derived prices too large to store.
    """
    errors: dict[str, str] = {}
    pack_size = values.get("pack_size")
    if not pack_size:
        return errors
    for pack_key, unit_key in _PRICE_PAIRS:
        pack, unit = values.get(pack_key), values.get(unit_key)
        if pack is not None and unit is None:
            values[unit_key] = (pack / pack_size).quantize(_CENT, rounding=ROUND_HALF_UP)
        elif unit is not None and pack is None:
            derived = unit * pack_size
            if derived and derived.adjusted() >= MAX_DIGITS[FieldType.DECIMAL]:
                errors[pack_key] = f"{pack_key} is too large ({unit_key} x pack_size)"
                continue
            values[pack_key] = derived.quantize(_CENT, rounding=ROUND_HALF_UP)
    return errors


# ── Schemas ────────────────────────────────────────────────────────────

_YES_NO = {
    "yes": ("yes", "y", "true", "1"),
    "no":  ("no", "n", "false", "0"),
}


def _price(name: str, *aliases: str) -> FieldSpec:
    return FieldSpec(name, FieldType.DECIMAL, minimum=0, aliases=aliases)


def _ref(name: str, target: type) -> FieldSpec:
    return FieldSpec(
        name, FieldType.REFERENCE, max_length=150,
        aliases=(f"{name}_id", f"{name}_name"),
        target=target, column=f"{name}_id",
    )


PRODUCT_SCHEMA = EntitySchema(
    kind=EntityKind.PRODUCT,
    model=Product,
    fields=(
        FieldSpec("product_code", required=True, unique=True, max_length=100,
                  aliases=("code", "sku")),
        FieldSpec("name", required=True, unique=True, max_length=200,
                  aliases=("product_name",)),
        FieldSpec("pack_size", FieldType.INTEGER, required=True, minimum=1,
                  aliases=("pack",)),
        FieldSpec("quantity", FieldType.INTEGER, minimum=0, default=0,
                  aliases=("qty",)),
        _price("pack_purchase_price"),
        _price("pack_sale_price"),
        _price("unit_purchase_price"),
        _price("unit_sale_price"),
        _price("avg_price", "average_price"),
        FieldSpec("max_discount", FieldType.INTEGER, minimum=0, maximum=100),
        FieldSpec("narcotic", FieldType.CHOICE, choices=_YES_NO, default="no"),
        FieldSpec("barcode", unique=True, max_length=100, aliases=("ean",)),
        FieldSpec("rack", max_length=100),
        FieldSpec("formulation"),
        FieldSpec("description"),
        _ref("category", Category),
        _ref("brand", Brand),
        _ref("supplier", Supplier),
    ),
    derive=derive_prices,
)

CATEGORY_SCHEMA = EntitySchema(
    kind=EntityKind.CATEGORY,
    model=Category,
    fields=(
        FieldSpec("name", required=True, unique=True, max_length=150,
                  aliases=("category", "category_name")),
    ),
)

BRAND_SCHEMA = EntitySchema(
    kind=EntityKind.BRAND,
    model=Brand,
    fields=(
        FieldSpec("name", required=True, unique=True, max_length=150,
                  aliases=("brand", "brand_name")),
    ),
)

SUPPLIER_SCHEMA = EntitySchema(
    kind=EntityKind.SUPPLIER,
    model=Supplier,
    fields=(
        FieldSpec("name", required=True, unique=True, max_length=150,
                  aliases=("supplier", "supplier_name")),
        FieldSpec("address", max_length=255),
        FieldSpec("phone", max_length=50, aliases=("phone_number", "mobile")),
    ),
)

CUSTOMER_SCHEMA = EntitySchema(
    kind=EntityKind.CUSTOMER,
    model=Customer,
    fields=(
        FieldSpec("name", required=True, unique=True, max_length=150,
                  aliases=("customer", "customer_name")),
        FieldSpec("email", FieldType.EMAIL, unique=True, max_length=200,
                  aliases=("e_mail",)),
        FieldSpec("phone", max_length=50, aliases=("phone_number", "mobile")),
        FieldSpec("address", max_length=255),
    ),
)

SCHEMAS: dict[EntityKind, EntitySchema] = {
    s.kind: s for s in (
        PRODUCT_SCHEMA, CATEGORY_SCHEMA, BRAND_SCHEMA,
        SUPPLIER_SCHEMA, CUSTOMER_SCHEMA,
    )
}


def schema_for(kind: EntityKind) -> EntitySchema:
    return SCHEMAS[kind]
