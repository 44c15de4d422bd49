"""
api.routes_import - /api/{entity}/import/* endpoints.

Same three routes for every entity kind (products, categories, brands,
suppliers, customers); only the schema behind them differs.
"""

from flask import Response, current_app, jsonify, request

from api import api_bp
from import_engine import EntityKind, ImportCoordinator, template_csv
from import_engine.errors import MissingUpload, TokenNotFound, UnknownEntity


def _coordinator() -> ImportCoordinator:
    return current_app.extensions["import_coordinator"]


def _entity(slug: str) -> EntityKind:
    try:
        return EntityKind.from_slug(slug)
    except ValueError:
        raise UnknownEntity(f"Unknown import entity '{slug}'") from None


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@api_bp.route("/<entity>/import/validate", methods=["POST"])
def import_validate(entity: str):
    """
    POST /api/{entity}/import/validate

    Multipart: file (CSV), delimiter, create_missing_refs (products only).
    Nothing is written; the response carries a token for commit.
    """
    kind = _entity(entity)

    f = request.files.get("file")
    if f is None:
        raise MissingUpload("No file in upload (expected form field 'file')")

    report = _coordinator().validate(
        kind,
        f.read(),
        request.form.get("delimiter", ","),
        create_missing_refs=_as_bool(request.form.get("create_missing_refs")),
    )
    return jsonify(report.to_dict())


@api_bp.route("/<entity>/import/commit", methods=["POST"])
def import_commit(entity: str):
    """
    POST /api/{entity}/import/commit

    JSON body: {token, insert_valid_only, delimiter, create_missing_refs?}
    """
    kind = _entity(entity)
    data = request.get_json(silent=True) or {}

    token = str(data.get("token") or "").strip()
    if not token:
        raise TokenNotFound("token is required")

    create = data.get("create_missing_refs")
    report = _coordinator().commit(
        kind,
        token,
        insert_valid_only=_as_bool(data.get("insert_valid_only"), default=True),
        delimiter=data.get("delimiter", ","),
        create_missing_refs=None if create is None else _as_bool(create),
    )
    return jsonify(report.to_dict())


@api_bp.route("/<entity>/import/template")
def import_template(entity: str):
    """GET /api/{entity}/import/template - header-only CSV."""
    kind = _entity(entity)
    return Response(
        template_csv(kind),
        mimetype="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={kind.slug}_import_template.csv",
        },
    )
