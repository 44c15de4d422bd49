"""
api.errors - JSON error handlers for the API blueprint.

Every failure leaves as {"message": ...} plus any structured payload the
error carries (counts, per-row errors, missing columns).
"""

import logging

from flask import jsonify

from api import api_bp
from import_engine.errors import ImportPipelineError

logger = logging.getLogger(__name__)


@api_bp.errorhandler(ImportPipelineError)
def api_import_error(exc: ImportPipelineError):
    if exc.status >= 500:
        logger.error(f"Import request failed: {exc.message}")
    elif exc.status in (404, 409, 410):
        logger.warning(f"Import token rejected: {exc.message}")
    return jsonify(exc.to_dict()), exc.status


@api_bp.errorhandler(404)
def api_not_found(_e):
    return jsonify({"message": "not found"}), 404


@api_bp.errorhandler(400)
def api_bad_request(_e):
    return jsonify({"message": "bad request"}), 400


@api_bp.errorhandler(413)
def api_too_large(_e):
    return jsonify({"message": "uploaded file is too large"}), 413


@api_bp.errorhandler(500)
def api_server_error(_e):
    return jsonify({"message": "internal server error"}), 500
