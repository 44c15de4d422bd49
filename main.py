#!/usr/bin/env python3
"""
BulkImport - Two-phase CSV import service
==========================================

Single-command run:  python main.py

See config.py for all environment-variable tunables.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import Flask, jsonify

import config
from api import api_bp
from db import init_db
from import_engine import ImportCoordinator, StagingStore, StagingSweeper

_SETTINGS = (
    "DB_URL", "SECRET", "TOKEN_TTL_MINUTES", "SWEEP_SECONDS",
    "TOMBSTONE_HOURS", "SAMPLE_LIMIT", "COMMIT_TIMEOUT", "MAX_UPLOAD_MB",
)


def create_app(overrides: dict | None = None) -> Flask:
    """Flask application factory.  `overrides` replaces config.* values."""

    settings = {name: getattr(config, name) for name in _SETTINGS}
    settings.update(overrides or {})

    app = Flask(__name__)
    app.secret_key = settings["SECRET"]
    app.config["MAX_CONTENT_LENGTH"] = settings["MAX_UPLOAD_MB"] * 1024 * 1024

    # ── Initialise database ─────────────────────────────────────────
    init_db(settings["DB_URL"])

    # ── Import staging + coordinator ────────────────────────────────
    store = StagingStore(
        timedelta(minutes=settings["TOKEN_TTL_MINUTES"]),
        tombstone_ttl=timedelta(hours=settings["TOMBSTONE_HOURS"]),
    )
    app.extensions["import_staging"] = store
    app.extensions["import_coordinator"] = ImportCoordinator(
        store,
        sample_limit=settings["SAMPLE_LIMIT"],
        commit_timeout=settings["COMMIT_TIMEOUT"],
    )
    if settings["SWEEP_SECONDS"] > 0:
        sweeper = StagingSweeper(store, settings["SWEEP_SECONDS"])
        sweeper.start()
        app.extensions["import_sweeper"] = sweeper

    # ── Register blueprints ─────────────────────────────────────────
    app.register_blueprint(api_bp)

    # ── Error handlers ──────────────────────────────────────────────
    @app.errorhandler(404)
    def _404(e):
        return jsonify({"message": "not found"}), 404

    @app.errorhandler(500)
    def _500(e):
        return jsonify({"message": "internal server error"}), 500

    return app


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    print("=" * 56)
    print("  BulkImport - CSV import service")
    print("=" * 56)

    app = create_app()

    print(f"  Database: {config.DB_URL}")
    print(f"  Token TTL: {config.TOKEN_TTL_MINUTES} min")
    print(f"\n  http://{config.HOST}:{config.PORT}")
    print("=" * 56)

    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)


if __name__ == "__main__":
    main()
