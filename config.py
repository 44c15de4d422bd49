"""
BulkImport - Centralised configuration.

All tunables live here.  Every other module imports from config
instead of reading os.environ directly.
"""

from __future__ import annotations
import os
from pathlib import Path

import dotenv


# ── Paths ──────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent

# Values already in the environment win over .env
dotenv.load_dotenv(BASE_DIR / ".env")

# ── Database ───────────────────────────────────────────────────────────
DB_URL = os.environ.get("BULKIMPORT_DB", f"sqlite:///{BASE_DIR / 'bulkimport.sqlite'}")

# ── Server ─────────────────────────────────────────────────────────────
HOST   = os.environ.get("BULKIMPORT_HOST", "0.0.0.0")
PORT   = int(os.environ.get("BULKIMPORT_PORT", "5000"))
DEBUG  = os.environ.get("BULKIMPORT_DEBUG", "0") == "1"
SECRET = os.environ.get("BULKIMPORT_SECRET", "bulkimport-dev-key-change-in-prod")

# ── Logging ────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("BULKIMPORT_LOG_LEVEL", "INFO").upper()

# ── Import staging ─────────────────────────────────────────────────────
# A validated batch lives this long before commit must happen
TOKEN_TTL_MINUTES = int(os.environ.get("BULKIMPORT_TOKEN_TTL_MINUTES", "30"))
# Eager eviction interval for expired batches
SWEEP_SECONDS     = int(os.environ.get("BULKIMPORT_SWEEP_SECONDS", "60"))
# Consumed / expired tokens are remembered this long (no rows kept)
TOMBSTONE_HOURS   = int(os.environ.get("BULKIMPORT_TOMBSTONE_HOURS", "24"))

# ── Import limits ──────────────────────────────────────────────────────
SAMPLE_LIMIT      = int(os.environ.get("BULKIMPORT_SAMPLE_LIMIT", "10"))
COMMIT_TIMEOUT    = float(os.environ.get("BULKIMPORT_COMMIT_TIMEOUT", "60"))
MAX_UPLOAD_MB     = int(os.environ.get("BULKIMPORT_MAX_UPLOAD_MB", "10"))
