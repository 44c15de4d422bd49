"""
import_engine - Two-phase CSV import pipeline (validate → stage → commit).

Public API:
    ImportCoordinator(store).validate(kind, file, delimiter) → ValidationReport
    ImportCoordinator(store).commit(kind, token, …)          → CommitReport
    StagingStore / StagingSweeper                            → token lifecycle
    EntityKind                                               → product, category, …
"""

from import_engine.field_map import EntityKind, schema_for              # noqa: F401
from import_engine.importer import ImportCoordinator, template_csv      # noqa: F401
from import_engine.report import CommitReport, ValidationReport         # noqa: F401
from import_engine.staging import StagingStore, StagingSweeper          # noqa: F401
