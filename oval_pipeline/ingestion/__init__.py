"""
Ingestion layer for the OVAL advisory pipeline.

Provides updaters that download vendor OVAL feeds and turn them into
vulnerability records:
- Oracle Linux ELSA OVAL feed

The UPDATERS registry maps updater ids (as used in config.yaml) to classes.
"""
from .base_updater import (
    BaseUpdater,
    DocumentParseError,
    TransportError,
    UpdateResponse,
    UpdaterError,
    UpdaterHealth,
)
from .oracle_updater import OracleUpdater, compare_advisory_ids, load_cursor
from .oval_decoder import decode_advisories

UPDATERS = {
    OracleUpdater.updater_id: OracleUpdater,
}

__all__ = [
    "BaseUpdater",
    "UpdateResponse",
    "UpdaterHealth",
    "UpdaterError",
    "TransportError",
    "DocumentParseError",
    "OracleUpdater",
    "compare_advisory_ids",
    "load_cursor",
    "decode_advisories",
    "UPDATERS",
]
