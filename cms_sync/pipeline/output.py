"""JSON output formatting for sync results, status reports and store snapshots.

Sync runs write their SyncResult to ``out/sync_result.json``; the CLI keeps
the local product store between invocations as a JSON snapshot
(``out/products.json``) loaded into an InMemoryProductStore.
"""

import json
import math
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from cms_sync.models.data_models import (
    ConnectionResult,
    HealthStatus,
    LocalProductRecord,
    SyncResult,
    SyncStatusInfo,
)
from cms_sync.providers.base import parse_timestamp
from cms_sync.sync.store import SyncStatusRecord


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class JSONOutputFormatter:
    """
    Formats sync artifacts as JSON-serializable dictionaries.

    Example sync result:
    {
        "success": true,
        "products_added": 2,
        "products_updated": 1,
        "products_removed": 0,
        "errors": [
            {"operation": "upsert", "slug": "desk-3", "message": "Failed to sync product desk-3: ..."}
        ],
        "last_sync": "2024-03-01T12:00:00+00:00",
        "duration_ms": 412.7
    }
    """

    def format_sync_result(self, result: SyncResult) -> Dict[str, Any]:
        return {
            "success": result.success,
            "products_added": result.products_added,
            "products_updated": result.products_updated,
            "products_removed": result.products_removed,
            "errors": [
                {"operation": error.operation.value, "slug": error.slug, "message": error.message}
                for error in result.errors
            ],
            "last_sync": _iso(result.last_sync),
            "duration_ms": round(result.duration_ms, 2),
        }

    def format_sync_status(self, status: SyncStatusInfo) -> Dict[str, Any]:
        days = status.days_since_last_sync
        return {
            "is_healthy": status.is_healthy,
            "last_successful_sync": _iso(status.last_successful_sync),
            "last_attempted_sync": _iso(status.last_attempted_sync),
            "error_count": status.error_count,
            "last_error": status.last_error,
            # JSON has no Infinity; never-synced is reported as null
            "days_since_last_sync": None if math.isinf(days) else round(days, 2),
            "circuit_breaker_open": status.circuit_breaker_open,
        }

    def format_connection(self, connection: ConnectionResult, health: HealthStatus) -> Dict[str, Any]:
        return {
            "connection": {
                "success": connection.success,
                "status": connection.status.value,
                "error": connection.error,
                "response_time_ms": round(connection.response_time_ms, 2),
            },
            "health": {
                "is_healthy": health.is_healthy,
                "response_time_ms": round(health.response_time_ms, 2),
                "last_checked": _iso(health.last_checked),
                "version": health.version,
                "error": health.error,
            },
        }

    def format_records(self, records: List[LocalProductRecord]) -> List[Dict[str, Any]]:
        return [{key: _iso(value) for key, value in asdict(record).items()} for record in records]

    def save(self, data: Any, path: str) -> None:
        """
        Save formatted data to a JSON file.

        Creates parent directories if they don't exist. Uses 2-space
        indentation for readability.
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def save_sync_result(self, result: SyncResult, path: str) -> None:
        self.save(self.format_sync_result(result), path)

    def save_records(self, records: List[LocalProductRecord], path: str) -> None:
        self.save(self.format_records(records), path)

    def load_records(self, path: str) -> List[LocalProductRecord]:
        """Read a snapshot written by save_records; a missing file is an empty store."""
        snapshot = Path(path)
        if not snapshot.exists():
            return []
        with open(snapshot, 'r', encoding='utf-8') as f:
            rows = json.load(f)
        records = []
        for row in rows:
            row["created_at"] = parse_timestamp(row.get("created_at"))
            row["updated_at"] = parse_timestamp(row.get("updated_at"))
            records.append(LocalProductRecord(**row))
        return records

    def save_status_records(self, rows: List[SyncStatusRecord], path: str) -> None:
        self.save([{key: _iso(value) for key, value in asdict(row).items()} for row in rows], path)

    def load_status_records(self, path: str) -> List[SyncStatusRecord]:
        snapshot = Path(path)
        if not snapshot.exists():
            return []
        with open(snapshot, 'r', encoding='utf-8') as f:
            rows = json.load(f)
        for row in rows:
            for key in ("last_successful_sync", "last_attempted_sync"):
                row[key] = parse_timestamp(row[key]) if row.get(key) else None
        return [SyncStatusRecord(**row) for row in rows]
