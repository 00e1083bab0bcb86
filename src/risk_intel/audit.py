"""Append-only store for analyst decisions on scan findings.

The scan pipeline never touches this store; the HTTP and CLI layers receive
one by injection and only call ``append`` and ``list``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List, Optional, Protocol

from pydantic import ValidationError

from .config import Settings, get_settings
from .file_lock import append_line, locked_path
from .models import ActionRequest, AuditRecord

logger = logging.getLogger(__name__)


class AuditStore(Protocol):
    def append(self, record: AuditRecord) -> AuditRecord: ...

    def list(self) -> List[AuditRecord]: ...


def record_action(store: AuditStore, action: ActionRequest) -> AuditRecord:
    """Stamp an analyst action and append it to the store."""
    record = AuditRecord(
        **action.model_dump(),
        timestamp=datetime.now(timezone.utc),
    )
    return store.append(record)


class InMemoryAuditStore:
    """Process-lifetime store; records vanish on restart."""

    def __init__(self) -> None:
        self._records: List[AuditRecord] = []
        self._lock = Lock()

    def append(self, record: AuditRecord) -> AuditRecord:
        with self._lock:
            self._records.append(record)
        return record

    def list(self) -> List[AuditRecord]:
        with self._lock:
            return list(reversed(self._records))


class JsonlAuditStore:
    """One JSON object per line; newest records are read back first."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def append(self, record: AuditRecord) -> AuditRecord:
        append_line(self.path, record.model_dump_json(by_alias=True))
        return record

    def list(self) -> List[AuditRecord]:
        if not self.path.exists():
            return []
        with locked_path(self.path):
            lines = self.path.read_text(encoding="utf-8").splitlines()
        records: List[AuditRecord] = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                records.append(AuditRecord.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                logger.warning("Skipping unreadable audit line %d in %s", lineno, self.path)
        records.reverse()
        return records


def build_audit_store(settings: Optional[Settings] = None) -> AuditStore:
    settings = settings or get_settings()
    if settings.audit_log_path:
        return JsonlAuditStore(settings.audit_log_path)
    return InMemoryAuditStore()
