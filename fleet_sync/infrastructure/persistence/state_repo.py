from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from fleet_sync.application.state.snapshots import SnapshotCache
from fleet_sync.domain.errors import PersistenceError
from fleet_sync.domain.models.unit import Unit

log = logging.getLogger(__name__)


def _atomic_write_json_sync(path: Path, payload: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    log.debug("State file saved path=%s", path)


class JsonSnapshotCacheRepository:
    """Last-run cache file. Anything unreadable is treated as a cache miss."""

    def __init__(self, file_path: str | Path) -> None:
        self._path = Path(file_path)

    async def load(self) -> SnapshotCache:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, cache: SnapshotCache) -> None:
        await asyncio.to_thread(_atomic_write_json_sync, self._path, cache.to_dict())
        log.info("Snapshot cache saved path=%s units=%s", self._path, len(cache.units))

    def _load_sync(self) -> SnapshotCache:
        if not self._path.exists():
            log.info("Snapshot cache not found path=%s; starting empty", self._path)
            return SnapshotCache.empty()
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
            cache = SnapshotCache.from_dict(document)
        except (OSError, ValueError, TypeError) as exc:
            log.warning("Snapshot cache unreadable path=%s error=%s; treating as empty", self._path, exc)
            return SnapshotCache.empty()
        log.info(
            "Snapshot cache loaded path=%s units=%s total_fleet_size=%s",
            self._path,
            len(cache.units),
            cache.total_fleet_size,
        )
        return cache


class JsonDatasetRepository:
    """Persisted unit dataset, rewritten in full on every save."""

    def __init__(self, file_path: str | Path) -> None:
        self._path = Path(file_path)

    async def load(self) -> list[Unit]:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, dataset: list[Unit]) -> None:
        payload = [unit.to_dict() for unit in dataset]
        await asyncio.to_thread(_atomic_write_json_sync, self._path, payload)
        log.info("Dataset saved path=%s units=%s", self._path, len(dataset))

    def _load_sync(self) -> list[Unit]:
        if not self._path.exists():
            log.info("Dataset not found path=%s; starting empty", self._path)
            return []
        if not self._path.is_file():
            raise PersistenceError(f"Dataset path is not a file: {self._path}")
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.error("Dataset unreadable path=%s error=%s; starting EMPTY, previous data will be overwritten", self._path, exc)
            return []
        if not isinstance(document, list):
            log.error("Dataset is not a JSON array path=%s; starting EMPTY", self._path)
            return []

        units: list[Unit] = []
        for index, item in enumerate(document):
            if not isinstance(item, dict):
                log.warning("Dataset record skipped index=%s reason=not-an-object", index)
                continue
            try:
                units.append(Unit.from_dict(item))
            except (ValueError, TypeError) as exc:
                log.warning("Dataset record skipped index=%s error=%s", index, exc)
        log.info("Dataset loaded path=%s units=%s", self._path, len(units))
        return units
