from __future__ import annotations

import asyncio
import contextlib
import json
import os
import threading
from pathlib import Path
from typing import Optional

from traefik_manager.logger import get_logger
from traefik_manager.metrics import record_snapshot_save
from traefik_manager.services.store import ResourceStore

_logger = get_logger("services.persistence")


class SnapshotError(RuntimeError):
    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = path
        self.detail = detail


class SnapshotPersister:
    """Writes the store to one JSON file.

    Mutations post a save signal into a queue of depth one, so a burst of
    changes collapses into a single pending write. A second loop saves on a
    fixed interval regardless of changes.
    """

    def __init__(self, store: ResourceStore, path: str | Path, save_interval: float = 0.0) -> None:
        self._store = store
        self._path = Path(path)
        self._save_interval = save_interval
        self._signals: Optional[asyncio.Queue[None]] = None
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def load(self) -> bool:
        """Load the snapshot into the store; returns False when no file exists yet."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            _logger.info("snapshot.missing", "No snapshot file, starting empty", path=str(self._path))
            return False
        with _logger.operation("snapshot.load", "Loaded snapshot", path=str(self._path)) as operation:
            try:
                document = json.loads(self._path.read_text(encoding="utf-8") or "{}")
            except (OSError, json.JSONDecodeError) as exc:
                raise SnapshotError(self._path, f"unreadable snapshot: {exc}") from exc
            if not isinstance(document, dict):
                raise SnapshotError(self._path, "snapshot root must be an object")
            operation.step("parse", "Parsed snapshot document")
            try:
                self._store.load(document)
            except ValueError as exc:
                raise SnapshotError(self._path, f"invalid snapshot: {exc}") from exc
            operation.step("restore", "Restored resources", **self._store.counts())
        return True

    def save(self, trigger: str = "manual") -> None:
        tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        try:
            with self._write_lock:
                document = self._store.snapshot()
                data = json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False)
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(data.encode("utf-8"))
                os.replace(tmp_path, self._path)
        except OSError:
            record_snapshot_save(trigger=trigger, ok=False)
            raise
        record_snapshot_save(trigger=trigger, ok=True)
        _logger.debug("snapshot.saved", "Snapshot written", path=str(self._path), trigger=trigger)

    def request_save(self) -> None:
        """Post a save signal; dropped when one is already pending."""
        if self._signals is None:
            return
        with contextlib.suppress(asyncio.QueueFull):
            self._signals.put_nowait(None)

    async def start(self) -> None:
        if self._tasks:
            return
        self._stop = asyncio.Event()
        signals: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._signals = signals
        self._tasks.append(asyncio.create_task(self._drain_loop(signals)))
        if self._save_interval > 0:
            self._tasks.append(asyncio.create_task(self._periodic_loop()))
        _logger.info(
            "snapshot.start",
            "Started snapshot persister",
            path=str(self._path),
            interval_seconds=self._save_interval,
        )

    async def stop(self) -> None:
        self._stop.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._signals = None
        try:
            self.save(trigger="shutdown")
        except OSError as exc:
            _logger.error(
                "snapshot.final_error",
                "Final snapshot save failed",
                path=str(self._path),
                error=str(exc),
            )
            return
        _logger.info("snapshot.stop", "Stopped snapshot persister", path=str(self._path))

    async def _drain_loop(self, signals: asyncio.Queue[None]) -> None:
        while not self._stop.is_set():
            await signals.get()
            await self._save_in_thread("change")

    async def _periodic_loop(self) -> None:
        interval = self._save_interval
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except TimeoutError:
                await self._save_in_thread("interval")

    async def _save_in_thread(self, trigger: str) -> None:
        try:
            await asyncio.to_thread(self.save, trigger)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _logger.exception(
                "snapshot.error",
                "Snapshot save failed",
                path=str(self._path),
                trigger=trigger,
                error_type=type(exc).__name__,
            )
