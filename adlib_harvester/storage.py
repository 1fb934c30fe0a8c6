from __future__ import annotations

import json
import os
import queue
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from loguru import logger

from .models import AdRecord, Checkpoint


class StorageBase(ABC):
    """Where harvested ads and progress checkpoints go."""

    @abstractmethod
    def write_record(self, record: AdRecord) -> None:
        """Persist one ad; a later record with the same ad id supersedes it."""

    @abstractmethod
    def write_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Persist the latest progress snapshot."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""


class JsonlStorage(StorageBase):
    """One camelCase JSON object per ad, appended by a background writer thread.

    Checkpoints replace a single JSON file atomically (write, then rename)."""

    def __init__(self, path: str, checkpoint_path: Optional[str] = None) -> None:
        self._path = path
        self._checkpoint_path = checkpoint_path
        self._checkpoint_lock = threading.Lock()
        self._queue: queue.Queue[Optional[AdRecord]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def write_record(self, record: AdRecord) -> None:
        self._queue.put(record)

    def write_checkpoint(self, checkpoint: Checkpoint) -> None:
        if not self._checkpoint_path:
            return
        with self._checkpoint_lock:
            tmp = f"{self._checkpoint_path}.tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(checkpoint.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp, self._checkpoint_path)

    def close(self) -> None:
        """Drain queued records, then stop the writer."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(item.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
        logger.debug("JSONL writer for {} stopped", self._path)


class MemoryStorage(StorageBase):
    """Keeps everything in memory; re-emitting an ad id overwrites it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: Dict[str, AdRecord] = {}
        self.checkpoints: List[Checkpoint] = []
        self.closed = False

    def write_record(self, record: AdRecord) -> None:
        with self._lock:
            self.records[record.ad_id] = record

    def write_checkpoint(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            self.checkpoints.append(checkpoint)

    def close(self) -> None:
        self.closed = True
