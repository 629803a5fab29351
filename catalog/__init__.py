"""Video catalog: records kept in memory and mirrored to one JSON document."""
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as _SchemaError

from .errors import ConflictOrIOError, PersistenceError

logger = logging.getLogger(__name__)


class VideoRecord(BaseModel):
    id: str
    name: str
    description: str = ""
    duration: int = Field(0, ge=0)
    path: str


def _read_document(path: Path) -> Tuple[List[VideoRecord], Optional[str]]:
    """
    Parse the persisted document.

    Returns ``(records, error)``. A missing document is an empty catalog with no
    error; anything unreadable is an empty catalog plus a diagnostic string.
    Bad entries inside an otherwise valid document are dropped one by one.
    """
    if not path.exists():
        return [], None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError, RecursionError) as e:
        return [], f"failed to parse {path.name}: {e}"
    if not isinstance(raw, dict) or not isinstance(raw.get("videos", []), list):
        return [], f"unexpected document shape in {path.name}"
    out: List[VideoRecord] = []
    seen_ids: set[str] = set()
    seen_paths: set[str] = set()
    for i, entry in enumerate(raw.get("videos") or []):
        try:
            rec = VideoRecord.model_validate(entry)
        except _SchemaError as e:
            logger.warning("[catalog] skipping malformed entry #%d: %s", i, e.errors()[0].get("msg"))
            continue
        if rec.id in seen_ids or rec.path in seen_paths:
            logger.warning("[catalog] skipping duplicate entry #%d id=%s path=%s", i, rec.id, rec.path)
            continue
        seen_ids.add(rec.id)
        seen_paths.add(rec.path)
        out.append(rec)
    return out, None


class CatalogStore:
    """
    Owns the ordered list of :class:`VideoRecord` and the document it is
    mirrored to. All mutation goes through :meth:`append`, which holds the
    store lock across the in-memory change and the full-document rewrite.
    """

    def __init__(self, document_path: Union[str, Path]):
        self.path = Path(document_path).expanduser()
        self._records: List[VideoRecord] = []
        self._lock = threading.Lock()
        self.load_error: Optional[str] = None

    def load(self) -> List[VideoRecord]:
        records, error = _read_document(self.path)
        if error:
            logger.warning("[catalog] %s; starting with an empty catalog", error)
        with self._lock:
            self._records = records
            self.load_error = error
        return list(records)

    def append(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            for existing in self._records:
                if existing.id == record.id:
                    raise ConflictOrIOError(f"duplicate video id {record.id}")
                if existing.path == record.path:
                    raise ConflictOrIOError(f"duplicate video path {record.path}")
            self._records.append(record)
            try:
                self._write_locked()
            except OSError as e:
                self._records.pop()
                raise PersistenceError(f"could not write catalog: {e.strerror or type(e).__name__}") from e
        return record

    def _write_locked(self) -> None:
        payload: dict[str, Any] = {"videos": [r.model_dump() for r in self._records]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(json.dumps(payload, indent=2))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except OSError:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise

    def records(self) -> List[VideoRecord]:
        with self._lock:
            return list(self._records)

    def get(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            for r in self._records:
                if r.id == video_id:
                    return r
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[VideoRecord]:
        return iter(self.records())


__all__ = [
    "VideoRecord",
    "CatalogStore",
]
