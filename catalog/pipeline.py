"""Upload processing: validate, name, place, probe, identify, catalog."""
from __future__ import annotations

import errno
import logging
import math
import os
import shutil
import threading
import uuid
from pathlib import Path
from typing import Optional, Union

from . import CatalogStore, VideoRecord
from .errors import CatalogError, ConflictOrIOError, ExternalToolError, UnsupportedMediaType
from .naming import claim_unique_name, sanitize_filename
from .probe import DurationProbe

logger = logging.getLogger(__name__)

ALLOWED_MEDIA_TYPES = frozenset({"video/mp4", "video/quicktime", "audio/mpeg"})


def normalize_media_type(media_type: Optional[str]) -> str:
    return str(media_type or "").split(";", 1)[0].strip().lower()


def record_prefix(storage_root: Path, base: Optional[Path] = None) -> str:
    """
    POSIX prefix for record paths: the storage root relative to ``base`` when it
    lies inside it, else just the storage directory name.
    """
    if base is not None:
        try:
            rel = Path(storage_root).resolve().relative_to(Path(base).resolve())
        except ValueError:
            rel = None
        if rel is not None and rel.parts:
            return rel.as_posix()
    return Path(storage_root).name


def _discard(p: Path) -> None:
    try:
        p.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("[upload] could not remove %s: %s", p.name, e)


def _place(source: Path, dest: Path) -> None:
    try:
        os.replace(source, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
    # staging and storage on different filesystems
    shutil.copyfile(source, dest)
    _discard(source)


class UploadPipeline:
    """
    Drive one upload from a staged file to a catalog record.

    Everything from naming to the catalog append runs under ``lock`` so two
    uploads can neither pick the same final name nor interleave their catalog
    writes. Pass the same lock to every pipeline sharing a storage root.
    """

    def __init__(
        self,
        store: CatalogStore,
        storage_root: Union[str, Path],
        probe: DurationProbe,
        lock: Optional[threading.Lock] = None,
        base: Optional[Union[str, Path]] = None,
    ):
        self.store = store
        self.storage_root = Path(storage_root)
        self.probe = probe
        self.lock = lock or threading.Lock()
        self.prefix = record_prefix(self.storage_root, Path(base) if base is not None else None)

    def validate(self, filename: str, media_type: Optional[str]) -> str:
        mt = normalize_media_type(media_type)
        if mt not in ALLOWED_MEDIA_TYPES:
            raise UnsupportedMediaType(f"unsupported media type: {mt or 'unknown'}")
        return sanitize_filename(filename)

    def process(self, source: Union[str, Path], filename: str, media_type: Optional[str]) -> VideoRecord:
        source = Path(source)
        try:
            name = self.validate(filename, media_type)
        except CatalogError:
            _discard(source)
            raise
        with self.lock:
            final = claim_unique_name(self.storage_root, name)
            dest = self.storage_root / final
            try:
                _place(source, dest)
            except OSError as e:
                _discard(dest)
                raise ConflictOrIOError(f"could not store {final}: {e.strerror or type(e).__name__}") from e
            logger.info("[upload] placed %s as %s", filename, final)

            try:
                seconds = float(self.probe.probe(dest))
            except ExternalToolError:
                logger.warning("[upload] %s placed but not cataloged: probe failed", final)
                raise
            except Exception as e:
                logger.warning("[upload] %s placed but not cataloged: probe failed", final)
                raise ExternalToolError(str(e) or type(e).__name__, message="Failed to read video duration") from e
            if not math.isfinite(seconds) or seconds < 0:
                logger.warning("[upload] %s placed but not cataloged: bad duration %r", final, seconds)
                raise ExternalToolError(f"invalid duration {seconds!r}", message="Failed to read video duration")

            record = VideoRecord(
                id=str(uuid.uuid4()),
                name=Path(final).stem,
                description="",
                duration=int(math.floor(seconds + 0.5)),
                path=f"{self.prefix}/{final}",
            )
            self.store.append(record)
        logger.info("[upload] cataloged %s id=%s duration=%ds", final, record.id, record.duration)
        return record


__all__ = ["ALLOWED_MEDIA_TYPES", "UploadPipeline", "normalize_media_type", "record_prefix"]
