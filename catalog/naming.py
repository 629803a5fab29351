"""Collision-free filenames inside the storage root."""
from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Iterator, Union

from .errors import ConflictOrIOError, ValidationError


def _candidates(desired: str) -> Iterator[str]:
    p = Path(desired)
    stem, ext = p.stem, p.suffix
    yield desired
    counter = 0
    while True:
        counter += 1
        yield f"{stem}_{counter}{ext}"


def sanitize_filename(raw: str) -> str:
    """Reduce a client-supplied filename to a bare basename."""
    name = str(raw or "").strip().replace("\\", "/")
    if "/" in name:
        name = name.rsplit("/", 1)[-1].strip()
    if name in {"", ".", ".."}:
        raise ValidationError("filename required", message="File is required")
    return name


def resolve_unique_name(directory: Union[str, Path], desired: str) -> str:
    """
    Return ``desired`` if nothing by that name exists under ``directory``,
    else the first free ``stem_N.ext`` for N = 1, 2, ...

    Only probes; nothing is created, so two callers racing on the same name
    can both receive the same answer. Callers must serialize creation or use
    :func:`claim_unique_name`.
    """
    d = Path(directory)
    for candidate in _candidates(desired):
        if not os.path.lexists(d / candidate):
            return candidate
    raise AssertionError("unreachable")  # pragma: no cover


def claim_unique_name(directory: Union[str, Path], desired: str) -> str:
    """
    Same probe order as :func:`resolve_unique_name`, but each candidate is
    taken with an exclusive create. On return an empty placeholder file named
    by the result exists under ``directory``; the caller owns it.
    """
    d = Path(directory)
    for candidate in _candidates(desired):
        try:
            fd = os.open(d / candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            continue
        except OSError as e:
            if e.errno == errno.EEXIST:
                continue
            raise ConflictOrIOError(f"could not reserve {candidate}: {e.strerror or type(e).__name__}") from e
        os.close(fd)
        return candidate
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["sanitize_filename", "resolve_unique_name", "claim_unique_name"]
