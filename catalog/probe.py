"""Duration probing via ffprobe."""
from __future__ import annotations

import json
import math
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from .errors import ExternalToolError


class DurationProbe(Protocol):
    def probe(self, path: Path) -> float:
        """Return the media duration of ``path`` in seconds or raise."""
        ...


def ffprobe_cmd() -> Optional[str]:
    return os.environ.get("FFPROBE") or shutil.which("ffprobe")


def ffprobe_available() -> bool:
    """
    Return True if an ffprobe executable is available on PATH (or via FFPROBE env).
    """
    try:
        return bool(ffprobe_cmd())
    except Exception:
        return False


def _timelimit() -> int:
    try:
        return int(os.environ.get("FFPROBE_TIMELIMIT", "600") or 600)
    except Exception:
        return 600


def extract_duration(ffprobe_json: Optional[dict]) -> Optional[float]:
    try:
        if not isinstance(ffprobe_json, dict):
            return None
        d = ffprobe_json.get("format", {}).get("duration")
        if d is None:
            return None
        return float(d)
    except Exception:
        return None


class FFprobeDurationProbe:
    """
    Run ``ffprobe`` against a placed file and read ``format.duration``.

    A non-zero exit, a timeout, unparseable output or a missing duration all
    raise :class:`ExternalToolError` with ffprobe's own message attached.
    """

    def __init__(self, ffprobe: Optional[str] = None, timeout: Optional[int] = None):
        self.ffprobe = ffprobe
        self.timeout = timeout

    def probe(self, path: Path) -> float:
        exe = self.ffprobe or ffprobe_cmd()
        if not exe:
            raise ExternalToolError("ffprobe is not installed", message="Failed to read video duration")
        tl = self.timeout if self.timeout is not None else _timelimit()
        cmd = [
            exe, "-v", "error",
            "-print_format", "json",
            "-show_format",
            str(path),
        ]
        try:
            if tl and tl > 0:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=tl)
            else:
                proc = subprocess.run(cmd, capture_output=True, text=True)
        except subprocess.TimeoutExpired as te:
            raise ExternalToolError(f"ffprobe timed out after {tl}s", message="Failed to read video duration") from te
        except OSError as e:
            raise ExternalToolError(f"could not run ffprobe: {e.strerror or type(e).__name__}", message="Failed to read video duration") from e
        if proc.returncode != 0:
            err = (proc.stderr or "").strip().splitlines()
            # ffprobe prefixes messages with the input path; keep only the reason
            reason = err[-1].replace(str(path), Path(path).name) if err else f"exit code {proc.returncode}"
            raise ExternalToolError(reason, message="Failed to read video duration")
        try:
            payload = json.loads(proc.stdout or "{}")
        except ValueError as e:
            raise ExternalToolError("invalid ffprobe json", message="Failed to read video duration") from e
        dur = extract_duration(payload)
        if dur is None or not math.isfinite(dur) or dur < 0:
            raise ExternalToolError("no duration reported", message="Failed to read video duration")
        return dur


__all__ = [
    "DurationProbe",
    "FFprobeDurationProbe",
    "extract_duration",
    "ffprobe_available",
]
