import json
import time
from pathlib import Path

from catalog.errors import ExternalToolError


class FakeProbe:
    """Deterministic stand-in for ffprobe."""

    def __init__(self, seconds: float = 12.4, error: str | None = None, delay: float = 0.0):
        self.seconds = seconds
        self.error = error
        self.delay = delay
        self.calls: list[Path] = []

    def probe(self, path: Path) -> float:
        self.calls.append(Path(path))
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise ExternalToolError(self.error, message="Failed to read video duration")
        return self.seconds


class FakeExtractor:
    def __init__(self, info: dict | None = None, error: str | None = None):
        self.info = info or {}
        self.error = error
        self.calls: list[str] = []

    def extract(self, url: str) -> dict:
        self.calls.append(url)
        if self.error:
            raise ExternalToolError(self.error, message="Failed to process video")
        return self.info


def _write_catalog(path: Path, videos: list[dict]) -> None:
    path.write_text(json.dumps({"videos": videos}, indent=2))
