"""Remote video metadata lookup through yt-dlp."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Protocol

import yt_dlp

from .errors import ExternalToolError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REFERER = "youtube.com"
DEFAULT_USER_AGENT = "googlebot"


class Extractor(Protocol):
    def extract(self, url: str) -> Dict[str, Any]:
        """Return the tool's info dict for ``url`` or raise."""
        ...


def ytdlp_options(referer: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
    return {
        "skip_download": True,
        "quiet": True,
        "no_warnings": True,
        "noprogress": True,
        "nocheckcertificate": True,
        "prefer_free_formats": True,
        "http_headers": {
            "Referer": referer or os.environ.get("EXTRACT_REFERER") or DEFAULT_REFERER,
            "User-Agent": user_agent or os.environ.get("EXTRACT_USER_AGENT") or DEFAULT_USER_AGENT,
        },
    }


class YtDlpExtractor:
    def __init__(self, referer: Optional[str] = None, user_agent: Optional[str] = None):
        self.referer = referer
        self.user_agent = user_agent

    def extract(self, url: str) -> Dict[str, Any]:
        opts = ytdlp_options(self.referer, self.user_agent)
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            msg = str(e).strip()
            if msg.startswith("ERROR: "):
                msg = msg[len("ERROR: "):]
            raise ExternalToolError(msg or type(e).__name__, message="Failed to process video") from e
        if not isinstance(info, dict):
            raise ExternalToolError("yt-dlp returned no info", message="Failed to process video")
        # strip non-JSON values (postprocessor hooks, ...) before it reaches a response
        return yt_dlp.YoutubeDL.sanitize_info(info)


def _has_codec(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != "" and value.strip().lower() != "none"


def filter_av_formats(formats: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep only formats carrying both a video and an audio codec."""
    return [
        f for f in formats
        if isinstance(f, dict) and _has_codec(f.get("vcodec")) and _has_codec(f.get("acodec"))
    ]


def lookup(extractor: Extractor, url: Optional[str]) -> Dict[str, Any]:
    """
    Resolve ``url`` with ``extractor`` and reshape the result into
    ``{"videoTitle", "videoAndAudioFormats"}``. A blank URL fails before the
    extractor is touched.
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("video_url is required", message="Missing video_url parameter")
    info = extractor.extract(url)
    formats = info.get("formats")
    if not isinstance(formats, list) or not formats:
        raise ExternalToolError("no formats found", message="Failed to process video")
    av = filter_av_formats(formats)
    logger.info("[extract] %s formats=%d av=%d", url, len(formats), len(av))
    return {
        "videoTitle": info.get("title"),
        "videoAndAudioFormats": av,
    }


__all__ = [
    "Extractor",
    "YtDlpExtractor",
    "ytdlp_options",
    "filter_av_formats",
    "lookup",
]
