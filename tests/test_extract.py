import pytest

import catalog.extract as extract_mod
from catalog.errors import ExternalToolError, ValidationError
from catalog.extract import YtDlpExtractor, filter_av_formats, lookup, ytdlp_options

from .helpers import FakeExtractor


def test_filter_keeps_only_muxed_formats():
    formats = [
        {"format_id": "18", "vcodec": "h264", "acodec": "aac"},
        {"format_id": "140", "vcodec": "none", "acodec": "aac"},
        {"format_id": "137", "vcodec": "avc1", "acodec": "none"},
        {"format_id": "sb0", "vcodec": None, "acodec": None},
        {"format_id": "22", "vcodec": "avc1.64001F", "acodec": "mp4a.40.2"},
        "garbage",
    ]
    assert [f["format_id"] for f in filter_av_formats(formats)] == ["18", "22"]


def test_lookup_reshapes_output():
    info = {
        "title": "Demo",
        "formats": [{"vcodec": "h264", "acodec": "aac"}, {"vcodec": "none", "acodec": "aac"}],
    }
    result = lookup(FakeExtractor(info), "https://example.test/watch?v=1")
    assert result == {"videoTitle": "Demo", "videoAndAudioFormats": [{"vcodec": "h264", "acodec": "aac"}]}


@pytest.mark.parametrize("url", [None, "", "   "])
def test_lookup_without_url_does_not_call_tool(url):
    ex = FakeExtractor({"title": "x", "formats": [{}]})
    with pytest.raises(ValidationError):
        lookup(ex, url)
    assert ex.calls == []


@pytest.mark.parametrize("info", [{"title": "x"}, {"title": "x", "formats": []}, {"title": "x", "formats": None}])
def test_lookup_without_formats_is_tool_error(info):
    with pytest.raises(ExternalToolError):
        lookup(FakeExtractor(info), "https://example.test/v")


def test_lookup_propagates_tool_error():
    with pytest.raises(ExternalToolError):
        lookup(FakeExtractor(error="Unsupported URL"), "https://example.test/v")


def test_ytdlp_options_defaults_and_env(monkeypatch):
    monkeypatch.delenv("EXTRACT_REFERER", raising=False)
    monkeypatch.delenv("EXTRACT_USER_AGENT", raising=False)
    opts = ytdlp_options()
    assert opts["nocheckcertificate"] is True
    assert opts["no_warnings"] is True
    assert opts["prefer_free_formats"] is True
    assert opts["skip_download"] is True
    assert opts["http_headers"] == {"Referer": "youtube.com", "User-Agent": "googlebot"}
    monkeypatch.setenv("EXTRACT_USER_AGENT", "curl/8")
    assert ytdlp_options()["http_headers"]["User-Agent"] == "curl/8"


class _FakeYDL:
    last_opts: dict = {}
    result: object = None
    error: Exception | None = None

    def __init__(self, opts):
        type(self).last_opts = opts

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def extract_info(self, url, download=True):
        assert download is False
        if self.error is not None:
            raise self.error
        return self.result

    @staticmethod
    def sanitize_info(info):
        return dict(info)


@pytest.fixture
def fake_ydl(monkeypatch):
    _FakeYDL.result = None
    _FakeYDL.error = None
    monkeypatch.setattr(extract_mod.yt_dlp, "YoutubeDL", _FakeYDL)
    return _FakeYDL


def test_ytdlp_extractor_passes_options(fake_ydl):
    fake_ydl.result = {"title": "T", "formats": []}
    info = YtDlpExtractor(referer="r.example", user_agent="ua").extract("https://example.test/v")
    assert info == {"title": "T", "formats": []}
    assert fake_ydl.last_opts["http_headers"] == {"Referer": "r.example", "User-Agent": "ua"}


def test_ytdlp_extractor_wraps_errors(fake_ydl):
    fake_ydl.error = RuntimeError("ERROR: [generic] Unable to download webpage")
    with pytest.raises(ExternalToolError) as ei:
        YtDlpExtractor().extract("https://example.test/v")
    assert ei.value.detail == "[generic] Unable to download webpage"


def test_ytdlp_extractor_rejects_empty_result(fake_ydl):
    fake_ydl.result = None
    with pytest.raises(ExternalToolError):
        YtDlpExtractor().extract("https://example.test/v")
