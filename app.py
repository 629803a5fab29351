from __future__ import annotations
import os
import sys
import time
import logging
import tempfile
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, APIRouter, HTTPException, Query, Request, UploadFile, File
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from catalog import CatalogStore
from catalog.errors import CatalogError, ValidationError
from catalog.extract import YtDlpExtractor, lookup
from catalog.pipeline import UploadPipeline
from catalog.probe import FFprobeDurationProbe, ffprobe_available

logger = logging.getLogger(__name__)

# Global server state and config lock
STATE: Dict[str, Any] = {}
_CONFIG_LOCK = threading.Lock()
# Held from naming through catalog append for every upload
_UPLOAD_LOCK = threading.Lock()

_CHUNK = 1024 * 1024


# ------------------------------------------------------------
# Logging categories (coarse grained, opt-in / opt-out)
#   Set LOG_ALL=0 to disable all unless explicitly enabled.
#   Per-category env vars override: LOG_UPLOAD, LOG_CATALOG, LOG_EXTRACT
#   Values: 1 enable, 0 disable. Default: follow LOG_ALL (which defaults to 1).
# ------------------------------------------------------------
def _log_enabled(cat: str) -> bool:
    try:
        base = os.environ.get("LOG_ALL", "1")
        base_on = str(base).lower() not in ("0", "false", "no")
        specific = os.environ.get(f"LOG_{cat.upper()}")
        if specific is not None:
            return str(specific).lower() in ("1", "true", "yes")
        return base_on
    except Exception:
        return True


def _log(cat: str, msg: str) -> None:
    """Emit an application log line for a given category.

    Uses the standard logging pipeline so messages appear under uvicorn's
    handlers and in tee'd logs.
    """
    if not _log_enabled(cat):
        return
    logging.info("[%s] %s", cat, msg)


def _env_path(name: str, default: Path, base: Path) -> Path:
    v = os.environ.get(name)
    if not v or not v.strip():
        return default
    p = Path(v.strip()).expanduser()
    if not p.is_absolute():
        p = base / p
    return p.resolve()


def configure(root: Optional[Path] = None) -> Dict[str, Any]:
    """
    (Re)build server state from the environment.

    MEDIA_ROOT is the service base; uploads live in STORAGE_DIR under it (default
    'videos') and the catalog document at CATALOG_PATH (default
    suggest_video.json). Directories are created; the catalog is loaded.
    """
    with _CONFIG_LOCK:
        base = Path(root or os.environ.get("MEDIA_ROOT", ".")).expanduser().resolve()
        storage_root = _env_path("STORAGE_DIR", base / "videos", base)
        incoming_dir = storage_root.parent / f".{storage_root.name}-incoming"
        catalog_path = _env_path("CATALOG_PATH", base / "suggest_video.json", base)
        storage_root.mkdir(parents=True, exist_ok=True)
        incoming_dir.mkdir(parents=True, exist_ok=True)
        store = CatalogStore(catalog_path)
        store.load()
        STATE["root"] = base
        STATE["storage_root"] = storage_root
        STATE["incoming_dir"] = incoming_dir
        STATE["catalog_path"] = catalog_path
        STATE["store"] = store
        STATE["probe"] = FFprobeDurationProbe()
        STATE["extractor"] = YtDlpExtractor()
        _log("catalog", f"loaded {len(store)} videos from {catalog_path}")
        return STATE


def _pipeline() -> UploadPipeline:
    return UploadPipeline(
        STATE["store"], STATE["storage_root"], STATE["probe"], lock=_UPLOAD_LOCK, base=STATE["root"],
    )


configure()


def api_success(message: Optional[str] = None, status_code: int = 200, **fields):
    payload: Dict[str, Any] = {"status": "success"}
    if message is not None:
        payload["message"] = message
    payload.update(fields)
    return JSONResponse(payload, status_code=status_code)


def api_error(message: str, status_code: int = 400, detail: Optional[str] = None):
    return JSONResponse({"status": "error", "message": message, "detail": detail}, status_code=status_code)


@asynccontextmanager
async def lifespan(app_obj: FastAPI):  # type: ignore[override]
    # Startup
    _log("catalog", f"MEDIA_ROOT={STATE.get('root')} storage={STATE.get('storage_root')}")
    store = STATE.get("store")
    if store is not None and store.load_error:
        logging.getLogger().warning("[startup] catalog recovered as empty: %s", store.load_error)
    yield


app = FastAPI(title="Video Catalog", version="1.0", lifespan=lifespan)
api = APIRouter(prefix="/api")


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    return api_error(exc.message, status_code=exc.status_code, detail=exc.detail or None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict) and exc.detail.get("status") == "error":
        return JSONResponse(exc.detail, status_code=exc.status_code)
    return api_error(str(exc.detail), status_code=exc.status_code)


# -----------------------------
# CORS: allow UI from file:// or other hosts to call the API
# Configure via CORS_ALLOW_ORIGINS (comma-separated). Defaults to * for dev.
# -----------------------------
def _cors_origins() -> list[str]:
    v = os.environ.get("CORS_ALLOW_ORIGINS")
    if not v or not v.strip():
        return ["*"]
    out = [s.strip() for s in v.split(",") if s.strip()]
    return out or ["*"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


############################
# Core API
############################

@api.get("/health")
def health():
    started = getattr(health, "_started_at", None)
    if started is None:
        health._started_at = time.time()  # type: ignore[attr-defined]
        started = health._started_at  # type: ignore[attr-defined]
    uptime = max(0.0, time.time() - float(started))
    store: CatalogStore = STATE["store"]
    return {
        "ok": True,
        "time": time.time(),
        "uptime": uptime,
        "root": str(STATE.get("root")),
        "storage_root": str(STATE.get("storage_root")),
        "catalog": {
            "path": str(STATE.get("catalog_path")),
            "videos": len(store),
            "load_error": store.load_error,
        },
        "ffprobe": ffprobe_available(),
        "version": app.version,
        "pid": os.getpid(),
    }


@api.get("/videos")
def videos_list():
    store: CatalogStore = STATE["store"]
    return api_success(videos=[r.model_dump() for r in store.records()])


def _stage_upload(file: UploadFile) -> Path:
    """Copy the request body into the staging directory and return its path."""
    suffix = Path(str(file.filename or "")).suffix
    fd, tmp_name = tempfile.mkstemp(prefix="upload_", suffix=suffix, dir=str(STATE["incoming_dir"]))
    staged = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = file.file.read(_CHUNK)
                if not chunk:
                    break
                out.write(chunk)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise
    finally:
        try:
            file.file.close()
        except Exception:
            pass
    return staged


@api.post("/upload")
def upload_video(file: Optional[UploadFile] = File(default=None, description="Media file (mp4, mov or mp3)")):
    """
    Store an uploaded file under a collision-free name, probe its duration and
    append a record to the catalog. The record is returned as ``video``.
    """
    if file is None or not str(file.filename or "").strip():
        raise ValidationError("file required", message="File is required")
    staged = _stage_upload(file)
    try:
        record = _pipeline().process(staged, str(file.filename), file.content_type)
    except ValidationError:
        raise
    except CatalogError as e:
        _log("upload", f"failed name={file.filename}: {e.message}: {e.detail}")
        detail = f"{e.message}: {e.detail}" if e.detail else e.message
        return api_error("Failed to process the uploaded video", status_code=e.status_code, detail=detail)
    except Exception as e:
        logger.exception("[upload] unexpected failure for %s", file.filename)
        return api_error("Failed to process the uploaded video", status_code=500, detail=str(e))
    finally:
        staged.unlink(missing_ok=True)
    _log("upload", f"stored {record.path} id={record.id}")
    return api_success(
        "File uploaded and video information extracted",
        video=record.model_dump(),
    )


@api.get("/extract-info")
def extract_info(video_url: Optional[str] = Query(default=None, description="Remote video page URL")):
    """Look up a remote video and return its title and muxed audio+video formats."""
    try:
        result = lookup(STATE["extractor"], video_url)
    except ValidationError:
        raise
    except CatalogError as e:
        _log("extract", f"failed url={video_url}: {e.detail}")
        return api_error("Failed to process video", status_code=e.status_code, detail=e.detail or e.message)
    return api_success(**result)


app.include_router(api)


if __name__ == "__main__":  # pragma: no cover
    try:
        import uvicorn  # type: ignore
    except Exception:  # pragma: no cover
        sys.stderr.write("[app] Missing dependency: uvicorn. Install with: pip install uvicorn\n")
        sys.exit(1)
    # Require an explicit opt-in to start the server when running this file directly
    run_flag = os.environ.get("RUN_SERVER") or os.environ.get("RUN_STANDALONE")
    if str(run_flag).strip().lower() not in {"1", "true", "yes", "y"}:
        sys.stderr.write(
            "[app] Not starting server. To run directly, set RUN_SERVER=1 (or RUN_STANDALONE=1).\n"
        )
        sys.exit(0)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    host = os.environ.get("HOST", "127.0.0.1")
    try:
        port = int(os.environ.get("PORT", "3000") or 3000)
    except Exception:
        port = 3000
    uvicorn.run("app:app", host=host, port=port)
