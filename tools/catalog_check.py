#!/usr/bin/env python3
"""
Report drift between the storage root and the catalog document.

Uploads whose duration probe failed stay on disk without a catalog record;
this lists them, along with records whose file has gone missing.

Usage:
    python tools/catalog_check.py [--root DIR] [--storage DIR] [--catalog FILE] [--json] [--strict]

Notes:
- Respects MEDIA_ROOT / STORAGE_DIR / CATALOG_PATH if set; flags override.
- Exit status is 1 with --strict when anything is out of place.
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catalog import CatalogStore  # noqa: E402
from catalog.pipeline import record_prefix  # noqa: E402


def _resolve(value: str | None, default: Path, base: Path) -> Path:
    if not value:
        return default
    p = Path(value).expanduser()
    return p if p.is_absolute() else base / p


def build_report(storage_root: Path, catalog_path: Path, base: Path | None = None) -> Dict[str, Any]:
    store = CatalogStore(catalog_path)
    records = store.load()
    prefix = record_prefix(storage_root, base)
    cataloged = {r.path for r in records}
    on_disk: set[str] = set()
    if storage_root.is_dir():
        for p in sorted(storage_root.iterdir()):
            if p.is_file():
                on_disk.add(f"{prefix}/{p.name}")
    uncataloged = sorted(on_disk - cataloged)
    missing = [r.model_dump() for r in records if r.path not in on_disk]
    return {
        "storage_root": str(storage_root),
        "catalog_path": str(catalog_path),
        "load_error": store.load_error,
        "counts": {"files": len(on_disk), "videos": len(records)},
        "uncataloged": uncataloged,
        "missing": missing,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Video catalog consistency check")
    parser.add_argument("--root", default=os.environ.get("MEDIA_ROOT", "."), help="Service base directory")
    parser.add_argument("--storage", default=os.environ.get("STORAGE_DIR"), help="Storage root (default: <root>/videos)")
    parser.add_argument("--catalog", default=os.environ.get("CATALOG_PATH"), help="Catalog document (default: <root>/suggest_video.json)")
    parser.add_argument("--json", action="store_true", help="Emit the report as JSON")
    parser.add_argument("--strict", action="store_true", help="Exit 1 when drift is found")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    base = Path(args.root).expanduser().resolve()
    storage = _resolve(args.storage, base / "videos", base)
    catalog_path = _resolve(args.catalog, base / "suggest_video.json", base)
    report = build_report(storage, catalog_path, base)
    if args.json:
        json.dump(report, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        c = report["counts"]
        print(f"{c['files']} files, {c['videos']} catalog entries")
        if report["load_error"]:
            print(f"catalog unreadable: {report['load_error']}")
        for rel in report["uncataloged"]:
            print(f"uncataloged: {rel}")
        for rec in report["missing"]:
            print(f"missing file: {rec['path']} (id={rec['id']})")
    drift = bool(report["uncataloged"] or report["missing"] or report["load_error"])
    return 1 if (args.strict and drift) else 0


if __name__ == "__main__":
    raise SystemExit(main())
