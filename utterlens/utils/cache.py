"""Transcript cache keyed by audio content, stored next to the recording."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path


CACHE_DIR_NAME = ".utterlens_cache"


def _file_hash(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(8192):
            h.update(chunk)
    return h.hexdigest()[:16]


def _file_mtime_id(path: Path) -> str:
    stat = path.stat()
    return f"{stat.st_mtime:.6f}_{stat.st_size}"


def get_file_id(path: Path, method: str = "hash") -> str:
    if method == "hash":
        return _file_hash(path)
    return _file_mtime_id(path)


def get_cache_dir(input_path: Path) -> Path:
    cache_dir = input_path.parent / CACHE_DIR_NAME
    cache_dir.mkdir(exist_ok=True)
    return cache_dir


def cache_key(input_path: Path, stage: str, method: str = "hash") -> str:
    fid = get_file_id(input_path, method)
    return f"{input_path.stem}_{fid}_{stage}"


def load_cached(input_path: Path, stage: str, method: str = "hash") -> dict | None:
    cache_file = get_cache_dir(input_path) / f"{cache_key(input_path, stage, method)}.json"
    if cache_file.exists():
        with open(cache_file, encoding="utf-8") as f:
            return json.load(f)
    return None


def save_cache(input_path: Path, stage: str, data: dict | list, method: str = "hash") -> Path:
    cache_file = get_cache_dir(input_path) / f"{cache_key(input_path, stage, method)}.json"
    with open(cache_file, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return cache_file
