from __future__ import annotations
import json
import os
import hashlib
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

APP_FOLDER_NAME = "Chatty-EDU"
BASE_DIR_ENV = "CHATTY_EDU_HOME"

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def unix_ms_now() -> int:
    return time.time_ns() // 1_000_000

def parse_iso(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None

def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

def sha256_bytes(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()

def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()

def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

def pretty_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"

def safe_write_text(path: Path, text: str) -> None:
    ensure_dir(path.parent)
    path.write_text(text, encoding="utf-8", newline="\n")

def atomic_write_text(path: Path, text: str) -> None:
    # readers see either the old file or the new one, never a partial write
    ensure_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")

def env_base_dir(explicit: str | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser().resolve()
    from_env = os.environ.get(BASE_DIR_ENV)
    if from_env:
        return Path(from_env).expanduser().resolve()
    home = Path(os.path.expanduser("~"))
    return (home / APP_FOLDER_NAME).resolve()
