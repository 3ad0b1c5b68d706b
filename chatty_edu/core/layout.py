from __future__ import annotations
from pathlib import Path
from typing import Optional, Tuple
from .errors import InvalidIdentifierError
from .utils import ensure_dir, env_base_dir

BASE_SUBDIRS: Tuple[Tuple[str, ...], ...] = (
    ("homework",),
    ("homework", "assigned"),
    ("homework", "completed"),
    ("revision",),
    ("modules",),
    ("logs",),
    ("config",),
    ("runtime",),
    ("themes",),
    ("keys",),
)

def base_root(base_dir: Optional[str] = None) -> Path:
    return env_base_dir(base_dir)

def ensure_base_folders(base: Path) -> Path:
    ensure_dir(base)
    for parts in BASE_SUBDIRS:
        ensure_dir(base.joinpath(*parts))
    return base

def assigned_dir(base: Path) -> Path:
    return base / "homework" / "assigned"

def completed_dir(base: Path) -> Path:
    return base / "homework" / "completed"

def modules_dir(base: Path) -> Path:
    return base / "modules"

def keys_dir(base: Path) -> Path:
    return base / "keys"

def settings_path(base: Path) -> Path:
    return base / "config" / "settings.json"

def default_model_path(base: Path) -> Path:
    return base / "runtime" / "model.gguf"

_UNSAFE_ID_CHARS = ("/", "\\", "\x00")

def check_identifier(value: str, name: str) -> str:
    if any(c in value for c in _UNSAFE_ID_CHARS):
        raise InvalidIdentifierError(f"{name} must not contain path separators: {value!r}")
    return value

def submission_filename(assignment_id: str, student_id: str) -> str:
    assignment_id = check_identifier(assignment_id, "assignment_id")
    student_id = check_identifier(student_id, "student_id")
    return f"submission_{assignment_id}_{student_id}.json"
