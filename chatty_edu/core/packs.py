from __future__ import annotations
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from .errors import PackError
from .layout import assigned_dir
from .settings import Settings
from .utils import parse_iso, pretty_json, read_text, safe_write_text, utc_now_iso

PACK_VERSION = "1.0"
TEMPLATE_FILENAME = "homework_pack_template.json"

_log = structlog.get_logger(__name__)


@dataclass
class HomeworkAssignment:
    id: str
    title: str
    subject: str
    year_level: str
    instructions_md: str
    due_at: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    allow_games: bool = False
    allow_ai_premark: bool = False
    max_score: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "HomeworkAssignment":
        if not isinstance(raw, dict):
            raise PackError("assignment must be an object")
        for key in ("id", "title", "subject", "year_level", "instructions_md"):
            if not isinstance(raw.get(key), str):
                raise PackError(f"assignment field '{key}' is missing or not a string")
        return cls(
            id=raw["id"],
            title=raw["title"],
            subject=raw["subject"],
            year_level=raw["year_level"],
            instructions_md=raw["instructions_md"],
            due_at=raw.get("due_at"),
            attachments=list(raw.get("attachments") or []),
            allow_games=bool(raw.get("allow_games", False)),
            allow_ai_premark=bool(raw.get("allow_ai_premark", False)),
            max_score=raw.get("max_score"),
        )


@dataclass
class HomeworkPack:
    school_id: str
    class_id: str
    created_at: str
    assignments: List[HomeworkAssignment] = field(default_factory=list)
    version: str = PACK_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def get_assignment(self, assignment_id: str) -> Optional[HomeworkAssignment]:
        for a in self.assignments:
            if a.id == assignment_id:
                return a
        return None

    @classmethod
    def from_dict(cls, raw: Any) -> "HomeworkPack":
        if not isinstance(raw, dict):
            raise PackError("pack must be a JSON object")
        for key in ("version", "school_id", "class_id", "created_at"):
            if not isinstance(raw.get(key), str):
                raise PackError(f"pack field '{key}' is missing or not a string")
        assignments = raw.get("assignments")
        if not isinstance(assignments, list):
            raise PackError("pack field 'assignments' must be an array")
        return cls(
            version=raw["version"],
            school_id=raw["school_id"],
            class_id=raw["class_id"],
            created_at=raw["created_at"],
            assignments=[HomeworkAssignment.from_dict(a) for a in assignments],
        )


def sample_assignment() -> HomeworkAssignment:
    return HomeworkAssignment(
        id="hw-sample-001",
        title="Sample homework",
        subject="General",
        year_level="7",
        instructions_md="Add your instructions here.\n- Question 1\n- Question 2",
        allow_games=False,
        allow_ai_premark=True,
        max_score=100,
    )


def _write_pack(path: Path, pack: HomeworkPack) -> Path:
    safe_write_text(path, pretty_json(pack.to_dict()))
    return path


def export_pack_template(base: Path, school_id: str, class_id: str) -> Path:
    pack = HomeworkPack(
        school_id=school_id,
        class_id=class_id,
        created_at=utc_now_iso(),
        assignments=[sample_assignment()],
    )
    return _write_pack(assigned_dir(base) / TEMPLATE_FILENAME, pack)


def create_pack(base: Path, school_id: str, class_id: str, assignments: Sequence[HomeworkAssignment]) -> Path:
    pack = HomeworkPack(
        school_id=school_id,
        class_id=class_id,
        created_at=utc_now_iso(),
        assignments=list(assignments),
    )
    filename = f"homework_pack_{class_id}_{pack.created_at.replace(':', '-')}.json"
    return _write_pack(assigned_dir(base) / filename, pack)


def load_pack(path: Path) -> HomeworkPack:
    try:
        raw = json.loads(read_text(path))
    except (OSError, json.JSONDecodeError) as e:
        raise PackError(f"pack parse error in {path.name}: {e}") from e
    return HomeworkPack.from_dict(raw)


def is_pack_file(path: Path) -> bool:
    return path.is_file() and path.suffix == ".json" and "homework_pack" in path.name


def pack_timestamp(pack: HomeworkPack, path: Path) -> float:
    """Creation time in epoch seconds, falling back to the file's mtime."""
    created = parse_iso(pack.created_at)
    if created is not None:
        return created.timestamp()
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def find_latest_pack(base: Path) -> Optional[Tuple[Path, HomeworkPack]]:
    directory = assigned_dir(base)
    if not directory.exists():
        return None

    newest: Optional[Tuple[Path, HomeworkPack, float]] = None
    for path in sorted(directory.iterdir()):
        if not is_pack_file(path):
            continue
        try:
            pack = load_pack(path)
        except PackError as e:
            _log.warning("pack_skipped", path=str(path), error=str(e))
            continue
        ts = pack_timestamp(pack, path)
        if newest is None or ts > newest[2]:
            newest = (path, pack, ts)

    if newest is None:
        return None
    return newest[0], newest[1]


def apply_pack_policy(settings: Settings, pack: HomeworkPack) -> bool:
    """Turn games off when any assignment in the pack disallows them."""
    if any(not a.allow_games for a in pack.assignments):
        settings.game.enabled = False
        settings.game.games_in_class_allowed = False
        return True
    return False
