"""One JSON file per (assignment, student) under ``<base>/homework/completed``.

Submissions follow single-attempt semantics: the file name carries no attempt
number, so exporting again for the same pair replaces the earlier file. The
replacement is logged with both final hashes; pass ``overwrite=False`` to
refuse it instead.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .errors import IntegrityError, SubmissionExistsError, SubmissionParseError
from .hashchain import verify_record
from .layout import completed_dir, submission_filename
from .submission import SubmissionRecord
from .utils import atomic_write_text, ensure_dir, pretty_json, read_text

_log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SubmissionSummary:
    assignment_id: str
    student_id: str
    student_name: str
    score: Optional[int]
    feedback: Optional[str]
    submitted_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "score": self.score,
            "feedback": self.feedback,
            "submitted_at": self.submitted_at,
        }


def summarize(record: SubmissionRecord) -> SubmissionSummary:
    premark = record.ai_premark
    return SubmissionSummary(
        assignment_id=record.assignment_id,
        student_id=record.student_id,
        student_name=record.student_name,
        score=premark.score if premark else None,
        feedback=premark.feedback if premark else None,
        submitted_at=record.submitted_at,
    )


def load_submission(path: Path) -> SubmissionRecord:
    try:
        raw = json.loads(read_text(path))
    except json.JSONDecodeError as e:
        raise SubmissionParseError(f"invalid JSON: {e}", path) from e
    except UnicodeDecodeError as e:
        raise SubmissionParseError(f"not UTF-8 text: {e}", path) from e
    try:
        return SubmissionRecord.from_dict(raw)
    except SubmissionParseError as e:
        raise SubmissionParseError(str(e), path) from e


class SubmissionStore:
    def __init__(self, base: Path) -> None:
        self.base = base
        self.directory = completed_dir(base)

    def path_for(self, assignment_id: str, student_id: str) -> Path:
        return self.directory / submission_filename(assignment_id, student_id)

    def save(self, record: SubmissionRecord, overwrite: bool = True) -> Path:
        ensure_dir(self.directory)
        path = self.path_for(record.assignment_id, record.student_id)
        if path.exists():
            if not overwrite:
                raise SubmissionExistsError(path)
            previous_hash = None
            try:
                previous_hash = load_submission(path).final_hash
            except (OSError, SubmissionParseError):
                pass
            _log.warning(
                "submission_overwritten",
                path=str(path),
                previous_final_hash=previous_hash,
                final_hash=record.final_hash,
            )
        atomic_write_text(path, pretty_json(record.to_dict()))
        _log.info("submission_saved", path=str(path), final_hash=record.final_hash)
        return path

    def load(self, path: Path) -> SubmissionRecord:
        return load_submission(path)

    def load_all(self, directory: Optional[Path] = None) -> List[SubmissionRecord]:
        directory = directory or self.directory
        if not directory.exists():
            return []
        records: List[SubmissionRecord] = []
        for path in sorted(directory.glob("*.json")):
            if not path.is_file():
                continue
            try:
                records.append(load_submission(path))
            except (OSError, SubmissionParseError) as e:
                _log.warning("submission_skipped", path=str(path), error=str(e))
        return records

    def summaries(self, directory: Optional[Path] = None) -> List[SubmissionSummary]:
        return [summarize(r) for r in self.load_all(directory)]

    def audit(self, directory: Optional[Path] = None) -> List[Tuple[SubmissionRecord, Optional[IntegrityError]]]:
        out: List[Tuple[SubmissionRecord, Optional[IntegrityError]]] = []
        for record in self.load_all(directory):
            try:
                verify_record(record)
            except IntegrityError as e:
                _log.warning(
                    "integrity_check_failed",
                    assignment_id=record.assignment_id,
                    student_id=record.student_id,
                    error=e.code,
                    index=e.index,
                )
                out.append((record, e))
                continue
            out.append((record, None))
        return out
