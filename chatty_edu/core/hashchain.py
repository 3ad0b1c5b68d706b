from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

import structlog

from .errors import EmptyChainError, FinalHashMismatchError, HashMismatchError, IntegrityError
from .events import GENESIS_HASH, KIND_FINALIZE, Event, encode_event
from .utils import sha256_bytes

if TYPE_CHECKING:
    from .submission import SubmissionRecord

_log = structlog.get_logger(__name__)


def event_hash(previous_hash: str, encoding: bytes) -> str:
    return sha256_bytes(previous_hash.encode("utf-8") + encoding)


def build_event(
    previous_hash: str,
    timestamp: int,
    kind: str,
    question_id: Optional[str] = None,
    payload: Optional[str] = None,
) -> Event:
    encoding = encode_event(timestamp, kind, question_id, payload, previous_hash)
    return Event(
        timestamp=timestamp,
        kind=kind,
        previous_hash=previous_hash,
        hash=event_hash(previous_hash, encoding),
        question_id=question_id,
        payload=payload,
    )


def verify_events(events: Sequence[Event]) -> str:
    """Walk the chain from the genesis hash and return the last stored hash.

    Each event is recomputed from its own fields but chained on the hash the
    previous event *stored*. An edited payload fails where it sits; an edited
    ``prev`` field no longer links to its predecessor and fails at that event.
    """
    if not events:
        raise EmptyChainError()
    expected_previous = GENESIS_HASH
    for index, event in enumerate(events):
        if event.previous_hash != expected_previous:
            raise HashMismatchError(index, expected_previous, event.previous_hash)
        recomputed = event_hash(
            expected_previous,
            encode_event(event.timestamp, event.kind, event.question_id, event.payload, expected_previous),
        )
        if recomputed != event.hash:
            raise HashMismatchError(index, recomputed, event.hash)
        expected_previous = event.hash
    return expected_previous


def verify_record(record: "SubmissionRecord") -> None:
    last_hash = verify_events(record.events)
    last = record.events[-1]
    if last.kind != KIND_FINALIZE:
        raise FinalHashMismatchError(f"chain ends with '{last.kind}' event, expected '{KIND_FINALIZE}'")
    if record.final_hash != last_hash:
        raise FinalHashMismatchError(
            f"final_hash {record.final_hash!r} does not match last event hash {last_hash!r}"
        )


def chain_report(record: "SubmissionRecord") -> Dict[str, Any]:
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
        return {
            "ok": False,
            "error": e.code,
            "detail": str(e),
            "index": e.index,
            "event_count": len(record.events),
            "final_hash": record.final_hash,
        }
    return {
        "ok": True,
        "error": None,
        "detail": None,
        "index": None,
        "event_count": len(record.events),
        "final_hash": record.final_hash,
    }
