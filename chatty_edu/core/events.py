from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import SubmissionParseError

KIND_START = "start"
KIND_ANSWER = "answer"
KIND_FINALIZE = "finalize"
LIFECYCLE = (KIND_START, KIND_ANSWER, KIND_FINALIZE)

GENESIS_HASH = ""


def event_fields(
    timestamp: int,
    kind: str,
    question_id: Optional[str] = None,
    payload: Optional[str] = None,
    previous_hash: str = GENESIS_HASH,
) -> Dict[str, Any]:
    # absent optionals are left out entirely so None and "" encode differently
    fields: Dict[str, Any] = {"t": timestamp, "type": kind}
    if question_id is not None:
        fields["qid"] = question_id
    if payload is not None:
        fields["payload"] = payload
    fields["prev"] = previous_hash
    return fields


def encode_event(
    timestamp: int,
    kind: str,
    question_id: Optional[str] = None,
    payload: Optional[str] = None,
    previous_hash: str = GENESIS_HASH,
) -> bytes:
    """Canonical byte encoding of an event's hashed fields.

    Compact UTF-8 JSON with keys in the fixed order ``t, type, qid, payload,
    prev``. Key order is part of the hashed format; keys are never sorted.
    """
    fields = event_fields(timestamp, kind, question_id, payload, previous_hash)
    return json.dumps(fields, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def require_utf8(value: Any, where: str) -> None:
    """Reject strings that JSON allows but UTF-8 cannot carry (lone surrogates)."""
    if isinstance(value, str):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise SubmissionParseError(f"{where} is not valid Unicode text ({e.reason})") from e
    elif isinstance(value, dict):
        for k, v in value.items():
            require_utf8(k, where)
            require_utf8(v, where)
    elif isinstance(value, list):
        for item in value:
            require_utf8(item, where)


@dataclass(frozen=True)
class Event:
    timestamp: int
    kind: str
    previous_hash: str
    hash: str
    question_id: Optional[str] = None
    payload: Optional[str] = None

    def encoding(self) -> bytes:
        return encode_event(self.timestamp, self.kind, self.question_id, self.payload, self.previous_hash)

    def to_dict(self) -> Dict[str, Any]:
        d = event_fields(self.timestamp, self.kind, self.question_id, self.payload, self.previous_hash)
        d["hash"] = self.hash
        return d

    @classmethod
    def from_dict(cls, raw: Any) -> "Event":
        if not isinstance(raw, dict):
            raise SubmissionParseError(f"event must be an object, got {type(raw).__name__}")
        for key in ("t", "type", "prev", "hash"):
            if key not in raw:
                raise SubmissionParseError(f"event missing required field '{key}'")
        t = raw["t"]
        if not isinstance(t, int) or isinstance(t, bool):
            raise SubmissionParseError(f"event field 't' must be an integer, got {type(t).__name__}")
        for key in ("type", "prev", "hash"):
            if not isinstance(raw[key], str):
                raise SubmissionParseError(f"event field '{key}' must be a string")
        for key in ("qid", "payload"):
            if raw.get(key) is not None and not isinstance(raw[key], str):
                raise SubmissionParseError(f"event field '{key}' must be a string")
        for key in ("type", "qid", "payload", "prev", "hash"):
            require_utf8(raw.get(key), f"event field '{key}'")
        return cls(
            timestamp=t,
            kind=raw["type"],
            previous_hash=raw["prev"],
            hash=raw["hash"],
            question_id=raw.get("qid"),
            payload=raw.get("payload"),
        )
