"""Tests for the chain verifier (tamper, truncation and empty-chain detection)."""
import dataclasses
import hashlib

import pytest

from chatty_edu.core.errors import (
    EmptyChainError,
    FinalHashMismatchError,
    HashMismatchError,
    IntegrityError,
)
from chatty_edu.core.hashchain import build_event, chain_report, verify_events, verify_record
from chatty_edu.core.submission import SubmissionRecord


def _with_event(record, index, **changes):
    events = list(record.events)
    events[index] = dataclasses.replace(events[index], **changes)
    return dataclasses.replace(record, events=tuple(events))


# ─── Valid chains ─────────────────────────────────────────────────────────────

def test_fresh_record_verifies(record):
    assert verify_record(record) is None


def test_verify_events_returns_last_hash(record):
    assert verify_events(record.events) == record.final_hash


def test_chain_report_ok(record):
    report = chain_report(record)
    assert report["ok"] is True
    assert report["error"] is None
    assert report["event_count"] == 3


def test_longer_chain_with_several_answers_verifies(record):
    start = build_event("", 1, "start", payload="session_start")
    a1 = build_event(start.hash, 2, "answer", "q1", "one")
    a2 = build_event(a1.hash, 3, "answer", "q2", "two")
    fin = build_event(a2.hash, 4, "finalize", payload="submitted")
    longer = dataclasses.replace(record, events=(start, a1, a2, fin), final_hash=fin.hash)
    verify_record(longer)


def _hashed(prev, encoded):
    return hashlib.sha256(prev.encode("utf-8") + encoded.encode("utf-8")).hexdigest()


def test_document_hashed_in_declared_key_order_verifies():
    # hashes computed directly over the on-disk field order, not via encode_event
    h0 = _hashed("", '{"t":1700000000000,"type":"start","payload":"session_start","prev":""}')
    h1 = _hashed(h0, '{"t":1700000000250,"type":"answer","qid":"freeform",'
                     '"payload":"Plants make food from sunlight.","prev":"%s"}' % h0)
    h2 = _hashed(h1, '{"t":1700000000500,"type":"finalize","payload":"submitted","prev":"%s"}' % h1)
    doc = {
        "version": "1.0", "school_id": "school", "class_id": "7B", "assignment_id": "hw-1",
        "student_id": "s1", "student_name": "Sam", "submitted_at": "2024-03-01T09:00:00Z",
        "answers_text": "Plants make food from sunlight.", "answers": [], "ai_premark": None,
        "attachments": [],
        "events": [
            {"t": 1700000000000, "type": "start", "payload": "session_start", "prev": "", "hash": h0},
            {"t": 1700000000250, "type": "answer", "qid": "freeform",
             "payload": "Plants make food from sunlight.", "prev": h0, "hash": h1},
            {"t": 1700000000500, "type": "finalize", "payload": "submitted", "prev": h1, "hash": h2},
        ],
        "final_hash": h2,
        "summary": None,
    }
    record = SubmissionRecord.from_dict(doc)
    assert verify_record(record) is None
    assert [e.hash for e in record.events] == [h0, h1, h2]


# ─── Tampering ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("index", [0, 1, 2])
def test_edited_payload_fails_at_that_index(record, index):
    tampered = _with_event(record, index, payload="edited after hashing")
    with pytest.raises(HashMismatchError) as exc:
        verify_record(tampered)
    assert exc.value.index == index


def test_edited_timestamp_fails(record):
    tampered = _with_event(record, 1, timestamp=record.events[1].timestamp + 1)
    with pytest.raises(HashMismatchError) as exc:
        verify_record(tampered)
    assert exc.value.index == 1


@pytest.mark.parametrize("index", [1, 2])
def test_edited_previous_hash_fails_downstream(record, index):
    tampered = _with_event(record, index, previous_hash="0" * 64)
    with pytest.raises(HashMismatchError) as exc:
        verify_record(tampered)
    assert exc.value.index == index


def test_edited_stored_hash_fails(record):
    tampered = _with_event(record, 0, hash="f" * 64)
    with pytest.raises(HashMismatchError) as exc:
        verify_record(tampered)
    assert exc.value.index == 0


def test_recomputed_event_still_breaks_next_link(record):
    # rehashing an edited answer does not help: finalize still points at the old hash
    old = record.events[1]
    forged = build_event(old.previous_hash, old.timestamp, "answer", "freeform", "better answer")
    tampered = _with_event(record, 1, payload=forged.payload, hash=forged.hash)
    with pytest.raises(HashMismatchError) as exc:
        verify_record(tampered)
    assert exc.value.index == 2


def test_chain_report_flags_tampering(record):
    report = chain_report(_with_event(record, 1, payload="x"))
    assert report["ok"] is False
    assert report["error"] == "hash_mismatch"
    assert report["index"] == 1


# ─── Final hash and truncation ────────────────────────────────────────────────

def test_wrong_final_hash(record):
    with pytest.raises(FinalHashMismatchError):
        verify_record(dataclasses.replace(record, final_hash="0" * 64))


def test_missing_final_hash(record):
    with pytest.raises(FinalHashMismatchError):
        verify_record(dataclasses.replace(record, final_hash=None))


def test_truncation_with_rewritten_final_hash(record):
    truncated = dataclasses.replace(record, events=record.events[:2], final_hash=record.events[1].hash)
    with pytest.raises(FinalHashMismatchError):
        verify_record(truncated)


def test_truncation_keeping_final_hash(record):
    truncated = dataclasses.replace(record, events=record.events[:2])
    with pytest.raises(FinalHashMismatchError):
        verify_record(truncated)


def test_empty_chain(record):
    with pytest.raises(EmptyChainError):
        verify_record(dataclasses.replace(record, events=()))
    report = chain_report(dataclasses.replace(record, events=()))
    assert report["error"] == "empty_chain"


def test_integrity_errors_share_a_base(record):
    for exc_type in (EmptyChainError, FinalHashMismatchError, HashMismatchError):
        assert issubclass(exc_type, IntegrityError)
