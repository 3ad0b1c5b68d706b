"""Tests for the submission store: save/load, load_all, summaries and audit."""
import dataclasses
import json

import pytest
from structlog.testing import capture_logs

from chatty_edu.core.errors import (
    HashMismatchError,
    InvalidIdentifierError,
    SubmissionExistsError,
    SubmissionParseError,
)
from chatty_edu.core.hashchain import verify_record
from chatty_edu.core.store import SubmissionStore, load_submission, summarize
from chatty_edu.core.submission import StudentIdentity, build_submission


@pytest.fixture
def store(base):
    return SubmissionStore(base)


class TestSave:
    def test_path_layout(self, store, record, base):
        path = store.save(record)
        assert path == base / "homework" / "completed" / "submission_hw-1_s1.json"
        assert path.exists()

    def test_creates_directory(self, tmp_path, record):
        store = SubmissionStore(tmp_path / "fresh")
        path = store.save(record)
        assert path.parent.is_dir()

    def test_file_is_json_document(self, store, record):
        data = json.loads(store.save(record).read_text(encoding="utf-8"))
        assert data["final_hash"] == record.final_hash
        assert data["events"][1]["qid"] == "freeform"
        assert data["ai_premark"] == {"score": 60, "feedback": record.ai_premark.feedback}
        assert data["attachments"] == ["essay.docx"]

    def test_round_trip(self, store, record):
        loaded = store.load(store.save(record))
        assert loaded == record
        verify_record(loaded)

    def test_no_temp_files_left_behind(self, store, record):
        path = store.save(record)
        assert [p.name for p in path.parent.iterdir()] == [path.name]

    def test_overwrite_is_logged(self, store, identity, clock):
        first = build_submission(identity, "hw-1", "first attempt", clock=clock)
        second = build_submission(identity, "hw-1", "second attempt", clock=clock)
        store.save(first)
        with capture_logs() as logs:
            path = store.save(second)
        assert load_submission(path) == second
        overwritten = [e for e in logs if e["event"] == "submission_overwritten"]
        assert len(overwritten) == 1
        assert overwritten[0]["previous_final_hash"] == first.final_hash
        assert overwritten[0]["final_hash"] == second.final_hash
        assert overwritten[0]["log_level"] == "warning"

    def test_overwrite_can_be_refused(self, store, identity, clock):
        first = build_submission(identity, "hw-1", "first attempt", clock=clock)
        second = build_submission(identity, "hw-1", "second attempt", clock=clock)
        path = store.save(first)
        with pytest.raises(SubmissionExistsError):
            store.save(second, overwrite=False)
        assert load_submission(path) == first

    def test_different_students_do_not_collide(self, store, clock):
        a = build_submission(StudentIdentity.with_defaults("s1"), "hw-1", "a", clock=clock)
        b = build_submission(StudentIdentity.with_defaults("s2"), "hw-1", "b", clock=clock)
        assert store.save(a) != store.save(b)
        assert len(store.load_all()) == 2


class TestLoad:
    def test_invalid_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        with pytest.raises(SubmissionParseError) as exc:
            load_submission(bad)
        assert exc.value.path == bad

    def test_wrong_shape(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"student_id": 3}), encoding="utf-8")
        with pytest.raises(SubmissionParseError):
            load_submission(bad)

    def test_parse_error_is_a_value_error(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_submission(bad)


class TestLoadAll:
    def test_missing_directory(self, tmp_path):
        assert SubmissionStore(tmp_path / "nowhere").load_all() == []

    def test_skips_and_logs_bad_files(self, store, record, identity, clock):
        store.save(record)
        store.save(build_submission(dataclasses.replace(identity, student_id="s2"), "hw-1", "x", clock=clock))
        (store.directory / "broken.json").write_text("{", encoding="utf-8")
        (store.directory / "list.json").write_text("[1, 2]", encoding="utf-8")
        (store.directory / "notes.txt").write_text("ignored", encoding="utf-8")

        with capture_logs() as logs:
            records = store.load_all()

        assert sorted(r.student_id for r in records) == ["s1", "s2"]
        skipped = [e for e in logs if e["event"] == "submission_skipped"]
        assert len(skipped) == 2

    def test_skips_file_with_unencodable_text(self, store, record, identity, clock):
        store.save(build_submission(dataclasses.replace(identity, student_id="s2"), "hw-1", "fine", clock=clock))
        path = store.save(record)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["events"][1]["payload"] = "\ud800hoto"
        path.write_text(json.dumps(data), encoding="utf-8")

        with capture_logs() as logs:
            audited = store.audit()

        assert [(r.student_id, err) for r, err in audited] == [("s2", None)]
        assert [e["path"] for e in logs if e["event"] == "submission_skipped"] == [str(path)]
        with pytest.raises(SubmissionParseError):
            load_submission(path)

    def test_explicit_directory(self, store, record, tmp_path):
        other = tmp_path / "elsewhere"
        other.mkdir()
        path = store.save(record)
        (other / path.name).write_bytes(path.read_bytes())
        assert store.load_all(other) == [record]


class TestSummaries:
    def test_summarize_projection(self, record):
        s = summarize(record)
        assert s.assignment_id == "hw-1"
        assert s.student_id == "s1"
        assert s.student_name == "Sam"
        assert s.score == 60
        assert s.feedback.startswith("Good start")
        assert s.submitted_at == record.submitted_at

    def test_summarize_does_not_verify(self, record):
        tampered = dataclasses.replace(record, final_hash="nope")
        assert summarize(tampered).score == 60

    def test_summarize_without_premark(self, record):
        s = summarize(dataclasses.replace(record, ai_premark=None))
        assert s.score is None
        assert s.feedback is None

    def test_summaries_for_directory(self, store, record):
        store.save(record)
        assert [s.to_dict()["student_id"] for s in store.summaries()] == ["s1"]


class TestAudit:
    def test_flags_altered_submission(self, store, record, identity, clock):
        good = build_submission(dataclasses.replace(identity, student_id="s2"), "hw-1", "fine", clock=clock)
        store.save(good)
        path = store.save(record)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["events"][1]["payload"] = "a much better answer, written later"
        path.write_text(json.dumps(data), encoding="utf-8")

        results = {r.student_id: err for r, err in store.audit()}
        assert results["s2"] is None
        assert isinstance(results["s1"], HashMismatchError)
        assert results["s1"].index == 1


class TestIdentifiers:
    @pytest.mark.parametrize("assignment_id, student_id", [
        ("../x", "s1"), ("hw-1", "../../etc/x"), ("hw\\1", "s1"), ("hw-1", "s\x001"),
    ])
    def test_path_separators_rejected(self, store, record, assignment_id, student_id):
        bad = dataclasses.replace(record, assignment_id=assignment_id, student_id=student_id)
        with pytest.raises(InvalidIdentifierError):
            store.save(bad)
        assert list(store.base.rglob("*.json")) == []

    def test_dots_without_separators_stay_in_directory(self, store, record):
        path = store.save(dataclasses.replace(record, assignment_id=".."))
        assert path.parent == store.directory
        assert path.name == "submission_.._s1.json"
