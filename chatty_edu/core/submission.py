"""Build the hash-chained event log for one student's homework submission."""

from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import BuilderStateError, SubmissionParseError
from .events import GENESIS_HASH, KIND_ANSWER, KIND_FINALIZE, KIND_START, Event, require_utf8
from .hashchain import build_event
from .utils import unix_ms_now, utc_now_iso

SUBMISSION_VERSION = "1.0"
FREEFORM_QUESTION_ID = "freeform"
START_PAYLOAD = "session_start"
FINALIZE_PAYLOAD = "submitted"

DEFAULT_SCHOOL_ID = "school"
DEFAULT_STUDENT_ID = "student-id"
DEFAULT_STUDENT_NAME = "Student"
DEFAULT_CLASS_ID = "class"

Clock = Callable[[], int]


@dataclass(frozen=True)
class StudentIdentity:
    student_id: str = DEFAULT_STUDENT_ID
    student_name: str = DEFAULT_STUDENT_NAME
    class_id: str = DEFAULT_CLASS_ID
    school_id: str = DEFAULT_SCHOOL_ID

    @classmethod
    def with_defaults(
        cls,
        student_id: str = "",
        student_name: str = "",
        class_id: str = "",
        school_id: str = "",
    ) -> "StudentIdentity":
        return cls(
            student_id=student_id or DEFAULT_STUDENT_ID,
            student_name=student_name or DEFAULT_STUDENT_NAME,
            class_id=class_id or DEFAULT_CLASS_ID,
            school_id=school_id or DEFAULT_SCHOOL_ID,
        )


@dataclass(frozen=True)
class AnswerEntry:
    question: str
    response: str


@dataclass(frozen=True)
class Premark:
    score: Optional[int] = None
    feedback: Optional[str] = None


def simple_premark(text: str) -> Premark:
    """Length-based estimate, not a model call."""
    # thresholds count UTF-8 bytes, not characters
    n = len(text.strip().encode("utf-8"))
    if n > 400:
        score = 90
    elif n > 200:
        score = 80
    elif n > 100:
        score = 70
    elif n > 40:
        score = 60
    else:
        score = 50
    if n < 50:
        feedback = "Try adding more detail to your answers."
    elif n < 150:
        feedback = "Good start—check if all parts are addressed."
    else:
        feedback = "Looks thorough. Review for accuracy and clarity."
    return Premark(score=score, feedback=feedback)


@dataclass(frozen=True)
class SubmissionRecord:
    school_id: str
    class_id: str
    assignment_id: str
    student_id: str
    student_name: str
    submitted_at: str
    events: Tuple[Event, ...]
    final_hash: Optional[str]
    answers_text: Optional[str] = None
    answers: Tuple[AnswerEntry, ...] = ()
    ai_premark: Optional[Premark] = None
    # stored for the teacher, not committed to by the event chain
    attachments: Tuple[str, ...] = ()
    summary: Optional[str] = None
    version: str = SUBMISSION_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "school_id": self.school_id,
            "class_id": self.class_id,
            "assignment_id": self.assignment_id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "submitted_at": self.submitted_at,
            "answers_text": self.answers_text,
            "answers": [{"question": a.question, "response": a.response} for a in self.answers],
            "ai_premark": (
                {"score": self.ai_premark.score, "feedback": self.ai_premark.feedback}
                if self.ai_premark is not None else None
            ),
            "attachments": list(self.attachments),
            "events": [e.to_dict() for e in self.events],
            "final_hash": self.final_hash,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "SubmissionRecord":
        if not isinstance(raw, dict):
            raise SubmissionParseError(f"expected a JSON object, got {type(raw).__name__}")
        for key, value in raw.items():
            require_utf8(key, "field name")
            require_utf8(value, f"field '{key}'")
        for key in ("version", "school_id", "class_id", "assignment_id", "student_id", "student_name", "submitted_at"):
            if not isinstance(raw.get(key), str):
                raise SubmissionParseError(f"field '{key}' is missing or not a string")

        events = raw.get("events") or []
        answers = raw.get("answers") or []
        attachments = raw.get("attachments") or []
        if not isinstance(events, list) or not isinstance(answers, list) or not isinstance(attachments, list):
            raise SubmissionParseError("'events', 'answers' and 'attachments' must be arrays")

        parsed_answers: List[AnswerEntry] = []
        for a in answers:
            if not isinstance(a, dict) or not isinstance(a.get("question"), str) or not isinstance(a.get("response"), str):
                raise SubmissionParseError("each answer needs string 'question' and 'response'")
            parsed_answers.append(AnswerEntry(question=a["question"], response=a["response"]))

        premark = None
        raw_premark = raw.get("ai_premark")
        if raw_premark is not None:
            if not isinstance(raw_premark, dict):
                raise SubmissionParseError("'ai_premark' must be an object")
            premark = Premark(score=raw_premark.get("score"), feedback=raw_premark.get("feedback"))

        for key in ("answers_text", "final_hash", "summary"):
            if raw.get(key) is not None and not isinstance(raw[key], str):
                raise SubmissionParseError(f"field '{key}' must be a string or null")

        return cls(
            version=raw["version"],
            school_id=raw["school_id"],
            class_id=raw["class_id"],
            assignment_id=raw["assignment_id"],
            student_id=raw["student_id"],
            student_name=raw["student_name"],
            submitted_at=raw["submitted_at"],
            answers_text=raw.get("answers_text"),
            answers=tuple(parsed_answers),
            ai_premark=premark,
            attachments=tuple(str(p) for p in attachments),
            events=tuple(Event.from_dict(e) for e in events),
            final_hash=raw.get("final_hash"),
            summary=raw.get("summary"),
        )


class BuilderState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    ANSWERED = "answered"
    FINALIZED = "finalized"


@dataclass
class SubmissionBuilder:
    """Drives start -> answer -> finalize for one submission.

    Each transition reads the clock again, so the gaps between stages are
    recoverable from the event timestamps.
    """

    identity: StudentIdentity
    assignment_id: str
    attachments: Sequence[str] = ()
    clock: Clock = unix_ms_now
    state: BuilderState = field(default=BuilderState.NOT_STARTED, init=False)
    _events: List[Event] = field(default_factory=list, init=False, repr=False)
    _answers_text: str = field(default="", init=False, repr=False)

    def _require(self, expected: BuilderState, action: str) -> None:
        if self.state is not expected:
            raise BuilderStateError(
                f"cannot {action} a submission in state '{self.state.value}' "
                f"(expected '{expected.value}')"
            )

    @property
    def last_hash(self) -> str:
        return self._events[-1].hash if self._events else GENESIS_HASH

    @property
    def events(self) -> Tuple[Event, ...]:
        return tuple(self._events)

    def start(self) -> Event:
        self._require(BuilderState.NOT_STARTED, "start")
        event = build_event(GENESIS_HASH, self.clock(), KIND_START, payload=START_PAYLOAD)
        self._events.append(event)
        self.state = BuilderState.STARTED
        return event

    def answer(self, answers_text: str, question_id: str = FREEFORM_QUESTION_ID) -> Event:
        self._require(BuilderState.STARTED, "answer")
        event = build_event(self.last_hash, self.clock(), KIND_ANSWER, question_id=question_id, payload=answers_text)
        self._events.append(event)
        self._answers_text = answers_text
        self.state = BuilderState.ANSWERED
        return event

    def finalize(self) -> SubmissionRecord:
        self._require(BuilderState.ANSWERED, "finalize")
        event = build_event(self.last_hash, self.clock(), KIND_FINALIZE, payload=FINALIZE_PAYLOAD)
        self._events.append(event)
        self.state = BuilderState.FINALIZED
        return SubmissionRecord(
            school_id=self.identity.school_id,
            class_id=self.identity.class_id,
            assignment_id=self.assignment_id,
            student_id=self.identity.student_id,
            student_name=self.identity.student_name,
            submitted_at=utc_now_iso(),
            answers_text=self._answers_text,
            answers=(),
            ai_premark=simple_premark(self._answers_text),
            attachments=tuple(self.attachments),
            events=tuple(self._events),
            final_hash=event.hash,
        )


def build_submission(
    identity: StudentIdentity,
    assignment_id: str,
    answers_text: str,
    attachments: Sequence[str] = (),
    clock: Clock = unix_ms_now,
) -> SubmissionRecord:
    builder = SubmissionBuilder(identity=identity, assignment_id=assignment_id, attachments=attachments, clock=clock)
    builder.start()
    builder.answer(answers_text)
    return builder.finalize()
