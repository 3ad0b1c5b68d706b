"""Shared fixtures for chatty_edu tests."""

import itertools
import logging

import pytest

from chatty_edu.core.layout import ensure_base_folders
from chatty_edu.core.submission import StudentIdentity, build_submission

PHOTOSYNTHESIS = "Photosynthesis converts light into chemical energy."


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """The CLI reconfigures root logging; put the test runner's handlers back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def base(tmp_path):
    return ensure_base_folders(tmp_path / "data")


@pytest.fixture
def identity():
    return StudentIdentity.with_defaults(student_id="s1", student_name="Sam", class_id="7B")


@pytest.fixture
def clock():
    """Deterministic millisecond clock advancing 250 ms per reading."""
    counter = itertools.count(1_700_000_000_000, 250)
    return lambda: next(counter)


@pytest.fixture
def record(identity, clock):
    return build_submission(identity, "hw-1", PHOTOSYNTHESIS, attachments=["essay.docx"], clock=clock)
