"""Exception types shared by the homework integrity core and its collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ChattyEduError(Exception):
    """Base class for every error raised by chatty_edu."""


class SettingsError(ChattyEduError):
    pass


class PackError(ChattyEduError):
    pass


class ManifestError(ChattyEduError):
    pass


class ModelError(ChattyEduError):
    pass


class BuilderStateError(ChattyEduError):
    """A submission lifecycle transition was requested out of order."""


class InvalidIdentifierError(ChattyEduError, ValueError):
    """An assignment or student id that cannot be used in a file name."""


class SubmissionParseError(ChattyEduError, ValueError):
    """A submission file is not valid JSON or not a valid submission document."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class SubmissionExistsError(ChattyEduError, FileExistsError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"submission already exists: {path}")
        self.path = path


class IntegrityError(ChattyEduError):
    """A syntactically valid submission whose event chain does not check out."""

    code = "integrity"
    index: Optional[int] = None


class EmptyChainError(IntegrityError):
    code = "empty_chain"

    def __init__(self) -> None:
        super().__init__("submission has no events")


class HashMismatchError(IntegrityError):
    code = "hash_mismatch"

    def __init__(self, index: int, expected: str, stored: str) -> None:
        super().__init__(f"event {index} hash mismatch: expected {expected}, stored {stored}")
        self.index = index
        self.expected = expected
        self.stored = stored


class FinalHashMismatchError(IntegrityError):
    code = "final_hash_mismatch"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
