"""JSON-backed application settings stored at ``<base>/config/settings.json``."""

from __future__ import annotations
import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from .errors import SettingsError
from .layout import default_model_path, settings_path
from .submission import StudentIdentity
from .utils import atomic_write_text, pretty_json, read_text

SETTINGS_VERSION = "0.2.0"

T = TypeVar("T")


@dataclass
class StudentProfile:
    student_id: str = ""
    student_name: str = ""
    class_id: str = ""

    def identity(self) -> StudentIdentity:
        return StudentIdentity.with_defaults(self.student_id, self.student_name, self.class_id)


@dataclass
class SafetyConfig:
    enabled: bool = True
    block_swears: bool = True
    block_mature_topics: bool = True
    fallback_message: str = "Let's ask a teacher or parent about that one."


@dataclass
class ModelConfig:
    name: str = "phi-mini-placeholder"
    path: str = ""
    max_tokens: int = 256


@dataclass
class VoiceConfig:
    enabled: bool = False
    engine: str = "os_tts"


@dataclass
class GameConfig:
    enabled: bool = True
    games_in_class_allowed: bool = False
    available_games: List[str] = field(default_factory=lambda: ["chattybox", "chattyclysm"])


@dataclass
class UiSettings:
    last_theme: Optional[str] = None
    window_size: Optional[Tuple[float, float]] = None
    restore_tabs: bool = False


@dataclass
class Settings:
    base_path: str = ""
    version: str = SETTINGS_VERSION
    mode: str = "gui"
    default_year_level: str = "year_3"
    teacher_mode: str = "class"
    student: StudentProfile = field(default_factory=StudentProfile)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    game: GameConfig = field(default_factory=GameConfig)
    ui: UiSettings = field(default_factory=UiSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Settings":
        if not isinstance(raw, dict):
            raise SettingsError("settings must be a JSON object")
        nested = {
            "student": StudentProfile,
            "safety": SafetyConfig,
            "model": ModelConfig,
            "voice": VoiceConfig,
            "game": GameConfig,
            "ui": UiSettings,
        }
        if "safety" not in raw and "janet" in raw:
            # older settings files name the safety section "janet"
            raw = {**raw, "safety": raw["janet"]}
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in raw:
                continue
            value = raw[f.name]
            if f.name in nested:
                value = _section(nested[f.name], value, f.name)
            kwargs[f.name] = value
        settings = cls(**kwargs)
        if settings.ui.window_size is not None:
            settings.ui.window_size = tuple(settings.ui.window_size)  # type: ignore[assignment]
        return settings


def _section(kind: Type[T], value: Any, name: str) -> T:
    if value is None:
        return kind()
    if not isinstance(value, dict):
        raise SettingsError(f"settings section '{name}' must be an object")
    known = {f.name for f in fields(kind)}  # type: ignore[arg-type]
    try:
        return kind(**{k: v for k, v in value.items() if k in known})
    except TypeError as e:
        raise SettingsError(f"settings section '{name}': {e}") from e


def default_settings(base: Path) -> Settings:
    return Settings(
        base_path=str(base),
        student=StudentProfile(
            student_id="student-id-placeholder",
            student_name="Student Name",
            class_id="class-placeholder",
        ),
        model=ModelConfig(path=str(default_model_path(base))),
    )


def load_or_init_settings(base: Path) -> Settings:
    path = settings_path(base)
    if path.exists():
        try:
            raw = json.loads(read_text(path))
        except json.JSONDecodeError as e:
            raise SettingsError(f"JSON parse error in {path}: {e}") from e
        settings = Settings.from_dict(raw)
        # the data folder may have moved since the file was written
        if settings.base_path != str(base):
            settings.base_path = str(base)
        return settings

    settings = default_settings(base)
    save_settings(settings, base)
    return settings


def save_settings(settings: Settings, base: Path) -> Path:
    path = settings_path(base)
    atomic_write_text(path, pretty_json(settings.to_dict()))
    return path
