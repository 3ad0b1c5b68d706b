"""Add-on module manifests (``<base>/modules/<id>/module.json``).

An entry is one of a closed set of variants, tagged by ``type`` in JSON.
Unknown tags are rejected rather than mapped to a fallback.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog

from .errors import ManifestError
from .layout import modules_dir
from .utils import ensure_dir, pretty_json, read_text, safe_write_text

DEFAULT_ROLES = ("teacher", "student")
BUILTIN_HOMEWORK_MODULE = "homework_dashboard"

_log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuiltinPanel:
    target: str


@dataclass(frozen=True)
class Markdown:
    path: str


@dataclass(frozen=True)
class StaticHtml:
    path: str


@dataclass(frozen=True)
class ExternalProcess:
    command: str
    args: List[str] = field(default_factory=list)


ModuleEntry = Union[BuiltinPanel, Markdown, StaticHtml, ExternalProcess]


def _require_str(raw: Dict[str, Any], key: str, tag: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise ManifestError(f"'{tag}' entry needs a string '{key}'")
    return value


def parse_entry(raw: Any) -> ModuleEntry:
    if not isinstance(raw, dict):
        raise ManifestError("entry must be an object")
    tag = raw.get("type")
    if tag == "builtin_panel":
        return BuiltinPanel(target=_require_str(raw, "target", tag))
    if tag == "markdown":
        return Markdown(path=_require_str(raw, "path", tag))
    if tag == "static_html":
        return StaticHtml(path=_require_str(raw, "path", tag))
    if tag == "external_process":
        args = raw.get("args") or []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ManifestError("'external_process' args must be a list of strings")
        return ExternalProcess(command=_require_str(raw, "command", tag), args=list(args))
    raise ManifestError(f"unknown module entry type: {tag!r}")


def entry_to_dict(entry: ModuleEntry) -> Dict[str, Any]:
    if isinstance(entry, BuiltinPanel):
        return {"type": "builtin_panel", "target": entry.target}
    if isinstance(entry, Markdown):
        return {"type": "markdown", "path": entry.path}
    if isinstance(entry, StaticHtml):
        return {"type": "static_html", "path": entry.path}
    if isinstance(entry, ExternalProcess):
        return {"type": "external_process", "command": entry.command, "args": list(entry.args)}
    raise TypeError(f"unhandled module entry: {entry!r}")


def describe_entry(entry: ModuleEntry) -> str:
    if isinstance(entry, BuiltinPanel):
        return f"built-in panel '{entry.target}'"
    if isinstance(entry, Markdown):
        return f"markdown page {entry.path}"
    if isinstance(entry, StaticHtml):
        return f"static page {entry.path}"
    if isinstance(entry, ExternalProcess):
        return " ".join(["process:", entry.command, *entry.args])
    raise TypeError(f"unhandled module entry: {entry!r}")


@dataclass
class ModuleManifest:
    id: str
    title: str
    entry: ModuleEntry
    description: Optional[str] = None
    version: Optional[str] = None
    author: Optional[str] = None
    roles: List[str] = field(default_factory=lambda: list(DEFAULT_ROLES))
    icon: Optional[str] = None
    permissions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "roles": list(self.roles),
            "entry": entry_to_dict(self.entry),
            "icon": self.icon,
            "permissions": list(self.permissions),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "ModuleManifest":
        if not isinstance(raw, dict):
            raise ManifestError("manifest must be a JSON object")
        for key in ("id", "title"):
            if not isinstance(raw.get(key), str):
                raise ManifestError(f"manifest field '{key}' is missing or not a string")
        if "entry" not in raw:
            raise ManifestError("manifest field 'entry' is missing")
        roles = raw.get("roles")
        return cls(
            id=raw["id"],
            title=raw["title"],
            entry=parse_entry(raw["entry"]),
            description=raw.get("description"),
            version=raw.get("version"),
            author=raw.get("author"),
            roles=list(roles) if roles is not None else list(DEFAULT_ROLES),
            icon=raw.get("icon"),
            permissions=list(raw.get("permissions") or []),
        )


@dataclass
class LoadedModule:
    manifest: ModuleManifest
    folder: Path


def ensure_builtin_homework_module(root: Path) -> Path:
    manifest_path = root / BUILTIN_HOMEWORK_MODULE / "module.json"
    if manifest_path.exists():
        return manifest_path
    manifest = ModuleManifest(
        id=BUILTIN_HOMEWORK_MODULE,
        title="Homework Dashboard",
        entry=BuiltinPanel(target=BUILTIN_HOMEWORK_MODULE),
        description="Built-in view for packs and submissions",
        version="1.0.0",
        author="Chatty-EDU",
    )
    safe_write_text(manifest_path, pretty_json(manifest.to_dict()))
    return manifest_path


def load_modules(base: Path) -> List[LoadedModule]:
    root = modules_dir(base)
    ensure_dir(root)
    ensure_builtin_homework_module(root)

    results: List[LoadedModule] = []
    for folder in sorted(root.iterdir()):
        if not folder.is_dir():
            continue
        manifest_path = folder / "module.json"
        if not manifest_path.exists():
            _log.warning("module_skipped", folder=folder.name, reason="no module.json")
            continue
        try:
            manifest = ModuleManifest.from_dict(json.loads(read_text(manifest_path)))
        except (OSError, json.JSONDecodeError, ManifestError) as e:
            _log.warning("module_skipped", folder=folder.name, reason=str(e))
            continue
        results.append(LoadedModule(manifest=manifest, folder=folder))
    return results


def role_allowed(manifest: ModuleManifest, role: str) -> bool:
    return any(r.lower() == role.lower() for r in manifest.roles)
