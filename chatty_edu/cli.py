from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional, Sequence

from .core.errors import ChattyEduError, SubmissionExistsError
from .core.hashchain import chain_report
from .core.layout import base_root, completed_dir, ensure_base_folders
from .core.logging_config import configure_logging
from .core.settings import load_or_init_settings
from .core.store import SubmissionStore, SubmissionSummary, load_submission, summarize
from .core.submission import build_submission
from .core.bundle import export_bundle, verify_bundle


def _base(args) -> Path:
    return ensure_base_folders(base_root(args.base_dir))


def _dump(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def truncate_for_table(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[: max_len - 1] + "…"


def format_dashboard(rows: Sequence[SubmissionSummary], flags: Sequence[str]) -> str:
    if not rows:
        return "No completed homework found yet."
    lines = [
        f"{'Student':<12} | {'Homework':<12} | {'Score':<5} | {'Chain':<8} | Submitted",
        "-" * 72,
    ]
    for row, flag in zip(rows, flags):
        score = "-" if row.score is None else str(row.score)
        lines.append(
            f"{truncate_for_table(row.student_name, 12):<12} | "
            f"{truncate_for_table(row.assignment_id, 12):<12} | "
            f"{score:<5} | {flag:<8} | {row.submitted_at}"
        )
    return "\n".join(lines)


def cmd_init(args) -> int:
    base = _base(args)
    load_or_init_settings(base)
    print(f"[ok] data folder initialised: {base}")
    return 0


def cmd_keygen(args) -> int:
    base = _base(args)
    from .core.signing import keygen
    paths = keygen(base)
    print("[ok] keys generated")
    _dump(paths)
    return 0


def cmd_pack_template(args) -> int:
    base = _base(args)
    from .core.packs import export_pack_template
    path = export_pack_template(base, args.school_id, args.class_id)
    print(f"[ok] pack template written: {path}")
    return 0


def cmd_pack_latest(args) -> int:
    base = _base(args)
    from .core.packs import find_latest_pack
    found = find_latest_pack(base)
    if found is None:
        print("[ok] no homework packs found")
        return 0
    path, pack = found
    _dump({"path": str(path), **pack.to_dict()})
    return 0


def cmd_submit(args) -> int:
    base = _base(args)
    settings = load_or_init_settings(base)

    if args.answer_file:
        fp = Path(args.answer_file).expanduser().resolve()
        if not fp.exists():
            raise SystemExit(f"[error] file not found: {fp}")
        answers_text = fp.read_text(encoding="utf-8")
    else:
        answers_text = args.answer

    assignment_id = args.assignment
    if assignment_id is None:
        from .core.packs import find_latest_pack
        found = find_latest_pack(base)
        if found is None or not found[1].assignments:
            raise SystemExit("[error] no --assignment given and no homework pack found")
        assignment_id = found[1].assignments[0].id

    record = build_submission(
        settings.student.identity(),
        assignment_id,
        answers_text,
        attachments=args.attach or [],
    )
    try:
        path = SubmissionStore(base).save(record, overwrite=not args.no_overwrite)
    except SubmissionExistsError as e:
        raise SystemExit(f"[error] {e}")
    print(f"[ok] submission saved: {path}")
    print(f"[ok] final_hash={record.final_hash}")
    return 0


def cmd_dashboard(args) -> int:
    base = _base(args)
    audited = SubmissionStore(base).audit()
    rows = [summarize(record) for record, _ in audited]
    flags = ["ok" if err is None else "ALTERED" for _, err in audited]
    if args.json:
        _dump([{**row.to_dict(), "chain_ok": flag == "ok"} for row, flag in zip(rows, flags)])
    else:
        print(format_dashboard(rows, flags))
    return 0


def cmd_verify(args) -> int:
    fp = Path(args.submission).expanduser().resolve()
    if not fp.exists():
        raise SystemExit(f"[error] file not found: {fp}")
    report = chain_report(load_submission(fp))
    _dump(report)
    return 0 if report["ok"] else 1


def cmd_export(args) -> int:
    base = _base(args)
    out = Path(args.out).expanduser().resolve() if args.out else (Path.cwd() / "class_submissions.zip")
    export_bundle(completed_dir(base), out, sign=bool(args.sign), base=base if args.sign else None)
    print(f"[ok] exported: {out}")
    if args.sign:
        print("[ok] signed: SIGNATURE.json added to bundle")
    return 0


def cmd_verify_bundle(args) -> int:
    bundle = Path(args.bundle).expanduser().resolve()
    if not bundle.exists():
        raise SystemExit(f"[error] file not found: {bundle}")
    report = verify_bundle(bundle)
    _dump(report)
    return 0 if report["ok"] else 1


def cmd_modules(args) -> int:
    base = _base(args)
    from .core.modules import describe_entry, load_modules, role_allowed
    mods = [m for m in load_modules(base) if args.role is None or role_allowed(m.manifest, args.role)]
    _dump([
        {"id": m.manifest.id, "title": m.manifest.title, "entry": describe_entry(m.manifest.entry)}
        for m in mods
    ])
    return 0


def cmd_chat(args) -> int:
    base = _base(args)
    settings = load_or_init_settings(base)
    from .core.model_cache import ModelCache, generate_answer
    from .core.safety import is_blocked, safety_filter
    if settings.safety.enabled and is_blocked(settings.safety, args.question):
        print(settings.safety.fallback_message)
        return 0
    answer = generate_answer(settings, ModelCache(), args.question)
    print(safety_filter(settings.safety, answer, args.question))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatty-edu", description="Chatty-EDU homework tools")
    p.add_argument("--base-dir", default=None, help="Override data folder (default: $CHATTY_EDU_HOME or ~/Chatty-EDU)")
    p.add_argument("--log-level", default=None)
    p.add_argument("--json-logs", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("init", help="Create the data folder and default settings"); s.set_defaults(func=cmd_init)
    s = sub.add_parser("keygen", help="Generate signing keys"); s.set_defaults(func=cmd_keygen)

    s = sub.add_parser("pack-template", help="Write a sample homework pack")
    s.add_argument("--school-id", default="school")
    s.add_argument("--class-id", default="class")
    s.set_defaults(func=cmd_pack_template)

    s = sub.add_parser("pack-latest", help="Show the newest homework pack"); s.set_defaults(func=cmd_pack_latest)

    s = sub.add_parser("submit", help="Record a hash-chained homework submission")
    s.add_argument("--assignment", default=None, help="Assignment id (default: first assignment of the newest pack)")
    g = s.add_mutually_exclusive_group(required=True)
    g.add_argument("--answer", default=None)
    g.add_argument("--answer-file", default=None)
    s.add_argument("--attach", action="append", default=None, help="Attachment path (repeatable)")
    s.add_argument("--no-overwrite", action="store_true", help="Refuse to replace an earlier submission")
    s.set_defaults(func=cmd_submit)

    s = sub.add_parser("dashboard", help="List completed submissions with chain status")
    s.add_argument("--json", action="store_true")
    s.set_defaults(func=cmd_dashboard)

    s = sub.add_parser("verify", help="Verify one submission file's event chain")
    s.add_argument("submission")
    s.set_defaults(func=cmd_verify)

    s = sub.add_parser("export", help="Export completed submissions as a zip bundle")
    s.add_argument("--out", default=None)
    s.add_argument("--sign", action="store_true")
    s.set_defaults(func=cmd_export)

    s = sub.add_parser("verify-bundle", help="Verify an exported bundle offline")
    s.add_argument("bundle")
    s.set_defaults(func=cmd_verify_bundle)

    s = sub.add_parser("modules", help="List installed modules")
    s.add_argument("--role", default=None)
    s.set_defaults(func=cmd_modules)

    s = sub.add_parser("chat", help="Ask the local model a question")
    s.add_argument("question")
    s.set_defaults(func=cmd_chat)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_logs=args.json_logs)
    try:
        return int(args.func(args))
    except ChattyEduError as e:
        raise SystemExit(f"[error] {e}")


if __name__ == "__main__":
    raise SystemExit(main())
