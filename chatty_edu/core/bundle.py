from __future__ import annotations
import json
import zipfile
from pathlib import Path
from typing import Dict, Any, List, Optional

import structlog

from .errors import ChattyEduError, SubmissionParseError
from .hashchain import chain_report
from .store import load_submission
from .submission import SubmissionRecord
from .utils import sha256_file, ensure_dir, canonical_json, sha256_bytes, utc_now_iso, pretty_json

BUNDLE_SCHEMA = "chatty-edu-class-bundle"
BUNDLE_VERSION = "1.0"
SUBMISSIONS_PREFIX = "submissions/"

_log = structlog.get_logger(__name__)


def _collect_submission_files(submissions_dir: Path) -> List[Path]:
    if not submissions_dir.exists():
        return []
    return sorted(p for p in submissions_dir.glob("*.json") if p.is_file())


def _final_hash_of(path: Path) -> Optional[str]:
    try:
        return load_submission(path).final_hash
    except (OSError, SubmissionParseError) as e:
        _log.warning("submission_skipped", path=str(path), error=str(e))
        return None


def make_manifest(submissions_dir: Path) -> Dict[str, Any]:
    manifest_files = []
    for f in _collect_submission_files(submissions_dir):
        manifest_files.append({
            "path": SUBMISSIONS_PREFIX + f.name,
            "sha256": sha256_file(f),
            "bytes": f.stat().st_size,
            "final_hash": _final_hash_of(f),
        })
    manifest: Dict[str, Any] = {
        "schema": BUNDLE_SCHEMA,
        "version": BUNDLE_VERSION,
        "created": utc_now_iso(),
        "files": manifest_files,
    }
    manifest["manifest_sha256"] = sha256_bytes(canonical_json({k: manifest[k] for k in ("schema", "version", "files")}))
    return manifest


def make_signature(manifest_sha256: str, signature_b64: str, public_key_pem_b64: str) -> Dict[str, Any]:
    return {
        "schema": BUNDLE_SCHEMA + "-signature",
        "version": BUNDLE_VERSION,
        "ts": utc_now_iso(),
        "signed_manifest_sha256": manifest_sha256,
        "algorithm": "ed25519",
        "signature_b64": signature_b64,
        "public_key_pem_b64": public_key_pem_b64,
    }


def export_bundle(submissions_dir: Path, out_file: Path, sign: bool = False, base: Optional[Path] = None) -> Path:
    """Zip every submission file with a hash manifest (and optionally an Ed25519 signature)."""
    ensure_dir(out_file.parent)
    manifest = make_manifest(submissions_dir)

    signature = None
    if sign:
        if base is None:
            raise ValueError("base is required when sign=True")
        from .signing import load_private, load_public, sign_digest, pubkey_pem_b64
        priv = load_private(base)
        pub = load_public(base)
        if priv is None or pub is None:
            raise ChattyEduError("Signing keys not found. Run: chatty-edu keygen")
        signature = make_signature(
            manifest["manifest_sha256"],
            sign_digest(priv, manifest["manifest_sha256"]),
            pubkey_pem_b64(pub),
        )

    with zipfile.ZipFile(out_file, "w", compression=zipfile.ZIP_DEFLATED) as z:
        for p in _collect_submission_files(submissions_dir):
            z.write(p, SUBMISSIONS_PREFIX + p.name)
        z.writestr("MANIFEST.json", pretty_json(manifest))
        if signature is not None:
            z.writestr("SIGNATURE.json", pretty_json(signature))

    _log.info("bundle_exported", path=str(out_file), file_count=len(manifest["files"]), signed=sign)
    return out_file


def _check_chain(path: str, data: bytes, listed_final_hash: Optional[str]) -> Dict[str, Any]:
    try:
        record = SubmissionRecord.from_dict(json.loads(data.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError, SubmissionParseError) as e:
        return {"path": path, "ok": False, "error": "parse_error", "detail": str(e)}
    report = {"path": path, **chain_report(record)}
    if report["ok"] and listed_final_hash is not None and report["final_hash"] != listed_final_hash:
        report.update(ok=False, error="manifest_final_hash_mismatch", detail="final_hash differs from MANIFEST.json")
    return report


def verify_bundle(bundle_file: Path) -> Dict[str, Any]:
    with zipfile.ZipFile(bundle_file, "r") as z:
        try:
            manifest = json.loads(z.read("MANIFEST.json").decode("utf-8"))
        except KeyError:
            return {"ok": False, "error": "MANIFEST.json missing"}

        missing, mismatches, chains = [], [], []
        for entry in manifest.get("files", []):
            path = entry["path"]
            expected = entry["sha256"]
            try:
                data = z.read(path)
            except KeyError:
                missing.append(path)
                continue
            actual = sha256_bytes(data)
            if actual != expected:
                mismatches.append({"path": path, "expected": expected, "actual": actual})
            chains.append(_check_chain(path, data, entry.get("final_hash")))

        recomputed = sha256_bytes(canonical_json({k: manifest.get(k) for k in ("schema", "version", "files")}))
        manifest_ok = recomputed == manifest.get("manifest_sha256")
        ok_hashes = manifest_ok and not missing and not mismatches
        ok_chains = all(c["ok"] for c in chains)

        try:
            raw_sig: Optional[bytes] = z.read("SIGNATURE.json")
        except KeyError:
            raw_sig = None

        sig_report: Dict[str, Any] = {"signature_present": raw_sig is not None}
        if raw_sig is not None:
            try:
                sig = json.loads(raw_sig.decode("utf-8"))
                if sig.get("signed_manifest_sha256") != manifest.get("manifest_sha256"):
                    sig_report["signature_ok"] = False
                    sig_report["signature_error"] = "signed_manifest_sha256 does not match MANIFEST.json"
                else:
                    from .signing import load_public_from_b64, verify_digest
                    pub = load_public_from_b64(sig["public_key_pem_b64"])
                    sig_report["signature_ok"] = verify_digest(pub, manifest["manifest_sha256"], sig["signature_b64"])
            except (KeyError, ValueError) as e:
                sig_report["signature_ok"] = False
                sig_report["signature_error"] = str(e)

        ok = ok_hashes and ok_chains and (sig_report.get("signature_ok", True) is True)
        return {
            "ok": ok,
            "manifest_ok": manifest_ok,
            "missing": missing,
            "mismatches": mismatches,
            "chains": chains,
            "file_count": len(manifest.get("files", [])),
            **sig_report,
        }
