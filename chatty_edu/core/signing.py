from __future__ import annotations
import base64
from pathlib import Path
from typing import Optional, Dict
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives import serialization

from .layout import keys_dir

def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def _b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def key_paths(base: Path) -> Dict[str, Path]:
    d = keys_dir(base)
    return {"dir": d, "priv": d / "ed25519_private.pem", "pub": d / "ed25519_public.pem"}

def keygen(base: Path) -> Dict[str, str]:
    kp = key_paths(base)
    kp["dir"].mkdir(parents=True, exist_ok=True)
    priv = Ed25519PrivateKey.generate()

    priv_pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    kp["priv"].write_bytes(priv_pem)
    kp["pub"].write_bytes(_public_pem(priv.public_key()))
    return {"private_key": str(kp["priv"]), "public_key": str(kp["pub"])}

def load_private(base: Path) -> Optional[Ed25519PrivateKey]:
    kp = key_paths(base)
    if not kp["priv"].exists():
        return None
    key = serialization.load_pem_private_key(kp["priv"].read_bytes(), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError(f"{kp['priv']} is not an Ed25519 private key")
    return key

def load_public(base: Path) -> Optional[Ed25519PublicKey]:
    kp = key_paths(base)
    if not kp["pub"].exists():
        return None
    return _as_ed25519(serialization.load_pem_public_key(kp["pub"].read_bytes()))

def sign_digest(priv: Ed25519PrivateKey, hex_digest: str) -> str:
    return _b64(priv.sign(hex_digest.encode("utf-8")))

def verify_digest(pub: Ed25519PublicKey, hex_digest: str, signature_b64: str) -> bool:
    try:
        pub.verify(_b64d(signature_b64), hex_digest.encode("utf-8"))
        return True
    except InvalidSignature:
        return False

def _public_pem(pub: Ed25519PublicKey) -> bytes:
    return pub.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

def pubkey_pem_b64(pub: Ed25519PublicKey) -> str:
    return _b64(_public_pem(pub))

def load_public_from_b64(pem_b64: str) -> Ed25519PublicKey:
    return _as_ed25519(serialization.load_pem_public_key(_b64d(pem_b64)))

def _as_ed25519(key: object) -> Ed25519PublicKey:
    if not isinstance(key, Ed25519PublicKey):
        raise ValueError("public key is not an Ed25519 key")
    return key
