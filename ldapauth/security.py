from __future__ import annotations

import base64
import hashlib

import bcrypt


def _prehash(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes; fold the whole password into 44.
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def new_salt(rounds: int = 10) -> bytes:
    return bcrypt.gensalt(rounds=rounds)


def hash_password(password: str, salt: bytes) -> bytes:
    return bcrypt.hashpw(_prehash(password), salt)


def verify_password(password: str, password_hash: bytes) -> bool:
    try:
        return bcrypt.checkpw(_prehash(password), password_hash)
    except ValueError:
        return False
