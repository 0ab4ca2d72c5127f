# passwordless/domain/services.py
from __future__ import annotations

import hashlib
import hmac
import secrets

from passwordless.domain.entities import Token
from passwordless.domain.errors import InvalidParameter

DIGITS = "0123456789"

_BYTE_RANGE = 256


def generate_code(length: int, charset: str) -> str:
    """
    Random code of `length` characters drawn uniformly from `charset`.

    Bytes that fall outside the largest multiple of len(charset) below 256
    are rejected and resampled, so no character is favoured. Charsets wider
    than a byte get one `randbelow` draw per character instead.
    """
    if length <= 0:
        raise InvalidParameter(f"code length must be positive, got {length}")
    if not charset:
        raise InvalidParameter("code charset cannot be empty")

    size = len(charset)
    if size > _BYTE_RANGE:
        return "".join(charset[secrets.randbelow(size)] for _ in range(length))

    limit = _BYTE_RANGE - (_BYTE_RANGE % size)
    out: list[str] = []
    while len(out) < length:
        for b in secrets.token_bytes(length - len(out)):
            if b < limit:
                out.append(charset[b % size])
    return "".join(out)


def generate_token_id() -> str:
    """16 random bytes, hex-encoded (32 chars)."""
    return secrets.token_hex(16)


def hash_code(code: str) -> bytes:
    """SHA-256 digest of the plaintext code. This is what gets persisted."""
    return hashlib.sha256(code.encode("utf-8")).digest()


def link_digest(code_hash: bytes) -> str:
    """
    Hex SHA-256 of the stored code hash, embedded in login links so the
    first-level hash never shows up in a URL.
    """
    return hashlib.sha256(code_hash).hexdigest()


def secure_compare(a: str | bytes, b: str | bytes) -> bool:
    """
    Constant-time comparison for secrets.
    Accepts strings or bytes; mixed/non-ascii strings are compared as UTF-8.
    """
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return hmac.compare_digest(a, b)


def code_matches(token: Token, code: str) -> bool:
    return secure_compare(hash_code(code), token.code_hash)


def link_matches(token: Token, provided_hash: str) -> bool:
    return secure_compare(link_digest(token.code_hash), provided_hash.lower())
