"""
auth/crypto.py -- Password hashing, token sealing and masking primitives.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). Its cost factor makes
       brute-force of low-entropy passwords expensive. check_password() runs
       bcrypt against a dummy hash when the account does not exist, so
       response time does not reveal whether a user exists [C1].

  Codes: secrets.token_bytes(32) -- 256 bits of entropy. Handed to callers as
       URL-safe base64 text. The raw code is never persisted.

  Sealing: the code is encrypted with AES-256-GCM under a key derived from
       the owner's password by Argon2id with a fresh 16-byte salt per seal.
       A single fast hash of the password is NOT an acceptable KDF -- it lets
       an attacker holding the DB test password guesses at SHA-256 speed [K1].

  Masking: SHA-256 of the raw code bytes, unsalted. Deterministic so a bare
       code can be looked up in O(1) via the UNIQUE index on tokens.mask.
       Unsalted is fine here for the same reason HMAC-free API key lookup is
       fine elsewhere: the input has 256 bits of entropy.

  Comparisons of secrets use hmac.compare_digest (constant time).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from functools import lru_cache

import bcrypt
from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from auth.models import KdfParams, SealedCode
from core.errors import IntegrityError

CODE_BYTES = 32
SALT_BYTES = 16
NONCE_BYTES = 12
TAG_BYTES = 16
KEY_BYTES = 32

# bcrypt only looks at the first 72 bytes of its input; longer passwords are
# rejected up front by the user store instead of being silently truncated.
BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed hash or an over-long password is a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    # One dummy per cost factor so the equalizing check costs the same as a
    # real one under the configured rounds.
    return hash_password("tokenvault_timing_dummy", rounds)


def check_password(plain: str, hashed: str | None, rounds: int = 12) -> bool:
    """Verify a password with timing equalization for missing accounts [C1].

    When hashed is None (no such user / no such token row) bcrypt still runs
    against a dummy hash and the result is always False.
    """
    if hashed is None:
        verify_password(plain, _dummy_hash(rounds))
        return False
    return verify_password(plain, hashed)


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------


def random_code() -> bytes:
    """Return a fresh 32-byte bearer code."""
    return secrets.token_bytes(CODE_BYTES)


def encode_code(code: bytes) -> str:
    return base64.urlsafe_b64encode(code).decode("ascii")


def decode_code(text: str) -> bytes | None:
    """Parse code text back to raw bytes, or None if it cannot be a code.

    Only the canonical URL-safe base64 form of exactly 32 bytes is accepted,
    so two different strings never map to the same mask.
    """
    try:
        raw = base64.urlsafe_b64decode(text.encode("ascii"))
    except (UnicodeEncodeError, binascii.Error, ValueError):
        return None
    if len(raw) != CODE_BYTES or encode_code(raw) != text:
        return None
    return raw


def mask_code(code: bytes) -> str:
    """Return the deterministic, irreversible lookup digest of a raw code."""
    return hashlib.sha256(code).hexdigest()


def mask_text(text: str) -> str | None:
    """mask_code() for code text. None when the text is not a well-formed code."""
    raw = decode_code(text)
    return mask_code(raw) if raw is not None else None


def secrets_equal(a: str, b: str) -> bool:
    """Constant-time equality of two secret strings."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ---------------------------------------------------------------------------
# Sealing (Argon2id + AES-256-GCM) [K1]
# ---------------------------------------------------------------------------


def derive_key(passphrase: str, salt: bytes, params: KdfParams) -> bytes:
    """Stretch a passphrase into a 32-byte AES key with Argon2id."""
    return hash_secret_raw(
        secret=passphrase.encode("utf-8"),
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=KEY_BYTES,
        type=Type.ID,
    )


def seal_code(code: bytes, passphrase: str, params: KdfParams) -> SealedCode:
    """Encrypt a code under a passphrase-derived key.

    Salt and nonce are drawn fresh on every call, so sealing the same code
    twice under the same passphrase yields unrelated ciphertexts.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    nonce = secrets.token_bytes(NONCE_BYTES)
    key = derive_key(passphrase, salt, params)
    sealed = AESGCM(key).encrypt(nonce, code, None)
    return SealedCode(
        ciphertext=sealed[:-TAG_BYTES],
        salt=salt,
        nonce=nonce,
        tag=sealed[-TAG_BYTES:],
        kdf=params,
    )


def unseal_code(sealed: SealedCode, passphrase: str) -> bytes:
    """Decrypt a sealed code.

    Raises IntegrityError when the tag does not verify. A wrong passphrase and
    a tampered payload both surface as the same error after the same amount
    of work. Stored KDF costs Argon2 refuses or cannot represent (a tampered kdf
    column) are reported the same way.
    """
    if len(sealed.salt) != SALT_BYTES or len(sealed.nonce) != NONCE_BYTES or len(sealed.tag) != TAG_BYTES:
        raise IntegrityError()
    try:
        key = derive_key(passphrase, sealed.salt, sealed.kdf)
    except (HashingError, OverflowError):
        raise IntegrityError() from None
    try:
        return AESGCM(key).decrypt(sealed.nonce, sealed.ciphertext + sealed.tag, None)
    except InvalidTag:
        raise IntegrityError() from None
