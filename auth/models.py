"""
auth/models.py -- Domain dataclasses for users and sealed tokens.

Pattern: Data class (pure data container, zero logic beyond encoding the KDF
parameter string). Stores and the facade do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

_MAX_COST = 2**32 - 1


@dataclass
class User:
    """A registered principal.

    id is a random UUID string allocated at registration and never changes.
    name is the human handle; it is unique but may be changed via rename.
    password_hash is a bcrypt hash -- a user cannot exist without one.
    """

    id: str
    name: str
    password_hash: str
    created_at: str | None = None


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters a token key was derived with.

    Stored next to each sealed token as "argon2id$t=<n>$m=<n>$p=<n>" so that a
    configuration change never strands tokens sealed under older costs.
    """

    time_cost: int
    memory_cost: int  # KiB
    parallelism: int

    def encode(self) -> str:
        return f"argon2id$t={self.time_cost}$m={self.memory_cost}$p={self.parallelism}"

    @classmethod
    def parse(cls, raw: str) -> "KdfParams":
        """Inverse of encode(). Raises ValueError on any malformed string.

        Every cost must fit Argon2's unsigned 32-bit parameters (1..2**32-1).
        """
        algorithm, *parts = raw.split("$")
        if algorithm != "argon2id" or len(parts) != 3:
            raise ValueError(f"Unsupported KDF descriptor: {raw!r}")
        try:
            values = dict(part.split("=", 1) for part in parts)
            costs = (int(values["t"]), int(values["m"]), int(values["p"]))
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Malformed KDF descriptor: {raw!r}") from exc
        if not all(1 <= cost <= _MAX_COST for cost in costs):
            raise ValueError(f"KDF cost out of range: {raw!r}")
        return cls(*costs)


@dataclass(frozen=True)
class SealedCode:
    """Everything needed to recover a code given the right password.

    None of these fields is secret on its own: the key is re-derived from the
    password and salt on every unseal and never stored.
    """

    ciphertext: bytes
    salt: bytes  # 16 bytes, fresh per seal
    nonce: bytes  # 12 bytes, fresh per seal
    tag: bytes  # 16-byte GCM authentication tag
    kdf: KdfParams


@dataclass
class Token:
    """The single live bearer credential of a user, at rest.

    mask is the SHA-256 hex digest of the raw code -- the public lookup key.
    The code itself only exists inside `sealed`.
    """

    owner_id: str
    sealed: SealedCode
    mask: str
    created_at: str | None = None


@dataclass(frozen=True)
class MintedCode:
    """A fresh code and its at-rest form, built before any store write.

    text is what the owner receives; sealed and mask are what gets stored.
    """

    text: str
    sealed: SealedCode
    mask: str
