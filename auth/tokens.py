"""
auth/tokens.py -- TokenVault: issue, recover and identify bearer codes.

The vault is the only writer of rows in the tokens table. Each user has at
most one token (owner_id is the primary key). A token moves through:

    absent --issue--> sealed --issue--> sealed (old mask orphaned) --remove user--> absent

There is no unsealed-at-rest state. recover() unseals in memory and returns
the code; nothing plaintext is ever written back.

Replacement is delete-then-insert inside one transaction rather than an
UPDATE of the mask column. The delete fires ON DELETE CASCADE on privileges,
so privileges granted to the old mask disappear with it and the old code
stops resolving in identify().

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from auth import crypto
from auth.db import Database, now_iso, tokens, users
from auth.models import KdfParams, MintedCode, SealedCode, Token
from core.config import Settings, get_settings
from core.errors import BadCredential, IntegrityError, SealFailure, TokenNotFound, UserNotFound

logger = logging.getLogger("tokenvault.tokens")


class TokenVault:
    """Repository for Token rows plus the seal/unseal lifecycle.

    Usage:
        vault = TokenVault(db)
        code = vault.issue(user_id, "secret1")
        assert vault.identify(code) == user_id
        assert vault.recover(user_id, "secret1") == code
    """

    def __init__(self, db: Database, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    @property
    def kdf_params(self) -> KdfParams:
        return KdfParams(
            time_cost=self.settings.kdf_time_cost,
            memory_cost=self.settings.kdf_memory_cost,
            parallelism=self.settings.kdf_parallelism,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def mint(self, password: str) -> MintedCode:
        """Draw a fresh code and seal it under password. Touches no store.

        Argon2 is the slow step of issuing a token; callers run this before
        opening the transaction that stores the result, so no write lock is
        held while the key is derived.
        """
        code = crypto.random_code()
        return MintedCode(
            text=crypto.encode_code(code),
            sealed=crypto.seal_code(code, password, self.kdf_params),
            mask=crypto.mask_code(code),
        )

    def store(self, owner_id: str, minted: MintedCode, conn: Connection | None = None) -> str:
        """Replace owner_id's token with a minted one. Returns the code text.

        Pass conn to join a transaction the caller already holds (register,
        change_password). Raises UserNotFound if owner_id does not exist,
        SealFailure on any store error (including a mask collision from a
        racing issue).
        """
        with self.db.transaction(conn) as c:
            owner = c.execute(select(users.c.id).where(users.c.id == owner_id)).fetchone()
            if owner is None:
                raise UserNotFound()
            try:
                c.execute(tokens.delete().where(tokens.c.owner_id == owner_id))
                c.execute(
                    tokens.insert().values(
                        owner_id=owner_id,
                        ciphertext=minted.sealed.ciphertext,
                        salt=minted.sealed.salt,
                        nonce=minted.sealed.nonce,
                        tag=minted.sealed.tag,
                        kdf=minted.sealed.kdf.encode(),
                        mask=minted.mask,
                        created_at=now_iso(),
                    )
                )
            except SQLAlchemyError as exc:
                raise SealFailure() from exc

        logger.info("Token issued for user %s", owner_id)
        return minted.text

    def issue(self, owner_id: str, password: str) -> str:
        """Mint a fresh code for owner_id, seal it under password and store it.

        Replaces any previous token of the owner. Returns the code text -- this
        is the only time the code leaves the vault without a password.

        Does not verify the password: callers authenticate first (the facade
        does). Raises whatever store() raises.
        """
        return self.store(owner_id, self.mint(password))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, owner_id: str) -> Token | None:
        """Return the sealed token row for owner_id, or None."""
        with self.db.transaction() as conn:
            row = conn.execute(tokens.select().where(tokens.c.owner_id == owner_id)).fetchone()
        return _row_to_token(row) if row is not None else None

    def recover(self, owner_id: str, password: str) -> str:
        """Authenticate password for owner_id and unseal the stored code.

        Raises TokenNotFound if the owner has no token row, BadCredential if
        the password does not match the owner's current hash, IntegrityError
        if the password matches but the sealed payload does not authenticate
        (corruption or tampering).

        Both the bcrypt check and the Argon2 derivation always run, whatever
        fails first, so BadCredential and IntegrityError cost the same.
        """
        with self.db.transaction() as conn:
            row = conn.execute(
                select(tokens, users.c.password_hash)
                .select_from(tokens.join(users, tokens.c.owner_id == users.c.id))
                .where(tokens.c.owner_id == owner_id)
            ).fetchone()

        if row is None:
            crypto.check_password(password, None, self.settings.bcrypt_rounds)
            raise TokenNotFound()

        password_ok = crypto.check_password(password, row.password_hash, self.settings.bcrypt_rounds)
        try:
            code = crypto.unseal_code(_row_to_token(row).sealed, password)
        except (IntegrityError, ValueError):
            code = None

        if not password_ok:
            raise BadCredential()
        if code is None:
            logger.warning("Sealed token for user %s failed authentication", owner_id)
            raise IntegrityError()
        return crypto.encode_code(code)

    def identify(self, code: str) -> str:
        """Return the owner id of a code. The only password-less principal lookup.

        Raises TokenNotFound for malformed, replaced and never-issued codes
        alike -- the caller learns nothing about why the code did not resolve.
        """
        mask = crypto.mask_text(code)
        owner_id = self.owner_of_mask(mask) if mask is not None else None
        if owner_id is None:
            raise TokenNotFound()
        return owner_id

    def owner_of_mask(self, mask: str) -> str | None:
        with self.db.transaction() as conn:
            row = conn.execute(select(tokens.c.owner_id).where(tokens.c.mask == mask)).fetchone()
        return row.owner_id if row is not None else None


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_token(row) -> Token:
    """Map a tokens row to a Token. Raises ValueError on a corrupt kdf column."""
    return Token(
        owner_id=row.owner_id,
        sealed=SealedCode(
            ciphertext=row.ciphertext,
            salt=row.salt,
            nonce=row.nonce,
            tag=row.tag,
            kdf=KdfParams.parse(row.kdf),
        ),
        mask=row.mask,
        created_at=row.created_at,
    )
