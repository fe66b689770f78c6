"""
auth/users.py -- UserStore: registration, authentication and account upkeep.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Adapter code never touches SQL directly.

Operations that change the password material (register, change_password)
also (re)issue the user's token through the TokenVault in the SAME
transaction: a user row never commits without its token, and a password
change never commits while the old token (sealed under the old password) is
still live. The bcrypt hash and the sealed token are both computed before that
transaction begins (TokenVault.mint), so the write lock is only held for the
inserts themselves.

Security:
  [C1] authenticate() runs bcrypt whether or not the name exists.
  Names are matched case-sensitively and exactly.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from auth import crypto
from auth.db import Database, now_iso, users
from auth.models import User
from auth.tokens import TokenVault
from core.config import Settings, get_settings
from core.errors import (
    BadCredential,
    InvalidName,
    InvalidPage,
    InvalidPassword,
    NameTaken,
    UserNotFound,
    WeakPassword,
)

logger = logging.getLogger("tokenvault.users")

_NAME_CHARS = re.compile(r"[A-Za-z0-9_]+")


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(db, TokenVault(db))
        user, code = store.register("alice", "secret1")
        assert store.authenticate("alice", "secret1") == user.id
    """

    def __init__(self, db: Database, vault: TokenVault, settings: Settings | None = None) -> None:
        self.db = db
        self.vault = vault
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_name(self, name: str) -> None:
        min_length = self.settings.name_min_length
        if len(name) < min_length or not _NAME_CHARS.fullmatch(name):
            raise InvalidName(
                f"User name must be at least {min_length} characters (a-z, A-Z, 0-9, and _) in length."
            )

    def validate_password(self, password: str) -> None:
        min_length = self.settings.password_min_length
        if len(password) < min_length:
            raise WeakPassword(f"User pass must be at least {min_length} characters in length.")
        if len(password.encode("utf-8")) > crypto.BCRYPT_MAX_BYTES:
            raise InvalidPassword()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(self, name: str, password: str) -> tuple[User, str]:
        """Create a user and its initial token atomically. Returns (user, code).

        Raises InvalidName, WeakPassword/InvalidPassword, NameTaken. If storing
        the token fails the user row is rolled back with it. Hashing and
        sealing both finish before the transaction opens.
        """
        self.validate_name(name)
        self.validate_password(password)
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            password_hash=crypto.hash_password(password, self.settings.bcrypt_rounds),
            created_at=now_iso(),
        )
        minted = self.vault.mint(password)
        with self.db.transaction() as conn:
            try:
                conn.execute(
                    users.insert().values(
                        id=user.id,
                        name=user.name,
                        password_hash=user.password_hash,
                        created_at=user.created_at,
                    )
                )
            except SAIntegrityError as exc:
                raise NameTaken() from exc
            code = self.vault.store(user.id, minted, conn=conn)
        logger.info("User registered: %s", user.id)
        return user, code

    def rename(self, user_id: str, new_name: str) -> None:
        """Change a user's name. Raises InvalidName, NameTaken, UserNotFound."""
        self.validate_name(new_name)
        with self.db.transaction() as conn:
            try:
                result = conn.execute(users.update().where(users.c.id == user_id).values(name=new_name))
            except SAIntegrityError as exc:
                raise NameTaken() from exc
            if result.rowcount == 0:
                raise UserNotFound()
        logger.info("User renamed: %s", user_id)

    def change_password(self, user_id: str, new_password: str) -> str:
        """Rehash the password and re-issue the token under it.

        The old token was sealed under the old password, which is gone after
        this call; keeping it would leave a code nobody can recover. Returns
        the new code.
        """
        self.validate_password(new_password)
        new_hash = crypto.hash_password(new_password, self.settings.bcrypt_rounds)
        minted = self.vault.mint(new_password)
        with self.db.transaction() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(password_hash=new_hash))
            if result.rowcount == 0:
                raise UserNotFound()
            code = self.vault.store(user_id, minted, conn=conn)
        logger.info("Password changed for user %s", user_id)
        return code

    def remove(self, user_id: str) -> None:
        """Delete a user. The schema cascades to its token and privileges."""
        with self.db.transaction() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
            if result.rowcount == 0:
                raise UserNotFound()
        logger.info("User removed: %s", user_id)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, name: str, password: str) -> str:
        """Return the user id if password matches name's hash.

        Raises UserNotFound for an unknown name and BadCredential on mismatch.
        bcrypt runs in both cases [C1].
        """
        user = self.get_by_name(name)
        if not crypto.check_password(password, user.password_hash if user else None, self.settings.bcrypt_rounds):
            if user is None:
                raise UserNotFound()
            raise BadCredential()
        return user.id

    def verify(self, user_id: str, password: str) -> None:
        """Like authenticate(), keyed by id. Returns nothing on success."""
        user = self.get_by_id(user_id)
        if not crypto.check_password(password, user.password_hash if user else None, self.settings.bcrypt_rounds):
            if user is None:
                raise UserNotFound()
            raise BadCredential()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        with self.db.transaction() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_name(self, name: str) -> User | None:
        with self.db.transaction() as conn:
            row = conn.execute(users.select().where(users.c.name == name)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> str:
        """Return the name for user_id. Raises UserNotFound."""
        user = self.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user.name

    def find_by_name(self, name: str) -> str:
        """Return the id for name. Raises UserNotFound."""
        user = self.get_by_name(name)
        if user is None:
            raise UserNotFound()
        return user.id

    def page_ids(self, size: int, page: int = 0) -> list[str]:
        """Return one page of user ids, ordered by name. Empty past the end."""
        return [row.id for row in self._page(users.c.id, size, page)]

    def page_names(self, size: int, page: int = 0) -> list[str]:
        """Return one page of user names, ordered by name. Empty past the end."""
        return [row.name for row in self._page(users.c.name, size, page)]

    def _page(self, column, size: int, page: int) -> list:
        if size < 1 or page < 0:
            raise InvalidPage()
        with self.db.transaction() as conn:
            return conn.execute(
                select(column).order_by(users.c.name).limit(size).offset(size * page)
            ).fetchall()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )
