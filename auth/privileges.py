"""
auth/privileges.py -- PrivilegeRegistry: (mask, key) -> value storage.

The registry is the only writer of rows in the privileges table. It has no
opinion on WHO may write -- that is AuthorizationGate's job (auth/gate.py).
Callers must pass the gate before calling set()/unset().

A privilege can never outlive its token: privileges.mask is a foreign key to
tokens.mask with ON DELETE CASCADE, so replacing or removing a token takes its
privileges with it without any code here.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from auth.db import Database, privileges, tokens
from core.errors import Conflict, PrivilegeNotFound, TokenNotFound

logger = logging.getLogger("tokenvault.privileges")


class PrivilegeRegistry:
    def __init__(self, db: Database) -> None:
        self.db = db

    def set(self, mask: str, key: str, value: str) -> None:
        """Upsert a privilege by (mask, key).

        Portable upsert: UPDATE first, INSERT when nothing matched. Raises
        TokenNotFound when no token carries mask, Conflict if a concurrent
        writer inserted the same pair between the two statements.
        """
        with self.db.transaction() as conn:
            result = conn.execute(
                privileges.update()
                .where((privileges.c.mask == mask) & (privileges.c.key == key))
                .values(value=value)
            )
            if result.rowcount == 0:
                if conn.execute(select(tokens.c.mask).where(tokens.c.mask == mask)).fetchone() is None:
                    raise TokenNotFound()
                try:
                    conn.execute(privileges.insert().values(mask=mask, key=key, value=value))
                except SAIntegrityError as exc:
                    raise Conflict("Privilege entry was written concurrently.") from exc
        logger.info("Privilege set: %s on mask %s...", key, mask[:12])

    def unset(self, mask: str, key: str) -> None:
        """Delete a privilege. Raises PrivilegeNotFound if the pair is absent."""
        with self.db.transaction() as conn:
            result = conn.execute(
                privileges.delete().where((privileges.c.mask == mask) & (privileges.c.key == key))
            )
            if result.rowcount == 0:
                raise PrivilegeNotFound()
        logger.info("Privilege unset: %s on mask %s...", key, mask[:12])

    def get(self, mask: str, key: str) -> str | None:
        """Return the value, or None. Unknown mask and unknown key look the same."""
        with self.db.transaction() as conn:
            row = conn.execute(
                select(privileges.c.value).where((privileges.c.mask == mask) & (privileges.c.key == key))
            ).fetchone()
        return row.value if row is not None else None

    def list(self, mask: str) -> dict[str, str]:
        """Return every privilege of mask as {key: value}, ordered by key."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                select(privileges.c.key, privileges.c.value)
                .where(privileges.c.mask == mask)
                .order_by(privileges.c.key)
            ).fetchall()
        return {row.key: row.value for row in rows}
