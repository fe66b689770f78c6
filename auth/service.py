"""
auth/service.py -- AuthService: the operations outer adapters call.

Composes UserStore, TokenVault, PrivilegeRegistry and AuthorizationGate over
one injected Database. Every method takes plain strings/ints and returns a
plain value or raises a core.errors.VaultError subclass unchanged -- the
facade never catches a typed failure.

Account-mutating operations here are keyed by user id. Adapters obtain the id
from authenticate(name, password) first; that is how "no mutation without the
name's password" is enforced at the edge. issue_token() verifies the password
itself because the password is also the sealing key.

Privilege operations take codes, not masks: masks are derived here so a
caller can never address a privilege set it does not hold the code for
(except through the gate).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets

from auth import crypto
from auth.db import Database
from auth.gate import AuthorizationGate
from auth.privileges import PrivilegeRegistry
from auth.tokens import TokenVault
from auth.users import UserStore
from core.config import Settings, get_settings
from core.errors import TokenNotFound


def generate_root_secret() -> str:
    """Return a fresh process-lifetime root secret (never persisted)."""
    return crypto.encode_code(secrets.token_bytes(crypto.CODE_BYTES))


class AuthService:
    """Core facade.

    Usage:
        service = AuthService(Database())
        user_id = service.register("alice", "secret1")
        code = service.recover_token(user_id, "secret1")
        service.set_privilege(service.root_secret, code, "manage-privilege", "1")
    """

    def __init__(self, db: Database, root_secret: str | None = None, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.root_secret = root_secret or generate_root_secret()
        self.vault = TokenVault(db, self.settings)
        self.users = UserStore(db, self.vault, self.settings)
        self.privileges = PrivilegeRegistry(db)
        self.gate = AuthorizationGate(self.privileges, self.root_secret)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def register(self, name: str, password: str) -> str:
        return self.register_with_code(name, password)[0]

    def register_with_code(self, name: str, password: str) -> tuple[str, str]:
        """register(), also returning the initial code: (user_id, code)."""
        user, code = self.users.register(name, password)
        return user.id, code

    def authenticate(self, name: str, password: str) -> str:
        return self.users.authenticate(name, password)

    def rename(self, user_id: str, new_name: str) -> None:
        self.users.rename(user_id, new_name)

    def change_password(self, user_id: str, new_password: str) -> str:
        return self.users.change_password(user_id, new_password)

    def remove(self, user_id: str) -> None:
        self.users.remove(user_id)

    def find_by_id(self, user_id: str) -> str:
        return self.users.find_by_id(user_id)

    def find_by_name(self, name: str) -> str:
        return self.users.find_by_name(name)

    def page_ids(self, size: int, page: int = 0) -> list[str]:
        return self.users.page_ids(size, page)

    def page_names(self, size: int, page: int = 0) -> list[str]:
        return self.users.page_names(size, page)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(self, owner_id: str, password: str) -> str:
        """Replace owner's token with a fresh one. Raises BadCredential, UserNotFound."""
        self.users.verify(owner_id, password)
        return self.vault.issue(owner_id, password)

    def recover_token(self, owner_id: str, password: str) -> str:
        return self.vault.recover(owner_id, password)

    def identify(self, code: str) -> str:
        return self.vault.identify(code)

    # ------------------------------------------------------------------
    # Privileges
    # ------------------------------------------------------------------

    def set_privilege(self, auth: str, target_code: str, key: str, value: str) -> None:
        """Set key=value on target_code's mask if the gate admits auth."""
        self.gate.authorize(auth)
        self.privileges.set(self._target_mask(target_code), key, value)

    def unset_privilege(self, auth: str, target_code: str, key: str) -> None:
        self.gate.authorize(auth)
        self.privileges.unset(self._target_mask(target_code), key)

    def get_privilege(self, target_code: str, key: str) -> str | None:
        mask = crypto.mask_text(target_code)
        return self.privileges.get(mask, key) if mask is not None else None

    def list_privileges(self, target_code: str) -> dict[str, str]:
        mask = crypto.mask_text(target_code)
        return self.privileges.list(mask) if mask is not None else {}

    @staticmethod
    def _target_mask(code: str) -> str:
        mask = crypto.mask_text(code)
        if mask is None:
            raise TokenNotFound()
        return mask

    def close(self) -> None:
        self.db.close()
