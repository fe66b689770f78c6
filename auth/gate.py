"""
auth/gate.py -- AuthorizationGate: may this requester mutate privileges?

A requester presenting the raw code `auth` is allowed iff ANY of:
  1. auth equals the process root secret (constant-time compare);
  2. the requester's own mask holds root=1;
  3. the requester's own mask holds manage-privilege=1.

Only the requester's privileges are consulted. The target of the mutation is
irrelevant to the decision -- holding manage-privilege on your own token does
not require anything of the token you are editing.

The root secret is injected, not read from a module global, so tests can
supply a known value and production generates one per process.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth import crypto
from auth.privileges import PrivilegeRegistry
from core.errors import Unauthorized

logger = logging.getLogger("tokenvault.gate")

ROOT_KEY = "root"
MANAGE_KEY = "manage-privilege"
GRANTED = "1"


class AuthorizationGate:
    def __init__(self, registry: PrivilegeRegistry, root_secret: str) -> None:
        if not root_secret:
            raise ValueError("root_secret must be a non-empty string.")
        self.registry = registry
        self._root_secret = root_secret

    def is_root(self, auth: str) -> bool:
        return crypto.secrets_equal(auth, self._root_secret)

    def permits(self, auth: str) -> bool:
        """Return True if auth may set or unset privileges on any mask."""
        if self.is_root(auth):
            return True
        mask = crypto.mask_text(auth)
        if mask is None:
            return False
        return self.registry.get(mask, ROOT_KEY) == GRANTED or self.registry.get(mask, MANAGE_KEY) == GRANTED

    def authorize(self, auth: str) -> None:
        """Raise Unauthorized unless permits(auth)."""
        if not self.permits(auth):
            logger.warning("Privilege mutation denied")
            raise Unauthorized()
