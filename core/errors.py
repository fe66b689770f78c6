"""
core/errors.py -- Typed error taxonomy shared by every layer.

Every failure the core can produce is a subclass of VaultError. Each class
carries a stable machine-readable `code` (used in API envelopes and CLI
output) and a default human message. Adapters map the *kind* (the direct
subclass of VaultError) to a transport status; they never parse messages.

Kinds:
  InvalidInput   -- bad name format, weak password, bad page bounds
  Conflict       -- unique name already in use
  NotFound       -- user, token or privilege absent
  BadCredential  -- password does not verify
  IntegrityError -- sealed token payload fails authentication
  Unauthorized   -- privilege gate denied the request
  StoreFailure   -- underlying persistence error

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for all typed TokenVault failures."""

    code = "vault_error"
    message = "An error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# InvalidInput
# ---------------------------------------------------------------------------


class InvalidInput(VaultError):
    code = "invalid_input"
    message = "Input is invalid."


class InvalidName(InvalidInput):
    code = "user_name_invalid"
    message = "User name must be at least 3 characters (a-z, A-Z, 0-9, and _) in length."


class WeakPassword(InvalidInput):
    code = "user_pass_invalid"
    message = "User pass must be at least 6 characters in length."


class InvalidPassword(InvalidInput):
    code = "user_pass_too_long"
    message = "User pass must be at most 72 bytes in length."


class PasswordMismatch(InvalidInput):
    code = "user_pass_mismatch"
    message = "Confirmation pass is different than the original pass."


class InvalidPage(InvalidInput):
    code = "page_invalid"
    message = "Page size must be at least 1 and page number at least 0."


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------


class Conflict(VaultError):
    code = "conflict"
    message = "Entry already exists."


class NameTaken(Conflict):
    code = "user_entry_hit"
    message = "User entry already exists."


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------


class NotFound(VaultError):
    code = "not_found"
    message = "Entry does not exist."


class UserNotFound(NotFound):
    code = "user_entry_miss"
    message = "User entry does not exist."


class TokenNotFound(NotFound):
    code = "token_entry_miss"
    message = "Token entry does not exist."


class PrivilegeNotFound(NotFound):
    code = "privilege_entry_miss"
    message = "Privilege entry does not exist."


# ---------------------------------------------------------------------------
# Credentials and authorization
# ---------------------------------------------------------------------------


class BadCredential(VaultError):
    code = "user_pass_failed"
    message = "User pass does not match."


class IntegrityError(VaultError):
    code = "token_integrity_failed"
    message = "Token payload failed authentication."


class Unauthorized(VaultError):
    code = "privilege_pair_failed"
    message = "Privilege not authorized."


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class StoreFailure(VaultError):
    code = "store_failure"
    message = "The store could not complete the operation."


class SealFailure(StoreFailure):
    code = "token_generate_failed"
    message = "Failed to generate token."
