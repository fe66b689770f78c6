"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenVault happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. bcrypt_rounds -> BCRYPT_ROUNDS). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to reject hashing parameters that
      bcrypt or Argon2 would refuse at the first request rather than at startup.

Security notes:
  [K1] Token keys are derived with Argon2id (memory-hard). The defaults follow
       the RFC 9106 "second recommended" profile scaled for an interactive
       service. Lowering them is only acceptable in tests.

  [K2] The root secret is deliberately NOT a setting. It is generated per
       process by auth.service.AuthService and never written anywhere.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokenvault.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'tokenvault.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    the hashing parameter bounds at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Password hashing (bcrypt)
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Token key derivation (Argon2id) [K1]
    # ------------------------------------------------------------------

    kdf_time_cost: int = 3
    kdf_memory_cost: int = 65536  # KiB
    kdf_parallelism: int = 4

    # ------------------------------------------------------------------
    # Account rules
    # ------------------------------------------------------------------

    name_min_length: int = 3
    password_min_length: int = 6

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    # Logs the per-process root secret once at API startup so an operator can
    # grant the first manage-privilege. Leave off outside first-run setups.
    show_root_secret: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_hashing_params(self) -> "Settings":
        """Reject parameters that the hashing libraries would refuse at runtime.

        bcrypt only accepts cost factors 4..31. Argon2 requires at least
        8 KiB of memory per lane and one pass. Failing here turns a runtime
        error on the first registration into a startup error.
        """
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.kdf_time_cost < 1:
            raise ValueError("KDF_TIME_COST must be at least 1.")
        if self.kdf_parallelism < 1:
            raise ValueError("KDF_PARALLELISM must be at least 1.")
        if self.kdf_memory_cost < 8 * self.kdf_parallelism:
            raise ValueError("KDF_MEMORY_COST must be at least 8 KiB per lane (8 * KDF_PARALLELISM).")
        if self.name_min_length < 1 or self.password_min_length < 1:
            raise ValueError("NAME_MIN_LENGTH and PASSWORD_MIN_LENGTH must be positive.")
        if self.debug and self.bcrypt_rounds < 10:
            logger.warning("WARNING: BCRYPT_ROUNDS=%d is below the production floor.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, unless a test needs an explicit instance.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
