"""
core/config.py -- Engine configuration via pydantic-settings.

The host hands the engine a plain mapping (usually parsed from its own config
file). EngineConfig validates that mapping once at construction; nothing else
in the package reads configuration directly.

Design patterns used:
  BaseSettings (pydantic-settings): values passed by the host win. Fields the
      host leaves unset may be filled from SQLITE_AUTH_* environment variables,
      e.g. SQLITE_AUTH_SECRET or SQLITE_AUTH_QUERIES__AUTH_USER.

  Sentinel normalization: an unset or null query template is resolved to ""
      by a field validator. "" is the single "operation disabled" sentinel, so
      callers never need to distinguish None from empty.

  Frozen models: the config is immutable after validation. Every operation
      reads the same values for the lifetime of the engine.

Layer rule: core/ imports only stdlib + third-party libraries. auth/ imports
from core/, never the other way around.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sqliteauth.config")

QUERY_NAMES: tuple[str, ...] = ("auth_user", "add_user", "update_user")


class QueryConfig(BaseModel):
    """The three operator-supplied SQL templates.

    Parameters are positional (?) and bound in a fixed order per operation:

      auth_user    (username, hashed_password) -> rows with a usergroups column
      add_user     (username, hashed_password)
      update_user  (hashed_new_password, username, hashed_old_password)

    SQL syntax is not checked here. A broken template surfaces as a store
    error on first use and is reported through the logger.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    auth_user: str = ""
    add_user: str = ""
    update_user: str = ""

    @field_validator("auth_user", "add_user", "update_user", mode="before")
    @classmethod
    def _unset_means_disabled(cls, value):
        # YAML "auth_user:" with no value arrives as None
        return "" if value is None else value

    def disabled(self) -> list[str]:
        """Return the names of templates that are empty, in declaration order."""
        return [name for name in QUERY_NAMES if not getattr(self, name)]


class EngineConfig(BaseSettings):
    """Validated configuration for one AuthEngine instance.

    path:     SQLite database file. The engine opens it per operation and never
              holds a connection between calls.
    secret:   PBKDF2 key material. Empty disables hashing (plaintext compare).
    mode:     SQLite URI open mode. "rw" refuses to create a missing file,
              "rwc" creates it, "ro" rejects add_user / update_user writes.
              A numeric mode (legacy open flags) is logged and treated as "rw".
    timeout_seconds:
              Deadline for one operation. Also used as the driver's busy
              timeout so a locked file errors instead of blocking forever.
    strict_password_change:
              When true, change_password reports False if the update matched
              no row (wrong old password or unknown user).
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLITE_AUTH_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    path: str = ""
    secret: str = ""
    mode: Literal["ro", "rw", "rwc"] = "rw"
    timeout_seconds: float = Field(default=5.0, gt=0)
    strict_password_change: bool = False
    queries: QueryConfig = Field(default_factory=QueryConfig)

    @field_validator("secret", mode="before")
    @classmethod
    def _null_secret_is_empty(cls, value):
        return "" if value is None else value

    @field_validator("queries", mode="before")
    @classmethod
    def _null_queries_block(cls, value):
        return {} if value is None else value

    @field_validator("mode", mode="before")
    @classmethod
    def _numeric_mode_is_ignored(cls, value):
        # older configs carried sqlite3 open flags as a number, never applied
        if isinstance(value, int) and not isinstance(value, bool):
            logger.warning("SQLite - numeric mode %s is ignored, using rw", value)
            return "rw"
        return value
