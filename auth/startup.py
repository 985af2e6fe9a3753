"""
auth/startup.py -- One-shot configuration and store checks at engine construction.

Nothing here is fatal. Each check logs and moves on so the host can always
finish loading the plugin; a broken store or missing template then shows up
as False results from the affected operation, with the reason already in the
log from startup.

Severity:
  error    store missing/unreachable, auth_user missing (every login denied)
  warning  secret missing (plaintext passwords), add_user / update_user
           missing (that one operation disabled)

Layer rule: no imports from plugin.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from auth.connection import StoreError
from core.config import EngineConfig

if TYPE_CHECKING:
    from auth.connection import ConnectionScope
    from auth.engine import LogSink


@dataclass(frozen=True)
class EngineHealth:
    """What StartupValidator found. Informational only; operations re-check on their own."""

    store_ok: bool
    disabled: tuple[str, ...] = ()
    hashing_enabled: bool = True


class StartupValidator:
    def __init__(self, config: EngineConfig, scope: ConnectionScope, logger: LogSink) -> None:
        self._config = config
        self._scope = scope
        self._logger = logger

    def run(self) -> EngineHealth:
        store_ok = self._check_store()
        disabled = tuple(self._config.queries.disabled())

        if "auth_user" in disabled:
            self._logger.error("SQLite - auth_user query is empty, every authentication will be denied")
        if not self._config.secret:
            self._logger.warning("SQLite - secret is empty, passwords are compared as plaintext")
        for name in ("add_user", "update_user"):
            if name in disabled:
                self._logger.warning("SQLite - %s query is empty, operation disabled", name)

        return EngineHealth(store_ok=store_ok, disabled=disabled, hashing_enabled=bool(self._config.secret))

    def _check_store(self) -> bool:
        path = self._config.path
        if not path:
            self._logger.error("SQLite - path is not configured")
            return False

        if not Path(path).is_file():
            if self._config.mode != "rwc":
                self._logger.error("SQLite - database file %s does not exist", path)
                return False
            # rwc: the round trip below creates the file
            self._logger.info("SQLite - database file %s does not exist, it will be created", path)

        try:
            self._scope.ping()
        except StoreError as e:
            self._logger.error("SQLite - Test connection did not work")
            self._logger.error("SQLite - Error: %s", e.cause)
            return False
        return True
