"""
auth/engine.py -- AuthEngine: authenticate, add_user, change_password.

Outcome contract (what the host sees):
  authenticate     False, or the list of groups from the usergroups column
  add_user         True / False
  change_password  True / False

Every failure -- disabled template, store error, timeout, ambiguous result --
collapses to the negative result. The reason goes to the logger; the host never
sees driver exceptions or SQL text. An exception escaping one of these
coroutines is a host-level fault (e.g. cancellation), not a domain outcome.

Concurrency: the public operations are coroutines. SQLite work runs in a
worker thread via asyncio.to_thread so one slow call does not stall the event
loop, and each call is bounded by config.timeout_seconds. The engine holds no
mutable state between calls; concurrent callers need no locking.

Deadlines: when timeout_seconds passes, the running statement is interrupted
so its transaction rolls back. A read then reports the negative result at
once. A write waits for the worker thread and reports what really happened,
so a commit that beat the interrupt is never reported as a failure.

Input: a username or password that cannot be encoded as UTF-8 (a lone
surrogate from a JSON body, say) is rejected with the negative result.

Open decisions:
  change_password reports True on any non-erroring execution, even when the
  update matched no row (wrong old password). Set strict_password_change to
  require a matched row. A zero-row update is logged as a warning either way.

  A matched row with a NULL usergroups column returns [""], not []. Existing
  group-parsing callers rely on a non-empty list meaning "authenticated".

Layer rule: no imports from plugin.py.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from auth.connection import ConnectionScope, StatementInterrupt, StoreError
from auth.hashing import PasswordHasher
from auth.models import DENIED, AuthResult, Credential
from auth.startup import StartupValidator
from core.config import EngineConfig

T = TypeVar("T")

Callback = Callable[[Any, Any], None]


def _discard_result(fut: asyncio.Future) -> None:
    # an abandoned read may still fail after its deadline; already reported
    if not fut.cancelled():
        fut.exception()


class LogSink(Protocol):
    """Anything with logging.Logger-style leveled methods (%-style args)."""

    def debug(self, msg: str, *args: Any) -> None: ...
    def info(self, msg: str, *args: Any) -> None: ...
    def warning(self, msg: str, *args: Any) -> None: ...
    def error(self, msg: str, *args: Any) -> None: ...


class AuthEngine:
    """Credential checks against operator-defined SQL templates.

    Usage:
        engine = AuthEngine({"path": "users.db", "secret": "k", "queries": {...}})
        groups = await engine.authenticate("alice", "pw1")   # ["admin", "dev"] or False
        ok = await engine.add_user("bob", "pw2")
        ok = await engine.change_password("bob", "pw2", "pw3")
    """

    def __init__(self, config: EngineConfig | Mapping[str, Any], logger: LogSink | None = None) -> None:
        if not isinstance(config, EngineConfig):
            config = EngineConfig(**config)
        self.config = config
        self.queries = config.queries
        self.logger: LogSink = logger if logger is not None else logging.getLogger("sqliteauth.engine")
        self.hasher = PasswordHasher(config.secret)
        self.scope = ConnectionScope(config)
        self.health = StartupValidator(config, self.scope, self.logger).run()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def authenticate(self, user: str, password: str) -> AuthResult:
        template = self.queries.auth_user
        if not template:
            self.logger.info("SQLite - Can't authenticate: auth_user query is empty")
            return DENIED

        try:
            hashed = self.hasher.hash_credential(Credential(user, password))
        except UnicodeError:
            self.logger.error("SQLite - authenticate rejected for %r: password is not valid UTF-8", user)
            return DENIED
        try:
            rows = await self._run(
                "auth_user", self.scope.fetch_rows, template, (hashed.username, hashed.hashed_password)
            )
        except StoreError as e:
            self.logger.error("SQLite - authenticate failed for %r: %s", user, e)
            return DENIED

        if len(rows) != 1:
            self.logger.debug("SQLite - authenticate for %r matched %d rows, denied", user, len(rows))
            return DENIED

        row = rows[0]
        if "usergroups" not in row:
            self.logger.error("SQLite - auth_user query must return a usergroups column")
            return DENIED

        groups = row["usergroups"]
        self.logger.debug("SQLite - authenticated %r", row.get("username", user))
        if groups is None:
            return [""]
        return str(groups).split(",")

    async def add_user(self, user: str, password: str) -> bool:
        template = self.queries.add_user
        if not template:
            self.logger.info("SQLite - Can't add user: add_user query is empty")
            return False

        try:
            hashed = self.hasher.hash_credential(Credential(user, password))
        except UnicodeError:
            self.logger.error("SQLite - add_user rejected for %r: password is not valid UTF-8", user)
            return False
        try:
            await self._run(
                "add_user", self.scope.execute, template, (hashed.username, hashed.hashed_password), write=True
            )
        except StoreError as e:
            self.logger.error("SQLite - add_user failed for %r: %s", user, e)
            return False
        return True

    async def change_password(self, user: str, old_password: str, new_password: str) -> bool:
        template = self.queries.update_user
        if not template:
            self.logger.info("SQLite - Can't change password: update_user query is empty")
            return False

        try:
            hashed_new = self.hasher.hash(new_password)
            hashed_old = self.hasher.hash(old_password)
        except UnicodeError:
            self.logger.error("SQLite - change_password rejected for %r: password is not valid UTF-8", user)
            return False
        try:
            count = await self._run(
                "update_user", self.scope.execute, template, (hashed_new, user, hashed_old), write=True
            )
        except StoreError as e:
            self.logger.error("SQLite - change_password failed for %r: %s", user, e)
            return False

        if count == 0:
            self.logger.warning("SQLite - change_password for %r matched no row", user)
            if self.config.strict_password_change:
                return False
        return True

    # ------------------------------------------------------------------
    # Callback bridges for hosts that want (error, result) delivery
    # ------------------------------------------------------------------

    def authenticate_cb(self, user: str, password: str, cb: Callback) -> asyncio.Task:
        return self._deliver(self.authenticate(user, password), cb)

    def add_user_cb(self, user: str, password: str, cb: Callback) -> asyncio.Task:
        return self._deliver(self.add_user(user, password), cb)

    def change_password_cb(self, user: str, old_password: str, new_password: str, cb: Callback) -> asyncio.Task:
        return self._deliver(self.change_password(user, old_password, new_password), cb)

    def close(self) -> None:
        self.scope.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        fn: Callable[..., T],
        template: str,
        params: Sequence[Any],
        write: bool = False,
    ) -> T:
        """Run a blocking scope call in a worker thread under the configured deadline.

        On timeout the statement is interrupted. Reads raise StoreError straight
        away; writes wait for the thread so the caller never reports False for
        a transaction that was committed.
        """
        interrupt = StatementInterrupt()
        work = asyncio.ensure_future(asyncio.to_thread(fn, operation, template, params, interrupt))
        try:
            return await asyncio.wait_for(asyncio.shield(work), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.logger.warning(
                "SQLite - %s exceeded %ss, interrupting statement", operation, self.config.timeout_seconds
            )
            # interrupt() blocks while a commit holds the lock
            await asyncio.to_thread(interrupt.interrupt)
            if write:
                return await work
            work.add_done_callback(_discard_result)
            raise StoreError(operation, TimeoutError(f"no result after {self.config.timeout_seconds}s")) from e

    @staticmethod
    def _deliver(coro: Coroutine[Any, Any, Any], cb: Callback) -> asyncio.Task:
        """Schedule coro on the running loop and hand its outcome to cb(error, result)."""
        task = asyncio.ensure_future(coro)

        def _done(t: asyncio.Task) -> None:
            if t.cancelled():
                cb(asyncio.CancelledError(), None)
                return
            exc = t.exception()
            if exc is not None:
                cb(exc, None)
            else:
                cb(None, t.result())

        task.add_done_callback(_done)
        return task
