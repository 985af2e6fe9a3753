"""
auth/models.py -- Domain dataclasses for credential checks.

Pattern: Data class (pure data container, zero logic). The hasher and the
engine do the work; these types only carry values between them.

Layer rule: no imports from plugin.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

# Domain denial. Hosts expect the literal False, not None or an empty list.
DENIED: Literal[False] = False

# False when the credential did not match, otherwise the group names.
AuthResult = Union[Literal[False], list[str]]


@dataclass(frozen=True)
class Credential:
    """A username/password pair as received from the host.

    Lives for one call only and is never written anywhere. repr=False keeps
    the plaintext out of tracebacks and log lines that format the object.
    """

    username: str
    plaintext_password: str = field(repr=False)


@dataclass(frozen=True)
class HashedCredential:
    """The credential after PasswordHasher, ready to bind into a template.

    hashed_password is either the 128-char PBKDF2-SHA512 hex digest or, when
    no secret is configured, the plaintext itself.
    """

    username: str
    hashed_password: str = field(repr=False)
