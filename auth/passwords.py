"""
auth/passwords.py -- bcrypt password hashing and verification.

Security design decisions:
  bcrypt directly, no passlib wrapper. passlib's wrap-bug detection feeds
       bcrypt a >72-byte password, which bcrypt 4.x rejects outright.

  Work factor comes from Settings.bcrypt_rounds (default 12). The cost class
       is part of the contract: a verification should take tens of
       milliseconds, which makes offline guessing expensive.

  72-byte cap: bcrypt only looks at the first 72 bytes of its input. Older
       releases truncate silently, newer ones raise. We truncate explicitly so
       hash() and verify() agree on every bcrypt version.

  Timing equalization [C1]: verify_dummy() runs a full verification against a
       fixed hash so an unknown email costs the same as a wrong password.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from functools import cached_property

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """One-way salted password hashing with constant-time verification.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("secret1")
        hasher.verify("secret1", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain with a fresh random salt.

        Errors from bcrypt itself propagate; they are infrastructure failures,
        not authentication failures.
        """
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches hashed. Malformed or missing hashes return False."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    @cached_property
    def _dummy_hash(self) -> str:
        return self.hash("tokengate_timing_dummy")

    def verify_dummy(self, plain: str) -> bool:
        """Burn one verification's worth of CPU against a throwaway hash [C1]. Always False."""
        self.verify(plain, self._dummy_hash)
        return False
