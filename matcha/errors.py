"""
Matcha: error taxonomy.

Services raise these; the HTTP layer maps them to status codes in
``matcha.main``.  Duplicate likes, blocks and matches are not errors: the
ledger reports them through result statuses instead.
"""

from __future__ import annotations


class MatchaError(Exception):
    """Base class for every failure the core reports to its callers."""

    code = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(MatchaError):
    """Malformed input.  All problems found are reported together."""

    code = "validation_failed"

    def __init__(self, errors: list[str] | str, message: str = "Validation failed") -> None:
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(message)
        self.errors = list(errors)

    def __str__(self) -> str:
        return f"{self.message}: {'; '.join(self.errors)}"


class ConflictError(MatchaError):
    code = "conflict"


class AuthenticationError(MatchaError):
    code = "invalid_credentials"


class AuthorizationError(MatchaError):
    code = "forbidden"


class NotMatchedError(AuthorizationError):
    """The two users are not matched, so they may not exchange messages."""

    code = "not_matched"

    def __init__(self, message: str = "You can only message users you have matched with.") -> None:
        super().__init__(message)


class BlockedError(AuthorizationError):
    """One of the two users blocks the other."""

    code = "blocked"

    def __init__(self, message: str = "Messaging is unavailable because one of you blocked the other.") -> None:
        super().__init__(message)


class NotFoundError(MatchaError):
    code = "not_found"


class TransientStoreError(MatchaError):
    """Connection or transaction failure.  Retry the whole operation."""

    code = "store_unavailable"
