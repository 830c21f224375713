import sqlite3


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"error": self.message}


class InputError(LedgerError, ValueError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    status_code = 409


class StoreError(LedgerError):
    """A failure raised by the database while running a ledger operation."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        hint: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.details = details
        self.hint = hint
        self.code = code

    @classmethod
    def from_sqlite(cls, prefix: str, exc: sqlite3.Error) -> "StoreError":
        code = getattr(exc, "sqlite_errorname", None)
        hint = None
        if isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc):
            hint = "database is busy, try again later"
        return cls(
            f"{prefix}: {exc}",
            details=type(exc).__name__,
            hint=hint,
            code=code,
        )

    def to_body(self) -> dict:
        body = {"error": self.message}
        for key in ("details", "hint", "code"):
            value = getattr(self, key)
            if value is not None:
                body[key] = value
        return body
