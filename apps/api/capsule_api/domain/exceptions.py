from __future__ import annotations


class CapsuleError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code


class ValidationError(CapsuleError):
    status_code = 400
    code = "validation_error"


class NotFoundError(CapsuleError):
    status_code = 404
    code = "not_found"


class AuthError(CapsuleError):
    """Bad credentials or missing session. The message never says which."""

    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Invalid credentials", *, code: str | None = None) -> None:
        super().__init__(message, code=code)


class ConflictError(CapsuleError):
    status_code = 409
    code = "conflict"


class StoreError(CapsuleError):
    """
    The KV backend failed (transport, parse, or timeout).

    The store has no transactions: after a failed write the stored state
    is unknown, callers must not assume the write did or did not happen.
    """

    status_code = 503
    code = "store_unavailable"
