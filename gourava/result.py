class StoreError(Exception):
    """Raised by :meth:`Result.unwrap` when the wrapped operation failed."""


class StoreClosedError(StoreError):
    pass


class RecordNotFound(StoreError, LookupError):
    pass


class Result:
    """Outcome of a store operation: either a value or an error message.

    ``bool(result)`` is true on success, so callers can write
    ``if not result: ...`` without touching the value. Failures carry a
    ``kind`` of ``"error"`` or ``"not_found"``.
    """

    __slots__ = ("ok", "value", "error", "kind")

    def __init__(self, ok, value=None, error=None, kind=None):
        self.ok = bool(ok)
        self.value = value
        self.error = error
        self.kind = kind

    @classmethod
    def success(cls, value=None):
        return cls(True, value=value)

    @classmethod
    def failure(cls, error):
        return cls(False, error=str(error), kind="error")

    @classmethod
    def not_found(cls, error):
        return cls(False, error=str(error), kind="not_found")

    @property
    def is_not_found(self):
        return self.kind == "not_found"

    def __bool__(self):
        return self.ok

    def __repr__(self):
        if self.ok:
            return f"Result.success({self.value!r})"
        kind = "not_found" if self.is_not_found else "failure"
        return f"Result.{kind}({self.error!r})"

    def unwrap(self):
        if self.ok:
            return self.value
        if self.is_not_found:
            raise RecordNotFound(self.error)
        raise StoreError(self.error)

    def value_or(self, default):
        return self.value if self.ok else default
