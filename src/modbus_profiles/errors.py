"""Exceptions for modbus-profiles: parse/validation failures and storage errors."""


class ModbusProfilesError(Exception):
    """Base exception for modbus-profiles."""

    pass


class LibraryParseError(ModbusProfilesError):
    """Raised when a library document is not valid JSON text."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class LibraryValidationError(ModbusProfilesError):
    """Raised when a parsed document does not match the library schema."""

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        self.reason = message or "invalid value"
        where = path or "<root>"
        super().__init__(f"{where}: {self.reason}")


class StorageUnavailableError(ModbusProfilesError):
    """Raised when the storage backend rejects a read or write (quota, disabled, I/O)."""

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.key = key
        self.cause = cause
        super().__init__(message)
