"""Success/failure wrapper returned across the engine's public boundary."""

from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Result(Generic[T]):
    """Outcome of an operation: either a value or an error message."""

    def __init__(self, is_success: bool, value: Optional[T] = None, error: Optional[str] = None):
        if is_success and error is not None:
            raise ValueError("A successful result cannot carry an error")
        if not is_success and not error:
            raise ValueError("A failed result needs an error message")
        self._is_success = is_success
        self._value = value
        self._error = error

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(True, value=value)

    @classmethod
    def fail(cls, error: str) -> "Result[T]":
        return cls(False, error=error)

    @property
    def is_success(self) -> bool:
        return self._is_success

    @property
    def is_failure(self) -> bool:
        return not self._is_success

    @property
    def value(self) -> T:
        if not self._is_success:
            raise ValueError(f"Cannot read the value of a failed result: {self._error}")
        return self._value

    @property
    def error(self) -> Optional[str]:
        return self._error

    def __repr__(self) -> str:
        if self._is_success:
            return f"Result.ok({self._value!r})"
        return f"Result.fail({self._error!r})"
