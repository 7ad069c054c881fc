"""Success-or-error value for expected failures."""

from typing import Generic, TypeVar

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=Exception)


class Result(Generic[ValueT, ErrorT]):
    """
    Outcome of an operation whose failure is ordinary input, such as a
    malformed feed payload. Build with `Result.ok` or `Result.err`.
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: ValueT | None, error: ErrorT | None) -> None:
        self._value = value
        self._error = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value, None)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(None, error)

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        """The value; an error result raises its error instead."""
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Result holds a value, not an error")
        return self._error
