from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    STALE_REFERENCE = "stale_reference"
    AUTH_FAILURE = "auth_failure"
    ENDPOINT_FAILURE = "endpoint_failure"
    ASSERTION_MISMATCH = "assertion_mismatch"


class DashboardCheckError(Exception):
    """Base class for every failure the check engine reports to a scenario."""

    kind: ErrorKind = ErrorKind.ENDPOINT_FAILURE

    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message)
        self.target = target

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": str(self), "target": self.target}


class ElementNotFound(DashboardCheckError):
    kind = ErrorKind.ELEMENT_NOT_FOUND


class WaitTimeout(DashboardCheckError):
    kind = ErrorKind.TIMEOUT


class StaleReference(DashboardCheckError):
    kind = ErrorKind.STALE_REFERENCE


class AuthFailure(DashboardCheckError):
    kind = ErrorKind.AUTH_FAILURE

    def __init__(self, message: str, *, target: str | None = None, status: int | None = None) -> None:
        super().__init__(message, target=target)
        self.status = status


class EndpointFailure(DashboardCheckError):
    kind = ErrorKind.ENDPOINT_FAILURE

    def __init__(self, message: str, *, target: str | None = None, status: int | None = None) -> None:
        super().__init__(message, target=target)
        self.status = status


class AssertionMismatch(DashboardCheckError, AssertionError):
    """Raised with a ConsistencyReport whose per-field diff is in the message."""

    kind = ErrorKind.ASSERTION_MISMATCH

    def __init__(self, message: str, report: Any = None, *, target: str | None = None) -> None:
        super().__init__(message, target=target)
        self.report = report


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or the typed error that prevented producing it."""

    value: T | None = None
    error: DashboardCheckError | None = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DashboardCheckError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
