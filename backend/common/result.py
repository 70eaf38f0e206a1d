"""Tagged result values passed between the pure decision code and the services.

``Ok`` carries a value plus non-blocking warnings; ``Err`` carries the error
tag and the fatal messages (and any warnings collected on the way).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from backend.common.constants import ErrorKind
from backend.common.exceptions import AppException, exception_for

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    warnings: list[str] = field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    errors: list[str]
    warnings: list[str] = field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return False

    def to_exception(self) -> AppException:
        return exception_for(self.kind, self.errors, self.warnings)


Result = Union[Ok[T], Err]


def unwrap(result: Result[T]) -> Ok[T]:
    """Return the ``Ok`` or raise the exception matching the ``Err`` tag."""
    if isinstance(result, Err):
        raise result.to_exception()
    return result
