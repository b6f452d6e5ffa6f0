"""Result values returned across the directory, router and orchestrator.

Operations that can fail hand back ``Ok(value)`` or ``Err(error)`` instead of
raising, so callers branch on the outcome explicitly::

    result = await router.completion(request)
    if isinstance(result, Err):
        ...
    response = result.value

Alias lookups use ``Found``/``NotFound`` in the same way.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import GatewayError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    error: GatewayError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]


@dataclass(frozen=True, slots=True)
class Found:
    provider: str


@dataclass(frozen=True, slots=True)
class NotFound:
    alias: str


Lookup = Union[Found, NotFound]
