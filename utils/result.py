"""
Small result type for verification flows.

Credential checks, token decoding and the request guards return
Ok(value) or Err(error) instead of raising, and each caller decides what
the failure means (a 401, a null rotation, ...).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class AuthError:
    """A refused authentication/authorization step, ready to render."""
    status: int
    code: str
    message: str
