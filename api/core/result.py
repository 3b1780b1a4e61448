"""
Explicit success/failure values for multi-stage flows.

A stage returns `Ok(value)` or `Err(error)`; the caller checks with
`isinstance` and stops at the first `Err`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: AppError


Result = Union[Ok[T], Err]
