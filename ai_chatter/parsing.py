"""
Tagged success/failure result for validating external payloads.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Either a validated value or a description of why validation failed."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Parsed[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Parsed[T]":
        return cls(error=error)
