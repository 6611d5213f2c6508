"""
Invocation Outcomes

The tagged result of one dispatch, produced once and immediately turned
into a response envelope.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from toolbroker.catalog.schema import Violation


@dataclass(frozen=True)
class InvocationRequest:
    category: str
    name: str
    args: Any = field(default_factory=dict)


@dataclass(frozen=True)
class Success:
    value: Any
    kind = "success"


@dataclass(frozen=True)
class ValidationFailure:
    violations: tuple
    category: Optional[str] = None
    name: Optional[str] = None
    kind = "validation_failure"

    @classmethod
    def of(cls, violations: list[Violation], category=None, name=None) -> "ValidationFailure":
        return cls(tuple(violations), category, name)


@dataclass(frozen=True)
class UnknownRoute:
    """``missing`` is "category" or "operation"."""
    category: Any
    name: Any
    missing: str = "category"
    available: tuple = ()
    kind = "unknown_route"


@dataclass(frozen=True)
class HandlerFailure:
    error: BaseException
    category: Optional[str] = None
    name: Optional[str] = None
    timed_out: bool = False
    secrets: tuple = field(default=(), repr=False)
    kind = "handler_failure"


InvocationOutcome = Union[Success, ValidationFailure, UnknownRoute, HandlerFailure]
