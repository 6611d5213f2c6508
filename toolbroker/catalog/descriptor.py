"""
Operation Descriptors and Integration Modules

An integration module is the unit a provider contributes to the catalog:
its category name, the descriptors of every operation it offers, one
handler per operation, and the execution context its handlers need.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from .schema import SchemaNode


class Handler(Protocol):
    """Callable signature every operation implementation must follow; it may return an awaitable."""

    def __call__(self, args: dict, context: Any) -> Any:
        ...


@dataclass(frozen=True)
class OperationDescriptor:
    """Name, description and parameter schema of one operation."""
    category: str
    name: str
    description: str
    parameter_schema: SchemaNode
    subcategory: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.category, self.name)

    @classmethod
    def from_tool_definition(cls, category: str, definition: Mapping[str, Any]) -> "OperationDescriptor":
        """
        Build a descriptor from a tool definition dict.

        Expected format:
        {
            "name": "resend_send_email",
            "description": "Send an email",
            "inputSchema": {"type": "object", "properties": {...}, "required": [...]},
            "subcategory": "emails"      # optional
        }
        """
        schema = definition.get("inputSchema") or {"type": "object"}
        return cls(
            category=category,
            name=definition["name"],
            description=definition.get("description", ""),
            parameter_schema=SchemaNode.from_json_schema(schema),
            subcategory=definition.get("subcategory"),
        )

    def summary(self) -> dict:
        """Name and description only, as listed by list_operations."""
        return {"name": self.name, "description": self.description}

    def to_dict(self) -> dict:
        """Full description including the parameter schema."""
        data = {
            "category": self.category,
            "name": self.name,
            "description": self.description,
            "inputSchema": self.parameter_schema.to_json_schema(),
        }
        if self.subcategory:
            data["subcategory"] = self.subcategory
        return data


@dataclass
class IntegrationModule:
    """
    One provider's contribution to the catalog.

    ``context`` is handed to every handler as its second argument and is
    never inspected by the broker. ``max_concurrency`` bounds how many of
    this module's handlers run at once (None for unbounded). ``secrets``
    are scrubbed from any error message a handler produces.
    """
    category: str
    operations: list[OperationDescriptor]
    handlers: dict[str, Handler]
    context: Any = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    max_concurrency: Optional[int] = None
    secrets: tuple = ()
    _limiter: Optional[asyncio.Semaphore] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.category[:1].upper() + self.category[1:]
        if not self.description:
            self.description = f"{self.display_name} integration operations"
        if self.max_concurrency and self.max_concurrency > 0:
            self._limiter = asyncio.Semaphore(self.max_concurrency)

    @property
    def limiter(self) -> Optional[asyncio.Semaphore]:
        return self._limiter

    def info(self) -> dict:
        return {
            "name": self.category,
            "displayName": self.display_name,
            "description": self.description,
            "operationCount": len(self.operations),
        }
