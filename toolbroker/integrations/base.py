"""
Integration Base

Shared building blocks for integration modules: parameter definitions
that render to JSON schema, the error type handlers raise, and a helper
that assembles descriptors and handlers into an IntegrationModule.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional

from toolbroker import config
from toolbroker.catalog.descriptor import Handler, IntegrationModule, OperationDescriptor


class IntegrationError(Exception):
    """A provider call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ClientNotConfigured(IntegrationError):
    def __init__(self, provider: str, variables: list[str]):
        super().__init__(f"{provider} client not initialized: set {', '.join(variables)}")
        self.provider = provider


@dataclass
class ToolParameter:
    """Definition of an operation parameter for JSON schema generation."""
    name: str
    type: Any  # "string", "integer", "number", "boolean", "object", "array", or a list of them
    description: str
    required: bool = False
    default: Any = None
    enum: Optional[list] = None
    items: Optional[dict] = None  # For array types
    properties: Optional[dict] = None  # For object types

    def to_json_schema(self) -> dict:
        schema = {
            "type": self.type,
            "description": self.description,
        }
        if self.enum:
            schema["enum"] = self.enum
        if self.default is not None:
            schema["default"] = self.default
        if self.items:
            schema["items"] = self.items
        if self.properties:
            schema["properties"] = self.properties
        return schema


def define_operation(
    name: str,
    description: str,
    parameters: list[ToolParameter] = None,
    subcategory: str = None,
) -> dict:
    """
    Tool definition dict for one operation.

    Format:
    {
        "name": "...",
        "description": "...",
        "inputSchema": {"type": "object", "properties": {...}, "required": [...]},
        "subcategory": "..."
    }
    """
    properties = {}
    required = []
    for param in parameters or []:
        properties[param.name] = param.to_json_schema()
        if param.required:
            required.append(param.name)

    input_schema = {"type": "object", "properties": properties}
    if required:
        input_schema["required"] = required

    definition = {"name": name, "description": description, "inputSchema": input_schema}
    if subcategory:
        definition["subcategory"] = subcategory
    return definition


def build_module(
    category: str,
    definitions: list[dict],
    handlers: dict[str, Handler],
    context: Any = None,
    display_name: str = None,
    description: str = None,
    secrets: tuple = (),
) -> IntegrationModule:
    """Assemble an IntegrationModule, with its concurrency bound taken from config."""
    return IntegrationModule(
        category=category,
        operations=[OperationDescriptor.from_tool_definition(category, d) for d in definitions],
        handlers=dict(handlers),
        context=context,
        display_name=display_name,
        description=description,
        max_concurrency=config.max_concurrency_for(category),
        secrets=tuple(s for s in secrets if s),
    )


async def run_blocking(func: Callable, *args, **kwargs):
    """Run a blocking SDK call in a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)


def compact(payload: dict) -> dict:
    """Drop keys whose value is None."""
    return {k: v for k, v in payload.items() if v is not None}
