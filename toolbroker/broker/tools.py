"""
Broker Tool Set

The four meta-tools advertised over the protocol, whatever the size of
the catalog:

- list_categories     - registered category names
- list_operations     - name/description pairs of one category
- describe_operation  - full parameter schema of one operation
- call_operation      - validate and invoke one operation

The category enum embedded in the schemas is taken from a snapshot of the
category index when the tool set is built. The registry is frozen at that
point; a changed catalog means building a new tool set (see BrokerHost).
"""

from typing import Any, Optional

import mcp.types as types

from toolbroker import config
from toolbroker.catalog.errors import UnknownCategory, UnknownOperation, UnknownSubcategory
from toolbroker.catalog.registry import IntegrationRegistry
from toolbroker.catalog.schema import SchemaNode, Violation, kind_of
from toolbroker.logger import error, debug
from toolbroker.metrics import UNKNOWN_LABEL, BrokerMetrics

from .dispatcher import Dispatcher, _UNSET
from .envelope import (
    ResponseEnvelope,
    build_envelope,
    error_envelope,
    sanitize_error,
    text_envelope,
)
from .outcome import InvocationRequest, UnknownRoute, ValidationFailure

LIST_CATEGORIES = "list_categories"
LIST_OPERATIONS = "list_operations"
DESCRIBE_OPERATION = "describe_operation"
CALL_OPERATION = "call_operation"

BROKER_TOOL_NAMES = (LIST_CATEGORIES, LIST_OPERATIONS, DESCRIBE_OPERATION, CALL_OPERATION)


class CategoryIndex:
    """Live view of the registered category names."""

    def __init__(self, registry: IntegrationRegistry):
        self.registry = registry

    def current_categories(self) -> tuple:
        return self.registry.categories()


def generate_broker_tools(categories) -> list[dict]:
    """
    Broker tool definitions with the category enum baked in.

    An empty ``categories`` leaves the enum out, which is also the
    structural form the broker validates incoming arguments against.
    """
    categories = list(categories)
    category_list = ", ".join(categories) if categories else "none registered"

    category_property = {
        "type": "string",
        "description": f"Category name. Available: {category_list}",
    }
    if categories:
        category_property["enum"] = categories

    operation_name_property = {
        "type": "string",
        "description": 'Operation name as returned by list_operations (e.g. "resend_send_email")',
    }

    return [
        {
            "name": LIST_CATEGORIES,
            "description": (
                "List all available integration categories. "
                f"Currently available: {category_list}. "
                "Pass a keyword query to get only the categories whose operations match it, best match first."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": 'Optional keywords, e.g. "send sms"',
                    },
                    "limit": {
                        "type": "integer",
                        "description": f"Maximum number of categories to return for a query (default: {config.SEARCH_DEFAULT_LIMIT})",
                    },
                },
            },
        },
        {
            "name": LIST_OPERATIONS,
            "description": (
                "List the operations of one category without their parameter schemas. "
                "Returns operation names and descriptions only. Optionally filter by "
                "subcategory or keyword query, and page with limit/offset."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category": category_property,
                    "subcategory": {
                        "type": "string",
                        "description": "Optional subcategory filter; an unknown subcategory is answered with the available ones",
                    },
                    "query": {
                        "type": "string",
                        "description": 'Optional keywords, e.g. "send email"; results are ranked by relevance',
                    },
                    "limit": {
                        "type": "integer",
                        "description": f"Maximum number of operations to return (default: {config.LIST_OPERATIONS_DEFAULT_LIMIT})",
                    },
                    "offset": {
                        "type": "integer",
                        "description": "Offset for pagination (default: 0)",
                    },
                },
                "required": ["category"],
            },
        },
        {
            "name": DESCRIBE_OPERATION,
            "description": (
                "Get the full parameter schema of one operation. Use this before "
                "call_operation to learn which arguments it accepts."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category": category_property,
                    "name": operation_name_property,
                },
                "required": ["category", "name"],
            },
        },
        {
            "name": CALL_OPERATION,
            "description": (
                "Execute any operation from any category. Arguments are validated "
                "against the operation's schema before it runs."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category": category_property,
                    "name": operation_name_property,
                    "args": {
                        "type": "object",
                        "description": "Operation arguments as key-value pairs",
                    },
                },
                "required": ["category", "name"],
            },
        },
    ]


class BrokerToolSet:
    """
    The protocol-visible surface of the broker.

    Built once from a frozen registry. handle() is the single entry point
    for inbound tool calls and always returns a ResponseEnvelope.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        dispatcher: Dispatcher = None,
        metrics: BrokerMetrics = None,
        index: CategoryIndex = None,
    ):
        self.registry = registry.freeze()
        self.metrics = metrics
        self.dispatcher = dispatcher or Dispatcher(self.registry, metrics=metrics)
        self.index = index or CategoryIndex(self.registry)

        self.categories = tuple(self.index.current_categories())
        self._definitions = generate_broker_tools(self.categories)
        self._schemas = {
            definition["name"]: SchemaNode.from_json_schema(definition["inputSchema"])
            for definition in generate_broker_tools(())
        }

    # ------------------------------------------------------------- surface
    @property
    def definitions(self) -> list[dict]:
        """Tool definitions as plain JSON-compatible dicts."""
        return [dict(definition) for definition in self._definitions]

    @property
    def tools(self) -> list[types.Tool]:
        return [
            types.Tool(
                name=definition["name"],
                description=definition["description"],
                inputSchema=definition["inputSchema"],
            )
            for definition in self._definitions
        ]

    # ----------------------------------------------------------- discovery
    def list_categories(self, query: Optional[str] = None, limit: Optional[int] = None) -> list[str]:
        """All categories, or with ``query`` the categories whose operations match it best first."""
        if not (query and query.strip()):
            return list(self.categories)
        limit = config.SEARCH_DEFAULT_LIMIT if limit is None else max(0, int(limit))
        ranked: list[str] = []
        for hit in self.registry.search(query, limit=self.registry.total_operations()):
            if hit.category not in ranked:
                ranked.append(hit.category)
        return ranked[:limit]

    def list_operations(
        self,
        category: str,
        subcategory: Optional[str] = None,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        """Ordered name/description pairs of one category."""
        if query and query.strip():
            hits = self.registry.search(query, limit=self.registry.total_operations(), category=category)
            descriptors = [hit.descriptor for hit in hits]
        else:
            descriptors = list(self.registry.operations_in(category))

        if subcategory:
            available = self.registry.subcategories(category)
            if subcategory not in available:
                raise UnknownSubcategory(category, subcategory, available)
            descriptors = [d for d in descriptors if d.subcategory == subcategory]

        limit = config.LIST_OPERATIONS_DEFAULT_LIMIT if limit is None else max(0, int(limit))
        offset = max(0, int(offset or 0))
        return [d.summary() for d in descriptors[offset:offset + limit]]

    def describe_operation(self, category: str, name: str) -> dict:
        return self.registry.describe(category, name).to_dict()

    # ---------------------------------------------------------- invocation
    async def call_operation(self, category: str, name: str, args: Any = None, timeout: Any = _UNSET) -> ResponseEnvelope:
        request = InvocationRequest(category, name, {} if args is None else args)
        outcome = await self.dispatcher.dispatch(request, timeout=timeout)
        return build_envelope(outcome)

    # ---------------------------------------------------------- entry point
    async def handle(self, tool_name: str, arguments: Any = None) -> ResponseEnvelope:
        """Answer one inbound broker tool call."""
        arguments = {} if arguments is None else arguments
        timer = self.metrics.time_broker_call() if self.metrics else None
        try:
            if timer:
                with timer:
                    envelope = await self._handle(tool_name, arguments)
            else:
                envelope = await self._handle(tool_name, arguments)
        except Exception as e:
            reason = sanitize_error(e)
            error(f"Broker tool {tool_name} raised", error_type=type(e).__name__, reason=reason, tool=str(tool_name))
            envelope = error_envelope("internal_error", reason, tool=str(tool_name))

        if self.metrics:
            label = tool_name if isinstance(tool_name, str) and tool_name in self._schemas else UNKNOWN_LABEL
            self.metrics.record_broker_call(label, envelope.is_error)
        return envelope

    async def _handle(self, tool_name: str, arguments: Any) -> ResponseEnvelope:
        schema = self._schemas.get(tool_name) if isinstance(tool_name, str) else None
        if schema is None:
            return error_envelope(
                "unknown_tool",
                f"Unknown tool: {tool_name}",
                available_tools=list(BROKER_TOOL_NAMES),
            )

        if isinstance(arguments, dict):
            violations = schema.validate(arguments)
        else:
            violations = [Violation("", "object", kind_of(arguments), "type")]
        if violations:
            return build_envelope(ValidationFailure.of(violations, name=tool_name))

        debug(f"Broker tool call: {tool_name}", tool=tool_name, params=sorted(arguments))

        if tool_name == CALL_OPERATION:
            return await self.call_operation(
                arguments["category"], arguments["name"], arguments.get("args") or {}
            )

        try:
            if tool_name == LIST_CATEGORIES:
                return text_envelope(self.list_categories(**arguments))
            if tool_name == LIST_OPERATIONS:
                return text_envelope(self.list_operations(**arguments))
            return text_envelope(self.describe_operation(arguments["category"], arguments["name"]))
        except UnknownSubcategory as e:
            return error_envelope(
                "unknown_subcategory",
                str(e),
                category=e.category,
                available_subcategories=list(e.available),
            )
        except UnknownCategory as e:
            return build_envelope(UnknownRoute(e.category, e.name, "category", self.categories))
        except UnknownOperation as e:
            return build_envelope(UnknownRoute(e.category, e.name, "operation"))
