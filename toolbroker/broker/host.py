"""
Broker Host

Holds the current broker tool set. Rebuilding the catalog is an explicit
swap: the new registry is frozen, a new tool set is derived from it, and
the reference is replaced in one assignment. Calls already running keep
the tool set they started with.
"""

from datetime import datetime, timezone
from typing import Any

from toolbroker import config
from toolbroker.catalog.registry import IntegrationRegistry
from toolbroker.logger import info
from toolbroker.metrics import BrokerMetrics

from .dispatcher import Dispatcher
from .envelope import ResponseEnvelope
from .tools import BrokerToolSet


class BrokerHost:
    """Owner of the live BrokerToolSet and its metrics."""

    def __init__(self, registry: IntegrationRegistry, metrics: BrokerMetrics = None, timeout: Any = None):
        self.metrics = metrics or BrokerMetrics()
        self._timeout = config.dispatch_timeout_seconds() if timeout is None else timeout
        self._toolset = self._build(registry)
        self.generation = 1
        self.started_at = datetime.now(timezone.utc)
        self.swapped_at = self.started_at

    def _build(self, registry: IntegrationRegistry) -> BrokerToolSet:
        registry.freeze()
        dispatcher = Dispatcher(registry, timeout=self._timeout, metrics=self.metrics)
        return BrokerToolSet(registry, dispatcher=dispatcher, metrics=self.metrics)

    @property
    def toolset(self) -> BrokerToolSet:
        return self._toolset

    @property
    def registry(self) -> IntegrationRegistry:
        return self._toolset.registry

    def swap(self, registry: IntegrationRegistry) -> BrokerToolSet:
        """Replace the catalog. Returns the new tool set, which must be re-advertised."""
        toolset = self._build(registry)
        previous = self._toolset
        self._toolset = toolset
        self.generation += 1
        self.swapped_at = datetime.now(timezone.utc)
        info("Broker tool set swapped",
             generation=self.generation,
             previous_categories=len(previous.categories),
             categories=len(toolset.categories))
        return toolset

    async def handle(self, tool_name: str, arguments: Any = None) -> ResponseEnvelope:
        # bind once so a concurrent swap cannot split one call across catalogs
        toolset = self._toolset
        return await toolset.handle(tool_name, arguments)

    def get_status(self) -> dict:
        """Status document for the health server."""
        registry = self.registry
        report = registry.health_report()
        return {
            "status": "healthy",
            "running": True,
            "server": config.BROKER_SERVER_NAME,
            "version": config.BROKER_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "started_at": self.started_at.isoformat(),
            "generation": self.generation,
            "swapped_at": self.swapped_at.isoformat(),
            "categories": [registry.module(c).info() for c in registry.categories()],
            "total_operations": registry.total_operations(),
            "catalog_health": report,
            "metrics": self.metrics.get_summary(),
        }

    def get_prometheus_metrics(self) -> str:
        return self.metrics.to_prometheus_format()
