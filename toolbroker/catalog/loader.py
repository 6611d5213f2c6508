"""
Catalog Loader

Composes the registry from the integrations named in configuration. Each
integration is a module under ``toolbroker.integrations`` exposing
``create_module() -> IntegrationModule``.
"""

import importlib
from typing import Iterable, Optional

from toolbroker import config
from toolbroker.logger import info, error

from .errors import CatalogError
from .registry import IntegrationRegistry

INTEGRATIONS_PACKAGE = "toolbroker.integrations"


def load_integration(name: str):
    """Import one integration and build its module."""
    try:
        package = importlib.import_module(f"{INTEGRATIONS_PACKAGE}.{name}")
    except ModuleNotFoundError as e:
        raise CatalogError(f"Unknown integration '{name}'") from e

    factory = getattr(package, "create_module", None)
    if factory is None:
        raise CatalogError(f"Integration '{name}' has no create_module()")
    return factory()


def build_registry(names: Optional[Iterable[str]] = None, extra_modules: Iterable = ()) -> IntegrationRegistry:
    """
    Build and freeze a registry.

    ``names`` defaults to ENABLED_INTEGRATIONS. ``extra_modules`` are
    already-constructed IntegrationModule instances registered alongside.
    """
    names = list(config.ENABLED_INTEGRATIONS if names is None else names)
    registry = IntegrationRegistry()

    for name in names:
        try:
            registry.register(load_integration(name))
        except CatalogError as e:
            error("Failed to load integration", err=e, integration=name)
            raise

    for module in extra_modules:
        registry.register(module)

    info("Catalog composed", integrations=list(registry.categories()))
    return registry.freeze()
