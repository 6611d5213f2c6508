"""
Catalog Errors

Composition errors are raised while the registry is being built and are
fatal to startup. Route errors are caller mistakes and are turned into
response envelopes by the broker.
"""

from typing import Optional


class BrokerError(Exception):
    """Base class for all broker errors."""


class CatalogError(BrokerError):
    """The catalog could not be composed."""


class DuplicateCategory(CatalogError, ValueError):
    def __init__(self, category: str):
        super().__init__(f"Category '{category}' already registered")
        self.category = category


class DuplicateOperationName(CatalogError, ValueError):
    def __init__(self, category: str, name: str):
        super().__init__(f"Operation '{name}' declared more than once in category '{category}'")
        self.category = category
        self.name = name


class HandlerMismatch(CatalogError, ValueError):
    """A descriptor without a handler, a handler without a descriptor, or a foreign descriptor."""

    def __init__(self, category: str, missing_handlers=(), orphaned_handlers=(), foreign=()):
        parts = []
        if missing_handlers:
            parts.append(f"no handler for {sorted(missing_handlers)}")
        if orphaned_handlers:
            parts.append(f"no descriptor for handlers {sorted(orphaned_handlers)}")
        if foreign:
            parts.append(f"descriptors from another category {sorted(foreign)}")
        super().__init__(f"Integration '{category}' is inconsistent: " + "; ".join(parts))
        self.category = category
        self.missing_handlers = tuple(sorted(missing_handlers))
        self.orphaned_handlers = tuple(sorted(orphaned_handlers))
        self.foreign = tuple(sorted(foreign))


class RegistryFrozen(CatalogError, RuntimeError):
    def __init__(self, category: str):
        super().__init__(f"Registry is frozen; cannot register '{category}'")
        self.category = category


class InvalidSchema(CatalogError, ValueError):
    def __init__(self, path: str, reason: str):
        location = path or "<root>"
        super().__init__(f"Invalid parameter schema at {location}: {reason}")
        self.path = path
        self.reason = reason


class RouteError(BrokerError, LookupError):
    """A (category, name) pair that does not resolve."""

    kind = "unknown_route"

    def __init__(self, message: str, category: str, name: Optional[str] = None):
        super().__init__(message)
        self.category = category
        self.name = name


class UnknownCategory(RouteError):
    kind = "unknown_category"

    def __init__(self, category: str, name: Optional[str] = None):
        super().__init__(f"Unknown category: {category}", category, name)


class UnknownOperation(RouteError):
    kind = "unknown_operation"

    def __init__(self, category: str, name: str):
        super().__init__(f"Operation not found: {name} in category {category}", category, name)


class UnknownSubcategory(RouteError):
    kind = "unknown_subcategory"

    def __init__(self, category: str, subcategory: str, available=()):
        super().__init__(f"Unknown subcategory: {subcategory} in category {category}", category)
        self.subcategory = subcategory
        self.available = tuple(available)
