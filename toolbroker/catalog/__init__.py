"""
Catalog Module

Operation descriptors, integration modules and the frozen registry that
owns them.
"""

from .descriptor import Handler, IntegrationModule, OperationDescriptor
from .errors import (
    BrokerError,
    CatalogError,
    DuplicateCategory,
    DuplicateOperationName,
    HandlerMismatch,
    InvalidSchema,
    RegistryFrozen,
    RouteError,
    UnknownCategory,
    UnknownOperation,
    UnknownSubcategory,
)
from .registry import IntegrationRegistry, Route, SearchHit
from .schema import SchemaNode, Violation

__all__ = [
    'Handler',
    'IntegrationModule',
    'OperationDescriptor',
    'IntegrationRegistry',
    'Route',
    'SearchHit',
    'SchemaNode',
    'Violation',
    'BrokerError',
    'CatalogError',
    'DuplicateCategory',
    'DuplicateOperationName',
    'HandlerMismatch',
    'InvalidSchema',
    'RegistryFrozen',
    'RouteError',
    'UnknownCategory',
    'UnknownOperation',
    'UnknownSubcategory',
]
