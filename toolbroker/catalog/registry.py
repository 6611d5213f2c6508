"""
Integration Module Registry

Central catalog of every integration module, built once at startup and
frozen before the first dispatch. Once frozen it is read-only, so any
number of concurrent dispatches may read it without locking.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from toolbroker.logger import info, warn, debug

from .descriptor import Handler, IntegrationModule, OperationDescriptor
from .errors import (
    DuplicateCategory,
    DuplicateOperationName,
    HandlerMismatch,
    RegistryFrozen,
    UnknownCategory,
    UnknownOperation,
)

NAME_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass(frozen=True)
class Route:
    """Everything the dispatcher needs to invoke one operation."""
    module: IntegrationModule
    descriptor: OperationDescriptor
    handler: Handler


@dataclass(frozen=True)
class SearchHit:
    category: str
    descriptor: OperationDescriptor
    score: int
    matched: tuple

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "name": self.descriptor.name,
            "description": self.descriptor.description,
            "score": self.score,
            "matched": list(self.matched),
        }


def _normalise(value: Optional[str]) -> str:
    if not value:
        return ""
    value = value.lower()
    value = re.sub(r"[_-]+", " ", value)
    value = re.sub(r"[^a-z0-9\s]", " ", value)
    return re.sub(r"\s+", " ", value).strip()


def _schema_hints(descriptor: OperationDescriptor) -> str:
    """Parameter names, descriptions and enum values, for keyword search."""
    words = []
    for name, child in descriptor.parameter_schema.properties.items():
        words.append(name)
        words.append(child.description)
        if child.enum:
            words.extend(str(option) for option in child.enum)
    return " ".join(words)


class IntegrationRegistry:
    """
    Catalog of integration modules keyed by category.

    Provides:
    - Startup registration with duplicate and consistency checks
    - Deterministic (sorted) category and operation enumeration
    - Route resolution for the dispatcher
    - Keyword search and a catalog health report
    """

    def __init__(self):
        self._modules: dict[str, IntegrationModule] = {}
        self._operations: dict[str, dict[str, OperationDescriptor]] = {}
        self._frozen = False
        self._categories: tuple = ()

    # ------------------------------------------------------------ startup
    def register(self, module: IntegrationModule) -> None:
        """Register an integration module. Only valid before freeze()."""
        category = module.category
        if self._frozen:
            raise RegistryFrozen(category)
        if category in self._modules:
            raise DuplicateCategory(category)

        by_name: dict[str, OperationDescriptor] = {}
        for descriptor in module.operations:
            if descriptor.name in by_name:
                raise DuplicateOperationName(category, descriptor.name)
            by_name[descriptor.name] = descriptor

        foreign = {d.name for d in module.operations if d.category != category}
        missing = set(by_name) - set(module.handlers)
        orphaned = set(module.handlers) - set(by_name)
        if foreign or missing or orphaned:
            raise HandlerMismatch(category, missing, orphaned, foreign)

        self._modules[category] = module
        self._operations[category] = dict(sorted(by_name.items()))

        debug(f"Registered integration: {category}",
              operations=len(by_name),
              max_concurrency=module.max_concurrency)

    def freeze(self) -> "IntegrationRegistry":
        """Stop accepting registrations. Idempotent."""
        if self._frozen:
            return self
        self._frozen = True
        self._categories = tuple(sorted(self._modules))

        report = self.health_report()
        info("Registry frozen",
             categories=len(self._categories),
             operations=report["total"])
        if report["invalid_count"]:
            warn("Catalog contains invalid operations",
                 invalid_count=report["invalid_count"],
                 sample=report["sample_invalid"][:5])
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------ queries
    def categories(self) -> tuple:
        """All registered category names, lexicographically ordered."""
        if self._frozen:
            return self._categories
        return tuple(sorted(self._modules))

    def has_category(self, category: str) -> bool:
        return category in self._modules

    def has_operation(self, category: str, name: str) -> bool:
        return name in self._operations.get(category, {})

    def module(self, category: str) -> IntegrationModule:
        try:
            return self._modules[category]
        except (KeyError, TypeError):
            raise UnknownCategory(category) from None

    def operations_in(self, category: str) -> tuple:
        """Descriptors of one category, ordered by name."""
        self.module(category)
        return tuple(self._operations[category].values())

    def describe(self, category: str, name: str) -> OperationDescriptor:
        self.module(category)
        try:
            return self._operations[category][name]
        except (KeyError, TypeError):
            raise UnknownOperation(category, name) from None

    def resolve(self, category: str, name: str) -> Handler:
        """The handler bound to (category, name); never None."""
        return self.route(category, name).handler

    def route(self, category: str, name: str) -> Route:
        descriptor = self.describe(category, name)
        module = self._modules[category]
        return Route(module=module, descriptor=descriptor, handler=module.handlers[name])

    def subcategories(self, category: str) -> tuple:
        return tuple(sorted({
            d.subcategory for d in self.operations_in(category) if d.subcategory
        }))

    def total_operations(self) -> int:
        return sum(len(ops) for ops in self._operations.values())

    def search(self, query: str, limit: int = 10, category: Optional[str] = None) -> list[SearchHit]:
        """
        Rank operations by how many query terms they mention.

        Each term counts once, against the first of name, description,
        parameter hints or category that contains it. Ties are broken by
        category then name so results are stable.
        """
        terms = list(dict.fromkeys(query.strip().lower().split()))
        if not terms:
            return []

        categories = [category] if category is not None else self.categories()
        hits: list[SearchHit] = []
        for cat in categories:
            for descriptor in self.operations_in(cat):
                haystacks = {
                    "name": _normalise(descriptor.name),
                    "description": _normalise(descriptor.description),
                    "schema": _normalise(_schema_hints(descriptor)),
                    "category": cat,
                }
                matched = []
                score = 0
                for term in terms:
                    for field_name, text in haystacks.items():
                        if text and term in text:
                            score += 1
                            if field_name not in matched:
                                matched.append(field_name)
                            break
                if score > 0:
                    hits.append(SearchHit(cat, descriptor, score, tuple(matched)))

        hits.sort(key=lambda hit: (-hit.score, hit.category, hit.descriptor.name))
        return hits[:limit]

    def health_report(self) -> dict:
        """Validate every operation's name and description."""
        invalid = []
        categories = Counter()
        index = 0
        for cat in self.categories():
            for descriptor in self._operations[cat].values():
                categories[cat] += 1
                if not isinstance(descriptor.name, str) or not NAME_RE.match(descriptor.name):
                    invalid.append({
                        "index": index,
                        "category": cat,
                        "name": descriptor.name,
                        "reason": "name doesn't match ^[A-Za-z0-9._-]{1,64}$",
                    })
                elif not descriptor.description:
                    invalid.append({
                        "index": index,
                        "category": cat,
                        "name": descriptor.name,
                        "reason": "missing or invalid description",
                    })
                index += 1

        return {
            "total": index,
            "valid": index - len(invalid),
            "invalid_count": len(invalid),
            "sample_invalid": invalid[:20],
            "categories": dict(categories),
        }
