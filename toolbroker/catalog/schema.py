"""
Parameter Schemas

A SchemaNode is the structural description of the arguments one operation
accepts. It is parsed from the JSON Schema subset integrations declare
(type, properties, required, items, enum, additionalProperties) and is used
only for validation; it never influences how a handler executes.

Schemas are checked against the Draft 2020-12 metaschema and arguments are
validated with ``jsonschema``; its errors are mapped to Violations.
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from .errors import InvalidSchema

# Descriptive keywords carried through to describe_operation
ANNOTATION_KEYS = ("default", "format", "examples", "title")

ROOT_PATH = "<root>"


@dataclass(frozen=True)
class Violation:
    """One reason an argument value was rejected."""
    path: str
    expected: str
    actual: str
    reason: str  # "missing", "type", "enum", "unexpected"

    @property
    def message(self) -> str:
        location = self.path or ROOT_PATH
        if self.reason == "missing":
            return f"{location}: required property is missing (expected {self.expected})"
        if self.reason == "unexpected":
            return f"{location}: property is not accepted by this operation"
        if self.reason == "enum":
            return f"{location}: expected one of {self.expected}, got {self.actual}"
        return f"{location}: expected {self.expected}, got {self.actual}"

    def to_dict(self) -> dict:
        return {
            "path": self.path or ROOT_PATH,
            "reason": self.reason,
            "expected": self.expected,
            "actual": self.actual,
            "message": self.message,
        }


def kind_of(value: Any) -> str:
    """JSON kind name of a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _join(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def _instance_path(parts: Iterable) -> str:
    path = ""
    for part in parts:
        path = _join(path, part)
    return path


def _schema_path(parts: Iterable) -> str:
    """Argument path named by a location inside a schema document."""
    path = ""
    parts = list(parts)
    index = 0
    while index < len(parts):
        part = parts[index]
        if part == "properties" and index + 1 < len(parts):
            path = _join(path, parts[index + 1])
            index += 2
            continue
        if part == "items":
            path += "[]"
        index += 1
    return path


@dataclass(frozen=True)
class SchemaNode:
    """
    Recursive description of an accepted value.

    An empty ``kinds`` tuple accepts any value. Objects that declare
    properties are closed unless ``additional_properties`` is set;
    objects without declared properties accept any keys.
    """
    kinds: tuple = ()
    description: str = ""
    properties: dict = field(default_factory=dict)
    required: frozenset = frozenset()
    items: Optional["SchemaNode"] = None
    enum: Optional[tuple] = None
    additional_properties: bool = False
    annotations: dict = field(default_factory=dict)

    @property
    def expected(self) -> str:
        return "|".join(self.kinds) if self.kinds else "any"

    @property
    def is_closed(self) -> bool:
        return bool(self.properties) and not self.additional_properties

    # ------------------------------------------------------------ parsing
    @classmethod
    def from_json_schema(cls, raw: Any, path: str = "") -> "SchemaNode":
        """Parse a JSON Schema fragment, raising InvalidSchema on malformed input."""
        if not isinstance(raw, dict):
            raise InvalidSchema(path, f"expected an object, got {kind_of(raw)}")
        try:
            Draft202012Validator.check_schema(raw)
        except SchemaError as e:
            location = _schema_path(e.absolute_path)
            if path and location:
                location = _join(path, location)
            raise InvalidSchema(location or path, e.message) from None
        return cls._parse(raw)

    @classmethod
    def _parse(cls, raw: dict) -> "SchemaNode":
        declared = raw.get("type")
        if declared is None:
            kinds = ("object",) if "properties" in raw else ()
        elif isinstance(declared, str):
            kinds = (declared,)
        else:
            kinds = tuple(declared)

        return cls(
            kinds=kinds,
            description=raw.get("description", ""),
            properties={name: cls._parse(child) for name, child in raw.get("properties", {}).items()},
            required=frozenset(raw.get("required", [])),
            items=cls._parse(raw["items"]) if isinstance(raw.get("items"), dict) else None,
            enum=tuple(raw["enum"]) if "enum" in raw else None,
            additional_properties=bool(raw.get("additionalProperties", False)),
            annotations={k: raw[k] for k in ANNOTATION_KEYS if k in raw},
        )

    def to_json_schema(self) -> dict:
        """Convert back to JSON Schema; only constraints this node enforces are emitted."""
        schema: dict = {}
        if len(self.kinds) == 1:
            schema["type"] = self.kinds[0]
        elif self.kinds:
            schema["type"] = list(self.kinds)
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.properties:
            schema["properties"] = {
                name: child.to_json_schema() for name, child in self.properties.items()
            }
        if self.required:
            schema["required"] = sorted(self.required)
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        if self.properties and self.additional_properties:
            schema["additionalProperties"] = True
        elif self.is_closed:
            schema["additionalProperties"] = False
        schema.update(self.annotations)
        return schema

    # --------------------------------------------------------- validation
    @cached_property
    def _validator(self) -> Draft202012Validator:
        return Draft202012Validator(self.to_json_schema())

    def validate(self, value: Any) -> list[Violation]:
        """Collect every violation of this schema by ``value``."""
        violations: list[Violation] = []
        reported_required = set()
        for err in self._validator.iter_errors(self._without_null_optionals(value)):
            path = _instance_path(err.absolute_path)
            if err.validator == "required":
                # one error per missing name; report them all once per object
                if path not in reported_required:
                    reported_required.add(path)
                    violations.extend(self._missing(path, err))
            elif err.validator == "additionalProperties":
                violations.extend(self._unexpected(path, err))
            else:
                violations.append(self._violation(path, err))

        typed = {v.path for v in violations if v.reason == "type"}
        violations = [v for v in violations if not (v.reason == "enum" and v.path in typed)]
        return sorted(violations, key=lambda v: (v.path, v.reason))

    def _without_null_optionals(self, value: Any) -> Any:
        # an explicit null for an optional property counts as absent
        if isinstance(value, dict) and self.properties:
            cleaned = {}
            for key, child_value in value.items():
                child = self.properties.get(key)
                if child is None:
                    cleaned[key] = child_value
                elif child_value is None and key not in self.required:
                    continue
                else:
                    cleaned[key] = child._without_null_optionals(child_value)
            return cleaned
        if isinstance(value, list) and self.items is not None:
            return [self.items._without_null_optionals(element) for element in value]
        return value

    def _node_at(self, parts: Iterable) -> Optional["SchemaNode"]:
        node = self
        for part in parts:
            node = node.items if isinstance(part, int) else node.properties.get(part)
            if node is None:
                return None
        return node

    def _missing(self, path: str, err) -> list[Violation]:
        node = self._node_at(err.absolute_path)
        violations = []
        for name in sorted(err.validator_value):
            if name in err.instance:
                continue
            child = node.properties.get(name) if node is not None else None
            expected = child.expected if child is not None else "any"
            violations.append(Violation(_join(path, name), expected, "missing", "missing"))
        return violations

    def _unexpected(self, path: str, err) -> list[Violation]:
        node = self._node_at(err.absolute_path)
        declared = node.properties if node is not None else {}
        return [
            Violation(_join(path, key), "no such property", kind_of(child_value), "unexpected")
            for key, child_value in err.instance.items()
            if key not in declared
        ]

    @staticmethod
    def _violation(path: str, err) -> Violation:
        if err.validator == "type":
            declared = err.validator_value
            expected = "|".join(declared) if isinstance(declared, list) else declared
            return Violation(path, expected, kind_of(err.instance), "type")
        if err.validator == "enum":
            allowed = ", ".join(repr(option) for option in err.validator_value)
            return Violation(path, f"[{allowed}]", repr(err.instance), "enum")
        return Violation(path, f"{err.validator} {err.validator_value!r}", kind_of(err.instance), err.validator)
