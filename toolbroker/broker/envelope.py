"""
Response Envelopes

Turns every invocation outcome into the protocol's content representation:
a list of content blocks (one JSON text block unless a handler returned
blocks of its own) plus an error flag. Every branch yields a well-formed
envelope; nothing here raises.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import mcp.types as types

from toolbroker import config

from .outcome import HandlerFailure, Success, UnknownRoute, ValidationFailure

CONTENT_BLOCK_TYPES = (types.TextContent, types.ImageContent, types.EmbeddedResource)

REDACTED = "[REDACTED]"

_SECRET_PATTERNS = [
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer " + REDACTED),
    (re.compile(r"(?i)\b(api[_-]?key|access[_-]?key|token|secret|password|passwd|authorization|auth)"
                r"(\s*[=:]\s*)(['\"]?)[^\s'\",;&]+"), r"\1\2\3" + REDACTED),
    (re.compile(r"\b(?:sk|pk|rk)_(?:live|test)_[A-Za-z0-9]+"), REDACTED),
    (re.compile(r"\bre_[A-Za-z0-9_]{8,}"), REDACTED),
    (re.compile(r"\bSG\.[A-Za-z0-9_\-]{8,}\.[A-Za-z0-9_\-]{8,}"), REDACTED),
    (re.compile(r"([a-z][a-z0-9+.\-]*://)[^/\s:@]+:[^/\s@]+@"), r"\1" + REDACTED + "@"),
]

_PATH_PATTERNS = [
    re.compile(r"(?<![\w:/.])/(?:[\w.\-]+/)+[\w.\-]*"),
    re.compile(r"\b[A-Za-z]:\\(?:[^\\\s]+\\)+[^\\\s]*"),
]


@dataclass(frozen=True)
class ResponseEnvelope:
    content: list = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "\n".join(block.text for block in self.content if isinstance(block, types.TextContent))

    def to_call_tool_result(self) -> types.CallToolResult:
        return types.CallToolResult(content=list(self.content), isError=self.is_error)


def serialize(value: Any) -> str:
    """Text form of a handler result."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        # non-string keys or circular references
        return repr(value)


def text_envelope(value: Any, is_error: bool = False) -> ResponseEnvelope:
    return ResponseEnvelope([types.TextContent(type="text", text=serialize(value))], is_error)


def error_envelope(code: str, message: str, **details) -> ResponseEnvelope:
    """Envelope for a failed call; ``code`` tells the caller which kind of mistake it was."""
    body = {"error": code, "message": message}
    body.update({k: v for k, v in details.items() if v is not None})
    return text_envelope(body, is_error=True)


def sanitize_error(err: BaseException, secrets: Iterable[str] = (), max_chars: int = None) -> str:
    """
    Message of ``err`` with credentials and filesystem paths removed.

    Only the message is used, never the traceback. The result is a single
    line truncated to ``max_chars`` (ERROR_MESSAGE_MAX_CHARS by default).
    """
    if max_chars is None:
        max_chars = config.ERROR_MESSAGE_MAX_CHARS

    message = " ".join(str(err).split()) or type(err).__name__

    for secret in secrets:
        if secret and len(secret) >= 4:
            message = message.replace(secret, REDACTED)
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    for pattern in _PATH_PATTERNS:
        message = pattern.sub("[PATH]", message)

    if max_chars > 3 and len(message) > max_chars:
        message = message[:max_chars - 3] + "..."
    return message


def _is_content_blocks(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(block, CONTENT_BLOCK_TYPES) for block in value)
    )


def build_envelope(outcome) -> ResponseEnvelope:
    """Convert an invocation outcome into a response envelope."""
    if isinstance(outcome, Success):
        if isinstance(outcome.value, ResponseEnvelope):
            return outcome.value
        if _is_content_blocks(outcome.value):
            return ResponseEnvelope(list(outcome.value))
        return text_envelope(outcome.value)

    if isinstance(outcome, ValidationFailure):
        count = len(outcome.violations)
        target = outcome.name or "this call"
        return error_envelope(
            "invalid_arguments",
            f"{count} argument problem{'s' if count != 1 else ''} for {target}",
            category=outcome.category,
            operation=outcome.name,
            violations=[violation.to_dict() for violation in outcome.violations],
        )

    if isinstance(outcome, UnknownRoute):
        if outcome.missing == "operation":
            return error_envelope(
                "unknown_operation",
                f"Operation '{outcome.name}' is not registered in category '{outcome.category}'",
                category=outcome.category,
                operation=outcome.name,
                hint="Use list_operations to see the operations of this category",
            )
        return error_envelope(
            "unknown_category",
            f"Category '{outcome.category}' is not registered",
            category=outcome.category,
            operation=outcome.name,
            available_categories=list(outcome.available),
        )

    if isinstance(outcome, HandlerFailure):
        message = sanitize_error(outcome.error, outcome.secrets)
        if outcome.timed_out:
            message = f"Operation timed out: {message}"
        return error_envelope(
            "operation_failed",
            message,
            category=outcome.category,
            operation=outcome.name,
            error_type=type(outcome.error).__name__,
            timed_out=outcome.timed_out,
        )

    return error_envelope("internal_error", f"Unrecognised outcome {type(outcome).__name__}")
