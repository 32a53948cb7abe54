"""Inbound message type and the line parser collaborator.

The wire grammar itself lives outside this package. Whatever parser is
plugged in turns one line of text into an ``InboundMessage`` (or ``None`` when
the line cannot be parsed). Parsers that produce the conventional mapping
shape are accepted as well::

    {"op": "indi", "obj": "studio", "sub": "line", "id": 1,
     "props": {"state": "IDLE"}}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ParseError

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Inbound operations the dispatcher understands."""

    PONG = "pong"
    INDI = "indi"  # Reply to a get/query request
    ACK = "ack"
    EVENT = "event"
    UPDATE = "update"
    IM = "im"


class InboundMessage(BaseModel):
    """One parsed inbound line. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    operation: str
    namespace: str | None = None
    sub_namespace: str | None = None
    id: str | int | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_parsed(cls, data: Mapping[str, Any]) -> InboundMessage:
        """Build from the ``{op, obj, sub, id, props}`` parser shape.

        Raises:
            ParseError: The mapping names no operation.
        """
        operation = data.get("op") or data.get("operation")
        if not operation:
            raise ParseError(f"Parsed line has no operation: {dict(data)!r}")
        return cls(
            operation=operation,
            namespace=data.get("obj", data.get("namespace")),
            sub_namespace=data.get("sub", data.get("sub_namespace")),
            id=data.get("id"),
            properties=dict(data.get("props") or data.get("properties") or {}),
        )

    def is_operation(self, *operations: Operation) -> bool:
        return self.operation in {op.value for op in operations}


@runtime_checkable
class LineParser(Protocol):
    """Parser collaborator: pure, must not raise."""

    def __call__(self, text: str) -> InboundMessage | Mapping[str, Any] | None: ...


def safe_parse(parser: LineParser, text: str) -> InboundMessage | None:
    """Run the parser over one line; unparseable lines yield ``None``."""
    try:
        parsed = parser(text)
    except Exception as e:
        logger.debug(f"Parser raised on line {text[:50]!r}: {e}")
        return None

    if parsed is None or isinstance(parsed, InboundMessage):
        return parsed
    if isinstance(parsed, Mapping):
        try:
            return InboundMessage.from_parsed(parsed)
        except (ValidationError, ParseError) as e:
            logger.debug(f"Discarding malformed parser output: {e}")
            return None

    logger.debug(f"Parser returned unsupported type {type(parsed).__name__}")
    return None
