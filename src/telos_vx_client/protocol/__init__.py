"""Protocol layer: request model, catalog, builder, inbound messages.

Key concepts:
- OperationSpec: static description of one operation (verb, namespace,
  argument rules, gates, reply expectation)
- Request: a validated outbound frame with its correlation key
- InboundMessage: one parsed inbound line, produced by an injected parser

The protocol layer does no I/O.
"""

from .builder import (
    Request,
    build_request,
    correlation_key,
    error_key,
    message_key,
    shape_reply,
    stringify,
)
from .catalog import OPERATIONS, get_operation, operations_in
from .messages import InboundMessage, LineParser, Operation, safe_parse
from .model import ArgumentRule, LineStateRule, OperationSpec, PropertyRule, ReplyField

__all__ = [
    "OPERATIONS",
    "ArgumentRule",
    "InboundMessage",
    "LineParser",
    "LineStateRule",
    "Operation",
    "OperationSpec",
    "PropertyRule",
    "ReplyField",
    "Request",
    "build_request",
    "correlation_key",
    "error_key",
    "get_operation",
    "message_key",
    "operations_in",
    "safe_parse",
    "shape_reply",
    "stringify",
]
