"""Request builder and validator.

Turns an ``OperationSpec`` plus the caller's positional arguments into a
request frame::

    <verb> <namespace>[#<id>][ <prop>[=<value>][, <prop>[=<value>]...]]

Argument rules are evaluated in declared order. A rule that cannot produce a
value falls back to its default, or is left out when optional; otherwise the
whole request is rejected with ``ArgumentError``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..errors import ArgumentError, ConfigurationError
from .messages import InboundMessage
from .model import ArgumentRule, OperationSpec

logger = logging.getLogger(__name__)

# Sentinels: "no value at that position" / "leave the property out"
_MISSING = object()
OMIT = object()


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "range": lambda v: (
        isinstance(v, (list, tuple)) and len(v) == 2 and all(_is_number(x) for x in v)
    ),
}


def stringify(value: Any) -> str:
    """Render a Python value as a protocol value token."""
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if _is_number(value):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    if value is None:
        return "NULL"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(stringify(item) for item in value) + "]"
    return ""


def _key_part(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def correlation_key(
    namespace: str | None,
    sub_namespace: str | None,
    id: Any,
    property_names: Iterable[str],
) -> str:
    """Identity key shared by a request and the reply it causes.

    Only property *names* take part, so a query for ``state, name`` matches
    the reply carrying ``state=..., name=...``.
    """
    names = ",".join(sorted(property_names))
    return f"{namespace or ''}/{sub_namespace or ''}/{_key_part(id)}/{names}"


def error_key(namespace: str | None, sub_namespace: str | None, id: Any = None) -> str:
    """Key of the error waiter racing a request on the same object."""
    return f"error:{namespace or ''}/{sub_namespace or ''}/{_key_part(id)}"


def message_key(message: InboundMessage) -> str:
    return correlation_key(
        message.namespace,
        message.sub_namespace,
        message.id,
        message.properties.keys(),
    )


@dataclass(frozen=True)
class Request:
    """A validated request, ready to be written."""

    verb: str
    namespace: str
    id: Any = None
    id_token: str | None = None
    # (name, value token); a None token sends the bare property name
    properties: tuple[tuple[str, str | None], ...] = ()

    @property
    def root_namespace(self) -> str:
        return self.namespace.split(".", 1)[0]

    @property
    def sub_namespace(self) -> str | None:
        parts = self.namespace.split(".", 1)
        return parts[1] if len(parts) > 1 else None

    @property
    def line(self) -> str:
        text = f"{self.verb} {self.namespace}"
        if self.id_token:
            text += f"#{self.id_token}"
        if self.properties:
            text += " " + ", ".join(
                name if token is None else f"{name}={token}" for name, token in self.properties
            )
        return text

    @property
    def key(self) -> str:
        return correlation_key(
            self.root_namespace,
            self.sub_namespace,
            self.id,
            (name for name, _ in self.properties),
        )

    @property
    def error_key(self) -> str:
        return error_key(self.root_namespace, self.sub_namespace, self.id)

    def __str__(self) -> str:
        return self.line


def _raw_value(rule: ArgumentRule, args: Sequence[Any]) -> Any:
    if rule.position >= len(args):
        return _MISSING
    value = args[rule.position]
    if rule.key is None:
        return value
    if not isinstance(value, Mapping):
        return _MISSING
    return value.get(rule.key, _MISSING)


def _fallback(
    operation: str,
    rule: ArgumentRule,
    message: str,
    quiet: bool = False,
) -> Any:
    """Use the rule's default, omit an optional value, or reject the request."""
    if rule.has_default:
        if not quiet:
            logger.warning(f"{message}; using default {rule.default!r}")
        return rule.default
    if rule.optional:
        if not quiet:
            logger.warning(f"{message}; leaving it out")
        return OMIT
    raise ArgumentError(message, operation=operation, argument=rule.name, position=rule.position)


def resolve_value(operation: str, rule: ArgumentRule, args: Sequence[Any]) -> Any:
    """Resolve and validate one argument; returns ``OMIT`` to leave it out.

    Checks run in order: presence, type, numeric bounds, case modifier,
    allowed values. The modifier deliberately runs before the allowed-values
    check so ``"producer"`` matches an upper-cased whitelist entry.

    Raises:
        ConfigurationError: The rule has no usable position.
        ArgumentError: A required value is missing or invalid.
    """
    name = rule.name
    if rule.position is None:
        raise ConfigurationError(
            f"INVALID MODEL: Expected a 'position' for the argument '{name}' "
            f"of the method '{operation}'"
        )
    if rule.position < 0:
        raise ConfigurationError(
            f"INVALID MODEL: Invalid 'position' for the argument '{name}' "
            f"of the method '{operation}'"
        )
    where = f"'{name}' at position {rule.position} of the method '{operation}'"

    value = _raw_value(rule, args)
    if value is _MISSING:
        return _fallback(operation, rule, f"Missing argument {where}", quiet=True)

    if rule.type is not None and not _TYPE_CHECKS[rule.type](value):
        return _fallback(
            operation,
            rule,
            f"Invalid argument type for {where} -> "
            f"Expected '{rule.type}' and got '{type(value).__name__}'",
        )

    if _is_number(value):
        if rule.min is not None and value < rule.min:
            return _fallback(
                operation, rule, f"Invalid number for {where} -> The minimum value is {rule.min}"
            )
        if rule.max is not None and value > rule.max:
            return _fallback(
                operation, rule, f"Invalid number for {where} -> The maximum value is {rule.max}"
            )

    if isinstance(value, str) and rule.modifier == "upper":
        value = value.upper()
    elif isinstance(value, str) and rule.modifier == "lower":
        value = value.lower()

    if rule.options is not None and value not in rule.options:
        allowed = ", ".join(str(option) for option in rule.options)
        return _fallback(
            operation, rule, f"Invalid value {value!r} for {where} -> Expected one of {allowed}"
        )

    if stringify(value) == "":
        return _fallback(
            operation, rule, f"Argument {where} of type '{type(value).__name__}' has no wire form"
        )
    return value


def build_request(spec: OperationSpec, args: Sequence[Any] = ()) -> Request:
    """Build the request for one call of ``spec``.

    Raises:
        ConfigurationError: The model entry is malformed.
        ArgumentError: A required argument is missing or invalid.
    """
    id_value: Any = None
    id_token: str | None = None
    if isinstance(spec.id, str) and spec.id:
        id_value = id_token = spec.id
    elif isinstance(spec.id, ArgumentRule):
        value = resolve_value(spec.name, spec.id, args)
        if value is not OMIT:
            id_value = value
            id_token = stringify(value)

    properties: list[tuple[str, str | None]] = []
    for rule in spec.properties:
        if rule.argument is not None:
            value = resolve_value(spec.name, rule.argument, args)
            if value is OMIT:
                continue
            properties.append((rule.name, stringify(value)))
        elif rule.is_bare:
            properties.append((rule.name, None))
        else:
            properties.append((rule.name, stringify(rule.value)))

    return Request(
        verb=spec.verb,
        namespace=spec.namespace,
        id=id_value,
        id_token=id_token,
        properties=tuple(properties),
    )


def shape_reply(spec: OperationSpec, properties: Mapping[str, Any]) -> dict[str, Any]:
    """Rename reply properties according to ``spec.expects``."""
    if not spec.expects:
        return dict(properties)

    shaped: dict[str, Any] = {}
    for name, value in properties.items():
        field = spec.expects.get(name)
        if field is None:
            shaped[name] = value
            continue
        if field.each and isinstance(value, (list, tuple)):
            value = [
                dict(zip(field.each, entry)) if isinstance(entry, (list, tuple)) else entry
                for entry in value
            ]
        shaped[field.name] = value
    return shaped
