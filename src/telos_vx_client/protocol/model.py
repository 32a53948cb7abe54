"""Declarative request model.

Each client operation is described by an ``OperationSpec``: which verb and
namespace it addresses, how to pull the sub-object id and property values
out of the caller's arguments, and which gates and replies apply.

Example:
    OperationSpec(
        name="hold_line",
        namespace="studio.line",
        verb="hold",
        id=ArgumentRule(position=0, name="Line Number", type="number", min=1),
        properties=(
            PropertyRule(
                name="ready",
                argument=ArgumentRule(position=1, name="Ready State",
                                      type="boolean", default=False),
            ),
        ),
    )

builds ``hold studio.line#3 ready=TRUE`` from ``(3, True)``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

ArgType = Literal["string", "number", "integer", "boolean", "range"]
Modifier = Literal["upper", "lower"]


class ArgumentRule(BaseModel):
    """How to resolve and validate one value from the call arguments.

    ``default`` is only in effect when it was given explicitly, so
    ``default=None`` means "fall back to NULL" while leaving it out means
    "no fallback".
    """

    model_config = ConfigDict(frozen=True)

    position: int | None = None
    name: str = "UNKNOWN"
    type: ArgType | None = None
    min: int | float | None = None
    max: int | float | None = None
    options: tuple[Any, ...] | None = None
    default: Any = None
    optional: bool = False
    key: str | None = None
    modifier: Modifier | None = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class PropertyRule(BaseModel):
    """One ``name[=value]`` entry of the request's property list.

    With neither ``argument`` nor ``value`` the property is sent bare, which
    is how queries name the fields they want back.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    argument: ArgumentRule | None = None
    value: str | int | float | bool | None = None

    @property
    def is_bare(self) -> bool:
        return self.argument is None and "value" not in self.model_fields_set


class LineStateRule(BaseModel):
    """Line states a line operation is allowed in (``only``) or not (``never``)."""

    model_config = ConfigDict(frozen=True)

    only: tuple[str, ...] = ()
    never: tuple[str, ...] = ()

    def allows(self, state: str) -> bool:
        if self.only and state not in self.only:
            return False
        return state not in self.never


class ReplyField(BaseModel):
    """Rename a reply property, optionally naming the fields of list entries."""

    model_config = ConfigDict(frozen=True)

    name: str
    each: tuple[str, ...] | None = None


class OperationSpec(BaseModel):
    """Static description of one client operation."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    verb: str = "get"
    id: ArgumentRule | str | None = None
    properties: tuple[PropertyRule, ...] = ()

    requires_reply: bool = False
    requires_login: bool = True
    requires_studio: bool = True

    # Fixed waiter key for replies that do not echo the request structure
    reply_key: str | None = None
    # Also wait for an error acknowledgment and fail on whichever comes first
    error_race: bool = False

    line_state: LineStateRule | None = None
    expects: dict[str, ReplyField] | None = None

    @property
    def root_namespace(self) -> str:
        return self.namespace.split(".", 1)[0]

    @property
    def sub_namespace(self) -> str | None:
        parts = self.namespace.split(".", 1)
        return parts[1] if len(parts) > 1 else None
