"""Operation catalog of the studio call-management appliance.

Every entry maps a snake_case operation name to its ``OperationSpec``. The
client exposes one method per entry; the table is process-wide and read-only.
"""

from __future__ import annotations

from types import MappingProxyType

from ..errors import ConfigurationError
from .model import ArgumentRule, LineStateRule, OperationSpec, PropertyRule, ReplyField

# Well-known waiter keys for replies that do not echo the request
LOGIN_KEY = "login"
PING_KEY = "ping"
SELECT_STUDIO_KEY = "select_studio"
SELECT_SHOW_KEY = "select_show"

RECORD_TYPES = ("GLOBAL", "STUDIO", "SHOW")


def _bare(*names: str) -> tuple[PropertyRule, ...]:
    return tuple(PropertyRule(name=name) for name in names)


def _arg(prop: str, /, **rule) -> PropertyRule:
    return PropertyRule(name=prop, argument=ArgumentRule(**rule))


def _line_id() -> ArgumentRule:
    return ArgumentRule(position=0, name="Line Number", type="number", min=1)


def _record_id() -> ArgumentRule:
    return ArgumentRule(position=0, name="Record Number", type="number", min=1)


_SPECS: tuple[OperationSpec, ...] = (
    # cc: call controller, reachable before studio selection
    OperationSpec(
        name="studio_list",
        namespace="cc",
        properties=_bare("studio_list"),
        requires_reply=True,
        requires_studio=False,
    ),
    OperationSpec(
        name="date",
        namespace="cc",
        properties=_bare("date"),
        requires_reply=True,
        requires_studio=False,
    ),
    OperationSpec(
        name="get_server",
        namespace="cc",
        properties=_bare("server_id", "server_version", "server_caps", "lwcp_version"),
        requires_reply=True,
        requires_login=False,
        requires_studio=False,
    ),
    OperationSpec(
        name="set_mode",
        namespace="cc",
        verb="set",
        properties=(
            _arg(
                "mode",
                position=0,
                name="Mode",
                type="string",
                modifier="upper",
                options=("TALENT", "PRODUCER"),
                default="TALENT",
            ),
        ),
        requires_studio=False,
    ),
    OperationSpec(
        name="login",
        namespace="cc",
        verb="login",
        properties=(
            _arg("user", position=0, name="Username", type="string", default="user"),
            _arg("password", position=1, name="Password", type="string", default=""),
        ),
        requires_reply=True,
        requires_login=False,
        requires_studio=False,
        reply_key=LOGIN_KEY,
    ),
    OperationSpec(
        name="ping",
        namespace="cc",
        verb="ping",
        requires_reply=True,
        requires_login=False,
        requires_studio=False,
        reply_key=PING_KEY,
    ),
    # studio
    OperationSpec(
        name="get_studio",
        namespace="studio",
        properties=_bare(
            "id",
            "name",
            "show_id",
            "show_name",
            "num_lines",
            "num_hybrids",
            "num_hyb_fixed",
            "next",
            "pnext",
            "busy_all",
            "mute",
            "show_locked",
            "auto_answer",
        ),
        requires_reply=True,
    ),
    OperationSpec(
        name="show_list",
        namespace="studio",
        properties=_bare("show_list"),
        requires_reply=True,
    ),
    OperationSpec(
        name="line_list",
        namespace="studio",
        properties=_bare("line_list"),
        requires_reply=True,
    ),
    OperationSpec(
        name="hybrid_list",
        namespace="studio",
        properties=_bare("hybrid_list"),
        requires_reply=True,
    ),
    OperationSpec(
        name="select_studio",
        namespace="studio",
        verb="select",
        properties=(_arg("id", position=0, name="Studio ID", type="number", min=0),),
        requires_reply=True,
        requires_studio=False,
        reply_key=SELECT_STUDIO_KEY,
    ),
    OperationSpec(
        name="select_show",
        namespace="studio",
        verb="select_show",
        properties=(_arg("id", position=0, name="Show", type="number", min=1),),
        requires_reply=True,
        reply_key=SELECT_SHOW_KEY,
    ),
    OperationSpec(
        name="im",
        namespace="studio",
        verb="im",
        properties=(
            _arg("from", position=0, name="From User", type="string"),
            _arg("message", position=1, name="Message Text", type="string"),
        ),
    ),
    OperationSpec(
        name="set_busy_all",
        namespace="studio",
        verb="busy_all",
        properties=(
            _arg("state", position=0, name="All Busy State", type="boolean", default=True),
        ),
    ),
    OperationSpec(
        name="drop_hybrid",
        namespace="studio",
        verb="drop",
        properties=(_arg("hybrid", position=0, name="Hybrid line ID", type="number", min=0),),
    ),
    OperationSpec(
        name="hold_hybrid",
        namespace="studio",
        verb="hold",
        properties=(_arg("hybrid", position=0, name="Hybrid line ID", type="number", min=0),),
    ),
    # studio.line
    OperationSpec(
        name="get_line",
        namespace="studio.line",
        id=_line_id(),
        properties=_bare(
            "state",
            "callstate",
            "name",
            "local",
            "remote",
            "hybrid",
            "time",
            "comment",
            "direction",
            "caller_id",
        ),
        requires_reply=True,
        error_race=True,
    ),
    OperationSpec(
        name="get_caller_id",
        namespace="studio.line",
        id=_line_id(),
        properties=_bare("caller_id"),
        requires_reply=True,
        error_race=True,
    ),
    OperationSpec(
        name="set_line_comment",
        namespace="studio.line",
        verb="set",
        id=_line_id(),
        line_state=LineStateRule(never=("IDLE",)),
        properties=(_arg("comment", position=1, name="Comment", type="string"),),
    ),
    OperationSpec(
        name="set_caller_id",
        namespace="studio.line",
        verb="set",
        id=_line_id(),
        line_state=LineStateRule(never=("IDLE",)),
        properties=(_arg("caller_id", position=1, name="Caller ID", type="string"),),
    ),
    OperationSpec(name="seize_line", namespace="studio.line", verb="seize", id=_line_id()),
    OperationSpec(
        name="call_line",
        namespace="studio.line",
        verb="call",
        id=_line_id(),
        properties=(
            _arg("number", position=1, name="Remote Number", type="string"),
            _arg(
                "handset", position=2, key="handset", name="Handset", type="boolean", optional=True
            ),
            _arg("hybrid", position=2, key="hybrid", name="Hybrid", type="number", optional=True),
            _arg("port", position=2, key="port", name="Port", type="number", optional=True),
        ),
    ),
    OperationSpec(
        name="take_line",
        namespace="studio.line",
        verb="take",
        id=_line_id(),
        properties=(
            _arg(
                "handset", position=1, key="handset", name="Handset", type="boolean", optional=True
            ),
            _arg(
                "hybrid", position=1, key="hybrid", name="Hybrid ID", type="number", optional=True
            ),
        ),
    ),
    OperationSpec(name="take_next", namespace="studio.line", verb="take"),
    OperationSpec(name="drop_line", namespace="studio.line", verb="drop", id=_line_id()),
    OperationSpec(
        name="lock_line",
        namespace="studio.line",
        verb="lock",
        id=_line_id(),
        line_state=LineStateRule(only=("ON_AIR",)),
    ),
    OperationSpec(
        name="unlock_line",
        namespace="studio.line",
        verb="unlock",
        id=_line_id(),
        line_state=LineStateRule(only=("ON_AIR_LOCKED",)),
    ),
    OperationSpec(
        name="hold_line",
        namespace="studio.line",
        verb="hold",
        id=_line_id(),
        properties=(
            _arg("ready", position=1, name="Ready State", type="boolean", default=False),
        ),
    ),
    OperationSpec(name="raise_line", namespace="studio.line", verb="raise", id=_line_id()),
    # studio.book: address book records
    OperationSpec(
        name="record_count",
        namespace="studio.book",
        properties=_bare("count"),
        requires_reply=True,
    ),
    OperationSpec(
        name="record_list",
        namespace="studio.book",
        properties=(
            PropertyRule(name="list"),
            _arg("range", position=0, name="List Range", type="range", optional=True),
        ),
        requires_reply=True,
    ),
    OperationSpec(
        name="add_record",
        namespace="studio.book",
        verb="add",
        properties=(
            _arg(
                "type",
                position=0,
                key="type",
                name="type",
                type="string",
                modifier="upper",
                options=RECORD_TYPES,
                optional=True,
            ),
            _arg("name", position=0, key="name", name="name", type="string"),
            _arg("number", position=0, key="number", name="number", type="string"),
        ),
    ),
    OperationSpec(
        name="update_record",
        namespace="studio.book",
        verb="set",
        id=_record_id(),
        properties=(
            _arg(
                "type",
                position=1,
                key="type",
                name="type",
                type="string",
                modifier="upper",
                options=RECORD_TYPES,
                optional=True,
            ),
            _arg("name", position=1, key="name", name="name", type="string", optional=True),
            _arg("number", position=1, key="number", name="number", type="string", optional=True),
        ),
    ),
    OperationSpec(name="delete_record", namespace="studio.book", verb="del", id=_record_id()),
    # studio.log: call log
    OperationSpec(
        name="log_count",
        namespace="studio.log",
        properties=_bare("count"),
        requires_reply=True,
        expects={"count": ReplyField(name="log_count")},
    ),
    OperationSpec(
        name="log_list",
        namespace="studio.log",
        properties=(
            PropertyRule(name="list"),
            _arg("range", position=0, name="List Range", type="range", optional=True),
        ),
        requires_reply=True,
        expects={
            "list": ReplyField(
                name="log_list",
                each=("start_time", "duration", "direction", "local", "remote", "caller_id"),
            )
        },
    ),
)

OPERATIONS: MappingProxyType[str, OperationSpec] = MappingProxyType(
    {spec.name: spec for spec in _SPECS}
)


def get_operation(name: str) -> OperationSpec:
    """Look up an operation by name."""
    try:
        return OPERATIONS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown operation '{name}'") from None


def operations_in(namespace: str) -> list[OperationSpec]:
    """All operations addressing the given namespace, in catalog order."""
    return [spec for spec in _SPECS if spec.namespace == namespace]
