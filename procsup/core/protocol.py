"""Control protocol spoken between the client and the supervisor daemon.

Every datagram carries one UTF-8 JSON document:

    {"t": "<variant>", "d": <payload>}

``d`` is left out for variants without a payload. The set of variants is
closed: an unknown ``t`` is a decode failure, never a silent no-op.
``Start`` and ``Restart`` are reserved names that decode but have no handler.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

# Well below the 65507-byte UDP payload ceiling.
MAX_DATAGRAM_SIZE = 8192


class ProtocolError(Exception):
    """Datagram is not a valid control event."""

    pass


class _PayloadlessEvent(BaseModel):
    """Base for variants that carry no data."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    d: None = None

    @field_validator("d", mode="before")
    @classmethod
    def normalize_empty_payload(cls, v: Any) -> Any:
        """Older senders emit ``[]`` for empty variants."""
        if v == [] or v == {}:
            return None
        return v


class Kill(_PayloadlessEvent):
    """Ask the daemon to acknowledge and exit."""

    t: Literal["Kill"] = "Kill"


class Start(_PayloadlessEvent):
    """Reserved."""

    t: Literal["Start"] = "Start"


class Restart(_PayloadlessEvent):
    """Reserved."""

    t: Literal["Restart"] = "Restart"


class Success(_PayloadlessEvent):
    """Acknowledgement sent by the daemon (only for Kill today)."""

    t: Literal["Success"] = "Success"


class AddProcessPayload(BaseModel):
    """Fields submitted with an AddProcess command."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    command: str
    args: list[str]
    pwd: str
    name: str


class AddProcess(BaseModel):
    """Register a new managed process and launch it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    t: Literal["AddProcess"] = "AddProcess"
    payload: AddProcessPayload = Field(alias="d")

    @classmethod
    def create(cls, command: str, args: list[str], pwd: str, name: str) -> "AddProcess":
        """Build an AddProcess without spelling out the payload model."""
        return cls(d=AddProcessPayload(command=command, args=list(args), pwd=pwd, name=name))


ControlEvent = Annotated[
    Union[Kill, Start, Restart, Success, AddProcess],
    Field(discriminator="t"),
]

_event_adapter: TypeAdapter[ControlEvent] = TypeAdapter(ControlEvent)


def encode(event: BaseModel, max_size: int = MAX_DATAGRAM_SIZE) -> bytes:
    """Serialize a control event to a datagram payload.

    Raises:
        ProtocolError: If the encoded payload would not fit in one datagram.
    """
    data = event.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    if len(data) > max_size:
        raise ProtocolError(
            f"Encoded {event.__class__.__name__} is {len(data)} bytes, "
            f"exceeds datagram limit of {max_size}"
        )
    return data


def decode(payload: bytes, max_size: int = MAX_DATAGRAM_SIZE) -> ControlEvent:
    """Parse a datagram payload into a control event.

    Raises:
        ProtocolError: On oversized input, bad UTF-8, bad JSON, unknown
            variant, or a payload that does not match the variant's shape.
    """
    if len(payload) > max_size:
        raise ProtocolError(f"Datagram of {len(payload)} bytes exceeds limit of {max_size}")

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Datagram is not valid UTF-8: {e}") from e

    try:
        return _event_adapter.validate_json(text)
    except ValidationError as e:
        raise ProtocolError(f"Invalid control event: {_summarize(e)}") from e


def _summarize(error: ValidationError) -> str:
    """Compact one-line description of a validation failure for logs."""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)
