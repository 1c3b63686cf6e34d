from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class NetModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Stamped(NetModel):
    """Relayed gameplay frame; the server fills in the sender id."""

    from_: Optional[str] = Field(default=None, alias="from")


class Hello(NetModel):
    type: Literal["hello"]
    room: str = ""
    client_id: Optional[str] = Field(default=None, alias="clientId")
    create: bool = False


class Welcome(NetModel):
    type: Literal["welcome"] = "welcome"
    id: str
    visitor: Optional[int] = None


class Presence(NetModel):
    type: Literal["presence"] = "presence"
    count: int


class Host(NetModel):
    type: Literal["host"] = "host"
    host_id: str = Field(alias="hostId")


class SettingsMessage(NetModel):
    type: Literal["settings"] = "settings"
    settings: Dict[str, Any]


class Restart(NetModel):
    type: Literal["restart"] = "restart"
    round_id: Optional[str] = Field(default=None, alias="roundId")


class RestartAck(NetModel):
    type: Literal["restart-ack"] = "restart-ack"
    round_id: str = Field(alias="roundId")


class Seed(NetModel):
    type: Literal["seed"] = "seed"
    seed: int
    settings: Dict[str, Any]
    round_id: Optional[str] = Field(default=None, alias="roundId")
    countdown: Optional[float] = None


class Ready(Stamped):
    type: Literal["ready"] = "ready"


class Spectate(Stamped):
    type: Literal["spectate"] = "spectate"
    on: bool = False


class Name(Stamped):
    type: Literal["name"] = "name"
    name: str


class Preview(Stamped):
    type: Literal["preview"] = "preview"
    state: Dict[str, Any]
    score: int = 0
    name: Optional[str] = None
    spectate: Optional[bool] = None


class Tick(Stamped):
    type: Literal["tick"] = "tick"
    n: int = 0
    score: int = 0


class Over(Stamped):
    type: Literal["over"] = "over"
    reason: Literal["die", "quit"] = "die"
    score: Optional[int] = None


class Input(Stamped):
    type: Literal["input"] = "input"
    key: Literal["ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight"]


class RoomMeta(NetModel):
    type: Literal["roommeta"] = "roommeta"
    name: Optional[str] = None
    public: Optional[bool] = None


class ListRooms(NetModel):
    type: Literal["list"] = "list"


class RoomItem(NetModel):
    id: str
    name: str
    count: int


class Rooms(NetModel):
    type: Literal["rooms"] = "rooms"
    items: List[RoomItem] = Field(default_factory=list)


class ResultItem(NetModel):
    id: str
    name: str
    score: int
    place: int


class Results(NetModel):
    type: Literal["results"] = "results"
    round_id: Optional[str] = Field(default=None, alias="roundId")
    total: int
    awarded: bool = False
    items: List[ResultItem] = Field(default_factory=list)


class Error(NetModel):
    type: Literal["error"] = "error"
    code: str
    message: Optional[str] = None


NetMessage = Annotated[
    Union[
        Hello,
        Welcome,
        Presence,
        Host,
        SettingsMessage,
        Restart,
        RestartAck,
        Seed,
        Ready,
        Spectate,
        Name,
        Preview,
        Tick,
        Over,
        Input,
        RoomMeta,
        ListRooms,
        Rooms,
        Results,
        Error,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[NetMessage] = TypeAdapter(NetMessage)

# Kinds only the server may emit; a client sending one is ignored.
SERVER_ONLY = (Welcome, Presence, Host, RestartAck, Seed, Rooms, Results, Error)


def decode(raw: str | bytes) -> NetMessage | None:
    """Parse a frame, returning None for anything malformed or unknown."""
    try:
        return _adapter.validate_json(raw)
    except ValidationError:
        return None


def encode(msg: NetModel) -> str:
    return msg.model_dump_json(by_alias=True, exclude_none=True)


def stamp(msg: Stamped, conn_id: str) -> Stamped:
    return msg.model_copy(update={"from_": conn_id})
