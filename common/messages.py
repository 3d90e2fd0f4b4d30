import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, ClassVar


class InvalidPayloadError(ValueError):
    """Raised when a payload field has the wrong type or value (e.g. a NaN timestamp)."""
    pass


class Presence(Enum):
    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def parse(cls, value) -> "Presence":
        ''' Anything the server sends other than "online" counts as offline '''
        if isinstance(value, Presence):
            return value
        return cls.ONLINE if value == "online" else cls.OFFLINE


@dataclass(frozen=True)
class Participant:
    name: str            # unique key in the roster
    presence: Presence


@dataclass
class Credential:
    username: str
    password: str = field(repr=False)   # kept out of repr so it never reaches a log line


# Envelope is the decoded form of one frame; everything but "type" lives in fields.
@dataclass
class Envelope:
    type: str                  # "login", "register", "message", "userList", ...; unknown ones are kept
    fields: Dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


def valid_timestamp(value) -> bool:
    # bool is a subclass of int, and json gives float('nan') for a bare NaN
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # an int too large for a float
        return False


@dataclass(frozen=True)
class ChatMessage:
    type: ClassVar[str] = "message"

    sender: str
    content: str
    receiver: Optional[str]    # None -> group message
    timestamp: int             # epoch milliseconds

    @property
    def is_private(self) -> bool:
        return self.receiver is not None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ChatMessage":
        '''
        Build a ChatMessage from a "message" envelope (or one item of a "history" list).
        Input:
            - payload: dict with sender, content, receiver (may be null) and timestamp
        Output: ChatMessage
        Raises InvalidPayloadError if the timestamp is not a finite number or
        sender/content are missing.
        '''
        if not isinstance(payload, dict):
            raise InvalidPayloadError(f"message payload is not an object: {payload!r}")
        ts = payload.get("timestamp")
        if not valid_timestamp(ts):
            raise InvalidPayloadError(f"invalid timestamp: {ts!r}")
        sender = payload.get("sender")
        content = payload.get("content")
        if not isinstance(sender, str) or not isinstance(content, str):
            raise InvalidPayloadError("message without sender or content")
        receiver = payload.get("receiver")
        if receiver is not None and not isinstance(receiver, str):
            raise InvalidPayloadError(f"invalid receiver: {receiver!r}")
        # the server stores an empty receiver for group messages in some paths
        return cls(sender=sender, content=content, receiver=receiver or None, timestamp=ts)

    def to_fields(self) -> Dict[str, Any]:
        return {"content": self.content, "sender": self.sender,
                "receiver": self.receiver, "timestamp": self.timestamp}


# Outbound commands. Each one knows its wire type and its fields.
@dataclass(frozen=True)
class LoginCommand:
    type: ClassVar[str] = "login"

    username: str
    password: str = field(repr=False)

    def to_fields(self) -> Dict[str, Any]:
        return {"username": self.username, "password": self.password}


@dataclass(frozen=True)
class RegisterCommand:
    type: ClassVar[str] = "register"

    username: str
    password: str = field(repr=False)

    def to_fields(self) -> Dict[str, Any]:
        return {"username": self.username, "password": self.password}


@dataclass(frozen=True)
class HistoryRequest:
    type: ClassVar[str] = "history"

    page: int = 0
    size: int = 50

    def to_fields(self) -> Dict[str, Any]:
        return {"page": self.page, "size": self.size}


def auth_command(credential: Credential, mode: str):
    ''' Build the login or register command for a pending credential '''
    if mode == "login":
        return LoginCommand(credential.username, credential.password)
    if mode == "register":
        return RegisterCommand(credential.username, credential.password)
    raise ValueError(f"unknown auth mode: {mode!r}")
