"""
Presentation rules for the chat window.

Everything that decides *what* the user sees lives here: how a message is
classified (group/private, sent/received), how it is formatted, what the
roster and recipient picker contain, and how history is replayed. The tkinter
window in client/ui.py only draws what the Presenter hands it.
"""
import datetime
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Protocol

import emoji

from client.state import Session
from common.messages import ChatMessage, InvalidPayloadError, Presence, valid_timestamp

log = logging.getLogger(__name__)

WHISPER_PREFIX = "/w "


class Classification(Enum):
    PRIVATE_SENT = "private_sent"
    PRIVATE_RECEIVED = "private_received"
    GROUP_SENT = "group_sent"
    GROUP_RECEIVED = "group_received"


@dataclass(frozen=True)
class RenderedMessage:
    kind: Classification
    text: str
    tag: str      # text tag the view styles (one colour per classification)


@dataclass(frozen=True)
class RosterEntry:
    name: str
    online: bool
    selected: bool


class ChatView(Protocol):
    """The UI surface the Presenter draws on (ChatUI in production, a fake in tests)."""

    def show_login_view(self, notice: Optional[str] = None) -> None: ...
    def show_register_view(self) -> None: ...
    def show_chat_view(self, identity: str) -> None: ...
    def alert(self, title: str, message: str) -> None: ...
    def append_message(self, text: str, tag: str) -> None: ...
    def clear_messages(self) -> None: ...
    def render_roster(self, entries: List[RosterEntry]) -> None: ...
    def set_recipient(self, name: Optional[str]) -> None: ...


def classify(message: ChatMessage, identity: Optional[str]) -> Optional[Classification]:
    '''
    Decide how a message relates to the local user.
        Input: the message and the local identity
        Output: a Classification, or None for a private message between two other users
    '''
    sent = identity is not None and message.sender == identity
    if message.receiver is not None:
        if sent or message.receiver == identity:
            return Classification.PRIVATE_SENT if sent else Classification.PRIVATE_RECEIVED
        return None
    return Classification.GROUP_SENT if sent else Classification.GROUP_RECEIVED


def format_timestamp(ms, tz: Optional[datetime.tzinfo] = None) -> str:
    ''' Epoch milliseconds -> "YYYY-MM-DD HH:MM:SS" in local time (or tz) '''
    if not valid_timestamp(ms):
        raise InvalidPayloadError(f"invalid timestamp: {ms!r}")
    try:
        dt = datetime.datetime.fromtimestamp(ms / 1000, tz=datetime.timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidPayloadError(f"timestamp out of range: {ms!r}") from e
    return dt.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def format_message(message: ChatMessage, identity: Optional[str],
                   tz: Optional[datetime.tzinfo] = None) -> Optional[RenderedMessage]:
    kind = classify(message, identity)
    if kind is None:
        return None
    when = format_timestamp(message.timestamp, tz)
    if kind is Classification.PRIVATE_SENT:
        text = f"[{when}] You whisper to {message.receiver}: {message.content}"
    elif kind is Classification.PRIVATE_RECEIVED:
        text = f"[{when}] {message.sender} whispers to you: {message.content}"
    elif kind is Classification.GROUP_SENT:
        text = f"[{when}] You: {message.content}"
    else:
        text = f"[{when}] {message.sender}: {message.content}"
    return RenderedMessage(kind, text, kind.value)


def now_ms() -> int:
    return int(time.time() * 1000)


class Presenter:
    '''
    Keeps the display log and the selected recipient, and turns session changes
    into calls on the view.
    '''
    def __init__(self, view: ChatView, tz: Optional[datetime.tzinfo] = None):
        self.view = view
        self.tz = tz
        self.log: List[RenderedMessage] = []
        self.recipient: Optional[str] = None

    # ----- views -----
    def show_login(self, notice: Optional[str] = None):
        self.view.show_login_view(notice)

    def show_register(self):
        self.view.show_register_view()

    def show_chat(self, identity: str):
        self.view.show_chat_view(identity)

    def show_error(self, text: str):
        self.view.alert("Error", text)

    def reset(self):
        ''' Forget everything tied to the session that just ended '''
        self.log = []
        self.recipient = None
        self.view.clear_messages()
        self.view.render_roster([])
        self.view.set_recipient(None)

    # ----- messages -----
    def show_message(self, message: ChatMessage, identity: Optional[str]) -> Optional[RenderedMessage]:
        '''
        Classify, format and append one message. Live messages and history both come
        through here so they always look the same.
        '''
        try:
            rendered = format_message(message, identity, self.tz)
        except InvalidPayloadError as e:
            log.error("Not rendering message from '%s': %s", message.sender, e)
            return None
        if rendered is None:
            log.warning("Ignoring private message %s -> %s not addressed to '%s'",
                        message.sender, message.receiver, identity)
            return None
        self.log.append(rendered)
        self.view.append_message(rendered.text, rendered.tag)
        return rendered

    def replay_history(self, messages: Iterable[ChatMessage], identity: Optional[str]):
        self.log = []
        self.view.clear_messages()
        for message in messages:
            self.show_message(message, identity)

    # ----- roster / recipient picker -----
    def refresh_roster(self, session: Session):
        ''' Regenerate the whole roster list; no diffing against the previous one '''
        names = set(session.roster)
        if self.recipient is not None and self.recipient not in names:
            log.info("Recipient '%s' left the roster; back to group chat", self.recipient)
            self.recipient = None
            self.view.set_recipient(None)
        entries = [RosterEntry(p.name, p.presence is Presence.ONLINE, p.name == self.recipient)
                   for p in session.participants(exclude_self=True)]
        self.view.render_roster(entries)

    def select_recipient(self, name: Optional[str], session: Optional[Session] = None):
        ''' None selects the whole group '''
        self.recipient = name
        self.view.set_recipient(name)
        if session is not None:
            self.refresh_roster(session)

    # ----- compose -----
    def compose(self, raw: str, identity: Optional[str], timestamp: Optional[int] = None) -> Optional[ChatMessage]:
        '''
        Build the outgoing message for whatever is in the compose box.
        "/w <user> <text>" whispers to <user>; otherwise the selected recipient
        (or everyone) gets it. Emoji aliases like :smile: are expanded.
            Output: ChatMessage, or None if there is nothing to send
        '''
        text = raw.strip()
        if not text or identity is None:
            return None
        receiver = self.recipient
        if text.startswith(WHISPER_PREFIX):
            try:
                receiver, text = text[len(WHISPER_PREFIX):].strip().split(" ", 1)
            except ValueError:
                self.view.alert("Format", "Use: /w <username> <message>")
                return None
            text = text.strip()
            if not text:
                return None
        if receiver == identity:
            self.view.alert("Invalid", "You cannot private-message yourself.")
            return None
        content = emoji.emojize(text, language="alias")
        return ChatMessage(sender=identity, content=content, receiver=receiver,
                           timestamp=now_ms() if timestamp is None else timestamp)
