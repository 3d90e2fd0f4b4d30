import logging
import queue
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from client.state import ConnectionState, Session
from common.messages import Credential, auth_command
from common.protocol import encode, decode, DecodeError

log = logging.getLogger(__name__)

OPEN_STATES = (ConnectionState.CONNECTING, ConnectionState.AUTHENTICATING, ConnectionState.AUTHENTICATED)


@dataclass
class TransportEvent:
    generation: int    # which connect() call produced this event
    kind: str          # "open" | "frame" | "close"
    payload: Any = None


class ConnectionManager:
    '''
    Owns the single WebSocket connection and the Session living on it.

    A reader thread per connection does the blocking open/recv and only puts
    TransportEvents on a queue; poll() drains that queue on the UI thread, so
    decoding, dispatch and every Session mutation happen one event at a time.
    '''
    def __init__(self, url: str,
                 transport_factory: Optional[Callable[[str], Any]] = None,
                 auth_timeout: Optional[float] = 10.0,
                 connect_timeout: float = 10.0,
                 clock: Callable[[], float] = time.monotonic):
        self.url = url
        self._transport_factory = transport_factory or partial(
            ws_connect, open_timeout=connect_timeout, close_timeout=2)
        self.auth_timeout = auth_timeout
        self._clock = clock
        self.listener = None     # the dispatcher: envelope_received / connection_lost / auth_timed_out
        self.session = Session()
        self.mode = "login"      # what the current connection was opened for: "login" | "register"
        self._events: "queue.Queue[TransportEvent]" = queue.Queue()
        self._generation = 0
        self._transport = None
        self._credential: Optional[Credential] = None
        self._username: Optional[str] = None
        self._deadline: Optional[float] = None
        self.reply_pending = False   # a login/register command is waiting for its reply

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    # ---------- lifecycle driven by the user ----------
    def connect(self, credential: Credential, mode: str = "login"):
        '''
        Start a new connection to log in or register. Any previous connection is
        closed first; its late events are ignored because they carry an old generation.
        Input:
            - credential: username/password, forgotten once the auth command is sent
            - mode: "login" or "register"
        '''
        if mode not in ("login", "register"):
            raise ValueError(f"unknown auth mode: {mode!r}")
        self._discard()
        self._generation += 1
        self.session = Session(state=ConnectionState.CONNECTING)
        self.mode = mode
        self._credential = credential
        self._username = credential.username
        log.info("Connecting to %s (%s as '%s')", self.url, mode, credential.username)
        threading.Thread(target=self._reader, args=(self._generation,),
                         name=f"ws-reader-{self._generation}", daemon=True).start()

    def close(self):
        ''' User-initiated teardown (window closed). The listener is not notified. '''
        if self.state in OPEN_STATES:
            log.info("Closing connection")
            self._discard()
            self._to(ConnectionState.CLOSED)
            self.session.clear()

    def send(self, command) -> bool:
        ''' Send a chat/history command. Only allowed once authenticated. '''
        if self.state is not ConnectionState.AUTHENTICATED:
            log.warning("Not connected; dropping outgoing '%s'", command.type)
            return False
        return self._send_raw(command)

    # ---------- transitions requested by the dispatcher ----------
    def mark_authenticated(self) -> str:
        ''' Login succeeded: set identity and move to AUTHENTICATED. Returns the identity. '''
        self.session.set_identity(self._username)
        self._deadline = None
        self.reply_pending = False
        self._to(ConnectionState.AUTHENTICATED)
        log.info("Logged in as '%s'", self._username)
        return self._username

    def finish_registration(self):
        ''' Registration does not authenticate; drop the connection and go back to pre-login. '''
        log.info("Registered '%s'", self._username)
        self._discard()
        self._to(ConnectionState.DISCONNECTED)
        self.session.clear()

    def fail(self, reason: str):
        ''' Login rejected: the client closes the transport. '''
        log.warning("Authentication failed: %s", reason)
        self._discard()
        self._to(ConnectionState.CLOSED)
        self.session.clear()

    def disarm_auth_timeout(self):
        ''' Registration rejected: nothing is pending on this connection any more '''
        self._deadline = None
        self.reply_pending = False

    # ---------- event loop ----------
    def poll(self, wait: float = 0.0) -> int:
        '''
        Handle queued transport events in order, then check the auth deadline.
        Input:
            - wait: seconds to block for the first event (0 = don't block)
        Output: number of events handled
        '''
        handled = 0
        block = wait > 0
        while True:
            try:
                event = self._events.get(block=block, timeout=wait if block else None)
            except queue.Empty:
                break
            block = False
            self._handle(event)
            handled += 1
        self._check_deadline()
        return handled

    def _handle(self, event: TransportEvent):
        stale = event.generation != self._generation
        if event.kind == "open":
            if stale:
                # a connection we already abandoned finished opening
                self._close_quietly(event.payload)
                return
            self._on_open(event.payload)
        elif stale:
            log.debug("Ignoring '%s' from abandoned connection #%d", event.kind, event.generation)
        elif event.kind == "frame":
            self._on_frame(event.payload)
        elif event.kind == "close":
            self._on_close(event.payload)

    def _on_open(self, transport):
        self._transport = transport
        self._to(ConnectionState.AUTHENTICATING)
        command = auth_command(self._credential, self.mode)
        self._credential = None
        self.reply_pending = True
        if self.auth_timeout is not None:
            self._deadline = self._clock() + self.auth_timeout
        self._send_raw(command)

    def _on_frame(self, raw):
        try:
            env = decode(raw)
        except DecodeError as e:
            log.warning("Dropping malformed frame: %s", e)
            return
        if self.listener is not None:
            self.listener.envelope_received(env)

    def _on_close(self, reason: str):
        previous = self.state
        if previous not in OPEN_STATES:
            return
        pending = self.reply_pending
        log.info("Connection closed (%s): %s", previous.value, reason)
        self._transport = None
        self._deadline = None
        self.reply_pending = False
        self._to(ConnectionState.CLOSED)
        self.session.clear()
        if self.listener is not None:
            self.listener.connection_lost(reason, previous, pending)

    def _check_deadline(self):
        if self._deadline is None or self.state is not ConnectionState.AUTHENTICATING:
            return
        if self._clock() < self._deadline:
            return
        log.warning("No %s reply within %.1fs; closing", self.mode, self.auth_timeout)
        self._discard()
        self._to(ConnectionState.CLOSED)
        self.session.clear()
        if self.listener is not None:
            self.listener.auth_timed_out()

    # ---------- helpers ----------
    def _reader(self, generation: int):
        ''' Thread function: open the transport and forward every frame to the queue '''
        def put(kind, payload=None):
            self._events.put(TransportEvent(generation, kind, payload))

        try:
            transport = self._transport_factory(self.url)
        except Exception as e:  # refused, DNS failure, bad handshake, open timeout
            put("close", f"unable to connect: {e}")
            return
        put("open", transport)
        try:
            while True:
                put("frame", transport.recv())
        except (ConnectionClosed, OSError) as e:
            put("close", str(e) or "connection closed")

    def _send_raw(self, command) -> bool:
        if self._transport is None:
            log.warning("No transport; dropping outgoing '%s'", command.type)
            return False
        try:
            self._transport.send(encode(command))
        except (ConnectionClosed, OSError) as e:
            # the reader thread reports the close itself
            log.error("Failed to send '%s': %s", command.type, e)
            return False
        return True

    def _discard(self):
        ''' Close the current transport (if any) and make its pending events stale '''
        self._generation += 1
        self._deadline = None
        self._credential = None
        self.reply_pending = False
        transport, self._transport = self._transport, None
        self._close_quietly(transport)

    def _close_quietly(self, transport):
        if transport is None:
            return
        try:
            transport.close()
        except (ConnectionClosed, OSError) as e:
            log.debug("Error while closing transport: %s", e)

    def _to(self, state: ConnectionState):
        if self.session.state is not state:
            log.debug("Connection state %s -> %s", self.session.state.value, state.value)
        self.session.state = state
