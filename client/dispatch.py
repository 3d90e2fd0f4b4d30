import logging
from typing import Callable, Dict, List

from client.net import ConnectionManager
from client.render import Presenter
from client.state import ConnectionState
from common.messages import ChatMessage, Envelope, InvalidPayloadError

log = logging.getLogger(__name__)


class MessageDispatcher:
    '''
    Routes each decoded envelope to its handler by type. The ConnectionManager
    calls it from poll(), one envelope at a time, in arrival order.
    '''
    def __init__(self, net: ConnectionManager, presenter: Presenter):
        self.net = net
        self.presenter = presenter
        self._handlers: Dict[str, Callable[[Envelope], None]] = {
            "login": self._on_login,
            "register": self._on_register,
            "message": self._on_message,
            "userList": self._on_roster,
            # the server sends the full roster on every status change, not a delta
            "userStatusUpdate": self._on_roster,
            "error": self._on_error,
            "history": self._on_history,
        }
        net.listener = self

    @property
    def identity(self):
        return self.net.session.identity

    # ---------- listener interface used by ConnectionManager ----------
    def envelope_received(self, env: Envelope):
        handler = self._handlers.get(env.type)
        if handler is None:
            log.info("Ignoring envelope of unknown type '%s'", env.type)
            return
        handler(env)

    def connection_lost(self, reason: str, previous: ConnectionState, pending: bool = True):
        if previous is ConnectionState.AUTHENTICATING and not pending:
            # registration was already rejected and the user is back on the form
            log.info("Idle connection closed after rejected registration: %s", reason)
            return
        self.presenter.reset()
        if previous is ConnectionState.AUTHENTICATED:
            self.presenter.show_login("Disconnected from server.")
            return
        self.presenter.show_error(f"Connection failed: {reason}")
        self._back_to_form()

    def auth_timed_out(self):
        self.presenter.show_error("No response from server.")
        self._back_to_form()

    # ---------- handlers ----------
    def _on_login(self, env: Envelope):
        if self.net.state is not ConnectionState.AUTHENTICATING:
            log.warning("Unexpected login reply in state '%s'", self.net.state.value)
            return
        if env.get("status") == "success":
            identity = self.net.mark_authenticated()
            self.presenter.reset()
            self.presenter.show_chat(identity)
            return
        reason = env.get("message") or "Login failed."
        self.net.fail(reason)
        self.presenter.show_error(reason)
        self.presenter.show_login()

    def _on_register(self, env: Envelope):
        if self.net.state is not ConnectionState.AUTHENTICATING:
            log.warning("Unexpected register reply in state '%s'", self.net.state.value)
            return
        if env.get("status") == "success":
            self.net.finish_registration()
            self.presenter.show_login("Registration successful. Please log in.")
            return
        self.net.disarm_auth_timeout()
        self.presenter.show_error(env.get("message") or "Registration failed.")
        self.presenter.show_register()

    def _on_message(self, env: Envelope):
        try:
            message = ChatMessage.from_payload(env.fields)
        except InvalidPayloadError as e:
            log.error("Dropping message: %s", e)
            return
        self.presenter.show_message(message, self.identity)

    def _on_roster(self, env: Envelope):
        users = env.get("users")
        if not isinstance(users, dict):
            log.warning("Dropping %s without a users object", env.type)
            return
        self.net.session.replace_roster(users)
        self.presenter.refresh_roster(self.net.session)

    def _on_error(self, env: Envelope):
        self.presenter.show_error(str(env.get("message") or "Unknown server error."))

    def _on_history(self, env: Envelope):
        items = env.get("messages")
        if not isinstance(items, list):
            log.warning("Dropping history without a messages list")
            return
        messages: List[ChatMessage] = []
        for item in items:
            try:
                messages.append(ChatMessage.from_payload(item))
            except InvalidPayloadError as e:
                log.error("Dropping history entry: %s", e)
        self.presenter.replay_history(messages, self.identity)

    def _back_to_form(self):
        if self.net.mode == "register":
            self.presenter.show_register()
        else:
            self.presenter.show_login()
