"""
Client configuration.

The server address is a configuration constant, not something the user types
into the login form. It can be changed on the command line or with the
CHATROOM_SERVER_URL environment variable.
"""
import argparse
import os
from dataclasses import dataclass
from typing import Optional, Sequence

DEFAULT_SERVER_URL = "ws://localhost:8081/chat"


@dataclass
class ClientConfig:
    server_url: str = DEFAULT_SERVER_URL
    auth_timeout: float = 10.0       # seconds to wait for a login/register reply
    connect_timeout: float = 10.0    # seconds for the WebSocket opening handshake
    history_page_size: int = 50
    poll_interval_ms: int = 50       # how often the window drains network events
    log_level: str = "INFO"

    @classmethod
    def from_args(cls, argv: Optional[Sequence[str]] = None) -> "ClientConfig":
        ap = argparse.ArgumentParser(description="Chatroom client")
        ap.add_argument("--url", default=os.environ.get("CHATROOM_SERVER_URL", DEFAULT_SERVER_URL),
                        help="WebSocket address of the chat server")
        ap.add_argument("--auth-timeout", type=float, default=cls.auth_timeout,
                        help="Seconds to wait for a login/register reply")
        ap.add_argument("--history-size", type=int, default=cls.history_page_size,
                        help="Messages per history page")
        ap.add_argument("--log-level", default=cls.log_level,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
        args = ap.parse_args(argv)
        return cls(server_url=args.url, auth_timeout=args.auth_timeout,
                   history_page_size=args.history_size, log_level=args.log_level)
