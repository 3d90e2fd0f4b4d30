"""
Main entry point for chatroom client.
Builds the connection manager and opens the window on the login form.
"""
import logging
from typing import Optional, Sequence

from .config import ClientConfig
from .logger import configure_logging
from .net import ConnectionManager
from .ui import ChatUI

log = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None):
    """
    Start chatroom client.

    Step 1: Read configuration (server address, timeouts) and set up logging
    Step 2: Create the connection manager; nothing connects until the user submits the form
    Step 3: Open the window and run the UI main loop
    """
    config = ClientConfig.from_args(argv)
    configure_logging(config.log_level)
    log.info("Chat server: %s", config.server_url)

    net = ConnectionManager(config.server_url,
                            auth_timeout=config.auth_timeout,
                            connect_timeout=config.connect_timeout)
    ui = ChatUI(net, config)
    ui.mainloop()


if __name__ == "__main__":
    main()
