"""
Client logging setup.

Modules log through logging.getLogger(__name__); this installs the one
console handler they all share.
"""
import logging
import sys
from typing import Union


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(console_handler)
    return root
