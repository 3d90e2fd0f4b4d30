import json
import logging
from typing import Union, Any, Dict

from common.messages import Envelope

ENC = "utf-8"   # encoding for JSON text

log = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Raised when an incoming frame is not a JSON object with a string "type"."""
    pass


def encode(command: Any) -> str:
    '''
    The function serializes an outgoing command to one JSON text frame.
    Inputs:
        - command: a command object (LoginCommand, ChatMessage, ...) or a dict carrying "type"
    Output: str - the frame text, {"type": ..., **fields}
    '''
    if isinstance(command, dict):
        if "type" not in command:
            raise ValueError("command dict has no 'type'")
        obj: Dict[str, Any] = dict(command)
    else:
        obj = {"type": command.type}
        obj.update(command.to_fields())
    return json.dumps(obj, ensure_ascii=False)


def decode(frame: Union[str, bytes, bytearray]) -> Envelope:
    '''
    The function parses one frame into an Envelope. Every frame is a complete message,
    so there is nothing to buffer between calls.
    Input:
        - frame: str or bytes received from the transport
    Output:
        - Envelope with the "type" split off from the remaining fields
    Raises DecodeError for anything that is not a JSON object with a string "type".
    '''
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode(ENC)
        except UnicodeDecodeError as e:
            raise DecodeError(f"frame is not {ENC}: {e}") from e
    try:
        obj = json.loads(frame)
    except (ValueError, TypeError, RecursionError) as e:
        # ValueError also covers integers past the int/str digit limit
        raise DecodeError(f"invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise DecodeError(f"expected a JSON object, got {type(obj).__name__}")
    etype = obj.pop("type", None)
    if not isinstance(etype, str):
        raise DecodeError("frame has no string 'type'")
    return Envelope(type=etype, fields=obj)
