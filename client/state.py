from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Union

from common.messages import Participant, Presence


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass
class Session:
    # One Session per connection attempt; the ConnectionManager owns it.
    state: ConnectionState = ConnectionState.DISCONNECTED
    identity: Optional[str] = None
    roster: Dict[str, Participant] = field(default_factory=dict)   # name -> Participant

    def set_identity(self, name: str):
        ''' Record the authenticated username. Only a successful login calls this, once. '''
        if self.identity is not None:
            raise RuntimeError(f"identity already set to {self.identity!r}")
        self.identity = name

    def replace_roster(self, mapping: Mapping[str, Union[str, Presence]]):
        '''
        Replace the whole roster with a new snapshot. userStatusUpdate carries the full
        roster too, so a name missing from the mapping is gone, not just offline.
        Input:
            - mapping: {name: "online" | "offline" | Presence}
        '''
        self.roster = {name: Participant(name, Presence.parse(status))
                       for name, status in mapping.items()}

    def participants(self, exclude_self: bool = True) -> List[Participant]:
        ''' Roster entries in server order, optionally without the local identity '''
        return [p for name, p in self.roster.items()
                if not (exclude_self and name == self.identity)]

    def clear(self):
        self.identity = None
        self.roster = {}
