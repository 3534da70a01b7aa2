"""
Deadwatch - Parsed Events
Typed events produced by the line parsers
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Join:
    player: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class Leave:
    player: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class Kill:
    killer: str
    victim: str
    weapon: str
    distance: int
    timestamp: Optional[datetime] = None
    # Set by the parser for environmental causes such as falling
    self_inflicted: bool = False

    @property
    def is_suicide(self) -> bool:
        return self.self_inflicted or self.killer == self.victim


@dataclass(frozen=True)
class Death:
    player: str
    cause: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class WorldStatus:
    """Airdrop, mission, helicrash or trader state change"""
    kind: str
    status: str
    name: Optional[str] = None
    timestamp: Optional[datetime] = None


ParsedEvent = Union[Join, Leave, Kill, Death, WorldStatus]
