"""
Deadwatch - Data Records
Server connections, stream cursors, kill records and player stats
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class StreamKind(Enum):
    """Remote file stream monitored for a server"""
    LOG = "log_parser"
    KILLS = "killfeed_parser"


@dataclass(frozen=True)
class ServerConnection:
    """
    One configured game server
    - Owned by a guild (tenant)
    - Remote layout derived from host + game server id
    """
    guild_id: int
    server_id: int
    host: str
    username: str
    password: str
    port: int = 22
    name: str = "Unknown"
    killfeed_channel_id: Optional[int] = None
    log_channel_id: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.guild_id}_{self.server_id}"

    @property
    def root_directory(self) -> str:
        return f"./{self.host}_{self.server_id}"

    @property
    def log_directory(self) -> str:
        return f"{self.root_directory}/Logs"

    @property
    def deathlogs_directory(self) -> str:
        return f"{self.root_directory}/actual1/deathlogs"

    def directory_for(self, stream: StreamKind) -> str:
        if stream is StreamKind.LOG:
            return self.log_directory
        return self.deathlogs_directory

    @classmethod
    def from_document(cls, guild_id: int, doc: Dict[str, Any],
                      guild_channels: Optional[Dict[str, Any]] = None) -> "ServerConnection":
        """Build from a server entry embedded in a guild document"""
        channels = {**(guild_channels or {}), **(doc.get('channels') or {})}
        return cls(
            guild_id=guild_id,
            server_id=int(doc.get('server_id', doc.get('_id'))),
            host=doc.get('host', doc.get('hostname', '')),
            port=int(doc.get('port', 22)),
            username=doc.get('username', ''),
            password=doc.get('password', ''),
            name=doc.get('name', 'Unknown'),
            killfeed_channel_id=channels.get('killfeed'),
            log_channel_id=channels.get('logs'),
        )

    def __repr__(self) -> str:
        return f"ServerConnection({self.name!r}, {self.host}:{self.port}, guild={self.guild_id})"


@dataclass(frozen=True)
class StreamCursor:
    """Ingestion progress for one (server, stream) pair"""
    last_file: str = ""
    last_line: int = -1
    last_touched: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "StreamCursor":
        if not doc:
            return cls()
        return cls(
            last_file=doc.get('last_file') or "",
            last_line=int(doc.get('last_line', -1)),
            last_touched=doc.get('last_touched'),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "last_file": self.last_file,
            "last_line": self.last_line,
            "last_touched": self.last_touched,
        }


@dataclass(frozen=True)
class KillRecord:
    """Append-only history of one accepted kill"""
    guild_id: int
    server_id: int
    killer: str
    victim: str
    weapon: str
    distance: int
    timestamp: datetime
    raw_line: str
    is_suicide: bool = False

    def to_document(self) -> Dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "server_id": self.server_id,
            "killer": self.killer,
            "victim": self.victim,
            "weapon": self.weapon,
            "distance": self.distance,
            "timestamp": self.timestamp,
            "raw_line": self.raw_line,
            "is_suicide": self.is_suicide,
        }


@dataclass
class PlayerStat:
    """
    Guild-scoped player aggregate
    most_used_weapon / most_killed_player / killed_by_most are sticky:
    they lock onto the first value seen and only count exact repeats.
    """
    guild_id: int
    name: str
    kills: int = 0
    deaths: int = 0
    suicides: int = 0
    most_used_weapon: str = ""
    most_used_weapon_kills: int = 0
    most_killed_player: str = ""
    most_killed_player_count: int = 0
    killed_by_most: str = ""
    killed_by_most_count: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kdr(self) -> float:
        return self.kills / self.deaths if self.deaths > 0 else float(self.kills)

    def copy(self) -> "PlayerStat":
        return replace(self)

    def to_document(self) -> Dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "player_name": self.name,
            "kills": self.kills,
            "deaths": self.deaths,
            "suicides": self.suicides,
            "kdr": self.kdr,
            "favorite_weapon": self.most_used_weapon,
            "favorite_weapon_kills": self.most_used_weapon_kills,
            "rival": self.most_killed_player,
            "rival_kills": self.most_killed_player_count,
            "nemesis": self.killed_by_most,
            "nemesis_deaths": self.killed_by_most_count,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PlayerStat":
        return cls(
            guild_id=doc['guild_id'],
            name=doc['player_name'],
            kills=doc.get('kills', 0),
            deaths=doc.get('deaths', 0),
            suicides=doc.get('suicides', 0),
            most_used_weapon=doc.get('favorite_weapon') or "",
            most_used_weapon_kills=doc.get('favorite_weapon_kills', 0),
            most_killed_player=doc.get('rival') or "",
            most_killed_player_count=doc.get('rival_kills', 0),
            killed_by_most=doc.get('nemesis') or "",
            killed_by_most_count=doc.get('nemesis_deaths', 0),
            last_updated=doc.get('last_updated') or datetime.now(timezone.utc),
        )
