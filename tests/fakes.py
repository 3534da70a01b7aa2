"""
In-memory stand-ins for the pipeline's collaborators
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from deadwatch.errors import EmptyOrUnreadableFile, StoreFailure, TransportErrorKind, TransportFailure
from deadwatch.models.records import KillRecord, PlayerStat, ServerConnection, StreamCursor, StreamKind
from deadwatch.sftp.connector import split_lines


def make_server(guild_id: int = 1, server_id: int = 7, host: str = "10.0.0.1", **kwargs) -> ServerConnection:
    kwargs.setdefault("name", f"Server {server_id}")
    kwargs.setdefault("killfeed_channel_id", 100)
    kwargs.setdefault("log_channel_id", 200)
    return ServerConnection(
        guild_id=guild_id,
        server_id=server_id,
        host=host,
        username="deadside",
        password="secret",
        **kwargs
    )


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 4, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeTransport:
    """Remote files keyed by full path; hosts in failing_hosts raise TransportFailure"""

    def __init__(self):
        self.files: Dict[str, str] = {}
        self.failing_hosts: Dict[str, TransportErrorKind] = {}
        self.reads: List[Tuple[str, int]] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered: Optional[asyncio.Event] = None

    def put(self, path: str, content: str):
        self.files[path] = content

    def append(self, path: str, content: str):
        self.files[path] = self.files.get(path, "") + content

    def _check(self, server: ServerConnection):
        kind = self.failing_hosts.get(server.host)
        if kind is not None:
            raise TransportFailure(kind, "unreachable", server.host)

    def _children(self, directory: str) -> List[str]:
        prefix = directory.rstrip('/') + '/'
        return [path[len(prefix):] for path in self.files if path.startswith(prefix)]

    async def list_files(self, server: ServerConnection, path: str) -> List[str]:
        self._check(server)
        return [name for name in self._children(path) if '/' not in name]

    async def find_by_extension(self, server: ServerConnection, root: str, extension: str) -> List[str]:
        self._check(server)
        return [name for name in self._children(root) if name.lower().endswith(extension.lower())]

    async def read_lines_after(self, server: ServerConnection, path: str, last_line: int) -> List[str]:
        self._check(server)
        self.reads.append((path, last_line))
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()

        content = self.files.get(path)
        if content is None:
            raise TransportFailure(TransportErrorKind.IO, f"no such file {path}", server.host)
        if not content:
            raise EmptyOrUnreadableFile(path)
        return split_lines(content)[max(last_line + 1, 0):]


class FakeCursorStore:
    def __init__(self):
        self.cursors: Dict[Tuple[str, StreamKind], StreamCursor] = {}
        self.saves: List[Tuple[str, StreamKind, StreamCursor]] = []
        self.fail_on_save = False
        self.fail_on_load: Set[str] = set()

    async def load_cursor(self, server: ServerConnection, stream: StreamKind) -> StreamCursor:
        if server.key in self.fail_on_load:
            raise StoreFailure("cursor store unavailable")
        return self.cursors.get((server.key, stream), StreamCursor())

    async def save_cursor(self, server: ServerConnection, stream: StreamKind, cursor: StreamCursor):
        if self.fail_on_save:
            raise StoreFailure("cursor store unavailable")
        self.cursors[(server.key, stream)] = cursor
        self.saves.append((server.key, stream, cursor))


class FakePlayerStore:
    def __init__(self):
        self.players: Dict[Tuple[int, str], PlayerStat] = {}
        self.saved: List[PlayerStat] = []

    async def find_by_name(self, guild_id: int, name: str) -> Optional[PlayerStat]:
        stat = self.players.get((guild_id, name))
        return stat.copy() if stat else None

    async def save(self, stat: PlayerStat):
        self.players[(stat.guild_id, stat.name)] = stat.copy()
        self.saved.append(stat)


class FakeKillRecords:
    def __init__(self):
        self.records: List[KillRecord] = []

    async def add_kill_record(self, record: KillRecord):
        self.records.append(record)


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.published = []
        self.fail = fail

    async def publish(self, event, server) -> bool:
        if self.fail:
            raise RuntimeError("discord is down")
        self.published.append((event, server))
        return True


class FakeRegistry:
    def __init__(self, servers: List[ServerConnection]):
        self.servers = servers
        self.fail = False

    async def list_servers(self) -> List[ServerConnection]:
        if self.fail:
            raise StoreFailure("guilds unavailable")
        return list(self.servers)

    async def get_server(self, guild_id: int, server_id: int) -> Optional[ServerConnection]:
        for server in self.servers:
            if server.guild_id == guild_id and server.server_id == server_id:
                return server
        return None
