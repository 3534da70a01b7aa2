import asyncio
import stat
from types import SimpleNamespace
from typing import Dict, List

import asyncssh
import pytest

from deadwatch.errors import EmptyOrUnreadableFile, TransportErrorKind, TransportFailure
from deadwatch.ingestion.cycle import IngestionCycle
from deadwatch.ingestion.scheduler import IngestionScheduler
from deadwatch.models.records import StreamKind
from deadwatch.sftp import connector as connector_module
from deadwatch.sftp.connector import SftpConnector, split_lines
from deadwatch.stats.aggregator import StatAggregator

from fakes import FakeRegistry, make_server


def _entry(name: str, directory: bool = False):
    mode = (stat.S_IFDIR | 0o755) if directory else (stat.S_IFREG | 0o644)
    return SimpleNamespace(filename=name, attrs=SimpleNamespace(permissions=mode))


class FakeRemoteFile:
    def __init__(self, data: bytes, hang: bool = False):
        self.data = data
        self.hang = hang

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self):
        if self.hang:
            await asyncio.Event().wait()
        return self.data


class FakeSFTP:
    def __init__(self, files: Dict[str, bytes], directories: Dict[str, List]):
        self.files = files
        self.directories = directories
        self.created: List[str] = []
        self.fail_readdir = False
        self.hang_readdir = False
        self.hanging_files: List[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def readdir(self, path):
        if self.hang_readdir:
            await asyncio.Event().wait()
        if self.fail_readdir:
            raise asyncssh.SFTPFailure("readdir failed")
        if path not in self.directories:
            raise asyncssh.SFTPNoSuchFile(f"{path} not found")
        return [_entry('.', True), _entry('..', True)] + self.directories[path]

    async def makedirs(self, path, exist_ok=False):
        self.created.append(path)
        self.directories.setdefault(path, [])

    def open(self, path, mode='r'):
        if path not in self.files:
            raise asyncssh.SFTPNoSuchFile(f"{path} not found")
        return FakeRemoteFile(self.files[path], hang=path in self.hanging_files)


class FakeConnection:
    def __init__(self, sftp: FakeSFTP):
        self.sftp = sftp
        self.closed = False

    async def start_sftp_client(self):
        return self.sftp

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None


@pytest.fixture
def remote(monkeypatch):
    """Patch asyncssh.connect to hand out connections onto one fake file tree"""
    state = SimpleNamespace(
        sftp=FakeSFTP(files={}, directories={}),
        connections=[],
        connect_kwargs=[],
        connect_error=None,
        connect_delay=0,
    )

    async def fake_connect(host, **kwargs):
        state.connect_kwargs.append((host, kwargs))
        if state.connect_delay:
            await asyncio.sleep(state.connect_delay)
        if state.connect_error is not None:
            raise state.connect_error
        conn = FakeConnection(state.sftp)
        state.connections.append(conn)
        return conn

    monkeypatch.setattr(connector_module.asyncssh, "connect", fake_connect)
    return state


def test_split_lines_drops_only_the_trailing_terminator():
    assert split_lines("a\nb\n") == ["a", "b"]
    assert split_lines("a\n\nb") == ["a", "", "b"]
    assert split_lines("a\n\n\n") == ["a"]
    assert split_lines("") == []


async def test_read_lines_after_is_repeatable(remote):
    remote.sftp.files["./10.0.0.1_7/Logs/Deadside.log"] = b"zero\none\ntwo\nthree\n"
    connector = SftpConnector()
    server = make_server()

    first = await connector.read_lines_after(server, "./10.0.0.1_7/Logs/Deadside.log", 1)
    second = await connector.read_lines_after(server, "./10.0.0.1_7/Logs/Deadside.log", 1)

    assert first == second == ["two", "three"]


async def test_read_lines_after_minus_one_returns_everything(remote):
    remote.sftp.files["f.csv"] = b"a\r\nb"
    lines = await SftpConnector().read_lines_after(make_server(), "f.csv", -1)

    assert lines == ["a\r", "b"]


async def test_read_past_the_end_is_empty(remote):
    remote.sftp.files["f.csv"] = b"a\nb\n"

    assert await SftpConnector().read_lines_after(make_server(), "f.csv", 1) == []


async def test_empty_file_is_reported(remote):
    remote.sftp.files["f.csv"] = b""

    with pytest.raises(EmptyOrUnreadableFile):
        await SftpConnector().read_lines_after(make_server(), "f.csv", -1)


async def test_undecodable_file_is_reported(remote):
    remote.sftp.files["f.csv"] = b"\xff\xfe\xfa"

    with pytest.raises(EmptyOrUnreadableFile) as excinfo:
        await SftpConnector().read_file(make_server(), "f.csv")

    assert "UTF-8" in excinfo.value.reason


async def test_list_files_skips_directories(remote):
    remote.sftp.directories["./10.0.0.1_7/Logs"] = [
        _entry("Deadside.log"),
        _entry("Deadside-backup-2025.04.09.log"),
        _entry("crashes", directory=True),
    ]

    files = await SftpConnector().list_files(make_server(), "./10.0.0.1_7/Logs")

    assert sorted(files) == ["Deadside-backup-2025.04.09.log", "Deadside.log"]


async def test_list_files_creates_missing_directory(remote):
    files = await SftpConnector().list_files(make_server(), "./10.0.0.1_7/Logs")

    assert files == []
    assert remote.sftp.created == ["./10.0.0.1_7/Logs"]


async def test_find_by_extension_walks_subdirectories(remote):
    root = "./10.0.0.1_7/actual1/deathlogs"
    remote.sftp.directories[root] = [_entry("world_0", directory=True), _entry("notes.txt")]
    remote.sftp.directories[f"{root}/world_0"] = [
        _entry("2025.04.10-00.00.00.csv"),
        _entry("2025.04.11-00.00.00.CSV"),
    ]

    found = await SftpConnector().find_by_extension(make_server(), root, "csv")

    assert sorted(found) == ["world_0/2025.04.10-00.00.00.csv", "world_0/2025.04.11-00.00.00.CSV"]


async def test_connection_uses_server_credentials_without_host_keys(remote):
    remote.sftp.files["f"] = b"x"
    server = make_server(host="203.0.113.5", port=2222)

    await SftpConnector().read_file(server, "f")

    host, kwargs = remote.connect_kwargs[0]
    assert host == "203.0.113.5"
    assert kwargs["port"] == 2222
    assert kwargs["username"] == "deadside"
    assert kwargs["password"] == "secret"
    assert kwargs["known_hosts"] is None


async def test_every_call_closes_its_connection(remote):
    remote.sftp.files["f"] = b"x\n"
    connector = SftpConnector()

    await connector.read_lines_after(make_server(), "f", -1)
    await connector.list_files(make_server(), "dir")

    assert len(remote.connections) == 2
    assert all(conn.closed for conn in remote.connections)


async def test_sftp_failure_is_io_and_still_closes(remote):
    remote.sftp.fail_readdir = True

    with pytest.raises(TransportFailure) as excinfo:
        await SftpConnector().list_files(make_server(), "dir")

    assert excinfo.value.kind is TransportErrorKind.IO
    assert remote.connections[0].closed


async def test_missing_file_is_io_failure(remote):
    with pytest.raises(TransportFailure) as excinfo:
        await SftpConnector().read_file(make_server(), "missing.log")

    assert excinfo.value.kind is TransportErrorKind.IO


@pytest.mark.parametrize("error, kind", [
    (asyncssh.PermissionDenied("bad password"), TransportErrorKind.AUTH),
    (ConnectionRefusedError("refused"), TransportErrorKind.NETWORK),
    (OSError("no route to host"), TransportErrorKind.NETWORK),
])
async def test_connect_errors_are_classified(remote, error, kind):
    remote.connect_error = error

    with pytest.raises(TransportFailure) as excinfo:
        await SftpConnector().list_files(make_server(), "dir")

    assert excinfo.value.kind is kind
    assert excinfo.value.host == "10.0.0.1"


async def test_connect_timeout(remote):
    remote.connect_delay = 1

    with pytest.raises(TransportFailure) as excinfo:
        await SftpConnector(connect_timeout=0.01).list_files(make_server(), "dir")

    assert excinfo.value.kind is TransportErrorKind.TIMEOUT


async def test_test_connection_reports_failure_as_false(remote):
    assert await SftpConnector().test_connection(make_server()) is True

    remote.connect_error = asyncssh.PermissionDenied("nope")
    assert await SftpConnector().test_connection(make_server()) is False


async def test_stalled_read_times_out_and_closes(remote):
    remote.sftp.files["f.csv"] = b"a\n"
    remote.sftp.hanging_files.append("f.csv")

    with pytest.raises(TransportFailure) as excinfo:
        await asyncio.wait_for(
            SftpConnector(connect_timeout=0.05).read_lines_after(make_server(), "f.csv", -1),
            timeout=2
        )

    assert excinfo.value.kind is TransportErrorKind.TIMEOUT
    assert remote.connections[0].closed


async def test_stalled_listing_times_out(remote):
    remote.sftp.hang_readdir = True
    connector = SftpConnector(connect_timeout=5, operation_timeout=0.05)

    for call in (connector.list_files(make_server(), "dir"),
                 connector.find_by_extension(make_server(), "dir", ".csv")):
        with pytest.raises(TransportFailure) as excinfo:
            await asyncio.wait_for(call, timeout=2)
        assert excinfo.value.kind is TransportErrorKind.TIMEOUT


async def test_stalled_server_does_not_hold_up_the_tick(remote, cursor_store, player_store, kill_records, notifier,
                                                         clock):
    stalled = make_server(server_id=1)
    healthy = make_server(server_id=2)
    row = b'"2025/04/10-00:00:00","Alice","killed","Bob","with","AK74","from","150m"\n'
    for server in (stalled, healthy):
        remote.sftp.directories[server.deathlogs_directory] = [_entry("a.csv")]
        remote.sftp.files[f"{server.deathlogs_directory}/a.csv"] = row
    remote.sftp.hanging_files.append(f"{stalled.deathlogs_directory}/a.csv")

    cycle = IngestionCycle(SftpConnector(connect_timeout=0.05), cursor_store, StatAggregator(player_store),
                           kill_records, notifier, clock=clock)
    scheduler = IngestionScheduler(FakeRegistry([stalled, healthy]), cycle)

    total = await asyncio.wait_for(scheduler.run_tick(StreamKind.KILLS), timeout=2)

    assert total == 1
    assert (healthy.key, StreamKind.KILLS) in cursor_store.cursors
    assert (stalled.key, StreamKind.KILLS) not in cursor_store.cursors
    assert not cycle.is_running(stalled, StreamKind.KILLS)
