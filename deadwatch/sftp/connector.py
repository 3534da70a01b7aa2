"""
Deadwatch - SFTP Connector
Short-lived AsyncSSH sessions against a game server's file store
- One connection per call, always closed on exit
- Host keys are not verified (trust on connect)
"""

import asyncio
import logging
import stat
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, List, Optional, TypeVar

import asyncssh

from deadwatch.errors import EmptyOrUnreadableFile, TransportErrorKind, TransportFailure
from deadwatch.models.records import ServerConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


def split_lines(content: str) -> List[str]:
    """Split on newlines; a terminating newline does not start another line"""
    lines = content.split('\n')
    while lines and lines[-1] == '':
        lines.pop()
    return lines


def _is_directory(attrs: asyncssh.SFTPAttrs) -> bool:
    return attrs.permissions is not None and stat.S_ISDIR(attrs.permissions)


class SftpConnector:
    """
    SFTP TRANSPORT
    - list_files: plain files in one directory (created when missing)
    - find_by_extension: recursive search below a root
    - read_file / read_lines_after: full-file reads decoded as UTF-8
    - Every SFTP operation is bounded by operation_timeout
    """

    def __init__(self, connect_timeout: float = 30.0, operation_timeout: Optional[float] = None):
        self.connect_timeout = connect_timeout
        self.operation_timeout = operation_timeout or connect_timeout

    async def _bounded(self, server: ServerConnection, operation: Awaitable[T], what: str) -> T:
        """Await one SFTP operation, turning an expired deadline into a TIMEOUT failure"""
        try:
            return await asyncio.wait_for(operation, timeout=self.operation_timeout)
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                TransportErrorKind.TIMEOUT,
                f"{what} timed out after {self.operation_timeout}s",
                server.host
            ) from e

    @asynccontextmanager
    async def session(self, server: ServerConnection) -> AsyncIterator[asyncssh.SFTPClient]:
        """Open an SSH connection and SFTP channel scoped to one call"""
        try:
            conn = await asyncio.wait_for(
                asyncssh.connect(
                    server.host,
                    port=server.port,
                    username=server.username,
                    password=server.password,
                    known_hosts=None,
                ),
                timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                TransportErrorKind.TIMEOUT,
                f"connect timed out after {self.connect_timeout}s",
                server.host
            ) from e
        except asyncssh.PermissionDenied as e:
            raise TransportFailure(TransportErrorKind.AUTH, f"authentication rejected: {e}", server.host) from e
        except (asyncssh.Error, OSError) as e:
            raise TransportFailure(TransportErrorKind.NETWORK, f"connect failed: {e}", server.host) from e

        try:
            sftp = await self._bounded(server, conn.start_sftp_client(), "opening sftp channel")
            async with sftp:
                yield sftp
        except asyncssh.SFTPError as e:
            raise TransportFailure(TransportErrorKind.IO, f"sftp operation failed: {e}", server.host) from e
        except (asyncssh.Error, OSError) as e:
            raise TransportFailure(TransportErrorKind.NETWORK, f"session lost: {e}", server.host) from e
        finally:
            conn.close()
            await conn.wait_closed()

    async def test_connection(self, server: ServerConnection) -> bool:
        """Check that credentials work and an SFTP channel opens"""
        try:
            async with self.session(server):
                return True
        except TransportFailure as e:
            logger.error(f"Failed to connect to SFTP server {server.name}: {e}")
            return False

    async def list_files(self, server: ServerConnection, path: str) -> List[str]:
        """List plain files in a directory, creating the directory if it is missing"""
        async with self.session(server) as sftp:
            try:
                entries = await self._bounded(server, sftp.readdir(path), f"listing {path}")
            except asyncssh.SFTPNoSuchFile:
                logger.info(f"Directory {path} missing on {server.host}, creating it")
                await self._bounded(server, sftp.makedirs(path, exist_ok=True), f"creating {path}")
                return []

            return [
                entry.filename for entry in entries
                if entry.filename not in ('.', '..') and not _is_directory(entry.attrs)
            ]

    async def find_by_extension(self, server: ServerConnection, root: str, extension: str) -> List[str]:
        """Recursively collect files below root whose extension matches, as paths relative to root"""
        suffix = extension.lower() if extension.startswith('.') else f".{extension.lower()}"
        found: List[str] = []

        async with self.session(server) as sftp:
            try:
                await self._bounded(server, sftp.makedirs(root, exist_ok=True), f"creating {root}")
            except asyncssh.SFTPError as e:
                logger.warning(f"Could not ensure directory {root} on {server.host}: {e}")

            async def walk(relative: str) -> None:
                directory = f"{root}/{relative}" if relative else root
                for entry in await sftp.readdir(directory):
                    name = entry.filename
                    if name in ('.', '..'):
                        continue
                    relative_path = f"{relative}/{name}" if relative else name
                    if _is_directory(entry.attrs):
                        await walk(relative_path)
                    elif name.lower().endswith(suffix):
                        found.append(relative_path)

            # One deadline for the whole walk
            await self._bounded(server, walk(""), f"searching {root}")

        return found

    async def read_file(self, server: ServerConnection, path: str) -> str:
        """Read a whole remote file as UTF-8 text"""
        async def read_all(sftp: asyncssh.SFTPClient) -> bytes:
            async with sftp.open(path, 'rb') as f:
                return await f.read()

        async with self.session(server) as sftp:
            data = await self._bounded(server, read_all(sftp), f"reading {path}")

        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EmptyOrUnreadableFile(path, f"not valid UTF-8 ({e.reason})") from e

    async def read_lines_after(self, server: ServerConnection, path: str, last_line: int) -> List[str]:
        """Return the lines whose zero-based index is strictly greater than last_line"""
        content = await self.read_file(server, path)
        if not content:
            raise EmptyOrUnreadableFile(path)

        return split_lines(content)[max(last_line + 1, 0):]
