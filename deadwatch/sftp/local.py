"""
Deadwatch - Local Directory Transport
Dev mode stand-in for SFTP that serves each server's layout from a local folder
"""

import logging
from pathlib import Path
from typing import List

import aiofiles

from deadwatch.errors import EmptyOrUnreadableFile, TransportErrorKind, TransportFailure
from deadwatch.models.records import ServerConnection
from deadwatch.sftp.connector import split_lines

logger = logging.getLogger(__name__)


class LocalTransport:
    """Same operations as SftpConnector, rooted at a local dev_data directory"""

    def __init__(self, base_dir: str = './dev_data'):
        self.base_dir = Path(base_dir)

    def _resolve(self, path: str) -> Path:
        return self.base_dir / path

    async def test_connection(self, server: ServerConnection) -> bool:
        return self.base_dir.is_dir()

    async def list_files(self, server: ServerConnection, path: str) -> List[str]:
        directory = self._resolve(path)
        if not directory.exists():
            logger.info(f"Directory {directory} missing, creating it")
            directory.mkdir(parents=True, exist_ok=True)
            return []
        return [entry.name for entry in directory.iterdir() if entry.is_file()]

    async def find_by_extension(self, server: ServerConnection, root: str, extension: str) -> List[str]:
        suffix = extension.lower() if extension.startswith('.') else f".{extension.lower()}"
        directory = self._resolve(root)
        directory.mkdir(parents=True, exist_ok=True)
        return [
            entry.relative_to(directory).as_posix()
            for entry in directory.rglob('*')
            if entry.is_file() and entry.name.lower().endswith(suffix)
        ]

    async def read_file(self, server: ServerConnection, path: str) -> str:
        file_path = self._resolve(path)
        try:
            async with aiofiles.open(file_path, 'rb') as f:
                data = await f.read()
        except OSError as e:
            raise TransportFailure(TransportErrorKind.IO, f"failed to read {file_path}: {e}", "local") from e

        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EmptyOrUnreadableFile(path, f"not valid UTF-8 ({e.reason})") from e

    async def read_lines_after(self, server: ServerConnection, path: str, last_line: int) -> List[str]:
        content = await self.read_file(server, path)
        if not content:
            raise EmptyOrUnreadableFile(path)
        return split_lines(content)[max(last_line + 1, 0):]
