"""
Deadwatch - Configuration
Settings read from environment variables
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {key}: {raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive, got {value}, using default {default}")
        return default
    return value


@dataclass(frozen=True)
class Settings:
    discord_token: Optional[str] = None
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "deadwatch"
    sftp_connect_timeout_ms: int = 30000
    killfeed_interval: int = 300
    log_interval: int = 60
    log_level: str = "INFO"
    dev_data_dir: Optional[str] = None

    @property
    def sftp_connect_timeout(self) -> float:
        """Connect timeout in seconds"""
        return self.sftp_connect_timeout_ms / 1000

    @property
    def dev_mode(self) -> bool:
        return bool(self.dev_data_dir)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            discord_token=env.get("DISCORD_TOKEN") or None,
            mongodb_uri=env.get("MONGODB_URI") or cls.mongodb_uri,
            mongodb_database=env.get("MONGODB_DATABASE") or cls.mongodb_database,
            sftp_connect_timeout_ms=_int_setting(env, "SFTP_CONNECT_TIMEOUT", cls.sftp_connect_timeout_ms),
            killfeed_interval=_int_setting(env, "KILLFEED_UPDATE_INTERVAL", cls.killfeed_interval),
            log_interval=_int_setting(env, "LOG_PARSING_INTERVAL", cls.log_interval),
            log_level=(env.get("LOG_LEVEL") or cls.log_level).upper(),
            dev_data_dir=env.get("DEV_DATA_DIR") or None,
        )
