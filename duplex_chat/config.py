import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "DUPLEX_CHAT_"

log_fmt = r"%(asctime)-15s %(levelname)s %(name)s %(funcName)s:%(lineno)d %(message)s"
datefmt = "%Y-%m-%d %H:%M:%S"


def _optional_float(value: Optional[str], name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got: {value!r}")


def _int(value: Optional[str], name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got: {value!r}")


@dataclass(frozen=True)
class ChatConfig:
    """Relay address and peer identity shared by every entry point."""

    host: str = "localhost"
    port: int = 4000
    identity: str = "user"
    connect_timeout: Optional[float] = None
    max_line_bytes: int = 65536
    log_level: str = "WARNING"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True
    ) -> "ChatConfig":
        """
        Build a config from ``DUPLEX_CHAT_*`` variables, reading ``.env`` first
        unless ``load_env_file`` is False. Unset variables keep their defaults.
        """
        if environ is None:
            if load_env_file:
                load_dotenv(find_dotenv(usecwd=True))
            environ = os.environ

        def get(name: str) -> Optional[str]:
            return environ.get(f"{ENV_PREFIX}{name}")

        port = _int(get("PORT"), "PORT", cls.port)
        if not 0 < port < 65536:
            raise ValueError(f"{ENV_PREFIX}PORT out of range: {port}")
        max_line_bytes = _int(
            get("MAX_LINE_BYTES"), "MAX_LINE_BYTES", cls.max_line_bytes
        )
        if max_line_bytes <= 0:
            raise ValueError(f"{ENV_PREFIX}MAX_LINE_BYTES must be positive")

        return cls(
            host=get("HOST") or cls.host,
            port=port,
            identity=get("IDENTITY") or cls.identity,
            connect_timeout=_optional_float(get("CONNECT_TIMEOUT"), "CONNECT_TIMEOUT"),
            max_line_bytes=max_line_bytes,
            log_level=(get("LOG_LEVEL") or cls.log_level).upper(),
        )

    def configure_logging(self) -> None:
        logging.basicConfig(format=log_fmt, level=self.log_level, datefmt=datefmt)
