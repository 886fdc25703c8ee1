import logging
import os
import re

from pydantic import BaseModel, Field

DEFAULT_BUFSIZE = 1024
DEFAULT_BACKLOG = 1
DEFAULT_LOG_LEVEL = "WARNING"
WILDCARD_HOST = "0.0.0.0"

_DECIMAL = re.compile(r"[0-9]+")


class ListenerConfig(BaseModel):
    host: str = Field(WILDCARD_HOST, description="Bind address (wildcard by default)")
    port: int = Field(0, ge=0, le=65535, description="0 = let the OS pick an ephemeral port")
    backlog: int = Field(DEFAULT_BACKLOG, ge=1)
    bufsize: int = Field(DEFAULT_BUFSIZE, ge=1, description="Capacity of the single read")
    announce_port: bool = Field(False, description="Write the bound port to the output before accepting")


def parse_port(arg: str) -> int:
    """Parse an ASCII decimal port argument; raises ValueError when it is not one."""
    if not _DECIMAL.fullmatch(arg):
        raise ValueError(f"port must be a decimal number, got {arg!r}")
    return ListenerConfig(port=int(arg)).port


def log_level() -> str:
    name = os.environ.get("PORTECHO_LOG_LEVEL", "").strip().upper()
    # unknown names come back from getLevelName as "Level <name>" strings
    if not name or not isinstance(logging.getLevelName(name), int):
        return DEFAULT_LOG_LEVEL
    return name


def log_dir():
    d = os.environ.get("PORTECHO_LOG_DIR", "").strip()
    return d or None
