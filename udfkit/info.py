"""Server information shared between a UDF server and its client.

The server writes a JSON document followed by an end marker to a file on a
shared file system when it starts. The client waits for the file to appear,
then reads it to learn the protocol, SDK language and version of the server.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from importlib import metadata as _metadata
from pathlib import Path
from typing import Any

__all__ = [
    "END",
    "MINIMUM_NUMAFLOW_VERSION",
    "Language",
    "ServerInfo",
    "ServerInfoError",
    "ServerProtocol",
    "get_sdk_version",
    "read",
    "wait_until_ready",
    "write",
]

_log = logging.getLogger(__name__)

END = "U+005C__END__"
MINIMUM_NUMAFLOW_VERSION = "1.2.0-rc4"

_DISTRIBUTION = "udfkit"
_READ_RETRIES = 10
_READ_RETRY_DELAY = 0.1
_WAIT_POLL_INTERVAL = 1.0


class ServerInfoError(ValueError):
    """The server info file is incomplete or cannot be decoded."""


class ServerProtocol(str, Enum):
    UDS = "uds"
    TCP = "tcp"


class Language(str, Enum):
    GO = "go"
    PYTHON = "python"
    JAVA = "java"


@dataclass
class ServerInfo:
    """Information a server publishes about itself."""

    protocol: ServerProtocol
    language: Language
    minimum_numaflow_version: str = MINIMUM_NUMAFLOW_VERSION
    version: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "protocol": ServerProtocol(self.protocol).value,
            "language": Language(self.language).value,
            "minimum_numaflow_version": self.minimum_numaflow_version,
            "version": self.version,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerInfo:
        try:
            return cls(
                protocol=ServerProtocol(data["protocol"]),
                language=Language(data["language"]),
                minimum_numaflow_version=data.get("minimum_numaflow_version", ""),
                version=data.get("version", ""),
                metadata=dict(data.get("metadata") or {}),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ServerInfoError(f"failed to unmarshal server info: {exc}") from exc


def get_sdk_version() -> str:
    """Return the installed SDK version, or an empty string if unknown."""
    try:
        return _metadata.version(_DISTRIBUTION)
    except _metadata.PackageNotFoundError:
        return ""


def write(server_info: ServerInfo, path: str | Path) -> None:
    """Write the server info to ``path``, replacing any existing file."""
    body = json.dumps(server_info.to_dict(), separators=(",", ":"))
    target = Path(path)
    target.unlink(missing_ok=True)
    with target.open("w", encoding="utf-8") as fh:
        fh.write(body)
        fh.write(END)


def wait_until_ready(path: str | Path, timeout: float | None = None) -> None:
    """Block until the file at ``path`` exists and is not empty.

    Raises TimeoutError if ``timeout`` seconds pass first.
    """
    target = Path(path)
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        remaining = None if deadline is None else deadline - time.monotonic()
        if remaining is not None and remaining <= 0:
            raise TimeoutError(f"server info file {target} is not ready")
        try:
            if target.stat().st_size > 0:
                return
            delay = _READ_RETRY_DELAY
        except OSError:
            _log.info("Server info file %s is not ready...", target)
            delay = _WAIT_POLL_INTERVAL
        time.sleep(delay if remaining is None else min(delay, remaining))


def read(path: str | Path) -> ServerInfo:
    """Read the server info from ``path``.

    Retries briefly while the end marker is missing. Raises
    FileNotFoundError if the file does not exist and ServerInfoError if it
    is incomplete or malformed.
    """
    target = Path(path)
    text = target.read_text(encoding="utf-8")
    for _ in range(_READ_RETRIES):
        if text.endswith(END):
            break
        time.sleep(_READ_RETRY_DELAY)
        text = target.read_text(encoding="utf-8")
    if not text.endswith(END):
        raise ServerInfoError("server info file is not ready")
    try:
        data = json.loads(text[: -len(END)])
    except json.JSONDecodeError as exc:
        raise ServerInfoError(f"failed to unmarshal server info: {exc}") from exc
    if not isinstance(data, dict):
        raise ServerInfoError("failed to unmarshal server info: not an object")
    return ServerInfo.from_dict(data)