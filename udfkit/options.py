"""Server options for each kind of user-defined function."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum

__all__ = ["DEFAULT_MAX_MESSAGE_SIZE", "ServerOptions", "UdfKind", "default_options"]

DEFAULT_MAX_MESSAGE_SIZE = 1024 * 1024 * 64


class UdfKind(Enum):
    """Kinds of UDF server, each with its default socket and info file."""

    MAP = ("/var/run/numaflow/map.sock", "/var/run/numaflow/mapper-server-info")
    MAP_STREAM = (
        "/var/run/numaflow/mapstream.sock",
        "/var/run/numaflow/mapstreamer-server-info",
    )
    REDUCE = ("/var/run/numaflow/reduce.sock", "/var/run/numaflow/reducer-server-info")
    REDUCE_STREAM = (
        "/var/run/numaflow/reducestream.sock",
        "/var/run/numaflow/reducestreamer-server-info",
    )

    @property
    def sock_addr(self) -> str:
        return self.value[0]

    @property
    def server_info_file_path(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class ServerOptions:
    """Where a server listens and how large its messages may be."""

    sock_addr: str
    server_info_file_path: str
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE


def default_options(kind: UdfKind, **kwargs) -> ServerOptions:
    """Return the defaults for ``kind``, with any given fields overridden.

    Unknown field names raise TypeError.
    """
    base = ServerOptions(
        sock_addr=kind.sock_addr,
        server_info_file_path=kind.server_info_file_path,
    )
    return dataclasses.replace(base, **kwargs)