"""
attempts.py – Value types describing one observed connection attempt.
"""
from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass
from typing import Any, Dict, Tuple


class Protocol(enum.Enum):
    TCP = "TCP"
    UDP = "UDP"


@dataclass(frozen=True)
class ConnectionAttempt:
    """A single sender that reached the monitored port."""

    protocol: Protocol
    port: int               # remote (source) port of the sender
    address: str = ""       # blank when the sender is on the local machine

    @property
    def is_local(self) -> bool:
        return not self.address

    def describe(self) -> str:
        origin = "from the local machine" if self.is_local else f"from {self.address}"
        return (
            f"Got a new attempt to connect over {self.protocol.value} "
            f"{origin} via remote port {self.port}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol.value,
            "port": self.port,
            "address": self.address,
        }

    def __str__(self) -> str:
        who = "localhost" if self.is_local else self.address
        return f"{self.protocol.value} {who}:{self.port}"


def attempt_from_endpoint(protocol: Protocol, endpoint: Tuple[Any, ...]) -> ConnectionAttempt:
    """
    Build a ConnectionAttempt from a socket address tuple as returned by
    ``recvfrom`` / ``accept`` (``(host, port)`` or ``(host, port, flow, scope)``).
    """
    host, port = endpoint[0], int(endpoint[1])
    # Link-local IPv6 peers come back as "fe80::1%eth0"
    addr = ipaddress.ip_address(host.split("%", 1)[0])
    if addr.is_loopback:
        return ConnectionAttempt(protocol, port)
    return ConnectionAttempt(protocol, port, str(addr))
