"""
owners.py – Best-effort attribution of local attempts to a process.

A loopback sender is by definition running on this host, so its source port
can be matched against the host's socket table.  Uses psutil; returns None
whenever the answer is not available (non-local sender, access denied,
process already gone).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import psutil

from portwarden.attempts import ConnectionAttempt, Protocol

log = logging.getLogger("portwarden.owners")


@dataclass(frozen=True)
class LocalOwner:
    pid: int
    name: str = ""

    def __str__(self) -> str:
        return f"{self.name or '?'} (PID {self.pid})"


def _process_name(pid: int) -> str:
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return ""


def find_local_owner(
    attempt: ConnectionAttempt, monitored_port: Optional[int] = None
) -> Optional[LocalOwner]:
    """
    Return the process whose socket sent *attempt*, if it can be found.

    For TCP the client socket's remote port must also match *monitored_port*
    when that is given, so the detector's own accepted socket is never picked.
    """
    if not attempt.is_local:
        return None
    kind = "tcp" if attempt.protocol is Protocol.TCP else "udp"
    try:
        connections = psutil.net_connections(kind=kind)
    except (psutil.AccessDenied, PermissionError) as exc:
        log.debug("Cannot inspect %s sockets: %s", kind, exc)
        return None

    for conn in connections:
        if not conn.laddr or conn.laddr.port != attempt.port:
            continue
        if conn.pid is None:
            continue
        if (
            attempt.protocol is Protocol.TCP
            and monitored_port is not None
            and conn.raddr
            and conn.raddr.port != monitored_port
        ):
            continue
        return LocalOwner(pid=conn.pid, name=_process_name(conn.pid))
    return None
