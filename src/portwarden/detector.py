"""
detector.py – Passive TCP/UDP connection-attempt detector for one port.

Binds a UDP socket and a TCP listener on (interface, port) and reports every
distinct sender exactly once.  Nothing is ever sent back: datagrams are read
and dropped, accepted TCP connections are shut down in both directions
immediately.

Lifecycle
─────────
  construction   parse the interface address (ValueError if malformed),
                 UDP setup, then TCP setup.  A failed setup step (socket
                 creation, options, bind, listen) is logged and
                 leaves that protocol disabled for good; the other protocol
                 is unaffected.
  process()      non-blocking: drain whatever the selector reports ready,
                 return True if a never-before-seen sender turned up.
  close()        release both sockets and the selector.

The detector owns no thread and never waits; the host calls ``process()``
from its own loop as often as it wants.
"""
from __future__ import annotations

import ipaddress
import logging
import selectors
import socket
from typing import Any, Callable, List, Optional, Set, Tuple

from portwarden.attempts import ConnectionAttempt, Protocol, attempt_from_endpoint

log = logging.getLogger("portwarden.detector")

# ── Tunables ──────────────────────────────────────────────────────────────────
RECV_BUFFER_SIZE = 65535    # largest possible UDP payload
LISTEN_BACKLOG   = socket.SOMAXCONN


class AttemptDetector:
    """
    Watches one port on one interface for TCP connections and UDP datagrams.

    ``known_attempts`` grows for the lifetime of the detector;
    ``all_attempts_this_poll`` and ``new_attempts_this_poll`` only describe the
    most recent ``process()`` call.
    """

    socket_factory = socket.socket

    def __init__(self, port: int, interface: str) -> None:
        if not 0 <= int(port) <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        addr = ipaddress.ip_address(interface)

        self.port = int(port)
        self.address = addr
        self.known_attempts: Set[ConnectionAttempt] = set()
        self.all_attempts_this_poll: List[ConnectionAttempt] = []
        self.new_attempts_this_poll: List[ConnectionAttempt] = []
        self.udp_opened = False
        self.tcp_opened = False

        self._buf = bytearray(RECV_BUFFER_SIZE)
        self._family = socket.AF_INET6 if addr.version == 6 else socket.AF_INET
        self._udp_sock: Optional[socket.socket] = None
        self._tcp_sock: Optional[socket.socket] = None
        self._selector = selectors.DefaultSelector()
        self._closed = False

        log.info("Creating attempt detector on %s port %d", addr, self.port)
        self._udp_sock = self._init_udp()
        self._tcp_sock = self._init_tcp()

    # ------------------------------------------------------------------ setup
    def _configure(self, sock: socket.socket) -> None:
        # Warning traffic must never leave through a gateway
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_DONTROUTE, 1)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError:
            pass  # only a convenience on restart

    def _open_bound(self, kind: int, context: str) -> Optional[socket.socket]:
        """
        Create, configure and bind one socket.  Any failure is reported under
        *context*, the partly set up socket is closed and None is returned.
        """
        sock = None
        try:
            sock = self.socket_factory(self._family, kind)
            self._configure(sock)
            sock.bind((str(self.address), self.port))
            if kind == socket.SOCK_STREAM:
                sock.listen(LISTEN_BACKLOG)
            sock.setblocking(False)
        except OSError as exc:
            self._display_error(context, exc)
            if sock is not None:
                sock.close()
            return None
        return sock

    def _init_udp(self) -> Optional[socket.socket]:
        sock = self._open_bound(socket.SOCK_DGRAM, "binding UDP socket to port")
        if sock is not None:
            self.udp_opened = True
            self._arm(sock, self._on_udp_ready)
        return sock

    def _init_tcp(self) -> Optional[socket.socket]:
        sock = self._open_bound(socket.SOCK_STREAM, "binding the TCP acceptor")
        if sock is not None:
            self.tcp_opened = True
            self._arm(sock, self._on_tcp_ready)
        return sock

    def _arm(self, sock: socket.socket, handler: Callable[[], None]) -> None:
        """
        Register *sock* for read readiness.  The registration is never
        dropped, so each listener goes straight back to "armed" after its
        handler has run, whatever the outcome.
        """
        self._selector.register(sock, selectors.EVENT_READ, data=handler)

    # ------------------------------------------------------------------ polling
    def process(self) -> bool:
        """
        Drain all ready socket events without blocking.

        Returns True if at least one sender was seen during this call that had
        never been seen before.
        """
        self.all_attempts_this_poll.clear()
        self.new_attempts_this_poll.clear()
        try:
            self._drain()
        except OSError as exc:
            self._display_error("trying to poll for socket events", exc)
        return bool(self.new_attempts_this_poll)

    def _drain(self) -> None:
        if self._closed or not self._selector.get_map():
            return
        # Handlers run until nothing is ready, so datagrams queued behind the
        # one just read are picked up in the same call.
        while True:
            events = self._selector.select(timeout=0)
            if not events:
                return
            for key, _mask in events:
                key.data()

    # ------------------------------------------------------------------ handlers
    def _on_udp_ready(self) -> None:
        try:
            _nbytes, endpoint = self._udp_sock.recvfrom_into(self._buf)
        except BlockingIOError:
            return
        except OSError as exc:
            log.debug("Dropped UDP receive: %s", exc)
            return
        # Oversized datagrams arrive truncated; the sender is still known.
        self._log_attempt(attempt_from_endpoint(Protocol.UDP, endpoint))

    def _on_tcp_ready(self) -> None:
        try:
            conn, endpoint = self._tcp_sock.accept()
        except BlockingIOError:
            return
        except OSError as exc:
            log.debug("Dropped TCP accept: %s", exc)
            return
        with conn:
            self._log_attempt(attempt_from_endpoint(Protocol.TCP, endpoint))
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError as exc:
                self._display_error("shutting down TCP socket", exc)

    # ------------------------------------------------------------------ bookkeeping
    def _log_attempt(self, attempt: ConnectionAttempt) -> None:
        self.all_attempts_this_poll.append(attempt)
        if attempt in self.known_attempts:
            return
        log.warning("%s", attempt.describe())
        self.new_attempts_this_poll.append(attempt)
        self.known_attempts.add(attempt)

    def _display_error(self, context: str, exc: OSError) -> None:
        log.error("Got an error %s: %s", context, exc.strerror or exc)

    # ------------------------------------------------------------------ helpers
    @property
    def udp_endpoint(self) -> Optional[Tuple[Any, ...]]:
        return self._udp_sock.getsockname() if self.udp_opened and not self._closed else None

    @property
    def tcp_endpoint(self) -> Optional[Tuple[Any, ...]]:
        return self._tcp_sock.getsockname() if self.tcp_opened and not self._closed else None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sock in (self._udp_sock, self._tcp_sock):
            if sock is None:
                continue
            try:
                self._selector.unregister(sock)
            except (KeyError, ValueError):
                pass
            sock.close()
        self._selector.close()

    def __enter__(self) -> "AttemptDetector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
