"""
watch.py – Host loop that drives an AttemptDetector and collects a report.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from portwarden.attempts import ConnectionAttempt, Protocol
from portwarden.detector import AttemptDetector
from portwarden.owners import LocalOwner, find_local_owner

log = logging.getLogger("portwarden.watch")

# ── Tunables ──────────────────────────────────────────────────────────────────
POLL_INTERVAL = 0.25    # seconds between process() calls


@dataclass
class WatchEntry:
    """First sighting of one distinct sender."""

    attempt: ConnectionAttempt
    first_seen: float                   # seconds since the watch started
    owner: Optional[LocalOwner] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.attempt.to_dict()
        data["first_seen"] = round(self.first_seen, 3)
        data["owner"] = (
            {"pid": self.owner.pid, "name": self.owner.name} if self.owner else None
        )
        return data


@dataclass
class WatchReport:
    """Everything observed while watching one port."""

    interface: str
    port: int
    udp_opened: bool = False
    tcp_opened: bool = False
    entries: List[WatchEntry] = field(default_factory=list)
    polls: int = 0
    total_attempts: int = 0
    elapsed: float = 0.0

    # ------------------------------------------------------------------ helpers
    def add(self, entry: WatchEntry) -> None:
        self.entries.append(entry)

    def has_attempts(self) -> bool:
        return bool(self.entries)

    def by_protocol(self, protocol: Protocol) -> List[WatchEntry]:
        return [e for e in self.entries if e.attempt.protocol is protocol]

    def count(self) -> int:
        return len(self.entries)


def run_watch(
    detector: AttemptDetector,
    interval: float = POLL_INTERVAL,
    duration: float = 0.0,
    lookup_owners: bool = False,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> WatchReport:
    """
    Call ``detector.process()`` every *interval* seconds for *duration*
    seconds (forever when *duration* is 0) and return the collected report.

    Ctrl-C ends the watch cleanly; the report so far is returned.
    """
    report = WatchReport(
        interface=str(detector.address),
        port=detector.port,
        udp_opened=detector.udp_opened,
        tcp_opened=detector.tcp_opened,
    )
    t0 = clock()
    try:
        while True:
            found_new = detector.process()
            report.polls += 1
            report.total_attempts += len(detector.all_attempts_this_poll)
            if found_new:
                now = clock() - t0
                for attempt in detector.new_attempts_this_poll:
                    owner = None
                    if lookup_owners and attempt.is_local:
                        owner = find_local_owner(attempt, monitored_port=detector.port)
                        if owner:
                            log.warning("  sent by %s", owner)
                    report.add(WatchEntry(attempt=attempt, first_seen=now, owner=owner))

            if duration and clock() - t0 >= duration:
                break
            sleep(interval)
    except KeyboardInterrupt:
        log.info("Watch interrupted")
    report.elapsed = clock() - t0
    return report
