"""
cli.py – Command-line interface for portwarden.

Usage:
    python -m portwarden --port PORT [OPTIONS]

Options:
    --port PORT         Port to watch (TCP and UDP).
    --interface ADDR    Local address to bind (default 0.0.0.0).
    --interval SECS     Seconds between polls.
    --duration SECS     Stop after SECS seconds (default: run until Ctrl-C).
    --owners            Look up the local process behind loopback attempts.
    --json              Emit the final report as JSON instead of coloured text.
    --output FILE       Write the report to FILE as JSON (in addition to stdout).
    --quiet             Suppress banner and informational output.
    --verbose           Extra debug output.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import textwrap
from datetime import datetime, timezone

from portwarden.attempts import Protocol
from portwarden.detector import AttemptDetector
from portwarden.watch import POLL_INTERVAL, WatchReport, run_watch


# ── ANSI colour helpers ────────────────────────────────────────────────────────

_COLOUR_ENABLED = sys.stdout.isatty() and os.name != "nt"

_RESET  = "\033[0m"  if _COLOUR_ENABLED else ""
_BOLD   = "\033[1m"  if _COLOUR_ENABLED else ""
_RED    = "\033[31m" if _COLOUR_ENABLED else ""
_YELLOW = "\033[33m" if _COLOUR_ENABLED else ""
_CYAN   = "\033[36m" if _COLOUR_ENABLED else ""
_GREEN  = "\033[32m" if _COLOUR_ENABLED else ""
_DIM    = "\033[2m"  if _COLOUR_ENABLED else ""

BANNER = r"""
  ___  ___  ___ _____ _    _  _   ___ ___  ___ _  _
 | _ \/ _ \| _ \_   _| |  | |/_\ | _ \   \| __| \| |
 |  _/ (_) |   / | | | |/\| / _ \|   / |) | _|| .` |
 |_|  \___/|_|_\ |_|  \_/\_/_/ \_\_|_\___/|___|_|\_|

 Passive TCP/UDP connection-attempt sentinel
"""


def print_banner(quiet: bool) -> None:
    if not quiet:
        print(f"{_CYAN}{_BOLD}{BANNER}{_RESET}")


# ── Report rendering ───────────────────────────────────────────────────────────

def _opened_tag(opened: bool) -> str:
    return f"{_GREEN}listening{_RESET}" if opened else f"{_RED}disabled{_RESET}"


def render_report_text(report: WatchReport, quiet: bool = False) -> str:
    lines = []
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    if not quiet:
        lines.append(f"{_BOLD}{'─' * 60}{_RESET}")
        lines.append(
            f"{_BOLD}  Watch ended  |  {report.interface} port {report.port}  |  {ts}{_RESET}"
        )
        lines.append(
            f"  UDP {_opened_tag(report.udp_opened)}   TCP {_opened_tag(report.tcp_opened)}"
            f"   {_DIM}{report.polls} polls over {report.elapsed:.1f}s{_RESET}"
        )
        lines.append(f"{_BOLD}{'─' * 60}{_RESET}")

    if not report.has_attempts():
        lines.append(f"\n  {_GREEN}{_BOLD}✓  No connection attempts observed.{_RESET}\n")
        return "\n".join(lines)

    lines.append(
        f"\n  {_RED}{_BOLD}⚠  {report.count()} distinct sender(s), "
        f"{report.total_attempts} attempt(s) in total{_RESET}\n"
    )
    for proto in (Protocol.TCP, Protocol.UDP):
        entries = report.by_protocol(proto)
        if not entries:
            continue
        lines.append(f"  {_BOLD}{proto.value}{_RESET}")
        for e in entries:
            origin = "local machine" if e.attempt.is_local else e.attempt.address
            lines.append(
                f"    {_YELLOW}{origin}{_RESET} remote port {e.attempt.port}"
                f"  {_DIM}(+{e.first_seen:.1f}s){_RESET}"
            )
            if e.owner:
                lines.append(f"           {_DIM}sent by {e.owner}{_RESET}")
        lines.append("")
    return "\n".join(lines)


def render_report_json(report: WatchReport) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    data = {
        "timestamp": ts,
        "interface": report.interface,
        "port": report.port,
        "udp_opened": report.udp_opened,
        "tcp_opened": report.tcp_opened,
        "polls": report.polls,
        "elapsed": round(report.elapsed, 3),
        "total_attempts": report.total_attempts,
        "attempt_count": report.count(),
        "attempts": [e.to_dict() for e in report.entries],
    }
    return json.dumps(data, indent=2)


# ── Main ───────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portwarden",
        description="Warn about anything trying to reach an idle TCP/UDP port.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
        Examples:
          python -m portwarden --port 3883                  # all interfaces
          python -m portwarden --port 3883 --interface 127.0.0.1
          python -m portwarden --port 3883 --duration 60 --json
          python -m portwarden --port 3883 --owners         # name local senders
        """),
    )
    p.add_argument("--port",      type=int, required=True, help="Port to watch")
    p.add_argument("--interface", default="0.0.0.0", metavar="ADDR",
                   help="Local address to bind (default: 0.0.0.0)")
    p.add_argument("--interval",  type=float, default=POLL_INTERVAL, metavar="SECS",
                   help=f"Seconds between polls (default: {POLL_INTERVAL})")
    p.add_argument("--duration",  type=float, default=0.0, metavar="SECS",
                   help="Stop after SECS seconds (default: until Ctrl-C)")
    p.add_argument("--owners",  action="store_true",
                   help="Look up the local process behind loopback attempts")
    p.add_argument("--json",    action="store_true", help="Output report as JSON")
    p.add_argument("--output",  metavar="FILE",      help="Write report to FILE")
    p.add_argument("--quiet",   action="store_true", help="Suppress banner and info messages")
    p.add_argument("--verbose", action="store_true", help="Extra debug output")
    return p


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s %(message)s" if verbose else "*** %(message)s",
        stream=sys.stdout,
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose, args.quiet)

    if not args.quiet and not args.json:
        print_banner(quiet=False)

    try:
        detector = AttemptDetector(args.port, args.interface)
    except ValueError as exc:
        print(f"  {_RED}Invalid configuration: {exc}{_RESET}", file=sys.stderr)
        return 1

    with detector:
        if not detector.udp_opened and not detector.tcp_opened:
            print(
                f"  {_RED}Could not bind port {args.port} on {args.interface} "
                f"for either TCP or UDP.{_RESET}",
                file=sys.stderr,
            )
            return 1
        if not args.quiet and not args.json:
            print(f"  {_DIM}Watching {args.interface} port {args.port}… (Ctrl-C to stop){_RESET}\n")
        report = run_watch(
            detector,
            interval=args.interval,
            duration=args.duration,
            lookup_owners=args.owners,
        )

    # ── Render report ─────────────────────────────────────────────────────────
    if args.json:
        output_text = render_report_json(report)
    else:
        output_text = render_report_text(report, quiet=args.quiet)
    print(output_text)

    if args.output:
        try:
            with open(args.output, "w") as fh:
                fh.write(render_report_json(report))  # always write JSON to file
            if not args.quiet:
                print(f"  {_DIM}Report written to {args.output}{_RESET}")
        except OSError as exc:
            print(f"  {_RED}Failed to write output file: {exc}{_RESET}", file=sys.stderr)

    return 2 if report.has_attempts() else 0  # 2 = something knocked


if __name__ == "__main__":
    sys.exit(main())
