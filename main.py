#!/usr/bin/env python3
"""
AppSec Portal -- command-line access to the assessment ticket store.

Works against the same DATABASE_URL as the API, so an operator can inspect
tickets, run the SLA reminder sweep from cron, or ingest a report without
starting the server.

Usage:
  python main.py list
  python main.py list --mode expedited
  python main.py show REQ-2026-007
  python main.py sweep
  python main.py stats --period weekly
  python main.py ingest REQ-2026-004 final_report.pdf
  python main.py retest REQ-2026-001 retest.pdf --json

Environment variables:
  DATABASE_URL     SQLAlchemy URL of the key-value store (default: appsec_portal.db)
  GEMINI_API_KEY   Enables report extraction and the advisory AI summaries.
"""

import argparse
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from core.analyzer import build_analyzer
from core.config import get_settings
from core.formatter import disable_color, print_stats, print_ticket, print_ticket_list, to_json
from core.reporting import FILTER_MODES, calendar_year, trailing_week
from tracker.service import TicketBusyError, TicketService
from tracker.store import PortalStore


def _load_report(path: str) -> Optional[tuple[bytes, str]]:
    """Read a report file from disk. Returns (content, mime_type) or None.

    Resolves symlinks and verifies the path is a regular file before reading.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return None
    try:
        content = file_path.read_bytes()
    except OSError as e:
        print(f"  [!] Could not read file '{path}': {e}")
        return None
    mime_type = mimetypes.guess_type(file_path.name)[0] or "application/pdf"
    return content, mime_type


def _build_service() -> TicketService:
    settings = get_settings()
    store = PortalStore(
        settings.database_url,
        tickets_key=settings.storage_key,
        team_key=settings.team_storage_key,
    )
    return TicketService(store, build_analyzer(settings))


def _ingest(service: TicketService, args: argparse.Namespace, retest: bool) -> int:
    loaded = _load_report(args.path)
    if loaded is None:
        return 1
    content, mime_type = loaded
    kind = "retest report" if retest else "final report"
    print(f"  Analyzing {kind} for {args.ticket_id}...", end=" ", flush=True)
    ingest = service.ingest_retest_report if retest else service.ingest_final_report
    try:
        result = ingest(args.ticket_id, content, mime_type, Path(args.path).name)
    except KeyError:
        print(f"\n  [!] No ticket {args.ticket_id}.")
        return 1
    except TicketBusyError as e:
        print(f"\n  [!] {e}.")
        return 1
    print("done.")

    if result.analysis_error:
        print(f"  [!] Analysis failed: {result.analysis_error}")
    noun = "finding(s) matched" if retest else "finding(s) extracted"
    print(f"  {result.count} {noun}.")
    if args.json:
        print(to_json(result.ticket))
    else:
        print_ticket(result.ticket, service.today())
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="appsec-portal",
        description="Security-assessment ticket tracking from the terminal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py list --mode retest
  python main.py list --query paywallet
  python main.py show REQ-2026-007 --json
  python main.py sweep
  python main.py stats --period year --year 2026
  GEMINI_API_KEY=your-key python main.py ingest REQ-2026-004 report.pdf
        """,
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color codes in terminal output",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_list = sub.add_parser("list", help="List tickets, newest first")
    p_list.add_argument("--mode", choices=FILTER_MODES, default="all", help="Filter mode (default: all)")
    p_list.add_argument("--member", metavar="ID", help="Team member id for --mode my")
    p_list.add_argument("--query", default="", metavar="TEXT", help="Match app name or request id")
    p_list.add_argument("--json", action="store_true", help="Output structured JSON")

    p_show = sub.add_parser("show", help="Show one ticket (runs the SLA reminder sweep)")
    p_show.add_argument("ticket_id", metavar="REQUEST-ID")
    p_show.add_argument("--json", action="store_true", help="Output structured JSON")

    sub.add_parser("sweep", help="Run the SLA reminder sweep over every ticket")

    p_stats = sub.add_parser("stats", help="Weekly or yearly report metrics")
    p_stats.add_argument("--period", choices=["weekly", "year"], default="year")
    p_stats.add_argument("--year", type=int, help="Calendar year for --period year (default: current)")
    p_stats.add_argument("--json", action="store_true", help="Output structured JSON")

    for name, text in (("ingest", "Ingest a final report"), ("retest", "Ingest a retest report")):
        p = sub.add_parser(name, help=text)
        p.add_argument("ticket_id", metavar="REQUEST-ID")
        p.add_argument("path", metavar="PATH", help="PDF or image file")
        p.add_argument("--json", action="store_true", help="Output structured JSON")

    args = parser.parse_args(argv)

    # Apply color preference before any output
    if args.no_color:
        disable_color()

    if not args.command:
        parser.print_help()
        return 0

    service = _build_service()
    try:
        if args.command == "list":
            tickets = service.list_tickets(mode=args.mode, member_id=args.member, query=args.query)
            if args.json:
                print(to_json(tickets))
            else:
                print_ticket_list(tickets)

        elif args.command == "show":
            try:
                ticket = service.view_ticket(args.ticket_id)
            except KeyError:
                print(f"  [!] No ticket {args.ticket_id}.")
                return 1
            if args.json:
                print(to_json(ticket))
            else:
                print_ticket(ticket, service.today())

        elif args.command == "sweep":
            emitted = service.sweep_all()
            print(f"  SLA sweep complete: {emitted} reminder(s) posted.")

        elif args.command == "stats":
            today = service.today()
            if args.period == "weekly":
                window, title = trailing_week(today), "WEEKLY STATUS REPORT"
            else:
                year = args.year or today.year
                window, title = calendar_year(year), f"ANNUAL METRICS {year}"
            stats = service.stats(window)
            if args.json:
                print(to_json(stats))
            else:
                print_stats(stats, title)

        elif args.command in ("ingest", "retest"):
            return _ingest(service, args, retest=args.command == "retest")
    finally:
        service.store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
