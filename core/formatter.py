"""
formatter.py -- Renders tickets and report stats to terminal output or JSON.

Used by the CLI only; the HTTP API serializes through api/models.py.
"""

import json
import os
import re
import sys
from dataclasses import asdict
from datetime import date
from typing import Optional

from core.models import Ticket
from core.reporting import ReportStats, finding_counts
from core.sla import classify_sla

W = 68  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from a string."""
    return _ANSI_RE.sub("", text)


def _use_color() -> bool:
    """Return True if stdout is a TTY and color has not been disabled.

    Respects NO_COLOR env var (https://no-color.org) and checks sys.stdout.isatty().
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled: Optional[bool] = None  # None = auto-detect


def disable_color() -> None:
    """Force-disable color output (called when --no-color flag is set)."""
    global _color_enabled
    _color_enabled = False


def _color_active() -> bool:
    if _color_enabled is not None:
        return _color_enabled
    return _use_color()


SEVERITY_COLORS = {
    "Critical": "\033[91m",  # red
    "High": "\033[93m",  # yellow
    "Medium": "\033[94m",  # blue
    "Low": "\033[92m",  # green
    "Info": "\033[2m",  # dim
}


def _reset() -> str:
    return "\033[0m" if _color_active() else ""


def _bold() -> str:
    return "\033[1m" if _color_active() else ""


def _red() -> str:
    return "\033[91m" if _color_active() else ""


def _s_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, "") if _color_active() else ""


# ---------------------------------------------------------------------------
# Layout helpers
# ---------------------------------------------------------------------------


def _bar(char: str = "═") -> str:
    return char * W


def _section(title: str) -> str:
    return f"\n  {_bold()}{title}{_reset()}\n  {'─' * (W - 2)}"


def _wrap(text: str, indent: int = 4, width: int = W) -> str:
    """Simple word-wrap at `width` chars with leading indent. Keeps blank lines."""
    out = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        line = " " * indent
        lines = []
        for word in words:
            if len(line) + len(word) + 1 > width:
                lines.append(line)
                line = " " * indent + word
            else:
                line += ("" if line.strip() == "" else " ") + word
        if line.strip():
            lines.append(line)
        out.append("\n".join(lines))
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Terminal renderers
# ---------------------------------------------------------------------------


def print_ticket_list(tickets: list[Ticket]) -> None:
    """One line per ticket: id, status, tier, app name, open findings."""
    bold, reset = _bold(), _reset()
    print(f"\n  {bold}{'ID':<16}{'STATUS':<14}{'TIER':<8}{'OPEN':>5}  APPLICATION{reset}")
    print(f"  {'─' * (W - 2)}")
    for t in tickets:
        counts = finding_counts(t)
        flag = f" {_red()}!{reset}" if t.is_expedited else ""
        print(f"  {t.id:<16}{t.status:<14}{t.tier:<8}{counts['open']:>5}  {t.app_name}{flag}")
    print()


def print_ticket(ticket: Ticket, today: date) -> None:
    bold, reset = _bold(), _reset()

    # -- Header ---------------------------------------------------------------
    print(f"\n{bold}{_bar()}{reset}")
    print(f"  {bold}{ticket.id}{reset}  │  {ticket.app_name}  │  {ticket.status}")
    print(f"{bold}{_bar()}{reset}")

    print(_section("REQUEST"))
    for label, val in [
        ("Type", ticket.type),
        ("Region", ticket.region),
        ("Tier", ticket.tier),
        ("Ready date", ticket.ready_date),
        ("Scheduled", ticket.scheduled_date),
        ("Assigned to", ticket.assigned_to),
        ("Test URL", ticket.test_url),
        ("Vendor", ticket.vendor_email),
    ]:
        if val:
            print(f"    {label:<14} {val}")
    if ticket.ai_risk_analysis:
        print()
        print(_wrap(ticket.ai_risk_analysis))

    # -- Findings -------------------------------------------------------------
    if ticket.vulnerabilities:
        print(_section("FINDINGS"))
        for v in ticket.vulnerabilities:
            sla = classify_sla(v.due_date, v.status, today)
            sla_tag = ""
            if sla is not None:
                color = _red() if sla.is_urgent else ""
                sla_tag = f"  {color}{sla.label}{reset}"
            print(f"    {_s_color(v.severity)}{v.severity:<9}{reset}{v.status:<18}{v.title}{sla_tag}")

    # -- Discussion -----------------------------------------------------------
    if ticket.messages:
        print(_section("DISCUSSION"))
        for m in ticket.messages[-5:]:
            print(f"    {bold}{m.sender}{reset}  {m.timestamp[:16]}")
            print(_wrap(m.text, indent=6))
            print()

    print(f"\n{_bar()}\n")


def print_stats(stats: ReportStats, title: str) -> None:
    bold, reset = _bold(), _reset()
    print(_section(title))
    print(f"    Requests       {stats.total}  (completed {stats.completed}, in progress {stats.in_progress}, "
          f"scheduled {stats.scheduled}, cancelled {stats.rejected})")
    print(f"    Expedited      {stats.expedited}")
    print(f"    Findings       {stats.total_findings}  (open {stats.findings_open}, closed {stats.findings_closed})")
    print(f"    Remediation    {bold}{stats.remediation_rate}%{reset}")
    print("\n    Open by severity")
    for severity, count in stats.open_by_severity.items():
        print(f"      {_s_color(severity)}{severity:<10}{reset}{count:>4}")
    print("\n    Open by region")
    for region, count in stats.open_by_region.items():
        print(f"      {region:<16}{count:>4}")
    print()


# ---------------------------------------------------------------------------
# JSON renderer
# ---------------------------------------------------------------------------


def to_json(obj) -> str:
    """Serialize a Ticket, a list of Tickets or ReportStats to indented JSON."""
    if isinstance(obj, list):
        return json.dumps([asdict(t) for t in obj], indent=2)
    if isinstance(obj, ReportStats):
        return json.dumps(obj.as_dict(), indent=2)
    return json.dumps(asdict(obj), indent=2)
