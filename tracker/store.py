"""
tracker/store.py -- SQLAlchemy-backed key-value persistence for the portal.

The whole ticket collection is one JSON document (camelCase keys) stored
under a single key, and the team roster is a second document under its own
key. Load-all / save-all: there are no per-ticket queries. Uses SQLAlchemy
Core so swapping SQLite for PostgreSQL is a connection string change.

Pattern: Repository + Data Mapper. PortalStore is the repository; the
_*_to_record / _record_to_* functions at the bottom of this module are the
mappers between the stored JSON layout and the core dataclasses.

Load fallback: a missing key, an empty array, unparsable JSON or a record
that cannot be mapped all yield the built-in seed dataset. The fallback is
logged at WARNING for the corrupt cases; nothing is written back until the
next save.

Usage:
    store = PortalStore()                                # SQLite default
    store = PortalStore("postgresql://user:pw@host/db")  # PostgreSQL
    tickets = store.load_tickets()
    store.save_tickets(tickets)
    store.close()
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from core.config import DEFAULT_DB_URL
from core.models import (
    ChatMessage,
    ReportFile,
    SubmissionFile,
    TeamMember,
    Ticket,
    Vulnerability,
    VulnerabilityComment,
)
from tracker.seed import sample_team, sample_tickets

logger = logging.getLogger("appsec.store")

TICKETS_KEY = "security_portal_tickets_v1"
TEAM_KEY = "security_portal_team_v1"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_kv = Table(
    "kv_store",
    metadata,
    Column("key", String(100), primary_key=True),
    Column("value", Text, nullable=False),  # JSON document
    Column("updated_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on the writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PortalStore:
    def __init__(
        self,
        db_url: str = DEFAULT_DB_URL,
        tickets_key: str = TICKETS_KEY,
        team_key: str = TEAM_KEY,
    ) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers on a thread pool, so the same
            # SQLite connection may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self.tickets_key = tickets_key
        self.team_key = team_key

    # ------------------------------------------------------------------
    # Raw key-value access
    # ------------------------------------------------------------------

    def get_raw(self, key: str) -> Optional[str]:
        """Return the stored document for key, or None if the key is absent."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_kv.c.value).where(_kv.c.key == key)).first()
        return row.value if row is not None else None

    def put_raw(self, key: str, value: str) -> None:
        """Insert or replace the document stored under key."""
        updated_at = datetime.now(timezone.utc).isoformat()
        with self.engine.connect() as conn:
            result = conn.execute(_kv.update().where(_kv.c.key == key).values(value=value, updated_at=updated_at))
            if result.rowcount == 0:
                conn.execute(_kv.insert().values(key=key, value=value, updated_at=updated_at))
            conn.commit()

    def _load_array(self, key: str) -> Optional[list]:
        """Return the stored JSON array, or None when the seed should be used."""
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Stored value under %s is not valid JSON -- using seed data", key)
            return None
        if not isinstance(data, list):
            logger.warning("Stored value under %s is not an array -- using seed data", key)
            return None
        return data or None

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def load_tickets(self) -> list[Ticket]:
        data = self._load_array(self.tickets_key)
        if data is None:
            return sample_tickets()
        try:
            return [_record_to_ticket(record) for record in data]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning("Stored tickets could not be mapped (%s) -- using seed data", e)
            return sample_tickets()

    def save_tickets(self, tickets: list[Ticket]) -> None:
        self.put_raw(self.tickets_key, json.dumps([_ticket_to_record(t) for t in tickets]))

    # ------------------------------------------------------------------
    # Team roster
    # ------------------------------------------------------------------

    def load_team(self) -> list[TeamMember]:
        data = self._load_array(self.team_key)
        if data is None:
            return sample_team()
        try:
            return [TeamMember(id=str(r["id"]), name=str(r["name"])) for r in data]
        except (KeyError, TypeError) as e:
            logger.warning("Stored team could not be mapped (%s) -- using seed data", e)
            return sample_team()

    def save_team(self, team: list[TeamMember]) -> None:
        self.put_raw(self.team_key, json.dumps([{"id": m.id, "name": m.name} for m in team]))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern -- stored JSON <-> domain dataclass)
# ---------------------------------------------------------------------------


def _drop_none(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if v is not None}


def _report_to_record(report: ReportFile) -> dict[str, Any]:
    return _drop_none({"fileName": report.file_name, "uploadDate": report.upload_date, "fileUrl": report.file_url})


def _record_to_report(record: dict[str, Any]) -> ReportFile:
    return ReportFile(
        file_name=record["fileName"],
        upload_date=record.get("uploadDate", ""),
        file_url=record.get("fileUrl"),
    )


def _vuln_to_record(vuln: Vulnerability) -> dict[str, Any]:
    return _drop_none(
        {
            "id": vuln.id,
            "title": vuln.title,
            "severity": vuln.severity,
            "status": vuln.status,
            "impact": vuln.impact,
            "observation": vuln.observation,
            "remediation": vuln.remediation,
            "affectedUrl": vuln.affected_url,
            "dueDate": vuln.due_date,
            "slaReminderSent": vuln.sla_reminder_sent,
            "vendorFixComments": [{"text": c.text, "timestamp": c.timestamp} for c in vuln.vendor_fix_comments],
        }
    )


def _record_to_vuln(record: dict[str, Any]) -> Vulnerability:
    return Vulnerability(
        id=record["id"],
        title=record["title"],
        severity=record["severity"],
        status=record.get("status", "Open"),
        impact=record.get("impact", ""),
        observation=record.get("observation", ""),
        remediation=record.get("remediation", ""),
        affected_url=record.get("affectedUrl"),
        due_date=record.get("dueDate"),
        sla_reminder_sent=bool(record.get("slaReminderSent", False)),
        vendor_fix_comments=[
            VulnerabilityComment(text=c["text"], timestamp=c["timestamp"]) for c in record.get("vendorFixComments", [])
        ],
    )


def _ticket_to_record(ticket: Ticket) -> dict[str, Any]:
    return _drop_none(
        {
            "id": ticket.id,
            "appName": ticket.app_name,
            "vendorEmail": ticket.vendor_email,
            "region": ticket.region,
            "testUrl": ticket.test_url,
            "readyDate": ticket.ready_date,
            "type": ticket.type,
            "tier": ticket.tier,
            "isExpedited": ticket.is_expedited,
            "securityAnswers": ticket.security_answers,
            "details": ticket.details,
            "artifacts": [
                _drop_none({"name": a.name, "url": a.url, "uploadDate": a.upload_date, "size": a.size, "type": a.type})
                for a in ticket.artifacts
            ],
            "aiRiskAnalysis": ticket.ai_risk_analysis,
            "scheduledDate": ticket.scheduled_date,
            "status": ticket.status,
            "assignedTo": ticket.assigned_to,
            "messages": [
                {"id": m.id, "sender": m.sender, "text": m.text, "timestamp": m.timestamp} for m in ticket.messages
            ],
            "unreadFor": ticket.unread_for,
            "vulnerabilities": [_vuln_to_record(v) for v in ticket.vulnerabilities],
            "finalReport": _report_to_record(ticket.final_report) if ticket.final_report else None,
            "retestReports": [_report_to_record(r) for r in ticket.retest_reports],
        }
    )


def _record_to_ticket(record: dict[str, Any]) -> Ticket:
    final_report = record.get("finalReport")
    return Ticket(
        id=record["id"],
        app_name=record["appName"],
        vendor_email=record.get("vendorEmail"),
        region=record.get("region", "Global"),
        test_url=record.get("testUrl", ""),
        ready_date=record.get("readyDate", ""),
        type=record.get("type", "Web"),
        tier=record.get("tier", "Low"),
        is_expedited=bool(record.get("isExpedited", False)),
        security_answers=dict(record.get("securityAnswers") or {}),
        details=dict(record.get("details") or {}),
        artifacts=[
            SubmissionFile(
                name=a["name"],
                url=a.get("url", ""),
                upload_date=a.get("uploadDate", ""),
                size=a.get("size"),
                type=a.get("type"),
            )
            for a in record.get("artifacts") or []
        ],
        ai_risk_analysis=record.get("aiRiskAnalysis"),
        scheduled_date=record.get("scheduledDate"),
        status=record.get("status", "Pending"),
        assigned_to=record.get("assignedTo"),
        messages=[
            ChatMessage(id=m["id"], sender=m["sender"], text=m["text"], timestamp=m.get("timestamp", ""))
            for m in record.get("messages") or []
        ],
        unread_for=record.get("unreadFor"),
        vulnerabilities=[_record_to_vuln(v) for v in record.get("vulnerabilities") or []],
        final_report=_record_to_report(final_report) if final_report else None,
        retest_reports=[_record_to_report(r) for r in record.get("retestReports") or []],
    )
