"""
tests/conftest.py -- Shared test fixtures for AppSec Portal tests.

This module provides:
  - FakeAnalyzer: scripted AnalysisService, optionally blocking on an Event
  - _make_service(): TicketService over an isolated in-memory store
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - auth_headers(): bearer headers for a portal session
  - api_client: TestClient on the real app, one per test module

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool, and the
ingestion tests run analysis on a worker thread. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread.

The service clock is pinned to FIXED_TODAY so SLA and reporting assertions
against the seed dataset are stable.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import threading
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Optional

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import PortalSession
from auth.tokens import create_session_token
from core.analyzer import EMPTY_DISCUSSION, AnalysisError, RawFinding, RetestVerdict, RiskAnalysis
from core.models import ChatMessage
from tracker.service import TicketService
from tracker.store import PortalStore

FIXED_TODAY = date(2026, 10, 19)
FIXED_NOW = "2026-10-19T09:00:00+00:00"


# ---------------------------------------------------------------------------
# Fake analysis service
# ---------------------------------------------------------------------------


class FakeAnalyzer:
    """AnalysisService double.

    Set findings / verdicts to script extraction results, error to make
    extraction raise AnalysisError. When gate is set, extraction signals
    entered and then blocks until gate is released.
    """

    def __init__(self) -> None:
        self.findings: list[RawFinding] = []
        self.verdicts: list[RetestVerdict] = []
        self.error: Optional[str] = None
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.calls: list[str] = []

    def reset(self) -> None:
        self.findings, self.verdicts, self.error, self.gate = [], [], None, None
        self.entered.clear()
        self.calls.clear()

    def _extract(self, name: str) -> None:
        self.calls.append(name)
        if self.gate is not None:
            self.entered.set()
            self.gate.wait(timeout=5)
        if self.error:
            raise AnalysisError(self.error)

    def extract_findings(self, content: bytes, mime_type: str) -> list[RawFinding]:
        self._extract("extract_findings")
        return list(self.findings)

    def extract_retest_verdicts(self, content: bytes, mime_type: str) -> list[RetestVerdict]:
        self._extract("extract_retest_verdicts")
        return list(self.verdicts)

    def summarize_discussion(self, messages: list[ChatMessage]) -> str:
        self.calls.append("summarize_discussion")
        if not messages:
            return EMPTY_DISCUSSION
        return f"Fake summary of {len(messages)} message(s)."

    def analyze_risk(self, app_name: str, app_type: str, test_url: str, answers: dict[str, bool]) -> RiskAnalysis:
        self.calls.append("analyze_risk")
        return RiskAnalysis(summary=f"Fake risk summary for {app_name}.", recommended_tier="High")

    def executive_summary(self, stats: dict[str, Any]) -> str:
        self.calls.append("executive_summary")
        return f"Fake executive summary: {stats.get('total', 0)} request(s)."


# ---------------------------------------------------------------------------
# Store / service helpers
# ---------------------------------------------------------------------------


def _shared_memory_url(db_suffix: str) -> str:
    return f"sqlite:///file:test_portal_{db_suffix}?mode=memory&cache=shared&uri=true"


def _make_service(db_suffix: str, analyzer: FakeAnalyzer) -> TicketService:
    """Create a TicketService over a named shared-memory store with a pinned clock.

    Args:
        db_suffix: Unique string appended to the DB name so tests and test
                   modules never share state.
    """
    store = PortalStore(db_url=_shared_memory_url(db_suffix))
    return TicketService(store, analyzer, clock=lambda: FIXED_TODAY, timestamp=lambda: FIXED_NOW)


def _patch_lifespan(service: TicketService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes see
    the isolated store and the fake analyzer rather than production wiring.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = service.store
        app.state.analyzer = service.analyzer
        app.state.service = service
        yield

    return test_lifespan


def auth_headers(portal: str, member_id: Optional[str] = None) -> dict[str, str]:
    """Authorization header for a portal session, minted without the login route."""
    token = create_session_token(PortalSession(portal=portal, member_id=member_id), expire_seconds=3600)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def service(analyzer: FakeAnalyzer) -> Generator[TicketService, None, None]:
    """Fresh TicketService seeded with the built-in dataset."""
    svc = _make_service(uuid.uuid4().hex[:8], analyzer)
    yield svc
    svc.store.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, TicketService, FakeAnalyzer], None, None]:
    """Yield (client, service, analyzer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers and middleware but use an isolated
    in-memory store. Rate-limit counters are reset so each module starts
    with a full login and upload budget.
    """
    fake = FakeAnalyzer()
    svc = _make_service(f"{request.module.__name__.split('.')[-1]}_{uuid.uuid4().hex[:6]}", fake)
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(svc)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, svc, fake

    svc.store.close()


@pytest.fixture
def headers():
    """auth_headers as a fixture: headers("security", "1")."""
    return auth_headers
