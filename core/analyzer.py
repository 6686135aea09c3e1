"""
core/analyzer.py -- Document-analysis port and its Gemini adapter.

The ingestion pipeline depends on the AnalysisService protocol, never on a
concrete client, so tests inject fakes and a deployment without an API key
runs on NullAnalyzer.

Failure contract:
  extract_findings / extract_retest_verdicts raise AnalysisError on network,
  HTTP or parse failure. The ingestion boundary catches it and degrades to
  "nothing extracted".
  summarize_discussion / analyze_risk / executive_summary are advisory and
  never raise -- they return a fallback string instead.

The Gemini adapter talks to the generateContent REST endpoint over a shared
requests.Session and asks for JSON output constrained by a response schema.
"""

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from core.config import Settings
from core.models import SEVERITIES, ChatMessage

logger = logging.getLogger("appsec.analyzer")

GEMINI_API = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

SUMMARY_FALLBACK = "Could not generate summary at this time."
EMPTY_DISCUSSION = "No messages to summarize."
RISK_FALLBACK = "Could not generate analysis at this time."
EXECUTIVE_FALLBACK = "Error generating executive summary."

# Shared session for connection pooling. Three redirects is plenty for a
# single well-known API host.
_session = requests.Session()
_session.max_redirects = 3


class AnalysisError(Exception):
    """The analysis service could not produce a usable result."""


@dataclass
class RawFinding:
    """One finding as extracted from a report, before it becomes a Vulnerability."""

    title: str
    severity: str
    impact: str = ""
    observation: str = ""
    remediation: str = ""
    affected_url: Optional[str] = None


@dataclass
class RetestVerdict:
    title: str
    status: str  # "Open" | "Remediated"
    comment: str = ""


@dataclass
class RiskAnalysis:
    summary: str
    recommended_tier: str


class AnalysisService(Protocol):
    def extract_findings(self, content: bytes, mime_type: str) -> list[RawFinding]: ...

    def extract_retest_verdicts(self, content: bytes, mime_type: str) -> list[RetestVerdict]: ...

    def summarize_discussion(self, messages: list[ChatMessage]) -> str: ...

    def analyze_risk(self, app_name: str, app_type: str, test_url: str, answers: dict[str, bool]) -> RiskAnalysis: ...

    def executive_summary(self, stats: dict[str, Any]) -> str: ...


# ---------------------------------------------------------------------------
# Response normalisation
# ---------------------------------------------------------------------------


def _normalize_severity(value: Any) -> str:
    text = str(value or "").strip().capitalize()
    if text in SEVERITIES:
        return text
    logger.warning("Unknown severity %r from analysis service; treating as Info", value)
    return "Info"


def parse_findings(payload: Any) -> list[RawFinding]:
    """Turn the service's JSON array into RawFinding records.

    Entries that are not objects or have no title are dropped.
    Raises AnalysisError if the payload is not a list at all.
    """
    if not isinstance(payload, list):
        raise AnalysisError("Expected a JSON array of findings")
    findings: list[RawFinding] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        findings.append(
            RawFinding(
                title=title,
                severity=_normalize_severity(item.get("severity")),
                impact=str(item.get("impact") or ""),
                observation=str(item.get("observation") or ""),
                remediation=str(item.get("remediation") or ""),
                affected_url=item.get("affectedUrl") or None,
            )
        )
    return findings


def parse_verdicts(payload: Any) -> list[RetestVerdict]:
    """Turn the service's JSON array into RetestVerdict records.

    Anything other than an explicit "Remediated" status counts as still Open.
    """
    if not isinstance(payload, list):
        raise AnalysisError("Expected a JSON array of retest verdicts")
    verdicts: list[RetestVerdict] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        status = "Remediated" if str(item.get("status") or "").strip().lower() == "remediated" else "Open"
        verdicts.append(
            RetestVerdict(
                title=str(item.get("title") or "").strip(),
                status=status,
                comment=str(item.get("comment") or "").strip(),
            )
        )
    return verdicts


# ---------------------------------------------------------------------------
# Prompts and schemas
# ---------------------------------------------------------------------------

_FINDINGS_PROMPT = """
Security analyst task: extract every vulnerability finding from the attached
assessment report (PDF or image). Only include information explicitly present
in the report.

For each finding return:
1. title: exact name of the vulnerability.
2. severity: one of Critical, High, Medium, Low, Info.
3. impact: the risk impact described in the report.
4. observation: technical discovery details (what, where, how).
5. affectedUrl: endpoint or path, if mentioned.
6. remediation: the remediation guidance from the report.

Return a JSON array of objects.
"""

_FINDINGS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "severity": {"type": "STRING", "enum": list(SEVERITIES)},
            "impact": {"type": "STRING"},
            "observation": {"type": "STRING"},
            "affectedUrl": {"type": "STRING"},
            "remediation": {"type": "STRING"},
        },
        "required": ["title", "severity", "impact", "observation", "remediation"],
    },
}

_RETEST_PROMPT = """
Security analyst task: the attached document is a RETEST report. Decide which
previously reported vulnerabilities are fixed and which are still open.

For each vulnerability mentioned return:
1. title: the vulnerability name.
2. status: exactly "Remediated" if the report confirms the fix, otherwise "Open".
3. comment: a short explanation of the retest result.

Return a JSON array of objects.
"""

_RETEST_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "status": {"type": "STRING", "enum": ["Open", "Remediated"]},
            "comment": {"type": "STRING"},
        },
        "required": ["title", "status", "comment"],
    },
}

_RISK_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "summary": {"type": "STRING"},
        "recommendedTier": {"type": "STRING", "enum": ["High", "Medium", "Low"]},
    },
}


# ---------------------------------------------------------------------------
# Gemini adapter
# ---------------------------------------------------------------------------


class GeminiAnalyzer:
    """AnalysisService backed by the Gemini generateContent REST API."""

    def __init__(self, api_key: str, flash_model: str, pro_model: str, timeout: int = 120) -> None:
        self._api_key = api_key
        self.flash_model = flash_model
        self.pro_model = pro_model
        self.timeout = timeout

    def _generate(
        self,
        model: str,
        parts: list[dict[str, Any]],
        schema: Optional[dict[str, Any]] = None,
    ) -> str:
        """POST one generateContent request and return the concatenated text parts.

        Raises AnalysisError on transport failure, HTTP error or an empty answer.
        """
        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        if schema is not None:
            body["generationConfig"] = {"responseMimeType": "application/json", "responseSchema": schema}
        try:
            resp = _session.post(
                GEMINI_API.format(model=model),
                headers={"x-goog-api-key": self._api_key},
                json=body,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise AnalysisError(f"Gemini request failed: {e}") from e

        candidates = data.get("candidates") or []
        if not candidates:
            raise AnalysisError("Gemini returned no candidates")
        text_parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in text_parts if isinstance(p, dict))
        if not text:
            raise AnalysisError("Gemini returned an empty response")
        return text

    def _generate_json(self, model: str, parts: list[dict[str, Any]], schema: dict[str, Any]) -> Any:
        text = self._generate(model, parts, schema)
        try:
            return json.loads(text)
        except ValueError as e:
            raise AnalysisError(f"Gemini response was not valid JSON: {e}") from e

    @staticmethod
    def _document_parts(content: bytes, mime_type: str, prompt: str) -> list[dict[str, Any]]:
        return [
            {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(content).decode("ascii")}},
            {"text": prompt},
        ]

    def extract_findings(self, content: bytes, mime_type: str) -> list[RawFinding]:
        payload = self._generate_json(
            self.pro_model, self._document_parts(content, mime_type, _FINDINGS_PROMPT), _FINDINGS_SCHEMA
        )
        return parse_findings(payload)

    def extract_retest_verdicts(self, content: bytes, mime_type: str) -> list[RetestVerdict]:
        payload = self._generate_json(
            self.pro_model, self._document_parts(content, mime_type, _RETEST_PROMPT), _RETEST_SCHEMA
        )
        return parse_verdicts(payload)

    def summarize_discussion(self, messages: list[ChatMessage]) -> str:
        if not messages:
            return EMPTY_DISCUSSION
        conversation = "\n".join(f"{m.sender.upper()}: {m.text}" for m in messages)
        prompt = (
            "Summarize the key points of this discussion between a Vendor and the Security Team.\n\n"
            f"Conversation:\n{conversation}\n\nFocus on action items and decisions."
        )
        try:
            return self._generate(self.flash_model, [{"text": prompt}])
        except AnalysisError as e:
            logger.warning("Discussion summary failed: %s", e)
            return SUMMARY_FALLBACK

    def analyze_risk(self, app_name: str, app_type: str, test_url: str, answers: dict[str, bool]) -> RiskAnalysis:
        def yes_no(key: str) -> str:
            return "Yes" if answers.get(key) else "No"

        prompt = (
            "You are an application security engineer. Give a risk summary (max 2 sentences) and a "
            "recommended tier (High, Medium or Low) for this assessment request.\n"
            f"- Name: {app_name}\n- Type: {app_type}\n- URL: {test_url}\n"
            f"- Handles PII: {yes_no('handlesPII')}\n"
            f"- Internet facing: {yes_no('internetFacing')}\n"
            f"- Stores payment data: {yes_no('storesPaymentData')}\n"
            f"- Third-party integrations: {yes_no('thirdPartyIntegrations')}\n"
            f"- Requires user authentication: {yes_no('requiresUserAuth')}\n"
        )
        try:
            result = self._generate_json(self.flash_model, [{"text": prompt}], _RISK_SCHEMA)
        except AnalysisError as e:
            logger.warning("Risk analysis failed for %s: %s", app_name, e)
            return RiskAnalysis(summary=RISK_FALLBACK, recommended_tier="Medium")
        if not isinstance(result, dict):
            return RiskAnalysis(summary=RISK_FALLBACK, recommended_tier="Medium")
        tier = result.get("recommendedTier")
        return RiskAnalysis(
            summary=str(result.get("summary") or RISK_FALLBACK),
            recommended_tier=tier if tier in ("High", "Medium", "Low") else "Medium",
        )

    def executive_summary(self, stats: dict[str, Any]) -> str:
        prompt = (
            "You are a CISO. Write a professional, data-driven executive security summary from these metrics:\n"
            f"- Total: {stats.get('total', 0)}, Completed: {stats.get('completed', 0)}, "
            f"In Progress: {stats.get('in_progress', 0)}, Expedited: {stats.get('expedited', 0)}\n"
            f"- Findings: {stats.get('total_findings', 0)}, Open: {stats.get('findings_open', 0)}, "
            f"Remediation rate: {stats.get('remediation_rate', 0)}%\n"
        )
        try:
            return self._generate(self.flash_model, [{"text": prompt}])
        except AnalysisError as e:
            logger.warning("Executive summary failed: %s", e)
            return EXECUTIVE_FALLBACK


class NullAnalyzer:
    """Used when no Gemini key is configured. Extraction always fails softly."""

    def extract_findings(self, content: bytes, mime_type: str) -> list[RawFinding]:
        raise AnalysisError("Document analysis is not configured (GEMINI_API_KEY is empty)")

    def extract_retest_verdicts(self, content: bytes, mime_type: str) -> list[RetestVerdict]:
        raise AnalysisError("Document analysis is not configured (GEMINI_API_KEY is empty)")

    def summarize_discussion(self, messages: list[ChatMessage]) -> str:
        return EMPTY_DISCUSSION if not messages else SUMMARY_FALLBACK

    def analyze_risk(self, app_name: str, app_type: str, test_url: str, answers: dict[str, bool]) -> RiskAnalysis:
        return RiskAnalysis(summary=RISK_FALLBACK, recommended_tier="Medium")

    def executive_summary(self, stats: dict[str, Any]) -> str:
        return EXECUTIVE_FALLBACK


def build_analyzer(settings: Settings) -> AnalysisService:
    """Return the Gemini adapter when a key is configured, else NullAnalyzer."""
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set -- report extraction disabled")
        return NullAnalyzer()
    return GeminiAnalyzer(
        api_key=settings.gemini_api_key,
        flash_model=settings.gemini_flash_model,
        pro_model=settings.gemini_pro_model,
        timeout=settings.analysis_timeout_seconds,
    )
