"""Unit tests for core/lifecycle.py -- request IDs, ticket and finding state machines.

Covers:
- generate_request_id(): per-year sequence, malformed IDs ignored
- create_ticket(): server-side tier, questionnaire fallbacks, derived answers
- transition_status(): SLA notice on entering In Progress, tier -> business days
- update_assessment(): partial updates, clearing, unknown assignee
- post_message(): blank text no-op, unread flag flips to the other party
- transition_vulnerability(): the (from, to, actor) table and its notifications
"""

import pytest

from core.lifecycle import (
    InvalidTransitionError,
    allowed_vuln_transitions,
    create_ticket,
    generate_request_id,
    post_message,
    transition_status,
    transition_vulnerability,
    update_assessment,
)
from core.models import SYSTEM_NOTICE_PREFIX, Submission, TeamMember, Ticket, Vulnerability

NOW = "2026-10-19T09:00:00+00:00"
TEAM = [TeamMember(id="1", name="Samadhan"), TeamMember(id="2", name="Sweety")]


def _ticket(tid: str = "REQ-2026-001", tier: str = "High", status: str = "Pending", **kw) -> Ticket:
    return Ticket(id=tid, app_name="Lifecycle App", region="EMEA", type="Web", tier=tier, status=status, **kw)


# ---------------------------------------------------------------------------
# Request IDs
# ---------------------------------------------------------------------------


class TestGenerateRequestId:
    def test_first_id_of_the_year(self) -> None:
        assert generate_request_id([], 2026) == "REQ-2026-00001"

    def test_sequential_allocation(self) -> None:
        tickets: list[Ticket] = []
        for _ in range(3):
            tickets.append(_ticket(generate_request_id(tickets, 2026)))
        assert [t.id for t in tickets] == ["REQ-2026-00001", "REQ-2026-00002", "REQ-2026-00003"]

    def test_next_after_highest_sequence(self) -> None:
        tickets = [_ticket("REQ-2026-001"), _ticket("REQ-2026-010"), _ticket("REQ-2026-003")]
        assert generate_request_id(tickets, 2026) == "REQ-2026-00011"

    def test_other_years_and_malformed_ids_are_ignored(self) -> None:
        tickets = [
            _ticket("REQ-2025-999"),
            _ticket("REQ-2026-abc"),
            _ticket("REQ-2026-1-2"),
            _ticket("REQ-2026-00004"),
        ]
        assert generate_request_id(tickets, 2026) == "REQ-2026-00005"


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateTicket:
    def _submission(self, **details) -> Submission:
        base = {
            "confidentialityRating": "3",
            "integrityRating": "3",
            "availabilityRating": "3",
            "calculatedTier": "Low",
            "businessOwner": "owner@example.com",
            "testUrlProvided": "https://staging.example.com",
            "goLiveDate": "2026-12-01",
        }
        base.update(details)
        return Submission(app_name="New App", region="APAC", type="API", details=base)

    def test_tier_is_recomputed_from_ratings(self) -> None:
        ticket = create_ticket(self._submission(), [], 2026)
        assert ticket.tier == "High"
        assert ticket.details["calculatedTier"] == "High"

    def test_new_ticket_is_pending_with_allocated_id(self) -> None:
        ticket = create_ticket(self._submission(), [_ticket("REQ-2026-007")], 2026)
        assert ticket.id == "REQ-2026-00008"
        assert ticket.status == "Pending"
        assert ticket.messages == []
        assert ticket.vulnerabilities == []

    def test_questionnaire_fallbacks(self) -> None:
        ticket = create_ticket(self._submission(), [], 2026)
        assert ticket.vendor_email == "owner@example.com"
        assert ticket.test_url == "https://staging.example.com"
        assert ticket.ready_date == "2026-12-01"

    def test_security_answers_are_derived(self) -> None:
        ticket = create_ticket(
            self._submission(
                piiCollectionDetails="Email",
                isExternalSite="Internal Site for Enterprise Use",
                hasEcommerce=False,
                apiProtocol="REST",
                isProtectedByAuth=True,
            ),
            [],
            2026,
        )
        assert ticket.security_answers == {
            "handlesPII": True,
            "internetFacing": False,
            "storesPaymentData": False,
            "thirdPartyIntegrations": True,
            "requiresUserAuth": True,
        }


# ---------------------------------------------------------------------------
# Ticket status
# ---------------------------------------------------------------------------


class TestTransitionStatus:
    @pytest.mark.parametrize("tier, days", [("High", 7), ("Medium", 5), ("Low", 3)])
    def test_entering_in_progress_posts_sla_notice(self, tier: str, days: int) -> None:
        updated = transition_status(_ticket(tier=tier), "In Progress", NOW)
        assert updated.status == "In Progress"
        assert len(updated.messages) == 1
        notice = updated.messages[0]
        assert notice.sender == "security"
        assert notice.text.startswith(SYSTEM_NOTICE_PREFIX)
        assert f"within {days} business days" in notice.text
        assert updated.unread_for == "vendor"

    def test_same_status_is_a_no_op(self) -> None:
        ticket = _ticket(status="In Progress")
        assert transition_status(ticket, "In Progress", NOW) is ticket

    def test_other_transitions_post_nothing(self) -> None:
        updated = transition_status(_ticket(), "Rejected", NOW)
        assert updated.status == "Rejected"
        assert updated.messages == []

    def test_reentering_in_progress_posts_again(self) -> None:
        ticket = transition_status(_ticket(), "In Progress", NOW)
        ticket = transition_status(ticket, "Scheduled", NOW)
        ticket = transition_status(ticket, "In Progress", NOW)
        assert len(ticket.messages) == 2

    def test_unknown_status_raises(self) -> None:
        with pytest.raises(ValueError):
            transition_status(_ticket(), "Archived", NOW)


class TestUpdateAssessment:
    def test_applies_all_fields(self) -> None:
        updated = update_assessment(
            _ticket(tier="Medium"), TEAM, NOW, status="In Progress", scheduled_date="2026-10-25", assigned_to="2"
        )
        assert updated.scheduled_date == "2026-10-25"
        assert updated.assigned_to == "2"
        assert updated.status == "In Progress"
        assert "within 5 business days" in updated.messages[0].text

    def test_none_leaves_fields_and_empty_clears(self) -> None:
        ticket = _ticket(scheduled_date="2026-10-25", assigned_to="1")
        assert update_assessment(ticket, TEAM, NOW) == ticket
        cleared = update_assessment(ticket, TEAM, NOW, scheduled_date="", assigned_to="")
        assert cleared.scheduled_date is None
        assert cleared.assigned_to is None

    def test_unknown_assignee_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown team member"):
            update_assessment(_ticket(), TEAM, NOW, assigned_to="99")


# ---------------------------------------------------------------------------
# Discussion
# ---------------------------------------------------------------------------


class TestPostMessage:
    def test_vendor_message_flags_security(self) -> None:
        updated = post_message(_ticket(), "vendor", "Build is ready.", NOW)
        assert updated.messages[-1].text == "Build is ready."
        assert updated.unread_for == "security"

    def test_security_message_flags_vendor(self) -> None:
        assert post_message(_ticket(), "security", "Thanks", NOW).unread_for == "vendor"

    def test_blank_text_is_ignored(self) -> None:
        ticket = _ticket()
        assert post_message(ticket, "vendor", "   \n", NOW) is ticket

    def test_unknown_sender_raises(self) -> None:
        with pytest.raises(ValueError):
            post_message(_ticket(), "manager", "hello", NOW)


# ---------------------------------------------------------------------------
# Finding workflow
# ---------------------------------------------------------------------------


class TestTransitionVulnerability:
    def _with_vuln(self, status: str) -> Ticket:
        return _ticket(vulnerabilities=[Vulnerability(id="v1", title="Stored XSS", severity="High", status=status)])

    def test_vendor_requests_retest(self) -> None:
        updated, note = transition_vulnerability(self._with_vuln("Open"), "v1", "Ready for Retest", "vendor")
        assert updated.vulnerabilities[0].status == "Ready for Retest"
        assert note.kind == "retest"
        assert '"Stored XSS"' in note.text

    def test_security_confirms_fix(self) -> None:
        updated, note = transition_vulnerability(self._with_vuln("Ready for Retest"), "v1", "Remediated", "security")
        assert updated.vulnerabilities[0].status == "Remediated"
        assert note.kind == "msg"
        assert note.title == "Finding Remediated"

    def test_security_rejects_fix_without_notification(self) -> None:
        updated, note = transition_vulnerability(self._with_vuln("Ready for Retest"), "v1", "Open", "security")
        assert updated.vulnerabilities[0].status == "Open"
        assert note is None

    def test_security_reopens_remediated(self) -> None:
        updated, _ = transition_vulnerability(self._with_vuln("Remediated"), "v1", "Open", "security")
        assert updated.vulnerabilities[0].status == "Open"

    @pytest.mark.parametrize(
        "start, target, actor",
        [
            ("Open", "Remediated", "vendor"),
            ("Open", "Ready for Retest", "security"),
            ("Ready for Retest", "Remediated", "vendor"),
            ("Remediated", "Ready for Retest", "vendor"),
            ("Remediated", "Ready for Retest", "security"),
            ("Open", "Open", "security"),
        ],
    )
    def test_disallowed_transitions_raise(self, start: str, target: str, actor: str) -> None:
        ticket = self._with_vuln(start)
        with pytest.raises(InvalidTransitionError):
            transition_vulnerability(ticket, "v1", target, actor)
        assert ticket.vulnerabilities[0].status == start

    def test_unknown_finding_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            transition_vulnerability(self._with_vuln("Open"), "nope", "Ready for Retest", "vendor")

    def test_allowed_transitions_per_actor(self) -> None:
        assert allowed_vuln_transitions("Open", "vendor") == ["Ready for Retest"]
        assert allowed_vuln_transitions("Open", "security") == ["Remediated"]
        assert sorted(allowed_vuln_transitions("Ready for Retest", "security")) == ["Open", "Remediated"]
        assert allowed_vuln_transitions("Remediated", "vendor") == []
