"""
tracker/seed.py -- Built-in dataset used when the store is empty or unreadable.

Ten 2026 requests spread across every status, region and assessment type,
plus the default security team roster. Builders return fresh objects on every
call so callers can never mutate the shared defaults.
"""

import copy

from core.models import ReportFile, TeamMember, Ticket, Vulnerability

_TEAM = (
    ("1", "Samadhan"),
    ("2", "Sweety"),
    ("3", "Khyati"),
    ("4", "Bhumi"),
    ("5", "Priya"),
)

_SECURITY_ANSWERS = {
    "handlesPII": True,
    "internetFacing": True,
    "storesPaymentData": False,
    "thirdPartyIntegrations": True,
    "requiresUserAuth": True,
}

_DETAILS = {
    "description": "Enterprise grade application security assessment.",
    "targetAudienceRegion": "Global",
    "isExternalSite": "Public Consumers",
    "ownership": "Company",
    "businessOwner": "owner@example.com",
    "itProjectManager": "pm@example.com",
    "techContact": "dev@agency.example.com",
    "goLiveDate": "2026-12-01",
    "testingDeadline": "2026-11-15",
    "blackoutDates": "None",
    "businessCriticality": "Class 2",
    "confidentialityRating": "2",
    "integrityRating": "2",
    "availabilityRating": "2",
    "calculatedTier": "Medium",
    "devSecOpsImplemented": "GitHub Actions, Snyk",
    "allWeaknessesRemediated": True,
    "wafDisabled": True,
    "environmentPrereqs": "None",
    "isCustomCoded": "Custom Coded",
    "techStack": "Next.js, Tailwind, PostgreSQL",
    "repoUrl": "GitHub",
    "priorAssessment": "None",
    "testUrlProvided": "https://staging.2026app.example.com",
    "outOfScopeItems": "Legacy SSO",
    "vendorPermission": True,
    "walkthroughInfo": "Scheduled",
    "hasEmailFunctionality": False,
    "hasPromotionalActivities": False,
    "hasEcommerce": False,
    "testAccountsProvided": "Yes",
    "piiCollectionDetails": "Email, User Profile",
    "fileUploadFunctionality": "None",
    "apiProtocol": "REST",
    "apiTargetAudience": "Internal",
    "apiDocumentation": "Swagger",
    "apiAuthMechanisms": "OAuth 2.0",
    "apiHandlesSensitiveData": "None",
    "isProtectedByAuth": True,
    "authMechanisms": "SSO",
    "sessionExpirationPolicies": "30m",
    "sessionValidationHandled": "JWT",
    "passwordPolicies": "Standard",
    "companyPiiPolicy": True,
    "geoCompliance": "GDPR",
    "regionSpecificData": "None",
    "multilingualSupport": "EN",
    "knownSecurityConcerns": "None",
}


def _ticket(**fields) -> Ticket:
    return Ticket(
        vendor_email="owner@example.com",
        security_answers=dict(_SECURITY_ANSWERS),
        details=copy.deepcopy(_DETAILS),
        **fields,
    )


def sample_team() -> list[TeamMember]:
    return [TeamMember(id=member_id, name=name) for member_id, name in _TEAM]


def sample_tickets() -> list[Ticket]:
    return [
        _ticket(
            id="REQ-2026-001",
            app_name="Visionary Web 2026",
            region="North America",
            test_url="https://visionary.example.com",
            ready_date="2026-01-10",
            type="Web",
            tier="High",
            is_expedited=True,
            status="Completed",
            assigned_to="1",
            final_report=ReportFile(file_name="Visionary_Final_Report.pdf", upload_date="2026-01-20"),
            vulnerabilities=[
                Vulnerability(
                    id="v26-1",
                    title="Reflected XSS in Profile",
                    severity="High",
                    status="Remediated",
                    impact="Account hijacking via session theft",
                    observation="User input in profile bio is not sanitized",
                    remediation="Use DOMPurify for output sanitization",
                ),
                Vulnerability(
                    id="v26-2",
                    title="Weak Password Policy",
                    severity="Medium",
                    status="Remediated",
                    impact="Brute force susceptibility",
                    observation="Passwords only require 6 characters",
                    remediation="Enforce 12+ chars with complexity",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-002",
            app_name="PayWallet Mobile v2",
            region="Global",
            test_url="Mobile Binary (iOS/Android)",
            ready_date="2026-02-15",
            type="Mobile",
            tier="High",
            status="In Progress",
            assigned_to="2",
            vulnerabilities=[
                Vulnerability(
                    id="v26-3",
                    title="Hardcoded API Keys",
                    severity="Critical",
                    impact="Total backend access",
                    observation="Firebase keys found in binary strings",
                    remediation="Use secure environment vaults",
                    due_date="2026-05-15",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-003",
            app_name="Retail Partner API Hub",
            region="EMEA",
            test_url="https://api-hub.retail.example.com",
            ready_date="2026-03-20",
            type="API",
            tier="Medium",
            status="Pending",
            vulnerabilities=[
                Vulnerability(
                    id="v26-4",
                    title="Improper Authorization (IDOR)",
                    severity="High",
                    impact="Unauthorized data access",
                    observation="User can access other orders by incrementing ID",
                    remediation="Implement ownership checks for resources",
                    due_date="2026-06-20",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-004",
            app_name="Marketing AI Predictor",
            region="APAC",
            test_url="https://ai-predictor.example.com",
            ready_date="2026-04-05",
            type="AI Application",
            tier="High",
            is_expedited=True,
            status="Scheduled",
            scheduled_date="2026-04-15",
            assigned_to="3",
            vulnerabilities=[
                Vulnerability(
                    id="v26-5",
                    title="Prompt Injection Risk",
                    severity="High",
                    impact="Bypassing safety filters",
                    observation="System prompt can be leaked via specific queries",
                    remediation="Use robust system-level filtering",
                    due_date="2026-07-05",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-005",
            app_name="HR Support Bot 2026",
            region="Latin America",
            test_url="https://hr-bot.example.com",
            ready_date="2026-05-12",
            type="Chat-Bot",
            tier="Low",
            status="Completed",
            assigned_to="4",
            final_report=ReportFile(file_name="HR_Bot_Audit.pdf", upload_date="2026-05-25"),
            vulnerabilities=[
                Vulnerability(
                    id="v26-6",
                    title="Sensitive Data Logging",
                    severity="Medium",
                    status="Remediated",
                    impact="Exposure of employee IDs",
                    observation="Logs contain PII in plain text",
                    remediation="Mask PII before logging",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-006",
            app_name="Vending Fleet Dashboard",
            region="North America",
            test_url="https://vending.example.com",
            ready_date="2026-06-18",
            type="Web",
            tier="Medium",
            status="In Progress",
            assigned_to="5",
            vulnerabilities=[
                Vulnerability(
                    id="v26-7",
                    title="Missing Security Headers",
                    severity="Low",
                    impact="Clickjacking risk",
                    observation="X-Frame-Options not set",
                    remediation="Configure CSP and X-Frame-Options",
                    due_date="2026-09-18",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-007",
            app_name="Logistics Real-time API",
            region="Global",
            test_url="https://logistics.example.com/api",
            ready_date="2026-07-22",
            type="API",
            tier="High",
            is_expedited=True,
            status="Pending",
            vulnerabilities=[
                Vulnerability(
                    id="v26-8",
                    title="SQL Injection in Tracking",
                    severity="Critical",
                    impact="Full database compromise",
                    observation="Tracking ID is used directly in query",
                    remediation="Use parameterized queries",
                    due_date="2026-08-22",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-008",
            app_name="Social Connect Mobile",
            region="EMEA",
            test_url="Android App",
            ready_date="2026-08-30",
            type="Mobile",
            tier="Medium",
            status="Scheduled",
            scheduled_date="2026-09-10",
            assigned_to="1",
            vulnerabilities=[
                Vulnerability(
                    id="v26-9",
                    title="Insecure Deep Link",
                    severity="Medium",
                    impact="Arbitrary redirection",
                    observation="App follows deep links without validation",
                    remediation="Whitelist authorized domains",
                    due_date="2026-11-30",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-009",
            app_name="Recipe Gen-AI",
            region="APAC",
            test_url="https://recipe-ai.example.com",
            ready_date="2026-09-15",
            type="AI Application",
            tier="High",
            status="Completed",
            assigned_to="2",
            final_report=ReportFile(file_name="Recipe_AI_Report.pdf", upload_date="2026-09-30"),
            vulnerabilities=[
                Vulnerability(
                    id="v26-10",
                    title="Information Disclosure",
                    severity="Info",
                    status="Remediated",
                    impact="Server version exposure",
                    observation="Server header reveals exact version",
                    remediation="Hide server banner",
                ),
            ],
        ),
        _ticket(
            id="REQ-2026-010",
            app_name="Concierge Chat v3",
            region="North America",
            test_url="https://concierge.example.com",
            ready_date="2026-11-01",
            type="Chat-Bot",
            tier="Medium",
            status="In Progress",
            assigned_to="3",
            vulnerabilities=[
                Vulnerability(
                    id="v26-11",
                    title="No Rate Limiting",
                    severity="Medium",
                    impact="DoS risk on chat endpoint",
                    observation="Unauthenticated users can flood API",
                    remediation="Implement per-IP rate limiting",
                    due_date="2027-01-01",
                ),
            ],
        ),
    ]
