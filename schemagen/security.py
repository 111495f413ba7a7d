# File: schemagen/security.py
"""
schemagen - Security Scorer
===========================
A fixed checklist evaluated purely from ``project.settings`` and
``project.modules``; entity content never changes the outcome.

The report carries no timestamp so that two runs over the same project
produce byte-identical ``security-report.json`` files.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List

from schemagen.models import Project, ProjectSettings

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.security")


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class SecurityCheck:
    """One line of the checklist."""

    name: str
    passed: bool
    message: str
    severity: str


@dataclass(frozen=True, slots=True)
class SecurityReport:
    """Outcome of :func:`score_project`."""

    project_name: str
    checks: List[SecurityCheck] = field(default_factory=list)
    passed: int = 0
    failed: int = 0
    score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectName": self.project_name,
            "checks": [asdict(check) for check in self.checks],
            "passed": self.passed,
            "failed": self.failed,
            "score": self.score,
        }

    def to_json(self, indent_size: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False) + "\n"


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check(name: str, passed: bool, ok: str, failing: str, severity: Severity) -> SecurityCheck:
    return SecurityCheck(
        name=name,
        passed=passed,
        message=ok if passed else failing,
        severity=severity.value,
    )


def score_project(project: Project) -> SecurityReport:
    """
    Evaluate the checklist for *project*.

    ``score = round(100 * passed / total)`` with halves rounded up.
    """
    settings: ProjectSettings = project.settings
    checks: List[SecurityCheck] = [
        _check(
            "Security Headers",
            settings.enable_helmet,
            "Security-headers middleware is enabled",
            "Security headers are disabled; consider enabling them "
            "(clickjacking, MIME sniffing, HSTS)",
            Severity.CRITICAL,
        ),
        _check(
            "CORS Configuration",
            settings.enable_cors,
            "CORS is enabled; restrict CORS_ORIGINS for production",
            "CORS is disabled; browsers on other origins cannot call the API",
            Severity.WARNING,
        ),
        _check(
            "Rate Limiting",
            settings.enable_rate_limit,
            f"Rate limiting: {settings.rate_limit_max} requests per "
            f"{settings.rate_limit_ttl}s",
            "Rate limiting is disabled; the API is open to brute-force attacks",
            Severity.CRITICAL,
        ),
        # Always true: every request body is a Pydantic model with extra="forbid"
        _check(
            "Input Validation",
            True,
            "Request bodies are validated by Pydantic models; unknown fields are rejected",
            "",
            Severity.INFO,
        ),
        _check(
            "Docker Configuration",
            settings.docker,
            "Docker setup included",
            "Docker setup skipped; consider containerizing for consistent deployments",
            Severity.INFO,
        ),
        # Always true: secrets are read from the environment, never hardcoded
        _check(
            "Environment Variables",
            True,
            ".env.example generated; secrets are read from the environment",
            "",
            Severity.CRITICAL,
        ),
        _check(
            "Authentication",
            project.auth_enabled,
            "JWT authentication enabled; writes are protected by default, "
            "bcrypt password hashing",
            "No authentication module; every endpoint is publicly accessible",
            Severity.CRITICAL,
        ),
    ]
    if settings.enable_swagger:
        checks.append(SecurityCheck(
            name="Swagger Docs",
            passed=True,
            message="Swagger UI is enabled; consider disabling it in production",
            severity=Severity.WARNING.value,
        ))

    passed: int = sum(1 for check in checks if check.passed)
    failed: int = len(checks) - passed
    report: SecurityReport = SecurityReport(
        project_name=project.name,
        checks=checks,
        passed=passed,
        failed=failed,
        score=_round_half_up(100 * passed / len(checks)),
    )
    logger.info(
        "Security score for %s: %d%% (%d passed, %d failed).",
        project.name,
        report.score,
        passed,
        failed,
    )
    return report


def format_security_report(report: SecurityReport) -> str:
    """Console rendering of *report*."""
    title: str = f"=== {report.project_name.upper()} SECURITY REPORT ==="
    lines: List[str] = [
        title,
        f"Project: {report.project_name}",
        f"Score: {report.score}%",
        "",
    ]
    for check in report.checks:
        icon: str = "[PASS]" if check.passed else "[FAIL]"
        lines.append(f"  {icon} [{check.severity.upper()}] {check.name}")
        lines.append(f"         {check.message}")
    lines.append("")
    lines.append(f"Results: {report.passed} passed, {report.failed} failed")
    lines.append("=" * len(title))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Severity",
    "SecurityCheck",
    "SecurityReport",
    "score_project",
    "format_security_report",
]

logger.debug("schemagen.security loaded: %d public symbols.", len(__all__))
