"""
tests/test_security.py
Unit tests for schemagen.security.

Tests cover:
- Checklist order, severities and messages
- Score rounding (halves round up)
- JSON and console rendering
"""

from __future__ import annotations

import json
from typing import Any, Dict

import pytest

from schemagen.security import format_security_report, score_project

from tests.conftest import build_project


class TestScoreProject:
    """Tests for score_project()."""

    def test_check_order(self, minimal_schema_dict: Dict[str, Any]) -> None:
        report = score_project(build_project(minimal_schema_dict))
        assert [c.name for c in report.checks] == [
            "Security Headers",
            "CORS Configuration",
            "Rate Limiting",
            "Input Validation",
            "Docker Configuration",
            "Environment Variables",
            "Authentication",
            "Swagger Docs",
        ]

    def test_defaults_without_auth(self, minimal_schema_dict: Dict[str, Any]) -> None:
        report = score_project(build_project(minimal_schema_dict))
        assert report.passed == 7
        assert report.failed == 1
        # 87.5 rounds half up
        assert report.score == 88
        (failing,) = [c for c in report.checks if not c.passed]
        assert failing.name == "Authentication"
        assert failing.severity == "critical"

    def test_auth_enabled_scores_full(self, schema_dict: Dict[str, Any]) -> None:
        report = score_project(build_project(schema_dict))
        assert report.score == 100
        assert report.failed == 0

    def test_swagger_check_only_when_enabled(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["settings"] = {"enableSwagger": False}
        report = score_project(build_project(minimal_schema_dict))
        assert "Swagger Docs" not in [c.name for c in report.checks]
        assert len(report.checks) == 7

    @pytest.mark.parametrize(
        "settings, expected",
        [
            ({"enableRateLimit": False, "docker": False}, 63),
            (
                {
                    "enableHelmet": False,
                    "enableCors": False,
                    "enableRateLimit": False,
                    "docker": False,
                    "enableSwagger": False,
                },
                29,
            ),
        ],
    )
    def test_score_rounding(
        self, minimal_schema_dict: Dict[str, Any], settings: Dict[str, Any], expected: int
    ) -> None:
        minimal_schema_dict["settings"] = settings
        assert score_project(build_project(minimal_schema_dict)).score == expected

    def test_rate_limit_message(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["settings"] = {"rateLimitMax": 20, "rateLimitTtl": 10}
        report = score_project(build_project(minimal_schema_dict))
        rate = next(c for c in report.checks if c.name == "Rate Limiting")
        assert rate.message == "Rate limiting: 20 requests per 10s"

    def test_is_deterministic(self, schema_dict: Dict[str, Any]) -> None:
        first = score_project(build_project(schema_dict)).to_json()
        second = score_project(build_project(schema_dict)).to_json()
        assert first == second


class TestRendering:
    """to_json and format_security_report."""

    def test_json_shape(self, minimal_schema_dict: Dict[str, Any]) -> None:
        data = json.loads(score_project(build_project(minimal_schema_dict)).to_json())
        assert data["projectName"] == "mini-app"
        assert data["score"] == 88
        assert set(data["checks"][0]) == {"name", "passed", "message", "severity"}

    def test_console_report(self, minimal_schema_dict: Dict[str, Any]) -> None:
        text = format_security_report(score_project(build_project(minimal_schema_dict)))
        lines = text.splitlines()
        assert lines[0] == "=== MINI-APP SECURITY REPORT ==="
        assert "Score: 88%" in lines
        assert "  [FAIL] [CRITICAL] Authentication" in lines
        assert "  [PASS] [INFO] Docker Configuration" in lines
        assert "Results: 7 passed, 1 failed" in lines
        assert lines[-1] == "=" * len(lines[0])
