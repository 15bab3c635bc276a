"""Tests for pulseboard_common.errors."""

from __future__ import annotations

import json
import logging

import pytest

from pulseboard_common.errors import (
    BASE_TYPE_URI,
    BackendError,
    ConfigurationError,
    ErrorCode,
    FetchError,
    PulseboardError,
    SettingsError,
    WriteError,
    get_type_uri,
)
from pulseboard_common.problem_details import build_problem_details, render_problem


class TestPulseboardError:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        ("error_type", "code", "status"),
        [
            (PulseboardError, ErrorCode.RUNTIME_ERROR, 500),
            (FetchError, ErrorCode.FETCH_FAILED, 502),
            (WriteError, ErrorCode.WRITE_FAILED, 502),
            (BackendError, ErrorCode.BACKEND_UNAVAILABLE, 503),
            (ConfigurationError, ErrorCode.CONFIGURATION_ERROR, 500),
            (SettingsError, ErrorCode.SETTINGS_INVALID, 500),
        ],
    )
    def test_class_defaults(
        self, error_type: type[PulseboardError], code: ErrorCode, status: int
    ) -> None:
        """Each subclass carries its own code and status."""
        error = error_type("failed")
        assert error.code is code
        assert error.http_status == status
        assert error.log_level == logging.ERROR

    def test_overrides(self) -> None:
        """Code, status and level can be set per instance."""
        error = FetchError(
            "revalidation failed",
            code=ErrorCode.REVALIDATE_FAILED,
            http_status=504,
            log_level=logging.WARNING,
        )
        assert error.code is ErrorCode.REVALIDATE_FAILED
        assert error.http_status == 504
        assert error.log_level == logging.WARNING

    def test_str_includes_code_and_cause(self) -> None:
        """str() names the class, the code and the cause type."""
        error = BackendError("unreachable", cause=TimeoutError("slow"))
        assert str(error) == (
            "BackendError[backend-unavailable]: unreachable (caused by: TimeoutError)"
        )
        assert isinstance(error.__cause__, TimeoutError)

    def test_problem_details(self) -> None:
        """Problem Details carry the type URI, status and context."""
        error = FetchError("projects load failed", context={"loader": "projects", "status": 504})

        problem = error.to_problem_details(instance="urn:pulseboard:loader:projects")

        assert problem["type"] == f"{BASE_TYPE_URI}/fetch-failed"
        assert problem["title"] == "FetchError"
        assert problem["status"] == 502
        assert problem["detail"] == "projects load failed"
        assert problem["code"] == "fetch-failed"
        assert problem["extensions"] == {"loader": "projects", "status": 504}

    def test_type_uri(self) -> None:
        """Type URIs live under the base URI."""
        assert get_type_uri(ErrorCode.WRITE_FAILED) == "https://pulseboard.dev/problems/write-failed"


class TestProblemDetails:
    """Tests for build_problem_details and render_problem."""

    def test_rejects_invalid_status(self) -> None:
        """Statuses outside the HTTP range are refused."""
        with pytest.raises(ValueError, match="HTTP status"):
            build_problem_details("about:blank", "Broken", 42, "detail", "urn:x")

    def test_non_json_extensions_are_stringified(self) -> None:
        """Extension values that are not JSON types are rendered as strings."""
        problem = build_problem_details(
            "about:blank",
            "Broken",
            500,
            "detail",
            "urn:x",
            extensions={"error": ValueError("bad")},
        )
        assert problem["extensions"] == {"error": "bad"}

    def test_render_is_stable(self) -> None:
        """Rendering sorts keys so output is deterministic."""
        rendered = render_problem(
            build_problem_details("about:blank", "Broken", 500, "detail", "urn:x", code="c")
        )
        assert list(json.loads(rendered)) == sorted(json.loads(rendered))
