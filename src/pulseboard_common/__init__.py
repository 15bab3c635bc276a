"""Shared infrastructure for the pulseboard stack.

Logging, errors, Problem Details, settings and Prometheus helpers used by
:mod:`pulseboard_store`. Import the submodules directly; this package only
groups them under one namespace.
"""

from __future__ import annotations

from pulseboard_common import (
    errors,
    logging,
    problem_details,
    prometheus,
    settings,
    types,
)

__all__ = [
    "errors",
    "logging",
    "problem_details",
    "prometheus",
    "settings",
    "types",
]
