"""Severity policy: counts and the pass/fail verdict."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from anchor_audit.config import resolve_fail_on
from anchor_audit.rules.base import Finding, Severity

THRESHOLD_SEVERITIES: dict[str, Severity | None] = {
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "none": None,
}


@dataclass(frozen=True, slots=True)
class Verdict:
    """Outcome of checking findings against a ``fail_on`` threshold."""

    fail_on: str
    failed: bool
    failing_count: int

    @property
    def passed(self) -> bool:
        return not self.failed


def parse_threshold(value: str) -> Severity | None:
    """Map ``high|medium|low|none`` to the minimum failing severity.

    Raises ``ConfigError`` for anything else; there is no silent default.
    """
    return THRESHOLD_SEVERITIES[resolve_fail_on(value)]


def has_high(findings: Sequence[Finding]) -> bool:
    return any(finding.severity is Severity.HIGH for finding in findings)


def has_medium(findings: Sequence[Finding]) -> bool:
    """True for any finding at Medium or above."""
    return any(finding.severity.at_least(Severity.MEDIUM) for finding in findings)


def evaluate(findings: Sequence[Finding], fail_on: str) -> Verdict:
    threshold = parse_threshold(fail_on)
    normalized = resolve_fail_on(fail_on)
    if threshold is None:
        return Verdict(fail_on=normalized, failed=False, failing_count=0)

    failing = sum(1 for finding in findings if finding.severity.at_least(threshold))
    return Verdict(fail_on=normalized, failed=failing > 0, failing_count=failing)


def should_fail(findings: Sequence[Finding], fail_on: str) -> bool:
    return evaluate(findings, fail_on).failed
