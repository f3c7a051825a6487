"""Per-file analysis results and the finding collector."""

from __future__ import annotations

from dataclasses import dataclass, field

from anchor_audit.policy import Verdict, evaluate, has_high, has_medium
from anchor_audit.rules.base import Finding, Severity


@dataclass(frozen=True, slots=True)
class ParseFailure:
    """A file that could not be turned into a syntax model."""

    file_path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file_path, "message": self.message}


@dataclass(frozen=True, slots=True)
class RuleFailure:
    """A detector that raised while analyzing one file."""

    file_path: str
    rule_id: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file_path, "rule_id": self.rule_id, "message": self.message}


@dataclass(frozen=True, slots=True)
class FileAnalysis:
    """Outcome of the rule pass over a single file."""

    file_path: str
    findings: tuple[Finding, ...] = ()
    parse_error: ParseFailure | None = None
    rule_errors: tuple[RuleFailure, ...] = ()


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Ordered, immutable result of a completed scan."""

    findings: tuple[Finding, ...]
    files_scanned: int
    parse_errors: tuple[ParseFailure, ...] = ()
    rule_errors: tuple[RuleFailure, ...] = ()

    @property
    def finding_count(self) -> int:
        return len(self.findings)

    @property
    def has_high(self) -> bool:
        return has_high(self.findings)

    @property
    def has_medium(self) -> bool:
        return has_medium(self.findings)

    def by_severity(self, severity: Severity) -> list[Finding]:
        return [finding for finding in self.findings if finding.severity is severity]

    def verdict(self, fail_on: str) -> Verdict:
        return evaluate(self.findings, fail_on)


@dataclass(slots=True)
class FindingCollector:
    """Merges per-file analyses into one deterministically ordered result.

    Findings are sorted by ``(file_path, line, column, rule_id)`` so the
    result does not depend on the order files were processed in.
    """

    analyses: list[FileAnalysis] = field(default_factory=list)

    def add(self, analysis: FileAnalysis) -> None:
        self.analyses.append(analysis)

    def build(self, files_scanned: int | None = None) -> ScanResult:
        findings = [finding for analysis in self.analyses for finding in analysis.findings]
        parse_errors = [
            analysis.parse_error for analysis in self.analyses if analysis.parse_error is not None
        ]
        rule_errors = [error for analysis in self.analyses for error in analysis.rule_errors]
        return ScanResult(
            findings=tuple(sorted(findings, key=lambda item: item.sort_key)),
            files_scanned=len(self.analyses) if files_scanned is None else files_scanned,
            parse_errors=tuple(
                sorted(parse_errors, key=lambda item: (item.file_path, item.message))
            ),
            rule_errors=tuple(
                sorted(rule_errors, key=lambda item: (item.file_path, item.rule_id))
            ),
        )
