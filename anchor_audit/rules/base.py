"""Base rule contract, severity and finding model."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from anchor_audit.syntax import SyntaxModel


class Severity(Enum):
    """Finding severity, ranked ``HIGH > MEDIUM > LOW``."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def at_least(self, other: Severity) -> bool:
        return self.rank >= other.rank


_SEVERITY_RANKS = {
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


@dataclass(frozen=True, slots=True)
class Finding:
    """A single vulnerability match emitted by a rule."""

    rule_id: str
    severity: Severity
    file_path: str
    line: int
    column: int
    message: str
    snippet: str | None = None

    @property
    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.file_path, self.line, self.column, self.rule_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "file": self.file_path,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "snippet": self.snippet,
        }


Detector = Callable[[SyntaxModel, str], list[Finding]]


@dataclass(frozen=True, slots=True)
class RuleDefinition:
    """Static registry entry binding a rule id to its detector."""

    id: str
    severity: Severity
    description: str
    detector: Detector

    def evaluate(self, model: SyntaxModel, file_path: str) -> list[Finding]:
        """Run the detector against one parsed file."""
        return self.detector(model, file_path)


def make_finding(
    *,
    rule_id: str,
    severity: Severity,
    model: SyntaxModel,
    file_path: str,
    line: int,
    column: int,
    message: str,
) -> Finding:
    """Build a finding whose snippet is the trimmed source line."""
    snippet = model.source_line(line).strip() or None
    return Finding(
        rule_id=rule_id,
        severity=severity,
        file_path=file_path,
        line=line,
        column=column,
        message=message,
        snippet=snippet,
    )
