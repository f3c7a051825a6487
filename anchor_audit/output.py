"""Output rendering."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click

from anchor_audit import __version__
from anchor_audit.results import ScanResult
from anchor_audit.rules.base import Finding, Severity

REPORT_TITLE = "## Anchor Security Report"
SECTION_ORDER = (Severity.HIGH, Severity.MEDIUM, Severity.LOW)
SEVERITY_COLORS = {
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


def render_markdown(result: ScanResult) -> str:
    """Render the PR-comment report, highest severity first."""
    blocks: list[str] = [
        REPORT_TITLE,
        f"{result.finding_count} issue(s) found across {result.files_scanned} files scanned.",
    ]
    if result.parse_errors:
        blocks.append(f"{len(result.parse_errors)} file(s) could not be parsed.")

    for severity in SECTION_ORDER:
        findings = result.by_severity(severity)
        if not findings:
            continue
        blocks.append(f"### {severity.label} Severity")
        blocks.extend(_markdown_item(finding) for finding in findings)
    return "\n\n".join(blocks) + "\n"


def render_human(result: ScanResult, *, fail_on: str = "high") -> str:
    """Render a compact colorized summary."""
    verdict = result.verdict(fail_on)
    status = click.style(
        "FAIL" if verdict.failed else "PASS",
        fg="red" if verdict.failed else "green",
        bold=True,
    )
    lines: list[str] = [
        f"{status} {result.finding_count} issue(s) across {result.files_scanned} files "
        f"(fail_on={verdict.fail_on})"
    ]
    for severity in SECTION_ORDER:
        findings = result.by_severity(severity)
        if not findings:
            continue
        lines.append(click.style(f"{severity.label}:", fg=SEVERITY_COLORS[severity], bold=True))
        for finding in findings:
            lines.append(
                f"- {finding.file_path}:{finding.line}:{finding.column} [{finding.rule_id}]"
            )
            lines.append(f"  {finding.message}")
            if finding.snippet:
                lines.append(f"  > {finding.snippet}")

    if result.parse_errors:
        lines.append(click.style("Parse errors:", bold=True))
        lines.extend(f"- {item.file_path}: {item.message}" for item in result.parse_errors)
    if result.rule_errors:
        lines.append(click.style("Rule errors:", bold=True))
        lines.extend(
            f"- {item.file_path} [{item.rule_id}]: {item.message}" for item in result.rule_errors
        )
    return "\n".join(lines)


def render_json(result: ScanResult, *, fail_on: str = "high", root: str | None = None) -> str:
    """Render stable JSON output for CI and automation."""
    return json.dumps(build_json_payload(result, fail_on=fail_on, root=root), sort_keys=True)


def build_json_payload(
    result: ScanResult, *, fail_on: str = "high", root: str | None = None
) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    verdict = result.verdict(fail_on)
    return {
        "findings": [finding.to_dict() for finding in result.findings],
        "files_scanned": result.files_scanned,
        "finding_count": result.finding_count,
        "has_high": result.has_high,
        "has_medium": result.has_medium,
        "parse_errors": [item.to_dict() for item in result.parse_errors],
        "rule_errors": [item.to_dict() for item in result.rule_errors],
        "verdict": {"fail_on": verdict.fail_on, "failed": verdict.failed},
        "meta": {
            "generated_at": datetime.now(tz=UTC)
            .replace(microsecond=0)
            .isoformat()
            .replace("+00:00", "Z"),
            "root": root,
            "version": __version__,
        },
    }


def github_outputs(result: ScanResult) -> dict[str, str]:
    """Action output fields: ``finding-count``, ``has-high``, ``has-medium``."""
    return {
        "finding-count": str(result.finding_count),
        "has-high": _bool_text(result.has_high),
        "has-medium": _bool_text(result.has_medium),
    }


def write_github_outputs(path: Path, result: ScanResult) -> None:
    """Append output fields to the file named by ``$GITHUB_OUTPUT``."""
    with path.open("a", encoding="utf-8") as file_obj:
        for key, value in github_outputs(result).items():
            file_obj.write(f"{key}={value}\n")


def _markdown_item(finding: Finding) -> str:
    return f"- [{finding.rule_id}] in `{finding.file_path}:{finding.line}`\n  {finding.message}"


def _bool_text(value: bool) -> str:
    return "true" if value else "false"
