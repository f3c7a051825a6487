"""Rule engine: per-file rule pass and scan orchestration."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from anchor_audit.discovery import SourceFile, discover_rust_files
from anchor_audit.results import (
    FileAnalysis,
    FindingCollector,
    ParseFailure,
    RuleFailure,
    ScanResult,
)
from anchor_audit.rules import build_rules
from anchor_audit.rules.base import Finding, RuleDefinition
from anchor_audit.syntax import ParseError, SyntaxModel, parse_file, parse_source

logger = logging.getLogger(__name__)


class RuleInternalError(RuntimeError):
    """Raised when a detector fails while querying a syntax model."""

    def __init__(self, rule_id: str, file_path: str, cause: BaseException) -> None:
        super().__init__(
            f"rule {rule_id} failed on {file_path}: {cause.__class__.__name__}: {cause}"
        )
        self.rule_id = rule_id
        self.file_path = file_path


def analyze_model(
    model: SyntaxModel, file_path: str, rules: Sequence[RuleDefinition]
) -> FileAnalysis:
    """Run every rule against one parsed file, isolating detector failures."""
    findings: list[Finding] = []
    errors: list[RuleFailure] = []
    for rule in rules:
        try:
            findings.extend(_run_rule(rule, model, file_path))
        except RuleInternalError as exc:
            logger.warning("%s", exc)
            errors.append(RuleFailure(file_path=file_path, rule_id=rule.id, message=str(exc)))
    return FileAnalysis(file_path=file_path, findings=tuple(findings), rule_errors=tuple(errors))


def analyze_source(
    text: str, file_path: str, rules: Sequence[RuleDefinition] | None = None
) -> FileAnalysis:
    """Parse and analyze in-memory source text."""
    active = list(rules) if rules is not None else build_rules()
    try:
        model = parse_source(text, file_path)
    except ParseError as exc:
        return _parse_failure(file_path, exc)
    return analyze_model(model, file_path, active)


def analyze_file(source: SourceFile, rules: Sequence[RuleDefinition]) -> FileAnalysis:
    """Parse and analyze one file on disk; the model is dropped on return."""
    try:
        model = parse_file(source.path, source.display_path)
    except ParseError as exc:
        return _parse_failure(source.display_path, exc)
    return analyze_model(model, source.display_path, rules)


def scan_files(
    files: Sequence[SourceFile | Path],
    *,
    rules: Sequence[RuleDefinition] | None = None,
    jobs: int | None = None,
) -> ScanResult:
    """Analyze files in parallel and collect an ordered result.

    Every file is processed independently; the collector sorts once all
    workers have finished.
    """
    active = list(rules) if rules is not None else build_rules()
    sources = [_as_source_file(item) for item in files]
    collector = FindingCollector()

    if jobs == 1 or len(sources) <= 1:
        for source in sources:
            collector.add(analyze_file(source, active))
    else:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            futures = [executor.submit(analyze_file, source, active) for source in sources]
            for future in as_completed(futures):
                collector.add(future.result())

    result = collector.build(files_scanned=len(sources))
    logger.info(
        "scanned %d file(s): %d finding(s), %d parse error(s)",
        result.files_scanned,
        result.finding_count,
        len(result.parse_errors),
    )
    return result


def scan_directory(
    root: Path,
    *,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    rules: Sequence[RuleDefinition] | None = None,
    jobs: int | None = None,
) -> ScanResult:
    """Discover Rust files under ``root`` and scan them."""
    logger.info("scanning %s", root)
    files = discover_rust_files(root, include=include, exclude=exclude)
    if not files:
        logger.info("no Rust files found under %s", root)
    else:
        logger.info("found %d Rust files", len(files))
    return scan_files(files, rules=rules, jobs=jobs)


def _run_rule(rule: RuleDefinition, model: SyntaxModel, file_path: str) -> list[Finding]:
    try:
        return list(rule.evaluate(model, file_path))
    except Exception as exc:
        raise RuleInternalError(rule.id, file_path, exc) from exc


def _parse_failure(file_path: str, exc: ParseError) -> FileAnalysis:
    logger.warning("could not parse %s: %s", file_path, exc)
    return FileAnalysis(
        file_path=file_path,
        parse_error=ParseFailure(file_path=file_path, message=str(exc)),
    )


def _as_source_file(item: SourceFile | Path) -> SourceFile:
    if isinstance(item, SourceFile):
        return item
    return SourceFile(path=item, display_path=item.as_posix())
