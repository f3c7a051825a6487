"""CLI entrypoint for anchor-audit."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import click
import typer

from anchor_audit import __version__
from anchor_audit.config import (
    FORMAT_CHOICES,
    AppConfig,
    ConfigError,
    default_config_template,
    load_app_config,
    resolve_fail_on,
)
from anchor_audit.discovery import discover_rust_files, files_matching
from anchor_audit.engine import scan_directory
from anchor_audit.output import (
    render_human,
    render_json,
    render_markdown,
    write_github_outputs,
)
from anchor_audit.rules import build_rules, list_rule_info
from anchor_audit.rules.base import RuleDefinition

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="anchor-audit",
    no_args_is_help=True,
    help="Audit Solana Anchor programs for known vulnerability patterns.",
)


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log progress to stderr.")
    ] = False,
) -> None:
    """Root command callback."""
    _ = version
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="anchor-audit: %(message)s",
        stream=sys.stderr,
    )


@app.command("scan")
def scan_command(
    path: Annotated[
        Path | None,
        typer.Argument(
            help="Directory or file to scan.",
            envvar=["INPUT_PATH", "GITHUB_WORKSPACE"],
            show_default=".",
        ),
    ] = None,
    fail_on: Annotated[
        str | None,
        typer.Option(
            help="Fail when a finding is at or above: high|medium|low|none.",
            envvar="INPUT_FAIL_ON",
            show_default="high",
        ),
    ] = None,
    format: Annotated[
        str | None,
        typer.Option(help="Output format: markdown|json|human.", show_default="markdown"),
    ] = None,
    include: Annotated[list[str] | None, typer.Option(help="Include glob pattern.")] = None,
    exclude: Annotated[list[str] | None, typer.Option(help="Exclude glob pattern.")] = None,
    jobs: Annotated[
        int | None, typer.Option(min=1, help="Worker threads for file analysis.")
    ] = None,
    github_output: Annotated[
        Path | None,
        typer.Option(envvar="GITHUB_OUTPUT", help="Append action outputs to this file."),
    ] = None,
    report_file: Annotated[
        Path | None, typer.Option(help="Also write the markdown report to this file.")
    ] = None,
    github_token: Annotated[
        str | None,
        typer.Option(envvar="INPUT_GITHUB_TOKEN", hidden=True, help="Accepted and ignored."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Scan Rust sources and report findings."""
    _ = github_token
    root = path if path is not None else Path(".")
    app_config = _load_config_or_raise(_config_root(root), config_file)

    try:
        resolved_fail_on = resolve_fail_on(fail_on if fail_on is not None else app_config.fail_on)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--fail-on") from exc

    output_format = (format or app_config.format).lower()
    if output_format not in FORMAT_CHOICES:
        choices = ", ".join(sorted(FORMAT_CHOICES))
        raise typer.BadParameter(f"format must be one of: {choices}", param_hint="--format")

    rules = _build_configured_rules_or_raise(app_config)
    try:
        result = scan_directory(
            root,
            include=include if include is not None else app_config.include,
            exclude=exclude if exclude is not None else app_config.exclude,
            rules=rules,
            jobs=jobs if jobs is not None else app_config.jobs,
        )
    except FileNotFoundError as exc:
        raise typer.BadParameter(str(exc), param_hint="PATH") from exc

    markdown = render_markdown(result)
    if output_format == "json":
        typer.echo(render_json(result, fail_on=resolved_fail_on, root=str(root)))
    elif output_format == "human":
        typer.echo(render_human(result, fail_on=resolved_fail_on))
    else:
        typer.echo(markdown, nl=False)

    if report_file is not None:
        report_file.write_text(markdown, encoding="utf-8")
    if github_output is not None:
        write_github_outputs(github_output, result)

    verdict = result.verdict(resolved_fail_on)
    if verdict.failed:
        logger.warning(
            "failing with %d issue(s) (fail_on=%s)", result.finding_count, verdict.fail_on
        )
        raise typer.Exit(code=1)
    logger.info("done")


@app.command("rules")
def rules_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """List available rules."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    rule_info = list_rule_info(_build_configured_rules_or_raise(app_config))

    if output_format == "json":
        payload = {
            "rules": [
                {
                    "rule_id": item.rule_id,
                    "severity": item.severity.value,
                    "description": item.description,
                    "enabled": item.enabled,
                }
                for item in rule_info
            ],
            "meta": {"config_source": app_config.source},
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Available rules:"]
    for item in rule_info:
        status = "enabled" if item.enabled else "disabled"
        lines.append(
            f"- {item.rule_id} ({item.severity.label}) [{status}] - {item.description}"
        )
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Show resolved configuration."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    payload = app_config.to_dict()
    payload["active_rule_ids"] = [rule.id for rule in active_rules]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- fail_on: {payload['fail_on']}",
        f"- format: {payload['format']}",
        f"- include: {payload['include']}",
        f"- exclude: {payload['exclude']}",
        f"- jobs: {payload['jobs']}",
        f"- signer_window: {payload['signer_window']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".anchor-audit.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".anchor-audit.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file against the repository's Rust sources.

    Include patterns that select no ``.rs`` file are reported as warnings;
    they do not make the config invalid.
    """
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    sources = discover_rust_files(repo, exclude=app_config.exclude) if repo.is_dir() else []
    unmatched = [
        pattern
        for pattern in app_config.include
        if not files_matching(sources, pattern)
    ]
    payload = {
        "ok": True,
        "source": app_config.source,
        "fail_on": app_config.fail_on,
        "signer_window": app_config.signer_window.to_dict(),
        "active_rule_ids": [rule.id for rule in active_rules],
        "rust_files": len(sources),
        "unmatched_include": unmatched,
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Config is valid.",
        f"- source: {payload['source']}",
        f"- fail_on: {app_config.fail_on}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
        f"- rust files after exclude: {len(sources)}",
    ]
    lines.extend(
        click.style(f"warning: include pattern {pattern!r} matches no Rust files", fg="yellow")
        for pattern in unmatched
    )
    typer.echo("\n".join(lines))


def main() -> None:
    """Console script entrypoint."""
    app()


def _config_root(scan_root: Path) -> Path:
    return scan_root.parent if scan_root.is_file() else scan_root


def _load_config_or_raise(repo: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _build_configured_rules_or_raise(app_config: AppConfig) -> list[RuleDefinition]:
    try:
        return build_rules(
            enabled_rule_ids=app_config.rule_enable,
            disabled_rule_ids=app_config.rule_disable,
            signer_window=(app_config.signer_window.before, app_config.signer_window.after),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.rules") from exc
