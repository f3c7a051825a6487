"""Tests for config loading and the rules/config CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from anchor_audit.cli import app
from anchor_audit.config import ConfigError, load_app_config

runner = CliRunner()


def test_load_app_config_prefers_dot_file_over_pyproject(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                "[tool.anchor_audit]",
                'format = "human"',
                'fail_on = "low"',
            ]
        ),
        encoding="utf-8",
    )
    (repo / ".anchor-audit.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                'fail_on = "Medium"',
                'include = ["programs/**"]',
                "jobs = 2",
                "",
                "[rules]",
                'enable = ["unchecked-account", "missing-constraint"]',
                'disable = ["missing-constraint"]',
                "",
                "[signer_window]",
                "before = 10",
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)
    assert config.format == "json"
    assert config.fail_on == "medium"
    assert config.include == ["programs/**"]
    assert config.exclude == ["target/**", "**/target/**"]
    assert config.jobs == 2
    assert config.rule_enable == ["unchecked-account", "missing-constraint"]
    assert config.rule_disable == ["missing-constraint"]
    assert (config.signer_window.before, config.signer_window.after) == (10, 0)
    assert config.source is not None and config.source.endswith(".anchor-audit.toml")


def test_load_app_config_reads_pyproject_tool_section(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        "\n".join(["[tool.anchor-audit]", 'fail_on = "none"', "exclude = []"]),
        encoding="utf-8",
    )
    config = load_app_config(tmp_path)
    assert config.fail_on == "none"
    assert config.exclude == []


def test_load_app_config_defaults_without_files(tmp_path: Path) -> None:
    config = load_app_config(tmp_path)
    assert config.fail_on == "high"
    assert config.format == "markdown"
    assert config.source is None
    assert config.rule_enable is None


def test_pyproject_without_tool_section_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n', encoding="utf-8")
    assert load_app_config(tmp_path).source is None


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ('fail_on = "critical"', "fail_on"),
        ('format = "xml"', "format"),
        ("jobs = 0", "jobs"),
        ('jobs = "4"', "jobs"),
        ('include = "programs/**"', "include"),
        ('rules = ["unchecked-account"]', "rules"),
        ("[signer_window]\nbefore = -1", "signer_window"),
        ("fail_on = ", "Invalid TOML"),
    ],
)
def test_invalid_config_values_raise(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".anchor-audit.toml").write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_app_config(tmp_path)


def test_explicit_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="does not exist"):
        load_app_config(tmp_path, config_path=Path("nope.toml"))


def test_rules_command_human_and_json(tmp_path: Path) -> None:
    (tmp_path / ".anchor-audit.toml").write_text(
        '[rules]\ndisable = ["pda-create-unverified"]\n', encoding="utf-8"
    )

    human = runner.invoke(app, ["rules", "--repo", str(tmp_path)])
    assert human.exit_code == 0
    assert "- unchecked-account (High) [enabled]" in human.stdout
    assert "- pda-create-unverified (Medium) [disabled]" in human.stdout

    result = runner.invoke(app, ["rules", "--repo", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [item["rule_id"] for item in payload["rules"]] == [
        "unchecked-account",
        "invoke-signed-no-bump",
        "pda-program-id",
        "missing-constraint",
        "cpi-missing-signer-check",
        "pda-create-unverified",
    ]
    assert payload["rules"][-1]["enabled"] is False
    assert payload["rules"][0]["severity"] == "high"
    assert payload["rules"][0]["description"]


def test_rules_command_rejects_unknown_rule_ids(tmp_path: Path) -> None:
    (tmp_path / ".anchor-audit.toml").write_text(
        '[rules]\nenable = ["no-such-rule"]\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["rules", "--repo", str(tmp_path)])
    assert result.exit_code == 2
    assert "Unknown rule ids: no-such-rule" in result.output


def test_config_command_json_reports_resolved_values(tmp_path: Path) -> None:
    (tmp_path / ".anchor-audit.toml").write_text(
        '[rules]\nenable = ["pda-program-id"]\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["config", "--repo", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["active_rule_ids"] == ["pda-program-id"]
    assert payload["fail_on"] == "high"
    assert payload["signer_window"] == {"before": 20, "after": 0}


def test_config_init_writes_valid_template(tmp_path: Path) -> None:
    out = tmp_path / ".anchor-audit.toml"
    result = runner.invoke(app, ["config-init", "--out", str(out)])
    assert result.exit_code == 0
    assert out.exists()

    again = runner.invoke(app, ["config-init", "--out", str(out)])
    assert again.exit_code == 2

    forced = runner.invoke(app, ["config-init", "--out", str(out), "--force"])
    assert forced.exit_code == 0

    validated = runner.invoke(
        app,
        ["config-validate", "--repo", str(tmp_path), "--config", str(out), "--format", "json"],
    )
    assert validated.exit_code == 0
    payload = json.loads(validated.stdout)
    assert payload["ok"] is True
    assert len(payload["active_rule_ids"]) == 6


def test_config_validate_reports_errors(tmp_path: Path) -> None:
    config = tmp_path / ".anchor-audit.toml"
    config.write_text('fail_on = "sometimes"\n', encoding="utf-8")
    result = runner.invoke(app, ["config-validate", "--repo", str(tmp_path)])
    assert result.exit_code == 2
    assert "fail_on" in result.output


@pytest.mark.parametrize(
    ("content", "key"),
    [
        ('fail-on = "low"', "fail-on"),
        ('[rules]\nenabled = ["pda-program-id"]', "rules.enabled"),
        ("[signer_window]\nbelow = 3", "signer_window.below"),
    ],
)
def test_unknown_config_keys_are_rejected(tmp_path: Path, content: str, key: str) -> None:
    (tmp_path / ".anchor-audit.toml").write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=f"Unknown config keys: {key}"):
        load_app_config(tmp_path)


def test_config_validate_reports_unmatched_include_patterns(tmp_path: Path) -> None:
    src = tmp_path / "programs" / "vault" / "src"
    src.mkdir(parents=True)
    (src / "lib.rs").write_text("fn main() {}\n", encoding="utf-8")
    build = tmp_path / "target" / "debug"
    build.mkdir(parents=True)
    (build / "generated.rs").write_text("fn main() {}\n", encoding="utf-8")
    (tmp_path / ".anchor-audit.toml").write_text(
        "\n".join(
            [
                'fail_on = "medium"',
                'include = ["programs/**", "crates/**"]',
                "",
                "[signer_window]",
                "before = 8",
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(
        app, ["config-validate", "--repo", str(tmp_path), "--format", "json"]
    )
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["fail_on"] == "medium"
    assert payload["signer_window"] == {"before": 8, "after": 0}
    assert payload["rust_files"] == 1
    assert payload["unmatched_include"] == ["crates/**"]

    human = runner.invoke(app, ["config-validate", "--repo", str(tmp_path)])
    assert human.exit_code == 0
    assert "- rust files after exclude: 1" in human.stdout
    assert "warning: include pattern 'crates/**' matches no Rust files" in human.stdout
