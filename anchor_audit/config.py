"""Configuration loading for anchor-audit."""

from __future__ import annotations

import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAMES = (".anchor-audit.toml", "anchor-audit.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("anchor_audit", "anchor-audit")

FAIL_ON_CHOICES = frozenset({"high", "medium", "low", "none"})
FORMAT_CHOICES = frozenset({"markdown", "json", "human"})
DEFAULT_EXCLUDE = ["target/**", "**/target/**"]

TOP_LEVEL_KEYS = frozenset(
    {"fail_on", "format", "include", "exclude", "jobs", "rules", "signer_window"}
)
RULES_KEYS = frozenset({"enable", "disable"})
SIGNER_WINDOW_KEYS = frozenset({"before", "after"})


class ConfigError(ValueError):
    """Raised for malformed or unrecognized configuration values."""


@dataclass(slots=True)
class SignerWindowConfig:
    """Lines scanned around an ``invoke`` call for signer checks."""

    before: int = 20
    after: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"before": self.before, "after": self.after}


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    fail_on: str = "high"
    format: str = "markdown"
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    jobs: int | None = None
    rule_enable: list[str] | None = None
    rule_disable: list[str] = field(default_factory=list)
    signer_window: SignerWindowConfig = field(default_factory=SignerWindowConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fail_on": self.fail_on,
            "format": self.format,
            "include": list(self.include),
            "exclude": list(self.exclude),
            "jobs": self.jobs,
            "rules": {
                "enable": list(self.rule_enable) if self.rule_enable is not None else None,
                "disable": list(self.rule_disable),
            },
            "signer_window": self.signer_window.to_dict(),
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Resolve config for a scan root.

    An explicit ``config_path`` wins. Otherwise the first of
    ``.anchor-audit.toml``, ``anchor-audit.toml`` and a ``pyproject.toml``
    carrying a ``[tool.anchor_audit]`` table is used; defaults apply when
    none exists.
    """
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ConfigError(f"Config file does not exist: {resolved}")
        return _config_from_file(resolved) or AppConfig(source=str(resolved))

    for candidate in _candidate_files(repo):
        app_config = _config_from_file(candidate)
        if app_config is not None:
            return app_config
    return AppConfig()


def resolve_fail_on(value: str) -> str:
    """Normalize a threshold value, rejecting anything unrecognized."""
    return _as_choice(value, FAIL_ON_CHOICES, "fail_on")


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            'fail_on = "high"',
            'format = "markdown"',
            'include = ["programs/**"]',
            'exclude = ["target/**", "**/target/**"]',
            "# jobs = 4",
            "",
            "[rules]",
            "enable = [",
            '  "unchecked-account",',
            '  "invoke-signed-no-bump",',
            '  "pda-program-id",',
            '  "missing-constraint",',
            '  "cpi-missing-signer-check",',
            '  "pda-create-unverified",',
            "]",
            "disable = []",
            "",
            "[signer_window]",
            "before = 20",
            "after = 0",
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _candidate_files(repo: Path) -> Iterator[Path]:
    for filename in (*CONFIG_FILENAMES, PYPROJECT_FILENAME):
        path = repo / filename
        if path.is_file():
            yield path


def _config_from_file(path: Path) -> AppConfig | None:
    """Build config from one file, or ``None`` for a pyproject without our table."""
    loaded = _load_toml(path)
    section = _find_tool_section(loaded)
    if section is None:
        if path.name == PYPROJECT_FILENAME:
            return None
        section = loaded
    return _from_mapping(section, source=str(path))


def _find_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    _reject_unknown_keys(mapping, TOP_LEVEL_KEYS, "")
    rules_mapping = _as_table(mapping.get("rules"), "rules")
    window_mapping = _as_table(mapping.get("signer_window"), "signer_window")
    _reject_unknown_keys(rules_mapping, RULES_KEYS, "rules.")
    _reject_unknown_keys(window_mapping, SIGNER_WINDOW_KEYS, "signer_window.")

    raw_jobs = mapping.get("jobs")
    jobs = None if raw_jobs is None else _as_int(raw_jobs, "jobs")
    if jobs is not None and jobs <= 0:
        raise ConfigError("jobs must be > 0")

    exclude = mapping.get("exclude")
    return AppConfig(
        fail_on=_as_choice(mapping.get("fail_on", "high"), FAIL_ON_CHOICES, "fail_on"),
        format=_as_choice(mapping.get("format", "markdown"), FORMAT_CHOICES, "format"),
        include=_as_str_list(mapping.get("include"), "include"),
        exclude=_as_str_list(exclude, "exclude") if exclude is not None else list(DEFAULT_EXCLUDE),
        jobs=jobs,
        rule_enable=_as_str_list_or_none(rules_mapping.get("enable"), "rules.enable"),
        rule_disable=_as_str_list(rules_mapping.get("disable"), "rules.disable"),
        signer_window=_parse_signer_window(window_mapping),
        source=source,
    )


def _parse_signer_window(value: dict[str, Any]) -> SignerWindowConfig:
    before = _as_int(value.get("before", 20), "signer_window.before")
    after = _as_int(value.get("after", 0), "signer_window.after")
    if before < 0 or after < 0:
        raise ConfigError("signer_window bounds must be >= 0")
    return SignerWindowConfig(before=before, after=after)


def _reject_unknown_keys(mapping: dict[str, Any], allowed: frozenset[str], prefix: str) -> None:
    unknown = sorted(key for key in mapping if key not in allowed)
    if unknown:
        joined = ", ".join(f"{prefix}{key}" for key in unknown)
        raise ConfigError(f"Unknown config keys: {joined}")


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str_list_or_none(value: Any, field_name: str) -> list[str] | None:
    if value is None:
        return None
    return _as_str_list(value, field_name)


def _as_choice(raw: Any, allowed: frozenset[str], field_name: str) -> str:
    value = str(raw).strip().lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ConfigError(f"{field_name} must be one of: {choices} (got {raw!r})")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"{field_name} must be an integer")
    return raw
