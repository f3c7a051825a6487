"""Rules package."""

from dataclasses import dataclass, replace

from anchor_audit.config import ConfigError
from anchor_audit.rules.accounts import (
    MISSING_CONSTRAINT,
    UNCHECKED_ACCOUNT,
    check_missing_constraint,
    check_unchecked_account,
)
from anchor_audit.rules.base import Detector, Finding, RuleDefinition, Severity
from anchor_audit.rules.cpi import (
    CPI_MISSING_SIGNER_CHECK,
    INVOKE_SIGNED_NO_BUMP,
    SIGNER_WINDOW_AFTER,
    SIGNER_WINDOW_BEFORE,
    check_cpi_missing_signer_check,
    check_invoke_signed_no_bump,
    signer_check_detector,
)
from anchor_audit.rules.pda import (
    PDA_CREATE_UNVERIFIED,
    PDA_PROGRAM_ID,
    check_pda_create_unverified,
    check_pda_program_id,
)

__all__ = [
    "RULES",
    "Finding",
    "RuleDefinition",
    "RuleInfo",
    "Severity",
    "build_rules",
    "list_rule_info",
]


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Rule metadata for listing and selection."""

    rule_id: str
    severity: Severity
    description: str
    enabled: bool


def _rule(rule_id: str, severity: Severity, detector: Detector) -> RuleDefinition:
    return RuleDefinition(
        id=rule_id,
        severity=severity,
        description=(detector.__doc__ or "").strip(),
        detector=detector,
    )


RULES: tuple[RuleDefinition, ...] = (
    _rule(UNCHECKED_ACCOUNT, Severity.HIGH, check_unchecked_account),
    _rule(INVOKE_SIGNED_NO_BUMP, Severity.HIGH, check_invoke_signed_no_bump),
    _rule(PDA_PROGRAM_ID, Severity.HIGH, check_pda_program_id),
    _rule(MISSING_CONSTRAINT, Severity.MEDIUM, check_missing_constraint),
    _rule(CPI_MISSING_SIGNER_CHECK, Severity.MEDIUM, check_cpi_missing_signer_check),
    _rule(PDA_CREATE_UNVERIFIED, Severity.MEDIUM, check_pda_create_unverified),
)


def build_rules(
    *,
    enabled_rule_ids: list[str] | None = None,
    disabled_rule_ids: list[str] | None = None,
    signer_window: tuple[int, int] = (SIGNER_WINDOW_BEFORE, SIGNER_WINDOW_AFTER),
) -> list[RuleDefinition]:
    """Select rules from the registry applying enable/disable filters."""
    registry = {rule.id: rule for rule in RULES}
    requested_ids = set(enabled_rule_ids or []) | set(disabled_rule_ids or [])
    unknown = [rule_id for rule_id in requested_ids if rule_id not in registry]
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown rule ids: {joined}")

    disabled_set = set(disabled_rule_ids or [])
    if enabled_rule_ids is None:
        selected_ids = [rule.id for rule in RULES if rule.id not in disabled_set]
    else:
        selected_ids = [
            rule_id for rule_id in _dedupe(enabled_rule_ids) if rule_id not in disabled_set
        ]

    before, after = signer_window
    built: list[RuleDefinition] = []
    for rule_id in selected_ids:
        rule = registry[rule_id]
        if rule_id == CPI_MISSING_SIGNER_CHECK and signer_window != (
            SIGNER_WINDOW_BEFORE,
            SIGNER_WINDOW_AFTER,
        ):
            try:
                rule = replace(rule, detector=signer_check_detector(before, after))
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        built.append(rule)
    return built


def list_rule_info(active_rules: list[RuleDefinition] | None = None) -> list[RuleInfo]:
    """Return metadata for every registered rule."""
    active_ids = {rule.id for rule in (active_rules if active_rules is not None else RULES)}
    return [
        RuleInfo(
            rule_id=rule.id,
            severity=rule.severity,
            description=rule.description,
            enabled=rule.id in active_ids,
        )
        for rule in RULES
    ]


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
