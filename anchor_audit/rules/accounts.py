"""Account validation rules for ``#[derive(Accounts)]`` structs and fields."""

from __future__ import annotations

from anchor_audit.rules.base import Finding, Severity, make_finding
from anchor_audit.syntax import FieldDecl, SyntaxModel

UNCHECKED_ACCOUNT = "unchecked-account"
MISSING_CONSTRAINT = "missing-constraint"

RAW_ACCOUNT_TYPES = frozenset({"AccountInfo", "UncheckedAccount"})
CHECK_MARKER = "CHECK:"
CONSTRAINT_KEYS = frozenset({"has_one", "constraint", "seeds", "address"})


def check_unchecked_account(model: SyntaxModel, file_path: str) -> list[Finding]:
    """Raw ``AccountInfo``/``UncheckedAccount`` fields without a ``/// CHECK:`` comment."""
    findings: list[Finding] = []
    for struct in model.accounts_structs():
        for item in struct.fields:
            if item.base_type not in RAW_ACCOUNT_TYPES or has_check_comment(item):
                continue
            findings.append(
                make_finding(
                    rule_id=UNCHECKED_ACCOUNT,
                    severity=Severity.HIGH,
                    model=model,
                    file_path=file_path,
                    line=item.line,
                    column=item.column,
                    message=(
                        f"Raw `{item.base_type}` field `{item.name}` (`{item.type_text}`) in "
                        f"`{struct.name}` without `/// CHECK:` comment. Use "
                        "`Account<'info, T>` for type-safe deserialization, or add a "
                        "`/// CHECK:` comment explaining why this is safe."
                    ),
                )
            )
    return findings


def check_missing_constraint(model: SyntaxModel, file_path: str) -> list[Finding]:
    """Fields marked ``#[account(...)]`` with no ``has_one``/``constraint``/``seeds``/``address``."""
    findings: list[Finding] = []
    for item in model.fields():
        account_attributes = item.attributes_named("account")
        if not account_attributes:
            continue
        if any(CONSTRAINT_KEYS & attribute.argument_keys() for attribute in account_attributes):
            continue
        findings.append(
            make_finding(
                rule_id=MISSING_CONSTRAINT,
                severity=Severity.MEDIUM,
                model=model,
                file_path=file_path,
                line=item.line,
                column=item.column,
                message=(
                    f"Field `{item.name}` has `#[account]` without constraints. Consider "
                    "adding `has_one`, `constraint`, `seeds`, or `address` to validate "
                    "this account."
                ),
            )
        )
    return findings


def has_check_comment(item: FieldDecl) -> bool:
    """True when the comment block directly above the field carries ``CHECK:``."""
    return any(
        line.startswith(CHECK_MARKER)
        for comment in item.comments
        for line in comment.body_lines()
    )
