"""Program-derived address rules."""

from __future__ import annotations

import re

from anchor_audit.rules.base import Finding, Severity, make_finding
from anchor_audit.syntax import CallSite, SyntaxModel

PDA_PROGRAM_ID = "pda-program-id"
PDA_CREATE_UNVERIFIED = "pda-create-unverified"

PDA_DERIVATION_FUNCTIONS = ("find_program_address", "create_program_address")
PROGRAM_ID_RE = re.compile(r"^(?:ID|(?:\w+_)?program_id|(?:\w+_)?PROGRAM_ID)$")


def check_pda_program_id(model: SyntaxModel, file_path: str) -> list[Finding]:
    """PDA derivations that never pass a program id."""
    findings: list[Finding] = []
    for call in model.calls(*PDA_DERIVATION_FUNCTIONS):
        if has_program_id(call):
            continue
        findings.append(
            make_finding(
                rule_id=PDA_PROGRAM_ID,
                severity=Severity.HIGH,
                model=model,
                file_path=file_path,
                line=call.line,
                column=call.column,
                message=(
                    f"`{call.callee}` called without verifying against the expected program "
                    "ID. An attacker could pass a different program's PDA. Ensure you derive "
                    "against `crate::ID` or validate the program account."
                ),
            )
        )
    return findings


def check_pda_create_unverified(model: SyntaxModel, file_path: str) -> list[Finding]:
    """Every ``create_program_address`` call."""
    return [
        make_finding(
            rule_id=PDA_CREATE_UNVERIFIED,
            severity=Severity.MEDIUM,
            model=model,
            file_path=file_path,
            line=call.line,
            column=call.column,
            message=(
                "`create_program_address` is used instead of `find_program_address`. "
                "Prefer `find_program_address` which returns the bump, preventing PDA "
                "collision issues."
            ),
        )
        for call in model.calls("create_program_address")
    ]


def has_program_id(call: CallSite) -> bool:
    tokens = call.tokens
    for index, token in enumerate(tokens):
        if PROGRAM_ID_RE.match(token):
            return True
        if token == "id" and index + 1 < len(tokens) and tokens[index + 1] == "(":
            return True
    return False
