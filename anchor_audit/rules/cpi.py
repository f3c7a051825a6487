"""Cross-program invocation rules."""

from __future__ import annotations

import re
from functools import partial

from anchor_audit.rules.base import Detector, Finding, Severity, make_finding
from anchor_audit.syntax import TOKEN_RE, CallSite, SyntaxModel

INVOKE_SIGNED_NO_BUMP = "invoke-signed-no-bump"
CPI_MISSING_SIGNER_CHECK = "cpi-missing-signer-check"

SIGNER_WINDOW_BEFORE = 20
SIGNER_WINDOW_AFTER = 0

IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")
BUMP_LITERAL_RE = re.compile(
    r"(?<![\w)\]])\[\s*(?:\d[\d_]*(?:u8)?|0x[0-9A-Fa-f_]+(?:u8)?|b'(?:\\.|[^'\\])')\s*\]"
)
SIGNER_PATTERNS = (
    re.compile(r"\bis_signer\b"),
    re.compile(r"\bSigner\s*<"),
    re.compile(r"\.key(?:\(\))?\s*(?:==|!=)"),
    re.compile(r"(?:==|!=)\s*[&*]?[\w.]*\.key\b"),
    re.compile(r"\brequire_keys_(?:eq|neq)!"),
)


def check_invoke_signed_no_bump(model: SyntaxModel, file_path: str) -> list[Finding]:
    """``invoke_signed`` calls whose arguments carry no bump seed."""
    findings: list[Finding] = []
    for call in model.calls("invoke_signed"):
        if has_bump_reference(call):
            continue
        findings.append(
            make_finding(
                rule_id=INVOKE_SIGNED_NO_BUMP,
                severity=Severity.HIGH,
                model=model,
                file_path=file_path,
                line=call.line,
                column=call.column,
                message=(
                    "`invoke_signed` call without bump validation. Seeds without a verified "
                    "bump can allow PDA collision attacks. Ensure the bump is derived from "
                    "`find_program_address` or stored/validated on-chain."
                ),
            )
        )
    return findings


def check_cpi_missing_signer_check(
    model: SyntaxModel,
    file_path: str,
    *,
    before: int = SIGNER_WINDOW_BEFORE,
    after: int = SIGNER_WINDOW_AFTER,
) -> list[Finding]:
    """``invoke`` calls with no signer check in the surrounding lines."""
    findings: list[Finding] = []
    for call in model.calls("invoke"):
        window = "\n".join(model.context_window(call, before=before, after=after))
        if has_signer_check(window):
            continue
        findings.append(
            make_finding(
                rule_id=CPI_MISSING_SIGNER_CHECK,
                severity=Severity.MEDIUM,
                model=model,
                file_path=file_path,
                line=call.line,
                column=call.column,
                message=(
                    "CPI `invoke` call without apparent signer validation in surrounding "
                    "context. Ensure accounts passed to CPI are properly validated."
                ),
            )
        )
    return findings


def signer_check_detector(before: int, after: int) -> Detector:
    """Bind a context window to the signer-check detector."""
    if before < 0 or after < 0:
        raise ValueError("signer window bounds must be >= 0")
    return partial(check_cpi_missing_signer_check, before=before, after=after)


def has_bump_reference(call: CallSite) -> bool:
    """True when the signer-seeds argument (the last one) carries a bump.

    A bump is a ``bump``-named identifier inside the seeds array literal, or a
    single-byte literal such as ``&[254]``. Account lists are never consulted.
    """
    if not call.arguments:
        return False
    seeds = call.arguments[-1]
    if any("bump" in token.lower() for token in _bracketed_identifiers(seeds)):
        return True
    return BUMP_LITERAL_RE.search(seeds) is not None


def has_signer_check(text: str) -> bool:
    return any(pattern.search(text) for pattern in SIGNER_PATTERNS)


def _bracketed_identifiers(text: str) -> list[str]:
    identifiers: list[str] = []
    depth = 0
    for token in TOKEN_RE.findall(text):
        if token == "[":
            depth += 1
        elif token == "]":
            depth = max(0, depth - 1)
        elif depth and IDENTIFIER_RE.match(token):
            identifiers.append(token)
    return identifiers

