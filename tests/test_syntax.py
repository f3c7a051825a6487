"""Syntax model and query facade tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from anchor_audit.syntax import ParseError, parse_file, parse_source

ACCOUNTS_SOURCE = """\
use anchor_lang::prelude::*;

#[derive(Accounts)]
pub struct Deposit<'info> {
    /// CHECK: validated in handler
    #[account(mut)]
    pub vault: AccountInfo<'info>,
    #[account(mut, has_one = owner @ ErrorCode::Unauthorized, seeds = [b"state", owner.key().as_ref()], bump)]
    pub state: Account<'info, State>,
    pub owner: Signer<'info>, // trailing note
    pub system_program: Program<'info, System>,
}

#[account]
#[derive(Default)]
pub struct State {
    pub owner: Pubkey,
}
"""

CALLS_SOURCE = """\
pub fn handler(ctx: Context<Transfer>, bump: u8) -> Result<()> {
    let (pda, _) = Pubkey::find_program_address(&[b"vault"], ctx.program_id);
    invoke(&ix, &[ctx.accounts.from.clone()])?;
    program.invoke_signed(&ix, &accounts, &[&[b"vault", &[bump]]])?;
    let value = helper::<u64>(1);
    Ok(())
}
"""


def test_accounts_structs_only_returns_derive_accounts() -> None:
    model = parse_source(ACCOUNTS_SOURCE, "lib.rs")
    assert [struct.name for struct in model.structs] == ["Deposit", "State"]
    assert [struct.name for struct in model.accounts_structs()] == ["Deposit"]
    state = model.structs[1]
    assert {attribute.name for attribute in state.attributes} == {"account", "derive"}


def test_fields_carry_types_attributes_and_comments() -> None:
    model = parse_source(ACCOUNTS_SOURCE, "lib.rs")
    deposit = model.accounts_structs()[0]
    vault, state, owner, system_program = deposit.fields

    assert vault.name == "vault"
    assert vault.type_text == "AccountInfo<'info>"
    assert vault.base_type == "AccountInfo"
    assert (vault.line, vault.column) == (7, 9)
    assert [comment.body_lines() for comment in vault.comments] == [
        ["CHECK: validated in handler"]
    ]
    assert vault.attributes_named("account")[0].arguments == ("mut",)

    account_attribute = state.attributes_named("account")[0]
    assert account_attribute.arguments[0] == "mut"
    assert account_attribute.argument_keys() == {"mut", "has_one", "seeds", "bump"}
    assert state.base_type == "Account"

    assert owner.comments == ()
    assert system_program.comments == ()
    assert system_program.base_type == "Program"


def test_fields_spans_all_structs_in_source_order() -> None:
    model = parse_source(ACCOUNTS_SOURCE, "lib.rs")
    assert [item.name for item in model.fields()] == [
        "vault",
        "state",
        "owner",
        "system_program",
        "owner",
    ]


def test_calls_resolve_plain_scoped_method_and_turbofish_callees() -> None:
    model = parse_source(CALLS_SOURCE, "lib.rs")
    callees = [call.callee for call in model.call_sites]
    assert "find_program_address" in callees
    assert "invoke" in callees
    assert "invoke_signed" in callees
    assert "helper" in callees

    pda_call = model.calls("find_program_address")[0]
    assert pda_call.path == "Pubkey::find_program_address"
    assert pda_call.arguments == ('&[b"vault"]', "ctx.program_id")
    assert "program_id" in pda_call.tokens
    assert pda_call.line == 2

    signed_call = model.calls("invoke_signed")[0]
    assert signed_call.line == 4
    assert signed_call.column == 13
    assert "bump" in signed_call.tokens


def test_context_window_is_clipped_to_file() -> None:
    model = parse_source(CALLS_SOURCE, "lib.rs")
    invoke_call = model.calls("invoke")[0]
    assert model.context_window(invoke_call, before=1, after=0) == [
        '    let (pda, _) = Pubkey::find_program_address(&[b"vault"], ctx.program_id);',
        "    invoke(&ix, &[ctx.accounts.from.clone()])?;",
    ]
    window = model.context_window(invoke_call, before=50, after=50)
    assert window == CALLS_SOURCE.splitlines()


def test_block_comment_body_lines_strip_markers() -> None:
    source = """\
#[derive(Accounts)]
pub struct Init<'info> {
    /*
     * CHECK: only read for its lamports
     */
    pub payer: UncheckedAccount<'info>,
}
"""
    model = parse_source(source, "lib.rs")
    payer = model.accounts_structs()[0].fields[0]
    lines = [line for comment in payer.comments for line in comment.body_lines()]
    assert "CHECK: only read for its lamports" in lines


def test_parse_source_rejects_invalid_rust() -> None:
    with pytest.raises(ParseError, match="line"):
        parse_source("pub struct Broken {\n    field: u8,\n", "broken.rs")


def test_parse_file_rejects_non_utf8(tmp_path: Path) -> None:
    path = tmp_path / "binary.rs"
    path.write_bytes(b"\xff\xfe\x00fn main() {}")
    with pytest.raises(ParseError, match="UTF-8"):
        parse_file(path)


def test_parse_file_reports_display_path(tmp_path: Path) -> None:
    path = tmp_path / "lib.rs"
    path.write_text("fn main() {}\n", encoding="utf-8")
    model = parse_file(path, "programs/demo/src/lib.rs")
    assert model.path == "programs/demo/src/lib.rs"
    assert model.structs == []


def test_columns_count_characters_not_bytes() -> None:
    source = """\
fn handler() {
    let s = "héllo"; invoke(&ix, &infos)?;
}

#[derive(Accounts)]
pub struct Init<'info> {
    /* ñ */ pub payer: Signer<'info>,
}
"""
    model = parse_source(source, "lib.rs")
    assert model.calls("invoke")[0].column == 22
    assert model.accounts_structs()[0].fields[0].column == 17
