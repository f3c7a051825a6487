"""Rust syntax model built on tree-sitter, plus the query facade rules use."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import tree_sitter_rust
from tree_sitter import Language, Node, Parser

RUST_LANGUAGE = Language(tree_sitter_rust.language())

COMMENT_NODE_TYPES = frozenset({"line_comment", "block_comment"})
ATTRIBUTE_NODE_TYPE = "attribute_item"

ATTRIBUTE_RE = re.compile(r"^#\s*\[(?P<body>.*)\]$", re.DOTALL)
ATTRIBUTE_PATH_RE = re.compile(r"^\s*(?P<path>[A-Za-z_][\w]*(?:\s*::\s*[A-Za-z_]\w*)*)")
LEADING_IDENT_RE = re.compile(r"^\s*(?P<ident>[A-Za-z_]\w*)")
TOKEN_RE = re.compile(
    r"""
    b?"(?:\\.|[^"\\])*"
    |b?'(?:\\.|[^'\\])'
    |'[A-Za-z_]\w*
    |\w+
    |::|==|!=|->|=>|<=|>=
    |\S
    """,
    re.VERBOSE,
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = set(_OPENERS.values())


class ParseError(Exception):
    """Raised when a source file cannot be turned into a syntax model."""


@dataclass(frozen=True, slots=True)
class Comment:
    """A comment attached to the declaration that follows it."""

    text: str
    line: int

    def body_lines(self) -> list[str]:
        """Return comment lines with markers and surrounding whitespace removed."""
        raw = self.text.strip()
        if raw.startswith("/*"):
            raw = raw[2:]
            if raw.endswith("*/"):
                raw = raw[:-2]
            return [item.strip().lstrip("*!").strip() for item in raw.splitlines()]
        return [raw.lstrip("/").lstrip("!").strip()]


@dataclass(frozen=True, slots=True)
class Attribute:
    """An outer attribute such as ``#[account(mut, has_one = owner)]``."""

    name: str
    arguments: tuple[str, ...]
    line: int

    def argument_keys(self) -> set[str]:
        """Leading identifier of each argument (``has_one = x`` -> ``has_one``)."""
        keys: set[str] = set()
        for argument in self.arguments:
            match = LEADING_IDENT_RE.match(argument)
            if match is not None:
                keys.add(match.group("ident"))
        return keys

    def derives(self, trait: str) -> bool:
        if self.name != "derive":
            return False
        return any(_last_segment(argument) == trait for argument in self.arguments)


@dataclass(frozen=True, slots=True)
class FieldDecl:
    """A named struct field."""

    name: str
    type_text: str
    line: int
    column: int
    attributes: tuple[Attribute, ...] = ()
    comments: tuple[Comment, ...] = ()

    @property
    def base_type(self) -> str:
        """Last path segment of the declared type, without generic arguments."""
        head = self.type_text.lstrip("&").strip()
        if head.startswith("mut "):
            head = head[4:]
        return _last_segment(head.split("<", 1)[0])

    def attributes_named(self, name: str) -> list[Attribute]:
        return [attribute for attribute in self.attributes if attribute.name == name]


@dataclass(frozen=True, slots=True)
class StructDecl:
    """A struct declaration with its attributes, comments, and named fields."""

    name: str
    line: int
    column: int
    attributes: tuple[Attribute, ...] = ()
    comments: tuple[Comment, ...] = ()
    fields: tuple[FieldDecl, ...] = ()

    @property
    def derives_accounts(self) -> bool:
        return any(attribute.derives("Accounts") for attribute in self.attributes)


@dataclass(frozen=True, slots=True)
class CallSite:
    """A call expression with its raw argument text and tokens."""

    callee: str
    path: str
    arguments: tuple[str, ...]
    tokens: tuple[str, ...]
    line: int
    column: int
    end_line: int


@dataclass(slots=True)
class SyntaxModel:
    """Queryable view of one parsed Rust file."""

    path: str
    lines: list[str]
    structs: list[StructDecl] = field(default_factory=list)
    call_sites: list[CallSite] = field(default_factory=list)

    def accounts_structs(self) -> list[StructDecl]:
        """Structs carrying ``#[derive(Accounts)]``."""
        return [struct for struct in self.structs if struct.derives_accounts]

    def fields(self) -> list[FieldDecl]:
        """Every named field of every struct, in source order."""
        collected = [item for struct in self.structs for item in struct.fields]
        return sorted(collected, key=lambda item: (item.line, item.column))

    def calls(self, *names: str) -> list[CallSite]:
        """Call sites whose callee (last path segment) is one of ``names``."""
        wanted = set(names)
        return [call for call in self.call_sites if call.callee in wanted]

    def context_window(self, call: CallSite, *, before: int, after: int) -> list[str]:
        """Raw lines from ``before`` lines above the call to ``after`` lines below it."""
        start = max(1, call.line - before)
        end = min(len(self.lines), call.end_line + after)
        return self.lines[start - 1 : end]

    def source_line(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""


def parse_file(path: Path, display_path: str | None = None) -> SyntaxModel:
    """Read and parse a Rust source file."""
    label = display_path or str(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ParseError(f"cannot read file: {exc.strerror or exc}") from exc
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"file is not valid UTF-8 (byte offset {exc.start})") from exc
    return parse_source(text, label)


def parse_source(text: str, path: str = "<memory>") -> SyntaxModel:
    """Parse Rust source text into a syntax model.

    Raises ``ParseError`` when tree-sitter reports error or missing nodes.
    """
    source = text.encode("utf-8")
    tree = Parser(RUST_LANGUAGE).parse(source)
    root = tree.root_node
    if root.has_error:
        bad = _first_error_node(root)
        line = bad.start_point[0] + 1 if bad is not None else 1
        raise ParseError(f"syntax error near line {line}")

    return SyntaxModel(
        path=path,
        lines=text.splitlines(),
        structs=_collect_structs(root, source),
        call_sites=_collect_calls(root, source),
    )


def _collect_structs(root: Node, source: bytes) -> list[StructDecl]:
    structs: list[StructDecl] = []
    stack = [root]
    while stack:
        node = stack.pop()
        for child, attributes, comments in _decorated_children(node, source):
            if child.type == "struct_item":
                structs.append(_build_struct(child, source, attributes, comments))
        stack.extend(child for child in node.children if child.is_named)
    return sorted(structs, key=lambda item: (item.line, item.column))


def _build_struct(
    node: Node,
    source: bytes,
    attributes: tuple[Attribute, ...],
    comments: tuple[Comment, ...],
) -> StructDecl:
    name_node = node.child_by_field_name("name")
    anchor = name_node or node
    fields: list[FieldDecl] = []
    body = node.child_by_field_name("body")
    if body is not None and body.type == "field_declaration_list":
        for child, field_attributes, field_comments in _decorated_children(body, source):
            if child.type != "field_declaration":
                continue
            built = _build_field(child, source, field_attributes, field_comments)
            if built is not None:
                fields.append(built)

    return StructDecl(
        name=_text(name_node, source) if name_node is not None else "",
        line=anchor.start_point[0] + 1,
        column=_column(anchor, source),
        attributes=attributes,
        comments=comments,
        fields=tuple(fields),
    )


def _build_field(
    node: Node,
    source: bytes,
    attributes: tuple[Attribute, ...],
    comments: tuple[Comment, ...],
) -> FieldDecl | None:
    name_node = node.child_by_field_name("name")
    type_node = node.child_by_field_name("type")
    if name_node is None or type_node is None:
        return None
    return FieldDecl(
        name=_text(name_node, source),
        type_text=" ".join(_text(type_node, source).split()),
        line=name_node.start_point[0] + 1,
        column=_column(name_node, source),
        attributes=attributes,
        comments=comments,
    )


def _decorated_children(
    node: Node, source: bytes
) -> list[tuple[Node, tuple[Attribute, ...], tuple[Comment, ...]]]:
    """Pair each named child with the attributes and comments directly above it.

    Only the contiguous comment block counts: a blank line between a comment
    and whatever follows it detaches that comment.
    """
    output: list[tuple[Node, tuple[Attribute, ...], tuple[Comment, ...]]] = []
    pending_attributes: list[Attribute] = []
    pending_comments: list[Comment] = []
    last_end_row = -1
    last_decoration_row = -1

    for child in node.children:
        is_decoration = child.type == ATTRIBUTE_NODE_TYPE or child.type in COMMENT_NODE_TYPES
        if not is_decoration and not child.is_named:
            continue
        if pending_comments and child.start_point[0] > last_decoration_row + 1:
            pending_comments = []

        if child.type == ATTRIBUTE_NODE_TYPE:
            attribute = _parse_attribute(child, source)
            if attribute is not None:
                pending_attributes.append(attribute)
            last_decoration_row = _last_row(child)
            continue
        if child.type in COMMENT_NODE_TYPES:
            # trailing comment of the previous item
            if child.start_point[0] == last_end_row:
                continue
            pending_comments.append(
                Comment(text=_text(child, source), line=child.start_point[0] + 1)
            )
            last_decoration_row = _last_row(child)
            continue

        inner_attributes = [
            attribute
            for attribute in (
                _parse_attribute(item, source)
                for item in child.children
                if item.type == ATTRIBUTE_NODE_TYPE
            )
            if attribute is not None
        ]
        output.append(
            (
                child,
                tuple(pending_attributes + inner_attributes),
                tuple(pending_comments),
            )
        )
        pending_attributes = []
        pending_comments = []
        last_end_row = child.end_point[0]
    return output


def _parse_attribute(node: Node, source: bytes) -> Attribute | None:
    match = ATTRIBUTE_RE.match(_text(node, source).strip())
    if match is None:
        return None
    body = match.group("body").strip()
    path_match = ATTRIBUTE_PATH_RE.match(body)
    if path_match is None:
        return None

    name = _last_segment(path_match.group("path"))
    rest = body[path_match.end() :].strip()
    if rest.startswith("(") and rest.endswith(")"):
        arguments = tuple(_split_top_level(rest[1:-1]))
    elif rest.startswith("="):
        arguments = (rest[1:].strip(),)
    else:
        arguments = ()
    return Attribute(name=name, arguments=arguments, line=node.start_point[0] + 1)


def _collect_calls(root: Node, source: bytes) -> list[CallSite]:
    calls: list[CallSite] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "call_expression":
            call = _build_call(node, source)
            if call is not None:
                calls.append(call)
        stack.extend(reversed(node.children))
    return calls


def _build_call(node: Node, source: bytes) -> CallSite | None:
    function = node.child_by_field_name("function")
    if function is None:
        return None
    resolved = _resolve_callee(function, source)
    if resolved is None:
        return None
    callee, path, anchor = resolved

    arguments: list[str] = []
    tokens: list[str] = []
    arguments_node = node.child_by_field_name("arguments")
    if arguments_node is not None:
        for child in arguments_node.named_children:
            if child.type in COMMENT_NODE_TYPES:
                continue
            argument = _text(child, source)
            arguments.append(argument)
            tokens.extend(TOKEN_RE.findall(argument))

    return CallSite(
        callee=callee,
        path=path,
        arguments=tuple(arguments),
        tokens=tuple(tokens),
        line=anchor.start_point[0] + 1,
        column=_column(anchor, source),
        end_line=node.end_point[0] + 1,
    )


def _resolve_callee(function: Node, source: bytes) -> tuple[str, str, Node] | None:
    if function.type == "identifier":
        name = _text(function, source)
        return (name, name, function)
    if function.type == "scoped_identifier":
        path = "".join(_text(function, source).split())
        return (_last_segment(path), path, function)
    if function.type == "field_expression":
        field_node = function.child_by_field_name("field")
        if field_node is None:
            return None
        path = "".join(_text(function, source).split())
        return (_text(field_node, source), path, field_node)
    if function.type == "generic_function":
        inner = function.child_by_field_name("function")
        if inner is None:
            return None
        return _resolve_callee(inner, source)
    return None


def _first_error_node(root: Node) -> Node | None:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested in brackets or string literals."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    escaped = False
    current: list[str] = []

    for char in text:
        if quote is not None:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char == '"':
            quote = char
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [part for part in parts if part]


def _last_segment(path: str) -> str:
    return path.split("::")[-1].strip()


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _column(node: Node, source: bytes) -> int:
    """1-based character column; tree-sitter reports byte offsets."""
    line_start = source.rfind(b"\n", 0, node.start_byte) + 1
    return len(source[line_start : node.start_byte].decode("utf-8", errors="replace")) + 1


def _last_row(node: Node) -> int:
    # line comments may end at column 0 of the next row
    row, column = node.end_point
    if column == 0 and row > node.start_point[0]:
        return row - 1
    return row
