"""
LocalRepo Build File Document.

Byte-preserving Starlark document model built on Tree-sitter.
MODULE.bazel and WORKSPACE files are valid Python syntax, so the
Python grammar parses them; edits splice bytes and reparse incrementally.
Requires Python 3.11+.
"""

import ast
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import tree_sitter_python as tspython
from tree_sitter import Language, Node, Parser, Tree

from utils.errors import DocumentParseError
from utils.logger import LoggerMixin


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StringValue:
    """A string literal."""

    value: str


@dataclass(frozen=True)
class StringListValue:
    """A list literal whose elements are all string literals."""

    values: tuple[str, ...]


@dataclass(frozen=True)
class OtherValue:
    """Any other expression, kept as source text."""

    text: str


Value = StringValue | StringListValue | OtherValue


@dataclass(frozen=True)
class Attribute:
    """A keyword argument of a call."""

    name: str
    value: Value
    node: Node = field(repr=False, compare=False)


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallStatement:
    """A top-level call such as go_deps.archive_override(...)."""

    callee: str
    function_name: str
    attributes: tuple[Attribute, ...]
    line: int
    start_byte: int
    node: Node = field(repr=False, compare=False)

    def attribute(self, name: str) -> Value | None:
        """Get an attribute's value by name."""
        found = self.attribute_node(name)
        return found.value if found else None

    def attribute_node(self, name: str) -> Attribute | None:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    @property
    def arguments(self) -> Node:
        """The argument_list node."""
        return self.node.child_by_field_name("arguments")


@dataclass(frozen=True)
class AssignmentStatement:
    """A top-level assignment such as go_deps = use_extension(...)."""

    target: str
    value: Value
    line: int
    start_byte: int


@dataclass(frozen=True)
class OtherStatement:
    """Any other top-level statement."""

    kind: str
    line: int
    start_byte: int


Statement = CallStatement | AssignmentStatement | OtherStatement


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def quote(value: str) -> str:
    """Render a Starlark double-quoted string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def render_value(value: str | Sequence[str], indent: str = "") -> str:
    """
    Render a string or list of strings as Starlark source.

    Lists with more than one element are laid out one element per line,
    indented relative to indent, the way buildifier formats them.
    """
    if isinstance(value, str):
        return quote(value)
    items = [quote(item) for item in value]
    if len(items) <= 1:
        return f"[{', '.join(items)}]"
    body = "".join(f"{indent}    {item},\n" for item in items)
    return f"[\n{body}{indent}]"


def _point(source: bytes, offset: int) -> tuple[int, int]:
    """Row and byte column of an offset."""
    row = source.count(b"\n", 0, offset)
    column = offset - (source.rfind(b"\n", 0, offset) + 1)
    return row, column


def _line_indent(source: bytes, offset: int) -> str:
    """Leading whitespace of the line containing offset."""
    start = source.rfind(b"\n", 0, offset) + 1
    end = start
    while end < len(source) and source[end : end + 1] in (b" ", b"\t"):
        end += 1
    return source[start:end].decode("utf-8")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class StarlarkParser(LoggerMixin):
    """
    Tree-sitter parser for Starlark build files.

    Rejects documents with syntax errors rather than tolerating them.
    """

    def __init__(self) -> None:
        """Initialize the Tree-sitter parser with the Python language."""
        self._language = Language(tspython.language())
        self._parser = Parser(self._language)

    def parse(self, content: bytes, filename: str = "<memory>") -> "Document":
        """
        Parse build file content.

        Args:
            content: File content as bytes
            filename: Name used in error messages

        Returns:
            Parsed Document

        Raises:
            DocumentParseError: If the content has a syntax error
        """
        tree = self._parser.parse(content)
        self._check(tree, filename)
        return Document(content, tree, self, filename)

    def parse_file(self, file_path: Path) -> "Document":
        """Read and parse a build file from disk."""
        return self.parse(file_path.read_bytes(), str(file_path))

    def reparse(self, content: bytes, old_tree: Tree, filename: str) -> Tree:
        """
        Perform incremental parsing after an edit.

        Args:
            content: Updated source
            old_tree: Previous tree, already edited to match content
            filename: Name used in error messages
        """
        tree = self._parser.parse(content, old_tree)
        self._check(tree, filename)
        return tree

    def _check(self, tree: Tree, filename: str) -> None:
        root = tree.root_node
        if not root.has_error:
            return
        bad = _first_error(root) or root
        line, column = bad.start_point
        kind = "missing " + bad.type if bad.is_missing else "syntax error"
        self.log.warning("build_file_parse_failed", filename=filename, line=line + 1)
        raise DocumentParseError(kind, filename, line + 1, column + 1)


def _first_error(node: Node) -> Node | None:
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error(child)
            if found is not None:
                return found
    return None


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document(LoggerMixin):
    """
    A parsed build file.

    Holds the exact source bytes. Attribute edits replace only the
    affected byte ranges, so formatting leaves every untouched byte as-is.
    """

    def __init__(self, source: bytes, tree: Tree, parser: StarlarkParser, filename: str) -> None:
        self._source = source
        self._tree = tree
        self._parser = parser
        self._filename = filename

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def source(self) -> bytes:
        return self._source

    def format(self) -> bytes:
        """Serialize the document."""
        return self._source

    def statements(self) -> list[Statement]:
        """Enumerate top-level statements."""
        result: list[Statement] = []
        for child in self._tree.root_node.named_children:
            if child.type == "comment":
                continue
            result.append(self._statement(child))
        return result

    def calls(self) -> Iterator[CallStatement]:
        """Iterate over top-level call statements."""
        for statement in self.statements():
            match statement:
                case CallStatement():
                    yield statement

    def set_attribute(
        self, call: CallStatement, name: str, value: str | Sequence[str]
    ) -> CallStatement:
        """
        Set a call attribute to a string or list of strings.

        An existing attribute keeps its position and only its value is
        replaced. A missing attribute is appended after the last argument,
        following the call's layout.

        Returns:
            The call statement re-read from the edited document
        """
        existing = call.attribute_node(name)
        if existing is not None:
            value_node = existing.node.child_by_field_name("value")
            indent = _line_indent(self._source, existing.node.start_byte)
            self._edit(value_node.start_byte, value_node.end_byte, render_value(value, indent))
        else:
            self._append_attribute(call, name, value)
        return self._call_at(call.start_byte)

    # -- internals ----------------------------------------------------------

    def _text(self, node: Node) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8")

    def _statement(self, node: Node) -> Statement:
        line = node.start_point[0] + 1
        inner = node.named_children[0] if node.type == "expression_statement" and node.named_children else None
        if inner is not None and inner.type == "call":
            return self._call(inner)
        if inner is not None and inner.type == "assignment":
            left = inner.child_by_field_name("left")
            right = inner.child_by_field_name("right")
            return AssignmentStatement(
                target=self._text(left) if left else "",
                value=self._value(right) if right else OtherValue(""),
                line=line,
                start_byte=node.start_byte,
            )
        return OtherStatement(
            kind=inner.type if inner is not None else node.type,
            line=line,
            start_byte=node.start_byte,
        )

    def _call(self, node: Node) -> CallStatement:
        function = node.child_by_field_name("function")
        callee = self._text(function)
        if function.type == "attribute":
            function_name = self._text(function.child_by_field_name("attribute"))
        else:
            function_name = callee

        attributes: list[Attribute] = []
        arguments = node.child_by_field_name("arguments")
        if arguments is not None:
            for arg in arguments.named_children:
                if arg.type != "keyword_argument":
                    continue
                arg_name = arg.child_by_field_name("name")
                arg_value = arg.child_by_field_name("value")
                attributes.append(
                    Attribute(
                        name=self._text(arg_name),
                        value=self._value(arg_value),
                        node=arg,
                    )
                )

        return CallStatement(
            callee=callee,
            function_name=function_name,
            attributes=tuple(attributes),
            line=node.start_point[0] + 1,
            start_byte=node.start_byte,
            node=node,
        )

    def _value(self, node: Node) -> Value:
        if node.type in ("string", "concatenated_string"):
            decoded = self._string(node)
            if decoded is not None:
                return StringValue(decoded)
        elif node.type == "list":
            elements = [c for c in node.named_children if c.type != "comment"]
            decoded_items = [
                self._string(c) if c.type in ("string", "concatenated_string") else None
                for c in elements
            ]
            if all(item is not None for item in decoded_items):
                return StringListValue(tuple(decoded_items))
        return OtherValue(self._text(node))

    def _string(self, node: Node) -> str | None:
        try:
            literal = ast.literal_eval(self._text(node))
        except (ValueError, SyntaxError):
            return None
        return literal if isinstance(literal, str) else None

    def _call_at(self, start_byte: int) -> CallStatement:
        for call in self.calls():
            if call.start_byte == start_byte:
                return call
        raise LookupError(f"no call statement at byte {start_byte} in {self._filename}")

    def _append_attribute(self, call: CallStatement, name: str, value: str | Sequence[str]) -> None:
        arguments = call.arguments
        items = [c for c in arguments.named_children if c.type != "comment"]
        close = arguments.children[-1]

        if not items:
            indent = _line_indent(self._source, call.start_byte)
            self._edit(close.start_byte, close.start_byte, f"{name} = {render_value(value, indent)}")
            return

        last = items[-1]
        separator = self._keyword_separator(last)
        multiline = close.start_point[0] > last.end_point[0]

        if not multiline:
            comma = self._trailing_comma(arguments, last)
            text = f"{name}{separator}{render_value(value)}"
            if comma is not None:
                self._edit(comma.end_byte, comma.end_byte, f" {text}")
            else:
                self._edit(last.end_byte, last.end_byte, f", {text}")
            return

        if self._trailing_comma(arguments, last) is None:
            self._edit(last.end_byte, last.end_byte, ",")
            call = self._call_at(call.start_byte)
            arguments = call.arguments
            last = [c for c in arguments.named_children if c.type != "comment"][-1]

        comma = self._trailing_comma(arguments, last)
        close = arguments.children[-1]
        indent = _line_indent(self._source, last.start_byte)
        newline = self._source.find(b"\n", comma.end_byte, close.start_byte)
        if newline == -1:
            newline = close.start_byte
        self._edit(
            newline,
            newline,
            f"\n{indent}{name}{separator}{render_value(value, indent)},",
        )

    def _trailing_comma(self, arguments: Node, last: Node) -> Node | None:
        for child in arguments.children:
            if child.type == "," and child.start_byte >= last.end_byte:
                return child
        return None

    def _keyword_separator(self, node: Node) -> str:
        if node.type == "keyword_argument":
            name = node.child_by_field_name("name")
            value = node.child_by_field_name("value")
            between = self._source[name.end_byte : value.start_byte].decode("utf-8")
            if "\n" not in between and "=" in between:
                return between
        return " = "

    def _edit(self, start: int, end: int, replacement: str) -> None:
        new_bytes = replacement.encode("utf-8")
        old_source = self._source
        new_source = old_source[:start] + new_bytes + old_source[end:]
        new_end = start + len(new_bytes)

        edited = self._tree.copy()
        edited.edit(
            start_byte=start,
            old_end_byte=end,
            new_end_byte=new_end,
            start_point=_point(old_source, start),
            old_end_point=_point(old_source, end),
            new_end_point=_point(new_source, new_end),
        )
        tree = self._parser.reparse(new_source, edited, self._filename)
        self._source, self._tree = new_source, tree


_default_parser: StarlarkParser | None = None


def parse_document(content: bytes, filename: str = "<memory>") -> Document:
    """Parse build file content with a shared parser."""
    global _default_parser
    if _default_parser is None:
        _default_parser = StarlarkParser()
    return _default_parser.parse(content, filename)


def format_document(document: Document) -> bytes:
    """Serialize a document back to bytes."""
    return document.format()
