"""
LocalRepo Declaration Patcher.

Locates one dependency declaration in a build file and rewrites
named attributes, leaving the rest of the document untouched.
Requires Python 3.11+.
"""

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

from buildfile.document import CallStatement, Document, StringValue
from utils.logger import LoggerMixin


AttributeValue = str | Sequence[str]


@dataclass(frozen=True)
class DeclarationShape:
    """A call form recognized as a declaration, and its key attribute."""

    function_name: str
    key_attribute: str


# go_deps.archive_override(path = "...") in MODULE.bazel
ARCHIVE_OVERRIDE = DeclarationShape(function_name="archive_override", key_attribute="path")
# http_archive(name = "...") in WORKSPACE
HTTP_ARCHIVE = DeclarationShape(function_name="http_archive", key_attribute="name")

DEFAULT_SHAPES: tuple[DeclarationShape, ...] = (ARCHIVE_OVERRIDE, HTTP_ARCHIVE)


class DeclarationPatcher(LoggerMixin):
    """
    Finds and updates a single declaration by key.

    Only top-level statements are considered. When several declarations
    share a key, the first in document order is the one matched.
    """

    def __init__(self, shapes: Sequence[DeclarationShape] = DEFAULT_SHAPES) -> None:
        """
        Initialize the patcher.

        Args:
            shapes: Declaration forms to recognize
        """
        self._shapes = tuple(shapes)

    @property
    def shapes(self) -> tuple[DeclarationShape, ...]:
        return self._shapes

    def declarations(self, document: Document) -> Iterator[tuple[CallStatement, str | None]]:
        """
        Iterate over recognized declarations.

        Yields:
            (call, key) tuples; key is None when the key attribute is
            missing or not a plain string
        """
        for call in document.calls():
            for shape in self._shapes:
                if call.function_name != shape.function_name:
                    continue
                match call.attribute(shape.key_attribute):
                    case StringValue(value=key):
                        yield call, key
                    case _:
                        yield call, None
                break

    def find(self, document: Document, key: str) -> CallStatement | None:
        """Get the first declaration whose key matches."""
        for call, call_key in self.declarations(document):
            if call_key == key:
                return call
        return None

    def match(self, document: Document, key: str) -> bool:
        """Check whether a declaration with this key exists."""
        return self.find(document, key) is not None

    def update(
        self,
        document: Document,
        key: str,
        new_values: Mapping[str, AttributeValue],
    ) -> bool:
        """
        Replace attributes of the declaration matching key.

        Attributes not present are created. Every other attribute,
        comment and statement keeps its exact bytes.

        Args:
            document: Parsed build file, edited in place
            key: Value of the declaration's key attribute
            new_values: Attribute name -> string or list of strings

        Returns:
            True if a declaration was updated, False if none matched
        """
        call = self.find(document, key)
        if call is None:
            self.log.debug("declaration_not_matched", key=key, filename=document.filename)
            return False

        for name, value in new_values.items():
            call = document.set_attribute(call, name, value)

        self.log.info(
            "declaration_updated",
            key=key,
            callee=call.callee,
            filename=document.filename,
            line=call.line,
            attributes=sorted(new_values),
        )
        return True
