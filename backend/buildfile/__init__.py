"""
LocalRepo Build File Package.

Byte-preserving parsing and patching of MODULE.bazel / WORKSPACE files.
Requires Python 3.11+.
"""

from buildfile.document import (
    Attribute,
    AssignmentStatement,
    CallStatement,
    Document,
    OtherStatement,
    OtherValue,
    StarlarkParser,
    StringListValue,
    StringValue,
    format_document,
    parse_document,
)
from buildfile.patcher import (
    ARCHIVE_OVERRIDE,
    DEFAULT_SHAPES,
    HTTP_ARCHIVE,
    DeclarationPatcher,
    DeclarationShape,
)

__all__ = [
    # Values
    "StringValue",
    "StringListValue",
    "OtherValue",
    # Statements
    "Attribute",
    "CallStatement",
    "AssignmentStatement",
    "OtherStatement",
    # Parsing
    "Document",
    "StarlarkParser",
    "parse_document",
    "format_document",
    # Patching
    "DeclarationShape",
    "DeclarationPatcher",
    "ARCHIVE_OVERRIDE",
    "HTTP_ARCHIVE",
    "DEFAULT_SHAPES",
]
