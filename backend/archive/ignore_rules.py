"""
LocalRepo Ignore Rules.

Gitignore-style pattern matching for archive exclusion.
Requires Python 3.11+.
"""

import fnmatch
import posixpath
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class IgnoreRule:
    """A single parsed ignore pattern."""

    pattern: str
    negated: bool = False
    directory_only: bool = False
    anchored: bool = False

    @classmethod
    def parse(cls, line: str) -> "IgnoreRule | None":
        """
        Parse one line of an ignore file.

        Returns:
            The rule, or None for blank lines and comments
        """
        text = line.rstrip("\r\n").rstrip(" \t")
        if not text or text.startswith("#"):
            return None

        negated = False
        if text.startswith("!"):
            negated = True
            text = text[1:]
        elif text.startswith(("\\#", "\\!")):
            text = text[1:]

        directory_only = text.endswith("/")
        text = text.rstrip("/")

        anchored = "/" in text
        text = text.lstrip("/")
        if not text:
            return None

        return cls(
            pattern=text,
            negated=negated,
            directory_only=directory_only,
            anchored=anchored,
        )

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        """
        Check whether this rule's pattern matches a path.

        Args:
            relative_path: Root-relative POSIX path
            is_dir: Whether the path names a directory
        """
        if self.directory_only and not is_dir:
            return False
        if not self.anchored:
            return fnmatch.fnmatchcase(posixpath.basename(relative_path), self.pattern)
        return any(
            fnmatch.fnmatchcase(relative_path, candidate)
            for candidate in self._anchored_candidates()
        )

    def _anchored_candidates(self) -> tuple[str, ...]:
        # fnmatch's "*" already crosses "/", so "**" only needs its
        # zero-directory forms added.
        candidates = [self.pattern]
        if self.pattern.startswith("**/"):
            candidates.append(self.pattern[3:])
        if "/**/" in self.pattern:
            candidates.append(self.pattern.replace("/**/", "/"))
        return tuple(candidates)


class IgnoreRuleSet:
    """
    Ordered ignore rules where later rules override earlier ones.

    A path is ignored when the last rule matching it is not negated.
    """

    def __init__(self, rules: Sequence[IgnoreRule] = ()) -> None:
        self._rules: tuple[IgnoreRule, ...] = tuple(rules)

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "IgnoreRuleSet":
        """Build a rule set from ignore-file lines."""
        rules = [rule for rule in (IgnoreRule.parse(line) for line in lines) if rule]
        return cls(rules)

    @classmethod
    def load(
        cls,
        root: Path,
        ignore_file: str,
        builtin_patterns: Sequence[str] = (),
    ) -> "IgnoreRuleSet":
        """
        Load the ignore file under root and append built-in patterns.

        A missing ignore file is not an error.

        Raises:
            OSError: If the ignore file exists but cannot be read
            UnicodeDecodeError: If the ignore file is not valid UTF-8
        """
        try:
            lines = (root / ignore_file).read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            lines = []
        return cls.from_lines([*lines, *builtin_patterns])

    @property
    def rules(self) -> tuple[IgnoreRule, ...]:
        return self._rules

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Return the verdict of the last rule matching the path."""
        ignored = False
        for rule in self._rules:
            if rule.matches(relative_path, is_dir):
                ignored = not rule.negated
        return ignored

    def __len__(self) -> int:
        return len(self._rules)
