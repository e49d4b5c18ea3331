# autocheck/path_filter.py
"""
Pure relevance predicate for raw filesystem events.

Patterns follow gitignore wildmatch rules (via pathspec): a leading "/"
anchors a pattern to the watch root, a pattern without a slash matches at
any depth, and a trailing "/" is accepted for readability. A path is
ignored when it, or any directory containing it, matches a rule. Matching
is purely lexical; the filesystem is never consulted, since the path may
already be gone by the time its event is filtered.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from pathspec import GitIgnoreSpec

from .exceptions import FilterError
from .logging_config import TRACE
from .types import EventKind, RawEvent

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    # version control and IDE metadata
    ".git/",
    ".hg/",
    ".svn/",
    ".jj/",
    ".idea/",
    # build output and caches
    "/target/",
    "__pycache__/",
    # editor swap, backup and lock files
    "*.swp",
    "*.swo",
    "*.swx",
    "*~",
    ".#*",
    r"\#*#",
    "4913",
    "*.tmp",
    ".DS_Store",
)


@dataclass(frozen=True)
class IgnoreRule:
    """A single compiled ignore pattern."""

    pattern: str
    source: str = "config"
    """Where the rule came from ("default" or "config")."""

    _spec: GitIgnoreSpec | None = field(default=None, repr=False, compare=False)

    @classmethod
    def compile(cls, pattern: str, source: str = "config") -> IgnoreRule:
        """
        Validate and compile a pattern.

        Raises:
            FilterError: If the pattern is empty, a negation, a comment,
                contains NUL, or is rejected by the wildmatch compiler
        """
        if not isinstance(pattern, str):
            raise FilterError(repr(pattern), "pattern must be a string")
        stripped = pattern.strip()
        if not stripped:
            raise FilterError(pattern, "pattern is empty")
        if "\0" in stripped:
            raise FilterError(pattern, "pattern contains a NUL character")
        if stripped.startswith("!"):
            raise FilterError(pattern, "negated patterns are not supported")
        if stripped.startswith("#"):
            raise FilterError(pattern, "a leading '#' starts a comment; escape it as '\\#'")

        try:
            spec = GitIgnoreSpec.from_lines([stripped])
        except ValueError as e:
            raise FilterError(pattern, str(e)) from None

        if not any(p.include is not None for p in spec.patterns):
            raise FilterError(pattern, "pattern matches nothing")

        return cls(pattern=stripped, source=source, _spec=spec)

    def matches(self, relpath: str) -> bool:
        """Match a root-relative POSIX path (directories end with '/')."""
        return self._spec is not None and self._spec.match_file(relpath)


def compile_rules(patterns: Iterable[str], source: str = "config") -> list[IgnoreRule]:
    """Compile a batch of patterns, failing on the first malformed one."""
    return [IgnoreRule.compile(p, source) for p in patterns]


class PathFilter:
    """
    Decides whether a RawEvent is relevant.

    The rule set is fixed for the lifetime of the filter; build a new
    filter (and engine) to pick up new patterns.
    """

    def __init__(
        self,
        root: str | Path,
        patterns: Iterable[str] = (),
        *,
        use_defaults: bool = True,
    ) -> None:
        self._root = Path(os.path.normpath(root))
        if not self._root.is_absolute():
            raise FilterError(str(root), "watch root must be absolute")

        rules: list[IgnoreRule] = []
        if use_defaults:
            rules.extend(compile_rules(DEFAULT_IGNORE_PATTERNS, source="default"))
        rules.extend(compile_rules(patterns, source="config"))
        self._rules: tuple[IgnoreRule, ...] = tuple(rules)

        logger.debug(
            f"PathFilter for {self._root}: {len(self._rules)} rules "
            f"({sum(r.source == 'default' for r in self._rules)} built-in)"
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def rules(self) -> tuple[IgnoreRule, ...]:
        return self._rules

    def relative(self, path: str | Path) -> PurePosixPath | None:
        """Root-relative path, or None when the path lies outside the root."""
        normalized = Path(os.path.normpath(path))
        try:
            return PurePosixPath(normalized.relative_to(self._root).as_posix())
        except ValueError:
            return None

    def matching_rule(self, relpath: PurePosixPath, *, is_dir: bool = False) -> IgnoreRule | None:
        """
        First rule matching the path or one of its ancestors.

        Ancestors are matched as directories. The path itself is matched as a
        file, and also as a directory when `is_dir` is set, so a plain file
        named "target" is not caught by "/target/".
        """
        parts = [p for p in relpath.parts if p != "."]
        candidates = ["/".join(parts[:i]) + "/" for i in range(1, len(parts))]
        if parts:
            leaf = "/".join(parts)
            candidates.append(leaf)
            if is_dir:
                candidates.append(leaf + "/")

        for candidate in candidates:
            for rule in self._rules:
                if rule.matches(candidate):
                    return rule
        return None

    def is_ignored(self, path: str | Path, *, is_dir: bool = True) -> bool:
        """True when the path is outside the root or inside an ignored subtree."""
        rel = self.relative(path)
        return rel is None or self.matching_rule(rel, is_dir=is_dir) is not None

    def is_relevant(self, event: RawEvent) -> bool:
        rel = self.relative(event.path)
        if rel is None:
            logger.error(f"Ignoring unknown path: {event.path}")
            return False

        # The directory's mtime changes alongside the file event that caused it
        if event.is_directory and event.kind is EventKind.MODIFIED:
            logger.log(TRACE, f"Ignoring directory modification: {rel}")
            return False

        # A removed path may have been a directory; it can no longer be checked
        maybe_dir = event.is_directory or event.kind is EventKind.REMOVED
        rule = self.matching_rule(rel, is_dir=maybe_dir)
        if rule is not None:
            logger.log(TRACE, f"Ignoring path {rel} ({rule.source} rule {rule.pattern!r})")
            return False

        return True

    def __repr__(self) -> str:
        return f"PathFilter(root={str(self._root)!r}, rules={len(self._rules)})"
